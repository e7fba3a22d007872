"""
Performance benchmarks comparing the reference and numba beamformers, and
sequential against threaded slice processing.
"""

import argparse
import time

import numpy as np

from das_recon import (
    AcquisitionConfig,
    DASBeamformer,
    DelayGeometry,
    DelayMethod,
    beamform_slice,
    beamform_slice_reference,
    enable_logging,
    load_config,
    make_window,
)
from das_recon.phantoms import sample_point_sources


def time_runs(fn, n_runs):
    times = []
    result = None
    for i in range(n_runs):
        start = time.perf_counter()
        result = fn()
        end = time.perf_counter()
        times.append(end - start)
        print(f"  Run {i+1}/{n_runs}: {times[-1]:.4f} s")
    return times, result


def benchmark_kernel(config: AcquisitionConfig, lines_in, samples_in, n_runs=3):
    """Benchmark one slice for every delay method."""
    print("=" * 70)
    print("SLICE BEAMFORMING BENCHMARK")
    print("=" * 70)

    data = sample_point_sources(lines_in, samples_in, 1, n_sources=200)[:, :, 0]
    window = make_window(config.apodization, config.aperture_size)
    geometry = DelayGeometry.from_config(config, lines_in, samples_in)

    print(f"Raw slice: {lines_in} x {samples_in}")
    print(f"Output slice: {config.reconstruction_lines} x {config.samples_per_line}")
    print(f"Steering angle: {config.steering_angle} deg")

    speedups = {}
    for method in DelayMethod:
        print(f"\n--- {method.name} ---")
        print("Benchmarking reference implementation...")
        times_ref, img_ref = time_runs(
            lambda: beamform_slice_reference(data, window, geometry, method), n_runs
        )
        print("Benchmarking numba implementation...")
        # first call compiles
        beamform_slice(data, window, geometry, method)
        times_vec, img_vec = time_runs(
            lambda: beamform_slice(data, window, geometry, method), n_runs
        )

        max_diff = np.max(np.abs(img_vec - img_ref))
        rel_diff = max_diff / max(np.max(np.abs(img_ref)), 1e-300)
        print(f"  Max absolute difference: {max_diff:.2e}")
        print(f"  Max relative difference: {rel_diff:.2e}")

        mean_ref = np.mean(times_ref)
        mean_vec = np.mean(times_vec)
        speedups[method] = mean_ref / mean_vec
        print(f"Reference:   {mean_ref:.4f} ± {np.std(times_ref):.4f} s")
        print(f"Numba:       {mean_vec:.4f} ± {np.std(times_vec):.4f} s")
        print(f"Speedup:     {speedups[method]:.2f}x")

    return speedups


def benchmark_volume(config: AcquisitionConfig, lines_in, samples_in, slices, workers, n_runs=3):
    """Benchmark a whole volume, one slice at a time against a thread pool."""
    print("\n" + "=" * 70)
    print("VOLUME BENCHMARK")
    print("=" * 70)

    volume = sample_point_sources(lines_in, samples_in, slices, n_sources=200)
    print(f"Raw volume: {volume.shape}, workers: {workers}")

    sequential = DASBeamformer(config, workers=1)
    threaded = DASBeamformer(config, workers=workers)
    # warm-up compiles both kernel builds
    sequential.reconstruct(volume[:, :, :1])
    threaded.reconstruct(volume[:, :, :2])

    print("\nBenchmarking sequential slices...")
    times_seq, out_seq = time_runs(lambda: sequential.reconstruct(volume), n_runs)
    print("\nBenchmarking threaded slices...")
    times_thr, out_thr = time_runs(lambda: threaded.reconstruct(volume), n_runs)

    max_diff = np.max(np.abs(out_thr.data - out_seq.data))
    print(f"\n  Max absolute difference: {max_diff:.2e}")

    mean_seq = np.mean(times_seq)
    mean_thr = np.mean(times_thr)
    print("\n" + "=" * 70)
    print("VOLUME RESULTS")
    print("=" * 70)
    print(f"Sequential:  {mean_seq:.4f} ± {np.std(times_seq):.4f} s")
    print(f"Threaded:    {mean_thr:.4f} ± {np.std(times_thr):.4f} s")
    print(f"Speedup:     {mean_seq / mean_thr:.2f}x")
    print("=" * 70)
    return mean_seq / mean_thr


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--config", help="YAML acquisition config")
    parser.add_argument("--lines", type=int, default=128)
    parser.add_argument("--samples", type=int, default=1024)
    parser.add_argument("--slices", type=int, default=8)
    parser.add_argument("--workers", type=int, default=4)
    parser.add_argument("--runs", type=int, default=3)
    parser.add_argument("--log-level", default="warning", help="das_recon log level, e.g. info")
    args = parser.parse_args()
    enable_logging(args.log_level)

    if args.config:
        config = load_config(args.config)
    else:
        config = AcquisitionConfig(samples_per_line=512, steering_angle=27.0)

    print("\n" + "=" * 70)
    print("DAS RECONSTRUCTION PERFORMANCE BENCHMARKS")
    print("=" * 70)

    speedups = benchmark_kernel(config, args.lines, args.samples, n_runs=args.runs)
    volume_speedup = benchmark_volume(
        config, args.lines, args.samples, args.slices, args.workers, n_runs=args.runs
    )

    print("\n" + "=" * 70)
    print("SUMMARY")
    print("=" * 70)
    for method, speedup in speedups.items():
        print(f"{method.name:<12} numba speedup:  {speedup:.2f}x")
    print(f"Threaded slices speedup:     {volume_speedup:.2f}x")
    print("=" * 70)
    print()


if __name__ == "__main__":
    main()
