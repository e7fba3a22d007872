"""
Synthetic raw volumes for tests and benchmarks.
"""

import math

import numpy as np

from das_recon.config import AcquisitionConfig
from das_recon.delays import DelayGeometry


def constant_volume(lines: int, samples: int, slices: int = 1, value=1.0, dtype=np.float64):
    return np.full((lines, samples, slices), value, dtype=dtype)


def point_source_volume(
    lines: int,
    samples: int,
    slices: int = 1,
    line: int = None,
    sample: int = None,
    amplitude=1.0,
    dtype=np.float64,
):
    """Single non-zero sample per slice at (line, sample), centred by default."""
    data = np.zeros((lines, samples, slices), dtype=dtype)
    line = lines // 2 if line is None else line
    sample = samples // 2 if sample is None else sample
    data[line, sample, :] = amplitude
    return data


def simulate_point_source(
    config: AcquisitionConfig,
    lines: int,
    samples: int,
    source_line: int,
    source_sample: int,
    slices: int = 1,
    amplitude: float = 1.0,
):
    """
    Channel data of a point absorber seen by every element.

    The arrival on channel ``l`` is at depth sample
    ``sqrt(source_sample**2 + (k * (l - source_line))**2)``, where ``k`` is the
    lateral step in samples per line, the same travel-time model the
    spherical delay undoes.

    Returns:
    --------
    data : ndarray (lines, samples, slices)
        float64 channel data, zero except on the arrival curve
    """
    k = DelayGeometry.from_config(config, lines, samples).samples_per_line_step
    data = np.zeros((lines, samples, slices), dtype=np.float64)
    for channel in range(lines):
        kd = k * (channel - source_line)
        arrival = math.sqrt(source_sample * source_sample + kd * kd)
        if arrival < samples:
            data[channel, int(arrival), :] = amplitude
    return data


def sample_point_sources(lines: int, samples: int, slices: int, n_sources=10, seed=42):
    """Random point sources, a different set in every slice."""
    rng = np.random.default_rng(seed)
    data = np.zeros((lines, samples, slices), dtype=np.float64)
    for s in range(slices):
        ls = rng.integers(0, lines, n_sources)
        ss = rng.integers(0, samples, n_sources)
        data[ls, ss, s] = rng.uniform(0.5, 1.5, n_sources)
    return data
