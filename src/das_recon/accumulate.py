"""
Delay-and-sum accumulation of one slice.

Reference implementation (numpy, one depth row at a time) and a numba
kernel that must produce the same image.
"""

from typing import Optional

import numpy as np
from numba import njit, prange

from das_recon.config import DelayMethod
from das_recon.delays import (
    DelayGeometry,
    aperture_bounds,
    aperture_bounds_vec,
    apodization_index,
    apodization_index_vec,
    delay_offset,
    delay_offset_vec,
    pixel_delay_factor,
    pixel_delay_factor_vec,
)


def _check_inputs(data, window, geometry):
    if data.ndim != 2:
        raise ValueError(f"Expected a 2-D slice, got shape {data.shape}")
    if data.shape != (geometry.lines_in, geometry.samples_in):
        raise ValueError(
            f"Slice shape {data.shape} does not match delay geometry "
            f"({geometry.lines_in}, {geometry.samples_in})"
        )
    if window.ndim != 1 or window.shape[0] < 2:
        raise ValueError(f"Apodization window must be 1-D with >= 2 weights, got {window.shape}")


# ========== Reference Implementation ==========


def beamform_slice_reference(
    data: np.ndarray,  # (lines_in, samples_in) float64
    window: np.ndarray,  # (aperture_size,)
    geometry: DelayGeometry,
    method,
) -> np.ndarray:
    """
    Delay-and-sum reconstruction of one slice.

    Parameters:
    -----------
    data : ndarray (lines_in, samples_in)
        Normalized channel data of one slice
    window : ndarray (aperture_size,)
        Apodization table
    geometry : DelayGeometry
        Per-slice constants
    method : DelayMethod
        Delay formula

    Returns:
    --------
    img : ndarray (lines_out, samples_out)
        Reconstructed slice, each pixel normalized by the apodization weight
        of its whole aperture
    """
    data = np.asarray(data, dtype=np.float64)
    _check_inputs(data, window, geometry)
    method = int(DelayMethod.parse(method))

    lines_in, samples_in = data.shape
    lines_out, samples_out = geometry.lines_out, geometry.samples_out
    size = window.shape[0]

    line_in = np.arange(lines_out) / lines_out * lines_in  # (lines_out,)
    img = np.zeros((lines_out, samples_out), dtype=np.float64)

    for sample in range(samples_out):
        sample_in = sample / samples_out * samples_in

        min_line, max_line = aperture_bounds_vec(
            line_in, sample_in, geometry.part_multiplier, lines_in
        )
        width = max_line - min_line  # (lines_out,)

        # Aperture channels, padded to the widest aperture of this row
        j = np.arange(width.max())[None, :]  # (1, K)
        in_aperture = j < width[:, None]  # (lines_out, K)
        channel = min_line[:, None] + j

        apod = np.clip(apodization_index_vec(j, width[:, None], size), 0, size - 1)
        weights = np.where(in_aperture, window[apod], 0.0)

        factor = pixel_delay_factor_vec(
            method, line_in, sample_in, lines_in, geometry.lateral_scale, geometry.sample_scale
        )
        d = channel - line_in[:, None]
        pos = sample_in + delay_offset_vec(method, d, factor[:, None], sample_in)

        valid = in_aperture & (pos >= 0.0) & (pos < samples_in)
        idx = np.where(valid, pos, 0.0).astype(np.int64)
        ch = np.where(valid, channel, 0)
        acc = np.sum(np.where(valid, data[ch, idx] * weights, 0.0), axis=1)
        norm = np.sum(weights, axis=1)

        with np.errstate(divide="ignore", invalid="ignore"):
            img[:, sample] = np.where(norm > 0.0, acc / norm, 0.0)

    return img


# ========== Numba-Optimized Implementation ==========


def _das_kernel(
    data,
    window,
    method,
    lines_out,
    samples_out,
    part_multiplier,
    lateral_scale,
    sample_scale,
    out,
):
    """
    Kernel body. Output lines are independent, so the outer loop is a prange.
    """
    lines_in, samples_in = data.shape
    size = window.shape[0]

    for line in prange(lines_out):
        line_in = line / lines_out * lines_in

        for sample in range(samples_out):
            sample_in = sample / samples_out * samples_in

            min_line, max_line = aperture_bounds(line_in, sample_in, part_multiplier, lines_in)
            width = max_line - min_line
            factor = pixel_delay_factor(
                method, line_in, sample_in, lines_in, lateral_scale, sample_scale
            )

            acc = 0.0
            norm = 0.0
            for channel in range(min_line, max_line):
                weight = window[apodization_index(channel - min_line, width, size)]
                norm += weight

                pos = sample_in + delay_offset(method, channel - line_in, factor, sample_in)
                if pos >= 0.0 and pos < samples_in:
                    acc += data[channel, int(pos)] * weight

            if norm > 0.0:
                out[line, sample] = acc / norm
            else:
                out[line, sample] = 0.0

    return out


_das_kernel_parallel = njit(parallel=True)(_das_kernel)
# Serial build for slice-level worker threads: the numba workqueue layer
# does not accept concurrent launches from several threads.
_das_kernel_serial = njit(nogil=True)(_das_kernel)


def beamform_slice(
    data: np.ndarray,
    window: np.ndarray,
    geometry: DelayGeometry,
    method,
    out: Optional[np.ndarray] = None,
    parallel: bool = True,
) -> np.ndarray:
    """
    Numba-optimized version of beamform_slice_reference.

    Parameters are identical to beamform_slice_reference, plus:

    out : ndarray (lines_out, samples_out), optional
        Scratch buffer to accumulate into
    parallel : bool
        Parallelize over output lines. Use False when already running inside
        a worker thread.
    """
    _check_inputs(data, window, geometry)
    if data.dtype != np.float64:
        raise ValueError(f"Slice must be float64, got {data.dtype}")
    method = int(DelayMethod.parse(method))

    shape = (geometry.lines_out, geometry.samples_out)
    if out is None:
        out = np.empty(shape, dtype=np.float64)
    elif out.shape != shape or out.dtype != np.float64:
        raise ValueError(f"Output buffer must be float64 of shape {shape}")

    window = np.ascontiguousarray(window, dtype=np.float64)
    kernel = _das_kernel_parallel if parallel else _das_kernel_serial
    kernel(
        data,
        window,
        method,
        geometry.lines_out,
        geometry.samples_out,
        geometry.part_multiplier,
        geometry.lateral_scale,
        geometry.sample_scale,
        out,
    )
    return out
