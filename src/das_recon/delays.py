"""
Receive aperture and per-channel delay for the delay-and-sum kernels.

The scalar functions are numba compiled and called from the accumulation
kernel; the ``*_vec`` functions are the numpy versions used by the reference
implementation. Both evaluate the same expressions in the same order.
"""

import math
from dataclasses import dataclass

import numpy as np
from numba import njit

from das_recon.config import AcquisitionConfig, DelayMethod

LINEAR = int(DelayMethod.LINEAR)
QUAD_APPROX = int(DelayMethod.QUAD_APPROX)
SPHERICAL = int(DelayMethod.SPHERICAL)


@dataclass(frozen=True)
class DelayGeometry:
    """Constants shared by every pixel of a slice."""

    lines_in: int
    samples_in: int
    lines_out: int
    samples_out: int
    lateral_scale: float  # [m] per input line
    sample_scale: float  # input samples per [m] of depth
    part_multiplier: float  # aperture half-width per input sample of depth

    @classmethod
    def from_config(cls, config: AcquisitionConfig, lines_in: int, samples_in: int):
        tan_phi = abs(math.tan(math.radians(config.steering_angle)))
        return cls(
            lines_in=int(lines_in),
            samples_in=int(samples_in),
            lines_out=config.reconstruction_lines,
            samples_out=config.samples_per_line,
            lateral_scale=config.pitch * config.transducer_elements / lines_in,
            sample_scale=samples_in / (config.record_time * config.sound_speed),
            part_multiplier=(
                tan_phi * config.record_time / samples_in * config.sound_speed / config.pitch
            ),
        )

    @property
    def samples_per_line_step(self) -> float:
        """Delay, in input samples, of one input line of lateral offset."""
        return self.lateral_scale * self.sample_scale


# ========== Scalar (numba) versions ==========


@njit(cache=True)
def aperture_bounds(line_in, sample_in, part_multiplier, lines_in):
    """Half-open range [min_line, max_line) of input lines contributing to a pixel."""
    part = part_multiplier * sample_in
    max_line = int(math.floor(min(line_in + part + 1.0, float(lines_in))))
    min_line = int(math.floor(max(line_in - part, 0.0)))
    if max_line <= min_line:
        # degenerate aperture: the channel under the line
        min_line = min(int(math.floor(line_in)), lines_in - 1)
        max_line = min_line + 1
    return min_line, max_line


@njit(cache=True)
def apodization_index(j, width, size):
    """Window index of channel j in an aperture of `width` channels, mirrored about the centre."""
    mirrored = width - 1 - j
    if j <= mirrored:
        return int(math.floor((j + 0.5) * size / width))
    return size - 1 - int(math.floor((mirrored + 0.5) * size / width))


@njit(cache=True)
def pixel_delay_factor(method, line_in, sample_in, lines_in, lateral_scale, sample_scale):
    """Per-pixel part of the delay, computed once before the channel loop."""
    k = lateral_scale * sample_scale
    if method == LINEAR:
        l = (lines_in / 2.0 - line_in) * lateral_scale
        x = sample_in / sample_scale
        denom = math.sqrt(l * l + x * x)
        if denom > 0.0:
            return l / denom * k
        return 0.0
    if method == QUAD_APPROX:
        if sample_in > 0.0:
            return k * k / sample_in
        return math.inf
    return k


@njit(cache=True)
def delay_offset(method, d, factor, sample_in):
    """AddSample for a channel `d` input lines away from the pixel."""
    if method == LINEAR:
        return factor * d
    if method == QUAD_APPROX:
        if d == 0.0:
            return 0.0
        return factor * (d * d)
    kd = factor * d
    return math.sqrt(sample_in * sample_in + kd * kd) - sample_in


# ========== Vectorized (numpy) versions ==========


def aperture_bounds_vec(line_in, sample_in, part_multiplier, lines_in):
    part = part_multiplier * sample_in
    max_line = np.floor(np.minimum(line_in + part + 1.0, float(lines_in))).astype(np.int64)
    min_line = np.floor(np.maximum(line_in - part, 0.0)).astype(np.int64)
    degenerate = max_line <= min_line
    fallback = np.minimum(np.floor(line_in).astype(np.int64), lines_in - 1)
    min_line = np.where(degenerate, fallback, min_line)
    max_line = np.where(degenerate, fallback + 1, max_line)
    return min_line, max_line


def apodization_index_vec(j, width, size):
    mirrored = width - 1 - j
    left = j <= mirrored
    base = np.floor((np.where(left, j, mirrored) + 0.5) * size / width).astype(np.int64)
    return np.where(left, base, size - 1 - base)


def pixel_delay_factor_vec(method, line_in, sample_in, lines_in, lateral_scale, sample_scale):
    k = lateral_scale * sample_scale
    line_in, sample_in = np.broadcast_arrays(
        np.asarray(line_in, dtype=np.float64), np.asarray(sample_in, dtype=np.float64)
    )
    if method == LINEAR:
        l = (lines_in / 2.0 - line_in) * lateral_scale
        x = sample_in / sample_scale
        denom = np.sqrt(l * l + x * x)
        with np.errstate(divide="ignore", invalid="ignore"):
            return np.where(denom > 0.0, l / denom * k, 0.0)
    if method == QUAD_APPROX:
        with np.errstate(divide="ignore"):
            return np.where(sample_in > 0.0, k * k / sample_in, np.inf)
    return np.full(line_in.shape, k)


def delay_offset_vec(method, d, factor, sample_in):
    if method == LINEAR:
        return factor * d
    if method == QUAD_APPROX:
        with np.errstate(invalid="ignore"):
            return np.where(d == 0.0, 0.0, factor * (d * d))
    kd = factor * d
    return np.sqrt(sample_in * sample_in + kd * kd) - sample_in
