"""
Raw input and reconstructed output volumes.

Both are thin wrappers around numpy arrays addressed as
``data[lateral, depth, slice]``.
"""

from typing import Optional, Tuple

import numpy as np

from das_recon.encoding import SampleEncoding
from das_recon.errors import EmptyInput

Extents = Tuple[int, int, int]
Spacing = Tuple[float, float, float]


class RawVolume:
    """Read-only raw channel data of shape (lines, samples, slices)."""

    def __init__(self, data: np.ndarray):
        data = np.asarray(data)
        if data.ndim == 2:
            data = data[:, :, None]
        if data.ndim != 3:
            raise EmptyInput(
                f"Raw volume must be 2-D or 3-D (lines, samples, slices), got shape {data.shape}"
            )
        self._data = data
        self._encoding: Optional[SampleEncoding] = None

    @property
    def data(self) -> np.ndarray:
        return self._data

    @property
    def extents(self) -> Extents:
        lines, samples, slices = self._data.shape
        return lines, samples, slices

    @property
    def slice_count(self) -> int:
        return self._data.shape[2]

    @property
    def encoding(self) -> SampleEncoding:
        """Sample encoding, resolved once for the whole volume."""
        if self._encoding is None:
            self._encoding = SampleEncoding.from_dtype(self._data.dtype)
        return self._encoding

    def get_raw_slice(self, index: int):
        """Return ``(buffer, (lines, samples), encoding)`` for one slice."""
        if not 0 <= index < self.slice_count:
            raise IndexError(f"Slice {index} out of range for {self.slice_count} slices")
        buffer = self._data[:, :, index]
        return buffer, buffer.shape, self.encoding


class ReconstructedVolume:
    """Reconstructed float64 image of shape (lines, samples, slices) with spacing in mm."""

    def __init__(self, data: np.ndarray, spacing: Spacing):
        self.data = data
        self.spacing = tuple(float(s) for s in spacing)

    @classmethod
    def allocate(cls, extents: Extents, spacing: Spacing) -> "ReconstructedVolume":
        return cls(np.zeros(extents, dtype=np.float64), spacing)

    @property
    def extents(self) -> Extents:
        lines, samples, slices = self.data.shape
        return lines, samples, slices

    def write_slice(self, index: int, buffer: np.ndarray) -> None:
        expected = self.data.shape[:2]
        if buffer.shape != expected:
            raise ValueError(f"Slice shape {buffer.shape} does not match output {expected}")
        self.data[:, :, index] = buffer

    def get_slice(self, index: int) -> np.ndarray:
        return self.data[:, :, index]
