"""
Conversion of raw channel samples into the float64 buffers the kernels read.
"""

import enum
from typing import Optional

import numpy as np

from das_recon.errors import UnsupportedSampleEncoding


class SampleEncoding(enum.Enum):
    """Raw sample encodings the normalizer understands."""

    INT16 = "int16"
    FLOAT32 = "float32"
    FLOAT64 = "float64"

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(self.value)

    @classmethod
    def from_dtype(cls, dtype) -> "SampleEncoding":
        """Resolve a numpy dtype, in any byte order, to an encoding."""
        dtype = np.dtype(dtype)
        key = (dtype.kind, dtype.itemsize)
        if key == ("i", 2):
            return cls.INT16
        if key == ("f", 4):
            return cls.FLOAT32
        if key == ("f", 8):
            return cls.FLOAT64
        raise UnsupportedSampleEncoding(
            f"Unsupported sample encoding {dtype.name!r}; "
            f"expected one of {[e.value for e in cls]}"
        )


def normalize_slice(
    raw: np.ndarray,
    encoding: SampleEncoding,
    out: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Convert one raw 2-D slice to float64.

    Parameters:
    -----------
    raw : ndarray (lines, samples)
        Raw samples of one slice
    encoding : SampleEncoding
        Declared encoding of ``raw``
    out : ndarray (lines, samples), optional
        Scratch buffer owned by the caller, filled in place when a conversion
        is needed

    Returns:
    --------
    data : ndarray (lines, samples)
        float64 samples. Native float64 input is returned without a copy.
    """
    if raw.ndim != 2:
        raise ValueError(f"Expected a 2-D slice, got shape {raw.shape}")
    if SampleEncoding.from_dtype(raw.dtype) is not encoding:
        raise UnsupportedSampleEncoding(
            f"Slice is stored as {raw.dtype.name!r} but declared as {encoding.value!r}"
        )

    if encoding is SampleEncoding.FLOAT64 and raw.dtype.isnative:
        return raw

    if out is None:
        out = np.empty(raw.shape, dtype=np.float64)
    elif out.shape != raw.shape or out.dtype != np.float64:
        raise ValueError(
            f"Scratch buffer must be float64 of shape {raw.shape}, "
            f"got {out.dtype} {out.shape}"
        )
    np.copyto(out, raw, casting="safe")
    return out
