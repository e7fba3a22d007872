"""
Apodization windows over the receive aperture.
"""

import logging
import threading
from typing import Optional, Tuple

import numpy as np

from das_recon.config import AcquisitionConfig, Apodization
from das_recon.errors import InvalidConfiguration

logger = logging.getLogger(__name__)


def hann_window(size: int) -> np.ndarray:
    """
    Raised-cosine window w[n] = (1 - cos(2 pi n / (N - 1))) / 2, n in [0, N).

    Exactly symmetric: w[0] = w[N-1] = 0 and the peak sits at w[(N-1)//2].
    """
    if size < 2:
        raise InvalidConfiguration(f"Apodization window needs at least 2 weights, got {size}")
    return np.hanning(size).astype(np.float64)


def box_window(size: int) -> np.ndarray:
    if size < 2:
        raise InvalidConfiguration(f"Apodization window needs at least 2 weights, got {size}")
    return np.ones(size, dtype=np.float64)


def make_window(kind: Apodization, size: int) -> np.ndarray:
    """Read-only window table of the given kind."""
    kind = Apodization.parse(kind)
    if kind is Apodization.HANN:
        window = hann_window(size)
    else:
        window = box_window(size)
    window.setflags(write=False)
    return window


class ApodizationCache:
    """Holds the window for the current aperture, rebuilt only when it changes."""

    def __init__(self):
        self._key: Optional[Tuple[Apodization, int]] = None
        self._window: Optional[np.ndarray] = None
        self._lock = threading.Lock()

    def get(self, config: AcquisitionConfig) -> np.ndarray:
        key = (config.apodization, config.aperture_size)
        with self._lock:
            if self._window is None or key != self._key:
                logger.debug("Computing %s apodization table of size %d", key[0].value, key[1])
                self._window = make_window(*key)
                self._key = key
            return self._window

    def invalidate(self) -> None:
        with self._lock:
            self._key = None
            self._window = None
