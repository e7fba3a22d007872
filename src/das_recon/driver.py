"""
Slice-by-slice delay-and-sum reconstruction of a raw volume.
"""

import enum
import logging
import threading
import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Callable, Optional, Union

import numpy as np
from tqdm import tqdm

from das_recon.accumulate import beamform_slice
from das_recon.apodization import ApodizationCache
from das_recon.config import AcquisitionConfig
from das_recon.delays import DelayGeometry
from das_recon.encoding import SampleEncoding, normalize_slice
from das_recon.errors import (
    EmptyInput,
    InvalidConfiguration,
    ReconstructionCancelled,
)
from das_recon.geometry import GeometryConfigurator
from das_recon.volume import Extents, RawVolume, ReconstructedVolume, Spacing

logger = logging.getLogger(__name__)


class DriverState(enum.Enum):
    IDLE = "idle"
    CONFIGURING_GEOMETRY = "configuring_geometry"
    PROCESSING_SLICE = "processing_slice"
    DONE = "done"
    FAILED = "failed"


class DASBeamformer:
    """
    Delay-and-sum beamformer over a 3-D raw volume.

    Parameters:
    -----------
    config : AcquisitionConfig, optional
        Initial configuration; can be replaced with :meth:`configure`
    workers : int
        Number of slices reconstructed concurrently. With 1 worker slices run
        in order and each slice is parallelized over output lines instead.
    allocate : callable, optional
        ``allocate(extents, spacing) -> ReconstructedVolume`` used for the
        output volume
    progress : bool
        Show a progress bar over slices
    """

    def __init__(
        self,
        config: Optional[AcquisitionConfig] = None,
        workers: int = 1,
        allocate: Optional[Callable[[Extents, Spacing], ReconstructedVolume]] = None,
        progress: bool = False,
    ):
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")
        self.workers = workers
        self.progress = progress

        self._config = config
        self._apodization = ApodizationCache()
        self._geometry = GeometryConfigurator(allocate)
        self._cancel = threading.Event()
        self._state = DriverState.IDLE

    @property
    def config(self) -> Optional[AcquisitionConfig]:
        return self._config

    @property
    def state(self) -> DriverState:
        return self._state

    def configure(self, config: AcquisitionConfig) -> None:
        """Set or replace the configuration used by the next reconstruction."""
        if not isinstance(config, AcquisitionConfig):
            raise InvalidConfiguration(f"Expected AcquisitionConfig, got {type(config).__name__}")
        previous = self._config
        self._config = config
        if previous is not None and previous.aperture_size != config.aperture_size:
            self._apodization.invalidate()

    def cancel(self) -> None:
        """
        Stop the running reconstruction before its next slice.

        Called while idle, the next reconstruction is cancelled before its
        first slice.
        """
        self._cancel.set()

    def reconstruct(self, volume: Union[RawVolume, np.ndarray]) -> ReconstructedVolume:
        """
        Reconstruct every slice of ``volume``.

        Either all slices are reconstructed and the output volume is returned,
        or an error is raised and nothing is handed over.
        """
        if not isinstance(volume, RawVolume):
            volume = RawVolume(volume)

        self._state = DriverState.CONFIGURING_GEOMETRY
        start = time.perf_counter()
        try:
            config = self._config
            if config is None:
                raise InvalidConfiguration("No acquisition configuration set")

            lines_in, samples_in, slice_count = volume.extents
            if min(lines_in, samples_in, slice_count) == 0:
                raise EmptyInput(f"Raw volume has a zero extent: {volume.extents}")

            encoding = volume.encoding

            self._geometry.configure(config, slice_count)
            window = self._apodization.get(config)
            delays = DelayGeometry.from_config(config, lines_in, samples_in)
            output = self._geometry.output()

            self._state = DriverState.PROCESSING_SLICE
            if self.workers == 1 or slice_count == 1:
                self._run_sequential(volume, output, encoding, window, delays, config)
            else:
                self._run_parallel(volume, output, encoding, window, delays, config)
        except BaseException:
            self._state = DriverState.FAILED
            raise
        finally:
            # a pending cancel is consumed by this run
            self._cancel.clear()

        self._state = DriverState.DONE
        logger.info(
            "DAS beamforming of %d slices completed in %.1f ms",
            slice_count,
            (time.perf_counter() - start) * 1000,
        )
        return self._geometry.release()

    def _check_cancelled(self) -> None:
        if self._cancel.is_set():
            raise ReconstructionCancelled("Reconstruction cancelled")

    def _reconstruct_slice(self, volume, index, encoding, window, delays, config, parallel):
        # Scratch buffers live for one slice only
        raw, _, _ = volume.get_raw_slice(index)
        scratch = None if encoding is SampleEncoding.FLOAT64 else np.empty(raw.shape)
        data = normalize_slice(raw, encoding, out=scratch)
        return beamform_slice(data, window, delays, config.delay_method, parallel=parallel)

    def _run_sequential(self, volume, output, encoding, window, delays, config):
        indices = range(volume.slice_count)
        if self.progress:
            indices = tqdm(indices, desc="Beamforming", unit="slice")
        for index in indices:
            self._check_cancelled()
            img = self._reconstruct_slice(volume, index, encoding, window, delays, config, True)
            output.write_slice(index, img)

    def _run_parallel(self, volume, output, encoding, window, delays, config):
        def task(index):
            self._check_cancelled()
            img = self._reconstruct_slice(volume, index, encoding, window, delays, config, False)
            self._check_cancelled()
            output.write_slice(index, img)
            return index

        bar = None
        if self.progress:
            bar = tqdm(total=volume.slice_count, desc="Beamforming", unit="slice")
        try:
            with ThreadPoolExecutor(max_workers=self.workers) as executor:
                futures = [executor.submit(task, i) for i in range(volume.slice_count)]
                pending = set(futures)
                while pending:
                    done, pending = wait(pending, return_when=FIRST_EXCEPTION)
                    if bar is not None:
                        bar.update(len(done))
                    errors = [f.exception() for f in done if f.exception() is not None]
                    if errors:
                        # stop the remaining slices, then surface the root cause
                        self._cancel.set()
                        for f in pending:
                            f.cancel()
                        errors.sort(key=lambda e: isinstance(e, ReconstructionCancelled))
                        raise errors[0]
        finally:
            if bar is not None:
                bar.close()


def reconstruct(
    volume: Union[RawVolume, np.ndarray],
    config: Optional[AcquisitionConfig] = None,
    **kwargs,
) -> ReconstructedVolume:
    """Reconstruct ``volume`` with a one-off :class:`DASBeamformer`."""
    beamformer = DASBeamformer(config if config is not None else AcquisitionConfig(), **kwargs)
    return beamformer.reconstruct(volume)
