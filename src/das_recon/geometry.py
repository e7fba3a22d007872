"""
Output extents and physical spacing derived from the acquisition geometry.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from das_recon.config import AcquisitionConfig
from das_recon.errors import InvalidConfiguration
from das_recon.volume import Extents, ReconstructedVolume, Spacing

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutputGeometry:
    extents: Extents  # (lines, samples, slices)
    spacing: Spacing  # [mm]; slice spacing is a unitless placeholder


def compute_output_geometry(config: AcquisitionConfig, slice_count: int) -> OutputGeometry:
    extents = (config.reconstruction_lines, config.samples_per_line, int(slice_count))
    if min(extents) <= 0:
        raise InvalidConfiguration(f"Output extents must be non-zero, got {extents}")

    spacing = (
        config.pitch * config.transducer_elements * 1000 / config.reconstruction_lines,
        # halved for the round trip
        config.record_time * config.sound_speed / 2 * 1000 / config.samples_per_line,
        1.0,
    )
    return OutputGeometry(extents=extents, spacing=spacing)


class GeometryConfigurator:
    """
    Computes the output geometry and allocates the output volume.

    Re-configuring with an unchanged configuration and slice count is a
    no-op: the geometry is not recomputed and the owned output volume is
    not reallocated. The volume stays owned by the configurator until
    :meth:`release` hands it over.
    """

    def __init__(self, allocate: Callable[[Extents, Spacing], ReconstructedVolume] = None):
        self._allocate = allocate or ReconstructedVolume.allocate
        self._key: Optional[Tuple[AcquisitionConfig, int]] = None
        self._geometry: Optional[OutputGeometry] = None
        self._output: Optional[ReconstructedVolume] = None

    @property
    def geometry(self) -> Optional[OutputGeometry]:
        return self._geometry

    def configure(self, config: AcquisitionConfig, slice_count: int) -> OutputGeometry:
        key = (config, int(slice_count))
        if self._geometry is not None and key == self._key:
            return self._geometry

        geometry = compute_output_geometry(config, slice_count)
        logger.debug("Output extents %s, spacing %s mm", geometry.extents, geometry.spacing)
        if self._geometry is None or geometry != self._geometry:
            self._output = None
        self._key = key
        self._geometry = geometry
        return geometry

    def output(self) -> ReconstructedVolume:
        """Output volume for the current geometry, allocated on first use."""
        if self._geometry is None:
            raise InvalidConfiguration("Output geometry has not been configured")
        if self._output is None:
            self._output = self._allocate(self._geometry.extents, self._geometry.spacing)
        return self._output

    def release(self) -> ReconstructedVolume:
        """Hand the output volume to the caller; the next request allocates a new one."""
        output = self.output()
        self._output = None
        return output

    def invalidate(self) -> None:
        self._key = None
        self._geometry = None
        self._output = None
