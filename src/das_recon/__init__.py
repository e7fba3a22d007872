"""
Delay-and-sum reconstruction of ultrasound / photoacoustic channel data.
"""

import logging

from das_recon.accumulate import beamform_slice, beamform_slice_reference
from das_recon.apodization import ApodizationCache, box_window, hann_window, make_window
from das_recon.config import (
    AcquisitionConfig,
    Apodization,
    DelayMethod,
    load_config,
    save_config,
)
from das_recon.delays import DelayGeometry
from das_recon.driver import DASBeamformer, DriverState, reconstruct
from das_recon.encoding import SampleEncoding, normalize_slice
from das_recon.errors import (
    BeamformingError,
    EmptyInput,
    InvalidConfiguration,
    ReconstructionCancelled,
    UnsupportedSampleEncoding,
)
from das_recon.geometry import GeometryConfigurator, OutputGeometry, compute_output_geometry
from das_recon.logging_config import disable_logging, enable_logging
from das_recon.volume import RawVolume, ReconstructedVolume

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"
