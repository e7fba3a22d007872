"""
Exception types raised by the reconstruction engine.

Every error aborts the reconstruction request as a whole; nothing is retried
and no partially reconstructed volume is handed back.
"""


class BeamformingError(Exception):
    """Base class for all reconstruction errors."""


class InvalidConfiguration(BeamformingError, ValueError):
    """Non-positive geometry parameter, zero output extent or aperture < 2."""


class UnsupportedSampleEncoding(BeamformingError, TypeError):
    """Raw samples are stored in an encoding the normalizer cannot read."""


class EmptyInput(BeamformingError, ValueError):
    """The raw volume has no slices or a zero extent."""


class ReconstructionCancelled(BeamformingError):
    """The request was cancelled between two slices."""
