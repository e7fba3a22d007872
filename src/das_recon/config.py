"""
Acquisition parameters for a reconstruction pass.
"""

import dataclasses
import enum
import math
import numbers
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Union

import yaml

from das_recon.errors import InvalidConfiguration


class DelayMethod(enum.IntEnum):
    """Delay estimation algorithm. Integer valued so it can enter numba kernels."""

    LINEAR = 0
    QUAD_APPROX = 1
    SPHERICAL = 2

    @classmethod
    def parse(cls, value) -> "DelayMethod":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().upper().replace("-", "_")
            aliases = {"QUADRATIC": "QUAD_APPROX", "QUADRATIC_APPROX": "QUAD_APPROX",
                       "QUADAPPROX": "QUAD_APPROX"}
            key = aliases.get(key, key)
            if key in cls.__members__:
                return cls[key]
        elif isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError:
                pass
        raise InvalidConfiguration(
            f"Unknown delay method {value!r}. Must be one of {[m.name for m in cls]}"
        )


class Apodization(str, enum.Enum):
    """Window applied across the receive aperture."""

    HANN = "hann"
    BOX = "box"

    @classmethod
    def parse(cls, value) -> "Apodization":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise InvalidConfiguration(
            f"Unknown apodization {value!r}. Must be one of {[m.value for m in cls]}"
        )


_POSITIVE_FLOATS = ("pitch", "sound_speed", "record_time")
_POSITIVE_INTS = ("samples_per_line", "reconstruction_lines", "transducer_elements")


@dataclass(frozen=True)
class AcquisitionConfig:
    """Acquisition geometry and reconstruction settings."""

    # Probe / medium
    pitch: float = 0.0003  # element spacing [m]
    sound_speed: float = 1540.0  # [m/s]
    transducer_elements: int = 128

    # Acquisition window
    record_time: float = 0.00006  # [s]

    # Output grid
    samples_per_line: int = 2048
    reconstruction_lines: int = 128

    # Beamforming
    steering_angle: float = 0.0  # aperture angle [deg]
    delay_method: DelayMethod = DelayMethod.LINEAR
    apodization: Apodization = Apodization.HANN

    def __post_init__(self):
        # frozen dataclass: coerce through object.__setattr__
        object.__setattr__(self, "delay_method", DelayMethod.parse(self.delay_method))
        object.__setattr__(self, "apodization", Apodization.parse(self.apodization))

        for name in _POSITIVE_FLOATS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, numbers.Real):
                raise InvalidConfiguration(f"{name} must be a number, got {value!r}")
            if not math.isfinite(value) or value <= 0:
                raise InvalidConfiguration(f"{name} must be strictly positive, got {value!r}")
            object.__setattr__(self, name, float(value))

        for name in _POSITIVE_INTS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, numbers.Integral):
                raise InvalidConfiguration(f"{name} must be an integer, got {value!r}")
            if value < 1:
                raise InvalidConfiguration(f"{name} must be at least 1, got {value!r}")
            object.__setattr__(self, name, int(value))

        angle = self.steering_angle
        if isinstance(angle, bool) or not isinstance(angle, numbers.Real):
            raise InvalidConfiguration(f"steering_angle must be a number, got {angle!r}")
        if not math.isfinite(angle) or abs(angle) >= 90.0:
            raise InvalidConfiguration(
                f"steering_angle must lie strictly between -90 and 90 degrees, got {angle!r}"
            )
        object.__setattr__(self, "steering_angle", float(angle))

    @property
    def aperture_size(self) -> int:
        """Length of the apodization table."""
        return 2 * self.transducer_elements

    def replace(self, **changes) -> "AcquisitionConfig":
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        d = dataclasses.asdict(self)
        d["delay_method"] = self.delay_method.name.lower()
        d["apodization"] = self.apodization.value
        return d

    @classmethod
    def from_dict(cls, mapping: Mapping[str, Any]) -> "AcquisitionConfig":
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(mapping) - known)
        if unknown:
            raise InvalidConfiguration(f"Unknown configuration keys: {unknown}")
        return cls(**dict(mapping))


def load_config(path: Union[str, Path]) -> AcquisitionConfig:
    """Read an :class:`AcquisitionConfig` from a YAML file.

    The parameters may sit at the top level or under an ``acquisition`` key.
    """
    with open(path, "r", encoding="utf-8") as f:
        content = yaml.safe_load(f)
    if content is None:
        content = {}
    if not isinstance(content, dict):
        raise InvalidConfiguration(f"{path} does not contain a mapping")
    if "acquisition" in content:
        content = content["acquisition"] or {}
    return AcquisitionConfig.from_dict(content)


def save_config(config: AcquisitionConfig, path: Union[str, Path]) -> None:
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump({"acquisition": config.to_dict()}, f, sort_keys=False)
