"""Camera motion values (acceleration, roll, pitch) decoded from maker note tags.

Apple stores the acceleration vector in its custom maker note in units of roughly
12.8 per g, with X to the left, Y down and Z towards the user when the phone is
upright. Panasonic stores raw accelerometer readings with X to the left, Y towards
the user and Z up, and roll and pitch angles in tenths of a degree. All results are
expressed in a frame with X forward, Y left and Z up; angles are in radians.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence

from moviemeta.makernotes import ExifData

APPLE_ACCELERATION_KEY = "Exif.MakerNote.AppleIosAccelerationVector"
APPLE_ACCELERATION_SCALE = 1.0 / 12.8

PANASONIC_ACCELEROMETER_X = "Exif.Panasonic.AccelerometerX"
PANASONIC_ACCELEROMETER_Y = "Exif.Panasonic.AccelerometerY"
PANASONIC_ACCELEROMETER_Z = "Exif.Panasonic.AccelerometerZ"
PANASONIC_ROLL_ANGLE = "Exif.Panasonic.RollAngle"
PANASONIC_PITCH_ANGLE = "Exif.Panasonic.PitchAngle"
PANASONIC_ACCELERATION_SCALE = 0.034795

_INT16_MIN = -(1 << 15)
_UINT16_MAX = (1 << 16) - 1

# Output axis -> (source axis index, scale) for the Apple acceleration vector.
_APPLE_AXES = (
    (2, -APPLE_ACCELERATION_SCALE),
    (0, APPLE_ACCELERATION_SCALE),
    (1, -APPLE_ACCELERATION_SCALE),
)

# Output axis -> (source key, scale) for the Panasonic accelerometer.
_PANASONIC_AXES = (
    (PANASONIC_ACCELEROMETER_Y, -PANASONIC_ACCELERATION_SCALE),
    (PANASONIC_ACCELEROMETER_X, PANASONIC_ACCELERATION_SCALE),
    (PANASONIC_ACCELEROMETER_Z, PANASONIC_ACCELERATION_SCALE),
)

TagValues = Mapping[str, "int | Sequence[int]"]


def as_int16(value: int) -> int | None:
    """Interpret a value as a signed 16-bit integer.

    Both signed values and signed values stored as unsigned 16-bit ones are
    accepted; anything outside [-32768, 65535] gives None.
    """
    if value < _INT16_MIN or value > _UINT16_MAX:
        return None
    value &= _UINT16_MAX
    return value - (1 << 16) if value > 0x7FFF else value


def _int16_component(values: TagValues, key: str, n: int = 0) -> int | None:
    raw = values.get(key)
    if raw is None:
        return None
    items = (raw,) if isinstance(raw, int) else tuple(raw)
    if n >= len(items):
        return None
    return as_int16(int(items[n]))


def apple_acceleration(vector: Sequence[float] | None, n: int) -> ExifData[float] | None:
    """Return the n-th acceleration component [m/s^2] from the Apple acceleration vector."""
    if vector is None or not 0 <= n <= 2:
        return None
    axis, scale = _APPLE_AXES[n]
    if axis >= len(vector):
        return None
    return ExifData(APPLE_ACCELERATION_KEY, scale * float(vector[axis]))


def panasonic_acceleration(values: TagValues, n: int) -> ExifData[float] | None:
    """Return the n-th acceleration component [m/s^2] from Panasonic accelerometer tags."""
    if not 0 <= n <= 2:
        return None
    key, scale = _PANASONIC_AXES[n]
    accel = _int16_component(values, key)
    if accel is None:
        return None
    return ExifData(key, scale * accel)


def _panasonic_angle(values: TagValues, key: str) -> ExifData[float] | None:
    raw = _int16_component(values, key)
    if raw is None:
        return None
    degrees = raw / 10.0
    return ExifData(key, degrees / 180.0 * math.pi)


def panasonic_roll_angle(values: TagValues) -> ExifData[float] | None:
    """Return the roll angle [rad] stored by Panasonic cameras."""
    return _panasonic_angle(values, PANASONIC_ROLL_ANGLE)


def panasonic_pitch_angle(values: TagValues) -> ExifData[float] | None:
    """Return the pitch angle [rad] stored by Panasonic cameras."""
    return _panasonic_angle(values, PANASONIC_PITCH_ANGLE)