import math

import pytest

from moviemeta.exif_motion import (
    APPLE_ACCELERATION_KEY,
    PANASONIC_ACCELEROMETER_X,
    PANASONIC_ACCELEROMETER_Y,
    PANASONIC_ACCELEROMETER_Z,
    PANASONIC_PITCH_ANGLE,
    PANASONIC_ROLL_ANGLE,
    apple_acceleration,
    as_int16,
    panasonic_acceleration,
    panasonic_pitch_angle,
    panasonic_roll_angle,
)
from moviemeta.makernotes import CustomMakernotes


@pytest.mark.parametrize("value", [0, 1, 100, -1, -32768, 32767])
def test_as_int16_keeps_signed_values(value):
    assert as_int16(value) == value


def test_as_int16_wraps_unsigned_values():
    assert as_int16(65535) == -1
    assert as_int16(32768) == -32768


@pytest.mark.parametrize("value", [65536, -32769, 100000])
def test_as_int16_rejects_out_of_range(value):
    assert as_int16(value) is None


def test_apple_key_matches_makernote_registry():
    result = apple_acceleration([0.0, 0.0, 12.8], 0)
    assert result.key == APPLE_ACCELERATION_KEY
    assert result.key == CustomMakernotes().keys["AppleIosAccelerationVector"]


def test_apple_axis_mapping():
    assert apple_acceleration([0.0, 0.0, 12.8], 0).value == pytest.approx(-1.0)
    assert apple_acceleration([12.8, 0.0, 0.0], 1).value == pytest.approx(1.0)
    assert apple_acceleration([0.0, 12.8, 0.0], 2).value == pytest.approx(-1.0)
    # Only one source axis feeds each output axis.
    assert apple_acceleration([12.8, 12.8, 0.0], 0).value == pytest.approx(0.0)


@pytest.mark.parametrize("n", [3, -1])
def test_apple_invalid_axis(n):
    assert apple_acceleration([1.0, 2.0, 3.0], n) is None


def test_apple_short_or_missing_vector():
    assert apple_acceleration([1.0], 0) is None
    assert apple_acceleration(None, 1) is None


def test_panasonic_axis_mapping_and_keys():
    values = {
        PANASONIC_ACCELEROMETER_X: [100],
        PANASONIC_ACCELEROMETER_Y: [100],
        PANASONIC_ACCELEROMETER_Z: [100],
    }
    x = panasonic_acceleration(values, 0)
    y = panasonic_acceleration(values, 1)
    z = panasonic_acceleration(values, 2)
    assert x.key == PANASONIC_ACCELEROMETER_Y
    assert y.key == PANASONIC_ACCELEROMETER_X
    assert z.key == PANASONIC_ACCELEROMETER_Z
    assert y.value == pytest.approx(100 * 0.034795)
    assert x.value == pytest.approx(-y.value)
    assert z.value == pytest.approx(y.value)


def test_panasonic_accepts_unsigned_storage():
    signed = panasonic_acceleration({PANASONIC_ACCELEROMETER_Z: -5}, 2)
    unsigned = panasonic_acceleration({PANASONIC_ACCELEROMETER_Z: 65531}, 2)
    assert signed.value == pytest.approx(unsigned.value)
    assert signed.value < 0


def test_panasonic_missing_or_invalid():
    assert panasonic_acceleration({}, 0) is None
    assert panasonic_acceleration({PANASONIC_ACCELEROMETER_X: [70000]}, 1) is None
    assert panasonic_acceleration({PANASONIC_ACCELEROMETER_X: []}, 1) is None
    assert panasonic_acceleration({PANASONIC_ACCELEROMETER_X: [1]}, 3) is None


def test_panasonic_roll_angle():
    result = panasonic_roll_angle({PANASONIC_ROLL_ANGLE: [900]})
    assert result.key == PANASONIC_ROLL_ANGLE
    assert result.value == pytest.approx(math.pi / 2)


def test_panasonic_pitch_angle_sign_and_wrap():
    negative = panasonic_pitch_angle({PANASONIC_PITCH_ANGLE: [-1]})
    wrapped = panasonic_pitch_angle({PANASONIC_PITCH_ANGLE: [65535]})
    positive = panasonic_pitch_angle({PANASONIC_PITCH_ANGLE: [1]})
    assert negative.key == PANASONIC_PITCH_ANGLE
    assert wrapped.value == pytest.approx(negative.value)
    assert positive.value == pytest.approx(-negative.value)


def test_angles_missing():
    assert panasonic_roll_angle({}) is None
    assert panasonic_pitch_angle({PANASONIC_PITCH_ANGLE: [-40000]}) is None