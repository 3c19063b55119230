"""Metadata extractor that reads movie and image metadata through exiftool."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping

from moviemeta.exif_values import (
    decimal_to_dms,
    exif_byte,
    exif_rational,
    exif_short,
    exif_string,
    first_valid,
    parse_time,
    parse_uint,
)
from moviemeta.exiftool import ExifTool, ExifToolError
from moviemeta.exiftool_output import TagInfo, full_key_name
from moviemeta.makernotes import ExifData

logger = logging.getLogger(__name__)

EXIFTOOL_OPTIONS = "-u\n-U\n-n"
GRAVITY = 9.8

_SCALE_FACTOR_KEY = "Composite.Composite.Camera.ScaleFactor35efl"
_FOCAL_LENGTH_35EFL_KEY = "Composite.Composite.Camera.FocalLength35efl"


def _parse_int16(text: str) -> int:
    value = int(text.strip())
    if not -(1 << 15) <= value < (1 << 15):
        raise ValueError(f"{value} does not fit in 16 bits")
    return value


class ExiftoolMetadataExtractor:
    """Reads EXIF, QuickTime and maker note metadata of one file using exiftool.

    The tags are read lazily on first use. ``tags`` may hold already parsed tags,
    in which case exiftool is not started at all.
    """

    def __init__(
        self,
        filename: str,
        width: int,
        height: int,
        tags: Iterable[TagInfo] | None = None,
    ) -> None:
        self.filename = filename
        self.width = width
        self.height = height
        self._given_tags = None if tags is None else list(tags)
        self._data: dict[str, TagInfo] | None = None

    def name(self) -> str:
        return type(self).__name__

    def priority(self) -> int:
        return 55

    def _read_tags(self) -> list[TagInfo]:
        if self._given_tags is not None:
            return self._given_tags
        logger.debug("exiftool: Loading file %s .", self.filename)
        try:
            with ExifTool() as tool:
                tags = tool.image_info(self.filename, EXIFTOOL_OPTIONS)
                error = tool.error()
        except (ExifToolError, TimeoutError) as exc:
            logger.error("exiftool error: %s", exc)
            return []
        if error:
            logger.error("exiftool error: %s", error)
            return []
        return tags

    def load(self) -> Mapping[str, TagInfo]:
        """Read the tags (once) and return them indexed by full key and by ``*.<name>``."""
        if self._data is not None:
            return self._data
        data: dict[str, TagInfo] = {}
        for tag in self._read_tags():
            if not tag.name:
                continue
            key = full_key_name(tag)
            data[key] = tag
            data["*." + tag.name] = tag
            logger.debug("exiftool %s=%s", key, tag.value)
        self._data = data
        return data

    def _string(self, *keys: str) -> ExifData[str] | None:
        found = first_valid(self.load(), keys)
        return None if found is None else exif_string(found[1])

    def _short(self, *keys: str) -> ExifData[int] | None:
        found = first_valid(self.load(), keys)
        return None if found is None else exif_short(found[1])

    def _byte(self, *keys: str) -> ExifData[int] | None:
        found = first_valid(self.load(), keys)
        return None if found is None else exif_byte(found[1])

    def _rational(self, *keys: str) -> ExifData[float] | None:
        found = first_valid(self.load(), keys)
        return None if found is None else exif_rational(found[1])

    def _float_tag(self, key: str) -> tuple[TagInfo, float] | None:
        tag = self.load().get(key)
        if tag is None or tag.value is None:
            return None
        try:
            return tag, float(tag.value)
        except ValueError:
            return None

    # High-level values

    def creation_time(self) -> float | None:
        """Creation time in seconds since the Unix epoch."""
        key = "Composite.Composite.Time.SubSecDateTimeOriginal"
        tag = self.load().get(key)
        if tag is not None and tag.value is not None:
            try:
                result = parse_time(tag.value)
                logger.debug("Creation time read from EXIF tag %s.", key)
                return result
            except ValueError as exc:
                logger.error("Error reading image metadata: %s", exc)
        return None

    def rotation(self) -> int | None:
        """Rotation of the video in degrees."""
        key = "Composite.Composite.Video.Rotation"
        tag = self.load().get(key)
        if tag is not None and tag.value is not None:
            try:
                rotation = _parse_int16(tag.value)
                logger.debug("Image rotation %d° determined from EXIF tag %s.", rotation, key)
                return rotation
            except ValueError as exc:
                logger.error("Error reading image metadata: %s", exc)
        return None

    def crop_factor(self) -> float | None:
        """Crop factor of the sensor relative to 35 mm film."""
        tag = self.load().get(_SCALE_FACTOR_KEY)
        if tag is None or tag.value is None:
            return None
        crop_factor = float(tag.value)
        logger.debug("Crop factor %.2f was determined from %s.", crop_factor, _SCALE_FACTOR_KEY)
        return crop_factor

    def gps_latitude(self) -> float | None:
        found = self._float_tag("Composite.Composite.Location.GPSLatitude")
        if found is None:
            return None
        logger.debug("GPS latitude %.06f° has been read from Exif tag %s", found[1], full_key_name(found[0]))
        return found[1]

    def gps_longitude(self) -> float | None:
        found = self._float_tag("Composite.Composite.Location.GPSLongitude")
        if found is None:
            return None
        logger.debug("GPS longitude %.06f° has been read from Exif tag %s", found[1], full_key_name(found[0]))
        return found[1]

    def gps_altitude(self) -> float | None:
        found = self._float_tag("Composite.Composite.Location.GPSAltitude")
        if found is None:
            return None
        logger.debug("GPS altitude %.02f m.a.s.l. has been read from Exif tag %s",
                     found[1], full_key_name(found[0]))
        return found[1]

    def gps_time(self) -> float | None:
        """GPS time in seconds since the Unix epoch."""
        tag = self.load().get("Composite.Composite.Time.GPSDateTime")
        if tag is None or tag.value is None:
            return None
        try:
            result = parse_time(tag.value)
        except ValueError:
            return None
        logger.debug("GPS time %.09f has been read from Exif tag %s", result, full_key_name(tag))
        return result

    # Raw EXIF values

    def exif_make(self) -> ExifData[str] | None:
        return self._string("EXIF.IFD0.Camera.Make", "QuickTime.Keys.Camera.Make",
                            "QuickTime.QuickTime.Camera.Make")

    def exif_model(self) -> ExifData[str] | None:
        return self._string("EXIF.IFD0.Camera.Model", "QuickTime.Keys.Camera.Model",
                            "QuickTime.QuickTime.Camera.Model")

    def exif_lens_make(self) -> ExifData[str] | None:
        return self._string("EXIF.ExifIFD.Image.LensMake")

    def exif_lens_model(self) -> ExifData[str] | None:
        return self._string("Composite.Composite.Camera.LensID", "QuickTime.Keys.Audio.CameraLensModel",
                            "*.CameraLensModel", "*.LensModel", "QuickTime.QuickTime.Audio.CameraLens_model")

    def exif_body_serial_number(self) -> ExifData[str] | None:
        return self._string("*.SerialNumber", "*.InternalSerialNumber")

    def exif_lens_serial_number(self) -> ExifData[str] | None:
        return self._string("*.LensSerialNumber")

    def exif_date_time_original(self) -> ExifData[str] | None:
        return self._string("EXIF.ExifIFD.Time.DateTimeOriginal", "QuickTime.Keys.Time.CreationDate",
                            "QuickTime.QuickTime.Time.CreateDate")

    def exif_offset_time_original(self) -> ExifData[str] | None:
        return self._string("EXIF.ExifIFD.Time.OffsetTimeOriginal")

    def exif_sub_sec_time_original(self) -> ExifData[str] | None:
        return self._string("EXIF.ExifIFD.Time.OffsetTimeOriginal")

    def exif_orientation(self) -> ExifData[int] | None:
        return self._short("EXIF.IFD0.Image.Orientation")

    def exif_focal_plane_x_res(self) -> ExifData[float] | None:
        return self._rational("EXIF.ExifIFD.Camera.FocalPlaneXResolution")

    def exif_focal_plane_y_res(self) -> ExifData[float] | None:
        return self._rational("EXIF.ExifIFD.Camera.FocalPlaneYResolution")

    def exif_focal_plane_res_unit(self) -> ExifData[int] | None:
        return self._short("EXIF.ExifIFD.Camera.FocalPlaneResolutionUnit")

    def exif_res_unit(self) -> ExifData[int] | None:
        return self._short("EXIF.ExifIFD.Image.ResolutionUnit")

    def exif_focal_length_35mm(self) -> ExifData[int] | None:
        data = self.load()
        found = first_valid(data, (
            _FOCAL_LENGTH_35EFL_KEY,
            "QuickTime.Keys.Audio.CameraFocalLength35mmEquivalent",
            "QuickTime.QuickTime.Audio.CameraFocal_length35mm_equivalent",
        ))
        if found is None or found[1].value == "0":
            return None
        key, tag = found
        # exiftool sometimes copies the physical focal length here without knowing the scale factor.
        if key == _FOCAL_LENGTH_35EFL_KEY and _SCALE_FACTOR_KEY not in data:
            return None
        try:
            return ExifData(full_key_name(tag), int(float(tag.value)))
        except ValueError as exc:
            logger.error("Error reading image metadata: %s", exc)
        return None

    def exif_focal_length(self) -> ExifData[float] | None:
        return self._rational("EXIF.ExifIFD.Camera.FocalLength")

    def exif_gps_lat_ref(self) -> ExifData[str] | None:
        return self._string("EXIF.GPS.Location.GPSLatitudeRef", "Composite.Composite.Location.GPSLatitudeRef")

    def _dms(self, key: str, n: int) -> ExifData[float] | None:
        if n > 2:
            return None
        tag = self.load().get(key)
        if tag is None or tag.value is None:
            return None
        try:
            return ExifData(key, decimal_to_dms(abs(float(tag.value)), n))
        except ValueError:
            return None

    def exif_gps_lat(self, n: int) -> ExifData[float] | None:
        return self._dms("EXIF.GPS.Location.GPSLatitude", n)

    def exif_gps_lon_ref(self) -> ExifData[str] | None:
        return self._string("EXIF.GPS.Location.GPSLongitudeRef", "Composite.Composite.Location.GPSLongitudeRef")

    def exif_gps_lon(self, n: int) -> ExifData[float] | None:
        return self._dms("EXIF.GPS.Location.GPSLongitude", n)

    def exif_gps_alt_ref(self) -> ExifData[int] | None:
        return self._byte("EXIF.GPS.Location.GPSAltitudeRef", "Composite.Composite.Location.GPSAltitudeRef")

    def exif_gps_alt(self) -> ExifData[float] | None:
        return self._rational("EXIF.GPS.Location.GPSAltitude")

    def exif_gps_measure_mode(self) -> ExifData[str] | None:
        return self._string("EXIF.GPS.Location.GPSMeasureMode")

    def exif_gps_dop(self) -> ExifData[float] | None:
        return self._rational("EXIF.GPS.Location.GPSDOP")

    def exif_gps_speed_ref(self) -> ExifData[str] | None:
        return self._string("EXIF.GPS.Location.GPSSpeedRef")

    def exif_gps_speed(self) -> ExifData[float] | None:
        return self._rational("EXIF.GPS.Location.GPSSpeed")

    def exif_gps_track_ref(self) -> ExifData[str] | None:
        return self._string("EXIF.GPS.Location.GPSTrackRef")

    def exif_gps_track(self) -> ExifData[float] | None:
        return self._rational("EXIF.GPS.Location.GPSTrack")

    def exif_gps_time_stamp(self, n: int) -> ExifData[float] | None:
        if n > 2:
            return None
        key = "EXIF.GPS.Time.GPSTimeStamp"
        tag = self.load().get(key)
        if tag is None or tag.value is None:
            return None
        parts = tag.value.split(":")
        if len(parts) != 3:
            return None
        try:
            return ExifData(key, float(parse_uint(parts[n], 8)))
        except ValueError:
            return None

    def exif_gps_date_stamp(self) -> ExifData[str] | None:
        return self._string("EXIF.GPS.Time.GPSDateStamp")

    def exif_gps_differential(self) -> ExifData[int] | None:
        return self._short("EXIF.GPS.Location.GPSDifferential")

    def exif_gps_h_positioning_error(self) -> ExifData[float] | None:
        return self._rational("EXIF.GPS.Location.GPSHPositioningError",
                              "QuickTime.Keys.Audio.LocationAccuracyHorizontal", "*.LocationAccuracyHorizontal")

    def exif_gps_img_direction_ref(self) -> ExifData[str] | None:
        return self._string("EXIF.GPS.Location.GPSImgDirectionRef")

    def exif_gps_img_direction(self) -> ExifData[float] | None:
        return self._rational("EXIF.GPS.Location.GPSImgDirection")

    def exif_acceleration(self, n: int) -> ExifData[float] | None:
        """The n-th component of the acceleration vector [m/s^2] (X forward, Y left, Z up)."""
        if n > 2:
            return None
        data = self.load()
        try:
            apple = data.get("MakerNotes.Apple.Camera.AccelerationVector")
            if apple is not None:
                accels = (apple.value or "").split(" ")
                if len(accels) == 3:
                    return ExifData(full_key_name(apple), float(accels[n]) * GRAVITY)
                return None
            tag_x = data.get("*.AccelerometerX")
            tag_y = data.get("*.AccelerometerY")
            tag_z = data.get("*.AccelerometerZ")
            if tag_x is None or tag_y is None or tag_z is None:
                return None
            vector = (-float(tag_y.value), float(tag_x.value), float(tag_z.value))
            norm = math.sqrt(sum(v * v for v in vector))
            if norm == 0.0:
                return None
            source = (tag_y, tag_x, tag_z)[n]
            return ExifData(full_key_name(source), vector[n] / norm * GRAVITY)
        except (TypeError, ValueError) as exc:
            logger.error("Error reading image metadata: %s", exc)
        return None

    def _angle(self, key: str, sign: float) -> ExifData[float] | None:
        tag = self.load().get(key)
        if tag is None:
            return None
        try:
            return ExifData(full_key_name(tag), sign * float(tag.value) * math.pi / 180.0)
        except (TypeError, ValueError) as exc:
            logger.error("Error reading image metadata: %s", exc)
        return None

    def exif_roll_angle(self) -> ExifData[float] | None:
        """Roll angle [rad]."""
        return self._angle("*.RollAngle", 1.0)

    def exif_pitch_angle(self) -> ExifData[float] | None:
        """Pitch angle [rad], positive downward (exiftool reports it positive upward)."""
        return self._angle("*.PitchAngle", -1.0)


def create_extractor(filename: str, width: int, height: int) -> ExiftoolMetadataExtractor | None:
    """Create the extractor, or None if the file name or image size is missing."""
    if not filename or width == 0 or height == 0:
        return None
    return ExiftoolMetadataExtractor(filename, width, height)