"""Lazy loading of camera calibrations addressed by URLs with substitution variables.

A calibration URL may use the ``file://``, ``package://`` or ``flash://`` scheme and
may contain the substitution variables ``${NAME}``, ``${ROS_HOME}`` and
``${FOCAL_LENGTH}`` (optionally ``${FOCAL_LENGTH:<printf format>}``).
"""

from __future__ import annotations

import copy
import enum
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CAMERA_INFO_URL = "file://${ROS_HOME}/camera_info/${NAME}.yaml"
DEFAULT_FOCAL_LENGTH_FORMAT = "%0.01fmm"

_FILE_PREFIX = "file://"
_FLASH_PREFIX = "flash://"
_PACKAGE_PREFIX = "package://"


@dataclass
class RegionOfInterest:
    """Region of the full sensor image that the camera info applies to."""

    x_offset: int = 0
    y_offset: int = 0
    height: int = 0
    width: int = 0
    do_rectify: bool = False


@dataclass
class CameraInfo:
    """Intrinsic calibration of a camera."""

    frame_id: str = ""
    stamp: float = 0.0
    height: int = 0
    width: int = 0
    distortion_model: str = ""
    D: list[float] = field(default_factory=list)
    K: list[float] = field(default_factory=lambda: [0.0] * 9)
    R: list[float] = field(default_factory=lambda: [0.0] * 9)
    P: list[float] = field(default_factory=lambda: [0.0] * 12)
    binning_x: int = 0
    binning_y: int = 0
    roi: RegionOfInterest = field(default_factory=RegionOfInterest)


class UrlType(enum.IntEnum):
    """Recognized calibration URL kinds; everything from INVALID on is unsupported."""

    EMPTY = 0
    FILE = 1
    PACKAGE = 2
    INVALID = 3
    FLASH = 4


def _read_matrix(doc: dict, key: str, rows: int | None, cols: int | None) -> list[float]:
    try:
        entry = doc[key]
        n_rows = int(entry["rows"])
        n_cols = int(entry["cols"])
        data = [float(v) for v in entry["data"]]
    except (KeyError, TypeError) as exc:
        raise ValueError(f"malformed or missing '{key}' in calibration file") from exc
    if (rows is not None and n_rows != rows) or (cols is not None and n_cols != cols):
        raise ValueError(f"'{key}' has shape {n_rows}x{n_cols}, expected {rows}x{cols}")
    if len(data) != n_rows * n_cols:
        raise ValueError(f"'{key}' holds {len(data)} values, expected {n_rows * n_cols}")
    return data


def read_calibration(filename: str | os.PathLike) -> tuple[str, CameraInfo]:
    """Read a YAML calibration file and return the camera name and its calibration.

    Raises OSError if the file cannot be read and ValueError if it is not a valid
    calibration file.
    """
    path = Path(filename)
    if path.suffix.lower() not in (".yaml", ".yml"):
        raise ValueError(f"unsupported calibration file format: {path}")
    with path.open("r", encoding="utf-8") as stream:
        try:
            doc = yaml.safe_load(stream)
        except yaml.YAMLError as exc:
            raise ValueError(f"cannot parse calibration file {path}: {exc}") from exc
    if not isinstance(doc, dict):
        raise ValueError(f"calibration file {path} does not hold a mapping")

    try:
        width = int(doc["image_width"])
        height = int(doc["image_height"])
    except (KeyError, TypeError, ValueError) as exc:
        raise ValueError(f"calibration file {path} lacks valid image dimensions") from exc

    identity = [1.0, 0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 1.0]
    info = CameraInfo(
        width=width,
        height=height,
        K=_read_matrix(doc, "camera_matrix", 3, 3),
        D=_read_matrix(doc, "distortion_coefficients", 1, None),
        R=_read_matrix(doc, "rectification_matrix", 3, 3) if "rectification_matrix" in doc else identity,
        P=_read_matrix(doc, "projection_matrix", 3, 4),
        distortion_model=str(doc.get("distortion_model", "plumb_bob")),
    )
    name = doc.get("camera_name", "")
    return ("" if name is None else str(name)), info


def _ros_home() -> str:
    if (ros_home := os.environ.get("ROS_HOME")) is not None:
        return ros_home
    if (home := os.environ.get("HOME")) is not None:
        return home + "/.ros"
    return ""


def _format_focal_length(fmt: str, focal_length: float) -> str:
    try:
        return fmt % focal_length
    except (TypeError, ValueError) as exc:
        raise ValueError(f"invalid focal length format {fmt!r}") from exc


def resolve_url(url: str, camera_name: str, focal_length: float | None) -> str:
    """Substitute ``${NAME}``, ``${ROS_HOME}`` and ``${FOCAL_LENGTH}`` in a URL.

    Resolution is a single pass; unknown variables are kept literally and logged.
    """
    resolved: list[str] = []
    rest = 0
    while True:
        dollar = url.find("$", rest)
        if dollar < 0:
            resolved.append(url[rest:])
            break

        resolved.append(url[rest:dollar])
        after = url[dollar + 1:]

        if not after.startswith("{"):
            resolved.append("$")
        elif after.startswith("{NAME}"):
            resolved.append(camera_name)
            dollar += 6
        elif after.startswith("{ROS_HOME}"):
            resolved.append(_ros_home())
            dollar += 10
        elif after.startswith("{FOCAL_LENGTH"):
            end = url.find("}", dollar + 14)
            if end < 0:
                # No closing brace: copy the remainder unchanged and stop.
                resolved.append(url[rest:])
                break
            fmt = url[dollar + 14:end]
            fmt = DEFAULT_FOCAL_LENGTH_FORMAT if not fmt else fmt[1:]
            if focal_length is not None:
                resolved.append(_format_focal_length(fmt, focal_length))
            dollar = end
        else:
            logger.error("invalid URL substitution (not resolved): %s", url)
            resolved.append("$")

        rest = dollar + 1

    return "".join(resolved)


def parse_url(url: str) -> UrlType:
    """Classify a (resolved) calibration URL."""
    if url == "":
        return UrlType.EMPTY
    lowered = url.lower()
    if lowered.startswith(_FILE_PREFIX):
        return UrlType.FILE
    if lowered.startswith(_FLASH_PREFIX):
        return UrlType.FLASH
    if lowered.startswith(_PACKAGE_PREFIX):
        prefix_len = len(_PACKAGE_PREFIX)
        slash = url.find("/", prefix_len)
        if prefix_len < slash < len(url) - 1:
            return UrlType.PACKAGE
    return UrlType.INVALID


def validate_url(url: str) -> bool:
    """Return whether the URL syntax is supported (the resource need not exist)."""
    return parse_url(url) < UrlType.INVALID


def _package_path(package: str) -> str:
    """Locate a package directory on ``ROS_PACKAGE_PATH``; empty string if unknown."""
    for entry in os.environ.get("ROS_PACKAGE_PATH", "").split(os.pathsep):
        if not entry:
            continue
        root = Path(entry)
        if root.name == package and (root / "package.xml").is_file():
            return str(root)
        candidate = root / package
        if (candidate / "package.xml").is_file():
            return str(candidate)
    return ""


def _valid_camera_name(name: str) -> bool:
    return all((c.isascii() and c.isalnum()) or c == "_" for c in name)


class CameraInfoManager:
    """Provides the calibration of one camera, loaded lazily from a calibration URL."""

    def __init__(self, camera_name: str = "camera", url: str = "") -> None:
        self._camera_name = camera_name
        self.url = url
        self._focal_length: float | None = None
        self._cam_info = CameraInfo()
        self._loaded = False

    @property
    def camera_name(self) -> str:
        return self._camera_name

    @property
    def focal_length(self) -> float | None:
        return self._focal_length

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self._loaded = True
            self.load_calibration(self.url, self._camera_name, self._focal_length)

    def camera_info(self) -> CameraInfo:
        """Load (if needed) and return the calibration of the current camera."""
        self._ensure_loaded()
        return copy.deepcopy(self._cam_info)

    def is_calibrated(self) -> bool:
        """Return whether a nonzero calibration is available for the current camera."""
        self._ensure_loaded()
        return self._cam_info.K[0] != 0.0

    def _reset(self) -> None:
        self._loaded = False
        self._cam_info = CameraInfo()

    def set_camera_name(self, camera_name: str) -> None:
        """Change the camera name; only letters, digits and '_' are allowed."""
        if not camera_name:
            raise ValueError("camera name must not be empty")
        if camera_name == self._camera_name:
            return
        if not _valid_camera_name(camera_name):
            raise ValueError(f"invalid camera name: {camera_name!r}")
        self._camera_name = camera_name
        self._reset()

    def set_focal_length(self, focal_length: float) -> None:
        """Change the focal length [mm]; it must be positive."""
        if focal_length <= 0:
            raise ValueError(f"focal length must be positive, got {focal_length}")
        if self._focal_length is not None and self._focal_length == focal_length:
            return
        self._focal_length = focal_length
        self._reset()

    def _package_file_name(self, url: str) -> str:
        prefix_len = len(_PACKAGE_PREFIX)
        slash = url.find("/", prefix_len)
        package = url[prefix_len:slash]
        pkg_path = _package_path(package)
        if not pkg_path:
            logger.warning("unknown package: %s (ignored)", package)
            return ""
        return pkg_path + url[slash:]

    def load_calibration(self, url: str, camera_name: str, focal_length: float | None) -> bool:
        """Load the calibration the URL points to; return whether it was found."""
        resolved = resolve_url(url, camera_name, focal_length)
        url_type = parse_url(resolved)
        if url_type != UrlType.EMPTY:
            logger.debug("camera calibration URL: %s", resolved)

        if url_type == UrlType.EMPTY:
            logger.debug("using default calibration URL")
            return self.load_calibration(DEFAULT_CAMERA_INFO_URL, camera_name, focal_length)
        if url_type == UrlType.FILE:
            return self.load_calibration_file(resolved[len(_FILE_PREFIX):], camera_name)
        if url_type == UrlType.FLASH:
            return self.load_calibration_flash(resolved[len(_FLASH_PREFIX):], camera_name)
        if url_type == UrlType.PACKAGE:
            filename = self._package_file_name(resolved)
            return bool(filename) and self.load_calibration_file(filename, camera_name)
        logger.error("Invalid camera calibration URL: %s", resolved)
        return False

    def load_calibration_file(self, filename: str, camera_name: str) -> bool:
        """Load the calibration from a file; return whether it was found and valid."""
        logger.debug("reading camera calibration from %s", filename)
        try:
            file_camera_name, info = read_calibration(filename)
        except (OSError, ValueError) as exc:
            logger.debug("Camera calibration file %s not found or invalid: %s", filename, exc)
            return False
        if camera_name != file_camera_name:
            logger.warning("[%s] does not match name [%s] in file %s", camera_name, file_camera_name, filename)
        self._cam_info = info
        return True

    def load_calibration_flash(self, flash_url: str, camera_name: str) -> bool:
        """Reading calibration from camera flash is not supported here; subclasses may override."""
        logger.warning("reading from flash is not supported by this CameraInfoManager")
        return False