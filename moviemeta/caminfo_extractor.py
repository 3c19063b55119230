"""Metadata extractor that matches stored camera calibrations to a camera and lens."""

from __future__ import annotations

import contextlib
import copy
import logging
import re
import weakref
from collections.abc import Iterable, Mapping
from typing import Any, Protocol

from moviemeta.camera_info_manager import CameraInfo, CameraInfoManager, validate_url

logger = logging.getLogger(__name__)

DEFAULT_CALIBRATION_URLS: tuple[str, ...] = (
    "",
    "file://${ROS_HOME}/camera_info/${NAME}-${FOCAL_LENGTH:%0.01fmm}.yaml",
)

_INVALID_NAME_CHARS = re.compile(r"[^A-Za-z0-9_]")


class MetadataSource(Protocol):
    """What the extractor needs to know about the movie from other extractors."""

    def focal_length_mm(self) -> float | None: ...

    def camera_unique_name(self) -> str | None: ...


def to_valid_ros_name(name: str) -> str:
    """Turn an arbitrary text into a valid ROS base name.

    Characters other than letters, digits and '_' become '_'. Raises ValueError if
    the result is empty or does not start with a letter.
    """
    result = _INVALID_NAME_CHARS.sub("_", name)
    if not result or not (result[0].isascii() and result[0].isalpha()):
        raise ValueError(f"cannot convert {name!r} to a valid ROS name")
    return result


class CamInfoManagerMetadataExtractor:
    """Searches calibration URLs in order for camera info matching the movie.

    The calibration is looked up by the camera's unique name and focal length, and
    only accepted if its image dimensions match the movie.
    """

    def __init__(
        self,
        manager: MetadataSource,
        width: int,
        height: int,
        calibration_urls: Iterable[str],
    ) -> None:
        self._manager = weakref.ref(manager)
        self.width = width
        self.height = height
        self.calibration_urls = list(calibration_urls)
        self._camera_info_managers: list[CameraInfoManager] = []
        self._cache: dict[float, CameraInfo | None] = {}

        for url in self.calibration_urls:
            if validate_url(url):
                self._camera_info_managers.append(CameraInfoManager("", url))
            else:
                logger.warning("Camera calibration URL %s is not valid or supported.", url)

    def name(self) -> str:
        return type(self).__name__

    def priority(self) -> int:
        return 70

    def camera_info(self) -> CameraInfo | None:
        """Find the camera info for the current movie, or None if there is none."""
        manager = self._manager()
        if manager is None:
            return None

        focal_length = manager.focal_length_mm()
        if focal_length is None:
            return None

        if focal_length in self._cache:
            return copy.deepcopy(self._cache[focal_length])

        unique_name = manager.camera_unique_name()
        if unique_name is None:
            return None

        try:
            camera_name = to_valid_ros_name(unique_name)
        except ValueError:
            self._cache[focal_length] = None
            return None

        logger.debug("Loading calibrations for camera %s .", camera_name)
        for info_manager in self._camera_info_managers:
            with contextlib.suppress(ValueError):
                info_manager.set_camera_name(camera_name)
            with contextlib.suppress(ValueError):
                info_manager.set_focal_length(focal_length)
            if not info_manager.is_calibrated():
                continue
            info = info_manager.camera_info()
            if info.width == self.width and info.height == self.height:
                self._cache[focal_length] = info
                return copy.deepcopy(info)
            logger.debug("Skipping camera calibration because it has wrong image dimensions.")

        self._cache[focal_length] = None
        return None

    def intrinsic_matrix(self) -> list[float] | None:
        """Return the 3x3 intrinsic matrix (row-major) from stored camera info."""
        info = self.camera_info()
        if info is None:
            return None
        logger.debug("Camera intrinsics have been read from stored camera info.")
        return info.K

    def distortion(self) -> tuple[str, list[float]] | None:
        """Return the distortion model and coefficients from stored camera info."""
        info = self.camera_info()
        if info is None:
            return None
        logger.debug("Camera distortion parameters have been read from stored camera info.")
        return info.distortion_model, info.D


def create_extractor(
    manager: MetadataSource | None,
    width: int,
    height: int,
    params: Mapping[str, Any] | None,
) -> CamInfoManagerMetadataExtractor | None:
    """Create the extractor, reading ``caminfo_manager.calibration_urls`` from params."""
    if manager is None or params is None:
        return None

    calibration_urls = list(DEFAULT_CALIBRATION_URLS)
    namespace = params.get("caminfo_manager")
    if isinstance(namespace, Mapping):
        calibration_urls = list(namespace.get("calibration_urls", DEFAULT_CALIBRATION_URLS))

    return CamInfoManagerMetadataExtractor(manager, width, height, calibration_urls)