import gc
from dataclasses import dataclass

import pytest
import yaml

from moviemeta.caminfo_extractor import (
    DEFAULT_CALIBRATION_URLS,
    CamInfoManagerMetadataExtractor,
    create_extractor,
    to_valid_ros_name,
)

K = [907.5058667024193, 0.0, 1023.674064941674, 0.0, 910.4449275805216, 818.9322168491329, 0.0, 0.0, 1.0]
D = [0.0168137, -0.00191267, 0.0, 0.0, 0.0408514, 0.00559995, -0.000484464, 0.0399399]
R = [1.0, 0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 1.0]
P = [521.3358764648438, 0.0, 1026.724493594556, 0.0, 0.0, 650.6087036132812, 862.4682443669153, 0.0,
     0.0, 0.0, 1.0, 0.0]

LUMIX_NAME = "Panasonic_DMC_GX80_SN0000"


@dataclass
class FakeManager:
    unique_name: str | None
    focal: float | None

    def focal_length_mm(self):
        return self.focal

    def camera_unique_name(self):
        return self.unique_name


def write_calibration(path, name, width, height):
    doc = {
        "image_width": width,
        "image_height": height,
        "camera_name": name,
        "camera_matrix": {"rows": 3, "cols": 3, "data": K},
        "distortion_model": "rational_polynomial",
        "distortion_coefficients": {"rows": 1, "cols": 8, "data": D},
        "rectification_matrix": {"rows": 3, "cols": 3, "data": R},
        "projection_matrix": {"rows": 3, "cols": 4, "data": P},
    }
    path.write_text(yaml.safe_dump(doc), encoding="utf-8")


@pytest.fixture
def calib_dir(tmp_path):
    write_calibration(tmp_path / f"{LUMIX_NAME}-30.0mm.yaml", LUMIX_NAME, 4592, 3448)
    write_calibration(tmp_path / f"{LUMIX_NAME}.yaml", LUMIX_NAME, 4592, 3448)
    return tmp_path


def make_extractor(directory, manager, width, height):
    prefix = "file://" + str(directory)
    return CamInfoManagerMetadataExtractor(
        manager, width, height, [prefix + "/${NAME}-${FOCAL_LENGTH}.yaml", prefix + "/${NAME}.yaml"]
    )


def test_fairphone_still(calib_dir):
    manager = FakeManager("Fairphone FP4", 5.58)
    e = make_extractor(calib_dir, manager, 4000, 3000)
    assert e.intrinsic_matrix() is None
    assert e.distortion() is None


def test_fairphone_movie(calib_dir):
    manager = FakeManager("Fairphone FP4", None)
    e = make_extractor(calib_dir, manager, 1920, 1080)
    assert e.intrinsic_matrix() is None
    assert e.distortion() is None


def test_lumix_still(calib_dir):
    manager = FakeManager("Panasonic DMC-GX80 SN0000", 30.0)
    e = make_extractor(calib_dir, manager, 4592, 3448)
    matrix = e.intrinsic_matrix()
    assert matrix == pytest.approx(K, abs=1e-6)
    model, coeffs = e.distortion()
    assert model == "rational_polynomial"
    assert len(coeffs) == 8
    assert coeffs == pytest.approx(D, abs=1e-6)


def test_lumix_movie_wrong_dimensions(calib_dir):
    manager = FakeManager("Panasonic DMC-GX80 SN0000", 28.0)
    e = make_extractor(calib_dir, manager, 1920, 1080)
    assert e.intrinsic_matrix() is None
    assert e.distortion() is None


def test_ffmpeg_processed(calib_dir):
    manager = FakeManager(None, None)
    e = make_extractor(calib_dir, manager, 1920, 1080)
    assert e.intrinsic_matrix() is None
    assert e.distortion() is None


def test_iphone_still(calib_dir):
    manager = FakeManager("Apple iPhone 12 mini", 4.2)
    e = make_extractor(calib_dir, manager, 4032, 3024)
    assert e.intrinsic_matrix() is None
    assert e.distortion() is None


def test_iphone_movie(calib_dir):
    manager = FakeManager("Apple iPhone SE (2nd generation)", 4.2)
    e = make_extractor(calib_dir, manager, 1920, 1080)
    assert e.intrinsic_matrix() is None
    assert e.distortion() is None


def test_result_is_cached_by_focal_length(calib_dir):
    manager = FakeManager("Panasonic DMC-GX80 SN0000", 30.0)
    e = make_extractor(calib_dir, manager, 4592, 3448)
    assert e.intrinsic_matrix() == pytest.approx(K)
    for path in calib_dir.iterdir():
        path.unlink()
    assert e.intrinsic_matrix() == pytest.approx(K)


def test_camera_info_returns_matching_dimensions(calib_dir):
    manager = FakeManager("Panasonic DMC-GX80 SN0000", 30.0)
    e = make_extractor(calib_dir, manager, 4592, 3448)
    info = e.camera_info()
    assert (info.width, info.height) == (4592, 3448)
    assert info.P == pytest.approx(P)


def test_invalid_unique_name_gives_nothing(calib_dir):
    manager = FakeManager("123 camera", 30.0)
    e = make_extractor(calib_dir, manager, 4592, 3448)
    assert e.camera_info() is None
    manager.unique_name = "Panasonic DMC-GX80 SN0000"
    # The negative result stays cached for this focal length.
    assert e.camera_info() is None


def test_missing_manager_gives_nothing(calib_dir):
    manager = FakeManager("Panasonic DMC-GX80 SN0000", 30.0)
    e = make_extractor(calib_dir, manager, 4592, 3448)
    del manager
    gc.collect()
    assert e.intrinsic_matrix() is None


def test_invalid_urls_are_skipped(calib_dir):
    manager = FakeManager("Panasonic DMC-GX80 SN0000", 30.0)
    e = CamInfoManagerMetadataExtractor(manager, 4592, 3448, ["http://example.com/cal.yaml", "package://x"])
    assert e.camera_info() is None


def test_to_valid_ros_name():
    assert to_valid_ros_name("Panasonic DMC-GX80") == "Panasonic_DMC_GX80"
    assert to_valid_ros_name("abc_123") == "abc_123"


@pytest.mark.parametrize("name", ["", "9abc", "-x"])
def test_to_valid_ros_name_rejects(name):
    with pytest.raises(ValueError):
        to_valid_ros_name(name)


def test_name_and_priority(calib_dir):
    manager = FakeManager(None, None)
    e = make_extractor(calib_dir, manager, 1, 1)
    assert e.priority() == 70
    assert e.name() == "CamInfoManagerMetadataExtractor"


def test_create_extractor_requires_params_and_manager():
    assert create_extractor(FakeManager(None, None), 10, 10, None) is None
    assert create_extractor(None, 10, 10, {}) is None


def test_create_extractor_defaults():
    e = create_extractor(FakeManager(None, None), 10, 10, {})
    assert e.calibration_urls == list(DEFAULT_CALIBRATION_URLS)


def test_create_extractor_reads_namespace(calib_dir):
    url = "file://" + str(calib_dir) + "/${NAME}.yaml"
    manager = FakeManager("Panasonic DMC-GX80 SN0000", 30.0)
    e = create_extractor(manager, 4592, 3448, {"caminfo_manager": {"calibration_urls": [url]}})
    assert e.calibration_urls == [url]
    assert e.intrinsic_matrix() == pytest.approx(K)