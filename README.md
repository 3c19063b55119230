# moviemeta

A library for finding out which camera took a photo or a movie, and how that
camera is calibrated.

## What is in it

### Camera calibration lookup: `moviemeta.camera_info_manager`

`CameraInfoManager(camera_name="camera", url="")` loads a camera calibration
the first time it is needed. `camera_info()` and `is_calibrated()` trigger the
load. The calibration is addressed by a URL:

- `file:///path/to/file.yaml` is a local file.
- `package://<package>/<path>` is a file inside a package directory. The
  directory is found on `ROS_PACKAGE_PATH` as one that holds a `package.xml`.
- `flash://...` is recognised by `parse_url`, but loading from it is not
  supported. `load_calibration_flash` logs a warning and returns `False`.
  Subclasses may override it.
- An empty URL falls back to `file://${ROS_HOME}/camera_info/${NAME}.yaml`.

URLs may contain these substitution variables:

- `${NAME}` is replaced by the camera name.
- `${ROS_HOME}` is replaced by `$ROS_HOME`, or by `$HOME/.ros` when that is not set.
- `${FOCAL_LENGTH}` is replaced by the focal length, formatted with `%0.01fmm`.
  `${FOCAL_LENGTH:<printf format>}` uses the given format instead. The
  variable is left out when no focal length is set.

Substitution is a single pass. An unknown variable is kept as it is and an
error is logged. The same steps are available as functions:

- `resolve_url(url, camera_name, focal_length)`
- `parse_url(url)`, which returns a `UrlType`
- `validate_url(url)`

`set_camera_name()` accepts only letters, digits and `_`. `set_focal_length()`
accepts only positive values. Both raise `ValueError` on anything else, and
both force the calibration to be loaded again.

Calibration files are YAML: `image_width`, `image_height`, `camera_name`,
`camera_matrix`, `distortion_model`, `distortion_coefficients`,
`rectification_matrix` and `projection_matrix`. `read_calibration(filename)`
reads such a file and returns `(camera_name, CameraInfo)`.

### Calibration-based metadata: `moviemeta.caminfo_extractor`

`CamInfoManagerMetadataExtractor(manager, width, height, calibration_urls)`
works through the calibration URLs in order. It uses the first calibration
whose image size equals `width` x `height`.

`manager` is any object with `focal_length_mm()` and `camera_unique_name()`
methods, and the extractor keeps only a weak reference to it. The unique name
is turned into a camera name by `to_valid_ros_name()`. Results are cached per
focal length. The extractor offers:

- `camera_info()`
- `intrinsic_matrix()`, the row-major 3x3 `K`
- `distortion()`, which returns `(model, coefficients)`

`create_extractor(manager, width, height, params)` reads the URL list from
`params["caminfo_manager"]["calibration_urls"]`. Without it, the defaults are
`""` and `file://${ROS_HOME}/camera_info/${NAME}-${FOCAL_LENGTH:%0.01fmm}.yaml`.

### exiftool

These modules use an `exiftool` process, which must be on your `PATH`.

- `moviemeta.exiftool`: `ExifTool` keeps one `exiftool -stay_open` process
  running and numbers its commands. It is a context manager. It provides:
  - `image_info`, `extract_info` and `get_info` for reading tags
  - `set_new_value` and `write_info` for writing tags
  - `command`, `complete`, `output`, `error`, `get_summary` and `close`

  Failures raise `ExifToolError`, and a wait that runs out raises `TimeoutError`.
- `moviemeta.exiftool_output`: `parse_php_output()` turns the `-php -l -G:0:1:2:4 -D`
  output into `TagInfo` records. `full_key_name()` joins a tag's groups and name
  with dots. `unescape()` undoes exiftool's escapes.
- `moviemeta.exiftool_pipe`: `ResponseBuffer` splits the output stream into
  numbered responses.
- `moviemeta.exiftool_commands` composes the command text that is sent to
  exiftool:
  - `frame_command` and `next_command_number` frame and number a command.
  - `build_extract_args` and `build_write_args` build the arguments.
  - `find_summary` reads the summary counts.
- `moviemeta.exif_values` turns tag values into typed `ExifData` values:
  - `exif_string`, `exif_short`, `exif_rational` and their relatives
  - `first_valid`
  - `decimal_to_dms`
  - `parse_time`, which returns seconds since the Unix epoch

### Extracting metadata: `moviemeta.exiftool_extractor`

`ExiftoolMetadataExtractor(filename, width, height, tags=None)` reads the tags
of one file with exiftool, once. If you pass already parsed `tags`, exiftool
is not started. It exposes two kinds of values.

High-level values:

- `creation_time()`
- `rotation()`
- `crop_factor()`
- `gps_latitude()`, `gps_longitude()`, `gps_altitude()` and `gps_time()`

Raw EXIF values, returned as `ExifData(key, value)`:

- camera and lens: `exif_make()`, `exif_model()`, `exif_lens_model()`,
  `exif_body_serial_number()`
- focal lengths: `exif_focal_length()`, `exif_focal_length_35mm()`
- GPS fields: `exif_gps_lat(n)`, `exif_gps_speed()`,
  `exif_gps_h_positioning_error()` and the others
- motion: `exif_acceleration(n)`, in m/s² with X forward, Y left and Z up;
  `exif_roll_angle()` and `exif_pitch_angle()`, in radians

`create_extractor(filename, width, height)` returns `None` when the file name
is empty or either dimension is zero.

### Maker notes and motion sensors

- `moviemeta.makernotes`: `CustomMakernotes().decode(make, data)` decodes the
  raw maker note bytes of Apple iOS devices into `MakerNoteEntry` values.
- `moviemeta.exif_motion` converts maker note values you pass in into
  acceleration and angles:
  - `apple_acceleration` for the Apple acceleration vector
  - `panasonic_acceleration`, `panasonic_roll_angle` and
    `panasonic_pitch_angle` for Panasonic cameras

## What it does not do

- There is no command-line program. Everything is a library call.
- There is no component that gathers the results of several extractors. You
  supply the object that gives `CamInfoManagerMetadataExtractor` the focal
  length and the camera name.
- Apart from exiftool, the package does not read EXIF data out of image or
  movie files. `makernotes` and `exif_motion` work on bytes and values that you
  have already read.
- Calibrations are only read, never saved.

## Installation

```
pip install moviemeta
```

## Examples

Look up a calibration for a camera at a given focal length:

```python
from moviemeta.camera_info_manager import CameraInfoManager

manager = CameraInfoManager("my_camera", "file:///data/calib/${NAME}-${FOCAL_LENGTH}.yaml")
manager.set_focal_length(4.2)
if manager.is_calibrated():
    info = manager.camera_info()
    print(info.width, info.height, info.K)
```

Read metadata from a photo:

```python
from moviemeta.exiftool_extractor import create_extractor

extractor = create_extractor("holiday.jpg", 4000, 3000)
if extractor is not None:
    print(extractor.rotation(), extractor.creation_time(), extractor.exif_make())
```

List all tags exiftool reports for a file:

```python
from moviemeta.exiftool import ExifTool

with ExifTool() as tool:
    for tag in tool.image_info("holiday.jpg"):
        print(tag.name, tag.value)
```

## Running the tests

```
pip install "moviemeta[test]"
pytest
```