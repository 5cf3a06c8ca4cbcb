from __future__ import annotations

import json

import numpy as np
import pytest

from sfm_transfer.io.sfm_data_io import SfMDataIOError, load_sfm_data, save_sfm_data
from sfm_transfer.sfm_data.data_structures import UNDEFINED_INDEX

# Trimmed sfmData file as written by AliceVision (all values as strings).
ALICEVISION_SFM = {
    "version": ["1", "2", "0"],
    "featuresFolders": ["../features"],
    "views": [
        {
            "viewId": "1001",
            "poseId": "1001",
            "frameId": "1",
            "intrinsicId": "77",
            "path": "/shoot/IMG_0001.JPG",
            "width": "6000",
            "height": "4000",
            "metadata": {"Make": "Canon", "Model": "EOS R5"},
        },
        {
            "viewId": "1002",
            "poseId": "2000",
            "frameId": "0",
            "intrinsicId": "77",
            "rigId": "3",
            "subPoseId": "1",
            "path": "/shoot/IMG_0002.JPG",
            "width": "6000",
            "height": "4000",
            "metadata": {},
        },
    ],
    "intrinsics": [
        {
            "intrinsicId": "77",
            "width": "6000",
            "height": "4000",
            "sensorWidth": "36",
            "sensorHeight": "24",
            "serialNumber": "0042",
            "type": "radial3",
            "initializationMode": "estimated",
            "pxInitialFocalLength": "5000",
            "pxFocalLength": "5123.5",
            "principalPoint": ["3001.5", "1998.25"],
            "distortionParams": ["0.01", "-0.02", "0.003"],
            "locked": "0",
        }
    ],
    "poses": [
        {
            "poseId": "1001",
            "pose": {
                "transform": {
                    "rotation": ["1", "0", "0", "0", "1", "0", "0", "0", "1"],
                    "center": ["0.5", "-1", "2"],
                },
                "locked": "1",
            },
        }
    ],
    "structure": [],
}


@pytest.fixture
def sfm_file(tmp_path):
    path = tmp_path / "scene.sfm"
    path.write_text(json.dumps(ALICEVISION_SFM), encoding="utf-8")
    return path


def test_load_alicevision_layout(sfm_file):
    scene = load_sfm_data(sfm_file)

    assert sorted(scene.views) == [1001, 1002]
    view = scene.get_view(1001)
    assert view.pose_id == 1001
    assert view.intrinsic_id == 77
    assert view.get_metadata("Model") == "EOS R5"
    assert view.get_metadata("Exif:LensSerialNumber") == ""
    assert not view.is_part_of_rig()
    assert scene.get_view(1002).is_part_of_rig()

    intrinsic = scene.get_intrinsic(77)
    assert intrinsic.type == "radial3"
    assert intrinsic.px_focal_length == pytest.approx(5123.5)
    np.testing.assert_allclose(intrinsic.principal_point, [3001.5, 1998.25])
    np.testing.assert_allclose(intrinsic.distortion_params, [0.01, -0.02, 0.003])

    pose = scene.get_pose(view)
    np.testing.assert_allclose(pose.rotation, np.eye(3))
    np.testing.assert_allclose(pose.center, [0.5, -1.0, 2.0])
    assert pose.locked

    assert scene.is_pose_and_intrinsic_defined(1001)
    assert not scene.is_pose_and_intrinsic_defined(1002)
    assert not scene.is_pose_and_intrinsic_defined(5)


def test_numbers_are_accepted(tmp_path):
    data = json.loads(json.dumps(ALICEVISION_SFM))
    data["views"][0]["viewId"] = 1001
    data["intrinsics"][0]["pxFocalLength"] = 5123.5
    path = tmp_path / "numbers.json"
    path.write_text(json.dumps(data), encoding="utf-8")

    scene = load_sfm_data(path)

    assert 1001 in scene.views
    assert scene.intrinsics[77].px_focal_length == pytest.approx(5123.5)


def test_focal_length_in_mm_is_converted(tmp_path):
    data = json.loads(json.dumps(ALICEVISION_SFM))
    intrinsic = data["intrinsics"][0]
    del intrinsic["pxFocalLength"]
    intrinsic["focalLength"] = "24"
    path = tmp_path / "mm.sfm"
    path.write_text(json.dumps(data), encoding="utf-8")

    scene = load_sfm_data(path)

    assert scene.intrinsics[77].px_focal_length == pytest.approx(24.0 * 6000 / 36.0)


def test_save_then_load_keeps_scene(sfm_file, tmp_path, read_json):
    scene = load_sfm_data(sfm_file)
    out = tmp_path / "out" / "scene_out.sfm"

    save_sfm_data(scene, out)
    reloaded = load_sfm_data(out)
    written = read_json(out)

    assert written["featuresFolders"] == ["../features"]
    assert written["structure"] == []
    assert written["views"][0]["viewId"] == "1001"
    assert "rigId" not in written["views"][0]
    assert written["views"][1]["rigId"] == "3"
    assert reloaded.get_view(1002).sub_pose_id == 1
    assert reloaded.get_view(1001).frame_id == 1
    assert reloaded.intrinsics[77].serial_number == "0042"
    np.testing.assert_allclose(reloaded.poses[1001].center, [0.5, -1.0, 2.0])


def test_missing_view_ids_default_to_undefined(tmp_path):
    path = tmp_path / "bare.json"
    path.write_text(json.dumps({"views": [{"viewId": "4", "path": "a.jpg"}]}), encoding="utf-8")

    scene = load_sfm_data(path)

    assert scene.views[4].pose_id == UNDEFINED_INDEX
    assert not scene.is_pose_and_intrinsic_defined(4)


def test_load_missing_file_names_path(tmp_path):
    missing = tmp_path / "nope.sfm"
    with pytest.raises(SfMDataIOError, match="nope.sfm"):
        load_sfm_data(missing)


def test_load_invalid_json(tmp_path):
    path = tmp_path / "broken.sfm"
    path.write_text("{ not json", encoding="utf-8")
    with pytest.raises(SfMDataIOError, match="broken.sfm"):
        load_sfm_data(path)


def test_load_malformed_rotation(tmp_path):
    data = json.loads(json.dumps(ALICEVISION_SFM))
    data["poses"][0]["pose"]["transform"]["rotation"] = ["1", "0", "0"]
    path = tmp_path / "rotation.sfm"
    path.write_text(json.dumps(data), encoding="utf-8")

    with pytest.raises(SfMDataIOError, match="Malformed"):
        load_sfm_data(path)


def test_unsupported_extension(tmp_path, sfm_file):
    with pytest.raises(SfMDataIOError):
        load_sfm_data(tmp_path / "scene.abc")
    with pytest.raises(SfMDataIOError):
        save_sfm_data(load_sfm_data(sfm_file), tmp_path / "scene.abc")


def test_save_failure_names_path(tmp_path, sfm_file):
    scene = load_sfm_data(sfm_file)
    # A regular file cannot be used as a parent directory.
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")

    with pytest.raises(SfMDataIOError, match="blocker"):
        save_sfm_data(scene, blocker / "scene.sfm")
