"""
sfmData I/O utilities for loading and saving reconstruction scenes.

Files follow the JSON sfmData layout (.sfm / .json):

    {
      "version": ["1", "2", "0"],
      "views":      [{"viewId", "poseId", "intrinsicId", "path", "metadata", ...}],
      "intrinsics": [{"intrinsicId", "type", "pxFocalLength", "principalPoint", ...}],
      "poses":      [{"poseId", "pose": {"transform": {"rotation", "center"}, "locked"}}]
    }

Ids and scalars may be stored as JSON numbers or as strings; they are always
written back as strings. Sections and keys this module does not know about
are kept and written back unchanged.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict

import numpy as np

from sfm_transfer.sfm_data.data_structures import (
    UNDEFINED_INDEX,
    CameraPose,
    Intrinsic,
    SfMData,
    View,
)

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".sfm", ".json")

_VIEW_KEYS = {
    "viewId", "poseId", "intrinsicId", "path", "width", "height",
    "frameId", "rigId", "subPoseId", "metadata",
}
_INTRINSIC_KEYS = {
    "intrinsicId", "type", "width", "height", "pxFocalLength", "focalLength",
    "pxInitialFocalLength", "principalPoint", "distortionParams", "sensorWidth",
    "sensorHeight", "serialNumber", "initializationMode", "locked",
}
_SECTION_KEYS = {"version", "views", "intrinsics", "poses"}


class SfMDataIOError(RuntimeError):
    """Raised when an sfmData file cannot be read or written."""


def _to_int(value: Any) -> int:
    return int(str(value).strip())


def _to_float(value: Any) -> float:
    return float(str(value).strip())


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true")


def _to_vector(values: Any, size: int | None = None) -> np.ndarray:
    vec = np.array([_to_float(v) for v in values], dtype=np.float64)
    if size is not None and vec.shape != (size,):
        raise ValueError(f"expected {size} values, got {vec.shape[0]}")
    return vec


def _fmt(value: float) -> str:
    return repr(float(value))


def _parse_view(entry: Dict[str, Any]) -> View:
    return View(
        view_id=_to_int(entry["viewId"]),
        pose_id=_to_int(entry.get("poseId", UNDEFINED_INDEX)),
        intrinsic_id=_to_int(entry.get("intrinsicId", UNDEFINED_INDEX)),
        path=str(entry.get("path", "")),
        width=_to_int(entry.get("width", 0)),
        height=_to_int(entry.get("height", 0)),
        frame_id=_to_int(entry.get("frameId", UNDEFINED_INDEX)),
        rig_id=_to_int(entry.get("rigId", UNDEFINED_INDEX)),
        sub_pose_id=_to_int(entry.get("subPoseId", UNDEFINED_INDEX)),
        metadata={str(k): str(v) for k, v in (entry.get("metadata") or {}).items()},
        extra={k: v for k, v in entry.items() if k not in _VIEW_KEYS},
    )


def _parse_intrinsic(entry: Dict[str, Any]) -> Intrinsic:
    width = _to_int(entry.get("width", 0))
    sensor_width = _to_float(entry.get("sensorWidth", 0.0))

    if "pxFocalLength" in entry:
        px_focal = _to_float(entry["pxFocalLength"])
    elif "focalLength" in entry and sensor_width > 0.0:
        # Focal length in mm -> pixels.
        px_focal = _to_float(entry["focalLength"]) * width / sensor_width
    else:
        raise KeyError("pxFocalLength")

    return Intrinsic(
        intrinsic_id=_to_int(entry["intrinsicId"]),
        type=str(entry["type"]),
        width=width,
        height=_to_int(entry.get("height", 0)),
        px_focal_length=px_focal,
        principal_point=_to_vector(entry["principalPoint"], 2),
        distortion_params=_to_vector(entry.get("distortionParams", [])),
        px_initial_focal_length=_to_float(entry.get("pxInitialFocalLength", -1.0)),
        sensor_width=sensor_width,
        sensor_height=_to_float(entry.get("sensorHeight", 0.0)),
        serial_number=str(entry.get("serialNumber", "")),
        initialization_mode=str(entry.get("initializationMode", "unknown")),
        locked=_to_bool(entry.get("locked", False)),
        extra={k: v for k, v in entry.items() if k not in _INTRINSIC_KEYS},
    )


def _parse_pose(entry: Dict[str, Any]) -> tuple[int, CameraPose]:
    pose = entry["pose"]
    transform = pose["transform"]
    rotation = _to_vector(transform["rotation"], 9).reshape(3, 3)
    center = _to_vector(transform["center"], 3)
    return _to_int(entry["poseId"]), CameraPose(
        rotation=rotation,
        center=center,
        locked=_to_bool(pose.get("locked", False)),
    )


def load_sfm_data(input_path: str | Path) -> SfMData:
    """
    Load a scene from an sfmData JSON file.

    Args:
        input_path: Path to the .sfm / .json file.

    Returns:
        SfMData with views, poses and intrinsics filled in.

    Raises:
        SfMDataIOError: if the file is missing, is not valid JSON, or a
            required field is missing or malformed.
    """
    path = Path(input_path)
    if path.suffix.lower() not in SUPPORTED_EXTENSIONS:
        raise SfMDataIOError(f"Unsupported sfmData file extension: '{path}'")

    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise SfMDataIOError(f"Cannot read sfmData file '{path}': {e}") from e
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise SfMDataIOError(f"Invalid JSON in sfmData file '{path}': {e}") from e

    if not isinstance(data, dict):
        raise SfMDataIOError(f"sfmData file '{path}' does not contain a JSON object")

    scene = SfMData(
        version=[str(v) for v in data.get("version", ["1", "2", "0"])],
        extra={k: v for k, v in data.items() if k not in _SECTION_KEYS},
    )

    try:
        for entry in data.get("views", []):
            view = _parse_view(entry)
            scene.views[view.view_id] = view
        for entry in data.get("intrinsics", []):
            intrinsic = _parse_intrinsic(entry)
            scene.intrinsics[intrinsic.intrinsic_id] = intrinsic
        for entry in data.get("poses", []):
            pose_id, pose = _parse_pose(entry)
            scene.poses[pose_id] = pose
    except (KeyError, TypeError, ValueError) as e:
        raise SfMDataIOError(f"Malformed sfmData file '{path}': {e!r}") from e

    logger.info(
        "[IO] Loaded '%s': %d views, %d poses, %d intrinsics",
        path,
        len(scene.views),
        len(scene.poses),
        len(scene.intrinsics),
    )
    return scene


def _view_to_json(view: View) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "viewId": str(view.view_id),
        "poseId": str(view.pose_id),
        "frameId": str(view.frame_id),
        "intrinsicId": str(view.intrinsic_id),
    }
    if view.is_part_of_rig():
        entry["rigId"] = str(view.rig_id)
        entry["subPoseId"] = str(view.sub_pose_id)
    entry["path"] = view.path
    entry["width"] = str(view.width)
    entry["height"] = str(view.height)
    entry["metadata"] = dict(view.metadata)
    entry.update(view.extra)
    return entry


def _intrinsic_to_json(intrinsic: Intrinsic) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "intrinsicId": str(intrinsic.intrinsic_id),
        "width": str(intrinsic.width),
        "height": str(intrinsic.height),
        "sensorWidth": _fmt(intrinsic.sensor_width),
        "sensorHeight": _fmt(intrinsic.sensor_height),
        "serialNumber": intrinsic.serial_number,
        "type": intrinsic.type,
        "initializationMode": intrinsic.initialization_mode,
        "pxInitialFocalLength": _fmt(intrinsic.px_initial_focal_length),
        "pxFocalLength": _fmt(intrinsic.px_focal_length),
        "principalPoint": [_fmt(v) for v in intrinsic.principal_point],
        "distortionParams": [_fmt(v) for v in intrinsic.distortion_params],
        "locked": "1" if intrinsic.locked else "0",
    }
    if intrinsic.sensor_width > 0.0 and intrinsic.width > 0:
        entry["focalLength"] = _fmt(intrinsic.px_focal_length * intrinsic.sensor_width / intrinsic.width)
    entry.update(intrinsic.extra)
    return entry


def _pose_to_json(pose_id: int, pose: CameraPose) -> Dict[str, Any]:
    return {
        "poseId": str(pose_id),
        "pose": {
            "transform": {
                "rotation": [_fmt(v) for v in np.asarray(pose.rotation).reshape(-1)],
                "center": [_fmt(v) for v in np.asarray(pose.center).reshape(-1)],
            },
            "locked": "1" if pose.locked else "0",
        },
    }


def sfm_data_to_json(scene: SfMData) -> Dict[str, Any]:
    """Build the JSON document for a scene, ids in ascending order."""
    data: Dict[str, Any] = {"version": list(scene.version)}
    data.update(scene.extra)
    data["views"] = [_view_to_json(scene.views[k]) for k in sorted(scene.views)]
    data["intrinsics"] = [_intrinsic_to_json(scene.intrinsics[k]) for k in sorted(scene.intrinsics)]
    data["poses"] = [_pose_to_json(k, scene.poses[k]) for k in sorted(scene.poses)]
    return data


def save_sfm_data(scene: SfMData, output_path: str | Path) -> None:
    """
    Serialize a scene to an sfmData JSON file.

    Args:
        scene: SfMData to write.
        output_path: Destination .sfm / .json path; parent folders are created.

    Raises:
        SfMDataIOError: on unsupported extension or any OS error while writing.
    """
    path = Path(output_path)
    if path.suffix.lower() not in SUPPORTED_EXTENSIONS:
        raise SfMDataIOError(f"Unsupported sfmData file extension: '{path}'")

    data = sfm_data_to_json(scene)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=4)
    except OSError as e:
        raise SfMDataIOError(f"Cannot write sfmData file '{path}': {e}") from e

    logger.info("[IO] Saved '%s'", path)


__all__ = [
    "SUPPORTED_EXTENSIONS",
    "SfMDataIOError",
    "load_sfm_data",
    "save_sfm_data",
    "sfm_data_to_json",
]
