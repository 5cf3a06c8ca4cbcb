"""
Shared builders for in-memory scenes.
"""

from __future__ import annotations

import json

import numpy as np
import pytest

from sfm_transfer.io.sfm_data_io import save_sfm_data
from sfm_transfer.sfm_data.data_structures import (
    UNDEFINED_INDEX,
    CameraPose,
    Intrinsic,
    SfMData,
    View,
)


def _rotation_z(angle_deg: float) -> np.ndarray:
    a = np.deg2rad(angle_deg)
    return np.array(
        [
            [np.cos(a), -np.sin(a), 0.0],
            [np.sin(a), np.cos(a), 0.0],
            [0.0, 0.0, 1.0],
        ]
    )


def build_pose(seed: float) -> CameraPose:
    return CameraPose(rotation=_rotation_z(10.0 * seed), center=np.array([seed, 2.0 * seed, -seed]))


def build_intrinsic(intrinsic_id: int, focal: float, type: str = "radial3") -> Intrinsic:
    return Intrinsic(
        intrinsic_id=intrinsic_id,
        type=type,
        width=4000,
        height=3000,
        px_focal_length=focal,
        principal_point=np.array([2000.0 + focal / 100.0, 1500.0]),
        distortion_params=np.array([0.01, -0.002, 0.0003]),
        sensor_width=36.0,
        sensor_height=24.0,
    )


def build_scene(
    complete_ids,
    incomplete_ids=(),
    focal: float = 3000.0,
    pose_seed_offset: float = 0.0,
    rig_ids=(),
) -> SfMData:
    """
    Scene where each view id gets its own pose id and intrinsic id (same value).

    Views in `complete_ids` have a pose and an intrinsic, views in
    `incomplete_ids` reference ids that do not resolve. Views in `rig_ids`
    are marked as part of rig 0.
    """
    scene = SfMData()
    for view_id in sorted(set(complete_ids) | set(incomplete_ids)):
        scene.views[view_id] = View(
            view_id=view_id,
            pose_id=view_id,
            intrinsic_id=view_id,
            path=f"/images/IMG_{view_id:04d}.JPG",
            width=4000,
            height=3000,
            rig_id=0 if view_id in rig_ids else UNDEFINED_INDEX,
            sub_pose_id=0 if view_id in rig_ids else UNDEFINED_INDEX,
        )
        if view_id in complete_ids:
            scene.poses[view_id] = build_pose(view_id + pose_seed_offset)
            scene.intrinsics[view_id] = build_intrinsic(view_id, focal)
    return scene


@pytest.fixture
def make_scene():
    return build_scene


@pytest.fixture
def make_intrinsic():
    return build_intrinsic


@pytest.fixture
def write_scene(tmp_path):
    """Save a scene to tmp_path / name and return the path as a string."""

    def _write(scene: SfMData, name: str) -> str:
        path = tmp_path / name
        save_sfm_data(scene, path)
        return str(path)

    return _write


@pytest.fixture
def read_json():
    def _read(path) -> dict:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    return _read
