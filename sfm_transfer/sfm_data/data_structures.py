"""
Scene data structures shared by the view matcher and the transfer engine.

An SfMData scene owns three tables:
- views, keyed by view id
- poses, keyed by pose id
- intrinsics, keyed by intrinsic id

Views only reference poses and intrinsics by id, so a view is usable for
transfer only when both ids resolve in its own scene.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np

# Max uint32, used by the sfmData format for "no id".
UNDEFINED_INDEX = 4294967295


class IntrinsicTypeError(ValueError):
    """Raised when assigning an intrinsic from one of another camera model."""


@dataclass
class CameraPose:
    """Rigid camera placement in the scene frame."""

    # Rotation (3x3) from world to camera coordinates.
    rotation: np.ndarray
    # Camera center (3,) in world coordinates.
    center: np.ndarray
    locked: bool = False

    def copy(self) -> "CameraPose":
        return CameraPose(
            rotation=np.array(self.rotation, dtype=np.float64, copy=True),
            center=np.array(self.center, dtype=np.float64, copy=True),
            locked=self.locked,
        )


@dataclass
class Intrinsic:
    """
    Camera calibration of one camera model instance.

    `type` names the camera model (pinhole, radial1, radial3, brown,
    fisheye4, ...). Two intrinsics can only be assigned onto each other when
    their types are equal, since the distortion vector layout depends on it.
    """

    intrinsic_id: int
    type: str
    width: int
    height: int
    px_focal_length: float
    principal_point: np.ndarray
    distortion_params: np.ndarray = field(default_factory=lambda: np.zeros((0,), dtype=np.float64))
    px_initial_focal_length: float = -1.0
    sensor_width: float = 0.0
    sensor_height: float = 0.0
    serial_number: str = ""
    initialization_mode: str = "unknown"
    locked: bool = False
    # Unknown keys from the file, written back verbatim.
    extra: Dict[str, Any] = field(default_factory=dict)

    def assign(self, other: "Intrinsic") -> None:
        """
        Copy all calibration parameters of `other` into this intrinsic, in place.

        The intrinsic id is kept, so views referencing this intrinsic keep
        pointing at it.

        Raises:
            IntrinsicTypeError: if the two camera models differ.
        """
        if other.type != self.type:
            raise IntrinsicTypeError(
                f"Cannot assign intrinsic {other.intrinsic_id} of type '{other.type}' "
                f"to intrinsic {self.intrinsic_id} of type '{self.type}'"
            )
        self.width = other.width
        self.height = other.height
        self.px_focal_length = other.px_focal_length
        self.px_initial_focal_length = other.px_initial_focal_length
        self.principal_point = np.array(other.principal_point, dtype=np.float64, copy=True)
        self.distortion_params = np.array(other.distortion_params, dtype=np.float64, copy=True)
        self.sensor_width = other.sensor_width
        self.sensor_height = other.sensor_height
        self.serial_number = other.serial_number
        self.initialization_mode = other.initialization_mode
        self.locked = other.locked
        self.extra = copy.deepcopy(other.extra)


@dataclass
class View:
    """A single image of the scene and its references into the pose/intrinsic tables."""

    view_id: int
    pose_id: int
    intrinsic_id: int
    path: str = ""
    width: int = 0
    height: int = 0
    frame_id: int = UNDEFINED_INDEX
    rig_id: int = UNDEFINED_INDEX
    sub_pose_id: int = UNDEFINED_INDEX
    # Image metadata (EXIF and friends), string -> string.
    metadata: Dict[str, str] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)

    def is_part_of_rig(self) -> bool:
        return self.rig_id != UNDEFINED_INDEX

    def get_metadata(self, key: str) -> str:
        """Metadata value for `key`, or an empty string if the view has none."""
        return self.metadata.get(key, "")


@dataclass
class SfMData:
    """
    Container for one reconstruction scene.

    This is the structure loaded from and saved to sfmData files and passed
    to the matcher (read-only) and the transfer engine (target mutated in place).
    """

    views: Dict[int, View] = field(default_factory=dict)
    poses: Dict[int, CameraPose] = field(default_factory=dict)
    intrinsics: Dict[int, Intrinsic] = field(default_factory=dict)
    version: List[str] = field(default_factory=lambda: ["1", "2", "0"])
    # Other top-level file sections (structure, featuresFolders, ...).
    extra: Dict[str, Any] = field(default_factory=dict)

    def get_view(self, view_id: int) -> View:
        return self.views[view_id]

    def get_pose(self, view: View) -> Optional[CameraPose]:
        return self.poses.get(view.pose_id)

    def get_intrinsic(self, intrinsic_id: int) -> Optional[Intrinsic]:
        return self.intrinsics.get(intrinsic_id)

    def is_pose_and_intrinsic_defined(self, view_id: int) -> bool:
        """True if the view exists and both its pose and intrinsic ids resolve."""
        view = self.views.get(view_id)
        if view is None:
            return False
        if view.pose_id == UNDEFINED_INDEX or view.intrinsic_id == UNDEFINED_INDEX:
            return False
        return view.pose_id in self.poses and view.intrinsic_id in self.intrinsics

    def common_view_ids(self, other: "SfMData") -> List[int]:
        """Sorted view ids present in both scenes."""
        return sorted(set(self.views) & set(other.views))


__all__ = [
    "UNDEFINED_INDEX",
    "IntrinsicTypeError",
    "CameraPose",
    "Intrinsic",
    "View",
    "SfMData",
]
