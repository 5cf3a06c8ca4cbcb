"""
Transfer of poses and intrinsics from a reference scene into a target scene.

Poses are copied verbatim: both scenes are assumed to share the same
coordinate frame, no alignment transform is estimated or applied.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Iterable, List

from sfm_transfer.matching.view_matching import Correspondence
from sfm_transfer.sfm_data.data_structures import SfMData

logger = logging.getLogger(__name__)

TRACE = 5


@dataclass
class TransferReport:
    """Counts of what happened to each correspondence."""

    transferred_view_ids: List[int] = field(default_factory=list)
    poses_transferred: int = 0
    intrinsics_transferred: int = 0
    skipped_complete: int = 0
    skipped_incomplete_reference: int = 0
    skipped_rig: int = 0
    # Slots kept because a complete target view also uses them.
    shared_poses_kept: int = 0
    shared_intrinsics_kept: int = 0

    def summary(self) -> str:
        return (
            f"{len(self.transferred_view_ids)} views updated "
            f"({self.poses_transferred} poses, {self.intrinsics_transferred} intrinsics), "
            f"skipped: {self.skipped_complete} already complete, "
            f"{self.skipped_incomplete_reference} incomplete in reference, "
            f"{self.skipped_rig} rig views; "
            f"kept {self.shared_poses_kept} poses and {self.shared_intrinsics_kept} intrinsics "
            f"shared with complete views"
        )


def transfer_attributes(
    target: SfMData,
    reference: SfMData,
    correspondences: Iterable[Correspondence],
    transfer_poses: bool = True,
    transfer_intrinsics: bool = True,
) -> TransferReport:
    """
    Fill in missing poses and intrinsics of `target` from `reference`.

    A pair is only used when the target view lacks a pose or an intrinsic
    (completeness is checked on both jointly), the reference view has both,
    and neither view belongs to a rig. `target` is updated in place;
    `reference` is only read.

    Pose and intrinsic slots also referenced by a complete target view are
    never written, so complete views stay untouched whatever the pair order.

    Args:
        target: Scene to complete.
        reference: Scene providing poses and intrinsics.
        correspondences: (target view id, reference view id) pairs, at most
            one per target view.
        transfer_poses: Copy the reference pose into the target pose table at
            the target view's pose id.
        transfer_intrinsics: Assign the reference intrinsic onto the target
            intrinsic at the target view's intrinsic id.

    Returns:
        TransferReport with per-outcome counts.

    Raises:
        IntrinsicTypeError: if a reference intrinsic has another camera model
            than the target intrinsic it should be assigned to.
    """
    report = TransferReport()

    complete_ids = [v for v in target.views if target.is_pose_and_intrinsic_defined(v)]
    protected_pose_ids = {target.views[v].pose_id for v in complete_ids}
    protected_intrinsic_ids = {target.views[v].intrinsic_id for v in complete_ids}

    for target_id, reference_id in correspondences:
        if target.is_pose_and_intrinsic_defined(target_id):
            report.skipped_complete += 1
            continue
        if not reference.is_pose_and_intrinsic_defined(reference_id):
            logger.debug(
                "[TRANSFER] Reference view %d has no pose or intrinsic, skipping target view %d.",
                reference_id,
                target_id,
            )
            report.skipped_incomplete_reference += 1
            continue

        view_a = target.get_view(target_id)
        view_b = reference.get_view(reference_id)
        if view_a.is_part_of_rig() or view_b.is_part_of_rig():
            logger.debug(
                "[TRANSFER] Rig poses are not supported, skipping target view %d.",
                target_id,
            )
            report.skipped_rig += 1
            continue

        updated = False
        if transfer_poses:
            if view_a.pose_id in protected_pose_ids:
                logger.debug(
                    "[TRANSFER] Pose %d is used by a complete view, keeping it for target view %d.",
                    view_a.pose_id,
                    target_id,
                )
                report.shared_poses_kept += 1
            else:
                target.poses[view_a.pose_id] = reference.poses[view_b.pose_id].copy()
                report.poses_transferred += 1
                updated = True
        if transfer_intrinsics:
            if view_a.intrinsic_id in protected_intrinsic_ids:
                logger.debug(
                    "[TRANSFER] Intrinsic %d is used by a complete view, keeping it for target view %d.",
                    view_a.intrinsic_id,
                    target_id,
                )
                report.shared_intrinsics_kept += 1
            else:
                target_intrinsic = target.get_intrinsic(view_a.intrinsic_id)
                reference_intrinsic = reference.intrinsics[view_b.intrinsic_id]
                if target_intrinsic is None:
                    # Dangling intrinsic id on the target view: insert, as for poses.
                    target_intrinsic = copy.deepcopy(reference_intrinsic)
                    target_intrinsic.intrinsic_id = view_a.intrinsic_id
                    target.intrinsics[view_a.intrinsic_id] = target_intrinsic
                else:
                    target_intrinsic.assign(reference_intrinsic)
                report.intrinsics_transferred += 1
                updated = True

        if not updated:
            continue
        report.transferred_view_ids.append(target_id)
        logger.log(
            TRACE,
            "[TRANSFER] View %d <- reference view %d (pose id %d, intrinsic id %d)",
            target_id,
            reference_id,
            view_a.pose_id,
            view_a.intrinsic_id,
        )

    logger.info("[TRANSFER] %s", report.summary())
    return report


__all__ = ["TRACE", "TransferReport", "transfer_attributes"]
