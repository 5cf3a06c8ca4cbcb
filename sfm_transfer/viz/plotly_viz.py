"""
Visualization of a transfer result using Plotly.
"""

from __future__ import annotations

import logging
from typing import Iterable

import numpy as np
import plotly.graph_objs as go

from sfm_transfer.sfm_data.data_structures import SfMData

logger = logging.getLogger(__name__)


def plot_transfer_result(scene: SfMData, transferred_view_ids: Iterable[int]) -> go.Figure:
    """
    Create a 3D Plotly plot of camera centers in a scene.

    Args:
        scene: Scene after transfer.
        transferred_view_ids: Views that received a pose, an intrinsic or both
            from the reference.

    Returns:
        Plotly Figure with one trace for views not changed by the transfer and one
        for views it updated, both limited to views with a pose.
    """
    transferred = set(transferred_view_ids)

    kept_centers = []
    kept_labels = []
    new_centers = []
    new_labels = []
    for view_id in sorted(scene.views):
        view = scene.views[view_id]
        pose = scene.get_pose(view)
        if pose is None:
            continue
        label = f"view {view_id}: {view.path}"
        if view_id in transferred:
            new_centers.append(pose.center)
            new_labels.append(label)
        else:
            kept_centers.append(pose.center)
            kept_labels.append(label)

    kept_xyz = np.array(kept_centers).reshape(-1, 3)
    new_xyz = np.array(new_centers).reshape(-1, 3)

    fig = go.Figure()
    fig.add_trace(
        go.Scatter3d(
            x=kept_xyz[:, 0],
            y=kept_xyz[:, 1],
            z=kept_xyz[:, 2],
            mode="markers",
            marker=dict(size=3, color="gray"),
            text=kept_labels,
            name="Other views",
        )
    )
    fig.add_trace(
        go.Scatter3d(
            x=new_xyz[:, 0],
            y=new_xyz[:, 1],
            z=new_xyz[:, 2],
            mode="markers",
            marker=dict(size=5, color="red"),
            text=new_labels,
            name="Transferred views",
        )
    )
    fig.update_layout(
        title=f"Camera centers ({len(new_labels)} transferred, {len(kept_labels)} other views)",
        scene=dict(xaxis_title="X", yaxis_title="Y", zaxis_title="Z", aspectmode="data"),
        showlegend=True,
    )

    logger.debug("[VIZ] Plotted %d existing and %d transferred cameras", len(kept_labels), len(new_labels))
    return fig


__all__ = ["plot_transfer_result"]
