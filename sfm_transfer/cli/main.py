"""
Command-line interface for transferring poses and intrinsics between scenes.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from sfm_transfer.io.sfm_data_io import SfMDataIOError, load_sfm_data, save_sfm_data
from sfm_transfer.matching.view_matching import (
    DEFAULT_METADATA_MATCHING_LIST,
    MatchingConfigError,
    MatchingMethod,
    make_matcher,
    match_views,
)
from sfm_transfer.sfm_data.data_structures import IntrinsicTypeError
from sfm_transfer.transfer.attribute_transfer import TRACE, transfer_attributes

logger = logging.getLogger(__name__)

# Must be bumped when the command line changes.
SOFTWARE_VERSION = "1.0"

VERBOSE_LEVELS = {
    "fatal": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": TRACE,
}


def str_to_bool(value: str) -> bool:
    """argparse type for boolean options given as true/false, 1/0, yes/no, on/off."""
    v = value.strip().lower()
    if v in ("true", "1", "yes", "on"):
        return True
    if v in ("false", "0", "no", "off"):
        return False
    raise argparse.ArgumentTypeError(f"Invalid boolean value: '{value}'")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sfm-transfer",
        description=(
            "Transfer poses and intrinsics from a reference SfMData scene to the views "
            "of an input scene that are missing them. Both scenes must share the same "
            "coordinate system: poses are copied as they are."
        ),
    )

    required = parser.add_argument_group("Required parameters")
    required.add_argument(
        "-i",
        "--input",
        type=str,
        required=True,
        help="SfMData file to complete.",
    )
    required.add_argument(
        "-o",
        "--output",
        type=str,
        required=True,
        help="Output SfMData scene.",
    )
    required.add_argument(
        "-r",
        "--reference",
        type=str,
        required=True,
        help="Path to the scene providing poses and intrinsics.",
    )

    optional = parser.add_argument_group("Optional parameters")
    optional.add_argument(
        "--method",
        type=str,
        default=MatchingMethod.FROM_VIEWID.value,
        help=(
            "Matching method: "
            "from_viewid (views with the same view id), "
            "from_filepath (views whose paths match, using --fileMatchingPattern), "
            "from_metadata (views with matching metadata, using --metadataMatchingList). "
            "(default: from_viewid)"
        ),
    )
    optional.add_argument(
        "--fileMatchingPattern",
        type=str,
        default="",
        help="Regular expression for the from_filepath method; capture groups form the matching key.",
    )
    optional.add_argument(
        "--metadataMatchingList",
        type=str,
        nargs="*",
        default=list(DEFAULT_METADATA_MATCHING_LIST),
        help=(
            "List of metadata that should match to create the correspondences "
            f"(default: {' '.join(DEFAULT_METADATA_MATCHING_LIST)})."
        ),
    )
    optional.add_argument(
        "--transferPoses",
        type=str_to_bool,
        default=True,
        help="Transfer poses (default: true).",
    )
    optional.add_argument(
        "--transferIntrinsics",
        type=str_to_bool,
        default=True,
        help="Transfer intrinsics (default: true).",
    )
    optional.add_argument(
        "--visualize",
        type=str,
        default=None,
        help="Optional HTML file to write a 3D plot of the output camera centers to.",
    )

    log_params = parser.add_argument_group("Log parameters")
    log_params.add_argument(
        "-v",
        "--verboseLevel",
        type=str.lower,
        default="info",
        choices=list(VERBOSE_LEVELS),
        help="Verbosity level (fatal, error, warning, info, debug, trace).",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {SOFTWARE_VERSION}",
    )
    return parser


def setup_logging(verbose_level: str) -> None:
    logging.addLevelName(TRACE, "TRACE")
    logging.basicConfig(
        level=VERBOSE_LEVELS[verbose_level],
        format="[%(levelname)s] %(message)s",
    )
    logging.getLogger().setLevel(VERBOSE_LEVELS[verbose_level])


def _write_visualization(scene, transferred_view_ids: List[int], html_path: str) -> None:
    # Imported here so plotly is only loaded when a plot is requested.
    from sfm_transfer.viz.plotly_viz import plot_transfer_result

    try:
        fig = plot_transfer_result(scene, transferred_view_ids)
        Path(html_path).parent.mkdir(parents=True, exist_ok=True)
        fig.write_html(html_path)
    except OSError as e:
        logger.error("[VIZ] Cannot write visualization '%s': %s", html_path, e)
        return
    logger.info("[VIZ] Visualization saved to '%s'", html_path)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Usage:
        sfm-transfer --input scene.sfm \\
                     --reference reference.sfm \\
                     --output completed.sfm \\
                     --method from_filepath --fileMatchingPattern "(IMG_[0-9]+)"

    Returns:
        0 on success, 1 on configuration, I/O or matching failure.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verboseLevel)

    logger.info("[CLI] Program called with the following parameters:")
    for name, value in vars(args).items():
        logger.info("[CLI]   %s = %s", name, value)

    if not args.transferPoses and not args.transferIntrinsics:
        logger.error("[CLI] Nothing to do: both --transferPoses and --transferIntrinsics are false.")
        return 1

    try:
        method = MatchingMethod.from_string(args.method)
        matcher = make_matcher(
            method,
            file_pattern=args.fileMatchingPattern,
            metadata_keys=args.metadataMatchingList,
        )
    except MatchingConfigError as e:
        logger.error("[CLI] %s", e)
        return 1

    # Step 1: Load input and reference scenes
    try:
        scene = load_sfm_data(args.input)
    except SfMDataIOError as e:
        logger.error("[CLI] The input SfMData file '%s' cannot be read: %s", args.input, e)
        return 1
    try:
        reference = load_sfm_data(args.reference)
    except SfMDataIOError as e:
        logger.error("[CLI] The reference SfMData file '%s' cannot be read: %s", args.reference, e)
        return 1

    # Step 2: Match views. No alignment transform is computed, poses are
    # copied in the reference coordinate system as they are.
    correspondences = match_views(scene, reference, matcher)
    if not correspondences:
        logger.error("[CLI] Failed to find matching views between the 2 SfMData.")
        return 1

    # Step 3: Transfer
    try:
        report = transfer_attributes(
            scene,
            reference,
            correspondences,
            transfer_poses=args.transferPoses,
            transfer_intrinsics=args.transferIntrinsics,
        )
    except IntrinsicTypeError as e:
        logger.error("[CLI] %s", e)
        return 1

    # Step 4: Save
    logger.info("[CLI] Save into '%s'", args.output)
    try:
        save_sfm_data(scene, args.output)
    except SfMDataIOError as e:
        logger.error("[CLI] An error occurred while trying to save '%s': %s", args.output, e)
        return 1

    if args.visualize:
        _write_visualization(scene, report.transferred_view_ids, args.visualize)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
