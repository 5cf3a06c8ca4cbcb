"""
View matching between a target scene and a reference scene.

Three methods are available, one matcher class each:
- from_viewid:   views with the same view id in both scenes
- from_filepath: views whose image paths reduce to the same key through a regex
- from_metadata: views whose listed metadata values are all equal

Every matcher returns correspondences sorted by target view id, with at most
one reference view per target view (a reference view may serve several target
views). Neither scene is modified.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Dict, List, NamedTuple, Optional, Sequence

from sfm_transfer.sfm_data.data_structures import SfMData

logger = logging.getLogger(__name__)

DEFAULT_METADATA_MATCHING_LIST = [
    "Make",
    "Model",
    "Exif:BodySerialNumber",
    "Exif:LensSerialNumber",
]


class MatchingConfigError(ValueError):
    """Raised for an unknown matching method or an unusable file pattern."""


class MatchingMethod(Enum):
    FROM_VIEWID = "from_viewid"
    FROM_FILEPATH = "from_filepath"
    FROM_METADATA = "from_metadata"

    @classmethod
    def from_string(cls, value: str) -> "MatchingMethod":
        """Parse a method name, case-insensitively."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise MatchingConfigError(f"Invalid SfM matching method: '{value}'") from None

    def __str__(self) -> str:
        return self.value


class Correspondence(NamedTuple):
    """A target view and the reference view showing the same shot."""

    target_view_id: int
    reference_view_id: int


class ViewMatcher:
    """Base class for the matching methods."""

    method: MatchingMethod

    def match(self, target: SfMData, reference: SfMData) -> List[Correspondence]:
        raise NotImplementedError


class ViewIdMatcher(ViewMatcher):
    """Pairs every view id present in both scenes with itself."""

    method = MatchingMethod.FROM_VIEWID

    def match(self, target: SfMData, reference: SfMData) -> List[Correspondence]:
        return [Correspondence(view_id, view_id) for view_id in target.common_view_ids(reference)]


class FilePatternMatcher(ViewMatcher):
    """
    Pairs views whose image paths reduce to the same key.

    The key of a path is found with `re.search`: the concatenation of all
    capture groups if the pattern has any, the whole match otherwise. Paths
    the pattern does not match are ignored. A key shared by several reference
    views is ambiguous and produces no correspondence. Each target view is
    judged on its own, so several target views may pair with one reference view.

    Example: the pattern "(IMG_[0-9]+)" keys views by their image number,
    so "/shoot_a/IMG_0001.JPG" and "/undistorted/IMG_0001.exr" correspond.
    """

    method = MatchingMethod.FROM_FILEPATH

    def __init__(self, pattern: str) -> None:
        if not pattern:
            raise MatchingConfigError(
                "The from_filepath matching method needs a non-empty file matching pattern"
            )
        try:
            self.regex = re.compile(pattern)
        except re.error as e:
            raise MatchingConfigError(f"Invalid file matching pattern '{pattern}': {e}") from e

    def reduce_path(self, path: str) -> Optional[str]:
        """Matching key for an image path, or None if the pattern does not match."""
        m = self.regex.search(path)
        if m is None:
            return None
        if self.regex.groups:
            return "".join(g or "" for g in m.groups())
        return m.group(0)

    def _reference_keys(self, reference: SfMData) -> Dict[str, int]:
        """Map key -> reference view id, keeping only keys produced by exactly one view."""
        keys: Dict[str, int] = {}
        ambiguous = set()
        for view_id in sorted(reference.views):
            key = self.reduce_path(reference.views[view_id].path)
            if key is None:
                continue
            if key in keys or key in ambiguous:
                keys.pop(key, None)
                ambiguous.add(key)
                continue
            keys[key] = view_id

        if ambiguous:
            logger.debug(
                "[MATCH] %d ambiguous reference file pattern keys dropped: %s",
                len(ambiguous),
                sorted(ambiguous),
            )
        return keys

    def match(self, target: SfMData, reference: SfMData) -> List[Correspondence]:
        reference_keys = self._reference_keys(reference)

        matches = []
        for target_id in sorted(target.views):
            key = self.reduce_path(target.views[target_id].path)
            if key is not None and key in reference_keys:
                matches.append(Correspondence(target_id, reference_keys[key]))
        return matches


class MetadataMatcher(ViewMatcher):
    """
    Pairs views whose metadata agree on every listed key.

    A key missing (or empty) on either view disqualifies the pair. With an
    empty key list nothing matches. Views are scanned by ascending id and a
    target view takes the first qualifying reference view.
    """

    method = MatchingMethod.FROM_METADATA

    def __init__(self, metadata_keys: Sequence[str]) -> None:
        self.metadata_keys = list(metadata_keys)

    def views_match(self, target_view, reference_view) -> bool:
        for key in self.metadata_keys:
            value_a = target_view.get_metadata(key)
            value_b = reference_view.get_metadata(key)
            if not value_a or not value_b or value_a != value_b:
                return False
        return True

    def match(self, target: SfMData, reference: SfMData) -> List[Correspondence]:
        if not self.metadata_keys:
            logger.warning("[MATCH] Empty metadata matching list, no view can match.")
            return []

        reference_ids = sorted(reference.views)
        matches = []
        for target_id in sorted(target.views):
            target_view = target.views[target_id]
            for reference_id in reference_ids:
                if self.views_match(target_view, reference.views[reference_id]):
                    matches.append(Correspondence(target_id, reference_id))
                    break
        return matches


def make_matcher(
    method: MatchingMethod,
    file_pattern: str = "",
    metadata_keys: Sequence[str] = DEFAULT_METADATA_MATCHING_LIST,
) -> ViewMatcher:
    """
    Build the matcher for a method.

    Raises:
        MatchingConfigError: if the method needs a file pattern and the given
            one is empty or not a valid regular expression.
    """
    if method is MatchingMethod.FROM_VIEWID:
        return ViewIdMatcher()
    if method is MatchingMethod.FROM_FILEPATH:
        return FilePatternMatcher(file_pattern)
    if method is MatchingMethod.FROM_METADATA:
        return MetadataMatcher(metadata_keys)
    raise MatchingConfigError(f"Invalid SfM matching method: '{method}'")


def match_views(
    target: SfMData,
    reference: SfMData,
    matcher: ViewMatcher,
) -> List[Correspondence]:
    """Run a matcher and log how many common views it found."""
    logger.info("[MATCH] Matching views with method '%s'.", matcher.method)
    matches = matcher.match(target, reference)
    logger.debug("[MATCH] Found %d common views.", len(matches))
    return matches


__all__ = [
    "DEFAULT_METADATA_MATCHING_LIST",
    "MatchingConfigError",
    "MatchingMethod",
    "Correspondence",
    "ViewMatcher",
    "ViewIdMatcher",
    "FilePatternMatcher",
    "MetadataMatcher",
    "make_matcher",
    "match_views",
]
