"""2D profile extraction from turned parts."""

from lathe_cam.profile.extractor import (
    ExtractionParameters,
    Profile2D,
    ProfileBounds,
    ProfileExtractor,
    ProfileSegment,
    extract_segment_profile,
    revolved_volume,
)

__all__ = [
    "ExtractionParameters",
    "Profile2D",
    "ProfileBounds",
    "ProfileExtractor",
    "ProfileSegment",
    "extract_segment_profile",
    "revolved_volume",
]
