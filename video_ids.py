"""Video identifier validation and extraction from source URLs."""

import re
from typing import Optional

from pipeline_errors import InvalidInputError

# Identifiers double as file names in the artifact store
VIDEO_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

SOURCE_URL_PATTERNS = [
    re.compile(r"(?:youtube\.com/watch\?v=|youtu\.be/|youtube\.com/embed/)([^&?\s/#]+)"),
    re.compile(r"youtube\.com/watch\?.*[?&]v=([^&?\s/#]+)"),
]


def is_valid_video_id(video_id: Optional[str]) -> bool:
    """Check whether a value is usable as a video identifier."""
    return bool(video_id) and bool(VIDEO_ID_PATTERN.match(video_id))


def validate_video_id(video_id: Optional[str]) -> str:
    """
    Validate a video identifier.

    Args:
        video_id: Identifier supplied by the caller

    Returns:
        The identifier, unchanged

    Raises:
        InvalidInputError: If the identifier is missing or malformed
    """
    if not video_id:
        raise InvalidInputError("videoId is required")

    if not isinstance(video_id, str) or not VIDEO_ID_PATTERN.match(video_id):
        raise InvalidInputError(f"Invalid videoId: {video_id!r}")

    return video_id


def extract_video_id(source_url: Optional[str]) -> Optional[str]:
    """Extract the video identifier from a source URL, or None if it has none."""
    if not source_url:
        return None

    for pattern in SOURCE_URL_PATTERNS:
        match = pattern.search(source_url)
        if match and is_valid_video_id(match.group(1)):
            return match.group(1)

    return None


def resolve_video_id(video_id: Optional[str] = None, source_url: Optional[str] = None) -> str:
    """
    Resolve the identifier of a request that carries either an id or a source URL.

    Raises:
        InvalidInputError: If neither yields a valid identifier
    """
    if video_id:
        return validate_video_id(video_id)

    if source_url:
        extracted_id = extract_video_id(source_url)
        if extracted_id is None:
            raise InvalidInputError(f"Could not extract a video id from URL: {source_url}")
        return extracted_id

    raise InvalidInputError("videoId is required")
