"""
Filename-derived metadata.

Recognized layouts, tried in order:
    "[Artist] Title.ext"
    "01. Artist - Album - Title.ext" (track number optional)
    "Artist - Title (Key).ext"
    "Title.ext"
"""

import re
from pathlib import Path

from tabshelf.core.models import Metadata

# "01. Artist - Title" or "01 Artist - Title"
_TRACK_NUMBER = re.compile(r"^(\d{1,3})[.\s]+(.+)$")

# "[Artist] Title"
_BRACKET_ARTIST = re.compile(r"^\[([^\]]+)\]\s*(.+)$")

# "Title (Am)", "Title [C# major]"
_KEY_SUFFIX = re.compile(
    r"^(.+?)\s*[\(\[]([A-Ga-g][#b]?(?:\s*(?:major|minor|m|M))?|[A-Ga-g][#b]?m?)[\)\]]$"
)

_NOISE_SUFFIXES = (
    " (Official)", " (Official Audio)", " (Official Video)",
    " (Lyrics)", " (Lyric Video)", " (Audio)",
    " (HD)", " (HQ)", " (4K)",
    " [Official]", " [Official Audio]", " [Official Video]",
    " [Lyrics]", " [Lyric Video]", " [Audio]",
    " [HD]", " [HQ]", " [4K]",
)

_SEPARATORS = (" - ", " – ", " — ", "-")


def clean_filename(name: str) -> str:
    """Strip upload artifacts such as " (Official Video)" or " [HD]"."""
    result = name
    for suffix in _NOISE_SUFFIXES:
        if result.lower().endswith(suffix.lower()):
            result = result[: -len(suffix)]
    return result.strip()


def split_by_dash(value: str) -> list[str]:
    """Split on the first separator style present, dropping empty parts."""
    for separator in _SEPARATORS:
        if separator in value:
            return [part.strip() for part in value.split(separator) if part.strip()]
    return [value]


def remove_key_from_title(title: str) -> str:
    match = _KEY_SUFFIX.match(title)
    if match:
        return match.group(1).strip()
    return title


def parse_filename(path: Path | str) -> Metadata:
    """
    Derive title, artist and album from a file name.

    Args:
        path: File path or bare file name

    Returns:
        Metadata whose title is never empty for a non-empty stem
    """
    name = clean_filename(Path(path).stem)

    bracket = _BRACKET_ARTIST.match(name)
    if bracket:
        return Metadata(
            title=remove_key_from_title(bracket.group(2).strip()),
            artist=bracket.group(1).strip(),
        )

    working = name
    track = _TRACK_NUMBER.match(name)
    if track:
        working = track.group(2).strip()

    parts = split_by_dash(working)
    if len(parts) >= 3:
        return Metadata(
            title=remove_key_from_title(parts[2]), artist=parts[0], album=parts[1]
        )
    if len(parts) == 2:
        return Metadata(title=remove_key_from_title(parts[1]), artist=parts[0])
    return Metadata(title=remove_key_from_title(working) or name)
