"""
Tests for filename-derived metadata.
"""

from pathlib import Path

import pytest

from tabshelf.core.filename_parser import (
    clean_filename,
    parse_filename,
    remove_key_from_title,
    split_by_dash,
)
from tabshelf.core.models import Metadata


@pytest.mark.parametrize(
    "name, expected",
    [
        ("Metallica - One.pdf", Metadata(title="One", artist="Metallica")),
        ("Band - Album - Song.gp5", Metadata(title="Song", artist="Band", album="Album")),
        ("01. Band - Album - Song.gp5", Metadata(title="Song", artist="Band", album="Album")),
        ("07 Band - Song.pdf", Metadata(title="Song", artist="Band")),
        ("[Queen] Bohemian Rhapsody (Am).pdf", Metadata(title="Bohemian Rhapsody", artist="Queen")),
        ("Nirvana - Lithium (E).gp", Metadata(title="Lithium", artist="Nirvana")),
        ("Etude (C# major).pdf", Metadata(title="Etude")),
        ("Song (Official Video).pdf", Metadata(title="Song")),
        ("Artist - Song [HD].gpx", Metadata(title="Song", artist="Artist")),
        ("Riff-Lesson.gp", Metadata(title="Lesson", artist="Riff")),
        ("Just A Title.pdf", Metadata(title="Just A Title")),
        ("1979.pdf", Metadata(title="1979")),
    ],
)
def test_parse_filename(name: str, expected: Metadata):
    assert parse_filename(name) == expected


def test_spaced_dash_wins_over_bare_dash():
    meta = parse_filename(Path("/music/rock/AC-DC - Back In Black.pdf"))

    assert meta == Metadata(title="Back In Black", artist="AC-DC")


def test_non_key_parenthetical_is_kept():
    assert parse_filename("Band - Song (Live).pdf").title == "Song (Live)"


def test_clean_filename_is_case_insensitive():
    assert clean_filename("Song (official audio)") == "Song"
    assert clean_filename("Song [4k]") == "Song"
    assert clean_filename("Song (Acoustic)") == "Song (Acoustic)"


def test_split_by_dash_drops_empty_parts():
    assert split_by_dash("Band -  - Song") == ["Band", "Song"]
    assert split_by_dash("No separators") == ["No separators"]
    assert split_by_dash("Band – Song") == ["Band", "Song"]


def test_remove_key_from_title():
    assert remove_key_from_title("Song (Bbm)") == "Song"
    assert remove_key_from_title("Song [F#]") == "Song"
    assert remove_key_from_title("Song (Remix)") == "Song (Remix)"
    assert remove_key_from_title("(Am)") == "(Am)"
