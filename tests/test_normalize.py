"""Tests for album key normalization."""

from __future__ import annotations

import pytest

from album_consensus.keys import KEY_SEPARATOR, build_album_key, split_album_key
from album_consensus.normalize import Normalizer, TagKind


@pytest.fixture
def normalizer() -> Normalizer:
    return Normalizer()


class TestBuildAlbumKey:
    def test_case_and_whitespace_collapse(self):
        assert build_album_key("  Radiohead ", "OK Computer") == build_album_key(
            "radiohead", "ok computer"
        )

    def test_remaster_suffix_collides(self):
        assert build_album_key("Radiohead", "OK Computer (Remastered)") == build_album_key(
            "Radiohead", "OK Computer"
        )

    def test_dash_remaster_suffix_collides(self):
        assert build_album_key("Radiohead", "OK Computer - 2017 Remaster") == build_album_key(
            "Radiohead", "OK Computer"
        )

    def test_deluxe_suffix_collides(self):
        assert build_album_key("Taylor Swift", "Midnights [Deluxe Edition]") == build_album_key(
            "Taylor Swift", "Midnights"
        )

    def test_ampersand_and_word_collide(self):
        assert build_album_key("Simon & Garfunkel", "Bookends") == build_album_key(
            "Simon and Garfunkel", "Bookends"
        )

    def test_diacritics_collide(self):
        assert build_album_key("Beyoncé", "Renaissance") == build_album_key(
            "Beyonce", "Renaissance"
        )

    def test_missing_fields_never_raise(self):
        assert build_album_key(None, None) == KEY_SEPARATOR
        assert build_album_key("", "Album") == f"{KEY_SEPARATOR}album"

    def test_different_albums_stay_distinct(self):
        assert build_album_key("Radiohead", "Kid A") != build_album_key("Radiohead", "Amnesiac")

    def test_separator_cannot_be_injected(self):
        # "a\x1fb" + "c" must not collide with "a" + "b\x1fc"
        left = build_album_key(f"a{KEY_SEPARATOR}b", "c")
        right = build_album_key("a", f"b{KEY_SEPARATOR}c")
        assert left.count(KEY_SEPARATOR) == 1
        assert right.count(KEY_SEPARATOR) == 1
        assert left != right

    def test_split_round_trip(self):
        artist, album = split_album_key(build_album_key("The National", "High Violet"))
        assert artist == "national"
        assert album == "high violet"


class TestNormalizer:
    def test_artist_guests_extracted(self, normalizer: Normalizer):
        result = normalizer.normalize_artist("Kendrick Lamar feat. SZA")
        assert result.normalized == "kendrick lamar"
        assert result.guests == ["sza"]

    def test_artist_exception_keeps_article(self, normalizer: Normalizer):
        assert normalizer.normalize_artist("The The").normalized == "the the"

    def test_single_word_article_kept(self, normalizer: Normalizer):
        assert normalizer.normalize_artist("The").normalized == "the"

    def test_album_tags_recorded(self, normalizer: Normalizer):
        result = normalizer.normalize_album("Rumours (2004 Remaster) [Deluxe Edition]")
        assert result.normalized == "rumours"
        assert {tag.kind for tag in result.tags} == {TagKind.remaster, TagKind.deluxe}

    def test_album_never_stripped_to_nothing(self, normalizer: Normalizer):
        assert normalizer.normalize_album("(Deluxe)").normalized != ""

    def test_punctuation_only_title_kept(self, normalizer: Normalizer):
        assert normalizer.normalize_album("!!!").normalized == "!!!"

    def test_zero_width_and_nbsp_removed(self, normalizer: Normalizer):
        assert normalizer.normalize_album("Blue\u200b\u00a0Lines").normalized == "blue lines"
