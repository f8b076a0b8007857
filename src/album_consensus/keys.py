"""Dedup keys for albums contributed from different metadata sources."""

from __future__ import annotations

from album_consensus.normalize import Normalizer

# ASCII unit separator; Normalizer strips control characters from values.
KEY_SEPARATOR = "\x1f"

_default_normalizer = Normalizer()


def build_album_key(
    artist: str | None,
    album: str | None,
    normalizer: Normalizer | None = None,
) -> str:
    """
    Build the dedup key for an (artist, album) pair.

    Missing fields normalize to an empty string; this never raises.
    """
    norm = normalizer or _default_normalizer
    artist_part = norm.normalize_artist(artist).normalized
    album_part = norm.normalize_album(album).normalized
    return f"{artist_part}{KEY_SEPARATOR}{album_part}"


def split_album_key(key: str) -> tuple[str, str]:
    """Split a key back into its normalized (artist, album) parts."""
    artist_part, _, album_part = key.partition(KEY_SEPARATOR)
    return artist_part, album_part
