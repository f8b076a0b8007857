from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from enum import StrEnum


class TagKind(StrEnum):
    """Edition tag types extracted during normalization."""

    remaster = "remaster"
    deluxe = "deluxe"
    expanded = "expanded"
    anniversary = "anniversary"
    edition = "edition"
    bonus = "bonus"
    mix = "mix"
    content = "content"
    reissue = "reissue"


@dataclass
class EditionTag:
    """Structured edition tag stripped from an album title."""

    kind: TagKind
    value: str | None = None


@dataclass
class NormalizedResult:
    """
    Result of normalization pipeline.

    `normalized` is the matchable form; guests and tags are what was
    split off to get there.
    """

    normalized: str
    guests: list[str] = field(default_factory=list)
    tags: list[EditionTag] = field(default_factory=list)
    ruleset_version: str = "norm-album-v1"


class Normalizer:
    """
    Deterministic text normalizer for artist/album strings.

    Only used to build dedup keys. Display values are never rewritten.
    """

    GUEST_SEPARATOR_PATTERN = r"\s+(?:feat\.?|featuring|ft\.?|with)\s+"

    LEADING_ARTICLES = ("the", "a", "an")

    EXCEPTION_ARTISTS = {
        "the the",
        "the band",
    }

    _BRACKET_OPEN = r"\s*[\(\[]\s*"
    _BRACKET_CLOSE = r"\s*[\)\]]$"

    EDITION_PATTERNS: list[tuple[re.Pattern[str], TagKind]] = [
        (
            re.compile(
                _BRACKET_OPEN
                + r"(?:(\d{4})\s+)?(?:digital(?:ly)?\s+)?remaster(?:ed)?"
                r"(?:\s+(?:version|edition))?(?:\s+(\d{4}))?"
                + _BRACKET_CLOSE
            ),
            TagKind.remaster,
        ),
        (
            re.compile(
                _BRACKET_OPEN
                + r"(\d+)(?:st|nd|rd|th)?\s+anniversary"
                r"(?:\s+(?:super\s+)?(?:deluxe\s+)?(?:edition|version))?"
                + _BRACKET_CLOSE
            ),
            TagKind.anniversary,
        ),
        (
            re.compile(
                _BRACKET_OPEN
                + r"(super\s+deluxe|deluxe)(?:\s+(?:edition|version|remaster(?:ed)?))?"
                + _BRACKET_CLOSE
            ),
            TagKind.deluxe,
        ),
        (
            re.compile(_BRACKET_OPEN + r"(expanded)(?:\s+(?:edition|version))?" + _BRACKET_CLOSE),
            TagKind.expanded,
        ),
        (
            re.compile(
                _BRACKET_OPEN
                + r"(special|limited|collector'?s|legacy|tour|japanese|japan|"
                r"international|definitive|complete)\s+(?:edition|version)"
                + _BRACKET_CLOSE
            ),
            TagKind.edition,
        ),
        (
            re.compile(
                _BRACKET_OPEN
                + r"(?:with\s+)?(bonus\s+tracks?)(?:\s+(?:edition|version))?"
                + _BRACKET_CLOSE
            ),
            TagKind.bonus,
        ),
        (
            re.compile(_BRACKET_OPEN + r"(mono|stereo)(?:\s+(?:version|mix|edition))?" + _BRACKET_CLOSE),
            TagKind.mix,
        ),
        (
            re.compile(_BRACKET_OPEN + r"(explicit|clean)(?:\s+(?:version|edition))?" + _BRACKET_CLOSE),
            TagKind.content,
        ),
        (
            re.compile(_BRACKET_OPEN + r"(?:(\d{4})\s+)?re-?issue" + _BRACKET_CLOSE),
            TagKind.reissue,
        ),
    ]

    DASH_SUFFIX_PATTERN = re.compile(
        r"\s+-\s+(?:(\d{4})\s+)?(remaster(?:ed)?(?:\s+\d{4})?|"
        r"(?:super\s+)?deluxe(?:\s+(?:edition|version))?|"
        r"(?:expanded|special|anniversary)\s+edition)$"
    )

    def normalize_artist(self, artist: str | None) -> NormalizedResult:
        """
        Normalize artist string.

        Extracts guests and applies artist-specific rules.
        """
        s = self._apply_unicode_whitespace(artist or "")
        s = self._apply_casefold(s)

        if s in self.EXCEPTION_ARTISTS:
            return NormalizedResult(normalized=s)

        core, guests = self._extract_guests(s)

        core = self._apply_punctuation_canonicalization(core)
        core = self._strip_diacritics(core)
        core = self._normalize_ampersands(core)
        core = self._strip_punctuation(core)
        core = self._strip_leading_article(core)
        core = self._final_compaction(core)

        normalized_guests = [
            self._final_compaction(self._strip_punctuation(self._strip_diacritics(g)))
            for g in guests
        ]

        return NormalizedResult(normalized=core, guests=normalized_guests)

    def normalize_album(self, album: str | None) -> NormalizedResult:
        """
        Normalize album title.

        Strips edition/remaster suffixes so the same release collides
        across metadata sources.
        """
        s = self._apply_unicode_whitespace(album or "")
        s = self._apply_casefold(s)
        s = self._apply_punctuation_canonicalization(s)

        s, tags = self._extract_edition_suffixes(s)

        core = self._strip_diacritics(s)
        core = self._normalize_ampersands(core)
        core = self._strip_punctuation(core)
        core = self._strip_leading_article(core)
        core = self._final_compaction(core)

        return NormalizedResult(normalized=core, tags=tags)

    def _apply_unicode_whitespace(self, s: str) -> str:
        """Normalize to NFC, drop control/zero-width chars and collapse whitespace."""
        s = unicodedata.normalize("NFC", s)
        s = s.replace("\u00a0", " ")
        s = re.sub(r"[\u200b-\u200d\ufeff]", "", s)
        s = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", s)
        s = re.sub(r"\s+", " ", s)
        return s.strip()

    def _apply_casefold(self, s: str) -> str:
        """Convert to caseless form for matching."""
        return s.casefold()

    def _apply_punctuation_canonicalization(self, s: str) -> str:
        """Canonicalize quotes, dashes, and ellipsis."""
        s = s.replace("\u2018", "'").replace("\u2019", "'").replace("`", "'")
        s = s.replace("\u201c", '"').replace("\u201d", '"')
        s = s.replace("\u2013", "-").replace("\u2014", "-")
        s = s.replace("\u2026", "...")
        return s

    def _strip_diacritics(self, s: str) -> str:
        """Remove diacritics for matching."""
        nfd = unicodedata.normalize("NFD", s)
        return "".join(c for c in nfd if unicodedata.category(c) != "Mn")

    def _extract_guests(self, s: str) -> tuple[str, list[str]]:
        """Extract featuring/with guests from artist string."""
        parts = re.split(self.GUEST_SEPARATOR_PATTERN, s, flags=re.IGNORECASE)
        if len(parts) == 1:
            return s, []

        core = parts[0].strip()
        guests = [g.strip() for g in parts[1:] if g.strip()]
        return core, guests

    def _extract_edition_suffixes(self, s: str) -> tuple[str, list[EditionTag]]:
        """
        Extract edition tags from parenthetical/bracketed or dashed suffixes.

        Never strips a title down to nothing.
        """
        tags: list[EditionTag] = []
        original = s
        max_iterations = 5

        for _ in range(max_iterations):
            s_before = s
            s, new_tags = self._try_extract_one_suffix(s)
            tags.extend(new_tags)
            if s == s_before:
                break

        if not s.strip():
            return original, []

        return s.strip(), tags

    def _try_extract_one_suffix(self, s: str) -> tuple[str, list[EditionTag]]:
        """Try to extract one edition suffix from end of string."""
        for pattern, kind in self.EDITION_PATTERNS:
            match = pattern.search(s)
            if match:
                value = next((g for g in match.groups() if g), None)
                return s[: match.start()].strip(), [EditionTag(kind=kind, value=value)]

        match = self.DASH_SUFFIX_PATTERN.search(s)
        if match:
            suffix = match.group(2)
            year_match = re.search(r"(\d{4})", match.group(0))
            if "remaster" in suffix:
                tag = EditionTag(
                    kind=TagKind.remaster, value=year_match.group(1) if year_match else None
                )
            elif "deluxe" in suffix:
                tag = EditionTag(kind=TagKind.deluxe, value=suffix)
            else:
                tag = EditionTag(kind=TagKind.edition, value=suffix)
            return s[: match.start()].strip(), [tag]

        return s, []

    def _normalize_ampersands(self, s: str) -> str:
        """Collapse '&', '+' and 'and' variants to one token."""
        return re.sub(r"\s*(?:&|\+|\band\b)\s*", " and ", s)

    def _strip_punctuation(self, s: str) -> str:
        """
        Drop punctuation; hyphens and slashes become spaces.

        Falls back to the input when nothing but punctuation remains ("!!!").
        """
        spaced = re.sub(r"[-/_]+", " ", s)
        stripped = re.sub(r"[^\w\s]", "", spaced)
        if not stripped.strip() and s.strip():
            return s
        return stripped

    def _strip_leading_article(self, s: str) -> str:
        """Strip a leading article when more words follow."""
        words = s.split()
        if len(words) > 1 and words[0] in self.LEADING_ARTICLES:
            return " ".join(words[1:])
        return s

    def _final_compaction(self, s: str) -> str:
        """Remove duplicate spaces and trailing dashes."""
        s = re.sub(r"\s+", " ", s)
        s = s.strip()
        s = re.sub(r"[-\s]+$", "", s)
        return s
