"""
Student name matching for report pages.

Folds Turkish casing/diacritics, generates name-token permutations per
roster student and finds the first roster student whose name appears in a
page's text. Matching is first-match-wins: roster order, then pattern order.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from itertools import permutations

# Characters to keep around a match when the name is not the whole page
EXACT_MATCH_LIMIT = 10
CONTEXT_CHAR_LIMIT = 10

SCHOOL_NO_KEY = "Okul No"

# Applied before str.lower(), which turns "İ" into "i" plus U+0307
TURKISH_FOLD: dict[str, str] = {
    "İ": "i", "I": "i", "ı": "i",
    "Ğ": "g", "ğ": "g",
    "Ü": "u", "ü": "u",
    "Ş": "s", "ş": "s",
    "Ö": "o", "ö": "o",
    "Ç": "c", "ç": "c",
    "Â": "a", "â": "a",
    "Î": "i", "î": "i",
    "Û": "u", "û": "u",
    "\u0307": "",  # combining dot above
}


@dataclass(frozen=True)
class RosterEntry:
    """A roster student eligible for matching."""

    full_name: str
    school_number: str
    name_parts: tuple[str, ...]


@dataclass(frozen=True)
class SearchProfile:
    """Patterns for one roster entry, built once per parse run."""

    full_name: str
    school_number: str
    patterns: tuple[str, ...]
    regexes: tuple[re.Pattern, ...] = field(repr=False, compare=False, default=())


@dataclass
class MatchResult:
    """Outcome of matching a single page."""

    student_full_name: str | None = None
    school_number: str = ""
    matched_excerpt: str = ""
    match_span: tuple[int, int] | None = None

    @property
    def matched(self) -> bool:
        return self.student_full_name is not None


# ---------------------------------------------------------------------------
# Normalisation
# ---------------------------------------------------------------------------

def fold_with_offsets(text: str | None) -> tuple[str, list[int]]:
    """
    Fold ``text`` for matching and keep track of where each character came from.

    Returns:
        (folded_text, offsets) where ``offsets[i]`` is the index in ``text``
        of the character that produced ``folded_text[i]``.
    """
    if not text:
        return "", []
    out: list[str] = []
    offsets: list[int] = []
    for idx, ch in enumerate(text):
        folded = TURKISH_FOLD.get(ch)
        if folded is None:
            folded = ch.lower()
        for out_ch in folded:
            if out_ch == "\u0307":
                continue
            out.append(out_ch)
            offsets.append(idx)
    return "".join(out), offsets


def normalize_turkish(text: str | None) -> str:
    """Lowercase and fold Turkish letters to their ASCII base form."""
    return fold_with_offsets(text)[0]


# ---------------------------------------------------------------------------
# Roster filtering
# ---------------------------------------------------------------------------

def _clean_school_number(value) -> str:
    if value is None:
        return ""
    school_no = str(value).strip()
    if school_no in ("undefined", "None"):
        return ""
    return school_no


def prepare_roster(class_students: dict[str, dict]) -> list[RosterEntry]:
    """
    Turn a class's ``{full name: record}`` mapping into matchable entries.

    Students without a school number or with fewer than two name tokens are
    dropped. Input order is preserved.
    """
    entries: list[RosterEntry] = []
    for full_name, details in class_students.items():
        school_no = _clean_school_number((details or {}).get(SCHOOL_NO_KEY))
        name_parts = tuple(full_name.strip().split())
        if school_no and len(name_parts) >= 2:
            entries.append(RosterEntry(full_name=full_name, school_number=school_no, name_parts=name_parts))
    return entries


# ---------------------------------------------------------------------------
# Pattern generation
# ---------------------------------------------------------------------------

def _join(parts) -> str:
    return r"\s+".join(parts)


def _partial_combinations(parts: list[str]) -> list[list[str]]:
    """Every pair in both orders, then every triple in all six orders."""
    combos: list[list[str]] = []
    n = len(parts)
    for i in range(n):
        for j in range(i + 1, n):
            combos.append([parts[i], parts[j]])
            combos.append([parts[j], parts[i]])

    if n >= 3:
        for i in range(n):
            for j in range(i + 1, n):
                for k in range(j + 1, n):
                    triple = (parts[i], parts[j], parts[k])
                    combos.extend(list(p) for p in permutations(triple))
    return combos


def _unique(patterns: list[str]) -> list[str]:
    seen: set[str] = set()
    ordered = []
    for p in patterns:
        if p not in seen:
            seen.add(p)
            ordered.append(p)
    return ordered


def build_patterns(name_parts) -> list[str]:
    """
    Build the ordered candidate patterns for one student's name tokens.

    Full-name orderings always come before partial (2- and 3-token) ones.
    Each pattern is the normalised, regex-escaped tokens joined by ``\\s+``.
    """
    parts = [re.escape(normalize_turkish(p)) for p in name_parts]

    if len(parts) == 2:
        a, b = parts
        return [_join([a, b]), _join([b, a])]

    if len(parts) == 3:
        a, b, c = parts
        patterns = [
            _join([a, b, c]),  # first middle last
            _join([c, a, b]),  # last first middle
            _join([c, b, a]),
            _join([b, a, c]),
            _join([a, c, b]),
            _join([b, c, a]),
        ]
        patterns.extend(_join(combo) for combo in _partial_combinations(parts))
        return _unique(patterns)

    if len(parts) >= 4:
        patterns = [
            _join(parts),
            _join(reversed(parts)),
            _join([parts[-1], *parts[:-1]]),
        ]
        patterns.extend(_join(combo) for combo in _partial_combinations(parts))
        return _unique(patterns)

    return [_join(parts)] if parts else []


def build_profiles(entries: list[RosterEntry]) -> list[SearchProfile]:
    """Build one SearchProfile per roster entry, keeping roster order."""
    profiles = []
    for entry in entries:
        patterns = tuple(build_patterns(entry.name_parts))
        profiles.append(SearchProfile(
            full_name=entry.full_name,
            school_number=entry.school_number,
            patterns=patterns,
            regexes=tuple(re.compile(p, re.IGNORECASE) for p in patterns),
        ))
    return profiles


# ---------------------------------------------------------------------------
# Page matching
# ---------------------------------------------------------------------------

def _excerpt(raw_text: str, offsets: list[int], start: int, end: int, normalized_len: int) -> str:
    raw_start = offsets[start]
    raw_end = offsets[end - 1] + 1
    # Trailing combining marks (the dot of a decomposed "I\u0307") stay with their letter
    while raw_end < len(raw_text) and unicodedata.combining(raw_text[raw_end]):
        raw_end += 1

    if start <= EXACT_MATCH_LIMIT and normalized_len - end <= EXACT_MATCH_LIMIT:
        return raw_text[raw_start:raw_end].strip()

    lo = max(0, raw_start - CONTEXT_CHAR_LIMIT)
    hi = min(len(raw_text), raw_end + CONTEXT_CHAR_LIMIT)
    return raw_text[lo:hi].strip()


def match_page(page_text: str | None, profiles: list[SearchProfile]) -> MatchResult:
    """
    Find the roster student a page belongs to.

    Profiles are tried in order and, within a profile, patterns in generation
    order; the first hit wins and nothing else is tried.

    Args:
        page_text: Raw extracted text of the page.
        profiles: Search profiles in roster order.

    Returns:
        MatchResult; ``student_full_name`` is None when nothing matched.
    """
    raw_text = page_text or ""
    normalized, offsets = fold_with_offsets(raw_text)
    if not normalized:
        return MatchResult()

    for profile in profiles:
        regexes = profile.regexes or tuple(re.compile(p, re.IGNORECASE) for p in profile.patterns)
        for regex in regexes:
            m = regex.search(normalized)
            if m is None or m.end() == m.start():
                continue
            return MatchResult(
                student_full_name=profile.full_name,
                school_number=profile.school_number,
                matched_excerpt=_excerpt(raw_text, offsets, m.start(), m.end(), len(normalized)),
                match_span=(m.start(), m.end()),
            )

    return MatchResult()
