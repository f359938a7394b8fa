"""
Unit tests for the name matcher module.

Tests Turkish folding, roster filtering, pattern generation and the
first-match-wins page matching with context excerpts.
"""

import re
import sys
from itertools import permutations
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "backend"))

from matcher import (
    MatchResult,
    RosterEntry,
    build_patterns,
    build_profiles,
    fold_with_offsets,
    match_page,
    normalize_turkish,
    prepare_roster,
)


def profiles_for(*names: str):
    """Build search profiles for the given names, school numbers 1..n."""
    roster = {name: {"Okul No": str(i)} for i, name in enumerate(names, start=1)}
    return build_profiles(prepare_roster(roster))


# ═══════════════════════════════════════════════════════════════════
# Normalisation
# ═══════════════════════════════════════════════════════════════════


class TestNormalizeTurkish:
    def test_dotted_and_dotless_i(self):
        assert normalize_turkish("YILMAZ ALİ VELİ") == "yilmaz ali veli"
        assert normalize_turkish("ılık İnce") == "ilik ince"

    def test_other_letters(self):
        assert normalize_turkish("Çağrı Öztürk Şen Güler") == "cagri ozturk sen guler"
        assert normalize_turkish("Hâkim Îmam Ûmran") == "hakim imam umran"

    def test_length_preserved_for_precomposed_text(self):
        text = "İSTANBUL İLİ"
        assert len(normalize_turkish(text)) == len(text)

    def test_decomposed_dotted_i(self):
        assert normalize_turkish("I\u0307stanbul") == "istanbul"

    def test_empty_and_none(self):
        assert normalize_turkish("") == ""
        assert normalize_turkish(None) == ""

    @pytest.mark.parametrize("text", [
        "YILMAZ ALİ VELİ",
        "Çağrı ÖZTÜRK",
        "I\u0307stanbul ılık",
        "Straße ΣΊΣΥΦΟΣ",
        "  mixed\tCase\nText 123 ",
    ])
    def test_idempotent(self, text):
        once = normalize_turkish(text)
        assert normalize_turkish(once) == once


class TestFoldWithOffsets:
    def test_offsets_track_source_indices(self):
        folded, offsets = fold_with_offsets("I\u0307stanbul")
        assert folded == "istanbul"
        assert offsets[0] == 0
        assert offsets[1] == 2  # "s" follows the dropped combining dot
        assert len(offsets) == len(folded)

    def test_identity_offsets_for_ascii(self):
        folded, offsets = fold_with_offsets("Ali Veli")
        assert folded == "ali veli"
        assert offsets == list(range(8))


# ═══════════════════════════════════════════════════════════════════
# Roster filtering
# ═══════════════════════════════════════════════════════════════════


class TestPrepareRoster:
    def test_valid_entry(self):
        entries = prepare_roster({"Ali Veli Yılmaz": {"Okul No": "101"}})
        assert entries == [RosterEntry("Ali Veli Yılmaz", "101", ("Ali", "Veli", "Yılmaz"))]

    def test_filters_invalid_entries(self):
        roster = {
            "Ali Veli": {"Okul No": "1"},
            "Tekisim": {"Okul No": "2"},
            "Ayşe Kaya": {"Okul No": ""},
            "Can Demir": {},
            "Ece Su": {"Okul No": "undefined"},
            "Mert Ak": {"Okul No": 7},
        }
        names = [e.full_name for e in prepare_roster(roster)]
        assert names == ["Ali Veli", "Mert Ak"]

    def test_numeric_school_number_stringified(self):
        entries = prepare_roster({"Mert Ak": {"Okul No": 7}})
        assert entries[0].school_number == "7"

    def test_extra_whitespace_in_name(self):
        entries = prepare_roster({"  Ali   Veli ": {"Okul No": "1"}})
        assert entries[0].name_parts == ("Ali", "Veli")
        assert entries[0].full_name == "  Ali   Veli "

    def test_preserves_order(self):
        roster = {"Zeynep Ak": {"Okul No": "3"}, "Ali Veli": {"Okul No": "1"}, "Can Er": {"Okul No": "2"}}
        assert [e.full_name for e in prepare_roster(roster)] == ["Zeynep Ak", "Ali Veli", "Can Er"]


# ═══════════════════════════════════════════════════════════════════
# Pattern generation
# ═══════════════════════════════════════════════════════════════════


def sep(*tokens: str) -> str:
    return r"\s+".join(tokens)


class TestBuildPatterns:
    def test_two_tokens(self):
        assert build_patterns(["Ali", "Veli"]) == [sep("ali", "veli"), sep("veli", "ali")]

    def test_two_tokens_are_normalised(self):
        assert build_patterns(["Şükrü", "IŞIK"]) == [sep("sukru", "isik"), sep("isik", "sukru")]

    def test_three_tokens_full_permutations_first(self):
        patterns = build_patterns(["Ali", "Veli", "Yılmaz"])
        full = {sep(*p) for p in permutations(["ali", "veli", "yilmaz"])}
        assert set(patterns[:6]) == full
        assert patterns[0] == sep("ali", "veli", "yilmaz")
        assert patterns[1] == sep("yilmaz", "ali", "veli")

    def test_three_tokens_partial_pairs(self):
        patterns = build_patterns(["Ali", "Veli", "Yılmaz"])
        pairs = patterns[6:]
        assert len(pairs) == 6
        assert set(pairs) == {sep(*p) for p in permutations(["ali", "veli", "yilmaz"], 2)}

    def test_four_tokens_order(self):
        patterns = build_patterns(["Ayşe", "Nur", "Kaya", "Demir"])
        assert patterns[0] == sep("ayse", "nur", "kaya", "demir")
        assert patterns[1] == sep("demir", "kaya", "nur", "ayse")
        assert patterns[2] == sep("demir", "ayse", "nur", "kaya")
        # 3 full + 12 ordered pairs + 4 triples * 6 orders
        assert len(patterns) == 39
        assert len(set(patterns)) == 39

    def test_four_tokens_pairs_before_triples(self):
        patterns = build_patterns(["a", "b", "c", "d"])
        token_counts = [p.count(r"\s+") + 1 for p in patterns[3:]]
        assert token_counts == sorted(token_counts)

    def test_single_token(self):
        assert build_patterns(["Ali"]) == ["ali"]

    def test_regex_characters_escaped(self):
        patterns = build_patterns(["A.", "Can"])
        assert patterns[0] == sep(r"a\.", "can")
        assert re.search(patterns[0], "axcan") is None


class TestBuildProfiles:
    def test_profiles_follow_roster_order(self):
        profiles = profiles_for("Ali Veli", "Ayşe Kaya")
        assert [p.full_name for p in profiles] == ["Ali Veli", "Ayşe Kaya"]
        assert [p.school_number for p in profiles] == ["1", "2"]
        assert len(profiles[0].regexes) == len(profiles[0].patterns)


# ═══════════════════════════════════════════════════════════════════
# Page matching
# ═══════════════════════════════════════════════════════════════════


class TestMatchPage:
    def test_two_tokens_both_orders(self):
        profiles = profiles_for("Ali Veli")
        assert match_page("ALI VELI", profiles).student_full_name == "Ali Veli"
        assert match_page("veli ali", profiles).student_full_name == "Ali Veli"

    def test_flexible_whitespace(self):
        profiles = profiles_for("Ali Veli")
        assert match_page("Öğrenci: VELİ\n   ALİ", profiles).matched

    @pytest.mark.parametrize("order", list(permutations(["Ali", "Veli", "Yılmaz"])))
    def test_three_token_permutations(self, order):
        profiles = profiles_for("Ali Veli Yılmaz")
        result = match_page("Ad Soyad: " + " ".join(order).upper(), profiles)
        assert result.student_full_name == "Ali Veli Yılmaz"

    def test_three_token_partial(self):
        profiles = profiles_for("Ali Veli Yılmaz")
        assert match_page("veli yilmaz", profiles).student_full_name == "Ali Veli Yılmaz"

    def test_no_match(self):
        profiles = profiles_for("Ali Veli Yılmaz")
        result = match_page("Matematik sınavı sonuç listesi", profiles)
        assert result == MatchResult()
        assert not result.matched

    def test_empty_text(self):
        profiles = profiles_for("Ali Veli")
        assert not match_page("", profiles).matched
        assert not match_page(None, profiles).matched

    def test_first_match_wins(self):
        profiles = profiles_for("Ayşe Kaya", "Ayşe Kaya Demir")
        result = match_page("AYŞE KAYA DEMİR", profiles)
        assert result.student_full_name == "Ayşe Kaya"
        assert result.school_number == "1"

    def test_first_match_wins_reversed_roster(self):
        profiles = profiles_for("Ayşe Kaya Demir", "Ayşe Kaya")
        assert match_page("AYŞE KAYA DEMİR", profiles).student_full_name == "Ayşe Kaya Demir"

    def test_full_name_tried_before_partial(self):
        profiles = profiles_for("Ali Veli Yılmaz")
        result = match_page("ali veli ... yilmaz ali veli", profiles)
        # "ali veli yilmaz" is absent; "yilmaz ali veli" (2nd full pattern) wins over pair "ali veli"
        assert result.match_span == (13, 28)

    def test_exact_excerpt_when_name_is_whole_page(self):
        profiles = profiles_for("Ali Veli Yılmaz")
        result = match_page("  YILMAZ ALİ VELİ  ", profiles)
        assert result.matched_excerpt == "YILMAZ ALİ VELİ"
        assert result.match_span == (2, 17)

    def test_context_excerpt_from_original_text(self):
        profiles = profiles_for("Ali Veli Yılmaz")
        text = "Sinav sonuc belgesi Ogrenci: YILMAZ ALİ VELİ Sinif 9-A Puan 85"
        result = match_page(text, profiles)
        assert result.matched_excerpt == "Ogrenci: YILMAZ ALİ VELİ Sinif 9-A"

    def test_excerpt_keeps_trailing_combining_dot(self):
        profiles = profiles_for("Ali Veli")
        result = match_page("ALİ VELI\u0307", profiles)
        assert result.matched_excerpt == "ALİ VELI\u0307"

    def test_context_excerpt_keeps_combining_dot(self):
        profiles = profiles_for("Ali Veli")
        text = "Sinav sonuc belgesi: ALI VELI\u0307 Sinif 9-A Puan 85 toplam"
        result = match_page(text, profiles)
        assert result.matched_excerpt == "belgesi: ALI VELI\u0307 Sinif 9-A"
