"""Tests for standings text parsing, ordering and normalization."""

import random

import pytest

from standingscan.standings import (
    MOCK_ROSTER,
    Candidate,
    ExtractionResult,
    RankedEntry,
    RawLine,
    Stage,
    StageResult,
    deduplicate,
    generate_mock_rankings,
    is_noise_line,
    normalize,
    normalize_rankings,
    order_candidates,
    parse_bare_team,
    parse_lines,
    parse_rank_first,
    parse_standings,
    parse_team_first,
    parse_text,
    split_lines,
)


def line(text, idx=0):
    return RawLine(source_index=idx, text=text)


# ---------------------------------------------------------------------------
# Line cleanup
# ---------------------------------------------------------------------------


class TestSplitLines:
    def test_collapses_whitespace_and_trims(self):
        lines = split_lines("  1.   Dragons\t\t(8-2)  \n")
        assert lines == [RawLine(0, "1. Dragons (8-2)")]

    def test_drops_empty_and_header_lines(self):
        text = "Rank Team W-L\n\n   \nTEAM STANDINGS\nLeague standings 2025\n1. Dragons"
        lines = split_lines(text)
        assert [l.text for l in lines] == ["1. Dragons"]

    def test_keeps_original_positions(self):
        lines = split_lines("Rank\n\n1. Dragons\nSharks 6-4")
        assert [l.source_index for l in lines] == [2, 3]

    def test_team_prefix_needs_word_boundary(self):
        """'Teammates' is a team name, not a 'team' header."""
        assert not is_noise_line("Teammates United")
        assert is_noise_line("team w-l")
        assert is_noise_line("RANK")

    def test_empty_text(self):
        assert split_lines("") == []
        assert split_lines(None) == []


# ---------------------------------------------------------------------------
# Grammars
# ---------------------------------------------------------------------------


class TestRankFirstGrammar:
    def test_full_line(self):
        c = parse_rank_first(line("1. Dragons (8-2)", 4))
        assert c == Candidate(source_index=4, team="Dragons", rank=1, wins=8, losses=2)
        assert c.record == "8-2"

    def test_ordinal_suffix_and_en_dash(self):
        c = parse_rank_first(line("2nd Sharks 6–4"))
        assert (c.rank, c.team, c.wins, c.losses) == (2, "Sharks", 6, 4)

    def test_record_optional(self):
        c = parse_rank_first(line("3) Bears"))
        assert (c.rank, c.team, c.wins, c.losses) == (3, "Bears", None, None)
        assert c.record == ""

    def test_team_with_punctuation(self):
        c = parse_rank_first(line("10. St. Mary's & Co (10-0)"))
        assert c.rank == 10
        assert c.team == "St. Mary's & Co"
        assert (c.wins, c.losses) == (10, 0)

    def test_requires_leading_number(self):
        assert parse_rank_first(line("Dragons (8-2)")) is None

    def test_rejects_other_characters(self):
        assert parse_rank_first(line("1. Dragons! (8-2)")) is None

    def test_zero_rank_kept_as_unranked(self):
        c = parse_rank_first(line("0. Foo (3-1)"))
        assert (c.rank, c.team, c.wins, c.losses) == (None, "Foo", 3, 1)

    def test_zero_rank_does_not_sort_first(self):
        text = "1. Dragons\n2. Sharks\n0. Foo (3-1)\n3. Bears"
        assert [e.team for e in parse_standings(text)] == ["Dragons", "Sharks", "Bears", "Foo"]


class TestTeamFirstGrammar:
    def test_parenthesized_record(self):
        c = parse_team_first(line("Wolves (5-5)", 2))
        assert c == Candidate(source_index=2, team="Wolves", wins=5, losses=5)

    def test_bare_record(self):
        c = parse_team_first(line("Red Hawks 7 - 3"))
        assert (c.team, c.wins, c.losses) == ("Red Hawks", 7, 3)
        assert c.rank is None

    def test_needs_record(self):
        assert parse_team_first(line("Red Hawks")) is None


class TestBareTeamGrammar:
    def test_accepts_name(self):
        c = parse_bare_team(line("Tigers Club", 5))
        assert c == Candidate(source_index=5, team="Tigers Club")

    def test_too_short(self):
        assert parse_bare_team(line("Abcd")) is None

    def test_must_start_with_letter(self):
        assert parse_bare_team(line("12345")) is None

    def test_rejects_symbols(self):
        assert parse_bare_team(line("Hello!")) is None


class TestParseLines:
    def test_first_matching_grammar_wins(self):
        candidates = parse_lines([line("1. Dragons 8-2", 0), line("Sharks 6-4", 1), line("Bears Den", 2)])
        assert candidates[0].rank == 1
        assert candidates[1].rank is None and candidates[1].wins == 6
        assert candidates[2].wins is None

    def test_unmatched_lines_dropped(self):
        assert parse_lines([line("12345"), line("@@@"), line("W!")]) == []

    def test_well_formed_lines_with_noise(self):
        text = (
            "1st.  Dragons   (8-2)\n"
            "2nd. Sharks\t(7-3)\n"
            "3rd. Bears (5-5)\n"
            "4th.    Wolves (2-8)\n"
        )
        candidates = parse_text(text)
        assert len(candidates) == 4
        assert [(c.team, c.wins, c.losses) for c in candidates] == [
            ("Dragons", 8, 2),
            ("Sharks", 7, 3),
            ("Bears", 5, 5),
            ("Wolves", 2, 8),
        ]
        assert [c.rank for c in candidates] == [1, 2, 3, 4]


# ---------------------------------------------------------------------------
# Deduplication and ordering
# ---------------------------------------------------------------------------


class TestDeduplicate:
    def test_keeps_first_occurrence(self):
        candidates = [
            Candidate(0, "Sharks", wins=6, losses=4),
            Candidate(1, "Dragons", wins=8, losses=2),
            Candidate(2, "SHARKS", wins=3, losses=7),
        ]
        result = deduplicate(candidates)
        assert [c.team for c in result] == ["Sharks", "Dragons"]
        assert result[0].wins == 6

    def test_first_by_source_position(self):
        candidates = [Candidate(5, "sharks", wins=1, losses=9), Candidate(1, "Sharks", wins=6, losses=4)]
        result = deduplicate(candidates)
        assert len(result) == 1
        assert result[0].source_index == 1


class TestOrdering:
    def test_wins_descending_ties_by_position(self):
        candidates = [Candidate(i, f"T{i}", wins=w, losses=10 - w) for i, w in enumerate([3, 7, 7, 1])]
        ordered = order_candidates(candidates)
        assert [c.source_index for c in ordered] == [1, 2, 0, 3]

    def test_missing_wins_sort_last(self):
        candidates = [Candidate(0, "NoRecord"), Candidate(1, "Winless", wins=0, losses=5)]
        assert [c.team for c in order_candidates(candidates)] == ["Winless", "NoRecord"]

    def test_losses_break_win_ties(self):
        candidates = [
            Candidate(0, "A", wins=5, losses=3),
            Candidate(1, "B", wins=5, losses=1),
            Candidate(2, "C", wins=5),
        ]
        assert [c.team for c in order_candidates(candidates)] == ["B", "A", "C"]

    def test_rank_order_when_enough_ranks(self):
        candidates = [
            Candidate(0, "A", rank=3, wins=9, losses=1),
            Candidate(1, "B", rank=1, wins=2, losses=8),
            Candidate(2, "C"),
            Candidate(3, "D", rank=2),
        ]
        assert [c.team for c in order_candidates(candidates)] == ["B", "D", "A", "C"]

    def test_duplicate_ranks_tie_by_position(self):
        candidates = [
            Candidate(0, "A", rank=2),
            Candidate(1, "B", rank=1),
            Candidate(2, "C", rank=2),
        ]
        assert [c.team for c in order_candidates(candidates)] == ["B", "A", "C"]

    def test_too_few_ranks_uses_records(self):
        candidates = [
            Candidate(0, "A", rank=1, wins=2, losses=8),
            Candidate(1, "B", rank=2, wins=9, losses=1),
            Candidate(2, "C", wins=5, losses=5),
        ]
        assert [c.team for c in order_candidates(candidates)] == ["B", "C", "A"]

    def test_threshold_is_configurable(self):
        candidates = [
            Candidate(0, "A", rank=1, wins=2, losses=8),
            Candidate(1, "B", rank=2, wins=9, losses=1),
        ]
        assert [c.team for c in order_candidates(candidates, rank_order_threshold=2)] == ["A", "B"]
        assert [c.team for c in order_candidates(candidates, rank_order_threshold=5)] == ["B", "A"]


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


class TestNormalize:
    def test_dense_ranks_and_truncation(self):
        candidates = [Candidate(i, f"Team{i}", rank=i * 3) for i in range(20)]
        entries = normalize(candidates)
        assert len(entries) == 16
        assert [e.rank for e in entries] == list(range(1, 17))

    def test_placeholder_team_and_record(self):
        entries = normalize([Candidate(0, "Dragons", wins=8, losses=2), Candidate(1, "", wins=3)])
        assert entries[0] == RankedEntry(1, "Dragons", "8-2")
        assert entries[1] == RankedEntry(2, "Team 2", "")

    def test_sparse_and_duplicate_ranks(self):
        text = "9. Alpha\n9. Bravo\n2. Charlie\n40. Delta"
        entries = parse_standings(text)
        assert [e.team for e in entries] == ["Charlie", "Alpha", "Bravo", "Delta"]
        assert [e.rank for e in entries] == [1, 2, 3, 4]

    def test_header_and_duplicate_collapsed(self):
        text = "1. Dragons (8-2)\n2. Sharks (6-4)\nTEAM STANDINGS\n3. Sharks (6-4)"
        assert parse_standings(text) == [
            RankedEntry(rank=1, team="Dragons", record="8-2"),
            RankedEntry(rank=2, team="Sharks", record="6-4"),
        ]

    def test_unparseable_text(self):
        assert parse_standings("@@@\n!!\n123") == []


class TestNormalizeRankings:
    def test_sorted_by_given_rank(self):
        rankings = [
            {"rank": 2, "team": "Bravo", "record": "5-5"},
            {"rank": 1, "team": "Alpha"},
            {"team": ""},
        ]
        assert normalize_rankings(rankings) == [
            RankedEntry(1, "Alpha", ""),
            RankedEntry(2, "Bravo", "5-5"),
            RankedEntry(3, "Team 3", ""),
        ]

    def test_non_numeric_rank_uses_position(self):
        rankings = [{"rank": "first", "team": "A"}, {"rank": "1", "team": "B"}, {"rank": True, "team": "C"}]
        entries = normalize_rankings(rankings)
        assert [e.team for e in entries] == ["A", "B", "C"]
        assert [e.rank for e in entries] == [1, 2, 3]

    def test_truncates(self):
        rankings = [{"rank": i, "team": f"T{i}"} for i in range(1, 30)]
        assert len(normalize_rankings(rankings, max_entries=12)) == 12


# ---------------------------------------------------------------------------
# Mock generator and results
# ---------------------------------------------------------------------------


class TestMockRankings:
    def test_shape(self):
        entries = generate_mock_rankings(random.Random(42))
        assert len(entries) == 8
        assert [e.rank for e in entries] == list(range(1, 9))
        assert {e.team for e in entries} == set(MOCK_ROSTER)

        wins = []
        for e in entries:
            w, l = (int(x) for x in e.record.split("-"))
            assert 1 <= w <= 10
            assert w + l == 10
            wins.append(w)
        assert wins == sorted(wins, reverse=True)

    def test_reproducible_with_seed(self):
        assert generate_mock_rankings(random.Random(7)) == generate_mock_rankings(random.Random(7))


class TestResults:
    def test_stage_result_tags(self):
        ok = StageResult.success(Stage.REMOTE, [RankedEntry(1, "A")])
        bad = StageResult.degraded(Stage.LOCAL_OCR, "too few teams")
        assert ok.ok and ok.reason is None
        assert not bad.ok and bad.entries == []

    def test_extraction_result_payload(self):
        result = ExtractionResult(
            entries=[RankedEntry(1, "Dragons", "8-2"), RankedEntry(2, "Sharks")],
            source=Stage.LOCAL_OCR,
            season="2025",
        )
        assert len(result) == 2
        assert result[0].team == "Dragons"
        assert not result.is_mock
        assert result.to_dict() == {
            "season": "2025",
            "source": "local_ocr",
            "rankings": [
                {"rank": 1, "team": "Dragons", "record": "8-2"},
                {"rank": 2, "team": "Sharks", "record": ""},
            ],
        }
        assert '"Dragons"' in result.to_json()
