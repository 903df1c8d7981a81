"""
Standings text processing for StandingScan.

Turns free text recognized from a standings screenshot into a dense,
ranked list of teams.

Components:
- Line grammars: rank-first, team-first and bare-team parsers
- Deduplicator / orderer: first-seen wins, rank or win/loss ordering
- Normalizer: truncation, dense ranks, placeholder defaults
- Mock generator: synthetic ranking used when every real source is weak
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple
import json
import logging
import math
import random
import re

log = logging.getLogger(__name__)

MAX_LEAGUE_SIZE = 16
RANK_ORDER_THRESHOLD = 3
MOCK_ROSTER = (
    "Team Alpha",
    "Team Beta",
    "Team Gamma",
    "Team Delta",
    "Team Epsilon",
    "Team Zeta",
    "Team Eta",
    "Team Theta",
)
MOCK_GAMES = 10


# ---------------------------------------------------------------------------
# Data Model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RawLine:
    """A single line of recognized text."""

    source_index: int  # Position in the OCR output
    text: str


@dataclass
class Candidate:
    """A parsed, possibly incomplete team record."""

    source_index: int
    team: str
    rank: Optional[int] = None
    wins: Optional[int] = None
    losses: Optional[int] = None

    @property
    def record(self) -> str:
        if self.wins is None or self.losses is None:
            return ""
        return f"{self.wins}-{self.losses}"


@dataclass(frozen=True)
class RankedEntry:
    """Final output row with a dense 1-based rank."""

    rank: int
    team: str
    record: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"rank": self.rank, "team": self.team, "record": self.record}


class Stage(Enum):
    """Recognition sources, in the order the extractor tries them."""

    REMOTE = "remote"
    LOCAL_OCR = "local_ocr"
    MOCK = "mock"


@dataclass
class StageResult:
    """Tagged outcome of one recognition stage.

    Either a success carrying entries, or a degradation carrying the
    reason the stage was not good enough.
    """

    stage: Stage
    entries: List[RankedEntry] = field(default_factory=list)
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.reason is None

    @classmethod
    def success(cls, stage: Stage, entries: List[RankedEntry]) -> "StageResult":
        return cls(stage=stage, entries=list(entries))

    @classmethod
    def degraded(cls, stage: Stage, reason: str) -> "StageResult":
        return cls(stage=stage, reason=reason)


@dataclass
class ExtractionResult:
    """Ranking handed back to the caller.

    Never empty: when no real source is usable the mock roster fills in.
    ``degraded`` keeps the reasons earlier stages were skipped, in order.
    """

    entries: List[RankedEntry]
    source: Stage
    season: str = ""
    degraded: List[Tuple[Stage, str]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[RankedEntry]:
        return iter(self.entries)

    def __getitem__(self, index: int) -> RankedEntry:
        return self.entries[index]

    @property
    def is_mock(self) -> bool:
        return self.source is Stage.MOCK

    def to_dict(self) -> Dict[str, Any]:
        """Debug payload, same shape the remote service returns."""
        return {
            "season": self.season,
            "source": self.source.value,
            "rankings": [e.to_dict() for e in self.entries],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


# ---------------------------------------------------------------------------
# Line Grammars
# ---------------------------------------------------------------------------

_TEAM_CHARS = r"[A-Za-z0-9'&()\. ]"
_RECORD = r"\(?([0-9]{1,2})\s*[-–]\s*([0-9]{1,2})\)?"

_RANK_FIRST_RE = re.compile(
    r"^(\d+)(?:st|nd|rd|th)?[\.)\-\s]+(" + _TEAM_CHARS + r"+?)(?:\s*" + _RECORD + r")?$"
)
_TEAM_FIRST_RE = re.compile(r"^(" + _TEAM_CHARS + r"+?)\s*" + _RECORD + r"$")
_BARE_TEAM_RE = re.compile(r"^[A-Za-z]" + _TEAM_CHARS + r"{4,}$")

_NOISE_PATTERNS = (
    re.compile(r"^rank\b", re.IGNORECASE),
    re.compile(r"^team\b", re.IGNORECASE),
    re.compile(r"standings", re.IGNORECASE),
)
_WHITESPACE_RE = re.compile(r"\s+")


def _opt_int(value: Optional[str]) -> Optional[int]:
    return int(value) if value is not None else None


def parse_rank_first(line: RawLine) -> Optional[Candidate]:
    """``1st. Team Name (8-2)``; the record is optional."""
    m = _RANK_FIRST_RE.match(line.text)
    if not m:
        return None
    team = m.group(2).strip()
    if not team:
        return None
    rank = int(m.group(1))
    return Candidate(
        source_index=line.source_index,
        team=team,
        rank=rank or None,  # "0." is not a placing
        wins=_opt_int(m.group(3)),
        losses=_opt_int(m.group(4)),
    )


def parse_team_first(line: RawLine) -> Optional[Candidate]:
    """``Team Name 8-2`` with no leading rank."""
    m = _TEAM_FIRST_RE.match(line.text)
    if not m:
        return None
    team = m.group(1).strip()
    if not team:
        return None
    return Candidate(
        source_index=line.source_index,
        team=team,
        wins=int(m.group(2)),
        losses=int(m.group(3)),
    )


def parse_bare_team(line: RawLine) -> Optional[Candidate]:
    """Letter-led line of team-name characters, at least 5 long."""
    if not _BARE_TEAM_RE.match(line.text):
        return None
    return Candidate(source_index=line.source_index, team=line.text.strip())


Grammar = Callable[[RawLine], Optional[Candidate]]

GRAMMARS: Tuple[Grammar, ...] = (parse_rank_first, parse_team_first, parse_bare_team)


def is_noise_line(text: str) -> bool:
    """Header rows and titles that never name a team."""
    return any(p.search(text) for p in _NOISE_PATTERNS)


def split_lines(text: str) -> List[RawLine]:
    """
    Clean recognized text into candidate lines.

    Whitespace runs collapse to one space, lines are trimmed, and empty
    or header lines are dropped. Each kept line remembers its original
    position for later tie-breaking.
    """
    lines = []
    for idx, raw in enumerate((text or "").splitlines()):
        cleaned = _WHITESPACE_RE.sub(" ", raw).strip()
        if not cleaned or is_noise_line(cleaned):
            continue
        lines.append(RawLine(source_index=idx, text=cleaned))
    return lines


def parse_lines(
    lines: Sequence[RawLine],
    grammars: Sequence[Grammar] = GRAMMARS,
) -> List[Candidate]:
    """Apply grammars in order to each line, keeping the first match."""
    candidates = []
    for line in lines:
        for grammar in grammars:
            candidate = grammar(line)
            if candidate is not None:
                log.debug("%s matched %r -> %s", grammar.__name__, line.text, candidate)
                candidates.append(candidate)
                break
    return candidates


def parse_text(text: str) -> List[Candidate]:
    """Recognized text -> candidates, in source order."""
    return parse_lines(split_lines(text))


# ---------------------------------------------------------------------------
# Deduplication and Ordering
# ---------------------------------------------------------------------------


def deduplicate(candidates: Sequence[Candidate]) -> List[Candidate]:
    """Keep the first candidate per team name, compared case-insensitively."""
    seen: Dict[str, Candidate] = {}
    for c in sorted(candidates, key=lambda c: c.source_index):
        key = c.team.lower()
        if key and key not in seen:
            seen[key] = c
    return list(seen.values())


def _rank_key(c: Candidate) -> Tuple[bool, int, int]:
    return (c.rank is None, c.rank or 0, c.source_index)


def _record_key(c: Candidate) -> Tuple[bool, int, bool, int, int]:
    # Missing wins and missing losses both sort last
    return (
        c.wins is None,
        -(c.wins or 0),
        c.losses is None,
        c.losses or 0,
        c.source_index,
    )


def order_candidates(
    candidates: Sequence[Candidate],
    rank_order_threshold: int = RANK_ORDER_THRESHOLD,
) -> List[Candidate]:
    """
    Order candidates for ranking.

    When at least ``rank_order_threshold`` candidates carry an explicit
    rank, the rank column is trusted. Otherwise the order is rebuilt from
    wins (desc) and losses (asc). Source position breaks every tie.

    Args:
        candidates: Deduplicated candidates
        rank_order_threshold: Ranked candidates needed to trust the rank column

    Returns:
        New, ordered list
    """
    ranked = sum(1 for c in candidates if c.rank is not None)
    if ranked >= rank_order_threshold:
        return sorted(candidates, key=_rank_key)
    return sorted(candidates, key=_record_key)


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def normalize(
    candidates: Sequence[Candidate],
    max_entries: int = MAX_LEAGUE_SIZE,
) -> List[RankedEntry]:
    """Truncate, assign dense ranks and fill placeholder values."""
    entries = []
    for i, c in enumerate(candidates[:max_entries]):
        position = i + 1
        entries.append(
            RankedEntry(
                rank=position,
                team=c.team or f"Team {position}",
                record=c.record,
            )
        )
    return entries


def parse_standings(
    text: str,
    rank_order_threshold: int = RANK_ORDER_THRESHOLD,
    max_entries: int = MAX_LEAGUE_SIZE,
) -> List[RankedEntry]:
    """
    Full text path: grammars, deduplication, ordering, normalization.

    Args:
        text: Raw recognized text (may be empty)
        rank_order_threshold: See ``order_candidates``
        max_entries: Maximum league size

    Returns:
        Ranked entries, possibly empty
    """
    candidates = deduplicate(parse_text(text))
    entries = normalize(order_candidates(candidates, rank_order_threshold), max_entries)
    log.info(
        "Parsed %d teams: %s",
        len(entries),
        ", ".join(f"{e.rank}. {e.team} {e.record}".strip() for e in entries[:12]),
    )
    return entries


def _coerce_rank(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        rank = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(rank):
        return None
    return int(rank)


def normalize_rankings(
    rankings: Sequence[Dict[str, Any]],
    max_entries: int = MAX_LEAGUE_SIZE,
) -> List[RankedEntry]:
    """
    Normalize ranking dicts from an external source.

    Items are sorted by their numeric ``rank`` (list position when it is
    missing or not a number), then re-ranked densely. Missing teams become
    ``Team N`` and missing records become empty strings. Every item must
    be a mapping.
    """
    keyed = []
    for i, item in enumerate(rankings):
        rank = _coerce_rank(item.get("rank"))
        keyed.append((rank if rank is not None else i + 1, i, item))
    keyed.sort(key=lambda k: (k[0], k[1]))

    entries = []
    for pos, (_, _, item) in enumerate(keyed[:max_entries], start=1):
        team = str(item.get("team") or "").strip() or f"Team {pos}"
        record = str(item.get("record") or "").strip()
        entries.append(RankedEntry(rank=pos, team=team, record=record))
    return entries


# ---------------------------------------------------------------------------
# Mock Generator
# ---------------------------------------------------------------------------


def generate_mock_rankings(
    rng: Optional[random.Random] = None,
    roster: Sequence[str] = MOCK_ROSTER,
    games: int = MOCK_GAMES,
) -> List[RankedEntry]:
    """
    Synthesize a plausible ranking.

    Each team gets a random win count in ``[1, games]`` and
    ``games - wins`` losses, then teams are ordered by wins (stable).

    Args:
        rng: Random source, pass a seeded one for reproducible output
        roster: Placeholder team names
        games: Games played per team

    Returns:
        Ranked entries, one per roster name
    """
    rng = rng or random.Random()
    teams = []
    for name in roster:
        wins = rng.randint(1, games)
        teams.append((name, wins, games - wins))
    teams.sort(key=lambda t: -t[1])
    return [
        RankedEntry(rank=i + 1, team=name, record=f"{wins}-{losses}")
        for i, (name, wins, losses) in enumerate(teams)
    ]
