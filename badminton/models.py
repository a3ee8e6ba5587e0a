from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

DEFAULT_LEVEL = 1500.0

# Training status values
PLANNED = "PLANNED"
IN_PROGRESS = "IN_PROGRESS"
COMPLETED = "COMPLETED"

# Match status values
PENDING = "PENDING"


def utcnow() -> datetime.datetime:
    """Return the current UTC time as a naive datetime, as stored in the database."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime.datetime | None) -> datetime.datetime | None:
    """Convert an aware timestamp to naive UTC; naive values are taken as UTC already."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(datetime.timezone.utc).replace(tzinfo=None)


def pair_key(a: str, b: str) -> Tuple[str, str]:
    """Return the canonical key for an unordered pair of player ids."""
    return (a, b) if a < b else (b, a)


@dataclass(frozen=True)
class Player:
    player_id: str
    name: str
    level: float = DEFAULT_LEVEL
    active: bool = True
    # set per training when the player sits out the rest of the session
    paused: bool = False
    gender: Optional[str] = None


@dataclass(frozen=True)
class MatchResult:
    team1_score: int
    team2_score: int
    winning_team: int
    recorded_at: datetime.datetime = field(default_factory=utcnow)


@dataclass
class ScheduledMatch:
    round: int
    court: int
    team1: Tuple[str, str]
    team2: Tuple[str, str]
    match_id: int | None = None
    result: MatchResult | None = None
    status: str = PENDING

    def __post_init__(self):
        self.team1 = tuple(self.team1)
        self.team2 = tuple(self.team2)
        ids = self.team1 + self.team2
        if len(self.team1) != 2 or len(self.team2) != 2 or len(set(ids)) != 4:
            raise ValueError("A match needs four distinct players, two per team")

    @property
    def player_ids(self) -> Tuple[str, str, str, str]:
        return self.team1 + self.team2

    @property
    def resolved(self) -> bool:
        return self.result is not None


@dataclass
class Round:
    number: int
    matches: List[ScheduledMatch] = field(default_factory=list)
    benched: List[str] = field(default_factory=list)
    # court whose level is closest to each benched player
    bench_courts: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class HistoryEntry:
    """Historical partnership or opposition counter supplied by storage."""

    player_a: str
    player_b: str
    times: int = 0
    last: datetime.datetime | None = None

    @property
    def key(self) -> Tuple[str, str]:
        return pair_key(self.player_a, self.player_b)


@dataclass(frozen=True)
class PartnershipRecord:
    player_a: str
    player_b: str
    times_partnered: int = 0
    last_partnered: datetime.datetime | None = None

    @property
    def key(self) -> Tuple[str, str]:
        return pair_key(self.player_a, self.player_b)


@dataclass(frozen=True)
class OppositionRecord:
    player_a: str
    player_b: str
    times_opposed: int = 0
    last_opposed: datetime.datetime | None = None

    @property
    def key(self) -> Tuple[str, str]:
        return pair_key(self.player_a, self.player_b)


@dataclass(frozen=True)
class PlayerStatistics:
    player_id: str
    total_matches: int = 0
    wins: int = 0
    losses: int = 0
    current_streak: int = 0
    longest_win_streak: int = 0

    @property
    def win_rate(self) -> float:
        if self.total_matches == 0:
            return 0.0
        return self.wins / self.total_matches


@dataclass(frozen=True)
class RatingChange:
    team1_new_ratings: Tuple[float, float]
    team2_new_ratings: Tuple[float, float]
    team1_change: float
    team2_change: float
    winning_team: int


@dataclass
class Training:
    training_id: int | None
    name: str
    date: datetime.date
    courts: int = 1
    matches_per_court: int = 1
    status: str = PLANNED
    # attendee id -> paused flag
    attendees: Dict[str, bool] = field(default_factory=dict)


@dataclass(frozen=True)
class SchedulerSettings:
    """Tunable weights of the fairness cost and the local search."""

    alpha: float = 20.0
    beta: float = 20.0
    recency_weight: float = 1.0
    recency_half_life_days: float = 14.0
    max_swap_attempts: int = 1000
    # subtracted from a match whose two teams are both mixed pairs
    mixed_bonus: float = 50.0
