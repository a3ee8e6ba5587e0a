from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Dict, List, Mapping, Sequence, Tuple

from .exceptions import InvalidResult
from .models import (
    MatchResult,
    OppositionRecord,
    PartnershipRecord,
    PlayerStatistics,
    pair_key,
)


@dataclass(frozen=True)
class StatisticsUpdate:
    """Everything one recorded result changes, to be written atomically."""

    players: Dict[str, PlayerStatistics]
    partnerships: List[PartnershipRecord]
    oppositions: List[OppositionRecord]


def apply_outcome(stats: PlayerStatistics, won: bool) -> PlayerStatistics:
    """Return ``stats`` after one more match with the given outcome."""
    if won:
        streak = stats.current_streak + 1 if stats.current_streak >= 0 else 1
    else:
        streak = stats.current_streak - 1 if stats.current_streak <= 0 else -1
    longest = stats.longest_win_streak
    if streak > 0:
        longest = max(longest, streak)
    return dataclasses.replace(
        stats,
        total_matches=stats.total_matches + 1,
        wins=stats.wins + (1 if won else 0),
        losses=stats.losses + (0 if won else 1),
        current_streak=streak,
        longest_win_streak=longest,
    )


def update_statistics(
    result: MatchResult,
    team1: Sequence[str],
    team2: Sequence[str],
    statistics: Mapping[str, PlayerStatistics] | None = None,
    partnerships: Mapping[Tuple[str, str], PartnershipRecord] | None = None,
    oppositions: Mapping[Tuple[str, str], OppositionRecord] | None = None,
) -> StatisticsUpdate:
    """Fold one match result into the participants' counters.

    Missing records are created on first use. Nothing passed in is
    modified; the caller persists the returned records together.
    """
    statistics = statistics or {}
    partnerships = partnerships or {}
    oppositions = oppositions or {}
    if len(team1) != 2 or len(team2) != 2 or len(set(team1) | set(team2)) != 4:
        raise InvalidResult("A result needs four distinct players, two per team")
    if result.winning_team not in (1, 2):
        raise InvalidResult("Winning team must be 1 or 2")

    when = result.recorded_at
    team1_won = result.winning_team == 1

    players = {}
    for pid in team1:
        players[pid] = apply_outcome(statistics.get(pid) or PlayerStatistics(pid), team1_won)
    for pid in team2:
        players[pid] = apply_outcome(statistics.get(pid) or PlayerStatistics(pid), not team1_won)

    new_partnerships = []
    for a, b in (tuple(team1), tuple(team2)):
        key = pair_key(a, b)
        current = partnerships.get(key) or PartnershipRecord(*key)
        new_partnerships.append(
            PartnershipRecord(
                player_a=key[0],
                player_b=key[1],
                times_partnered=current.times_partnered + 1,
                last_partnered=when,
            )
        )

    new_oppositions = []
    for a in team1:
        for b in team2:
            key = pair_key(a, b)
            current = oppositions.get(key) or OppositionRecord(*key)
            new_oppositions.append(
                OppositionRecord(
                    player_a=key[0],
                    player_b=key[1],
                    times_opposed=current.times_opposed + 1,
                    last_opposed=when,
                )
            )

    return StatisticsUpdate(players, new_partnerships, new_oppositions)
