from __future__ import annotations

import logging
from typing import Iterable, List

from .exceptions import InsufficientPlayers, InvalidConfiguration, UnknownPlayerReference
from .models import HistoryEntry, Player

logger = logging.getLogger(__name__)

MIN_PLAYERS = 4


def normalize_roster(players: Iterable[Player]) -> List[Player]:
    """Return the eligible players ordered by id.

    Inactive and paused players are dropped. The id ordering feeds every
    later tie-break of the scheduler.
    """
    seen = set()
    eligible = []
    for p in players:
        if p.player_id in seen:
            raise InvalidConfiguration(f"Duplicate player '{p.player_id}' in roster")
        seen.add(p.player_id)
        if p.active and not p.paused:
            eligible.append(p)
    if len(eligible) < MIN_PLAYERS:
        raise InsufficientPlayers(len(eligible))
    eligible.sort(key=lambda p: p.player_id)
    return eligible


def filter_history(entries: Iterable[HistoryEntry], roster_ids) -> List[HistoryEntry]:
    """Drop history entries mentioning players outside ``roster_ids``."""
    ids = set(roster_ids)
    kept = []
    for entry in entries:
        if entry.player_a in ids and entry.player_b in ids:
            kept.append(entry)
            continue
        logger.debug("%s", UnknownPlayerReference(entry.player_a, entry.player_b))
    return kept
