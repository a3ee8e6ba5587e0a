from __future__ import annotations

import dataclasses
import logging

from .. import storage
from ..models import DEFAULT_LEVEL, Player, PlayerStatistics
from .exceptions import ServiceError
from .helpers import get_player_or_404

logger = logging.getLogger(__name__)

MIN_LEVEL = 0.0
MAX_LEVEL = 5000.0


def _check_level(level: float) -> None:
    if not MIN_LEVEL <= level <= MAX_LEVEL:
        raise ServiceError(f"Level must be between {MIN_LEVEL:.0f} and {MAX_LEVEL:.0f}", 400)


def create_player(
    player_id: str,
    name: str,
    level: float = DEFAULT_LEVEL,
    gender: str | None = None,
) -> Player:
    """Register a new player."""
    if storage.get_player(player_id):
        raise ServiceError("Player already exists", 400)
    _check_level(level)
    player = Player(player_id=player_id, name=name, level=level, gender=gender)
    storage.create_player(player)
    logger.info("Created player %s (%s) at level %.0f", player_id, name, level)
    return player


def update_player(
    player_id: str,
    *,
    name: str | None = None,
    level: float | None = None,
    active: bool | None = None,
    gender: str | None = None,
) -> Player:
    """Change a player's details; ``None`` keeps the current value."""
    player = get_player_or_404(player_id)
    changes = {}
    if name is not None:
        changes["name"] = name
    if level is not None:
        _check_level(level)
        changes["level"] = level
    if active is not None:
        changes["active"] = active
    if gender is not None:
        changes["gender"] = gender
    if not changes:
        return player
    player = dataclasses.replace(player, **changes)
    storage.update_player_record(player)
    logger.info("Updated player %s: %s", player_id, ", ".join(sorted(changes)))
    return player


def list_players(active_only: bool = False) -> list[Player]:
    return storage.list_players(active_only=active_only)


def get_player_statistics(player_id: str) -> PlayerStatistics:
    get_player_or_404(player_id)
    stats = storage.get_statistics([player_id])
    return stats.get(player_id) or PlayerStatistics(player_id)
