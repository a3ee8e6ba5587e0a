from __future__ import annotations

import logging

from .. import storage
from ..config import get_k_factor
from ..exceptions import InvalidResult, SchedulingError
from ..models import COMPLETED, MatchResult, utcnow
from ..rating import record_result, scores_from_winner, validate_scores
from ..stats import update_statistics
from ..storage import transaction
from .exceptions import ServiceError

logger = logging.getLogger(__name__)


def _resolve_scores(team1_score, team2_score, winning_team) -> tuple[int, int]:
    if team1_score is not None and team2_score is not None:
        validate_scores(team1_score, team2_score)
        return team1_score, team2_score
    if winning_team is not None:
        return scores_from_winner(winning_team)
    raise InvalidResult("Either provide scores or specify the winning team")


def record_match_result(
    match_id: int,
    team1_score: int | None = None,
    team2_score: int | None = None,
    winning_team: int | None = None,
) -> dict:
    """Record the result of a scheduled match.

    The new ratings, the result row, the player statistics and the six pair
    counters are written in one transaction. Scores are validated before
    anything is read for writing, so a rejected result changes nothing.
    """
    try:
        score1, score2 = _resolve_scores(team1_score, team2_score, winning_team)
    except SchedulingError as e:
        raise ServiceError(str(e), 400)

    with transaction() as conn:
        match = storage.get_match(match_id, conn=conn)
        if not match:
            raise ServiceError("Match not found", 404)
        if match.resolved:
            raise ServiceError("Match already has a result", 400)

        players = {}
        for pid in match.player_ids:
            player = storage.get_player(pid, conn=conn)
            if player is None:
                raise ServiceError(f"Player '{pid}' not found", 404)
            players[pid] = player

        try:
            change = record_result(
                [players[pid].level for pid in match.team1],
                [players[pid].level for pid in match.team2],
                score1,
                score2,
                k_factor=get_k_factor(),
            )
        except SchedulingError as e:
            raise ServiceError(str(e), 400)

        result = MatchResult(score1, score2, change.winning_team, utcnow())
        ids = list(match.player_ids)
        update = update_statistics(
            result,
            match.team1,
            match.team2,
            storage.get_statistics(ids, conn=conn),
            storage.get_partnerships(ids, conn=conn),
            storage.get_oppositions(ids, conn=conn),
        )

        level_change = {}
        for pid, level in zip(match.team1, change.team1_new_ratings):
            storage.set_player_level(pid, level, conn=conn)
            level_change[pid] = change.team1_change
        for pid, level in zip(match.team2, change.team2_new_ratings):
            storage.set_player_level(pid, level, conn=conn)
            level_change[pid] = change.team2_change
        storage.save_match_result(match_id, result, level_change, conn=conn)
        for stats in update.players.values():
            storage.save_statistics(stats, conn=conn)
        for record in update.partnerships:
            storage.save_partnership(record, conn=conn)
        for record in update.oppositions:
            storage.save_opposition(record, conn=conn)

        training_id = storage.get_match_training_id(match_id, conn=conn)
        training_done = storage.count_unresolved_matches(training_id, conn=conn) == 0
        if training_done:
            storage.set_training_status(training_id, COMPLETED, conn=conn)

    logger.info(
        "Match %s: %d-%d, team %d won, rating change %+d",
        match_id,
        score1,
        score2,
        change.winning_team,
        change.team1_change,
    )
    return {
        "match_id": match_id,
        "team1_score": score1,
        "team2_score": score2,
        "winning_team": change.winning_team,
        "team1_new_ratings": list(change.team1_new_ratings),
        "team2_new_ratings": list(change.team2_new_ratings),
        "level_change": level_change,
        "training_completed": training_done,
    }
