from __future__ import annotations

import dataclasses
import datetime
import logging
from typing import Iterable, List, Sequence

from .. import storage
from ..config import get_scheduler_settings
from ..exceptions import InvalidConfiguration, InvalidResult, SchedulingError
from ..models import COMPLETED, DEFAULT_LEVEL, IN_PROGRESS, Round, ScheduledMatch, Training, utcnow
from ..scheduler import assign_bench_courts, schedule
from ..storage import transaction
from .exceptions import ServiceError
from .helpers import get_player_or_404, get_training_or_404

logger = logging.getLogger(__name__)


def create_training(
    name: str,
    date: datetime.date,
    courts: int,
    matches_per_court: int,
    player_ids: Iterable[str] = (),
) -> Training:
    """Create a training session with its attending players."""
    if courts < 1 or matches_per_court < 1:
        raise ServiceError("Courts and matches per court must be at least 1", 400)
    attendees = {}
    for pid in player_ids:
        get_player_or_404(pid)
        attendees[pid] = False
    training = Training(
        training_id=None,
        name=name,
        date=date,
        courts=courts,
        matches_per_court=matches_per_court,
        attendees=attendees,
    )
    storage.create_training(training)
    logger.info("Created training %s with %d players", training.training_id, len(attendees))
    return training


def _roster(training: Training, conn) -> list:
    roster = []
    for pid, paused in training.attendees.items():
        player = storage.get_player(pid, conn=conn)
        if player is None:
            continue
        roster.append(dataclasses.replace(player, paused=paused))
    return roster


def _next_round(training: Training, conn) -> tuple[int, int]:
    """Return the first round to schedule and how many rounds are left.

    Rounds that already hold a result keep their numbers; the new rounds
    follow the last of them. A completed training has no rounds left.
    """
    existing = storage.list_matches(training.training_id, conn=conn)
    first_round = max((m.round for m in existing if m.resolved), default=0) + 1
    if training.status == COMPLETED:
        return first_round, 0
    return first_round, max(0, training.matches_per_court - (first_round - 1))


def _regenerate(training: Training, conn) -> List[Round]:
    """Schedule the remaining rounds again and replace unresolved matches."""
    first_round, remaining = _next_round(training, conn)
    if remaining < 1:
        raise ServiceError("Training has no rounds left to schedule", 400)
    roster = _roster(training, conn)
    ids = [p.player_id for p in roster]
    try:
        rounds = schedule(
            roster,
            training.courts,
            remaining,
            storage.load_partnership_history(ids, conn=conn),
            storage.load_opposition_history(ids, conn=conn),
            as_of=utcnow(),
            settings=get_scheduler_settings(),
            first_round=first_round,
        )
    except SchedulingError as e:
        raise ServiceError(str(e), 400)
    deleted = storage.replace_unresolved_matches(training.training_id, rounds, conn)
    storage.set_training_status(training.training_id, IN_PROGRESS, conn=conn)
    logger.info(
        "Training %s: replaced %d unresolved matches with %d rounds starting at round %d",
        training.training_id,
        deleted,
        len(rounds),
        first_round,
    )
    return rounds


def generate_training_matches(training_id: int) -> List[Round]:
    """Generate (or regenerate) the schedule of a training atomically."""
    with transaction() as conn:
        training = storage.get_training(training_id, conn=conn)
        if not training:
            raise ServiceError("Training not found", 404)
        return _regenerate(training, conn)


def add_attendee(training_id: int, player_id: str) -> Training:
    training = get_training_or_404(training_id)
    get_player_or_404(player_id)
    if player_id in training.attendees:
        raise ServiceError("Player already attends this training", 400)
    storage.set_attendee(training_id, player_id, False)
    training.attendees[player_id] = False
    return training


def set_attendee_paused(training_id: int, player_id: str, paused: bool) -> Training:
    """Pause or resume a player for the rest of a training.

    A training that already has a schedule with rounds left is regenerated
    in the same transaction, so the pause either takes effect everywhere or
    not at all. Finished trainings only record the flag.
    """
    with transaction() as conn:
        training = storage.get_training(training_id, conn=conn)
        if not training:
            raise ServiceError("Training not found", 404)
        if player_id not in training.attendees:
            raise ServiceError("Player does not attend this training", 404)
        storage.set_attendee(training_id, player_id, paused, conn=conn)
        training.attendees[player_id] = paused
        if storage.list_matches(training_id, conn=conn) and _next_round(training, conn)[1] > 0:
            _regenerate(training, conn)
    logger.info("Player %s %s in training %s", player_id, "paused" if paused else "resumed", training_id)
    return training


def _check_edit(training: Training, match: ScheduledMatch, updated: ScheduledMatch, conn) -> None:
    """Refuse new teams that cannot take the court in this round."""
    if match.resolved:
        raise InvalidResult("Cannot edit a completed match")
    for pid in updated.player_ids:
        if pid not in training.attendees:
            raise InvalidConfiguration(f"Player '{pid}' does not attend this training")
        if training.attendees[pid]:
            raise InvalidConfiguration(f"Player '{pid}' is paused")
        player = storage.get_player(pid, conn=conn)
        if player is None or not player.active:
            raise InvalidConfiguration(f"Player '{pid}' is not active")
    busy = set()
    for other in storage.list_matches(training.training_id, conn=conn):
        if other.round == match.round and other.match_id != match.match_id:
            busy.update(other.player_ids)
    if busy & set(updated.player_ids):
        raise InvalidConfiguration("One or more players already play another match in the same round")


def update_match_players(
    training_id: int,
    match_id: int,
    team1: Sequence[str],
    team2: Sequence[str],
) -> ScheduledMatch:
    """Replace the players of a scheduled match that has no result yet.

    Players taken out of the match sit on the bench for that round and
    benched players brought in leave it, all in one transaction.
    """
    with transaction() as conn:
        training = storage.get_training(training_id, conn=conn)
        if not training:
            raise ServiceError("Training not found", 404)
        match = storage.get_match(match_id, conn=conn)
        if not match or storage.get_match_training_id(match_id, conn=conn) != training_id:
            raise ServiceError("Match not found", 404)
        try:
            try:
                updated = dataclasses.replace(match, team1=tuple(team1), team2=tuple(team2))
            except ValueError as e:
                raise InvalidConfiguration(str(e))
            _check_edit(training, match, updated, conn)
            if not storage.update_match_players(updated, conn=conn):
                raise InvalidResult("Cannot edit a completed match")
        except SchedulingError as e:
            raise ServiceError(str(e), 400)

        incoming = set(updated.player_ids) - set(match.player_ids)
        outgoing = set(match.player_ids) - set(updated.player_ids)
        if incoming or outgoing:
            round_matches = [m for m in storage.list_matches(training_id, conn=conn) if m.round == match.round]
            ratings = {}
            for m in round_matches:
                for pid in m.player_ids:
                    ratings[pid] = storage.get_player(pid, conn=conn).level
            for pid in outgoing:
                player = storage.get_player(pid, conn=conn)
                ratings[pid] = player.level if player else DEFAULT_LEVEL
            courts = assign_bench_courts(outgoing, round_matches, ratings)
            storage.move_bench_entries(
                training_id,
                match.round,
                {pid: courts.get(pid) for pid in outgoing},
                incoming,
                conn,
            )
    logger.info("Match %s players changed to %s vs %s", match_id, updated.team1, updated.team2)
    return updated


def get_training_schedule(training_id: int) -> dict:
    """Return the training with its matches grouped by round."""
    training = get_training_or_404(training_id)
    matches = storage.list_matches(training_id)
    bench = storage.list_bench_entries(training_id)
    rounds: dict[int, dict] = {}
    for m in matches:
        entry = rounds.setdefault(m.round, {"round": m.round, "matches": [], "benched": [], "bench_courts": {}})
        entry["matches"].append(match_to_dict(m))
    for number, players in bench.items():
        entry = rounds.setdefault(number, {"round": number, "matches": [], "benched": [], "bench_courts": {}})
        entry["benched"] = sorted(players)
        entry["bench_courts"] = {pid: court for pid, court in players.items() if court is not None}
    return {
        "training_id": training.training_id,
        "name": training.name,
        "date": training.date.isoformat(),
        "courts": training.courts,
        "matches_per_court": training.matches_per_court,
        "status": training.status,
        "players": [{"player_id": pid, "paused": paused} for pid, paused in training.attendees.items()],
        "rounds": [rounds[k] for k in sorted(rounds)],
    }


def match_to_dict(m: ScheduledMatch) -> dict:
    entry = {
        "match_id": m.match_id,
        "round": m.round,
        "court": m.court,
        "team1": list(m.team1),
        "team2": list(m.team2),
        "status": m.status,
        "result": None,
    }
    if m.result:
        entry["result"] = {
            "team1_score": m.result.team1_score,
            "team2_score": m.result.team2_score,
            "winning_team": m.result.winning_team,
        }
    return entry
