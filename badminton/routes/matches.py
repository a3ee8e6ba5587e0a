import datetime

from fastapi import APIRouter
from pydantic import BaseModel, StrictInt

from ..config import get_scheduler_settings
from ..exceptions import SchedulingError
from ..models import DEFAULT_LEVEL, HistoryEntry, Player, to_naive_utc
from ..scheduler import schedule, schedule_to_dict
from ..services.exceptions import ServiceError
from ..services.matches import record_match_result
from ..services.stats import get_rankings, club_overview

router = APIRouter()


class ResultSubmit(BaseModel):
    team1_score: StrictInt | None = None
    team2_score: StrictInt | None = None
    winning_team: StrictInt | None = None


class RosterPlayer(BaseModel):
    id: str
    rating: float = DEFAULT_LEVEL
    gender: str | None = None


class PairHistory(BaseModel):
    player_a: str
    player_b: str
    times: int = 0
    last: datetime.datetime | None = None


class ScheduleRequest(BaseModel):
    players: list[RosterPlayer]
    courts: int
    rounds_per_court: int
    partnership_history: list[PairHistory] = []
    opposition_history: list[PairHistory] = []


def _history(entries: list[PairHistory]) -> list[HistoryEntry]:
    return [HistoryEntry(e.player_a, e.player_b, e.times, to_naive_utc(e.last)) for e in entries]


@router.post("/matches/{match_id}/result")
def submit_result(match_id: int, data: ResultSubmit):
    result = record_match_result(
        match_id,
        team1_score=data.team1_score,
        team2_score=data.team2_score,
        winning_team=data.winning_team,
    )
    return {"status": "ok", **result}


@router.post("/schedule")
def schedule_roster(data: ScheduleRequest):
    players = [Player(player_id=p.id, name=p.id, level=p.rating, gender=p.gender) for p in data.players]
    try:
        rounds = schedule(
            players,
            data.courts,
            data.rounds_per_court,
            _history(data.partnership_history),
            _history(data.opposition_history),
            settings=get_scheduler_settings(),
        )
    except SchedulingError as e:
        raise ServiceError(str(e), 400)
    return {"rounds": schedule_to_dict(rounds)}


@router.get("/statistics/rankings")
def rankings(sort_by: str = "level", active_only: bool = False):
    return get_rankings(sort_by, active_only)


@router.get("/statistics/overview")
def overview():
    return club_overview()
