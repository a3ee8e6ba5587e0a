import datetime

from fastapi import APIRouter
from pydantic import BaseModel, Field

from ..scheduler import schedule_to_dict
from ..services.trainings import (
    create_training as svc_create_training,
    add_attendee,
    set_attendee_paused,
    generate_training_matches,
    update_match_players as svc_update_match_players,
    get_training_schedule,
    match_to_dict,
)

router = APIRouter()


class TrainingCreate(BaseModel):
    name: str
    date: datetime.date = Field(default_factory=datetime.date.today)
    courts: int = 1
    matches_per_court: int = 1
    player_ids: list[str] = []


class AttendeeAdd(BaseModel):
    player_id: str


class AttendeeUpdate(BaseModel):
    paused: bool


class MatchPlayersUpdate(BaseModel):
    team1: list[str]
    team2: list[str]


@router.post("/trainings")
def create_training(data: TrainingCreate):
    training = svc_create_training(
        data.name,
        data.date,
        data.courts,
        data.matches_per_court,
        data.player_ids,
    )
    return {"status": "ok", "training_id": training.training_id}


@router.get("/trainings/{training_id}")
def get_training(training_id: int):
    return get_training_schedule(training_id)


@router.post("/trainings/{training_id}/players")
def add_training_player(training_id: int, data: AttendeeAdd):
    add_attendee(training_id, data.player_id)
    return {"status": "ok"}


@router.patch("/trainings/{training_id}/players/{player_id}")
def update_training_player(training_id: int, player_id: str, data: AttendeeUpdate):
    set_attendee_paused(training_id, player_id, data.paused)
    return {"status": "ok"}


@router.post("/trainings/{training_id}/matches")
def generate_matches(training_id: int):
    rounds = generate_training_matches(training_id)
    return {
        "status": "ok",
        "matches_generated": sum(len(r.matches) for r in rounds),
        "rounds": schedule_to_dict(rounds),
    }


@router.get("/trainings/{training_id}/matches")
def list_matches(training_id: int):
    return get_training_schedule(training_id)["rounds"]


@router.patch("/trainings/{training_id}/matches/{match_id}")
def update_match(training_id: int, match_id: int, data: MatchPlayersUpdate):
    match = svc_update_match_players(training_id, match_id, data.team1, data.team2)
    return {"status": "ok", "match": match_to_dict(match)}
