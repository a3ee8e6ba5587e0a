from dataclasses import asdict

from fastapi import APIRouter
from pydantic import BaseModel

from ..models import DEFAULT_LEVEL
from ..services.players import (
    create_player as svc_create_player,
    update_player as svc_update_player,
    list_players as svc_list_players,
    get_player_statistics,
)
from ..services.helpers import get_player_or_404

router = APIRouter()


class PlayerCreate(BaseModel):
    player_id: str
    name: str
    level: float = DEFAULT_LEVEL
    gender: str | None = None


class PlayerUpdate(BaseModel):
    name: str | None = None
    level: float | None = None
    active: bool | None = None
    gender: str | None = None


@router.post("/players")
def create_player(data: PlayerCreate):
    player = svc_create_player(data.player_id, data.name, data.level, data.gender)
    return {"status": "ok", "player": asdict(player)}


@router.get("/players")
def list_players(active_only: bool = False):
    return [asdict(p) for p in svc_list_players(active_only)]


@router.get("/players/{player_id}")
def get_player(player_id: str):
    return asdict(get_player_or_404(player_id))


@router.patch("/players/{player_id}")
def update_player(player_id: str, data: PlayerUpdate):
    player = svc_update_player(
        player_id,
        name=data.name,
        level=data.level,
        active=data.active,
        gender=data.gender,
    )
    return {"status": "ok", "player": asdict(player)}


@router.get("/players/{player_id}/statistics")
def player_statistics(player_id: str):
    stats = get_player_statistics(player_id)
    return {**asdict(stats), "win_rate": stats.win_rate}
