from .exceptions import ServiceError
from ..storage import get_player, get_training
from ..models import Player, Training


def get_player_or_404(player_id: str) -> Player:
    player = get_player(player_id)
    if not player:
        raise ServiceError("Player not found", 404)
    return player


def get_training_or_404(training_id: int) -> Training:
    training = get_training(training_id)
    if not training:
        raise ServiceError("Training not found", 404)
    return training
