"""
Wire protocol for client actions.

Every inbound message is {"type": ..., "payload": {...}}. parse_action turns
it into one of the action dataclasses below or raises ProtocolError.
"""

from dataclasses import dataclass
from typing import Optional, Union

from .map import Position
from .units import UnitType


class ProtocolError(ValueError):
    """Inbound message is missing fields or has values of the wrong shape."""


@dataclass(frozen=True)
class NewGame:
    player_name: Optional[str] = None


@dataclass(frozen=True)
class PlaceUnit:
    position: Position
    unit_type: UnitType


@dataclass(frozen=True)
class MoveUnit:
    unit_id: str
    position: Position


@dataclass(frozen=True)
class Attack:
    attacker_pos: Position
    defender_pos: Position


@dataclass(frozen=True)
class EndTurn:
    pass


@dataclass(frozen=True)
class FortifyUnit:
    unit_id: str


@dataclass(frozen=True)
class LevelUpUnit:
    unit_id: str


@dataclass(frozen=True)
class DismissUnit:
    unit_id: str


@dataclass(frozen=True)
class GetReachable:
    unit_id: str


Action = Union[
    NewGame, PlaceUnit, MoveUnit, Attack, EndTurn,
    FortifyUnit, LevelUpUnit, DismissUnit, GetReachable,
]


# Outbound message types
GAME_CREATED = "GAME_CREATED"
GAME_UPDATED = "GAME_UPDATED"
REACHABLE_TILES = "REACHABLE_TILES"


def _position(payload: dict, key: str) -> Position:
    value = payload.get(key)
    if not isinstance(value, dict):
        raise ProtocolError(f"'{key}' must be an object with row and column")
    row, column = value.get("row"), value.get("column")
    # bool is an int subclass; reject it explicitly
    if not all(isinstance(v, int) and not isinstance(v, bool) for v in (row, column)):
        raise ProtocolError(f"'{key}' row and column must be integers")
    return Position(row, column)


def _unit_id(payload: dict) -> str:
    unit_id = payload.get("unitId")
    if not isinstance(unit_id, str) or not unit_id:
        raise ProtocolError("'unitId' must be a non-empty string")
    return unit_id


def _unit_type(payload: dict) -> UnitType:
    try:
        return UnitType(payload.get("unitType"))
    except ValueError:
        raise ProtocolError(f"Unknown unit type: {payload.get('unitType')!r}") from None


def _new_game(payload: dict) -> NewGame:
    name = payload.get("playerName")
    if name is not None and not isinstance(name, str):
        raise ProtocolError("'playerName' must be a string")
    return NewGame(player_name=name)


PARSERS = {
    "NEW_GAME": _new_game,
    "PLACE_UNIT": lambda p: PlaceUnit(position=_position(p, "position"), unit_type=_unit_type(p)),
    "MOVE_UNIT": lambda p: MoveUnit(unit_id=_unit_id(p), position=_position(p, "position")),
    "ATTACK": lambda p: Attack(
        attacker_pos=_position(p, "attackerPos"),
        defender_pos=_position(p, "defenderPos"),
    ),
    "END_TURN": lambda p: EndTurn(),
    "FORTIFY_UNIT": lambda p: FortifyUnit(unit_id=_unit_id(p)),
    "LEVEL_UP_UNIT": lambda p: LevelUpUnit(unit_id=_unit_id(p)),
    "DISMISS_UNIT": lambda p: DismissUnit(unit_id=_unit_id(p)),
    "GET_REACHABLE": lambda p: GetReachable(unit_id=_unit_id(p)),
}


def parse_action(message: dict) -> Action:
    """Validate a decoded JSON message and build its action."""
    if not isinstance(message, dict):
        raise ProtocolError("Message must be a JSON object")

    msg_type = message.get("type")
    parser = PARSERS.get(msg_type) if isinstance(msg_type, str) else None
    if parser is None:
        raise ProtocolError(f"Unknown message type: {msg_type}")

    payload = message.get("payload")
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ProtocolError("'payload' must be an object")
    return parser(payload)
