"""
Tests for the client protocol and the WebSocket session layer.

Sessions are driven directly or through a fake socket; no network is used.
"""

import asyncio
import itertools
import json
import random

import pytest

from tactics.map import Position
from tactics.protocol import (
    Attack, DismissUnit, EndTurn, FortifyUnit, GetReachable, LevelUpUnit,
    MoveUnit, NewGame, PlaceUnit, ProtocolError, parse_action,
)
from tactics.rules import Rules
from tactics.units import NEUTRAL_PLAYER_ID, UnitType
from tactics.game import GameManager, GameStore
from server import ClientSession, handle_websocket

from test_engine import DATA_PATH, OPEN_FIELD, LayoutGenerator


def make_manager(**rule_overrides):
    rule_overrides.setdefault("neutral_unit_count", 0)
    counter = itertools.count(1)
    return GameManager(
        store=GameStore(),
        rules=Rules(**rule_overrides),
        data_path=DATA_PATH,
        map_generator=LayoutGenerator(OPEN_FIELD),
        rng=random.Random(5),
        id_factory=lambda prefix: f"{prefix}-{next(counter)}",
    )


def unit_at(state, row, column):
    return state["map"][row][column].get("unit")


class FakeWebSocket:
    """Async-iterable stand-in for a websockets connection."""

    def __init__(self, messages):
        self.messages = messages
        self.sent = []

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self.messages:
            yield message

    async def send(self, data):
        self.sent.append(json.loads(data))


# ══════════════════════════════════════════════════════════════════════
# Protocol Parsing Tests
# ══════════════════════════════════════════════════════════════════════

class TestParseAction:

    def test_new_game(self):
        assert parse_action({"type": "NEW_GAME"}) == NewGame()
        assert parse_action(
            {"type": "NEW_GAME", "payload": {"playerName": "Ada"}}
        ) == NewGame(player_name="Ada")

    def test_place_unit(self):
        action = parse_action({
            "type": "PLACE_UNIT",
            "payload": {"position": {"row": 1, "column": 2}, "unitType": "ARCHER"},
        })
        assert action == PlaceUnit(position=Position(1, 2), unit_type=UnitType.ARCHER)

    def test_move_unit(self):
        action = parse_action({
            "type": "MOVE_UNIT",
            "payload": {"unitId": "u1", "position": {"row": 0, "column": 3}},
        })
        assert action == MoveUnit(unit_id="u1", position=Position(0, 3))

    def test_attack(self):
        action = parse_action({
            "type": "ATTACK",
            "payload": {
                "attackerPos": {"row": 1, "column": 1},
                "defenderPos": {"row": 1, "column": 2},
            },
        })
        assert action == Attack(attacker_pos=Position(1, 1), defender_pos=Position(1, 2))

    @pytest.mark.parametrize("msg_type,expected", [
        ("FORTIFY_UNIT", FortifyUnit("u7")),
        ("LEVEL_UP_UNIT", LevelUpUnit("u7")),
        ("DISMISS_UNIT", DismissUnit("u7")),
        ("GET_REACHABLE", GetReachable("u7")),
    ])
    def test_unit_actions(self, msg_type, expected):
        assert parse_action({"type": msg_type, "payload": {"unitId": "u7"}}) == expected

    def test_end_turn_ignores_payload(self):
        assert parse_action({"type": "END_TURN", "payload": {"anything": 1}}) == EndTurn()

    def test_null_payload_treated_as_empty(self):
        assert parse_action({"type": "END_TURN", "payload": None}) == EndTurn()

    @pytest.mark.parametrize("payload", [[], "", 0, False, "x"])
    def test_non_object_payload_rejected(self, payload):
        with pytest.raises(ProtocolError):
            parse_action({"type": "END_TURN", "payload": payload})

    @pytest.mark.parametrize("message", [
        "END_TURN",
        {"payload": {}},
        {"type": "SURRENDER"},
        {"type": "MOVE_UNIT", "payload": []},
        {"type": "MOVE_UNIT", "payload": {"position": {"row": 0, "column": 0}}},
        {"type": "MOVE_UNIT", "payload": {"unitId": "", "position": {"row": 0, "column": 0}}},
        {"type": "MOVE_UNIT", "payload": {"unitId": "u1", "position": {"row": 0}}},
        {"type": "MOVE_UNIT", "payload": {"unitId": "u1", "position": {"row": "0", "column": 0}}},
        {"type": "MOVE_UNIT", "payload": {"unitId": "u1", "position": {"row": True, "column": 0}}},
        {"type": "PLACE_UNIT", "payload": {"position": {"row": 0, "column": 0}, "unitType": "KNIGHT"}},
        {"type": "ATTACK", "payload": {"attackerPos": {"row": 0, "column": 0}}},
        {"type": "NEW_GAME", "payload": {"playerName": 42}},
    ])
    def test_malformed_messages_rejected(self, message):
        with pytest.raises(ProtocolError):
            parse_action(message)

    def test_protocol_error_is_value_error(self):
        assert issubclass(ProtocolError, ValueError)


# ══════════════════════════════════════════════════════════════════════
# Client Session Tests
# ══════════════════════════════════════════════════════════════════════

class TestClientSession:

    def setup_method(self):
        self.manager = make_manager()
        self.session = ClientSession(self.manager)

    def start(self, name="Ada"):
        return self.session.handle(NewGame(player_name=name))

    def test_new_game(self):
        response = self.start()
        assert response["type"] == "GAME_CREATED"
        assert response["gameId"] == self.session.game_id
        assert response["playerId"] == self.session.player_id
        state = response["state"]
        assert state["currentPlayerId"] == response["playerId"]
        assert state["currentTurn"] == 0
        assert unit_at(state, 3, 3)["type"] == "SETTLER"
        assert unit_at(state, 3, 4)["type"] == "WARRIOR"

    def test_actions_before_new_game_ignored(self):
        assert self.session.handle(EndTurn()) is None
        assert len(self.manager.store) == 0

    def test_new_game_replaces_previous(self):
        first = self.start()["gameId"]
        second = self.start()["gameId"]
        assert first != second
        assert first not in self.manager.store
        assert second in self.manager.store

    def test_move_returns_updated_state(self):
        state = self.start()["state"]
        warrior_id = unit_at(state, 3, 4)["id"]

        response = self.session.handle(MoveUnit(unit_id=warrior_id, position=Position(3, 5)))

        assert response["type"] == "GAME_UPDATED"
        moved = unit_at(response["state"], 3, 5)
        assert moved["id"] == warrior_id
        assert moved["movementPoints"] == 1
        assert unit_at(response["state"], 3, 4) is None

    def test_rejected_action_gets_no_response(self):
        state = self.start()["state"]
        warrior_id = unit_at(state, 3, 4)["id"]
        assert self.session.handle(MoveUnit(unit_id=warrior_id, position=Position(0, 0))) is None
        assert self.session.handle(MoveUnit(unit_id="ghost", position=Position(3, 5))) is None

    def test_place_unit(self):
        self.start()
        response = self.session.handle(PlaceUnit(position=Position(0, 0), unit_type=UnitType.ARCHER))
        assert unit_at(response["state"], 0, 0)["type"] == "ARCHER"

    def test_end_turn_reports_healing(self):
        state = self.start()["state"]
        warrior_id = unit_at(state, 3, 4)["id"]
        self.session.handle(FortifyUnit(unit_id=warrior_id))

        response = self.session.handle(EndTurn())

        assert response["state"]["currentTurn"] == 1
        assert response["healedUnits"] == [
            {"unitId": warrior_id, "unitType": "WARRIOR", "healing": 0},
        ]

    def test_fortify_metadata(self):
        state = self.start()["state"]
        settler_id = unit_at(state, 3, 3)["id"]
        response = self.session.handle(FortifyUnit(unit_id=settler_id))
        assert response["fortified"] == {"unitId": settler_id, "unitType": "SETTLER"}
        assert unit_at(response["state"], 3, 3)["fortified"] is True

    def test_dismiss_metadata(self):
        state = self.start()["state"]
        settler_id = unit_at(state, 3, 3)["id"]
        response = self.session.handle(DismissUnit(unit_id=settler_id))
        assert response["dismissed"] == {"unitId": settler_id, "unitType": "SETTLER"}
        assert unit_at(response["state"], 3, 3) is None

    def test_attack_reports_combat(self):
        state = self.start()["state"]
        self.session.handle(PlaceUnit(position=Position(2, 4), unit_type=UnitType.WARRIOR))
        # Hand the new unit to another owner so it can be attacked
        game = self.manager.get_game_state(self.session.game_id)
        game.hex_map.get_tile(Position(2, 4)).unit.owner_id = NEUTRAL_PLAYER_ID

        response = self.session.handle(Attack(attacker_pos=Position(3, 4), defender_pos=Position(2, 4)))

        combat = response["combatResult"]
        assert combat["attackerId"] == unit_at(state, 3, 4)["id"]
        assert combat["attackerDamage"] == 30
        assert combat["defenderDamage"] == 30
        assert unit_at(response["state"], 3, 4)["movementPoints"] == 0

    def test_reachable_tiles(self):
        state = self.start()["state"]
        warrior_id = unit_at(state, 3, 4)["id"]
        response = self.session.handle(GetReachable(unit_id=warrior_id))
        assert response["type"] == "REACHABLE_TILES"
        assert response["unitId"] == warrior_id
        assert {"row": 3, "column": 5, "cost": 1} in response["tiles"]

    def test_level_up_without_experience(self):
        state = self.start()["state"]
        warrior_id = unit_at(state, 3, 4)["id"]
        assert self.session.handle(LevelUpUnit(unit_id=warrior_id)) is None

    def test_close_removes_game(self):
        game_id = self.start()["gameId"]
        self.session.close()
        assert game_id not in self.manager.store
        assert self.session.game_id is None


# ══════════════════════════════════════════════════════════════════════
# WebSocket Handler Tests
# ══════════════════════════════════════════════════════════════════════

class TestHandleWebSocket:

    def test_conversation(self):
        manager = make_manager()
        socket = FakeWebSocket([
            "not json",
            json.dumps({"type": "SURRENDER"}),
            json.dumps({"type": "NEW_GAME", "payload": {"playerName": "Ada"}}),
            json.dumps({"type": "DISMISS_UNIT", "payload": {"unitId": "ghost"}}),
            json.dumps({"type": "END_TURN"}),
        ])

        asyncio.run(handle_websocket(socket, manager))

        assert [m["type"] for m in socket.sent] == ["GAME_CREATED", "GAME_UPDATED"]
        assert socket.sent[1]["state"]["currentTurn"] == 1

    def test_game_dropped_on_disconnect(self):
        manager = make_manager()
        socket = FakeWebSocket([json.dumps({"type": "NEW_GAME"})])
        asyncio.run(handle_websocket(socket, manager))
        assert len(socket.sent) == 1
        assert len(manager.store) == 0

    @pytest.mark.parametrize("frame", [
        b'{"type": "\x80"}',
        "[" * 100000,
    ])
    def test_undecodable_frame_keeps_game(self, frame):
        manager = make_manager()
        socket = FakeWebSocket([
            json.dumps({"type": "NEW_GAME"}),
            frame,
            json.dumps({"type": "END_TURN"}),
        ])

        asyncio.run(handle_websocket(socket, manager))

        assert [m["type"] for m in socket.sent] == ["GAME_CREATED", "GAME_UPDATED"]
        assert socket.sent[1]["state"]["currentTurn"] == 1
