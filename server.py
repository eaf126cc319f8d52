"""
WebSocket game server for the hex tactics engine.

One active game per connection. Client actions are parsed at the boundary,
applied through the GameManager, and answered with a full state snapshot.
Rejected or malformed actions get no response.
"""

import os
import json
import asyncio
import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
import websockets

from tactics import GameManager, ProtocolError, parse_action
from tactics.protocol import (
    Action, NewGame, PlaceUnit, MoveUnit, Attack, EndTurn,
    FortifyUnit, LevelUpUnit, DismissUnit, GetReachable,
    GAME_CREATED, GAME_UPDATED, REACHABLE_TILES,
)

load_dotenv(Path(__file__).parent / ".env")

logger = logging.getLogger(__name__)

DATA_PATH = Path(os.environ.get("DATA_PATH", "data"))


class ClientSession:
    """Per-connection state: the game this client is playing and as whom."""

    def __init__(self, manager: GameManager):
        self.manager = manager
        self.game_id: Optional[str] = None
        self.player_id: Optional[str] = None

    def handle(self, action: Action) -> Optional[dict]:
        """Apply one action; returns the response message or None on rejection."""
        if isinstance(action, NewGame):
            self.close()
            self.game_id, self.player_id = self.manager.create_game(action.player_name)
            return {
                "type": GAME_CREATED,
                "gameId": self.game_id,
                "playerId": self.player_id,
                "state": self.manager.snapshot(self.game_id),
            }

        if self.game_id is None:
            logger.debug(f"No active game for {type(action).__name__}")
            return None

        manager, game_id, player_id = self.manager, self.game_id, self.player_id

        if isinstance(action, GetReachable):
            result = manager.get_reachable(game_id, player_id, action.unit_id)
            if not result.success:
                return None
            return {"type": REACHABLE_TILES, "unitId": action.unit_id, "tiles": result.reachable}

        if isinstance(action, PlaceUnit):
            result = manager.place_unit(game_id, player_id, action.position, action.unit_type)
        elif isinstance(action, MoveUnit):
            result = manager.move_unit(game_id, player_id, action.unit_id, action.position)
        elif isinstance(action, Attack):
            result = manager.attack(game_id, player_id, action.attacker_pos, action.defender_pos)
        elif isinstance(action, EndTurn):
            result = manager.end_turn(game_id, player_id)
        elif isinstance(action, FortifyUnit):
            result = manager.fortify_unit(game_id, player_id, action.unit_id)
        elif isinstance(action, LevelUpUnit):
            result = manager.level_up_unit(game_id, player_id, action.unit_id)
        elif isinstance(action, DismissUnit):
            result = manager.dismiss_unit(game_id, player_id, action.unit_id)
        else:
            raise TypeError(f"Unhandled action: {action!r}")

        if not result.success:
            return None
        return {
            "type": GAME_UPDATED,
            "state": manager.snapshot(game_id),
            **result.metadata(),
        }

    def close(self):
        """Drop the game this connection owns."""
        if self.game_id is not None:
            self.manager.store.remove(self.game_id)
            logger.info(f"Game {self.game_id} closed")
        self.game_id = None
        self.player_id = None


# ── WebSocket Game Server ──


async def handle_websocket(websocket, manager: GameManager):
    """Handle a single WebSocket connection (one game session)."""
    session = ClientSession(manager)
    logger.info("Client connected")

    try:
        async for raw in websocket:
            try:
                action = parse_action(json.loads(raw))
            except ProtocolError as e:
                logger.warning(f"Dropping message: {e}")
                continue
            except (ValueError, RecursionError) as e:
                # JSONDecodeError and UnicodeDecodeError are ValueErrors
                logger.warning(f"Dropping message: undecodable ({type(e).__name__})")
                continue

            response = session.handle(action)
            if response is not None:
                await websocket.send(json.dumps(response))

    except websockets.exceptions.ConnectionClosed:
        logger.info("Client disconnected")
    finally:
        session.close()


async def main():
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "3000"))
    manager = GameManager(data_path=DATA_PATH)

    async def handler(websocket):
        await handle_websocket(websocket, manager)

    logger.info(f"Starting server on ws://{host}:{port}")

    async with websockets.serve(handler, host, port):
        await asyncio.Future()  # run forever


if __name__ == "__main__":
    asyncio.run(main())
