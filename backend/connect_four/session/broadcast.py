"""Shared broadcast utility for sending messages to session participants."""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from connect_four.logic.types import PlayerInfo
    from connect_four.messaging.protocol import ConnectionProtocol


async def broadcast_to_players(
    connections: dict[str, ConnectionProtocol],
    players: tuple[PlayerInfo, ...],
    message: dict[str, Any],
    exclude_player_id: str | None = None,
) -> None:
    """Send a message to every seated player with a live connection, skipping one if excluded.

    Send failures are ignored per recipient: a dead socket is cleaned up by its
    own disconnect handler.
    """
    for player in players:
        if player.id == exclude_player_id:
            continue
        connection = connections.get(player.id)
        if connection is None:
            continue
        with contextlib.suppress(RuntimeError, OSError, ConnectionError):
            await connection.send_message(message)
