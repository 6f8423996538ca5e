"""Integration tests for the HTTP and WebSocket endpoints.

These drive the full transport stack (Starlette routing, MessagePack frames,
rate limiting and decode strikes) through the test client.
"""

from unittest.mock import patch

import pytest
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from connect_four.logic.enums import Color, SessionStatus
from connect_four.messaging.types import ClientMessageType, SessionErrorCode, SessionMessageType
from connect_four.server import websocket as ws_module
from connect_four.server.app import create_app
from connect_four.server.settings import GameServerSettings
from connect_four.session.manager import SessionManager
from connect_four.tests.helpers.websocket import create_and_join, recv_ws, send_ws


@pytest.fixture
def client():
    settings = GameServerSettings(max_capacity=2)
    session_manager = SessionManager(move_timeout_seconds=settings.move_timeout_seconds, max_sessions=2)
    app = create_app(settings=settings, session_manager=session_manager)
    with TestClient(app) as client:
        yield client


class TestHealthEndpoint:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestStatusEndpoint:
    def test_empty_server(self, client):
        response = client.get("/status")
        assert response.status_code == 200
        assert response.json() == {
            "status": "ok",
            "sessions": {"waiting": 0, "playing": 0, "finished": 0},
            "capacity_used": 0,
            "max_capacity": 2,
        }

    def test_counts_live_sessions(self, client):
        with client.websocket_connect("/ws") as alice, client.websocket_connect("/ws") as bob:
            create_and_join(alice, bob)
            send_ws(alice, {"type": ClientMessageType.CREATE_SESSION, "code": "SOLO", "player_name": "Alice"})
            recv_ws(alice)

            body = client.get("/status").json()

        assert body["sessions"] == {"waiting": 1, "playing": 1, "finished": 0}
        assert body["capacity_used"] == 2


class TestWebSocketSession:
    def test_full_match_over_websocket(self, client):
        with client.websocket_connect("/ws") as alice, client.websocket_connect("/ws") as bob:
            created, started = create_and_join(alice, bob, code="game-1")
            assert created["code"] == "GAME-1"
            assert created["player"]["color"] == Color.RED
            assert started["turn"] == created["player"]["id"]

            for column in (3, 0, 3, 0, 3, 0):
                mover = alice if column == 3 else bob
                send_ws(mover, {"type": ClientMessageType.MAKE_MOVE, "code": "GAME-1", "column": column})
                assert recv_ws(alice)["type"] == SessionMessageType.MOVE_APPLIED
                assert recv_ws(bob)["type"] == SessionMessageType.MOVE_APPLIED

            send_ws(alice, {"type": ClientMessageType.MAKE_MOVE, "code": "GAME-1", "column": 3})
            final = recv_ws(bob)
            assert recv_ws(alice) == final
            assert final["status"] == SessionStatus.FINISHED
            assert final["winner"] == created["player"]["id"]

    def test_rejected_move_answers_only_the_mover(self, client):
        with client.websocket_connect("/ws") as alice, client.websocket_connect("/ws") as bob:
            create_and_join(alice, bob)

            send_ws(bob, {"type": ClientMessageType.MAKE_MOVE, "code": "ABC123", "column": 0})
            error = recv_ws(bob)
            assert error["type"] == SessionMessageType.ERROR
            assert error["code"] == SessionErrorCode.NOT_YOUR_TURN

            # alice's next frame is her own pong, not bob's error
            send_ws(alice, {"type": ClientMessageType.PING})
            assert recv_ws(alice)["type"] == SessionMessageType.PONG

    def test_cursor_relayed_to_opponent(self, client):
        with client.websocket_connect("/ws") as alice, client.websocket_connect("/ws") as bob:
            create_and_join(alice, bob)

            send_ws(alice, {"type": ClientMessageType.CURSOR_MOVE, "code": "ABC123", "position": {"x": 5, "y": 7}})
            relayed = recv_ws(bob)
            assert relayed["type"] == SessionMessageType.PEER_CURSOR
            assert relayed["position"] == {"x": 5.0, "y": 7.0}

    def test_disconnect_notifies_remaining_player(self, client):
        with client.websocket_connect("/ws") as alice:
            with client.websocket_connect("/ws") as bob:
                create_and_join(alice, bob)

            left = recv_ws(alice)
            assert left["type"] == SessionMessageType.PEER_LEFT
            assert left["player_name"] == "Bob"
            assert left["snapshot"]["status"] == SessionStatus.WAITING
            assert left["snapshot"]["turn"] is None

    def test_capacity_reached(self, client):
        with client.websocket_connect("/ws") as ws:
            for code in ("ONE", "TWO"):
                send_ws(ws, {"type": ClientMessageType.CREATE_SESSION, "code": code, "player_name": "Alice"})
                assert recv_ws(ws)["type"] == SessionMessageType.SESSION_CREATED

            send_ws(ws, {"type": ClientMessageType.CREATE_SESSION, "code": "THREE", "player_name": "Alice"})
            assert recv_ws(ws)["code"] == SessionErrorCode.SERVER_AT_CAPACITY


class TestWebSocketProtocol:
    def test_invalid_message_keeps_connection(self, client):
        with client.websocket_connect("/ws") as ws:
            send_ws(ws, {"type": "makeMove", "code": "ABC123", "column": "three"})
            assert recv_ws(ws)["code"] == SessionErrorCode.INVALID_MESSAGE

            send_ws(ws, {"type": ClientMessageType.PING})
            assert recv_ws(ws)["type"] == SessionMessageType.PONG

    def test_repeated_decode_errors_disconnect(self, client):
        with client.websocket_connect("/ws") as ws:
            for _ in range(ws_module.MAX_DECODE_ERRORS):
                ws.send_bytes(b"\xff\xff\xff")
                assert recv_ws(ws)["code"] == SessionErrorCode.INVALID_MESSAGE

            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_bytes()
            assert exc_info.value.code == ws_module.CLOSE_TOO_MANY_DECODE_ERRORS

    def test_valid_message_resets_decode_strikes(self, client):
        with patch.object(ws_module, "MAX_DECODE_ERRORS", 2), client.websocket_connect("/ws") as ws:
            ws.send_bytes(b"\xff\xff\xff")
            recv_ws(ws)
            send_ws(ws, {"type": ClientMessageType.PING})
            assert recv_ws(ws)["type"] == SessionMessageType.PONG
            ws.send_bytes(b"\xff\xff\xff")
            recv_ws(ws)

            # still connected after two non-consecutive errors
            send_ws(ws, {"type": ClientMessageType.PING})
            assert recv_ws(ws)["type"] == SessionMessageType.PONG

    def test_rate_limited_message_returns_error(self, client):
        with (
            patch.object(ws_module, "RATE_LIMIT_BURST", 2),
            patch.object(ws_module, "RATE_LIMIT_RATE", 0.001),
            client.websocket_connect("/ws") as ws,
        ):
            for _ in range(2):
                send_ws(ws, {"type": ClientMessageType.PING})
                assert recv_ws(ws)["type"] == SessionMessageType.PONG

            send_ws(ws, {"type": ClientMessageType.PING})
            assert recv_ws(ws)["code"] == SessionErrorCode.RATE_LIMITED


class TestLifespan:
    def test_shutdown_cancels_move_clocks(self):
        session_manager = SessionManager(move_timeout_seconds=30)
        app = create_app(settings=GameServerSettings(), session_manager=session_manager)
        with TestClient(app) as client:
            # keep the session alive past the sockets closing
            with (
                patch.object(session_manager, "leave_all_sessions"),
                client.websocket_connect("/ws") as alice,
                client.websocket_connect("/ws") as bob,
            ):
                create_and_join(alice, bob)
                session = session_manager.get_session("ABC123")
                turn = session.turn
                timer = session.pending_timeout(turn)
            assert timer.is_active

        assert timer.is_active is False
        assert session.pending_timeout(turn) is None
