from unittest.mock import patch

import pytest
from pydantic import ValidationError

from connect_four.messaging.types import (
    ClientMessageType,
    CreateSessionMessage,
    CursorMoveMessage,
    JoinSessionMessage,
    MakeMoveMessage,
    PingMessage,
    ResetSessionMessage,
    SessionErrorCode,
    SessionMessageType,
    parse_client_message,
)


class TestParseClientMessage:
    def test_create_session(self):
        message = parse_client_message({"type": "createSession", "code": "abc-123", "player_name": "  Alice "})
        assert isinstance(message, CreateSessionMessage)
        assert message.code == "abc-123"
        assert message.player_name == "Alice"

    def test_join_session(self):
        message = parse_client_message({"type": "joinSession", "code": "ABC123", "player_name": "Bob"})
        assert isinstance(message, JoinSessionMessage)

    def test_make_move(self):
        message = parse_client_message({"type": "makeMove", "code": "ABC123", "column": 3})
        assert isinstance(message, MakeMoveMessage)
        assert message.column == 3

    def test_out_of_range_column_is_left_to_the_board(self):
        message = parse_client_message({"type": "makeMove", "code": "ABC123", "column": 12})
        assert message.column == 12

    def test_cursor_move(self):
        message = parse_client_message({"type": "cursorMove", "code": "ABC123", "position": {"x": 10, "y": 2.5}})
        assert isinstance(message, CursorMoveMessage)
        assert message.position.x == 10.0

    def test_reset_and_ping(self):
        assert isinstance(parse_client_message({"type": "resetSession", "code": "ABC123"}), ResetSessionMessage)
        assert isinstance(parse_client_message({"type": ClientMessageType.PING}), PingMessage)

    @pytest.mark.parametrize(
        "data",
        [
            {},
            {"type": "unknown"},
            {"type": "createSession", "code": "ABC123"},
            {"type": "createSession", "code": "bad code", "player_name": "Alice"},
            {"type": "createSession", "code": "A" * 51, "player_name": "Alice"},
            {"type": "createSession", "code": "ABC123", "player_name": ""},
            {"type": "createSession", "code": "ABC123", "player_name": "   "},
            {"type": "createSession", "code": "ABC123", "player_name": "Al\x00ice"},
            {"type": "joinSession", "code": "ABC123", "player_name": "B" * 51},
            {"type": "makeMove", "code": "ABC123", "column": "3"},
            {"type": "makeMove", "code": "ABC123", "column": 3.0},
            {"type": "cursorMove", "code": "ABC123", "position": {"x": float("inf"), "y": 0}},
            {"type": "cursorMove", "code": "ABC123", "position": {"x": 1}},
        ],
    )
    def test_invalid_messages_rejected(self, data):
        with pytest.raises(ValidationError):
            parse_client_message(data)


class TestMessageRouter:
    async def test_invalid_message_answers_requester(self, message_router, alice):
        await message_router.handle_message(alice, {"type": "makeMove", "code": "ABC123"})

        (error,) = alice.sent_messages
        assert error["type"] == SessionMessageType.ERROR
        assert error["code"] == SessionErrorCode.INVALID_MESSAGE

    async def test_full_flow_through_router(self, message_router, session_manager, alice, bob):
        await message_router.handle_connect(alice)
        await message_router.handle_connect(bob)

        await message_router.handle_message(alice, {"type": "createSession", "code": "abc123", "player_name": "Alice"})
        await message_router.handle_message(bob, {"type": "joinSession", "code": "ABC123", "player_name": "Bob"})
        await message_router.handle_message(alice, {"type": "makeMove", "code": "ABC123", "column": 4})
        await message_router.handle_message(bob, {"type": "cursorMove", "code": "ABC123", "position": {"x": 1, "y": 2}})
        await message_router.handle_message(bob, {"type": "ping"})

        assert [m["type"] for m in alice.sent_messages] == [
            SessionMessageType.SESSION_CREATED,
            SessionMessageType.SESSION_STARTED,
            SessionMessageType.MOVE_APPLIED,
            SessionMessageType.PEER_CURSOR,
        ]
        assert [m["type"] for m in bob.sent_messages] == [
            SessionMessageType.SESSION_STARTED,
            SessionMessageType.MOVE_APPLIED,
            SessionMessageType.PONG,
        ]
        session_manager.cancel_all_pending_timeouts()

    async def test_reset_routed(self, message_router, session_manager, alice, bob):
        await message_router.handle_connect(alice)
        await message_router.handle_connect(bob)
        await message_router.handle_message(alice, {"type": "createSession", "code": "R1", "player_name": "Alice"})
        await message_router.handle_message(bob, {"type": "joinSession", "code": "R1", "player_name": "Bob"})
        bob.clear()

        await message_router.handle_message(bob, {"type": "resetSession", "code": "R1"})

        assert bob.sent_messages[0]["type"] == SessionMessageType.SESSION_RESET
        session_manager.cancel_all_pending_timeouts()

    async def test_unexpected_error_answers_internal_error(self, message_router, session_manager, alice):
        with patch.object(session_manager, "handle_ping", side_effect=KeyError("boom")):
            await message_router.handle_message(alice, {"type": "ping"})

        (error,) = alice.sent_messages
        assert error["code"] == SessionErrorCode.INTERNAL_ERROR

    async def test_disconnect_leaves_sessions_and_unregisters(self, message_router, session_manager, alice, bob):
        await message_router.handle_connect(alice)
        await message_router.handle_connect(bob)
        await message_router.handle_message(alice, {"type": "createSession", "code": "D1", "player_name": "Alice"})
        await message_router.handle_message(bob, {"type": "joinSession", "code": "D1", "player_name": "Bob"})
        alice.clear()

        await message_router.handle_disconnect(bob)
        await session_manager.make_move(alice, "D1", 0)

        assert [m["type"] for m in alice.sent_messages] == [
            SessionMessageType.PEER_LEFT,
            SessionMessageType.ERROR,
        ]
        assert alice.sent_messages[1]["code"] == SessionErrorCode.NOT_YOUR_TURN
        assert bob.sent_messages[-1]["type"] == SessionMessageType.SESSION_STARTED

    async def test_disconnect_unregisters_even_if_leave_fails(self, message_router, session_manager, alice, bob):
        await message_router.handle_connect(alice)
        await message_router.handle_connect(bob)
        await message_router.handle_message(alice, {"type": "createSession", "code": "D2", "player_name": "Alice"})
        await message_router.handle_message(bob, {"type": "joinSession", "code": "D2", "player_name": "Bob"})
        bob.clear()

        with (
            patch.object(session_manager, "leave_all_sessions", side_effect=RuntimeError("boom")),
            pytest.raises(RuntimeError),
        ):
            await message_router.handle_disconnect(alice)

        # alice is gone from the connection map, so the broadcast reaches bob only
        await session_manager.make_move(alice, "D2", 0)
        assert bob.messages_of_type(SessionMessageType.MOVE_APPLIED)
        assert alice.messages_of_type(SessionMessageType.MOVE_APPLIED) == []
        session_manager.cancel_all_pending_timeouts()


class TestMockConnection:
    async def test_simulated_frames_are_received_in_order(self, alice):
        await alice.simulate_receive({"type": "ping"})
        await alice.simulate_receive({"type": "resetSession", "code": "ABC123"})

        assert await alice.receive_message() == {"type": "ping"}
        assert (await alice.receive_message())["type"] == "resetSession"

    async def test_closed_connection_refuses_sends(self, alice):
        await alice.close(code=4004)

        assert alice.is_closed is True
        assert alice.close_code == 4004
        with pytest.raises(RuntimeError):
            await alice.send_message({"type": "pong"})
