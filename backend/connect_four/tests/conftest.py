import random

import pytest

from connect_four.messaging.mock import MockConnection
from connect_four.messaging.router import MessageRouter
from connect_four.session.manager import SessionManager


@pytest.fixture
def session_manager():
    return SessionManager(move_timeout_seconds=30, rng=random.Random(7))


@pytest.fixture
def message_router(session_manager):
    return MessageRouter(session_manager)


@pytest.fixture
def alice():
    return MockConnection("alice")


@pytest.fixture
def bob():
    return MockConnection("bob")

