import threading
from typing import List, Union

import pytest
from websockets.exceptions import ConnectionClosedOK

from server.config import default_sessions
from server.state import ServerContext


class FakeConnection:
    """Stands in for a websockets connection: scripted inbound frames, recorded sends."""

    def __init__(self, frames: List[Union[str, bytes, Exception]] = (), fail_send: bool = False):
        self.frames = list(frames)
        self.sent: List[str] = []
        self.closed = False
        self.fail_send = fail_send
        self.lock = threading.Lock()

    def recv(self):
        if not self.frames:
            raise ConnectionClosedOK(None, None)
        frame = self.frames.pop(0)
        if isinstance(frame, Exception):
            raise frame
        return frame

    def send(self, data: str):
        if self.fail_send or self.closed:
            raise ConnectionClosedOK(None, None)
        with self.lock:
            self.sent.append(data)

    def close(self):
        self.closed = True


@pytest.fixture
def ctx():
    return ServerContext.create(default_sessions())


@pytest.fixture
def fake_conn():
    return FakeConnection
