#from __future__ import annotations

import threading
import uuid

import pytest
import zmq

from msgsession.base import ProtocolType, SessionError, SocketOptions
from msgsession.core.peer import EchoPeer

#: Timeout (in seconds) used by tests that wait for background threads
WAIT: float = 5.0

class Collector:
    """Receive callback that records `(error, payload)` invocations.
    """
    def __init__(self):
        self.results: list[tuple[SessionError | None, bytes | None]] = []
        self.threads: list[threading.Thread] = []
        self._cond = threading.Condition()
    def __call__(self, error: SessionError | None, payload: bytes | None) -> None:
        with self._cond:
            self.results.append((error, payload))
            self.threads.append(threading.current_thread())
            self._cond.notify_all()
    def wait_for(self, count: int, timeout: float=WAIT) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: len(self.results) >= count, timeout)
    @property
    def payloads(self) -> list[bytes]:
        return [payload for error, payload in self.results if error is None]
    @property
    def errors(self) -> list[SessionError]:
        return [error for error, payload in self.results if error is not None]

@pytest.fixture
def zmq_context():
    ctx = zmq.Context()
    yield ctx
    ctx.destroy(linger=0)

@pytest.fixture
def inproc_url():
    return f'inproc://test-{uuid.uuid1().hex}'

@pytest.fixture
def options():
    return SocketOptions(recv_timeout_ms=1000, send_timeout_ms=1000)

@pytest.fixture
def collector():
    return Collector()

@pytest.fixture
def make_peer(zmq_context):
    peers: list[EchoPeer] = []
    def _make(protocol: ProtocolType, url: str='tcp://127.0.0.1:*',
              options: SocketOptions | None=None) -> EchoPeer:
        peer = EchoPeer(protocol, url, options, context=zmq_context)
        peer.start()
        peers.append(peer)
        return peer
    yield _make
    for peer in peers:
        peer.stop()
