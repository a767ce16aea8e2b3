#from __future__ import annotations

import logging
import threading
from time import monotonic, sleep
from unittest.mock import MagicMock

import pytest

from msgsession.base import (
    ConnectError,
    ConnectionClosed,
    ConstructionError,
    HandleBusyError,
    NotConnectedError,
    ProtocolType,
    ReceiveTimeout,
    SendFailed,
    SessionError,
    SessionState,
    SocketOptions,
    StartError,
    TransportHandle,
)
from msgsession.core.session import TRANSITIONS, SocketSession

from conftest import WAIT


class TestLifecycle:
    def test_new_session(self, options):
        session = SocketSession(options)
        assert not session.is_connected()
        assert session.state is SessionState.IDLE
        assert session.url is None
        assert session.protocol is None
        assert session.handle is None
        assert session.options is options

    def test_invalid_options(self):
        with pytest.raises(ConstructionError):
            SocketSession(SocketOptions(send_timeout_ms=2 ** 32))

    def test_connect_with_large_timeouts(self, zmq_context, inproc_url):
        options = SocketOptions(recv_timeout_ms=3_000_000_000, send_timeout_ms=3_000_000_000)
        with SocketSession(options, context=zmq_context) as session:
            session.connect(ProtocolType.PAIR0, inproc_url)
            assert session.is_connected()
            assert session.handle.recv_timeout == 2 ** 31 - 1

    def test_send_not_connected(self):
        context = MagicMock()
        session = SocketSession(context=context)
        with pytest.raises(NotConnectedError) as cm:
            session.send(b'data')
        assert cm.value.operation == 'send'
        context.socket.assert_not_called()

    def test_recv_not_connected(self, zmq_context, collector):
        session = SocketSession(context=zmq_context)
        with pytest.raises(NotConnectedError):
            session.recv(collector)

    def test_connect_and_close(self, zmq_context, make_peer, options):
        peer = make_peer(ProtocolType.REP0)
        session = SocketSession(options, context=zmq_context)
        session.connect(ProtocolType.REQ0, peer.endpoint)
        assert session.is_connected()
        assert session.state is SessionState.CONNECTED
        assert session.url == peer.endpoint
        assert session.protocol is ProtocolType.REQ0
        handle = session.handle
        session.close()
        assert not session.is_connected()
        assert session.state is SessionState.CLOSED
        assert session.url is None
        assert session.handle is None
        assert handle.closed

    def test_close_twice(self, zmq_context, make_peer, caplog):
        peer = make_peer(ProtocolType.REP0)
        session = SocketSession(context=zmq_context)
        session.connect(ProtocolType.REQ0, peer.endpoint)
        session.close()
        with caplog.at_level(logging.INFO):
            session.close()
        assert session.state is SessionState.CLOSED
        assert "Session already closed" in caplog.text

    def test_close_idle(self, zmq_context, inproc_url):
        session = SocketSession(context=zmq_context)
        session.close()
        assert session.state is SessionState.CLOSED
        with pytest.raises(SessionError, match="Cannot connect"):
            session.connect(ProtocolType.PAIR0, inproc_url)

    def test_connect_twice(self, zmq_context, make_peer):
        peer = make_peer(ProtocolType.REP0)
        with SocketSession(context=zmq_context) as session:
            session.connect(ProtocolType.REQ0, peer.endpoint)
            with pytest.raises(SessionError, match="Cannot connect session in state CONNECTED"):
                session.connect(ProtocolType.REQ0, peer.endpoint)
            assert session.is_connected()

    def test_connect_failure_and_retry(self, zmq_context, make_peer):
        peer = make_peer(ProtocolType.REP0)
        session = SocketSession(context=zmq_context)
        with pytest.raises(ConnectError) as cm:
            session.connect(ProtocolType.REQ0, 'bogus://nowhere')
        assert cm.value.endpoint == 'bogus://nowhere'
        assert session.state is SessionState.IDLE
        assert session.handle is None
        session.connect(ProtocolType.REQ0, peer.endpoint)
        assert session.is_connected()
        session.close()

    def test_connect_dial_timeout(self, zmq_context):
        session = SocketSession(SocketOptions(dial_timeout_ms=200), context=zmq_context)
        with pytest.raises(ConnectError):
            session.connect(ProtocolType.REQ0, 'tcp://127.0.0.1:1')
        assert not session.is_connected()

    def test_context_manager(self, zmq_context, make_peer):
        peer = make_peer(ProtocolType.REP0)
        with SocketSession(context=zmq_context) as session:
            session.connect(ProtocolType.REQ0, peer.endpoint)
        assert session.state is SessionState.CLOSED

    def test_invalid_transition(self, zmq_context):
        session = SocketSession(context=zmq_context)
        session.close()
        with pytest.raises(SessionError, match="Invalid session transition CLOSED -> CONNECTED"):
            session._transition(SessionState.CONNECTED)

    def test_transitions(self):
        assert TRANSITIONS[SessionState.IDLE] == {SessionState.CONNECTED, SessionState.CLOSED}
        assert TRANSITIONS[SessionState.CONNECTED] == {SessionState.CLOSING}
        assert TRANSITIONS[SessionState.CLOSING] == {SessionState.CLOSED}
        assert not TRANSITIONS[SessionState.CLOSED]


class TestExchange:
    def test_request_reply(self, zmq_context, make_peer):
        peer = make_peer(ProtocolType.REP0)
        options = SocketOptions(recv_timeout_ms=1000, send_timeout_ms=1000)
        with SocketSession(options, context=zmq_context) as session:
            session.connect(ProtocolType.REQ0, peer.endpoint)
            start = monotonic()
            assert session.send(bytes([0x01, 0x02])) == bytes([0x01, 0x02])
            assert monotonic() - start < 1.0
        assert peer.messages == [b'\x01\x02']

    @pytest.mark.parametrize('protocol', [ProtocolType.PAIR0, ProtocolType.PAIR1])
    def test_pair_round_trip(self, zmq_context, make_peer, inproc_url, options, protocol):
        make_peer(protocol, inproc_url)
        with SocketSession(options, context=zmq_context) as session:
            session.connect(protocol, inproc_url)
            for payload in (b'', b'x', bytes(range(256)), b'\x00' * 100_000):
                assert session.send(payload) == payload

    def test_bus_round_trip(self, zmq_context, make_peer, options):
        peer = make_peer(ProtocolType.BUS0)
        with SocketSession(options, context=zmq_context) as session:
            session.connect(ProtocolType.BUS0, peer.endpoint)
            assert session.send(b'bus') == b'bus'

    def test_receive_timeout(self, zmq_context):
        silent = TransportHandle(zmq_context, ProtocolType.REP0)
        try:
            endpoint = silent.bind('tcp://127.0.0.1:*')
            with SocketSession(SocketOptions(recv_timeout_ms=300),
                               context=zmq_context) as session:
                session.connect(ProtocolType.REQ0, endpoint)
                start = monotonic()
                with pytest.raises(ReceiveTimeout) as cm:
                    session.send(b'hello')
                elapsed = monotonic() - start
                assert 0.29 <= elapsed < 2.0
                assert cm.value.operation == 'recv'
                assert cm.value.endpoint == endpoint
                assert session.is_connected()
        finally:
            silent.close()

    def test_send_only_protocol(self, zmq_context, make_peer, options):
        peer = make_peer(ProtocolType.PULL0)
        with SocketSession(options, context=zmq_context) as session:
            session.connect(ProtocolType.PUSH0, peer.endpoint)
            assert session.send(b'job') == b''
            assert peer.wait_for(1, WAIT)
        assert peer.messages == [b'job']

    def test_close_during_exchange(self, zmq_context):
        silent = TransportHandle(zmq_context, ProtocolType.REP0, SocketOptions(recv_timeout_ms=5000))
        session = SocketSession(context=zmq_context)
        outcome = {}
        def exchange():
            try:
                outcome['reply'] = session.send(b'request')
            except Exception as exc:
                outcome['error'] = exc
        try:
            endpoint = silent.bind('tcp://127.0.0.1:*')
            session.connect(ProtocolType.REQ0, endpoint)
            worker = threading.Thread(target=exchange)
            worker.start()
            # Request arrived, so sender waits for reply that never comes
            assert silent.recv() == b'request'
            start = monotonic()
            session.close()
            assert monotonic() - start < 1.0
            worker.join(WAIT)
            assert not worker.is_alive()
            assert session.state is SessionState.CLOSED
            assert 'reply' not in outcome
            assert isinstance(outcome['error'], ConnectionClosed)
            assert outcome['error'].operation == 'recv'
        finally:
            session.close()
            silent.close()

    def test_send_after_close_started(self, zmq_context, make_peer, options):
        peer = make_peer(ProtocolType.REP0)
        with SocketSession(options, context=zmq_context) as session:
            session.connect(ProtocolType.REQ0, peer.endpoint)
            session.handle.mark_closing()
            with pytest.raises(ConnectionClosed, match="Session is closing"):
                session.send(b'late')
            assert session.handle.token.acquire(blocking=False)
            session.handle.token.release()
        assert peer.messages == []

    def test_receive_only_protocol(self, zmq_context, make_peer, options):
        peer = make_peer(ProtocolType.PULL0)
        with SocketSession(options, context=zmq_context) as session:
            session.connect(ProtocolType.PULL0, peer.endpoint)
            with pytest.raises(SendFailed, match="can't send"):
                session.send(b'data')


class TestListener:
    @pytest.fixture
    def pusher(self, zmq_context):
        handle = TransportHandle(zmq_context, ProtocolType.PUSH0,
                                 SocketOptions(send_timeout_ms=1000))
        handle.bind('tcp://127.0.0.1:*')
        yield handle
        handle.close()

    def test_recv(self, zmq_context, pusher, options, collector):
        with SocketSession(options, context=zmq_context) as session:
            session.connect(ProtocolType.PULL0, pusher.endpoint)
            cancel = session.recv(collector)
            for i in range(10):
                pusher.send(b'msg%d' % i)
            assert collector.wait_for(10)
            cancel.dispose()
        assert collector.payloads == [b'msg%d' % i for i in range(10)]

    def test_send_while_listening(self, zmq_context, make_peer, options, collector):
        peer = make_peer(ProtocolType.PAIR0)
        with SocketSession(options, context=zmq_context) as session:
            session.connect(ProtocolType.PAIR0, peer.endpoint)
            cancel = session.recv(collector)
            with pytest.raises(HandleBusyError):
                session.send(b'data')
            with pytest.raises(StartError):
                session.recv(collector)
            cancel.dispose()
            assert session.send(b'data') == b'data'

    def test_close_with_active_loop(self, zmq_context, pusher, options, collector):
        session = SocketSession(options, context=zmq_context)
        session.connect(ProtocolType.PULL0, pusher.endpoint)
        cancel = session.recv(collector)
        pusher.send(b'before')
        assert collector.wait_for(1)
        session.close()
        assert cancel.disposed
        assert not cancel.loop.is_alive()
        sleep(0.2)
        assert collector.results == [(None, b'before')]

    def test_close_from_callback(self, zmq_context, pusher, options):
        session = SocketSession(options, context=zmq_context)
        session.connect(ProtocolType.PULL0, pusher.endpoint)
        done = threading.Event()
        errors = []
        def callback(error, payload):
            if error is not None:
                errors.append(error)
            session.close()
            done.set()
        session.recv(callback)
        pusher.send(b'stop')
        assert done.wait(WAIT)
        assert session.state is SessionState.CLOSED
        assert errors == []

    def test_recv_after_dispose(self, zmq_context, pusher, options, collector):
        with SocketSession(options, context=zmq_context) as session:
            session.connect(ProtocolType.PULL0, pusher.endpoint)
            session.recv(collector).dispose()
            cancel = session.recv(collector)
            pusher.send(b'again')
            assert collector.wait_for(1)
            cancel.dispose()
        assert collector.payloads == [b'again']
