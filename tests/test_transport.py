#from __future__ import annotations

from time import monotonic
from unittest.mock import MagicMock

import pytest
import zmq

from msgsession.base import (
    INFINITE,
    ZMQ_MAX_INT,
    ConnectError,
    ConnectionClosed,
    ConstructionError,
    ProtocolType,
    ReceiveTimeout,
    SendTimeout,
    SocketOptions,
    TransportHandle,
    create_signal_channel,
    is_closed_error,
)

@pytest.fixture
def pair(zmq_context, inproc_url):
    server = TransportHandle(zmq_context, ProtocolType.PAIR0, SocketOptions(recv_timeout_ms=1000))
    server.bind(inproc_url)
    client = TransportHandle(zmq_context, ProtocolType.PAIR0, SocketOptions(recv_timeout_ms=1000))
    client.dial(inproc_url)
    yield server, client
    client.close()
    server.close()

class TestTransportHandle:
    def test_create(self, zmq_context):
        handle = TransportHandle(zmq_context, ProtocolType.REQ0,
                                 SocketOptions(recv_timeout_ms=1000, send_timeout_ms=500,
                                               linger_ms=10))
        try:
            assert handle.protocol is ProtocolType.REQ0
            assert handle.socket.socket_type == zmq.REQ
            assert handle.socket.rcvtimeo == 1000
            assert handle.socket.sndtimeo == 500
            assert handle.socket.linger == 10
            assert handle.recv_timeout == 1000
            assert handle.send_timeout == 500
            assert handle.endpoint is None
            assert not handle.closed
            assert not handle.closing
        finally:
            handle.close()

    def test_create_unbounded(self, zmq_context):
        handle = TransportHandle(zmq_context, ProtocolType.PAIR1,
                                 SocketOptions(recv_timeout_ms=0))
        try:
            assert handle.socket.rcvtimeo == INFINITE
            assert handle.socket.sndtimeo == INFINITE
            assert handle.recv_timeout is None
            assert handle.send_timeout is None
        finally:
            handle.close()

    def test_create_invalid_options(self, zmq_context):
        with pytest.raises(ConstructionError):
            TransportHandle(zmq_context, ProtocolType.PAIR0, SocketOptions(recv_timeout_ms=-5))

    def test_create_socket_failure(self):
        context = MagicMock()
        context.socket.side_effect = zmq.ZMQError(zmq.EMFILE)
        with pytest.raises(ConstructionError) as cm:
            TransportHandle(context, ProtocolType.PAIR0)
        assert cm.value.operation == 'create'
        assert cm.value.errno == zmq.EMFILE

    def test_create_large_timeouts(self, zmq_context):
        handle = TransportHandle(zmq_context, ProtocolType.PAIR0,
                                 SocketOptions(recv_timeout_ms=3_000_000_000,
                                               send_timeout_ms=2 ** 32 - 1,
                                               linger_ms=3_000_000_000))
        try:
            assert handle.socket.rcvtimeo == ZMQ_MAX_INT
            assert handle.socket.sndtimeo == ZMQ_MAX_INT
            assert handle.socket.linger == ZMQ_MAX_INT
            assert handle.recv_timeout == ZMQ_MAX_INT
        finally:
            handle.close()

    @pytest.mark.parametrize('error', [OverflowError("value too large"), ValueError("bad")])
    def test_create_configure_failure(self, monkeypatch, error):
        context = MagicMock()
        socket = context.socket.return_value
        monkeypatch.setattr(TransportHandle, '_configure', MagicMock(side_effect=error))
        with pytest.raises(ConstructionError) as cm:
            TransportHandle(context, ProtocolType.REQ0)
        assert cm.value.__cause__ is error
        assert cm.value.errno is None
        socket.close.assert_called_once_with(0)

    def test_create_unexpected_failure(self, monkeypatch):
        context = MagicMock()
        socket = context.socket.return_value
        monkeypatch.setattr(TransportHandle, '_configure',
                            MagicMock(side_effect=RuntimeError("boom")))
        with pytest.raises(RuntimeError, match="boom"):
            TransportHandle(context, ProtocolType.REQ0)
        socket.close.assert_called_once_with(0)

    def test_dial_invalid_address(self, zmq_context):
        handle = TransportHandle(zmq_context, ProtocolType.REQ0)
        try:
            with pytest.raises(ConnectError) as cm:
                handle.dial('bogus://nowhere')
            assert cm.value.operation == 'dial'
            assert cm.value.endpoint == 'bogus://nowhere'
            assert handle.endpoint is None
        finally:
            handle.close()

    def test_dial_timeout(self, zmq_context):
        handle = TransportHandle(zmq_context, ProtocolType.REQ0)
        try:
            start = monotonic()
            with pytest.raises(ConnectError, match="not reachable"):
                handle.dial('tcp://127.0.0.1:1', timeout=200)
            assert monotonic() - start >= 0.19
        finally:
            handle.close()

    def test_dial_wait_connected(self, zmq_context):
        server = TransportHandle(zmq_context, ProtocolType.REP0)
        client = TransportHandle(zmq_context, ProtocolType.REQ0,
                                 SocketOptions(dial_timeout_ms=2000))
        try:
            endpoint = server.bind('tcp://127.0.0.1:*')
            client.dial(endpoint)
            assert client.endpoint == endpoint
        finally:
            client.close()
            server.close()

    def test_bind_wildcard(self, zmq_context):
        handle = TransportHandle(zmq_context, ProtocolType.REP0)
        try:
            endpoint = handle.bind('tcp://127.0.0.1:*')
            assert endpoint.startswith('tcp://127.0.0.1:')
            assert not endpoint.endswith('*')
            assert handle.endpoint == endpoint
        finally:
            handle.close()

    def test_bind_in_use(self, zmq_context, inproc_url):
        first = TransportHandle(zmq_context, ProtocolType.PAIR0)
        second = TransportHandle(zmq_context, ProtocolType.PAIR0)
        try:
            first.bind(inproc_url)
            with pytest.raises(ConnectError) as cm:
                second.bind(inproc_url)
            assert cm.value.operation == 'bind'
        finally:
            second.close()
            first.close()

    def test_send_recv(self, pair):
        server, client = pair
        client.send(b'\x01\x02')
        assert server.poll(1000)
        assert server.recv() == b'\x01\x02'
        server.send(b'')
        assert client.recv() == b''

    def test_recv_multipart(self, pair):
        server, client = pair
        client.socket.send_multipart([b'ab', b'cd', b'ef'])
        assert server.recv() == b'abcdef'

    def test_recv_timeout(self, pair):
        server, _ = pair
        start = monotonic()
        with pytest.raises(ReceiveTimeout) as cm:
            server.recv()
        elapsed = monotonic() - start
        assert 0.9 <= elapsed < 3.0
        assert cm.value.operation == 'recv'
        assert cm.value.errno == zmq.EAGAIN

    def test_recv_nowait(self, pair):
        server, _ = pair
        start = monotonic()
        with pytest.raises(ReceiveTimeout):
            server.recv(nowait=True)
        assert monotonic() - start < 0.5
        assert not server.poll(0)

    def test_send_timeout(self, zmq_context):
        # PUSH without connected peer blocks on send
        handle = TransportHandle(zmq_context, ProtocolType.PUSH0, SocketOptions(send_timeout_ms=100))
        try:
            with pytest.raises(SendTimeout) as cm:
                handle.send(b'data')
            assert cm.value.operation == 'send'
        finally:
            handle.close()

    def test_req_relaxed(self, zmq_context):
        server = TransportHandle(zmq_context, ProtocolType.REP0)
        client = TransportHandle(zmq_context, ProtocolType.REQ0,
                                 SocketOptions(recv_timeout_ms=100, send_timeout_ms=2000))
        try:
            client.dial(server.bind('tcp://127.0.0.1:*'))
            client.send(b'first')
            with pytest.raises(ReceiveTimeout):
                client.recv()
            # New request after timed out one is accepted
            client.send(b'second')
        finally:
            client.close()
            server.close()

    def test_sub_receives_all(self, zmq_context, inproc_url):
        pub = TransportHandle(zmq_context, ProtocolType.PUB0)
        sub = TransportHandle(zmq_context, ProtocolType.SUB0)
        try:
            pub.bind(inproc_url)
            sub.dial(inproc_url)
            received = False
            for _ in range(50):
                pub.send(b'news')
                if sub.poll(20):
                    received = True
                    break
            assert received
            assert sub.recv() == b'news'
        finally:
            sub.close()
            pub.close()

    def test_close(self, pair):
        server, client = pair
        client.close()
        assert client.closed
        assert client.closing
        client.close()
        with pytest.raises(ConnectionClosed) as cm:
            client.send(b'data')
        assert cm.value.operation == 'send'
        with pytest.raises(ConnectionClosed):
            client.recv()
        with pytest.raises(ConnectionClosed):
            client.dial('inproc://other')

    def test_mark_closing(self, pair):
        _, client = pair
        client.mark_closing()
        assert client.closing
        assert not client.closed

    def test_context_terminated(self, inproc_url):
        ctx = zmq.Context()
        handle = TransportHandle(ctx, ProtocolType.PAIR0)
        handle.bind(inproc_url)
        handle.socket.close()
        ctx.term()
        with pytest.raises(ConnectionClosed):
            handle.recv()


def test_is_closed_error():
    assert is_closed_error(zmq.ZMQError(zmq.ENOTSOCK))
    assert is_closed_error(zmq.ZMQError(zmq.ETERM))
    assert is_closed_error(zmq.ContextTerminated())
    assert not is_closed_error(zmq.ZMQError(zmq.EAGAIN))
    assert not is_closed_error(zmq.ZMQError(zmq.EINVAL))

def test_signal_channel(zmq_context):
    receiver, sender = create_signal_channel(zmq_context, 'test')
    try:
        sender.send(b'STOP')
        assert receiver.poll(1000) == zmq.POLLIN
        assert receiver.recv() == b'STOP'
    finally:
        sender.close(0)
        receiver.close(0)
