"""Tests for the SAM control client against an in-process bridge."""

import asyncio
import socket
import time

import pytest

from fakes import FAKE_DESTINATION, FAKE_LOOKUP_VALUE, FakeSamBridge
from geminiproxy.sam.client import PING_POLL_SECONDS, SamClient
from geminiproxy.sam.exceptions import (
    HandshakeFailed,
    SessionCreateFailed,
    TransportIOError,
)


def _unused_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


# ============================================================================
# Handshake & Session
# ============================================================================


class TestHandshake:
    """HELLO VERSION handling."""

    def test_handshake_records_version(self):
        async def scenario():
            async with FakeSamBridge(version="3.1") as sam:
                async with await SamClient.connect("127.0.0.1", sam.port) as client:
                    reply = await client.handshake({"MIN": "3.0", "MAX": ""})
                    assert reply.ok
                    assert client.version == "3.1"
                assert sam.lines[0] == "HELLO VERSION MIN=3.0"

        asyncio.run(scenario())

    def test_handshake_rejected(self):
        async def scenario():
            async with FakeSamBridge(hello_result="NOVERSION") as sam:
                async with await SamClient.connect("127.0.0.1", sam.port) as client:
                    with pytest.raises(HandshakeFailed) as exc_info:
                        await client.handshake()
                    assert exc_info.value.result == "NOVERSION"
                    assert client.version is None

        asyncio.run(scenario())

    def test_connect_refused(self):
        async def scenario():
            with pytest.raises(TransportIOError):
                await SamClient.connect("127.0.0.1", _unused_port())

        asyncio.run(scenario())


class TestSession:
    """SESSION CREATE handling."""

    def test_session_create_returns_destination(self):
        async def scenario():
            async with FakeSamBridge() as sam:
                async with await SamClient.connect("127.0.0.1", sam.port) as client:
                    await client.handshake()
                    destination, reply = await client.session_create(
                        {"STYLE": "STREAM", "ID": "t", "DESTINATION": "TRANSIENT"}
                    )
                    assert destination == FAKE_DESTINATION
                    assert reply.ok

        asyncio.run(scenario())

    def test_session_create_rejected(self):
        async def scenario():
            async with FakeSamBridge(session_result="DUPLICATED_ID") as sam:
                async with await SamClient.connect("127.0.0.1", sam.port) as client:
                    await client.handshake()
                    with pytest.raises(SessionCreateFailed) as exc_info:
                        await client.session_create({"STYLE": "STREAM", "ID": "dup"})
                    assert exc_info.value.nickname == "dup"
                    assert "duplicated id" in str(exc_info.value)

        asyncio.run(scenario())


# ============================================================================
# Streams & Utility Verbs
# ============================================================================


class TestVerbs:
    """STREAM CONNECT, NAMING LOOKUP, DEST GENERATE."""

    def test_stream_connect_failure_leaves_socket_open(self):
        async def scenario():
            async with FakeSamBridge() as sam:
                client = await SamClient.connect("127.0.0.1", sam.port)
                await client.handshake()
                ok, (reader, writer), reply = await client.stream_connect(
                    {"ID": "t", "DESTINATION": "nowhere.i2p"}
                )
                assert not ok
                assert reply.result == "CANT_REACH_PEER"
                assert not writer.is_closing()
                assert not client.streaming
                await client.close()
                await asyncio.sleep(0.05)
                assert sam.lines[-1] == "QUIT"

        asyncio.run(scenario())

    def test_stream_accept_turns_connection_into_pipe(self):
        async def scenario():
            async with FakeSamBridge() as sam:
                client = await SamClient.connect("127.0.0.1", sam.port)
                await client.handshake()
                ok, _, reply = await client.stream_accept({"ID": "t"})
                assert ok and reply.ok
                assert client.streaming
                assert not await client.check_ping()
                await client.close()
                await asyncio.sleep(0.05)
                assert "QUIT" not in sam.lines

        asyncio.run(scenario())

    def test_stream_forward(self):
        async def scenario():
            async with FakeSamBridge() as sam:
                async with await SamClient.connect("127.0.0.1", sam.port) as client:
                    await client.handshake()
                    ok, _ = await client.stream_forward({"ID": "t", "PORT": 9000})
                    assert ok
                    assert not client.streaming
                assert "STREAM FORWARD ID=t PORT=9000" in sam.lines

        asyncio.run(scenario())

    def test_subsession_add_and_remove(self):
        async def scenario():
            async with FakeSamBridge() as sam:
                async with await SamClient.connect("127.0.0.1", sam.port) as client:
                    await client.handshake()
                    ok, destination, _ = await client.session_add(
                        {"STYLE": "STREAM", "ID": "sub"}
                    )
                    assert ok
                    assert destination == FAKE_DESTINATION
                    ok, _ = await client.session_remove({"ID": "sub"})
                    assert ok

        asyncio.run(scenario())

    def test_naming_lookup(self):
        async def scenario():
            async with FakeSamBridge() as sam:
                async with await SamClient.connect("127.0.0.1", sam.port) as client:
                    await client.handshake()
                    ok, name, reply = await client.naming_lookup("example.i2p")
                    assert ok
                    assert name == "example.i2p"
                    assert reply.get("value") == FAKE_LOOKUP_VALUE

        asyncio.run(scenario())

    def test_dest_generate(self):
        async def scenario():
            async with FakeSamBridge() as sam:
                async with await SamClient.connect("127.0.0.1", sam.port) as client:
                    await client.handshake()
                    pub, priv = await client.dest_generate({"SIGNATURE_TYPE": "7"})
                    assert pub == "fakePub~"
                    assert priv == "fakePriv~=="

        asyncio.run(scenario())

    def test_bridge_closing_raises_transport_error(self):
        async def scenario():
            async with FakeSamBridge() as sam:
                client = await SamClient.connect("127.0.0.1", sam.port)
                await client.handshake()
                sam.writers[-1].close()
                await asyncio.sleep(0.05)
                with pytest.raises(TransportIOError):
                    await client.naming_lookup("example.i2p")
                await client.close()

        asyncio.run(scenario())


# ============================================================================
# Ping / Pong
# ============================================================================


class TestPing:
    """Keepalive primitives."""

    @pytest.mark.parametrize(
        "mode,expected",
        [("echo", True), ("wrong-token", False), ("wrong-word", False)],
    )
    def test_send_ping(self, mode, expected):
        async def scenario():
            async with FakeSamBridge(ping_mode=mode) as sam:
                async with await SamClient.connect("127.0.0.1", sam.port) as client:
                    await client.handshake()
                    assert await client.send_ping("abc") is expected
                assert "PING abc" in sam.lines

        asyncio.run(scenario())

    def test_send_ping_default_token(self):
        async def scenario():
            async with FakeSamBridge() as sam:
                async with await SamClient.connect("127.0.0.1", sam.port) as client:
                    await client.handshake()
                    assert await client.send_ping()
                pings = [line for line in sam.lines if line.startswith("PING ")]
                assert pings[0].split(" ")[1].isdigit()

        asyncio.run(scenario())

    def test_check_ping_answers_pending_ping(self):
        async def scenario():
            async with FakeSamBridge() as sam:
                async with await SamClient.connect("127.0.0.1", sam.port) as client:
                    await client.handshake()
                    await sam.push("PING xyz")
                    await asyncio.sleep(0.05)
                    assert await client.check_ping()
                    await asyncio.sleep(0.05)
                assert "PONG xyz" in sam.lines

        asyncio.run(scenario())

    def test_check_ping_without_input_returns_immediately(self):
        async def scenario():
            async with FakeSamBridge() as sam:
                async with await SamClient.connect("127.0.0.1", sam.port) as client:
                    await client.handshake()
                    started = time.monotonic()
                    assert not await client.check_ping()
                    assert time.monotonic() - started < PING_POLL_SECONDS + 0.15
                    # Connection still usable afterwards
                    assert await client.send_ping("after")

        asyncio.run(scenario())


# ============================================================================
# Close
# ============================================================================


class TestClose:
    """close() semantics."""

    def test_close_is_idempotent(self):
        async def scenario():
            async with FakeSamBridge() as sam:
                client = await SamClient.connect("127.0.0.1", sam.port)
                await client.handshake()
                await client.close()
                await client.close()
                assert not client.is_open
                await asyncio.sleep(0.05)
                assert sam.lines.count("QUIT") == 1

        asyncio.run(scenario())
