import contextlib
import io
import socket
from concurrent.futures import ThreadPoolExecutor
from urllib.parse import SplitResult

import pytest

from rtmpstream.bytecounter import CountingReadWriter
from rtmpstream.commands import CommandAMF0, DataAMF0
from rtmpstream.conn import Conn, ConnError
from rtmpstream.control import (
    SetChunkSize,
    SetPeerBandwidth,
    SetWindowAckSize,
    UserControlSetBufferLength,
)
from rtmpstream.handshake import do_client, do_server
from rtmpstream.messageio import MessageReadWriter

CLIENT_URL = "rtmp://127.0.0.1:9121/stream"


@contextlib.contextmanager
def stream_pair():
    a, b = socket.socketpair()
    a.settimeout(10)
    b.settimeout(10)
    with a, b:
        fa = a.makefile("rwb", buffering=0)
        fb = b.makefile("rwb", buffering=0)
        with fa, fb:
            yield fa, fb


def connect_result(level="status"):
    return CommandAMF0(
        chunk_stream_id=3,
        name="_result",
        command_id=1,
        arguments=[
            {"fmsVer": "LNX 9,0,124,2", "capabilities": 31.0},
            {
                "level": level,
                "code": "NetConnection.Connect.Success",
                "description": "Connection succeeded.",
                "objectEncoding": 0.0,
            },
        ],
    )


def fake_server(stream, mode):
    bc = CountingReadWriter(stream)
    do_server(bc, True)
    rw = MessageReadWriter(bc, True)

    assert rw.read() == SetWindowAckSize(value=2500000)
    assert rw.read() == SetPeerBandwidth(value=2500000, type=2)
    assert rw.read() == SetChunkSize(value=65536)
    assert rw.read() == CommandAMF0(
        chunk_stream_id=3,
        name="connect",
        command_id=1,
        arguments=[
            {
                "app": "stream",
                "flashVer": "LNX 9,0,124,2",
                "tcUrl": "rtmp://127.0.0.1:9121/stream",
                "fpad": False,
                "capabilities": 15.0,
                "audioCodecs": 4071.0,
                "videoCodecs": 252.0,
                "videoFunction": 1.0,
            }
        ],
    )

    if mode == "refused":
        rw.write(connect_result("error"))
        return

    rw.write(connect_result())

    if mode == "read":
        assert rw.read() == CommandAMF0(
            chunk_stream_id=3, name="createStream", command_id=2, arguments=[None]
        )
        rw.write(
            CommandAMF0(chunk_stream_id=3, name="_result", command_id=2, arguments=[None, 1.0])
        )
        assert rw.read() == UserControlSetBufferLength(buffer_length=0x64)
        assert rw.read() == CommandAMF0(
            chunk_stream_id=4,
            message_stream_id=0x1000000,
            name="play",
            command_id=3,
            arguments=[None, ""],
        )
        rw.write(
            CommandAMF0(
                chunk_stream_id=5,
                message_stream_id=0x1000000,
                name="onStatus",
                command_id=3,
                arguments=[
                    None,
                    {
                        "level": "status",
                        "code": "NetStream.Play.Reset",
                        "description": "play reset",
                    },
                ],
            )
        )
    else:
        assert rw.read() == CommandAMF0(
            chunk_stream_id=3, name="releaseStream", command_id=2, arguments=[None, ""]
        )
        assert rw.read() == CommandAMF0(
            chunk_stream_id=3, name="FCPublish", command_id=3, arguments=[None, ""]
        )
        assert rw.read() == CommandAMF0(
            chunk_stream_id=3, name="createStream", command_id=4, arguments=[None]
        )
        rw.write(
            CommandAMF0(chunk_stream_id=3, name="_result", command_id=4, arguments=[None, 1.0])
        )
        assert rw.read() == CommandAMF0(
            chunk_stream_id=4,
            message_stream_id=0x1000000,
            name="publish",
            command_id=5,
            arguments=[None, "", "stream"],
        )
        rw.write(
            CommandAMF0(
                chunk_stream_id=5,
                message_stream_id=0x1000000,
                name="onStatus",
                command_id=5,
                arguments=[
                    None,
                    {
                        "level": "status",
                        "code": "NetStream.Publish.Start",
                        "description": "publish start",
                    },
                ],
            )
        )


@pytest.mark.parametrize(
    "mode, received, sent",
    [("read", 3421, 3409), ("publish", 3427, 3466)],
)
def test_initialize_client(mode, received, sent):
    with stream_pair() as (client, server), ThreadPoolExecutor(max_workers=1) as pool:
        future = pool.submit(fake_server, server, mode)
        conn = Conn(client)
        conn.initialize_client(CLIENT_URL, mode == "publish")
        future.result(timeout=10)

        assert conn.bytes_received() == received
        assert conn.bytes_sent() == sent


def test_initialize_client_refused():
    with stream_pair() as (client, server), ThreadPoolExecutor(max_workers=1) as pool:
        future = pool.submit(fake_server, server, "refused")
        conn = Conn(client)
        with pytest.raises(ConnError, match="server refused connect request"):
            conn.initialize_client(CLIENT_URL, False)
        future.result(timeout=10)


def connect_command(tc_url, app="/stream"):
    return CommandAMF0(
        chunk_stream_id=3,
        name="connect",
        command_id=1,
        arguments=[
            {
                "app": app,
                "flashVer": "LNX 9,0,124,2",
                "tcUrl": tc_url,
                "fpad": False,
                "capabilities": 15,
                "audioCodecs": 4071,
                "videoCodecs": 252,
                "videoFunction": 1,
            }
        ],
    )


def fake_client(stream, mode, tc_url):
    bc = CountingReadWriter(stream)
    do_client(bc, True)
    rw = MessageReadWriter(bc, True)

    rw.write(connect_command(tc_url))

    assert rw.read() == SetWindowAckSize(value=2500000)
    assert rw.read() == SetPeerBandwidth(value=2500000, type=2)
    assert rw.read() == SetChunkSize(value=65536)
    assert rw.read() == connect_result()

    rw.write(SetChunkSize(value=65536))

    if mode == "read":
        rw.write(CommandAMF0(chunk_stream_id=3, name="createStream", command_id=2, arguments=[None]))
        assert rw.read() == CommandAMF0(
            chunk_stream_id=3, name="_result", command_id=2, arguments=[None, 1.0]
        )
        rw.write(UserControlSetBufferLength(buffer_length=0x64))
        rw.write(
            CommandAMF0(
                chunk_stream_id=4,
                message_stream_id=0x1000000,
                name="play",
                command_id=0,
                arguments=[None, ""],
            )
        )
    else:
        rw.write(
            CommandAMF0(chunk_stream_id=3, name="releaseStream", command_id=2, arguments=[None, ""])
        )
        rw.write(
            CommandAMF0(chunk_stream_id=3, name="FCPublish", command_id=3, arguments=[None, ""])
        )
        rw.write(CommandAMF0(chunk_stream_id=3, name="createStream", command_id=4, arguments=[None]))
        assert rw.read() == CommandAMF0(
            chunk_stream_id=3, name="_result", command_id=4, arguments=[None, 1.0]
        )
        rw.write(
            CommandAMF0(
                chunk_stream_id=4,
                message_stream_id=0x1000000,
                name="publish",
                command_id=5,
                arguments=[None, "", "stream"],
            )
        )
    return rw


def run_server(stream, read_after=False):
    conn = Conn(stream)
    url, is_publishing = conn.initialize_server()
    message = conn.read_message() if read_after else None
    return url, is_publishing, message


@pytest.mark.parametrize(
    "mode, tc_url",
    [
        ("read", "rtmp://127.0.0.1:9121/stream"),
        ("publish", "rtmp://127.0.0.1:9121/stream"),
        ("publish", "'rtmp://127.0.0.1:9121/stream"),
    ],
)
def test_initialize_server(mode, tc_url):
    with stream_pair() as (client, server), ThreadPoolExecutor(max_workers=1) as pool:
        future = pool.submit(run_server, server)
        fake_client(client, mode, tc_url)
        url, is_publishing, _ = future.result(timeout=10)

    assert url == SplitResult("rtmp", "127.0.0.1:9121", "//stream/", "", "")
    assert is_publishing == (mode == "publish")


def test_server_reads_messages_after_initialization():
    with stream_pair() as (client, server), ThreadPoolExecutor(max_workers=1) as pool:
        future = pool.submit(run_server, server, True)
        rw = fake_client(client, "publish", "rtmp://127.0.0.1:9121/stream")
        rw.write(
            DataAMF0(chunk_stream_id=4, message_stream_id=0x1000000, payload=["hello", 1.0])
        )
        _, _, message = future.result(timeout=10)

    assert message == DataAMF0(
        chunk_stream_id=4, message_stream_id=0x1000000, payload=["hello", 1.0]
    )


def send_unexpected_first_command(stream):
    bc = CountingReadWriter(stream)
    do_client(bc, True)
    rw = MessageReadWriter(bc, True)
    rw.write(CommandAMF0(chunk_stream_id=3, name="play", command_id=1, arguments=[None]))


def send_connect_without_host(stream):
    bc = CountingReadWriter(stream)
    do_client(bc, True)
    rw = MessageReadWriter(bc, True)
    rw.write(connect_command("stream"))
    rw.write(
        CommandAMF0(
            chunk_stream_id=4,
            message_stream_id=0x1000000,
            name="publish",
            command_id=5,
            arguments=[None, "", "stream"],
        )
    )


def test_server_rejects_unexpected_first_command():
    with stream_pair() as (client, server), ThreadPoolExecutor(max_workers=1) as pool:
        future = pool.submit(send_unexpected_first_command, client)
        conn = Conn(server)
        with pytest.raises(ConnError, match="unexpected command"):
            conn.initialize_server()
        future.result(timeout=10)


def test_server_rejects_tc_url_without_host():
    with stream_pair() as (client, server), ThreadPoolExecutor(max_workers=1) as pool:
        future = pool.submit(send_connect_without_host, client)
        conn = Conn(server)
        with pytest.raises(ConnError, match="invalid host"):
            conn.initialize_server()
        future.result(timeout=10)


def test_read_message_requires_initialization():
    conn = Conn(io.BytesIO())
    with pytest.raises(ConnError, match="not initialized"):
        conn.read_message()