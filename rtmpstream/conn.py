"""RTMP connections: client and server initialization and message exchange."""

from __future__ import annotations

import re
from typing import Any, Callable, Optional, Tuple, Union
from urllib.parse import SplitResult, unquote, urlsplit, urlunsplit

from rtmpstream.bytecounter import CountingReadWriter
from rtmpstream.commands import CommandAMF0
from rtmpstream.control import (
    SetChunkSize,
    SetPeerBandwidth,
    SetWindowAckSize,
    UserControlSetBufferLength,
    UserControlStreamBegin,
    UserControlStreamIsRecorded,
)
from rtmpstream.handshake import do_client, do_server
from rtmpstream.message import Message
from rtmpstream.messageio import MessageReadWriter
from rtmpstream.tracks import read_tracks, write_tracks

WINDOW_ACK_SIZE = 2500000
PEER_BANDWIDTH = 2500000
PEER_BANDWIDTH_TYPE = 2
CHUNK_SIZE = 65536
FLASH_VERSION = "LNX 9,0,124,2"

_STREAM_ID = 0x1000000
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


class ConnError(Exception):
    """Raised when an RTMP connection cannot be initialized or used."""


def _string(values: Any, key: str) -> Optional[str]:
    value = values.get(key) if isinstance(values, dict) else None
    return value if isinstance(value, str) else None


def _result_is_ok1(cmd: CommandAMF0) -> bool:
    if len(cmd.arguments) < 2:
        return False
    return _string(cmd.arguments[1], "level") == "status"


def _result_is_ok2(cmd: CommandAMF0) -> bool:
    if len(cmd.arguments) < 2:
        return False
    value = cmd.arguments[1]
    return isinstance(value, float) and value == 1


def _request_uri(u: SplitResult) -> str:
    uri = u.path or "/"
    if u.query:
        uri += "?" + u.query
    return uri


def _split_path(u: SplitResult) -> Tuple[str, str]:
    segments = _request_uri(u).split("/")
    app = stream = ""
    if len(segments) == 2:
        app = segments[1]
    elif len(segments) == 3:
        app, stream = segments[1], segments[2]
    elif len(segments) > 3:
        app = "/".join(segments[1:3])
        stream = "/".join(segments[3:])
    return app, stream


def _tc_url(u: SplitResult) -> str:
    app, _ = _split_path(u)
    return urlunsplit((u.scheme, u.netloc, "/", "", u.fragment)) + app


def _create_url(tc_url: str, app: str, play: str) -> SplitResult:
    request_uri = "/" + app + "/" + play
    if any(ord(c) < 0x20 or c == "\x7f" for c in request_uri):
        raise ConnError("invalid control character in URL")

    path, _, query = request_uri.partition("?")
    if _BAD_ESCAPE.search(path):
        raise ConnError(f"invalid URL escape in {path!r}")

    try:
        tc = urlsplit(tc_url)
    except ValueError as exc:
        raise ConnError(str(exc)) from exc

    host = tc.netloc.rpartition("@")[2]
    if not host:
        raise ConnError("invalid host")
    if not tc.scheme:
        raise ConnError("invalid scheme")

    return SplitResult(tc.scheme, host, unquote(path), query, "")


def _on_status(command_id: int, code: str, description: str) -> CommandAMF0:
    return CommandAMF0(
        chunk_stream_id=5,
        message_stream_id=_STREAM_ID,
        name="onStatus",
        command_id=command_id,
        arguments=[None, {"level": "status", "code": code, "description": description}],
    )


class Conn:
    """An RTMP connection over a binary stream with ``read`` and ``write``."""

    def __init__(self, stream: Any) -> None:
        self._bc = CountingReadWriter(stream)
        self._rw: Optional[MessageReadWriter] = None

    def bytes_received(self) -> int:
        """Return the number of bytes received."""
        return self._bc.reader.count

    def bytes_sent(self) -> int:
        """Return the number of bytes sent."""
        return self._bc.writer.count

    @property
    def _messages(self) -> MessageReadWriter:
        if self._rw is None:
            raise ConnError("connection is not initialized")
        return self._rw

    def _read_command(self) -> CommandAMF0:
        while True:
            msg = self._messages.read()
            if isinstance(msg, CommandAMF0):
                return msg

    def _read_command_result(
        self, command_id: int, name: str, is_valid: Callable[[CommandAMF0], bool]
    ) -> None:
        while True:
            cmd = self._read_command()
            if cmd.command_id == command_id and cmd.name == name:
                if not is_valid(cmd):
                    raise ConnError("server refused connect request")
                return

    def _write_setup(self) -> None:
        self._messages.write(SetWindowAckSize(value=WINDOW_ACK_SIZE))
        self._messages.write(SetPeerBandwidth(value=PEER_BANDWIDTH, type=PEER_BANDWIDTH_TYPE))
        self._messages.write(SetChunkSize(value=CHUNK_SIZE))

    def initialize_client(self, url: Union[str, SplitResult], is_publishing: bool) -> None:
        """Perform the handshake and the connect / play or publish exchange as a client."""
        u = urlsplit(url) if isinstance(url, str) else url
        connect_path, action_path = _split_path(u)

        do_client(self._bc, False)
        self._rw = MessageReadWriter(self._bc, False)
        self._write_setup()

        self._messages.write(
            CommandAMF0(
                chunk_stream_id=3,
                name="connect",
                command_id=1,
                arguments=[
                    {
                        "app": connect_path,
                        "flashVer": FLASH_VERSION,
                        "tcUrl": _tc_url(u),
                        "fpad": False,
                        "capabilities": 15,
                        "audioCodecs": 4071,
                        "videoCodecs": 252,
                        "videoFunction": 1,
                    }
                ],
            )
        )
        self._read_command_result(1, "_result", _result_is_ok1)

        if not is_publishing:
            self._messages.write(
                CommandAMF0(chunk_stream_id=3, name="createStream", command_id=2, arguments=[None])
            )
            self._read_command_result(2, "_result", _result_is_ok2)

            self._messages.write(UserControlSetBufferLength(buffer_length=0x64))
            self._messages.write(
                CommandAMF0(
                    chunk_stream_id=4,
                    message_stream_id=_STREAM_ID,
                    name="play",
                    command_id=3,
                    arguments=[None, action_path],
                )
            )
            self._read_command_result(3, "onStatus", _result_is_ok1)
            return

        self._messages.write(
            CommandAMF0(
                chunk_stream_id=3,
                name="releaseStream",
                command_id=2,
                arguments=[None, action_path],
            )
        )
        self._messages.write(
            CommandAMF0(
                chunk_stream_id=3,
                name="FCPublish",
                command_id=3,
                arguments=[None, action_path],
            )
        )
        self._messages.write(
            CommandAMF0(chunk_stream_id=3, name="createStream", command_id=4, arguments=[None])
        )
        self._read_command_result(4, "_result", _result_is_ok2)

        self._messages.write(
            CommandAMF0(
                chunk_stream_id=4,
                message_stream_id=_STREAM_ID,
                name="publish",
                command_id=5,
                arguments=[None, action_path, connect_path],
            )
        )
        self._read_command_result(5, "onStatus", _result_is_ok1)

    def initialize_server(self) -> Tuple[SplitResult, bool]:
        """Perform the handshake and the connect exchange as a server.

        Returns the URL requested by the client and whether it is publishing.
        """
        do_server(self._bc, False)
        self._rw = MessageReadWriter(self._bc, False)

        cmd = self._read_command()
        if cmd.name != "connect":
            raise ConnError(f"unexpected command: {cmd!r}")
        if not cmd.arguments or not isinstance(cmd.arguments[0], dict):
            raise ConnError(f"invalid connect command: {cmd!r}")

        params = cmd.arguments[0]
        connect_path = _string(params, "app")
        if connect_path is None:
            raise ConnError(f"invalid connect command: {cmd!r}")

        tc_url = _string(params, "tcUrl")
        if tc_url is None:
            tc_url = _string(params, "tcurl")
            if tc_url is None:
                raise ConnError(f"invalid connect command: {cmd!r}")
        tc_url = tc_url.strip("'")

        self._write_setup()

        object_encoding = params.get("objectEncoding")
        if not isinstance(object_encoding, float):
            object_encoding = 0.0

        self._messages.write(
            CommandAMF0(
                chunk_stream_id=cmd.chunk_stream_id,
                name="_result",
                command_id=cmd.command_id,
                arguments=[
                    {"fmsVer": FLASH_VERSION, "capabilities": 31.0},
                    {
                        "level": "status",
                        "code": "NetConnection.Connect.Success",
                        "description": "Connection succeeded.",
                        "objectEncoding": object_encoding,
                    },
                ],
            )
        )

        while True:
            cmd = self._read_command()

            if cmd.name == "createStream":
                self._messages.write(
                    CommandAMF0(
                        chunk_stream_id=cmd.chunk_stream_id,
                        name="_result",
                        command_id=cmd.command_id,
                        arguments=[None, 1.0],
                    )
                )

            elif cmd.name == "play":
                if len(cmd.arguments) < 2 or not isinstance(cmd.arguments[1], str):
                    raise ConnError("invalid play command arguments")
                u = _create_url(tc_url, connect_path, cmd.arguments[1])

                self._messages.write(UserControlStreamIsRecorded(stream_id=1))
                self._messages.write(UserControlStreamBegin(stream_id=1))
                for code, description in (
                    ("NetStream.Play.Reset", "play reset"),
                    ("NetStream.Play.Start", "play start"),
                    ("NetStream.Data.Start", "data start"),
                    ("NetStream.Play.PublishNotify", "publish notify"),
                ):
                    self._messages.write(_on_status(cmd.command_id, code, description))
                return u, False

            elif cmd.name == "publish":
                if len(cmd.arguments) < 2 or not isinstance(cmd.arguments[1], str):
                    raise ConnError("invalid publish command arguments")
                u = _create_url(tc_url, connect_path, cmd.arguments[1])

                self._messages.write(
                    _on_status(cmd.command_id, "NetStream.Publish.Start", "publish start")
                )
                return u, True

    def read_message(self) -> Message:
        """Read a message."""
        return self._messages.read()

    def write_message(self, msg: Message) -> None:
        """Write a message."""
        self._messages.write(msg)

    def read_tracks(self) -> Tuple[Any, Any]:
        """Read track descriptions; return the video track and the audio track."""
        return read_tracks(self._messages)

    def write_tracks(self, video_track: Any, audio_track: Any) -> None:
        """Write track descriptions."""
        write_tracks(self._messages, video_track, audio_track)