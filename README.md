# rtmpstream

A pure-Python implementation of the RTMP protocol layers needed to
publish and read live audio/video streams. It depends only on the
standard library.

## Modules

- `rtmpstream.bytecounter` – `CountingReader`, `CountingWriter` and
  `CountingReadWriter`, stream wrappers that count the bytes passing
  through them, and `read_exactly(stream, size)`.
- `rtmpstream.handshake` – the C0/S0, C1/S1, C2/S2 handshake with HMAC
  digest signing and optional validation (`do_client`, `do_server`,
  `HandshakeError`).
- `rtmpstream.chunk` – encoding and decoding of type 0–3 chunks
  (`Chunk0` … `Chunk3`).
- `rtmpstream.rawmessage` – `RawReader` and `RawWriter`, which reassemble
  chunks into `RawMessage` objects and split messages into chunks,
  including window acknowledgement handling.
- `rtmpstream.amf0` – `encode_values` and `decode_values` for AMF0 data.
- `rtmpstream.message` – the `Message` base class and the `MessageType`,
  `UserControlType` and `ExtendedType` enumerations.
- `rtmpstream.control` – control messages (`SetChunkSize`,
  `SetWindowAckSize`, `SetPeerBandwidth`, `Acknowledge`) and user control
  events (stream begin/EOF/dry/is-recorded, set buffer length, ping
  request/response).
- `rtmpstream.commands` – `CommandAMF0` and `DataAMF0`.
- `rtmpstream.media` – `Audio`, `Video` and the extended video messages
  (`ExtendedSequenceStart`, `ExtendedCodedFrames`, `ExtendedFramesX`,
  `ExtendedSequenceEnd`, …).
- `rtmpstream.messageio` – `MessageReader`, `MessageWriter` and
  `MessageReadWriter`; the latter sends acknowledgements and answers
  ping requests automatically.
- `rtmpstream.h264conf` – `H264Conf`, the H264 decoder configuration
  record with one SPS and one PPS.
- `rtmpstream.mediaformats` – track descriptions (`H264`, `H265`, `AV1`,
  `MPEG2Audio`, `MPEG4Audio`), `MPEG4AudioConfig`, and helpers for AVCC
  payloads, HEVC and AV1 configuration records.
- `rtmpstream.tracks` – `read_tracks` and `write_tracks`, which exchange
  stream metadata and decoder configurations.
- `rtmpstream.conn` – `Conn`, a client- or server-side RTMP connection.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Accepting a publisher

`Conn` works on any binary stream object with `read` and `write`
methods, such as a socket file.

```python
import socket

from rtmpstream.conn import Conn

listener = socket.create_server(("127.0.0.1", 1935))
sock, _ = listener.accept()
stream = sock.makefile("rwb", buffering=0)

conn = Conn(stream)
url, is_publishing = conn.initialize_server()  # url is a urllib SplitResult
if is_publishing:
    video_track, audio_track = conn.read_tracks()
    while True:
        msg = conn.read_message()
        ...
```

## Playing a stream as a client

```python
import socket
from urllib.parse import urlsplit

from rtmpstream.conn import Conn

url = urlsplit("rtmp://127.0.0.1:1935/live/mystream")
sock = socket.create_connection((url.hostname, url.port))
conn = Conn(sock.makefile("rwb", buffering=0))
conn.initialize_client(url, is_publishing=False)
video_track, audio_track = conn.read_tracks()
```

`initialize_client` also accepts a URL string. Errors are raised as
exceptions (`ConnError`, `HandshakeError`, `MessageError`,
`RawMessageError`, `TracksError`, `FormatError`, `AMF0Error`); byte
counts are available from `Conn.bytes_received()` and
`Conn.bytes_sent()`.

## What this package does not do

It is a library of protocol layers, not a media server: there is no
command-line program, no listener that accepts connections by itself,
no routing of streams between publishers and readers, and no WebSocket
support. Sockets, threads and the handling of media packets after the
track descriptions are left to the calling code.