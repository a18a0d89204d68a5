"""RTMP protocol layers: handshake, chunks, messages, AMF0, track metadata and connections."""

__version__ = "0.1.0"