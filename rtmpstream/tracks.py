"""Reading and writing of track descriptions on an RTMP message stream."""

from __future__ import annotations

from typing import Any, List, Optional, Tuple

from rtmpstream.commands import CommandAMF0, DataAMF0
from rtmpstream.h264conf import H264Conf, H264ConfError
from rtmpstream.media import (
    AUDIO_CHUNK_STREAM_ID,
    CODEC_H264,
    CODEC_MPEG2_AUDIO,
    CODEC_MPEG4_AUDIO,
    SOUND_16BIT,
    SOUND_44KHZ,
    SOUND_STEREO,
    VIDEO_CHUNK_STREAM_ID,
    Audio,
    AudioAACType,
    ExtendedSequenceStart,
    Video,
    VideoType,
)
from rtmpstream.mediaformats import (
    AV1,
    H264,
    H265,
    H265_NALU_PPS,
    H265_NALU_SPS,
    H265_NALU_VPS,
    MPEG2Audio,
    MPEG4Audio,
    MPEG4AudioConfig,
    FormatError,
    av1_bitstream_unmarshal,
    avcc_unmarshal,
    find_h265_nalu,
    parse_av1c,
    parse_hvcc,
)
from rtmpstream.message import FOURCC_AV1, FOURCC_HEVC

_STREAM_ID = 0x1000000
_ANALYSIS_DURATION_MS = 1000


class TracksError(ValueError):
    """Raised when track descriptions cannot be read or written."""


class _EmptyMetadata(Exception):
    pass


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _h264_track(data: bytes) -> H264:
    try:
        conf = H264Conf.unmarshal(data)
    except H264ConfError as exc:
        raise TracksError(f"unable to parse H264 config: {exc}") from exc
    return H264(payload_type=96, sps=conf.sps, pps=conf.pps, packetization_mode=1)


def _aac_track(data: bytes) -> MPEG4Audio:
    return MPEG4Audio(payload_type=96, config=MPEG4AudioConfig.unmarshal(data))


def _has_video(metadata: dict) -> bool:
    if "videocodecid" not in metadata:
        return False
    value = metadata["videocodecid"]
    if _is_number(value):
        if value == 0:
            return False
        if value == CODEC_H264:
            return True
    elif isinstance(value, str) and value == "avc1":
        return True
    raise TracksError(f"unsupported video codec: {value}")


def _audio_info(metadata: dict) -> Tuple[bool, Optional[MPEG2Audio]]:
    if "audiocodecid" not in metadata:
        return False, None
    value = metadata["audiocodecid"]
    if _is_number(value):
        if value == 0:
            return False, None
        if value == CODEC_MPEG2_AUDIO:
            return True, MPEG2Audio()
        if value == CODEC_MPEG4_AUDIO:
            return True, None
    elif isinstance(value, str) and value == "mp4a":
        return True, None
    raise TracksError(f"unsupported audio codec {value}")


def _h265_from_keyframe(payload: bytes) -> Optional[H265]:
    try:
        nalus = avcc_unmarshal(payload)
    except FormatError as exc:
        raise TracksError(str(exc)) from exc

    found = {}
    for nalu in nalus:
        if nalu:
            found[(nalu[0] >> 1) & 0b111111] = nalu

    vps, sps, pps = (found.get(t) for t in (H265_NALU_VPS, H265_NALU_SPS, H265_NALU_PPS))
    if vps is None or sps is None or pps is None:
        return None
    return H265(payload_type=96, vps=vps, sps=sps, pps=pps)


def _track_from_sequence_start(msg: ExtendedSequenceStart) -> Any:
    if msg.fourcc == FOURCC_HEVC:
        try:
            arrays = parse_hvcc(msg.config)
        except FormatError as exc:
            raise TracksError(f"invalid H265 configuration: {exc}") from exc

        vps = find_h265_nalu(arrays, H265_NALU_VPS)
        sps = find_h265_nalu(arrays, H265_NALU_SPS)
        pps = find_h265_nalu(arrays, H265_NALU_PPS)
        if vps is None or sps is None or pps is None:
            raise TracksError("H265 parameters are missing")
        return H265(payload_type=96, vps=vps, sps=sps, pps=pps)

    if msg.fourcc == FOURCC_AV1:
        try:
            record = parse_av1c(msg.config)
            av1_bitstream_unmarshal(record["config_obus"])
        except FormatError as exc:
            raise TracksError(f"invalid AV1 configuration: {exc}") from exc
        return AV1()

    raise TracksError("VP9 is not supported yet")


def _read_from_metadata(rw: Any, payload: List[Any]) -> Tuple[Any, Any]:
    if len(payload) != 1 or not isinstance(payload[0], dict):
        raise TracksError("invalid metadata")
    metadata = payload[0]

    has_video = _has_video(metadata)
    has_audio, audio_track = _audio_info(metadata)
    video_track = None

    if not has_video and not has_audio:
        raise _EmptyMetadata()

    while True:
        if (not has_video or video_track is not None) and (not has_audio or audio_track is not None):
            return video_track, audio_track

        msg = rw.read()

        if isinstance(msg, Video):
            if not has_video:
                raise TracksError("unexpected video packet")
            if video_track is None:
                if msg.type == VideoType.CONFIG:
                    video_track = _h264_track(msg.payload)
                # format used by OBS < 29.1 to publish H265
                elif msg.type == VideoType.AU and msg.is_key_frame:
                    video_track = _h265_from_keyframe(msg.payload)

        elif isinstance(msg, ExtendedSequenceStart):
            if video_track is None:
                video_track = _track_from_sequence_start(msg)

        elif isinstance(msg, Audio):
            if not has_audio:
                raise TracksError("unexpected audio packet")
            if (
                audio_track is None
                and msg.codec == CODEC_MPEG4_AUDIO
                and msg.aac_type == AudioAACType.CONFIG
            ):
                audio_track = _aac_track(msg.payload)


def _read_from_messages(rw: Any, msg: Any) -> Tuple[Optional[H264], Optional[MPEG4Audio]]:
    start: Optional[int] = None
    video_track: Optional[H264] = None
    audio_track: Optional[MPEG4Audio] = None

    # analyze one second of packets
    while True:
        if isinstance(msg, (Video, Audio)):
            if start is None:
                start = msg.dts

            if isinstance(msg, Video):
                if msg.type == VideoType.CONFIG and video_track is None:
                    video_track = _h264_track(msg.payload)
                    if audio_track is not None:
                        return video_track, audio_track
            elif msg.aac_type == AudioAACType.CONFIG and audio_track is None:
                audio_track = _aac_track(msg.payload)
                if video_track is not None:
                    return video_track, audio_track

            if msg.dts - start >= _ANALYSIS_DURATION_MS:
                break

        msg = rw.read()

    if video_track is None and audio_track is None:
        raise TracksError("no tracks found")
    return video_track, audio_track


def _first_message(rw: Any) -> Any:
    while True:
        msg = rw.read()

        # skip play start and data start
        if isinstance(msg, CommandAMF0) and msg.name == "onStatus":
            continue

        # skip RtmpSampleAccess
        if (
            isinstance(msg, DataAMF0)
            and msg.payload
            and isinstance(msg.payload[0], str)
            and msg.payload[0] == "|RtmpSampleAccess"
        ):
            continue

        return msg


def read_tracks(rw: Any) -> Tuple[Any, Any]:
    """Read track descriptions; return the video track and the audio track."""
    msg = _first_message(rw)

    if isinstance(msg, DataAMF0) and msg.payload:
        payload = list(msg.payload)
        if isinstance(payload[0], str) and payload[0] == "@setDataFrame":
            payload = payload[1:]

        if payload and isinstance(payload[0], str) and payload[0] == "onMetaData":
            try:
                return _read_from_metadata(rw, payload[1:])
            except _EmptyMetadata:
                return _read_from_messages(rw, rw.read())

    return _read_from_messages(rw, msg)


def write_tracks(rw: Any, video_track: Any, audio_track: Any) -> None:
    """Write track descriptions: metadata followed by decoder configurations."""
    if isinstance(video_track, H264):
        video_codec_id = float(CODEC_H264)
    else:
        video_codec_id = 0.0

    if isinstance(audio_track, MPEG2Audio):
        audio_codec_id = float(CODEC_MPEG2_AUDIO)
    elif isinstance(audio_track, MPEG4Audio):
        audio_codec_id = float(CODEC_MPEG4_AUDIO)
    else:
        audio_codec_id = 0.0

    rw.write(
        DataAMF0(
            chunk_stream_id=4,
            message_stream_id=_STREAM_ID,
            payload=[
                "@setDataFrame",
                "onMetaData",
                {
                    "videodatarate": 0.0,
                    "videocodecid": video_codec_id,
                    "audiodatarate": 0.0,
                    "audiocodecid": audio_codec_id,
                },
            ],
        )
    )

    # the decoder config is written only when SPS and PPS are available;
    # otherwise they are sent later.
    if isinstance(video_track, H264) and video_track.sps and video_track.pps:
        try:
            config = H264Conf(sps=video_track.sps, pps=video_track.pps).marshal()
        except H264ConfError as exc:
            raise TracksError(str(exc)) from exc
        rw.write(
            Video(
                chunk_stream_id=VIDEO_CHUNK_STREAM_ID,
                message_stream_id=_STREAM_ID,
                codec=CODEC_H264,
                is_key_frame=True,
                type=VideoType.CONFIG,
                payload=config,
            )
        )

    if isinstance(audio_track, MPEG4Audio):
        if audio_track.config is None:
            raise TracksError("MPEG-4 audio track has no configuration")
        rw.write(
            Audio(
                chunk_stream_id=AUDIO_CHUNK_STREAM_ID,
                message_stream_id=_STREAM_ID,
                codec=CODEC_MPEG4_AUDIO,
                rate=SOUND_44KHZ,
                depth=SOUND_16BIT,
                channels=SOUND_STEREO,
                aac_type=AudioAACType.CONFIG,
                payload=audio_track.config.marshal(),
            )
        )