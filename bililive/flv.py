"""A native FLV recorder that copies tags while checking their headers."""

from __future__ import annotations

import enum
import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, BinaryIO, Optional, TypeVar, Union

import requests

from bililive import parser
from bililive.bufreader import BufferedReader

NAME = "native"

AUDIO_TAG = 8
VIDEO_TAG = 9
SCRIPT_TAG = 18

IO_RETRY_COUNT = 3
FLV_SIGNATURE = b"FLV\x01"
REQUEST_USER_AGENT = "Chrome/59.0.3071.115"
_COPY_CHUNK = 64 * 1024

_log = logging.getLogger(__name__)


class NotFlvStreamError(Exception):
    def __init__(self, message: str = "not flv stream") -> None:
        super().__init__(message)


class UnknownTagError(Exception):
    def __init__(self, message: str = "unknown tag") -> None:
        super().__init__(message)


class SoundFormat(enum.IntEnum):
    LPCM_PE = 0
    ADPCM = 1
    MP3 = 2
    LPCM_LE = 3
    AAC = 10
    SPEEX = 11
    MP3_8KHZ = 14


class SoundRate(enum.IntEnum):
    RATE_5KHZ = 0
    RATE_11KHZ = 1
    RATE_22KHZ = 2
    RATE_44KHZ = 3


SAMPLE_8 = 0
SAMPLE_16 = 1


class SoundType(enum.IntEnum):
    MONO = 0
    STEREO = 1


class AACPacketType(enum.IntEnum):
    SEQ_HEADER = 0
    RAW = 1


class FrameType(enum.IntEnum):
    KEY_FRAME = 1
    INTER_FRAME = 2
    DISPOSABLE_INTER_FRAME = 3
    GENERATED_KEY_FRAME = 4
    VIDEO_INFO_FRAME = 5


class CodecID(enum.IntEnum):
    H263 = 2
    SCREEN_VIDEO = 3
    VP6 = 4
    VP6_ALPHA = 5
    SCREEN_VIDEO_V2 = 6
    AVC = 7


class AVCPacketType(enum.IntEnum):
    SEQ_HEADER = 0
    NALU = 1
    END_SEQ = 2


class DataType(enum.IntEnum):
    NUMBER = 0
    BOOLEAN = 1
    STRING = 2
    OBJECT = 3
    NULL = 5
    UNDEFINED = 6
    REFERENCE = 7
    ECMA_ARRAY = 8
    OBJECT_END_MARKER = 9
    STRICT_ARRAY = 10
    DATE = 11
    LONG_STRING = 12


_E = TypeVar("_E", bound=enum.IntEnum)


def _enum_or_int(cls: type[_E], value: int) -> Union[_E, int]:
    try:
        return cls(value)
    except ValueError:
        return value


@dataclass
class Metadata:
    has_video: bool = False
    has_audio: bool = False


@dataclass
class AudioTagHeader:
    sound_format: Union[SoundFormat, int] = SoundFormat.LPCM_PE
    sound_rate: SoundRate = SoundRate.RATE_5KHZ
    sound_size: int = SAMPLE_8
    sound_type: SoundType = SoundType.MONO
    aac_packet_type: Union[AACPacketType, int] = AACPacketType.SEQ_HEADER


@dataclass
class VideoTagHeader:
    frame_type: Union[FrameType, int] = 0
    codec_id: Union[CodecID, int] = 0
    avc_packet_type: Union[AVCPacketType, int] = AVCPacketType.SEQ_HEADER
    composition_time: int = 0


class FlvParser(parser.Parser):
    """Copies an FLV stream tag by tag, stopping at a second AVC sequence header."""

    def __init__(self) -> None:
        self.metadata = Metadata()
        self.avc_header_count = 0
        self.tag_count = 0
        self._reader: Optional[BufferedReader] = None
        self._sink: Optional[BinaryIO] = None
        self._stop = threading.Event()

    def parse_live_stream(self, url: Any, live: Any, file: str) -> None:
        """Download the stream at ``url`` into ``file``."""
        address = url if isinstance(url, str) else url.geturl()
        with requests.get(address, headers={"User-Agent": REQUEST_USER_AGENT}, stream=True) as response:
            fd = os.open(file, os.O_RDWR | os.O_CREAT, 0o666)
            with os.fdopen(fd, "r+b") as sink:
                self.parse_stream(response.raw, sink)

    def parse_stream(self, source: BinaryIO, sink: BinaryIO) -> None:
        """Copy FLV data from ``source`` to ``sink`` until stopped; the stream's end raises EOFError."""
        self._reader = BufferedReader(source)
        self._sink = sink
        try:
            header = self._reader.read_n(9)
            if header[:4] != FLV_SIGNATURE:
                raise NotFlvStreamError()
            self.metadata.has_video = bool(header[4] & 0b100)
            self.metadata.has_audio = bool(header[4] & 0b1)
            if int.from_bytes(header[5:9], "big") != 9:
                raise NotFlvStreamError()
            self._flush_header()
            while not self._stop.is_set():
                self._parse_tag()
        finally:
            self._reader.free()

    def stop(self) -> None:
        self._stop.set()

    def _flush_header(self) -> None:
        self._write(self._reader.all_bytes())
        self._reader.reset()

    def _parse_tag(self) -> None:
        self.tag_count += 1
        b = self._reader.read_n(15)
        tag_type = b[4]
        length = int.from_bytes(b[5:8], "big")
        timestamp = int.from_bytes(b[8:11], "big") | b[11] << 24
        if tag_type == AUDIO_TAG:
            self._parse_audio_tag(length, timestamp)
        elif tag_type == VIDEO_TAG:
            self._parse_video_tag(length, timestamp)
        elif tag_type == SCRIPT_TAG:
            self._parse_script_tag(length)
        else:
            raise UnknownTagError()

    def _parse_audio_tag(self, length: int, timestamp: int) -> AudioTagHeader:
        b = self._reader.read_byte()
        remaining = length - 1
        tag = AudioTagHeader(
            sound_format=_enum_or_int(SoundFormat, b >> 4 & 15),
            sound_rate=SoundRate(b >> 2 & 3),
            sound_size=b >> 1 & 1,
            sound_type=SoundType(b & 1),
        )
        if tag.sound_format == SoundFormat.AAC:
            tag.aac_packet_type = _enum_or_int(AACPacketType, self._reader.read_byte())
            remaining -= 1
        self._flush_header()
        self._copy(remaining)
        return tag

    def _parse_video_tag(self, length: int, timestamp: int) -> VideoTagHeader:
        b = self._reader.read_byte()
        remaining = length - 1
        tag = VideoTagHeader(
            frame_type=_enum_or_int(FrameType, b >> 4 & 15),
            codec_id=_enum_or_int(CodecID, b & 15),
        )
        if tag.codec_id == CodecID.AVC:
            tag.avc_packet_type = _enum_or_int(AVCPacketType, self._reader.read_byte())
            remaining -= 1
            if tag.avc_packet_type == AVCPacketType.NALU:
                tag.composition_time = int.from_bytes(self._reader.read_n(3), "big")
                remaining -= 3
            elif tag.avc_packet_type == AVCPacketType.SEQ_HEADER:
                self.avc_header_count += 1
                if self.avc_header_count > 1:
                    raise EOFError("EOF new sps pps")
        self._flush_header()
        self._copy(remaining)
        return tag

    def _parse_script_tag(self, length: int) -> None:
        self._flush_header()
        self._copy(length)

    def _copy(self, n: int) -> None:
        if n < 0:
            raise NotFlvStreamError("tag body is shorter than its header")
        written = 0
        while written < n:
            chunk = self._reader.read(min(_COPY_CHUNK, n - written))
            if not chunk:
                _log.debug("copy stopped early", stack_info=True)
                raise EOFError(f"doCopy({n}), {written} bytes written")
            self._write(chunk)
            written += len(chunk)

    def _write(self, data: bytes) -> None:
        left = len(data)
        for _ in range(IO_RETRY_COUNT):
            if left <= 0:
                break
            count = self._sink.write(data[len(data) - left:])
            left -= len(data) - (len(data) - left) if count is None else count
            if left:
                _log.debug("doWrite() left %d bytes to write", left)
        if left:
            raise OSError(
                f"doWrite([{len(data)}]byte) tried {IO_RETRY_COUNT} times, "
                f"but still has {left} bytes to write"
            )


def build_flv_parser(cfg: dict[str, str]) -> FlvParser:
    return FlvParser()


parser.register(NAME, build_flv_parser)