"""Media helpers: file → inline media, MIME/extension detection."""

from __future__ import annotations

import base64
import logging
import mimetypes
from pathlib import Path

from wingman.schema import InlineMedia

logger = logging.getLogger(__name__)

_MIME_EXTENSIONS = {
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/mpeg": ".mp3",
    "audio/mp3": ".mp3",
    "audio/ogg": ".ogg",
    "audio/flac": ".flac",
    "audio/mp4": ".m4a",
    "audio/m4a": ".m4a",
    "audio/webm": ".webm",
    "audio/amr": ".amr",
}


def encode_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def guess_mime_type(path: str | Path, default: str = "application/octet-stream") -> str:
    """Guess MIME type from the file extension."""
    mime, _ = mimetypes.guess_type(str(path))
    return mime or default


def file_to_inline_media(path: str | Path, mime_type: str | None = None) -> InlineMedia:
    """Read a file and wrap it as base64 inline media."""
    path = Path(path)
    data = path.read_bytes()
    mime = mime_type or guess_mime_type(path)
    logger.debug(f"[Media] {path.name}: {len(data)} bytes as {mime}")
    return InlineMedia(data=encode_base64(data), mime_type=mime)


def extension_for_mime(mime_type: str) -> str:
    """File extension for an audio MIME type (codec parameters are ignored)."""
    base = mime_type.split(";", 1)[0].strip().lower()
    if base in _MIME_EXTENSIONS:
        return _MIME_EXTENSIONS[base]
    return mimetypes.guess_extension(base) or ".mp3"


def detect_audio_format(audio: bytes) -> tuple[str, str]:
    """Detect audio format from magic bytes.

    Returns (mime_type, extension). Unknown payloads are treated as MP3.
    """
    if len(audio) < 12:
        return "audio/mpeg", ".mp3"

    # WAV: RIFF....WAVE
    if audio[:4] == b"RIFF" and audio[8:12] == b"WAVE":
        return "audio/wav", ".wav"
    # MP3: ID3 tag or sync bytes
    if audio[:3] == b"ID3" or (audio[0] == 0xFF and (audio[1] & 0xE0) == 0xE0):
        return "audio/mpeg", ".mp3"
    if audio[:4] == b"OggS":
        return "audio/ogg", ".ogg"
    if audio[:4] == b"fLaC":
        return "audio/flac", ".flac"
    # M4A / AAC / MP4 (ftyp box at offset 4)
    if audio[4:8] == b"ftyp":
        return "audio/mp4", ".m4a"
    # WebM (EBML header)
    if audio[:4] == b"\x1a\x45\xdf\xa3":
        return "audio/webm", ".webm"
    if audio[:6] == b"#!AMR\n":
        return "audio/amr", ".amr"

    return "audio/mpeg", ".mp3"
