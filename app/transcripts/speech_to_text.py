"""
app/transcripts/speech_to_text.py

Audio acquisition and speech-to-text for the transcript chain.

Transcription goes through an OpenAI-compatible audio endpoint (Groq's
Whisper deployment by default). YouTube audio URLs are resolved with
yt-dlp; long recordings are cut into time-based chunks with ffmpeg.
"""

from __future__ import annotations

import logging
import math
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Protocol

import requests

from app.config import TranscriptionSettings

logger = logging.getLogger(__name__)

_DOWNLOAD_CHUNK_BYTES = 256 * 1024


class TranscriptionError(RuntimeError):
    """Raised when audio cannot be acquired or transcribed."""


class SpeechToText(Protocol):
    def transcribe(self, *, audio: bytes, filename: str, prompt: str | None = None) -> str:
        ...


class AudioSource(Protocol):
    def download(self, url: str, *, max_bytes: int) -> bytes:
        ...

    def resolve_youtube_audio(self, video_url: str) -> str:
        ...

    def split(self, audio: bytes, *, chunk_seconds: int, total_seconds: int) -> list[bytes]:
        ...


class OpenAICompatibleSpeechToText:
    """
    Whisper-style transcription through the openai SDK.
    """

    def __init__(self, settings: TranscriptionSettings, *, timeout_seconds: float = 120.0) -> None:
        self._settings = settings
        self._timeout_seconds = timeout_seconds
        self._client: Any = None

    @property
    def configured(self) -> bool:
        return bool(self._settings.api_key)

    def _get_client(self) -> Any:
        if self._client is None:
            if not self._settings.api_key:
                raise TranscriptionError("TRANSCRIPTION_API_KEY is not configured.")
            from openai import OpenAI

            self._client = OpenAI(
                api_key=self._settings.api_key,
                base_url=self._settings.base_url,
                timeout=self._timeout_seconds,
                max_retries=1,
            )
        return self._client

    def transcribe(self, *, audio: bytes, filename: str, prompt: str | None = None) -> str:
        if not audio:
            raise TranscriptionError("No audio to transcribe.")

        request: dict[str, Any] = {
            "model": self._settings.model,
            "file": (filename, audio),
            "response_format": "json",
        }
        if prompt:
            request["prompt"] = prompt[:800]

        response = self._get_client().audio.transcriptions.create(**request)
        text = getattr(response, "text", None)
        if text is None and isinstance(response, str):
            text = response
        return (text or "").strip()


class MediaAudioSource:
    """
    Downloads media, resolves YouTube audio streams and splits audio files.
    """

    def __init__(self, *, session: requests.Session | None = None, timeout_seconds: float = 60.0) -> None:
        self._session = session or requests.Session()
        self._timeout_seconds = timeout_seconds

    def download(self, url: str, *, max_bytes: int) -> bytes:
        """
        Stream a media file into memory, refusing anything over `max_bytes`.
        """

        with self._session.get(url, stream=True, timeout=self._timeout_seconds) as response:
            if response.status_code >= 400:
                raise TranscriptionError(f"Media download failed with status {response.status_code}.")
            declared = response.headers.get("Content-Length")
            if declared and declared.isdigit() and int(declared) > max_bytes:
                raise TranscriptionError(f"Media is {declared} bytes, above the {max_bytes} byte limit.")

            buffer = bytearray()
            for chunk in response.iter_content(chunk_size=_DOWNLOAD_CHUNK_BYTES):
                buffer.extend(chunk)
                if len(buffer) > max_bytes:
                    raise TranscriptionError(f"Media exceeded the {max_bytes} byte limit while downloading.")
        return bytes(buffer)

    def resolve_youtube_audio(self, video_url: str) -> str:
        from yt_dlp import YoutubeDL

        options = {
            "quiet": True,
            "no_warnings": True,
            "skip_download": True,
            "format": "bestaudio[ext=m4a]/bestaudio/best",
        }
        with YoutubeDL(options) as ydl:
            info = ydl.extract_info(video_url, download=False)

        audio_url = (info or {}).get("url")
        if not audio_url:
            for fmt in reversed((info or {}).get("requested_formats") or []):
                if fmt.get("url"):
                    audio_url = fmt["url"]
                    break
        if not audio_url:
            raise TranscriptionError(f"No audio stream available for {video_url}.")
        return str(audio_url)

    def split(self, audio: bytes, *, chunk_seconds: int, total_seconds: int) -> list[bytes]:
        """
        Cut audio into consecutive `chunk_seconds` windows with ffmpeg.
        """

        chunk_count = max(1, math.ceil(total_seconds / chunk_seconds))
        with tempfile.TemporaryDirectory(prefix="transcript_chunks_") as workdir:
            source_path = Path(workdir) / "source.audio"
            source_path.write_bytes(audio)

            chunks: list[bytes] = []
            for idx in range(chunk_count):
                chunk_path = Path(workdir) / f"chunk_{idx:03d}.mp3"
                args = [
                    "ffmpeg",
                    "-y",
                    "-loglevel",
                    "error",
                    "-i",
                    str(source_path),
                    "-ss",
                    str(idx * chunk_seconds),
                    "-t",
                    str(chunk_seconds),
                    "-vn",
                    "-ac",
                    "1",
                    "-b:a",
                    "64k",
                    str(chunk_path),
                ]
                try:
                    result = subprocess.run(args, capture_output=True, text=True, timeout=120, check=False)
                except (OSError, subprocess.TimeoutExpired) as exc:
                    raise TranscriptionError(f"Chunk {idx} creation failed: {exc}") from exc
                if result.returncode != 0 or not chunk_path.exists():
                    stderr = (result.stderr or "unknown error")[:200]
                    raise TranscriptionError(f"ffmpeg chunk {idx} failed: {stderr}")
                chunks.append(chunk_path.read_bytes())

        logger.info("Split audio into %d chunks of %ss", len(chunks), chunk_seconds)
        return chunks
