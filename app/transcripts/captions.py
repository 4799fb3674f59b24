"""
app/transcripts/captions.py

Caption document parsing and caption-track selection.

Supported documents:
- legacy timed text: <transcript><text start=".." dur="..">...</text></transcript>
- srv3: <timedtext><body><p t=".." d=".."><s>..</s></p></body></timedtext>
- json3: {"events": [{"segs": [{"utf8": ".."}]}]}
"""

from __future__ import annotations

import html
import json
import re
import xml.etree.ElementTree as ET
from typing import Any

_WHITESPACE = re.compile(r"\s+")


def _clean(fragment: str) -> str:
    return _WHITESPACE.sub(" ", html.unescape(fragment)).strip()


def _join(fragments: list[str]) -> str | None:
    text = " ".join(part for part in (_clean(fragment) for fragment in fragments) if part)
    return text or None


def parse_caption_document(document: str | None) -> str | None:
    """
    Return the plain caption text, or None if the document is empty or
    not in a recognised format.
    """

    body = (document or "").strip()
    if not body:
        return None
    if body.startswith("{"):
        return _parse_json3(body)
    return _parse_xml(body)


def _parse_json3(body: str) -> str | None:
    try:
        parsed = json.loads(body)
    except ValueError:
        return None

    fragments: list[str] = []
    for event in parsed.get("events") or []:
        for segment in event.get("segs") or []:
            if isinstance(segment, dict) and segment.get("utf8"):
                fragments.append(str(segment["utf8"]))
    return _join(fragments)


def _parse_xml(body: str) -> str | None:
    try:
        root = ET.fromstring(body)
    except ET.ParseError:
        return None

    # srv3 nests words in <s> under <p>; legacy timed text uses flat <text>.
    nodes = root.findall(".//text") or root.findall(".//p")
    return _join(["".join(node.itertext()) for node in nodes])


def _track_name(track: dict[str, Any]) -> str:
    name = track.get("name")
    if isinstance(name, dict):
        name = name.get("simpleText") or "".join(run.get("text", "") for run in name.get("runs") or [])
    return str(name or "")


def select_caption_track(tracks: list[dict[str, Any]], language: str = "en") -> dict[str, Any] | None:
    """
    Prefer a track in `language` (by code, vss id or display name), then
    fall back to the first track that has a URL.
    """

    usable = [track for track in tracks if isinstance(track, dict) and track.get("baseUrl")]
    language = language.lower()
    for track in usable:
        code = str(track.get("languageCode") or "").lower()
        vss_id = str(track.get("vssId") or track.get("vss_id") or "").lower()
        if code == language or vss_id in {f".{language}", f"a.{language}"}:
            return track
    if language == "en":
        for track in usable:
            if "english" in _track_name(track).lower():
                return track
    return usable[0] if usable else None


def caption_tracks_from_raw(raw_data: dict[str, Any]) -> list[dict[str, Any]] | None:
    """
    Locate caption-track metadata in a scraper payload. Returns None when
    the payload carries no caption information at all, and an empty list
    when it explicitly reports zero tracks.
    """

    candidates = (
        raw_data.get("captionTracks"),
        ((raw_data.get("captions") or {}).get("playerCaptionsTracklistRenderer") or {}).get("captionTracks")
        if isinstance(raw_data.get("captions"), dict)
        else None,
    )
    for candidate in candidates:
        if isinstance(candidate, list):
            return [track for track in candidate if isinstance(track, dict)]

    caption_url = raw_data.get("_captionUrl")
    if isinstance(caption_url, str) and caption_url:
        return [{"baseUrl": caption_url, "languageCode": "en"}]
    return None


def split_transcript(text: str, max_chars: int = 3000) -> list[str]:
    """
    Split a long transcript into chunks of at most `max_chars`, breaking on
    sentence boundaries where possible.
    """

    sentences = re.split(r"(?<=[.!?])\s+", text.strip())
    chunks: list[str] = []
    current = ""
    for sentence in sentences:
        while len(sentence) > max_chars:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(sentence[:max_chars])
            sentence = sentence[max_chars:]
        candidate = f"{current} {sentence}".strip() if current else sentence
        if len(candidate) > max_chars:
            chunks.append(current)
            current = sentence
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks
