"""
app/validators/url_validator.py

Content URL validation, platform detection and normalization.
"""

from __future__ import annotations

import re
from urllib.parse import parse_qs, urlsplit

from app.domain.errors import InvalidUrlError, UnsupportedPlatformError
from app.domain.scrape import ParsedContentUrl
from db.models.scrape_job import Platform

_YOUTUBE_HOSTS = {"youtube.com", "m.youtube.com", "music.youtube.com", "youtu.be"}
_INSTAGRAM_HOSTS = {"instagram.com"}
_TIKTOK_HOSTS = {"tiktok.com", "m.tiktok.com", "vm.tiktok.com", "vt.tiktok.com"}
_UNSUPPORTED_HOSTS = {
    "twitter.com": "twitter",
    "x.com": "twitter",
    "facebook.com": "facebook",
    "linkedin.com": "linkedin",
}

_YOUTUBE_ID = re.compile(r"^[A-Za-z0-9_-]{11}$")
_YOUTUBE_PATH_ID = re.compile(r"^/(?:shorts|embed|v|live)/([A-Za-z0-9_-]{11})(?:[/?]|$)")
_INSTAGRAM_PATH = re.compile(r"^/(?:[A-Za-z0-9_.]+/)?(p|reel|reels|tv)/([A-Za-z0-9_-]+)/?")
_TIKTOK_VIDEO_PATH = re.compile(r"^/@([^/]+)/(?:video|photo)/(\d+)/?")
_TIKTOK_SHORT_PATH = re.compile(r"^/([A-Za-z0-9]+)/?$")


def _host(netloc: str) -> str:
    host = netloc.lower().split("@")[-1].split(":")[0]
    return host[4:] if host.startswith("www.") else host


def parse_content_url(raw_url: str) -> ParsedContentUrl:
    """
    Validate a user-supplied content URL.

    Raises InvalidUrlError for malformed URLs or paths that do not identify a
    single post or video, and UnsupportedPlatformError for hosts the pipeline
    does not scrape.
    """

    url = (raw_url or "").strip()
    if not url:
        raise InvalidUrlError("URL is required.")
    if "://" not in url:
        url = f"https://{url}"

    parts = urlsplit(url)
    if parts.scheme not in {"http", "https"} or not parts.netloc:
        raise InvalidUrlError(f"Invalid URL: {raw_url}")

    host = _host(parts.netloc)
    if host in _YOUTUBE_HOSTS:
        return _parse_youtube(url, host, parts.path, parts.query)
    if host in _INSTAGRAM_HOSTS:
        return _parse_instagram(url, parts.path)
    if host in _TIKTOK_HOSTS:
        return _parse_tiktok(url, host, parts.path)

    for unsupported_host, name in _UNSUPPORTED_HOSTS.items():
        if host == unsupported_host or host.endswith(f".{unsupported_host}"):
            raise UnsupportedPlatformError(f"{name.capitalize()} content is not supported yet.")
    raise UnsupportedPlatformError("Unsupported platform. Use a YouTube, Instagram or TikTok URL.")


def _parse_youtube(url: str, host: str, path: str, query: str) -> ParsedContentUrl:
    video_id: str | None = None
    if host == "youtu.be":
        candidate = path.strip("/").split("/")[0]
        video_id = candidate if _YOUTUBE_ID.match(candidate) else None
    elif path.rstrip("/") == "/watch":
        candidate = (parse_qs(query).get("v") or [""])[0]
        video_id = candidate if _YOUTUBE_ID.match(candidate) else None
    else:
        match = _YOUTUBE_PATH_ID.match(path)
        video_id = match.group(1) if match else None

    if video_id is None:
        raise InvalidUrlError("Invalid YouTube URL. Please provide a valid video URL.")

    if path.startswith("/shorts/"):
        normalized = f"https://www.youtube.com/shorts/{video_id}"
    else:
        normalized = f"https://www.youtube.com/watch?v={video_id}"
    return ParsedContentUrl(
        url=url,
        normalized_url=normalized,
        platform=Platform.YOUTUBE,
        content_id=video_id,
    )


def _parse_instagram(url: str, path: str) -> ParsedContentUrl:
    match = _INSTAGRAM_PATH.match(path)
    if match is None:
        raise InvalidUrlError("Invalid Instagram URL. Please provide a valid post or reel URL.")
    shortcode = match.group(2)
    # Reels, TV and profile-scoped links all resolve to the same post.
    return ParsedContentUrl(
        url=url,
        normalized_url=f"https://www.instagram.com/p/{shortcode}/",
        platform=Platform.INSTAGRAM,
        content_id=shortcode,
    )


def _parse_tiktok(url: str, host: str, path: str) -> ParsedContentUrl:
    if host in {"vm.tiktok.com", "vt.tiktok.com"}:
        short_match = _TIKTOK_SHORT_PATH.match(path)
        if short_match is None:
            raise InvalidUrlError("Invalid TikTok URL. Please provide a valid video URL.")
        return ParsedContentUrl(
            url=url,
            normalized_url=f"https://{host}/{short_match.group(1)}/",
            platform=Platform.TIKTOK,
            content_id=None,
        )

    match = _TIKTOK_VIDEO_PATH.match(path)
    if match is None:
        raise InvalidUrlError("Invalid TikTok URL. Please provide a valid video URL.")
    username, video_id = match.groups()
    return ParsedContentUrl(
        url=url,
        normalized_url=f"https://www.tiktok.com/@{username}/video/{video_id}",
        platform=Platform.TIKTOK,
        content_id=video_id,
    )
