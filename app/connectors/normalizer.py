"""
app/connectors/normalizer.py

Normalization of job-runner dataset items into ExtractedContent.

Each platform's scraper emits its own field names (and they drift between
actor versions), so every field is read through a list of aliases.
"""

from __future__ import annotations

import re
from typing import Any

from app.domain.scrape import ExtractedContent, PostType, VideoType
from db.models.scrape_job import Platform

HASHTAG_PATTERN = re.compile(r"#[a-zA-Z0-9_]+")
MENTION_PATTERN = re.compile(r"@[a-zA-Z0-9_.]+")
_CLOCK_DURATION = re.compile(r"^(?:(\d+):)?(\d{1,2}):(\d{2})$")
_ISO_DURATION = re.compile(r"^P(?:(\d+)D)?T?(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?$")

SHORT_VIDEO_MAX_SECONDS = 60
LONG_FORM_MIN_SECONDS = 1200
MAX_TOP_COMMENTS = 50


def _unique(values: list[str]) -> list[str]:
    seen: dict[str, None] = {}
    for value in values:
        seen.setdefault(value, None)
    return list(seen)


def extract_hashtags(text: str | None) -> list[str]:
    return _unique(HASHTAG_PATTERN.findall(text or ""))


def extract_mentions(text: str | None) -> list[str]:
    return _unique([mention.rstrip(".") for mention in MENTION_PATTERN.findall(text or "")])


def parse_duration_seconds(value: Any) -> int | None:
    """
    Accept seconds (int/float/numeric string), "H:MM:SS" / "MM:SS" clock
    strings, or ISO 8601 durations such as "PT1H2M10S".
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if value >= 0 else None

    text = str(value).strip()
    if not text:
        return None
    if text.isdigit():
        return int(text)

    clock = _CLOCK_DURATION.match(text)
    if clock:
        hours, minutes, seconds = clock.groups()
        return int(hours or 0) * 3600 + int(minutes) * 60 + int(seconds)

    iso = _ISO_DURATION.match(text.upper())
    if iso and any(iso.groups()):
        days, hours, minutes, seconds = (int(part or 0) for part in iso.groups())
        return days * 86400 + hours * 3600 + minutes * 60 + seconds
    return None


def classify_video_type(duration_seconds: int | None, url: str | None) -> str:
    if (url and "/shorts/" in url) or (duration_seconds is not None and duration_seconds <= SHORT_VIDEO_MAX_SECONDS):
        return VideoType.SHORT
    if duration_seconds is not None and duration_seconds > LONG_FORM_MIN_SECONDS:
        return VideoType.LONG_FORM
    return VideoType.REGULAR


def _first(data: dict[str, Any], *paths: str) -> Any:
    """
    Return the first non-empty value found at any dotted path.
    """

    for path in paths:
        current: Any = data
        for part in path.split("."):
            if isinstance(current, dict):
                current = current.get(part)
            elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
                current = current[int(part)]
            else:
                current = None
                break
        if current not in (None, "", [], {}):
            return current
    return None


def _int(value: Any) -> int:
    if isinstance(value, list):
        return len(value)
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def _str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _truncate(text: str | None, limit: int = 100) -> str | None:
    return text[:limit] if text else None


def detect_item_platform(item: dict[str, Any]) -> str:
    if any(key in item for key in ("videoId", "channelId", "video_id")):
        return Platform.YOUTUBE
    if "shortCode" in item or item.get("type") == "Post":
        return Platform.INSTAGRAM
    return Platform.TIKTOK


def normalize_runner_item(
    item: dict[str, Any],
    *,
    platform: str | None = None,
    source_url: str | None = None,
) -> ExtractedContent:
    resolved_platform = platform or detect_item_platform(item)
    if resolved_platform == Platform.YOUTUBE:
        return _normalize_youtube(item, source_url)
    if resolved_platform == Platform.INSTAGRAM:
        return _normalize_instagram(item, source_url)
    return _normalize_tiktok(item, source_url)


def _normalize_youtube(item: dict[str, Any], source_url: str | None) -> ExtractedContent:
    video_id = _str(_first(item, "videoId", "video_id", "id"))
    url = _str(_first(item, "url")) or source_url or f"https://www.youtube.com/watch?v={video_id}"
    description = _str(_first(item, "description", "text"))
    duration = parse_duration_seconds(_first(item, "duration", "lengthSeconds", "durationSeconds"))
    comments = item.get("comments") if isinstance(item.get("comments"), list) else []

    return ExtractedContent(
        platform=Platform.YOUTUBE,
        url=url,
        title=_str(item.get("title")),
        description=description,
        author=_str(_first(item, "channelUsername", "channelName", "channel_name")),
        author_name=_str(_first(item, "channelName", "channel_name", "channelTitle", "channel_title")),
        author_id=_str(_first(item, "channelId", "channel_id")),
        video_id=video_id,
        duration_seconds=duration,
        upload_date=_str(_first(item, "uploadDate", "upload_date", "publishedAt", "published_at", "date")),
        thumbnail_url=_str(
            _first(
                item,
                "thumbnailUrl",
                "thumbnail_url",
                "thumbnail",
                "thumbnails.maxres.url",
                "thumbnails.standard.url",
                "thumbnails.high.url",
                "thumbnails.default.url",
            )
        ),
        video_url=_str(_first(item, "videoUrl", "video_url")),
        post_type=PostType.VIDEO,
        video_type=classify_video_type(duration, url),
        metrics={
            "views": _int(_first(item, "viewCount", "view_count", "views")),
            "likes": _int(_first(item, "likeCount", "like_count", "likes")),
            "comments": _int(_first(item, "commentCount", "comment_count", "commentsCount") or comments),
            "shares": 0,
        },
        hashtags=extract_hashtags(description),
        mentions=extract_mentions(description),
        top_comments=[
            {
                "text": comment.get("text"),
                "author": comment.get("authorName") or comment.get("author"),
                "likes": _int(comment.get("likeCount")),
                "timestamp": comment.get("publishedAt"),
            }
            for comment in comments[:MAX_TOP_COMMENTS]
            if isinstance(comment, dict)
        ],
        transcript=_str(_first(item, "transcript", "subtitles.0.text", "captions.0.text")),
        raw_data=item,
    )


def _instagram_post_type(item: dict[str, Any]) -> str:
    kind = str(item.get("type") or "").lower()
    if kind == "sidecar" or item.get("childPosts"):
        return PostType.CAROUSEL
    if kind == "video" or item.get("videoUrl") or item.get("productType") == "clips":
        return PostType.VIDEO
    if kind == "image":
        return PostType.IMAGE
    return PostType.VIDEO if item.get("isVideo") else PostType.IMAGE


def _normalize_instagram(item: dict[str, Any], source_url: str | None) -> ExtractedContent:
    caption = _str(_first(item, "caption", "text"))
    shortcode = _str(item.get("shortCode"))
    url = _str(item.get("url")) or source_url or f"https://www.instagram.com/p/{shortcode}/"
    comments = item.get("latestComments") or item.get("comments")
    comments = comments if isinstance(comments, list) else []
    duration = parse_duration_seconds(_first(item, "videoDuration", "video_duration"))

    return ExtractedContent(
        platform=Platform.INSTAGRAM,
        url=url,
        title=_truncate(caption),
        description=caption,
        author=_str(_first(item, "ownerUsername", "owner_username", "owner.username")),
        author_name=_str(_first(item, "ownerFullName", "ownerUsername", "owner.full_name")),
        author_id=_str(_first(item, "ownerId", "owner_id", "owner.id")),
        duration_seconds=duration,
        upload_date=_str(_first(item, "timestamp", "takenAt", "taken_at")),
        thumbnail_url=_str(
            _first(
                item,
                "displayUrl",
                "display_url",
                "imageUrl",
                "image_url",
                "thumbnailUrl",
                "thumbnail_url",
                "images.0",
                "displayResources.0.src",
            )
        ),
        video_url=_str(_first(item, "videoUrl", "video_url")),
        post_type=_instagram_post_type(item),
        metrics={
            "views": _int(_first(item, "videoViewCount", "videoPlayCount", "video_view_count", "views")),
            "likes": _int(_first(item, "likesCount", "likes_count", "likes")),
            "comments": _int(_first(item, "commentsCount", "comments_count") or comments),
            "shares": 0,
        },
        hashtags=_unique(["#" + str(tag).lstrip("#") for tag in item.get("hashtags") or []])
        or extract_hashtags(caption),
        mentions=_unique(["@" + str(name).lstrip("@") for name in item.get("mentions") or []])
        or extract_mentions(caption),
        top_comments=[
            {
                "text": comment.get("text"),
                "author": comment.get("ownerUsername"),
                "likes": _int(comment.get("likesCount")),
                "timestamp": comment.get("timestamp"),
            }
            for comment in comments[:MAX_TOP_COMMENTS]
            if isinstance(comment, dict)
        ],
        transcript=_str(item.get("transcript")),
        raw_data=item,
    )


def _tiktok_tags(values: Any, prefix: str) -> list[str]:
    tags: list[str] = []
    for value in values or []:
        name = value.get("name") if isinstance(value, dict) else value
        if name:
            tags.append(prefix + str(name).lstrip(prefix))
    return _unique(tags)


def _normalize_tiktok(item: dict[str, Any], source_url: str | None) -> ExtractedContent:
    text = _str(_first(item, "text", "description", "desc"))
    duration = parse_duration_seconds(_first(item, "videoMeta.duration", "video_meta.duration", "duration"))
    is_photo_post = bool(item.get("isSlideshow") or item.get("imagePost") or item.get("slideshowImageLinks"))
    comments = item.get("comments") if isinstance(item.get("comments"), list) else []

    return ExtractedContent(
        platform=Platform.TIKTOK,
        url=_str(_first(item, "webVideoUrl", "web_video_url", "url")) or source_url or "",
        title=_truncate(text),
        description=text,
        author=_str(_first(item, "authorMeta.name", "author_meta.name", "author.uniqueId", "author.unique_id")),
        author_name=_str(_first(item, "authorMeta.nickName", "authorMeta.name", "author.nickname")),
        author_id=_str(_first(item, "authorMeta.id", "author_meta.id", "author.id")),
        video_id=_str(item.get("id")),
        duration_seconds=duration,
        upload_date=_str(_first(item, "createTimeISO", "createTime", "create_time")),
        thumbnail_url=_str(
            _first(
                item,
                "videoMeta.coverUrl",
                "videoMeta.cover",
                "video_meta.cover",
                "covers.default",
                "covers.origin",
                "cover",
                "thumbnailUrl",
            )
        ),
        video_url=_str(
            _first(
                item,
                "videoUrl",
                "video_url",
                "videoUrlNoWatermark",
                "video_url_no_watermark",
                "videoMeta.downloadAddr",
                "mediaUrls.0",
            )
        ),
        post_type=PostType.IMAGE if is_photo_post else PostType.VIDEO,
        metrics={
            "views": _int(_first(item, "playCount", "play_count", "views")),
            "likes": _int(_first(item, "diggCount", "digg_count", "likes")),
            "comments": _int(_first(item, "commentCount", "comment_count") or comments),
            "shares": _int(_first(item, "shareCount", "share_count", "shares")),
        },
        hashtags=_tiktok_tags(item.get("hashtags"), "#") or extract_hashtags(text),
        mentions=_tiktok_tags(item.get("mentions"), "@") or extract_mentions(text),
        top_comments=[
            {
                "text": comment.get("text"),
                "author": (comment.get("user") or {}).get("uniqueId"),
                "likes": _int(comment.get("diggCount")),
                "timestamp": comment.get("createTime"),
            }
            for comment in comments[:MAX_TOP_COMMENTS]
            if isinstance(comment, dict)
        ],
        transcript=_str(item.get("transcript")),
        raw_data=item,
    )
