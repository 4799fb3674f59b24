"""
app/connectors/caption_connector.py

Downloads caption documents referenced by caption-track metadata.
"""

from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import requests

from app.config import ExternalHTTPSettings
from app.connectors.base import BaseConnector

TIMEDTEXT_URL = "https://www.youtube.com/api/timedtext"


def with_caption_format(base_url: str, fmt: str = "srv3") -> str:
    """
    Ask the caption endpoint for a specific format unless one is already set.
    """

    parts = urlsplit(base_url)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    query.setdefault("fmt", fmt)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


class CaptionConnector(BaseConnector):
    def __init__(
        self,
        *,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(source="captions", http_settings=http_settings, session=session)

    def fetch_track(self, base_url: str) -> str:
        return self._request_text(method="GET", url=with_caption_format(base_url))

    def fetch_timedtext(self, *, video_id: str, language: str = "en") -> str:
        return self._request_text(
            method="GET",
            url=TIMEDTEXT_URL,
            params={"v": video_id, "lang": language, "fmt": "srv3"},
        )
