from __future__ import annotations

import json

from app.connectors.caption_connector import with_caption_format
from app.transcripts.captions import (
    caption_tracks_from_raw,
    parse_caption_document,
    select_caption_track,
    split_transcript,
)


class TestParseCaptionDocument:
    def test_legacy_timed_text(self) -> None:
        document = (
            "<transcript>"
            '<text start="0.0" dur="1.5">Hi there</text>'
            '<text start="1.5" dur="2.0">it&amp;#39;s   me</text>'
            "</transcript>"
        )

        assert parse_caption_document(document) == "Hi there it's me"

    def test_srv3(self) -> None:
        document = (
            "<timedtext format=\"3\"><body>"
            '<p t="0" d="1000"><s>Hello</s><s> world</s></p>'
            '<p t="1000" d="1000">again</p>'
            "</body></timedtext>"
        )

        assert parse_caption_document(document) == "Hello world again"

    def test_json3(self) -> None:
        document = json.dumps(
            {"events": [{"segs": [{"utf8": "one"}, {"utf8": " two"}]}, {"tStartMs": 5}, {"segs": [{"utf8": "\n"}]}]}
        )

        assert parse_caption_document(document) == "one two"

    def test_empty_or_garbage(self) -> None:
        assert parse_caption_document(None) is None
        assert parse_caption_document("   ") is None
        assert parse_caption_document("<transcript></transcript>") is None
        assert parse_caption_document("not xml at all <") is None
        assert parse_caption_document("{broken json") is None


class TestCaptionTracks:
    def test_prefers_language_code(self) -> None:
        tracks = [
            {"baseUrl": "u-fr", "languageCode": "fr"},
            {"baseUrl": "u-en", "languageCode": "en"},
        ]

        assert select_caption_track(tracks, "en")["baseUrl"] == "u-en"

    def test_matches_auto_generated_vss_id(self) -> None:
        tracks = [{"baseUrl": "u-x", "languageCode": "xx"}, {"baseUrl": "u-asr", "vssId": "a.en"}]

        assert select_caption_track(tracks, "en")["baseUrl"] == "u-asr"

    def test_matches_english_display_name(self) -> None:
        tracks = [
            {"baseUrl": "u-1", "name": {"simpleText": "Deutsch"}},
            {"baseUrl": "u-2", "name": {"runs": [{"text": "English (auto-generated)"}]}},
        ]

        assert select_caption_track(tracks, "en")["baseUrl"] == "u-2"

    def test_falls_back_to_first_usable_track(self) -> None:
        tracks = [{"languageCode": "en"}, {"baseUrl": "u-de", "languageCode": "de"}]

        assert select_caption_track(tracks, "en")["baseUrl"] == "u-de"

    def test_no_usable_tracks(self) -> None:
        assert select_caption_track([], "en") is None

    def test_tracks_from_player_response(self) -> None:
        raw = {"captions": {"playerCaptionsTracklistRenderer": {"captionTracks": [{"baseUrl": "u"}]}}}

        assert caption_tracks_from_raw(raw) == [{"baseUrl": "u"}]

    def test_explicit_zero_tracks_differs_from_unknown(self) -> None:
        assert caption_tracks_from_raw({"captionTracks": []}) == []
        assert caption_tracks_from_raw({"title": "no caption info"}) is None

    def test_caption_url_shortcut(self) -> None:
        assert caption_tracks_from_raw({"_captionUrl": "https://c"}) == [{"baseUrl": "https://c", "languageCode": "en"}]

    def test_caption_format_is_added_once(self) -> None:
        assert with_caption_format("https://www.youtube.com/api/timedtext?v=abc") == (
            "https://www.youtube.com/api/timedtext?v=abc&fmt=srv3"
        )
        assert with_caption_format("https://www.youtube.com/api/timedtext?v=abc&fmt=json3") == (
            "https://www.youtube.com/api/timedtext?v=abc&fmt=json3"
        )


class TestSplitTranscript:
    def test_short_text_is_one_chunk(self) -> None:
        assert split_transcript("One. Two.", 3000) == ["One. Two."]

    def test_breaks_on_sentence_boundaries(self) -> None:
        text = "Alpha beta gamma. Delta epsilon. Zeta eta theta."

        chunks = split_transcript(text, 20)

        assert chunks == ["Alpha beta gamma.", "Delta epsilon.", "Zeta eta theta."]

    def test_oversized_sentence_is_hard_split(self) -> None:
        chunks = split_transcript("x" * 45, 20)

        assert chunks == ["x" * 20, "x" * 20, "x" * 5]
