"""
app/transcripts package marker.
"""

from app.transcripts.chain import TranscriptResolutionChain, get_transcript_chain
from app.transcripts.strategies import IMAGE_POST_SENTINEL, NO_CAPTIONS_SENTINEL, SENTINELS

__all__ = [
    "IMAGE_POST_SENTINEL",
    "NO_CAPTIONS_SENTINEL",
    "SENTINELS",
    "TranscriptResolutionChain",
    "get_transcript_chain",
]
