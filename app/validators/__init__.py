"""
app/validators package marker.
"""

from app.validators.url_validator import parse_content_url

__all__ = ["parse_content_url"]
