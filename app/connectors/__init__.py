"""
app/connectors package marker.
"""

from app.connectors.base import BaseConnector, ConnectorRequestError
from app.connectors.errors import GatewayError, PlatformContentError, PlatformQuotaError
from app.connectors.gateway import ContentExtractionGateway, ExtractionGateway, get_extraction_gateway

__all__ = [
    "BaseConnector",
    "ConnectorRequestError",
    "ContentExtractionGateway",
    "ExtractionGateway",
    "GatewayError",
    "PlatformContentError",
    "PlatformQuotaError",
    "get_extraction_gateway",
]
