"""
Content-type gate applied before a response body is downloaded
"""

from typing import Optional

import structlog

from .errors import UnsupportedMimeTypeError

logger = structlog.get_logger(__name__)

ALLOWED_PREFIXES = (
    'text/',
    'application/xml',
    'application/json',
    'application/xhtml+xml',
)


def is_acceptable(content_type: Optional[str], ignore_content_type: bool = False) -> bool:
    """Determine if a response with this content type should be read and parsed."""
    if ignore_content_type or content_type is None:
        return True
    return content_type.startswith(ALLOWED_PREFIXES)


def negotiate(content_type: Optional[str], ignore_content_type: bool, url: str) -> None:
    if is_acceptable(content_type, ignore_content_type):
        return
    logger.warning("content_type_rejected", url=url, content_type=content_type)
    raise UnsupportedMimeTypeError(
        "Unhandled content type. Must be text/*, application/xml, application/json, "
        "or application/xhtml+xml",
        content_type,
        url,
    )
