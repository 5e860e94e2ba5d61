"""
Bounded body reader: gunzips when needed and stops at the size cap
"""

import codecs
import re
import zlib
from typing import Iterable, Iterator, Optional

import structlog

from .errors import TransportError

logger = structlog.get_logger(__name__)

BUFFER_SIZE = 64 * 1024
CHARSET_PATTERN = re.compile(r'\bcharset=\s*"?([^\s;"]*)', re.IGNORECASE)


def _gunzip(chunks: Iterable[bytes]) -> Iterator[bytes]:
    decompressor = zlib.decompressobj(zlib.MAX_WBITS | 16)
    for chunk in chunks:
        # cap each inflate step so a small compressed chunk can't explode in memory
        while chunk:
            out = decompressor.decompress(chunk, BUFFER_SIZE)
            if out:
                yield out
            chunk = decompressor.unconsumed_tail
    tail = decompressor.flush()
    if tail:
        yield tail


def _close(stream) -> None:
    close = getattr(stream, 'close', None)
    if close is not None:
        close()


def read_body(stream: Iterable[bytes], content_encoding: Optional[str] = None, max_body_size: int = 0) -> bytes:
    """Read a response body into memory.

    Args:
        stream: Iterable of raw byte chunks as they come off the wire
        content_encoding: Value of the ``Content-Encoding`` header, if any
        max_body_size: Stop after this many (decoded) bytes; 0 reads everything

    Returns:
        The body bytes, truncated to ``max_body_size`` when the cap is hit
    """
    gzipped = content_encoding is not None and content_encoding.lower() == 'gzip'
    body_stream = _gunzip(stream) if gzipped else iter(stream)
    buffer = bytearray()
    try:
        for chunk in body_stream:
            buffer.extend(chunk)
            if max_body_size and len(buffer) >= max_body_size:
                if len(buffer) > max_body_size:
                    logger.debug("body_truncated", max_body_size=max_body_size)
                del buffer[max_body_size:]
                break
    except zlib.error as e:
        raise TransportError(f"Invalid gzip body: {e}") from e
    finally:
        _close(body_stream)
        _close(stream)
    return bytes(buffer)


def charset_from_content_type(content_type: Optional[str]) -> Optional[str]:
    """Extract the ``charset=`` parameter of a Content-Type, if Python knows the codec."""
    if not content_type:
        return None
    match = CHARSET_PATTERN.search(content_type)
    if not match:
        return None
    charset = match.group(1).strip().strip("'")
    if not charset:
        return None
    try:
        codecs.lookup(charset)
    except LookupError:
        logger.debug("unknown_charset", charset=charset)
        return None
    return charset
