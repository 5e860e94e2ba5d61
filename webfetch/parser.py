"""
Document parsers invoked on a fetched body (lxml backed)
"""

import codecs
import re
from typing import List, Optional, Protocol

import structlog
from lxml import etree, html

logger = structlog.get_logger(__name__)

DEFAULT_CHARSET = 'UTF-8'
# how far into the body to look for an in-document charset declaration
SNIFF_BYTES = 5000

META_CHARSET_PATTERN = re.compile(
    rb'<meta[^>]+charset\s*=\s*["\']?\s*([a-zA-Z0-9_\-:.]+)',
    re.IGNORECASE,
)
XML_DECLARATION_PATTERN = re.compile(
    rb'^\s*<\?xml[^>]*encoding\s*=\s*["\']([a-zA-Z0-9_\-:.]+)["\']',
)
LEADING_XML_DECLARATION = re.compile(r'^\s*<\?xml[^>]*\?>')


class Document:
    """Parsed document plus the charset the parser settled on."""

    def __init__(self, root, base_uri: str, charset: str):
        self.root = root
        self.base_uri = base_uri
        self.charset = charset

    @property
    def title(self) -> str:
        if self.root is None:
            return ''
        title = self.root.findtext('.//title')
        return title.strip() if title else ''

    def text(self) -> str:
        if self.root is None:
            return ''
        return ' '.join(' '.join(self.root.itertext()).split())

    def select(self, xpath: str) -> list:
        if self.root is None:
            return []
        return self.root.xpath(xpath)

    def links(self) -> List[str]:
        """Absolute hrefs of every ``<a>`` element, in document order."""
        if self.root is None or not hasattr(self.root, 'iterlinks'):
            return []
        self.root.make_links_absolute(self.base_uri, resolve_base_href=True)
        return [link for element, attribute, link, _ in self.root.iterlinks() if element.tag == 'a' and attribute == 'href']


class Parser(Protocol):
    def parse(self, data: bytes, charset: Optional[str], base_uri: str) -> Document:
        ...


def _known_charset(name: bytes) -> Optional[str]:
    charset = name.decode('ascii', errors='ignore').strip()
    if not charset:
        return None
    try:
        codecs.lookup(charset)
    except LookupError:
        return None
    return charset


def sniff_meta_charset(data: bytes) -> Optional[str]:
    match = META_CHARSET_PATTERN.search(data[:SNIFF_BYTES])
    return _known_charset(match.group(1)) if match else None


class HtmlParser:
    """Lenient HTML parser.

    An in-document ``<meta charset>`` / ``http-equiv`` declaration wins over
    the charset supplied by the caller (usually taken from the Content-Type
    header); without either, UTF-8 is assumed.
    """

    def parse(self, data: bytes, charset: Optional[str], base_uri: str) -> Document:
        declared = sniff_meta_charset(data)
        resolved = declared or charset or DEFAULT_CHARSET
        if declared and charset and declared.lower() != charset.lower():
            logger.debug("charset_overridden_by_document", header_charset=charset, document_charset=declared)
        # lxml refuses str input that still carries an XML encoding declaration
        text = LEADING_XML_DECLARATION.sub('', data.decode(resolved, errors='replace'), count=1)
        if not text.strip():
            root = html.document_fromstring('<html><head></head><body></body></html>', base_url=base_uri)
        else:
            root = html.document_fromstring(text, base_url=base_uri)
        return Document(root, base_uri, resolved)


class XmlParser:
    """Recovering XML parser; an ``<?xml encoding=...?>`` declaration wins."""

    def parse(self, data: bytes, charset: Optional[str], base_uri: str) -> Document:
        if not data.strip():
            return Document(None, base_uri, charset or DEFAULT_CHARSET)
        match = XML_DECLARATION_PATTERN.match(data)
        declared = _known_charset(match.group(1)) if match else None
        if declared:
            parser = etree.XMLParser(recover=True)
            resolved = declared
        else:
            resolved = charset or DEFAULT_CHARSET
            parser = etree.XMLParser(recover=True, encoding=resolved)
        root = etree.fromstring(data, parser=parser, base_url=base_uri)
        return Document(root, base_uri, resolved)


def html_parser() -> HtmlParser:
    return HtmlParser()


def xml_parser() -> XmlParser:
    return XmlParser()
