"""
Header and cookie storage shared by requests and responses
"""

from typing import Dict, Optional, Tuple


class HeaderCookieStore:
    """Case-insensitive header map plus a flat, case-sensitive cookie map.

    Headers keep the casing they were inserted with, but at most one value is
    stored per logical name. Cookies carry no path/domain/expiry attributes.
    """

    def __init__(self):
        self._headers: Dict[str, str] = {}
        self._cookies: Dict[str, str] = {}

    # headers

    def get(self, name: str) -> Optional[str]:
        if name is None:
            raise ValueError("Header name must not be null")
        # quick checks for the caller's casing and lower case, then scan for mixed
        value = self._headers.get(name)
        if value is None:
            value = self._headers.get(name.lower())
        if value is None:
            entry = self._scan(name)
            if entry is not None:
                value = entry[1]
        return value

    def set(self, name: str, value: str) -> "HeaderCookieStore":
        if not name:
            raise ValueError("Header name must not be empty")
        if value is None:
            raise ValueError("Header value must not be null")
        self.remove(name)  # avoids storing both "accept-encoding" and "Accept-Encoding"
        self._headers[name] = value
        return self

    def has(self, name: str) -> bool:
        if not name:
            raise ValueError("Header name must not be empty")
        return self.get(name) is not None

    def remove(self, name: str) -> "HeaderCookieStore":
        if not name:
            raise ValueError("Header name must not be empty")
        entry = self._scan(name)
        if entry is not None:
            del self._headers[entry[0]]
        return self

    def all(self) -> Dict[str, str]:
        return self._headers

    def _scan(self, name: str) -> Optional[Tuple[str, str]]:
        lowered = name.lower()
        for key, value in self._headers.items():
            if key.lower() == lowered:
                return key, value
        return None

    # cookies

    def cookie(self, name: str) -> Optional[str]:
        if name is None:
            raise ValueError("Cookie name must not be null")
        return self._cookies.get(name)

    def set_cookie(self, name: str, value: str) -> "HeaderCookieStore":
        if not name:
            raise ValueError("Cookie name must not be empty")
        if value is None:
            raise ValueError("Cookie value must not be null")
        self._cookies[name] = value
        return self

    def has_cookie(self, name: str) -> bool:
        if not name:
            raise ValueError("Cookie name must not be empty")
        return name in self._cookies

    def remove_cookie(self, name: str) -> "HeaderCookieStore":
        if not name:
            raise ValueError("Cookie name must not be empty")
        self._cookies.pop(name, None)
        return self

    def all_cookies(self) -> Dict[str, str]:
        return self._cookies

    def cookie_header(self) -> str:
        """Request ``Cookie`` header value: ``name=value`` pairs joined with ``"; "``."""
        return "; ".join(f"{name}={value}" for name, value in self._cookies.items())
