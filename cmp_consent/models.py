"""Pydantic models for consent storage specs and consent records.

A descriptor records where a CMP persists the user's decision through a
``ConsentStorageSpec``, which is one of two variants:

* ``CookieStorageSpec`` - consent lands in one or more cookies.
* ``LocalKeyStorageSpec`` - consent lands in localStorage keys, optionally
  constrained to an exact value or a pattern.

The raw-option predicates mirror the shape used by declarative descriptor
files (``{"cookies": ...}`` / ``{"localStorage": [...]}``) so that raw data
can be validated once and turned into an immutable spec.
"""

import re
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from .errors import MalformedDescriptorSource

# Regex literals in declarative files are written as /pattern/flags.
_REGEX_LITERAL = re.compile(r"^/(?P<pattern>.*)/(?P<flags>[ims]*)$", re.DOTALL)
_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}


class LocalKeyEntry(BaseModel):
    """A single localStorage key expected to hold consent data."""

    model_config = {"frozen": True}

    key: str = Field(description="localStorage key")
    value: Optional[str] = Field(
        default=None,
        description="Exact value the stored entry must equal"
    )
    pattern: Optional[re.Pattern] = Field(
        default=None,
        description="Pattern the stored entry must match"
    )

    @classmethod
    def from_raw(cls, entry: Union[str, Mapping, "LocalKeyEntry"]) -> "LocalKeyEntry":
        """Build an entry from a bare key, a ``{key, value?}`` mapping, or an entry.

        A string value shaped like ``/pattern/flags`` becomes a pattern
        constraint; any other string is an exact-match constraint.
        """
        if isinstance(entry, LocalKeyEntry):
            return entry
        if isinstance(entry, str):
            return cls(key=entry)

        value = entry.get("value")
        if value is None:
            return cls(key=entry["key"])
        if isinstance(value, re.Pattern):
            return cls(key=entry["key"], pattern=value)

        value = str(value)
        literal = _REGEX_LITERAL.match(value)
        if literal:
            flags = 0
            for flag in literal.group("flags"):
                flags |= _REGEX_FLAGS[flag]
            try:
                return cls(key=entry["key"], pattern=re.compile(literal.group("pattern"), flags))
            except re.error as e:
                raise MalformedDescriptorSource(f"Invalid value pattern {value!r} for key {entry['key']!r}: {e}")
        return cls(key=entry["key"], value=value)

    @property
    def constrained(self) -> bool:
        return self.value is not None or self.pattern is not None

    def matches(self, stored: Optional[str]) -> bool:
        """Check a stored localStorage value against this entry's constraint."""
        if stored is None:
            return False
        if self.pattern is not None:
            return self.pattern.search(stored) is not None
        if self.value is not None:
            return stored == self.value
        return True


class CookieStorageSpec(BaseModel):
    """Consent is recorded as cookies with these names."""

    model_config = {"frozen": True}

    kind: Literal["cookie"] = "cookie"
    names: List[str] = Field(default_factory=list, description="Cookie names, compared case-sensitively")

    @property
    def keys(self) -> List[str]:
        return list(self.names)


class LocalKeyStorageSpec(BaseModel):
    """Consent is recorded as localStorage entries."""

    model_config = {"frozen": True}

    kind: Literal["local_key"] = "local_key"
    entries: List[LocalKeyEntry] = Field(default_factory=list)

    @field_validator("entries", mode="before")
    @classmethod
    def coerce_entries(cls, v):
        """Accept bare keys and ``{key, value?}`` mappings."""
        return [LocalKeyEntry.from_raw(entry) for entry in v]

    @property
    def keys(self) -> List[str]:
        return [entry.key for entry in self.entries]


ConsentStorageSpec = Union[CookieStorageSpec, LocalKeyStorageSpec]


def _is_string_sequence(value: Any) -> bool:
    return (
        isinstance(value, Sequence)
        and not isinstance(value, (str, bytes))
        and all(isinstance(item, str) for item in value)
    )


def is_cookie_storage_options(obj: Any) -> bool:
    """Check whether raw options describe the cookie variant.

    Args:
        obj: Arbitrary structured value

    Returns:
        True if ``obj["cookies"]`` is a string or a sequence of strings
    """
    if not isinstance(obj, Mapping):
        return False
    cookies = obj.get("cookies")
    return isinstance(cookies, str) or _is_string_sequence(cookies)


def is_local_storage_options(obj: Any) -> bool:
    """Check whether raw options describe the localStorage variant.

    Args:
        obj: Arbitrary structured value

    Returns:
        True if ``obj["localStorage"]`` is a sequence whose every element is a
        string or a mapping with a string ``key``
    """
    if not isinstance(obj, Mapping):
        return False
    entries = obj.get("localStorage")
    if not isinstance(entries, Sequence) or isinstance(entries, (str, bytes)):
        return False
    return all(
        isinstance(entry, str) or isinstance(entry, LocalKeyEntry)
        or (isinstance(entry, Mapping) and isinstance(entry.get("key"), str))
        for entry in entries
    )


def build_storage_spec(obj: Any) -> ConsentStorageSpec:
    """Validate raw storage options and build an immutable storage spec.

    Args:
        obj: A storage spec, or a mapping with exactly one of ``cookies`` /
            ``localStorage``

    Returns:
        The matching storage spec variant

    Raises:
        MalformedDescriptorSource: If the options match neither or both variants
    """
    if isinstance(obj, (CookieStorageSpec, LocalKeyStorageSpec)):
        return obj

    is_cookie = is_cookie_storage_options(obj)
    is_local = is_local_storage_options(obj)

    if is_cookie and is_local:
        raise MalformedDescriptorSource("Storage options must use either cookies or localStorage, not both")
    if is_local:
        return LocalKeyStorageSpec(entries=list(obj["localStorage"]))
    if is_cookie:
        cookies = obj["cookies"]
        return CookieStorageSpec(names=[cookies] if isinstance(cookies, str) else list(cookies))

    raise MalformedDescriptorSource(
        "Type of storage options must be cookie options ({'cookies': ...}) "
        "or localStorage options ({'localStorage': [...]})"
    )


class CookieRecord(BaseModel):
    """Cookie observed on the page after consent was given."""

    name: str = Field(description="Cookie name")
    value: Optional[str] = Field(default=None, description="Cookie value")
    domain: str = Field(default="", description="Cookie domain")
    path: str = Field(default="/", description="Cookie path")
    expires: Optional[datetime] = Field(
        default=None,
        description="Cookie expiration time (None for session cookies)"
    )
    secure: bool = Field(default=False, description="Secure flag")
    http_only: bool = Field(default=False, description="HttpOnly flag")
    same_site: Optional[str] = Field(
        default=None,
        description="SameSite attribute (Strict, Lax, None)"
    )

    @classmethod
    def from_playwright_cookie(cls, cookie: dict) -> "CookieRecord":
        """Create CookieRecord from Playwright cookie object."""
        expires = cookie.get('expires', -1)
        return cls(
            name=cookie.get('name', ''),
            value=cookie.get('value'),
            domain=cookie.get('domain', ''),
            path=cookie.get('path', '/'),
            expires=datetime.fromtimestamp(expires) if expires not in (None, -1) else None,
            secure=cookie.get('secure', False),
            http_only=cookie.get('httpOnly', False),
            same_site=cookie.get('sameSite'),
        )

    @property
    def is_session(self) -> bool:
        return self.expires is None


class LocalStorageEntry(BaseModel):
    """A key/value pair read from the page's localStorage."""

    key: str
    value: str


class ConsentRecord(BaseModel):
    """Result of a successful detection and acceptance cycle on one page."""

    descriptor: str = Field(description="Name of the descriptor that handled the banner")
    cookies: List[CookieRecord] = Field(
        default_factory=list,
        description="Cookies observed after acceptance"
    )
    local_storage: Optional[List[LocalStorageEntry]] = Field(
        default=None,
        description="localStorage snapshot after acceptance, None if it could not be read"
    )

    def cookie(self, name: str) -> Optional[CookieRecord]:
        """Get an observed cookie by name."""
        for cookie in self.cookies:
            if cookie.name == name:
                return cookie
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert record to a JSON-friendly dictionary."""
        return self.model_dump(mode="json")


class ParsePageOptions(BaseModel):
    """Options for ``CMPManager.parse_page``."""

    descriptor: Optional[str] = Field(
        default=None,
        description="Only try this descriptor instead of the whole registry"
    )
    fail_on_missing: bool = Field(
        default=False,
        description="Raise if expected consent data is missing after acceptance"
    )
