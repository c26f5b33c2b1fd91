"""Descriptors defined declaratively in YAML (or JSON) files.

Example descriptor file::

    name: examplecmp
    cookieName: [consent, consent_version]
    timeout: 3000
    selectors:
      presence: ["#cookie-banner"]
      acceptAll: ["#cookie-banner .accept-all"]
      rejectAll: ["#cookie-banner .reject-all"]

A CMP that stores consent in localStorage lists the keys instead; each entry
is either a bare key or ``{key, value}`` where ``value`` is an exact string
or a ``/pattern/flags`` regular expression::

    localStorage:
      - consentUUID
      - key: consentState
        value: /accepted/i

Data is validated once, when the descriptor is built.
"""

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import aiofiles
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from ..errors import MalformedDescriptorSource
from ..models import CookieStorageSpec, LocalKeyStorageSpec, is_local_storage_options
from .simple import ATTEMPT_TIMEOUT_MS, DEFAULT_TIMEOUT_MS, SelectorDrivenDescriptor

logger = logging.getLogger(__name__)

DESCRIPTOR_EXTENSIONS = ('.yaml', '.yml', '.json')

REQUIRED_FIELDS = ('name', 'cookieName', 'selectors.presence', 'selectors.acceptAll')


def _to_list(value: Union[str, List[str], None]) -> Optional[List[str]]:
    """Coerce "a single value or a list of values" into list form."""
    if value is None:
        return None
    if isinstance(value, str):
        return [value]
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"expected a string or a list of strings, got {type(value).__name__}")
    if not all(isinstance(item, str) for item in value):
        raise ValueError("every entry must be a string")
    return list(value)


class DescriptorSelectors(BaseModel):
    """Selector block of a declarative descriptor."""

    presence: List[str] = Field(description="Selectors identifying the banner")
    accept_all: List[str] = Field(alias="acceptAll", description="Accept-all controls")
    accept_default: Optional[List[str]] = Field(default=None, alias="acceptDefault")
    reject_all: Optional[List[str]] = Field(default=None, alias="rejectAll")

    model_config = {"populate_by_name": True}

    @field_validator('presence', 'accept_all', 'accept_default', 'reject_all', mode='before')
    @classmethod
    def coerce_selector_list(cls, v):
        """Allow a single selector string in place of a list."""
        return _to_list(v)


class DescriptorFile(BaseModel):
    """Logical schema of a declarative descriptor source."""

    name: str = Field(description="Descriptor name")
    cookie_name: List[str] = Field(
        alias="cookieName",
        description="Name(s) of the cookies set by this CMP"
    )
    local_storage: Optional[List[Union[str, Dict[str, Any]]]] = Field(
        default=None,
        alias="localStorage",
        description="localStorage keys set by this CMP, mutually exclusive with cookies"
    )
    timeout: Optional[int] = Field(
        default=None,
        ge=0,
        description="Polling budget in milliseconds"
    )
    selectors: DescriptorSelectors

    model_config = {"populate_by_name": True}

    @field_validator('cookie_name', mode='before')
    @classmethod
    def coerce_cookie_name(cls, v):
        """Allow a single cookie name in place of a list."""
        return _to_list(v)

    @field_validator('local_storage')
    @classmethod
    def validate_local_storage(cls, v):
        """Every entry must be a key or a mapping with a string ``key``."""
        if v is not None and not is_local_storage_options({'localStorage': v}):
            raise ValueError("localStorage entries must be strings or objects with a string 'key'")
        return v

    def storage_spec(self) -> Union[CookieStorageSpec, LocalKeyStorageSpec]:
        """Pick the storage variant: localStorage keys win when given."""
        if self.local_storage:
            return LocalKeyStorageSpec(entries=self.local_storage)
        return CookieStorageSpec(names=self.cookie_name)


def _missing_fields(data: Mapping) -> List[str]:
    missing = []
    if not data.get('name'):
        missing.append('name')
    if not data.get('cookieName'):
        missing.append('cookieName')

    selectors = data.get('selectors')
    if not isinstance(selectors, Mapping):
        selectors = {}
    if selectors.get('presence') is None:
        missing.append('selectors.presence')
    if selectors.get('acceptAll') is None:
        missing.append('selectors.acceptAll')
    return missing


def parse_descriptor_source(source: Union[str, Mapping], origin: Optional[str] = None) -> DescriptorFile:
    """Parse and validate declarative descriptor data.

    Args:
        source: YAML/JSON text, or already-parsed data
        origin: Where the data came from, for error messages

    Returns:
        Validated descriptor file model

    Raises:
        MalformedDescriptorSource: If the data cannot be parsed or is invalid
    """
    if isinstance(source, str):
        try:
            data = yaml.safe_load(source)
        except yaml.YAMLError as e:
            raise MalformedDescriptorSource(f"Failed to parse descriptor YAML: {e}", origin)
    else:
        data = source

    if not isinstance(data, Mapping):
        raise MalformedDescriptorSource("Descriptor source must contain a mapping", origin)

    missing = _missing_fields(data)
    if missing:
        raise MalformedDescriptorSource(
            f"One or more fields are missing: {', '.join(missing)}. "
            f"Required fields are {', '.join(repr(f) for f in REQUIRED_FIELDS)}.",
            origin,
        )

    try:
        return DescriptorFile.model_validate(data)
    except ValidationError as e:
        raise MalformedDescriptorSource(f"Invalid descriptor: {e}", origin)


class DeclarativeDescriptor(SelectorDrivenDescriptor):
    """Selector-driven descriptor built from declarative data."""

    def __init__(
        self,
        source: Union[str, Mapping, DescriptorFile],
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
        attempt_timeout_ms: int = ATTEMPT_TIMEOUT_MS,
        origin: Optional[str] = None,
    ):
        """Initialize descriptor from declarative data.

        Args:
            source: YAML/JSON text, a mapping, or a validated descriptor file
            default_timeout_ms: Budget used when the source sets no timeout
            attempt_timeout_ms: Wait per selector attempt during detection
            origin: Where the data came from (usually a file path)

        Raises:
            MalformedDescriptorSource: If the data is invalid
        """
        definition = source if isinstance(source, DescriptorFile) else parse_descriptor_source(source, origin)

        super().__init__(
            definition.name,
            definition.storage_spec(),
            definition.selectors.presence,
            definition.selectors.accept_all,
            accept_default_selectors=definition.selectors.accept_default,
            reject_all_selectors=definition.selectors.reject_all,
            timeout_ms=definition.timeout if definition.timeout is not None else default_timeout_ms,
            attempt_timeout_ms=attempt_timeout_ms,
        )
        self.definition = definition
        self.origin = origin

    @property
    def tag(self) -> str:
        return f'{type(self).__name__} (for "{self.name}")'

    @classmethod
    async def create_from_path(cls, path: Union[str, Path], encoding: str = 'utf-8', **kwargs) -> "DeclarativeDescriptor":
        """Load a descriptor from a file without blocking the event loop.

        Raises:
            MalformedDescriptorSource: If the file cannot be read or is invalid
        """
        try:
            async with aiofiles.open(path, 'r', encoding=encoding) as f:
                contents = await f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise MalformedDescriptorSource(f"Failed to read descriptor file: {e}", str(path))

        descriptor = cls(contents, origin=str(path), **kwargs)
        logger.debug(f"Loaded {descriptor.tag} from {path}")
        return descriptor

    @classmethod
    def create_from_path_sync(cls, path: Union[str, Path], encoding: str = 'utf-8', **kwargs) -> "DeclarativeDescriptor":
        """Load a descriptor from a file.

        Raises:
            MalformedDescriptorSource: If the file cannot be read or is invalid
        """
        try:
            with open(path, 'r', encoding=encoding) as f:
                contents = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise MalformedDescriptorSource(f"Failed to read descriptor file: {e}", str(path))

        descriptor = cls(contents, origin=str(path), **kwargs)
        logger.debug(f"Loaded {descriptor.tag} from {path}")
        return descriptor
