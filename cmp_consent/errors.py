"""Error kinds raised by the CMP detection and acceptance engine.

Every condition the engine can surface derives from ``CMPError`` so callers
embedding the engine in a larger audit pipeline can catch the whole family
in one place, while still telling the individual failures apart.
"""

from typing import List, Optional, Sequence


class CMPError(Exception):
    """Base class for all CMP engine errors."""
    pass


class MalformedDescriptorSource(CMPError):
    """Raised when declarative descriptor data is missing required fields,
    cannot be parsed, or carries a storage spec matching no known variant."""

    def __init__(self, message: str, source: Optional[str] = None):
        self.source = source
        if source:
            message = f"{message} (source: {source})"
        super().__init__(message)


class UnknownDescriptor(CMPError):
    """Raised when a descriptor is requested by name but is not registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f'Unknown descriptor "{name}".')


class ActionNotFound(CMPError):
    """Raised when a polling click action exhausts its budget without a click."""

    def __init__(self, action: str, selectors: Sequence[str], descriptor: Optional[str] = None):
        self.action = action
        self.selectors: List[str] = list(selectors)
        self.descriptor = descriptor
        prefix = f"{descriptor}.{action}" if descriptor else action
        super().__init__(
            f"{prefix}: failed to find and click an element. "
            f"Tried the following selectors: {', '.join(self.selectors)}"
        )


class MissingConsentData(CMPError):
    """Raised when expected consent keys are missing after acceptance."""

    def __init__(self, missing: Sequence[str], expected: Sequence[str], found: Sequence[str] = ()):
        self.missing: List[str] = list(missing)
        self.expected: List[str] = list(expected)
        self.found: List[str] = list(found)
        super().__init__(
            f"Consent data is missing {len(self.missing)} key(s): {', '.join(self.missing)} "
            f"(expected {', '.join(self.expected)}; found {', '.join(self.found) or 'nothing'})."
        )


class PageScriptFailure(CMPError):
    """Raised when a localStorage read or write inside the page context throws."""
    pass
