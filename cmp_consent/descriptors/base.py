"""Base descriptor contract for consent management platforms.

A descriptor knows how to detect one specific CMP implementation on a page,
how to act on its banner, and where the CMP records the user's decision.
Presence, activity and "accept all" are required; "reject all" and "accept
default" are optional capabilities exposed as callables that are ``None``
when the descriptor cannot perform them.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from playwright.async_api import Error as PlaywrightError, Page

from ..errors import MissingConsentData, PageScriptFailure
from ..models import (
    ConsentStorageSpec,
    CookieRecord,
    LocalKeyStorageSpec,
    LocalStorageEntry,
    build_storage_spec,
)

logger = logging.getLogger(__name__)

CMPHandleFunction = Callable[[Page], Awaitable[Page]]

# Reads the full localStorage snapshot; a missing key or null value at a
# valid index means the snapshot is inconsistent and must not be trusted.
LOCAL_STORAGE_SNAPSHOT_SCRIPT = """
() => {
    const data = [];
    for (let i = 0; i < window.localStorage.length; i++) {
        const k = window.localStorage.key(i);
        if (k === null) {
            throw new Error(`No key at index ${i} in localStorage.`);
        }
        const v = window.localStorage.getItem(k);
        if (v === null) {
            throw new Error(`Data at key "${k}" (index ${i}) is null.`);
        }
        data.push({ key: k, value: v });
    }
    return data;
}
"""

LOCAL_STORAGE_GET_SCRIPT = """
(keys) => {
    const found = [];
    const missing = [];
    for (const k of keys) {
        const v = window.localStorage.getItem(k);
        if (v === null) {
            missing.push(k);
        } else {
            found.push({ key: k, value: v });
        }
    }
    return { found, missing };
}
"""

LOCAL_STORAGE_REMOVE_SCRIPT = """
(keys) => {
    keys.forEach(k => window.localStorage.removeItem(k));
    return keys.length;
}
"""


def is_cmp_descriptor(obj: Any) -> bool:
    """Check that an object looks like a usable CMP descriptor."""
    return all(hasattr(obj, attr) for attr in ("name", "accept_all", "is_cmp_present"))


async def evaluate_in_page(page: Page, script: str, arg: Any = None) -> Any:
    """Run a script in the page context, surfacing page exceptions.

    Raises:
        PageScriptFailure: If the script throws inside the page
    """
    try:
        if arg is None:
            return await page.evaluate(script)
        return await page.evaluate(script, arg)
    except PlaywrightError as e:
        raise PageScriptFailure(f"Script failed in page context: {e}") from e


async def read_local_storage(page: Page) -> List[LocalStorageEntry]:
    """Read the full localStorage snapshot of a page."""
    data = await evaluate_in_page(page, LOCAL_STORAGE_SNAPSHOT_SCRIPT)
    return [LocalStorageEntry(**item) for item in data or []]


class CMPDescriptor(ABC):
    """Base that all CMP descriptors implement.

    Subclasses provide detection and the "accept all" action. Consent data
    handling (check, extract, delete) is shared and dispatches on the
    descriptor's storage spec.
    """

    reject_all: Optional[CMPHandleFunction] = None
    accept_default: Optional[CMPHandleFunction] = None

    def __init__(self, name: str, storage_options: Union[ConsentStorageSpec, Dict[str, Any]]):
        """Initialize descriptor.

        Args:
            name: Unique human-readable descriptor name
            storage_options: Storage spec, or raw ``{"cookies": ...}`` /
                ``{"localStorage": [...]}`` options

        Raises:
            MalformedDescriptorSource: If the storage options match no variant
        """
        self._name = name
        self._storage = build_storage_spec(storage_options)

    @property
    def name(self) -> str:
        """Unique name for this descriptor."""
        return self._name

    @property
    def storage(self) -> ConsentStorageSpec:
        """Where this CMP records consent."""
        return self._storage

    @property
    def consent_keys(self) -> List[str]:
        """Names of all consent keys, regardless of the storage variant."""
        return self._storage.keys

    def has_capability(self, action: str) -> bool:
        """Check whether an action (e.g. ``reject_all``) is available on this descriptor."""
        return callable(getattr(self, action, None))

    @abstractmethod
    async def is_cmp_present(self, page: Page) -> bool:
        """Return True if the page contains this CMP, visible or not."""
        ...

    @abstractmethod
    async def is_cmp_active(self, page: Page) -> bool:
        """Return True if the CMP is rendered, i.e. consent has not been given yet."""
        ...

    @abstractmethod
    async def accept_all(self, page: Page) -> Page:
        """Accept all cookies through the CMP banner."""
        ...

    async def has_consent_data(self, page: Page) -> bool:
        """Check whether the CMP's consent data is stored in the page.

        Many CMPs store encoded data, so for cookies only the names are
        checked. localStorage entries may additionally constrain the value.

        Raises:
            PageScriptFailure: If the localStorage snapshot cannot be read
        """
        if isinstance(self._storage, LocalKeyStorageSpec):
            snapshot = {entry.key: entry.value for entry in await read_local_storage(page)}
            return all(entry.matches(snapshot.get(entry.key)) for entry in self._storage.entries)

        cookie_names = {cookie['name'] for cookie in await page.context.cookies()}
        return all(name in cookie_names for name in self._storage.names)

    async def get_consent_data(
        self,
        page: Page,
        fail_on_missing: bool = False
    ) -> Union[List[CookieRecord], List[LocalStorageEntry]]:
        """Retrieve the data stored as a result of giving consent.

        Args:
            page: Page with data to extract from
            fail_on_missing: Raise if an expected key is missing

        Returns:
            Matching cookies for cookie-backed CMPs, or key/value pairs for
            localStorage-backed CMPs

        Raises:
            MissingConsentData: If ``fail_on_missing`` is set and keys are missing
            PageScriptFailure: If localStorage cannot be read
        """
        if isinstance(self._storage, LocalKeyStorageSpec):
            keys = self._storage.keys
            result = await evaluate_in_page(page, LOCAL_STORAGE_GET_SCRIPT, keys)
            found = [LocalStorageEntry(**item) for item in result.get('found', [])]
            missing = list(result.get('missing', []))

            if fail_on_missing and missing:
                raise MissingConsentData(missing, keys, [entry.key for entry in found])
            return found

        cookies = await page.context.cookies()
        expected = self._storage.names
        matched = [CookieRecord.from_playwright_cookie(c) for c in cookies if c['name'] in expected]

        if fail_on_missing:
            matched_names = {c.name for c in matched}
            missing = [name for name in dict.fromkeys(expected) if name not in matched_names]
            if missing:
                raise MissingConsentData(missing, expected, [c['name'] for c in cookies])

        return matched

    async def delete_consent_data(self, page: Page) -> bool:
        """Delete the CMP's consent data from the page.

        Returns:
            True if a removal attempt was made

        Raises:
            PageScriptFailure: If localStorage entries cannot be removed
        """
        if isinstance(self._storage, LocalKeyStorageSpec):
            await evaluate_in_page(page, LOCAL_STORAGE_REMOVE_SCRIPT, self._storage.keys)
            logger.debug(f"{self.name}: removed localStorage keys {self._storage.keys}")
            return True

        for name in self._storage.names:
            await page.context.clear_cookies(name=name)
        logger.debug(f"{self.name}: removed cookies {self._storage.names}")
        return True

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, consent_keys={self.consent_keys!r})"
