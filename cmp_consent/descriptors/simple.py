"""Selector-driven CMP descriptor with bounded polling.

CMPs often inject their banner asynchronously, and the same banner may be
reachable through different selectors depending on the CMP version. Instead
of a single blocking wait, each operation sweeps all candidate selectors in
order, repeatedly, until one matches or the descriptor's timeout budget is
spent. Elapsed time is measured per sweep, so at least one full sweep always
happens and the worst case is the budget plus one sweep.
"""

import logging
import time
from typing import Awaitable, Callable, List, Optional, Sequence

from playwright.async_api import Error as PlaywrightError, Page, TimeoutError as PlaywrightTimeoutError

from ..errors import ActionNotFound
from ..models import ConsentStorageSpec
from .base import CMPDescriptor

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 2000

# Per-attempt sub-timeout while waiting for a single selector.
ATTEMPT_TIMEOUT_MS = 200


class SelectorDrivenDescriptor(CMPDescriptor):
    """Descriptor that detects and acts on a CMP purely through DOM selectors."""

    def __init__(
        self,
        name: str,
        storage_options: ConsentStorageSpec,
        presence_selectors: Sequence[str],
        accept_all_selectors: Sequence[str],
        accept_default_selectors: Optional[Sequence[str]] = None,
        reject_all_selectors: Optional[Sequence[str]] = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        attempt_timeout_ms: int = ATTEMPT_TIMEOUT_MS,
    ):
        """Initialize descriptor.

        Args:
            name: Unique descriptor name
            storage_options: Where the CMP records consent
            presence_selectors: Selectors identifying the banner, tried in order
            accept_all_selectors: Selectors of "accept all" controls, tried in order
            accept_default_selectors: Selectors of "accept default" controls
            reject_all_selectors: Selectors of "reject all" controls
            timeout_ms: Budget shared by each polling operation
            attempt_timeout_ms: Wait per selector attempt during detection
        """
        super().__init__(name, storage_options)

        self.presence_selectors: List[str] = list(presence_selectors)
        self.accept_all_selectors: List[str] = list(accept_all_selectors)
        self.accept_default_selectors: Optional[List[str]] = (
            list(accept_default_selectors) if accept_default_selectors is not None else None
        )
        self.reject_all_selectors: Optional[List[str]] = (
            list(reject_all_selectors) if reject_all_selectors is not None else None
        )
        self.timeout_ms = timeout_ms
        self.attempt_timeout_ms = attempt_timeout_ms

        # Optional capabilities only exist when their selectors are configured.
        if self.accept_default_selectors is not None:
            self.accept_default = self._click_action("accept_default", self.accept_default_selectors)
        if self.reject_all_selectors is not None:
            self.reject_all = self._click_action("reject_all", self.reject_all_selectors)

    async def _poll(self, selectors: Sequence[str], attempt: Callable[[str], Awaitable[bool]]) -> bool:
        """Sweep selectors in order until one attempt succeeds or the budget is spent."""
        if not selectors:
            return False

        time_spent = 0.0
        while time_spent < self.timeout_ms:
            started = time.monotonic()

            for selector in selectors:
                if await attempt(selector):
                    return True

            time_spent += (time.monotonic() - started) * 1000

        return False

    async def is_cmp_present(self, page: Page) -> bool:
        """Return True once any presence selector is attached to the document."""

        async def attempt(selector: str) -> bool:
            try:
                element = await page.wait_for_selector(
                    selector,
                    state="attached",
                    timeout=self.attempt_timeout_ms,
                )
            except PlaywrightTimeoutError:
                return False
            except PlaywrightError as e:
                logger.debug(f"{self.name}: presence check for {selector!r} failed: {e}")
                return False
            return element is not None

        present = await self._poll(self.presence_selectors, attempt)
        logger.debug(f"{self.name}: present={present}")
        return present

    async def is_cmp_active(self, page: Page) -> bool:
        """Return True once any presence selector is rendered with a non-empty box."""

        async def attempt(selector: str) -> bool:
            try:
                element = await page.wait_for_selector(
                    selector,
                    state="visible",
                    timeout=self.attempt_timeout_ms,
                )
                if element is None:
                    return False
                box = await element.bounding_box()
            except PlaywrightTimeoutError:
                return False
            except PlaywrightError as e:
                logger.debug(f"{self.name}: activity check for {selector!r} failed: {e}")
                return False
            return box is not None and box['width'] > 0 and box['height'] > 0

        active = await self._poll(self.presence_selectors, attempt)
        logger.debug(f"{self.name}: active={active}")
        return active

    def _click_action(self, action: str, selectors: List[str]) -> Callable[[Page], Awaitable[Page]]:
        """Build a polling click action over the given selectors."""

        async def run(page: Page) -> Page:
            async def attempt(selector: str) -> bool:
                try:
                    element = await page.query_selector(selector)
                    if element is None:
                        return False
                    await element.click()
                except PlaywrightError as e:
                    # A failing selector must not stop the remaining ones.
                    logger.debug(f"{self.name}.{action}: click on {selector!r} failed: {e}")
                    return False
                logger.info(f"{self.name}.{action}: clicked {selector!r}")
                return True

            if await self._poll(selectors, attempt):
                return page
            raise ActionNotFound(action, selectors, descriptor=self.name)

        return run

    async def accept_all(self, page: Page) -> Page:
        """Click the first available "accept all" control.

        Raises:
            ActionNotFound: If no selector could be clicked within the budget
        """
        return await self._click_action("accept_all", self.accept_all_selectors)(page)
