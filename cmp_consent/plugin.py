"""Page-load hook for embedding the CMP engine in an audit pipeline."""

import logging
from typing import Dict, Optional, Sequence

from playwright.async_api import Page

from .config import CMPSettings
from .manager import CMPManager
from .models import ConsentRecord, ParsePageOptions

logger = logging.getLogger(__name__)


class CmpPlugin:
    """Accepts the CMP banner of every page handed to ``after_page_load``.

    The last consent record per URL is kept in ``results`` so a pipeline can
    report which CMP handled which page.
    """

    def __init__(self, manager: CMPManager):
        self.manager = manager
        self.results: Dict[str, Optional[ConsentRecord]] = {}

    @classmethod
    async def create(
        cls,
        src_globs: Optional[Sequence[str]] = None,
        include_builtin: Optional[bool] = None,
        settings: Optional[CMPSettings] = None
    ) -> "CmpPlugin":
        """Create a plugin backed by a fully loaded manager."""
        return cls(await CMPManager.create_manager(src_globs, include_builtin, settings))

    async def after_page_load(self, page: Page, url: str) -> Optional[ConsentRecord]:
        """Accept the CMP on a freshly loaded page.

        Raises:
            ActionNotFound: If the banner was active but could not be accepted
            MissingConsentData: If acceptance left expected consent data missing
        """
        record = await self.manager.parse_page(page, ParsePageOptions(fail_on_missing=True))

        if record is None:
            logger.info(f"No CMP handled on {url}")
        else:
            logger.info(f"Consent given on {url} via {record.descriptor}")

        self.results[url] = record
        return record
