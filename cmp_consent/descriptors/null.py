"""Descriptor for pages that have no CMP at all."""

from playwright.async_api import Page

from ..models import CookieStorageSpec
from .base import CMPDescriptor

NULL_DESCRIPTOR_NAME = "NullDescriptor"


class NullDescriptor(CMPDescriptor):
    """Always reports a present, active CMP and "accepts" it instantly.

    Has no consent keys, so confirmation after acceptance has nothing to
    wait for. Useful as an explicit "no CMP on this site" outcome.
    """

    def __init__(self):
        super().__init__(NULL_DESCRIPTOR_NAME, CookieStorageSpec(names=[]))

    async def is_cmp_present(self, page: Page) -> bool:
        return True

    async def is_cmp_active(self, page: Page) -> bool:
        return True

    async def accept_all(self, page: Page) -> Page:
        return page
