"""CMP manager: descriptor registry and per-page orchestration.

The manager holds an ordered registry of descriptors. For a loaded page it
tries descriptors one at a time, in registration order, accepts the banner
of the first one that reports an active CMP, waits for the consent cookie to
appear and returns what was recorded. Descriptors are never tried in
parallel against the same page.
"""

import asyncio
import glob
import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from playwright.async_api import Page

from .config import CMPSettings
from .descriptors import (
    BUILTIN_DESCRIPTOR_DIR,
    DESCRIPTOR_EXTENSIONS,
    NULL_DESCRIPTOR_NAME,
    CMPDescriptor,
    DeclarativeDescriptor,
    NullDescriptor,
    is_cmp_descriptor,
    read_local_storage,
)
from .errors import MalformedDescriptorSource, PageScriptFailure, UnknownDescriptor
from .models import ConsentRecord, CookieRecord, LocalStorageEntry, ParsePageOptions

logger = logging.getLogger(__name__)

SourcePath = Union[str, Path]
DescriptorSource = Union[SourcePath, Sequence[Union[SourcePath, CMPDescriptor]], CMPDescriptor]


class CMPManager:
    """Registry of CMP descriptors and the detection/acceptance flow.

    Duplicate names are allowed; lookups by name return the first match.
    The registry only changes through the ``add_*`` methods.
    """

    def __init__(
        self,
        descriptors: Optional[Iterable[CMPDescriptor]] = None,
        settings: Optional[CMPSettings] = None
    ):
        """Initialize manager.

        Args:
            descriptors: Descriptor instances to register, in order
            settings: Engine settings; defaults are used when None
        """
        self.settings = settings or CMPSettings()
        self.descriptors: List[CMPDescriptor] = list(descriptors or [])
        # Source path -> error message for sources that could not be loaded.
        self.load_errors: Dict[str, str] = {}

    @property
    def descriptor_names(self) -> List[str]:
        """Names of all registered descriptors, in registration order."""
        return [descriptor.name for descriptor in self.descriptors]

    @classmethod
    async def create_manager(
        cls,
        src_globs: Optional[Union[SourcePath, Sequence[SourcePath]]] = None,
        include_builtin: Optional[bool] = None,
        settings: Optional[CMPSettings] = None
    ) -> "CMPManager":
        """Create a manager with all descriptor sources loaded.

        Args:
            src_globs: Additional descriptor files or glob patterns
            include_builtin: Register the built-in descriptors. Falls back to
                ``settings.include_builtin`` when None.
            settings: Engine settings

        Returns:
            Populated manager
        """
        manager = cls(settings=settings)

        if src_globs:
            await manager.add_descriptors(src_globs)

        if manager.settings.descriptor_paths:
            await manager.add_from(manager.settings.descriptor_paths)

        if include_builtin is None:
            include_builtin = manager.settings.include_builtin

        if include_builtin:
            await manager.add_from(BUILTIN_DESCRIPTOR_DIR / "*.yaml")

        logger.info(f"CMP manager ready with {len(manager.descriptors)} descriptors: {manager.descriptor_names}")
        return manager

    async def add_descriptors(self, source: DescriptorSource) -> "CMPManager":
        """Add descriptors from paths/globs or from descriptor instances.

        Args:
            source: A path or glob, a list of paths/globs, a descriptor, or a
                list of descriptors. Mixed lists are processed in order.

        Returns:
            The manager itself
        """
        if isinstance(source, (str, Path)):
            await self.add_from(source)
        elif is_cmp_descriptor(source):
            self.descriptors.append(source)
        else:
            items = list(source)
            if all(isinstance(item, (str, Path)) for item in items):
                await self.add_from(items)
            else:
                for item in items:
                    if isinstance(item, (str, Path)):
                        await self.add_from(item)
                    elif is_cmp_descriptor(item):
                        self.descriptors.append(item)
                    else:
                        raise TypeError(f"Cannot add descriptor from {item!r} (type: {type(item).__name__})")

        return self

    async def add_from(self, paths: Union[SourcePath, Sequence[SourcePath]]) -> "CMPManager":
        """Load descriptors from every file matched by the given paths/globs.

        Sources that cannot be loaded are logged, recorded in ``load_errors``
        and skipped; the remaining sources are still added.

        Returns:
            The manager itself
        """
        if isinstance(paths, (str, Path)):
            paths = [paths]

        # Absolute paths, so relative and absolute forms of a source collapse.
        resolved: Dict[str, None] = {}
        for pattern in paths:
            matches = sorted(glob.glob(str(pattern), recursive=True))
            if not matches:
                logger.warning(f"No descriptor sources matched: {pattern}")
            for match in matches:
                if os.path.isfile(match):
                    resolved[os.path.abspath(match)] = None

        results = await asyncio.gather(
            *(self._import_single(path) for path in resolved),
            return_exceptions=True
        )

        for path, result in zip(resolved, results):
            if isinstance(result, MalformedDescriptorSource):
                logger.warning(f"Skipping descriptor source {path}: {result}")
                self.load_errors[path] = str(result)
            elif isinstance(result, BaseException):
                raise result
            else:
                self.descriptors.append(result)

        return self

    async def _import_single(self, path: str) -> CMPDescriptor:
        """Build a descriptor from a single declarative source file.

        Raises:
            MalformedDescriptorSource: If the file type is unsupported or the
                source is invalid
        """
        extension = os.path.splitext(path)[1].lower()
        if extension not in DESCRIPTOR_EXTENSIONS:
            raise MalformedDescriptorSource(
                f'Unsupported descriptor file extension "{extension}" '
                f"(expected one of {', '.join(DESCRIPTOR_EXTENSIONS)})",
                path
            )

        return await DeclarativeDescriptor.create_from_path(
            path,
            default_timeout_ms=self.settings.default_timeout_ms,
            attempt_timeout_ms=self.settings.attempt_timeout_ms,
        )

    def get_descriptor(self, name: str) -> Optional[CMPDescriptor]:
        """Look up a descriptor by name.

        The reserved name ``"NullDescriptor"`` always resolves to a Null
        descriptor, whatever the registry contains.
        """
        if name == NULL_DESCRIPTOR_NAME:
            return NullDescriptor()

        for descriptor in self.descriptors:
            if descriptor.name == name:
                return descriptor
        return None

    def require_descriptor(self, name: str) -> CMPDescriptor:
        """Look up a descriptor by name.

        Raises:
            UnknownDescriptor: If no descriptor has that name
        """
        descriptor = self.get_descriptor(name)
        if descriptor is None:
            raise UnknownDescriptor(name)
        return descriptor

    async def detect_cmp(self, page: Page) -> Optional[CMPDescriptor]:
        """Return the first registered descriptor whose CMP is present on the page."""
        for descriptor in self.descriptors:
            if await descriptor.is_cmp_present(page):
                logger.info(f"Detected CMP: {descriptor.name}")
                return descriptor

        logger.debug("No registered descriptor detected a CMP")
        return None

    async def cmp_present(self, page: Page, descriptor: Optional[str] = None) -> Union[bool, CMPDescriptor]:
        """Check whether a CMP is present (not necessarily visible) on the page.

        Some CMPs are not in the DOM at all when the page was loaded with
        consent data already set.

        Args:
            page: The page (post-navigation, post-load) to check
            descriptor: If given, only this descriptor is used

        Returns:
            With a descriptor name, whether that CMP is present. Without one,
            the detected descriptor, or False if none was detected.

        Raises:
            UnknownDescriptor: If the named descriptor is not registered
        """
        if descriptor is not None:
            return await self.require_descriptor(descriptor).is_cmp_present(page)

        detected = await self.detect_cmp(page)
        if detected is not None and await detected.is_cmp_present(page):
            return detected
        return False

    async def cmp_active(self, page: Page, descriptor: Optional[str] = None) -> Union[bool, CMPDescriptor]:
        """Check whether a CMP is present AND visible (active) on the page.

        Args:
            page: The page (post-navigation, post-load) to check
            descriptor: If given, only this descriptor is used

        Returns:
            With a descriptor name, whether that CMP is active. Without one,
            the detected descriptor if it is also active, otherwise False.

        Raises:
            UnknownDescriptor: If the named descriptor is not registered
        """
        if descriptor is not None:
            return await self.require_descriptor(descriptor).is_cmp_active(page)

        detected = await self.detect_cmp(page)
        if detected is not None and await detected.is_cmp_active(page):
            return detected
        return False

    async def parse_page(
        self,
        page: Page,
        options: Optional[Union[ParsePageOptions, Dict[str, Any]]] = None
    ) -> Optional[ConsentRecord]:
        """Detect an active CMP, accept all, and collect the recorded consent.

        A None result means none of the registered descriptors recognized a
        CMP, not that the page has none.

        Args:
            page: The page (post-navigation, post-load) to handle
            options: Restrict to one descriptor and/or fail on missing data

        Returns:
            Consent record for the first active, accepted descriptor, or None

        Raises:
            UnknownDescriptor: If ``options.descriptor`` is not registered
            ActionNotFound: If the accept-all control could not be clicked
            MissingConsentData: If ``fail_on_missing`` is set and data is missing
        """
        opts = self._resolve_options(options)

        if opts.descriptor:
            candidates = [self.require_descriptor(opts.descriptor)]
        else:
            candidates = self.descriptors

        for descriptor in candidates:
            if not await descriptor.is_cmp_active(page):
                continue

            logger.info(f"Accepting all cookies with descriptor: {descriptor.name}")
            await descriptor.accept_all(page)

            cookies = await self._wait_for_consent_cookies(page, descriptor)

            if opts.fail_on_missing:
                await descriptor.get_consent_data(page, fail_on_missing=True)

            return ConsentRecord(
                descriptor=descriptor.name,
                cookies=[CookieRecord.from_playwright_cookie(cookie) for cookie in cookies],
                local_storage=await self._snapshot_local_storage(page),
            )

        logger.info("No registered descriptor matched an active CMP")
        return None

    def _resolve_options(self, options: Optional[Union[ParsePageOptions, Dict[str, Any]]]) -> ParsePageOptions:
        """Merge per-call options over the settings defaults."""
        if isinstance(options, ParsePageOptions):
            return options

        data: Dict[str, Any] = {"fail_on_missing": self.settings.fail_on_missing}
        data.update(options or {})
        return ParsePageOptions(**data)

    async def _wait_for_consent_cookies(self, page: Page, descriptor: CMPDescriptor) -> List[Dict[str, Any]]:
        """Poll the cookie jar until a consent cookie appears or the budget is spent.

        The budget is independent of the descriptor's own timeout, since
        cookie writes can lag behind the click.
        """
        keys = descriptor.consent_keys
        timeout_ms = self.settings.confirmation_timeout_ms

        cookies = await page.context.cookies()
        time_spent = 0.0

        while keys and not any(cookie['name'] in keys for cookie in cookies) and time_spent < timeout_ms:
            started = time.monotonic()
            cookies = await page.context.cookies()
            time_spent += (time.monotonic() - started) * 1000

        if keys and not any(cookie['name'] in keys for cookie in cookies):
            logger.warning(f"{descriptor.name}: no consent cookie appeared within {timeout_ms}ms")

        return cookies

    async def _snapshot_local_storage(self, page: Page) -> Optional[List[LocalStorageEntry]]:
        """Best-effort localStorage snapshot; None when it cannot be read."""
        try:
            return await read_local_storage(page)
        except PageScriptFailure as e:
            logger.debug(f"localStorage snapshot unavailable: {e}")
            return None
