"""CMP consent engine.

Detects consent management platform banners on a loaded Playwright page,
accepts them, and reports the consent data the CMP recorded.

Example usage:

    from cmp_consent import CMPManager

    manager = await CMPManager.create_manager()
    record = await manager.parse_page(page)
    if record:
        print(record.descriptor, [c.name for c in record.cookies])
"""

__version__ = "1.0.0"

from .errors import (
    CMPError,
    MalformedDescriptorSource,
    UnknownDescriptor,
    ActionNotFound,
    MissingConsentData,
    PageScriptFailure,
)
from .models import (
    LocalKeyEntry,
    CookieStorageSpec,
    LocalKeyStorageSpec,
    ConsentStorageSpec,
    CookieRecord,
    LocalStorageEntry,
    ConsentRecord,
    ParsePageOptions,
    is_cookie_storage_options,
    is_local_storage_options,
    build_storage_spec,
)
from .descriptors import (
    CMPDescriptor,
    SelectorDrivenDescriptor,
    DeclarativeDescriptor,
    NullDescriptor,
    NULL_DESCRIPTOR_NAME,
)
from .config import CMPSettings, ConfigLoadError, load_settings
from .manager import CMPManager
from .plugin import CmpPlugin

__all__ = [
    # Errors
    "CMPError",
    "MalformedDescriptorSource",
    "UnknownDescriptor",
    "ActionNotFound",
    "MissingConsentData",
    "PageScriptFailure",

    # Models
    "LocalKeyEntry",
    "CookieStorageSpec",
    "LocalKeyStorageSpec",
    "ConsentStorageSpec",
    "CookieRecord",
    "LocalStorageEntry",
    "ConsentRecord",
    "ParsePageOptions",
    "is_cookie_storage_options",
    "is_local_storage_options",
    "build_storage_spec",

    # Descriptors
    "CMPDescriptor",
    "SelectorDrivenDescriptor",
    "DeclarativeDescriptor",
    "NullDescriptor",
    "NULL_DESCRIPTOR_NAME",

    # Manager and glue
    "CMPSettings",
    "ConfigLoadError",
    "load_settings",
    "CMPManager",
    "CmpPlugin",
]
