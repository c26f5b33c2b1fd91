"""CMP descriptor framework.

This package provides the descriptor contract, the selector-driven polling
descriptor, declarative (YAML) descriptors and the no-op Null descriptor,
plus the built-in declarative descriptors shipped with the package.
"""

from pathlib import Path

from .base import (
    CMPDescriptor,
    CMPHandleFunction,
    is_cmp_descriptor,
    read_local_storage,
)
from .simple import SelectorDrivenDescriptor, DEFAULT_TIMEOUT_MS, ATTEMPT_TIMEOUT_MS
from .null import NullDescriptor, NULL_DESCRIPTOR_NAME
from .declarative import (
    DeclarativeDescriptor,
    DescriptorFile,
    DescriptorSelectors,
    parse_descriptor_source,
    DESCRIPTOR_EXTENSIONS,
)

BUILTIN_DESCRIPTOR_DIR = Path(__file__).parent / "builtin"

__all__ = [
    # Base framework
    "CMPDescriptor",
    "CMPHandleFunction",
    "is_cmp_descriptor",
    "read_local_storage",

    # Implementations
    "SelectorDrivenDescriptor",
    "NullDescriptor",
    "DeclarativeDescriptor",

    # Declarative schema
    "DescriptorFile",
    "DescriptorSelectors",
    "parse_descriptor_source",

    # Constants
    "DEFAULT_TIMEOUT_MS",
    "ATTEMPT_TIMEOUT_MS",
    "NULL_DESCRIPTOR_NAME",
    "DESCRIPTOR_EXTENSIONS",
    "BUILTIN_DESCRIPTOR_DIR",
]
