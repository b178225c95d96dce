# SPDX-License-Identifier: MIT
"""Read and write settings for gltf_dom I/O entry points."""

from enum import Enum
from typing import Callable, Optional

# (uri) -> bytes, or None when the file is not available
AssetReader = Callable[[str], Optional[bytes]]

# (uri, content) -> None, called once per satellite file
AssetWriter = Callable[[str, bytes], None]


class ValidationMode(Enum):
    """What to do with validation issues found while reading or writing."""

    SKIP = "skip"
    REPORT = "report"
    STRICT = "strict"


class ReadSettings:
    """Settings used when decoding a model."""

    def __init__(self, validation: ValidationMode = ValidationMode.REPORT,
                 resolver: Optional[AssetReader] = None, registry=None):
        self.validation = ValidationMode(validation)
        self.resolver = resolver
        # gltf_dom.extensions.ExtensionRegistry; a default one is used when None
        self.registry = registry


class WriteSettings:
    """Settings used when encoding a model."""

    def __init__(self, binary: bool = False, embed_buffers: bool = True,
                 merge_buffers: bool = True, json_indented: bool = False,
                 writer: Optional[AssetWriter] = None, registry=None,
                 validation: ValidationMode = ValidationMode.SKIP):
        self.binary = binary
        self.embed_buffers = embed_buffers
        self.merge_buffers = merge_buffers
        self.json_indented = json_indented
        self.writer = writer
        self.registry = registry
        self.validation = ValidationMode(validation)

    @classmethod
    def for_deep_clone(cls) -> "WriteSettings":
        """Settings that keep every buffer as-is in satellite files."""
        return cls(binary=False, embed_buffers=False, merge_buffers=False,
                   validation=ValidationMode.SKIP)
