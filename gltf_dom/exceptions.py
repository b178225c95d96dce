# SPDX-License-Identifier: MIT
"""Exception types raised by gltf_dom.

Malformed *input* never raises from validation: it becomes a
:class:`gltf_dom.validation.ValidationIssue`. The exceptions below cover
unreadable containers, caller bugs and unsupported formats.
"""

from typing import Iterable, List, Sequence


class GltfError(Exception):
    """Base class for every error raised by gltf_dom."""


class StructuralReadError(GltfError):
    """The input cannot be loaded at all (bad container, bad JSON, missing asset)."""


class GlbFormatError(StructuralReadError):
    """The binary container envelope is malformed."""


class ResolveError(StructuralReadError):
    """A satellite file referenced by URI could not be resolved."""

    def __init__(self, uri: str, message: str = ""):
        super().__init__(message or f"unable to resolve satellite file '{uri}'")
        self.uri = uri


class ModelUsageError(GltfError, ValueError):
    """The calling code broke an argument contract."""


class SparseWriteError(ModelUsageError, KeyError):
    """Write to a sparse array index that has no override entry."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message
        return str(self.args[0]) if self.args else ""


class BinaryIncompatibleError(ModelUsageError):
    """The model cannot be stored in a binary container as it is."""


class UnsupportedExtensionError(GltfError):
    """A required extension is not supported (e.g. mesh compression)."""

    def __init__(self, names: Iterable[str]):
        self.names: List[str] = sorted(set(names))
        super().__init__(f"unsupported required extensions: {', '.join(self.names)}")


class ModelValidationError(GltfError):
    """Raised in strict mode when validation reports errors."""

    def __init__(self, issues: Sequence):
        self.issues = list(issues)
        first = str(self.issues[0]) if self.issues else "unknown error"
        more = f" (+{len(self.issues) - 1} more)" if len(self.issues) > 1 else ""
        super().__init__(f"model validation failed: {first}{more}")
