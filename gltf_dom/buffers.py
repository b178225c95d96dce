# SPDX-License-Identifier: MIT
"""Buffers, buffer views and the helpers that move their bytes around."""

import base64
import binascii
from typing import Any, Dict, List, Optional

from .enums import BufferTarget
from .exceptions import ModelUsageError, ResolveError
from .logger import get_logger
from .properties import LogicalChildOfRoot

logger = get_logger(__name__)

EMBEDDED_OCTET_STREAM = "data:application/octet-stream;base64,"
EMBEDDED_GLTF_BUFFER = "data:application/gltf-buffer;base64,"

BUFFER_PREFIXES = (EMBEDDED_GLTF_BUFFER, EMBEDDED_OCTET_STREAM)


def try_parse_base64(uri: Optional[str], prefix: str) -> Optional[bytearray]:
    """Decode ``uri`` when it is a data URI starting with ``prefix``."""
    if not uri or not uri.startswith(prefix):
        return None
    try:
        return bytearray(base64.b64decode(uri[len(prefix):], validate=False))
    except (binascii.Error, ValueError) as e:
        raise ResolveError(uri[:64], f"invalid base64 payload: {e}") from None


def to_data_uri(prefix: str, content) -> str:
    return prefix + base64.b64encode(bytes(content)).decode("ascii")


def resolve_uri(uri: str, prefixes, resolver) -> bytearray:
    """Decode a data URI or ask ``resolver`` for an external file."""
    for prefix in prefixes:
        content = try_parse_base64(uri, prefix)
        if content is not None:
            return content

    if uri.startswith("data:"):
        raise ResolveError(uri[:64], f"unsupported data URI: {uri[:40]}...")

    if resolver is None:
        raise ResolveError(uri, f"no resolver available for external file '{uri}'")

    content = resolver(uri)
    if content is None:
        raise ResolveError(uri)

    logger.debug(f"Resolved external file '{uri}' ({len(content)} bytes)")
    return bytearray(content)


class Buffer(LogicalChildOfRoot):
    """Owned raw byte storage.

    Right after loading, the URI is resolved, the bytes are kept in
    ``content`` and the URI is cleared. Writers set the URI briefly while
    serializing and clear it again afterwards.
    """

    def __init__(self, content=None, name: Optional[str] = None):
        super().__init__(name)
        self._content = content if content is not None else bytearray()
        self._uri: Optional[str] = None
        self._declared_length = 0

    @property
    def content(self):
        return self._content

    @property
    def byte_length(self) -> int:
        return len(self._content)

    def __repr__(self) -> str:
        return f"<Buffer[{self.logical_index}] bytes={len(self._content)}>"

    # -- binary read --------------------------------------------------------

    def _resolve_uri(self, resolver, binary_chunk=None) -> None:
        if self._uri is None:
            if binary_chunk is None:
                raise ResolveError("", f"Buffer[{self.logical_index}] has no uri and no binary chunk")
            length = self._declared_length or len(binary_chunk)
            self._content = bytearray(binary_chunk[:length])
        else:
            self._content = resolve_uri(self._uri, BUFFER_PREFIXES, resolver)

        # When content is loaded, clear URI
        self._uri = None

    # -- binary write -------------------------------------------------------

    def _write_to_external(self, uri: str, writer) -> None:
        self._uri = uri
        writer(uri, bytes(self._content))

    def _write_as_embedded(self) -> None:
        self._uri = to_data_uri(EMBEDDED_OCTET_STREAM, self._content)

    def _write_to_internal(self) -> None:
        self._uri = None

    def _clear_after_write(self) -> None:
        self._uri = None

    # -- serialization ------------------------------------------------------

    def _serialize(self) -> Dict[str, Any]:
        data = super()._serialize()
        if self._uri is not None:
            data["uri"] = self._uri
        data["byteLength"] = len(self._content)
        return data

    def _deserialize(self, data: Dict[str, Any], registry) -> None:
        super()._deserialize(data, registry)
        self._uri = data.get("uri")
        self._declared_length = data.get("byteLength", 0)


class BufferView(LogicalChildOfRoot):
    """A named byte range of exactly one Buffer."""

    def __init__(self, buffer: Optional[int] = None, byte_offset: int = 0,
                 byte_length: int = 0, byte_stride: Optional[int] = None,
                 target: Optional[BufferTarget] = None, name: Optional[str] = None):
        super().__init__(name)
        self._buffer = buffer
        self._byte_offset = byte_offset
        self._byte_length = byte_length
        self._byte_stride = byte_stride
        self._target = target

    @property
    def buffer_index(self) -> Optional[int]:
        return self._buffer

    @property
    def buffer(self) -> Buffer:
        return self.logical_parent.logical_buffers[self._buffer]

    @property
    def byte_offset(self) -> int:
        return self._byte_offset

    @property
    def byte_length(self) -> int:
        return self._byte_length

    @property
    def byte_stride(self) -> Optional[int]:
        return self._byte_stride

    @property
    def target(self) -> Optional[int]:
        return self._target

    @property
    def is_vertex_buffer(self) -> bool:
        return self._target == BufferTarget.ARRAY_BUFFER

    @property
    def is_index_buffer(self) -> bool:
        return self._target == BufferTarget.ELEMENT_ARRAY_BUFFER

    @property
    def content(self) -> memoryview:
        """The bytes of this view, borrowed from the owning buffer."""
        data = memoryview(self.buffer.content)
        start = self._byte_offset
        end = start + self._byte_length
        if end > len(data):
            raise ModelUsageError(
                f"{self!r} range [{start}, {end}) exceeds {self.buffer!r} of {len(data)} bytes")
        return data[start:end]

    def find_accessors(self) -> List:
        """Accessors whose dense data live in this view."""
        index = self.logical_index
        return [a for a in self.logical_parent.logical_accessors if a.buffer_view_index == index]

    def _relocate(self, buffer_index: int, byte_offset: int) -> None:
        self._buffer = buffer_index
        self._byte_offset = byte_offset

    def _serialize(self) -> Dict[str, Any]:
        data = super()._serialize()
        data["buffer"] = self._buffer
        if self._byte_offset:
            data["byteOffset"] = self._byte_offset
        data["byteLength"] = self._byte_length
        if self._byte_stride is not None:
            data["byteStride"] = self._byte_stride
        if self._target is not None:
            data["target"] = int(self._target)
        return data

    def _deserialize(self, data: Dict[str, Any], registry) -> None:
        super()._deserialize(data, registry)
        self._buffer = data.get("buffer")
        self._byte_offset = data.get("byteOffset", 0)
        self._byte_length = data.get("byteLength", 0)
        self._byte_stride = data.get("byteStride")
        self._target = data.get("target")


class StaticBufferBuilder:
    """Concatenates byte regions, starting each one on a 4-byte boundary."""

    ALIGNMENT = 4

    def __init__(self):
        self._data = bytearray()

    def __len__(self) -> int:
        return len(self._data)

    def append(self, content) -> int:
        """Append ``content`` and return the offset where it starts."""
        padding = (-len(self._data)) % self.ALIGNMENT
        if padding:
            self._data.extend(b"\x00" * padding)
        offset = len(self._data)
        self._data.extend(content)
        return offset

    def to_bytearray(self) -> bytearray:
        return bytearray(self._data)
