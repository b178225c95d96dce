# SPDX-License-Identifier: MIT
"""The binary container (GLB): a 12-byte header followed by chunks.

Layout::

    magic:u32  version:u32  length:u32
    chunkLength:u32  chunkType:u32  chunkData[chunkLength]   (JSON, required, first)
    chunkLength:u32  chunkType:u32  chunkData[chunkLength]   (BIN, optional, at most once)

All integers are little-endian; every chunk is padded to 4 bytes.
"""

import struct
from typing import Dict, Optional

from .exceptions import BinaryIncompatibleError, GlbFormatError
from .logger import get_logger

logger = get_logger(__name__)

GLB_MAGIC = 0x46546C67       # "glTF"
GLB_VERSION = 2
CHUNK_JSON = 0x4E4F534A      # "JSON"
CHUNK_BIN = 0x004E4942       # "BIN\0"

_HEADER = struct.Struct("<III")
_CHUNK_HEADER = struct.Struct("<II")


def is_glb(data) -> bool:
    """True when ``data`` starts with the GLB magic."""
    return len(data) >= 4 and struct.unpack_from("<I", data, 0)[0] == GLB_MAGIC


def _padded(payload: bytes, pad: bytes) -> bytes:
    return payload + pad * ((-len(payload)) % 4)


def read_chunks(data) -> Dict[int, bytes]:
    """Split a GLB byte stream into ``{chunk_type: payload}``.

    Raises GlbFormatError for any violation of the envelope layout.
    """
    data = memoryview(data).cast("B")
    if len(data) < _HEADER.size:
        raise GlbFormatError(f"GLB stream too short: {len(data)} bytes")

    magic, version, total_length = _HEADER.unpack_from(data, 0)
    if magic != GLB_MAGIC:
        raise GlbFormatError(f"bad GLB magic 0x{magic:08X}")
    if version != GLB_VERSION:
        raise GlbFormatError(f"unsupported GLB version {version}")
    if total_length != len(data):
        raise GlbFormatError(f"GLB header declares {total_length} bytes, stream has {len(data)}")

    chunks: Dict[int, bytes] = {}
    offset = _HEADER.size
    while offset < total_length:
        if offset + _CHUNK_HEADER.size > total_length:
            raise GlbFormatError(f"truncated chunk header at offset {offset}")
        chunk_length, chunk_type = _CHUNK_HEADER.unpack_from(data, offset)
        offset += _CHUNK_HEADER.size
        if offset + chunk_length > total_length:
            raise GlbFormatError(f"chunk 0x{chunk_type:08X} of {chunk_length} bytes exceeds the stream")

        if not chunks and chunk_type != CHUNK_JSON:
            raise GlbFormatError("the first GLB chunk must be JSON")
        if chunk_type in chunks:
            raise GlbFormatError(f"duplicated chunk 0x{chunk_type:08X}")
        if chunk_type == CHUNK_BIN and len(chunks) != 1:
            raise GlbFormatError("the BIN chunk must immediately follow the JSON chunk")

        # unknown chunk types are skipped
        if chunk_type in (CHUNK_JSON, CHUNK_BIN):
            chunks[chunk_type] = bytes(data[offset:offset + chunk_length])
        else:
            logger.debug(f"Skipping unknown GLB chunk 0x{chunk_type:08X} ({chunk_length} bytes)")
        offset += chunk_length

    if CHUNK_JSON not in chunks:
        raise GlbFormatError("GLB stream has no JSON chunk")
    return chunks


def write_glb(json_bytes: bytes, bin_data: Optional[bytes] = None) -> bytes:
    """Wrap a JSON document and an optional binary buffer in a GLB envelope."""
    json_chunk = _padded(bytes(json_bytes), b" ")
    parts = [_CHUNK_HEADER.pack(len(json_chunk), CHUNK_JSON), json_chunk]
    if bin_data is not None:
        bin_chunk = _padded(bytes(bin_data), b"\x00")
        parts += [_CHUNK_HEADER.pack(len(bin_chunk), CHUNK_BIN), bin_chunk]

    body = b"".join(parts)
    total_length = _HEADER.size + len(body)
    logger.debug(f"Writing GLB: json={len(json_chunk)} bin={0 if bin_data is None else len(bin_data)} "
                 f"total={total_length}")
    return _HEADER.pack(GLB_MAGIC, GLB_VERSION, total_length) + body


def check_binary_compatible(model) -> None:
    """Raise BinaryIncompatibleError unless ``model`` fits in one GLB."""
    count = len(model.logical_buffers)
    if count > 1:
        raise BinaryIncompatibleError(
            f"a GLB holds at most one buffer, the model has {count}; merge the buffers first")
