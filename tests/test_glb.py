# SPDX-License-Identifier: MIT
"""Tests for the binary container envelope."""

import json
import struct

import pytest

from gltf_dom import GlbFormatError, read_glb
from gltf_dom.glb import CHUNK_BIN, CHUNK_JSON, GLB_MAGIC, is_glb, read_chunks, write_glb
from gltf_dom.logger import get_logger

logger = get_logger(__name__)

DOCUMENT = json.dumps({"asset": {"version": "2.0"}}).encode("utf-8")


def build_glb(chunks, version=2, total_length=None) -> bytes:
    """Assemble a GLB stream from ``(type, payload)`` pairs without any checks."""
    body = b"".join(struct.pack("<II", len(payload), chunk_type) + payload for chunk_type, payload in chunks)
    if total_length is None:
        total_length = 12 + len(body)
    return struct.pack("<III", GLB_MAGIC, version, total_length) + body


def test_write_glb_layout():
    data = write_glb(b'{"a":1}', b"\x01\x02\x03")

    magic, version, length = struct.unpack_from("<III", data, 0)
    assert (magic, version, length) == (GLB_MAGIC, 2, len(data))

    json_length, json_type = struct.unpack_from("<II", data, 12)
    assert json_type == CHUNK_JSON
    assert json_length == 8
    assert data[20:28] == b'{"a":1} '

    bin_length, bin_type = struct.unpack_from("<II", data, 28)
    assert bin_type == CHUNK_BIN
    assert bin_length == 4
    assert data[36:40] == b"\x01\x02\x03\x00"
    assert len(data) % 4 == 0


def test_write_glb_without_binary_chunk():
    data = write_glb(DOCUMENT)

    assert set(read_chunks(data)) == {CHUNK_JSON}


def test_read_chunks_round_trip():
    data = write_glb(DOCUMENT, b"\xAB" * 6)

    chunks = read_chunks(data)

    assert chunks[CHUNK_JSON].rstrip(b" ") == DOCUMENT
    assert chunks[CHUNK_BIN] == b"\xAB" * 6 + b"\x00\x00"


def test_is_glb():
    assert is_glb(write_glb(DOCUMENT))
    assert not is_glb(DOCUMENT)
    assert not is_glb(b"gl")


def test_bad_version_is_rejected():
    data = build_glb([(CHUNK_JSON, DOCUMENT.ljust(32))], version=1)

    with pytest.raises(GlbFormatError):
        read_glb(data)


def test_wrong_total_length_is_rejected():
    data = build_glb([(CHUNK_JSON, DOCUMENT.ljust(32))], total_length=1000)

    with pytest.raises(GlbFormatError):
        read_glb(data)


def test_bad_magic_is_rejected():
    data = bytearray(write_glb(DOCUMENT))
    data[0:4] = b"GLTF"

    with pytest.raises(GlbFormatError):
        read_chunks(bytes(data))


def test_truncated_stream_is_rejected():
    with pytest.raises(GlbFormatError):
        read_chunks(struct.pack("<II", GLB_MAGIC, 2))


def test_chunk_exceeding_stream_is_rejected():
    data = build_glb([(CHUNK_JSON, DOCUMENT)])
    data = data[:12] + struct.pack("<I", len(DOCUMENT) + 64) + data[16:]

    with pytest.raises(GlbFormatError):
        read_chunks(data)


def test_first_chunk_must_be_json():
    data = build_glb([(CHUNK_BIN, b"\x00" * 4), (CHUNK_JSON, DOCUMENT.ljust(32))])

    with pytest.raises(GlbFormatError):
        read_chunks(data)


def test_binary_chunk_may_appear_once():
    data = build_glb([(CHUNK_JSON, DOCUMENT.ljust(32)), (CHUNK_BIN, b"\x00" * 4), (CHUNK_BIN, b"\x00" * 4)])

    with pytest.raises(GlbFormatError):
        read_chunks(data)


def test_unknown_chunks_are_skipped():
    data = build_glb([(CHUNK_JSON, DOCUMENT.ljust(32)), (CHUNK_BIN, b"\x01" * 4), (0x12345678, b"\xFF" * 8)])

    chunks = read_chunks(data)

    assert set(chunks) == {CHUNK_JSON, CHUNK_BIN}
    assert chunks[CHUNK_BIN] == b"\x01" * 4


def test_missing_json_chunk_is_rejected():
    with pytest.raises(GlbFormatError):
        read_chunks(build_glb([]))


def test_read_glb_without_binary_chunk():
    model = read_glb(write_glb(DOCUMENT))

    assert model.asset.version == "2.0"
    assert len(model.logical_buffers) == 0
