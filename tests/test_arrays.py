# SPDX-License-Identifier: MIT
"""Tests for the typed array layer."""

import math
import struct

import numpy as np
import pytest

from gltf_dom.arrays import (IntegerArray, Matrix4x4Array, QuaternionArray, ScalarArray, Vector2Array,
                             Vector3Array, Vector4Array, create_array, pack_indices, pack_values)
from gltf_dom.enums import ComponentType, IndexEncoding
from gltf_dom.exceptions import ModelUsageError
from gltf_dom.logger import get_logger

logger = get_logger(__name__)


def test_normalized_unsigned_byte_round_trip():
    """(1, 0, 1, 0) survives a normalized UNSIGNED_BYTE write exactly."""
    data = bytearray(4)
    colors = Vector4Array(data, encoding=ComponentType.UNSIGNED_BYTE, normalized=True)

    colors[0] = (1.0, 0.0, 1.0, 0.0)

    assert bytes(data) == bytes([255, 0, 255, 0])
    assert colors[0] == (1.0, 0.0, 1.0, 0.0)


def test_normalized_half_rounds_away_from_zero():
    data = bytearray(1)
    values = ScalarArray(data, encoding=ComponentType.UNSIGNED_BYTE, normalized=True)

    values[0] = 0.5

    # 127.5 rounds half away from zero
    assert data[0] == 128
    assert values[0] == 128 / 255


def test_normalized_signed_most_negative_code_is_minus_one():
    data = bytearray(struct.pack("<bb", -128, -127))
    values = ScalarArray(data, encoding=ComponentType.BYTE, normalized=True)

    assert values[0] == -1.0
    assert values[1] == -1.0

    values[0] = -1.0
    assert struct.unpack("<b", data[:1])[0] == -127


def test_normalized_signed_short():
    data = bytearray(struct.pack("<hh", 32767, -16384))
    values = ScalarArray(data, encoding=ComponentType.SHORT, normalized=True)

    assert values[0] == 1.0
    assert values[1] == pytest.approx(-16384 / 32767)


def test_unnormalized_integers_pass_through():
    data = bytearray(struct.pack("<HHH", 0, 7, 65535))
    values = ScalarArray(data, encoding=ComponentType.UNSIGNED_SHORT)

    assert values.to_list() == [0.0, 7.0, 65535.0]

    values[1] = 70000  # clamps
    assert values[1] == 65535.0


def test_normalized_writes_clamp():
    data = bytearray(2)
    values = ScalarArray(data, encoding=ComponentType.UNSIGNED_BYTE, normalized=True)

    values[0] = 2.0
    values[1] = -3.0

    assert list(data) == [255, 0]


def test_nan_cannot_be_encoded_as_integer():
    values = ScalarArray(bytearray(1), encoding=ComponentType.UNSIGNED_BYTE)

    with pytest.raises(ModelUsageError):
        values[0] = float("nan")


def test_normalized_flag_ignored_for_floats():
    data = pack_values([0.25, 3.5], 1)
    values = ScalarArray(data, normalized=True)

    assert values.normalized is False
    assert values.to_list() == [0.25, 3.5]


def test_normalized_unsigned_int_is_rejected():
    with pytest.raises(ModelUsageError):
        ScalarArray(bytearray(8), encoding=ComponentType.UNSIGNED_INT, normalized=True)


def test_stride_smaller_than_element_is_rejected():
    with pytest.raises(ModelUsageError):
        Vector3Array(bytearray(36), byte_stride=8)


def test_count_is_clamped_to_available_bytes():
    values = Vector3Array(bytearray(24), count=10)

    assert len(values) == 2


def test_strided_count_allows_trailing_element():
    # 3 rows of stride 16, last row has no padding after its 12 bytes
    data = bytearray(16 * 2 + 12)
    values = Vector3Array(data, byte_stride=16)

    assert len(values) == 3


def test_requested_count_wins_when_smaller():
    values = ScalarArray(bytearray(40), count=3)

    assert len(values) == 3


def test_strided_reads_skip_padding():
    data = bytearray(32)
    struct.pack_into("<2f", data, 0, 1.0, 2.0)
    struct.pack_into("<2f", data, 16, 3.0, 4.0)
    struct.pack_into("<f", data, 8, 99.0)

    values = Vector2Array(data, byte_stride=16)

    assert values.to_list() == [(1.0, 2.0), (3.0, 4.0)]


def test_byte_offset_is_applied():
    data = bytearray(4) + pack_values([5.0, 6.0], 1)
    values = ScalarArray(data, byte_offset=4)

    assert values.to_list() == [5.0, 6.0]


def test_index_out_of_range():
    values = ScalarArray(pack_values([1.0, 2.0], 1))

    assert values[-1] == 2.0
    with pytest.raises(IndexError):
        values[2]
    with pytest.raises(IndexError):
        values[-3] = 1.0


def test_wrong_component_count_on_write():
    values = Vector3Array(bytearray(12))

    with pytest.raises(ModelUsageError):
        values[0] = (1.0, 2.0)


def test_writes_go_to_the_borrowed_buffer():
    data = bytearray(12)
    values = Vector3Array(memoryview(data))

    values[0] = (1.5, -2.0, 4.0)

    assert struct.unpack("<3f", data) == (1.5, -2.0, 4.0)


def test_borrowed_buffer_cannot_be_resized():
    data = bytearray(8)
    values = ScalarArray(data)

    with pytest.raises(BufferError):
        data.extend(b"\x00" * 4)

    assert len(values) == 2


def test_get_bounds_scalar_and_vector():
    scalars = ScalarArray(pack_values([3.0, -1.0, 2.0], 1))
    assert scalars.get_bounds() == (-1.0, 3.0)

    vectors = Vector2Array(pack_values([(1.0, 5.0), (-2.0, 7.0)], 2))
    assert vectors.get_bounds() == ((-2.0, 5.0), (1.0, 7.0))


def test_get_bounds_nan_never_wins():
    values = ScalarArray(pack_values([float("nan"), 2.0, float("nan"), -4.0], 1))

    low, high = values.get_bounds()

    assert low == -4.0
    assert high == 2.0


def test_get_bounds_all_nan_reports_nan():
    values = ScalarArray(pack_values([float("nan")], 1))

    low, high = values.get_bounds()

    assert math.isnan(low) and math.isnan(high)


def test_as_vector4_pads_with_zeros():
    scalars = ScalarArray(pack_values([7.0], 1)).as_vector4()
    assert scalars[0] == (7.0, 0.0, 0.0, 0.0)

    vec2 = Vector2Array(pack_values([(1.0, 2.0)], 2)).as_vector4()
    assert vec2[0] == (1.0, 2.0, 0.0, 0.0)

    vec3 = Vector3Array(pack_values([(1.0, 2.0, 3.0)], 3)).as_vector4()
    assert vec3[0] == (1.0, 2.0, 3.0, 0.0)

    quat = QuaternionArray(pack_values([(0.0, 0.0, 0.0, 1.0)], 4)).as_vector4()
    assert quat[0] == (0.0, 0.0, 0.0, 1.0)


def test_as_vector4_writes_only_source_components():
    data = pack_values([(1.0, 2.0)], 2)
    view = Vector2Array(data).as_vector4()

    view[0] = (5.0, 6.0, 7.0, 8.0)

    assert struct.unpack("<2f", data) == (5.0, 6.0)


def test_matrix_cannot_be_viewed_as_vector4():
    matrices = Matrix4x4Array(bytearray(64))

    with pytest.raises(ModelUsageError):
        matrices.as_vector4()


def test_copy_to_list_and_numpy():
    values = Vector3Array(pack_values([(1.0, 2.0, 3.0), (4.0, 5.0, 6.0)], 3))

    dst = [None] * 3
    values.copy_to(dst, 1)
    assert dst == [None, (1.0, 2.0, 3.0), (4.0, 5.0, 6.0)]

    with pytest.raises(ModelUsageError):
        values.copy_to([None], 0)

    array = values.to_numpy()
    assert array.shape == (2, 3)
    np.testing.assert_array_equal(array, [[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])


def test_create_array_by_dimension():
    assert isinstance(create_array(bytearray(8), 2), Vector2Array)
    assert isinstance(create_array(bytearray(64), 16), Matrix4x4Array)

    with pytest.raises(ModelUsageError):
        create_array(bytearray(8), 5)


@pytest.mark.parametrize("encoding", list(IndexEncoding))
def test_integer_array_encodings(encoding):
    data = pack_indices([0, 1, 200], encoding)
    indices = IntegerArray(data, encoding=encoding)

    assert len(data) == 3 * encoding.byte_length
    assert indices.to_list() == [0, 1, 200]
    assert indices.get_bounds() == (0, 200)


def test_integer_array_rejects_out_of_range_values():
    indices = IntegerArray(bytearray(2), encoding=IndexEncoding.UNSIGNED_BYTE)

    with pytest.raises(ModelUsageError):
        indices[0] = 256
    with pytest.raises(ModelUsageError):
        indices[1] = -1


def test_integer_array_to_numpy():
    indices = IntegerArray(pack_indices([3, 2, 1]))

    array = indices.to_numpy()

    assert array.dtype == np.uint32
    np.testing.assert_array_equal(array, [3, 2, 1])


def test_integer_array_rejects_float_encoding():
    with pytest.raises(ModelUsageError):
        IntegerArray(bytearray(4), encoding=ComponentType.FLOAT)
