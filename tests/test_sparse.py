# SPDX-License-Identifier: MIT
"""Tests for sparse arrays and sparse accessors."""

import pytest

from gltf_dom import create_model
from gltf_dom.arrays import (IntegerArray, QuaternionArray, ScalarArray, SparseArray, Vector2Array, pack_indices,
                             pack_values)
from gltf_dom.enums import ComponentType, ElementType, IndexEncoding
from gltf_dom.exceptions import ModelUsageError, SparseWriteError
from gltf_dom.logger import get_logger
from gltf_dom.validation import IssueKind

from .sample_models import create_sparse_model

logger = get_logger(__name__)


@pytest.fixture
def sparse_scalars():
    """Base [10, 20, 30, 40] with index 2 overridden to 99."""
    base_data = pack_values([10.0, 20.0, 30.0, 40.0], 1)
    top_data = pack_values([99.0], 1)
    mapping = IntegerArray(pack_indices([2], IndexEncoding.UNSIGNED_BYTE), encoding=IndexEncoding.UNSIGNED_BYTE)
    bottom = ScalarArray(base_data)
    yield SparseArray(bottom, ScalarArray(top_data), mapping), bottom


def test_sparse_overlay_reads(sparse_scalars):
    sparse, bottom = sparse_scalars

    assert sparse.to_list() == [10.0, 20.0, 99.0, 40.0]
    assert bottom.to_list() == [10.0, 20.0, 30.0, 40.0]
    assert len(sparse) == 4
    assert sparse.overridden_indices == [2]


def test_sparse_write_to_override_goes_to_top(sparse_scalars):
    sparse, bottom = sparse_scalars

    sparse[2] = 5.0

    assert sparse[2] == 5.0
    assert bottom[2] == 30.0


def test_sparse_write_to_non_overridden_index_is_rejected(sparse_scalars):
    sparse, bottom = sparse_scalars

    with pytest.raises(SparseWriteError):
        sparse[0] = 1.0

    # SparseWriteError is also a usage error and a KeyError
    with pytest.raises(ModelUsageError):
        sparse[1] = 1.0
    with pytest.raises(KeyError):
        sparse[3] = 1.0

    assert bottom.to_list() == [10.0, 20.0, 30.0, 40.0]


def test_sparse_mismatched_lengths_are_rejected():
    bottom = ScalarArray(pack_values([1.0, 2.0, 3.0], 1))
    top = ScalarArray(pack_values([7.0, 8.0], 1))
    mapping = IntegerArray(pack_indices([0]))

    with pytest.raises(ModelUsageError):
        SparseArray(bottom, top, mapping)


def test_sparse_mismatched_shapes_are_rejected():
    bottom = ScalarArray(pack_values([1.0, 2.0], 1))
    top = Vector2Array(pack_values([(7.0, 8.0)], 2))
    mapping = IntegerArray(pack_indices([0]))

    with pytest.raises(ModelUsageError):
        SparseArray(bottom, top, mapping)


def test_sparse_accessor_reads_overrides():
    model, accessor = create_sparse_model([10.0, 20.0, 30.0, 40.0], [(2, 99.0)])

    assert accessor.is_sparse
    assert accessor.as_scalar_array().to_list() == [10.0, 20.0, 99.0, 40.0]
    # the dense data is left untouched
    assert accessor.as_scalar_array().bottom.to_list() == [10.0, 20.0, 30.0, 40.0]


def test_sparse_accessor_bounds_include_overrides():
    model, accessor = create_sparse_model([10.0, 20.0, 30.0, 40.0], [(2, 99.0)])

    assert accessor.compute_bounds() == ([10.0], [99.0])


def test_sparse_accessor_as_vector4():
    model, accessor = create_sparse_model([1.0, 2.0, 3.0], [(0, -1.0)])

    assert accessor.as_vector4_array()[0] == (-1.0, 0.0, 0.0, 0.0)


def test_sparse_accessor_count_must_fit():
    model, accessor = create_sparse_model([1.0, 2.0], [(1, 5.0)])
    view = accessor.sparse.values_buffer_view

    with pytest.raises(ModelUsageError):
        accessor.set_sparse(model.logical_buffer_views[0], 0, IndexEncoding.UNSIGNED_BYTE,
                            model.logical_buffer_views[view], 0, 3)


def test_sparse_accessor_without_buffer_view_reads_zeros():
    model, accessor = create_sparse_model([0.0, 0.0, 0.0], [(1, 4.0)])
    accessor.set_data(None, 0, 3, accessor.element_type, accessor.component_type)
    indices_view = model.logical_buffer_views[1]
    values_view = model.logical_buffer_views[2]
    accessor.set_sparse(indices_view, 0, IndexEncoding.UNSIGNED_BYTE, values_view, 0, 1)

    assert accessor.as_scalar_array().to_list() == [0.0, 4.0, 0.0]


def test_sparse_indices_must_increase():
    model, accessor = create_sparse_model([1.0, 2.0, 3.0, 4.0], [(3, 8.0), (1, 9.0)])

    result = model.validate()

    assert any("strictly increasing" in issue.message for issue in result.of_kind(IssueKind.INVALID_VALUE))


def test_sparse_index_beyond_count_is_reported():
    model, accessor = create_sparse_model([1.0, 2.0], [(0, 8.0), (7, 9.0)])

    result = model.validate()

    out_of_bounds = result.of_kind(IssueKind.OUT_OF_BOUNDS)
    assert len(out_of_bounds) == 1
    assert out_of_bounds[0].target == "Accessor[0]"


def test_valid_sparse_model_has_no_issues():
    model, accessor = create_sparse_model([10.0, 20.0, 30.0, 40.0], [(2, 99.0)])

    # declared bounds were computed before the override
    accessor.update_bounds()
    result = model.validate()

    assert result.issues == []


def test_sparse_quaternion_accessor_keeps_quaternion_views():
    model = create_model()
    identity = (0.0, 0.0, 0.0, 1.0)
    turned = (0.0, 0.0, 1.0, 0.0)
    accessor = model.create_accessor("rotations")
    accessor.set_data(model.use_buffer_view(pack_values([identity] * 3, 4)), 0, 3,
                      ElementType.VEC4, ComponentType.FLOAT)
    accessor.set_sparse(model.use_buffer_view(pack_indices([1], IndexEncoding.UNSIGNED_BYTE)), 0,
                        IndexEncoding.UNSIGNED_BYTE, model.use_buffer_view(pack_values([turned], 4)), 0, 1)

    rotations = accessor.as_quaternion_array()

    assert isinstance(rotations, SparseArray)
    assert isinstance(rotations.bottom, QuaternionArray)
    assert isinstance(rotations.top, QuaternionArray)
    assert rotations.to_list() == [identity, turned, identity]
