# SPDX-License-Identifier: MIT
"""Tests for model validation."""

import json

import pytest

from gltf_dom import (ModelValidationError, ReadSettings, StructuralReadError, UnsupportedExtensionError,
                      ValidationMode, create_model, read_gltf_json, write_gltf)
from gltf_dom.arrays import pack_values
from gltf_dom.buffers import EMBEDDED_OCTET_STREAM, to_data_uri
from gltf_dom.logger import get_logger
from gltf_dom.validation import IssueKind, ValidationState

from .sample_models import create_triangle_model

logger = get_logger(__name__)

UNCHECKED = ReadSettings(validation=ValidationMode.SKIP)


def make_document(buffer_bytes=None, **collections) -> str:
    """A minimal glTF JSON document, optionally with one embedded buffer."""
    document = {"asset": {"version": "2.0"}}
    if buffer_bytes is not None:
        document["buffers"] = [{"byteLength": len(buffer_bytes),
                                "uri": to_data_uri(EMBEDDED_OCTET_STREAM, buffer_bytes)}]
    document.update(collections)
    return json.dumps(document)


def read_unchecked(**kwargs):
    return read_gltf_json(make_document(**kwargs), UNCHECKED)


def test_valid_model_reaches_content_validated():
    model = create_triangle_model()

    result = model.validate()

    assert result.issues == []
    assert result.state is ValidationState.CONTENT_VALIDATED
    assert model.validation_result is result


def test_cycle_is_reported_once():
    model = read_unchecked(nodes=[{"children": [1]}, {"children": [2]}, {"children": [0]}],
                           scenes=[{"nodes": [0]}])

    result = model.validate()

    cycles = result.of_kind(IssueKind.CIRCULAR_REFERENCE)
    assert len(cycles) == 1
    assert cycles[0].target == "Node[0]"


def test_cycle_is_reported_against_lowest_member():
    model = read_unchecked(nodes=[{}, {"children": [3]}, {"children": [1]}, {"children": [2]}])

    cycles = model.validate().of_kind(IssueKind.CIRCULAR_REFERENCE)

    assert [issue.target for issue in cycles] == ["Node[1]"]


def test_self_reference_is_not_also_a_cycle():
    model = read_unchecked(nodes=[{"children": [0]}])

    result = model.validate()

    assert len(result.of_kind(IssueKind.SELF_REFERENCE)) == 1
    assert result.of_kind(IssueKind.CIRCULAR_REFERENCE) == []


def test_out_of_range_child_is_reported_once():
    model = read_unchecked(nodes=[{"children": [1]}], scenes=[{"nodes": [0]}])

    result = model.validate()

    invalid = result.of_kind(IssueKind.INVALID_REFERENCE)
    assert len(invalid) == 1
    assert invalid[0].target == "Node[0]"
    assert "Node[1]" in invalid[0].message


def test_duplicate_children_are_reported():
    model = read_unchecked(nodes=[{"children": [1, 1]}, {}])

    result = model.validate()

    assert len(result.of_kind(IssueKind.DUPLICATE_REFERENCE)) == 1
    assert result.of_kind(IssueKind.CIRCULAR_REFERENCE) == []


def test_node_with_two_parents_is_reported():
    model = read_unchecked(nodes=[{"children": [2]}, {"children": [2]}, {}])

    result = model.validate()

    duplicates = result.of_kind(IssueKind.DUPLICATE_REFERENCE)
    assert [issue.target for issue in duplicates] == ["Node[2]"]
    assert "Node[0], Node[1]" in duplicates[0].message
    assert result.of_kind(IssueKind.CIRCULAR_REFERENCE) == []


def test_cycle_behind_a_second_parent_is_reported():
    model = read_unchecked(nodes=[{"children": [1]}, {"children": [2]}, {"children": [1]}])

    result = model.validate()

    assert [issue.target for issue in result.of_kind(IssueKind.CIRCULAR_REFERENCE)] == ["Node[1]"]
    assert [issue.target for issue in result.of_kind(IssueKind.DUPLICATE_REFERENCE)] == ["Node[1]"]


def test_scene_with_invalid_root_is_reported():
    model = read_unchecked(nodes=[{}], scenes=[{"nodes": [0, 4]}])

    result = model.validate()

    assert [issue.target for issue in result.of_kind(IssueKind.INVALID_REFERENCE)] == ["Scene[0]"]


def test_missing_asset_stops_validation():
    model = create_triangle_model()
    model.asset = None

    result = model.validate()

    assert result.state is ValidationState.UNVALIDATED
    assert [issue.kind for issue in result] == [IssueKind.ASSET]


def test_unsupported_asset_version_stops_validation():
    model = create_triangle_model()
    model.asset.version = "1.0"

    result = model.validate()

    assert result.state is ValidationState.UNVALIDATED
    assert len(result.of_kind(IssueKind.ASSET)) == 1


def test_document_without_asset_cannot_be_read():
    with pytest.raises(StructuralReadError):
        read_gltf_json(json.dumps({"nodes": []}))


def test_required_compression_extension_stops_validation():
    model = create_triangle_model()
    model.set_extension_required("KHR_draco_mesh_compression")

    result = model.validate()

    assert result.state is ValidationState.ASSET_CHECKED
    assert [issue.target for issue in result.of_kind(IssueKind.UNSUPPORTED_EXTENSION)] == \
        ["KHR_draco_mesh_compression"]
    assert model.incompatible_extensions == ["KHR_draco_mesh_compression"]


def test_required_compression_extension_raises_in_strict_mode():
    text = json.dumps({"asset": {"version": "2.0"}, "extensionsRequired": ["KHR_draco_mesh_compression"]})

    with pytest.raises(UnsupportedExtensionError) as excinfo:
        read_gltf_json(text, ReadSettings(validation=ValidationMode.STRICT))

    assert excinfo.value.names == ["KHR_draco_mesh_compression"]


def test_buffer_view_out_of_bounds():
    model = read_unchecked(buffer_bytes=bytes(8),
                           bufferViews=[{"buffer": 0, "byteOffset": 4, "byteLength": 8}],
                           accessors=[{"bufferView": 0, "componentType": 5126, "count": 2, "type": "SCALAR"}])

    result = model.validate()

    out_of_bounds = result.of_kind(IssueKind.OUT_OF_BOUNDS)
    assert [issue.target for issue in out_of_bounds] == ["BufferView[0]"]
    assert result.state is ValidationState.CONTENT_VALIDATED


def test_buffer_view_invalid_buffer():
    model = read_unchecked(buffer_bytes=bytes(8), bufferViews=[{"buffer": 3, "byteLength": 4}])

    result = model.validate()

    assert [issue.target for issue in result.of_kind(IssueKind.INVALID_REFERENCE)] == ["BufferView[0]"]


@pytest.mark.parametrize("stride, valid", [(4, True), (252, True), (2, False), (6, False), (256, False)])
def test_buffer_view_stride_rules(stride, valid):
    model = read_unchecked(buffer_bytes=bytes(512),
                           bufferViews=[{"buffer": 0, "byteLength": 512, "byteStride": stride}])

    issues = model.validate().of_kind(IssueKind.INVALID_VALUE)

    assert (issues == []) is valid


def test_accessor_exceeding_view_is_out_of_bounds():
    model = read_unchecked(buffer_bytes=bytes(12),
                           bufferViews=[{"buffer": 0, "byteLength": 12}],
                           accessors=[{"bufferView": 0, "componentType": 5126, "count": 2, "type": "VEC3"}])

    result = model.validate()

    assert [issue.target for issue in result.of_kind(IssueKind.OUT_OF_BOUNDS)] == ["Accessor[0]"]


def test_accessor_element_larger_than_stride():
    model = read_unchecked(buffer_bytes=bytes(64),
                           bufferViews=[{"buffer": 0, "byteLength": 64, "byteStride": 8}],
                           accessors=[{"bufferView": 0, "componentType": 5126, "count": 2, "type": "VEC3"}])

    issues = model.validate().of_kind(IssueKind.INVALID_VALUE)

    assert [issue.target for issue in issues] == ["Accessor[0]"]


def test_accessor_invalid_types_are_reported():
    model = read_unchecked(accessors=[{"componentType": 1234, "count": 1, "type": "SCALAR"},
                                      {"componentType": 5126, "count": 1, "type": "VEC5"},
                                      {"componentType": 5126, "count": 0, "type": "SCALAR"}])

    issues = model.validate().of_kind(IssueKind.INVALID_VALUE)

    assert [issue.target for issue in issues] == ["Accessor[0]", "Accessor[1]", "Accessor[2]"]


def test_accessors_with_invalid_types_still_write():
    model = read_unchecked(accessors=[{"componentType": 1234, "count": 1, "type": "SCALAR"},
                                      {"componentType": 5126, "count": 1, "type": "VEC9"}])

    text, _ = write_gltf(model)
    clone = model.deep_clone()

    written = json.loads(text)["accessors"]
    assert [(a["componentType"], a["type"]) for a in written] == [(1234, "SCALAR"), (5126, "VEC9")]
    assert clone.logical_accessors[1].type_name == "VEC9"
    reloaded = read_gltf_json(text).validation_result
    assert [issue.target for issue in reloaded.of_kind(IssueKind.INVALID_VALUE)] == ["Accessor[0]", "Accessor[1]"]


def test_negative_accessor_offset_is_reported():
    data = bytes(pack_values([1.0, 2.0, 3.0], 1))
    text = make_document(buffer_bytes=data,
                         bufferViews=[{"buffer": 0, "byteLength": 12}],
                         accessors=[{"bufferView": 0, "byteOffset": -4, "componentType": 5126, "count": 1,
                                     "type": "SCALAR", "min": [1.0], "max": [1.0]}])

    result = read_gltf_json(text).validation_result

    assert [issue.target for issue in result.of_kind(IssueKind.INVALID_VALUE)] == ["Accessor[0]"]
    assert result.of_kind(IssueKind.BOUNDS_MISMATCH) == []
    assert result.state is ValidationState.CONTENT_VALIDATED


@pytest.mark.parametrize("block", ["indices", "values"])
def test_negative_sparse_offset_is_reported(block):
    data = bytes(pack_values([1.0, 2.0, 3.0], 1))
    sparse = {"count": 1,
              "indices": {"bufferView": 0, "componentType": 5121},
              "values": {"bufferView": 0}}
    sparse[block]["byteOffset"] = -4
    text = make_document(buffer_bytes=data,
                         bufferViews=[{"buffer": 0, "byteLength": 12}],
                         accessors=[{"bufferView": 0, "componentType": 5126, "count": 3, "type": "SCALAR",
                                     "sparse": sparse}])

    result = read_gltf_json(text).validation_result

    invalid = result.of_kind(IssueKind.INVALID_VALUE)
    assert [issue.target for issue in invalid] == ["Accessor[0]"]
    assert f"sparse {block} byteOffset" in invalid[0].message


def test_declared_bounds_mismatch():
    model = create_triangle_model()
    model.logical_accessors[0].max = [0.5, 1.0, 0.0]

    mismatches = model.validate().of_kind(IssueKind.BOUNDS_MISMATCH)

    assert len(mismatches) == 1
    assert mismatches[0].target == "Accessor[0]"
    assert "max[0]" in mismatches[0].message


def test_declared_bounds_use_float32_precision():
    data = pack_values([0.1], 1)
    model = read_unchecked(buffer_bytes=bytes(data),
                           bufferViews=[{"buffer": 0, "byteLength": 4}],
                           accessors=[{"bufferView": 0, "componentType": 5126, "count": 1, "type": "SCALAR",
                                       "min": [0.1], "max": [0.1]}])

    assert model.validate().issues == []


def test_mesh_validation():
    data = bytes(pack_values([(0.0, 0.0, 0.0)] * 3, 3))
    model = read_unchecked(buffer_bytes=data,
                           bufferViews=[{"buffer": 0, "byteLength": 36}],
                           accessors=[{"bufferView": 0, "componentType": 5126, "count": 3, "type": "VEC3"},
                                      {"bufferView": 0, "componentType": 5126, "count": 2, "type": "VEC3"},
                                      {"bufferView": 0, "componentType": 5126, "count": 3, "type": "SCALAR"}],
                           meshes=[{"primitives": [{"attributes": {"POSITION": 0, "NORMAL": 1},
                                                    "indices": 2, "material": 5}]},
                                   {"primitives": []}])

    result = model.validate()

    labels = [issue.target for issue in result.of_kind(IssueKind.INVALID_VALUE)]
    assert labels.count("Mesh[0].Primitive[0]") == 2
    assert "Mesh[1]" in labels
    assert [issue.target for issue in result.of_kind(IssueKind.INVALID_REFERENCE)] == ["Mesh[0].Primitive[0]"]


def test_node_transform_validation():
    model = create_triangle_model()
    node = model.logical_nodes[0]
    node.matrix = [1.0] * 16
    node.translation = [0.0, 0.0]

    issues = model.validate().of_kind(IssueKind.INVALID_VALUE)

    assert len(issues) == 2
    assert all(issue.target == "Node[0]" for issue in issues)


def test_strict_read_raises_validation_error():
    text = make_document(nodes=[{"children": [0]}])

    with pytest.raises(ModelValidationError) as excinfo:
        read_gltf_json(text, ReadSettings(validation=ValidationMode.STRICT))

    assert excinfo.value.issues[0].kind is IssueKind.SELF_REFERENCE


def test_report_mode_keeps_result_on_model():
    model = read_gltf_json(make_document(nodes=[{"children": [0]}]))

    assert model.validation_result is not None
    assert model.validation_result.has_errors


def test_result_filters():
    model = read_unchecked(nodes=[{"children": [0]}, {"children": [5]}])

    result = model.validate()

    assert len(result) == 2
    assert len(result.for_target(model.logical_nodes[1])) == 1
    with pytest.raises(ModelValidationError):
        result.raise_if_errors()


def test_empty_model_is_valid():
    result = create_model().validate()

    assert result.issues == []
    assert not result.has_errors
