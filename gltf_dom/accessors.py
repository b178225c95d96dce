# SPDX-License-Identifier: MIT
"""Accessors: typed descriptions of BufferView bytes."""

import math
import struct
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .arrays import (IntegerArray, Matrix4x4Array, QuaternionArray, ScalarArray, SparseArray,
                     Vector2Array, Vector3Array, Vector4Array, create_array)
from .buffers import BufferView
from .enums import ComponentType, ElementType, IndexEncoding
from .exceptions import ModelUsageError
from .logger import get_logger
from .properties import ExtraProperties, LogicalChildOfRoot

logger = get_logger(__name__)

_FLOAT32 = struct.Struct("<f")


def _to_float32(value: float) -> float:
    return _FLOAT32.unpack(_FLOAT32.pack(value))[0]


def _raw_code(value):
    # loaded documents keep unknown codes as read so they can be written back
    return int(value) if isinstance(value, int) else value


def _create(array_type, data, dimensions, byte_offset, count, byte_stride, encoding, normalized):
    if array_type is None:
        return create_array(data, dimensions, byte_offset, count, byte_stride, encoding, normalized)
    return array_type(data, byte_offset, count, byte_stride, encoding, normalized)


class AccessorSparse(ExtraProperties):
    """Sparse override block: an index list and the replacement values."""

    def __init__(self, count: int = 0,
                 indices_buffer_view: Optional[int] = None, indices_byte_offset: int = 0,
                 indices_component_type: IndexEncoding = IndexEncoding.UNSIGNED_INT,
                 values_buffer_view: Optional[int] = None, values_byte_offset: int = 0):
        super().__init__()
        self.count = count
        self.indices_buffer_view = indices_buffer_view
        self.indices_byte_offset = indices_byte_offset
        self.indices_component_type = indices_component_type
        self.values_buffer_view = values_buffer_view
        self.values_byte_offset = values_byte_offset

    def _serialize(self) -> Dict[str, Any]:
        data = super()._serialize()
        data["count"] = self.count
        data["indices"] = {"bufferView": self.indices_buffer_view,
                           "componentType": _raw_code(self.indices_component_type)}
        if self.indices_byte_offset:
            data["indices"]["byteOffset"] = self.indices_byte_offset
        data["values"] = {"bufferView": self.values_buffer_view}
        if self.values_byte_offset:
            data["values"]["byteOffset"] = self.values_byte_offset
        return data

    def _deserialize(self, data: Dict[str, Any], registry) -> None:
        super()._deserialize(data, registry)
        indices = data.get("indices") or {}
        values = data.get("values") or {}
        self.count = data.get("count", 0)
        self.indices_buffer_view = indices.get("bufferView")
        self.indices_byte_offset = indices.get("byteOffset", 0)
        self.indices_component_type = indices.get("componentType", IndexEncoding.UNSIGNED_INT)
        self.values_buffer_view = values.get("bufferView")
        self.values_byte_offset = values.get("byteOffset", 0)


class Accessor(LogicalChildOfRoot):
    """Describes how to read a BufferView as a sequence of typed elements.

    The accessor byte offset is always relative to its BufferView; this is
    what lets buffers be merged without touching any accessor.
    """

    def __init__(self, name: Optional[str] = None):
        super().__init__(name)
        self._buffer_view: Optional[int] = None
        self._byte_offset = 0
        self._component_type = ComponentType.FLOAT
        self._normalized = False
        self._count = 0
        self._element_type = ElementType.SCALAR
        self._sparse: Optional[AccessorSparse] = None
        self.min: Optional[List[float]] = None
        self.max: Optional[List[float]] = None

    # -- properties ---------------------------------------------------------

    @property
    def buffer_view_index(self) -> Optional[int]:
        return self._buffer_view

    @property
    def buffer_view(self) -> Optional[BufferView]:
        if self._buffer_view is None:
            return None
        return self.logical_parent.logical_buffer_views[self._buffer_view]

    @property
    def byte_offset(self) -> int:
        return self._byte_offset

    @property
    def count(self) -> int:
        return self._count

    @property
    def component_type(self) -> ComponentType:
        return ComponentType(self._component_type)

    @property
    def element_type(self) -> ElementType:
        return ElementType(self._element_type)

    @property
    def dimensions(self) -> int:
        return self.element_type.dimensions

    @property
    def type_name(self) -> str:
        """The raw ``type`` string, even when it is not a known element type."""
        return getattr(self._element_type, "value", self._element_type)

    @property
    def normalized(self) -> bool:
        return self._normalized

    @property
    def sparse(self) -> Optional[AccessorSparse]:
        return self._sparse

    @property
    def is_sparse(self) -> bool:
        return self._sparse is not None

    @property
    def element_byte_size(self) -> int:
        return self.component_type.byte_length * self.dimensions

    @property
    def byte_stride(self) -> int:
        view = self.buffer_view
        if view is not None and view.byte_stride:
            return view.byte_stride
        return self.element_byte_size

    @property
    def byte_length(self) -> int:
        """Bytes spanned inside the BufferView, from ``byte_offset``."""
        if self._count <= 0:
            return 0
        return self.byte_stride * (self._count - 1) + self.element_byte_size

    # -- data binding -------------------------------------------------------

    def set_data(self, buffer_view: Optional[BufferView], byte_offset: int, count: int,
                 element_type: ElementType, component_type: ComponentType,
                 normalized: bool = False) -> "Accessor":
        """Bind this accessor to ``buffer_view`` (None for a zero-filled accessor)."""
        if buffer_view is not None:
            self._shares_logical_parent(buffer_view, "buffer_view")
        if count < 1:
            raise ModelUsageError(f"count must be at least 1, got {count}")
        if byte_offset < 0:
            raise ModelUsageError(f"byte_offset must not be negative: {byte_offset}")

        element_type = ElementType(element_type)
        component_type = ComponentType(component_type)
        if normalized and component_type in (ComponentType.FLOAT, ComponentType.UNSIGNED_INT):
            raise ModelUsageError(f"{component_type.name} components cannot be normalized")

        self._buffer_view = None if buffer_view is None else buffer_view.logical_index
        self._byte_offset = byte_offset
        self._count = count
        self._element_type = element_type
        self._component_type = component_type
        self._normalized = normalized
        self.min = None
        self.max = None
        return self

    def set_vertex_data(self, buffer_view: BufferView, byte_offset: int, count: int,
                        element_type: ElementType = ElementType.VEC3,
                        component_type: ComponentType = ComponentType.FLOAT,
                        normalized: bool = False) -> "Accessor":
        self.set_data(buffer_view, byte_offset, count, element_type, component_type, normalized)
        self.update_bounds()
        return self

    def set_index_data(self, buffer_view: BufferView, byte_offset: int, count: int,
                       encoding: IndexEncoding = IndexEncoding.UNSIGNED_INT) -> "Accessor":
        encoding = IndexEncoding(encoding)
        return self.set_data(buffer_view, byte_offset, count, ElementType.SCALAR,
                             encoding.to_component_type())

    def set_sparse(self, indices_view: BufferView, indices_byte_offset: int,
                   indices_encoding: IndexEncoding, values_view: BufferView,
                   values_byte_offset: int, count: int) -> "Accessor":
        """Overlay ``count`` replacement values on the dense data."""
        self._shares_logical_parent(indices_view, "indices_view")
        self._shares_logical_parent(values_view, "values_view")
        if count < 1 or count > self._count:
            raise ModelUsageError(f"sparse count must be in [1, {self._count}], got {count}")

        self._sparse = AccessorSparse(count,
                                      indices_view.logical_index, indices_byte_offset,
                                      IndexEncoding(indices_encoding),
                                      values_view.logical_index, values_byte_offset)
        return self

    def clear_sparse(self) -> None:
        self._sparse = None

    # -- typed views --------------------------------------------------------

    def _dense(self, dimensions: int, normalized: bool, array_type=None):
        view = self.buffer_view
        if view is None:
            # zero-filled logical accessor; writes land in a private buffer
            data = bytearray(self._count * self.component_type.byte_length * dimensions)
            return _create(array_type, data, dimensions, 0, self._count, 0,
                           self.component_type, normalized)
        return _create(array_type, view.content, dimensions, self._byte_offset, self._count,
                       view.byte_stride or 0, self.component_type, normalized)

    def _sparse_parts(self) -> Tuple[BufferView, BufferView]:
        root = self.logical_parent
        return (root.logical_buffer_views[self._sparse.indices_buffer_view],
                root.logical_buffer_views[self._sparse.values_buffer_view])

    def _typed(self, dimensions: int, normalized: Optional[bool] = None, array_type=None):
        if normalized is None:
            normalized = self._normalized
        bottom = self._dense(dimensions, normalized, array_type)
        if self._sparse is None:
            return bottom

        indices_view, values_view = self._sparse_parts()
        top = _create(array_type, values_view.content, dimensions, self._sparse.values_byte_offset,
                      self._sparse.count, 0, self.component_type, normalized)
        mapping = IntegerArray(indices_view.content, self._sparse.indices_byte_offset,
                               self._sparse.count, self._sparse.indices_component_type)
        return SparseArray(bottom, top, mapping)

    def _require(self, *element_types: ElementType) -> None:
        if self.element_type not in element_types:
            names = "/".join(t.value for t in element_types)
            raise ModelUsageError(f"{self!r} is {self.element_type.value}, expected {names}")

    def as_scalar_array(self) -> ScalarArray:
        self._require(ElementType.SCALAR)
        return self._typed(1)

    def as_vector2_array(self) -> Vector2Array:
        self._require(ElementType.VEC2)
        return self._typed(2)

    def as_vector3_array(self) -> Vector3Array:
        self._require(ElementType.VEC3)
        return self._typed(3)

    def as_vector4_array(self):
        """Any 1..4 component accessor seen as zero-padded ``(x, y, z, w)``."""
        self._require(ElementType.SCALAR, ElementType.VEC2, ElementType.VEC3, ElementType.VEC4)
        return self._typed(self.dimensions).as_vector4()

    def as_quaternion_array(self) -> QuaternionArray:
        self._require(ElementType.VEC4)
        return self._typed(4, array_type=QuaternionArray)

    def as_matrix4x4_array(self) -> Matrix4x4Array:
        self._require(ElementType.MAT4)
        return self._typed(16)

    def as_indices_array(self) -> IntegerArray:
        self._require(ElementType.SCALAR)
        try:
            encoding = IndexEncoding(int(self.component_type))
        except ValueError:
            raise ModelUsageError(f"{self!r} uses {self.component_type.name}, not an index encoding") from None

        view = self.buffer_view
        if view is None:
            bottom = IntegerArray(bytearray(self._count * encoding.byte_length), 0, self._count, encoding)
        else:
            if view.byte_stride and view.byte_stride != encoding.byte_length:
                raise ModelUsageError(f"{self!r} index data cannot be strided")
            bottom = IntegerArray(view.content, self._byte_offset, self._count, encoding)
        if self._sparse is None:
            return bottom

        indices_view, values_view = self._sparse_parts()
        top = IntegerArray(values_view.content, self._sparse.values_byte_offset,
                           self._sparse.count, encoding)
        mapping = IntegerArray(indices_view.content, self._sparse.indices_byte_offset,
                               self._sparse.count, self._sparse.indices_component_type)
        return SparseArray(bottom, top, mapping)

    def as_array(self):
        """The natural typed view for this accessor's element type."""
        if self.element_type in (ElementType.MAT2, ElementType.MAT3):
            raise ModelUsageError(f"{self.element_type.value} accessors have no typed array view")
        return self._typed(self.dimensions)

    # -- bounds -------------------------------------------------------------

    def compute_bounds(self) -> Tuple[List[float], List[float]]:
        """Component-wise raw bounds, after sparse substitution.

        glTF stores min/max in the un-normalized component domain.
        """
        if self.element_type in (ElementType.MAT2, ElementType.MAT3):
            raise ModelUsageError("bounds of MAT2/MAT3 accessors are not supported")
        lo, hi = self._typed(self.dimensions, normalized=False).get_bounds()
        if self.dimensions == 1:
            lo, hi = [lo], [hi]
        lo, hi = list(lo), list(hi)
        if self.component_type.is_integer:
            lo = [v if math.isnan(v) else int(v) for v in lo]
            hi = [v if math.isnan(v) else int(v) for v in hi]
        return lo, hi

    def update_bounds(self) -> None:
        if self.element_type in (ElementType.MAT2, ElementType.MAT3):
            self.min = self.max = None
            return
        self.min, self.max = self.compute_bounds()

    def _bounds_issues(self) -> List[str]:
        """Messages for declared min/max that do not contain the actual data."""
        if self.min is None and self.max is None:
            return []
        issues: List[str] = []
        for label, declared in (("min", self.min), ("max", self.max)):
            if declared is not None and len(declared) != self.dimensions:
                issues.append(f"{label} has {len(declared)} components, expected {self.dimensions}")
        if issues or self.element_type in (ElementType.MAT2, ElementType.MAT3):
            return issues

        actual_min, actual_max = self.compute_bounds()
        is_float = self.component_type is ComponentType.FLOAT
        for c in range(self.dimensions):
            if self.min is not None and not math.isnan(actual_min[c]):
                declared = _to_float32(self.min[c]) if is_float else self.min[c]
                if actual_min[c] < declared:
                    issues.append(f"min[{c}] is {self.min[c]} but the data reaches {actual_min[c]}")
            if self.max is not None and not math.isnan(actual_max[c]):
                declared = _to_float32(self.max[c]) if is_float else self.max[c]
                if actual_max[c] > declared:
                    issues.append(f"max[{c}] is {self.max[c]} but the data reaches {actual_max[c]}")
        return issues

    # -- serialization ------------------------------------------------------

    def _serialize(self) -> Dict[str, Any]:
        data = super()._serialize()
        if self._buffer_view is not None:
            data["bufferView"] = self._buffer_view
        if self._byte_offset:
            data["byteOffset"] = self._byte_offset
        data["componentType"] = _raw_code(self._component_type)
        if self._normalized:
            data["normalized"] = True
        data["count"] = self._count
        data["type"] = self.type_name
        if self.max is not None:
            data["max"] = list(self.max)
        if self.min is not None:
            data["min"] = list(self.min)
        if self._sparse is not None:
            data["sparse"] = self._sparse._serialize()
        return data

    def _deserialize(self, data: Dict[str, Any], registry) -> None:
        super()._deserialize(data, registry)
        self._buffer_view = data.get("bufferView")
        self._byte_offset = data.get("byteOffset", 0)
        self._component_type = data.get("componentType", ComponentType.FLOAT)
        self._normalized = bool(data.get("normalized", False))
        self._count = data.get("count", 0)
        self._element_type = data.get("type", "SCALAR")
        self.min = data.get("min")
        self.max = data.get("max")
        if "sparse" in data:
            self._sparse = AccessorSparse()
            self._sparse._deserialize(data["sparse"], registry)
