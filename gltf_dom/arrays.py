# SPDX-License-Identifier: MIT
"""Typed views over encoded glTF byte buffers.

An encoded array borrows a ``memoryview`` of the underlying storage; it
never copies. While a view over a ``bytearray`` is alive the bytearray
cannot be resized (Python raises ``BufferError``), so a view can never
read freed memory. A view over a buffer that was later replaced (for
example by :meth:`ModelRoot.merge_buffers`) keeps the old storage alive
and is detached from the model.
"""

import math
import struct
from typing import Any, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np

from .enums import ComponentType, IndexEncoding
from .exceptions import ModelUsageError, SparseWriteError
from .logger import get_logger

logger = get_logger(__name__)

BytesLike = Union[bytes, bytearray, memoryview]

_COMPONENT_STRUCTS = {
    ComponentType.BYTE: struct.Struct("<b"),
    ComponentType.UNSIGNED_BYTE: struct.Struct("<B"),
    ComponentType.SHORT: struct.Struct("<h"),
    ComponentType.UNSIGNED_SHORT: struct.Struct("<H"),
    ComponentType.UNSIGNED_INT: struct.Struct("<I"),
    ComponentType.FLOAT: struct.Struct("<f"),
}

_INTEGER_RANGES = {
    ComponentType.BYTE: (-128, 127),
    ComponentType.UNSIGNED_BYTE: (0, 255),
    ComponentType.SHORT: (-32768, 32767),
    ComponentType.UNSIGNED_SHORT: (0, 65535),
    ComponentType.UNSIGNED_INT: (0, 4294967295),
}

# largest positive code, used as the normalization divisor
_NORMALIZATION_DIVISORS = {
    ComponentType.BYTE: 127.0,
    ComponentType.UNSIGNED_BYTE: 255.0,
    ComponentType.SHORT: 32767.0,
    ComponentType.UNSIGNED_SHORT: 65535.0,
}

_SIGNED_TYPES = (ComponentType.BYTE, ComponentType.SHORT)


def _as_byte_view(data: BytesLike) -> memoryview:
    view = memoryview(data)
    if view.format != "B" or view.ndim != 1:
        view = view.cast("B")
    return view


def _round_half_away(value: float) -> int:
    if value >= 0:
        return int(math.floor(value + 0.5))
    return -int(math.floor(-value + 0.5))


def _to_integer_code(value: float, encoding: ComponentType) -> int:
    if math.isnan(value):
        raise ModelUsageError(f"NaN cannot be encoded as {encoding.name}")
    low, high = _INTEGER_RANGES[encoding]
    if math.isinf(value):
        return high if value > 0 else low
    return max(low, min(high, _round_half_away(value)))


def _nan_losing_min(current: Optional[float], value: float) -> float:
    if current is None or math.isnan(current):
        return value
    if math.isnan(value):
        return current
    return value if value < current else current


def _nan_losing_max(current: Optional[float], value: float) -> float:
    if current is None or math.isnan(current):
        return value
    if math.isnan(value):
        return current
    return value if value > current else current


def _compute_bounds(items: Iterator[Tuple[float, ...]], dimensions: int) -> Tuple[List[float], List[float]]:
    """Component-wise bounds where NaN never wins a comparison.

    A component without a single comparable value reports NaN.
    """
    mins: List[Optional[float]] = [None] * dimensions
    maxs: List[Optional[float]] = [None] * dimensions

    for item in items:
        for c in range(dimensions):
            mins[c] = _nan_losing_min(mins[c], item[c])
            maxs[c] = _nan_losing_max(maxs[c], item[c])

    nan = float("nan")
    return ([nan if v is None else v for v in mins],
            [nan if v is None else v for v in maxs])


class _FloatingAccessor:
    """Reads and writes encoded components at (row, component) positions."""

    __slots__ = ("_data", "_byte_stride", "_encoded_len", "_item_count",
                 "_struct", "_encoding", "_normalized")

    def __init__(self, data: BytesLike, byte_offset: int, item_count: Optional[int],
                 byte_stride: int, dimensions: int, encoding: ComponentType, normalized: bool):
        try:
            encoding = ComponentType(encoding)
        except ValueError:
            raise ModelUsageError(f"unknown component type: {encoding}") from None

        if byte_offset < 0:
            raise ModelUsageError(f"byte_offset must not be negative: {byte_offset}")

        enc_len = encoding.byte_length
        element_len = enc_len * dimensions

        if byte_stride and byte_stride < element_len:
            raise ModelUsageError(
                f"byte_stride {byte_stride} is smaller than the element size {element_len}")

        if normalized and encoding is ComponentType.UNSIGNED_INT:
            raise ModelUsageError("UNSIGNED_INT components cannot be normalized")

        self._data = _as_byte_view(data)[byte_offset:]
        self._byte_stride = max(byte_stride, element_len)
        self._encoded_len = enc_len
        self._struct = _COMPONENT_STRUCTS[encoding]
        self._encoding = encoding
        # floats ignore the normalized flag
        self._normalized = normalized and encoding is not ComponentType.FLOAT

        count = len(self._data) // self._byte_stride

        # strided buffers usually have room for an extra item
        if (len(self._data) % self._byte_stride) >= element_len:
            count += 1

        if item_count is not None:
            count = min(item_count, count)

        self._item_count = max(count, 0)

    @property
    def count(self) -> int:
        return self._item_count

    @property
    def encoding(self) -> ComponentType:
        return self._encoding

    @property
    def normalized(self) -> bool:
        return self._normalized

    @property
    def byte_stride(self) -> int:
        return self._byte_stride

    def _decode(self, raw) -> float:
        if self._encoding is ComponentType.FLOAT:
            return raw
        if not self._normalized:
            return float(raw)
        value = raw / _NORMALIZATION_DIVISORS[self._encoding]
        if self._encoding in _SIGNED_TYPES:
            return max(value, -1.0)
        return value

    def _encode(self, value: float):
        value = float(value)
        if self._encoding is ComponentType.FLOAT:
            return value
        if self._normalized:
            value = value * _NORMALIZATION_DIVISORS[self._encoding]
        return _to_integer_code(value, self._encoding)

    def get(self, row: int, component: int) -> float:
        offset = row * self._byte_stride + component * self._encoded_len
        return self._decode(self._struct.unpack_from(self._data, offset)[0])

    def set(self, row: int, component: int, value: float) -> None:
        offset = row * self._byte_stride + component * self._encoded_len
        self._struct.pack_into(self._data, offset, self._encode(value))


class _ArrayBase:
    """Common sequence behaviour shared by every typed array."""

    dimensions = 1

    def __len__(self) -> int:
        raise NotImplementedError

    def _get(self, index: int):
        raise NotImplementedError

    def _set(self, index: int, value) -> None:
        raise NotImplementedError

    def _check_index(self, index: int) -> int:
        count = len(self)
        if index < 0:
            index += count
        if index < 0 or index >= count:
            raise IndexError(f"index {index} out of range for {type(self).__name__} of {count} items")
        return index

    def __getitem__(self, index: int):
        return self._get(self._check_index(index))

    def __setitem__(self, index: int, value) -> None:
        self._set(self._check_index(index), value)

    def __iter__(self) -> Iterator:
        for i in range(len(self)):
            yield self._get(i)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} count={len(self)}>"

    def _components(self, item) -> Tuple[float, ...]:
        return (item,) if self.dimensions == 1 else tuple(item)

    def to_list(self) -> list:
        return list(self)

    def copy_to(self, dst, offset: int = 0) -> None:
        """Copy every element into ``dst`` starting at ``offset``, one index at a time."""
        if dst is None:
            raise ModelUsageError("dst must not be None")
        if len(dst) - offset < len(self):
            raise ModelUsageError(
                f"destination has room for {len(dst) - offset} items, {len(self)} required")
        for i in range(len(self)):
            dst[offset + i] = self._get(i)

    def to_numpy(self, dtype=np.float64) -> np.ndarray:
        shape = (len(self),) if self.dimensions == 1 else (len(self), self.dimensions)
        result = np.empty(shape, dtype=dtype)
        self.copy_to(result)
        return result

    def get_bounds(self):
        """Return ``(min, max)`` by a full linear scan.

        Scalars give floats, vectors give tuples. NaN values never win a
        comparison.
        """
        mins, maxs = _compute_bounds((self._components(v) for v in self), self.dimensions)
        if self.dimensions == 1:
            return mins[0], maxs[0]
        return tuple(mins), tuple(maxs)

    def as_vector4(self) -> "Vector4View":
        if self.dimensions > 4:
            raise ModelUsageError(f"{type(self).__name__} cannot be viewed as Vector4")
        return Vector4View(self)


class EncodedArray(_ArrayBase):
    """Strided, possibly normalized view of encoded numeric elements.

    ``byte_stride`` of 0 means tightly packed. ``count`` caps the number
    of elements exposed; when None the view exposes whatever fits.
    """

    def __init__(self, data: BytesLike, byte_offset: int = 0, count: Optional[int] = None,
                 byte_stride: int = 0, encoding: ComponentType = ComponentType.FLOAT,
                 normalized: bool = False):
        if data is None:
            raise ModelUsageError("data must not be None")
        self._accessor = _FloatingAccessor(data, byte_offset, count, byte_stride,
                                           self.dimensions, encoding, normalized)

    def __len__(self) -> int:
        return self._accessor.count

    @property
    def encoding(self) -> ComponentType:
        return self._accessor.encoding

    @property
    def normalized(self) -> bool:
        return self._accessor.normalized

    @property
    def byte_stride(self) -> int:
        return self._accessor.byte_stride

    def _get(self, index: int):
        a = self._accessor
        return tuple(a.get(index, c) for c in range(self.dimensions))

    def _set(self, index: int, value) -> None:
        value = tuple(value)
        if len(value) != self.dimensions:
            raise ModelUsageError(
                f"{type(self).__name__} expects {self.dimensions} components, got {len(value)}")
        for c, v in enumerate(value):
            self._accessor.set(index, c, v)


class ScalarArray(EncodedArray):
    dimensions = 1

    def _get(self, index: int) -> float:
        return self._accessor.get(index, 0)

    def _set(self, index: int, value: float) -> None:
        self._accessor.set(index, 0, value)


class Vector2Array(EncodedArray):
    dimensions = 2


class Vector3Array(EncodedArray):
    dimensions = 3


class Vector4Array(EncodedArray):
    dimensions = 4

    def as_vector4(self) -> "Vector4Array":
        return self


class QuaternionArray(EncodedArray):
    """Vector4-shaped elements read as ``(x, y, z, w)``."""

    dimensions = 4


class Matrix4x4Array(EncodedArray):
    """16-component elements in column-major order, as stored by glTF."""

    dimensions = 16


class Vector4View(_ArrayBase):
    """Expose a 1..4 component array as ``(x, y, z, w)`` tuples, zero padded.

    Writes only store the components the source actually has.
    """

    dimensions = 4

    def __init__(self, source: _ArrayBase):
        self._source = source
        self._width = source.dimensions

    def __len__(self) -> int:
        return len(self._source)

    def _get(self, index: int) -> Tuple[float, float, float, float]:
        value = self._source[index]
        if self._width == 1:
            return (value, 0.0, 0.0, 0.0)
        value = tuple(value)
        return value + (0.0,) * (4 - self._width)

    def _set(self, index: int, value) -> None:
        value = tuple(value)
        if len(value) != 4:
            raise ModelUsageError(f"Vector4View expects 4 components, got {len(value)}")
        if self._width == 1:
            self._source[index] = value[0]
        else:
            self._source[index] = value[:self._width]

    def as_vector4(self) -> "Vector4View":
        return self


class IntegerArray(_ArrayBase):
    """Tightly packed unsigned integers: triangle indices and sparse index lists."""

    dimensions = 1

    def __init__(self, data: BytesLike, byte_offset: int = 0, count: Optional[int] = None,
                 encoding: IndexEncoding = IndexEncoding.UNSIGNED_INT):
        if data is None:
            raise ModelUsageError("data must not be None")
        try:
            encoding = IndexEncoding(encoding)
        except ValueError:
            raise ModelUsageError(f"unsupported index encoding: {encoding}") from None
        if byte_offset < 0:
            raise ModelUsageError(f"byte_offset must not be negative: {byte_offset}")

        self._data = _as_byte_view(data)[byte_offset:]
        self._encoding = encoding
        self._struct = _COMPONENT_STRUCTS[encoding.to_component_type()]
        self._stride = encoding.byte_length
        self._count = len(self._data) // self._stride
        if count is not None:
            self._count = max(0, min(count, self._count))

    def __len__(self) -> int:
        return self._count

    @property
    def encoding(self) -> IndexEncoding:
        return self._encoding

    def _get(self, index: int) -> int:
        return self._struct.unpack_from(self._data, index * self._stride)[0]

    def _set(self, index: int, value: int) -> None:
        low, high = _INTEGER_RANGES[self._encoding.to_component_type()]
        if value < low or value > high:
            raise ModelUsageError(f"{value} does not fit in {self._encoding.name}")
        self._struct.pack_into(self._data, index * self._stride, int(value))

    def to_numpy(self, dtype=np.uint32) -> np.ndarray:
        return super().to_numpy(dtype=dtype)

    def get_bounds(self) -> Tuple[int, int]:
        if len(self) == 0:
            raise ModelUsageError("cannot compute the bounds of an empty IntegerArray")
        return min(self), max(self)


class SparseArray(_ArrayBase):
    """A base array with a sparse set of index-addressed overrides.

    ``bottom`` holds the dense values, ``top`` the override values and
    ``mapping`` the logical index of each override row. The base array is
    never written through an override.
    """

    def __init__(self, bottom: _ArrayBase, top: _ArrayBase, mapping: IntegerArray):
        if bottom is None or top is None or mapping is None:
            raise ModelUsageError("sparse arrays require bottom, top and mapping arrays")
        if len(top) != len(mapping):
            raise ModelUsageError(
                f"sparse values ({len(top)}) and indices ({len(mapping)}) have different lengths")
        if top.dimensions != bottom.dimensions:
            raise ModelUsageError("sparse values and base values have different shapes")

        self._bottom = bottom
        self._top = top
        self.dimensions = bottom.dimensions
        self._mapping = {}
        for row in range(len(mapping)):
            self._mapping[mapping[row]] = row

    def __len__(self) -> int:
        return len(self._bottom)

    @property
    def bottom(self) -> _ArrayBase:
        return self._bottom

    @property
    def top(self) -> _ArrayBase:
        return self._top

    @property
    def overridden_indices(self) -> List[int]:
        return sorted(self._mapping)

    def _get(self, index: int):
        row = self._mapping.get(index)
        if row is None:
            return self._bottom[index]
        return self._top[row]

    def _set(self, index: int, value) -> None:
        row = self._mapping.get(index)
        if row is None:
            raise SparseWriteError(f"index {index} has no sparse override; writes are rejected")
        self._top[row] = value

    def to_numpy(self, dtype=None) -> np.ndarray:
        if dtype is None:
            dtype = np.uint32 if isinstance(self._bottom, IntegerArray) else np.float64
        return super().to_numpy(dtype=dtype)


def create_array(data: BytesLike, dimensions: int, byte_offset: int = 0,
                 count: Optional[int] = None, byte_stride: int = 0,
                 encoding: ComponentType = ComponentType.FLOAT,
                 normalized: bool = False) -> EncodedArray:
    """Create the array class matching ``dimensions`` (1, 2, 3, 4 or 16)."""
    cls = _ARRAYS_BY_DIMENSION.get(dimensions)
    if cls is None:
        raise ModelUsageError(f"no array type has {dimensions} components")
    return cls(data, byte_offset, count, byte_stride, encoding, normalized)


def pack_values(values: Sequence[Any], dimensions: int,
                encoding: ComponentType = ComponentType.FLOAT,
                normalized: bool = False) -> bytearray:
    """Encode ``values`` into a new tightly packed bytearray."""
    values = list(values)
    element_len = ComponentType(encoding).byte_length * dimensions
    data = bytearray(element_len * len(values))
    array = create_array(data, dimensions, encoding=encoding, normalized=normalized)
    for i, value in enumerate(values):
        array[i] = value
    return data


def pack_indices(values: Sequence[int],
                 encoding: IndexEncoding = IndexEncoding.UNSIGNED_INT) -> bytearray:
    values = list(values)
    data = bytearray(IndexEncoding(encoding).byte_length * len(values))
    array = IntegerArray(data, encoding=encoding)
    for i, value in enumerate(values):
        array[i] = value
    return data


_ARRAYS_BY_DIMENSION = {
    1: ScalarArray,
    2: Vector2Array,
    3: Vector3Array,
    4: Vector4Array,
    16: Matrix4x4Array,
}
