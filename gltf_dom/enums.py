# SPDX-License-Identifier: MIT
"""glTF schema enumerations and their binary properties."""

from enum import Enum, IntEnum


class ComponentType(IntEnum):
    """Encoding of a single accessor component."""

    BYTE = 5120
    UNSIGNED_BYTE = 5121
    SHORT = 5122
    UNSIGNED_SHORT = 5123
    UNSIGNED_INT = 5125
    FLOAT = 5126

    @property
    def byte_length(self) -> int:
        return _COMPONENT_BYTE_LENGTHS[self]

    @property
    def is_integer(self) -> bool:
        return self is not ComponentType.FLOAT


_COMPONENT_BYTE_LENGTHS = {
    ComponentType.BYTE: 1,
    ComponentType.UNSIGNED_BYTE: 1,
    ComponentType.SHORT: 2,
    ComponentType.UNSIGNED_SHORT: 2,
    ComponentType.UNSIGNED_INT: 4,
    ComponentType.FLOAT: 4,
}


class IndexEncoding(IntEnum):
    """Encodings allowed for vertex indices and sparse index lists."""

    UNSIGNED_BYTE = 5121
    UNSIGNED_SHORT = 5123
    UNSIGNED_INT = 5125

    @property
    def byte_length(self) -> int:
        return _COMPONENT_BYTE_LENGTHS[ComponentType(self.value)]

    def to_component_type(self) -> ComponentType:
        return ComponentType(self.value)


class ElementType(Enum):
    """Shape of a single accessor element."""

    SCALAR = "SCALAR"
    VEC2 = "VEC2"
    VEC3 = "VEC3"
    VEC4 = "VEC4"
    MAT2 = "MAT2"
    MAT3 = "MAT3"
    MAT4 = "MAT4"

    @property
    def dimensions(self) -> int:
        return _ELEMENT_DIMENSIONS[self]


_ELEMENT_DIMENSIONS = {
    ElementType.SCALAR: 1,
    ElementType.VEC2: 2,
    ElementType.VEC3: 3,
    ElementType.VEC4: 4,
    ElementType.MAT2: 4,
    ElementType.MAT3: 9,
    ElementType.MAT4: 16,
}


class BufferTarget(IntEnum):
    """Usage hint of a BufferView."""

    ARRAY_BUFFER = 34962          # GL_ARRAY_BUFFER
    ELEMENT_ARRAY_BUFFER = 34963  # GL_ELEMENT_ARRAY_BUFFER


class PrimitiveType(IntEnum):
    POINTS = 0
    LINES = 1
    LINE_LOOP = 2
    LINE_STRIP = 3
    TRIANGLES = 4
    TRIANGLE_STRIP = 5
    TRIANGLE_FAN = 6


class AlphaMode(Enum):
    OPAQUE = "OPAQUE"
    MASK = "MASK"
    BLEND = "BLEND"


class CameraType(Enum):
    PERSPECTIVE = "perspective"
    ORTHOGRAPHIC = "orthographic"


class AnimationInterpolation(Enum):
    LINEAR = "LINEAR"
    STEP = "STEP"
    CUBICSPLINE = "CUBICSPLINE"


class PropertyPath(Enum):
    TRANSLATION = "translation"
    ROTATION = "rotation"
    SCALE = "scale"
    WEIGHTS = "weights"
