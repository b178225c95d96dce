# SPDX-License-Identifier: MIT
"""Meshes and mesh primitives."""

from typing import Any, Dict, List, Optional, Tuple

from .accessors import Accessor
from .enums import ElementType, IndexEncoding, PrimitiveType
from .exceptions import ModelUsageError
from .logger import get_logger
from .properties import ExtraProperties, LogicalChildOfRoot

logger = get_logger(__name__)


class MeshPrimitive(ExtraProperties):
    """Geometry to be rendered with a single material."""

    def __init__(self, mesh: "Mesh"):
        super().__init__()
        self._mesh = mesh
        self._attributes: Dict[str, int] = {}
        self._indices: Optional[int] = None
        self._material: Optional[int] = None
        self.mode = PrimitiveType.TRIANGLES
        self._targets: List[Dict[str, int]] = []

    @property
    def logical_parent(self) -> "Mesh":
        return self._mesh

    @property
    def logical_index(self) -> int:
        return next(i for i, p in enumerate(self._mesh.primitives) if p is self)

    @property
    def _root(self):
        return self._mesh.logical_parent

    def __repr__(self) -> str:
        return f"<MeshPrimitive {self._mesh!r}.{self.logical_index}>"

    # -- vertex attributes --------------------------------------------------

    @property
    def vertex_attribute_names(self) -> List[str]:
        return list(self._attributes)

    @property
    def vertex_accessors(self) -> Dict[str, Accessor]:
        accessors = self._root.logical_accessors
        return {name: accessors[idx] for name, idx in self._attributes.items()}

    def get_vertex_accessor(self, name: str) -> Optional[Accessor]:
        idx = self._attributes.get(name)
        return None if idx is None else self._root.logical_accessors[idx]

    def set_vertex_accessor(self, name: str, accessor: Optional[Accessor]) -> None:
        if not name:
            raise ModelUsageError("attribute name must not be empty")
        if accessor is None:
            self._attributes.pop(name, None)
            return
        self._mesh._shares_logical_parent(accessor, "accessor")
        self._attributes[name] = accessor.logical_index

    @property
    def vertex_count(self) -> int:
        position = self.get_vertex_accessor("POSITION")
        return 0 if position is None else position.count

    # -- indices ------------------------------------------------------------

    def get_index_accessor(self) -> Optional[Accessor]:
        return self._root.logical_accessors.get(self._indices) if self._indices is not None else None

    def set_index_accessor(self, accessor: Optional[Accessor]) -> None:
        if accessor is None:
            self._indices = None
            return
        self._mesh._shares_logical_parent(accessor, "accessor")
        if accessor.element_type is not ElementType.SCALAR:
            raise ModelUsageError(f"index accessors must be SCALAR, {accessor!r} is {accessor.element_type.value}")
        self._indices = accessor.logical_index

    def get_indices(self) -> List[int]:
        """Vertex indices, implicit ``0..n-1`` when there is no index accessor."""
        accessor = self.get_index_accessor()
        if accessor is None:
            return list(range(self.vertex_count))
        return list(accessor.as_indices_array())

    def get_triangle_indices(self) -> List[Tuple[int, int, int]]:
        """Triangles for the TRIANGLES, TRIANGLE_STRIP and TRIANGLE_FAN modes."""
        indices = self.get_indices()
        mode = PrimitiveType(self.mode)
        if mode == PrimitiveType.TRIANGLES:
            return [tuple(indices[i:i + 3]) for i in range(0, len(indices) - 2, 3)]
        if mode == PrimitiveType.TRIANGLE_STRIP:
            result = []
            for i in range(len(indices) - 2):
                a, b, c = indices[i], indices[i + 1], indices[i + 2]
                result.append((a, b, c) if i % 2 == 0 else (b, a, c))
            return result
        if mode == PrimitiveType.TRIANGLE_FAN:
            return [(indices[0], indices[i], indices[i + 1]) for i in range(1, len(indices) - 1)]
        return []

    # -- material & morph targets -------------------------------------------

    @property
    def material(self):
        return self._root.logical_materials.get(self._material)

    @material.setter
    def material(self, value) -> None:
        if value is None:
            self._material = None
            return
        self._mesh._shares_logical_parent(value, "material")
        self._material = value.logical_index

    @property
    def morph_targets_count(self) -> int:
        return len(self._targets)

    def get_morph_target(self, index: int) -> Dict[str, Accessor]:
        accessors = self._root.logical_accessors
        return {name: accessors[idx] for name, idx in self._targets[index].items()}

    def add_morph_target(self, attributes: Dict[str, Accessor]) -> int:
        target = {}
        for name, accessor in attributes.items():
            self._mesh._shares_logical_parent(accessor, "accessor")
            target[name] = accessor.logical_index
        self._targets.append(target)
        return len(self._targets) - 1

    # -- validation ---------------------------------------------------------

    def _validate(self, result) -> None:
        root = self._root
        accessors = root.logical_accessors
        label = f"{self._mesh.target_label}.Primitive[{self.logical_index}]"

        counts = set()
        for name, idx in self._attributes.items():
            if not accessors.in_range(idx):
                result.add_invalid_reference(label, f"attribute {name} references invalid Accessor[{idx}]")
            else:
                counts.add(accessors[idx].count)
        if len(counts) > 1:
            result.add_invalid_value(label, f"vertex attributes have different counts: {sorted(counts)}")

        if self._indices is not None:
            if not accessors.in_range(self._indices):
                result.add_invalid_reference(label, f"references invalid Accessor[{self._indices}] as indices")
            else:
                accessor = accessors[self._indices]
                if accessor.type_name != ElementType.SCALAR.value:
                    result.add_invalid_value(label, "index accessor must be SCALAR")
                if accessor._component_type not in tuple(int(e) for e in IndexEncoding):
                    result.add_invalid_value(label, "index accessor must use an unsigned integer encoding")

        if self._material is not None and not root.logical_materials.in_range(self._material):
            result.add_invalid_reference(label, f"references invalid Material[{self._material}]")

        if self.mode not in tuple(int(m) for m in PrimitiveType):
            result.add_invalid_value(label, f"has unknown mode {self.mode}")

        for t, target in enumerate(self._targets):
            for name, idx in target.items():
                if not accessors.in_range(idx):
                    result.add_invalid_reference(label, f"morph target {t} {name} references invalid Accessor[{idx}]")

    # -- serialization ------------------------------------------------------

    def _serialize(self) -> Dict[str, Any]:
        data = super()._serialize()
        data["attributes"] = dict(self._attributes)
        if self._indices is not None:
            data["indices"] = self._indices
        if self._material is not None:
            data["material"] = self._material
        if self.mode != PrimitiveType.TRIANGLES:
            data["mode"] = int(self.mode)
        if self._targets:
            data["targets"] = [dict(t) for t in self._targets]
        return data

    def _deserialize(self, data: Dict[str, Any], registry) -> None:
        super()._deserialize(data, registry)
        self._attributes = dict(data.get("attributes", {}))
        self._indices = data.get("indices")
        self._material = data.get("material")
        self.mode = data.get("mode", PrimitiveType.TRIANGLES)
        self._targets = [dict(t) for t in data.get("targets", [])]


class Mesh(LogicalChildOfRoot):
    """A set of primitives rendered together."""

    def __init__(self, name: Optional[str] = None):
        super().__init__(name)
        self._primitives: List[MeshPrimitive] = []
        self.weights: Optional[List[float]] = None

    @property
    def target_label(self) -> str:
        return f"Mesh[{self.logical_index}]"

    @property
    def primitives(self) -> List[MeshPrimitive]:
        return list(self._primitives)

    @property
    def morph_weights(self) -> Optional[List[float]]:
        return None if self.weights is None else list(self.weights)

    def create_primitive(self) -> MeshPrimitive:
        primitive = MeshPrimitive(self)
        self._primitives.append(primitive)
        return primitive

    def _validate(self, result) -> None:
        if not self._primitives:
            result.add_invalid_value(self, "has no primitives")

        for primitive in self._primitives:
            primitive._validate(result)

        if self.weights is not None:
            for primitive in self._primitives:
                if primitive.morph_targets_count != len(self.weights):
                    result.add_invalid_value(
                        self, f"has {len(self.weights)} weights but a primitive has "
                              f"{primitive.morph_targets_count} morph targets")
                    break

    def _serialize(self) -> Dict[str, Any]:
        data = super()._serialize()
        data["primitives"] = [p._serialize() for p in self._primitives]
        if self.weights is not None:
            data["weights"] = list(self.weights)
        return data

    def _deserialize(self, data: Dict[str, Any], registry) -> None:
        super()._deserialize(data, registry)
        self._primitives = []
        for item in data.get("primitives", []):
            primitive = MeshPrimitive(self)
            primitive._deserialize(item, registry)
            self._primitives.append(primitive)
        self.weights = data.get("weights")
