# SPDX-License-Identifier: MIT
"""Visual hierarchy: nodes and scenes.

Nodes only store the indices of their children. The parent of a node is
found through a child -> parents index kept by the ModelRoot, rebuilt
whenever a child list changes.
"""

import math
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from .exceptions import ModelUsageError
from .logger import get_logger
from .properties import LogicalChildOfRoot

logger = get_logger(__name__)


class Node(LogicalChildOfRoot):
    """A node of the visual hierarchy."""

    def __init__(self, name: Optional[str] = None):
        super().__init__(name)
        self._children: List[int] = []
        self._mesh: Optional[int] = None
        self._skin: Optional[int] = None
        self._camera: Optional[int] = None
        self.matrix: Optional[List[float]] = None
        self.rotation: Optional[List[float]] = None
        self.scale: Optional[List[float]] = None
        self.translation: Optional[List[float]] = None
        self.weights: Optional[List[float]] = None

    # -- hierarchy ----------------------------------------------------------

    @property
    def children_indices(self) -> Tuple[int, ...]:
        return tuple(self._children)

    @property
    def visual_parent(self) -> Optional["Node"]:
        return self.logical_parent._find_visual_parent_node(self)

    @property
    def visual_children(self) -> List["Node"]:
        nodes = self.logical_parent.logical_nodes
        return [nodes[idx] for idx in self._children]

    @property
    def visual_root(self) -> "Node":
        """Topmost ancestor; stops after as many hops as there are nodes."""
        root = self
        for _ in range(len(self.logical_parent.logical_nodes)):
            parent = root.visual_parent
            if parent is None or parent is self:
                break
            root = parent
        return root

    @property
    def visual_scene(self) -> Optional["Scene"]:
        root_index = self.visual_root.logical_index
        for scene in self.logical_parent.logical_scenes:
            if root_index in scene._nodes:
                return scene
        return None

    @property
    def is_skin_joint(self) -> bool:
        return self.logical_parent._check_node_is_joint(self)

    def _hierarchy_changed(self) -> None:
        if self.logical_parent is not None:
            self.logical_parent._invalidate_hierarchy()

    def create_node(self, name: Optional[str] = None) -> "Node":
        """Create a new logical node and attach it as a child of this one."""
        node = self.logical_parent.create_logical_node(name)
        self.add_child(node)
        return node

    def add_child(self, node: "Node") -> None:
        self._shares_logical_parent(node, "node")
        if node is self:
            raise ModelUsageError(f"{self!r} cannot be its own child")
        if node.visual_parent is not None or node.logical_parent._is_scene_root(node):
            raise ModelUsageError(f"{node!r} already has a visual parent")
        self._children.append(node.logical_index)
        self._hierarchy_changed()

    def remove_child(self, node: "Node") -> None:
        self._shares_logical_parent(node, "node")
        if node.logical_index not in self._children:
            raise ModelUsageError(f"{node!r} is not a child of {self!r}")
        self._children.remove(node.logical_index)
        self._hierarchy_changed()

    def _set_children_indices(self, indices: Sequence[int]) -> None:
        """Overwrite the raw child list without any check."""
        self._children = list(indices)
        self._hierarchy_changed()

    def find_node(self, name: str) -> Optional["Node"]:
        return next((n for n in self.visual_children if n.name == name), None)

    def contains_visual_node(self, node: "Node", recursive: bool = False) -> bool:
        self._shares_logical_parent(node, "node")
        if not recursive:
            return node.logical_index in self._children
        return any(n is node for n in flatten(self))

    # -- content ------------------------------------------------------------

    @property
    def mesh(self):
        return self.logical_parent.logical_meshes.get(self._mesh)

    @mesh.setter
    def mesh(self, value) -> None:
        if value is None:
            self._mesh = None
            return
        self._shares_logical_parent(value, "mesh")
        self._mesh = value.logical_index

    @property
    def skin(self):
        return self.logical_parent.logical_skins.get(self._skin)

    @skin.setter
    def skin(self, value) -> None:
        if value is None:
            self._skin = None
            return
        self._shares_logical_parent(value, "skin")
        self._skin = value.logical_index

    @property
    def camera(self):
        return self.logical_parent.logical_cameras.get(self._camera)

    @camera.setter
    def camera(self, value) -> None:
        if value is None:
            self._camera = None
            return
        self._shares_logical_parent(value, "camera")
        self._camera = value.logical_index

    @property
    def morph_weights(self) -> Optional[List[float]]:
        if self.weights is not None:
            return list(self.weights)
        mesh = self.mesh
        return None if mesh is None else mesh.morph_weights

    def set_local_transform(self, translation=None, rotation=None, scale=None) -> None:
        """Use TRS components; clears any matrix."""
        self.matrix = None
        self.translation = None if translation is None else list(translation)
        self.rotation = None if rotation is None else list(rotation)
        self.scale = None if scale is None else list(scale)

    def set_local_matrix(self, matrix: Sequence[float]) -> None:
        """Use a column-major 4x4 matrix; clears TRS components."""
        matrix = list(matrix)
        if len(matrix) != 16:
            raise ModelUsageError(f"matrix needs 16 values, got {len(matrix)}")
        self.matrix = matrix
        self.translation = self.rotation = self.scale = None

    # -- validation ---------------------------------------------------------

    def _validate_references(self, result) -> None:
        root = self.logical_parent
        if self._mesh is not None and not root.logical_meshes.in_range(self._mesh):
            result.add_invalid_reference(self, f"references invalid Mesh[{self._mesh}]")
        if self._skin is not None and not root.logical_skins.in_range(self._skin):
            result.add_invalid_reference(self, f"references invalid Skin[{self._skin}]")
        if self._camera is not None and not root.logical_cameras.in_range(self._camera):
            result.add_invalid_reference(self, f"references invalid Camera[{self._camera}]")

    def _validate_hierarchy(self, result) -> None:
        root = self.logical_parent

        # check out of range indices
        for idx in self._children:
            if not root.logical_nodes.in_range(idx):
                result.add_invalid_reference(self, f"references invalid Node[{idx}]")

        # check duplicated indices
        if len(set(self._children)) != len(self._children):
            result.add_duplicate_reference(self, "has duplicated node references")

        # a node can have at most one parent
        parents = root._parents().get(self.logical_index, [])
        if len(parents) > 1:
            listed = ", ".join(f"Node[{p}]" for p in parents)
            result.add_duplicate_reference(self, f"is a child of more than one node: {listed}")

        # check self references; a self reference is also the shortest cycle
        if self.logical_index in self._children:
            result.add_self_reference(self, "has self references")

        # check circular references through every parent edge; one report per cycle,
        # against its lowest member
        if root._cycles().get(self.logical_index) == self.logical_index:
            result.add_circular_reference(self, "has a circular reference")

    def _validate_transform(self, result) -> None:
        if self.matrix is not None and any(v is not None for v in (self.translation, self.rotation, self.scale)):
            result.add_invalid_value(self, "defines both a matrix and TRS components")

        expected = (("matrix", self.matrix, 16), ("translation", self.translation, 3),
                    ("rotation", self.rotation, 4), ("scale", self.scale, 3))
        for label, values, size in expected:
            if values is None:
                continue
            if len(values) != size:
                result.add_invalid_value(self, f"{label} has {len(values)} values, expected {size}")
            elif not all(isinstance(v, (int, float)) and math.isfinite(v) for v in values):
                result.add_invalid_value(self, f"{label} has non finite values")

    # -- serialization ------------------------------------------------------

    def _serialize(self) -> Dict[str, Any]:
        data = super()._serialize()
        if self._camera is not None:
            data["camera"] = self._camera
        if self._children:
            data["children"] = list(self._children)
        if self._skin is not None:
            data["skin"] = self._skin
        if self.matrix is not None:
            data["matrix"] = list(self.matrix)
        if self._mesh is not None:
            data["mesh"] = self._mesh
        if self.rotation is not None:
            data["rotation"] = list(self.rotation)
        if self.scale is not None:
            data["scale"] = list(self.scale)
        if self.translation is not None:
            data["translation"] = list(self.translation)
        if self.weights is not None:
            data["weights"] = list(self.weights)
        return data

    def _deserialize(self, data: Dict[str, Any], registry) -> None:
        super()._deserialize(data, registry)
        self._camera = data.get("camera")
        self._children = list(data.get("children", []))
        self._skin = data.get("skin")
        self.matrix = data.get("matrix")
        self._mesh = data.get("mesh")
        self.rotation = data.get("rotation")
        self.scale = data.get("scale")
        self.translation = data.get("translation")
        self.weights = data.get("weights")


class Scene(LogicalChildOfRoot):
    """A set of root nodes."""

    def __init__(self, name: Optional[str] = None):
        super().__init__(name)
        self._nodes: List[int] = []

    @property
    def root_indices(self) -> Tuple[int, ...]:
        return tuple(self._nodes)

    @property
    def visual_children(self) -> List[Node]:
        nodes = self.logical_parent.logical_nodes
        return [nodes[idx] for idx in self._nodes]

    def create_node(self, name: Optional[str] = None) -> Node:
        node = self.logical_parent.create_logical_node(name)
        self.add_visual_child(node)
        return node

    def add_visual_child(self, node: Node) -> None:
        self._shares_logical_parent(node, "node")
        if node.visual_parent is not None:
            raise ModelUsageError(f"{node!r} is already a child of another node")
        if node.logical_index in self._nodes:
            raise ModelUsageError(f"{node!r} is already a root of {self!r}")
        self._nodes.append(node.logical_index)
        self.logical_parent._invalidate_hierarchy()

    def remove_visual_child(self, node: Node) -> None:
        self._shares_logical_parent(node, "node")
        if node.logical_index not in self._nodes:
            raise ModelUsageError(f"{node!r} is not a root of {self!r}")
        self._nodes.remove(node.logical_index)
        self.logical_parent._invalidate_hierarchy()

    def _set_root_indices(self, indices: Sequence[int]) -> None:
        self._nodes = list(indices)
        self.logical_parent._invalidate_hierarchy()

    def find_node(self, name: str) -> Optional[Node]:
        return next((n for n in self.visual_children if n.name == name), None)

    def contains_visual_node(self, node: Node, recursive: bool = False) -> bool:
        self._shares_logical_parent(node, "node")
        if node.logical_index in self._nodes:
            return True
        if not recursive:
            return False
        return any(n is node for n in flatten(self))

    def _validate_hierarchy(self, result) -> None:
        root = self.logical_parent

        # check out of range indices
        for idx in self._nodes:
            if not root.logical_nodes.in_range(idx):
                result.add_invalid_reference(self, f"references invalid Node[{idx}]")

        # check duplicated indices
        if len(set(self._nodes)) != len(self._nodes):
            result.add_duplicate_reference(self, "has duplicated node references")

    def _serialize(self) -> Dict[str, Any]:
        data = super()._serialize()
        if self._nodes:
            data["nodes"] = list(self._nodes)
        return data

    def _deserialize(self, data: Dict[str, Any], registry) -> None:
        super()._deserialize(data, registry)
        self._nodes = list(data.get("nodes", []))


def flatten(container) -> Iterator[Node]:
    """Depth-first walk of a Scene or Node; each node is visited once."""
    nodes = container.logical_parent.logical_nodes
    seen = set()
    stack = list(reversed(container._nodes if isinstance(container, Scene) else [container.logical_index]))
    while stack:
        idx = stack.pop()
        if idx in seen or not nodes.in_range(idx):
            continue
        seen.add(idx)
        node = nodes[idx]
        yield node
        stack.extend(reversed(node._children))


def find_nodes_using_mesh(mesh) -> List[Node]:
    if mesh is None:
        return []
    return [n for n in mesh.logical_parent.logical_nodes if n._mesh == mesh.logical_index]


def find_nodes_using_skin(skin) -> List[Node]:
    if skin is None:
        return []
    return [n for n in skin.logical_parent.logical_nodes if n._skin == skin.logical_index]
