# SPDX-License-Identifier: MIT
"""Skins: joint lists and inverse bind matrices."""

from typing import Any, Dict, List, Optional, Sequence

from .enums import ComponentType, ElementType
from .exceptions import ModelUsageError
from .logger import get_logger
from .properties import LogicalChildOfRoot

logger = get_logger(__name__)


class Skin(LogicalChildOfRoot):
    """Joints used to deform a skinned mesh."""

    def __init__(self, name: Optional[str] = None):
        super().__init__(name)
        self._joints: List[int] = []
        self._skeleton: Optional[int] = None
        self._inverse_bind_matrices: Optional[int] = None

    @property
    def joints_count(self) -> int:
        return len(self._joints)

    @property
    def joint_indices(self):
        return tuple(self._joints)

    @property
    def joints(self):
        nodes = self.logical_parent.logical_nodes
        return [nodes[idx] for idx in self._joints]

    @property
    def skeleton(self):
        return self.logical_parent.logical_nodes.get(self._skeleton)

    @skeleton.setter
    def skeleton(self, node) -> None:
        if node is None:
            self._skeleton = None
            return
        self._shares_logical_parent(node, "node")
        self._skeleton = node.logical_index

    @property
    def inverse_bind_matrices(self):
        """The MAT4 accessor, or None when every matrix is the identity."""
        return self.logical_parent.logical_accessors.get(self._inverse_bind_matrices)

    def contains_node(self, node) -> bool:
        self._shares_logical_parent(node, "node")
        return node.logical_index in self._joints

    def get_joint(self, index: int):
        """A joint node and its inverse bind matrix (column-major, 16 floats)."""
        node = self.logical_parent.logical_nodes[self._joints[index]]
        accessor = self.inverse_bind_matrices
        if accessor is None:
            matrix = (1.0, 0.0, 0.0, 0.0, 0.0, 1.0, 0.0, 0.0,
                      0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 0.0, 1.0)
        else:
            matrix = accessor.as_matrix4x4_array()[index]
        return node, matrix

    def bind_joints(self, joints: Sequence, inverse_bind_matrices=None) -> None:
        """Set the joint nodes and, optionally, their MAT4 FLOAT accessor."""
        for node in joints:
            self._shares_logical_parent(node, "joint")
        if inverse_bind_matrices is not None:
            self._shares_logical_parent(inverse_bind_matrices, "inverse_bind_matrices")
            if inverse_bind_matrices.element_type is not ElementType.MAT4:
                raise ModelUsageError("inverse bind matrices must be a MAT4 accessor")
            if inverse_bind_matrices.count < len(joints):
                raise ModelUsageError(
                    f"{len(joints)} joints need as many matrices, got {inverse_bind_matrices.count}")
        self._joints = [node.logical_index for node in joints]
        self._inverse_bind_matrices = None if inverse_bind_matrices is None else inverse_bind_matrices.logical_index

    def _validate(self, result) -> None:
        root = self.logical_parent
        nodes = root.logical_nodes

        if not self._joints:
            result.add_invalid_value(self, "has no joints")
        for idx in self._joints:
            if not nodes.in_range(idx):
                result.add_invalid_reference(self, f"references invalid Node[{idx}] as joint")
        if len(set(self._joints)) != len(self._joints):
            result.add_duplicate_reference(self, "has duplicated joints")

        if self._skeleton is not None and not nodes.in_range(self._skeleton):
            result.add_invalid_reference(self, f"references invalid Node[{self._skeleton}] as skeleton")

        if self._inverse_bind_matrices is not None:
            accessors = root.logical_accessors
            if not accessors.in_range(self._inverse_bind_matrices):
                result.add_invalid_reference(self, f"references invalid Accessor[{self._inverse_bind_matrices}]")
                return
            accessor = accessors[self._inverse_bind_matrices]
            if accessor.type_name != ElementType.MAT4.value or accessor._component_type != ComponentType.FLOAT:
                result.add_invalid_value(self, "inverseBindMatrices must be a MAT4 FLOAT accessor")
            elif accessor.count < len(self._joints):
                result.add_invalid_value(
                    self, f"has {len(self._joints)} joints but only {accessor.count} inverse bind matrices")

    def _serialize(self) -> Dict[str, Any]:
        data = super()._serialize()
        if self._inverse_bind_matrices is not None:
            data["inverseBindMatrices"] = self._inverse_bind_matrices
        if self._skeleton is not None:
            data["skeleton"] = self._skeleton
        data["joints"] = list(self._joints)
        return data

    def _deserialize(self, data: Dict[str, Any], registry) -> None:
        super()._deserialize(data, registry)
        self._inverse_bind_matrices = data.get("inverseBindMatrices")
        self._skeleton = data.get("skeleton")
        self._joints = list(data.get("joints", []))


def find_skins_using_joint(node) -> List[Skin]:
    """Skins that list ``node`` among their joints."""
    index = node.logical_index
    return [s for s in node.logical_parent.logical_skins if index in s._joints]
