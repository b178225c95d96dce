# SPDX-License-Identifier: MIT
"""Animations: samplers and channels.

Only the data model is provided; curves are not evaluated.
"""

from typing import Any, Dict, List, Optional

from .enums import AnimationInterpolation, ElementType, PropertyPath
from .exceptions import ModelUsageError
from .properties import ExtraProperties, LogicalChildOfRoot


class AnimationSampler(ExtraProperties):
    """Keyframe input accessor, output accessor and interpolation."""

    def __init__(self, input: Optional[int] = None, output: Optional[int] = None,
                 interpolation: AnimationInterpolation = AnimationInterpolation.LINEAR):
        super().__init__()
        self.input = input
        self.output = output
        self.interpolation = interpolation

    def _serialize(self) -> Dict[str, Any]:
        data = super()._serialize()
        data["input"] = self.input
        data["output"] = self.output
        if self.interpolation != AnimationInterpolation.LINEAR:
            data["interpolation"] = AnimationInterpolation(self.interpolation).value
        return data

    def _deserialize(self, data: Dict[str, Any], registry) -> None:
        super()._deserialize(data, registry)
        self.input = data.get("input")
        self.output = data.get("output")
        self.interpolation = data.get("interpolation", AnimationInterpolation.LINEAR.value)


class AnimationChannel(ExtraProperties):
    """Binds a sampler to one property of one node."""

    def __init__(self, sampler: Optional[int] = None, node: Optional[int] = None,
                 path: PropertyPath = PropertyPath.TRANSLATION):
        super().__init__()
        self.sampler = sampler
        self.node = node
        self.path = path

    def _serialize(self) -> Dict[str, Any]:
        data = super()._serialize()
        data["sampler"] = self.sampler
        target: Dict[str, Any] = {"path": getattr(self.path, "value", self.path)}
        if self.node is not None:
            target["node"] = self.node
        data["target"] = target
        return data

    def _deserialize(self, data: Dict[str, Any], registry) -> None:
        super()._deserialize(data, registry)
        target = data.get("target") or {}
        self.sampler = data.get("sampler")
        self.node = target.get("node")
        self.path = target.get("path")


class Animation(LogicalChildOfRoot):
    def __init__(self, name: Optional[str] = None):
        super().__init__(name)
        self.samplers: List[AnimationSampler] = []
        self.channels: List[AnimationChannel] = []

    def create_sampler(self, input_accessor, output_accessor,
                       interpolation: AnimationInterpolation = AnimationInterpolation.LINEAR) -> int:
        self._shares_logical_parent(input_accessor, "input_accessor")
        self._shares_logical_parent(output_accessor, "output_accessor")
        if input_accessor.element_type is not ElementType.SCALAR:
            raise ModelUsageError("animation input must be a SCALAR accessor")
        self.samplers.append(AnimationSampler(input_accessor.logical_index, output_accessor.logical_index,
                                              AnimationInterpolation(interpolation)))
        return len(self.samplers) - 1

    def create_channel(self, sampler_index: int, node, path: PropertyPath) -> AnimationChannel:
        self._shares_logical_parent(node, "node")
        if not 0 <= sampler_index < len(self.samplers):
            raise ModelUsageError(f"no sampler at index {sampler_index}")
        channel = AnimationChannel(sampler_index, node.logical_index, PropertyPath(path))
        self.channels.append(channel)
        return channel

    def find_channels(self, node) -> List[AnimationChannel]:
        return [c for c in self.channels if c.node == node.logical_index]

    def _validate(self, result) -> None:
        root = self.logical_parent
        accessors = root.logical_accessors

        for i, sampler in enumerate(self.samplers):
            for label, idx in (("input", sampler.input), ("output", sampler.output)):
                if not accessors.in_range(idx):
                    result.add_invalid_reference(self, f"sampler {i} {label} references invalid Accessor[{idx}]")
            if getattr(sampler.interpolation, "value", sampler.interpolation) not in \
                    [m.value for m in AnimationInterpolation]:
                result.add_invalid_value(self, f"sampler {i} has unknown interpolation {sampler.interpolation!r}")

        for i, channel in enumerate(self.channels):
            if not (isinstance(channel.sampler, int) and 0 <= channel.sampler < len(self.samplers)):
                result.add_invalid_reference(self, f"channel {i} references invalid sampler {channel.sampler}")
            if channel.node is not None and not root.logical_nodes.in_range(channel.node):
                result.add_invalid_reference(self, f"channel {i} references invalid Node[{channel.node}]")
            if getattr(channel.path, "value", channel.path) not in [p.value for p in PropertyPath]:
                result.add_invalid_value(self, f"channel {i} has unknown path {channel.path!r}")

    def _serialize(self) -> Dict[str, Any]:
        data = super()._serialize()
        data["channels"] = [c._serialize() for c in self.channels]
        data["samplers"] = [s._serialize() for s in self.samplers]
        return data

    def _deserialize(self, data: Dict[str, Any], registry) -> None:
        super()._deserialize(data, registry)
        self.samplers = []
        for item in data.get("samplers", []):
            sampler = AnimationSampler()
            sampler._deserialize(item, registry)
            self.samplers.append(sampler)
        self.channels = []
        for item in data.get("channels", []):
            channel = AnimationChannel()
            channel._deserialize(item, registry)
            self.channels.append(channel)
