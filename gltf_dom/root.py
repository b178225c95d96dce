# SPDX-License-Identifier: MIT
"""The document root: owns every logical collection of a glTF model."""

from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from .accessors import Accessor
from .animations import Animation
from .buffers import Buffer, BufferView, StaticBufferBuilder
from .cameras import Camera
from .enums import BufferTarget
from .exceptions import ModelUsageError, StructuralReadError
from .extensions import ExtensionRegistry, default_registry
from .logger import get_logger
from .materials import Image, Material, Texture, TextureSampler
from .meshes import Mesh
from .properties import ChildrenCollection, ExtraProperties
from .scene import Node, Scene
from .skins import Skin
from .validation import ValidationResult, validate_model

logger = get_logger(__name__)

GENERATOR = "gltf_dom"


def _cycle_members(graph: List[List[int]]) -> Dict[int, int]:
    """Map every node of a multi-node strongly connected component to its lowest index.

    Iterative Tarjan walk over ``graph`` (node index -> child indices), linear in
    nodes plus edges.
    """
    order: Dict[int, int] = {}
    low: Dict[int, int] = {}
    stack: List[int] = []
    on_stack = set()
    members: Dict[int, int] = {}

    for start in range(len(graph)):
        if start in order:
            continue
        work = [(start, 0)]
        while work:
            node, edge = work.pop()
            if edge == 0:
                order[node] = low[node] = len(order)
                stack.append(node)
                on_stack.add(node)
            if edge < len(graph[node]):
                child = graph[node][edge]
                work.append((node, edge + 1))
                if child not in order:
                    work.append((child, 0))
                elif child in on_stack:
                    low[node] = min(low[node], order[child])
                continue

            if low[node] == order[node]:
                component = []
                while True:
                    member = stack.pop()
                    on_stack.discard(member)
                    component.append(member)
                    if member == node:
                        break
                if len(component) > 1:
                    lowest = min(component)
                    for member in component:
                        members[member] = lowest
            if work:
                parent = work[-1][0]
                low[parent] = min(low[parent], low[node])
    return members


class Asset(ExtraProperties):
    """Metadata about the glTF asset."""

    def __init__(self, version: Optional[str] = "2.0", generator: Optional[str] = GENERATOR):
        super().__init__()
        self.version = version
        self.generator = generator
        self.copyright: Optional[str] = None
        self.min_version: Optional[str] = None

    def _serialize(self) -> Dict[str, Any]:
        data = super()._serialize()
        if self.copyright is not None:
            data["copyright"] = self.copyright
        if self.generator is not None:
            data["generator"] = self.generator
        data["version"] = self.version
        if self.min_version is not None:
            data["minVersion"] = self.min_version
        return data

    def _deserialize(self, data: Dict[str, Any], registry) -> None:
        super()._deserialize(data, registry)
        self.copyright = data.get("copyright")
        self.generator = data.get("generator")
        self.version = data.get("version")
        self.min_version = data.get("minVersion")


# json key -> (attribute, class), in the order collections are written
_COLLECTIONS: Tuple[Tuple[str, str, type], ...] = (
    ("accessors", "logical_accessors", Accessor),
    ("animations", "logical_animations", Animation),
    ("buffers", "logical_buffers", Buffer),
    ("bufferViews", "logical_buffer_views", BufferView),
    ("cameras", "logical_cameras", Camera),
    ("images", "logical_images", Image),
    ("materials", "logical_materials", Material),
    ("meshes", "logical_meshes", Mesh),
    ("nodes", "logical_nodes", Node),
    ("samplers", "logical_samplers", TextureSampler),
    ("scenes", "logical_scenes", Scene),
    ("skins", "logical_skins", Skin),
    ("textures", "logical_textures", Texture),
)


class ModelRoot(ExtraProperties):
    """An in-memory glTF document.

    Every cross reference between children is an index into one of the
    ``logical_*`` collections, exactly as in the JSON document.
    """

    def __init__(self, registry: Optional[ExtensionRegistry] = None):
        super().__init__()
        self._registry = registry if registry is not None else default_registry()
        self.asset: Optional[Asset] = Asset()
        self._extensions_required: List[str] = []
        self._default_scene: Optional[int] = None
        self._parent_cache: Optional[Dict[int, List[int]]] = None
        self._cycle_cache: Optional[Dict[int, int]] = None
        self.validation_result: Optional[ValidationResult] = None

        self.logical_accessors: ChildrenCollection[Accessor] = ChildrenCollection(self)
        self.logical_animations: ChildrenCollection[Animation] = ChildrenCollection(self)
        self.logical_buffers: ChildrenCollection[Buffer] = ChildrenCollection(self)
        self.logical_buffer_views: ChildrenCollection[BufferView] = ChildrenCollection(self)
        self.logical_cameras: ChildrenCollection[Camera] = ChildrenCollection(self)
        self.logical_images: ChildrenCollection[Image] = ChildrenCollection(self)
        self.logical_materials: ChildrenCollection[Material] = ChildrenCollection(self)
        self.logical_meshes: ChildrenCollection[Mesh] = ChildrenCollection(self)
        self.logical_nodes: ChildrenCollection[Node] = ChildrenCollection(self)
        self.logical_samplers: ChildrenCollection[TextureSampler] = ChildrenCollection(self)
        self.logical_scenes: ChildrenCollection[Scene] = ChildrenCollection(self)
        self.logical_skins: ChildrenCollection[Skin] = ChildrenCollection(self)
        self.logical_textures: ChildrenCollection[Texture] = ChildrenCollection(self)

    def __repr__(self) -> str:
        counts = ", ".join(f"{key}={len(getattr(self, attr))}" for key, attr, _ in _COLLECTIONS
                           if len(getattr(self, attr)))
        return f"<ModelRoot {counts}>"

    @property
    def registry(self) -> ExtensionRegistry:
        return self._registry

    # -- extensions ---------------------------------------------------------

    def _all_properties(self) -> Iterator[ExtraProperties]:
        yield self
        if self.asset is not None:
            yield self.asset
        for _, attr, _ in _COLLECTIONS:
            for child in getattr(self, attr):
                yield child
        for mesh in self.logical_meshes:
            yield from mesh.primitives
        for material in self.logical_materials:
            yield from material._textures.values()
        for accessor in self.logical_accessors:
            if accessor.sparse is not None:
                yield accessor.sparse
        for animation in self.logical_animations:
            yield from animation.samplers
            yield from animation.channels

    @property
    def extensions_used(self) -> List[str]:
        """Every extension present in the model, plus the required ones."""
        names = set(self._extensions_required)
        for prop in self._all_properties():
            names.update(prop._extension_names())
        for material in self.logical_materials:
            names.update(material._pbr_extensions)
        return sorted(names)

    @property
    def extensions_required(self) -> List[str]:
        return list(self._extensions_required)

    def set_extension_required(self, name: str, required: bool = True) -> None:
        if not name:
            raise ModelUsageError("extension name must not be empty")
        if required and name not in self._extensions_required:
            self._extensions_required.append(name)
        elif not required and name in self._extensions_required:
            self._extensions_required.remove(name)

    @property
    def incompatible_extensions(self) -> List[str]:
        """Required extensions the registry cannot interpret."""
        return self._registry.incompatible(self._extensions_required)

    # -- scenes -------------------------------------------------------------

    @property
    def default_scene(self) -> Optional[Scene]:
        return self.logical_scenes.get(self._default_scene)

    @default_scene.setter
    def default_scene(self, scene: Optional[Scene]) -> None:
        if scene is None:
            self._default_scene = None
            return
        if scene.logical_parent is not self:
            raise ModelUsageError(f"{scene!r} belongs to a different model")
        self._default_scene = scene.logical_index

    def use_scene(self, key: Union[int, str]) -> Scene:
        """Get a scene by index or name, creating it when missing."""
        if isinstance(key, str):
            scene = next((s for s in self.logical_scenes if s.name == key), None)
            if scene is None:
                scene = self.logical_scenes.append(Scene(key))
        else:
            if key < 0 or key > len(self.logical_scenes):
                raise ModelUsageError(f"scene index must be in [0, {len(self.logical_scenes)}], got {key}")
            if key == len(self.logical_scenes):
                self.logical_scenes.append(Scene())
            scene = self.logical_scenes[key]
        if self._default_scene is None:
            self._default_scene = scene.logical_index
        return scene

    # -- buffers ------------------------------------------------------------

    def create_buffer(self, byte_count: int) -> Buffer:
        """Append a zero-filled buffer of exactly ``byte_count`` bytes."""
        if byte_count < 0:
            raise ModelUsageError(f"byte_count must not be negative: {byte_count}")
        return self.logical_buffers.append(Buffer(bytearray(byte_count)))

    def use_buffer(self, content: bytearray) -> Buffer:
        """The buffer wrapping ``content`` (same object), created when missing."""
        if content is None:
            raise ModelUsageError("content must not be None")
        for buffer in self.logical_buffers:
            if buffer.content is content:
                return buffer
        if not isinstance(content, bytearray):
            content = bytearray(content)
        return self.logical_buffers.append(Buffer(content))

    def use_buffer_view(self, content: bytearray, byte_offset: int = 0,
                        byte_length: Optional[int] = None, byte_stride: Optional[int] = None,
                        target: Optional[BufferTarget] = None) -> BufferView:
        """The view over ``content[byte_offset:byte_offset + byte_length]``, created when missing."""
        buffer = self.use_buffer(content)
        if byte_length is None:
            byte_length = buffer.byte_length - byte_offset
        if byte_offset < 0 or byte_length < 0 or byte_offset + byte_length > buffer.byte_length:
            raise ModelUsageError(
                f"range [{byte_offset}, {byte_offset + byte_length}) exceeds {buffer.byte_length} bytes")
        if byte_stride is not None and (byte_stride < 4 or byte_stride > 252 or byte_stride % 4):
            raise ModelUsageError(f"byte_stride {byte_stride} must be a multiple of 4 in [4, 252]")

        index = buffer.logical_index
        for view in self.logical_buffer_views:
            if (view.buffer_index == index and view.byte_offset == byte_offset
                    and view.byte_length == byte_length and view.byte_stride == byte_stride
                    and view.target == target):
                return view
        return self.logical_buffer_views.append(
            BufferView(index, byte_offset, byte_length, byte_stride, target))

    def merge_buffers(self) -> None:
        """Coalesce every BufferView into a single buffer.

        Views are copied largest first, each starting on a 4-byte boundary.
        The new buffer and all offsets are computed before anything in the
        model changes.
        """
        views = list(self.logical_buffer_views)
        ordered = sorted(views, key=lambda v: v.byte_length, reverse=True)

        builder = StaticBufferBuilder()
        offsets: Dict[int, int] = {}
        for view in ordered:
            offsets[view.logical_index] = builder.append(view.content)

        old_count = len(self.logical_buffers)
        merged = [Buffer(builder.to_bytearray())] if views else []
        self.logical_buffers._replace_all(merged)
        for view in views:
            view._relocate(0, offsets[view.logical_index])

        logger.info(f"Merged {old_count} buffer(s) and {len(views)} view(s) into {len(builder)} bytes")

    # -- factories ----------------------------------------------------------

    def create_accessor(self, name: Optional[str] = None) -> Accessor:
        return self.logical_accessors.append(Accessor(name))

    def create_animation(self, name: Optional[str] = None) -> Animation:
        return self.logical_animations.append(Animation(name))

    def create_camera(self, name: Optional[str] = None) -> Camera:
        return self.logical_cameras.append(Camera(name))

    def create_image(self, name: Optional[str] = None) -> Image:
        return self.logical_images.append(Image(name))

    def create_material(self, name: Optional[str] = None) -> Material:
        return self.logical_materials.append(Material(name))

    def create_mesh(self, name: Optional[str] = None) -> Mesh:
        return self.logical_meshes.append(Mesh(name))

    def create_logical_node(self, name: Optional[str] = None) -> Node:
        """A node outside any hierarchy; attach it with add_child or add_visual_child."""
        return self.logical_nodes.append(Node(name))

    def create_sampler(self, mag_filter: Optional[int] = None, min_filter: Optional[int] = None,
                       wrap_s: int = 10497, wrap_t: int = 10497) -> TextureSampler:
        for sampler in self.logical_samplers:
            if (sampler.mag_filter, sampler.min_filter, sampler.wrap_s, sampler.wrap_t) == \
                    (mag_filter, min_filter, wrap_s, wrap_t):
                return sampler
        return self.logical_samplers.append(TextureSampler(mag_filter, min_filter, wrap_s, wrap_t))

    def create_skin(self, name: Optional[str] = None) -> Skin:
        return self.logical_skins.append(Skin(name))

    def create_texture(self, image: Optional[Image] = None,
                       sampler: Optional[TextureSampler] = None) -> Texture:
        texture = self.logical_textures.append(Texture())
        texture.image = image
        texture.sampler = sampler
        return texture

    # -- visual hierarchy ---------------------------------------------------

    def _invalidate_hierarchy(self) -> None:
        self._parent_cache = None
        self._cycle_cache = None

    def _parents(self) -> Dict[int, List[int]]:
        """child index -> every parent index listing it, in node order."""
        if self._parent_cache is None:
            nodes = self.logical_nodes
            cache: Dict[int, List[int]] = {}
            for node in nodes:
                for child in node._children:
                    if not nodes.in_range(child):
                        continue
                    parents = cache.setdefault(child, [])
                    if node.logical_index not in parents:
                        parents.append(node.logical_index)
            self._parent_cache = cache
        return self._parent_cache

    def _cycles(self) -> Dict[int, int]:
        """node index -> lowest index of the cycle it belongs to.

        Cycles are the strongly connected components of the child graph with more
        than one member, so every parent edge is followed, not only the first one.
        """
        if self._cycle_cache is None:
            nodes = self.logical_nodes
            graph = [[c for c in node._children if nodes.in_range(c) and c != node.logical_index]
                     for node in nodes]
            self._cycle_cache = _cycle_members(graph)
        return self._cycle_cache

    def _visual_parent_index(self, index: int) -> Optional[int]:
        parents = self._parents().get(index)
        return parents[0] if parents else None

    def _find_visual_parent_node(self, node: Node) -> Optional[Node]:
        index = self._visual_parent_index(node.logical_index)
        return None if index is None else self.logical_nodes[index]

    def _is_scene_root(self, node: Node) -> bool:
        return any(node.logical_index in scene._nodes for scene in self.logical_scenes)

    def _check_node_is_joint(self, node: Node) -> bool:
        return any(node.logical_index in skin._joints for skin in self.logical_skins)

    # -- whole-model operations ---------------------------------------------

    def validate(self, registry: Optional[ExtensionRegistry] = None) -> ValidationResult:
        """Validate the model and keep the result in ``validation_result``."""
        self.validation_result = validate_model(self, registry or self._registry)
        return self.validation_result

    def deep_clone(self) -> "ModelRoot":
        """An independent copy made through an in-memory write and read."""
        from .io import clone_model

        return clone_model(self)

    # -- serialization ------------------------------------------------------

    def _to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.asset is not None:
            data["asset"] = self.asset._serialize()
        used = self.extensions_used
        if used:
            data["extensionsUsed"] = used
        if self._extensions_required:
            data["extensionsRequired"] = list(self._extensions_required)
        if self._default_scene is not None:
            data["scene"] = self._default_scene
        for key, attr, _ in _COLLECTIONS:
            collection = getattr(self, attr)
            if len(collection):
                data[key] = [child._serialize() for child in collection]
        data.update(self._serialize())
        return data

    @classmethod
    def _from_dict(cls, data: Dict[str, Any], registry: Optional[ExtensionRegistry] = None) -> "ModelRoot":
        if not isinstance(data, dict):
            raise StructuralReadError("a glTF document must be a JSON object")
        if not isinstance(data.get("asset"), dict):
            raise StructuralReadError("the glTF document has no asset block")

        root = cls(registry)
        root.asset._deserialize(data["asset"], root._registry)
        root._extensions_required = list(data.get("extensionsRequired") or [])
        root._default_scene = data.get("scene")
        ExtraProperties._deserialize(root, data, root._registry)

        for key, attr, child_type in _COLLECTIONS:
            items = data.get(key) or []
            if not isinstance(items, list):
                raise StructuralReadError(f"'{key}' must be a JSON array")
            collection = getattr(root, attr)
            for item in items:
                if not isinstance(item, dict):
                    raise StructuralReadError(f"'{key}' entries must be JSON objects")
                child = collection.append(child_type())
                child._deserialize(item, root._registry)

        root._invalidate_hierarchy()
        return root


def create_model(registry: Optional[ExtensionRegistry] = None) -> ModelRoot:
    """A new, empty model."""
    return ModelRoot(registry)
