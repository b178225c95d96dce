# SPDX-License-Identifier: MIT
"""glTF extension registry and the built-in extension blocks.

The registry is a plain value handed to the read/write entry points, so
two models can be processed with different extension sets at the same
time.
"""

import copy
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from .exceptions import ModelUsageError
from .logger import get_logger

logger = get_logger(__name__)

# Compression codecs are never decoded by this package.
UNSUPPORTED_EXTENSIONS: FrozenSet[str] = frozenset({
    "KHR_draco_mesh_compression",
    "EXT_meshopt_compression",
})


class Extension:
    """Base class for an interpreted extension block."""

    persistent_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {}

    def from_dict(self, data: Dict[str, Any]) -> None:
        pass


class OpaqueExtension(Extension):
    """An extension block nobody registered; kept verbatim for round trips."""

    def __init__(self, name: str, data: Any):
        self.persistent_name = name
        self.data = copy.deepcopy(data)

    def to_dict(self) -> Any:
        return copy.deepcopy(self.data)

    def from_dict(self, data: Any) -> None:
        self.data = copy.deepcopy(data)

    def __repr__(self) -> str:
        return f"<OpaqueExtension {self.persistent_name}>"


class MaterialUnlit(Extension):
    """KHR_materials_unlit: a marker extension without properties."""

    persistent_name = "KHR_materials_unlit"


class MaterialPBRSpecularGlossiness(Extension):
    """KHR_materials_pbrSpecularGlossiness."""

    persistent_name = "KHR_materials_pbrSpecularGlossiness"

    def __init__(self):
        self.diffuse_factor = [1.0, 1.0, 1.0, 1.0]
        self.specular_factor = [1.0, 1.0, 1.0]
        self.glossiness_factor = 1.0
        self.diffuse_texture: Optional[Dict[str, Any]] = None
        self.specular_glossiness_texture: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.diffuse_factor != [1.0, 1.0, 1.0, 1.0]:
            data["diffuseFactor"] = list(self.diffuse_factor)
        if self.specular_factor != [1.0, 1.0, 1.0]:
            data["specularFactor"] = list(self.specular_factor)
        if self.glossiness_factor != 1.0:
            data["glossinessFactor"] = self.glossiness_factor
        if self.diffuse_texture is not None:
            data["diffuseTexture"] = copy.deepcopy(self.diffuse_texture)
        if self.specular_glossiness_texture is not None:
            data["specularGlossinessTexture"] = copy.deepcopy(self.specular_glossiness_texture)
        return data

    def from_dict(self, data: Dict[str, Any]) -> None:
        self.diffuse_factor = list(data.get("diffuseFactor", [1.0, 1.0, 1.0, 1.0]))
        self.specular_factor = list(data.get("specularFactor", [1.0, 1.0, 1.0]))
        self.glossiness_factor = data.get("glossinessFactor", 1.0)
        self.diffuse_texture = copy.deepcopy(data.get("diffuseTexture"))
        self.specular_glossiness_texture = copy.deepcopy(data.get("specularGlossinessTexture"))

    def texture_indices(self) -> List[int]:
        return [t["index"] for t in (self.diffuse_texture, self.specular_glossiness_texture)
                if isinstance(t, dict) and "index" in t]


class ExtensionRegistry:
    """Maps (persistent name, owner type) pairs to extension factories."""

    def __init__(self):
        self._factories: Dict[Tuple[str, type], Callable[[], Extension]] = {}

    def register(self, name: str, owner_type: type, factory: Callable[[], Extension]) -> None:
        if not name or owner_type is None or factory is None:
            raise ModelUsageError("name, owner_type and factory are required")
        if name in UNSUPPORTED_EXTENSIONS:
            raise ModelUsageError(f"{name} cannot be registered: compression codecs are not supported")
        self._factories[(name, owner_type)] = factory
        logger.debug(f"Registered extension {name} on {owner_type.__name__}")

    def unregister(self, name: str, owner_type: type) -> None:
        self._factories.pop((name, owner_type), None)

    @property
    def supported_names(self) -> Set[str]:
        return {name for name, _ in self._factories}

    def is_supported(self, name: str) -> bool:
        return name in self.supported_names

    def incompatible(self, names: Iterable[str]) -> List[str]:
        supported = self.supported_names
        return [name for name in names if name not in supported]

    def _lookup(self, name: str, owner: Any) -> Optional[Callable[[], Extension]]:
        for owner_type in type(owner).__mro__:
            factory = self._factories.get((name, owner_type))
            if factory is not None:
                return factory
        return None

    def create(self, name: str, owner: Any, data: Any) -> Extension:
        """Build the extension for ``owner``; unknown names stay opaque."""
        factory = self._lookup(name, owner)
        if factory is None or not isinstance(data, dict):
            return OpaqueExtension(name, data)
        extension = factory()
        extension.from_dict(data)
        return extension

    def copy(self) -> "ExtensionRegistry":
        other = ExtensionRegistry()
        other._factories = dict(self._factories)
        return other


def default_registry() -> ExtensionRegistry:
    """A fresh registry with the extensions this package interprets."""
    from .materials import Material

    registry = ExtensionRegistry()
    registry.register(MaterialUnlit.persistent_name, Material, MaterialUnlit)
    registry.register(MaterialPBRSpecularGlossiness.persistent_name, Material,
                      MaterialPBRSpecularGlossiness)
    return registry
