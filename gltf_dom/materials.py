# SPDX-License-Identifier: MIT
"""Materials, textures, samplers and images."""

from typing import Any, Dict, List, Optional

from .buffers import BUFFER_PREFIXES, resolve_uri, to_data_uri
from .enums import AlphaMode
from .exceptions import ModelUsageError
from .extensions import MaterialPBRSpecularGlossiness, MaterialUnlit
from .logger import get_logger
from .properties import ExtraProperties, LogicalChildOfRoot

logger = get_logger(__name__)

EMBEDDED_PNG = "data:image/png;base64,"
EMBEDDED_JPEG = "data:image/jpeg;base64,"
IMAGE_PREFIXES = BUFFER_PREFIXES + (EMBEDDED_JPEG, EMBEDDED_PNG)

MIME_PNG = "image/png"
MIME_JPEG = "image/jpeg"


def is_png(content) -> bool:
    return bytes(content[:4]) == b"\x89PNG"


def is_jpeg(content) -> bool:
    return bytes(content[:2]) == b"\xff\xd8"


def sniff_mime_type(content) -> Optional[str]:
    if is_png(content):
        return MIME_PNG
    if is_jpeg(content):
        return MIME_JPEG
    return None


class TextureInfo(ExtraProperties):
    """Reference from a material channel to a Texture.

    ``scale`` is only written for normal textures and ``strength`` only for
    occlusion textures.
    """

    def __init__(self, index: int = 0, tex_coord: int = 0):
        super().__init__()
        self.index = index
        self.tex_coord = tex_coord
        self.scale: Optional[float] = None
        self.strength: Optional[float] = None

    def _serialize(self) -> Dict[str, Any]:
        data = super()._serialize()
        data["index"] = self.index
        if self.tex_coord:
            data["texCoord"] = self.tex_coord
        if self.scale is not None:
            data["scale"] = self.scale
        if self.strength is not None:
            data["strength"] = self.strength
        return data

    def _deserialize(self, data: Dict[str, Any], registry) -> None:
        super()._deserialize(data, registry)
        self.index = data.get("index")
        self.tex_coord = data.get("texCoord", 0)
        self.scale = data.get("scale")
        self.strength = data.get("strength")


# channel name -> (json key, lives inside pbrMetallicRoughness)
_CHANNELS = {
    "BaseColor": ("baseColorTexture", True),
    "MetallicRoughness": ("metallicRoughnessTexture", True),
    "Normal": ("normalTexture", False),
    "Occlusion": ("occlusionTexture", False),
    "Emissive": ("emissiveTexture", False),
}


class Material(LogicalChildOfRoot):
    """A metallic-roughness material; extensions may add other workflows."""

    def __init__(self, name: Optional[str] = None):
        super().__init__(name)
        self.alpha_mode = AlphaMode.OPAQUE
        self.alpha_cutoff: Optional[float] = None
        self.double_sided = False
        self.base_color_factor = [1.0, 1.0, 1.0, 1.0]
        self.metallic_factor = 1.0
        self.roughness_factor = 1.0
        self.emissive_factor = [0.0, 0.0, 0.0]
        self._textures: Dict[str, TextureInfo] = {}
        self._pbr_extensions: Dict[str, Any] = {}
        self._pbr_extras: Any = None

    @property
    def unlit(self) -> bool:
        return self.get_extension(MaterialUnlit) is not None

    @unlit.setter
    def unlit(self, value: bool) -> None:
        if value:
            self.set_extension(MaterialUnlit())
        else:
            self.set_extension(None, MaterialUnlit.persistent_name)

    @property
    def channel_names(self) -> List[str]:
        return list(_CHANNELS)

    def get_texture_info(self, channel: str) -> Optional[TextureInfo]:
        if channel not in _CHANNELS:
            raise ModelUsageError(f"unknown material channel '{channel}'")
        return self._textures.get(channel)

    def get_texture(self, channel: str) -> Optional["Texture"]:
        info = self.get_texture_info(channel)
        return None if info is None else self.logical_parent.logical_textures.get(info.index)

    def set_texture(self, channel: str, texture: Optional["Texture"], tex_coord: int = 0) -> Optional[TextureInfo]:
        if channel not in _CHANNELS:
            raise ModelUsageError(f"unknown material channel '{channel}'")
        if texture is None:
            self._textures.pop(channel, None)
            return None
        self._shares_logical_parent(texture, "texture")
        info = TextureInfo(texture.logical_index, tex_coord)
        self._textures[channel] = info
        return info

    def _texture_indices(self) -> List[int]:
        indices = [info.index for info in self._textures.values()]
        spec_gloss = self.get_extension(MaterialPBRSpecularGlossiness)
        if spec_gloss is not None:
            indices.extend(spec_gloss.texture_indices())
        return indices

    def _validate(self, result) -> None:
        textures = self.logical_parent.logical_textures
        for idx in self._texture_indices():
            if not textures.in_range(idx):
                result.add_invalid_reference(self, f"references invalid Texture[{idx}]")

        if self.alpha_cutoff is not None and self.alpha_cutoff < 0:
            result.add_invalid_value(self, f"alphaCutoff must not be negative: {self.alpha_cutoff}")
        if len(self.base_color_factor) != 4:
            result.add_invalid_value(self, "baseColorFactor needs 4 values")
        if len(self.emissive_factor) != 3:
            result.add_invalid_value(self, "emissiveFactor needs 3 values")
        for label, value in (("metallicFactor", self.metallic_factor), ("roughnessFactor", self.roughness_factor)):
            if not 0.0 <= value <= 1.0:
                result.add_invalid_value(self, f"{label} must be in [0, 1], got {value}")

    def _serialize(self) -> Dict[str, Any]:
        data = super()._serialize()
        pbr: Dict[str, Any] = {}
        if self.base_color_factor != [1.0, 1.0, 1.0, 1.0]:
            pbr["baseColorFactor"] = list(self.base_color_factor)
        if self.metallic_factor != 1.0:
            pbr["metallicFactor"] = self.metallic_factor
        if self.roughness_factor != 1.0:
            pbr["roughnessFactor"] = self.roughness_factor
        if self._pbr_extensions:
            pbr["extensions"] = {k: v.to_dict() for k, v in self._pbr_extensions.items()}
        if self._pbr_extras is not None:
            pbr["extras"] = self._pbr_extras

        for channel, (key, in_pbr) in _CHANNELS.items():
            info = self._textures.get(channel)
            if info is not None:
                (pbr if in_pbr else data)[key] = info._serialize()

        if pbr:
            data["pbrMetallicRoughness"] = pbr
        if self.emissive_factor != [0.0, 0.0, 0.0]:
            data["emissiveFactor"] = list(self.emissive_factor)
        if self.alpha_mode != AlphaMode.OPAQUE:
            data["alphaMode"] = AlphaMode(self.alpha_mode).value
        if self.alpha_cutoff is not None:
            data["alphaCutoff"] = self.alpha_cutoff
        if self.double_sided:
            data["doubleSided"] = True
        return data

    def _deserialize(self, data: Dict[str, Any], registry) -> None:
        super()._deserialize(data, registry)
        pbr = data.get("pbrMetallicRoughness") or {}
        self.base_color_factor = list(pbr.get("baseColorFactor", [1.0, 1.0, 1.0, 1.0]))
        self.metallic_factor = pbr.get("metallicFactor", 1.0)
        self.roughness_factor = pbr.get("roughnessFactor", 1.0)
        self._pbr_extensions = {name: registry.create(name, self, block)
                                for name, block in (pbr.get("extensions") or {}).items()}
        self._pbr_extras = pbr.get("extras")

        self._textures = {}
        for channel, (key, in_pbr) in _CHANNELS.items():
            block = (pbr if in_pbr else data).get(key)
            if block is not None:
                info = TextureInfo()
                info._deserialize(block, registry)
                self._textures[channel] = info

        self.emissive_factor = list(data.get("emissiveFactor", [0.0, 0.0, 0.0]))
        try:
            self.alpha_mode = AlphaMode(data.get("alphaMode", "OPAQUE"))
        except ValueError:
            logger.warning(f"Unknown alphaMode {data.get('alphaMode')!r} on Material[{self.logical_index}]")
            self.alpha_mode = AlphaMode.OPAQUE
        self.alpha_cutoff = data.get("alphaCutoff")
        self.double_sided = bool(data.get("doubleSided", False))


class TextureSampler(LogicalChildOfRoot):
    """Filtering and wrapping modes, as raw GL enum values."""

    def __init__(self, mag_filter: Optional[int] = None, min_filter: Optional[int] = None,
                 wrap_s: int = 10497, wrap_t: int = 10497, name: Optional[str] = None):
        super().__init__(name)
        self.mag_filter = mag_filter
        self.min_filter = min_filter
        self.wrap_s = wrap_s
        self.wrap_t = wrap_t

    def _serialize(self) -> Dict[str, Any]:
        data = super()._serialize()
        if self.mag_filter is not None:
            data["magFilter"] = self.mag_filter
        if self.min_filter is not None:
            data["minFilter"] = self.min_filter
        if self.wrap_s != 10497:
            data["wrapS"] = self.wrap_s
        if self.wrap_t != 10497:
            data["wrapT"] = self.wrap_t
        return data

    def _deserialize(self, data: Dict[str, Any], registry) -> None:
        super()._deserialize(data, registry)
        self.mag_filter = data.get("magFilter")
        self.min_filter = data.get("minFilter")
        self.wrap_s = data.get("wrapS", 10497)
        self.wrap_t = data.get("wrapT", 10497)


class Texture(LogicalChildOfRoot):
    """Pairs an Image with an optional TextureSampler."""

    def __init__(self, name: Optional[str] = None):
        super().__init__(name)
        self._sampler: Optional[int] = None
        self._source: Optional[int] = None

    @property
    def sampler(self) -> Optional[TextureSampler]:
        return self.logical_parent.logical_samplers.get(self._sampler)

    @sampler.setter
    def sampler(self, value: Optional[TextureSampler]) -> None:
        if value is None:
            self._sampler = None
            return
        self._shares_logical_parent(value, "sampler")
        self._sampler = value.logical_index

    @property
    def image(self) -> Optional["Image"]:
        return self.logical_parent.logical_images.get(self._source)

    @image.setter
    def image(self, value: Optional["Image"]) -> None:
        if value is None:
            self._source = None
            return
        self._shares_logical_parent(value, "image")
        self._source = value.logical_index

    def _validate(self, result) -> None:
        root = self.logical_parent
        if self._sampler is not None and not root.logical_samplers.in_range(self._sampler):
            result.add_invalid_reference(self, f"references invalid Sampler[{self._sampler}]")
        if self._source is not None and not root.logical_images.in_range(self._source):
            result.add_invalid_reference(self, f"references invalid Image[{self._source}]")

    def _serialize(self) -> Dict[str, Any]:
        data = super()._serialize()
        if self._sampler is not None:
            data["sampler"] = self._sampler
        if self._source is not None:
            data["source"] = self._source
        return data

    def _deserialize(self, data: Dict[str, Any], registry) -> None:
        super()._deserialize(data, registry)
        self._sampler = data.get("sampler")
        self._source = data.get("source")


class Image(LogicalChildOfRoot):
    """A PNG or JPEG file, kept compressed.

    A loaded image holds its bytes either as satellite content (the URI was
    resolved and cleared) or inside a BufferView.
    """

    def __init__(self, name: Optional[str] = None):
        super().__init__(name)
        self._uri: Optional[str] = None
        self.mime_type: Optional[str] = None
        self._buffer_view: Optional[int] = None
        self._satellite_content: Optional[bytes] = None

    @property
    def buffer_view_index(self) -> Optional[int]:
        return self._buffer_view

    @property
    def is_satellite_file(self) -> bool:
        return self._satellite_content is not None

    @property
    def is_png(self) -> bool:
        return bool(self.mime_type) and "png" in self.mime_type

    @property
    def is_jpeg(self) -> bool:
        return bool(self.mime_type) and ("jpg" in self.mime_type or "jpeg" in self.mime_type)

    @property
    def file_extension(self) -> str:
        if self.is_png:
            return "png"
        if self.is_jpeg:
            return "jpg"
        return "bin"

    def get_image_content(self):
        """The compressed image bytes."""
        if self._satellite_content is not None:
            return self._satellite_content
        if self._buffer_view is not None:
            return self.logical_parent.logical_buffer_views[self._buffer_view].content
        raise ModelUsageError(f"{self!r} has no content")

    def set_satellite_content(self, content: bytes) -> "Image":
        if content is None:
            raise ModelUsageError("content must not be None")
        mime_type = sniff_mime_type(content)
        if mime_type is None:
            raise ModelUsageError("content must be a PNG or JPEG image")
        self.mime_type = mime_type
        self._uri = None
        self._buffer_view = None
        self._satellite_content = bytes(content)
        return self

    def transfer_to_internal_buffer(self) -> None:
        """Move satellite content into a new BufferView of the model."""
        if self._satellite_content is None:
            return
        view = self.logical_parent.use_buffer_view(bytearray(self._satellite_content))
        self._buffer_view = view.logical_index
        self.mime_type = self.mime_type or sniff_mime_type(self._satellite_content)
        self._uri = None
        self._satellite_content = None

    # -- binary read --------------------------------------------------------

    def _resolve_uri(self, resolver) -> None:
        if self._uri:
            content = resolve_uri(self._uri, IMAGE_PREFIXES, resolver)
            self._satellite_content = bytes(content)
            if self.mime_type is None:
                self.mime_type = sniff_mime_type(content)
            self._uri = None

    # -- binary write -------------------------------------------------------

    def _write_to_internal(self) -> None:
        if self._satellite_content is None:
            return
        mime_type = sniff_mime_type(self._satellite_content)
        prefix = EMBEDDED_PNG if mime_type == MIME_PNG else EMBEDDED_JPEG if mime_type == MIME_JPEG \
            else BUFFER_PREFIXES[1]
        self._uri = to_data_uri(prefix, self._satellite_content)

    def _write_to_external(self, uri: str, writer) -> None:
        if self._satellite_content is None:
            return
        self._uri = uri
        writer(uri, self._satellite_content)

    def _clear_after_write(self) -> None:
        self._uri = None

    # -- validation & serialization -----------------------------------------

    def _validate(self, result) -> None:
        root = self.logical_parent
        if self._buffer_view is not None:
            if not root.logical_buffer_views.in_range(self._buffer_view):
                result.add_invalid_reference(self, f"references invalid BufferView[{self._buffer_view}]")
            if not self.mime_type:
                result.add_invalid_value(self, "an image stored in a BufferView needs a mimeType")

    def _serialize(self) -> Dict[str, Any]:
        data = super()._serialize()
        if self._uri is not None:
            data["uri"] = self._uri
        if self.mime_type is not None:
            data["mimeType"] = self.mime_type
        if self._buffer_view is not None:
            data["bufferView"] = self._buffer_view
        return data

    def _deserialize(self, data: Dict[str, Any], registry) -> None:
        super()._deserialize(data, registry)
        self._uri = data.get("uri")
        self.mime_type = data.get("mimeType")
        self._buffer_view = data.get("bufferView")
