# SPDX-License-Identifier: MIT
"""Read and write entry points for .gltf and .glb documents."""

import copy
import json
import urllib.parse
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from . import glb
from .exceptions import StructuralReadError
from .extensions import default_registry
from .logger import get_logger
from .root import ModelRoot
from .settings import AssetReader, ReadSettings, ValidationMode, WriteSettings
from .validation import validate_model

logger = get_logger(__name__)

PathLike = Union[str, Path]


def file_resolver(directory: PathLike) -> AssetReader:
    """Resolve relative URIs against ``directory``; missing files give None."""
    base = Path(directory)

    def resolve(uri: str) -> Optional[bytes]:
        path = base / urllib.parse.unquote(uri)
        if not path.is_file():
            logger.warning(f"Satellite file not found: {path}")
            return None
        return path.read_bytes()

    return resolve


# -- reading ----------------------------------------------------------------

def _parse_json(text: Union[str, bytes]) -> Any:
    try:
        if isinstance(text, (bytes, bytearray, memoryview)):
            text = bytes(text).decode("utf-8-sig")
        return json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise StructuralReadError(f"invalid JSON document: {e}") from e


def _apply_validation(model: ModelRoot, mode: ValidationMode, registry, keep_result: bool = True) -> None:
    if mode is ValidationMode.SKIP:
        return
    result = model.validate(registry) if keep_result else validate_model(model, registry)
    if result.has_errors:
        logger.warning(f"Model has {len(result)} validation issue(s); first: {result.issues[0]}")
    if mode is ValidationMode.STRICT:
        result.raise_if_errors()


def _read_document(document: Any, binary_chunk: Optional[bytes], settings: ReadSettings) -> ModelRoot:
    registry = settings.registry if settings.registry is not None else default_registry()
    model = ModelRoot._from_dict(document, registry)

    # only the first buffer may live in the binary chunk
    for buffer in model.logical_buffers:
        chunk = binary_chunk if buffer.logical_index == 0 else None
        buffer._resolve_uri(settings.resolver, chunk)
    for image in model.logical_images:
        image._resolve_uri(settings.resolver)

    _apply_validation(model, settings.validation, registry)
    return model


def read_gltf_json(text: Union[str, bytes], settings: Optional[ReadSettings] = None) -> ModelRoot:
    """Decode a .gltf JSON document; external files come from ``settings.resolver``."""
    settings = settings or ReadSettings()
    model = _read_document(_parse_json(text), None, settings)
    logger.info(f"Read glTF JSON document: {model!r}")
    return model


def read_glb(data: bytes, settings: Optional[ReadSettings] = None) -> ModelRoot:
    """Decode a binary container."""
    settings = settings or ReadSettings()
    chunks = glb.read_chunks(data)
    document = _parse_json(chunks[glb.CHUNK_JSON])
    model = _read_document(document, chunks.get(glb.CHUNK_BIN), settings)
    logger.info(f"Read GLB document ({len(data)} bytes): {model!r}")
    return model


def read(data: Union[str, bytes], settings: Optional[ReadSettings] = None) -> ModelRoot:
    """Decode either format, sniffing the GLB magic."""
    if isinstance(data, (bytes, bytearray, memoryview)) and glb.is_glb(data):
        return read_glb(data, settings)
    return read_gltf_json(data, settings)


def load(path: PathLike, settings: Optional[ReadSettings] = None) -> ModelRoot:
    """Load a .gltf or .glb file; satellite files are read next to it by default."""
    path = Path(path)
    settings = copy.copy(settings) if settings is not None else ReadSettings()
    if settings.resolver is None:
        settings.resolver = file_resolver(path.parent)
    logger.info(f"Loading {path}")
    return read(path.read_bytes(), settings)


# -- writing ----------------------------------------------------------------

def _prepare_for_write(model: ModelRoot, settings: WriteSettings) -> ModelRoot:
    """The model to serialize: ``model`` itself, or a clone when it must change."""
    if settings.validation is not ValidationMode.SKIP:
        _apply_validation(model, settings.validation, settings.registry or model.registry, keep_result=False)

    if settings.binary and not settings.merge_buffers:
        glb.check_binary_compatible(model)

    satellite_images = settings.binary and any(i.is_satellite_file for i in model.logical_images)
    if not (settings.merge_buffers or satellite_images):
        return model

    work = model.deep_clone()
    if settings.binary:
        for image in work.logical_images:
            image.transfer_to_internal_buffer()
    if settings.merge_buffers or len(work.logical_buffers) > 1:
        work.merge_buffers()
    return work


def _buffer_uri(basename: str, index: int, count: int) -> str:
    return f"{basename}.bin" if count == 1 else f"{basename}_{index}.bin"


def _encode(work: ModelRoot, settings: WriteSettings, basename: str) -> Tuple[Dict[str, Any], Dict[str, bytes]]:
    """Serialize ``work`` to a JSON-ready dict, collecting satellite files.

    URIs are only set while serializing; the model is left as it was found.
    """
    satellites: Dict[str, bytes] = {}

    def writer(uri: str, content: bytes) -> None:
        satellites[uri] = content
        if settings.writer is not None:
            settings.writer(uri, content)

    buffers = list(work.logical_buffers)
    images = list(work.logical_images)
    try:
        for buffer in buffers:
            if settings.binary:
                buffer._write_to_internal()
            elif settings.embed_buffers:
                buffer._write_as_embedded()
            else:
                buffer._write_to_external(_buffer_uri(basename, buffer.logical_index, len(buffers)), writer)
        for image in images:
            if settings.embed_buffers:
                image._write_to_internal()
            else:
                image._write_to_external(f"{basename}_{image.logical_index}.{image.file_extension}", writer)
        document = work._to_dict()
    finally:
        for buffer in buffers:
            buffer._clear_after_write()
        for image in images:
            image._clear_after_write()
    return document, satellites


def write_gltf(model: ModelRoot, settings: Optional[WriteSettings] = None,
               basename: str = "model") -> Tuple[str, Dict[str, bytes]]:
    """Encode ``model`` as JSON text; returns ``(json_text, {uri: bytes})``."""
    settings = copy.copy(settings) if settings is not None else WriteSettings()
    settings.binary = False
    work = _prepare_for_write(model, settings)
    document, satellites = _encode(work, settings, basename)
    text = json.dumps(document, indent=2 if settings.json_indented else None, ensure_ascii=False)
    logger.info(f"Wrote glTF JSON ({len(text)} chars, {len(satellites)} satellite file(s))")
    return text, satellites


def write_glb(model: ModelRoot, settings: Optional[WriteSettings] = None) -> bytes:
    """Encode ``model`` as a binary container."""
    settings = copy.copy(settings) if settings is not None else WriteSettings()
    settings.binary = True
    work = _prepare_for_write(model, settings)
    glb.check_binary_compatible(work)

    document, _ = _encode(work, settings, "model")
    bin_data = bytes(work.logical_buffers[0].content) if len(work.logical_buffers) else None
    json_bytes = json.dumps(document, indent=2 if settings.json_indented else None,
                            ensure_ascii=False).encode("utf-8")
    data = glb.write_glb(json_bytes, bin_data)
    logger.info(f"Wrote GLB ({len(data)} bytes)")
    return data


def save(model: ModelRoot, path: PathLike, settings: Optional[WriteSettings] = None) -> None:
    """Write ``model`` to ``path``; a ``.glb`` suffix selects the binary container.

    Satellite files land next to ``path`` unless ``settings.writer`` is set, in
    which case only the callback receives them.
    """
    path = Path(path)
    if settings is None:
        settings = WriteSettings(binary=path.suffix.lower() == ".glb")

    if settings.binary:
        path.write_bytes(write_glb(model, settings))
        logger.info(f"Saved {path}")
        return

    text, satellites = write_gltf(model, settings, basename=path.stem)
    if settings.writer is None:
        for uri, content in satellites.items():
            (path.parent / uri).write_bytes(content)
    path.write_text(text, encoding="utf-8")
    logger.info(f"Saved {path} with {len(satellites)} satellite file(s)")


def clone_model(model: ModelRoot) -> ModelRoot:
    """Deep copy through an in-memory write and read; nothing is shared."""
    settings = WriteSettings.for_deep_clone()
    document, satellites = _encode(model, settings, "clone")
    read_settings = ReadSettings(validation=ValidationMode.SKIP, resolver=satellites.get,
                                 registry=model.registry)
    clone = _read_document(document, None, read_settings)
    logger.debug(f"Cloned {model!r}")
    return clone
