# SPDX-License-Identifier: MIT
"""
gltf_dom - in-memory document model, validator and codec for glTF 2.0.

Models are loaded from .gltf/.glb data, edited through typed accessor
views and an index-based reference graph, validated, and written back as
JSON with embedded buffers or as a binary container.
"""

from .accessors import Accessor, AccessorSparse
from .animations import Animation, AnimationChannel, AnimationSampler
from .arrays import (EncodedArray, IntegerArray, Matrix4x4Array, QuaternionArray, ScalarArray,
                     SparseArray, Vector2Array, Vector3Array, Vector4Array, Vector4View)
from .buffers import Buffer, BufferView
from .cameras import Camera
from .enums import (AlphaMode, AnimationInterpolation, BufferTarget, CameraType, ComponentType,
                    ElementType, IndexEncoding, PrimitiveType, PropertyPath)
from .exceptions import (BinaryIncompatibleError, GlbFormatError, GltfError, ModelUsageError,
                         ModelValidationError, ResolveError, SparseWriteError, StructuralReadError,
                         UnsupportedExtensionError)
from .extensions import (Extension, ExtensionRegistry, MaterialPBRSpecularGlossiness, MaterialUnlit,
                         OpaqueExtension, default_registry)
from .io import load, read, read_glb, read_gltf_json, save, write_glb, write_gltf
from .logger import get_logger, setup_logging
from .materials import Image, Material, Texture, TextureInfo, TextureSampler
from .meshes import Mesh, MeshPrimitive
from .root import Asset, ModelRoot, create_model
from .scene import Node, Scene, flatten
from .settings import ReadSettings, ValidationMode, WriteSettings
from .skins import Skin
from .validation import IssueKind, ValidationIssue, ValidationResult, ValidationState

__version__ = "1.0.0"

logger = get_logger(__name__)
