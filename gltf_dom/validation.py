# SPDX-License-Identifier: MIT
"""Model validation.

Validation never raises for malformed data: every problem becomes a
:class:`ValidationIssue` recorded in a :class:`ValidationResult`. The walk
goes through the states of :class:`ValidationState` and stops early when
the asset block is unusable or a required extension is not supported.
"""

from enum import Enum, IntEnum
from typing import Iterator, List, Set

from .arrays import IntegerArray
from .enums import ComponentType, ElementType, IndexEncoding
from .exceptions import ModelValidationError, UnsupportedExtensionError
from .logger import get_logger

logger = get_logger(__name__)


class ValidationState(IntEnum):
    UNVALIDATED = 0
    ASSET_CHECKED = 1
    EXTENSIONS_CHECKED = 2
    STRUCTURALLY_VALIDATED = 3
    CONTENT_VALIDATED = 4


class IssueKind(Enum):
    ASSET = "asset"
    UNSUPPORTED_EXTENSION = "unsupported_extension"
    INVALID_REFERENCE = "invalid_reference"
    DUPLICATE_REFERENCE = "duplicate_reference"
    SELF_REFERENCE = "self_reference"
    CIRCULAR_REFERENCE = "circular_reference"
    INVALID_VALUE = "invalid_value"
    OUT_OF_BOUNDS = "out_of_bounds"
    BOUNDS_MISMATCH = "bounds_mismatch"


def _target_label(target) -> str:
    if isinstance(target, str):
        return target
    label = getattr(target, "target_label", None)
    if label:
        return label
    return f"{type(target).__name__}[{target.logical_index}]"


class ValidationIssue:
    """A single problem found in a model."""

    def __init__(self, kind: IssueKind, target: str, message: str):
        self.kind = kind
        self.target = target
        self.message = message

    def __str__(self) -> str:
        return f"{self.target}: {self.message}"

    def __repr__(self) -> str:
        return f"<ValidationIssue {self.kind.name} {self}>"


class ValidationResult:
    """Issues collected while validating one model."""

    def __init__(self):
        self._issues: List[ValidationIssue] = []
        self.state = ValidationState.UNVALIDATED

    @property
    def issues(self) -> List[ValidationIssue]:
        return list(self._issues)

    @property
    def has_errors(self) -> bool:
        return bool(self._issues)

    def __len__(self) -> int:
        return len(self._issues)

    def __iter__(self) -> Iterator[ValidationIssue]:
        return iter(self._issues)

    def of_kind(self, kind: IssueKind) -> List[ValidationIssue]:
        return [i for i in self._issues if i.kind is kind]

    def for_target(self, target) -> List[ValidationIssue]:
        label = _target_label(target)
        return [i for i in self._issues if i.target == label]

    def add(self, kind: IssueKind, target, message: str) -> ValidationIssue:
        issue = ValidationIssue(kind, _target_label(target), message)
        logger.debug(f"Validation {kind.name}: {issue}")
        self._issues.append(issue)
        return issue

    def add_asset_error(self, message: str) -> None:
        self.add(IssueKind.ASSET, "asset", message)

    def add_unsupported_extension(self, name: str) -> None:
        self.add(IssueKind.UNSUPPORTED_EXTENSION, name, "required extension is not supported")

    def add_invalid_reference(self, target, message: str) -> None:
        self.add(IssueKind.INVALID_REFERENCE, target, message)

    def add_duplicate_reference(self, target, message: str) -> None:
        self.add(IssueKind.DUPLICATE_REFERENCE, target, message)

    def add_self_reference(self, target, message: str) -> None:
        self.add(IssueKind.SELF_REFERENCE, target, message)

    def add_circular_reference(self, target, message: str) -> None:
        self.add(IssueKind.CIRCULAR_REFERENCE, target, message)

    def add_invalid_value(self, target, message: str) -> None:
        self.add(IssueKind.INVALID_VALUE, target, message)

    def add_out_of_bounds(self, target, message: str) -> None:
        self.add(IssueKind.OUT_OF_BOUNDS, target, message)

    def add_bounds_mismatch(self, target, message: str) -> None:
        self.add(IssueKind.BOUNDS_MISMATCH, target, message)

    def raise_if_errors(self) -> None:
        """Raise the error matching the worst kind of issue found."""
        unsupported = self.of_kind(IssueKind.UNSUPPORTED_EXTENSION)
        if unsupported:
            raise UnsupportedExtensionError(i.target for i in unsupported)
        if self._issues:
            raise ModelValidationError(self._issues)

    def __repr__(self) -> str:
        return f"<ValidationResult {self.state.name} issues={len(self._issues)}>"


# -- stage 1 & 2 ------------------------------------------------------------

def _check_asset(root, result: ValidationResult) -> bool:
    asset = root.asset
    if asset is None:
        result.add_asset_error("the asset block is missing")
        return False
    version = asset.version
    if not isinstance(version, str) or not version:
        result.add_asset_error("asset.version is missing")
        return False
    if version.split(".", 1)[0] != "2":
        result.add_asset_error(f"asset.version {version} is not supported")
        return False
    return True


def _check_extensions(root, registry, result: ValidationResult) -> bool:
    missing = registry.incompatible(root.extensions_required)
    for name in missing:
        result.add_unsupported_extension(name)
    return not missing


# -- stage 3 ----------------------------------------------------------------

def _check_buffers(root, result: ValidationResult) -> None:
    for buffer in root.logical_buffers:
        declared = buffer._declared_length
        if declared and declared > buffer.byte_length:
            result.add_out_of_bounds(buffer, f"declares {declared} bytes but holds {buffer.byte_length}")


def _is_offset(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _check_buffer_views(root, result: ValidationResult) -> None:
    buffers = root.logical_buffers
    for view in root.logical_buffer_views:
        if not buffers.in_range(view.buffer_index):
            result.add_invalid_reference(view, f"references invalid Buffer[{view.buffer_index}]")
            continue
        if not _is_offset(view.byte_offset) or not isinstance(view.byte_length, int) or view.byte_length < 1:
            result.add_invalid_value(view, f"has offset {view.byte_offset} and length {view.byte_length}")
            continue
        end = view.byte_offset + view.byte_length
        if end > buffers[view.buffer_index].byte_length:
            result.add_out_of_bounds(
                view, f"range [{view.byte_offset}, {end}) exceeds Buffer[{view.buffer_index}] "
                      f"of {buffers[view.buffer_index].byte_length} bytes")
        stride = view.byte_stride
        if stride is not None and (stride < 4 or stride > 252 or stride % 4):
            result.add_invalid_value(view, f"byteStride {stride} must be a multiple of 4 in [4, 252]")


def _view_is_sound(root, index) -> bool:
    views = root.logical_buffer_views
    if not views.in_range(index):
        return False
    view = views[index]
    buffers = root.logical_buffers
    if not (buffers.in_range(view.buffer_index) and _is_offset(view.byte_offset)
            and isinstance(view.byte_length, int) and view.byte_length >= 1):
        return False
    return view.byte_offset + view.byte_length <= buffers[view.buffer_index].byte_length


def _check_sparse(root, accessor, result: ValidationResult) -> bool:
    sparse = accessor.sparse
    views = root.logical_buffer_views
    sound = True

    if not isinstance(sparse.count, int) or not 1 <= sparse.count <= accessor.count:
        result.add_invalid_value(accessor, f"sparse count {sparse.count} must be in [1, {accessor.count}]")
        return False
    try:
        encoding = IndexEncoding(sparse.indices_component_type)
    except ValueError:
        result.add_invalid_value(accessor, f"sparse indices use invalid componentType {sparse.indices_component_type}")
        return False

    parts = (("indices", sparse.indices_buffer_view, sparse.indices_byte_offset, encoding.byte_length),
             ("values", sparse.values_buffer_view, sparse.values_byte_offset, accessor.element_byte_size))
    for label, view_index, offset, element_size in parts:
        if not views.in_range(view_index):
            result.add_invalid_reference(accessor, f"sparse {label} reference invalid BufferView[{view_index}]")
            sound = False
            continue
        if not _view_is_sound(root, view_index):
            sound = False
            continue
        if not _is_offset(offset):
            result.add_invalid_value(accessor, f"sparse {label} byteOffset {offset} must be a non negative integer")
            sound = False
            continue
        needed = offset + element_size * sparse.count
        if needed > views[view_index].byte_length:
            result.add_out_of_bounds(accessor, f"sparse {label} need {needed} bytes, "
                                               f"BufferView[{view_index}] has {views[view_index].byte_length}")
            sound = False
    if not sound:
        return False

    indices = list(IntegerArray(views[sparse.indices_buffer_view].content, sparse.indices_byte_offset,
                                sparse.count, encoding))
    if any(b <= a for a, b in zip(indices, indices[1:])):
        result.add_invalid_value(accessor, "sparse indices must be strictly increasing")
        sound = False
    if indices and indices[-1] >= accessor.count:
        result.add_out_of_bounds(accessor, f"sparse index {indices[-1]} exceeds count {accessor.count}")
        sound = False
    return sound


def _check_accessors(root, result: ValidationResult) -> Set[int]:
    """Validate accessor layout; returns the indices safe to read."""
    sound: Set[int] = set()
    views = root.logical_buffer_views

    for accessor in root.logical_accessors:
        try:
            component_type = ComponentType(accessor._component_type)
            element_type = ElementType(accessor._element_type)
        except ValueError:
            result.add_invalid_value(accessor, f"has invalid componentType {accessor._component_type} "
                                               f"or type {accessor.type_name}")
            continue

        if not isinstance(accessor.count, int) or accessor.count < 1:
            result.add_invalid_value(accessor, f"count must be at least 1, got {accessor.count}")
            continue
        if accessor.normalized and component_type in (ComponentType.FLOAT, ComponentType.UNSIGNED_INT):
            result.add_invalid_value(accessor, f"{component_type.name} components cannot be normalized")
        if not _is_offset(accessor.byte_offset):
            result.add_invalid_value(accessor, f"byteOffset {accessor.byte_offset} must be a non negative integer")
            continue
        if accessor.byte_offset % component_type.byte_length:
            result.add_invalid_value(accessor, f"byteOffset {accessor.byte_offset} is not aligned "
                                               f"to {component_type.byte_length} bytes")

        ok = True
        if accessor.buffer_view_index is not None:
            if not views.in_range(accessor.buffer_view_index):
                result.add_invalid_reference(accessor, f"references invalid BufferView[{accessor.buffer_view_index}]")
                ok = False
            elif not _view_is_sound(root, accessor.buffer_view_index):
                ok = False
            else:
                view = views[accessor.buffer_view_index]
                if view.byte_stride and view.byte_stride < accessor.element_byte_size:
                    result.add_invalid_value(accessor, f"element size {accessor.element_byte_size} exceeds "
                                                       f"BufferView[{view.logical_index}] stride {view.byte_stride}")
                    ok = False
                else:
                    end = accessor.byte_offset + accessor.byte_length
                    if end > view.byte_length:
                        result.add_out_of_bounds(accessor, f"needs {end} bytes, BufferView[{view.logical_index}] "
                                                           f"has {view.byte_length}")
                        ok = False

        if accessor.is_sparse and not _check_sparse(root, accessor, result):
            ok = False
        if ok and element_type not in (ElementType.MAT2, ElementType.MAT3):
            sound.add(accessor.logical_index)
    return sound


def _check_references(root, result: ValidationResult) -> None:
    for texture in root.logical_textures:
        texture._validate(result)
    for image in root.logical_images:
        image._validate(result)
    for material in root.logical_materials:
        material._validate(result)
    for camera in root.logical_cameras:
        camera._validate(result)
    for animation in root.logical_animations:
        animation._validate(result)
    for node in root.logical_nodes:
        node._validate_references(result)
    if root._default_scene is not None and not root.logical_scenes.in_range(root._default_scene):
        result.add_invalid_reference("ModelRoot", f"default scene references invalid Scene[{root._default_scene}]")


# -- stage 4 ----------------------------------------------------------------

def _check_content(root, sound_accessors: Set[int], result: ValidationResult) -> None:
    for scene in root.logical_scenes:
        scene._validate_hierarchy(result)

    for node in root.logical_nodes:
        node._validate_hierarchy(result)
        node._validate_transform(result)

    for accessor in root.logical_accessors:
        if accessor.logical_index not in sound_accessors:
            continue
        for message in accessor._bounds_issues():
            result.add_bounds_mismatch(accessor, message)

    for mesh in root.logical_meshes:
        mesh._validate(result)

    for skin in root.logical_skins:
        skin._validate(result)


def validate_model(root, registry=None) -> ValidationResult:
    """Run every validation stage over ``root`` and return the result."""
    if registry is None:
        registry = root._registry

    result = ValidationResult()

    if not _check_asset(root, result):
        logger.info("Validation stopped: asset block is not usable")
        return result
    result.state = ValidationState.ASSET_CHECKED

    if not _check_extensions(root, registry, result):
        logger.info("Validation stopped: unsupported required extensions")
        return result
    result.state = ValidationState.EXTENSIONS_CHECKED

    _check_buffers(root, result)
    _check_buffer_views(root, result)
    sound_accessors = _check_accessors(root, result)
    _check_references(root, result)
    result.state = ValidationState.STRUCTURALLY_VALIDATED

    _check_content(root, sound_accessors, result)
    result.state = ValidationState.CONTENT_VALIDATED

    logger.info(f"Validation finished with {len(result)} issue(s)")
    return result
