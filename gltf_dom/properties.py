# SPDX-License-Identifier: MIT
"""Base classes shared by every glTF object in a model."""

import copy
from typing import Any, Dict, Generic, Iterable, Iterator, List, Optional, TypeVar, Union

from .exceptions import ModelUsageError
from .logger import get_logger

logger = get_logger(__name__)


class ExtraProperties:
    """A glTF object that can carry ``extensions`` and ``extras``."""

    def __init__(self):
        self._extensions: Dict[str, Any] = {}
        self.extras: Any = None

    # -- extensions ---------------------------------------------------------

    @property
    def extensions(self) -> Dict[str, Any]:
        """Extension objects by persistent name (read-only copy)."""
        return dict(self._extensions)

    def get_extension(self, key: Union[str, type]) -> Optional[Any]:
        """Get an extension by persistent name or by extension class."""
        if isinstance(key, str):
            return self._extensions.get(key)
        for value in self._extensions.values():
            if isinstance(value, key):
                return value
        return None

    def set_extension(self, value: Any, name: Optional[str] = None) -> None:
        """Attach ``value`` under its persistent name; ``None`` removes ``name``."""
        if value is None:
            if name is None:
                raise ModelUsageError("a name is required to remove an extension")
            self._extensions.pop(name, None)
            return
        name = name or getattr(value, "persistent_name", None)
        if not name:
            raise ModelUsageError(f"{type(value).__name__} has no persistent name")
        self._extensions[name] = value

    def _extension_names(self) -> Iterator[str]:
        yield from self._extensions

    # -- serialization ------------------------------------------------------

    def _serialize(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self._extensions:
            data["extensions"] = {name: ext.to_dict() for name, ext in self._extensions.items()}
        if self.extras is not None:
            data["extras"] = copy.deepcopy(self.extras)
        return data

    def _deserialize(self, data: Dict[str, Any], registry) -> None:
        for name, block in (data.get("extensions") or {}).items():
            self._extensions[name] = registry.create(name, self, block)
        if "extras" in data:
            self.extras = copy.deepcopy(data["extras"])


class LogicalChildOfRoot(ExtraProperties):
    """All objects stored in a ModelRoot collection inherit from this class.

    The slot in the owning collection is assigned at insertion time, so
    ``logical_index`` is a plain attribute read, not a search.
    """

    def __init__(self, name: Optional[str] = None):
        super().__init__()
        self.name = name
        self._logical_parent = None
        self._logical_index = -1

    @property
    def logical_parent(self):
        return self._logical_parent

    @property
    def logical_index(self) -> int:
        return self._logical_index

    def __repr__(self) -> str:
        label = f" {self.name!r}" if self.name else ""
        return f"<{type(self).__name__}[{self._logical_index}]{label}>"

    def _attach(self, parent, index: int) -> None:
        self._logical_parent = parent
        self._logical_index = index

    def _shares_logical_parent(self, other: "LogicalChildOfRoot", arg_name: str = "value") -> None:
        if other is None:
            raise ModelUsageError(f"{arg_name} must not be None")
        if other._logical_parent is not self._logical_parent:
            raise ModelUsageError(
                f"{arg_name} {other!r} belongs to a different model than {self!r}")

    def _serialize(self) -> Dict[str, Any]:
        data = super()._serialize()
        if self.name is not None:
            data["name"] = self.name
        return data

    def _deserialize(self, data: Dict[str, Any], registry) -> None:
        super()._deserialize(data, registry)
        self.name = data.get("name")


T = TypeVar("T", bound=LogicalChildOfRoot)


class ChildrenCollection(Generic[T]):
    """Dense, ordered collection that owns its children and their slots."""

    def __init__(self, parent):
        self._parent = parent
        self._items: List[T] = []

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, index: int) -> T:
        return self._items[index]

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)

    def __contains__(self, item) -> bool:
        return any(existing is item for existing in self._items)

    def __repr__(self) -> str:
        return f"<ChildrenCollection {self._items!r}>"

    def append(self, item: T) -> T:
        if item is None:
            raise ModelUsageError("cannot add None to a collection")
        if item.logical_parent is not None:
            raise ModelUsageError(f"{item!r} already belongs to a model")
        item._attach(self._parent, len(self._items))
        self._items.append(item)
        return item

    def _replace_all(self, items: Iterable[T]) -> None:
        for old in self._items:
            old._attach(None, -1)
        self._items = []
        for item in items:
            self.append(item)

    def get(self, index: Optional[int]) -> Optional[T]:
        """Resolve an optional index; out-of-range indices give None."""
        if not self.in_range(index):
            return None
        return self._items[index]

    def in_range(self, index: Optional[int]) -> bool:
        if not isinstance(index, int) or isinstance(index, bool):
            return False
        return 0 <= index < len(self._items)
