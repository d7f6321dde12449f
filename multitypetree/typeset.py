"""
The ordered set of named types (demes) that tree nodes and migration
events refer to by index.
"""
from __future__ import annotations
import logging
import weakref
from typing import Dict, Iterable, Iterator, List

from .exceptions import ValidationError
from .validators import valid_type_name, _DummyAttribute

logger = logging.getLogger(__name__)


class TypeSet:
    """
    An ordered collection of unique type names.

    Indices are assigned in insertion order, so the index of an existing
    type never changes when a new type is added. Removing a type shifts the
    indices of all types added after it down by one; trees and migration
    models attached to the type set are told about the change so that they
    can remap their data.

    .. code::

        type_set = TypeSet(["A", "B"])
        assert type_set.index("B") == 1
        assert type_set.name(0) == "A"

    :param names: The initial type names, in index order.
    :type names: Iterable[str]
    """

    def __init__(self, names: Iterable[str] = ()):
        self._names: List[str] = []
        self._index: Dict[str, int] = {}
        self._listeners: weakref.WeakSet = weakref.WeakSet()
        for name in names:
            self.add(name)

    @classmethod
    def fromstring(cls, value: str) -> TypeSet:
        """
        Return a type set from a comma-separated string of names.
        Empty names are skipped.
        """
        return cls(name.strip() for name in value.split(",") if name.strip())

    def __len__(self) -> int:
        return len(self._names)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._names))

    def __contains__(self, name: str) -> bool:
        return name in self._index

    def __getitem__(self, name: str) -> int:
        return self._index[name]

    def __eq__(self, other) -> bool:
        if not isinstance(other, TypeSet):
            return NotImplemented
        return self._names == other._names

    def __repr__(self) -> str:
        return f"TypeSet({self._names!r})"

    @property
    def names(self) -> List[str]:
        """
        The type names, in index order.
        """
        return list(self._names)

    def index(self, name: str) -> int:
        """
        Return the index of the type with the given name.

        :raises KeyError: If no type has this name.
        """
        try:
            return self._index[name]
        except KeyError:
            raise KeyError(f"type '{name}' not found in {self._names}")

    def name(self, index: int) -> str:
        """
        Return the name of the type with the given index.
        """
        if not (0 <= index < len(self._names)):
            raise IndexError(
                f"type index {index} out of range for {len(self._names)} types"
            )
        return self._names[index]

    def resolve(self, value) -> int:
        """
        Return the index for ``value``, which may either be a type name
        or an integer type index.
        """
        if isinstance(value, str):
            return self.index(value)
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"type must be a name or an index, not {type(value)}")
        self.name(value)
        return value

    def add(self, name: str) -> int:
        """
        Add a type, returning its index. Adding a name that is already
        present returns the existing index.
        """
        if not isinstance(name, str):
            raise TypeError("type names must be strings")
        if name in self._index:
            return self._index[name]
        valid_type_name(None, _DummyAttribute("name"), name)
        index = len(self._names)
        self._names.append(name)
        self._index[name] = index
        for listener in list(self._listeners):
            listener._type_added(index)
        logger.debug("Added type %s with index %d", name, index)
        return index

    def remove(self, name: str) -> None:
        """
        Remove a type. Types with a larger index move down by one.

        :raises ValidationError: If an attached tree still refers to
            the type.
        """
        index = self.index(name)
        for listener in list(self._listeners):
            if index in listener._types_in_use():
                raise ValidationError(
                    f"type '{name}' is referenced by live tree data "
                    "and cannot be removed"
                )
        del self._names[index]
        self._index = {n: j for j, n in enumerate(self._names)}
        for listener in list(self._listeners):
            listener._type_removed(index)
        logger.debug("Removed type %s (index %d)", name, index)

    def _attach(self, listener) -> None:
        """
        Register an object to be told about added and removed types.
        The object must provide ``_types_in_use()``, ``_type_added(index)``
        and ``_type_removed(index)``.
        """
        self._listeners.add(listener)
