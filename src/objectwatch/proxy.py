"""
Transparent wrapper types.

``ObservedProxy`` builds on ``wrapt.ObjectProxy`` so a wrapper passes
``isinstance`` checks, compares, hashes, prints and sizes exactly like the
value it wraps. Reads, writes, deletes, iteration and in-place operators are
routed to the owning ``Observer``; everything else is forwarded untouched.

Per-wrapper state uses wrapt's ``_self_`` prefix so it never lands on the
wrapped value.
"""
import copy
from typing import Any

import wrapt


class ObservedProxy(wrapt.ObjectProxy):
    """Stand-in for one value inside an observed graph."""

    def __init__(self, wrapped: Any, observer: Any):
        super().__init__(wrapped)
        self._self_observer = observer

    # Attribute protocol

    def __getattr__(self, name: str) -> Any:
        if name.startswith('_self_') or name == '__wrapped__':
            raise AttributeError(name)
        return self._self_observer.get_attribute(self, name)

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith('_self_') or name == '__wrapped__' or hasattr(type(self), name):
            super().__setattr__(name, value)
        else:
            self._self_observer.set_attribute(self, name, value)

    def __delattr__(self, name: str) -> None:
        if name.startswith('_self_') or hasattr(type(self), name):
            super().__delattr__(name)
        else:
            self._self_observer.delete_attribute(self, name)

    # Item protocol

    def __getitem__(self, key: Any) -> Any:
        return self._self_observer.get_item(self, key)

    def __setitem__(self, key: Any, value: Any) -> None:
        self._self_observer.set_item(self, key, value)

    def __delitem__(self, key: Any) -> None:
        self._self_observer.delete_item(self, key)

    def __iter__(self):
        return self._self_observer.iterate(self)

    def __reversed__(self):
        return self._self_observer.iterate(self, reverse=True)

    def __contains__(self, item: Any) -> bool:
        return self._self_observer.contains(self, item)

    # In-place operators mutate collections; immutable values fall back to the binary operator

    def __iadd__(self, other: Any) -> Any:
        return self._self_observer.call_in_place(self, '__iadd__', other)

    def __isub__(self, other: Any) -> Any:
        return self._self_observer.call_in_place(self, '__isub__', other)

    def __imul__(self, other: Any) -> Any:
        return self._self_observer.call_in_place(self, '__imul__', other)

    def __ior__(self, other: Any) -> Any:
        return self._self_observer.call_in_place(self, '__ior__', other)

    def __iand__(self, other: Any) -> Any:
        return self._self_observer.call_in_place(self, '__iand__', other)

    def __ixor__(self, other: Any) -> Any:
        return self._self_observer.call_in_place(self, '__ixor__', other)

    # Copies and pickles are of the raw value

    def __copy__(self) -> Any:
        return copy.copy(self.__wrapped__)

    def __deepcopy__(self, memo: dict) -> Any:
        return copy.deepcopy(self.__wrapped__, memo)

    def __reduce_ex__(self, protocol: int) -> Any:
        return self.__wrapped__.__reduce_ex__(protocol)

    def __repr__(self) -> str:
        return repr(self.__wrapped__)


class ObservedView(wrapt.ObjectProxy):
    """Wraps a mapping view or iterator so the items it yields are observed."""

    def __init__(self, wrapped: Any, observer: Any, owner: Any, base_path: Any, mode: str):
        super().__init__(wrapped)
        self._self_observer = observer
        self._self_owner = owner
        self._self_base_path = base_path
        self._self_mode = mode

    def __iter__(self):
        return self._self_observer.wrap_iterator(
            iter(self.__wrapped__), self._self_owner, self._self_base_path, self._self_mode)

    def __reversed__(self):
        return self._self_observer.wrap_iterator(
            reversed(self.__wrapped__), self._self_owner, self._self_base_path, self._self_mode, reverse=True)

    def __copy__(self) -> Any:
        return copy.copy(self.__wrapped__)

    def __deepcopy__(self, memo: dict) -> Any:
        return copy.deepcopy(self.__wrapped__, memo)

    def __repr__(self) -> str:
        return repr(self.__wrapped__)
