"""
Observer configuration.

Every option is independently toggleable; ``observe()`` accepts either an
``ObserverConfig`` or the same fields as keyword arguments.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from fractions import Fraction
from typing import Any, Callable, Collection, Optional, Union

# Immutable scalars compare by value; identity is an interpreter detail for them
_SCALAR_TYPES = (int, float, complex, str, bytes, bool, Decimal, Fraction)


def same_value(a: Any, b: Any) -> bool:
    """Default change comparator: strict identity, with NaN equal to NaN.

    Immutable scalars of the same type compare by value.
    """
    if a is b:
        return True
    if type(a) is not type(b) or not isinstance(a, _SCALAR_TYPES):
        return False
    if a == b:
        return True
    # NaN is the only value unequal to itself
    return a != a and b != b


@dataclass(frozen=True)
class ObserverConfig:
    """Options for a single observed root.

    Attributes:
        equals: Comparator deciding whether a write changes anything.
        shallow: Only track root-level properties.
        path_as_list: Report paths as key lists instead of dotted strings.
        ignore_symbols: Skip dunder names (Python's protocol keys).
        ignore_underscores: Skip string keys starting with ``_``.
        ignore_keys: Explicit keys to skip.
        ignore_detached: Suppress events from values no longer reachable from the root.
        details: Attach an ``OperationDescription`` to method-call events;
            ``True`` for all methods or a collection of method names.
        on_validate: Veto hook; must return exactly ``True`` to accept a mutation.
        bracket_methods: Extra method names run as one aggregate change.
        notify_all_aliases: Fire once per known path of an aliased value.
    """
    equals: Callable[[Any, Any], bool] = same_value
    shallow: bool = False
    path_as_list: bool = False
    ignore_symbols: bool = False
    ignore_underscores: bool = False
    ignore_keys: Collection[Any] = ()
    ignore_detached: bool = False
    details: Union[bool, Collection[str]] = False
    on_validate: Optional[Callable[..., Any]] = None
    bracket_methods: Collection[str] = field(default_factory=frozenset)
    notify_all_aliases: bool = True

    def wants_details(self, method_name: str) -> bool:
        if isinstance(self.details, bool):
            return self.details
        return method_name in self.details

    def is_ignored_key(self, key: Any) -> bool:
        if isinstance(key, str):
            if self.ignore_symbols and len(key) > 4 and key.startswith('__') and key.endswith('__'):
                return True
            if self.ignore_underscores and key.startswith('_'):
                return True
        if not self.ignore_keys:
            return False
        try:
            return key in self.ignore_keys
        except TypeError:
            # Unhashable key checked against a set
            return False
