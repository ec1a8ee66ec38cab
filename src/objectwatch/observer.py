"""
Interception layer: routes every operation on a wrapper through the cache
and tracker, validates it, and emits change events.

One ``Observer`` exists per observed root. Wrappers hold a reference to it
and delegate to the methods below; callers use the module-level functions
(``observe``, ``unwrap``, ``unsubscribe``, ``define_property``,
``is_observed``, ``path_of``).

Event flow for a keyed write::

    wrapper.attr = value
        -> Observer.set_attribute
        -> equality short-circuit, validation
        -> ProxyCache.set_property
        -> one event per known path of the owner (or a tracker update
           while an aggregate call is in flight)
"""
import collections
import dataclasses
import datetime
import functools
import logging
import re
import types
from collections.abc import Mapping
from decimal import Decimal
from enum import Enum
from fractions import Fraction
from typing import Any, Callable, Dict, Iterator, Optional, Tuple

from objectwatch import path as paths
from objectwatch.change_model import OperationDescription
from objectwatch.collection_kinds import (
    ITERATOR_METHODS,
    SEARCH_METHODS,
    CollectionKind,
    brackets_item_deletes,
    brackets_item_writes,
    is_handled_method,
    is_read_only,
    kind_of,
)
from objectwatch.config import ObserverConfig
from objectwatch.path import Path
from objectwatch.proxy import ObservedProxy, ObservedView
from objectwatch.proxy_cache import MISSING, ProxyCache
from objectwatch.snapshot import SnapshotStack

logger = logging.getLogger(__name__)

_LEAF_TYPES = (
    type(None), bool, int, float, complex, str, bytes, frozenset, range, slice,
    datetime.date, datetime.time, datetime.timedelta, datetime.tzinfo,
    Decimal, Fraction, Enum, re.Pattern, type, types.ModuleType,
)

# Sequences whose elements can themselves be wrappers
_SEARCHABLE_SEQUENCES = (list, collections.deque)

_MAPPING_KINDS = (CollectionKind.MAPPING, CollectionKind.WEAK_MAPPING)


def is_leaf(value: Any) -> bool:
    """Values that are returned as is: immutable scalars and callables."""
    return isinstance(value, _LEAF_TYPES) or callable(value)


def _public(value: Any) -> Any:
    return None if value is MISSING else value


class Observer:
    """Interception engine for one observed root."""

    def __init__(self, root: Any, on_change: Callable[..., Any], config: ObserverConfig):
        self.root = root
        self.config = config
        self.cache = ProxyCache()
        self.tracker = SnapshotStack(track_changes=config.on_validate is not None)
        self._on_change = on_change
        self._root_path = paths.root(config.path_as_list)

    def root_proxy(self) -> ObservedProxy:
        return self.cache.get_proxy(self.root, self._root_path, self._make_proxy)

    def _make_proxy(self, value: Any) -> ObservedProxy:
        return ObservedProxy(value, self)

    def unwrap(self, value: Any) -> Any:
        """Own wrappers back to raw values; anything else untouched."""
        if isinstance(value, ObservedProxy) and value._self_observer is self:
            return value.__wrapped__
        return value

    # --- read ----------------------------------------------------------------

    def prepare_value(self, value: Any, owner: Any, key: Any,
                      base_path: Optional[Path] = None, attribute: bool = False) -> Any:
        """Wrap a value read from ``owner[key]`` (or ``owner.key``) when it should be observed."""
        if isinstance(value, ObservedProxy) and value._self_observer is self:
            value = value.__wrapped__

        if is_leaf(value) or self.cache.is_unsubscribed:
            return value
        if self.config.shallow and not self.tracker.is_cloning:
            return value
        if self.config.is_ignored_key(key):
            return value
        if attribute and self.cache.is_get_invariant(owner, key):
            return value
        if self.config.ignore_detached and self.cache.is_detached(owner, self.root):
            return value

        if base_path is None:
            base_path = self.cache.get_path(owner)
            if base_path is None:
                return value

        child_path = paths.concat(base_path, key)
        existing = self.cache.get_path(value)
        if existing is not None and paths.is_descendant(child_path, existing):
            # A reference back to an ancestor keeps the ancestor's path
            return self.cache.get_proxy(value, existing, self._make_proxy)
        return self.cache.get_proxy(value, child_path, self._make_proxy)

    def get_attribute(self, proxy: ObservedProxy, name: str) -> Any:
        owner = proxy.__wrapped__
        value = getattr(owner, name)
        if self.cache.is_unsubscribed:
            return value
        if getattr(value, '__self__', None) is owner and callable(value):
            return self._bind_method(proxy, owner, name, value)
        return self.prepare_value(value, owner, name, attribute=True)

    def get_item(self, proxy: ObservedProxy, key: Any) -> Any:
        owner = proxy.__wrapped__
        key = self.unwrap(key)
        if self.cache.is_unsubscribed:
            return owner[key]

        # defaultdict and friends create the key on first read
        created = isinstance(owner, Mapping) and key not in owner
        value = owner[key]
        if created and key in owner:
            self._notify_owner(owner, key, value, MISSING, None)

        if isinstance(key, slice):
            return value
        return self.prepare_value(value, owner, self._normalize_key(owner, key))

    def iterate(self, proxy: ObservedProxy, reverse: bool = False) -> Iterator[Any]:
        owner = proxy.__wrapped__
        raw = reversed(owner) if reverse else iter(owner)
        if self.cache.is_unsubscribed or (self.config.shallow and not self.tracker.is_cloning):
            return raw

        kind = kind_of(owner)
        indexed = kind is CollectionKind.SEQUENCE or isinstance(owner, tuple)
        if kind is CollectionKind.OBJECT and not indexed:
            return raw

        base_path = self.cache.get_path(owner)
        if base_path is None:
            return raw
        if indexed:
            return self._iterate_indexed(owner, raw, base_path, reverse)
        return self.wrap_iterator(raw, owner, base_path, 'keys')

    def _iterate_indexed(self, owner: Any, raw: Iterator[Any], base_path: Path, reverse: bool) -> Iterator[Any]:
        length = len(owner)
        for offset, value in enumerate(raw):
            index = length - 1 - offset if reverse else offset
            yield self.prepare_value(value, owner, index, base_path)

    def wrap_iterator(self, raw: Iterator[Any], owner: Any, base_path: Path,
                      mode: str, reverse: bool = False) -> Iterator[Any]:
        """Wrap what a mapping/set iterator yields.

        ``keys`` mode yields each element keyed by itself, ``items`` yields
        (key, value) pairs keyed by the key, and ``values`` walks the owner's
        keys alongside to know where each value lives.
        """
        if mode == 'items':
            for key, value in raw:
                yield (self.prepare_value(key, owner, key, base_path),
                       self.prepare_value(value, owner, key, base_path))
        elif mode == 'values':
            keys = owner.keys()
            keys = reversed(keys) if reverse else iter(keys)
            for key, value in zip(keys, raw):
                yield self.prepare_value(value, owner, key, base_path)
        else:
            for key in raw:
                yield self.prepare_value(key, owner, key, base_path)

    def contains(self, proxy: ObservedProxy, item: Any) -> bool:
        owner = proxy.__wrapped__
        if not self.cache.is_unsubscribed and isinstance(owner, _SEARCHABLE_SEQUENCES):
            return self._search(owner, '__contains__', (item,))
        return self.unwrap(item) in owner

    # --- write / delete ----------------------------------------------------------

    def set_attribute(self, proxy: ObservedProxy, name: str, value: Any) -> None:
        self._set(proxy, name, value, attribute=True)

    def set_item(self, proxy: ObservedProxy, key: Any, value: Any) -> None:
        owner = proxy.__wrapped__
        key = self.unwrap(key)
        if not self.cache.is_unsubscribed and brackets_item_writes(kind_of(owner), key):
            self.call_method(proxy, '__setitem__', owner.__setitem__, (key, value), {})
            return
        self._set(proxy, self._normalize_key(owner, key), value, attribute=False)

    def _set(self, proxy: ObservedProxy, key: Any, value: Any, attribute: bool) -> None:
        owner = proxy.__wrapped__
        value = self.unwrap(value)
        if self.cache.is_unsubscribed:
            self.cache.set_property(owner, key, value, owner, attribute)
            return

        previous = self._read(owner, key, attribute)
        if previous is not MISSING and self.config.equals(previous, value):
            return
        if not self._validate(owner, key, value, previous, None):
            logger.debug(f"Write to {key!r} vetoed by validator")
            return

        self.cache.set_property(owner, key, value, proxy, attribute)
        current = self._read(owner, key, attribute)
        if current is MISSING:
            current = value

        self._notify_owner(owner, key, current, previous, None)
        self._forget_replaced(owner, key, previous)

    def delete_attribute(self, proxy: ObservedProxy, name: str) -> None:
        self._delete(proxy, name, attribute=True)

    def delete_item(self, proxy: ObservedProxy, key: Any) -> None:
        owner = proxy.__wrapped__
        key = self.unwrap(key)
        if not self.cache.is_unsubscribed and brackets_item_deletes(kind_of(owner)):
            self.call_method(proxy, '__delitem__', owner.__delitem__, (key,), {})
            return
        self._delete(proxy, key, attribute=False)

    def _delete(self, proxy: ObservedProxy, key: Any, attribute: bool) -> None:
        owner = proxy.__wrapped__
        if self.cache.is_unsubscribed:
            self.cache.delete_property(owner, key, attribute)
            return

        previous = self._read(owner, key, attribute)
        if previous is MISSING:
            # Nothing to report; the owner raises as it normally would
            self.cache.delete_property(owner, key, attribute)
            return
        if not self._validate(owner, key, None, previous, None):
            logger.debug(f"Delete of {key!r} vetoed by validator")
            return

        self.cache.delete_property(owner, key, attribute)
        self._notify_owner(owner, key, None, previous, None)
        self._forget_replaced(owner, key, previous)

    def define_property(self, proxy: ObservedProxy, key: Any, value: Any) -> bool:
        """Store ``value`` on the owner itself, bypassing any class-level setter."""
        owner = proxy.__wrapped__
        value = self.unwrap(value)
        attribute = kind_of(owner) is CollectionKind.OBJECT and not isinstance(owner, Mapping)
        if self.cache.is_unsubscribed:
            return self.cache.define_property(owner, key, value, attribute)

        previous = self._read(owner, key, attribute)
        if attribute:
            unchanged = self.cache.is_same_descriptor(owner, key, value)
        else:
            unchanged = previous is value
        if unchanged:
            return True

        if not self._validate(owner, key, value, previous, None):
            logger.debug(f"Redefinition of {key!r} vetoed by validator")
            return False

        self.cache.define_property(owner, key, value, attribute)

        resolved = value
        if attribute and self.cache.get_descriptor(owner, key).accessor:
            try:
                resolved = getattr(owner, key)
            except Exception as e:
                logger.debug(f"Getter for redefined {key!r} raised {type(e).__name__}; reporting None")
                resolved = None

        self._notify_owner(owner, key, resolved, previous, None)
        self._forget_replaced(owner, key, previous)
        return True

    @staticmethod
    def _read(owner: Any, key: Any, attribute: bool) -> Any:
        if attribute:
            try:
                return getattr(owner, key)
            except AttributeError:
                return MISSING
        if isinstance(owner, Mapping):
            return owner.get(key, MISSING)
        try:
            return owner[key]
        except (IndexError, KeyError):
            return MISSING

    @staticmethod
    def _normalize_key(owner: Any, key: Any) -> Any:
        if isinstance(key, int) and not isinstance(key, bool) and key < 0:
            if kind_of(owner) is CollectionKind.SEQUENCE or isinstance(owner, tuple):
                normalized = key + len(owner)
                if normalized >= 0:
                    return normalized
        return key

    def _forget_replaced(self, owner: Any, key: Any, previous: Any) -> None:
        """Drop paths that ran through a value that was just overwritten or deleted."""
        if previous is MISSING or is_leaf(previous) or self.cache.is_unsubscribed:
            return
        owner_paths = self.cache.get_all_paths(owner) or []
        self.cache.forget_paths_under([paths.concat(owner_path, key) for owner_path in owner_paths])

    # --- methods -------------------------------------------------------------------

    def _bind_method(self, proxy: ObservedProxy, owner: Any, name: str, method: Any) -> Any:
        """Decide what a method read off a wrapper turns into.

        Known collection methods and configured ``bracket_methods`` are
        intercepted. Other Python-level methods are rebound to the wrapper so
        the field writes they make are observed. Builtin methods pass through.
        """
        if name in self.config.bracket_methods or is_handled_method(kind_of(owner), name):
            return self._intercept(proxy, name, method)
        func = getattr(method, '__func__', None)
        if isinstance(func, types.FunctionType):
            return types.MethodType(func, proxy)
        return method

    def _intercept(self, proxy: ObservedProxy, name: str, method: Any) -> Callable[..., Any]:
        @functools.wraps(method)
        def intercepted(*args, **kwargs):
            return self.call_method(proxy, name, method, args, kwargs)
        return intercepted

    def call_method(self, proxy: ObservedProxy, name: str, method: Any,
                    args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> Any:
        owner = proxy.__wrapped__
        raw_args = tuple(self.unwrap(arg) for arg in args)
        raw_kwargs = {key: self.unwrap(value) for key, value in kwargs.items()}
        if self.cache.is_unsubscribed:
            return method(*raw_args, **raw_kwargs)

        kind = kind_of(owner)
        if name in SEARCH_METHODS and isinstance(owner, _SEARCHABLE_SEQUENCES):
            return self._search(owner, name, args)
        if is_read_only(kind, name) and name not in self.config.bracket_methods:
            return self._wrap_result(owner, kind, name, raw_args, method(*raw_args, **raw_kwargs))
        return self._run_bracketed(proxy, owner, kind, name, method, args, kwargs, raw_args, raw_kwargs)

    def _run_bracketed(self, proxy: ObservedProxy, owner: Any, kind: CollectionKind, name: str, method: Any,
                       args: Tuple[Any, ...], kwargs: Dict[str, Any],
                       raw_args: Tuple[Any, ...], raw_kwargs: Dict[str, Any]) -> Any:
        apply_path = self.cache.get_path(owner)
        if apply_path is None:
            return method(*raw_args, **raw_kwargs)

        self.tracker.start(owner, apply_path, name, raw_args)
        try:
            if is_handled_method(kind, name):
                result = method(*raw_args, **raw_kwargs)
            else:
                # Configured custom method: run against the wrapper so its writes are recorded
                func = getattr(method, '__func__', None)
                if isinstance(func, types.FunctionType):
                    result = func(proxy, *args, **kwargs)
                else:
                    result = method(*raw_args, **raw_kwargs)
            changed = self.tracker.is_changed(owner)
        finally:
            snapshot = self.tracker.stop()
        previous = snapshot.clone

        result = self._wrap_result(owner, kind, name, raw_args, result)
        if not changed:
            return result

        description = None
        if self.config.wants_details(name):
            description = OperationDescription(name, raw_args, raw_kwargs, result)

        if self.tracker.is_cloning:
            # Nested call: fold the change into the enclosing bracket
            self._forget_moved(owner, kind, previous)
            self._handle_change(paths.initial(apply_path), paths.last(apply_path), owner, previous, description)
        elif self._validate(owner, None, owner, previous, description):
            self._forget_moved(owner, kind, previous)
            self._notify_owner(owner, None, owner, previous, description)
        else:
            logger.debug(f"Call to {name}() vetoed by validator; rolling back")
            self.tracker.undo(snapshot, owner)
        return result

    def _forget_moved(self, owner: Any, kind: CollectionKind, previous: Any) -> None:
        """Drop paths through children an aggregate call removed or shifted to another key."""
        if kind is CollectionKind.SEQUENCE:
            common = min(len(previous), len(owner))
            first = next((index for index, (before, after) in enumerate(zip(previous, owner))
                          if before is not after), common)
            stale = range(first, max(len(previous), len(owner)))
        elif kind is CollectionKind.MAPPING:
            stale = [key for key, before in previous.items() if owner.get(key, MISSING) is not before]
        elif kind is CollectionKind.SET:
            stale = [element for element in previous if element not in owner]
        else:
            return
        owner_paths = self.cache.get_all_paths(owner)
        if owner_paths and stale:
            self.cache.forget_child_paths(owner_paths, stale)

    def _wrap_result(self, owner: Any, kind: CollectionKind, name: str, raw_args: Tuple[Any, ...], result: Any) -> Any:
        if kind not in _MAPPING_KINDS:
            return result
        if name in ITERATOR_METHODS:
            base_path = self.cache.get_path(owner)
            if base_path is None:
                return result
            return ObservedView(result, self, owner, base_path, name)
        if name in ('get', 'setdefault') and raw_args and raw_args[0] in owner:
            return self.prepare_value(result, owner, raw_args[0])
        return result

    def call_in_place(self, proxy: ObservedProxy, name: str, other: Any) -> Any:
        owner = proxy.__wrapped__
        method = getattr(owner, name, None)
        if method is None:
            return NotImplemented

        if self.cache.is_unsubscribed:
            result = method(self.unwrap(other))
        elif name in self.config.bracket_methods or is_handled_method(kind_of(owner), name):
            result = self.call_method(proxy, name, method, (other,), {})
        else:
            result = self._bind_method(proxy, owner, name, method)(self.unwrap(other))
        return proxy if result is owner else result

    def _search(self, owner: Any, name: str, args: Tuple[Any, ...]) -> Any:
        """``index``/``count``/``in`` that match an element by wrapper or by the value it wraps."""
        item = args[0]
        target = self.unwrap(item)
        start, stop = 0, len(owner)
        if name == 'index' and len(args) > 1:
            bounds = slice(args[1], args[2] if len(args) > 2 else None)
            start, stop, _ = bounds.indices(len(owner))

        hits = 0
        for index in range(start, stop):
            element = owner[index]
            if element is item or element is target or self.unwrap(element) is target or element == target:
                if name == 'index':
                    return index
                if name == '__contains__':
                    return True
                hits += 1

        if name == 'index':
            raise ValueError(f"{item!r} is not in {type(owner).__name__}")
        if name == '__contains__':
            return False
        return hits

    # --- validation and notification ----------------------------------------------

    def _validate(self, owner: Any, key: Any, value: Any, previous: Any,
                  description: Optional[OperationDescription]) -> bool:
        on_validate = self.config.on_validate
        if on_validate is None or self.tracker.is_cloning:
            return True
        owner_path = self.cache.get_path(owner)
        if owner_path is None:
            return True
        accepted = on_validate(paths.concat(owner_path, key), _public(value), _public(previous), description)
        return accepted is True

    def _notify_owner(self, owner: Any, key: Any, value: Any, previous: Any,
                      description: Optional[OperationDescription]) -> None:
        """Report a change to ``owner[key]`` at every path ``owner`` is known at."""
        if self.cache.is_unsubscribed or self.config.is_ignored_key(key):
            return
        if self.config.ignore_detached and self.cache.is_detached(owner, self.root):
            logger.debug(f"Suppressed change to {key!r} on a detached value")
            return

        all_paths = self.cache.get_all_paths(owner)
        if not all_paths:
            return
        if self.config.notify_all_aliases and not self.tracker.is_cloning:
            targets = all_paths
        else:
            targets = [self.cache.get_path(owner)]

        for change_path in targets:
            if self.cache.is_unsubscribed:
                break
            self._handle_change(change_path, key, value, previous, description)

    def _handle_change(self, change_path: Path, key: Any, value: Any, previous: Any,
                       description: Optional[OperationDescription]) -> None:
        if self.tracker.is_cloning and self.tracker.is_part_of_clone(change_path):
            self.tracker.update(change_path, key, previous)
            return
        self._on_change(paths.concat(change_path, key), _public(value), _public(previous), description)

    # --- lifecycle -------------------------------------------------------------------

    def unsubscribe(self, proxy: ObservedProxy) -> Any:
        if self.cache.is_unsubscribed:
            return proxy.__wrapped__
        if proxy.__wrapped__ is not self.root:
            logger.warning(f"unsubscribe() ignored for {type(proxy.__wrapped__).__name__} wrapper; "
                           f"only the root wrapper ends observation")
            return proxy
        self.cache.unsubscribe()
        logger.debug(f"Stopped observing {type(self.root).__name__} root")
        return self.root


def observe(value: Any, on_change: Callable[..., Any], config: Optional[ObserverConfig] = None,
            **options: Any) -> Any:
    """Wrap ``value`` so every mutation reachable through it is reported.

    Args:
        value: Root of the object graph to observe.
        on_change: Called as ``on_change(path, value, previous, description)``.
        config: Options; keyword ``options`` override its fields.

    Returns:
        A wrapper that behaves like ``value``.

    Example:
        state = observe({'todos': []}, print)
        state['todos'].append('write docs')
        # prints: todos ['write docs'] [] None
    """
    if isinstance(value, ObservedProxy):
        return value
    if is_leaf(value):
        raise TypeError(f"cannot observe immutable {type(value).__name__} value")

    if config is None:
        config = ObserverConfig(**options)
    elif options:
        config = dataclasses.replace(config, **options)

    return Observer(value, on_change, config).root_proxy()


def unwrap(value: Any) -> Any:
    """Underlying value of a wrapper or wrapped view; anything else unchanged."""
    if isinstance(value, (ObservedProxy, ObservedView)):
        return value.__wrapped__
    return value


def unsubscribe(value: Any) -> Any:
    """Stop observing the root ``value`` wraps and return the raw root."""
    if isinstance(value, ObservedProxy):
        return value._self_observer.unsubscribe(value)
    return value


def define_property(target: Any, key: Any, value: Any) -> bool:
    """Redefine ``key`` on ``target`` directly, skipping class-level setters.

    Returns False when the redefinition was vetoed.
    """
    if isinstance(target, ObservedProxy):
        return target._self_observer.define_property(target, key, value)
    if kind_of(target) is CollectionKind.OBJECT and not isinstance(target, Mapping):
        return ProxyCache().define_property(target, key, value, attribute=True)
    target[key] = value
    return True


def is_observed(value: Any) -> bool:
    return isinstance(value, ObservedProxy)


def path_of(value: Any) -> Optional[Path]:
    """Primary path of a wrapper within its root; None when unknown."""
    if not isinstance(value, ObservedProxy):
        return None
    return value._self_observer.cache.get_path(value.__wrapped__)
