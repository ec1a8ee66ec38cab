"""
Aggregate-change tracking for calls that mutate many fields at once.

A bracketed call (``list.sort``, ``dict.update``, ``set.clear``, ...) runs
against the raw collection. Before it starts, the tracker takes a shallow
clone; afterwards it decides with a kind-specific comparator whether one
consolidated change event should fire, and can roll the call back when the
event is vetoed. Brackets nest, so the tracker is a stack.

Snapshot variants (one per ``CollectionKind``):
- ObjectSnapshot: changed when a nested write was recorded
- SequenceSnapshot: length + element equality
- SetSnapshot: size + membership
- MappingSnapshot: size + per-key equality, absent distinct from None
- WeakSetSnapshot / WeakMappingSnapshot: presence of the call's argument
"""
import copy
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Type

from objectwatch import path as paths
from objectwatch.collection_kinds import CERTAIN, CollectionKind, comparator_tag, kind_of
from objectwatch.path import Path
from objectwatch.proxy_cache import MISSING

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldChange:
    """Field write recorded mid-call, replayed in reverse on rollback."""
    path: Path
    key: Any
    previous: Any


def _same(a: Any, b: Any) -> bool:
    return a is b or a == b


def _is_item_container(container: Any) -> bool:
    return kind_of(container) is not CollectionKind.OBJECT


def _item_key(container: Any, key: Any) -> Any:
    if isinstance(key, str) and kind_of(container) is CollectionKind.SEQUENCE:
        return int(key)
    return key


def assign(container: Any, key: Any, value: Any) -> None:
    if _is_item_container(container):
        container[_item_key(container, key)] = value
    else:
        setattr(container, key, value)


def remove(container: Any, key: Any) -> None:
    if _is_item_container(container):
        del container[_item_key(container, key)]
    else:
        delattr(container, key)


def restore_contents(target: Any, source: Any) -> None:
    """Make ``target`` hold what ``source`` holds, keeping ``target``'s identity."""
    kind = kind_of(target)
    if kind is CollectionKind.SEQUENCE:
        try:
            target[:] = source
        except TypeError:
            # deque has no slice assignment
            target.clear()
            target.extend(source)
    elif kind is CollectionKind.SET:
        for element in source:
            if element not in target:
                target.add(element)
        for element in [element for element in target if element not in source]:
            target.discard(element)
    elif kind is CollectionKind.MAPPING:
        for key in [key for key in target if key not in source]:
            del target[key]
        for key, value in source.items():
            if target.get(key, MISSING) is not value:
                target[key] = value
    elif kind is CollectionKind.OBJECT and hasattr(source, '__dict__'):
        vars(target).clear()
        vars(target).update(vars(source))


class ObjectSnapshot:
    """Base snapshot; also the variant for plain composites."""

    kind = CollectionKind.OBJECT

    def __init__(self, value: Any, path: Path, name: str, args: Sequence[Any], track_changes: bool):
        self.path = path
        self.name = name
        self._comparator = comparator_tag(self.kind, name)
        self._is_changed = False
        self._cloned: Dict[int, Any] = {}
        self._restore_source: Any = None
        self.changes: Optional[List[FieldChange]] = [] if track_changes else None
        self.clone = self._take_clone(value)

    def _take_clone(self, value: Any) -> Any:
        return self._shallow_clone(value)

    def _shallow_clone(self, value: Any) -> Any:
        clone = copy.copy(value)
        self._cloned[id(clone)] = clone
        return clone

    def update(self, full_path: Path, key: Any, previous: Any) -> None:
        """Record a write made while the bracketed call was running.

        Nested containers on the way down are cloned on first touch so the
        clone keeps showing the pre-call state.
        """
        change_path = paths.after(full_path, self.path)

        if self.changes is not None and self._restore_source is None:
            self._restore_source = copy.copy(self.clone)

        container = self.clone
        for step in paths.walk(change_path):
            if container is None:
                break
            nested = paths.child(container, step)
            if nested is not None and id(nested) not in self._cloned:
                nested = self._shallow_clone(nested)
                assign(container, step, nested)
            container = nested

        if self.changes is not None:
            self.changes.append(FieldChange(change_path, key, previous))

        if container is not None and not paths.is_absent_key(key):
            if previous is MISSING:
                try:
                    remove(container, key)
                except (KeyError, AttributeError, IndexError):
                    pass
            else:
                assign(container, key, previous)

        self._is_changed = True

    def is_changed(self, value: Any) -> bool:
        if self._comparator is None:
            return self._is_changed
        if self._comparator == CERTAIN:
            return True
        return self._differs(value)

    def _differs(self, value: Any) -> bool:
        return self._is_changed

    def is_path_applicable(self, change_path: Path) -> bool:
        return paths.is_root_path(self.path) or paths.is_sub_path(change_path, self.path)

    def restore(self, target: Any) -> None:
        """Bring ``target``'s own contents back to the pre-call state."""

    def undo(self, target: Any) -> None:
        self.restore(target)
        for change in reversed(self.changes or []):
            container = paths.get(target, change.path)
            if container is None:
                continue
            if paths.is_absent_key(change.key):
                restore_contents(container, change.previous)
            elif change.previous is MISSING:
                remove(container, change.key)
            else:
                assign(container, change.key, change.previous)

    def _pre_call_contents(self) -> Any:
        return self._restore_source if self._restore_source is not None else self.clone


class SequenceSnapshot(ObjectSnapshot):
    kind = CollectionKind.SEQUENCE

    def _differs(self, value: Any) -> bool:
        if self.clone is value:
            return False
        if len(self.clone) != len(value):
            return True
        return any(not _same(before, after) for before, after in zip(self.clone, value))

    def restore(self, target: Any) -> None:
        restore_contents(target, self._pre_call_contents())


class SetSnapshot(ObjectSnapshot):
    kind = CollectionKind.SET

    def _differs(self, value: Any) -> bool:
        if self.clone is value:
            return False
        if len(self.clone) != len(value):
            return True
        return any(element not in value for element in self.clone)

    def restore(self, target: Any) -> None:
        restore_contents(target, self._pre_call_contents())


class MappingSnapshot(ObjectSnapshot):
    kind = CollectionKind.MAPPING

    def _differs(self, value: Any) -> bool:
        if self.clone is value:
            return False
        if len(self.clone) != len(value):
            return True
        for key, before in self.clone.items():
            after = value.get(key, MISSING)
            # A key present with None differs from an absent key
            if after is MISSING or not _same(before, after):
                return True
        return False

    def restore(self, target: Any) -> None:
        restore_contents(target, self._pre_call_contents())


_WEAK_SET_ARGUMENT_METHODS = frozenset({'add', 'discard', 'remove'})
_WEAK_MAPPING_ARGUMENT_METHODS = frozenset({'__setitem__', '__delitem__', 'pop', 'setdefault'})


class WeakSetSnapshot(ObjectSnapshot):
    """Weak sets cannot be cloned without keeping members alive.

    Only the call's argument is tracked; the event's previous value is None.
    """

    kind = CollectionKind.WEAK_SET

    def __init__(self, value: Any, path: Path, name: str, args: Sequence[Any], track_changes: bool):
        self._arguments = tuple(args)
        super().__init__(value, path, name, args, track_changes)

    def _take_clone(self, value: Any) -> Any:
        self._size = len(value)
        self._argument = MISSING
        self._had = False
        if self.name in _WEAK_SET_ARGUMENT_METHODS and self._arguments:
            self._argument = self._arguments[0]
            self._had = _weak_contains(value, self._argument)
        return None

    def _differs(self, value: Any) -> bool:
        if len(value) != self._size:
            return True
        if self._argument is MISSING:
            return False
        return _weak_contains(value, self._argument) != self._had

    def restore(self, target: Any) -> None:
        if self._argument is MISSING:
            logger.warning(f"Cannot roll back '{self.name}' on a weak set; only single-member calls are reversible")
            return
        has = _weak_contains(target, self._argument)
        if self._had and not has:
            target.add(self._argument)
        elif not self._had and has:
            target.discard(self._argument)


class WeakMappingSnapshot(ObjectSnapshot):
    """Weak mappings track the key passed to the call."""

    kind = CollectionKind.WEAK_MAPPING

    def __init__(self, value: Any, path: Path, name: str, args: Sequence[Any], track_changes: bool):
        self._arguments = tuple(args)
        super().__init__(value, path, name, args, track_changes)

    def _take_clone(self, value: Any) -> Any:
        self._size = len(value)
        self._key = MISSING
        self._prior = MISSING
        if self.name in _WEAK_MAPPING_ARGUMENT_METHODS and self._arguments:
            self._key = self._arguments[0]
            self._prior = _weak_get(value, self._key)
        return None

    def _differs(self, value: Any) -> bool:
        if len(value) != self._size:
            return True
        if self._key is MISSING:
            return False
        return _weak_get(value, self._key) is not self._prior

    def restore(self, target: Any) -> None:
        if self._key is MISSING:
            logger.warning(f"Cannot roll back '{self.name}' on a weak mapping; only single-key calls are reversible")
            return
        current = _weak_get(target, self._key)
        if self._prior is MISSING and current is not MISSING:
            del target[self._key]
        elif self._prior is not MISSING and current is not self._prior:
            target[self._key] = self._prior


def _weak_contains(collection: Any, item: Any) -> bool:
    try:
        return item in collection
    except TypeError:
        return False


def _weak_get(mapping: Any, key: Any) -> Any:
    try:
        return mapping.get(key, MISSING)
    except TypeError:
        return MISSING


SNAPSHOT_TYPES: Dict[CollectionKind, Type[ObjectSnapshot]] = {
    CollectionKind.OBJECT: ObjectSnapshot,
    CollectionKind.SEQUENCE: SequenceSnapshot,
    CollectionKind.SET: SetSnapshot,
    CollectionKind.MAPPING: MappingSnapshot,
    CollectionKind.WEAK_SET: WeakSetSnapshot,
    CollectionKind.WEAK_MAPPING: WeakMappingSnapshot,
}


class SnapshotStack:
    """Stack of in-flight brackets for one observed root."""

    def __init__(self, track_changes: bool = False):
        self._stack: List[ObjectSnapshot] = []
        self._track_changes = track_changes

    @property
    def is_cloning(self) -> bool:
        return len(self._stack) > 0

    @property
    def depth(self) -> int:
        return len(self._stack)

    def start(self, value: Any, path: Path, name: str, args: Sequence[Any] = ()) -> None:
        snapshot_type = SNAPSHOT_TYPES[kind_of(value)]
        self._stack.append(snapshot_type(value, path, name, args, self._track_changes))
        logger.debug(f"Bracket start: {type(value).__name__}.{name} at {path!r} (depth={len(self._stack)})")

    def update(self, full_path: Path, key: Any, previous: Any) -> None:
        self._stack[-1].update(full_path, key, previous)

    def is_changed(self, value: Any) -> bool:
        return self._stack[-1].is_changed(value)

    def is_part_of_clone(self, change_path: Path) -> bool:
        return self._stack[-1].is_path_applicable(change_path)

    def stop(self) -> ObjectSnapshot:
        """Pop the innermost bracket; its ``clone`` is the event's previous value."""
        snapshot = self._stack.pop()
        logger.debug(f"Bracket stop: {snapshot.name} (depth={len(self._stack)})")
        return snapshot

    def undo(self, snapshot: ObjectSnapshot, target: Any) -> None:
        """Roll ``target`` back to the state ``snapshot`` was taken from."""
        logger.debug(f"Rolling back {snapshot.name} at {snapshot.path!r}")
        snapshot.undo(target)
