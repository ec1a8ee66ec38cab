"""
Identity-to-wrapper cache for one observed root.

Maps every reached value to the paths it is known at and to its single
canonical wrapper. Records live in an arena keyed by ``id(value)``:

- weak-referenceable values are held weakly and their record disappears
  with them;
- values that cannot be weakly referenced (``list``, ``dict``, ...) are
  anchored while they are reachable through an observed location, and
  released when an observed delete, overwrite or aggregate removal drops
  their last path. A released record then lives only as long as someone
  holds its wrapper.

The cache is owned by exactly one root and is torn down on unsubscribe,
after which every operation is a plain pass-through.
"""
import logging
import types
import weakref
from dataclasses import dataclass, field, fields as dataclass_fields, is_dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from objectwatch import path as paths
from objectwatch.path import Path

logger = logging.getLogger(__name__)


class _Missing:
    """Sentinel for an absent key or attribute."""
    __slots__ = ()

    def __repr__(self):
        return 'MISSING'

    def __bool__(self):
        return False


MISSING = _Missing()

# C-level slots type-check their instance, so setters there never see the wrapper
_RAW_DESCRIPTOR_TYPES = (types.MemberDescriptorType, types.GetSetDescriptorType)


@dataclass(frozen=True)
class AttributeDescriptor:
    """Snapshot of how an attribute is stored on its owner."""
    value: Any  # instance-level value, MISSING when only the class provides it
    exists: bool
    writable: bool
    accessor: bool  # a class-level data descriptor (e.g. property) serves reads


@dataclass(eq=False)
class ProxyRecord:
    """Arena entry for one reached value."""
    paths: List[Path] = field(default_factory=list)
    primary: Optional[Path] = None
    anchor: Any = None
    value_ref: Optional[weakref.ref] = None
    proxy_ref: Optional[weakref.ref] = None
    detached: bool = False
    descriptors: Dict[Any, AttributeDescriptor] = field(default_factory=dict)

    def target(self) -> Any:
        if self.anchor is not None:
            return self.anchor
        if self.value_ref is not None:
            return self.value_ref()
        proxy = self.proxy_ref() if self.proxy_ref is not None else None
        return proxy.__wrapped__ if proxy is not None else None


def class_attribute(cls: type, name: str) -> Any:
    """Find ``name`` in the class MRO without invoking descriptors."""
    for klass in cls.__mro__:
        namespace = vars(klass)
        if name in namespace:
            return namespace[name]
    return MISSING


def dispatches_to_receiver(class_attr: Any) -> bool:
    """True for a Python-level setter that should run with the wrapper as ``self``."""
    if class_attr is MISSING or isinstance(class_attr, _RAW_DESCRIPTOR_TYPES):
        return False
    return hasattr(type(class_attr), '__set__')


def is_frozen_dataclass(value: Any) -> bool:
    return is_dataclass(value) and not isinstance(value, type) and value.__dataclass_params__.frozen


def _instance_dict(owner: Any) -> Optional[dict]:
    try:
        namespace = vars(owner)
    except TypeError:
        return None
    return namespace if isinstance(namespace, dict) else None


def describe_attribute(owner: Any, name: str) -> AttributeDescriptor:
    class_attr = class_attribute(type(owner), name)
    accessor = class_attr is not MISSING and hasattr(type(class_attr), '__set__') \
        and hasattr(type(class_attr), '__get__')

    namespace = _instance_dict(owner)
    if namespace is not None:
        value = namespace.get(name, MISSING)
    elif accessor and isinstance(class_attr, _RAW_DESCRIPTOR_TYPES):
        value = getattr(owner, name, MISSING)
    else:
        value = MISSING

    writable = True
    if isinstance(class_attr, property):
        writable = class_attr.fset is not None
    if is_frozen_dataclass(owner) and name in {f.name for f in dataclass_fields(owner)}:
        writable = False

    return AttributeDescriptor(
        value=value,
        exists=value is not MISSING or class_attr is not MISSING,
        writable=writable,
        accessor=accessor,
    )


class ProxyCache:
    """Per-root registry of wrappers, paths and attribute descriptors.

    Example:
        cache = ProxyCache()
        proxy = cache.get_proxy(todos, 'todos', make_wrapper)
        cache.get_path(todos)          # 'todos'
        cache.unsubscribe()
        cache.get_path(todos)          # None
    """

    def __init__(self):
        self._records: Dict[int, ProxyRecord] = {}
        self.is_unsubscribed: bool = False

    def __len__(self) -> int:
        return len(self._records)

    # --- arena ---------------------------------------------------------

    def _lookup(self, value: Any) -> Optional[ProxyRecord]:
        if self.is_unsubscribed:
            return None
        record = self._records.get(id(value))
        if record is not None and record.target() is value:
            return record
        return None

    def _create(self, value: Any) -> ProxyRecord:
        key = id(value)
        record = ProxyRecord()
        try:
            record.value_ref = weakref.ref(value, lambda _ref: self._discard(key, record))
        except TypeError:
            record.anchor = value
        self._records[key] = record
        return record

    def _discard(self, key: int, record: ProxyRecord) -> None:
        if self._records.get(key) is record:
            del self._records[key]

    def _on_proxy_collected(self, key: int, record: ProxyRecord, ref: weakref.ref) -> None:
        if record.proxy_ref is not ref:
            return
        record.proxy_ref = None
        if record.anchor is None and record.value_ref is None:
            self._discard(key, record)

    # --- wrappers and paths ----------------------------------------------

    def get_proxy(self, value: Any, path: Path, factory: Callable[[Any], Any]) -> Any:
        """Record ``path`` for ``value`` and return its canonical wrapper."""
        if self.is_unsubscribed:
            return value

        record = self._lookup(value)
        if record is None:
            record = self._create(value)
        elif record.detached:
            record.paths = []
            record.detached = False
            if record.value_ref is None:
                record.anchor = value

        if path not in record.paths:
            record.paths.append(path)
        record.primary = path

        proxy = record.proxy_ref() if record.proxy_ref is not None else None
        if proxy is None:
            proxy = factory(value)
            key = id(value)
            record.proxy_ref = weakref.ref(proxy, lambda ref: self._on_proxy_collected(key, record, ref))

        return proxy

    def get_path(self, value: Any) -> Optional[Path]:
        """Primary (most recently navigated) path, or None when unknown."""
        record = self._lookup(value)
        return record.primary if record is not None else None

    def get_all_paths(self, value: Any) -> Optional[List[Path]]:
        record = self._lookup(value)
        return list(record.paths) if record is not None else None

    def is_detached(self, value: Any, root: Any) -> bool:
        """True if following the recorded path from ``root`` no longer leads to ``value``."""
        value_path = self.get_path(value)
        if value_path is None:
            return True
        return paths.get(root, value_path) is not value

    def forget_paths_under(self, prefixes: Sequence[Path]) -> None:
        """Drop every recorded path at or below one of ``prefixes``.

        Called after an observed delete or overwrite. A value left without
        any path keeps its last one so a held wrapper can still report where
        it used to live, and loses its anchor.
        """
        if self.is_unsubscribed or not prefixes:
            return
        self._forget(lambda p: any(paths.is_sub_path(p, prefix) for prefix in prefixes))

    def forget_child_paths(self, parents: Sequence[Path], keys: Iterable[Any]) -> None:
        """Drop every recorded path that runs through ``parent[key]`` for one of ``keys``.

        Called after an aggregate call removed or moved children, e.g. every
        index from the first shifted one after ``list.pop(0)``.
        """
        if self.is_unsubscribed or not parents:
            return
        as_list = isinstance(parents[0], list)
        steps = set(keys) if as_list else {str(key) for key in keys}
        if not steps:
            return

        def through_stale_child(p: Path) -> bool:
            for parent in parents:
                if paths.is_descendant(p, parent) and next(paths.walk(paths.after(p, parent))) in steps:
                    return True
            return False

        self._forget(through_stale_child)

    def _forget(self, is_stale: Callable[[Path], bool]) -> None:
        released = 0
        for key, record in list(self._records.items()):
            kept = [p for p in record.paths if not is_stale(p)]
            if len(kept) == len(record.paths):
                continue
            if kept:
                record.paths = kept
                if record.primary not in kept:
                    record.primary = kept[-1]
                continue

            record.paths = [record.primary]
            record.detached = True
            record.anchor = None
            if record.value_ref is None and (record.proxy_ref is None or record.proxy_ref() is None):
                del self._records[key]
                released += 1
        if released:
            logger.debug(f"Released {released} detached value(s)")

    # --- descriptors -----------------------------------------------------

    def get_descriptor(self, owner: Any, name: str) -> AttributeDescriptor:
        record = self._lookup(owner)
        if record is None:
            return describe_attribute(owner, name)
        descriptor = record.descriptors.get(name)
        if descriptor is None:
            descriptor = describe_attribute(owner, name)
            record.descriptors[name] = descriptor
        return descriptor

    def _refresh_descriptor(self, owner: Any, name: str) -> None:
        record = self._lookup(owner)
        if record is not None:
            record.descriptors[name] = describe_attribute(owner, name)

    def is_get_invariant(self, owner: Any, name: str) -> bool:
        """Read-only attributes (no setter, frozen dataclass field) are returned raw."""
        descriptor = self.get_descriptor(owner, name)
        return descriptor.exists and not descriptor.writable

    def is_same_descriptor(self, owner: Any, name: str, value: Any) -> bool:
        descriptor = self.get_descriptor(owner, name)
        return descriptor.value is not MISSING and descriptor.value is value

    # --- mutation --------------------------------------------------------

    def set_property(self, owner: Any, key: Any, value: Any, receiver: Any, attribute: bool) -> bool:
        """Write ``value``; a Python-level setter runs with ``receiver`` as ``self``."""
        if not attribute:
            owner[key] = value
            return True

        class_attr = class_attribute(type(owner), key)
        if dispatches_to_receiver(class_attr):
            class_attr.__set__(receiver, value)
        else:
            setattr(owner, key, value)

        if not self.is_unsubscribed:
            self._refresh_descriptor(owner, key)
        return True

    def delete_property(self, owner: Any, key: Any, attribute: bool) -> bool:
        if attribute:
            delattr(owner, key)
            record = self._lookup(owner)
            if record is not None:
                record.descriptors.pop(key, None)
        else:
            del owner[key]
        return True

    def define_property(self, owner: Any, key: Any, value: Any, attribute: bool) -> bool:
        """Store ``value`` on the instance itself, bypassing class-level setters."""
        if not attribute:
            owner[key] = value
            return True

        namespace = _instance_dict(owner)
        if namespace is not None:
            namespace[key] = value
        else:
            object.__setattr__(owner, key, value)

        if not self.is_unsubscribed:
            self._refresh_descriptor(owner, key)
        return True

    def unsubscribe(self) -> None:
        """Drop all state; every later call becomes a pass-through."""
        if self.is_unsubscribed:
            return
        logger.debug(f"Unsubscribing cache with {len(self._records)} record(s)")
        self._records.clear()
        self.is_unsubscribed = True
