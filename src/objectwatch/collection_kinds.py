"""
Supported collection kinds and their method tables.

Every observed composite falls into exactly one ``CollectionKind``. The kind
decides which methods run as a single aggregate change, which are read-only
and pass through, and how the tracker decides whether a call changed
anything. The tables are part of the observable contract: a method missing
from them is not bracketed.

Comparator tags:
- ``CERTAIN``: the method always mutates when it returns normally
- ``DIFF``: compare the pre-call clone against the value after the call
"""
import array
import collections
import weakref
from collections.abc import MutableMapping, MutableSequence, MutableSet
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

CERTAIN = 'certain'
DIFF = 'diff'


class CollectionKind(Enum):
    OBJECT = 'object'
    SEQUENCE = 'sequence'
    SET = 'set'
    MAPPING = 'mapping'
    WEAK_SET = 'weak_set'
    WEAK_MAPPING = 'weak_mapping'


_SEQUENCE_TYPES = (list, collections.deque, bytearray, array.array, MutableSequence)
_WEAK_MAPPING_TYPES = (weakref.WeakKeyDictionary, weakref.WeakValueDictionary)

# Read-only object protocol, shared by every kind
IMMUTABLE_OBJECT_METHODS: FrozenSet[str] = frozenset({
    '__repr__',
    '__str__',
    '__format__',
    '__sizeof__',
})

MUTABLE_SEQUENCE_METHODS: Dict[str, str] = {
    'append': CERTAIN,
    'appendleft': CERTAIN,
    'insert': CERTAIN,
    'pop': CERTAIN,
    'popleft': CERTAIN,
    'remove': CERTAIN,
    'extend': DIFF,
    'extendleft': DIFF,
    'clear': DIFF,
    'reverse': DIFF,
    'rotate': DIFF,
    'sort': DIFF,
    'byteswap': DIFF,
    'frombytes': DIFF,
    'fromlist': DIFF,
    'fromunicode': DIFF,
    '__setitem__': DIFF,
    '__delitem__': DIFF,
    '__iadd__': DIFF,
    '__imul__': DIFF,
}

IMMUTABLE_SEQUENCE_METHODS: FrozenSet[str] = frozenset({
    '__contains__',
    '__len__',
    '__add__',
    'copy',
    'count',
    'index',
    'tolist',
    'tobytes',
    'hex',
    'decode',
})

MUTABLE_SET_METHODS: Dict[str, str] = {
    'remove': CERTAIN,
    'pop': CERTAIN,
    'add': DIFF,
    'discard': DIFF,
    'clear': DIFF,
    'update': DIFF,
    'difference_update': DIFF,
    'intersection_update': DIFF,
    'symmetric_difference_update': DIFF,
    '__ior__': DIFF,
    '__iand__': DIFF,
    '__isub__': DIFF,
    '__ixor__': DIFF,
}

IMMUTABLE_SET_METHODS: FrozenSet[str] = frozenset({
    '__contains__',
    '__len__',
    'copy',
    'union',
    'intersection',
    'difference',
    'symmetric_difference',
    'issubset',
    'issuperset',
    'isdisjoint',
})

MUTABLE_MAPPING_METHODS: Dict[str, str] = {
    'popitem': CERTAIN,
    'pop': DIFF,
    'clear': DIFF,
    'update': DIFF,
    'setdefault': DIFF,
    '__ior__': DIFF,
}

IMMUTABLE_MAPPING_METHODS: FrozenSet[str] = frozenset({
    '__contains__',
    '__len__',
    'copy',
    'get',
    'keys',
    'values',
    'items',
})

# Weak collections track the call's argument; item writes are aggregate calls too
MUTABLE_WEAK_SET_METHODS: Dict[str, str] = {
    name: DIFF for name in ('add', 'discard', 'remove', 'pop', 'clear', 'update')
}

MUTABLE_WEAK_MAPPING_METHODS: Dict[str, str] = {
    name: DIFF for name in ('__setitem__', '__delitem__', 'pop', 'popitem', 'clear', 'update', 'setdefault')
}

IMMUTABLE_WEAK_METHODS: FrozenSet[str] = frozenset({
    '__contains__',
    '__len__',
    'copy',
    'get',
    'keys',
    'values',
    'items',
    'keyrefs',
    'valuerefs',
})

# Iterator-producing methods whose results are wrapped
ITERATOR_METHODS: FrozenSet[str] = frozenset({'keys', 'values', 'items'})

# Sequence search methods answered with wrapper-aware matching
SEARCH_METHODS: FrozenSet[str] = frozenset({'index', 'count', '__contains__'})

_MUTATORS: Dict[CollectionKind, Dict[str, str]] = {
    CollectionKind.OBJECT: {},
    CollectionKind.SEQUENCE: MUTABLE_SEQUENCE_METHODS,
    CollectionKind.SET: MUTABLE_SET_METHODS,
    CollectionKind.MAPPING: MUTABLE_MAPPING_METHODS,
    CollectionKind.WEAK_SET: MUTABLE_WEAK_SET_METHODS,
    CollectionKind.WEAK_MAPPING: MUTABLE_WEAK_MAPPING_METHODS,
}

_READ_ONLY: Dict[CollectionKind, FrozenSet[str]] = {
    CollectionKind.OBJECT: IMMUTABLE_OBJECT_METHODS,
    CollectionKind.SEQUENCE: IMMUTABLE_OBJECT_METHODS | IMMUTABLE_SEQUENCE_METHODS,
    CollectionKind.SET: IMMUTABLE_OBJECT_METHODS | IMMUTABLE_SET_METHODS,
    CollectionKind.MAPPING: IMMUTABLE_OBJECT_METHODS | IMMUTABLE_MAPPING_METHODS,
    CollectionKind.WEAK_SET: IMMUTABLE_OBJECT_METHODS | IMMUTABLE_WEAK_METHODS,
    CollectionKind.WEAK_MAPPING: IMMUTABLE_OBJECT_METHODS | IMMUTABLE_WEAK_METHODS,
}


def kind_of(value: Any) -> CollectionKind:
    """Classify ``value``. Weak collections are checked before their ABCs."""
    if isinstance(value, weakref.WeakSet):
        return CollectionKind.WEAK_SET
    if isinstance(value, _WEAK_MAPPING_TYPES):
        return CollectionKind.WEAK_MAPPING
    if isinstance(value, (set, MutableSet)):
        return CollectionKind.SET
    if isinstance(value, (dict, MutableMapping)):
        return CollectionKind.MAPPING
    if isinstance(value, _SEQUENCE_TYPES):
        return CollectionKind.SEQUENCE
    return CollectionKind.OBJECT


def is_mutator(kind: CollectionKind, name: str) -> bool:
    return name in _MUTATORS[kind]


def is_read_only(kind: CollectionKind, name: str) -> bool:
    return name in _READ_ONLY[kind]


def is_handled_method(kind: CollectionKind, name: str) -> bool:
    return is_mutator(kind, name) or is_read_only(kind, name)


def comparator_tag(kind: CollectionKind, name: str) -> Optional[str]:
    """``CERTAIN``/``DIFF`` for known mutators, ``None`` for anything else."""
    return _MUTATORS[kind].get(name)


def brackets_item_writes(kind: CollectionKind, key: Any) -> bool:
    """Whether ``obj[key] = value`` runs as an aggregate call instead of a keyed write.

    Slice assignment can resize a sequence, and weak collections key on
    objects rather than on path-friendly names.
    """
    if kind is CollectionKind.WEAK_MAPPING:
        return True
    return kind is CollectionKind.SEQUENCE and isinstance(key, slice)


def brackets_item_deletes(kind: CollectionKind) -> bool:
    """Sequence deletions shift later indices, so they are aggregate calls."""
    return kind in (CollectionKind.SEQUENCE, CollectionKind.WEAK_MAPPING)
