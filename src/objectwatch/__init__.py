"""
Deep mutation observation for Python object graphs.

``observe()`` returns a transparent wrapper around a value. The wrapper reads
like the value itself, and every mutation made through it (or through any
wrapper reached from it) is reported to a callback with the exact path of
the change.

Key Features:
- Attribute, item, slice and in-place writes on any reachable value
- Aggregate method calls (``append``, ``sort``, ``update``, ...) reported as one event
- Validation hook that can veto a mutation and roll it back
- Cycle-safe paths and one event per alias of a shared value
- Weak collections, tuples, dataclasses and slotted classes

Quick Start:
    >>> from objectwatch import observe, ChangeLog
    >>>
    >>> log = ChangeLog()
    >>> state = observe({'todos': [], 'filter': 'all'}, log)
    >>>
    >>> state['todos'].append({'title': 'write tests', 'done': False})
    >>> state['todos'][0]['done'] = True
    >>> log.paths()
    ['todos', 'todos.0.done']

Modules:
    - observer: Interception layer and public functions
    - proxy: wrapt-based wrapper types
    - proxy_cache: Identity-to-wrapper cache and attribute descriptors
    - snapshot: Aggregate-change tracker (pre-call clones, rollback)
    - collection_kinds: Supported collection kinds and their method tables
    - path: Path model (dotted strings or key lists)
    - config: ObserverConfig and the default equality
    - change_model: Change event dataclasses
"""

# Observation
from objectwatch.observer import (
    Observer,
    observe,
    unwrap,
    unsubscribe,
    define_property,
    is_observed,
    path_of,
)

# Configuration
from objectwatch.config import ObserverConfig, same_value

# Events
from objectwatch.change_model import ChangeEvent, ChangeLog, OperationDescription

# Kinds
from objectwatch.collection_kinds import CollectionKind, kind_of

__version__ = '0.1.0'

__all__ = [
    # Observation
    'Observer',
    'observe',
    'unwrap',
    'unsubscribe',
    'define_property',
    'is_observed',
    'path_of',
    # Configuration
    'ObserverConfig',
    'same_value',
    # Events
    'ChangeEvent',
    'ChangeLog',
    'OperationDescription',
    # Kinds
    'CollectionKind',
    'kind_of',
]
