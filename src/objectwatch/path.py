"""
Path model for locations inside an observed object graph.

A path is either a dotted string (``"todos.0.title"``) or a list of keys
(``["todos", 0, "title"]``). The representation is picked once per observed
root and never mixed. The root location is ``""`` or ``[]``.

All functions are pure and dispatch on the representation of the path
they receive.
"""
from collections.abc import Mapping, Sequence
from typing import Any, Iterator, List, Optional, Union

PATH_SEPARATOR = '.'

Path = Union[str, List[Any]]


def root(as_list: bool = False) -> Path:
    """Return the root path in the requested representation."""
    return [] if as_list else ''


def is_absent_key(key: Any) -> bool:
    return key is None or (isinstance(key, str) and key == '')


def concat(path: Path, key: Any) -> Path:
    """Append ``key`` to ``path``. Appending an absent key returns a copy of ``path``."""
    if isinstance(path, list):
        path = list(path)
        if not is_absent_key(key):
            path.append(key)
        return path

    if is_absent_key(key):
        return path

    if path != '':
        path += PATH_SEPARATOR

    return path + str(key)


def after(path: Path, sub_path: Path) -> Path:
    """Return the part of ``path`` that follows the prefix ``sub_path``."""
    if isinstance(path, list):
        return path[len(sub_path):]

    if sub_path == '':
        return path

    return path[len(sub_path) + 1:]


def initial(path: Path) -> Path:
    """All but the last key. The root's initial is the root."""
    if isinstance(path, list):
        return path[:-1]

    index = path.rfind(PATH_SEPARATOR)
    if index == -1:
        return ''

    return path[:index]


def last(path: Path) -> Any:
    """Last key of ``path``; the empty key for the root."""
    if isinstance(path, list):
        return path[-1] if path else ''

    index = path.rfind(PATH_SEPARATOR)
    if index == -1:
        return path

    return path[index + 1:]


def walk(path: Path) -> Iterator[Any]:
    """Yield the keys of ``path`` from the root outwards.

    The string form is scanned separator by separator rather than split up
    front, so a caller that stops early never pays for the rest.
    """
    if isinstance(path, list):
        yield from path
        return

    if path == '':
        return

    position = 0
    while True:
        index = path.find(PATH_SEPARATOR, position)
        if index == -1:
            yield path[position:]
            return
        yield path[position:index]
        position = index + 1


def child(container: Any, key: Any) -> Any:
    if isinstance(container, Mapping):
        if key in container:
            return container[key]
        if isinstance(key, str):
            # String paths stringify non-string mapping keys
            for candidate in container:
                if not isinstance(candidate, str) and str(candidate) == key:
                    return container[candidate]
        return None

    if isinstance(container, Sequence) and not isinstance(container, (str, bytes)):
        if isinstance(key, str):
            try:
                key = int(key)
            except ValueError:
                return None
        try:
            return container[key]
        except (IndexError, TypeError):
            return None

    if isinstance(key, str):
        return getattr(container, key, None)

    return None


def get(obj: Any, path: Path) -> Any:
    """Resolve ``path`` against a raw object graph; ``None`` when a key is missing."""
    for key in walk(path):
        if obj is None:
            return None
        obj = child(obj, key)
    return obj


def is_sub_path(path: Path, sub_path: Path) -> bool:
    """True if ``path`` equals ``sub_path`` or extends it at a key boundary."""
    if isinstance(path, list):
        if len(path) < len(sub_path):
            return False
        return all(path[i] == key for i, key in enumerate(sub_path))

    if len(path) < len(sub_path):
        return False

    if path == sub_path:
        return True

    if sub_path == '':
        return True

    return path.startswith(sub_path) and path[len(sub_path)] == PATH_SEPARATOR


def is_root_path(path: Optional[Path]) -> bool:
    if isinstance(path, list):
        return len(path) == 0
    return path == ''


def is_descendant(path: Path, ancestor: Path) -> bool:
    """True if ``path`` lies strictly below ``ancestor``.

    Used to spot a child reference that closes a cycle on one of its own
    ancestors, e.g. ``group.layers.0.parent.layers.0`` below
    ``group.layers.0.parent``.
    """
    if is_root_path(ancestor):
        return not is_root_path(path)

    return len(path) > len(ancestor) and is_sub_path(path, ancestor)
