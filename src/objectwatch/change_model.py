"""
Change event dataclasses.

``OperationDescription`` is what an event carries when it was raised by a
method call and details are enabled for that method. ``ChangeEvent`` and
``ChangeLog`` are conveniences for consumers that want to keep a history of
what happened instead of reacting inline.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from objectwatch.path import Path


@dataclass(frozen=True)
class OperationDescription:
    """Method call that produced a consolidated change."""
    name: str
    args: Tuple[Any, ...]
    kwargs: Dict[str, Any] = field(default_factory=dict)
    result: Any = None


@dataclass(frozen=True)
class ChangeEvent:
    """One notification, as delivered to ``on_change``."""
    path: Path
    value: Any
    previous: Any
    description: Optional[OperationDescription] = None

    @property
    def operation(self) -> Optional[str]:
        return self.description.name if self.description is not None else None


class ChangeLog:
    """Listener that records every event it receives.

    Example:
        log = ChangeLog()
        state = observe({'todos': []}, log)
        state['todos'].append('write tests')
        log.paths()  # ['todos']
    """

    def __init__(self):
        self.events: List[ChangeEvent] = []

    def __call__(self, path: Path, value: Any, previous: Any,
                 description: Optional[OperationDescription] = None) -> None:
        self.events.append(ChangeEvent(path, value, previous, description))

    def __len__(self) -> int:
        return len(self.events)

    def paths(self) -> List[Path]:
        return [event.path for event in self.events]

    def clear(self) -> None:
        self.events.clear()
