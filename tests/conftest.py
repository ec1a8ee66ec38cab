"""Pytest configuration and shared fixtures."""
import pytest
from dataclasses import dataclass, field
from typing import List, Optional

from objectwatch import ChangeLog


@dataclass
class Todo:
    """Plain mutable record."""
    title: str
    done: bool = False


@dataclass
class Node:
    """Tree node whose parent link closes a cycle."""
    name: str
    parent: Optional["Node"] = field(default=None, repr=False, compare=False)
    children: List["Node"] = field(default_factory=list)


class Account:
    """Class with a custom mutating method."""

    def __init__(self, balance: int = 100):
        self.balance = balance
        self.history: List[int] = []

    def transfer(self, amount: int) -> int:
        self.history.append(amount)
        self.balance -= amount
        return self.balance


@pytest.fixture
def log():
    """Record every change event."""
    return ChangeLog()


@pytest.fixture
def app_data():
    """Provide a small todo-app state graph."""
    return {
        'todos': [
            {'title': 'write tests', 'done': False},
            {'title': 'ship it', 'done': False},
        ],
        'filter': 'all',
        'meta': {'count': 2},
    }


@pytest.fixture
def todo():
    """Provide a single dataclass record."""
    return Todo('write tests')


@pytest.fixture
def account():
    """Provide an account with a custom mutating method."""
    return Account()


@pytest.fixture
def tree():
    """Provide a root node with two children pointing back at it."""
    root = Node('root')
    for name in ('left', 'right'):
        root.children.append(Node(name, parent=root))
    return root
