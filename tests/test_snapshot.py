"""
Tests for the aggregate-change tracker.

The tracker is driven by hand here the same way the observer drives it
around a bracketed call: start, mutate the raw value, decide, stop.
"""

import weakref
from collections import deque

from objectwatch.proxy_cache import MISSING
from objectwatch.snapshot import SnapshotStack, restore_contents


class Item:
    def __init__(self, name):
        self.name = name


class TestComparators:
    """is_changed() per collection kind."""

    def test_certain_method(self):
        stack = SnapshotStack()
        todos = ['a']
        stack.start(todos, 'todos', 'append', ('b',))
        todos.append('b')
        assert stack.is_changed(todos)

        previous = stack.stop().clone
        assert previous == ['a']
        assert previous is not todos

    def test_sort_without_effect(self):
        stack = SnapshotStack()
        numbers = [1, 2, 3]
        stack.start(numbers, '', 'sort')
        numbers.sort()
        assert not stack.is_changed(numbers)
        stack.stop()

    def test_reverse_changes_order(self):
        stack = SnapshotStack()
        numbers = [1, 2, 3]
        stack.start(numbers, '', 'reverse')
        numbers.reverse()
        assert stack.is_changed(numbers)
        stack.stop()

    def test_mapping_absent_differs_from_none(self):
        stack = SnapshotStack()
        data = {'a': None}
        stack.start(data, '', 'update')
        data.pop('a')
        data.update(b=None)
        assert stack.is_changed(data)
        stack.stop()

    def test_mapping_same_content(self):
        stack = SnapshotStack()
        data = {'a': 1}
        stack.start(data, '', 'update')
        data.update(a=1)
        assert not stack.is_changed(data)
        stack.stop()

    def test_set_membership(self):
        stack = SnapshotStack()
        tags = {'x', 'y'}
        stack.start(tags, '', 'add', ('y',))
        tags.add('y')
        assert not stack.is_changed(tags)
        stack.stop()

    def test_weak_set_argument(self):
        stack = SnapshotStack()
        members = weakref.WeakSet()
        item = Item('a')
        stack.start(members, '', 'add', (item,))
        members.add(item)
        assert stack.is_changed(members)
        assert stack.stop().clone is None


class TestNesting:
    def test_stack_depth(self):
        stack = SnapshotStack()
        outer, inner = [], []
        assert not stack.is_cloning

        stack.start(outer, '', 'extend')
        stack.start(inner, '0', 'append')
        assert stack.depth == 2

        stack.stop()
        assert stack.is_cloning
        stack.stop()
        assert not stack.is_cloning

    def test_nested_write_is_cloned_lazily(self):
        stack = SnapshotStack()
        data = {'a': {'b': 1}, 'untouched': {'c': 1}}
        stack.start(data, '', 'custom')

        data['a']['b'] = 2
        stack.update('a', 'b', 1)
        assert stack.is_changed(data)

        previous = stack.stop().clone
        assert previous['a'] == {'b': 1}
        assert data['a'] == {'b': 2}
        # Branches nobody wrote to are shared with the live value
        assert previous['untouched'] is data['untouched']

    def test_path_applicability(self):
        stack = SnapshotStack()
        stack.start({}, 'meta', 'update')
        assert stack.is_part_of_clone('meta.count')
        assert stack.is_part_of_clone('meta')
        assert not stack.is_part_of_clone('metadata')
        stack.stop()


class TestUndo:
    """undo() rolls a stopped bracket back."""

    def test_sequence_order(self):
        stack = SnapshotStack()
        numbers = [3, 1, 2]
        stack.start(numbers, '', 'sort')
        numbers.sort()
        snapshot = stack.stop()

        stack.undo(snapshot, numbers)
        assert numbers == [3, 1, 2]

    def test_deque(self):
        stack = SnapshotStack()
        queue = deque([1, 2, 3])
        stack.start(queue, '', 'rotate')
        queue.rotate(1)
        snapshot = stack.stop()

        stack.undo(snapshot, queue)
        assert list(queue) == [1, 2, 3]

    def test_mapping(self):
        stack = SnapshotStack()
        data = {'a': 1}
        stack.start(data, '', 'update')
        data.update(a=2, b=3)
        snapshot = stack.stop()

        stack.undo(snapshot, data)
        assert data == {'a': 1}

    def test_set(self):
        stack = SnapshotStack()
        tags = {'x'}
        stack.start(tags, '', 'symmetric_difference_update')
        tags.symmetric_difference_update({'x', 'y'})
        snapshot = stack.stop()

        stack.undo(snapshot, tags)
        assert tags == {'x'}

    def test_replays_nested_writes(self):
        stack = SnapshotStack(track_changes=True)
        data = {'a': {'b': 1}}
        inner = data['a']
        stack.start(data, '', 'custom')
        inner['b'] = 2
        stack.update('a', 'b', 1)
        inner['new'] = True
        stack.update('a', 'new', MISSING)
        snapshot = stack.stop()

        stack.undo(snapshot, data)
        assert data == {'a': {'b': 1}}
        assert data['a'] is inner

    def test_weak_set(self):
        stack = SnapshotStack()
        members = weakref.WeakSet()
        item = Item('a')
        stack.start(members, '', 'add', (item,))
        members.add(item)
        snapshot = stack.stop()

        stack.undo(snapshot, members)
        assert item not in members

    def test_later_bracket_does_not_change_target(self):
        stack = SnapshotStack()
        numbers, audit = [3, 1, 2], []
        stack.start(numbers, 'numbers', 'sort')
        numbers.sort()
        sort_snapshot = stack.stop()

        stack.start(audit, 'audit', 'append', ('sorted',))
        audit.append('sorted')
        stack.stop()

        stack.undo(sort_snapshot, numbers)
        assert numbers == [3, 1, 2]
        assert audit == ['sorted']


class TestRestoreContents:
    def test_keeps_identity(self):
        target = [1, 2]
        restore_contents(target, [3])
        assert target == [3]

    def test_object(self):
        class Box:
            pass

        target, source = Box(), Box()
        target.a = 1
        source.b = 2
        restore_contents(target, source)
        assert vars(target) == {'b': 2}

