"""Tests for the on_validate veto hook and rollback."""

import pytest

from objectwatch import OperationDescription, observe, unwrap


class Rejector:
    """Validator that rejects every path in ``rejected`` and records calls."""

    def __init__(self, *rejected):
        self.rejected = set(rejected)
        self.calls = []

    def __call__(self, path, value, previous, description):
        self.calls.append((path, description))
        return path not in self.rejected


class TestPlainWrites:
    def test_veto_keeps_value(self, app_data, log):
        state = observe(app_data, log, on_validate=Rejector('filter'))
        state['filter'] = 'done'
        assert app_data['filter'] == 'all'
        assert len(log) == 0

    def test_accept(self, app_data, log):
        validator = Rejector()
        state = observe(app_data, log, on_validate=validator)
        state['meta']['count'] = 3
        assert validator.calls == [('meta.count', None)]
        assert log.paths() == ['meta.count']

    @pytest.mark.parametrize("verdict", [1, 'yes', None, [True]])
    def test_only_true_accepts(self, app_data, log, verdict):
        state = observe(app_data, log, on_validate=lambda *args: verdict)
        state['filter'] = 'done'
        assert app_data['filter'] == 'all'
        assert len(log) == 0

    def test_delete_veto(self, app_data, log):
        state = observe(app_data, log, on_validate=Rejector('meta'))
        del state['meta']
        assert 'meta' in app_data
        assert len(log) == 0

    def test_validator_errors_propagate(self, app_data, log):
        def explode(*args):
            raise RuntimeError('validator failed')

        state = observe(app_data, log, on_validate=explode)
        with pytest.raises(RuntimeError):
            state['filter'] = 'done'
        assert app_data['filter'] == 'all'


class TestAggregateRollback:
    """A vetoed method call is rolled back as a whole."""

    def test_sort_rejected(self, log):
        numbers = [3, 1, 2]
        state = observe({'n': numbers}, log, on_validate=Rejector('n'))
        state['n'].sort()
        assert numbers == [3, 1, 2]
        assert len(log) == 0

    def test_append_rejected(self, app_data, log):
        state = observe(app_data, log, on_validate=Rejector('todos'))
        state['todos'].append({'title': 'nope'})
        assert len(app_data['todos']) == 2
        assert len(log) == 0

    def test_mapping_update_rejected(self, app_data, log):
        state = observe(app_data, log, on_validate=Rejector('meta'))
        state['meta'].update(count=5, owner='ann')
        assert app_data['meta'] == {'count': 2}

    def test_set_rejected(self, log):
        state = observe({'tags': {'a'}}, log, on_validate=Rejector('tags'))
        state['tags'] |= {'b', 'c'}
        assert unwrap(state)['tags'] == {'a'}
        assert len(log) == 0

    def test_validator_that_writes(self, log):
        data = {'items': [3, 1, 2], 'audit': []}

        def audit_and_reject(path, value, previous, description):
            if path == 'items':
                state['audit'].append('saw items')
                return False
            return True

        state = observe(data, log, on_validate=audit_and_reject)
        state['items'].sort()
        assert data['items'] == [3, 1, 2]
        assert data['audit'] == ['saw items']
        assert log.paths() == ['audit']

    def test_validator_sees_description(self, app_data, log):
        validator = Rejector()
        state = observe(app_data, log, on_validate=validator, details=True)
        state['todos'].pop()
        path, description = validator.calls[0]
        assert path == 'todos'
        assert description.name == 'pop'
        assert description.result == {'title': 'ship it', 'done': False}


class TestCustomMethods:
    """bracket_methods run user methods as one aggregate change."""

    def test_single_event(self, account, log):
        state = observe(account, log, bracket_methods={'transfer'}, details=True)
        assert state.transfer(30) == 70

        assert len(log) == 1
        event = log.events[0]
        assert event.path == ''
        assert event.description == OperationDescription('transfer', (30,), {}, 70)
        assert event.previous.balance == 100
        assert event.previous.history == []
        assert account.history == [30]

    def test_rejected_rolls_back_nested_writes(self, account, log):
        state = observe(account, log, bracket_methods={'transfer'}, on_validate=Rejector(''))
        state.transfer(30)
        assert account.balance == 100
        assert account.history == []
        assert len(log) == 0

    def test_nested_writes_skip_validation(self, account, log):
        validator = Rejector()
        state = observe(account, log, bracket_methods={'transfer'}, on_validate=validator)
        state.transfer(10)
        assert [path for path, _ in validator.calls] == ['']

    def test_without_bracketing(self, account, log):
        state = observe(account, log)
        state.transfer(30)
        assert log.paths() == ['history', 'balance']
