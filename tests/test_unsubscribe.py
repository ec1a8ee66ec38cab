"""Tests for ending observation."""

import logging

from objectwatch import define_property, is_observed, observe, path_of, unsubscribe, unwrap


class TestUnsubscribe:
    def test_returns_raw_root(self, app_data, log):
        state = observe(app_data, log)
        assert unsubscribe(state) is app_data

    def test_writes_pass_through(self, app_data, log):
        state = observe(app_data, log)
        todos = state['todos']
        unsubscribe(state)

        state['filter'] = 'done'
        todos.append({'title': 'late'})
        del state['meta']
        assert len(log) == 0
        assert app_data['filter'] == 'done'
        assert len(app_data['todos']) == 3
        assert 'meta' not in app_data

    def test_reads_are_raw(self, app_data, log):
        state = observe(app_data, log)
        unsubscribe(state)
        assert not is_observed(state['todos'])
        assert unwrap(state) is app_data

    def test_paths_are_unknown(self, app_data, log):
        state = observe(app_data, log)
        todos = state['todos']
        unsubscribe(state)
        assert path_of(state) is None
        assert path_of(todos) is None

    def test_idempotent(self, app_data, log):
        state = observe(app_data, log)
        unsubscribe(state)
        assert unsubscribe(state) is app_data

    def test_captured_method(self, app_data, log):
        state = observe(app_data, log)
        append = state['todos'].append
        unsubscribe(state)
        append({'title': 'late'})
        assert len(log) == 0
        assert len(app_data['todos']) == 3

    def test_define_property_after(self, app_data, log):
        state = observe(app_data, log)
        unsubscribe(state)
        assert define_property(state, 'filter', 'done') is True
        assert app_data['filter'] == 'done'
        assert len(log) == 0

    def test_non_root_is_ignored(self, app_data, log, caplog):
        state = observe(app_data, log)
        meta = state['meta']
        with caplog.at_level(logging.WARNING, logger='objectwatch'):
            assert unsubscribe(meta) is meta
        assert 'only the root wrapper' in caplog.text

        state['filter'] = 'done'
        assert log.paths() == ['filter']

    def test_non_wrapper(self):
        data = {}
        assert unsubscribe(data) is data


class TestReentrantUnsubscribe:
    """Unsubscribing from inside a callback."""

    def test_stops_alias_fan_out(self):
        shared = {'count': 0}
        seen = []

        def on_change(path, value, previous, description):
            seen.append(path)
            unsubscribe(state)

        state = observe({'a': shared, 'b': shared}, on_change)
        state['a'], state['b']
        state['a']['count'] = 1
        state['b']['count'] = 2
        assert seen == ['a.count']
        assert shared['count'] == 2

    def test_during_aggregate_call(self, app_data):
        seen = []

        def on_change(path, value, previous, description):
            seen.append(path)
            unsubscribe(state)

        state = observe(app_data, on_change)
        state['todos'].append({'title': 'new'})
        state['todos'].append({'title': 'newer'})
        assert seen == ['todos']
        assert len(app_data['todos']) == 4
        assert not state._self_observer.tracker.is_cloning
