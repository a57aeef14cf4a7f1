"""
Unit tests for HookManager.
"""

import pytest

from dynamiccrud.services.hooks import HOOK_EVENTS, HookManager


@pytest.mark.unit
class TestHookManager:
    """Test hook registration and dispatch."""

    @pytest.fixture
    def hooks(self):
        return HookManager()

    def test_unknown_event_raises(self, hooks):
        with pytest.raises(ValueError, match="Unknown hook event"):
            hooks.on("before_explode", lambda data: data)

    def test_registration_is_chainable(self, hooks):
        result = hooks.on("before_save", lambda data: data).on("after_save", lambda id, data: None)
        assert result is hooks
        assert hooks.count == 2
        assert hooks.has_hooks("before_save")
        assert not hooks.has_hooks("before_delete")

    def test_apply_accumulates_changes(self, hooks):
        """Test each callback receives the previous callback's output."""
        hooks.on("before_save", lambda data: {**data, "slug": data["title"].lower()})
        hooks.on("before_save", lambda data: {**data, "slug": data["slug"].replace(" ", "-")})

        assert hooks.apply("before_save", {"title": "Hello World"}) == {"title": "Hello World", "slug": "hello-world"}

    def test_none_return_keeps_data(self, hooks):
        seen = []
        hooks.on("before_validate", lambda data: seen.append(dict(data)))

        data = {"name": "Ada"}
        assert hooks.apply("before_validate", data) is data
        assert seen == [{"name": "Ada"}]

    def test_apply_passes_extra_arguments(self, hooks):
        hooks.on("before_update", lambda data, record_id: {**data, "id_seen": record_id})
        assert hooks.apply("before_update", {}, 42) == {"id_seen": 42}

    def test_notify_runs_in_order(self, hooks):
        calls = []
        hooks.on("after_create", lambda record_id, data: calls.append(("first", record_id)))
        hooks.on("after_create", lambda record_id, data: calls.append(("second", record_id)))

        hooks.notify("after_create", 5, {})
        assert calls == [("first", 5), ("second", 5)]

    def test_exceptions_propagate(self, hooks):
        def veto(record_id):
            raise RuntimeError("locked")

        hooks.on("before_delete", veto)
        with pytest.raises(RuntimeError, match="locked"):
            hooks.notify("before_delete", 1)

    def test_every_event_is_registrable(self, hooks):
        for event in HOOK_EVENTS:
            hooks.on(event, lambda *args: None)
        assert hooks.count == len(HOOK_EVENTS) == 10
        assert len(hooks.get_hooks("after_delete")) == 1
