"""Tests for request observer hooks."""

import logging

import pytest

from restclient.clients.events import RequestEvents


class TestRequestEvents:
    def test_hooks_receive_payload_in_subscription_order(self):
        events = RequestEvents()
        seen = []
        events.on_complete(lambda payload: seen.append(("first", payload)))
        events.on_complete(lambda payload: seen.append(("second", payload)))

        events.fire("complete", "response")

        assert seen == [("first", "response"), ("second", "response")]

    def test_unknown_event_rejected(self):
        with pytest.raises(ValueError, match="Unknown event"):
            RequestEvents().subscribe("finished", print)

    def test_unsubscribe(self):
        events = RequestEvents()
        seen = []
        hook = events.on_sending(seen.append)
        events.unsubscribe("sending", hook)
        events.unsubscribe("sending", hook)

        events.fire("sending", "request")

        assert seen == []

    def test_failing_hook_is_logged_and_isolated(self, caplog):
        events = RequestEvents()
        seen = []

        def broken(payload):
            raise RuntimeError("hook exploded")

        events.on_error(broken)
        events.on_error(seen.append)

        with caplog.at_level(logging.ERROR, logger="restclient"):
            events.fire("error", "boom")

        assert seen == ["boom"]
        assert "Error in error hook" in caplog.text

    def test_clear_removes_all_hooks(self):
        events = RequestEvents()
        seen = []
        events.on_success(seen.append)
        events.on_failure(seen.append)
        events.clear()

        events.fire("success", 1)
        events.fire("failure", 2)

        assert seen == []
