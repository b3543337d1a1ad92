"""Tests for OperationRegistry."""

import pytest

from adops.core.errors import UnknownJobTypeError
from adops.jobs.registry import OperationRegistry


class TestOperationRegistry:
    def test_register_and_get(self):
        registry = OperationRegistry()
        registry.register("ECHO", lambda p: p, description="echo")
        assert registry.get("ECHO")({"x": 1}) == {"x": 1}
        assert registry.has("ECHO")
        assert len(registry) == 1

    def test_decorator_uses_docstring(self):
        registry = OperationRegistry()

        @registry.operation("PING")
        def ping(payload):
            """Reply with pong."""
            return "pong"

        assert registry.get("PING")(None) == "pong"
        assert registry.list_with_metadata() == [{"type": "PING", "description": "Reply with pong."}]

    def test_unknown_lists_available(self):
        registry = OperationRegistry()
        registry.register("B", lambda p: p)
        registry.register("A", lambda p: p)
        with pytest.raises(UnknownJobTypeError) as exc_info:
            registry.get("C")
        assert "registered: A, B" in exc_info.value.message

    def test_validate(self):
        registry = OperationRegistry()
        registry.register("A", lambda p: p)
        registry.validate("A")
        with pytest.raises(UnknownJobTypeError):
            registry.validate("Z")

    def test_empty_type_rejected(self):
        with pytest.raises(ValueError):
            OperationRegistry().register("", lambda p: p)

    def test_register_replaces(self):
        registry = OperationRegistry()
        registry.register("A", lambda p: 1)
        registry.register("A", lambda p: 2)
        assert registry.get("A")(None) == 2
        assert registry.list_types() == ["A"]
