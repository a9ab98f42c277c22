from typing import Any

import pytest

from fieldops.v1.core.registries import JobRegistry, Registry, job_registry


class MockJobHandler:
    async def handle(self, session, payload: dict[str, Any]) -> dict[str, Any]:
        return {"handled": payload}


def test_registry_basic_operations():
    """Test basic registry register, get, list operations."""
    registry = Registry[str]("Test")

    # Test empty registry
    assert registry.list() == []

    # Test register and get
    registry.register("test_impl", "test_value")
    assert registry.get("test_impl") == "test_value"
    assert registry.list() == ["test_impl"]

    # Test KeyError for missing implementation
    with pytest.raises(KeyError, match="No test implementation registered"):
        registry.get("nonexistent")


def test_registry_multiple_implementations():
    """Test registry with multiple implementations."""
    registry = Registry[str]("Test")

    registry.register("impl1", "value1")
    registry.register("impl2", "value2")
    registry.register("impl3", "value3")

    assert set(registry.list()) == {"impl1", "impl2", "impl3"}
    assert registry.get("impl2") == "value2"


def test_registry_overwrites_implementation():
    """Test that registering the same name overwrites previous implementation."""
    registry = Registry[str]("Test")

    registry.register("same_name", "first_value")
    registry.register("same_name", "second_value")

    assert registry.get("same_name") == "second_value"
    assert registry.list() == ["same_name"]  # Only one entry


def test_frozen_registry_rejects_registration():
    registry = JobRegistry()
    registry.register("before", MockJobHandler())
    registry.freeze()

    assert registry.is_frozen()
    with pytest.raises(RuntimeError, match="registry is frozen"):
        registry.register("after", MockJobHandler())
    assert registry.list() == ["before"]


async def test_job_registry_dispatch():
    """Test job registry with mock handler."""
    registry = JobRegistry()
    handler = MockJobHandler()
    registry.register("test_job", handler)

    retrieved = registry.get("test_job")
    assert retrieved is handler
    assert await retrieved.handle(None, {"a": 1}) == {"handled": {"a": 1}}


def test_global_job_registry_is_singleton():
    from fieldops.v1.core import registries

    assert registries.job_registry is job_registry
    assert isinstance(job_registry, JobRegistry)
