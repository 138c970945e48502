import pytest

from pollbot.registry import CommandRegistry


async def _noop(client, event) -> None:
    return None


async def _other(client, event) -> None:
    return None


def test_register_keeps_order_and_normalizes_name() -> None:
    registry = CommandRegistry()
    registry.register("/echo", _noop)
    registry.register("echo", _other)

    assert registry.lookup("echo") == (_noop, _other)
    assert registry.lookup("/echo") == (_noop, _other)
    assert registry.command_ids() == ["echo"]


def test_lookup_unknown_is_empty() -> None:
    assert CommandRegistry().lookup("missing") == ()


def test_register_rejects_empty_name() -> None:
    with pytest.raises(ValueError):
        CommandRegistry().register("/", _noop)


def test_catch_all_handlers() -> None:
    registry = CommandRegistry()
    registry.register_catch_all(_noop)
    registry.register_catch_all(_other)
    assert registry.catch_all() == (_noop, _other)


def test_frozen_registry_rejects_registration() -> None:
    registry = CommandRegistry()
    registry.register("ping", _noop)
    registry.freeze()

    assert registry.frozen
    with pytest.raises(RuntimeError):
        registry.register("pong", _noop)
    with pytest.raises(RuntimeError):
        registry.register_catch_all(_noop)
    assert registry.lookup("ping") == (_noop,)
