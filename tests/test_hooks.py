import pytest

from hooks import EVENTS, HookError, HookRegistry


def test_handlers_run_by_priority_then_registration_order():
    hooks = HookRegistry()
    calls = []
    hooks.on("program_start", lambda: calls.append("low"), priority=1)
    hooks.on("program_start", lambda: calls.append("high"), priority=10)
    hooks.on("program_start", lambda: calls.append("first default"))
    hooks.on("program_start", lambda: calls.append("second default"))
    hooks.emit("program_start")
    assert calls == ["high", "low", "first default", "second default"]


def test_decorator_form_returns_the_handler():
    hooks = HookRegistry()

    @hooks.on("program_end")
    def finished(interpreter, status):
        finished.seen = status

    hooks.emit("program_end", None, 0)
    assert finished.seen == 0


def test_unknown_event_is_rejected():
    with pytest.raises(HookError, match="Unknown event 'on_tuesday'"):
        HookRegistry().on("on_tuesday", lambda: None)


def test_emit_without_handlers_is_a_no_op():
    hooks = HookRegistry()
    for event in EVENTS:
        hooks.emit(event, None)
    assert hooks.handlers == {}
