import json

import pytest

from hooks import HookError, HookRegistry
from interpreter import BFRuntimeError, Interpreter, OutOfBounds, TracebackFormatter, install_step_limit


def test_events_fire_in_lifecycle_order():
    hooks = HookRegistry()
    events = []

    @hooks.on("program_start")
    def _start(interpreter, program):
        events.append(("start", len(program.instructions)))

    @hooks.on("program_end")
    def _end(interpreter):
        events.append(("end", interpreter.cursor))

    Interpreter(source="+>", hooks=hooks).run()
    assert events == [("start", 2), ("end", 1)]


def test_before_instruction_sees_every_instruction_including_loops():
    hooks = HookRegistry()
    seen = []
    hooks.on("before_instruction", lambda interpreter, instruction: seen.append(instruction.name))
    Interpreter(source="+[-]", hooks=hooks).run()
    assert seen == ["INCREMENT", "LOOP", "DECREMENT"]


def test_on_error_receives_the_runtime_error():
    hooks = HookRegistry()
    errors = []
    hooks.on("on_error", lambda interpreter, error: errors.append(error))
    interpreter = Interpreter(source="<", hooks=hooks)
    with pytest.raises(OutOfBounds) as excinfo:
        interpreter.run()
    assert errors == [excinfo.value]


def test_handlers_run_in_registration_order():
    hooks = HookRegistry()
    order = []
    hooks.on("program_end", lambda interpreter: order.append("first"))
    hooks.on("program_end", lambda interpreter: order.append("second"))
    hooks.emit("program_end", None)
    assert order == ["first", "second"]


def test_unknown_event_is_rejected():
    with pytest.raises(HookError):
        HookRegistry().on("after_everything", lambda: None)


def test_failing_hook_becomes_runtime_error():
    hooks = HookRegistry()

    @hooks.on("program_start")
    def _boom(interpreter, program):
        raise ValueError("boom")

    interpreter = Interpreter(source="+", hooks=hooks)
    with pytest.raises(BFRuntimeError) as excinfo:
        interpreter.run()
    assert excinfo.value.rewrite_rule == "HOOK"
    assert isinstance(excinfo.value.__cause__, ValueError)


def test_failing_step_rule_becomes_runtime_error():
    hooks = HookRegistry()
    hooks.every(2, lambda interpreter, ctx: 1 / 0)
    interpreter = Interpreter(source="+++", hooks=hooks)
    with pytest.raises(BFRuntimeError) as excinfo:
        interpreter.run()
    assert excinfo.value.rewrite_rule == "HOOK"
    assert excinfo.value.step_index == 2


def test_step_rule_runs_every_n_steps():
    hooks = HookRegistry()
    hits = []

    @hooks.every(2)
    def _record(interpreter, ctx):
        hits.append(ctx.step_index)

    Interpreter(source="+++++", hooks=hooks).run()
    assert hits == [2, 4]
    assert hooks.step_rules[0][0] == "_record"


def test_step_context_reports_loop_depth():
    hooks = HookRegistry()
    depths = []
    hooks.every(1, lambda interpreter, ctx: depths.append((ctx.rule, ctx.depth)))
    Interpreter(source="+[-]", hooks=hooks).run()
    assert depths == [("INCREMENT", 0), ("LOOP", 1), ("DECREMENT", 1), ("LOOP", 1)]


def test_step_interval_must_be_positive():
    with pytest.raises(HookError):
        HookRegistry().every(0, lambda interpreter, ctx: None)
    with pytest.raises(HookError):
        install_step_limit(HookRegistry(), 0)


def test_traceback_lists_loop_frames():
    interpreter = Interpreter(source="+[<]", output_sink=lambda _: None)
    with pytest.raises(OutOfBounds) as excinfo:
        interpreter.run()
    text = TracebackFormatter(interpreter).format_text(excinfo.value, verbose=False)
    lines = text.splitlines()
    assert lines[0] == "Traceback (most recent call last):"
    assert '  File "<string>", in <top-level>' in lines
    assert '  File "<string>", in <loop depth 1> (iteration 1)' in lines
    assert lines[-1] == "OutOfBounds: cursor move from 0 to -1 leaves tape of length 30000 (rewrite: MOVE_LEFT)"


def test_traceback_json():
    interpreter = Interpreter(source="+[<]", verbose=True, output_sink=lambda _: None)
    with pytest.raises(OutOfBounds) as excinfo:
        interpreter.run()
    data = json.loads(TracebackFormatter(interpreter).to_json(excinfo.value))
    assert data["error"]["type"] == "OutOfBounds"
    assert data["error"]["failing_step_index"] == 3
    assert [frame["name"] for frame in data["traceback"]] == ["<top-level>", "<loop depth 1>"]
    assert data["traceback"][1]["rule"] == "MOVE_LEFT"
    assert data["traceback"][1]["tape_snapshot"]["0"] == 1
