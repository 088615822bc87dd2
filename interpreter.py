from __future__ import annotations
import json
import os
import sys
import numpy as np
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Union
from numpy.typing import NDArray

from lexer import BFError, Lexer
from hooks import BEFORE_INSTRUCTION, ON_ERROR, PROGRAM_END, PROGRAM_START, HookError, HookRegistry, StepContext
from parser import (
    Decrement,
    Increment,
    Input,
    Instruction,
    Loop,
    MoveLeft,
    MoveRight,
    Output,
    Parser,
    Program,
)


DEFAULT_TAPE_SIZE = 30000
CELL_MODULUS = 256
# Cells shown either side of the cursor in verbose snapshots.
SNAPSHOT_RADIUS = 8
# Python frames reserved for callers of Interpreter.run.
RECURSION_HEADROOM = 1000


class BFRuntimeError(BFError):
    """Raised for runtime faults."""

    def __init__(
        self,
        message: str,
        *,
        rewrite_rule: Optional[str] = None,
        cursor: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.rewrite_rule = rewrite_rule
        self.cursor = cursor
        self.step_index: Optional[int] = None


class OutOfBounds(BFRuntimeError):
    def __init__(self, cursor: int, target: int, length: int, *, rewrite_rule: Optional[str] = None) -> None:
        super().__init__(
            f"cursor move from {cursor} to {target} leaves tape of length {length}",
            rewrite_rule=rewrite_rule,
            cursor=cursor,
        )
        self.target = target
        self.length = length


class InputExhausted(BFRuntimeError):
    pass


class StepLimitExceeded(BFRuntimeError):
    pass


class Tape:
    """Fixed-length byte tape with a bounds-checked cursor."""

    def __init__(self, size: int = DEFAULT_TAPE_SIZE) -> None:
        if size <= 0:
            raise ValueError("tape size must be >= 1")
        self.cells: NDArray[np.uint8] = np.zeros(size, dtype=np.uint8)
        self.cursor = 0

    def __len__(self) -> int:
        return int(self.cells.shape[0])

    @property
    def current(self) -> int:
        return int(self.cells[self.cursor])

    def move(self, delta: int, rule: Optional[str] = None) -> None:
        target = self.cursor + delta
        if target < 0 or target >= len(self):
            raise OutOfBounds(self.cursor, target, len(self), rewrite_rule=rule)
        self.cursor = target

    def add(self, delta: int) -> None:
        # Widen to int first; uint8 arithmetic would overflow with a warning.
        self.cells[self.cursor] = (int(self.cells[self.cursor]) + delta) % CELL_MODULUS

    def store(self, value: int) -> None:
        self.cells[self.cursor] = value % CELL_MODULUS

    def snapshot(self, radius: int = SNAPSHOT_RADIUS) -> Dict[str, int]:
        lo = max(0, self.cursor - radius)
        hi = min(len(self), self.cursor + radius + 1)
        return {str(i): int(self.cells[i]) for i in range(lo, hi)}


@dataclass
class Frame:
    name: str
    frame_id: str
    depth: int
    iterations: int = 0


@dataclass
class StateEntry:
    step_index: int
    state_id: str
    frame_id: Optional[str]
    rule: str
    cursor: int
    cell: int
    tape_snapshot: Optional[Dict[str, int]]


class StateLogger:
    """Per-step state log.

    Every executed instruction (and every loop test) gets a step index and a
    state id. Full history is only kept in verbose mode; otherwise just the
    most recent entry overall and per frame survive.
    """

    def __init__(self, verbose: bool) -> None:
        self.verbose = verbose
        self.entries: List[StateEntry] = []
        self.next_state_index = 0
        self.last_entry: Optional[StateEntry] = None
        self.frame_last_entry: Dict[str, StateEntry] = {}

    def record(
        self,
        *,
        frame: Optional[Frame],
        rule: str,
        cursor: int,
        cell: int,
        tape_snapshot: Optional[Dict[str, int]] = None,
    ) -> StateEntry:
        step_index = self.next_state_index
        entry = StateEntry(
            step_index=step_index,
            state_id=f"s_{step_index:06d}",
            frame_id=frame.frame_id if frame else None,
            rule=rule,
            cursor=cursor,
            cell=cell,
            tape_snapshot=tape_snapshot,
        )
        if self.verbose:
            self.entries.append(entry)
        if frame:
            self.frame_last_entry[frame.frame_id] = entry
        self.last_entry = entry
        self.next_state_index += 1
        return entry

    def last_entry_for_frame(self, frame_id: str) -> Optional[StateEntry]:
        return self.frame_last_entry.get(frame_id)

    def forget_frame(self, frame_id: str) -> None:
        self.frame_last_entry.pop(frame_id, None)


def _stdin_provider() -> bytes:
    return sys.stdin.buffer.read(1)


def _stdout_sink(data: bytes) -> None:
    sys.stdout.buffer.write(data)
    sys.stdout.flush()


class Interpreter:
    def __init__(
        self,
        *,
        source: str,
        filename: str = "<string>",
        verbose: bool = False,
        input_buffer: Optional[Union[str, bytes]] = None,
        tape_size: int = DEFAULT_TAPE_SIZE,
        hooks: Optional[HookRegistry] = None,
        input_provider: Optional[Callable[[], bytes]] = None,
        output_sink: Optional[Callable[[bytes], None]] = None,
    ) -> None:
        self.source = source
        self.filename = filename if filename == "<string>" else os.path.abspath(filename)
        self.verbose = verbose
        self.hooks = hooks or HookRegistry()
        # Text buffers are fed as UTF-8 bytes. With a buffer supplied,
        # exhausting it is terminal; the live provider is never consulted.
        if isinstance(input_buffer, str):
            input_buffer = input_buffer.encode("utf-8")
        self.input_buffer: Optional[bytes] = input_buffer
        self._input_index = 0
        self.input_provider = input_provider or _stdin_provider
        self.output_sink = output_sink or _stdout_sink

        self.program: Program = self.parse()
        self.tape = Tape(tape_size)
        # One Python frame per loop nesting level.
        needed = self.program.depth + RECURSION_HEADROOM
        if sys.getrecursionlimit() < needed:
            sys.setrecursionlimit(needed)

        self.logger = StateLogger(verbose=verbose)
        self.logger.record(frame=None, rule="SEED", cursor=0, cell=0)
        self.io_log: List[Dict[str, Any]] = []
        self.call_stack: List[Frame] = []
        self.frame_counter = 0

    @property
    def cursor(self) -> int:
        return self.tape.cursor

    @property
    def instructions(self) -> Sequence[Instruction]:
        return self.program.instructions

    def parse(self) -> Program:
        tokens = Lexer(self.source).tokenize()
        return Parser(tokens).parse()

    def run(self) -> None:
        program = self.program
        self.call_stack.append(self._new_frame("<top-level>", 0))
        self._emit_event(PROGRAM_START, self, program)
        try:
            self.execute(program.instructions)
        except BFRuntimeError as error:
            self._emit_event(ON_ERROR, self, error)
            if error.step_index is None and self.logger.last_entry is not None:
                error.step_index = self.logger.last_entry.step_index
            raise
        except Exception as exc:
            self._emit_event(ON_ERROR, self, exc)
            # Convert unexpected Python-level exceptions so callers can format
            # them like any other runtime fault.
            wrapped = BFRuntimeError(
                f"Internal interpreter error: {exc}",
                rewrite_rule="internal",
                cursor=self.tape.cursor,
            )
            if self.logger.last_entry is not None:
                wrapped.step_index = self.logger.last_entry.step_index
            raise wrapped from exc
        else:
            self._emit_event(PROGRAM_END, self)
            self.logger.forget_frame(self.call_stack.pop().frame_id)

    def execute(self, instructions: Sequence[Instruction]) -> None:
        tape = self.tape
        call_stack = self.call_stack
        log_step = self._log_step
        emit_event = self._emit_event if self.hooks.has_handlers(BEFORE_INSTRUCTION) else None
        for instruction in instructions:
            if emit_event is not None:
                emit_event(BEFORE_INSTRUCTION, self, instruction)
            kind = type(instruction)
            if kind is Loop:
                # Run inline so each nesting level costs a single recursive call.
                frame = self._new_frame(f"<loop depth {len(call_stack)}>", len(call_stack))
                call_stack.append(frame)
                while True:
                    # The cell is re-read wherever the body left the cursor.
                    log_step(rule=instruction.name)
                    if tape.current == 0:
                        break
                    frame.iterations += 1
                    self.execute(instruction.body)  # type: ignore[attr-defined]
                self.logger.forget_frame(frame.frame_id)
                call_stack.pop()
                continue
            log_step(rule=instruction.name)
            if kind is Increment:
                tape.add(1)
            elif kind is Decrement:
                tape.add(-1)
            elif kind is MoveRight:
                tape.move(1, instruction.name)
            elif kind is MoveLeft:
                tape.move(-1, instruction.name)
            elif kind is Output:
                self._write_output(tape.current)
            elif kind is Input:
                tape.store(self._read_input())
            else:
                raise BFRuntimeError(
                    f"Unsupported instruction {instruction!r}",
                    rewrite_rule="internal",
                    cursor=tape.cursor,
                )

    def _write_output(self, value: int) -> None:
        self.output_sink(bytes((value,)))
        if self.verbose:
            self.io_log.append({"event": "OUTPUT", "value": value})

    def _read_input(self) -> int:
        if self.input_buffer is not None:
            if self._input_index >= len(self.input_buffer):
                raise InputExhausted(
                    f"input buffer exhausted after {self._input_index} byte(s)",
                    rewrite_rule="INPUT",
                    cursor=self.tape.cursor,
                )
            value = self.input_buffer[self._input_index]
            self._input_index += 1
        else:
            try:
                data = self.input_provider()
            except (EOFError, OSError) as exc:
                raise InputExhausted(
                    f"input stream read failed: {exc}",
                    rewrite_rule="INPUT",
                    cursor=self.tape.cursor,
                ) from exc
            if not data:
                raise InputExhausted(
                    "input stream exhausted",
                    rewrite_rule="INPUT",
                    cursor=self.tape.cursor,
                )
            value = data[0]
        if self.verbose:
            self.io_log.append({"event": "INPUT", "value": value})
        return value

    def _new_frame(self, name: str, depth: int) -> Frame:
        frame_id = f"f_{self.frame_counter:04d}"
        self.frame_counter += 1
        return Frame(name=name, frame_id=frame_id, depth=depth)

    def _emit_event(self, event: str, *args: Any) -> None:
        try:
            self.hooks.emit(event, *args)
        except BFRuntimeError:
            raise
        except Exception as exc:
            raise BFRuntimeError(
                f"Hook for '{event}' failed: {exc}",
                rewrite_rule="HOOK",
                cursor=self.tape.cursor,
            ) from exc

    def _log_step(self, *, rule: str) -> None:
        frame = self.call_stack[-1] if self.call_stack else None
        tape = self.tape
        entry = self.logger.record(
            frame=frame,
            rule=rule,
            cursor=tape.cursor,
            cell=tape.current,
            tape_snapshot=tape.snapshot() if self.verbose else None,
        )

        if not self.hooks.has_step_rules:
            return
        try:
            self.hooks.after_step(
                self,
                StepContext(
                    step_index=entry.step_index,
                    rule=rule,
                    cursor=entry.cursor,
                    depth=frame.depth if frame else 0,
                ),
            )
        except BFRuntimeError:
            raise
        except Exception as exc:
            raise BFRuntimeError(
                f"Step rule failed: {exc}",
                rewrite_rule="HOOK",
                cursor=tape.cursor,
            ) from exc


def install_step_limit(hooks: HookRegistry, max_steps: int) -> None:
    """Abort a run once more than ``max_steps`` steps have been recorded.

    Loop tests count as steps, so even an empty loop body is bounded.
    """
    if max_steps <= 0:
        raise HookError("max_steps must be >= 1")

    def step_limit(interpreter: Interpreter, ctx: StepContext) -> None:
        if ctx.step_index > max_steps:
            raise StepLimitExceeded(
                f"step limit of {max_steps} exceeded",
                rewrite_rule="STEP_LIMIT",
                cursor=ctx.cursor,
            )

    hooks.every(1, step_limit)


@dataclass
class TracebackFrame:
    name: str
    iterations: int
    state_entry: Optional[StateEntry]


class TracebackFormatter:
    def __init__(self, interpreter: Interpreter) -> None:
        self.interpreter = interpreter

    def build_frames(self) -> List[TracebackFrame]:
        frames: List[TracebackFrame] = []
        for frame in self.interpreter.call_stack:
            entry = self.interpreter.logger.last_entry_for_frame(frame.frame_id)
            frames.append(TracebackFrame(name=frame.name, iterations=frame.iterations, state_entry=entry))
        return frames

    def format_text(self, error: BFRuntimeError, verbose: bool) -> str:
        filename = self.interpreter.filename
        lines = ["Traceback (most recent call last):"]
        for frame in self.build_frames():
            header = f"  File \"{filename}\", in {frame.name}"
            if frame.iterations:
                header += f" (iteration {frame.iterations})"
            lines.append(header)
            entry = frame.state_entry
            if entry:
                lines.append(
                    f"    State log index: {entry.step_index}  State id: {entry.state_id}  Rule: {entry.rule}"
                )
                lines.append(f"    Cursor: {entry.cursor}  Cell: {entry.cell}")
                if verbose and entry.tape_snapshot is not None:
                    snapshot = ", ".join(f"{k}={v}" for k, v in entry.tape_snapshot.items())
                    lines.append(f"    Tape snapshot: {snapshot}")
        rule = error.rewrite_rule or "runtime"
        lines.append(f"{error.__class__.__name__}: {error.message} (rewrite: {rule})")
        return "\n".join(lines)

    def to_json(self, error: BFRuntimeError) -> str:
        frames_json: List[Dict[str, Any]] = []
        for index, frame in enumerate(self.build_frames()):
            entry: Dict[str, Any] = {"frame_index": index, "name": frame.name, "iterations": frame.iterations}
            if frame.state_entry:
                entry["state_id"] = frame.state_entry.state_id
                entry["step_index"] = frame.state_entry.step_index
                entry["rule"] = frame.state_entry.rule
                entry["cursor"] = frame.state_entry.cursor
                entry["cell"] = frame.state_entry.cell
                if frame.state_entry.tape_snapshot is not None:
                    entry["tape_snapshot"] = frame.state_entry.tape_snapshot
            frames_json.append(entry)
        data = {
            "error": {
                "type": error.__class__.__name__,
                "message": error.message,
                "rewrite_rule": error.rewrite_rule,
                "cursor": error.cursor,
                "failing_step_index": error.step_index,
            },
            "file": self.interpreter.filename,
            "traceback": frames_json,
        }
        return json.dumps(data, indent=2)
