"""Lifecycle events and step rules observed by the interpreter."""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple


PROGRAM_START = "program_start"
BEFORE_INSTRUCTION = "before_instruction"
ON_ERROR = "on_error"
PROGRAM_END = "program_end"

EVENTS = (PROGRAM_START, BEFORE_INSTRUCTION, ON_ERROR, PROGRAM_END)


class HookError(Exception):
    pass


@dataclass(frozen=True)
class StepContext:
    step_index: int
    rule: str
    cursor: int
    depth: int


StepRule = Callable[[Any, StepContext], None]


@dataclass
class HookRegistry:
    handlers: Dict[str, List[Callable[..., None]]] = field(default_factory=dict)
    # list[(name, every_n, rule)]
    step_rules: List[Tuple[str, int, StepRule]] = field(default_factory=list)

    def on(self, event: str, handler: Optional[Callable[..., None]] = None):
        """Register ``handler`` for ``event``; usable as a decorator."""
        if event not in EVENTS:
            raise HookError(f"Unknown event '{event}'")
        if handler is None:
            return lambda fn: self.on(event, fn)
        self.handlers.setdefault(event, []).append(handler)
        return handler

    def has_handlers(self, event: str) -> bool:
        return bool(self.handlers.get(event))

    def emit(self, event: str, *args: Any) -> None:
        for handler in self.handlers.get(event, ()):
            handler(*args)

    def every(self, every_n: int, rule: Optional[StepRule] = None, *, name: str = ""):
        """Run ``rule(interpreter, ctx)`` after every ``every_n``-th step."""
        if every_n <= 0:
            raise HookError("step interval must be >= 1")
        if rule is None:
            return lambda fn: self.every(every_n, fn, name=name)
        self.step_rules.append((name or rule.__name__, every_n, rule))
        return rule

    @property
    def has_step_rules(self) -> bool:
        return bool(self.step_rules)

    def after_step(self, interpreter: Any, ctx: StepContext) -> None:
        for _name, every_n, rule in self.step_rules:
            if ctx.step_index % every_n == 0:
                rule(interpreter, ctx)
