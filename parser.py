from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, List, Tuple

from lexer import (
    BFParseError,
    DECREMENT,
    INCREMENT,
    INPUT,
    LOOP_CLOSE,
    LOOP_OPEN,
    MOVE_LEFT,
    MOVE_RIGHT,
    OUTPUT,
    Token,
)


class StructuralError(BFParseError):
    """Raised when loop brackets do not nest."""


class UnmatchedOpen(StructuralError):
    def __init__(self, depth: int) -> None:
        super().__init__(f"unmatched '[': {depth} loop(s) left open at end of input")
        self.depth = depth


class UnmatchedClose(StructuralError):
    def __init__(self, token_index: int) -> None:
        super().__init__(f"unmatched ']' (token {token_index}) closes no open loop")
        self.token_index = token_index


class Instruction:
    name = "INSTRUCTION"


@dataclass(frozen=True)
class MoveRight(Instruction):
    name = "MOVE_RIGHT"


@dataclass(frozen=True)
class MoveLeft(Instruction):
    name = "MOVE_LEFT"


@dataclass(frozen=True)
class Increment(Instruction):
    name = "INCREMENT"


@dataclass(frozen=True)
class Decrement(Instruction):
    name = "DECREMENT"


@dataclass(frozen=True)
class Output(Instruction):
    name = "OUTPUT"


@dataclass(frozen=True)
class Input(Instruction):
    name = "INPUT"


@dataclass(frozen=True)
class Loop(Instruction):
    body: Tuple[Instruction, ...]
    name = "LOOP"


@dataclass(frozen=True)
class Program:
    instructions: Tuple[Instruction, ...]
    depth: int = 0


# Leaf instructions carry no state, so one shared instance per kind suffices.
LEAVES = {
    MOVE_RIGHT: MoveRight(),
    MOVE_LEFT: MoveLeft(),
    INCREMENT: Increment(),
    DECREMENT: Decrement(),
    OUTPUT: Output(),
    INPUT: Input(),
}


class Parser:
    def __init__(self, tokens: Iterable[Token]) -> None:
        self.tokens = tokens

    def parse(self) -> Program:
        """Build the instruction tree.

        Uses an explicit stack of open contexts instead of recursing on the
        token stream, so nesting depth is bounded only by memory. The first
        context is the implicit top level and is never popped.
        """
        contexts: List[List[Instruction]] = [[]]
        depth = 0
        leaves = LEAVES
        for index, token in enumerate(self.tokens):
            kind = token.type
            if kind == LOOP_OPEN:
                contexts.append([])
                depth = max(depth, len(contexts) - 1)
            elif kind == LOOP_CLOSE:
                if len(contexts) == 1:
                    raise UnmatchedClose(index)
                body = contexts.pop()
                contexts[-1].append(Loop(tuple(body)))
            else:
                try:
                    contexts[-1].append(leaves[kind])
                except KeyError:
                    raise BFParseError(f"Unknown token type '{kind}'") from None
        if len(contexts) > 1:
            raise UnmatchedOpen(len(contexts) - 1)
        return Program(instructions=tuple(contexts[0]), depth=depth)


def parse(tokens: Iterable[Token]) -> Tuple[Instruction, ...]:
    return Parser(tokens).parse().instructions
