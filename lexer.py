from __future__ import annotations
from dataclasses import dataclass
from typing import List


class BFError(Exception):
    """Base class for interpreter errors."""


class BFParseError(BFError):
    """Raised when parsing fails."""


@dataclass(frozen=True)
class Token:
    type: str
    value: str


MOVE_RIGHT = "MOVE_RIGHT"
MOVE_LEFT = "MOVE_LEFT"
INCREMENT = "INCREMENT"
DECREMENT = "DECREMENT"
OUTPUT = "OUTPUT"
INPUT = "INPUT"
LOOP_OPEN = "LOOP_OPEN"
LOOP_CLOSE = "LOOP_CLOSE"

SYMBOLS = {
    ">": MOVE_RIGHT,
    "<": MOVE_LEFT,
    "+": INCREMENT,
    "-": DECREMENT,
    ".": OUTPUT,
    ",": INPUT,
    "[": LOOP_OPEN,
    "]": LOOP_CLOSE,
}


class Lexer:
    def __init__(self, text: str) -> None:
        self.text = text

    def tokenize(self) -> List[Token]:
        tokens: List[Token] = []
        tokens_append = tokens.append
        symbols = SYMBOLS
        for ch in self.text:
            # Anything outside the instruction set is commentary.
            token_type = symbols.get(ch)
            if token_type is not None:
                tokens_append(Token(token_type, ch))
        return tokens


def tokenize(text: str) -> List[Token]:
    return Lexer(text).tokenize()
