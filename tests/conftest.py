from typing import Callable, List, Tuple

import pytest

from interpreter import Interpreter


HELLO_WORLD = (
    "++++++++[>++++[>++>+++>+++>+<<<<-]>+>+>->>+[<]<-]"
    ">>.>---.+++++++..+++.>>.<-.<.+++.------.--------.>>+.>++."
)


@pytest.fixture
def run_source() -> Callable[..., Tuple[Interpreter, bytes]]:
    def _run(source: str, **kwargs) -> Tuple[Interpreter, bytes]:
        output: List[bytes] = []
        interpreter = Interpreter(source=source, output_sink=output.append, **kwargs)
        interpreter.run()
        return interpreter, b"".join(output)

    return _run
