"""bf-lang command-line entry point."""

from __future__ import annotations
import argparse
import sys
from typing import List, Optional

from hooks import HookError, HookRegistry
from interpreter import DEFAULT_TAPE_SIZE, BFRuntimeError, Interpreter, TracebackFormatter, install_step_limit
from lexer import BFParseError


def _panic(message: object) -> None:
    print(f"panic! {message}", file=sys.stderr)


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="bf-lang byte-tape interpreter")
    parser.add_argument("program", help="Source file path or literal source with -source")
    parser.add_argument("-source", "--source", dest="source_mode", action="store_true", help="Treat program argument as literal source text")
    parser.add_argument("-input", "--input", dest="input_buffer", default=None, help="Pre-supplied input, fed as UTF-8 bytes; exhausting it is an error (stdin is not consulted)")
    parser.add_argument("-tape-size", "--tape-size", dest="tape_size", type=int, default=DEFAULT_TAPE_SIZE, help="Number of tape cells")
    parser.add_argument("-max-steps", "--max-steps", dest="max_steps", type=int, default=None, help="Abort after this many steps")
    parser.add_argument("-verbose", "--verbose", dest="verbose", action="store_true", help="Print a traceback with tape snapshots on failure")
    parser.add_argument("--traceback-json", action="store_true", help="Also emit JSON traceback")
    args = parser.parse_args(argv)

    if args.source_mode:
        source_text = args.program
        filename = "<string>"
    else:
        filename = args.program
        try:
            with open(filename, "r", encoding="utf-8") as handle:
                source_text = handle.read()
        except (OSError, UnicodeDecodeError) as exc:
            _panic(f"failed to read {filename}: {exc}")
            return 1

    try:
        hooks = HookRegistry()
        if args.max_steps is not None:
            install_step_limit(hooks, args.max_steps)
    except HookError as error:
        _panic(error)
        return 1

    try:
        interpreter = Interpreter(
            source=source_text,
            filename=filename,
            verbose=args.verbose,
            input_buffer=args.input_buffer,
            tape_size=args.tape_size,
            hooks=hooks,
        )
    except BFParseError as error:
        _panic(error)
        return 1
    except ValueError as error:
        _panic(error)
        return 1

    try:
        interpreter.run()
    except BFRuntimeError as error:
        sys.stdout.flush()
        _panic(error)
        formatter = TracebackFormatter(interpreter)
        if args.verbose:
            print(formatter.format_text(error, verbose=True), file=sys.stderr)
        if args.traceback_json:
            print(formatter.to_json(error), file=sys.stderr)
        return 1
    return 0


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
