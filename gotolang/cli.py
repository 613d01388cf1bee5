"""Command line driver and REPL."""
from __future__ import annotations
import argparse
import sys
from typing import List, Optional

from gotolang.extensions import GLExtensionError, RuntimeServices, build_default_services, load_runtime_services
from gotolang.interpreter import Environment, GLRuntimeError, Interpreter, TracebackFormatter
from gotolang.lexer import GLParseError, Lexer
from gotolang.parser import Block, parse_source
from gotolang.printer import AstPrinter

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_PARSE = 65
EXIT_RUNTIME = 70

PROMPT = "\x1b[38;2;153;221;255m>>>\033[0m "
CONTINUATION = "\x1b[38;2;153;221;255m..>\033[0m "


def _parse_repl_buffer(text: str) -> Block:
    # always wrapped; a typed begin ... end simply becomes a nested block
    return parse_source(f"begin\n{text}\nend", "<repl>")


def run_repl(verbose: bool, services: Optional[RuntimeServices] = None) -> int:
    print("\x1b[38;2;153;221;255mGotoLang\033[0m REPL. Enter statements, blank line to run buffer.")
    interpreter = Interpreter(source="", filename="<repl>", verbose=verbose, services=services)
    global_env = Environment()
    buffer: List[str] = []

    while True:
        try:
            line = input(PROMPT if not buffer else CONTINUATION)
        except EOFError:
            print()
            break

        if line.strip() != "":
            buffer.append(line)
            continue
        if not buffer:
            continue

        source_text = "\n".join(buffer)
        buffer.clear()
        try:
            program = _parse_repl_buffer(source_text)
            interpreter.execute(program, env=global_env)
        except GLParseError as error:
            print(f"ParseError: {error}", file=sys.stderr)
        except GLRuntimeError as error:
            formatter = TracebackFormatter(interpreter)
            print(formatter.format_text(error, verbose=interpreter.verbose), file=sys.stderr)

    return EXIT_OK


def _dump_tokens(source_text: str, filename: str) -> None:
    for token in Lexer(source_text, filename).tokenize():
        print(f"{token.line}:{token.column}\t{token.type}\t{token.value!r}")


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="GotoLang interpreter")
    parser.add_argument("program", nargs="?", help="Source file path or literal source with -source")
    parser.add_argument("-source", "--source", dest="source_mode", action="store_true", help="Treat program argument as literal source text")
    parser.add_argument("-verbose", "--verbose", dest="verbose", action="store_true", help="Emit env snapshots in tracebacks")
    parser.add_argument("--traceback-json", action="store_true", help="Also emit JSON traceback")
    parser.add_argument("--ext", action="append", default=[], metavar="PATH", help="Load an extension (.py) or pointer file (.glx); repeatable")
    parser.add_argument("--tokens", action="store_true", help="Print the token stream and exit")
    parser.add_argument("--ast", action="store_true", help="Print the parsed program and exit")
    args = parser.parse_args(argv)

    try:
        services = load_runtime_services(args.ext) if args.ext else build_default_services()
    except GLExtensionError as exc:
        print(f"ExtensionError: {exc}", file=sys.stderr)
        return EXIT_USAGE

    if args.program is None:
        if args.source_mode:
            print("-source requires a program string", file=sys.stderr)
            return EXIT_USAGE
        return run_repl(verbose=args.verbose, services=services)

    if args.source_mode:
        source_text = args.program
        filename = "<string>"
    else:
        filename = args.program
        try:
            with open(filename, "r", encoding="utf-8") as handle:
                source_text = handle.read()
        except OSError as exc:
            print(f"Failed to read {filename}: {exc}", file=sys.stderr)
            return EXIT_USAGE

    interpreter = Interpreter(source=source_text, filename=filename, verbose=args.verbose, services=services)
    try:
        if args.tokens:
            _dump_tokens(source_text, filename)
            return EXIT_OK
        if args.ast:
            print(AstPrinter().print(interpreter.parse()))
            return EXIT_OK
        interpreter.run()
    except GLParseError as error:
        print(f"ParseError: {error}", file=sys.stderr)
        return EXIT_PARSE
    except GLRuntimeError as error:
        formatter = TracebackFormatter(interpreter)
        print(formatter.format_text(error, verbose=args.verbose), file=sys.stderr)
        if args.traceback_json:
            print(formatter.to_json(error), file=sys.stderr)
        return EXIT_RUNTIME
    return EXIT_OK


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
