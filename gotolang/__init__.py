"""GotoLang: a small block-structured language with unrestricted ``goto``."""
from gotolang.interpreter import Environment, Interpreter, TracebackFormatter, Value
from gotolang.lexer import GLError, GLParseError
from gotolang.errors import GLRuntimeError
from gotolang.parser import parse_source

__version__ = "0.1.0"

__all__ = [
    "Environment",
    "GLError",
    "GLParseError",
    "GLRuntimeError",
    "Interpreter",
    "TracebackFormatter",
    "Value",
    "parse_source",
]
