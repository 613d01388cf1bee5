from __future__ import annotations
import json
import operator
import os
import re
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from gotolang.errors import (
    DivisionByZeroError,
    GLRuntimeError,
    LabelDefinitionError,
    ModuloTypeError,
    OperandTypeError,
    UndefinedLabelError,
    UndefinedVariableError,
)
from gotolang.extensions import HookRegistry, RuntimeServices, StepContext, build_default_services
from gotolang.labels import LabelAddress, LabelTable
from gotolang.lexer import Lexer
from gotolang.parser import (
    Assignment,
    BinaryExpression,
    Block,
    EmptyStatement,
    Expression,
    GotoStatement,
    Identifier,
    IfStatement,
    IndexExpression,
    LabelStatement,
    LayoutDirective,
    Literal,
    Loop,
    Parser,
    ReadStatement,
    SourceLocation,
    Statement,
    UnaryExpression,
    VarDeclaration,
    Variable,
    WriteStatement,
)

__all__ = [
    "DivisionByZeroError",
    "Environment",
    "Frame",
    "GLRuntimeError",
    "Interpreter",
    "LabelDefinitionError",
    "ModuloTypeError",
    "OperandTypeError",
    "TracebackFormatter",
    "UndefinedLabelError",
    "UndefinedVariableError",
    "Value",
    "parse_input_value",
]


TYPE_INT = "INT"
TYPE_REAL = "REAL"
TYPE_TEXT = "TEXT"
TYPE_BOOL = "BOOL"
TYPE_VECTOR = "VECTOR"

NUMERIC_TYPES = (TYPE_INT, TYPE_REAL)

LAYOUT_TEXT = {"SPACE": " ", "TAB": "\t", "SKIP": ""}

ARITHMETIC: Dict[str, Callable[[Any, Any], Any]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
}

COMPARISONS: Dict[str, Callable[[Any, Any], bool]] = {
    "<": operator.lt,
    ">": operator.gt,
    "<=": operator.le,
    ">=": operator.ge,
}


@dataclass
class Value:
    type: str
    value: Any


def _truncating_div(a: int, b: int) -> int:
    q = abs(a) // abs(b)
    return q if (a < 0) == (b < 0) else -q


def _truncating_mod(a: int, b: int) -> int:
    # remainder takes the sign of the dividend
    return a - b * _truncating_div(a, b)


INT_INPUT = re.compile(r"[+-]?[0-9]+")
REAL_INPUT = re.compile(r"[+-]?([0-9]+\.[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?")

INT64_MIN = int(np.iinfo(np.int64).min)
INT64_MAX = int(np.iinfo(np.int64).max)


def parse_input_value(text: str) -> Value:
    """Interpret one line typed at a ``read`` prompt.

    Only plain numerals count as numbers (no ``_`` separators, no padding);
    anything else is kept as text.
    """
    text = text.rstrip("\r\n")
    if "." in text:
        if REAL_INPUT.fullmatch(text):
            return Value(TYPE_REAL, float(text))
    elif INT_INPUT.fullmatch(text):
        return Value(TYPE_INT, int(text))
    return Value(TYPE_TEXT, text)


@dataclass
class Environment:
    values: Dict[str, Value] = field(default_factory=dict)
    declared_types: Dict[str, Optional[str]] = field(default_factory=dict)

    def declare(self, name: str, value: Value, declared_type: Optional[str] = None) -> None:
        self.values[name] = value
        self.declared_types[name] = declared_type

    def assign(self, name: str, value: Value) -> None:
        if name not in self.values:
            raise UndefinedVariableError(f"Undefined variable '{name}'", rule="ASSIGN")
        if self.declared_types.get(name) == "real" and value.type == TYPE_INT:
            value = Value(TYPE_REAL, float(value.value))
        self.values[name] = value

    def get(self, name: str) -> Value:
        found = self.values.get(name)
        if found is None:
            raise UndefinedVariableError(f"Undefined variable '{name}'", rule="IDENT")
        return found

    def snapshot(self) -> Dict[str, str]:
        def _render(val: Value) -> str:
            if val.type == TYPE_VECTOR:
                return f"{val.type}:[{len(val.value)}]"
            rendered = str(val.value)
            if len(rendered) > 80:
                rendered = rendered[:77] + "..."
            return f"{val.type}:{rendered}"

        return {k: _render(v) for k, v in self.values.items()}


@dataclass
class Frame:
    block: Block
    index: int
    is_loop: bool

    def current(self) -> Optional[Statement]:
        if 0 <= self.index < len(self.block.statements):
            return self.block.statements[self.index]
        return None


@dataclass
class StateEntry:
    step_index: int
    state_id: str
    depth: int
    source_location: Optional[SourceLocation]
    statement: Optional[str]
    env_snapshot: Optional[Dict[str, str]]
    record: Dict[str, Any]


class StateLogger:
    """Numbered log of executed steps; only the newest ``history`` are kept."""

    def __init__(self, history: int = 1000) -> None:
        self.entries: Deque[StateEntry] = deque(maxlen=history)
        self.next_state_index = 0
        self.last_state_id = "seed"

    def record(
        self,
        *,
        depth: int,
        location: Optional[SourceLocation],
        rule: str,
        extra: Optional[Dict[str, Any]] = None,
        env_snapshot: Optional[Dict[str, str]] = None,
    ) -> StateEntry:
        state_id = f"s_{self.next_state_index:06d}"
        transition = {"rule": rule, **(extra or {}), "from_state_id": self.last_state_id, "to_state_id": state_id}
        entry = StateEntry(
            step_index=self.next_state_index,
            state_id=state_id,
            depth=depth,
            source_location=location,
            statement=location.statement if location is not None else None,
            env_snapshot=env_snapshot,
            record=transition,
        )
        self.entries.append(entry)
        self.last_state_id = state_id
        self.next_state_index += 1
        return entry

    @property
    def last_entry(self) -> Optional[StateEntry]:
        return self.entries[-1] if self.entries else None


class Interpreter:
    def __init__(
        self,
        *,
        source: str = "",
        filename: str = "<string>",
        verbose: bool = False,
        services: Optional[RuntimeServices] = None,
        input_provider: Optional[Callable[[str], str]] = None,
        output_sink: Optional[Callable[[str], None]] = None,
        history: int = 1000,
    ) -> None:
        self.source = source
        self._source_lines = source.splitlines()
        normalized_filename = filename if filename.startswith("<") else os.path.abspath(filename)
        self.filename = normalized_filename
        self.verbose = verbose
        self.services = services or build_default_services()
        self.hook_registry: HookRegistry = self.services.hook_registry
        self.input_provider = input_provider or input
        self.output_sink = output_sink or (lambda text: print(text))
        self.logger = StateLogger(history=history)
        self.logger.record(depth=0, location=None, rule="SEED")

        self.environment = Environment()
        self.labels = LabelTable()
        # The engine's whole notion of "where execution is": root frame first.
        self.position_stack: List[Frame] = []
        self.pending_goto: Optional[GotoStatement] = None

    def parse(self) -> Block:
        lexer = Lexer(self.source, self.filename)
        tokens = lexer.tokenize()
        parser = Parser(tokens, self.filename, self._source_lines)
        return parser.parse()

    def run(self) -> None:
        program = self.parse()
        self.execute(program)

    def execute(self, program: Block, env: Optional[Environment] = None) -> Environment:
        """Run ``program`` to completion against ``env`` (a fresh one by default)."""
        self.environment = env if env is not None else Environment()
        self.position_stack = []
        self.pending_goto = None
        try:
            self.labels = LabelTable.build(program)
            self._emit_event("program_start", self, program, self.environment)
            self._run_frames(program)
        except GLRuntimeError as error:
            self._report_error(error)
            raise
        except Exception as exc:
            # Convert unexpected Python-level exceptions so callers can
            # format them with interpreter tracebacks.
            last = self.logger.last_entry
            wrapped = GLRuntimeError(
                f"Internal interpreter error: {exc}",
                location=last.source_location if last is not None else None,
                rule="internal",
            )
            self._report_error(wrapped)
            raise wrapped from exc
        self._emit_event("program_end", self, 0)
        return self.environment

    def _report_error(self, error: GLRuntimeError) -> None:
        last = self.logger.last_entry
        if error.step_index is None and last is not None:
            error.step_index = last.step_index
        try:
            self._emit_event("on_error", self, error)
        except GLRuntimeError as hook_error:
            # a failing on_error hook replaces the error but keeps it as the cause
            hook_error.step_index = error.step_index
            raise hook_error from error

    def _run_frames(self, program: Block) -> None:
        stack = self.position_stack
        stack.append(Frame(block=program, index=0, is_loop=False))
        emit_event = self._emit_event
        execute_stmt = self._execute_statement
        registry = self.hook_registry
        # statement hooks are looked up once per run; most runs have none
        watch_before = registry.has_handlers("before_statement")
        watch_after = registry.has_handlers("after_statement")

        while stack:
            if self.pending_goto is not None:
                self._jump(self.pending_goto)
                continue
            frame = stack[-1]
            statements = frame.block.statements
            if frame.index >= len(statements):
                if frame.is_loop:
                    frame.index = 0
                    continue
                stack.pop()
                if stack:
                    # the parent cursor still points at the statement that opened this frame
                    stack[-1].index += 1
                continue

            statement = statements[frame.index]
            depth = len(stack)
            if watch_before:
                emit_event("before_statement", self, statement, self.environment)
            execute_stmt(statement)
            if watch_after:
                emit_event("after_statement", self, statement, self.environment)
            if len(stack) == depth and self.pending_goto is None:
                frame.index += 1

    def _jump(self, statement: GotoStatement) -> None:
        address: LabelAddress = self.labels.resolve(statement.label, statement.location)
        self.pending_goto = None
        self._log_step(rule="JUMP", location=statement.location, extra={"label": address.name, "depth": address.depth})
        self._emit_event("before_jump", self, statement, address)
        self.position_stack[:] = [
            Frame(block=segment.block, index=segment.index, is_loop=segment.is_loop)
            for segment in address.segments
        ]

    def _execute_statement(self, statement: Statement) -> None:
        self._log_step(rule=statement.__class__.__name__, location=statement.location)
        if isinstance(statement, Block):
            self.position_stack.append(Frame(block=statement, index=0, is_loop=False))
            return
        if isinstance(statement, Loop):
            self.position_stack.append(Frame(block=statement.body, index=0, is_loop=True))
            return
        if isinstance(statement, IfStatement):
            if self._is_truthy(self._evaluate_expression(statement.condition)):
                self._execute_statement(statement.then_branch)
            elif statement.else_branch is not None:
                self._execute_statement(statement.else_branch)
            return
        if isinstance(statement, VarDeclaration):
            self._execute_declaration(statement)
            return
        if isinstance(statement, Assignment):
            value = self._evaluate_expression(statement.expression)
            self._store(statement.target, value, statement.location)
            return
        if isinstance(statement, ReadStatement):
            self._execute_read(statement)
            return
        if isinstance(statement, WriteStatement):
            self._execute_write(statement)
            return
        if isinstance(statement, GotoStatement):
            self.pending_goto = statement
            return
        if isinstance(statement, (LabelStatement, EmptyStatement)):
            return
        raise GLRuntimeError("Unsupported statement", location=statement.location)

    def _execute_declaration(self, statement: VarDeclaration) -> None:
        env = self.environment
        if not statement.is_vector:
            zero = Value(TYPE_INT, 0) if statement.element_type == "integer" else Value(TYPE_REAL, 0.0)
            for name in statement.names:
                env.declare(name, Value(zero.type, zero.value), declared_type=statement.element_type)
            return
        assert statement.size is not None
        size_val = self._evaluate_expression(statement.size)
        if size_val.type != TYPE_INT or size_val.value < 0:
            raise OperandTypeError(
                "Vector size must be a non-negative integer",
                location=statement.location,
                rule="VECTOR",
            )
        dtype = np.int64 if statement.element_type == "integer" else np.float64
        for name in statement.names:
            env.declare(name, Value(TYPE_VECTOR, np.zeros(size_val.value, dtype=dtype)))

    def _execute_read(self, statement: ReadStatement) -> None:
        for target in statement.targets:
            name = target.name if isinstance(target, Identifier) else target.base.name
            try:
                line = self.input_provider(f"Enter value for {name}: ")
            except EOFError:
                raise GLRuntimeError(
                    f"Unexpected end of input while reading '{name}'",
                    location=statement.location,
                    rule="READ",
                )
            self._store(target, parse_input_value(line), statement.location)

    def _execute_write(self, statement: WriteStatement) -> None:
        parts: List[str] = []
        for item in statement.items:
            if isinstance(item, LayoutDirective):
                parts.append(LAYOUT_TEXT[item.kind])
            else:
                parts.append(self._stringify(self._evaluate_expression(item)))
        self.output_sink("".join(parts))

    def _store(self, target: Variable, value: Value, location: SourceLocation) -> None:
        if isinstance(target, IndexExpression):
            array, offset = self._resolve_element(target)
            self._set_element(array, offset, value, target.location)
            return
        try:
            self.environment.assign(target.name, value)
        except GLRuntimeError as err:
            if err.location is None:
                err.location = location
            raise

    def _lookup(self, ident: Identifier) -> Value:
        try:
            return self.environment.get(ident.name)
        except GLRuntimeError as err:
            if err.location is None:
                err.location = ident.location
            raise

    def _resolve_element(self, expr: IndexExpression) -> Tuple[NDArray[Any], int]:
        base = self._lookup(expr.base)
        if base.type != TYPE_VECTOR:
            raise OperandTypeError(f"'{expr.base.name}' is not a vector", location=expr.location, rule="INDEX")
        index = self._evaluate_expression(expr.index)
        if index.type != TYPE_INT:
            raise OperandTypeError("Vector index must be an integer", location=expr.location, rule="INDEX")
        array = base.value
        if not 0 <= index.value < len(array):
            raise GLRuntimeError(
                f"Index {index.value} out of range for '{expr.base.name}' of length {len(array)}",
                location=expr.location,
                rule="INDEX",
            )
        return array, index.value

    def _element_value(self, array: NDArray[Any], offset: int) -> Value:
        if array.dtype.kind == "i":
            return Value(TYPE_INT, int(array[offset]))
        return Value(TYPE_REAL, float(array[offset]))

    def _set_element(self, array: NDArray[Any], offset: int, value: Value, location: SourceLocation) -> None:
        if array.dtype.kind == "i":
            if value.type != TYPE_INT:
                raise OperandTypeError("Integer vector elements require integer values", location=location, rule="INDEX")
            if not INT64_MIN <= value.value <= INT64_MAX:
                raise OperandTypeError(
                    f"Value {value.value} does not fit in an integer vector element",
                    location=location,
                    rule="INDEX",
                )
            array[offset] = value.value
            return
        if value.type not in NUMERIC_TYPES:
            raise OperandTypeError("Real vector elements require numeric values", location=location, rule="INDEX")
        array[offset] = float(value.value)

    def _evaluate_expression(self, expression: Expression) -> Value:
        if isinstance(expression, Literal):
            return Value(expression.literal_type, expression.value)
        if isinstance(expression, Identifier):
            return self._lookup(expression)
        if isinstance(expression, IndexExpression):
            array, offset = self._resolve_element(expression)
            return self._element_value(array, offset)
        if isinstance(expression, UnaryExpression):
            operand = self._evaluate_expression(expression.operand)
            if operand.type not in NUMERIC_TYPES:
                raise OperandTypeError("Operand must be a number.", location=expression.location, rule=expression.operator)
            return Value(operand.type, -operand.value)
        if isinstance(expression, BinaryExpression):
            return self._evaluate_binary(expression)
        raise GLRuntimeError("Unsupported expression", location=expression.location)

    def _evaluate_binary(self, expression: BinaryExpression) -> Value:
        left = self._evaluate_expression(expression.left)
        right = self._evaluate_expression(expression.right)
        op = expression.operator
        location = expression.location

        if op == "=":
            return Value(TYPE_BOOL, self._values_equal(left, right))
        if op == "<>":
            return Value(TYPE_BOOL, not self._values_equal(left, right))
        if left.type not in NUMERIC_TYPES or right.type not in NUMERIC_TYPES:
            raise OperandTypeError("Operands must be numbers.", location=location, rule=op)
        if op in COMPARISONS:
            return Value(TYPE_BOOL, COMPARISONS[op](left.value, right.value))

        is_real = TYPE_REAL in (left.type, right.type)
        if op == "mod":
            if is_real:
                raise ModuloTypeError("Modulo requires integer operands.", location=location, rule=op)
            if right.value == 0:
                raise DivisionByZeroError("Division by zero.", location=location, rule=op)
            return Value(TYPE_INT, _truncating_mod(left.value, right.value))
        if op == "/":
            if right.value == 0:
                raise DivisionByZeroError("Division by zero.", location=location, rule=op)
            if is_real:
                return Value(TYPE_REAL, float(left.value) / float(right.value))
            return Value(TYPE_INT, _truncating_div(left.value, right.value))
        if op in ARITHMETIC:
            if is_real:
                return Value(TYPE_REAL, ARITHMETIC[op](float(left.value), float(right.value)))
            return Value(TYPE_INT, ARITHMETIC[op](left.value, right.value))
        raise GLRuntimeError(f"Unsupported operator '{op}'", location=location, rule=op)

    def _is_truthy(self, value: Value) -> bool:
        if value.value is None:
            return False
        if value.type == TYPE_BOOL:
            return bool(value.value)
        if value.type in NUMERIC_TYPES:
            return value.value != 0
        return True

    def _values_equal(self, left: Value, right: Value) -> bool:
        if left.type in NUMERIC_TYPES and right.type in NUMERIC_TYPES:
            return left.value == right.value
        if left.type != right.type:
            return False
        if left.type == TYPE_VECTOR:
            return bool(np.array_equal(left.value, right.value))
        return left.value == right.value

    def _stringify(self, value: Value) -> str:
        if value.value is None:
            return "nil"
        if value.type == TYPE_BOOL:
            return "true" if value.value else "false"
        if value.type == TYPE_VECTOR:
            array = value.value
            items = [self._stringify(self._element_value(array, i)) for i in range(len(array))]
            return "[" + ", ".join(items) + "]"
        return str(value.value)

    def _emit_event(self, event: str, *args: Any, **kwargs: Any) -> None:
        try:
            self.hook_registry.emit(event, *args, **kwargs)
        except GLRuntimeError:
            raise
        except Exception as exc:
            last = self.logger.last_entry
            raise GLRuntimeError(
                f"Extension hook '{event}' failed: {exc}",
                location=last.source_location if last is not None else None,
                rule="EXT",
            ) from exc

    def _log_step(
        self,
        *,
        rule: str,
        location: Optional[SourceLocation],
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        entry = self.logger.record(
            depth=len(self.position_stack),
            location=location,
            rule=rule,
            extra=extra,
            env_snapshot=self.environment.snapshot() if self.verbose else None,
        )

        # Run extension step rules (every N steps) after recording.
        try:
            self.hook_registry.after_step(
                self,
                StepContext(step_index=entry.step_index, rule=rule, location=location, extra=extra),
            )
        except GLRuntimeError:
            raise
        except Exception as exc:
            raise GLRuntimeError(
                f"Extension step rule failed: {exc}",
                location=location,
                rule="EXT",
            ) from exc


@dataclass
class TracebackFrame:
    name: str
    location: Optional[SourceLocation]
    statement: Optional[str]
    state_entry: Optional[StateEntry]


class TracebackFormatter:
    def __init__(self, interpreter: Interpreter) -> None:
        self.interpreter = interpreter

    def build_frames(self, error: Optional[GLRuntimeError] = None) -> List[TracebackFrame]:
        frames: List[TracebackFrame] = []
        stack = self.interpreter.position_stack
        last_entry = self.interpreter.logger.last_entry
        for depth, frame in enumerate(stack):
            if depth == 0:
                name = "<program>"
            else:
                name = "<loop>" if frame.is_loop else "<block>"
            current = frame.current()
            location = current.location if current is not None else frame.block.location
            innermost = depth == len(stack) - 1
            frames.append(
                TracebackFrame(
                    name=name,
                    location=location,
                    statement=location.statement if location else None,
                    state_entry=last_entry if innermost else None,
                )
            )
        if not frames and error is not None and error.location is not None:
            # Raised before any frame was opened (e.g. while building the label table).
            frames.append(
                TracebackFrame(
                    name="<labels>",
                    location=error.location,
                    statement=error.location.statement,
                    state_entry=None,
                )
            )
        return frames

    @staticmethod
    def summary(error: GLRuntimeError) -> str:
        where = f" [line {error.location.line}]" if error.location else ""
        return f"{type(error).__name__}{where}: {error.message} (rule: {error.rule or 'runtime'})"

    def format_text(self, error: GLRuntimeError, verbose: bool) -> str:
        lines = ["Traceback (most recent call last):"]
        for frame in self.build_frames(error):
            loc = frame.location
            lines.append(f'  File "{loc.file}", line {loc.line}, in {frame.name}' if loc else f"  <unknown location> in {frame.name}")
            if frame.statement:
                lines.append("    " + frame.statement)
            step = frame.state_entry
            if step is None:
                continue
            lines.append(f"    at step {step.step_index} ({step.state_id}, {step.record['rule']})")
            if verbose and step.env_snapshot is not None:
                lines.append("    env: " + ", ".join(f"{name}={shown}" for name, shown in step.env_snapshot.items()))
        lines.append(self.summary(error))
        return "\n".join(lines)

    def _frame_json(self, frame: TracebackFrame) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": frame.name, "file": None, "line": None, "statement": frame.statement}
        if frame.location is not None:
            data["file"] = frame.location.file
            data["line"] = frame.location.line
        step = frame.state_entry
        if step is not None:
            data["step"] = {"index": step.step_index, "state_id": step.state_id, "record": step.record}
            if step.env_snapshot is not None:
                data["env_snapshot"] = step.env_snapshot
        return data

    def to_json(self, error: GLRuntimeError) -> str:
        return json.dumps(
            {
                "error": {
                    "type": type(error).__name__,
                    "message": error.message,
                    "rule": error.rule,
                    "line": error.location.line if error.location else None,
                    "failing_step_index": error.step_index,
                },
                "labels": sorted(self.interpreter.labels),
                "traceback": [self._frame_json(frame) for frame in self.build_frames(error)],
            },
            indent=2,
        )
