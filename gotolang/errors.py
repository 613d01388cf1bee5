from __future__ import annotations
from typing import Optional

from gotolang.lexer import GLError
from gotolang.parser import SourceLocation


class GLRuntimeError(GLError):
    """Raised for runtime faults."""

    def __init__(
        self,
        message: str,
        *,
        location: Optional[SourceLocation] = None,
        rule: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.location = location
        self.rule = rule
        self.step_index: Optional[int] = None


class LabelDefinitionError(GLRuntimeError):
    """A label name occurs more than once in one program."""


class UndefinedLabelError(GLRuntimeError):
    """A goto names a label that does not exist."""


class UndefinedVariableError(GLRuntimeError):
    """A variable is read or assigned before being declared."""


class OperandTypeError(GLRuntimeError):
    """An operand has the wrong kind for its operator."""


class DivisionByZeroError(GLRuntimeError):
    pass


class ModuloTypeError(GLRuntimeError):
    pass
