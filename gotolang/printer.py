"""Debug dump of a parsed program as parenthesized prefix text."""

from __future__ import annotations
from typing import List, Union

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
    Node,
    ReadStatement,
    Statement,
    UnaryExpression,
    VarDeclaration,
    WriteStatement,
)


class AstPrinter:
    def print(self, node: Node) -> str:
        if isinstance(node, Statement):
            return self._statement(node)
        if isinstance(node, LayoutDirective):
            return node.kind.lower()
        return self._expression(node)  # type: ignore[arg-type]

    def _statement(self, stmt: Statement) -> str:
        if isinstance(stmt, Block):
            return self._sequence("block", stmt.statements)
        if isinstance(stmt, Loop):
            return self._sequence("loop", stmt.body.statements)
        if isinstance(stmt, IfStatement):
            if stmt.else_branch is None:
                return self._parenthesize("if", stmt.condition, stmt.then_branch)
            return self._parenthesize("if-else", stmt.condition, stmt.then_branch, stmt.else_branch)
        if isinstance(stmt, VarDeclaration):
            head = stmt.element_type
            if stmt.is_vector and stmt.size is not None:
                head = f"(vector {self.print(stmt.size)}) {head}"
            return f"(decl {head} {' '.join(stmt.names)})"
        if isinstance(stmt, Assignment):
            return self._parenthesize(":=", stmt.target, stmt.expression)
        if isinstance(stmt, ReadStatement):
            return self._parenthesize("read", *stmt.targets)
        if isinstance(stmt, WriteStatement):
            return self._parenthesize("write", *stmt.items)
        if isinstance(stmt, GotoStatement):
            return f"(goto {stmt.label})"
        if isinstance(stmt, LabelStatement):
            return f"(label {stmt.name})"
        if isinstance(stmt, EmptyStatement):
            return "(empty)"
        raise TypeError(f"Cannot print {stmt.__class__.__name__}")

    def _expression(self, expr: Expression) -> str:
        if isinstance(expr, Literal):
            return str(expr.value)
        if isinstance(expr, Identifier):
            return expr.name
        if isinstance(expr, IndexExpression):
            return self._parenthesize("index", expr.base, expr.index)
        if isinstance(expr, UnaryExpression):
            return self._parenthesize(expr.operator, expr.operand)
        if isinstance(expr, BinaryExpression):
            return self._parenthesize(expr.operator, expr.left, expr.right)
        raise TypeError(f"Cannot print {expr.__class__.__name__}")

    def _sequence(self, name: str, statements: List[Statement]) -> str:
        parts = [f"({name}"]
        for stmt in statements:
            parts.append("\n  " + self._statement(stmt).replace("\n", "\n  "))
        parts.append(")")
        return "".join(parts)

    def _parenthesize(self, name: str, *parts: Union[Node, str]) -> str:
        rendered = [part if isinstance(part, str) else self.print(part) for part in parts]
        return "(" + " ".join([name] + rendered) + ")"
