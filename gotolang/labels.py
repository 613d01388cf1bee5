"""Static label addressing.

Every label is resolved, before anything runs, to the chain of statement
sequences that leads from the program root down to it. Each link records
which sequence is open, where its cursor stands and whether the sequence
is a loop body. Rebuilding the engine's position stack from that chain is
all a ``goto`` has to do.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Tuple

from gotolang.errors import LabelDefinitionError, UndefinedLabelError
from gotolang.parser import Block, IfStatement, LabelStatement, Loop, SourceLocation, Statement


@dataclass(frozen=True)
class Segment:
    block: Block
    index: int
    is_loop: bool


@dataclass(frozen=True)
class LabelAddress:
    name: str
    segments: Tuple[Segment, ...]
    location: SourceLocation

    @property
    def depth(self) -> int:
        return len(self.segments)


class LabelTable:
    def __init__(self) -> None:
        self._addresses: Dict[str, LabelAddress] = {}

    @classmethod
    def build(cls, program: Block) -> "LabelTable":
        table = cls()
        table._collect(program, False, ())
        return table

    def _collect(self, block: Block, is_loop: bool, prefix: Tuple[Segment, ...]) -> None:
        for index, statement in enumerate(block.statements):
            self._visit(statement, block, index, is_loop, prefix)

    def _visit(
        self,
        statement: Statement,
        block: Block,
        index: int,
        is_loop: bool,
        prefix: Tuple[Segment, ...],
    ) -> None:
        here = prefix + (Segment(block=block, index=index, is_loop=is_loop),)
        if isinstance(statement, LabelStatement):
            self._define(statement, here)
        elif isinstance(statement, Block):
            self._collect(statement, False, here)
        elif isinstance(statement, Loop):
            self._collect(statement.body, True, here)
        elif isinstance(statement, IfStatement):
            # Branches run in place of the If itself; only nested sequences open a new level.
            self._visit(statement.then_branch, block, index, is_loop, prefix)
            if statement.else_branch is not None:
                self._visit(statement.else_branch, block, index, is_loop, prefix)

    def _define(self, statement: LabelStatement, segments: Tuple[Segment, ...]) -> None:
        existing = self._addresses.get(statement.name)
        if existing is not None:
            raise LabelDefinitionError(
                f"Label '{statement.name}' is already defined at line {existing.location.line}",
                location=statement.location,
                rule="LABEL",
            )
        self._addresses[statement.name] = LabelAddress(
            name=statement.name,
            segments=segments,
            location=statement.location,
        )

    def resolve(self, name: str, location: Optional[SourceLocation] = None) -> LabelAddress:
        address = self._addresses.get(name)
        if address is None:
            raise UndefinedLabelError(f"Undefined label '{name}'", location=location, rule="GOTO")
        return address

    def __iter__(self) -> Iterator[str]:
        return iter(self._addresses)
