from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Union

from gotolang.lexer import GLParseError, Lexer, Token


@dataclass
class SourceLocation:
    file: str
    line: int
    column: int
    statement: str


@dataclass
class Node:
    location: SourceLocation


class Statement(Node):
    pass


@dataclass
class Block(Statement):
    statements: List[Statement]


@dataclass
class Loop(Statement):
    body: Block


@dataclass
class IfStatement(Statement):
    condition: "Expression"
    then_branch: Statement
    else_branch: Optional[Statement]


@dataclass
class VarDeclaration(Statement):
    names: List[str]
    is_vector: bool
    size: Optional["Expression"]
    element_type: str


@dataclass
class Assignment(Statement):
    target: "Variable"
    expression: "Expression"


@dataclass
class ReadStatement(Statement):
    targets: List["Variable"]


@dataclass
class LayoutDirective(Node):
    kind: str


@dataclass
class WriteStatement(Statement):
    items: List[Union["Expression", LayoutDirective]]


@dataclass
class GotoStatement(Statement):
    label: str


@dataclass
class LabelStatement(Statement):
    name: str


@dataclass
class EmptyStatement(Statement):
    pass


class Expression(Node):
    pass


@dataclass
class Literal(Expression):
    value: Union[int, float]
    literal_type: str


@dataclass
class Identifier(Expression):
    name: str


@dataclass
class IndexExpression(Expression):
    base: Identifier
    index: Expression


Variable = Union[Identifier, IndexExpression]


@dataclass
class UnaryExpression(Expression):
    operator: str
    operand: Expression


@dataclass
class BinaryExpression(Expression):
    operator: str
    left: Expression
    right: Expression


TYPE_KEYWORDS = ("INTEGER", "REAL")
LAYOUT_KEYWORDS = ("SPACE", "TAB", "SKIP")
RELATIONAL_OPERATORS = {"EQ": "=", "NE": "<>", "LT": "<", "GT": ">", "LE": "<=", "GE": ">="}
ADDITIVE_OPERATORS = {"PLUS": "+", "MINUS": "-"}
MULTIPLICATIVE_OPERATORS = {"STAR": "*", "SLASH": "/", "MOD": "mod"}


class Parser:
    def __init__(self, tokens: List[Token], filename: str, source_lines: List[str]):
        self.tokens = tokens
        self.filename = filename
        self.source_lines = source_lines
        self.index = 0

    def parse(self) -> Block:
        """Parse a whole program: a single ``begin ... end`` block."""
        if self._peek().type != "BEGIN":
            token = self._peek()
            raise GLParseError(f"Program must start with 'begin' but found {token.type} at line {token.line}")
        program = self._parse_compound()
        self._match("SEMI")
        eof_token = self._peek()
        if eof_token.type != "EOF":
            raise GLParseError(f"Unexpected {eof_token.type} after end of program at line {eof_token.line}")
        return program

    def _parse_compound(self) -> Block:
        keyword = self._consume("BEGIN")
        statements = self._parse_statements()
        self._consume("END")
        return Block(location=self._location_from_token(keyword), statements=statements)

    def _parse_loop(self) -> Loop:
        keyword = self._consume("LOOP")
        location = self._location_from_token(keyword)
        statements = self._parse_statements()
        self._consume("END")
        return Loop(location=location, body=Block(location=location, statements=statements))

    def _parse_statements(self) -> List[Statement]:
        statements: List[Statement] = []
        while self._peek().type not in ("END", "EOF"):
            statements.extend(self._parse_statement())
            if self._peek().type == "END":
                break
            self._consume("SEMI")
        return statements

    def _parse_statement(self) -> List[Statement]:
        if self._looks_like_declaration():
            return [self._parse_declaration()]
        token = self._peek()
        label: Optional[LabelStatement] = None
        if token.type == "LABEL":
            self.index += 1
            label = LabelStatement(location=self._location_from_token(token), name=token.value)
        elif token.type == "IDENT" and self._peek_next().type == "COLON":
            self.index += 2
            label = LabelStatement(location=self._location_from_token(token), name=token.value)
        statement = self._parse_unlabeled()
        if label is None:
            return [statement]
        return [label, statement]

    def _parse_unlabeled(self) -> Statement:
        token = self._peek()
        if token.type == "BEGIN":
            return self._parse_compound()
        if token.type == "LOOP":
            return self._parse_loop()
        if token.type == "IF":
            return self._parse_if()
        if token.type == "GOTO":
            return self._parse_goto()
        if token.type == "READ":
            return self._parse_read()
        if token.type == "WRITE":
            return self._parse_write()
        if token.type == "IDENT":
            return self._parse_assignment()
        return EmptyStatement(location=self._location_from_token(token))

    def _parse_declaration(self) -> VarDeclaration:
        first = self._peek()
        names: List[str] = []
        while True:
            token = self._peek()
            if token.type == "LABEL":
                self.index += 1
                names.append(token.value)
                break
            names.append(self._consume("IDENT").value)
            if self._match("COLON"):
                break
            self._consume("COMMA")
        is_vector = False
        size: Optional[Expression] = None
        if self._match("VECTOR"):
            is_vector = True
            self._consume("LBRACKET")
            size = self._parse_expression()
            self._consume("RBRACKET")
            self._consume("OF")
        type_token = self._peek()
        if type_token.type not in TYPE_KEYWORDS:
            raise GLParseError(f"Expected type 'integer' or 'real' but found {type_token.type} at line {type_token.line}")
        self.index += 1
        return VarDeclaration(
            location=self._location_from_token(first),
            names=names,
            is_vector=is_vector,
            size=size,
            element_type=type_token.type.lower(),
        )

    def _parse_if(self) -> IfStatement:
        keyword = self._consume("IF")
        condition = self._parse_expression()
        self._consume("THEN")
        then_branch = self._parse_unlabeled()
        else_branch: Optional[Statement] = self._parse_unlabeled() if self._match("ELSE") else None
        return IfStatement(
            location=self._location_from_token(keyword),
            condition=condition,
            then_branch=then_branch,
            else_branch=else_branch,
        )

    def _parse_goto(self) -> GotoStatement:
        keyword = self._consume("GOTO")
        target = self._consume("IDENT")
        return GotoStatement(location=self._location_from_token(keyword), label=target.value)

    def _parse_read(self) -> ReadStatement:
        keyword = self._consume("READ")
        targets: List[Variable] = [self._parse_variable()]
        while self._match("COMMA"):
            targets.append(self._parse_variable())
        return ReadStatement(location=self._location_from_token(keyword), targets=targets)

    def _parse_write(self) -> WriteStatement:
        keyword = self._consume("WRITE")
        items: List[Union[Expression, LayoutDirective]] = [self._parse_write_item()]
        while self._match("COMMA"):
            items.append(self._parse_write_item())
        return WriteStatement(location=self._location_from_token(keyword), items=items)

    def _parse_write_item(self) -> Union[Expression, LayoutDirective]:
        token = self._peek()
        if token.type in LAYOUT_KEYWORDS:
            self.index += 1
            return LayoutDirective(location=self._location_from_token(token), kind=token.type)
        return self._parse_expression()

    def _parse_assignment(self) -> Assignment:
        target = self._parse_variable()
        self._consume("ASSIGN")
        expr = self._parse_expression()
        return Assignment(location=target.location, target=target, expression=expr)

    def _parse_variable(self) -> Variable:
        ident = self._consume("IDENT")
        base = Identifier(location=self._location_from_token(ident), name=ident.value)
        if self._peek().type != "LBRACKET":
            return base
        lbracket = self._consume("LBRACKET")
        index = self._parse_expression()
        self._consume("RBRACKET")
        return IndexExpression(location=self._location_from_token(lbracket), base=base, index=index)

    def _parse_expression(self) -> Expression:
        return self._parse_binary_level(self._parse_sum, RELATIONAL_OPERATORS)

    def _parse_sum(self) -> Expression:
        return self._parse_binary_level(self._parse_term, ADDITIVE_OPERATORS)

    def _parse_term(self) -> Expression:
        return self._parse_binary_level(self._parse_unary, MULTIPLICATIVE_OPERATORS)

    def _parse_binary_level(self, operand, operators: dict) -> Expression:
        expr = operand()
        while self._peek().type in operators:
            operator = self._peek()
            self.index += 1
            right = operand()
            expr = BinaryExpression(
                location=self._location_from_token(operator),
                operator=operators[operator.type],
                left=expr,
                right=right,
            )
        return expr

    def _parse_unary(self) -> Expression:
        if self._peek().type == "MINUS":
            operator = self._consume("MINUS")
            operand = self._parse_unary()
            return UnaryExpression(location=self._location_from_token(operator), operator="-", operand=operand)
        return self._parse_primary()

    def _parse_primary(self) -> Expression:
        token = self._peek()
        if token.type == "NUMBER":
            self.index += 1
            return Literal(location=self._location_from_token(token), value=token.literal, literal_type="INT")
        if token.type == "REAL":
            self.index += 1
            return Literal(location=self._location_from_token(token), value=token.literal, literal_type="REAL")
        if token.type == "IDENT":
            return self._parse_variable()
        if token.type == "LPAREN":
            self._consume("LPAREN")
            expr = self._parse_expression()
            self._consume("RPAREN")
            return expr
        raise GLParseError(f"Unexpected token {token.type} in expression at line {token.line}")

    def _looks_like_declaration(self) -> bool:
        # name {"," name} ":" type, where the last name may carry its ':' as a LABEL token
        i = self.index
        tokens = self.tokens
        while i < len(tokens):
            tok = tokens[i]
            if tok.type == "LABEL":
                i += 1
                break
            if tok.type != "IDENT" or i + 1 >= len(tokens):
                return False
            following = tokens[i + 1].type
            if following == "COLON":
                i += 2
                break
            if following != "COMMA":
                return False
            i += 2
        return i < len(tokens) and tokens[i].type in TYPE_KEYWORDS + ("VECTOR",)

    def _consume(self, token_type: str) -> Token:
        token = self._peek()
        if token.type != token_type:
            raise GLParseError(f"Expected token {token_type} but found {token.type} at line {token.line}")
        self.index += 1
        return token

    def _match(self, token_type: str) -> bool:
        if self._peek().type == token_type:
            self.index += 1
            return True
        return False

    def _peek(self) -> Token:
        return self.tokens[self.index]

    def _peek_next(self) -> Token:
        if self.index + 1 >= len(self.tokens):
            return self.tokens[-1]
        return self.tokens[self.index + 1]

    def _location_from_token(self, token: Token) -> SourceLocation:
        line_index = token.line - 1
        statement = ""
        if 0 <= line_index < len(self.source_lines):
            statement = self.source_lines[line_index].strip()
        return SourceLocation(file=self.filename, line=token.line, column=token.column, statement=statement)


def parse_source(text: str, filename: str = "<string>") -> Block:
    tokens = Lexer(text, filename).tokenize()
    return Parser(tokens, filename, text.splitlines()).parse()
