import unittest

from gotolang.lexer import GLParseError
from gotolang.parser import (
    Assignment,
    BinaryExpression,
    Block,
    EmptyStatement,
    GotoStatement,
    Identifier,
    IfStatement,
    IndexExpression,
    LabelStatement,
    LayoutDirective,
    Literal,
    Loop,
    ReadStatement,
    UnaryExpression,
    VarDeclaration,
    WriteStatement,
    parse_source,
)


class TestParser(unittest.TestCase):
    def parse(self, source: str) -> Block:
        return parse_source(source, "<test>")

    def body(self, source: str):
        return self.parse(source).statements

    def test_empty_program(self):
        program = self.parse("begin end")
        self.assertIsInstance(program, Block)
        self.assertEqual(program.statements, [])

    def test_program_terminators(self):
        self.assertEqual(self.body("begin end."), [])
        self.assertEqual(self.body("begin end;"), [])

    def test_program_must_start_with_begin(self):
        with self.assertRaises(GLParseError) as cm:
            self.parse("x := 1")
        self.assertIn("begin", str(cm.exception))

    def test_trailing_tokens_rejected(self):
        with self.assertRaises(GLParseError):
            self.parse("begin end x")

    def test_missing_separator(self):
        with self.assertRaises(GLParseError) as cm:
            self.parse("begin\nx := 1\nx := 2\nend")
        self.assertIn("line 3", str(cm.exception))

    def test_declaration(self):
        (decl,) = self.body("begin x, y: real end")
        self.assertIsInstance(decl, VarDeclaration)
        self.assertEqual(decl.names, ["x", "y"])
        self.assertEqual(decl.element_type, "real")
        self.assertFalse(decl.is_vector)

    def test_vector_declaration(self):
        (decl,) = self.body("begin a : vector[5] of integer end")
        self.assertTrue(decl.is_vector)
        self.assertIsInstance(decl.size, Literal)
        self.assertEqual(decl.size.value, 5)
        self.assertEqual(decl.element_type, "integer")

    def test_bad_declaration_type(self):
        with self.assertRaises(GLParseError):
            self.parse("begin a: vector[2] of begin end")

    def test_label_precedes_statement(self):
        stmts = self.body("begin top: write 1; goto top end")
        self.assertEqual([type(s) for s in stmts], [LabelStatement, WriteStatement, GotoStatement])
        self.assertEqual(stmts[0].name, "top")
        self.assertEqual(stmts[2].label, "top")

    def test_label_with_space_before_colon(self):
        stmts = self.body("begin top : write 1 end")
        self.assertIsInstance(stmts[0], LabelStatement)
        self.assertIsInstance(stmts[1], WriteStatement)

    def test_label_followed_by_nothing_binds_empty(self):
        stmts = self.body("begin write 1; done: end")
        self.assertIsInstance(stmts[1], LabelStatement)
        self.assertIsInstance(stmts[2], EmptyStatement)

    def test_stray_separator_is_empty_statement(self):
        stmts = self.body("begin ; write 1 end")
        self.assertIsInstance(stmts[0], EmptyStatement)
        self.assertIsInstance(stmts[1], WriteStatement)

    def test_loop_body_is_fresh_block(self):
        (loop,) = self.body("begin loop begin write 1 end end end")
        self.assertIsInstance(loop, Loop)
        self.assertIsInstance(loop.body, Block)
        self.assertEqual(len(loop.body.statements), 1)
        self.assertIsInstance(loop.body.statements[0], Block)

    def test_if_else(self):
        (stmt,) = self.body("begin if x > 0 then x := 1 else goto out end")
        self.assertIsInstance(stmt, IfStatement)
        self.assertIsInstance(stmt.condition, BinaryExpression)
        self.assertEqual(stmt.condition.operator, ">")
        self.assertIsInstance(stmt.then_branch, Assignment)
        self.assertIsInstance(stmt.else_branch, GotoStatement)

    def test_if_without_else(self):
        (stmt,) = self.body("begin if 1 then begin end end")
        self.assertIsInstance(stmt.then_branch, Block)
        self.assertIsNone(stmt.else_branch)

    def test_read_targets(self):
        (stmt,) = self.body("begin read x, a[1] end")
        self.assertIsInstance(stmt, ReadStatement)
        self.assertIsInstance(stmt.targets[0], Identifier)
        self.assertIsInstance(stmt.targets[1], IndexExpression)

    def test_write_items(self):
        (stmt,) = self.body("begin write x, space, tab, skip, 1 + 2 end")
        kinds = [item.kind for item in stmt.items if isinstance(item, LayoutDirective)]
        self.assertEqual(kinds, ["SPACE", "TAB", "SKIP"])
        self.assertIsInstance(stmt.items[-1], BinaryExpression)

    def test_precedence(self):
        (stmt,) = self.body("begin x := 1 + 2 * 3 end")
        expr = stmt.expression
        self.assertEqual(expr.operator, "+")
        self.assertEqual(expr.right.operator, "*")

    def test_relational_binds_loosest(self):
        (stmt,) = self.body("begin x := a + 1 = b mod 2 end")
        expr = stmt.expression
        self.assertEqual(expr.operator, "=")
        self.assertEqual(expr.left.operator, "+")
        self.assertEqual(expr.right.operator, "mod")

    def test_unary_and_grouping(self):
        (stmt,) = self.body("begin x := -(1 - 2) end")
        self.assertIsInstance(stmt.expression, UnaryExpression)
        self.assertEqual(stmt.expression.operand.operator, "-")

    def test_locations(self):
        stmts = self.body("begin\n  x: integer;\n  x := 3\nend")
        self.assertEqual(stmts[1].location.line, 3)
        self.assertEqual(stmts[1].location.statement, "x := 3")
        self.assertEqual(stmts[1].location.file, "<test>")

    def test_bad_expression(self):
        with self.assertRaises(GLParseError) as cm:
            self.parse("begin x := * 2 end")
        self.assertIn("Unexpected token STAR", str(cm.exception))


if __name__ == "__main__":
    unittest.main()
