import contextlib
import io
import os
import tempfile
import unittest
from unittest import mock

from gotolang.cli import EXIT_PARSE, EXIT_RUNTIME, EXIT_USAGE, run_cli


class TestCli(unittest.TestCase):
    def invoke(self, *argv):
        out, err = io.StringIO(), io.StringIO()
        with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
            code = run_cli(list(argv))
        return code, out.getvalue(), err.getvalue()

    def test_runs_literal_source(self):
        code, out, _ = self.invoke("-source", "begin write 1, space, 2 end")
        self.assertEqual(code, 0)
        self.assertEqual(out, "1 2\n")

    def test_runs_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "count.gl")
            with open(path, "w", encoding="utf-8") as handle:
                handle.write("begin x: integer; x := 2; top: write x; x := x - 1; if x > 0 then goto top end\n")
            code, out, _ = self.invoke(path)
        self.assertEqual(code, 0)
        self.assertEqual(out.splitlines(), ["2", "1"])

    def test_missing_file(self):
        code, _, err = self.invoke(os.path.join(tempfile.gettempdir(), "does-not-exist.gl"))
        self.assertEqual(code, EXIT_USAGE)
        self.assertIn("Failed to read", err)

    def test_parse_error_exit_code(self):
        code, _, err = self.invoke("-source", "begin x := end")
        self.assertEqual(code, EXIT_PARSE)
        self.assertIn("ParseError", err)

    def test_runtime_error_exit_code(self):
        code, out, err = self.invoke("-source", "begin write 1; write 1 / 0 end", "--traceback-json")
        self.assertEqual(code, EXIT_RUNTIME)
        self.assertEqual(out, "1\n")
        self.assertIn("Traceback (most recent call last):", err)
        self.assertIn("DivisionByZeroError [line 1]: Division by zero.", err)
        self.assertIn('"type": "DivisionByZeroError"', err)

    def test_source_flag_requires_program(self):
        code, _, err = self.invoke("-source")
        self.assertEqual(code, EXIT_USAGE)
        self.assertIn("-source requires", err)

    def test_token_dump(self):
        code, out, _ = self.invoke("-source", "begin end", "--tokens")
        self.assertEqual(code, 0)
        self.assertEqual([line.split("\t")[1] for line in out.splitlines()], ["BEGIN", "END", "EOF"])

    def test_ast_dump(self):
        code, out, _ = self.invoke("-source", "begin x: integer; top: write x end", "--ast")
        self.assertEqual(code, 0)
        self.assertEqual(out, "(block\n  (decl integer x)\n  (label top)\n  (write x))\n")

    def test_missing_extension(self):
        code, _, err = self.invoke("-source", "begin end", "--ext", "no-such-extension.py")
        self.assertEqual(code, EXIT_USAGE)
        self.assertIn("ExtensionError", err)


class TestRepl(unittest.TestCase):
    def test_buffers_share_environment(self):
        lines = ["x: integer;", "x := 4", "", "write x * 2", "", "goto nowhere", "", EOFError]
        out, err = io.StringIO(), io.StringIO()
        with mock.patch("builtins.input", side_effect=lines), contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
            code = run_cli([])
        self.assertEqual(code, 0)
        self.assertIn("8\n", out.getvalue())
        self.assertIn("UndefinedLabelError", err.getvalue())

    def test_identifiers_starting_with_begin(self):
        lines = ["beginning: integer;", "beginning := 4;", "write beginning", "", "begin write 1 end; write 2", "", EOFError]
        out, err = io.StringIO(), io.StringIO()
        with mock.patch("builtins.input", side_effect=lines), contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
            code = run_cli([])
        self.assertEqual(code, 0)
        self.assertEqual(err.getvalue(), "")
        self.assertIn("4\n1\n2\n", out.getvalue())

    def test_parse_error_keeps_repl_alive(self):
        lines = ["write (", "", "write 3", "", EOFError]
        out, err = io.StringIO(), io.StringIO()
        with mock.patch("builtins.input", side_effect=lines), contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
            code = run_cli([])
        self.assertEqual(code, 0)
        self.assertIn("ParseError", err.getvalue())
        self.assertIn("3\n", out.getvalue())


if __name__ == "__main__":
    unittest.main()
