import os
import tempfile
import textwrap
import unittest

from gotolang.errors import GLRuntimeError, UndefinedLabelError
from gotolang.extensions import (
    ExtensionAPI,
    GLExtensionError,
    HookRegistry,
    RuntimeServices,
    gather_extension_paths,
    load_runtime_services,
    read_glx,
)
from gotolang.interpreter import Interpreter


class TestHookRegistry(unittest.TestCase):
    def test_handlers_run_by_priority(self):
        registry = HookRegistry()
        calls = []
        registry.on_event("program_end", lambda *a: calls.append("low"), priority=0, ext_name="a")
        registry.on_event("program_end", lambda *a: calls.append("high"), priority=10, ext_name="b")
        registry.emit("program_end", None, 0)
        self.assertEqual(calls, ["high", "low"])
        self.assertTrue(registry.has_handlers("program_end"))
        self.assertFalse(registry.has_handlers("on_error"))

    def test_unknown_event_rejected(self):
        registry = HookRegistry()
        with self.assertRaises(GLExtensionError) as cm:
            registry.on_event("before_goto", lambda *a: None)
        self.assertIn("before_jump", str(cm.exception))

    def test_step_rule_validation(self):
        registry = HookRegistry()
        with self.assertRaises(GLExtensionError):
            registry.add_step_rule(name="bad", every_n=0, handler=lambda i, c: None, ext_name="x")


class TestExtensionAPI(unittest.TestCase):
    def run_with(self, source, services):
        output = []
        interpreter = Interpreter(source=source, services=services, output_sink=output.append)
        interpreter.run()
        return interpreter, output

    def test_decorated_hooks_observe_program(self):
        services = RuntimeServices()
        ext = ExtensionAPI(services=services, ext_name="probe")
        ext.metadata(name="probe", version="1.0")
        events = []

        @ext.on_event("program_start")
        def started(interp, program, env):
            events.append("start")

        @ext.on_event("before_jump")
        def jumping(interp, goto, address):
            events.append(f"jump:{goto.label}:{address.depth}")

        @ext.on_event("program_end")
        def ended(interp, code):
            events.append(f"end:{code}")

        self.run_with("begin loop goto out end; out: end", services)
        self.assertEqual(events, ["start", "jump:out:1", "end:0"])
        self.assertEqual(services.metadata[0].name, "probe")

    def test_every_n_steps(self):
        services = RuntimeServices()
        ext = ExtensionAPI(services=services, ext_name="counter")
        seen = []
        ext.every_n_steps(2, lambda interp, ctx: seen.append(ctx.step_index))
        self.run_with("begin write 1; write 2; write 3; write 4 end", services)
        self.assertTrue(seen)
        self.assertTrue(all(index % 2 == 0 for index in seen))

    def test_failing_hook_becomes_runtime_error(self):
        services = RuntimeServices()
        ext = ExtensionAPI(services=services, ext_name="broken")
        errors = []

        @ext.on_event("after_statement")
        def explode(interp, statement, env):
            raise KeyError("boom")

        ext.on_event("on_error", lambda interp, error: errors.append(error))
        with self.assertRaises(GLRuntimeError) as cm:
            self.run_with("begin write 1 end", services)
        self.assertEqual(cm.exception.rule, "EXT")
        self.assertIn("after_statement", cm.exception.message)
        self.assertEqual(errors, [cm.exception])


    def test_failing_error_hook_keeps_original_error(self):
        services = RuntimeServices()
        ext = ExtensionAPI(services=services, ext_name="noisy")
        ext.on_event("on_error", lambda interp, error: 1 / 0)
        interpreter = Interpreter(source="begin goto nowhere end", services=services)
        with self.assertRaises(GLRuntimeError) as cm:
            interpreter.run()
        self.assertEqual(cm.exception.rule, "EXT")
        self.assertIn("on_error", cm.exception.message)
        self.assertIsInstance(cm.exception.__cause__, UndefinedLabelError)
        self.assertIsNotNone(cm.exception.step_index)
        self.assertEqual(cm.exception.step_index, cm.exception.__cause__.step_index)

    def test_statement_hooks_skipped_when_unregistered(self):
        services = RuntimeServices()
        self.assertFalse(services.hook_registry.has_handlers("before_statement"))
        _, output = self.run_with("begin write 1 end", services)
        self.assertEqual(output, ["1"])


class TestExtensionLoading(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = self._tmp.name

    def tearDown(self):
        self._tmp.cleanup()

    def write_file(self, name, content):
        path = os.path.join(self.dir, name)
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(textwrap.dedent(content))
        return path

    def test_load_extension_module(self):
        path = self.write_file(
            "tracer.py",
            """
            GOTOLANG_EXTENSION_NAME = "tracer"

            def gotolang_register(ext):
                ext.metadata(name="tracer", version="0.2")
                ext.on_event("program_end", lambda interp, code: interp.output_sink("bye"))
            """,
        )
        services = load_runtime_services([path])
        self.assertEqual([m.name for m in services.metadata], ["tracer"])
        output = []
        Interpreter(source="begin write 1 end", services=services, output_sink=output.append).run()
        self.assertEqual(output, ["1", "bye"])

    def test_missing_register_function(self):
        path = self.write_file("empty.py", "X = 1\n")
        with self.assertRaises(GLExtensionError):
            load_runtime_services([path])

    def test_api_version_mismatch(self):
        path = self.write_file(
            "future.py",
            """
            GOTOLANG_EXTENSION_API_VERSION = 99

            def gotolang_register(ext):
                pass
            """,
        )
        with self.assertRaises(GLExtensionError) as cm:
            load_runtime_services([path])
        self.assertIn("requires API 99", str(cm.exception))

    def test_import_failure_is_reported(self):
        path = self.write_file("broken.py", "raise RuntimeError(\"nope\")\n")
        with self.assertRaises(GLExtensionError) as cm:
            load_runtime_services([path])
        self.assertIn("failed to import: nope", str(cm.exception))

    def test_missing_extension_file(self):
        with self.assertRaises(GLExtensionError):
            load_runtime_services([os.path.join(self.dir, "nope.py")])

    def test_glx_pointer_file(self):
        self.write_file("one.py", "def gotolang_register(ext):\n    pass\n")
        pointer = self.write_file(
            "set.glx",
            """
            # extensions for this project
            one.py  # relative to the pointer file

            """,
        )
        self.assertEqual(read_glx(pointer), [os.path.join(self.dir, "one.py")])
        self.assertEqual(gather_extension_paths([pointer]), [os.path.abspath(os.path.join(self.dir, "one.py"))])


if __name__ == "__main__":
    unittest.main()
