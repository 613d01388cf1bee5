"""Extension hooks.

An extension is a Python file that defines ``gotolang_register(ext)``. The
host calls it once with an :class:`ExtensionAPI` bound to the run's
:class:`RuntimeServices`; everything the extension wants to observe is
registered through that object. A ``.glx`` file lists extension paths, one
per line, relative to the ``.glx`` file itself.
"""

from __future__ import annotations

import hashlib
import importlib.util
import os
import re
import sys
from dataclasses import dataclass, field
from types import ModuleType
from typing import Any, Callable, Dict, List, Optional, Sequence


EXTENSION_API_VERSION = 1

EVENTS = frozenset(
    {
        "program_start",  # (interp, program, env)
        "before_statement",  # (interp, statement, env)
        "after_statement",  # (interp, statement, env)
        "before_jump",  # (interp, goto, address)
        "on_error",  # (interp, error)
        "program_end",  # (interp, code)
    }
)


class GLExtensionError(Exception):
    pass


@dataclass(frozen=True)
class ExtensionMetadata:
    name: str
    version: str = "0.0.0"
    requires_api: int = EXTENSION_API_VERSION


@dataclass(frozen=True)
class StepContext:
    step_index: int
    rule: str
    location: Any  # SourceLocation | None
    extra: Optional[Dict[str, Any]]


@dataclass(frozen=True)
class EventHandler:
    priority: int
    handler: Callable[..., None]
    ext_name: str


@dataclass(frozen=True)
class StepRule:
    name: str
    every_n: int
    handler: Callable[[Any, StepContext], None]
    ext_name: str


@dataclass
class HookRegistry:
    _events: Dict[str, List[EventHandler]] = field(default_factory=dict)
    _step_rules: List[StepRule] = field(default_factory=list)

    def on_event(self, event: str, handler: Callable[..., None], *, priority: int = 0, ext_name: str = "<host>") -> None:
        if event not in EVENTS:
            raise GLExtensionError(f"Unknown event '{event}'; expected one of {', '.join(sorted(EVENTS))}")
        handlers = self._events.setdefault(event, [])
        handlers.append(EventHandler(priority=priority, handler=handler, ext_name=ext_name))
        # sort is stable: equal priorities run in registration order
        handlers.sort(key=lambda entry: -entry.priority)

    def emit(self, event: str, *args: Any, **kwargs: Any) -> None:
        for entry in self._events.get(event, ()):
            entry.handler(*args, **kwargs)

    def has_handlers(self, event: str) -> bool:
        return bool(self._events.get(event))

    def add_step_rule(
        self,
        *,
        name: str,
        every_n: int,
        handler: Callable[[Any, StepContext], None],
        ext_name: str = "<host>",
    ) -> None:
        if every_n <= 0:
            raise GLExtensionError(f"Step rule '{name}': every_n_steps must be >= 1, got {every_n}")
        self._step_rules.append(StepRule(name=name, every_n=every_n, handler=handler, ext_name=ext_name))

    def after_step(self, interpreter: Any, ctx: StepContext) -> None:
        for rule in self._step_rules:
            if ctx.step_index % rule.every_n == 0:
                rule.handler(interpreter, ctx)


@dataclass
class RuntimeServices:
    metadata: List[ExtensionMetadata] = field(default_factory=list)
    hook_registry: HookRegistry = field(default_factory=HookRegistry)


class ExtensionAPI:
    """What ``gotolang_register(ext)`` receives.

    ``on_event`` and ``every_n_steps`` work both as plain calls and as
    decorators::

        @ext.on_event("before_jump")
        def trace(interp, goto, address):
            ...
    """

    def __init__(self, *, services: RuntimeServices, ext_name: str) -> None:
        self._services = services
        self._ext_name = ext_name

    def metadata(self, *, name: str, version: str = "0.0.0", requires_api: int = EXTENSION_API_VERSION) -> None:
        self._services.metadata.append(ExtensionMetadata(name=name, version=version, requires_api=requires_api))

    def on_event(self, event: str, handler: Optional[Callable[..., None]] = None, *, priority: int = 0):
        registry = self._services.hook_registry

        def register(fn: Callable[..., None]) -> Callable[..., None]:
            registry.on_event(event, fn, priority=priority, ext_name=self._ext_name)
            return fn

        return register if handler is None else register(handler)

    def every_n_steps(self, every_n: int, handler: Optional[Callable[[Any, StepContext], None]] = None, *, name: str = ""):
        registry = self._services.hook_registry

        def register(fn: Callable[[Any, StepContext], None]) -> Callable[[Any, StepContext], None]:
            registry.add_step_rule(name=name or fn.__name__, every_n=every_n, handler=fn, ext_name=self._ext_name)
            return fn

        return register if handler is None else register(handler)


def _module_name_for(path: str) -> str:
    stem = os.path.splitext(os.path.basename(path))[0]
    digest = hashlib.sha256(path.encode("utf-8")).hexdigest()[:12]
    return f"gotolang_ext_{re.sub(r'[^0-9A-Za-z]', '_', stem)}_{digest}"


def load_extension_module(path: str) -> ModuleType:
    path = os.path.abspath(path)
    if not os.path.isfile(path):
        raise GLExtensionError(f"Extension not found: {path}")
    spec = importlib.util.spec_from_file_location(_module_name_for(path), path)
    if spec is None or spec.loader is None:
        raise GLExtensionError(f"Failed to load extension module: {path}")
    module = importlib.util.module_from_spec(spec)

    # siblings of the extension file are importable while it loads
    ext_dir = os.path.dirname(path)
    sys.path.insert(0, ext_dir)
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        raise GLExtensionError(f"Extension {path} failed to import: {exc}") from exc
    finally:
        if sys.path and sys.path[0] == ext_dir:
            sys.path.pop(0)
    return module


def read_glx(pointer_file: str) -> List[str]:
    if not os.path.isfile(pointer_file):
        raise GLExtensionError(f".glx file not found: {pointer_file}")
    base_dir = os.path.dirname(os.path.abspath(pointer_file))
    with open(pointer_file, "r", encoding="utf-8") as handle:
        entries = [line.partition("#")[0].strip() for line in handle]
    return [os.path.normpath(os.path.join(base_dir, entry)) for entry in entries if entry]


def gather_extension_paths(paths: Sequence[str]) -> List[str]:
    expanded: List[str] = []
    for path in paths:
        if os.path.splitext(path)[1].lower() == ".glx":
            expanded.extend(read_glx(path))
        else:
            expanded.append(os.path.abspath(path))
    return expanded


def register_extension(services: RuntimeServices, module: ModuleType, origin: str) -> None:
    api_version = getattr(module, "GOTOLANG_EXTENSION_API_VERSION", EXTENSION_API_VERSION)
    if api_version != EXTENSION_API_VERSION:
        raise GLExtensionError(
            f"Extension {origin} requires API {api_version}, host supports {EXTENSION_API_VERSION}"
        )
    register = getattr(module, "gotolang_register", None)
    if not callable(register):
        raise GLExtensionError(f"Extension {origin} must define callable gotolang_register(ext)")
    ext_name = str(getattr(module, "GOTOLANG_EXTENSION_NAME", os.path.splitext(os.path.basename(origin))[0]))
    register(ExtensionAPI(services=services, ext_name=ext_name))


def build_default_services() -> RuntimeServices:
    return RuntimeServices()


def load_runtime_services(paths: Sequence[str]) -> RuntimeServices:
    services = build_default_services()
    for path in gather_extension_paths(paths):
        register_extension(services, load_extension_module(path), path)
    return services
