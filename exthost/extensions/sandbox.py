"""Script sandbox: compile extension entry source and execute it in a restricted namespace.

The entry module sees exactly four injected names (``exports``, ``api``, ``ui``,
``icons``) plus an allow-list of builtins. ``exports`` is the module object itself,
so top-level ``def activate`` / ``def deactivate`` become its attributes.

Before anything runs, the source is parsed and rejected if it touches a
``_``-prefixed attribute or one of the frame and code introspection attributes;
the builtin ``getattr`` family applies the same rule to names built at runtime.
Imports are limited to an allow-list of pure-stdlib modules, and each extension
gets its own read-only view of them (public names only).

This is a capability boundary, not a security boundary: CPython cannot fully isolate
code running in-process.
"""

import ast
import builtins
import logging
import types
from typing import Any, Callable, Iterable, Mapping

from exthost.errors import SandboxError

logger = logging.getLogger(__name__)

BINDING_NAMES = ("exports", "api", "ui", "icons")

# Attribute names that reach frames, code objects or string-driven attribute lookup.
BLOCKED_ATTRIBUTES = frozenset(
    {
        "gi_frame",
        "gi_code",
        "cr_frame",
        "cr_code",
        "cr_await",
        "ag_frame",
        "ag_code",
        "f_back",
        "f_globals",
        "f_locals",
        "f_builtins",
        "tb_frame",
        "tb_next",
        "format",
        "format_map",
        "mro",
        "get_stack",
    }
)

# Dunder names extension code may still spell out.
ALLOWED_DUNDER_NAMES = frozenset({"__name__", "__file__", "__doc__", "__init__"})

# Public names hidden from module views: they evaluate strings or look attributes up by name.
HIDDEN_MODULE_NAMES: dict[str, frozenset[str]] = {
    "typing": frozenset({"get_type_hints", "ForwardRef"}),
    "functools": frozenset({"singledispatch", "singledispatchmethod"}),
    "string": frozenset({"Formatter"}),
}


def _is_blocked(name: str) -> bool:
    if name in ALLOWED_DUNDER_NAMES:
        return False
    return name.startswith("_") or name in BLOCKED_ATTRIBUTES


def _check_attribute(name: str) -> None:
    if _is_blocked(name):
        raise AttributeError(f"attribute '{name}' is not available to extensions")


def _safe_getattr(obj: Any, name: str, *default: Any) -> Any:
    _check_attribute(name)
    return getattr(obj, name, *default)


def _safe_hasattr(obj: Any, name: str) -> bool:
    return not _is_blocked(name) and hasattr(obj, name)


def _safe_setattr(obj: Any, name: str, value: Any) -> None:
    _check_attribute(name)
    setattr(obj, name, value)


def _safe_delattr(obj: Any, name: str) -> None:
    _check_attribute(name)
    delattr(obj, name)


SAFE_BUILTINS: dict[str, Any] = {
    # Types
    "bool": bool,
    "bytearray": bytearray,
    "bytes": bytes,
    "complex": complex,
    "dict": dict,
    "float": float,
    "frozenset": frozenset,
    "int": int,
    "list": list,
    "object": object,
    "set": set,
    "slice": slice,
    "str": str,
    "tuple": tuple,
    # Classes
    "__build_class__": builtins.__build_class__,
    "classmethod": classmethod,
    "property": property,
    "staticmethod": staticmethod,
    "super": super,
    # Iteration
    "aiter": aiter,
    "anext": anext,
    "enumerate": enumerate,
    "filter": filter,
    "iter": iter,
    "map": map,
    "next": next,
    "range": range,
    "reversed": reversed,
    "sorted": sorted,
    "zip": zip,
    # Inspection
    "callable": callable,
    "getattr": _safe_getattr,
    "hasattr": _safe_hasattr,
    "setattr": _safe_setattr,
    "delattr": _safe_delattr,
    "hash": hash,
    "id": id,
    "isinstance": isinstance,
    "issubclass": issubclass,
    "len": len,
    "type": type,
    # Math
    "abs": abs,
    "divmod": divmod,
    "max": max,
    "min": min,
    "pow": pow,
    "round": round,
    "sum": sum,
    # Logic
    "all": all,
    "any": any,
    # Representation
    "ascii": ascii,
    "bin": bin,
    "chr": chr,
    "format": format,
    "hex": hex,
    "oct": oct,
    "ord": ord,
    "print": print,
    "repr": repr,
    # Constants
    "Ellipsis": Ellipsis,
    "NotImplemented": NotImplemented,
    # Exceptions
    "BaseException": BaseException,
    "Exception": Exception,
    "ArithmeticError": ArithmeticError,
    "AssertionError": AssertionError,
    "AttributeError": AttributeError,
    "GeneratorExit": GeneratorExit,
    "ImportError": ImportError,
    "IndexError": IndexError,
    "KeyError": KeyError,
    "KeyboardInterrupt": KeyboardInterrupt,
    "LookupError": LookupError,
    "NameError": NameError,
    "NotImplementedError": NotImplementedError,
    "OSError": OSError,
    "RuntimeError": RuntimeError,
    "StopAsyncIteration": StopAsyncIteration,
    "StopIteration": StopIteration,
    "SystemExit": SystemExit,
    "TimeoutError": TimeoutError,
    "TypeError": TypeError,
    "ValueError": ValueError,
    "ZeroDivisionError": ZeroDivisionError,
}


def check_source(tree: ast.AST, extension: str) -> None:
    """Reject private and introspection attribute access before the code runs."""
    for node in ast.walk(tree):
        names: list[str] = []
        if isinstance(node, ast.Attribute):
            names.append(node.attr)
        elif isinstance(node, ast.Name) and node.id.startswith("__"):
            names.append(node.id)
        elif isinstance(node, ast.alias):
            names.append(node.name.rsplit(".", 1)[-1])
        elif isinstance(node, ast.MatchClass):
            names.extend(node.kwd_attrs)
        for name in names:
            if _is_blocked(name):
                lineno = getattr(node, "lineno", "?")
                raise SandboxError(extension, f"line {lineno}: access to '{name}' is not allowed")


class _ModuleViews:
    """Per-extension copies of allowed modules holding their public names only."""

    def __init__(self, allowed: frozenset[str]) -> None:
        self._allowed = allowed
        self._views: dict[str, types.ModuleType] = {}

    def _within_allowed(self, module: types.ModuleType) -> bool:
        return module.__name__.split(".", 1)[0] in self._allowed

    def view(self, module: types.ModuleType) -> types.ModuleType:
        cached = self._views.get(module.__name__)
        if cached is not None:
            return cached
        view = types.ModuleType(module.__name__, module.__doc__)
        self._views[module.__name__] = view
        hidden = HIDDEN_MODULE_NAMES.get(module.__name__, frozenset())
        for name, value in list(vars(module).items()):
            if name.startswith("_") or name in hidden:
                continue
            if isinstance(value, types.ModuleType):
                if not self._within_allowed(value):
                    continue
                value = self.view(value)
            setattr(view, name, value)
        return view


def _restricted_import(allowed: frozenset[str], extension: str) -> Callable[..., Any]:
    real_import = builtins.__import__
    views = _ModuleViews(allowed)

    def guarded_import(
        module: str,
        globals: Mapping[str, Any] | None = None,
        locals: Mapping[str, Any] | None = None,
        fromlist: Iterable[str] = (),
        level: int = 0,
    ) -> Any:
        if level != 0:
            raise ImportError(f"{extension}: relative imports are not available to extensions")
        if module.split(".", 1)[0] not in allowed:
            raise ImportError(f"{extension}: import of '{module}' is not allowed")
        return views.view(real_import(module, globals, locals, fromlist, level))

    return guarded_import


class ScriptSandbox:
    """Runs extension entry source. One instance serves every extension."""

    def __init__(self, allowed_imports: Iterable[str] = ()) -> None:
        self._allowed = frozenset(allowed_imports)

    @property
    def allowed_imports(self) -> frozenset[str]:
        return self._allowed

    def _builtins(self, extension: str) -> dict[str, Any]:
        curated = dict(SAFE_BUILTINS)
        curated["__import__"] = _restricted_import(self._allowed, extension)
        return curated

    def run(
        self, source: str, filename: str, bindings: Mapping[str, Any], extension: str = ""
    ) -> types.ModuleType:
        """Execute source; return the exports module.

        ``bindings`` supplies api, ui and icons; ``exports`` is always the fresh module.
        Raises SandboxError on syntax errors, private attribute access or blocked
        imports; any other exception raised by top-level code propagates unchanged.
        """
        extension = extension or filename
        unexpected = set(bindings) - set(BINDING_NAMES)
        if unexpected:
            raise SandboxError(extension, f"unexpected bindings: {sorted(unexpected)}")
        try:
            tree = ast.parse(source, filename)
        except SyntaxError as e:
            raise SandboxError(extension, f"syntax error at line {e.lineno}: {e.msg}") from e
        check_source(tree, extension)
        code = compile(tree, filename, "exec")

        module = types.ModuleType(f"exthost_ext_{extension}")
        module.__dict__["__builtins__"] = self._builtins(extension)
        module.__dict__["__file__"] = filename
        for name in ("api", "ui", "icons"):
            module.__dict__[name] = bindings.get(name)
        module.__dict__["exports"] = module
        try:
            exec(code, module.__dict__)
        except ImportError as e:
            raise SandboxError(extension, str(e)) from e
        logger.debug("Executed entry module for %s (%s)", extension, filename)
        return module
