"""Bundle loader: turns `userCode.files` + `entrypoint` into trigger declarations.

Bundle sources are executed in a private module namespace. Modules are plain
`types.ModuleType` objects owned by one `BundleModules` instance and are never
inserted into `sys.modules`, so two bundles (or two versions of one bundle) can
define a `helpers.py` without seeing each other.

Imports inside bundle code resolve against the bundle's own files first:

    import helpers                 # helpers.py
    from lib.jira import handlers  # lib/jira/handlers.py
    from .triggers import setup    # relative to the importing module

Anything else falls through to the regular import system (stdlib, the SDK, installed
packages).
"""

from __future__ import annotations

import asyncio
import builtins
import hashlib
import importlib.util
import inspect
import logging
import types
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from floww_runtime.bundle.registration import registration_pass
from floww_runtime.runtime.errors import BundleLoadError
from floww_runtime.runtime.models import ProviderIdentity, TriggerDeclaration

logger = logging.getLogger(__name__)

_SOURCE_SUFFIX = ".py"
_PACKAGE_INIT = "__init__"


@dataclass(frozen=True, slots=True)
class Bundle:
    """A workflow bundle as shipped in a dispatch request."""

    files: Mapping[str, str]
    entrypoint: str

    @property
    def fingerprint(self) -> str:
        # JSON bodies may carry lone surrogates; surrogatepass keeps those hashable.
        digest = hashlib.sha256()
        for name in sorted(self.files):
            digest.update(name.encode("utf-8", "surrogatepass"))
            digest.update(b"\0")
            digest.update(self.files[name].encode("utf-8", "surrogatepass"))
            digest.update(b"\0")
        digest.update(self.entrypoint.encode("utf-8", "surrogatepass"))
        return digest.hexdigest()


@dataclass(frozen=True, slots=True)
class LoadedBundle:
    declarations: tuple[TriggerDeclaration, ...]
    providers: tuple[ProviderIdentity, ...]


def _normalise_filename(name: str) -> str:
    name = name.replace("\\", "/")
    while name.startswith("./"):
        name = name[2:]
    return name.lstrip("/")


def _module_name_for(filename: str) -> tuple[str, bool] | None:
    """Map `lib/jira.py` -> (`lib.jira`, False) and `lib/__init__.py` -> (`lib`, True)."""

    if not filename.endswith(_SOURCE_SUFFIX):
        return None
    parts = filename[: -len(_SOURCE_SUFFIX)].split("/")
    if not all(part.isidentifier() for part in parts):
        return None
    if parts[-1] == _PACKAGE_INIT:
        if len(parts) == 1:
            return None
        return ".".join(parts[:-1]), True
    return ".".join(parts), False


def split_entrypoint(entrypoint: str) -> tuple[str, str | None]:
    """Split `main.py:register` into (`main.py`, `register`)."""

    target, sep, attr = entrypoint.partition(":")
    return target.strip(), (attr.strip() or None) if sep else None


class BundleModules:
    """A tiny module system over an in-memory file map."""

    def __init__(self, files: Mapping[str, str]) -> None:
        self._sources: dict[str, tuple[str, str, bool]] = {}
        self._packages: set[str] = set()
        for raw_name, source in files.items():
            filename = _normalise_filename(raw_name)
            resolved = _module_name_for(filename)
            if resolved is None:
                continue
            module_name, is_package = resolved
            self._sources[module_name] = (filename, source, is_package)
            if is_package:
                self._packages.add(module_name)
            # Directories without an __init__.py still act as packages.
            parent = module_name.rpartition(".")[0]
            while parent:
                self._packages.add(parent)
                parent = parent.rpartition(".")[0]

        self._modules: dict[str, types.ModuleType] = {}
        self._builtins: dict[str, Any] = dict(vars(builtins))
        self._builtins["__import__"] = self._import

    def is_local(self, name: str) -> bool:
        return name in self._sources or name in self._packages

    def resolve_entry(self, target: str) -> str:
        """Return the module name for an entrypoint given as a filename or module name."""

        filename = _normalise_filename(target)
        candidates = [filename]
        if not filename.endswith(_SOURCE_SUFFIX):
            candidates.append(filename.replace(".", "/") + _SOURCE_SUFFIX)
        for candidate in candidates:
            resolved = _module_name_for(candidate)
            if resolved is not None and resolved[0] in self._sources:
                return resolved[0]
        raise BundleLoadError(f"Entrypoint {target!r} not found in bundle files")

    def import_module(self, name: str) -> types.ModuleType:
        existing = self._modules.get(name)
        if existing is not None:
            return existing
        if not self.is_local(name):
            raise ModuleNotFoundError(f"No module named {name!r} in bundle", name=name)

        parent_name, _, child = name.rpartition(".")
        parent = self.import_module(parent_name) if parent_name else None

        module = types.ModuleType(name)
        entry = self._sources.get(name)
        is_package = name in self._packages
        filename = entry[0] if entry else name.replace(".", "/") + "/"
        module.__file__ = f"<bundle>/{filename}"
        module.__package__ = name if is_package else parent_name
        if is_package:
            module.__path__ = []
        module.__dict__["__builtins__"] = self._builtins

        # Registered before exec so circular imports see the partial module.
        self._modules[name] = module
        if entry is not None:
            try:
                code = compile(entry[1], module.__file__, "exec")
                exec(code, module.__dict__)
            except BaseException:
                del self._modules[name]
                raise
        if parent is not None:
            setattr(parent, child, module)
        return module

    def _import(
        self,
        name: str,
        globals: Mapping[str, Any] | None = None,
        locals: Mapping[str, Any] | None = None,
        fromlist: Sequence[str] | None = (),
        level: int = 0,
    ) -> types.ModuleType:
        if level > 0:
            package = (globals or {}).get("__package__") or ""
            resolved = importlib.util.resolve_name("." * level + name, package)
            if not self.is_local(resolved):
                raise ImportError(f"Relative import {resolved!r} is outside the bundle")
        else:
            resolved = name
            if not self.is_local(resolved.partition(".")[0]):
                return builtins.__import__(name, globals, locals, fromlist, level)

        module = self.import_module(resolved)
        if fromlist:
            for item in fromlist:
                submodule = f"{resolved}.{item}"
                if item != "*" and not hasattr(module, item) and self.is_local(submodule):
                    self.import_module(submodule)
            return module
        return self._modules[resolved.partition(".")[0]]


class BundleLoader:
    """Runs a bundle's registration pass and returns its typed declarations."""

    def load(self, bundle: Bundle) -> LoadedBundle:
        target, attr = split_entrypoint(bundle.entrypoint)
        if not target:
            raise BundleLoadError("Bundle entrypoint is empty")

        modules = BundleModules(bundle.files)
        module_name = modules.resolve_entry(target)

        with registration_pass() as registered:
            try:
                module = modules.import_module(module_name)
                if attr is not None:
                    self._call_registration(module, attr)
            except BundleLoadError:
                raise
            except Exception as e:
                raise BundleLoadError(
                    f"Entrypoint {bundle.entrypoint!r} failed during registration: "
                    f"{type(e).__name__}: {e}"
                ) from e

        logger.info(
            "Bundle loaded",
            extra={
                "entrypoint": bundle.entrypoint,
                "triggers": len(registered.declarations),
                "providers": len(registered.providers),
            },
        )
        return LoadedBundle(
            declarations=tuple(registered.declarations),
            providers=tuple(registered.providers.values()),
        )

    @staticmethod
    def _call_registration(module: types.ModuleType, attr: str) -> None:
        func = getattr(module, attr, None)
        if not callable(func):
            raise BundleLoadError(f"Entrypoint attribute {attr!r} is missing or not callable")
        result = func()
        # Loads run in a worker thread, so there is no running loop to collide with.
        if inspect.isawaitable(result):
            asyncio.run(_await(result))


async def _await(awaitable: Any) -> Any:
    return await awaitable
