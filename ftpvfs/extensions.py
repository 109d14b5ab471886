import asyncio
import importlib.util
import inspect
import time
import types
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional

from .errors import AlreadyExists, InvalidArgument, NotFound
from .streams import wrap

if TYPE_CHECKING:
    from .core import FtpVfs

# Operations an extension gets to call on the adapter it extends
PUBLIC = (
    "connect",
    "copy",
    "mkdir",
    "mkfile",
    "readdir",
    "rename",
    "resolve",
    "rmdir",
    "rmfile",
    "spawn",
    "stat",
    "symlink",
    "readfile",
    "watch",
    "execFile",
    "on",
    "off",
    "emit",
    "extend",
    "unextend",
    "use",
)


class Capability:
    """
    Named bundle of functions exported by an extension.

    Members are reachable as attributes and as items. ``names`` lists them in
    the order the extension exported them.
    """

    def __init__(self, name: str, members: Dict[str, Any]) -> None:
        self.name = name
        self.members = dict(members)
        self.names: List[str] = list(self.members)

    def __getattr__(self, item: str) -> Any:
        try:
            return self.__dict__["members"][item]
        except KeyError:
            raise AttributeError(f"Extension {self.__dict__.get('name')!r} has no member {item!r}")

    def __getitem__(self, item: str) -> Any:
        return self.members[item]

    def __contains__(self, item: object) -> bool:
        return item in self.members

    def __iter__(self) -> Iterator[str]:
        return iter(self.names)

    def __repr__(self) -> str:
        return f"Capability(name={self.name!r}, names={self.names!r})"


def proxy(vfs: "FtpVfs") -> types.SimpleNamespace:
    """Expose only the public operations of an adapter."""
    return types.SimpleNamespace(**{name: getattr(vfs, name) for name in PUBLIC})


class Registry:
    """
    Loads extensions and keeps them by name.

    An extension is Python source (a file, a string or a stream) defining
    ``setup(vfs, ready)``. It runs in a module of its own that is never added
    to ``sys.modules``; the only way into the adapter is the ``vfs`` argument,
    a namespace holding the public operations. ``setup`` hands its exports
    over by calling ``ready(None, exports)`` once, or ``ready(error)`` to fail.
    It may also be a coroutine, and may simply return the exports.

    Extensions are trusted code. The separate namespace keeps them from
    stepping on the adapter by accident, not from malice.
    """

    def __init__(self, vfs: "FtpVfs") -> None:
        self.vfs = vfs
        self.apis: Dict[str, Capability] = {}

    async def extend(self, name: str, options: Dict[str, Any]) -> Capability:
        redefine = bool(options.get("redefine"))
        if not redefine and name in self.apis:
            raise AlreadyExists(f"EEXIST: Extension API already defined for {name}")

        if options.get("file"):
            module = self.load(name, options["file"])
        elif options.get("code"):
            module = self.evaluate(name, options["code"])
        elif options.get("stream") is not None:
            try:
                stream = wrap(options["stream"])
            except TypeError as error:
                raise InvalidArgument(f"options.stream must be readable: {error}")
            code = (await stream.read()).decode("utf-8")
            module = self.evaluate(name, code)
        else:
            raise InvalidArgument(
                f"must provide `file`, `code`, or `stream` when cache is empty for {name}"
            )

        setup = getattr(module, "setup", None)
        if not callable(setup):
            raise InvalidArgument(f"Extension {name} must define setup(vfs, ready)")

        exports = await self.run(setup)

        # Another extend of the same name may have finished while this one loaded
        if not redefine and name in self.apis:
            raise AlreadyExists(f"EEXIST: Extension API already defined for {name}")

        capability = Capability(name, self.members(exports))
        self.apis[name] = capability
        return capability

    def unextend(self, name: str) -> None:
        self.apis.pop(name, None)

    def use(self, name: str) -> Capability:
        try:
            return self.apis[name]
        except KeyError:
            raise NotFound(f"ENOENT: There is no API extension named {name}")

    def clear(self) -> None:
        self.apis.clear()

    def load(self, name: str, file: str) -> types.ModuleType:
        path = Path(file)
        if not path.is_file():
            raise NotFound(f"ENOENT: Extension file not found: {file}", file)

        spec = importlib.util.spec_from_file_location(self.label(name), str(path))
        if spec is None or spec.loader is None:
            raise InvalidArgument(f"Extension file can't be loaded: {file}", file)

        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return module

    def evaluate(self, name: str, code: str) -> types.ModuleType:
        module = types.ModuleType(self.label(name))
        exec(compile(code, module.__name__, "exec"), module.__dict__)
        return module

    @staticmethod
    def label(name: str) -> str:
        return f"dynamic-{name}-{int(time.time() * 1000):x}"

    async def run(self, setup: Any) -> Any:
        future = asyncio.get_running_loop().create_future()

        def ready(error: Optional[BaseException] = None, exports: Any = None) -> None:
            if future.done():
                raise RuntimeError("ready() called more than once")
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(exports)

        result = setup(proxy(self.vfs), ready)
        if inspect.isawaitable(result):
            result = await result

        if not future.done() and result is not None:
            future.set_result(result)

        return await future

    @staticmethod
    def members(exports: Any) -> Dict[str, Any]:
        if exports is None:
            return {}
        if isinstance(exports, dict):
            return exports
        return {
            key: value
            for key, value in vars(exports).items()
            if not key.startswith("_")
        }
