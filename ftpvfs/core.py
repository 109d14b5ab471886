import functools
import posixpath
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, TypeVar, Union
from urllib.parse import quote

import aioftp

from . import etag
from .auth import Anonymous, Basic
from .completion import Callback, Completion
from .config import Limits, Timeout
from .errors import (
    AlreadyExists,
    InvalidArgument,
    IsADirectory,
    NotFound,
    NotSupported,
    codes,
    translate,
)
from .events import EventBus, Handler
from .extensions import Registry
from .meta import DIRECTORY, Entry, Meta, mime
from .pipeline import Upload
from .session import HookType, Record, Session
from .settings import SSL
from .streams import DirectoryStream, wrap

Options = Optional[Dict[str, Any]]
Operation = TypeVar("Operation", bound=Callable[..., Awaitable[Any]])

# Listing types that describe a directory
FOLDERS = frozenset({"dir", "cdir", "pdir"})


def operation(method: Operation) -> Operation:
    """Give a VFS method its completion contract.

    The wrapped coroutine takes ``(target, options=None, callback=None)``.
    The method body returns a Meta (or settles the completion itself and
    returns None); a raised exception becomes the failure. With a callback
    the outcome goes there exactly once and the coroutine returns the result,
    or None on failure. Without one the result is returned or the error
    raised.
    """

    @functools.wraps(method)
    async def wrapper(
        self: "FtpVfs",
        target: Any,
        options: Any = None,
        callback: Optional[Callback] = None,
    ) -> Optional[Meta]:
        completion: Completion[Meta] = Completion(callback)
        try:
            result = await method(self, target, options, completion)
        except Exception as error:
            if completion.done:
                raise
            completion.reject(error)
        else:
            if result is not None:
                completion.resolve(result)
        return await completion.wait()

    return wrapper  # type: ignore[return-value]


def normalize(path: str) -> str:
    """Collapse redundant separators and drop any trailing slash."""
    if not isinstance(path, str) or not path:
        raise InvalidArgument(f"Invalid path: {path!r}", path)
    normalized = posixpath.normpath(path)
    if normalized.startswith("//"):
        normalized = "/" + normalized.lstrip("/")
    return normalized


def unsupported(verb: str) -> Callable[..., Awaitable[Optional[Meta]]]:
    async def method(self: "FtpVfs", target: Any, options: Options, completion: Completion) -> Meta:
        raise NotSupported(f"ENOTSUPPORTED: FTP cannot {verb}.")

    method.__name__ = verb
    method.__doc__ = f"Always fails with NotSupported: FTP has no way to {verb}."
    return operation(method)


class FtpVfs:
    """
    Virtual filesystem over a single FTP session.

    Every operation is a coroutine taking ``(path, options=None,
    callback=None)`` and returning a ``Meta``. Failures are ``VfsError``
    kinds: NotFound, AlreadyExists, IsADirectory, NotSupported,
    InvalidArgument and ProtocolError. Operations that move data put a stream
    in ``meta.stream``.

    All transfers share the session's one data connection, so they run one
    after another. A stream handed out by ``readfile`` or ``mkfile`` keeps
    the connection until it ends or is destroyed, and any other operation
    waits for that.

    Example:
        async with FtpVfs("ftp://files.example.com", auth=Basic("me", "secret!!")) as vfs:
            meta = await vfs.readfile("/notes.txt")
            data = await meta.stream.read()
    """

    def __init__(
        self,
        endpoint: str,
        auth: Optional[Union[Basic, Anonymous]] = None,
        timeout: Optional[Timeout] = None,
        limits: Optional[Limits] = None,
        ssl: Optional[SSL] = None,
        hooks: Optional[Dict[str, HookType]] = None,
        encoding: str = "utf-8",
        client: Optional[Any] = None,
    ) -> None:
        """Set up the adapter and its (lazily connected) FTP session.

        Args:
            endpoint: FTP URL like "ftp://server.com" or "ftps://secure.com:990"
            auth: Username and password, anonymous login when None
            timeout: How long to wait for the control connection
            limits: Download block size and upload queue depth
            ssl: TLS settings for ftps endpoints
            hooks: Async callbacks run on "connect" and "close"
            encoding: Encoding of the control connection
            client: Prebuilt aioftp compatible client, mainly for tests

        Raises:
            TypeError: If endpoint isn't a string
            ValueError: If the endpoint scheme isn't ftp or ftps
        """
        self.limits = limits or Limits()
        self.session = Session(
            endpoint,
            auth=auth,
            timeout=timeout,
            limits=self.limits,
            ssl=ssl,
            hooks=hooks,
            encoding=encoding,
            client=client,
        )
        self.events = EventBus()
        self.registry = Registry(self)

    async def __aenter__(self) -> "FtpVfs":
        """Connect and log in right away instead of on first use.

        Raises:
            ProtocolError: If the server can't be reached or rejects the login
        """
        try:
            async with self.session.command():
                pass
        except Exception as error:
            raise translate(error, "/")
        return self

    async def __aexit__(self, type, value, trace) -> None:
        await self.destroy()

    async def destroy(self) -> None:
        """Close the session and forget handlers and extensions.

        Later operations fail with ProtocolError. Calling this again is a no-op.
        """
        if self.session.closed:
            return
        await self.session.close()
        self.events.clear()
        self.registry.clear()

    # Metadata helpers

    def describe(self, path: str, info: Dict[str, Any]) -> Meta:
        name = posixpath.basename(path) or path
        folder = info.get("type") in FOLDERS
        size = int(info.get("size", info.get("sizd", 0)) or 0)
        tag = etag.calculate(path, etag.timestamp(info.get("modify")), size)
        return Meta(mime=mime(name, folder), size=size, etag=tag, name=name, path=path)

    def entry(self, directory: str, record: Record) -> Entry:
        name = record[0].name
        info = record[1]
        folder = info.get("type") in FOLDERS
        child = posixpath.join(directory, name)
        size = int(info.get("size", info.get("sizd", 0)) or 0)
        return Entry(
            name=name,
            path=child,
            href=quote(name) + ("/" if folder else ""),
            mime=mime(name, folder),
            size=size,
            etag=etag.calculate(child, etag.timestamp(info.get("modify")), size),
        )

    async def lookup(self, path: str) -> Meta:
        """Find a path's metadata by scanning its parent's listing.

        Only one level of server side path resolution is assumed: the parent
        is listed and its children are matched by base name.

        Raises:
            NotFound: If the parent can't be listed or has no such child
        """
        path = normalize(path)
        if path == "/":
            return Meta(
                mime=DIRECTORY,
                size=0,
                etag=etag.calculate("/", None, 0),
                name="/",
                path="/",
            )

        parent, name = posixpath.split(path)
        try:
            records = await self.session.list(parent or ".")
        except Exception as error:
            raise translate(error, path)

        for record, info in records:
            if record.name == name:
                return self.describe(path, info)

        raise NotFound(f"ENOENT - No such file or directory: {path}", path)

    @staticmethod
    def endpoints(path: str, options: Options) -> Tuple[str, str]:
        """Work out ``(from, to)`` for rename and copy.

        Raises:
            InvalidArgument: If neither ``from`` nor ``to`` is given
        """
        options = options or {}
        if options.get("from"):
            return options["from"], path
        if options.get("to"):
            return path, options["to"]
        raise InvalidArgument("Must specify either options.from or options.to", path)

    # Filesystem operations

    @operation
    async def stat(self, path: str, options: Options, completion: Completion) -> Meta:
        """Describe a file or directory; the root never touches the server."""
        return await self.lookup(path)

    @operation
    async def readfile(self, path: str, options: Options, completion: Completion) -> Meta:
        """Open a file for reading.

        Metadata comes first, so a caller holding a matching ``etag`` gets
        ``not_modified`` without any transfer being opened. Otherwise
        ``meta.stream`` is a ReadStream that starts moving data once a
        consumer attaches.

        Raises:
            NotFound: If the file doesn't exist
            IsADirectory: If the path is a directory
        """
        options = options or {}
        meta = await self.lookup(path)

        if meta.mime == DIRECTORY:
            raise IsADirectory(f"EISDIR - Is a directory: {meta.path}", meta.path)

        if options.get("etag") and options["etag"] == meta.etag:
            meta.not_modified = True
            return meta

        try:
            meta.stream = await self.session.open_read(meta.path)
        except Exception as error:
            raise translate(error, meta.path)
        return meta

    @operation
    async def readdir(self, path: str, options: Options, completion: Completion) -> Meta:
        """List a directory as a stream of Entry records.

        The listing is fetched up front; entries are pushed one at a time with
        pause/resume support. A ``head`` request returns the metadata alone.

        Raises:
            NotFound: If the directory can't be listed
        """
        options = options or {}
        path = normalize(path)
        try:
            records = await self.session.list(path)
        except Exception as error:
            raise translate(error, path)

        meta = Meta(mime=DIRECTORY, size=0, name=posixpath.basename(path) or path, path=path)
        if options.get("head"):
            return meta

        children = [
            record
            for record in records
            if record[1].get("type") not in ("cdir", "pdir")
            and record[0].name not in (".", "..")
        ]
        meta.stream = DirectoryStream(children, functools.partial(self.entry, path))
        return meta

    @operation
    async def mkfile(self, path: str, options: Options, completion: Completion) -> None:
        """Write a file, from ``options["stream"]`` when given.

        The input may be a Readable, bytes, text, a file object or an (async)
        iterable of chunks; the call completes when the server acknowledges
        the upload. Without an input an empty file is written. With
        ``options["writable"]`` and no input the completion carries the sink
        in ``meta.stream`` instead: the file exists empty, writes go through
        the sink and ``end()`` finishes it. The session stays busy until then.

        Raises:
            InvalidArgument: If the input can't be read from
            NotFound: If the target directory doesn't exist
        """
        options = options or {}
        path = normalize(path)
        source = options.get("stream")
        if source is not None:
            try:
                source = wrap(source, self.limits.block)
            except TypeError as error:
                raise InvalidArgument(f"options.stream must be readable: {error}", path)

        writable = bool(options.get("writable")) and source is None
        await Upload(self.session, path, source, completion, writable).run()

    @operation
    async def rmfile(self, path: str, options: Options, completion: Completion) -> Meta:
        path = normalize(path)
        try:
            await self.session.remove(path)
        except Exception as error:
            raise translate(error, path)
        return Meta(mime=mime(path), name=posixpath.basename(path), path=path)

    @operation
    async def mkdir(self, path: str, options: Options, completion: Completion) -> Meta:
        """Create a directory.

        Servers answer MKD on an existing name with a plain 5xx, the same as
        for a missing parent. The target is looked up to tell them apart.

        Raises:
            AlreadyExists: If a file or directory is already there
            NotFound: If the parent directory doesn't exist
        """
        path = normalize(path)
        try:
            await self.session.make_directory(path)
        except aioftp.StatusCodeError as error:
            if any(code.startswith("5") for code in codes(error)):
                try:
                    await self.lookup(path)
                except NotFound:
                    pass
                else:
                    raise AlreadyExists(
                        f"EEXIST - Error creating directory: {path} FTP Error: {error}",
                        path,
                    ) from error
            raise translate(error, path)
        except Exception as error:
            raise translate(error, path)
        return Meta(mime=DIRECTORY, name=posixpath.basename(path), path=path)

    @operation
    async def rmdir(self, path: str, options: Options, completion: Completion) -> Meta:
        path = normalize(path)
        try:
            await self.session.remove_directory(path)
        except Exception as error:
            raise translate(error, path)
        return Meta(mime=DIRECTORY, name=posixpath.basename(path), path=path)

    @operation
    async def rename(self, path: str, options: Options, completion: Completion) -> Meta:
        """Move ``options["from"]`` to path, or path to ``options["to"]``."""
        source, target = self.endpoints(path, options)
        source, target = normalize(source), normalize(target)
        try:
            await self.session.rename(source, target)
        except Exception as error:
            raise translate(error, source)
        return Meta(mime=mime(target), name=posixpath.basename(target), path=target)

    @operation
    async def copy(self, path: str, options: Options, completion: Completion) -> None:
        """Copy a file by streaming a read of the source into a write of the target.

        The source isn't fetched twice: the read stream itself becomes the
        upload input. If the upload can't start, the read stream is destroyed
        so its connection is released.

        Raises:
            InvalidArgument: If neither ``from`` nor ``to`` is given
            NotFound: If the source or the target directory doesn't exist
            IsADirectory: If the source is a directory
        """
        source, target = self.endpoints(path, options)
        source, target = normalize(source), normalize(target)
        read = await self.readfile(source)
        try:
            await Upload(self.session, target, read.stream, completion).run()
        except BaseException:
            read.stream.destroy()
            raise

    connect = unsupported("connect")
    resolve = unsupported("resolve")
    spawn = unsupported("spawn")
    symlink = unsupported("symlink")
    watch = unsupported("watch")
    exec_file = unsupported("execFile")
    execFile = exec_file

    # Event bus

    @operation
    async def on(self, name: str, handler: Handler, completion: Completion) -> Meta:
        self.events.on(name, handler)
        return Meta()

    @operation
    async def off(self, name: str, handler: Handler, completion: Completion) -> Meta:
        self.events.off(name, handler)
        return Meta()

    @operation
    async def emit(self, name: str, value: Any, completion: Completion) -> Meta:
        """Call the handlers for ``name`` with ``value``; a raising handler fails the call."""
        self.events.emit(name, value)
        return Meta()

    # Extensions

    @operation
    async def extend(self, name: str, options: Options, completion: Completion) -> Meta:
        """Load an extension from ``file``, ``code`` or ``stream`` and register it.

        Raises:
            AlreadyExists: If ``name`` is taken and ``redefine`` isn't set
            InvalidArgument: If no source is given or it has no ``setup``
        """
        api = await self.registry.extend(name, options or {})
        return Meta(name=name, api=api)

    @operation
    async def unextend(self, name: str, options: Options, completion: Completion) -> Meta:
        self.registry.unextend(name)
        return Meta(name=name)

    @operation
    async def use(self, name: str, options: Options, completion: Completion) -> Meta:
        """Fetch a registered extension.

        Raises:
            NotFound: If nothing is registered under ``name``
        """
        return Meta(name=name, api=self.registry.use(name))
