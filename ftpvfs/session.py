import asyncio
import contextlib
import ssl
import warnings
from pathlib import PurePosixPath
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple, Union
from urllib.parse import urlparse

import aioftp

from .auth import Anonymous, Basic
from .config import Limits, Timeout
from .errors import ProtocolError
from .settings import SSL
from .streams import ReadStream, Release, WriteStream

HookType = Callable[..., Awaitable[Any]]
Record = Tuple[PurePosixPath, Dict[str, Any]]


class Session:
    """
    Sole owner of the FTP session behind an ``FtpVfs``.

    FTP gives one control connection exactly one data connection at a time,
    and a reply that belongs to a running transfer must not be mistaken for
    the reply to some other command. So everything here, listings and
    control commands included, runs under a single lock: the transfer slot.
    Listings and commands hold it for their round trip; downloads and uploads
    hold it until their stream reaches a terminal state. Concurrent requests
    queue on the lock instead of interleaving.

    The aioftp client is created with the session and connected lazily on
    first use. A transfer that ends abnormally leaves the control connection
    in an unknown state, so the client is dropped and reconnected on the next
    request. After ``close()`` every operation fails with ProtocolError.
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
        """Parse the endpoint and build the (not yet connected) aioftp client.

        Args:
            endpoint: Server URL like "ftp://files.example.com" or "ftps://host:990"
            auth: Credentials, anonymous login when None
            timeout: Connection and socket timeouts
            limits: Block size for downloads and queue depth for uploads
            ssl: TLS settings for ftps endpoints
            hooks: Async callbacks for "connect" and "close"
            encoding: Encoding of the control connection
            client: Ready made client object, mostly for tests

        Raises:
            TypeError: If endpoint isn't a string
            ValueError: If the scheme isn't ftp or ftps
        """
        if not isinstance(endpoint, str):
            raise TypeError("Endpoint must be a string.")

        url = urlparse(endpoint)
        if url.scheme not in {"ftp", "ftps"}:
            raise ValueError("Endpoint must start with 'ftp://' or 'ftps://'.")

        self.endpoint = endpoint
        self.host = url.hostname or "localhost"
        self.port = url.port or (21 if url.scheme == "ftp" else 990)
        self.secure = url.scheme == "ftps"

        self.auth = auth or Anonymous()
        self.timeout = timeout or Timeout()
        self.limits = limits or Limits()
        self.ssl = ssl or SSL()
        self.hooks = hooks or {}
        self.encoding = encoding

        self.client = client or aioftp.Client(
            encoding=encoding,
            socket_timeout=self.timeout.socket,
            ssl=self.tls(),
        )
        self.connected = False
        self.slot = asyncio.Lock()
        self.transfer: Optional[Union[ReadStream, WriteStream]] = None

    @property
    def closed(self) -> bool:
        return self.client is None

    def tls(self) -> Optional[Union[ssl.SSLContext, bool]]:
        """The ``ssl`` argument for aioftp: None for plain FTP or ``context=False``."""
        if not self.secure or self.ssl.context is False:
            return None
        return self.ssl.context or True

    async def ensure(self) -> Any:
        """Return a logged in client, connecting first if needed.

        Raises:
            ProtocolError: If the session has been closed
        """
        if self.client is None:
            raise ProtocolError("Session destroyed")

        if not self.connected:
            await asyncio.wait_for(
                self.client.connect(self.host, self.port),
                timeout=self.timeout.connect,
            )
            await self.client.login(self.auth.user, self.auth.password)
            self.connected = True
            await self.hook("connect", self.client)

        return self.client

    def reset(self) -> None:
        """Drop the control connection; the next request reconnects."""
        if self.client is not None and self.connected:
            self.client.close()
        self.connected = False

    @contextlib.asynccontextmanager
    async def command(self) -> AsyncIterator[Any]:
        async with self.slot:
            try:
                yield await self.ensure()
            except (OSError, EOFError, asyncio.TimeoutError):
                self.reset()
                raise

    def releaser(self) -> Release:
        released = False

        def release(aborted: bool) -> None:
            nonlocal released
            if released:
                return
            released = True
            self.transfer = None
            if aborted:
                self.reset()
            self.slot.release()

        return release

    async def list(self, path: str) -> List[Record]:
        """Fetch and parse a directory listing."""
        async with self.command() as client:
            return [(name, info) async for name, info in client.list(path)]

    async def open_read(self, path: str) -> ReadStream:
        """Start a download and return it as a stream holding the slot."""
        await self.slot.acquire()
        try:
            client = await self.ensure()
            source = await client.download_stream(path)
        except aioftp.StatusCodeError:
            self.slot.release()
            raise
        except BaseException:
            self.reset()
            self.slot.release()
            raise

        self.transfer = ReadStream(source, self.releaser(), block=self.limits.block)
        return self.transfer

    async def open_write(self, path: str) -> WriteStream:
        """Start an upload and return it as a stream holding the slot."""
        await self.slot.acquire()
        try:
            client = await self.ensure()
            sink = await client.upload_stream(path)
        except aioftp.StatusCodeError:
            self.slot.release()
            raise
        except BaseException:
            self.reset()
            self.slot.release()
            raise

        self.transfer = WriteStream(sink, self.releaser(), backlog=self.limits.backlog)
        return self.transfer

    async def remove(self, path: str) -> None:
        async with self.command() as client:
            await client.remove_file(path)

    async def make_directory(self, path: str) -> None:
        async with self.command() as client:
            await client.make_directory(path, parents=False)

    async def remove_directory(self, path: str) -> None:
        async with self.command() as client:
            await client.remove_directory(path)

    async def rename(self, source: str, target: str) -> None:
        async with self.command() as client:
            await client.rename(source, target)

    async def close(self) -> None:
        """Abort any running transfer and log out. Repeated calls do nothing."""
        if self.client is None:
            return

        if self.transfer is not None:
            self.transfer.destroy()

        client, self.client = self.client, None
        if self.connected:
            try:
                await asyncio.wait_for(client.quit(), timeout=self.timeout.connect)
            except Exception as error:
                warnings.warn(f"Error during FTP session cleanup: {error}")
                client.close()
            finally:
                self.connected = False

        await self.hook("close", client)

    async def hook(self, name: str, *args: Any) -> None:
        if name in self.hooks:
            try:
                await self.hooks[name](*args)
            except Exception as error:
                warnings.warn(f"{name.capitalize()} hook failed: {error}")
