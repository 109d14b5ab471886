import asyncio
import warnings
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

from aiohttp import web

from .auth import Basic
from .core import FtpVfs
from .errors import (
    AlreadyExists,
    InvalidArgument,
    IsADirectory,
    NotFound,
    NotSupported,
    ProtocolError,
    VfsError,
)

HandlerType = Callable[[web.Request], Awaitable[web.StreamResponse]]
HookType = Callable[..., Awaitable[Any]]

# HTTP status for each error kind
STATUS = {
    NotFound: 404,
    AlreadyExists: 409,
    IsADirectory: 400,
    InvalidArgument: 400,
    NotSupported: 501,
    ProtocolError: 502,
}


class Mount:
    """
    Serves an ``FtpVfs`` over HTTP with aiohttp.

    Routes live under ``/files/``: GET streams a file (or lists a directory as
    JSON), PUT uploads the request body or, for a trailing slash, creates a
    directory, POST takes a multipart upload in a ``file`` field, DELETE
    removes a file or, for a trailing slash, a directory. ``GET /`` reports
    status and never needs credentials.

    Conditional GETs work through ``If-None-Match``: a matching etag answers
    304 without opening a transfer.
    """

    def __init__(
        self,
        vfs: FtpVfs,
        auth: Optional[Basic] = None,
        hooks: Optional[Dict[str, HookType]] = None,
        host: str = "127.0.0.1",
        port: int = 8080,
    ) -> None:
        """Prepare the mount; nothing listens until ``start``.

        Args:
            vfs: Adapter to serve
            auth: Credentials HTTP clients must send, open access when None
            hooks: Async callbacks, "request" runs after every handled request
            host: Interface to bind
            port: TCP port to bind
        """
        self.vfs = vfs
        self.auth = auth
        self.hooks = hooks or {}
        self.host = host
        self.port = port
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None

    def application(self) -> web.Application:
        app = web.Application(middlewares=[self.middleware, self.cors, self.log, self.errors])
        app.router.add_get("/", self.stats)
        app.router.add_get("/files/{path:.*}", self.get)
        app.router.add_put("/files/{path:.*}", self.put)
        app.router.add_post("/files/{path:.*}", self.post)
        app.router.add_delete("/files/{path:.*}", self.delete)
        return app

    async def start(self) -> None:
        """Start listening on host and port."""
        self.runner = web.AppRunner(self.application())
        await self.runner.setup()
        self.site = web.TCPSite(self.runner, self.host, self.port)
        await self.site.start()

    async def stop(self) -> None:
        if self.site:
            try:
                await self.site.stop()
            except Exception as error:
                warnings.warn(f"Error stopping server site: {error}")
            finally:
                self.site = None

        if self.runner:
            try:
                await self.runner.cleanup()
            except Exception as error:
                warnings.warn(f"Error cleaning up server runner: {error}")
            finally:
                self.runner = None

    async def __aenter__(self) -> "Mount":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    @web.middleware
    async def middleware(self, request: web.Request, handler: HandlerType) -> web.StreamResponse:
        """Require Basic credentials on everything but the status endpoint."""
        if self.auth and request.path != "/" and request.method != "OPTIONS":
            header = request.headers.get("Authorization", "")
            if not header.startswith("Basic "):
                return web.Response(
                    status=401, headers={"WWW-Authenticate": 'Basic realm="FTP VFS"'}
                )
            if not self.auth.matches(header):
                return web.Response(status=401)

        return await handler(request)

    @web.middleware
    async def cors(self, request: web.Request, handler: HandlerType) -> web.StreamResponse:
        response = (
            web.Response(status=200)
            if request.method == "OPTIONS"
            else await handler(request)
        )

        if not response.prepared:
            response.headers.update(
                {
                    "Access-Control-Allow-Origin": "*",
                    "Access-Control-Allow-Methods": "GET, PUT, POST, DELETE, OPTIONS",
                    "Access-Control-Allow-Headers": "Content-Type, Authorization, If-None-Match",
                    "Access-Control-Expose-Headers": "ETag",
                    "Access-Control-Max-Age": "86400",
                }
            )

        return response

    @web.middleware
    async def log(self, request: web.Request, handler: HandlerType) -> web.StreamResponse:
        start = asyncio.get_running_loop().time()
        response = await handler(request)

        if "request" in self.hooks:
            duration = asyncio.get_running_loop().time() - start
            try:
                await self.hooks["request"](request, response, duration)
            except Exception as error:
                warnings.warn(f"Request hook failed: {error}")

        return response

    @web.middleware
    async def errors(self, request: web.Request, handler: HandlerType) -> web.StreamResponse:
        """Turn VFS failures into JSON error responses."""
        try:
            return await handler(request)
        except VfsError as error:
            status = next(
                (code for kind, code in STATUS.items() if isinstance(error, kind)), 500
            )
            return web.json_response(
                {"status": "error", "code": error.code, "message": str(error)},
                status=status,
            )

    @staticmethod
    def target(request: web.Request) -> str:
        return "/" + request.match_info["path"]

    async def get(self, request: web.Request) -> web.StreamResponse:
        """Stream a file, or list a directory as JSON."""
        path = self.target(request)
        if path.endswith("/"):
            return await self.listing(path)

        try:
            meta = await self.vfs.readfile(
                path, {"etag": request.headers.get("If-None-Match")}
            )
        except IsADirectory:
            return await self.listing(path)

        if meta.not_modified:
            return web.Response(status=304, headers={"ETag": meta.etag})

        response = web.StreamResponse(
            headers={
                "Content-Type": meta.mime,
                "Content-Length": str(meta.size),
                "ETag": meta.etag,
            }
        )

        try:
            await response.prepare(request)
            async for chunk in meta.stream:
                await response.write(chunk)
        finally:
            meta.stream.destroy()

        await response.write_eof()
        return response

    async def listing(self, path: str) -> web.Response:
        meta = await self.vfs.readdir(path)
        entries = [entry.dict() async for entry in meta.stream]
        return web.json_response(entries)

    async def put(self, request: web.Request) -> web.Response:
        """Upload the raw body, or create a directory for a trailing slash."""
        path = self.target(request)
        if path.endswith("/"):
            meta = await self.vfs.mkdir(path)
            return web.json_response({"status": "success", "path": meta.path}, status=201)

        body = request.content.iter_chunked(self.vfs.limits.block)
        meta = await self.vfs.mkfile(path, {"stream": body})
        return web.json_response(
            {"status": "success", "path": meta.path, "size": meta.size}, status=201
        )

    async def post(self, request: web.Request) -> web.Response:
        """Upload the ``file`` field of a multipart form."""
        path = self.target(request)
        reader = await request.multipart()
        field = await reader.next()

        if not field or field.name != "file":
            return web.Response(status=400, text="Missing file field")

        async def chunks() -> AsyncIterator[bytes]:
            while True:
                chunk = await field.read_chunk()
                if not chunk:
                    break
                yield chunk

        meta = await self.vfs.mkfile(path, {"stream": chunks()})
        return web.json_response(
            {"status": "success", "path": meta.path, "size": meta.size}, status=201
        )

    async def delete(self, request: web.Request) -> web.Response:
        path = self.target(request)
        if path.endswith("/"):
            meta = await self.vfs.rmdir(path)
        else:
            meta = await self.vfs.rmfile(path)
        return web.json_response({"status": "success", "path": meta.path})

    async def stats(self, request: web.Request) -> web.Response:
        session = self.vfs.session
        return web.json_response(
            {
                "server": "FTP VFS",
                "endpoint": f"{session.host}:{session.port}",
                "secure": session.secure,
                "connected": session.connected,
                "endpoints": {
                    "download": "GET /files/{path}",
                    "upload": "PUT /files/{path}",
                    "form": "POST /files/{path}",
                    "delete": "DELETE /files/{path}",
                },
                "status": "closed" if session.closed else "active",
            }
        )


def application(vfs: FtpVfs, auth: Optional[Basic] = None) -> web.Application:
    """Build an aiohttp application serving ``vfs``."""
    return Mount(vfs, auth=auth).application()
