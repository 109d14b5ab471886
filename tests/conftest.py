"""Shared fixtures: an in-memory stand-in for ``aioftp.Client``."""

import asyncio
import posixpath
from pathlib import PurePosixPath

import aioftp
import pytest

from ftpvfs import FtpVfs

STAMP = "20240102030405"


def refuse(code, message):
    return aioftp.StatusCodeError(("250",), (code,), message)


class FakeDownload:
    def __init__(self, client, path, data):
        self.client = client
        self.path = path
        self.data = data
        self.offset = 0
        self.finished = False
        self.closed = False

    async def read(self, count):
        await asyncio.sleep(0)
        if self.path in self.client.broken and self.offset:
            raise ConnectionResetError("data connection dropped")
        chunk = self.data[self.offset : self.offset + count]
        self.offset += len(chunk)
        return chunk

    async def finish(self):
        self.finished = True
        self.client.active -= 1

    def close(self):
        if not self.finished and not self.closed:
            self.client.active -= 1
        self.closed = True


class FakeUpload:
    def __init__(self, client, path):
        self.client = client
        self.path = path
        self.buffer = bytearray()
        self.finished = False
        self.closed = False

    async def write(self, data):
        await asyncio.sleep(0)
        self.buffer.extend(data)

    async def finish(self):
        self.client.files[self.path] = bytes(self.buffer)
        self.finished = True
        self.client.active -= 1

    def close(self):
        if not self.finished and not self.closed:
            self.client.active -= 1
        self.closed = True


class FakeClient:
    """
    Keeps a small tree in memory and answers like an FTP server would.

    ``calls`` records every command in order, ``transfers`` counts opened
    data connections and ``peak`` the most operations ever in flight at once.
    """

    def __init__(self):
        self.files = {
            "/readme.txt": b"hello world",
            "/empty.txt": b"",
            "/legacy.dat": b"old",
            "/docs/a.txt": b"alpha",
            "/docs/b.bin": bytes(range(256)) * 100,
        }
        self.folders = {"/", "/docs", "/docs/sub"}
        # Files listed without a modification time
        self.undated = {"/legacy.dat"}
        self.broken = set()
        self.calls = []
        self.transfers = 0
        self.uploads = []
        self.active = 0
        self.peak = 0

    @staticmethod
    def absolute(path):
        path = posixpath.normpath(posixpath.join("/", str(path)))
        return "/" + path.lstrip("/")

    def enter(self):
        self.active += 1
        self.peak = max(self.peak, self.active)

    def exists(self, path):
        return path in self.files or path in self.folders

    async def connect(self, host, port):
        self.calls.append(("connect", host, port))

    async def login(self, user, password):
        self.calls.append(("login", user, password))

    async def list(self, path):
        directory = self.absolute(path)
        self.calls.append(("list", directory))
        self.enter()
        try:
            await asyncio.sleep(0)
            if directory not in self.folders:
                raise refuse("550", f"{directory}: No such file or directory")

            yield PurePosixPath(directory), {"type": "cdir", "modify": STAMP}
            names = set()
            for candidate in list(self.files) + list(self.folders):
                parent, name = posixpath.split(candidate)
                if name and parent == directory:
                    names.add(name)

            for name in sorted(names):
                child = posixpath.join(directory, name)
                if child in self.folders:
                    info = {"type": "dir", "modify": STAMP}
                else:
                    info = {"type": "file", "size": str(len(self.files[child]))}
                    if child not in self.undated:
                        info["modify"] = STAMP
                yield PurePosixPath(directory) / name, info
        finally:
            self.active -= 1

    async def download_stream(self, path):
        path = self.absolute(path)
        self.calls.append(("download", path))
        if path not in self.files:
            raise refuse("550", f"{path}: No such file")
        self.transfers += 1
        self.enter()
        return FakeDownload(self, path, self.files[path])

    async def upload_stream(self, path):
        path = self.absolute(path)
        self.calls.append(("upload", path))
        if posixpath.dirname(path) not in self.folders or path in self.folders:
            raise refuse("553", f"{path}: Can't create file")
        self.transfers += 1
        self.enter()
        self.files[path] = b""
        upload = FakeUpload(self, path)
        self.uploads.append(upload)
        return upload

    async def remove_file(self, path):
        path = self.absolute(path)
        self.calls.append(("remove_file", path))
        if path not in self.files:
            raise refuse("550", f"{path}: No such file")
        del self.files[path]

    async def make_directory(self, path, parents=True):
        path = self.absolute(path)
        self.calls.append(("make_directory", path))
        if self.exists(path) or posixpath.dirname(path) not in self.folders:
            raise refuse("550", f"{path}: Can't create directory")
        self.folders.add(path)

    async def remove_directory(self, path):
        path = self.absolute(path)
        self.calls.append(("remove_directory", path))
        if path not in self.folders:
            raise refuse("550", f"{path}: No such directory")
        self.folders.discard(path)

    async def rename(self, source, destination):
        source, destination = self.absolute(source), self.absolute(destination)
        self.calls.append(("rename", source, destination))
        if source not in self.files:
            raise refuse("550", f"{source}: No such file")
        self.files[destination] = self.files.pop(source)

    async def quit(self):
        self.calls.append(("quit",))

    def close(self):
        self.calls.append(("close",))

    def count(self, command):
        return sum(1 for call in self.calls if call[0] == command)


@pytest.fixture
def fake():
    return FakeClient()


@pytest.fixture
def run(fake):
    """Run ``scenario(vfs)`` on a fresh loop against the fake server."""

    def runner(scenario, **options):
        async def main():
            vfs = FtpVfs("ftp://files.example.com", client=fake, **options)
            try:
                return await scenario(vfs)
            finally:
                await vfs.destroy()

        return asyncio.run(main())

    return runner
