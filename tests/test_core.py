import asyncio

import pytest

from ftpvfs import (
    AlreadyExists,
    Entry,
    FtpVfs,
    InvalidArgument,
    IsADirectory,
    NotFound,
    NotSupported,
    ProtocolError,
)
from ftpvfs import etag
from ftpvfs.core import normalize
from ftpvfs.meta import DIRECTORY

STAMP_SECONDS = etag.timestamp("20240102030405")


def test_normalize():
    assert normalize("/docs/") == "/docs"
    assert normalize("/docs//a.txt") == "/docs/a.txt"
    assert normalize("/docs/sub/../a.txt") == "/docs/a.txt"
    assert normalize("//docs") == "/docs"
    assert normalize("/") == "/"

    with pytest.raises(InvalidArgument):
        normalize("")

    with pytest.raises(InvalidArgument):
        normalize(None)


def test_stat_root_is_synthetic(run, fake):
    async def scenario(vfs):
        return await vfs.stat("/")

    meta = run(scenario)

    assert meta.mime == DIRECTORY
    assert meta.size == 0
    assert meta.name == "/"
    assert meta.path == "/"
    assert meta.etag == etag.calculate("/", None, 0)
    assert fake.calls == []


def test_stat_file(run):
    async def scenario(vfs):
        return await vfs.stat("/readme.txt")

    meta = run(scenario)

    assert meta.mime == "text/plain"
    assert meta.size == 11
    assert meta.name == "readme.txt"
    assert meta.path == "/readme.txt"
    assert meta.etag == etag.calculate("/readme.txt", STAMP_SECONDS, 11)
    assert meta.stream is None


def test_stat_directory(run):
    async def scenario(vfs):
        return await vfs.stat("/docs/")

    meta = run(scenario)

    assert meta.mime == DIRECTORY
    assert meta.path == "/docs"


def test_stat_without_modification_time_uses_path_validator(run):
    async def scenario(vfs):
        return await vfs.stat("/legacy.dat")

    meta = run(scenario)

    assert meta.etag == etag.calculate("/legacy.dat", None, 3)


def test_stat_missing(run):
    async def scenario(vfs):
        with pytest.raises(NotFound) as info:
            await vfs.stat("/docs/nothing.txt")
        return info.value

    error = run(scenario)

    assert error.code == "ENOENT"
    assert error.path == "/docs/nothing.txt"


def test_stat_in_missing_directory(run):
    async def scenario(vfs):
        with pytest.raises(NotFound):
            await vfs.stat("/nowhere/file.txt")

    run(scenario)


def test_callback_receives_outcome_once(run):
    outcomes = []

    async def scenario(vfs):
        found = await vfs.stat("/readme.txt", None, lambda error, meta: outcomes.append((error, meta)))
        missing = await vfs.stat("/missing", None, lambda error, meta: outcomes.append((error, meta)))
        return found, missing

    found, missing = run(scenario)

    assert found.path == "/readme.txt"
    assert missing is None
    assert len(outcomes) == 2
    assert outcomes[0] == (None, found)
    assert isinstance(outcomes[1][0], NotFound)
    assert outcomes[1][1] is None


def test_readfile_streams_content(run, fake):
    async def scenario(vfs):
        meta = await vfs.readfile("/docs/b.bin")
        data = await meta.stream.read()
        after = await vfs.stat("/readme.txt")
        return meta, data, after

    meta, data, after = run(scenario)

    assert data == fake.files["/docs/b.bin"]
    assert meta.size == len(data)
    assert meta.mime == "application/octet-stream"
    assert not meta.not_modified
    assert after.size == 11
    assert fake.transfers == 1
    assert fake.peak == 1


def test_readfile_matching_etag_opens_no_transfer(run, fake):
    async def scenario(vfs):
        current = (await vfs.stat("/readme.txt")).etag
        return await vfs.readfile("/readme.txt", {"etag": current})

    meta = run(scenario)

    assert meta.not_modified is True
    assert meta.stream is None
    assert fake.transfers == 0
    assert fake.count("download") == 0


def test_readfile_stale_etag_downloads(run, fake):
    async def scenario(vfs):
        meta = await vfs.readfile("/readme.txt", {"etag": '"stale"'})
        return meta, await meta.stream.read()

    meta, data = run(scenario)

    assert meta.not_modified is False
    assert data == b"hello world"
    assert fake.transfers == 1


def test_readfile_directory(run, fake):
    async def scenario(vfs):
        with pytest.raises(IsADirectory):
            await vfs.readfile("/docs")

    run(scenario)

    assert fake.transfers == 0


def test_readfile_missing(run):
    async def scenario(vfs):
        with pytest.raises(NotFound):
            await vfs.readfile("/docs/gone.txt")

    run(scenario)


def test_readfile_destroyed_stream_reconnects(run, fake):
    async def scenario(vfs):
        meta = await vfs.readfile("/docs/b.bin")
        meta.stream.destroy()
        return await vfs.stat("/docs/a.txt")

    meta = run(scenario)

    assert meta.size == 5
    assert fake.count("connect") == 2
    assert fake.active == 0


def test_readfile_broken_transfer(run, fake):
    fake.broken.add("/docs/b.bin")

    async def scenario(vfs):
        meta = await vfs.readfile("/docs/b.bin")
        with pytest.raises(ConnectionResetError):
            await meta.stream.read()
        return await vfs.stat("/readme.txt")

    meta = run(scenario)

    assert meta.size == 11
    assert fake.count("connect") == 2


def test_readdir_lists_entries(run):
    async def scenario(vfs):
        meta = await vfs.readdir("/docs")
        return meta, await meta.stream.collect()

    meta, entries = run(scenario)

    assert meta.mime == DIRECTORY
    assert meta.path == "/docs"
    assert [entry.name for entry in entries] == ["a.txt", "b.bin", "sub"]
    assert all(isinstance(entry, Entry) for entry in entries)

    alpha, _, sub = entries
    assert alpha.path == "/docs/a.txt"
    assert alpha.href == "a.txt"
    assert alpha.mime == "text/plain"
    assert alpha.size == 5
    assert alpha.etag == etag.calculate("/docs/a.txt", STAMP_SECONDS, 5)
    assert sub.href == "sub/"
    assert sub.mime == DIRECTORY


def test_readdir_head_returns_no_stream(run):
    async def scenario(vfs):
        return await vfs.readdir("/docs", {"head": True})

    meta = run(scenario)

    assert meta.stream is None
    assert meta.mime == DIRECTORY


def test_readdir_pause_and_resume_keep_order(run):
    async def scenario(vfs):
        loop = asyncio.get_running_loop()
        meta = await vfs.readdir("/")
        stream = meta.stream
        seen = []
        ended = loop.create_future()

        def data(entry):
            seen.append(entry.name)
            stream.pause()
            loop.call_later(0.005, stream.resume)

        stream.on("end", lambda: ended.set_result(len(seen)))
        stream.on("data", data)

        await asyncio.sleep(0)
        await asyncio.sleep(0)
        # Paused after the first entry; nothing else arrives until resume
        assert seen == ["docs"]

        await asyncio.wait_for(ended, 1)
        return seen

    seen = run(scenario)

    assert seen == ["docs", "empty.txt", "legacy.dat", "readme.txt"]


def test_readdir_missing(run):
    async def scenario(vfs):
        with pytest.raises(NotFound):
            await vfs.readdir("/nowhere")

    run(scenario)


def test_rmfile(run, fake):
    async def scenario(vfs):
        meta = await vfs.rmfile("/docs/a.txt")
        with pytest.raises(NotFound):
            await vfs.rmfile("/docs/a.txt")
        return meta

    meta = run(scenario)

    assert meta.path == "/docs/a.txt"
    assert "/docs/a.txt" not in fake.files


def test_mkdir(run, fake):
    async def scenario(vfs):
        return await vfs.mkdir("/docs/new/")

    meta = run(scenario)

    assert meta.path == "/docs/new"
    assert meta.mime == DIRECTORY
    assert "/docs/new" in fake.folders


def test_mkdir_existing(run):
    async def scenario(vfs):
        with pytest.raises(AlreadyExists) as info:
            await vfs.mkdir("/docs")
        return info.value

    error = run(scenario)

    assert error.code == "EEXIST"
    assert error.path == "/docs"


def test_mkdir_over_file(run):
    async def scenario(vfs):
        with pytest.raises(AlreadyExists):
            await vfs.mkdir("/readme.txt")

    run(scenario)


def test_mkdir_missing_parent(run):
    async def scenario(vfs):
        with pytest.raises(NotFound):
            await vfs.mkdir("/nowhere/new")

    run(scenario)


def test_rmdir(run, fake):
    async def scenario(vfs):
        await vfs.rmdir("/docs/sub")
        with pytest.raises(NotFound):
            await vfs.rmdir("/docs/sub")

    run(scenario)

    assert "/docs/sub" not in fake.folders


def test_rename_to(run, fake):
    async def scenario(vfs):
        return await vfs.rename("/readme.txt", {"to": "/docs/readme.txt"})

    meta = run(scenario)

    assert meta.path == "/docs/readme.txt"
    assert fake.files["/docs/readme.txt"] == b"hello world"
    assert "/readme.txt" not in fake.files


def test_rename_from(run, fake):
    async def scenario(vfs):
        return await vfs.rename("/moved.txt", {"from": "/readme.txt"})

    meta = run(scenario)

    assert meta.path == "/moved.txt"
    assert "/moved.txt" in fake.files


def test_rename_requires_endpoint(run, fake):
    async def scenario(vfs):
        with pytest.raises(InvalidArgument):
            await vfs.rename("/readme.txt")

    run(scenario)

    assert fake.calls == []


@pytest.mark.parametrize("verb", ["connect", "resolve", "spawn", "symlink", "watch", "execFile"])
def test_unsupported_operations(run, fake, verb):
    async def scenario(vfs):
        with pytest.raises(NotSupported) as info:
            await getattr(vfs, verb)("/readme.txt")
        return info.value

    error = run(scenario)

    assert error.code == "ENOTSUPPORTED"
    assert fake.calls == []


def test_operations_queue_on_one_session(run, fake):
    async def scenario(vfs):
        async def download(path):
            meta = await vfs.readfile(path)
            return await meta.stream.read()

        return await asyncio.gather(
            download("/docs/b.bin"),
            vfs.stat("/docs/a.txt"),
            download("/readme.txt"),
            vfs.readdir("/docs", {"head": True}),
        )

    first, alpha, second, folder = run(scenario)

    assert first == fake.files["/docs/b.bin"]
    assert second == b"hello world"
    assert alpha.size == 5
    assert folder.path == "/docs"
    assert fake.peak == 1
    assert fake.count("connect") == 1


def test_context_manager_connects_and_closes(fake):
    events = []

    async def connected(client):
        events.append("connect")

    async def closed(client):
        events.append("close")

    async def main():
        async with FtpVfs(
            "ftp://files.example.com:2121",
            client=fake,
            hooks={"connect": connected, "close": closed},
        ) as vfs:
            assert fake.calls[0] == ("connect", "files.example.com", 2121)
            assert fake.calls[1] == ("login", "anonymous", "anon@")
        return vfs

    vfs = asyncio.run(main())

    assert events == ["connect", "close"]
    assert ("quit",) in fake.calls
    assert vfs.session.closed


def test_destroyed_adapter_rejects_operations(fake):
    async def main():
        vfs = FtpVfs("ftp://files.example.com", client=fake)
        await vfs.stat("/readme.txt")
        await vfs.destroy()
        await vfs.destroy()

        with pytest.raises(ProtocolError):
            await vfs.stat("/readme.txt")

        with pytest.raises(ProtocolError):
            await vfs.readfile("/readme.txt")

    asyncio.run(main())

    assert fake.count("quit") == 1


def test_destroy_aborts_running_transfer(fake):
    async def main():
        vfs = FtpVfs("ftp://files.example.com", client=fake)
        meta = await vfs.readfile("/docs/b.bin")
        closed = []
        meta.stream.on("close", lambda: closed.append(True))
        await vfs.destroy()
        return meta.stream, closed

    stream, closed = asyncio.run(main())

    assert stream.closed
    assert closed == [True]
    assert fake.active == 0
