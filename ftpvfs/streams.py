import asyncio
import enum
from typing import (
    Any,
    AsyncIterator,
    Callable,
    List,
    Optional,
    Sequence,
    Union,
)

from .events import EventBus, Handler

Release = Callable[[bool], None]
Chunk = Union[bytes, bytearray, memoryview, str]


class Flow(enum.Enum):
    """Lifecycle of a stream. The last three states are terminal."""

    IDLE = "idle"
    EMITTING = "emitting"
    PAUSED = "paused"
    ENDED = "ended"
    ERRORED = "errored"
    DESTROYED = "destroyed"


TERMINAL = frozenset({Flow.ENDED, Flow.ERRORED, Flow.DESTROYED})


def encode(chunk: Chunk) -> bytes:
    if isinstance(chunk, str):
        return chunk.encode("utf-8")
    return bytes(chunk)


class Readable(EventBus):
    """
    Pausable push stream with explicit flow state.

    Events: ``data`` (one chunk or entry), ``end`` (source exhausted),
    ``error`` (failure), ``close`` (always last, once). After ``end`` or
    ``error`` nothing else but ``close`` is emitted.

    A new stream sits in ``IDLE`` and emits nothing until a consumer shows up:
    attaching a ``data`` handler, ``pipe()``, ``async for`` or an explicit
    ``resume()``. The first emission always happens on a later loop turn, so a
    caller that receives the stream can attach every listener it needs before
    any data moves.
    """

    readable = True

    def __init__(self) -> None:
        super().__init__()
        self.loop = asyncio.get_running_loop()
        self.flow = Flow.IDLE

    @property
    def closed(self) -> bool:
        return self.flow in TERMINAL

    def on(self, name: str, handler: Handler) -> "Readable":
        super().on(name, handler)
        if name == "data" and self.flow is Flow.IDLE:
            self.resume()
        return self

    def pause(self) -> "Readable":
        if self.flow in (Flow.IDLE, Flow.EMITTING):
            self.flow = Flow.PAUSED
            self.paused()
        return self

    def resume(self) -> "Readable":
        if self.flow in (Flow.IDLE, Flow.PAUSED):
            self.flow = Flow.EMITTING
            self.resumed()
        return self

    def destroy(self, error: Optional[BaseException] = None) -> None:
        """Stop the stream and free what it holds. Safe to call repeatedly."""
        if self.closed:
            return
        self.flow = Flow.DESTROYED
        self.teardown(aborted=True)
        if error is not None:
            self.emit("error", error)
        self.emit("close")

    def pipe(self, destination: "WriteStream") -> "WriteStream":
        """Forward every chunk to ``destination`` and end it when done.

        Honors the destination's backpressure: when ``write`` returns False
        the source pauses until the destination emits ``drain``.
        """

        def data(chunk: Any) -> None:
            if destination.write(chunk) is False:
                self.pause()
                destination.once("drain", self.resume)

        self.once("end", destination.end)
        self.on("data", data)
        return destination

    async def collect(self) -> List[Any]:
        """Consume the whole stream and return its chunks in order."""
        return [chunk async for chunk in self]

    async def read(self) -> bytes:
        """Consume the whole stream into a single bytes object."""
        return b"".join(encode(chunk) for chunk in await self.collect())

    def __aiter__(self) -> AsyncIterator[Any]:
        return self.iterate()

    async def iterate(self, backlog: int = 16) -> AsyncIterator[Any]:
        """Iterate the stream, pausing it while ``backlog`` chunks are unread."""
        if self.closed:
            return

        queue: "asyncio.Queue[tuple]" = asyncio.Queue()
        throttled = False

        def data(chunk: Any) -> None:
            nonlocal throttled
            queue.put_nowait(("data", chunk))
            if queue.qsize() >= backlog and self.flow is Flow.EMITTING:
                throttled = True
                self.pause()

        handlers = {
            "error": lambda error: queue.put_nowait(("error", error)),
            "close": lambda: queue.put_nowait(("close", None)),
            "data": data,
        }
        for name, handler in handlers.items():
            self.on(name, handler)

        try:
            while True:
                if throttled and queue.empty():
                    throttled = False
                    self.resume()

                kind, value = await queue.get()
                if kind == "data":
                    yield value
                elif kind == "error":
                    raise value
                else:
                    return
        finally:
            for name, handler in handlers.items():
                self.off(name, handler)

    # Terminal transitions shared by subclasses

    def finish(self) -> None:
        if self.closed:
            return
        self.flow = Flow.ENDED
        self.teardown(aborted=False)
        self.emit("end")
        self.emit("close")

    def fail(self, error: BaseException) -> None:
        if self.closed:
            return
        self.flow = Flow.ERRORED
        self.teardown(aborted=True)
        self.emit("error", error)
        self.emit("close")

    # Hooks for subclasses

    def paused(self) -> None:
        pass

    def resumed(self) -> None:
        pass

    def teardown(self, aborted: bool) -> None:
        pass


class DirectoryStream(Readable):
    """
    Pushes directory entries one per event loop turn.

    The listing is already in memory as raw records; each record becomes an
    entry only when it is about to be emitted. A ``pause()`` issued from inside
    a ``data`` handler stops the stream before the next entry, and a later
    ``resume()`` carries on from exactly where it stopped.

    A ``data`` handler that raises moves the stream to ``ERRORED``.
    """

    def __init__(self, records: Sequence[Any], build: Callable[[Any], Any]) -> None:
        super().__init__()
        self.records = records
        self.build = build
        self.index = 0
        self.handle: Optional[asyncio.Handle] = None

    def resumed(self) -> None:
        if self.handle is None:
            self.handle = self.loop.call_soon(self.step)

    def step(self) -> None:
        self.handle = None
        if self.flow is not Flow.EMITTING:
            return

        if self.index >= len(self.records):
            self.finish()
            return

        record = self.records[self.index]
        self.index += 1

        try:
            self.emit("data", self.build(record))
        except Exception as error:
            self.fail(error)
            return

        # A pause and resume inside the handler already scheduled the next step
        if self.flow is Flow.EMITTING and self.handle is None:
            self.handle = self.loop.call_soon(self.step)

    def teardown(self, aborted: bool) -> None:
        if self.handle is not None:
            self.handle.cancel()
            self.handle = None


class Source(Readable):
    """
    Readable fed by an async producer running in its own task.

    The task starts on the first resume and only pulls the next chunk while
    the stream is flowing, so a paused consumer holds the producer back
    instead of letting chunks pile up.
    """

    def __init__(self) -> None:
        super().__init__()
        self.flowing = asyncio.Event()
        self.task: Optional["asyncio.Task[None]"] = None

    def resumed(self) -> None:
        self.flowing.set()
        if self.task is None:
            self.task = self.loop.create_task(self.pump())

    def paused(self) -> None:
        self.flowing.clear()

    async def pump(self) -> None:
        try:
            while True:
                await self.flowing.wait()
                if self.closed:
                    return

                chunk = await self.produce()
                if chunk is None:
                    break
                if not chunk:
                    continue

                # A pause issued while the producer was busy still holds
                await self.flowing.wait()
                if self.closed:
                    return
                self.emit("data", chunk)

            await self.complete()
        except asyncio.CancelledError:
            raise
        except Exception as error:
            self.fail(error)
            return

        self.finish()

    def teardown(self, aborted: bool) -> None:
        task, self.task = self.task, None
        if aborted and task is not None and task is not asyncio.current_task():
            task.cancel()
        self.flowing.set()

    async def produce(self) -> Optional[Any]:
        """Return the next chunk, or None when the source is exhausted."""
        raise NotImplementedError

    async def complete(self) -> None:
        pass


class ReadStream(Source):
    """
    Download side of a transfer.

    Reads blocks from an aioftp data connection stream. Reaching the end waits
    for the server's transfer-complete reply before emitting ``end``; any
    terminal state hands the transfer slot back to the session.
    """

    def __init__(self, source: Any, release: Release, block: int = 8192) -> None:
        super().__init__()
        self.source = source
        self.release = release
        self.block = block
        self.received = 0

    async def produce(self) -> Optional[bytes]:
        data = await self.source.read(self.block)
        if not data:
            return None
        self.received += len(data)
        return data

    async def complete(self) -> None:
        await self.source.finish()

    def teardown(self, aborted: bool) -> None:
        super().teardown(aborted)
        if aborted:
            self.source.close()
        self.release(aborted)


class IterableStream(Source):
    """Readable over bytes, text, a file object or any (async) iterable of chunks."""

    def __init__(self, iterable: Any, block: int = 8192) -> None:
        super().__init__()
        if isinstance(iterable, (bytes, bytearray, memoryview, str)):
            iterable = [iterable]
        elif hasattr(iterable, "read") and not hasattr(iterable, "__aiter__"):
            reader = iterable.read
            iterable = iter(lambda: reader(block), reader(0))

        if hasattr(iterable, "__aiter__"):
            self.asynchronous = True
            self.iterator = iterable.__aiter__()
        else:
            self.asynchronous = False
            self.iterator = iter(iterable)

    async def produce(self) -> Optional[bytes]:
        try:
            if self.asynchronous:
                chunk = await self.iterator.__anext__()
            else:
                chunk = next(self.iterator)
        except (StopIteration, StopAsyncIteration):
            return None
        return encode(chunk)


def wrap(source: Any, block: int = 8192) -> Readable:
    """Turn a caller supplied input into a ``Readable``.

    Raises:
        TypeError: If the input can't be read from
    """
    if isinstance(source, Readable):
        if not source.readable or source.closed:
            raise TypeError("stream must be readable")
        return source

    if isinstance(source, (bytes, bytearray, memoryview, str)) or any(
        hasattr(source, attribute) for attribute in ("__aiter__", "__iter__", "read")
    ):
        return IterableStream(source, block)

    raise TypeError(f"stream must be readable, got {type(source).__name__}")


class WriteStream(EventBus):
    """
    Upload side of a transfer.

    ``write()`` queues a chunk and returns False once ``backlog`` chunks are
    waiting, the signal for a producer to pause until ``drain``. ``end()``
    flushes the queue, closes the data connection and waits for the server to
    acknowledge the upload.

    Events: ``drain``, ``finish`` (upload acknowledged), ``error``, ``close``
    (always last, once). The write pipeline adds ``saved`` when it reports a
    success after its completion already fired.
    """

    writable = True

    def __init__(self, sink: Any, release: Release, backlog: int = 16) -> None:
        super().__init__()
        self.loop = asyncio.get_running_loop()
        self.sink = sink
        self.release = release
        self.backlog = backlog
        self.flow = Flow.IDLE
        self.ending = False
        self.draining = False
        self.written = 0
        self.queue: "asyncio.Queue[Optional[bytes]]" = asyncio.Queue()
        self.task: Optional["asyncio.Task[None]"] = None
        self.outcome: "asyncio.Future[None]" = self.loop.create_future()

    @property
    def closed(self) -> bool:
        return self.flow in TERMINAL

    def write(self, chunk: Chunk) -> bool:
        if self.ending or self.closed:
            raise RuntimeError("write after end")

        self.queue.put_nowait(encode(chunk))
        self.start()

        if self.queue.qsize() >= self.backlog:
            self.draining = True
            return False
        return True

    def end(self, chunk: Optional[Chunk] = None) -> None:
        if self.ending or self.closed:
            return
        if chunk is not None:
            self.write(chunk)
        self.ending = True
        self.queue.put_nowait(None)
        self.start()

    def start(self) -> None:
        if self.task is None:
            self.task = self.loop.create_task(self.flush())

    async def flush(self) -> None:
        try:
            while True:
                chunk = await self.queue.get()
                if chunk is None:
                    break

                await self.sink.write(chunk)
                self.written += len(chunk)

                if self.draining and self.queue.empty():
                    self.draining = False
                    self.emit("drain")

            await self.sink.finish()
        except asyncio.CancelledError:
            raise
        except Exception as error:
            self.fail(error)
            return

        self.succeed()

    async def wait(self) -> None:
        """Wait until the upload is acknowledged; raise if it failed."""
        await asyncio.shield(self.outcome)

    def succeed(self) -> None:
        if self.closed:
            return
        self.flow = Flow.ENDED
        self.release(False)
        self.outcome.set_result(None)
        self.emit("finish")
        self.emit("close")

    def fail(self, error: BaseException) -> None:
        if self.closed:
            return
        self.flow = Flow.ERRORED
        self.abort()
        self.outcome.set_exception(error)
        self.outcome.exception()
        self.emit("error", error)
        self.emit("close")

    def destroy(self, error: Optional[BaseException] = None) -> None:
        if self.closed:
            return
        self.flow = Flow.DESTROYED
        self.abort()
        self.outcome.set_exception(error or ConnectionAbortedError("stream destroyed"))
        self.outcome.exception()
        if error is not None:
            self.emit("error", error)
        self.emit("close")

    def abort(self) -> None:
        task, self.task = self.task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
        self.sink.close()
        self.release(True)
