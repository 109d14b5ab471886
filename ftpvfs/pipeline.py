import posixpath
from typing import Any, List, Optional, Tuple

from .completion import Completion
from .errors import translate
from .meta import Meta, mime
from .session import Session
from .streams import Readable, WriteStream


class Upload:
    """
    Write pipeline behind ``mkfile`` and the second half of ``copy``.

    Negotiating the upload can take a while: the session may still be busy
    with another transfer (with ``copy``, the very download feeding this
    upload). Input events that arrive meanwhile are kept in a pending buffer
    in arrival order. Once the sink is ready the buffer is replayed exactly
    once, then the input is wired straight to the sink with backpressure.

    The completion fires once: with the metadata when the server acknowledges
    the upload, or with the first failure from the input, the sink or the
    negotiation. A failure tears down both ends. Without an input the upload
    is ended at once, which commits an empty file. With ``writable`` set the
    sink is handed to the caller instead, as soon as it is ready; its later
    success shows up as a ``saved`` event on the sink, a later failure as
    ``error``.
    """

    def __init__(
        self,
        session: Session,
        path: str,
        source: Optional[Readable],
        completion: Completion,
        writable: bool = False,
    ) -> None:
        self.session = session
        self.path = path
        self.source = source
        self.completion = completion
        self.writable = writable
        self.pending: List[Tuple[Any, ...]] = []
        self.sink: Optional[WriteStream] = None

        name = posixpath.basename(path)
        self.meta = Meta(mime=mime(name), name=name, path=path)

    async def run(self) -> None:
        if self.source is not None:
            self.source.on("error", self.source_failed)
            self.source.on("end", self.buffer_end)
            # Attaching the data handler starts the input flowing
            self.source.on("data", self.buffer)

        try:
            sink = await self.session.open_write(self.path)
        except Exception as error:
            self.abandon(translate(error, self.path))
            return

        if self.completion.done:
            # The input failed while the upload was being negotiated
            sink.destroy()
            return

        self.sink = sink
        sink.on("finish", self.finished)
        sink.on("error", self.sink_failed)

        if self.source is None:
            if self.writable:
                self.meta.stream = sink
                self.completion.resolve(self.meta)
            else:
                sink.end()
            return

        self.meta.stream = sink
        self.replay()

    def buffer(self, chunk: Any) -> None:
        self.pending.append(("data", chunk))

    def buffer_end(self) -> None:
        self.pending.append(("end",))

    def replay(self) -> None:
        source, sink = self.source, self.sink
        source.off("data", self.buffer)
        source.off("end", self.buffer_end)

        pending, self.pending = self.pending, []
        for event in pending:
            if event[0] == "end":
                sink.end()
                return
            sink.write(event[1])

        if sink.draining:
            source.pause()
            sink.once("drain", source.resume)

        source.once("end", sink.end)
        source.on("data", self.forward)

    def forward(self, chunk: Any) -> None:
        if self.sink.write(chunk) is False:
            self.source.pause()
            self.sink.once("drain", self.source.resume)

    def finished(self) -> None:
        self.meta.size = self.sink.written
        if self.completion.done:
            self.sink.emit("saved")
        else:
            self.completion.resolve(self.meta)

    def source_failed(self, error: BaseException) -> None:
        if self.completion.done:
            if self.sink is not None:
                self.sink.destroy(error)
            return
        self.abandon(translate(error, self.path))

    def sink_failed(self, error: BaseException) -> None:
        # After completion the consumer already sees this on the sink itself
        if not self.completion.done:
            self.abandon(translate(error, self.path))

    def abandon(self, error: BaseException) -> None:
        if self.source is not None:
            for name, handler in (
                ("data", self.buffer),
                ("data", self.forward),
                ("end", self.buffer_end),
                ("error", self.source_failed),
            ):
                self.source.off(name, handler)
            self.source.destroy()

        if self.sink is not None:
            self.sink.destroy()

        self.completion.reject(error)
