import asyncio
from typing import Any, Callable, Generic, Optional, TypeVar

T = TypeVar("T")
Callback = Callable[[Optional[BaseException], Optional[Any]], Any]


class Completion(Generic[T]):
    """
    Exactly-once outcome of a VFS operation.

    Wraps an ``asyncio.Future`` and an optional node style
    ``callback(error, result)``. The first ``resolve`` or ``reject`` settles
    both; any later attempt is a bug in the caller and raises RuntimeError
    instead of being dropped quietly.
    """

    def __init__(self, callback: Optional[Callback] = None) -> None:
        self.callback = callback
        self.future: "asyncio.Future[T]" = asyncio.get_running_loop().create_future()

    @property
    def done(self) -> bool:
        return self.future.done()

    def resolve(self, result: T) -> None:
        self.settle(None, result)

    def reject(self, error: BaseException) -> None:
        self.settle(error, None)

    def settle(self, error: Optional[BaseException], result: Optional[T]) -> None:
        if self.future.done():
            raise RuntimeError(
                f"Completion already settled; refusing to report {error or result!r}"
            )

        if error is not None:
            self.future.set_exception(error)
            # With a callback the error is delivered there, not raised
            if self.callback is not None:
                self.future.exception()
        else:
            self.future.set_result(result)

        if self.callback is not None:
            self.callback(error, result)

    async def wait(self) -> Optional[T]:
        """Wait for the outcome.

        Returns the result, or raises the error when no callback took it.
        With a callback, a failure returns None because the callback already
        received the error.
        """
        try:
            return await asyncio.shield(self.future)
        except asyncio.CancelledError:
            raise
        except Exception:
            if self.callback is not None:
                return None
            raise
