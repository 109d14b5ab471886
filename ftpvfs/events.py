from typing import Any, Callable, Dict, List

Handler = Callable[..., Any]


class EventBus:
    """
    Named handler registry for in-process notifications.

    Each event name keeps its own ordered list of handlers. The same handler
    may be registered more than once and then runs once per registration.
    Emitting is synchronous: handlers run in registration order before
    ``emit`` returns, and whatever they raise propagates to the emitter.

    Every stream in this package is an ``EventBus``, and each ``FtpVfs``
    owns a private one for its ``on``/``off``/``emit`` operations.
    """

    def __init__(self) -> None:
        self.handlers: Dict[str, List[Handler]] = {}

    def on(self, name: str, handler: Handler) -> "EventBus":
        """Append a handler to the list for ``name``."""
        self.handlers.setdefault(name, []).append(handler)
        return self

    def once(self, name: str, handler: Handler) -> "EventBus":
        """Register a handler that removes itself after its first call."""

        def wrapper(*args: Any) -> Any:
            self.off(name, wrapper)
            return handler(*args)

        wrapper.listener = handler  # type: ignore[attr-defined]
        return self.on(name, wrapper)

    def off(self, name: str, handler: Handler) -> "EventBus":
        """Remove the first registration of ``handler``; a no-op when absent."""
        handlers = self.handlers.get(name)
        if not handlers:
            return self

        for index, registered in enumerate(handlers):
            if registered is handler or getattr(registered, "listener", None) is handler:
                del handlers[index]
                break

        if not handlers:
            del self.handlers[name]
        return self

    def emit(self, name: str, *args: Any) -> bool:
        """Call every handler registered for ``name``.

        Handlers added or removed while emitting take effect on the next emit.

        Returns:
            bool: True if at least one handler ran
        """
        handlers = list(self.handlers.get(name, ()))
        for handler in handlers:
            handler(*args)
        return bool(handlers)

    def listeners(self, name: str) -> List[Handler]:
        return list(self.handlers.get(name, ()))

    def clear(self, name: str = None) -> None:
        if name is None:
            self.handlers.clear()
        else:
            self.handlers.pop(name, None)
