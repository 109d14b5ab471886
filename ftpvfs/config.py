from dataclasses import dataclass
from typing import Optional


@dataclass
class Timeout:
    """
    Timeout configuration for the FTP session.

    Only the session setup is bounded by default. Transfers deliberately have
    no deadline of their own: a stalled transfer keeps the data connection
    until the caller destroys its stream.

    Attributes:
        connect: Time to wait for the control connection and for logout.
        socket: Optional per-read/per-write socket timeout handed to aioftp.
                None leaves socket operations unbounded.
    """

    connect: float = 5.0  # Time to wait for the control connection
    socket: Optional[float] = None  # Per socket operation, None for no limit

    def __post_init__(self) -> None:
        """
        Validate timeout values after initialization.

        Raises:
            ValueError: If a timeout isn't positive.
        """
        if self.connect <= 0:
            raise ValueError("Connect timeout must be positive")

        if self.socket is not None and self.socket <= 0:
            raise ValueError("Socket timeout must be positive")


@dataclass
class Limits:
    """
    Buffering limits for streamed transfers.

    A download reads ``block`` bytes per data event. An upload stream accepts
    up to ``backlog`` queued chunks before ``write()`` starts returning False
    to ask the producer to wait for ``drain``.

    Attributes:
        block: Bytes read from the data connection per chunk.
        backlog: Chunks an upload queues before signalling backpressure.
    """

    block: int = 8192  # Bytes per download chunk
    backlog: int = 16  # Queued upload chunks before write() returns False

    def __post_init__(self) -> None:
        """
        Validate limits after initialization.

        Raises:
            ValueError: If a limit is out of range.
        """
        if self.block <= 0:
            raise ValueError("Block size must be positive")

        if self.backlog <= 0:
            raise ValueError("Backlog must be positive")
