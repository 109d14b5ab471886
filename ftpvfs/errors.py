import asyncio
from typing import Optional, Set, Type

import aioftp


class VfsError(Exception):
    """
    Base class for every failure an ``FtpVfs`` operation reports.

    Each kind carries a filesystem style ``code`` (``ENOENT``, ``EEXIST`` and
    so on) so callers can branch without knowing anything about FTP. Raw
    aioftp failures never leave the operation set; they are kept as the
    ``__cause__`` of the translated error.

    Attributes:
        code: Filesystem style error code for this kind
        path: Remote path the failure is about, when there is one
    """

    code = "EIO"

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class NotFound(VfsError):
    code = "ENOENT"


class AlreadyExists(VfsError):
    code = "EEXIST"


class IsADirectory(VfsError):
    code = "EISDIR"


class NotSupported(VfsError):
    code = "ENOTSUPPORTED"


class InvalidArgument(VfsError):
    code = "EINVAL"


class ProtocolError(VfsError):
    """The session or a data connection is unusable."""

    code = "EIO"


# FTP replies that, for a lookup or transfer, mean the path isn't there.
# Strictly only 450, 451 and 550 say so, 553 covers servers rejecting names
# of files that don't exist in the target directory.
MISSING = frozenset({"450", "451", "550", "553"})


def codes(error: BaseException) -> Set[str]:
    """Collect the reply codes an aioftp error carries, as plain strings."""
    received = getattr(error, "received_codes", None) or ()
    return {str(code) for code in received}


def translate(
    error: BaseException,
    path: Optional[str] = None,
    missing: Type[VfsError] = NotFound,
) -> VfsError:
    """Map a transport failure onto the error taxonomy.

    Args:
        error: Whatever the session raised
        path: Remote path the operation was working on
        missing: Kind to use when the server says the path is unavailable

    Returns:
        VfsError: The translated error, with the original as ``__cause__``
    """
    if isinstance(error, VfsError):
        return error

    if isinstance(error, aioftp.StatusCodeError):
        received = codes(error)
        if received & MISSING:
            translated: VfsError = missing(
                f"{missing.code} - No such file or directory: {path}", path
            )
        else:
            translated = ProtocolError(
                f"FTP error {', '.join(sorted(received)) or '?'} on {path}: {error}",
                path,
            )
    elif isinstance(
        error, (OSError, EOFError, asyncio.TimeoutError, aioftp.AIOFTPException)
    ):
        translated = ProtocolError(f"Connection failure on {path}: {error}", path)
    else:
        translated = ProtocolError(f"Unexpected failure on {path}: {error!r}", path)

    translated.__cause__ = error
    return translated
