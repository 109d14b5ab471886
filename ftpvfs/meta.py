import mimetypes
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from .extensions import Capability

# Fallback type for names mimetypes can't place
BINARY = "application/octet-stream"
DIRECTORY = "inode/directory"


def mime(name: str, directory: bool = False) -> str:
    """Guess the content type of a remote entry from its name."""
    if directory:
        return DIRECTORY
    guessed, _ = mimetypes.guess_type(name, strict=False)
    return guessed or BINARY


@dataclass
class Meta:
    """
    Result of every VFS operation.

    A fresh object is built per call and handed over to the caller. ``stream``
    is only set by operations that move data (``readfile``, ``readdir``,
    ``mkfile``, ``copy``), ``api`` only by ``extend`` and ``use``.

    Attributes:
        mime: Content type, ``inode/directory`` for directories
        size: Size in bytes as reported by the server
        etag: Validator for conditional reads, empty when there is none
        name: Base name of the resource
        path: Remote path the operation worked on
        not_modified: True when a conditional read matched the caller's etag
        stream: Readable or writable stream carrying the data
        api: Capability object for extension operations
    """

    mime: str = BINARY
    size: int = 0
    etag: str = ""
    name: Optional[str] = None
    path: Optional[str] = None
    not_modified: bool = False
    stream: Optional[Any] = None
    api: Optional["Capability"] = None


@dataclass
class Entry:
    """One child of a directory listing."""

    name: str
    path: str
    href: str
    mime: str
    size: int
    etag: str

    def dict(self) -> Dict[str, Any]:
        return asdict(self)
