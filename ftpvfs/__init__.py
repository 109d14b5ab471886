__version__ = "1.0.0"
__author__ = "Andrew Hernandez"
__email__ = "andromedeyz@hotmail.com"
__license__ = "MIT"
__description__ = "An async virtual filesystem over FTP with pausable streams, typed errors, events and extensions."
__url__ = "http://github.com/ApaxPhoenix/FtpPy"

# The adapter itself - every filesystem operation lives here
from .core import FtpVfs

# What operations hand back
from .meta import (
    Meta,  # Result of every operation
    Entry,  # One child in a directory listing
)

# Everything that can go wrong, sorted into kinds you can catch
from .errors import (
    VfsError,  # Base of them all
    NotFound,  # The path isn't there
    AlreadyExists,  # Something already has that name
    IsADirectory,  # Wanted a file, got a directory
    NotSupported,  # FTP just can't do that
    InvalidArgument,  # Bad options from the caller
    ProtocolError,  # The connection or the server misbehaved
)

# Streams that carry file contents and listings
from .streams import (
    Flow,  # Where a stream is in its lifecycle
    Readable,  # Pausable push stream
    DirectoryStream,  # Listing entries, one per loop turn
    ReadStream,  # Download side of a transfer
    WriteStream,  # Upload side of a transfer
)

# Fine-tune how the session behaves
from .config import (
    Timeout,  # How long to wait for the server
    Limits,  # Chunk sizes and upload backpressure
)

# Different ways to log in
from .auth import (
    Basic,  # Classic username and password login
    Anonymous,  # Anonymous access for public servers
)

# Keep your connections secure
from .settings import (
    SSL,  # TLS options for ftps:// endpoints
)

# Plumbing you may want to reach directly
from .events import EventBus
from .completion import Completion
from .session import Session
from .extensions import Registry, Capability

# Serve an adapter over HTTP
from .web import Mount

# Everything you can import and use
__all__ = [
    # The main class you'll work with
    "FtpVfs",
    # Results
    "Meta",
    "Entry",
    # Errors
    "VfsError",
    "NotFound",
    "AlreadyExists",
    "IsADirectory",
    "NotSupported",
    "InvalidArgument",
    "ProtocolError",
    # Streams
    "Flow",
    "Readable",
    "DirectoryStream",
    "ReadStream",
    "WriteStream",
    # Configuration options
    "Timeout",
    "Limits",
    # Authentication types
    "Basic",
    "Anonymous",
    # Security settings
    "SSL",
    # Plumbing
    "EventBus",
    "Completion",
    "Session",
    "Registry",
    "Capability",
    "Mount",
    # Package info
    "__version__",
    "__author__",
    "__email__",
    "__license__",
    "__description__",
    "__url__",
]

# Make sure you're running a modern Python version
import sys

if sys.version_info < (3, 9):
    raise RuntimeError("FtpVfs needs Python 3.9 or newer to work properly")
