import base64
import warnings
from dataclasses import dataclass, field

Username = str
Password = str


@dataclass
class Basic:
    """
    Username and password for the FTP login.

    The same pair protects the HTTP mount in ``ftpvfs.web``, which is why the
    matching ``Authorization`` header value is derived here as well.

    Attributes:
        user: Login name on the FTP server.
        password: Password for that login. Sent in clear text over plain
                  ftp:// endpoints, so prefer ftps:// where the server allows.
        header: ``Basic <base64(user:password)>`` as defined by RFC 7617.
                Generated from user and password.
    """

    user: Username
    password: Password
    header: str = field(default="", repr=False)

    def __post_init__(self) -> None:
        """
        Validate the credentials and derive the HTTP header.

        Raises:
            ValueError: If the user name or password is blank.
        """
        if not self.user.strip():
            raise ValueError("Username cannot be empty or whitespace")

        if not self.password.strip():
            raise ValueError("Password cannot be empty or whitespace")

        if len(self.password) < 8:
            warnings.warn(
                "Password is shorter than 8 characters. "
                "Consider using a stronger password for better security."
            )

        if not self.header:
            encoded = base64.b64encode(f"{self.user}:{self.password}".encode()).decode()
            self.header = f"Basic {encoded}"

    def matches(self, header: str) -> bool:
        """Check an incoming ``Authorization`` header against these credentials."""
        return header == self.header


@dataclass
class Anonymous:
    """
    Anonymous FTP login.

    By convention the password of an anonymous login is the user's e-mail
    address; servers rarely check it.

    Attributes:
        user: Login name, "anonymous" on practically every server.
        password: Whatever the server expects as anonymous password.
    """

    user: Username = "anonymous"
    password: Password = "anon@"
