import ssl
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union


@dataclass
class SSL:
    """
    TLS configuration for ftps:// endpoints.

    With no extra options the context stays None and aioftp negotiates TLS
    with its own defaults. Client certificates, a private CA bundle or a
    cipher list produce a dedicated ``ssl.SSLContext``.

    Attributes:
        verify: Check the server certificate. Turning this off exposes the
                session to man-in-the-middle attacks.
        cert: Client certificate file for mutual TLS.
        key: Private key matching ``cert``.
        bundle: CA bundle used instead of the system store.
        ciphers: OpenSSL cipher list.
        context: Ready made context, or False to disable TLS entirely.
    """

    verify: bool = True
    cert: Optional[str] = None
    key: Optional[str] = None
    bundle: Optional[str] = None
    ciphers: Optional[str] = None
    context: Optional[Union[ssl.SSLContext, bool]] = None

    def __post_init__(self) -> None:
        """
        Validate the file options and build the context.

        Raises:
            ValueError: If files are missing, cert and key aren't paired, or
                        OpenSSL rejects the configuration.
        """
        if bool(self.cert) != bool(self.key):
            raise ValueError("Both certificate and key must be provided together for mutual TLS")

        for label, location in (("Certificate", self.cert), ("Private key", self.key), ("CA bundle", self.bundle)):
            if location and not Path(location).is_file():
                raise ValueError(f"{label} file not found: {location}")

        if self.context is not None and not isinstance(self.context, (ssl.SSLContext, bool)):
            raise ValueError("SSL context must be an SSLContext object, boolean, or None")

        if not self.verify:
            warnings.warn(
                "SSL certificate verification is disabled. "
                "Only use this setting against trusted servers.",
                UserWarning,
                stacklevel=3,
            )

        if self.context is not None:
            return

        if not any([self.cert, self.bundle, self.ciphers]) and self.verify:
            return

        try:
            context = ssl.create_default_context(cafile=self.bundle)
            if not self.verify:
                context.check_hostname = False
                context.verify_mode = ssl.CERT_NONE
            if self.cert and self.key:
                context.load_cert_chain(self.cert, self.key)
            if self.ciphers:
                context.set_ciphers(self.ciphers)
        except (ssl.SSLError, OSError) as error:
            raise ValueError(f"Invalid TLS configuration: {error}")

        self.context = context
