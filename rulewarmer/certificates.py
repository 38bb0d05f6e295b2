"""Client certificate handling for direct repository connections."""
from __future__ import annotations

import os
import ssl
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

CLIENT_CERT_FILE = "client.pem"
CLIENT_KEY_FILE = "client_key.pem"
ROOT_CERT_FILE = "root.pem"

CERT_DIR_ENV = "RULEWARMER_CERT_DIR"
_EXPORT_SUBDIR = Path("Qlik") / "Sense" / "Repository" / "Exported Certificates" / ".Local Certificates"


class CertificateError(RuntimeError):
    """Raised when the client certificate bundle cannot be loaded."""


@dataclass(frozen=True)
class CertificateBundle:
    """Paths to an exported client certificate set."""

    client_cert: Path
    client_key: Path
    root_cert: Optional[Path] = None
    key_password: Optional[str] = None

    def ssl_context(self, *, verify: bool = False) -> ssl.SSLContext:
        """Build the SSL context shared by every connection."""

        context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
        if verify:
            if self.root_cert is None:
                raise CertificateError(
                    f"Server certificate validation requires {ROOT_CERT_FILE} next to the client certificate"
                )
            try:
                context.load_verify_locations(cafile=str(self.root_cert))
            except (OSError, ssl.SSLError) as exc:
                raise CertificateError(f"Unable to load root certificate {self.root_cert}: {exc}") from exc
        else:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE

        try:
            context.load_cert_chain(
                certfile=str(self.client_cert),
                keyfile=str(self.client_key),
                password=self.key_password,
            )
        except (OSError, ssl.SSLError) as exc:
            raise CertificateError(f"Unable to load client certificate {self.client_cert}: {exc}") from exc
        return context


def load_certificates_from_directory(path: Path, *, key_password: str | None = None) -> CertificateBundle:
    """Load ``client.pem``, ``client_key.pem`` and optionally ``root.pem`` from ``path``."""

    directory = Path(path).expanduser()
    if not directory.is_dir():
        raise CertificateError(f"Cannot find certificate directory \"{directory}\".")

    client_cert = directory / CLIENT_CERT_FILE
    client_key = directory / CLIENT_KEY_FILE
    for required in (client_cert, client_key):
        if not required.is_file():
            raise CertificateError(f"Certificate file not found: {required}")

    root_cert = directory / ROOT_CERT_FILE
    return CertificateBundle(
        client_cert=client_cert,
        client_key=client_key,
        root_cert=root_cert if root_cert.is_file() else None,
        key_password=key_password,
    )


def default_certificate_directory() -> Path:
    """Return the location Qlik Sense exports its local certificates to."""

    override = os.getenv(CERT_DIR_ENV)
    if override:
        return Path(override).expanduser()
    program_data = os.getenv("PROGRAMDATA", r"C:\ProgramData")
    return Path(program_data) / _EXPORT_SUBDIR


def load_certificates_from_store(*, key_password: str | None = None) -> CertificateBundle:
    """Load the bundle from the default export location."""

    return load_certificates_from_directory(default_certificate_directory(), key_password=key_password)


__all__ = [
    "CERT_DIR_ENV",
    "CertificateBundle",
    "CertificateError",
    "default_certificate_directory",
    "load_certificates_from_directory",
    "load_certificates_from_store",
]
