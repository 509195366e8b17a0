"""
Self-signed TLS material for the Keycloak HTTPS listener.

Key and certificate are produced by openssl in a private temporary directory
that is removed before returning; only the PEM text leaves this module.
"""

import logging
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from keycloak_e2e.constants import TLS_COMMON_NAME, TLS_KEY_BITS, TLS_VALIDITY_DAYS
from keycloak_e2e.utils.commands import CommandRunner, run_command

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TLSMaterial:
    """PEM encoded certificate and private key."""

    cert_pem: str
    key_pem: str = field(repr=False)


def generate_self_signed_certificate(
    common_name: str = TLS_COMMON_NAME,
    days: int = TLS_VALIDITY_DAYS,
    key_bits: int = TLS_KEY_BITS,
    runner: CommandRunner = run_command,
) -> TLSMaterial:
    """
    Generate a self-signed certificate with openssl.

    Args:
        common_name: Certificate subject CN
        days: Validity period in days
        key_bits: RSA key size
        runner: Command runner

    Returns:
        The generated certificate and key

    Raises:
        CommandError: If openssl fails
    """
    logger.info(f"Generating self-signed TLS certificate for CN={common_name}")

    with tempfile.TemporaryDirectory(prefix="keycloak-tls-") as tmp:
        key_path = Path(tmp) / "tls.key"
        cert_path = Path(tmp) / "tls.crt"
        runner(
            [
                "openssl",
                "req",
                "-x509",
                "-nodes",
                "-days",
                str(days),
                "-newkey",
                f"rsa:{key_bits}",
                "-keyout",
                str(key_path),
                "-out",
                str(cert_path),
                "-subj",
                f"/CN={common_name}",
            ],
            stage="tls-secret",
        )
        return TLSMaterial(
            cert_pem=cert_path.read_text(), key_pem=key_path.read_text()
        )
