"""
TLS identity and context utilities.

This module provides functions for generating or loading the proxy's
self-signed certificate and for building the two independent TLS contexts:
the listener context (facing Gemini clients) and the outbound context
(facing the remote capsule over an I2P stream).
"""

import datetime
import os
import ssl
import tempfile
from dataclasses import dataclass

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from geminiproxy.utils.logger import get_logger

log = get_logger(__name__)

CERT_COMMON_NAME = "localhost"
CERT_ORGANIZATION = "Local gemini proxy for I2P"
CERT_EMAIL = "webmaster@localhost"

MIN_TLS_VERSION = ssl.TLSVersion.TLSv1_2


# =============================================================================
# Identity
# =============================================================================


@dataclass(frozen=True)
class TlsIdentity:
    """Certificate and private key, both PEM encoded."""

    cert_pem: bytes
    key_pem: bytes

    @property
    def certificate(self) -> x509.Certificate:
        return x509.load_pem_x509_certificate(self.cert_pem)

    def fingerprint(self) -> str:
        """SHA-256 fingerprint, colon separated upper-case hex."""
        return self.certificate.fingerprint(hashes.SHA256()).hex(":").upper()

    def write(self, cert_path: str, key_path: str) -> None:
        """
        Write the identity as two PEM files.

        The key file is created with mode 0600.
        """
        cert_path = os.path.expanduser(cert_path)
        key_path = os.path.expanduser(key_path)

        with open(cert_path, "wb") as f:
            f.write(self.cert_pem)

        fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(self.key_pem)

        log.debug(f"Wrote certificate to {cert_path} and key to {key_path}")


def generate_identity(
    key_size: int = 4096,
    validity_days: int = 30,
    common_name: str = CERT_COMMON_NAME,
) -> TlsIdentity:
    """
    Generate a fresh self-signed RSA identity.

    Args:
        key_size: RSA modulus size in bits.
        validity_days: Certificate lifetime starting now.
        common_name: Subject/issuer CN.

    Returns:
        New TlsIdentity. Clients have to re-trust it after every restart
        unless it is written to disk and loaded again.
    """
    log.debug(f"Generating {key_size}-bit RSA key...")
    key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)

    name = x509.Name(
        [
            x509.NameAttribute(NameOID.COMMON_NAME, common_name),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, CERT_ORGANIZATION),
            x509.NameAttribute(NameOID.EMAIL_ADDRESS, CERT_EMAIL),
        ]
    )
    not_before = datetime.datetime.now(datetime.timezone.utc)
    not_after = not_before + datetime.timedelta(days=validity_days)

    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(1)
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(
            x509.SubjectKeyIdentifier.from_public_key(key.public_key()),
            critical=False,
        )
        .sign(key, hashes.SHA512())
    )

    return TlsIdentity(
        cert_pem=cert.public_bytes(serialization.Encoding.PEM),
        key_pem=key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ),
    )


def load_identity(cert_path: str, key_path: str) -> TlsIdentity:
    """
    Read a certificate/key pair from PEM files.

    Raises:
        FileNotFoundError: If either file does not exist.
        ValueError: If either file is not valid PEM.
    """
    cert_path = os.path.expanduser(cert_path)
    key_path = os.path.expanduser(key_path)

    try:
        with open(cert_path, "rb") as f:
            cert_pem = f.read()
        with open(key_path, "rb") as f:
            key_pem = f.read()
    except FileNotFoundError as e:
        raise FileNotFoundError(f"TLS identity file not found: '{e.filename}'") from None

    # Validate both before handing them to ssl
    x509.load_pem_x509_certificate(cert_pem)
    serialization.load_pem_private_key(key_pem, password=None)

    return TlsIdentity(cert_pem=cert_pem, key_pem=key_pem)


# =============================================================================
# Client Certificate Policy
# =============================================================================


class AcceptAnyClientCertificate:
    """
    Client certificate trust policy that admits every client.

    There is no client-certificate trust model: any certificate, self-signed
    or otherwise, and no certificate at all, are all accepted. Python's ssl
    module has no verification callback, so the context is configured not to
    enforce verification and ``verify()`` is the explicit decision point.
    """

    name = "accept-any"

    def configure(self, context: ssl.SSLContext) -> None:
        context.verify_mode = ssl.CERT_NONE

    def verify(self, peer_cert: bytes | None) -> bool:
        return True


# =============================================================================
# Contexts
# =============================================================================


def build_server_context(
    identity: TlsIdentity,
    client_cert_policy: AcceptAnyClientCertificate | None = None,
) -> ssl.SSLContext:
    """Build the listener-side context (TLS 1.2 minimum)."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.minimum_version = MIN_TLS_VERSION

    # load_cert_chain only accepts paths
    with tempfile.TemporaryDirectory(prefix="geminiproxy-") as tmp_dir:
        cert_path = os.path.join(tmp_dir, "cert.pem")
        key_path = os.path.join(tmp_dir, "key.pem")
        identity.write(cert_path, key_path)
        context.load_cert_chain(cert_path, key_path)

    (client_cert_policy or AcceptAnyClientCertificate()).configure(context)
    return context


def build_client_context() -> ssl.SSLContext:
    """
    Build the outbound context used over I2P streams.

    TLS 1.2 minimum, no certificate or hostname verification.
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.minimum_version = MIN_TLS_VERSION
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context
