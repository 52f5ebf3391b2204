"""Tests for the TLS identity and the two TLS contexts."""

import os
import ssl
import stat

import pytest
from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from fakes import capsule_identity
from geminiproxy.utils.tls import (
    AcceptAnyClientCertificate,
    build_client_context,
    build_server_context,
    load_identity,
)


class TestIdentity:
    """Generated self-signed certificate."""

    def test_subject_and_issuer(self):
        cert = capsule_identity().certificate
        assert cert.subject == cert.issuer
        assert cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value == "localhost"
        org = cert.subject.get_attributes_for_oid(NameOID.ORGANIZATION_NAME)[0].value
        assert org == "Local gemini proxy for I2P"
        email = cert.subject.get_attributes_for_oid(NameOID.EMAIL_ADDRESS)[0].value
        assert email == "webmaster@localhost"

    def test_signature_and_key(self):
        cert = capsule_identity().certificate
        assert cert.signature_hash_algorithm.name == "sha512"
        assert cert.serial_number == 1
        public_key = cert.public_key()
        assert isinstance(public_key, rsa.RSAPublicKey)
        assert public_key.key_size == 2048

    def test_extensions(self):
        cert = capsule_identity().certificate
        usage = cert.extensions.get_extension_for_class(x509.KeyUsage)
        assert usage.critical
        assert usage.value.digital_signature
        assert not usage.value.key_cert_sign
        cert.extensions.get_extension_for_class(x509.SubjectKeyIdentifier)

    def test_validity_window(self):
        cert = capsule_identity().certificate
        lifetime = cert.not_valid_after_utc - cert.not_valid_before_utc
        assert lifetime.days == 1

    def test_fingerprint_format(self):
        fingerprint = capsule_identity().fingerprint()
        parts = fingerprint.split(":")
        assert len(parts) == 32
        assert fingerprint == fingerprint.upper()


class TestIdentityFiles:
    """Persisting and loading the identity."""

    def test_write_then_load(self, tmp_path):
        identity = capsule_identity()
        cert_path = tmp_path / "cert.pem"
        key_path = tmp_path / "key.pem"
        identity.write(str(cert_path), str(key_path))

        assert stat.S_IMODE(os.stat(key_path).st_mode) == 0o600
        loaded = load_identity(str(cert_path), str(key_path))
        assert loaded == identity

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="not found"):
            load_identity(str(tmp_path / "nope.pem"), str(tmp_path / "nope.key"))

    def test_garbage_file(self, tmp_path):
        cert_path = tmp_path / "cert.pem"
        key_path = tmp_path / "key.pem"
        cert_path.write_bytes(b"not a certificate")
        key_path.write_bytes(capsule_identity().key_pem)
        with pytest.raises(ValueError):
            load_identity(str(cert_path), str(key_path))


class TestContexts:
    """Listener and outbound contexts."""

    def test_server_context(self):
        context = build_server_context(capsule_identity())
        assert context.minimum_version == ssl.TLSVersion.TLSv1_2
        assert context.verify_mode == ssl.CERT_NONE

    def test_client_context_does_not_verify(self):
        context = build_client_context()
        assert context.minimum_version == ssl.TLSVersion.TLSv1_2
        assert not context.check_hostname
        assert context.verify_mode == ssl.CERT_NONE

    @pytest.mark.parametrize("peer_cert", [None, b"", capsule_identity().cert_pem])
    def test_accept_any_policy(self, peer_cert):
        assert AcceptAnyClientCertificate().verify(peer_cert)
