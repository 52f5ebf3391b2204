"""Tests for ProxyConfig helpers."""

from geminiproxy.app import create_session
from geminiproxy.config import ProxyConfig


def test_defaults_match_the_documented_endpoints():
    cfg = ProxyConfig()
    assert (cfg.LISTEN_HOST, cfg.LISTEN_PORT) == ("localhost", 8882)
    assert cfg.get_sam_address() == "127.0.0.1:7656"
    assert cfg.SESSION_ID == "GeminiProxy"


def test_session_options_are_strings():
    cfg = ProxyConfig(INBOUND_LENGTH=1, OUTBOUND_QUANTITY=5)
    options = cfg.get_session_options()
    assert options["inbound.length"] == "1"
    assert options["outbound.quantity"] == "5"
    assert options["inbound.backupQuantity"] == "1"
    assert options["SIGNATURE_TYPE"] == "EdDSA_SHA512_Ed25519"
    assert all(isinstance(v, str) for v in options.values())


def test_handshake_options():
    assert ProxyConfig().get_handshake_options() == {"MIN": "", "MAX": ""}
    cfg = ProxyConfig(SAM_MIN_VERSION="3.1", SAM_MAX_VERSION="3.3")
    assert cfg.get_handshake_options() == {"MIN": "3.1", "MAX": "3.3"}


def test_static_identity_needs_both_files():
    assert not ProxyConfig().has_static_identity()
    assert not ProxyConfig(TLS_CERT_FILE="cert.pem").has_static_identity()
    assert ProxyConfig(TLS_CERT_FILE="c.pem", TLS_KEY_FILE="k.pem").has_static_identity()


def test_create_session_uses_config():
    cfg = ProxyConfig(SESSION_ID="Mine", SAM_PORT=7777)
    session = create_session(cfg)
    assert session.nickname == "Mine"
    assert session.sam_port == 7777
    assert not session.started
