"""Shared pytest fixtures for pdpconf tests."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import yaml
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

KEYSTORE_PASSWORD = "changeit"
KEYSTORE_ALIAS = "mykey"


def _self_signed(key: ec.EllipticCurvePrivateKey) -> x509.Certificate:
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "localhost")])
    now = datetime.now(UTC)
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
        .sign(key, hashes.SHA256())
    )


@pytest.fixture(scope="session")
def server_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture()
def keystore_file(tmp_path: Path, server_key) -> Path:
    """A PKCS12 key store holding one key entry under the alias ``mykey``."""
    data = pkcs12.serialize_key_and_certificates(
        KEYSTORE_ALIAS.encode(),
        server_key,
        _self_signed(server_key),
        None,
        serialization.BestAvailableEncryption(KEYSTORE_PASSWORD.encode()),
    )
    path = tmp_path / "config" / "keystore.p12"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


@pytest.fixture()
def keyless_cert_store(tmp_path: Path, server_key) -> Path:
    """A PKCS12 container with a private key but no certificate."""
    data = pkcs12.serialize_key_and_certificates(
        b"orphan",
        server_key,
        None,
        None,
        serialization.BestAvailableEncryption(KEYSTORE_PASSWORD.encode()),
    )
    path = tmp_path / "keyonly.p12"
    path.write_bytes(data)
    return path


@pytest.fixture()
def write_yaml(tmp_path: Path) -> Callable[[str, dict], Path]:
    """Write a mapping as YAML below *tmp_path* and return the file path."""

    def _write(name: str, data: dict) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
        return path

    return _write


@pytest.fixture()
def read_yaml() -> Callable[[Path], dict]:
    def _read(path: Path) -> dict:
        return yaml.safe_load(path.read_text(encoding="utf-8")) or {}

    return _read


@pytest.fixture()
def application_yml(write_yaml) -> Path:
    """A bootstrap document as an operator would hand-edit it."""
    return write_yaml(
        "config/application.yml",
        {
            "server": {
                "address": "localhost",
                "port": "${PORT:8443}",
                "ssl": {"enabled": False},
            },
            "spring": {
                "datasource": {
                    "driverClassName": "org.h2.Driver",
                    "url": "jdbc:h2:file:~/sapl/db",
                    "username": "sa",
                    "password": "secret",
                }
            },
            "io.sapl": {"server": {"allowBasicAuth": True}},
        },
    )
