"""Open TLS key stores and list the aliases they contain."""

from __future__ import annotations

import logging
from pathlib import Path

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.serialization import pkcs12

from pdpconf.models import KEY_STORE_TYPE_PKCS12, KEY_STORE_TYPES, KeystoreErrorKind

logger = logging.getLogger(__name__)

FILE_SCHEME = "file:"


class KeystoreError(Exception):
    """Raised when a key store cannot be opened or read."""

    def __init__(self, kind: KeystoreErrorKind, message: str) -> None:
        super().__init__(f"{kind.label}: {message}")
        self.kind = kind


def resolve_location(location: str, base_dir: Path | None = None) -> Path:
    """Turn a key store location (optionally ``file:``-prefixed) into a path."""
    if location.startswith(FILE_SCHEME):
        location = location[len(FILE_SCHEME) :]
    path = Path(location).expanduser()
    if not path.is_absolute() and base_dir is not None:
        path = base_dir / path
    return path


def _pkcs12_aliases(data: bytes, password: str) -> set[str]:
    secret = password.encode("utf-8") if password else None
    try:
        store = pkcs12.load_pkcs12(data, secret)
    except UnsupportedAlgorithm as exc:
        raise KeystoreError(KeystoreErrorKind.ALGORITHM, str(exc)) from exc
    except ValueError as exc:
        raise KeystoreError(
            KeystoreErrorKind.STORE,
            f"could not open the PKCS12 container, wrong password or corrupt file ({exc})",
        ) from exc

    certificates = list(store.additional_certs)
    if store.cert is not None:
        certificates.insert(0, store.cert)
    if not certificates:
        raise KeystoreError(KeystoreErrorKind.CERTIFICATE, "key store contains no certificate")

    return {
        cert.friendly_name.decode("utf-8")
        for cert in certificates
        if cert.friendly_name is not None
    }


def open_keystore(
    location: str,
    store_type: str,
    password: str,
    base_dir: Path | None = None,
) -> set[str]:
    """Open the key store at *location* and return the aliases it holds.

    Args:
        location:   File path, optionally prefixed with ``file:``.
        store_type: One of ``PKCS12``, ``JCEKS`` or ``JKS``.
        password:   Key store password.
        base_dir:   Directory that relative locations are resolved against.

    Raises:
        KeystoreError: Categorised by :class:`~pdpconf.models.KeystoreErrorKind`.
    """
    store_type = store_type.upper() or KEY_STORE_TYPE_PKCS12
    if store_type not in KEY_STORE_TYPES:
        raise KeystoreError(KeystoreErrorKind.STORE, f"{store_type} not found")
    if store_type != KEY_STORE_TYPE_PKCS12:
        raise KeystoreError(
            KeystoreErrorKind.STORE,
            f"{store_type} key stores are not supported, convert the store to PKCS12",
        )

    path = resolve_location(location, base_dir)
    try:
        data = path.read_bytes()
    except FileNotFoundError as exc:
        raise KeystoreError(KeystoreErrorKind.FILE_NOT_FOUND, str(path)) from exc
    except OSError as exc:
        raise KeystoreError(KeystoreErrorKind.IO, str(exc)) from exc

    aliases = _pkcs12_aliases(data, password)
    logger.debug("Opened %s key store %s with aliases %s", store_type, path, sorted(aliases))
    return aliases
