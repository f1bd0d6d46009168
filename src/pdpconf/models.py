"""Value types and constants for pdpconf."""

from __future__ import annotations

import re
from enum import Enum
from typing import Union

Leaf = Union[str, int, float, bool, list[str]]
ConfigValue = Union[Leaf, dict[str, "ConfigValue"]]

TLS_V1_3 = "TLSv1.3"
TLS_V1_2 = "TLSv1.2"
TLS_PROTOCOLS = (TLS_V1_3, TLS_V1_2)  # newest first

KEY_STORE_TYPE_PKCS12 = "PKCS12"
KEY_STORE_TYPE_JCEKS = "JCEKS"
KEY_STORE_TYPE_JKS = "JKS"
KEY_STORE_TYPES = (KEY_STORE_TYPE_PKCS12, KEY_STORE_TYPE_JCEKS, KEY_STORE_TYPE_JKS)

SUPPORTED_CIPHERS = (
    "TLS_AES_128_GCM_SHA256",
    "TLS_AES_256_GCM_SHA384",
    "TLS_ECDHE_ECDSA_WITH_AES_256_GCM_SHA384",
    "TLS_ECDHE_ECDSA_WITH_AES_128_GCM_SHA256",
    "TLS_ECDHE_RSA_WITH_AES_256_GCM_SHA384",
    "TLS_ECDHE_RSA_WITH_AES_128_GCM_SHA256",
    "TLS_DHE_RSA_WITH_AES_256_GCM_SHA384",
    "TLS_DHE_RSA_WITH_AES_128_GCM_SHA256",
    "TLS_DHE_DSS_WITH_AES_256_GCM_SHA384",
    "TLS_DHE_DSS_WITH_AES_128_GCM_SHA256",
    "TLS_ECDHE_ECDSA_WITH_AES_256_CBC_SHA384",
    "TLS_ECDHE_ECDSA_WITH_AES_128_CBC_SHA256",
    "TLS_ECDHE_RSA_WITH_AES_256_CBC_SHA384",
    "TLS_ECDHE_RSA_WITH_AES_128_CBC_SHA256",
    "TLS_DHE_RSA_WITH_AES_256_CBC_SHA256",
    "TLS_DHE_RSA_WITH_AES_128_CBC_SHA256",
    "TLS_DHE_DSS_WITH_AES_256_CBC_SHA256",
    "TLS_DHE_DSS_WITH_AES_128_CBC_SHA256",
)
DEFAULT_CIPHERS = frozenset({"TLS_AES_128_GCM_SHA256", "TLS_AES_256_GCM_SHA384"})

_PORT_PLACEHOLDER_RE = re.compile(r"\{PORT:(\d+)}")


class DbmsKind(Enum):
    """Database engines the server can be bootstrapped with."""

    H2 = "org.h2.Driver"
    MARIADB = "org.mariadb.jdbc.Driver"

    @property
    def driver_class_name(self) -> str:
        return self.value

    @property
    def url_scheme(self) -> str:
        return "jdbc:h2:" if self is DbmsKind.H2 else "jdbc:mariadb:"

    @classmethod
    def from_driver_class_name(cls, name: str) -> DbmsKind | None:
        for kind in cls:
            if kind.value == name:
                return kind
        return None


class PasswordStrength(Enum):
    WEAK = "weak"
    MODERATE = "moderate"
    STRONG = "strong"


class KeystoreErrorKind(Enum):
    """Categories of keystore failures, labelled for the operator."""

    CERTIFICATE = "Certificate fault"
    STORE = "Key store fault"
    ALGORITHM = "No such algorithm"
    FILE_NOT_FOUND = "File not found"
    IO = "Error"

    @property
    def label(self) -> str:
        return self.value


def as_str(value: object, default: str = "") -> str:
    if value is None:
        return default
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, dict)):
        return default
    return str(value)


def as_bool(value: object, default: bool = False) -> bool:
    """Coerce a document leaf to a bool.

    Strings are accepted case-insensitively as ``"true"``/``"false"``, the way
    hand-edited YAML frequently quotes them.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    return default


def as_int(value: object, default: int = 0) -> int:
    """Coerce a document leaf to an int.

    Besides ints and numeric strings this understands the ``${PORT:8443}``
    placeholder form used for server ports.
    """
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        match = _PORT_PLACEHOLDER_RE.search(text)
        if match:
            return int(match.group(1))
        try:
            return int(text)
        except ValueError:
            return default
    return default


def as_str_list(value: object, default: list[str] | None = None) -> list[str]:
    """Coerce a list leaf or a comma-joined string to a list of strings."""
    if isinstance(value, list):
        return [str(item).strip() for item in value if str(item).strip()]
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return list(default) if default is not None else []
