"""Network endpoint configuration with TLS and key store validation."""

from __future__ import annotations

import ipaddress
import logging
from collections.abc import Iterable
from pathlib import Path

from pdpconf.keystore import open_keystore
from pdpconf.models import (
    DEFAULT_CIPHERS,
    KEY_STORE_TYPE_PKCS12,
    SUPPORTED_CIPHERS,
    TLS_PROTOCOLS,
    TLS_V1_3,
    as_str_list,
)
from pdpconf.store import ConfigDocumentSet

logger = logging.getLogger(__name__)

DEFAULT_ADDRESS = "localhost"
DEFAULT_KEY_STORE = "file:config/keystore.p12"
MIN_PORT = 1
MAX_PORT = 65535

_PLAIN_PORTS = (80, 8080)
_TLS_PORTS = (443, 8443)


def _names(value: Iterable[str] | str) -> list[str]:
    if isinstance(value, str):
        return as_str_list(value)
    return [str(item).strip() for item in value if str(item).strip()]


def is_valid_address(address: str) -> bool:
    """``localhost`` or an IPv4/IPv6 literal (IPv6 may be bracketed)."""
    if address == DEFAULT_ADDRESS:
        return True
    candidate = address
    if candidate.startswith("[") and candidate.endswith("]"):
        candidate = candidate[1:-1]
        try:
            return isinstance(ipaddress.ip_address(candidate), ipaddress.IPv6Address)
        except ValueError:
            return False
    try:
        ipaddress.ip_address(candidate)
    except ValueError:
        return False
    return True


class EndpointSection:
    """Address, port and TLS settings of one server endpoint.

    The same class serves the HTTP and the RSocket endpoint; only the path
    *prefix*, the default port and the optional transport differ.  Saving is
    only allowed while :meth:`is_valid_config` holds.  With TLS enabled that
    requires a successful :meth:`test_keystore` since the last change to any
    key store field.
    """

    def __init__(
        self,
        prefix: str,
        default_port: int,
        transport: str | None = None,
        base_dir: Path | None = None,
    ) -> None:
        self.prefix = prefix
        self.default_port = default_port
        self.transport = transport
        self.base_dir = base_dir

        self.address = DEFAULT_ADDRESS
        self.port = default_port
        self.saved = False
        self.valid_keystore_config = False

        self._enabled_protocols: set[str] = set()
        self._key_store_type = KEY_STORE_TYPE_PKCS12
        self._key_store = DEFAULT_KEY_STORE
        self._key_store_password = ""
        self._key_password = ""
        self._key_alias = ""
        self._ciphers: set[str] = set(DEFAULT_CIPHERS)

    def path(self, name: str) -> str:
        return f"{self.prefix}{name}"

    @classmethod
    def from_documents(
        cls,
        documents: ConfigDocumentSet,
        prefix: str,
        default_port: int,
        transport: str | None = None,
        base_dir: Path | None = None,
    ) -> EndpointSection:
        endpoint = cls(prefix, default_port, transport=transport, base_dir=base_dir)
        endpoint.address = documents.get_str(endpoint.path("address"), DEFAULT_ADDRESS)

        port = documents.get_int(endpoint.path("port"), 0)
        if port > 0:
            endpoint.port = port

        if documents.get_bool(endpoint.path("ssl/enabled")):
            protocols = documents.get_str_list(endpoint.path("ssl/enabled-protocols"))
            known = [p for p in protocols if p in TLS_PROTOCOLS]
            endpoint.enabled_protocols = known or [TLS_V1_3]
            endpoint.key_store_type = documents.get_str(endpoint.path("ssl/key-store-type"))
            endpoint.key_store = documents.get_str(endpoint.path("ssl/key-store"), DEFAULT_KEY_STORE)
            endpoint.key_password = documents.get_str(endpoint.path("ssl/key-password"))
            endpoint.key_store_password = documents.get_str(
                endpoint.path("ssl/key-store-password")
            )
            endpoint.key_alias = documents.get_str(endpoint.path("ssl/key-alias"))

            if documents.exists_at(endpoint.path("ssl/ciphers")):
                ciphers = documents.get_str_list(endpoint.path("ssl/ciphers"))
                unknown = [c for c in ciphers if c not in SUPPORTED_CIPHERS]
                if unknown:
                    logger.warning("Ignoring unsupported cipher suites %s", ", ".join(unknown))
                endpoint.ciphers = [c for c in ciphers if c in SUPPORTED_CIPHERS]
        return endpoint

    # -- TLS protocols ----------------------------------------------------

    @property
    def enabled_protocols(self) -> set[str]:
        return set(self._enabled_protocols)

    @enabled_protocols.setter
    def enabled_protocols(self, protocols: Iterable[str] | str) -> None:
        names = _names(protocols)
        unknown = [p for p in names if p not in TLS_PROTOCOLS]
        if unknown:
            raise ValueError(f"Unsupported TLS protocol(s): {', '.join(unknown)}")
        self._enabled_protocols = set(names)

    @property
    def tls_enabled(self) -> bool:
        return bool(self._enabled_protocols)

    def disable_tls(self) -> None:
        self._enabled_protocols = set()

    @property
    def primary_protocol(self) -> str | None:
        for protocol in TLS_PROTOCOLS:
            if protocol in self._enabled_protocols:
                return protocol
        return None

    def protocols_newest_first(self) -> list[str]:
        return [p for p in TLS_PROTOCOLS if p in self._enabled_protocols]

    # -- key store fields; every change drops the cached keystore check ----

    def _update_keystore_field(self, attr: str, value: str) -> None:
        if getattr(self, attr) != value:
            self.valid_keystore_config = False
            setattr(self, attr, value)

    @property
    def key_store_type(self) -> str:
        return self._key_store_type

    @key_store_type.setter
    def key_store_type(self, value: str) -> None:
        self._update_keystore_field("_key_store_type", value or KEY_STORE_TYPE_PKCS12)

    @property
    def key_store(self) -> str:
        return self._key_store

    @key_store.setter
    def key_store(self, value: str) -> None:
        self._update_keystore_field("_key_store", value)

    @property
    def key_store_password(self) -> str:
        return self._key_store_password

    @key_store_password.setter
    def key_store_password(self, value: str) -> None:
        self._update_keystore_field("_key_store_password", value)

    @property
    def key_password(self) -> str:
        return self._key_password

    @key_password.setter
    def key_password(self, value: str) -> None:
        self._update_keystore_field("_key_password", value)

    @property
    def key_alias(self) -> str:
        return self._key_alias

    @key_alias.setter
    def key_alias(self, value: str) -> None:
        self._update_keystore_field("_key_alias", value)

    # -- cipher suites ------------------------------------------------------

    @property
    def ciphers(self) -> set[str]:
        return set(self._ciphers)

    @ciphers.setter
    def ciphers(self, value: Iterable[str] | str) -> None:
        names = _names(value)
        unknown = [c for c in names if c not in SUPPORTED_CIPHERS]
        if unknown:
            raise ValueError(f"Unsupported cipher suite(s): {', '.join(unknown)}")
        self._ciphers = set(names)

    # -- validation -------------------------------------------------------

    def is_valid_address(self) -> bool:
        return is_valid_address(self.address)

    def is_valid_port(self) -> bool:
        return MIN_PORT <= self.port <= MAX_PORT

    def is_valid_protocol_config(self) -> bool:
        if self.tls_enabled:
            return self.valid_keystore_config and bool(self._ciphers)
        return True

    def is_valid_config(self) -> bool:
        return self.is_valid_address() and self.is_valid_port() and self.is_valid_protocol_config()

    def port_matches_protocol(self) -> bool:
        """False for well-known plain HTTP ports with TLS, or TLS ports without it."""
        if self.tls_enabled:
            return self.port not in _PLAIN_PORTS
        return self.port not in _TLS_PORTS

    def problems(self) -> list[str]:
        """Operator-facing reasons why this endpoint cannot be saved yet."""
        problems: list[str] = []
        if not self.is_valid_address():
            problems.append(f"Invalid address {self.address!r}: use localhost or an IP address")
        if not self.is_valid_port():
            problems.append(f"Invalid port {self.port}: must be between {MIN_PORT} and {MAX_PORT}")
        if self.tls_enabled:
            if not self.valid_keystore_config:
                problems.append("Key store settings have not been validated")
            if not self._ciphers:
                problems.append("At least one cipher suite must be selected")
        return problems

    def test_keystore(self) -> bool:
        """Open the configured key store and check that the key alias exists.

        Returns:
            Whether the alias was found; the result is cached in
            :attr:`valid_keystore_config`.

        Raises:
            KeystoreError: When the store cannot be opened.  The cached result
                is reset first, so the endpoint stays unsavable.
        """
        self.valid_keystore_config = False
        aliases = open_keystore(
            self._key_store,
            self._key_store_type,
            self._key_store_password,
            base_dir=self.base_dir,
        )
        if self._key_alias and not aliases:
            logger.info("Key store %s holds no named entries", self._key_store)

        # PKCS12 aliases compare case-insensitively
        wanted = self._key_alias.lower()
        self.valid_keystore_config = bool(wanted) and any(a.lower() == wanted for a in aliases)
        return self.valid_keystore_config

    # -- persistence --------------------------------------------------------

    def write_to(self, documents: ConfigDocumentSet) -> None:
        documents.set_at(self.path("port"), f"${{PORT:{self.port}}}")
        documents.set_at(self.path("address"), self.address)
        if self.transport is not None:
            documents.set_at(self.path("transport"), self.transport)

        documents.set_at(self.path("ssl/enabled"), self.tls_enabled)
        if not self.tls_enabled:
            return
        documents.set_at(self.path("ssl/key-store-type"), self._key_store_type)
        documents.set_at(self.path("ssl/key-store"), self._key_store)
        documents.set_at(self.path("ssl/key-store-password"), self._key_store_password)
        documents.set_at(self.path("ssl/key-password"), self._key_password)
        documents.set_at(self.path("ssl/key-alias"), self._key_alias)
        documents.set_at(self.path("ssl/ciphers"), sorted(self._ciphers))
        documents.set_at(self.path("ssl/enabled-protocols"), self.protocols_newest_first())
        documents.set_at(self.path("ssl/protocol"), self.primary_protocol)


HTTP_PREFIX = "server/"
RSOCKET_PREFIX = "spring.rsocket.server/"
HTTP_DEFAULT_PORT = 8443
RSOCKET_DEFAULT_PORT = 7000


def http_endpoint(documents: ConfigDocumentSet, base_dir: Path | None = None) -> EndpointSection:
    return EndpointSection.from_documents(
        documents, HTTP_PREFIX, HTTP_DEFAULT_PORT, base_dir=base_dir
    )


def rsocket_endpoint(documents: ConfigDocumentSet, base_dir: Path | None = None) -> EndpointSection:
    return EndpointSection.from_documents(
        documents, RSOCKET_PREFIX, RSOCKET_DEFAULT_PORT, transport="tcp", base_dir=base_dir
    )
