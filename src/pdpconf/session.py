"""A setup session: the configuration documents plus one model per section."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol

from pdpconf.endpoint import EndpointSection, http_endpoint, rsocket_endpoint
from pdpconf.sections import AdminUserSection, ApiAuthenticationSection, DbmsSection
from pdpconf.store import ConfigDocumentSet, discover_sources

logger = logging.getLogger(__name__)

PersistResult = tuple[list[Path], list[tuple[Path, str]]]

SECTION_NAMES = ("dbms", "admin", "http", "rsocket", "api-auth")
REQUIRED_FOR_RESTART = ("dbms", "admin", "http", "rsocket")


class _Section(Protocol):
    saved: bool

    def write_to(self, documents: ConfigDocumentSet) -> None: ...


class SetupSession:
    """Everything one operator edits during a setup run.

    The section models are read from *documents* once, when the session is
    created.  Each ``persist_*`` method writes its section back and persists
    every changed document.
    """

    def __init__(self, documents: ConfigDocumentSet, base_dir: Path | None = None) -> None:
        self.documents = documents
        self.base_dir = base_dir
        self.dbms = DbmsSection.from_documents(documents)
        self.admin_user = AdminUserSection.from_documents(documents)
        self.http = http_endpoint(documents, base_dir=base_dir)
        self.rsocket = rsocket_endpoint(documents, base_dir=base_dir)
        self.api_authentication = ApiAuthenticationSection.from_documents(documents)

    @classmethod
    def open(cls, locations: Iterable[str] = (), base_dir: Path | None = None) -> SetupSession:
        """Discover configuration sources and start a session over them."""
        base_dir = base_dir or Path.cwd()
        sources = discover_sources(locations, base_dir)
        logger.debug("Configuration sources: %s", ", ".join(str(s) for s in sources))
        return cls(ConfigDocumentSet(sources), base_dir=base_dir)

    def _persist(self, section: _Section) -> PersistResult:
        section.write_to(self.documents)
        written, failed = self.documents.persist_all()
        section.saved = not failed
        return written, failed

    def persist_dbms_config(self) -> PersistResult:
        return self._persist(self.dbms)

    def persist_admin_user_config(self) -> PersistResult:
        return self._persist(self.admin_user)

    def persist_http_endpoint_config(self) -> PersistResult:
        return self._persist(self.http)

    def persist_rsocket_endpoint_config(self) -> PersistResult:
        return self._persist(self.rsocket)

    def persist_api_authentication_config(self) -> PersistResult:
        return self._persist(self.api_authentication)

    def endpoint(self, name: str) -> EndpointSection:
        if name == "http":
            return self.http
        if name == "rsocket":
            return self.rsocket
        raise ValueError(f"Unknown endpoint {name!r}; expected 'http' or 'rsocket'")

    def _endpoint_persisted(self, endpoint: EndpointSection) -> bool:
        return bool(self.documents.get_str(endpoint.path("address"))) and bool(
            self.documents.get_str(endpoint.path("port"))
        )

    def status(self) -> dict[str, bool]:
        """Whether each section has been set up, keyed by section name."""
        dbms_done = self.dbms.saved or self.documents.exists_at(DbmsSection.URL_PATH)
        admin_done = self.admin_user.saved or (
            self.documents.exists_at(AdminUserSection.USERNAME_PATH)
            and self.documents.exists_at(AdminUserSection.ENCODED_PASSWORD_PATH)
        )
        return {
            "dbms": dbms_done,
            "admin": admin_done,
            "http": self.http.saved or self._endpoint_persisted(self.http),
            "rsocket": self.rsocket.saved or self._endpoint_persisted(self.rsocket),
            "api-auth": self.api_authentication.is_valid_config(),
        }

    def ready_for_restart(self) -> bool:
        status = self.status()
        return all(status[name] for name in REQUIRED_FOR_RESTART)

    def tls_disabled_endpoints(self) -> list[str]:
        """Endpoints whose persisted configuration runs without TLS."""
        return [
            name
            for name, endpoint in (("http", self.http), ("rsocket", self.rsocket))
            if not self.documents.get_bool(endpoint.path("ssl/enabled"))
        ]
