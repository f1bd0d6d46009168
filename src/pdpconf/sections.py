"""Typed views over the database, admin account and API authentication settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from argon2 import PasswordHasher

from pdpconf.models import DbmsKind, PasswordStrength
from pdpconf.store import ConfigDocumentSet

logger = logging.getLogger(__name__)

# Argon2id parameters matching Spring Security 5.8 defaults, so the server
# can verify the hash it reads back.
_PASSWORD_HASHER = PasswordHasher(
    time_cost=2,
    memory_cost=16384,
    parallelism=1,
    hash_len=32,
    salt_len=16,
)

_DEFAULT_URLS = {
    DbmsKind.H2: "jdbc:h2:file:~/sapl/db",
    DbmsKind.MARIADB: "jdbc:mariadb://127.17.0.2:3306/saplserver",
}


def default_url(kind: DbmsKind) -> str:
    """Return the default JDBC connection URL for *kind*."""
    return _DEFAULT_URLS[kind]


def password_strength(password: str) -> PasswordStrength:
    if len(password) > 9:
        return PasswordStrength.STRONG
    if len(password) > 5:
        return PasswordStrength.MODERATE
    return PasswordStrength.WEAK


def encode_password(password: str) -> str:
    """Hash *password* with a fresh salt; the result never contains the plaintext."""
    return _PASSWORD_HASHER.hash(password)


class DbmsSection:
    DRIVER_CLASS_NAME_PATH = "spring/datasource/driverClassName"
    URL_PATH = "spring/datasource/url"
    USERNAME_PATH = "spring/datasource/username"
    PASSWORD_PATH = "spring/datasource/password"

    def __init__(self) -> None:
        self._kind = DbmsKind.H2
        self.url = ""
        self.username = ""
        self.password = ""
        self.saved = False

    @classmethod
    def from_documents(cls, documents: ConfigDocumentSet) -> DbmsSection:
        section = cls()
        driver = documents.get_str(cls.DRIVER_CLASS_NAME_PATH, DbmsKind.H2.driver_class_name)
        kind = DbmsKind.from_driver_class_name(driver)
        if kind is None:
            logger.warning("Unknown JDBC driver %r, falling back to %s", driver, DbmsKind.H2.name)
            kind = DbmsKind.H2
        section.url = documents.get_str(cls.URL_PATH)
        section.kind = kind
        section.username = documents.get_str(cls.USERNAME_PATH)
        section.password = documents.get_str(cls.PASSWORD_PATH)
        return section

    @property
    def kind(self) -> DbmsKind:
        return self._kind

    @kind.setter
    def kind(self, kind: DbmsKind) -> None:
        # a URL that is still the previous engine's default was never typed in
        if not self.url or self.url == default_url(self._kind):
            self.url = default_url(kind)
        self._kind = kind

    @property
    def driver_class_name(self) -> str:
        return self._kind.driver_class_name

    def is_valid_config(self) -> bool:
        return bool(self.url) and self.url.startswith(self._kind.url_scheme)

    def write_to(self, documents: ConfigDocumentSet) -> None:
        documents.set_at(self.DRIVER_CLASS_NAME_PATH, self.driver_class_name)
        documents.set_at(self.URL_PATH, self.url)
        documents.set_at(self.USERNAME_PATH, self.username)
        documents.set_at(self.PASSWORD_PATH, self.password)


@dataclass
class AdminUserSection:
    """The initial administrator account.

    Only the username and a salted hash of the password are ever written;
    ``password`` and ``password_repeat`` live in memory for the session.
    """

    USERNAME_PATH = "io.sapl/server/accesscontrol/admin-username"
    ENCODED_PASSWORD_PATH = "io.sapl/server/accesscontrol/encoded-admin-password"

    username: str = ""
    password: str = field(default="", repr=False)
    password_repeat: str = field(default="", repr=False)
    saved: bool = False

    @classmethod
    def from_documents(cls, documents: ConfigDocumentSet) -> AdminUserSection:
        return cls(documents.get_str(cls.USERNAME_PATH))

    def password_strength(self) -> PasswordStrength:
        return password_strength(self.password)

    def is_valid_config(self) -> bool:
        return bool(self.username) and self.password == self.password_repeat

    def encoded_password(self) -> str:
        return encode_password(self.password)

    def write_to(self, documents: ConfigDocumentSet) -> None:
        documents.set_at(self.USERNAME_PATH, self.username)
        documents.set_at(self.ENCODED_PASSWORD_PATH, self.encoded_password())


@dataclass
class ApiAuthenticationSection:
    BASIC_AUTH_PATH = "io.sapl/server/allowBasicAuth"
    API_KEY_AUTH_PATH = "io.sapl/server/allowApiKeyAuth"
    API_KEY_HEADER_NAME_PATH = "io.sapl/server/apiKeyHeaderName"
    API_KEY_CACHING_ENABLED_PATH = "io.sapl/server/apiKeyCaching/enabled"
    API_KEY_CACHING_EXPIRE_PATH = "io.sapl/server/apiKeyCaching/expire"
    API_KEY_CACHING_MAX_SIZE_PATH = "io.sapl/server/apiKeyCaching/maxSize"

    DEFAULT_CACHING_EXPIRE = 300
    DEFAULT_CACHING_MAX_SIZE = 10000

    basic_auth_enabled: bool = False
    api_key_auth_enabled: bool = False
    api_key_header_name: str = ""
    api_key_caching_enabled: bool = False
    api_key_caching_expire: int = DEFAULT_CACHING_EXPIRE
    api_key_caching_max_size: int = DEFAULT_CACHING_MAX_SIZE
    saved: bool = False

    @classmethod
    def from_documents(cls, documents: ConfigDocumentSet) -> ApiAuthenticationSection:
        section = cls()
        section.basic_auth_enabled = documents.get_bool(cls.BASIC_AUTH_PATH)
        section.api_key_auth_enabled = documents.get_bool(cls.API_KEY_AUTH_PATH)
        section.api_key_header_name = documents.get_str(cls.API_KEY_HEADER_NAME_PATH)
        section.api_key_caching_enabled = documents.get_bool(cls.API_KEY_CACHING_ENABLED_PATH)
        section.api_key_caching_expire = documents.get_int(
            cls.API_KEY_CACHING_EXPIRE_PATH, cls.DEFAULT_CACHING_EXPIRE
        )
        section.api_key_caching_max_size = documents.get_int(
            cls.API_KEY_CACHING_MAX_SIZE_PATH, cls.DEFAULT_CACHING_MAX_SIZE
        )
        return section

    def is_valid_config(self) -> bool:
        if not self.api_key_auth_enabled:
            return True
        if not self.api_key_header_name:
            return False
        if self.api_key_caching_enabled:
            return self.api_key_caching_expire > 0 and self.api_key_caching_max_size > 0
        return True

    def write_to(self, documents: ConfigDocumentSet) -> None:
        documents.set_at(self.BASIC_AUTH_PATH, self.basic_auth_enabled)
        documents.set_at(self.API_KEY_AUTH_PATH, self.api_key_auth_enabled)
        documents.set_at(self.API_KEY_HEADER_NAME_PATH, self.api_key_header_name)
        documents.set_at(self.API_KEY_CACHING_ENABLED_PATH, self.api_key_caching_enabled)
        documents.set_at(self.API_KEY_CACHING_EXPIRE_PATH, self.api_key_caching_expire)
        documents.set_at(self.API_KEY_CACHING_MAX_SIZE_PATH, self.api_key_caching_max_size)
