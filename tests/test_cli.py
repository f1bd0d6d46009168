"""Tests for pdpconf.cli (Click commands via CliRunner)."""

from __future__ import annotations

import json
import logging
from unittest.mock import patch

import pytest
from argon2 import PasswordHasher
from click.testing import CliRunner

from pdpconf import __version__
from pdpconf.cli import main
from pdpconf.document import SourceWriteError

from .conftest import KEYSTORE_ALIAS, KEYSTORE_PASSWORD


@pytest.fixture()
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def _reset_package_logger():
    yield
    logger = logging.getLogger("pdpconf")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


@pytest.fixture()
def invoke(runner, tmp_path):
    """Run the CLI with *tmp_path* as the base directory."""

    def _invoke(*args: str, **kwargs):
        return runner.invoke(main, ["--base-dir", str(tmp_path), *args], **kwargs)

    return _invoke


@pytest.fixture()
def config_file(tmp_path):
    return tmp_path / "config" / "application.yml"


class TestMainCommand:
    def test_help(self, runner):
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "Usage:" in result.output

    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_does_not_touch_files(self, runner, tmp_path):
        runner.invoke(main, ["--base-dir", str(tmp_path), "status", "--help"])
        assert list(tmp_path.iterdir()) == []

    def test_config_option_selects_file(self, runner, write_yaml):
        source = write_yaml("custom.yml", {"server": {"address": "10.0.0.1"}})
        result = runner.invoke(main, ["-c", str(source), "get", "server/address"])
        assert result.exit_code == 0
        assert result.output.strip() == "10.0.0.1"

    def test_config_location_from_environment(self, runner, write_yaml):
        source = write_yaml("env.yml", {"server": {"address": "10.0.0.2"}})
        result = runner.invoke(
            main, ["get", "server/address"], env={"PDPCONF_CONFIG_LOCATION": str(source)}
        )
        assert result.exit_code == 0
        assert result.output.strip() == "10.0.0.2"


class TestShowCommand:
    def test_tree_output(self, invoke, application_yml):
        result = invoke("show")
        assert result.exit_code == 0
        assert "datasource" in result.output
        assert "localhost" in result.output

    def test_tree_redacts_passwords(self, invoke, application_yml):
        result = invoke("show")
        assert "[redacted]" in result.output
        assert "  secret" not in result.output

    def test_hide_values(self, invoke, application_yml):
        result = invoke("show", "--hide-values")
        assert result.exit_code == 0
        assert "localhost" not in result.output

    def test_filter(self, invoke, application_yml):
        result = invoke("show", "--filter", "spring/*")
        assert result.exit_code == 0
        assert "spring/datasource/url" in result.output
        assert "server/address" not in result.output

    def test_json_output(self, invoke, application_yml):
        result = invoke("show", "--output", "json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        paths = {item["path"]: item for item in data}
        assert paths["server/port"]["value"] == "${PORT:8443}"
        assert paths["server/port"]["source"] == str(application_yml)
        assert paths["spring/datasource/password"]["value"] == "***REDACTED***"

    def test_json_includes_secrets_when_flagged(self, invoke, application_yml):
        result = invoke("show", "--output", "json", "--include-secrets")
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        passwords = [item for item in data if item["path"] == "spring/datasource/password"]
        assert passwords[0]["value"] == "secret"
        assert "WARNING" in result.stderr

    def test_first_document_wins(self, runner, write_yaml):
        a = write_yaml("a.yml", {"server": {"port": 1}})
        b = write_yaml("b.yml", {"server": {"port": 2, "address": "::1"}})
        result = runner.invoke(main, ["-c", f"{a},{b}", "show", "--output", "json"])
        assert result.exit_code == 0
        data = {item["path"]: item for item in json.loads(result.output)}
        assert data["server/port"]["value"] == 1
        assert data["server/address"]["source"] == str(b)

    def test_missing_file_shows_empty_document(self, invoke, config_file):
        result = invoke("show")
        assert result.exit_code == 0
        assert "(empty)" in result.output
        assert not config_file.exists()


class TestGetSetCommands:
    def test_get_string(self, invoke, application_yml):
        result = invoke("get", "server/port")
        assert result.exit_code == 0
        assert result.output.strip() == "${PORT:8443}"

    def test_get_boolean_as_json(self, invoke, application_yml):
        result = invoke("get", "server/ssl/enabled")
        assert result.output.strip() == "false"

    def test_get_missing_path(self, invoke, application_yml):
        result = invoke("get", "server/nothing")
        assert result.exit_code == 1
        assert "is not set" in result.output

    def test_set_then_get(self, invoke, config_file, read_yaml):
        result = invoke("set", "server/port", "9443")
        assert result.exit_code == 0
        assert "Saved server/port" in result.output
        assert read_yaml(config_file) == {"server": {"port": 9443}}

    def test_set_list(self, invoke, config_file, read_yaml):
        result = invoke("set", "server/ssl/enabled-protocols", "[TLSv1.3, TLSv1.2]")
        assert result.exit_code == 0
        assert read_yaml(config_file)["server"]["ssl"]["enabled-protocols"] == [
            "TLSv1.3",
            "TLSv1.2",
        ]

    def test_set_unchanged(self, invoke, application_yml):
        result = invoke("set", "server/address", "localhost")
        assert result.exit_code == 0
        assert "unchanged" in result.output

    def test_set_rejects_mapping(self, invoke):
        result = invoke("set", "server", "{port: 1}")
        assert result.exit_code == 2

    def test_set_over_section_aborts(self, invoke, application_yml):
        result = invoke("set", "server/ssl", "x")
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_write_failure_exits_nonzero(self, invoke, config_file):
        error = SourceWriteError(config_file, "disk full")
        with patch("pdpconf.document.PathDocument.persist", side_effect=error):
            result = invoke("set", "server/port", "9443")
        assert result.exit_code == 1
        assert "Failed to write 1 file(s)" in result.output


class TestStatusCommand:
    def test_fresh_setup(self, invoke):
        result = invoke("status")
        assert result.exit_code == 0
        assert "missing" in result.output
        assert "Setup incomplete." in result.output

    def test_json(self, invoke, application_yml):
        result = invoke("status", "--output", "json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["sections"]["dbms"] is True
        assert data["sections"]["admin"] is False
        assert data["ready_for_restart"] is False
        assert data["tls_disabled"] == ["http", "rsocket"]

    def test_complete_setup(self, invoke):
        assert invoke("dbms", "--kind", "h2").exit_code == 0
        assert (
            invoke(
                "admin", "--username", "admin", "--password", "pw", "--password-repeat", "pw"
            ).exit_code
            == 0
        )
        assert invoke("endpoint", "http", "--no-tls").exit_code == 0
        assert invoke("endpoint", "rsocket", "--no-tls").exit_code == 0

        result = invoke("status")
        assert "Setup complete." in result.output
        assert "TLS disabled" in result.output


class TestDbmsCommand:
    def test_defaults_for_kind(self, invoke, config_file, read_yaml):
        result = invoke("dbms", "--kind", "mariadb", "--username", "sapl", "--password", "pw")
        assert result.exit_code == 0
        assert "Saved database configuration" in result.output
        datasource = read_yaml(config_file)["spring"]["datasource"]
        assert datasource["driverClassName"] == "org.mariadb.jdbc.Driver"
        assert datasource["url"] == "jdbc:mariadb://127.17.0.2:3306/saplserver"
        assert datasource["username"] == "sapl"

    def test_explicit_url_kept(self, invoke, config_file, read_yaml):
        url = "jdbc:mariadb://db.internal:3306/pdp"
        result = invoke("dbms", "--kind", "mariadb", "--url", url)
        assert result.exit_code == 0
        assert read_yaml(config_file)["spring"]["datasource"]["url"] == url

    def test_mismatched_url_aborts(self, invoke, config_file):
        result = invoke("dbms", "--kind", "mariadb", "--url", "jdbc:h2:mem:test")
        assert result.exit_code == 1
        assert "does not match" in result.output
        assert not config_file.exists()


class TestAdminCommand:
    def test_stores_hash_only(self, invoke, config_file, read_yaml):
        result = invoke(
            "admin",
            "--username",
            "admin",
            "--password",
            "a-long-password",
            "--password-repeat",
            "a-long-password",
        )
        assert result.exit_code == 0
        assert "strong" in result.output
        assert "a-long-password" not in config_file.read_text(encoding="utf-8")
        access = read_yaml(config_file)["io.sapl"]["server"]["accesscontrol"]
        assert PasswordHasher().verify(access["encoded-admin-password"], "a-long-password")

    def test_prompts_for_password(self, invoke, config_file):
        result = invoke("admin", "--username", "admin", input="secret1\nsecret1\n")
        assert result.exit_code == 0
        assert "moderate" in result.output
        assert config_file.exists()

    def test_mismatch_aborts(self, invoke, config_file):
        result = invoke(
            "admin", "--username", "admin", "--password", "one", "--password-repeat", "two"
        )
        assert result.exit_code == 1
        assert "Passwords do not match." in result.output
        assert not config_file.exists()

    def test_username_required(self, invoke):
        result = invoke("admin", "--password", "pw", "--password-repeat", "pw")
        assert result.exit_code == 1
        assert "Username must not be empty." in result.output


class TestEndpointCommand:
    def test_plain_endpoint(self, invoke, config_file, read_yaml):
        result = invoke("endpoint", "rsocket", "--port", "7000", "--no-tls")
        assert result.exit_code == 0
        assert "TLS is disabled" in result.output
        rsocket = read_yaml(config_file)["spring.rsocket.server"]
        assert rsocket["port"] == "${PORT:7000}"
        assert rsocket["ssl"] == {"enabled": False}

    def test_tls_endpoint(self, invoke, config_file, read_yaml, keystore_file):
        result = invoke(
            "endpoint",
            "http",
            "--address",
            "0.0.0.0",
            "--protocol",
            "TLSv1.3",
            "--key-store",
            "file:config/keystore.p12",
            "--key-store-password",
            KEYSTORE_PASSWORD,
            "--key-alias",
            KEYSTORE_ALIAS,
        )
        assert result.exit_code == 0, result.output
        assert "Key store configuration is valid." in result.output
        ssl = read_yaml(config_file)["server"]["ssl"]
        assert ssl["enabled"] is True
        assert ssl["protocol"] == "TLSv1.3"
        assert ssl["key-alias"] == KEYSTORE_ALIAS

    def test_wrong_alias_aborts(self, invoke, config_file, keystore_file):
        result = invoke(
            "endpoint",
            "http",
            "--protocol",
            "TLSv1.3",
            "--key-store-password",
            KEYSTORE_PASSWORD,
            "--key-alias",
            "other",
        )
        assert result.exit_code == 1
        assert "Key alias fault" in result.output
        assert not config_file.exists()

    def test_missing_keystore_aborts(self, invoke, config_file):
        result = invoke("endpoint", "http", "--protocol", "TLSv1.3", "--key-alias", "x")
        assert result.exit_code == 1
        assert "File not found" in result.output

    def test_invalid_port_aborts(self, invoke, config_file):
        result = invoke("endpoint", "http", "--port", "70000", "--no-tls")
        assert result.exit_code == 1
        assert "Invalid port 70000" in result.output
        assert not config_file.exists()

    def test_invalid_address_aborts(self, invoke):
        result = invoke("endpoint", "http", "--address", "example.com", "--no-tls")
        assert result.exit_code == 1
        assert "Invalid address" in result.output

    def test_port_note(self, invoke):
        result = invoke("endpoint", "http", "--port", "443", "--no-tls")
        assert result.exit_code == 0
        assert "Note:" in result.output

    def test_check_only_does_not_save(self, invoke, config_file):
        result = invoke("endpoint", "http", "--no-tls", "--check-only")
        assert result.exit_code == 0
        assert "Check only" in result.output
        assert not config_file.exists()

    def test_no_tls_with_protocol_rejected(self, invoke):
        result = invoke("endpoint", "http", "--no-tls", "--protocol", "TLSv1.3")
        assert result.exit_code == 1

    def test_unknown_endpoint(self, invoke):
        result = invoke("endpoint", "grpc")
        assert result.exit_code == 2


class TestApiAuthCommand:
    def test_enable_api_keys(self, invoke, config_file, read_yaml):
        result = invoke("api-auth", "--api-key-auth", "--header-name", "API_KEY", "--caching")
        assert result.exit_code == 0
        server = read_yaml(config_file)["io.sapl"]["server"]
        assert server["allowApiKeyAuth"] is True
        assert server["apiKeyHeaderName"] == "API_KEY"
        assert server["apiKeyCaching"] == {"enabled": True, "expire": 300, "maxSize": 10000}

    def test_api_key_without_header_aborts(self, invoke, config_file):
        result = invoke("api-auth", "--api-key-auth")
        assert result.exit_code == 1
        assert not config_file.exists()

    def test_invalid_cache_size_aborts(self, invoke):
        result = invoke(
            "api-auth", "--api-key-auth", "--header-name", "K", "--caching", "--cache-max-size", "0"
        )
        assert result.exit_code == 1
