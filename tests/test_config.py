"""Tests for config loading, directory format and validation."""

from __future__ import annotations

import pytest

from smsxmpp.config import Config, load_config, load_config_directory, load_config_with_env
from smsxmpp.core.errors import GatewayConfigurationError

VALID_YAML = """
xmpp:
  server: "127.0.0.1:5347"
  domain: sms.example.com
  secret: s3cret
http:
  port: 9000
public_url: "https://sms.example.com/ "
default_prefix: "+1"
providers:
  main:
    type: twilio
    account_sid: AC1
    key_sid: SK1
    key_secret: x
users:
  alice@example.org:
    phone_number: "555 999 8888"
    provider: main
"""


def base_data(**overrides):
    data = {
        "xmpp": {"server": "localhost", "domain": "sms.example.com", "secret": "s3cret"},
        "providers": {"main": {"type": "nexmo", "api_key": "k", "api_secret": "s"}},
        "users": {"alice@example.org": {"phone_number": "+15559998888", "provider": "main"}},
    }
    data.update(overrides)
    return data


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in ("SMSXMPP_XMPP_SERVER", "SMSXMPP_XMPP_SECRET", "SMSXMPP_IGNORE_UNMAPPED"):
        monkeypatch.delenv(key, raising=False)


class TestLoadYaml:
    def test_valid_file(self, tmp_path):
        # Arrange
        path = tmp_path / "config.yaml"
        path.write_text(VALID_YAML)

        # Act
        config = Config(load_config(path))

        # Assert
        assert config.xmpp_domain == "sms.example.com"
        assert config.xmpp_host == "127.0.0.1"
        assert config.xmpp_port == 5347
        assert config.http_host == "127.0.0.1"
        assert config.http_port == 9000
        assert config.public_url == "https://sms.example.com"
        assert config.users["alice@example.org"].phone_number == "+15559998888"
        assert config.providers["main"].type == "twilio"
        assert config.providers["main"].params == {"account_sid": "AC1", "key_sid": "SK1", "key_secret": "x"}

    def test_missing_file(self, tmp_path):
        with pytest.raises(GatewayConfigurationError) as exc_info:
            load_config(tmp_path / "nope.yaml")
        assert exc_info.value.code == "not_found"

    def test_unparseable_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("xmpp: [unclosed\n")
        with pytest.raises(GatewayConfigurationError) as exc_info:
            load_config(path)
        assert exc_info.value.code == "parse_error"

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(GatewayConfigurationError) as exc_info:
            load_config(path)
        assert exc_info.value.code == "invalid_structure"


class TestDirectory:
    def write_dir(self, root, *, users="alice@example.org main:+15559998888\n"):
        (root / "config").write_text(
            "# gateway\n"
            "xmpp_server 127.0.0.1:5347\n"
            "xmpp_domain sms.example.com\n"
            "xmpp_secret s3cret\n"
            "http_listen 0.0.0.0:9677\n"
            "\n"
            "default_prefix +1\n"
        )
        (root / "users").write_text(users)
        providers = root / "providers"
        providers.mkdir()
        (providers / "main").write_text("type voipms\napi_username u\napi_password p\n")
        (providers / ".hidden").write_text("garbage\n")

    def test_directory_resolves_to_config(self, tmp_path):
        # Arrange
        self.write_dir(tmp_path)

        # Act
        config = Config(load_config_directory(tmp_path))

        # Assert
        assert config.xmpp_port == 5347
        assert config.http_host == "0.0.0.0"
        assert config.http_port == 9677
        assert config.default_prefix == "+1"
        assert list(config.providers) == ["main"]
        assert config.providers["main"].params == {"api_username": "u", "api_password": "p"}
        assert config.users["alice@example.org"].provider == "main"

    def test_malformed_user_line(self, tmp_path):
        self.write_dir(tmp_path, users="alice@example.org +15559998888\n")
        with pytest.raises(GatewayConfigurationError, match="provider:phonenumber"):
            load_config_directory(tmp_path)

    def test_provider_without_type(self, tmp_path):
        self.write_dir(tmp_path)
        (tmp_path / "providers" / "broken").write_text("api_key k\n")
        with pytest.raises(GatewayConfigurationError, match="lacks type"):
            load_config_directory(tmp_path)

    def test_with_env_picks_directory(self, tmp_path, monkeypatch):
        self.write_dir(tmp_path)
        monkeypatch.chdir(tmp_path)
        data = load_config_with_env(tmp_path)
        assert data["xmpp"]["domain"] == "sms.example.com"


class TestValidation:
    def test_valid(self):
        Config(base_data())

    @pytest.mark.parametrize(
        ("section", "value", "code"),
        [
            ("xmpp", {"server": "localhost", "secret": "s"}, "missing_xmpp_domain"),
            ("xmpp", {"server": "localhost", "domain": "d"}, "missing_xmpp_secret"),
            ("xmpp", {"domain": "d", "secret": "s"}, "missing_xmpp_server"),
            ("users", {"alice@example.org": {"phone_number": "+15559998888", "provider": "other"}}, "unknown_provider"),
            ("users", {"alice@example.org": {"phone_number": "call me", "provider": "main"}}, "invalid_phone_number"),
            ("providers", {"main": {"api_key": "k"}}, "missing_provider_type"),
            ("rosters", {"bob@example.org": "https://dav.example/bob"}, "unknown_roster_user"),
            ("default_prefix", "1", "invalid_default_prefix"),
            ("users", ["alice"], "invalid_users"),
        ],
    )
    def test_invalid(self, section, value, code):
        with pytest.raises(GatewayConfigurationError) as exc_info:
            Config(base_data(**{section: value}))
        assert exc_info.value.code == code

    def test_malformed_jid(self):
        data = base_data(users={"al ice@example.org": {"phone_number": "+15559998888", "provider": "main"}})
        with pytest.raises(GatewayConfigurationError) as exc_info:
            Config(data)
        assert exc_info.value.code == "malformed_jid"

    def test_invalid_port(self):
        with pytest.raises(GatewayConfigurationError) as exc_info:
            Config(base_data(http={"port": "eighty"}))
        assert exc_info.value.code == "invalid_port"

    @pytest.mark.parametrize(
        ("key", "value"),
        [
            ("receipt_cache_size", "abc"),
            ("receipt_cache_size", 0),
            ("receipt_cache_size", -3),
            ("receipt_cache_size", 2.5),
            ("receipt_cache_size", True),
            ("send_timeout_seconds", "soon"),
            ("send_timeout_seconds", 0),
            ("send_timeout_seconds", -1),
            ("send_timeout_seconds", "inf"),
            ("reconnect_delay_seconds", "later"),
            ("reconnect_delay_seconds", -0.5),
            ("reconnect_delay_seconds", None),
            ("vcard", "maybe"),
            ("vcard", 1),
            ("ignore_unmapped", "sometimes"),
        ],
    )
    def test_invalid_setting(self, key, value):
        with pytest.raises(GatewayConfigurationError) as exc_info:
            Config(base_data(**{key: value}))
        assert exc_info.value.code == f"invalid_{key}"
        assert exc_info.value.details["key"] == key


class TestAccessors:
    def test_defaults(self):
        config = Config(base_data())
        assert config.xmpp_port == 5347
        assert config.http_port == 9677
        assert config.public_url is None
        assert config.ignore_unmapped is False
        assert config.vcard_enabled is True
        assert config.receipt_cache_size == 10
        assert config.send_timeout_seconds == 5.0
        assert config.reconnect_delay_seconds == 1.0
        assert config.rosters == {}

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("SMSXMPP_XMPP_SECRET", "from-env")
        monkeypatch.setenv("SMSXMPP_XMPP_SERVER", "xmpp.internal:5348")
        monkeypatch.setenv("SMSXMPP_IGNORE_UNMAPPED", "yes")
        config = Config(base_data())
        assert config.xmpp_secret == "from-env"
        assert config.xmpp_host == "xmpp.internal"
        assert config.xmpp_port == 5348
        assert config.ignore_unmapped is True

    def test_phones_table_canonicalized(self):
        config = Config(base_data(default_prefix="+1", phones={"5551230000": "bob@example.org/home"}))
        assert config.phones == {"+15551230000": "bob@example.org"}

    def test_dotted_get(self):
        config = Config(base_data())
        assert config.get("xmpp.domain") == "sms.example.com"
        assert config.get("xmpp.nope", "fallback") == "fallback"

    @pytest.mark.parametrize(("value", "expected"), [("false", False), ("No", False), ("0", False), ("yes", True), (False, False)])
    def test_vcard_flag_strings(self, value, expected):
        assert Config(base_data(vcard=value)).vcard_enabled is expected

    def test_numeric_settings_coerced(self):
        config = Config(base_data(receipt_cache_size="25", send_timeout_seconds="2.5", reconnect_delay_seconds=0))
        assert config.receipt_cache_size == 25
        assert config.send_timeout_seconds == 2.5
        assert config.reconnect_delay_seconds == 0.0
