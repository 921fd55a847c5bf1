"""Tests for mcpi.config module."""

import pytest
import json
from pathlib import Path

from mcpi.config import (
    CapabilityConfig,
    ConfigError,
    DEFAULT_INTRODUCTION,
    HelloConfig,
    Provider,
    ServerConfig,
    load_config,
    validate_config,
)
from mcpi.registry import MissingFileError


class TestServerConfig:
    def test_defaults(self):
        config = ServerConfig()
        assert config.port == 3001
        assert config.discovery_path == "/mcpi/discover"
        assert config.session_path == "/mcpi"
        assert config.capabilities == []

    def test_from_dict(self, config_data, data_dir):
        config = ServerConfig.from_dict(config_data)
        assert config.provider.name == "EcoShop"
        assert config.data_dir == str(data_dir)
        assert config.idle_timeout == 5.0
        assert [c.name for c in config.capabilities] == [
            "product_search", "weather_forecast", "website_content", "hello",
        ]
        assert len(config.referrals) == 2

    def test_server_overrides(self):
        config = ServerConfig.from_dict({
            "server": {"port": "8080", "session_path": "/ws", "name": "shop"},
        })
        assert config.port == 8080
        assert config.session_path == "/ws"
        assert config.name == "shop"

    def test_relative_data_dir(self, tmp_path):
        config = ServerConfig.from_dict({"server": {"data_dir": "datasets"}}, base_dir=tmp_path)
        assert Path(config.data_dir) == tmp_path / "datasets"

    def test_not_an_object(self):
        with pytest.raises(ConfigError):
            ServerConfig.from_dict(["nope"])

    def test_capabilities_must_be_object(self):
        with pytest.raises(ConfigError):
            ServerConfig.from_dict({"capabilities": [{"name": "x"}]})

    def test_bad_port(self):
        with pytest.raises(ConfigError):
            ServerConfig.from_dict({"server": {"port": "abc"}})

    def test_bad_timeout(self):
        with pytest.raises(ConfigError):
            ServerConfig.from_dict({"server": {"idle_timeout": [1]}})

    def test_server_must_be_object(self):
        with pytest.raises(ConfigError):
            ServerConfig.from_dict({"server": "localhost:3001"})

    def test_referrals_must_be_objects(self):
        with pytest.raises(ConfigError):
            ServerConfig.from_dict({"referrals": ["partner.example.com"]})

    def test_provider_must_be_object(self):
        with pytest.raises(ConfigError):
            ServerConfig.from_dict({"provider": "EcoShop"})

    def test_data_path(self, config):
        capability = config.capabilities[0]
        assert config.data_path(capability) == Path(config.data_dir) / "products.json"
        assert config.data_path(config.capabilities[1]) is None

    def test_to_dict(self, config):
        d = config.to_dict()
        assert d["port"] == 3001
        assert "product_search" in d["capabilities"]


class TestCapabilityConfig:
    def test_default_operations(self):
        assert CapabilityConfig.from_dict("p", {}).operations == ["SEARCH", "GET", "LIST"]
        assert CapabilityConfig.from_dict("h", {"plugin": "hello"}).operations == ["HELLO"]

    def test_defaults(self):
        cap = CapabilityConfig.from_dict("p", {})
        assert cap.plugin == "data"
        assert cap.search_field == "name"
        assert cap.description == "No description"

    def test_bad_operations(self):
        with pytest.raises(ConfigError):
            CapabilityConfig.from_dict("p", {"operations": "SEARCH"})

    def test_not_an_object(self):
        with pytest.raises(ConfigError):
            CapabilityConfig.from_dict("p", "SEARCH")

    def test_to_dict(self):
        cap = CapabilityConfig.from_dict("p", {"category": "commerce"})
        assert cap.to_dict() == {
            "name": "p",
            "description": "No description",
            "category": "commerce",
            "operations": ["SEARCH", "GET", "LIST"],
        }


class TestProvider:
    def test_to_dict_without_branding(self):
        provider = Provider(name="EcoShop", domain="shop.example.com")
        assert "branding" not in provider.to_dict()

    def test_to_dict_with_branding(self):
        provider = Provider.from_dict({"name": "EcoShop", "branding": {"logo": "x.png"}})
        assert provider.to_dict()["branding"] == {"logo": "x.png"}


class TestHelloConfig:
    def test_from_dict(self):
        hello = HelloConfig.from_dict({
            "default": {"introduction": "Hi", "metadata": {"provider": {"name": "X"}}},
            "contexts": {"support": {"introduction": "Need help?"}},
        })
        assert hello.introduction == "Hi"
        assert hello.contexts["support"].introduction == "Need help?"
        assert hello.contexts["support"].highlight_capabilities is None

    def test_default_introduction(self):
        assert HelloConfig.from_dict({}).introduction == DEFAULT_INTRODUCTION

    def test_bad_context(self):
        with pytest.raises(ConfigError):
            HelloConfig.from_dict({"contexts": {"support": "Need help?"}})

    def test_default_must_be_object(self):
        with pytest.raises(ConfigError):
            HelloConfig.from_dict({"default": "oops"})

    def test_contexts_must_be_object(self):
        with pytest.raises(ConfigError):
            HelloConfig.from_dict({"contexts": [{"introduction": "Hi"}]})

    def test_highlights_must_be_list(self):
        with pytest.raises(ConfigError):
            HelloConfig.from_dict({"contexts": {"shopping": {"highlight_capabilities": "product_search"}}})

    def test_introduction_must_be_string(self):
        with pytest.raises(ConfigError):
            HelloConfig.from_dict({"default": {"introduction": 42}})

    def test_to_dict(self):
        data = {
            "default": {"introduction": "Hi", "metadata": {}},
            "contexts": {"shopping": {"highlight_capabilities": ["product_search"]}},
        }
        assert HelloConfig.from_dict(data).to_dict() == data


class TestLoadConfig:
    def test_load(self, tmp_path, config_data):
        path = tmp_path / "config.json"
        path.write_text(json.dumps(config_data))

        config = load_config(path)
        assert config.provider.domain == "shop.example.com"
        assert len(config.capabilities) == 4

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{")
        with pytest.raises(ConfigError):
            load_config(path)


class TestValidateConfig:
    def test_valid(self, config):
        validate_config(config)

    def test_missing_data_file(self, config_data, data_dir):
        (data_dir / "products.json").unlink()
        config = ServerConfig.from_dict(config_data)

        with pytest.raises(MissingFileError) as exc:
            validate_config(config)
        assert exc.value.capability == "product_search"

    def test_missing_data_dir(self, tmp_path):
        config = ServerConfig.from_dict({
            "server": {"data_dir": str(tmp_path / "nowhere")},
            "capabilities": {"p": {"data_file": "p.json"}},
        })
        with pytest.raises(MissingFileError):
            validate_config(config)
