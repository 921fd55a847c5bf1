"""Tests for mcpi.plugins module."""

import pytest

from mcpi.config import CapabilityConfig, HelloConfig, Referral
from mcpi.plugins import (
    DataPlugin,
    HelloPlugin,
    InvalidParamsError,
    NotFoundError,
    ReferralPlugin,
    UnsupportedOperationError,
    WeatherPlugin,
    as_text,
)
from mcpi.protocol import MCPErrorCode

from conftest import HELLO, PRODUCTS


def make_capability(name="product_search", **kwargs):
    return CapabilityConfig.from_dict(name, kwargs)


@pytest.fixture
def products():
    return DataPlugin(make_capability(), PRODUCTS)


@pytest.fixture
def hello():
    return HelloPlugin(
        make_capability("hello", plugin="hello"),
        HelloConfig.from_dict(HELLO),
        ["product_search", "hello"],
    )


class TestAsText:
    def test_scalars(self):
        assert as_text("x") == "x"
        assert as_text(True) == "true"
        assert as_text(1004) == "1004"
        assert as_text(9.5) == "9.5"

    def test_nested(self):
        assert as_text(None) is None
        assert as_text(["bamboo"]) is None
        assert as_text({"a": 1}) is None


class TestBasePlugin:
    def test_metadata(self, products):
        meta = products.metadata()
        assert meta.name == "product_search"
        assert meta.operations == ("SEARCH", "GET", "LIST")

        schema = meta.input_schema
        assert schema["required"] == ["operation"]
        assert schema["properties"]["operation"]["enum"] == ["SEARCH", "GET", "LIST"]
        assert "query" in schema["properties"]

    def test_metadata_dicts(self, products):
        meta = products.metadata()
        assert meta.to_tool_dict()["inputSchema"] == meta.input_schema
        assert meta.to_capability_dict()["operations"] == ["SEARCH", "GET", "LIST"]

    def test_unknown_configured_operation(self):
        with pytest.raises(ValueError):
            DataPlugin(make_capability(operations=["SEARCH", "DELETE"]), PRODUCTS)

    def test_undeclared_operation(self):
        plugin = DataPlugin(make_capability(operations=["LIST"]), PRODUCTS)
        with pytest.raises(UnsupportedOperationError) as exc:
            plugin.execute("GET", {"id": "eco-1001"})
        assert exc.value.code == MCPErrorCode.INVALID_PARAMS
        assert exc.value.data == {"supported": ["LIST"]}

    def test_suffixed_operations(self):
        plugin = DataPlugin(
            make_capability(operations=["SEARCH_PRODUCTS", "GET_PRODUCT", "LIST_PRODUCTS"]),
            PRODUCTS,
        )
        assert plugin.execute("GET_PRODUCT", {"id": "eco-1002"})["name"] == "Organic Cotton Tote"
        assert plugin.execute("LIST_PRODUCTS")["count"] == 4
        assert plugin.execute("SEARCH_PRODUCTS", {"query": "wraps"})["count"] == 1


class TestDataPlugin:
    def test_search_scenario(self, products):
        result = products.execute("SEARCH", {"query": "bamboo"})
        ids = [r["id"] for r in result["results"]]
        assert "eco-1001" in ids
        assert result["count"] == len(result["results"])
        assert result["query"] == "bamboo"
        assert result["field"] == "name"

    def test_search_case_insensitive(self, products):
        upper = products.execute("SEARCH", {"query": "BAMBOO"})
        lower = products.execute("SEARCH", {"query": "bamboo"})
        assert upper["results"] == lower["results"]

    def test_search_preserves_order(self, products):
        result = products.execute("SEARCH", {"query": "bamboo"})
        assert [r["id"] for r in result["results"]] == ["eco-1001", 1004]

    def test_empty_search_equals_list(self, products):
        search = products.execute("SEARCH", {"query": ""})
        listed = products.execute("LIST")
        assert search["results"] == listed["results"]
        assert search["count"] == listed["count"] == 4

    def test_missing_query_equals_list(self, products):
        assert products.execute("SEARCH")["results"] == products.execute("LIST")["results"]

    def test_search_other_field(self, products):
        result = products.execute("SEARCH", {"query": "kitchen", "field": "category"})
        assert [r["id"] for r in result["results"]] == ["eco-1001", "eco-1003"]

    def test_search_numeric_field(self, products):
        result = products.execute("SEARCH", {"query": "12.5", "field": "price"})
        assert [r["id"] for r in result["results"]] == ["eco-1002"]

    def test_search_missing_field(self, products):
        result = products.execute("SEARCH", {"query": "bamboo", "field": "colour"})
        assert result["count"] == 0
        assert result["results"] == []

    def test_search_all_fields(self):
        plugin = DataPlugin(make_capability(search_field="*"), PRODUCTS)
        result = plugin.execute("SEARCH", {"query": "bath"})
        assert [r["id"] for r in result["results"]] == [1004]

    def test_search_skips_nested_values(self):
        plugin = DataPlugin(make_capability(search_field="*"), PRODUCTS)
        # "bamboo" also appears in the tags list of 1004; nested values never match
        result = plugin.execute("SEARCH", {"query": "bamboo", "field": "tags"})
        assert result["count"] == 0

    def test_search_bad_query(self, products):
        with pytest.raises(InvalidParamsError):
            products.execute("SEARCH", {"query": 5})

    def test_get(self, products):
        record = products.execute("GET", {"id": "eco-1001"})
        assert record["name"] == "Bamboo Water Bottle"

    def test_get_numeric_id(self, products):
        assert products.execute("GET", {"id": "1004"})["name"] == "Bamboo Toothbrush Pack"

    def test_get_not_found(self, products):
        with pytest.raises(NotFoundError) as exc:
            products.execute("GET", {"id": "no-such-id"})
        assert exc.value.code == MCPErrorCode.NOT_FOUND

    def test_get_missing_id(self, products):
        with pytest.raises(InvalidParamsError):
            products.execute("GET", {})

    def test_list(self, products):
        result = products.execute("LIST")
        assert result["count"] == 4
        assert [r["id"] for r in result["results"]] == [p["id"] for p in PRODUCTS]

    def test_read_resource(self, products):
        assert products.read_resource(None)["count"] == 4
        assert products.read_resource("eco-1003")["name"] == "Beeswax Food Wraps"

    def test_resources(self, products):
        entries = products.resources()
        assert len(entries) == 1
        assert entries[0]["key"] is None
        assert "4 records" in entries[0]["description"]


class TestHelloPlugin:
    def test_default(self, hello):
        result = hello.execute("HELLO")
        assert result["content"] == [{"type": "text", "text": "Hello from EcoShop!"}]
        metadata = result["metadata"]
        assert metadata["provider"]["name"] == "EcoShop"
        assert metadata["topics"] == ["sustainable products"]
        assert metadata["capabilities"] == ["product_search", "hello"]

    def test_context_override(self, hello):
        result = hello.execute("HELLO", {"context": "shopping"})
        assert result["content"][0]["text"] == "Let's find you something green."
        assert result["metadata"]["highlight_capabilities"] == ["product_search"]

    def test_unknown_context_is_default(self, hello):
        assert hello.execute("HELLO", {"context": "zzz-unknown"}) == hello.execute("HELLO")

    def test_basic_detail(self, hello):
        result = hello.execute("HELLO", {"detail_level": "basic"})
        assert result["metadata"] == {"provider": {"name": "EcoShop", "domain": "shop.example.com"}}

    def test_detailed(self, hello):
        result = hello.execute("HELLO", {"detail_level": "detailed"})
        assert result["metadata"]["support_hours"] == "9-5"
        assert result["metadata"]["primary_focus"] == ["sustainable products"]

    def test_invalid_detail_level(self, hello):
        with pytest.raises(InvalidParamsError):
            hello.execute("HELLO", {"detail_level": "verbose"})

    def test_config_not_mutated(self, hello):
        hello.execute("HELLO", {"context": "shopping", "detail_level": "detailed"})
        assert "highlight_capabilities" not in hello.hello.metadata

    def test_read_resource(self, hello):
        assert hello.read_resource(None) == HelloConfig.from_dict(HELLO).to_dict()
        with pytest.raises(NotFoundError):
            hello.read_resource("x")


class TestWeatherPlugin:
    def make_plugin(self, **options):
        options.setdefault("locations", ["New York", "London"])
        return WeatherPlugin(make_capability("weather_forecast", plugin="weather", options=options))

    def test_get(self):
        plugin = self.make_plugin()
        result = plugin.execute("GET", {"location": "london"})
        assert result["location"] == "London"
        assert result["condition"] in WeatherPlugin.CONDITIONS
        assert result["temperature"]["min"] <= result["temperature"]["current"] <= result["temperature"]["max"]
        assert len(result["forecast"]) == 3

    def test_get_default_location(self):
        assert self.make_plugin().execute("GET")["location"] == "New York"

    def test_unknown_location(self):
        with pytest.raises(NotFoundError) as exc:
            self.make_plugin().execute("GET", {"location": "Atlantis"})
        assert exc.value.data["available_locations"] == ["New York", "London"]

    def test_list(self):
        result = self.make_plugin().execute("LIST")
        assert result["count"] == 2
        assert [r["location"] for r in result["results"]] == ["New York", "London"]

    def test_seed_is_deterministic(self):
        first = self.make_plugin(seed=7).execute("GET", {"location": "London"})
        second = self.make_plugin(seed=7).execute("GET", {"location": "London"})
        first.pop("updated")
        second.pop("updated")
        assert first == second

    def test_resources(self):
        keys = [entry["key"] for entry in self.make_plugin().resources()]
        assert keys == [None, "New York", "London"]


class TestReferralPlugin:
    @pytest.fixture
    def referrals(self):
        return ReferralPlugin(
            make_capability("website_content", plugin="referrals"),
            [
                Referral("Green Travel", "travel.example.com", "partner"),
                Referral("Farm Co-op", "farms.example.org", "supplier"),
            ],
        )

    def test_list(self, referrals):
        result = referrals.execute("LIST_REFERRALS")
        assert result["count"] == 2
        assert result["referrals"][0]["domain"] == "travel.example.com"

    def test_list_by_relationship(self, referrals):
        result = referrals.execute("LIST_REFERRALS", {"relationship": "supplier"})
        assert [r["name"] for r in result["referrals"]] == ["Farm Co-op"]

    def test_get(self, referrals):
        assert referrals.execute("GET_REFERRAL", {"domain": "farms.example.org"})["name"] == "Farm Co-op"

    def test_get_not_found(self, referrals):
        with pytest.raises(NotFoundError):
            referrals.execute("GET_REFERRAL", {"domain": "unknown.example"})
