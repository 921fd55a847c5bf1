"""Shared fixtures: a small provider with one dataset of each kind."""

import json

import pytest

from mcpi.config import ServerConfig
from mcpi.registry import PluginRegistry
from mcpi.session import ProtocolSession


PRODUCTS = [
    {
        "id": "eco-1001",
        "name": "Bamboo Water Bottle",
        "price": 24.99,
        "category": "kitchen",
        "in_stock": True,
    },
    {
        "id": "eco-1002",
        "name": "Organic Cotton Tote",
        "price": 12.5,
        "category": "bags",
        "in_stock": True,
    },
    {
        "id": "eco-1003",
        "name": "Beeswax Food Wraps",
        "price": 18,
        "category": "kitchen",
        "in_stock": False,
    },
    {
        "id": 1004,
        "name": "Bamboo Toothbrush Pack",
        "price": 9.99,
        "category": "bathroom",
        "tags": ["bamboo"],
    },
]

HELLO = {
    "default": {
        "introduction": "Hello from EcoShop!",
        "metadata": {
            "provider": {"name": "EcoShop", "domain": "shop.example.com"},
            "primary_focus": ["sustainable products"],
            "support_hours": "9-5",
        },
    },
    "contexts": {
        "shopping": {
            "introduction": "Let's find you something green.",
            "highlight_capabilities": ["product_search"],
        },
    },
}


@pytest.fixture
def data_dir(tmp_path):
    (tmp_path / "products.json").write_text(json.dumps(PRODUCTS))
    (tmp_path / "hello.json").write_text(json.dumps(HELLO))
    return tmp_path


@pytest.fixture
def config_data(data_dir):
    return {
        "server": {"data_dir": str(data_dir), "init_timeout": 5, "idle_timeout": 5},
        "provider": {
            "name": "EcoShop",
            "domain": "shop.example.com",
            "description": "Sustainable goods",
        },
        "referrals": [
            {"name": "Green Travel", "domain": "travel.example.com", "relationship": "partner"},
            {"name": "Farm Co-op", "domain": "farms.example.org", "relationship": "supplier"},
        ],
        "capabilities": {
            "product_search": {
                "description": "Search products",
                "category": "commerce",
                "operations": ["SEARCH", "GET", "LIST"],
                "data_file": "products.json",
            },
            "weather_forecast": {
                "description": "Weather forecasts",
                "category": "information",
                "plugin": "weather",
                "options": {"locations": ["New York", "London"], "seed": 42},
            },
            "website_content": {
                "description": "Partner websites",
                "category": "social",
                "plugin": "referrals",
            },
            "hello": {
                "description": "Introduce the assistant",
                "category": "system",
                "plugin": "hello",
                "data_file": "hello.json",
            },
        },
    }


@pytest.fixture
def config(config_data):
    return ServerConfig.from_dict(config_data)


@pytest.fixture
def registry(config):
    return PluginRegistry.load(config)


@pytest.fixture
def session(registry, config):
    return ProtocolSession(registry, config)
