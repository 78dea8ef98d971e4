"""Unit tests for the aggregator gateway registry."""

from unittest.mock import MagicMock, patch

import pytest

from integrations.gateway_registry import (
    ALL_GATEWAY_NAMES,
    GATEWAY_DEFINITIONS,
    GatewayNotConfiguredError,
    GatewayRegistry,
    get_selected_gateway,
)
from tests.fixtures.mocks import MockAggregatorGateway, MockGatewayRegistry


class TestGatewayRegistry:
    """Tests for GatewayRegistry."""

    def test_empty_registry(self):
        assert GatewayRegistry().list_gateways() == []

    def test_register_gateway(self):
        registry = GatewayRegistry()
        registry.register_gateway(MockAggregatorGateway(name="EnableBanking"))

        assert registry.list_gateways() == ["EnableBanking"]
        assert registry.is_configured("EnableBanking")

    def test_get_gateway(self):
        gateway = MockAggregatorGateway(name="Plaid")
        registry = MockGatewayRegistry({"Plaid": gateway})
        assert registry.get_gateway("Plaid") is gateway

    def test_get_gateway_not_found(self):
        with pytest.raises(GatewayNotConfiguredError, match="Plaid"):
            GatewayRegistry().get_gateway("Plaid")

    def test_gateway_replaces_existing(self):
        registry = GatewayRegistry()
        first = MockAggregatorGateway(name="Plaid")
        second = MockAggregatorGateway(name="Plaid")
        registry.register_gateway(first)
        registry.register_gateway(second)
        assert registry.get_gateway("Plaid") is second


class TestGatewayDefinitions:
    def test_definitions_names(self):
        assert ALL_GATEWAY_NAMES == ["EnableBanking", "Plaid"]

    def test_definitions_tuples_are_valid(self):
        for name, module_path, class_name in GATEWAY_DEFINITIONS:
            assert name
            assert module_path.startswith("integrations.")
            assert class_name


class TestInitializeDefaultGateways:
    """Tests for data-driven initialize_default_gateways."""

    @staticmethod
    def _module(configured: bool = True, side_effect: Exception | None = None):
        def fake_import(module_path):
            mod = MagicMock()
            mock_cls = MagicMock()
            if side_effect and "plaid" in module_path:
                mock_cls.side_effect = side_effect
            else:
                instance = MagicMock()
                instance.is_configured.return_value = configured
                instance.provider_name = module_path.split(".")[-1]
                mock_cls.return_value = instance
            for _, _, class_name in GATEWAY_DEFINITIONS:
                setattr(mod, class_name, mock_cls)
            return mod

        return fake_import

    def test_import_error_skips_gateway(self):
        registry = GatewayRegistry()
        real_import = self._module()

        def selective_import(module_path):
            if "plaid" in module_path:
                raise ImportError("plaid-python not installed")
            return real_import(module_path)

        with patch("integrations.gateway_registry.importlib.import_module", side_effect=selective_import):
            registry.initialize_default_gateways()

        assert registry.list_gateways() == ["enable_banking_client"]

    def test_constructor_exception_skips_gateway(self):
        registry = GatewayRegistry()
        with patch(
            "integrations.gateway_registry.importlib.import_module",
            side_effect=self._module(side_effect=RuntimeError("init failed")),
        ):
            registry.initialize_default_gateways()

        assert registry.list_gateways() == ["enable_banking_client"]

    def test_unconfigured_gateways_not_registered(self):
        registry = GatewayRegistry()
        with patch(
            "integrations.gateway_registry.importlib.import_module",
            side_effect=self._module(configured=False),
        ):
            registry.initialize_default_gateways()

        assert registry.list_gateways() == []


class TestGetSelectedGateway:
    def test_returns_configured_provider(self, monkeypatch):
        monkeypatch.setattr("integrations.gateway_registry.settings.OPEN_BANKING_PROVIDER", "Plaid")
        plaid = MockAggregatorGateway(name="Plaid")
        registry = MockGatewayRegistry({
            "EnableBanking": MockAggregatorGateway(name="EnableBanking"),
            "Plaid": plaid,
        })
        assert get_selected_gateway(registry) is plaid

    def test_selected_provider_not_configured(self, monkeypatch):
        monkeypatch.setattr("integrations.gateway_registry.settings.OPEN_BANKING_PROVIDER", "EnableBanking")
        registry = MockGatewayRegistry({"Plaid": MockAggregatorGateway(name="Plaid")})
        with pytest.raises(GatewayNotConfiguredError):
            get_selected_gateway(registry)
