"""Registry of aggregator gateways available for bank linking.

The registry is responsible for:
- Initializing and tracking configured aggregator adapters
- Resolving the adapter selected by ``OPEN_BANKING_PROVIDER``
"""

import importlib
import logging

from config import settings
from integrations.aggregator_protocol import AggregatorGateway

logger = logging.getLogger(__name__)

# Each tuple is (provider_name, module_path, class_name).
# Adding a new aggregator only requires appending one entry here.
GATEWAY_DEFINITIONS: list[tuple[str, str, str]] = [
    ("EnableBanking", "integrations.enable_banking_client", "EnableBankingClient"),
    ("Plaid", "integrations.plaid_client", "PlaidClient"),
]

ALL_GATEWAY_NAMES: list[str] = [name for name, _, _ in GATEWAY_DEFINITIONS]


class GatewayNotConfiguredError(LookupError):
    """The requested aggregator is unknown, not installed or lacks credentials."""


class GatewayRegistry:
    """Registry for aggregator gateways.

    Example:
        registry = GatewayRegistry()
        registry.initialize_default_gateways()
        gateway = registry.get_gateway("EnableBanking")
    """

    def __init__(self):
        self._gateways: dict[str, AggregatorGateway] = {}

    def register_gateway(self, gateway: AggregatorGateway) -> None:
        """Register a gateway under its ``provider_name``."""
        self._gateways[gateway.provider_name] = gateway

    def get_gateway(self, name: str) -> AggregatorGateway:
        """Get a gateway by name.

        Raises:
            GatewayNotConfiguredError: If the gateway is not registered.
        """
        if name not in self._gateways:
            raise GatewayNotConfiguredError(f"Aggregator '{name}' is not configured")
        return self._gateways[name]

    def list_gateways(self) -> list[str]:
        """List all registered gateway names."""
        return list(self._gateways.keys())

    def is_configured(self, name: str) -> bool:
        """Check if a gateway is registered (and therefore configured)."""
        return name in self._gateways

    def initialize_default_gateways(self) -> None:
        """Auto-detect and initialize all configured gateways.

        Each import is wrapped in try/except so a missing SDK for one
        aggregator (e.g. plaid-python) never prevents the rest from loading.
        """
        for name, module_path, class_name in GATEWAY_DEFINITIONS:
            try:
                module = importlib.import_module(module_path)
                cls = getattr(module, class_name)
                self._try_init_gateway(name, cls)
            except ImportError:
                logger.debug("Aggregator skipped (not installed): %s", name)

        names = self.list_gateways()
        if names:
            logger.info("Configured aggregators: %s", ", ".join(names))
        else:
            logger.warning("No aggregators configured, bank linking is unavailable")

    def _try_init_gateway(self, name: str, cls: type) -> None:
        try:
            instance = cls()
            if instance.is_configured():
                self.register_gateway(instance)
                logger.info("Aggregator registered: %s", name)
            else:
                logger.debug("Aggregator skipped (not configured): %s", name)
        except Exception:
            logger.warning("Aggregator failed to initialize: %s", name, exc_info=True)


def get_gateway_registry() -> GatewayRegistry:
    """Create a registry with every configured aggregator registered."""
    registry = GatewayRegistry()
    registry.initialize_default_gateways()
    return registry


def get_selected_gateway(registry: GatewayRegistry | None = None) -> AggregatorGateway:
    """Return the gateway named by ``settings.OPEN_BANKING_PROVIDER``.

    Raises:
        GatewayNotConfiguredError: If that aggregator is not configured.
    """
    registry = registry or get_gateway_registry()
    return registry.get_gateway(settings.OPEN_BANKING_PROVIDER)
