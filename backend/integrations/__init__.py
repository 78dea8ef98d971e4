"""External aggregator integrations.

This package contains:
- Aggregator protocol: common interface for bank-linking aggregators
- Gateway registry: resolves the configured aggregator
- Enable Banking client: PSD2 aggregator adapter
- Plaid client: Plaid Link adapter
"""

from integrations.aggregator_protocol import (
    AggregatorGateway,
    AuthorizationResult,
    Bank,
    ConsentInfo,
)
from integrations.gateway_registry import GatewayRegistry, get_gateway_registry

__all__ = [
    "AggregatorGateway",
    "AuthorizationResult",
    "Bank",
    "ConsentInfo",
    "GatewayRegistry",
    "get_gateway_registry",
]
