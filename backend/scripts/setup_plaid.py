#!/usr/bin/env python3
"""Plaid API setup script.

This script validates Plaid API credentials by listing a few institutions.
Bank linking happens in the browser (Plaid Link page), not through this CLI
script.

Usage:
    1. Sign up at https://dashboard.plaid.com/
    2. Get your client_id and secret from the Keys page
    3. Run this script and follow the prompts
    4. Add the resulting env vars to your .env file
"""

import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from integrations.exceptions import AggregatorError
from integrations.plaid_client import PlaidClient
from services.credential_manager import set_credential, stored_credential_keys


def _offer_keychain_store(credentials: dict[str, str]) -> None:
    """Prompt the user to store credentials in the OS keychain."""
    existing = [key for key in stored_credential_keys() if key in credentials]
    if existing:
        print(f"\nAlready in keychain (will be replaced): {', '.join(existing)}")
    answer = input("\nStore these credentials in the keychain? [Y/n] ").strip().lower()
    if answer in ("", "y", "yes"):
        for key, value in credentials.items():
            if set_credential(key, value):
                print(f"  Stored {key} in keychain")
            else:
                print(f"  Failed to store {key}")
    else:
        print("  Skipped keychain storage.")


def main():
    """Prompt for credentials and validate them."""
    print("Plaid API Setup")
    print("=" * 50)
    print()

    client_id = input("Enter your Plaid client_id: ").strip()
    secret = input("Enter your Plaid secret: ").strip()
    if not client_id or not secret:
        print("Error: client_id and secret are required")
        sys.exit(1)

    env_choice = input("Environment: 1. sandbox  2. production [1]: ").strip() or "1"
    env = {"1": "sandbox", "2": "production"}.get(env_choice, "sandbox")

    print()
    print(f"Validating credentials against {env} environment...")
    try:
        banks = PlaidClient(client_id=client_id, secret=secret, environment=env).list_banks("US")
    except AggregatorError as e:
        print(f"Error: {e}")
        print("  - Each Plaid environment has different secrets")
        sys.exit(1)

    print()
    print(f"Success! ({len(banks)} institutions listed) Add the following to your .env file:")
    print()
    print("OPEN_BANKING_PROVIDER=Plaid")
    print(f"PLAID_CLIENT_ID={client_id}")
    print(f"PLAID_SECRET={secret}")
    print(f"PLAID_ENVIRONMENT={env}")

    _offer_keychain_store({
        "PLAID_CLIENT_ID": client_id,
        "PLAID_SECRET": secret,
    })


if __name__ == "__main__":
    main()
