#!/usr/bin/env python3
"""Enable Banking API setup script.

This script validates Enable Banking application credentials by listing the
banks available in one country. Bank linking itself happens in the browser
through the /api/open-banking/login flow, not through this CLI script.

Usage:
    1. Register an application at https://enablebanking.com/cp/applications
    2. Download the private key (PEM) generated for it
    3. Run this script and follow the prompts
    4. Add the resulting env vars to your .env file (or store them in the keychain)
"""

import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from integrations.enable_banking_client import EnableBankingClient
from integrations.exceptions import AggregatorError
from services.credential_manager import CredentialError, validate_credential


def _offer_keychain_store(credentials: dict[str, str]) -> None:
    """Prompt the user to store credentials in the OS keychain."""
    from services.credential_manager import set_credential, stored_credential_keys

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


def validate_credentials(application_id: str, private_key: str, country: str) -> int:
    """Validate credentials by listing banks.

    Returns:
        Number of banks available in ``country``.

    Raises:
        AggregatorError: If the API call fails.
    """
    client = EnableBankingClient(application_id=application_id, private_key=private_key)
    return len(client.list_banks(country))


def main():
    """Prompt for credentials and validate them."""
    print("Enable Banking API Setup")
    print("=" * 50)
    print()

    application_id = input("Enter your Enable Banking application id: ").strip()
    if not application_id:
        print("Error: No application id provided")
        sys.exit(1)

    key_path = input("Path to the application's private key (.pem): ").strip()
    path = Path(key_path).expanduser().resolve()
    if not path.is_file():
        print(f"Error: {path} does not exist")
        sys.exit(1)
    try:
        private_key = validate_credential("ENABLE_BANKING_PRIVATE_KEY", path.read_text())
    except CredentialError as e:
        print(f"Error: {path}: {e}")
        sys.exit(1)

    country = (input("Country to test with [FI]: ").strip() or "FI").upper()

    print()
    print(f"Listing banks in {country}...")

    try:
        count = validate_credentials(application_id, private_key, country)
    except AggregatorError as e:
        print(f"Error: {e}")
        print()
        print("Common issues:")
        print("  - Application id does not match the key")
        print("  - Application not activated for this environment")
        sys.exit(1)

    print()
    print(f"Success! {count} banks available. Add the following to your .env file:")
    print()
    print("OPEN_BANKING_PROVIDER=EnableBanking")
    print(f"ENABLE_BANKING_APPLICATION_ID={application_id}")
    print(f"ENABLE_BANKING_PRIVATE_KEY_PATH={path}")

    _offer_keychain_store({
        "ENABLE_BANKING_APPLICATION_ID": application_id,
        "ENABLE_BANKING_PRIVATE_KEY": private_key,
    })


if __name__ == "__main__":
    main()
