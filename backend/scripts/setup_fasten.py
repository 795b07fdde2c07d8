#!/usr/bin/env python3
"""Fasten Connect setup script.

Collects the Fasten Connect credentials and stores them in the OS keychain.

Usage:
    1. Log in to the Fasten Connect developer portal
    2. Create (or open) your application and copy its public id and
       private key (test keys start with public_test_ / private_test_)
    3. Under Webhooks, register <backend>/api/fasten/webhook and choose a
       shared secret
    4. Run this script and enter the values when prompted
"""

import os
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

from integrations.fasten_client import FastenConnectClient, FastenCredentials, normalize_base_url
from services import credential_manager
from services.health_connection_service import CONNECT_CALLBACK_PATH

DEFAULT_FRONTEND_URL = "http://localhost:5173"


def _offer_keychain_store(credentials: dict[str, str]) -> None:
    """Prompt the user to store credentials in the OS keychain."""
    answer = input("\nStore these credentials in the keychain? [Y/n] ").strip().lower()
    if answer in ("", "y", "yes"):
        for key, value in credentials.items():
            if credential_manager.set_credential(key, value):
                print(f"  Stored {key} ({credential_manager.mask_credential(key, value)}) in keychain")
            else:
                print(f"  Failed to store {key}")
    else:
        print("  Skipped keychain storage.")


def build_connect_url(public_id: str, private_key: str, base_url: str, redirect_uri: str) -> str | None:
    """Build the Connect URL the portal would hand to patients with these keys."""
    client = FastenConnectClient(
        FastenCredentials(
            public_id=public_id,
            private_key=private_key,
            base_url=normalize_base_url(base_url),
        )
    )
    return client.get_connect_url(redirect_uri)


def main():
    """Prompt for credentials and store them."""
    print("Fasten Connect Setup")
    print("=" * 50)
    print()

    public_id = input("Enter your Fasten public id: ").strip()
    if not public_id:
        print("Error: No public id provided")
        sys.exit(1)

    private_key = input("Enter your Fasten private key: ").strip()
    if not private_key:
        print("Error: No private key provided")
        sys.exit(1)

    webhook_secret = input("Enter your webhook secret (blank to skip): ").strip()

    credentials = {"FASTEN_PUBLIC_ID": public_id, "FASTEN_PRIVATE_KEY": private_key}
    if webhook_secret:
        credentials["FASTEN_WEBHOOK_SECRET"] = webhook_secret
    problems = credential_manager.credential_problems(credentials)
    if problems:
        for problem in problems:
            print(f"Error: {problem}")
        sys.exit(1)
    mode = credential_manager.key_mode("FASTEN_PUBLIC_ID", public_id)
    print(f"Using {mode} keys")

    base_url = input("Fasten API base URL [https://api.connect.fastenhealth.com/v1]: ").strip()

    load_dotenv(Path(__file__).parent.parent / ".env")
    frontend_url = os.environ.get("FRONTEND_URL", DEFAULT_FRONTEND_URL).rstrip("/")
    connect_url = build_connect_url(public_id, private_key, base_url, frontend_url + CONNECT_CALLBACK_PATH)
    print()
    print(f"Connect URL for {frontend_url}:")
    print(f"  {connect_url}")
    if not webhook_secret:
        print()
        print("Warning: without FASTEN_WEBHOOK_SECRET, webhooks are rejected unless")
        print("FASTEN_ALLOW_UNSIGNED_WEBHOOKS=true is set (local development only).")

    _offer_keychain_store(credentials)

    if base_url:
        print()
        print("Add the following to your .env file:")
        print(f"FASTEN_BASE_URL={normalize_base_url(base_url)}")


if __name__ == "__main__":
    main()
