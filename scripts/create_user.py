#!/usr/bin/env python3
"""
Script to create a password account interactively.

Usage:
    python scripts/create_user.py
    python scripts/create_user.py user@example.com --first-name Ada --last-name Lovelace
"""

import argparse
import getpass
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from multiauth.services import AuthEngine
from multiauth.auth.resolvers import Strategy


def main():
    parser = argparse.ArgumentParser(description="Create a new password account")
    parser.add_argument("email", nargs="?", help="Email address")
    parser.add_argument("--first-name", "-f", help="First name")
    parser.add_argument("--last-name", "-l", help="Last name")
    parser.add_argument("--phone", "-p", help="Phone number (optional)")
    args = parser.parse_args()

    engine = AuthEngine.create()

    email = args.email or input("Email: ").strip()
    if not email:
        print("❌ Email is required!")
        sys.exit(1)

    password = getpass.getpass("Enter password: ")
    confirm = getpass.getpass("Confirm password: ")
    if password != confirm:
        print("❌ Passwords do not match!")
        sys.exit(1)

    first_name = args.first_name or input("First name: ").strip()
    last_name = args.last_name or input("Last name: ").strip()
    phone = args.phone or input("Phone (optional, press Enter to skip): ").strip() or None

    payload = {
        "email": email,
        "password": password,
        "first_name": first_name,
        "last_name": last_name,
    }
    if phone:
        payload["phone"] = phone

    result = engine.register(Strategy.PASSWORD, payload)
    if not result.success:
        print(f"❌ Failed to create user: {result.error.message}")
        sys.exit(1)

    account = result.account
    print()
    print("✅ User created successfully!")
    print(f"   Email: {account.email}")
    print(f"   Account ID: {account.account_id}")
    print(f"   Name: {account.first_name} {account.last_name}")
    if account.phone:
        print(f"   Phone: {account.phone}")


if __name__ == "__main__":
    main()
