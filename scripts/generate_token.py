#!/usr/bin/env python3
"""
Generate a signing secret and a bearer token for AUTH_MODE=jwt.
Copy the secret to your .env file and send the token as
`Authorization: Bearer <token>`.
"""

import argparse
import os
import secrets

from rxportal.api.auth import generate_token
from rxportal.config import ROLES

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--role", choices=ROLES, required=True)
    parser.add_argument("--user-id", type=int, required=True)
    args = parser.parse_args()

    print("=" * 60)
    print("Prescription Portal Token Generator")
    print("=" * 60)

    secret_key = os.getenv("JWT_SECRET_KEY")
    if not secret_key:
        secret_key = secrets.token_hex(32)
        print("\nNo JWT_SECRET_KEY set; generated a new one:\n")
        print(f"JWT_SECRET_KEY={secret_key}")

    print(f"\nToken for role={args.role} user_id={args.user_id}:\n")
    print(generate_token(args.role, args.user_id, secret_key))
    print("\n" + "=" * 60)
