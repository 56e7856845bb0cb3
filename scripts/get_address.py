#!/usr/bin/env python3
"""Print the public address of a signing key."""

import argparse
import sys

from tx_relay.servers.security import address_from_private_key


def main():
    parser = argparse.ArgumentParser(description="Derive the address of a private key")
    parser.add_argument("private_key", type=str, help="0x-prefixed private key")

    args = parser.parse_args()

    try:
        address = address_from_private_key(args.private_key)
    except ValueError as e:
        print(e)
        sys.exit(1)
    print(f"Public address: {address}")


if __name__ == "__main__":
    main()
