#!/usr/bin/env python3
"""Generate a fresh signing key for the gateway."""

import argparse

from tx_relay.servers.security import address_from_private_key, create_private_key, save_key_to_env


def main():
    parser = argparse.ArgumentParser(description="Generate a gateway signing key")
    parser.add_argument("--env-file", type=str,
                       help="Write the key to ETH_PRIVATE_KEY in this .env file instead of printing")

    args = parser.parse_args()

    private_key = create_private_key()
    if args.env_file:
        save_key_to_env("ETH_PRIVATE_KEY", private_key, env_file=args.env_file)
        print(f"Private key written to {args.env_file}")
    else:
        print(private_key)
    print(f"Public address: {address_from_private_key(private_key)}")


if __name__ == "__main__":
    main()
