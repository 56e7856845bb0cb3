#!/usr/bin/env python3
"""Generate API key/secret pairs in the API_SECRETS format."""

import argparse
import json

from tx_relay.servers.security import create_api_credentials, save_key_to_env


def main():
    parser = argparse.ArgumentParser(description="Generate gateway API credentials")
    parser.add_argument("count", type=int, help="Number of key/secret pairs")
    parser.add_argument("--env-file", type=str,
                       help="Write the pairs to API_SECRETS in this .env file instead of printing")

    args = parser.parse_args()
    if args.count < 1:
        parser.error("count must be at least 1")

    credentials = json.dumps(create_api_credentials(args.count))
    s = "" if args.count == 1 else "s"
    if args.env_file:
        save_key_to_env("API_SECRETS", f"'{credentials}'", env_file=args.env_file)
        print(f"{args.count} API key{s} and secret{s} written to {args.env_file}")
    else:
        print(credentials)


if __name__ == "__main__":
    main()
