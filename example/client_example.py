"""
Send a transaction through a locally running gateway.

    uv run python example/client_example.py <api_key> <api_secret>
"""
import sys

import httpx

GATEWAY_URL = "http://localhost:8000"
CHAIN_ID = 11155111


def main(api_key: str, api_secret: str):
    payload = {
        "jsonrpc": "2.0",
        "id": 1,
        "method": "eth_sendTransaction",
        "params": [{
            "to": "0x5FbDB2315678afecb367f032d93F642f64180aa3",
            "data": "0x",
            "value": "0",
            "gas": "21000",
            "maxPriorityFeePerGas": "1000000000",
            "maxFeePerGas": "30000000000",
        }],
    }
    response = httpx.post(
        f"{GATEWAY_URL}/{api_key}/{CHAIN_ID}",
        json=payload,
        headers={"Authorization": f"Bearer {api_secret}"},
        timeout=30.0,
    )
    return response.json()


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print("Usage: client_example.py <api_key> <api_secret>")
        sys.exit(1)
    print(main(sys.argv[1], sys.argv[2]))
