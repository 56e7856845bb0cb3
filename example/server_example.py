"""
Run the relay gateway locally.

Reads API_SECRETS, CHAIN_RPC_MAP, ETH_PRIVATE_KEY and the optional policy
variables from the environment or a ``.env`` file in the working directory.

    uv run python example/server_example.py
"""
from tx_relay.config import GatewayConfig, configure_logging
from tx_relay.servers import RelayServer
from tx_relay.engine.events import RelaySucceededEvent, RelayFailedEvent


configure_logging("INFO")
config = GatewayConfig.from_env()

app = RelayServer(
    config=config,
    title="Transaction Relay",
)


# Optional: Add event hooks for custom logic
@app.hook(RelaySucceededEvent)
async def on_relayed(event, deps):
    """Print every successful reply."""
    print(f"✅ Request {event.request_id}: {event.result}")

@app.hook(RelayFailedEvent)
async def on_failed(event, deps):
    """Print every rejected request."""
    print(f"❌ Request {event.request_id}: {event.error.message}")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="localhost", port=8000, log_level="info")
