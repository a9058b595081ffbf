"""Resolution: resolution-chain client, bridge into settlement, persisted sub-state."""
