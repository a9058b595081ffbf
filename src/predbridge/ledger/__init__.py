"""Off-chain shadow ledger."""
