"""Settlement-chain access: validation, providers, wallet, escrow shapes, version detection."""
