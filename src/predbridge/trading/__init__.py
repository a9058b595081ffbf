"""Trade execution against the settlement chain."""
