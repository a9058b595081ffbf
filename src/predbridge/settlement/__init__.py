"""Payout arithmetic and claims."""
