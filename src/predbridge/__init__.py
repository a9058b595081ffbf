"""predbridge - cross-venue resolution and settlement for binary prediction markets."""

__version__ = "0.1.0"
