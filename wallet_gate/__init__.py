"""Token-gated Discord roles behind a wallet signature challenge."""

__version__ = "0.1.0"
