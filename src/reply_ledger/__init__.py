"""Reply Ledger: AI reply pipeline with on-chain proof of every reply."""

__version__ = "0.1.0"
