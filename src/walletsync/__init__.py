"""Wallet-keyed user state synchronization and analytics."""

__version__ = "0.1.0"
