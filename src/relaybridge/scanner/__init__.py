"""Deposit watching on source chains."""

from relaybridge.scanner.watcher import DepositTimeoutError, DepositWatcher

__all__ = ["DepositWatcher", "DepositTimeoutError"]
