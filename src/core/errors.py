"""Exception types raised by adapters at the core's port boundary."""

from __future__ import annotations


class SanitizerError(Exception):
    """Base class for history-sanitizer errors."""


class StoreError(SanitizerError):
    """The persisted state store could not be read or written."""


class HistoryDeletionError(SanitizerError):
    """The history store refused or failed a deletion."""
