"""Error taxonomy for the dealer scan."""
from __future__ import annotations

from typing import Any


class ScanError(Exception):
    """Base class for scan failures."""


class AlreadyRunning(ScanError):
    """Raised when a scan is requested while another one is still in flight."""

    def __init__(self, snapshot: Any) -> None:
        super().__init__("A scraping job is already in progress")
        self.snapshot = snapshot


class InvalidInput(ScanError, ValueError):
    """Raised for a malformed sparsify factor, ZIP code or work list."""


class ResolveError(ScanError):
    """Raised when dealers for one ZIP code could not be retrieved."""


class NetworkError(ResolveError):
    """Transport failure or unexpected HTTP status."""


class ParseError(ResolveError):
    """Response body was not the JSON payload the locator normally returns."""


class BlockedError(ResolveError):
    """Response looks like an anti-automation page or a non-success API code."""


class WriteError(ScanError):
    """Raised when a batch of dealers could not be appended to the output file."""


class InvariantViolation(ScanError):
    """Raised when the job tracker detects an orchestration defect."""
