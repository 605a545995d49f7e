"""
Exception taxonomy for the scan engine.

Validation errors are raised synchronously to the caller before any job
exists. Adapter errors describe a single tool's failure; the orchestrator
decides whether they are fatal (async job mode) or recorded per tool
(aggregate mode).
"""
from typing import List, Optional


class ScanError(Exception):
    """Base class for all scan engine errors."""


class TargetValidationError(ScanError):
    """Target is missing, malformed, or points at a disallowed network."""


class UnknownTool(ScanError):
    """Requested tool identifier is not registered."""

    def __init__(self, tool: str):
        super().__init__(f"Unknown tool selected: {tool}")
        self.tool = tool


class AdapterError(ScanError):
    """A tool adapter failed to produce output."""

    def __init__(self, message: str, tool: Optional[str] = None):
        super().__init__(message)
        self.tool = tool


class AdapterTimeout(AdapterError):
    pass


class AdapterEmptyResult(AdapterError):
    pass


class AdapterOutputLimitExceeded(AdapterError):
    pass


class AdapterExecutionError(AdapterError):
    pass


class TargetResolutionError(AdapterError):
    pass


class AllToolsFailed(ScanError):
    """Every tool in an aggregate run failed."""

    def __init__(self, errors: List[str]):
        super().__init__(f"All scans failed: {'; '.join(errors)}")
        self.errors = list(errors)
