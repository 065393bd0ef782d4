"""Run-level failures.

Field and record problems never surface here: they become ``None`` values,
sentinels or rejected records. Only structural failures abort a run.
"""
from __future__ import annotations


class PipelineError(RuntimeError):
    """Base class for failures that abort a pipeline run."""


class SourceUnavailableError(PipelineError):
    """Raised when the raw record source cannot be read."""


class StoreWriteError(PipelineError):
    """Raised when the typed record store cannot be replaced."""
