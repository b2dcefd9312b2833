from __future__ import annotations


class StructscanError(Exception):
    """Base class for all errors raised by the engine."""


class SelectorError(StructscanError):
    """A locator expression could not be evaluated against the tree."""

    def __init__(self, expression: str, reason: str = "") -> None:
        self.expression = expression
        self.reason = reason
        message = f"invalid selector {expression!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ExtractionError(StructscanError):
    """The evaluation path chosen for an extraction failed."""


class WorkerError(StructscanError):
    """A post-processing job failed inside a pooled worker."""


class TreeAccessError(StructscanError):
    """The document tree is unreachable (unknown target, closed tree, failed fetch)."""


class ConfigError(StructscanError, ValueError):
    """A request configuration is malformed."""


class UnknownProcessorError(ConfigError):
    """A post-processor name is not part of the closed processor table."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown processor: {name}")
