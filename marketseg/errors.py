"""Failure taxonomy shared by every stage of the segmentation pipeline."""
from __future__ import annotations


class SegmentationError(Exception):
    """Base class for all pipeline failures."""


class ConfigError(SegmentationError):
    """Missing or invalid credentials. Fatal, never retried."""


class RateLimitError(SegmentationError):
    """Provider refused the call because of request quota."""

    status_code = 429


class OverloadedError(SegmentationError):
    """Provider is temporarily overloaded."""


class RequestError(SegmentationError):
    """Provider rejected the request as malformed or too large."""


class ProviderError(SegmentationError):
    """Any other upstream failure."""


class ParseError(SegmentationError):
    """No recoverable JSON could be salvaged from model output."""

    def __init__(self, message: str, *, preview: str = ""):
        super().__init__(message)
        self.preview = preview


class SearchFailure(SegmentationError):
    """A single search attempt failed. Never escapes the search client."""


class StageError(SegmentationError):
    """A stage failed with no safe substitute; aborts the run."""

    def __init__(self, stage: str, message: str):
        super().__init__(message)
        self.stage = stage
