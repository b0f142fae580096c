"""job_scout.errors: exception hierarchy shared by the crawl pipeline.

Only *transient* failures are meant to escape a job: the queue backend retries
them with backoff. Unreachable pages and malformed classifier output are
handled in place and never raise.
"""
from __future__ import annotations

__all__ = ["JobScoutError", "TransientError", "ClassifierError", "BrowserLaunchError"]


class JobScoutError(Exception):
    """Base class for all project errors."""


class TransientError(JobScoutError):
    """Failure expected to go away on retry (timeouts, lost render context)."""


class ClassifierError(TransientError):
    """The classification service could not be reached or answered with an error."""


class BrowserLaunchError(JobScoutError):
    """The headless browser could not be started at all."""
