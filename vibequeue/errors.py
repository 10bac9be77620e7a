"""
Error taxonomy shared by the engines, the API and the CLI.

"Nothing to do yet" outcomes (empty queue, no play history, unresolvable
seeds, coalesced reranks) are statuses on successful results, not exceptions.
"""
import asyncio


class VibeQueueError(Exception):
    """Base class for all VibeQueue errors."""
    retryable = False


class InvalidInput(VibeQueueError, ValueError):
    """A required identifier or argument is missing or malformed."""


class UpstreamFailure(VibeQueueError):
    """A whole-batch call to the queue store or candidate source failed or timed out."""
    retryable = True

    def __init__(self, operation: str, cause: Exception = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None and str(cause) else ""
        if isinstance(cause, (TimeoutError, asyncio.TimeoutError)):
            detail = " (timed out)"
        super().__init__(f"{operation} failed{detail}")
