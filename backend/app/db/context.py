"""Request context for per-user ownership checks."""

from dataclasses import dataclass


@dataclass(frozen=True)
class RequestContext:
    """Identity of the caller.

    Used to scope questions, progress and generation sessions to their owner.
    """

    user_id: str
