"""
Error taxonomy for the issuer service.

Every error raised by the core carries the HTTP status it maps to and a
list of human-readable messages.  The application factory registers a
single handler that renders any :class:`IssuerError` as::

    {"errors": ["...", "..."]}

with ``status_code`` as the response status.
"""

from __future__ import annotations

from collections.abc import Iterable


class IssuerError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500

    def __init__(self, messages: str | Iterable[str]) -> None:
        if isinstance(messages, str):
            messages = [messages]
        self.messages: list[str] = list(messages)
        super().__init__("; ".join(self.messages))


class ValidationError(IssuerError):
    """
    A role write or sign request failed schema or reserved-claim checks.

    Messages are kept in the order they were given; callers that aggregate
    several checks sort them before raising.
    """

    status_code = 400


class NotFoundError(IssuerError):
    """A referenced role or key id does not exist."""

    status_code = 404


class InternalError(IssuerError):
    """Storage or key-generation failure."""

    status_code = 500
