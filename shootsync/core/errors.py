"""Domain errors raised before any write happens.

Conflicts are not errors; they come back as data from the scheduler.
Calendar provider failures live in shootsync.ports.calendar_port.
"""

from __future__ import annotations


class InvalidInput(ValueError):
    """A request failed validation. Nothing was written."""


class InvalidInterval(InvalidInput):
    """A proposed [start, end) interval is empty or inverted."""


class NotFound(LookupError):
    """A referenced client or shoot does not exist."""


class IntegrationNotConnected(NotFound):
    """The owner has no connected calendar integration."""
