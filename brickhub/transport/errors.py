# brickhub/transport/errors.py
from __future__ import annotations


class TransportError(Exception):
    """Base class for transport-layer failures."""


class TransportOpenError(TransportError):
    """The hub endpoint could not be opened (missing or busy)."""


class TransportIOError(TransportError):
    """Read/write on an open endpoint failed; the link should be treated as lost."""
