from __future__ import annotations


class RelayError(Exception):
    """Base class for relay errors that never take the process down."""


class MalformedEventError(RelayError):
    """An inbound event is missing a required field or names an unknown event."""

    def __init__(self, event: str, detail: str) -> None:
        super().__init__(f"{event}: {detail}")
        self.event = event
        self.detail = detail


class AttachmentError(RelayError):
    """The attachment service could not turn a payload into a URL."""
