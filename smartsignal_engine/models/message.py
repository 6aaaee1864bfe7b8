"""Inbound message model."""

from dataclasses import dataclass


@dataclass(frozen=True)
class InboundMessage:
    """Raw message delivered by the messaging collaborator.

    Image attachments arrive already converted to text (``attachment_text``).
    """

    text: str
    message_id: str
    attachment_text: str | None = None
    channel_id: str | None = None

    @property
    def full_text(self) -> str:
        """Message text followed by any attachment text."""
        if self.attachment_text:
            return f"{self.text}\n{self.attachment_text}" if self.text else self.attachment_text
        return self.text
