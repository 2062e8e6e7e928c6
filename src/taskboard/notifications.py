"""Deliver completion notices recorded in the notification outbox.

Senders are pluggable: anything implementing :class:`NotificationSender`
can deliver a message.  The dispatcher owns the outbox bookkeeping and is
the boundary at which delivery failures are caught.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable

from loguru import logger

from .board.model import NotificationRecord, NotificationStatus, now_iso
from .storage.interfaces import OutboxRepository


class NotificationSender(ABC):
    """Transport for a single message."""

    @abstractmethod
    def send(self, to_email: str, subject: str, body: str) -> bool:
        """Deliver one message.

        Args:
            to_email: Recipient address.
            subject: Message subject line.
            body: Plain-text body.

        Returns:
            True when the transport accepted the message.
        """
        raise NotImplementedError


class LoggingNotificationSender(NotificationSender):
    """Write messages to the log instead of a mail transport."""

    def send(self, to_email: str, subject: str, body: str) -> bool:
        logger.info("Notification to {}: {}\n{}", to_email, subject, body)
        return True


class NotificationDispatcher:
    """Move outbox records from ``pending`` through ``sending`` to ``sent`` or ``failed``.

    A record is claimed in the outbox before the sender sees it, so a record
    is handed to the transport at most once even if the final status write
    fails or two dispatchers race on ``dispatch_pending``.
    """

    def __init__(
        self,
        outbox: OutboxRepository,
        sender: NotificationSender,
        *,
        inline: bool = True,
        enabled: bool = True,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            outbox: Repository holding notification records.
            sender: Transport used for delivery.
            inline: Deliver immediately after recording; otherwise leave
                records pending for :meth:`dispatch_pending`.
            enabled: When false, notices are dropped without being recorded.
        """
        self.outbox = outbox
        self.sender = sender
        self.inline = inline
        self.enabled = enabled

    def publish(self, records: Iterable[NotificationRecord]) -> list[NotificationRecord]:
        """Record notices in the outbox and, when inline, deliver them."""
        records = list(records)
        if not self.enabled:
            logger.debug("Notifications disabled; dropping {} notice(s)", len(records))
            return []
        for record in records:
            self.outbox.append(record)
            if self.inline:
                self.dispatch(record)
        return records

    def dispatch(self, record: NotificationRecord) -> bool:
        """Attempt delivery once. Never raises for transport failures.

        Returns:
            True when the sender accepted the message.
        """
        if not self.outbox.claim(record.id):
            logger.debug("Notification {} already claimed; skipping", record.id)
            return False
        record.status = NotificationStatus.SENDING

        try:
            delivered = bool(self.sender.send(record.to_email, record.subject, record.body))
            error = None if delivered else "sender rejected message"
        except Exception as e:
            delivered = False
            error = f"{e.__class__.__name__}: {e}"

        if delivered:
            record.status = NotificationStatus.SENT
            record.sent_at = now_iso()
            record.error = None
            logger.debug("Notification {} sent to {}", record.id, record.to_email)
        else:
            record.status = NotificationStatus.FAILED
            record.error = error
            logger.warning("Failed to send notification {} for task {}: {}", record.id, record.task_id, error)

        try:
            self.outbox.upsert(record)
        except Exception:
            # The claim already took the record out of the pending set.
            logger.exception("Could not record status {} for notification {}", record.status.value, record.id)
        return delivered

    def dispatch_pending(self) -> int:
        """Deliver every pending record. Failed records are not retried.

        Returns:
            Number of records delivered successfully.
        """
        if not self.enabled:
            return 0
        return sum(1 for record in self.outbox.pending() if self.dispatch(record))
