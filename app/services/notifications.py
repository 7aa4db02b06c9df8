"""Outbound notification port.

Contract: best-effort and non-blocking. Business operations call ``dispatch``
after their transaction has committed; a failing notifier is logged and never
turns a committed operation into an error.
"""
import logging

from sqlalchemy.orm import Session, sessionmaker

from app.db.session import SessionLocal
from app.services.email_service import queue_email
from app.services.email_templates import Mail

logger = logging.getLogger(__name__)


class Notifier:
    def notify(self, to_email: str, subject: str, html: str, related_ref: str = "") -> None:
        raise NotImplementedError


class EmailQueueNotifier(Notifier):
    """Writes to the email outbox in its own session and hands delivery to the worker."""

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self.session_factory = session_factory

    def notify(self, to_email: str, subject: str, html: str, related_ref: str = "") -> None:
        db: Session = self.session_factory()
        try:
            eid = queue_email(db, to_email, subject, html, related_ref)
        finally:
            db.close()
        try:
            from app.tasks.jobs import deliver_email

            deliver_email.delay(eid)
        except Exception:
            # Row stays queued; process_email_queue picks it up on the next beat.
            logger.warning("could not enqueue delivery of email %s", eid, exc_info=True)


def dispatch(notifier: Notifier, to_email: str, mail: Mail, related_ref: str = "") -> None:
    try:
        notifier.notify(to_email, mail.subject, mail.html, related_ref)
    except Exception:
        logger.exception("notification %r to %s failed", mail.subject, to_email)


_notifier: Notifier | None = None


def get_notifier() -> Notifier:
    global _notifier
    if _notifier is None:
        _notifier = EmailQueueNotifier()
    return _notifier
