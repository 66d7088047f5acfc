from contextlib import contextmanager

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from chapterdesk.errors import ChapterNotFound, ConcurrentModification, PaymentNotFound
from chapterdesk.events import ChapterEvent, publish
from chapterdesk.extensions import db
from chapterdesk.models import AuditEntry, Chapter, PaymentRecord


def _lost_swap(chapter_id):
    return ConcurrentModification(f"Chapter {chapter_id} was modified concurrently; reload and retry")


class ChapterUnitOfWork:
    def __init__(self, session, chapter, actor_id=None):
        self.session = session
        self.chapter = chapter
        self.actor_id = actor_id
        self.version = chapter.version
        self.claimed = False
        self.events = []

    def claim(self, *statuses):
        """Swap the chapter version now instead of at commit."""
        if self.claimed:
            return
        stmt = update(Chapter).where(Chapter.id == self.chapter.id, Chapter.version == self.version)
        if statuses:
            stmt = stmt.where(Chapter.status.in_(statuses))
        swapped = self.session.execute(
            stmt.values(version=self.version + 1).execution_options(synchronize_session=False)
        )
        if swapped.rowcount != 1:
            raise _lost_swap(self.chapter.id)
        self.claimed = True

    def emit(self, kind, **payload):
        self.events.append(ChapterEvent(kind=kind, chapter_id=self.chapter.id, payload=payload))

    def audit(self, action, detail=None, from_status=None, to_status=None, payment=None):
        self.session.add(
            AuditEntry(
                chapter_id=self.chapter.id,
                payment_id=payment.id if payment is not None else None,
                actor_id=self.actor_id,
                action=action,
                from_status=from_status,
                to_status=to_status,
                detail=detail,
            )
        )

    def move_to(self, status, action, detail=None):
        previous = self.chapter.status
        self.chapter.status = status
        self.audit(action, detail=detail, from_status=previous, to_status=status)
        return previous


def get_chapter(chapter_id):
    chapter = db.session.get(Chapter, chapter_id)
    if chapter is None:
        raise ChapterNotFound(f"Chapter {chapter_id} not found")
    return chapter


def get_payment(payment_id):
    payment = db.session.get(PaymentRecord, payment_id)
    if payment is None:
        raise PaymentNotFound(f"Payment {payment_id} not found")
    return payment


@contextmanager
def chapter_transaction(chapter_id, expected_version=None, actor_id=None, compare_version=True):
    session = db.session
    chapter = get_chapter(chapter_id)
    version = chapter.version
    if expected_version is not None and int(expected_version) != version:
        raise ConcurrentModification(
            f"Chapter {chapter_id} is at version {version}, not {expected_version}"
        )
    uow = ChapterUnitOfWork(session, chapter, actor_id=actor_id)
    try:
        yield uow
        if compare_version and not uow.claimed:
            uow.claim()
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise _lost_swap(chapter_id) from exc
    except Exception:
        session.rollback()
        raise
    current_app.logger.debug(
        "Chapter %s committed (%d events)", chapter_id, len(uow.events)
    )
    publish(uow.events, sender=current_app._get_current_object())
