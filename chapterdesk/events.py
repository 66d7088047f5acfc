"""Transition events, sent only after the transaction commits."""
from dataclasses import dataclass, field

from blinker import Namespace

_signals = Namespace()

chapter_event = _signals.signal("chapter-event")

CHAPTER_CREATED = "chapter.created"
CHAPTER_OPENED = "chapter.opened"
BID_SUBMITTED = "bid.submitted"
BID_REJECTED = "bid.rejected"
WRITER_ASSIGNED = "writer.assigned"
WRITER_REASSIGNED = "writer.reassigned"
STATUS_CHANGED = "chapter.status_changed"
CONTENT_UPDATED = "chapter.content_updated"
CHAPTER_DELIVERED = "chapter.delivered"
CHAPTER_FINALIZED = "chapter.finalized"
DEADLINE_EXTENDED = "chapter.deadline_extended"
COST_UPDATED = "chapter.cost_updated"
PAYMENT_CREATED = "payment.created"
PAYMENT_COMPLETED = "payment.completed"
PAYMENT_FAILED = "payment.failed"
PAYMENT_REFUNDED = "payment.refunded"
PAYMENT_DISPUTED = "payment.disputed"
PAYMENT_DISPUTE_RESOLVED = "payment.dispute_resolved"
PAYMENT_UPDATED = "payment.updated"
REVISION_REQUESTED = "revision.requested"
REVISION_SUBMITTED = "revision.submitted"
WORK_RESUMED = "work.resumed"


@dataclass(frozen=True)
class ChapterEvent:
    kind: str
    chapter_id: int
    payload: dict = field(default_factory=dict)


def publish(events, sender=None):
    for event in events:
        chapter_event.send(sender, event=event)
