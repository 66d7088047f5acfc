"""Typed commands for every chapter action, routed by ``handle``."""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from functools import singledispatch
from typing import Optional, Tuple

from chapterdesk import bidding, lifecycle, payments, revisions
from chapterdesk.errors import InvalidInput
from chapterdesk.models import Bid, Chapter, PaymentRecord
from chapterdesk.repository import get_chapter


@dataclass
class Outcome:
    chapter: Chapter
    message: str
    bid: Optional[Bid] = None
    payment: Optional[PaymentRecord] = None

    def to_dict(self, now=None):
        payload = {"ok": True, "message": self.message, "chapter": self.chapter.to_dict(now)}
        if self.bid is not None:
            payload["bid"] = self.bid.to_dict()
        if self.payment is not None:
            payload["payment"] = self.payment.to_dict(now)
        return payload


@dataclass(frozen=True)
class CreateChapter:
    student_id: int
    title: str
    level: str = "masters"
    work_type: str = "coursework"
    urgency: str = "normal"
    target_word_count: int = 2000
    chapter_number: int = 1
    summary: Optional[str] = None
    deadline: Optional[datetime] = None
    open_for_bidding: Optional[bool] = None


@dataclass(frozen=True)
class OpenForBidding:
    chapter_id: int
    actor_id: Optional[int] = None
    expected_version: Optional[int] = None


@dataclass(frozen=True)
class SubmitBid:
    chapter_id: int
    writer_id: int
    amount: Decimal
    estimated_days: Optional[int] = None
    message: Optional[str] = None


@dataclass(frozen=True)
class AcceptBid:
    chapter_id: int
    bid_id: int
    actor_id: Optional[int] = None
    expected_version: Optional[int] = None


@dataclass(frozen=True)
class RejectBid:
    chapter_id: int
    bid_id: int
    actor_id: Optional[int] = None
    expected_version: Optional[int] = None



@dataclass(frozen=True)
class AssignWriter:
    chapter_id: int
    writer_id: int
    actor_id: Optional[int] = None
    expected_version: Optional[int] = None


@dataclass(frozen=True)
class ReassignWriter:
    chapter_id: int
    writer_id: int
    reason: Optional[str] = None
    actor_id: Optional[int] = None
    expected_version: Optional[int] = None


@dataclass(frozen=True)
class ChangeStatus:
    chapter_id: int
    new_status: str
    reason: Optional[str] = None
    actor_id: Optional[int] = None
    expected_version: Optional[int] = None


@dataclass(frozen=True)
class Deliver:
    chapter_id: int
    actor_id: Optional[int] = None
    expected_version: Optional[int] = None


@dataclass(frozen=True)
class Finalize:
    chapter_id: int
    actor_id: Optional[int] = None
    expected_version: Optional[int] = None


@dataclass(frozen=True)
class AddContent:
    chapter_id: int
    content: str
    changes: Optional[str] = None
    actor_id: Optional[int] = None
    expected_version: Optional[int] = None


@dataclass(frozen=True)
class ExtendDeadline:
    chapter_id: int
    new_deadline: datetime
    actor_id: Optional[int] = None
    expected_version: Optional[int] = None


@dataclass(frozen=True)
class UpdateCost:
    chapter_id: int
    amount: Decimal
    actor_id: Optional[int] = None
    expected_version: Optional[int] = None


@dataclass(frozen=True)
class CreatePayment:
    chapter_id: int
    payment_method: Optional[str] = None
    payer_id: Optional[int] = None
    actor_id: Optional[int] = None
    expected_version: Optional[int] = None


@dataclass(frozen=True)
class MarkPaid:
    payment_id: int
    transaction_reference: Optional[str] = None
    actor_id: Optional[int] = None
    expected_version: Optional[int] = None


@dataclass(frozen=True)
class RefundPayment:
    payment_id: int
    reason: str
    actor_id: Optional[int] = None
    expected_version: Optional[int] = None


@dataclass(frozen=True)
class DisputePayment:
    payment_id: int
    reason: str
    actor_id: Optional[int] = None
    expected_version: Optional[int] = None


@dataclass(frozen=True)
class ResolveDispute:
    payment_id: int
    resolution: str
    note: Optional[str] = None
    actor_id: Optional[int] = None
    expected_version: Optional[int] = None


@dataclass(frozen=True)
class MarkPaymentFailed:
    payment_id: int
    reason: str
    actor_id: Optional[int] = None
    expected_version: Optional[int] = None


@dataclass(frozen=True)
class ExtendDueDate:
    payment_id: int
    new_due_date: datetime
    reason: Optional[str] = None
    actor_id: Optional[int] = None
    expected_version: Optional[int] = None


@dataclass(frozen=True)
class UpdatePaymentAmount:
    payment_id: int
    new_amount: Decimal
    reason: Optional[str] = None
    actor_id: Optional[int] = None
    expected_version: Optional[int] = None


@dataclass(frozen=True)
class RequestRevision:
    chapter_id: int
    notes: str
    override: bool = False
    actor_id: Optional[int] = None
    expected_version: Optional[int] = None


@dataclass(frozen=True)
class SubmitRevision:
    chapter_id: int
    notes: str
    content: Optional[str] = None
    file_refs: Tuple[str, ...] = field(default_factory=tuple)
    actor_id: Optional[int] = None
    expected_version: Optional[int] = None


@dataclass(frozen=True)
class ResumeWork:
    chapter_id: int
    actor_id: Optional[int] = None
    expected_version: Optional[int] = None


@singledispatch
def handle(command):
    raise InvalidInput(f"Unsupported command {type(command).__name__}")


@handle.register
def _(command: CreateChapter):
    chapter = lifecycle.create_chapter(
        command.student_id,
        command.title,
        level=command.level,
        work_type=command.work_type,
        urgency=command.urgency,
        target_word_count=command.target_word_count,
        chapter_number=command.chapter_number,
        summary=command.summary,
        deadline=command.deadline,
        open_for_bidding=command.open_for_bidding,
    )
    return Outcome(chapter, f"Chapter created ({chapter.status}).")


@handle.register
def _(command: OpenForBidding):
    chapter = lifecycle.open_for_bidding(command.chapter_id, command.expected_version, command.actor_id)
    return Outcome(chapter, "Chapter is open for bidding.")


@handle.register
def _(command: SubmitBid):
    bid = bidding.submit_bid(
        command.chapter_id,
        command.writer_id,
        command.amount,
        estimated_days=command.estimated_days,
        message=command.message,
    )
    return Outcome(get_chapter(command.chapter_id), "Bid submitted.", bid=bid)


@handle.register
def _(command: AcceptBid):
    chapter, bid = bidding.accept_bid(command.chapter_id, command.bid_id, command.expected_version, command.actor_id)
    return Outcome(chapter, "Bid accepted and writer assigned.", bid=bid)


@handle.register
def _(command: RejectBid):
    chapter, bid = bidding.reject_bid(command.chapter_id, command.bid_id, command.expected_version, command.actor_id)
    return Outcome(chapter, "Bid rejected.", bid=bid)



@handle.register
def _(command: AssignWriter):
    chapter = bidding.assign_writer(command.chapter_id, command.writer_id, command.expected_version, command.actor_id)
    return Outcome(chapter, "Writer assigned.", bid=chapter.accepted_bid)


@handle.register
def _(command: ReassignWriter):
    chapter = bidding.reassign_writer(
        command.chapter_id, command.writer_id, command.reason, command.expected_version, command.actor_id
    )
    return Outcome(chapter, "Writer reassigned.", bid=chapter.accepted_bid)


@handle.register
def _(command: ChangeStatus):
    chapter = lifecycle.change_status(
        command.chapter_id, command.new_status, command.reason, command.expected_version, command.actor_id
    )
    return Outcome(chapter, f"Status changed to {chapter.status}.")


@handle.register
def _(command: Deliver):
    chapter = lifecycle.deliver(command.chapter_id, command.expected_version, command.actor_id)
    return Outcome(chapter, "Chapter delivered.")


@handle.register
def _(command: Finalize):
    chapter = lifecycle.finalize(command.chapter_id, command.expected_version, command.actor_id)
    return Outcome(chapter, "Chapter finalized.")


@handle.register
def _(command: AddContent):
    chapter = lifecycle.add_content(
        command.chapter_id, command.content, command.changes, command.expected_version, command.actor_id
    )
    return Outcome(chapter, f"Content saved ({chapter.word_count} words).")


@handle.register
def _(command: ExtendDeadline):
    chapter = lifecycle.extend_deadline(
        command.chapter_id, command.new_deadline, command.expected_version, command.actor_id
    )
    return Outcome(chapter, "Deadline extended.")


@handle.register
def _(command: UpdateCost):
    chapter = lifecycle.update_cost(command.chapter_id, command.amount, command.expected_version, command.actor_id)
    return Outcome(chapter, "Estimated cost updated.")


@handle.register
def _(command: CreatePayment):
    payment = payments.create_payment(
        command.chapter_id,
        payment_method=command.payment_method,
        payer_id=command.payer_id,
        expected_version=command.expected_version,
        actor_id=command.actor_id,
    )
    return Outcome(payment.chapter, "Payment created.", payment=payment)


@handle.register
def _(command: MarkPaid):
    payment = payments.mark_paid(
        command.payment_id, command.transaction_reference, command.expected_version, command.actor_id
    )
    return Outcome(payment.chapter, "Payment marked as paid.", payment=payment)


@handle.register
def _(command: RefundPayment):
    payment = payments.refund(command.payment_id, command.reason, command.expected_version, command.actor_id)
    return Outcome(payment.chapter, "Payment refunded.", payment=payment)


@handle.register
def _(command: DisputePayment):
    payment = payments.dispute(command.payment_id, command.reason, command.expected_version, command.actor_id)
    return Outcome(payment.chapter, "Payment disputed.", payment=payment)


@handle.register
def _(command: ResolveDispute):
    payment = payments.resolve_dispute(
        command.payment_id, command.resolution, command.note, command.expected_version, command.actor_id
    )
    return Outcome(payment.chapter, f"Dispute resolved as {payment.status}.", payment=payment)


@handle.register
def _(command: MarkPaymentFailed):
    payment = payments.mark_failed(command.payment_id, command.reason, command.expected_version, command.actor_id)
    return Outcome(payment.chapter, "Payment marked as failed.", payment=payment)


@handle.register
def _(command: ExtendDueDate):
    payment = payments.extend_due_date(
        command.payment_id, command.new_due_date, command.reason, command.expected_version, command.actor_id
    )
    return Outcome(payment.chapter, "Payment due date extended.", payment=payment)


@handle.register
def _(command: UpdatePaymentAmount):
    payment = payments.update_amount(
        command.payment_id, command.new_amount, command.reason, command.expected_version, command.actor_id
    )
    return Outcome(payment.chapter, "Payment amount updated.", payment=payment)


@handle.register
def _(command: RequestRevision):
    chapter = revisions.request_revision(
        command.chapter_id, command.notes, command.override, command.expected_version, command.actor_id
    )
    return Outcome(chapter, f"Revision {chapter.revision_count} requested.")


@handle.register
def _(command: SubmitRevision):
    chapter = revisions.submit_revision(
        command.chapter_id,
        command.content,
        command.notes,
        file_refs=command.file_refs,
        expected_version=command.expected_version,
        actor_id=command.actor_id,
    )
    return Outcome(chapter, "Revision submitted.")


@handle.register
def _(command: ResumeWork):
    chapter = revisions.resume_work(command.chapter_id, command.expected_version, command.actor_id)
    return Outcome(chapter, "Work resumed.")
