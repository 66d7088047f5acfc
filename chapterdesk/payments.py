from contextlib import contextmanager
from datetime import timedelta
import uuid

from flask import current_app

from chapterdesk import events
from chapterdesk.errors import (
    InvalidInput,
    InvalidState,
    MissingNotes,
    PaymentDisputed,
)
from chapterdesk.models import ChapterStatus, PaymentRecord, PaymentStatus, utcnow
from chapterdesk.pricing import current_rates, quantize, split_fees, to_decimal
from chapterdesk.repository import chapter_transaction, get_payment

P = PaymentStatus

DISPUTE_RESOLUTIONS = (P.COMPLETED, P.REFUNDED, P.FAILED)


def _new_transaction_id():
    return f"TXN_{uuid.uuid4().hex[:20].upper()}"


def _require_reason(reason, what):
    reason = (reason or "").strip()
    if not reason:
        raise MissingNotes(f"{what} reason is required")
    return reason


@contextmanager
def _payment_transaction(payment_id, expected_version=None, actor_id=None):
    payment = get_payment(payment_id)
    with chapter_transaction(payment.chapter_id, expected_version, actor_id) as uow:
        yield uow, payment


def _move(uow, payment, status, action, detail=None):
    previous = payment.status
    payment.status = status
    uow.audit(action, detail=detail, from_status=previous, to_status=status, payment=payment)


def _sync_paid_flag(chapter):
    chapter.paid = any(p.status == P.COMPLETED for p in chapter.payments)


def create_payment(chapter_id, payment_method=None, payer_id=None, expected_version=None,
                   actor_id=None, now=None):
    now = now or utcnow()
    with chapter_transaction(chapter_id, expected_version, actor_id) as uow:
        chapter = uow.chapter
        if chapter.status == ChapterStatus.CANCELLED:
            raise InvalidState("Cancelled chapters cannot take payments")
        if chapter.writer_id is None or chapter.accepted_bid is None:
            raise InvalidState("A payment can only be created once a bid has been accepted")
        if any(p.status == P.DISPUTED for p in chapter.payments):
            raise PaymentDisputed("A disputed payment must be resolved before a new one is created")
        if any(p.status in P.OPEN for p in chapter.payments):
            raise InvalidState("This chapter already has an open payment")
        if chapter.estimated_cost <= 0:
            raise InvalidState("Chapter has no cost to charge")

        rates = current_rates()
        split = split_fees(chapter.estimated_cost, rates.platform_fee_percentage, rates.writer_commission_percentage)
        payment = PaymentRecord(
            chapter=chapter,
            transaction_id=_new_transaction_id(),
            payer_id=payer_id or chapter.student_id,
            currency=chapter.currency,
            payment_method=payment_method,
            status=P.PENDING,
            due_date=now + timedelta(days=current_app.config.get("PAYMENT_DUE_DAYS") or 0),
        )
        payment.apply_split(split)
        uow.session.add(payment)
        uow.session.flush()
        uow.audit("create_payment", detail=f"{split.amount} {payment.currency}", to_status=P.PENDING, payment=payment)
        uow.emit(events.PAYMENT_CREATED, payment_id=payment.id, amount=str(split.amount))
    current_app.logger.info("Payment %s created for chapter %s", payment.transaction_id, chapter_id)
    return payment


def mark_paid(payment_id, transaction_reference=None, expected_version=None, actor_id=None):
    with _payment_transaction(payment_id, expected_version, actor_id) as (uow, payment):
        if payment.status != P.PENDING:
            raise InvalidState(f"Only pending payments can be marked paid (payment is {payment.status})")
        _move(uow, payment, P.COMPLETED, "mark_paid", detail=transaction_reference)
        payment.completed_at = utcnow()
        payment.transaction_reference = transaction_reference
        uow.chapter.paid = True
        uow.emit(
            events.PAYMENT_COMPLETED,
            payment_id=payment.id,
            student_id=uow.chapter.student_id,
            amount=str(payment.amount),
        )
    current_app.logger.info("Payment %s completed", payment.transaction_id)
    return payment


def refund(payment_id, reason, expected_version=None, actor_id=None):
    reason = _require_reason(reason, "Refund")
    with _payment_transaction(payment_id, expected_version, actor_id) as (uow, payment):
        if payment.status not in (P.COMPLETED, P.PENDING):
            raise InvalidState(f"Only completed or pending payments can be refunded (payment is {payment.status})")
        _move(uow, payment, P.REFUNDED, "refund", detail=reason)
        payment.refunded_at = utcnow()
        payment.refund_reason = reason
        # The chapter status is left alone; reverting it is a separate admin decision.
        _sync_paid_flag(uow.chapter)
        uow.emit(events.PAYMENT_REFUNDED, payment_id=payment.id, reason=reason)
    current_app.logger.info("Payment %s refunded: %s", payment.transaction_id, reason)
    return payment


def dispute(payment_id, reason, expected_version=None, actor_id=None):
    reason = _require_reason(reason, "Dispute")
    with _payment_transaction(payment_id, expected_version, actor_id) as (uow, payment):
        if payment.status in (P.REFUNDED, P.DISPUTED):
            raise InvalidState(f"Payment is {payment.status} and cannot be disputed")
        _move(uow, payment, P.DISPUTED, "dispute", detail=reason)
        payment.disputed_at = utcnow()
        payment.dispute_reason = reason
        uow.emit(events.PAYMENT_DISPUTED, payment_id=payment.id, reason=reason)
    current_app.logger.warning("Payment %s disputed: %s", payment.transaction_id, reason)
    return payment


def resolve_dispute(payment_id, resolution, note=None, expected_version=None, actor_id=None):
    if resolution not in DISPUTE_RESOLUTIONS:
        raise InvalidInput(f"Resolution must be one of {', '.join(DISPUTE_RESOLUTIONS)}")
    note = (note or "").strip()
    with _payment_transaction(payment_id, expected_version, actor_id) as (uow, payment):
        if payment.status != P.DISPUTED:
            raise InvalidState("Payment is not in dispute")
        now = utcnow()
        _move(uow, payment, resolution, "resolve_dispute", detail=note or None)
        payment.dispute_resolved_at = now
        payment.dispute_resolution = note
        if resolution == P.COMPLETED:
            payment.completed_at = payment.completed_at or now
        elif resolution == P.REFUNDED:
            payment.refunded_at = now
            payment.refund_reason = note or "Dispute resolved as refund"
        else:
            payment.failed_at = now
            payment.failure_reason = note or "Dispute resolved as failed"
        _sync_paid_flag(uow.chapter)
        uow.emit(events.PAYMENT_DISPUTE_RESOLVED, payment_id=payment.id, resolution=resolution)
    return payment


def mark_failed(payment_id, reason, expected_version=None, actor_id=None):
    reason = _require_reason(reason, "Failure")
    with _payment_transaction(payment_id, expected_version, actor_id) as (uow, payment):
        if payment.status != P.PENDING:
            raise InvalidState(f"Only pending payments can fail (payment is {payment.status})")
        _move(uow, payment, P.FAILED, "mark_failed", detail=reason)
        payment.failed_at = utcnow()
        payment.failure_reason = reason
        uow.emit(events.PAYMENT_FAILED, payment_id=payment.id, reason=reason)
    return payment


def extend_due_date(payment_id, new_due_date, reason=None, expected_version=None, actor_id=None, now=None):
    now = now or utcnow()
    if new_due_date is None or new_due_date <= now:
        raise InvalidInput("Due date must be in the future")
    with _payment_transaction(payment_id, expected_version, actor_id) as (uow, payment):
        if payment.status != P.PENDING:
            raise InvalidState("Only pending payments can have their due date extended")
        previous = payment.due_date
        payment.due_date = new_due_date
        uow.audit(
            "extend_due_date",
            detail=f"{previous} -> {new_due_date}" + (f": {reason}" if reason else ""),
            payment=payment,
        )
        uow.emit(events.PAYMENT_UPDATED, payment_id=payment.id, due_date=new_due_date.isoformat())
    return payment


def update_amount(payment_id, new_amount, reason=None, expected_version=None, actor_id=None):
    new_amount = quantize(to_decimal(new_amount, "payment amount"))
    if new_amount <= 0:
        raise InvalidInput("Payment amount must be positive")
    with _payment_transaction(payment_id, expected_version, actor_id) as (uow, payment):
        if payment.status != P.PENDING:
            raise InvalidState("Only pending payments can change amount")
        if payment.original_amount_minor is None:
            payment.original_amount_minor = payment.amount_minor
        previous = payment.amount
        # Re-split with the record's own percentages, not today's rates.
        split = split_fees(new_amount, payment.platform_fee_percentage, payment.writer_commission_percentage)
        payment.apply_split(split)
        uow.audit(
            "update_amount",
            detail=f"{previous} -> {new_amount}: {reason or 'Amount adjusted by admin'}",
            payment=payment,
        )
        uow.emit(events.PAYMENT_UPDATED, payment_id=payment.id, amount=str(new_amount))
    return payment


def overdue_payments(now=None):
    now = now or utcnow()
    return (
        PaymentRecord.query.filter(PaymentRecord.status == P.PENDING, PaymentRecord.due_date < now)
        .order_by(PaymentRecord.due_date.asc())
        .all()
    )


def fees_reconcile(payment):
    return payment.platform_fee_minor + payment.writer_share_minor + payment.admin_share_minor == payment.amount_minor
