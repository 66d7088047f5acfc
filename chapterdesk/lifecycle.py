"""Chapter state machine and the operations that drive it."""
from datetime import timedelta

from flask import current_app

from chapterdesk import events
from chapterdesk.errors import (
    InvalidInput,
    InvalidState,
    MissingNotes,
    PaymentRequired,
)
from chapterdesk.extensions import db
from chapterdesk.models import (
    AuditEntry,
    Chapter,
    ChapterStatus,
    ChapterVersion,
    PaymentStatus,
    utcnow,
)
from chapterdesk.pricing import (
    LEVELS,
    URGENCIES,
    WORK_TYPES,
    current_rates,
    estimate_cost,
    pages_for_words,
    quantize,
    to_decimal,
)
from chapterdesk.repository import chapter_transaction

S = ChapterStatus

TRANSITIONS = {
    S.DRAFT: {S.PENDING_BIDS, S.CANCELLED, S.DISPUTED},
    S.PENDING_BIDS: {S.IN_PROGRESS, S.CANCELLED, S.DISPUTED},
    S.IN_PROGRESS: {S.COMPLETED, S.CANCELLED, S.DISPUTED},
    S.COMPLETED: {S.REVISION, S.CANCELLED, S.DISPUTED},
    S.REVISION: {S.COMPLETED, S.IN_PROGRESS, S.CANCELLED, S.DISPUTED},
    S.DISPUTED: {S.IN_PROGRESS, S.COMPLETED, S.CANCELLED},
    S.CANCELLED: set(),
}

REASON_REQUIRED = (S.CANCELLED, S.DISPUTED)


def allowed_transitions(status):
    return set(TRANSITIONS.get(status, set()))


def ensure_transition(chapter, target):
    allowed = TRANSITIONS.get(chapter.status, set())
    if target not in allowed:
        allowed_str = ", ".join(sorted(allowed)) or "none"
        raise InvalidState(
            f"Invalid chapter transition: {chapter.status} -> {target}. "
            f"Allowed from {chapter.status}: [{allowed_str}]"
        )


def ensure_paid(chapter):
    if not chapter.paid:
        raise PaymentRequired(f"Chapter {chapter.id} must be paid before it can be completed")


def count_words(text):
    return len([w for w in (text or "").split() if w])


def apply_content(uow, content, changes=None):
    chapter = uow.chapter
    if chapter.content and chapter.content != content:
        uow.session.add(
            ChapterVersion(
                chapter_id=chapter.id,
                version=len(chapter.versions) + 1,
                content=chapter.content,
                changes=(changes or "Content updated")[:255],
            )
        )
    chapter.content = content
    chapter.word_count = count_words(content)


def create_chapter(student_id, title, level="masters", work_type="coursework", urgency="normal",
                   target_word_count=2000, chapter_number=1, summary=None, deadline=None,
                   open_for_bidding=None):
    title = (title or "").strip()
    if not title:
        raise InvalidInput("Chapter title is required")
    if level not in LEVELS or work_type not in WORK_TYPES or urgency not in URGENCIES:
        raise InvalidInput(f"Unsupported order options: {level}/{work_type}/{urgency}")
    if not target_word_count or target_word_count <= 0:
        raise InvalidInput("Target word count must be positive")

    rates = current_rates()
    pages = pages_for_words(target_word_count, rates.words_per_page)
    estimate = estimate_cost(level, work_type, urgency, pages, rates)

    if open_for_bidding is None:
        open_for_bidding = current_app.config.get("OPEN_BIDDING_ON_CREATE", True)
    status = S.PENDING_BIDS if open_for_bidding else S.DRAFT

    chapter = Chapter(
        student_id=student_id,
        title=title,
        summary=summary,
        chapter_number=chapter_number or 1,
        level=level,
        work_type=work_type,
        urgency=urgency,
        target_word_count=target_word_count,
        estimated_pages=pages,
        currency=estimate.currency,
        deadline=deadline,
        status=status,
    )
    chapter.estimated_cost = estimate.amount
    try:
        db.session.add(chapter)
        db.session.flush()
        db.session.add(
            AuditEntry(
                chapter_id=chapter.id,
                actor_id=student_id,
                action="create",
                to_status=status,
                detail=f"Estimated {estimate.amount} {estimate.currency} for {pages} pages",
            )
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info("Chapter %s created by student %s (%s)", chapter.id, student_id, status)
    created = [events.ChapterEvent(events.CHAPTER_CREATED, chapter.id, {"student_id": student_id})]
    if status == S.PENDING_BIDS:
        created.append(events.ChapterEvent(events.CHAPTER_OPENED, chapter.id, {}))
    events.publish(created, sender=current_app._get_current_object())
    return chapter


def open_for_bidding(chapter_id, expected_version=None, actor_id=None):
    with chapter_transaction(chapter_id, expected_version, actor_id) as uow:
        ensure_transition(uow.chapter, S.PENDING_BIDS)
        uow.move_to(S.PENDING_BIDS, "open_for_bidding")
        uow.emit(events.CHAPTER_OPENED)
    return uow.chapter


def deliver(chapter_id, expected_version=None, actor_id=None):
    with chapter_transaction(chapter_id, expected_version, actor_id) as uow:
        chapter = uow.chapter
        if chapter.status != S.IN_PROGRESS:
            raise InvalidState(f"Only in_progress chapters can be delivered (status is {chapter.status})")
        if not chapter.word_count:
            raise InvalidState("Delivery requires the produced word count to be recorded")
        ensure_paid(chapter)
        now = utcnow()
        open_cycle = chapter.open_revision
        if open_cycle is not None:
            open_cycle.resolved_at = now
            open_cycle.submission_notes = open_cycle.submission_notes or "Delivered after resumed work"
        uow.move_to(S.COMPLETED, "deliver", detail=f"{chapter.word_count} words delivered")
        chapter.delivered_at = now
        chapter.finalized_at = None
        uow.emit(events.CHAPTER_DELIVERED, writer_id=chapter.writer_id, student_id=chapter.student_id)
    return uow.chapter


def finalize(chapter_id, expected_version=None, actor_id=None):
    with chapter_transaction(chapter_id, expected_version, actor_id) as uow:
        chapter = uow.chapter
        if chapter.status != S.COMPLETED:
            raise InvalidState(f"Only completed chapters can be finalized (status is {chapter.status})")
        ensure_paid(chapter)
        if chapter.finalized_at is not None:
            raise InvalidState("Chapter has already been finalized")
        chapter.finalized_at = utcnow()
        uow.audit("finalize", from_status=chapter.status, to_status=chapter.status)
        uow.emit(events.CHAPTER_FINALIZED, writer_id=chapter.writer_id)
    return uow.chapter


def change_status(chapter_id, new_status, reason=None, expected_version=None, actor_id=None):
    if new_status not in S.ALL:
        raise InvalidInput(f"Unknown chapter status {new_status!r}")
    reason = (reason or "").strip() or None

    with chapter_transaction(chapter_id, expected_version, actor_id) as uow:
        chapter = uow.chapter
        ensure_transition(chapter, new_status)
        if new_status in REASON_REQUIRED and not reason:
            raise MissingNotes(f"A reason is required to mark a chapter {new_status}")

        if new_status == S.REVISION:
            from chapterdesk.revisions import open_revision_cycle

            open_revision_cycle(uow, reason, override=True)
        elif new_status == S.IN_PROGRESS:
            if chapter.writer_id is None:
                raise InvalidState("A writer must be assigned before work can be in progress")
            uow.move_to(S.IN_PROGRESS, "change_status", detail=reason)
        elif new_status == S.COMPLETED:
            if chapter.status == S.IN_PROGRESS and not chapter.word_count:
                raise InvalidState("Completion requires the produced word count to be recorded")
            ensure_paid(chapter)
            open_cycle = chapter.open_revision
            if open_cycle is not None:
                open_cycle.resolved_at = utcnow()
                open_cycle.submission_notes = reason or "Closed by admin"
            uow.move_to(S.COMPLETED, "change_status", detail=reason)
            chapter.delivered_at = chapter.delivered_at or utcnow()
        else:
            uow.move_to(new_status, "change_status", detail=reason)

        chapter.status_reason = reason
        uow.emit(events.STATUS_CHANGED, status=new_status, reason=reason)
    current_app.logger.info("Chapter %s status changed to %s", chapter_id, new_status)
    return uow.chapter


def add_content(chapter_id, content, changes=None, expected_version=None, actor_id=None):
    content = (content or "").strip()
    if not content:
        raise InvalidInput("Content is required")
    with chapter_transaction(chapter_id, expected_version, actor_id) as uow:
        if uow.chapter.status not in (S.IN_PROGRESS, S.REVISION):
            raise InvalidState(f"Content can only be added while work is open (status is {uow.chapter.status})")
        apply_content(uow, content, changes)
        uow.audit("add_content", detail=f"{uow.chapter.word_count} words")
        uow.emit(events.CONTENT_UPDATED, word_count=uow.chapter.word_count)
    return uow.chapter


def extend_deadline(chapter_id, new_deadline, expected_version=None, actor_id=None, now=None):
    now = now or utcnow()
    if new_deadline is None or new_deadline <= now:
        raise InvalidInput("Deadline must be in the future")
    with chapter_transaction(chapter_id, expected_version, actor_id) as uow:
        chapter = uow.chapter
        if chapter.status == S.CANCELLED:
            raise InvalidState("Cancelled chapters cannot be rescheduled")
        previous = chapter.deadline
        chapter.deadline = new_deadline
        uow.audit("extend_deadline", detail=f"{previous} -> {new_deadline}")
        uow.emit(events.DEADLINE_EXTENDED, deadline=new_deadline.isoformat())
    return uow.chapter


def update_cost(chapter_id, amount, expected_version=None, actor_id=None):
    amount = quantize(to_decimal(amount, "estimated cost"))
    if amount < 0:
        raise InvalidInput("Estimated cost cannot be negative")
    with chapter_transaction(chapter_id, expected_version, actor_id) as uow:
        chapter = uow.chapter
        blocking = [p for p in chapter.payments if p.status in PaymentStatus.OPEN + (PaymentStatus.DISPUTED,)]
        if blocking:
            raise InvalidState("Cost cannot change while a payment is open for this chapter")
        previous = chapter.estimated_cost
        chapter.estimated_cost = amount
        uow.audit("update_cost", detail=f"{previous} -> {amount}")
        uow.emit(events.COST_UPDATED, amount=str(amount))
    return uow.chapter


def overdue_chapters(now=None):
    now = now or utcnow()
    return (
        Chapter.query.filter(Chapter.deadline < now, Chapter.status.in_(S.ACTIVE))
        .order_by(Chapter.deadline.asc())
        .all()
    )


def revision_deadline(now=None):
    days = current_app.config.get("REVISION_DEADLINE_DAYS") or 0
    return (now or utcnow()) + timedelta(days=days)
