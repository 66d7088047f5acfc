from flask import current_app
from sqlalchemy import select, update

from chapterdesk import events
from chapterdesk.errors import BidNotFound, DuplicateBid, InvalidInput, InvalidState
from chapterdesk.extensions import db
from chapterdesk.models import Bid, BidStatus, Chapter, ChapterStatus, User, utcnow
from chapterdesk.pricing import quantize, to_decimal
from chapterdesk.repository import chapter_transaction

S = ChapterStatus


def _require_writer(writer_id):
    writer = db.session.get(User, writer_id) if writer_id else None
    if writer is None or not writer.is_writer:
        raise InvalidInput(f"Writer {writer_id} not found")
    return writer


def _find_bid(chapter, bid_id):
    for bid in chapter.bids:
        if bid.id == bid_id:
            return bid
    raise BidNotFound(f"Bid {bid_id} not found on chapter {chapter.id}")


def _bind(uow, bid, action):
    chapter = uow.chapter
    uow.claim(S.DRAFT, S.PENDING_BIDS)
    now = utcnow()
    # Siblings are rejected in the database, including bids this session never loaded.
    sibling = (Bid.chapter_id == chapter.id, Bid.id != bid.id, Bid.status == BidStatus.PENDING)
    rejected = uow.session.scalars(select(Bid.id).where(*sibling)).all()
    if rejected:
        uow.session.execute(
            update(Bid)
            .where(*sibling)
            .values(status=BidStatus.REJECTED, resolved_at=now)
            .execution_options(synchronize_session="evaluate")
        )
    bid.status = BidStatus.ACCEPTED
    bid.resolved_at = now
    chapter.writer_id = bid.writer_id
    chapter.assigned_at = now
    uow.move_to(S.IN_PROGRESS, action, detail=f"Bid {bid.id} accepted for writer {bid.writer_id}")
    uow.emit(
        events.WRITER_ASSIGNED,
        bid_id=bid.id,
        writer_id=bid.writer_id,
        student_id=chapter.student_id,
        rejected_bid_ids=rejected,
    )


def assignment_violations(chapter):
    """Return human readable violations of the single-assignment rule."""
    accepted = [b for b in chapter.bids if b.status == BidStatus.ACCEPTED]
    problems = []
    if len(accepted) > 1:
        problems.append(f"{len(accepted)} accepted bids")
    if chapter.writer_id is not None:
        if len(accepted) != 1:
            problems.append("writer bound without exactly one accepted bid")
        elif accepted[0].writer_id != chapter.writer_id:
            problems.append("accepted bid belongs to a different writer")
    elif accepted:
        problems.append("accepted bid without a bound writer")
    return problems


def submit_bid(chapter_id, writer_id, amount, estimated_days=None, message=None):
    amount = quantize(to_decimal(amount, "bid amount"))
    if amount <= 0:
        raise InvalidInput("Bid amount must be positive")
    if estimated_days is not None and estimated_days <= 0:
        raise InvalidInput("Estimated delivery days must be positive")

    # Bids from different writers are additive: no version swap, only a guard
    # that the chapter is still open for bidding when this one lands.
    with chapter_transaction(chapter_id, actor_id=writer_id, compare_version=False) as uow:
        if uow.chapter.status != S.PENDING_BIDS:
            raise InvalidState(f"Chapter is not open for bidding (status is {uow.chapter.status})")
        existing = Bid.query.filter(
            Bid.chapter_id == chapter_id,
            Bid.writer_id == writer_id,
            Bid.status != BidStatus.REJECTED,
        ).first()
        if existing:
            raise DuplicateBid(f"Writer {writer_id} already has an open bid on chapter {chapter_id}")

        bid = Bid(
            chapter_id=chapter_id,
            writer_id=writer_id,
            estimated_days=estimated_days,
            message=(message or "").strip() or None,
        )
        bid.amount = amount
        uow.session.add(bid)
        still_open = uow.session.execute(
            update(Chapter)
            .where(Chapter.id == chapter_id, Chapter.status == S.PENDING_BIDS)
            .values(bid_count=Chapter.bid_count + 1)
            .execution_options(synchronize_session=False)
        )
        if still_open.rowcount != 1:
            raise InvalidState("Chapter closed for bidding before the bid was recorded")
        uow.session.flush()
        uow.audit("submit_bid", detail=f"Bid {bid.id} by writer {writer_id}: {amount}")
        uow.emit(events.BID_SUBMITTED, bid_id=bid.id, writer_id=writer_id, amount=str(amount))
    current_app.logger.info("Bid %s submitted on chapter %s by writer %s", bid.id, chapter_id, writer_id)
    return bid


def accept_bid(chapter_id, bid_id, expected_version=None, actor_id=None):
    with chapter_transaction(chapter_id, expected_version, actor_id) as uow:
        chapter = uow.chapter
        bid = _find_bid(chapter, bid_id)
        if chapter.status != S.PENDING_BIDS:
            raise InvalidState(f"Bids can only be accepted while bidding is open (status is {chapter.status})")
        if bid.status != BidStatus.PENDING:
            raise InvalidState(f"Bid {bid_id} is already {bid.status}")
        if chapter.writer_id is not None or chapter.accepted_bid is not None:
            raise InvalidState("Chapter already has an accepted bid")
        _bind(uow, bid, "accept_bid")
    current_app.logger.info("Bid %s accepted on chapter %s", bid_id, chapter_id)
    return uow.chapter, bid


def reject_bid(chapter_id, bid_id, expected_version=None, actor_id=None):
    with chapter_transaction(chapter_id, expected_version, actor_id) as uow:
        bid = _find_bid(uow.chapter, bid_id)
        if bid.status != BidStatus.PENDING:
            raise InvalidState(f"Only pending bids can be rejected (bid {bid_id} is {bid.status})")
        bid.status = BidStatus.REJECTED
        bid.resolved_at = utcnow()
        uow.audit("reject_bid", detail=f"Bid {bid.id} by writer {bid.writer_id}")
        uow.emit(events.BID_REJECTED, bid_id=bid.id, writer_id=bid.writer_id)
    return uow.chapter, bid


def assign_writer(chapter_id, writer_id, expected_version=None, actor_id=None):
    _require_writer(writer_id)
    with chapter_transaction(chapter_id, expected_version, actor_id) as uow:
        chapter = uow.chapter
        if chapter.status not in (S.DRAFT, S.PENDING_BIDS):
            raise InvalidState(
                f"Direct assignment needs a draft or pending_bids chapter (status is {chapter.status}); "
                "use reassign instead"
            )
        if chapter.writer_id is not None or chapter.accepted_bid is not None:
            raise InvalidState("Chapter already has an assigned writer")
        uow.claim(S.DRAFT, S.PENDING_BIDS)

        bid = next(
            (b for b in chapter.bids if b.writer_id == writer_id and b.status == BidStatus.PENDING),
            None,
        )
        if bid is None:
            bid = Bid(
                chapter=chapter,
                writer_id=writer_id,
                message="Assigned by admin",
                placed_by_admin=True,
            )
            bid.amount = chapter.estimated_cost
            uow.session.add(bid)
            uow.session.flush()
        _bind(uow, bid, "assign_writer")
    current_app.logger.info("Writer %s assigned to chapter %s", writer_id, chapter_id)
    return uow.chapter


def reassign_writer(chapter_id, writer_id, reason=None, expected_version=None, actor_id=None):
    _require_writer(writer_id)
    with chapter_transaction(chapter_id, expected_version, actor_id) as uow:
        chapter = uow.chapter
        if chapter.status not in (S.IN_PROGRESS, S.REVISION, S.DISPUTED):
            raise InvalidState(f"Only chapters with work under way can be reassigned (status is {chapter.status})")
        if chapter.writer_id == writer_id:
            raise InvalidState(f"Writer {writer_id} is already assigned to this chapter")
        uow.claim(S.IN_PROGRESS, S.REVISION, S.DISPUTED)

        now = utcnow()
        previous_writer = chapter.writer_id
        released = chapter.accepted_bid
        if released is not None:
            # Released, not reopened: the bid never goes back to pending.
            released.status = BidStatus.REJECTED
            released.released_at = now
            uow.session.flush()

        bid = Bid(
            chapter=chapter,
            writer_id=writer_id,
            message=(reason or "").strip() or "Reassigned by admin",
            placed_by_admin=True,
            status=BidStatus.ACCEPTED,
            resolved_at=now,
        )
        bid.amount = chapter.estimated_cost
        uow.session.add(bid)
        uow.session.flush()
        chapter.writer_id = writer_id
        chapter.assigned_at = now
        uow.audit(
            "reassign_writer",
            detail=f"Writer {previous_writer} -> {writer_id}" + (f": {reason}" if reason else ""),
            from_status=chapter.status,
            to_status=chapter.status,
        )
        uow.emit(
            events.WRITER_REASSIGNED,
            bid_id=bid.id,
            writer_id=writer_id,
            previous_writer_id=previous_writer,
            student_id=chapter.student_id,
        )
    current_app.logger.info("Chapter %s reassigned from writer %s to %s", chapter_id, previous_writer, writer_id)
    return uow.chapter
