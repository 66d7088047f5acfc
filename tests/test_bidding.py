import threading
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from chapterdesk import bidding, repository
from chapterdesk.errors import (
    BidNotFound,
    ConcurrentModification,
    DuplicateBid,
    InvalidInput,
    InvalidState,
)
from chapterdesk.extensions import db
from chapterdesk.lifecycle import change_status
from chapterdesk.models import Bid, BidStatus, Chapter, ChapterStatus


def _accepted(chapter_id):
    return Bid.query.filter_by(chapter_id=chapter_id, status=BidStatus.ACCEPTED).all()


def test_accepting_one_of_two_bids_binds_that_writer(people, make_chapter):
    chapter = make_chapter()
    assert chapter.status == ChapterStatus.PENDING_BIDS
    bid_a = bidding.submit_bid(chapter.id, people.writer, "7000", estimated_days=5)
    bid_b = bidding.submit_bid(chapter.id, people.writer2, "6500", estimated_days=7)

    chapter, accepted = bidding.accept_bid(chapter.id, bid_a.id, actor_id=people.admin)

    assert accepted.status == BidStatus.ACCEPTED
    assert db.session.get(Bid, bid_b.id).status == BidStatus.REJECTED
    assert chapter.writer_id == people.writer
    assert chapter.status == ChapterStatus.IN_PROGRESS
    assert chapter.bid_count == 2
    assert bidding.assignment_violations(chapter) == []


def test_second_accept_fails_and_leaves_first_binding(people, make_chapter):
    chapter = make_chapter()
    bid_a = bidding.submit_bid(chapter.id, people.writer, "7000")
    bid_b = bidding.submit_bid(chapter.id, people.writer2, "6500")
    bidding.accept_bid(chapter.id, bid_a.id)

    with pytest.raises(InvalidState):
        bidding.accept_bid(chapter.id, bid_b.id)

    assert [b.id for b in _accepted(chapter.id)] == [bid_a.id]
    assert db.session.get(Chapter, chapter.id).writer_id == people.writer


def test_accept_with_stale_version_is_rejected(people, make_chapter):
    chapter = make_chapter()
    stale_version = chapter.version
    bid_a = bidding.submit_bid(chapter.id, people.writer, "7000")
    bid_b = bidding.submit_bid(chapter.id, people.writer2, "6500")
    bidding.accept_bid(chapter.id, bid_a.id, expected_version=stale_version)

    with pytest.raises(ConcurrentModification):
        bidding.accept_bid(chapter.id, bid_b.id, expected_version=stale_version)
    assert len(_accepted(chapter.id)) == 1


def test_bids_do_not_bump_the_chapter_version(people, make_chapter):
    chapter = make_chapter()
    version = chapter.version
    bidding.submit_bid(chapter.id, people.writer, "7000")
    bidding.submit_bid(chapter.id, people.writer2, "7100")
    assert db.session.get(Chapter, chapter.id).version == version


def test_duplicate_bid_from_same_writer(people, make_chapter):
    chapter = make_chapter()
    bidding.submit_bid(chapter.id, people.writer, "7000")
    with pytest.raises(DuplicateBid):
        bidding.submit_bid(chapter.id, people.writer, "6900")


def test_rejected_writer_may_bid_again(people, make_chapter):
    chapter = make_chapter()
    bid = bidding.submit_bid(chapter.id, people.writer, "7000")
    bidding.reject_bid(chapter.id, bid.id)
    again = bidding.submit_bid(chapter.id, people.writer, "6000")
    assert again.amount == Decimal("6000.00")
    assert db.session.get(Chapter, chapter.id).status == ChapterStatus.PENDING_BIDS


def test_bidding_requires_open_chapter(people, make_chapter):
    chapter = make_chapter(open_for_bidding=False)
    assert chapter.status == ChapterStatus.DRAFT
    with pytest.raises(InvalidState):
        bidding.submit_bid(chapter.id, people.writer, "7000")


def test_bid_amount_must_be_positive(people, make_chapter):
    chapter = make_chapter()
    with pytest.raises(InvalidInput):
        bidding.submit_bid(chapter.id, people.writer, "0")


def test_unknown_bid(people, make_chapter):
    chapter = make_chapter()
    with pytest.raises(BidNotFound):
        bidding.accept_bid(chapter.id, 999)


def test_admin_assignment_records_an_accepted_bid(people, make_chapter):
    chapter = make_chapter(open_for_bidding=False)
    chapter = bidding.assign_writer(chapter.id, people.writer, actor_id=people.admin)

    accepted = chapter.accepted_bid
    assert chapter.status == ChapterStatus.IN_PROGRESS
    assert accepted.writer_id == people.writer
    assert accepted.placed_by_admin is True
    assert accepted.amount == chapter.estimated_cost


def test_admin_assignment_reuses_pending_bid(people, make_chapter):
    chapter = make_chapter()
    bid_a = bidding.submit_bid(chapter.id, people.writer, "7000")
    bid_b = bidding.submit_bid(chapter.id, people.writer2, "6500")

    chapter = bidding.assign_writer(chapter.id, people.writer2)

    assert chapter.accepted_bid.id == bid_b.id
    assert db.session.get(Bid, bid_a.id).status == BidStatus.REJECTED


def test_assigning_a_non_writer_fails(people, make_chapter):
    chapter = make_chapter()
    with pytest.raises(InvalidInput):
        bidding.assign_writer(chapter.id, people.student)


def test_reassignment_releases_previous_bid(people, make_chapter):
    chapter = make_chapter()
    bid = bidding.submit_bid(chapter.id, people.writer, "7000")
    bidding.accept_bid(chapter.id, bid.id)

    chapter = bidding.reassign_writer(chapter.id, people.writer2, reason="Writer unavailable")

    released = db.session.get(Bid, bid.id)
    assert released.status == BidStatus.REJECTED
    assert released.released_at is not None
    assert chapter.writer_id == people.writer2
    assert chapter.status == ChapterStatus.IN_PROGRESS
    assert len(_accepted(chapter.id)) == 1
    assert bidding.assignment_violations(chapter) == []


def test_reassign_requires_work_under_way(people, make_chapter):
    chapter = make_chapter()
    with pytest.raises(InvalidState):
        bidding.reassign_writer(chapter.id, people.writer)


def test_cancelled_chapter_closes_bidding(people, make_chapter):
    chapter = make_chapter()
    change_status(chapter.id, ChapterStatus.CANCELLED, reason="Student withdrew")
    with pytest.raises(InvalidState):
        bidding.submit_bid(chapter.id, people.writer, "7000")


def test_database_refuses_second_accepted_bid(people, make_chapter):
    chapter = make_chapter()
    bid = bidding.submit_bid(chapter.id, people.writer, "7000")
    bidding.accept_bid(chapter.id, bid.id)

    db.session.add(Bid(chapter_id=chapter.id, writer_id=people.writer2, amount_minor=100, status=BidStatus.ACCEPTED))
    with pytest.raises(IntegrityError):
        db.session.commit()
    db.session.rollback()


def _park_accept(app, monkeypatch, chapter_id, bid_id):
    """Start accept_bid on its own thread and hold it after it has read the bids."""
    reached, release, outcome = threading.Event(), threading.Event(), {}
    real_find_bid = bidding._find_bid

    def parked_find_bid(chapter, wanted):
        bid = real_find_bid(chapter, wanted)
        if threading.current_thread().name == "parked-accept":
            reached.set()
            release.wait(10)
        return bid

    def run():
        with app.app_context():
            try:
                outcome["bid_id"] = bidding.accept_bid(chapter_id, bid_id)[1].id
            except Exception as exc:
                outcome["error"] = exc

    monkeypatch.setattr(bidding, "_find_bid", parked_find_bid)
    worker = threading.Thread(target=run, name="parked-accept")
    worker.start()
    assert reached.wait(10)
    return worker, release, outcome


def test_racing_accepts_leave_one_winner(app, monkeypatch, people, make_chapter):
    chapter = make_chapter()
    bid_a = bidding.submit_bid(chapter.id, people.writer, "7000")
    bid_b = bidding.submit_bid(chapter.id, people.writer2, "6500")

    worker, release, outcome = _park_accept(app, monkeypatch, chapter.id, bid_a.id)
    bidding.accept_bid(chapter.id, bid_b.id)
    release.set()
    worker.join(10)

    assert isinstance(outcome.get("error"), ConcurrentModification)
    assert [b.id for b in _accepted(chapter.id)] == [bid_b.id]
    assert db.session.get(Bid, bid_a.id).status == BidStatus.REJECTED
    assert db.session.get(Chapter, chapter.id).writer_id == people.writer2


def test_bid_landing_during_accept_is_rejected(app, monkeypatch, people, make_chapter, make_user):
    chapter = make_chapter()
    writer3 = make_user("writer3@example.com", "Writer Three", role="writer").id
    bid_a = bidding.submit_bid(chapter.id, people.writer, "7000")

    worker, release, outcome = _park_accept(app, monkeypatch, chapter.id, bid_a.id)
    late = bidding.submit_bid(chapter.id, writer3, "6000")
    release.set()
    worker.join(10)

    assert outcome == {"bid_id": bid_a.id}
    chapter = db.session.get(Chapter, chapter.id)
    assert chapter.status == ChapterStatus.IN_PROGRESS
    assert db.session.get(Bid, late.id).status == BidStatus.REJECTED
    assert bidding.assignment_violations(chapter) == []


def test_unique_violation_surfaces_as_concurrent_modification(people, make_chapter):
    chapter = make_chapter()
    bid = bidding.submit_bid(chapter.id, people.writer, "7000")
    bidding.accept_bid(chapter.id, bid.id)

    with pytest.raises(ConcurrentModification):
        with repository.chapter_transaction(chapter.id) as uow:
            uow.session.add(
                Bid(chapter_id=chapter.id, writer_id=people.writer2, amount_minor=100, status=BidStatus.ACCEPTED)
            )
    assert [b.id for b in _accepted(chapter.id)] == [bid.id]
