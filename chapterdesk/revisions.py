"""Revision cycles: completed work sent back to the same writer."""
from flask import current_app

from chapterdesk import events
from chapterdesk.errors import InvalidInput, InvalidState, MissingNotes
from chapterdesk.lifecycle import apply_content, revision_deadline
from chapterdesk.models import ChapterStatus, RevisionCycle, utcnow
from chapterdesk.repository import chapter_transaction

S = ChapterStatus


def open_revision_cycle(uow, notes, override=False, now=None):
    chapter = uow.chapter
    if chapter.status != S.COMPLETED:
        raise InvalidState(f"Revisions can only be requested on completed chapters (status is {chapter.status})")
    notes = (notes or "").strip()
    if not notes:
        raise MissingNotes("Revision notes are required")

    limit = current_app.config.get("MAX_REVISION_REQUESTS")
    if limit is not None and chapter.revision_count >= limit and not override:
        raise InvalidState(f"Revision limit of {limit} reached; an admin must approve further revisions")

    now = now or utcnow()
    due_at = revision_deadline(now)
    chapter.revision_count += 1
    uow.session.add(
        RevisionCycle(
            chapter=chapter,
            cycle_number=chapter.revision_count,
            notes=notes,
            requested_by=uow.actor_id,
            requested_at=now,
            due_at=due_at,
        )
    )
    if chapter.deadline is None or chapter.deadline < due_at:
        chapter.deadline = due_at
    chapter.finalized_at = None
    uow.move_to(S.REVISION, "request_revision", detail=notes)
    uow.emit(
        events.REVISION_REQUESTED,
        revision=chapter.revision_count,
        writer_id=chapter.writer_id,
        notes=notes,
    )


def request_revision(chapter_id, notes, override=False, expected_version=None, actor_id=None):
    with chapter_transaction(chapter_id, expected_version, actor_id) as uow:
        open_revision_cycle(uow, notes, override=override)
    current_app.logger.info("Revision %s requested on chapter %s", uow.chapter.revision_count, chapter_id)
    return uow.chapter


def submit_revision(chapter_id, content, notes, file_refs=(), expected_version=None, actor_id=None):
    with chapter_transaction(chapter_id, expected_version, actor_id) as uow:
        chapter = uow.chapter
        if chapter.status != S.REVISION:
            raise InvalidState(f"No revision is open on this chapter (status is {chapter.status})")
        notes = (notes or "").strip()
        if not notes:
            raise MissingNotes("Revision notes are required")
        content = (content or "").strip()
        if any(not isinstance(r, str) for r in file_refs or ()):
            raise InvalidInput("File references must be strings")
        refs = [r.strip() for r in (file_refs or ()) if r and r.strip()]
        if not content and not refs:
            raise InvalidInput("A revision needs new content or at least one attached file")

        now = utcnow()
        if content:
            apply_content(uow, content, changes=f"Revision {chapter.revision_count}")
        cycle = chapter.open_revision
        if cycle is not None:
            cycle.submitted_content = content or None
            cycle.submission_notes = notes
            cycle.file_refs = "\n".join(refs) or None
            cycle.resolved_at = now
        uow.move_to(S.COMPLETED, "submit_revision", detail=notes)
        chapter.delivered_at = now
        uow.emit(
            events.REVISION_SUBMITTED,
            revision=chapter.revision_count,
            writer_id=chapter.writer_id,
            student_id=chapter.student_id,
            file_refs=refs,
        )
    return uow.chapter


def resume_work(chapter_id, expected_version=None, actor_id=None):
    with chapter_transaction(chapter_id, expected_version, actor_id) as uow:
        if uow.chapter.status != S.REVISION:
            raise InvalidState(f"Only chapters under revision can resume work (status is {uow.chapter.status})")
        uow.move_to(S.IN_PROGRESS, "resume_work")
        uow.emit(events.WORK_RESUMED, revision=uow.chapter.revision_count)
    return uow.chapter
