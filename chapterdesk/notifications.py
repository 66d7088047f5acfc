from flask import current_app
from flask_mail import Message as MailMessage

from chapterdesk import events
from chapterdesk.extensions import db
from chapterdesk.models import Chapter, User


def _send_mail_safely(message):
    from chapterdesk import mail

    recipients = getattr(message, "recipients", None) or []
    to_email = recipients[0] if recipients else None
    try:
        mail.send(message)
        current_app.logger.info("SMTP email delivered", extra={"to": to_email})
        return True
    except Exception:
        current_app.logger.exception("SMTP mail send failed.")
        return False


def _notify(user_id, subject, body):
    user = db.session.get(User, user_id) if user_id else None
    if user is None or not user.email:
        return False
    return _send_mail_safely(
        MailMessage(subject=subject, recipients=[user.email], body=f"Hello {user.name},\n\n{body}")
    )


def _writer_assigned(chapter, payload):
    _notify(
        payload.get("writer_id"),
        "ChapterDesk: You have been assigned a chapter",
        f"You are now the writer for \"{chapter.title}\" (chapter {chapter.chapter_number}).\n"
        f"Deadline: {chapter.deadline or 'not set'}.",
    )
    _notify(
        payload.get("student_id"),
        "ChapterDesk: A writer is working on your chapter",
        f"A writer has been assigned to \"{chapter.title}\".",
    )


def _writer_reassigned(chapter, payload):
    _notify(
        payload.get("writer_id"),
        "ChapterDesk: A chapter has been reassigned to you",
        f"You have taken over \"{chapter.title}\" (chapter {chapter.chapter_number}).",
    )


def _payment_completed(chapter, payload):
    _notify(
        payload.get("student_id"),
        "ChapterDesk: Payment received",
        f"We received {payload.get('amount')} {chapter.currency} for \"{chapter.title}\".",
    )


def _chapter_delivered(chapter, payload):
    _notify(
        payload.get("student_id"),
        "ChapterDesk: Your chapter has been delivered",
        f"\"{chapter.title}\" has been delivered ({chapter.word_count} words). "
        "Review it and either finalize it or request a revision.",
    )


def _revision_requested(chapter, payload):
    _notify(
        payload.get("writer_id"),
        "ChapterDesk: Revision requested",
        f"Revision {payload.get('revision')} was requested for \"{chapter.title}\".\n\n"
        f"Notes:\n{payload.get('notes')}",
    )


def _revision_submitted(chapter, payload):
    _notify(
        payload.get("student_id"),
        "ChapterDesk: Revision submitted",
        f"Revision {payload.get('revision')} of \"{chapter.title}\" is ready for review.",
    )


HANDLERS = {
    events.WRITER_ASSIGNED: _writer_assigned,
    events.WRITER_REASSIGNED: _writer_reassigned,
    events.PAYMENT_COMPLETED: _payment_completed,
    events.CHAPTER_DELIVERED: _chapter_delivered,
    events.REVISION_REQUESTED: _revision_requested,
    events.REVISION_SUBMITTED: _revision_submitted,
}


def on_chapter_event(sender, event=None, **extra):
    handler = HANDLERS.get(getattr(event, "kind", None))
    if handler is None:
        return
    chapter = db.session.get(Chapter, event.chapter_id)
    if chapter is None:
        current_app.logger.warning("Notification for missing chapter %s skipped", event.chapter_id)
        return
    handler(chapter, event.payload)


def register(app):
    events.chapter_event.connect(on_chapter_event, sender=app, weak=False)
