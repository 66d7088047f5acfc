from functools import wraps

from flask import Blueprint, abort, current_app, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user

from chapterdesk import commands as cmd
from chapterdesk.errors import InvalidInput, LifecycleError
from chapterdesk.extensions import login_manager
from chapterdesk.forms import (
    AssignWriterForm,
    BidActionForm,
    BidForm,
    ChapterForm,
    ContentForm,
    CostForm,
    DeadlineForm,
    DueDateForm,
    EstimateForm,
    LoginForm,
    MarkPaidForm,
    PaymentAmountForm,
    PaymentForm,
    ReasonForm,
    ResolveDisputeForm,
    RevisionRequestForm,
    RevisionSubmitForm,
    StatusForm,
)
from chapterdesk.lifecycle import allowed_transitions
from chapterdesk.models import ChapterStatus, User
from chapterdesk.pricing import current_rates, estimate_cost, pages_for_words
from chapterdesk.repository import get_chapter, get_payment

main = Blueprint("main", __name__)


def admin_required(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        if not current_user.is_authenticated:
            return login_manager.unauthorized()
        if not current_user.is_admin:
            abort(403)
        return func(*args, **kwargs)
    return wrapper


def _is_owner(chapter):
    return current_user.is_admin or chapter.student_id == current_user.id


def _is_assigned_writer(chapter):
    return current_user.is_admin or (chapter.writer_id is not None and chapter.writer_id == current_user.id)


def _can_view(chapter):
    if _is_owner(chapter) or _is_assigned_writer(chapter):
        return True
    return current_user.is_writer and chapter.status == ChapterStatus.PENDING_BIDS


def _owned_chapter(chapter_id):
    chapter = get_chapter(chapter_id)
    if not _is_owner(chapter):
        abort(403)
    return chapter


def _writer_chapter(chapter_id):
    chapter = get_chapter(chapter_id)
    if not _is_assigned_writer(chapter):
        abort(403)
    return chapter


def _validated(form):
    if not form.validate_on_submit():
        problems = "; ".join(
            f"{name}: {', '.join(str(e) for e in errs)}" for name, errs in form.errors.items()
        )
        raise InvalidInput(problems or "Invalid request")
    return form


def _version(form):
    return form.version.data if hasattr(form, "version") else None


def _list_arg(name):
    payload = request.get_json(silent=True)
    if isinstance(payload, dict):
        value = payload.get(name) or []
        values = tuple(value) if isinstance(value, (list, tuple)) else (value,)
    else:
        values = tuple(request.form.getlist(name))
    if any(not isinstance(v, str) for v in values):
        raise InvalidInput(f"{name} must be a list of strings")
    return values



def _respond(outcome, status=200):
    return jsonify(outcome.to_dict()), status


@main.errorhandler(LifecycleError)
def lifecycle_error(err):
    level = current_app.logger.warning if err.http_status >= 409 else current_app.logger.info
    level("%s on %s %s: %s", err.kind, request.method, request.path, err.message)
    return jsonify(err.to_dict()), err.http_status


@main.route("/login", methods=["POST"])
def login():
    form = LoginForm()
    if form.validate_on_submit():
        user = User.query.filter_by(email=form.email.data.strip().lower()).first()
        if user and user.check_password(form.password.data):
            login_user(user)
            return jsonify({"ok": True, "user": {"id": user.id, "name": user.name, "role": user.role}})
    return jsonify({"ok": False, "error": "InvalidCredentials", "message": "Invalid email or password"}), 401


@main.route("/logout")
@login_required
def logout():
    logout_user()
    return jsonify({"ok": True, "message": "Logged out successfully"})


login_manager.login_view = "main.login"


@login_manager.unauthorized_handler
def unauthorized_callback():
    return jsonify({"ok": False, "error": "Unauthorized", "message": "You must log in to access this page."}), 401


@main.route("/pricing/estimate", methods=["POST"])
def pricing_estimate():
    form = _validated(EstimateForm())
    rates = current_rates()
    pages = form.pages.data or pages_for_words(form.word_count.data, rates.words_per_page)
    estimate = estimate_cost(form.level.data, form.work_type.data, form.urgency.data, pages, rates)
    return jsonify({"ok": True, "estimate": estimate.to_dict()})


@main.route("/chapters", methods=["POST"])
@login_required
def create_chapter():
    if current_user.is_writer:
        abort(403)
    form = _validated(ChapterForm())
    outcome = cmd.handle(
        cmd.CreateChapter(
            student_id=current_user.id,
            title=form.title.data,
            level=form.level.data,
            work_type=form.work_type.data,
            urgency=form.urgency.data,
            target_word_count=form.target_word_count.data or 2000,
            chapter_number=form.chapter_number.data or 1,
            summary=form.summary.data or None,
            deadline=form.deadline.data,
        )
    )
    return _respond(outcome, 201)


@main.route("/chapters/<int:chapter_id>", methods=["GET"])
@login_required
def view_chapter(chapter_id):
    chapter = get_chapter(chapter_id)
    if not _can_view(chapter):
        abort(403)
    payload = chapter.to_dict()
    if current_user.is_admin:
        payload["allowed_transitions"] = sorted(allowed_transitions(chapter.status))
    return jsonify({"ok": True, "chapter": payload})


@main.route("/chapters/<int:chapter_id>/open", methods=["POST"])
@login_required
def open_chapter(chapter_id):
    _owned_chapter(chapter_id)
    form = _validated(ReasonForm())
    return _respond(cmd.handle(cmd.OpenForBidding(chapter_id, current_user.id, _version(form))))


@main.route("/chapters/<int:chapter_id>/bids", methods=["POST"])
@login_required
def submit_bid(chapter_id):
    if not current_user.is_writer:
        abort(403)
    form = _validated(BidForm())
    outcome = cmd.handle(
        cmd.SubmitBid(
            chapter_id=chapter_id,
            writer_id=current_user.id,
            amount=form.amount.data,
            estimated_days=form.estimated_days.data,
            message=form.message.data,
        )
    )
    return _respond(outcome, 201)


BID_ACTIONS = {"accept": cmd.AcceptBid, "reject": cmd.RejectBid}


@main.route("/chapters/<int:chapter_id>/bids/<int:bid_id>", methods=["POST"])
@login_required
def manage_bid(chapter_id, bid_id):
    _owned_chapter(chapter_id)
    form = _validated(BidActionForm())
    command = BID_ACTIONS.get(form.action.data)
    if command is None:
        raise InvalidInput(f"Unknown bid action {form.action.data!r}")
    return _respond(cmd.handle(command(chapter_id, bid_id, current_user.id, _version(form))))


@main.route("/chapters/<int:chapter_id>/assign", methods=["POST"])
@admin_required
def assign_writer(chapter_id):
    form = _validated(AssignWriterForm())
    return _respond(
        cmd.handle(cmd.AssignWriter(chapter_id, form.writer_id.data, current_user.id, _version(form)))
    )


@main.route("/chapters/<int:chapter_id>/reassign", methods=["POST"])
@admin_required
def reassign_writer(chapter_id):
    form = _validated(AssignWriterForm())
    return _respond(
        cmd.handle(
            cmd.ReassignWriter(chapter_id, form.writer_id.data, form.reason.data, current_user.id, _version(form))
        )
    )


@main.route("/chapters/<int:chapter_id>/status", methods=["POST"])
@admin_required
def change_status(chapter_id):
    form = _validated(StatusForm())
    return _respond(
        cmd.handle(cmd.ChangeStatus(chapter_id, form.status.data, form.reason.data, current_user.id, _version(form)))
    )


@main.route("/chapters/<int:chapter_id>/deliver", methods=["POST"])
@login_required
def deliver(chapter_id):
    _writer_chapter(chapter_id)
    form = _validated(ReasonForm())
    return _respond(cmd.handle(cmd.Deliver(chapter_id, current_user.id, _version(form))))


@main.route("/chapters/<int:chapter_id>/finalize", methods=["POST"])
@login_required
def finalize(chapter_id):
    _owned_chapter(chapter_id)
    form = _validated(ReasonForm())
    return _respond(cmd.handle(cmd.Finalize(chapter_id, current_user.id, _version(form))))


@main.route("/chapters/<int:chapter_id>/content", methods=["POST"])
@login_required
def add_content(chapter_id):
    _writer_chapter(chapter_id)
    form = _validated(ContentForm())
    return _respond(
        cmd.handle(cmd.AddContent(chapter_id, form.content.data, form.changes.data, current_user.id, _version(form)))
    )


@main.route("/chapters/<int:chapter_id>/deadline", methods=["POST"])
@admin_required
def extend_deadline(chapter_id):
    form = _validated(DeadlineForm())
    return _respond(
        cmd.handle(cmd.ExtendDeadline(chapter_id, form.deadline.data, current_user.id, _version(form)))
    )


@main.route("/chapters/<int:chapter_id>/cost", methods=["POST"])
@admin_required
def update_cost(chapter_id):
    form = _validated(CostForm())
    return _respond(cmd.handle(cmd.UpdateCost(chapter_id, form.amount.data, current_user.id, _version(form))))


@main.route("/chapters/<int:chapter_id>/payments", methods=["POST"])
@login_required
def create_payment(chapter_id):
    chapter = _owned_chapter(chapter_id)
    form = _validated(PaymentForm())
    outcome = cmd.handle(
        cmd.CreatePayment(
            chapter_id,
            payment_method=form.payment_method.data or None,
            payer_id=chapter.student_id,
            actor_id=current_user.id,
            expected_version=_version(form),
        )
    )
    return _respond(outcome, 201)


@main.route("/payments/<int:payment_id>/mark-paid", methods=["POST"])
@admin_required
def mark_paid(payment_id):
    form = _validated(MarkPaidForm())
    return _respond(
        cmd.handle(
            cmd.MarkPaid(payment_id, form.transaction_reference.data or None, current_user.id, _version(form))
        )
    )


@main.route("/payments/<int:payment_id>/refund", methods=["POST"])
@admin_required
def refund_payment(payment_id):
    form = _validated(ReasonForm())
    return _respond(cmd.handle(cmd.RefundPayment(payment_id, form.reason.data, current_user.id, _version(form))))


@main.route("/payments/<int:payment_id>/dispute", methods=["POST"])
@login_required
def dispute_payment(payment_id):
    _owned_chapter(get_payment(payment_id).chapter_id)
    form = _validated(ReasonForm())
    return _respond(cmd.handle(cmd.DisputePayment(payment_id, form.reason.data, current_user.id, _version(form))))


@main.route("/payments/<int:payment_id>/resolve", methods=["POST"])
@admin_required
def resolve_dispute(payment_id):
    form = _validated(ResolveDisputeForm())
    return _respond(
        cmd.handle(
            cmd.ResolveDispute(payment_id, form.resolution.data, form.note.data, current_user.id, _version(form))
        )
    )


@main.route("/payments/<int:payment_id>/fail", methods=["POST"])
@admin_required
def fail_payment(payment_id):
    form = _validated(ReasonForm())
    return _respond(
        cmd.handle(cmd.MarkPaymentFailed(payment_id, form.reason.data, current_user.id, _version(form)))
    )


@main.route("/payments/<int:payment_id>/due-date", methods=["POST"])
@admin_required
def extend_due_date(payment_id):
    form = _validated(DueDateForm())
    return _respond(
        cmd.handle(
            cmd.ExtendDueDate(payment_id, form.due_date.data, form.reason.data, current_user.id, _version(form))
        )
    )


@main.route("/payments/<int:payment_id>/amount", methods=["POST"])
@admin_required
def update_payment_amount(payment_id):
    form = _validated(PaymentAmountForm())
    return _respond(
        cmd.handle(
            cmd.UpdatePaymentAmount(payment_id, form.amount.data, form.reason.data, current_user.id, _version(form))
        )
    )


@main.route("/chapters/<int:chapter_id>/revision/request", methods=["POST"])
@login_required
def request_revision(chapter_id):
    _owned_chapter(chapter_id)
    form = _validated(RevisionRequestForm())
    outcome = cmd.handle(
        cmd.RequestRevision(
            chapter_id,
            form.notes.data,
            override=bool(form.override.data and current_user.is_admin),
            actor_id=current_user.id,
            expected_version=_version(form),
        )
    )
    return _respond(outcome)


@main.route("/chapters/<int:chapter_id>/revision/submit", methods=["POST"])
@login_required
def submit_revision(chapter_id):
    _writer_chapter(chapter_id)
    form = _validated(RevisionSubmitForm())
    outcome = cmd.handle(
        cmd.SubmitRevision(
            chapter_id,
            form.notes.data,
            content=form.content.data,
            file_refs=_list_arg("file_refs"),
            actor_id=current_user.id,
            expected_version=_version(form),
        )
    )
    return _respond(outcome)


@main.route("/chapters/<int:chapter_id>/revision/resume", methods=["POST"])
@login_required
def resume_work(chapter_id):
    _writer_chapter(chapter_id)
    form = _validated(ReasonForm())
    return _respond(cmd.handle(cmd.ResumeWork(chapter_id, current_user.id, _version(form))))
