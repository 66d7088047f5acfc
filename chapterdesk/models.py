from datetime import datetime, timezone

from flask import current_app
from flask_login import UserMixin

from chapterdesk.extensions import db
from chapterdesk.pricing import from_minor, to_minor


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _fmt(dt):
    return dt.strftime("%Y-%m-%d %H:%M:%S") if dt else None


class ChapterStatus:
    DRAFT = "draft"
    PENDING_BIDS = "pending_bids"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REVISION = "revision"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"
    ALL = (DRAFT, PENDING_BIDS, IN_PROGRESS, COMPLETED, REVISION, CANCELLED, DISPUTED)
    # Statuses whose deadline still matters.
    ACTIVE = (DRAFT, PENDING_BIDS, IN_PROGRESS, REVISION)


class BidStatus:
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class PaymentStatus:
    PENDING = "pending"
    COMPLETED = "completed"
    OVERDUE = "overdue"  # derived, never stored
    FAILED = "failed"
    REFUNDED = "refunded"
    DISPUTED = "disputed"
    OPEN = (PENDING, COMPLETED)


class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    name = db.Column(db.String(50), nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.String(20), nullable=False, default="student")
    created_at = db.Column(db.DateTime, default=utcnow)

    @property
    def is_admin(self):
        role = (self.role or "").strip().lower()
        if role == "admin":
            return True
        email = (self.email or "").strip().lower()
        try:
            configured = set(current_app.config.get("ADMIN_EMAILS", []))
        except RuntimeError:
            configured = set()
        return email in configured

    @property
    def is_writer(self):
        return (self.role or "").strip().lower() == "writer"

    def set_password(self, password):
        from werkzeug.security import generate_password_hash
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        from werkzeug.security import check_password_hash
        return check_password_hash(self.password_hash, password)


class Chapter(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    writer_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=True)
    chapter_number = db.Column(db.Integer, nullable=False, default=1)
    title = db.Column(db.String(200), nullable=False)
    summary = db.Column(db.String(500), nullable=True)
    content = db.Column(db.Text, nullable=False, default="")
    level = db.Column(db.String(20), nullable=False, default="masters")
    work_type = db.Column(db.String(20), nullable=False, default="coursework")
    urgency = db.Column(db.String(20), nullable=False, default="normal")
    target_word_count = db.Column(db.Integer, nullable=False, default=2000)
    word_count = db.Column(db.Integer, nullable=False, default=0)
    estimated_pages = db.Column(db.Integer, nullable=False, default=0)
    estimated_cost_minor = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(10), nullable=False, default="KES")
    deadline = db.Column(db.DateTime, nullable=True)
    status = db.Column(db.String(20), nullable=False, default=ChapterStatus.DRAFT, index=True)
    status_reason = db.Column(db.Text, nullable=True)
    paid = db.Column(db.Boolean, nullable=False, default=False)
    revision_count = db.Column(db.Integer, nullable=False, default=0)
    bid_count = db.Column(db.Integer, nullable=False, default=0)
    version = db.Column(db.Integer, nullable=False, default=1)
    assigned_at = db.Column(db.DateTime, nullable=True)
    delivered_at = db.Column(db.DateTime, nullable=True)
    finalized_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    bids = db.relationship("Bid", backref="chapter", lazy=True, order_by="Bid.id")
    payments = db.relationship("PaymentRecord", backref="chapter", lazy=True, order_by="PaymentRecord.id")
    revision_cycles = db.relationship(
        "RevisionCycle", backref="chapter", lazy=True, order_by="RevisionCycle.cycle_number"
    )
    versions = db.relationship("ChapterVersion", backref="chapter", lazy=True, order_by="ChapterVersion.version")

    @property
    def estimated_cost(self):
        return from_minor(self.estimated_cost_minor)

    @estimated_cost.setter
    def estimated_cost(self, value):
        self.estimated_cost_minor = to_minor(value)

    @property
    def accepted_bid(self):
        accepted = [b for b in self.bids if b.status == BidStatus.ACCEPTED]
        return accepted[0] if accepted else None

    @property
    def open_revision(self):
        for cycle in reversed(self.revision_cycles):
            if cycle.resolved_at is None:
                return cycle
        return None

    def is_overdue(self, now=None):
        now = now or utcnow()
        return bool(self.deadline and self.deadline < now and self.status in ChapterStatus.ACTIVE)

    def to_dict(self, now=None):
        return {
            "id": self.id,
            "student_id": self.student_id,
            "writer_id": self.writer_id,
            "chapter_number": self.chapter_number,
            "title": self.title,
            "summary": self.summary,
            "level": self.level,
            "work_type": self.work_type,
            "urgency": self.urgency,
            "target_word_count": self.target_word_count,
            "word_count": self.word_count,
            "estimated_pages": self.estimated_pages,
            "estimated_cost": str(self.estimated_cost),
            "currency": self.currency,
            "deadline": _fmt(self.deadline),
            "status": self.status,
            "status_reason": self.status_reason,
            "paid": self.paid,
            "revision_count": self.revision_count,
            "version": self.version,
            "is_overdue": self.is_overdue(now),
            "assigned_at": _fmt(self.assigned_at),
            "delivered_at": _fmt(self.delivered_at),
            "finalized_at": _fmt(self.finalized_at),
            "bids": [b.to_dict() for b in self.bids],
            "payments": [p.to_dict(now) for p in self.payments],
        }


class Bid(db.Model):
    __table_args__ = (
        db.Index(
            "uq_bid_one_accepted_per_chapter",
            "chapter_id",
            unique=True,
            sqlite_where=db.text("status = 'accepted'"),
            postgresql_where=db.text("status = 'accepted'"),
        ),
    )
    id = db.Column(db.Integer, primary_key=True)
    chapter_id = db.Column(db.Integer, db.ForeignKey("chapter.id"), nullable=False, index=True)
    writer_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    amount_minor = db.Column(db.Integer, nullable=False)
    estimated_days = db.Column(db.Integer, nullable=True)
    message = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default=BidStatus.PENDING)
    placed_by_admin = db.Column(db.Boolean, nullable=False, default=False)
    submitted_at = db.Column(db.DateTime, default=utcnow)
    resolved_at = db.Column(db.DateTime, nullable=True)
    released_at = db.Column(db.DateTime, nullable=True)

    @property
    def amount(self):
        return from_minor(self.amount_minor)

    @amount.setter
    def amount(self, value):
        self.amount_minor = to_minor(value)

    def to_dict(self):
        return {
            "id": self.id,
            "chapter_id": self.chapter_id,
            "writer_id": self.writer_id,
            "amount": str(self.amount),
            "estimated_days": self.estimated_days,
            "message": self.message,
            "status": self.status,
            "placed_by_admin": self.placed_by_admin,
            "submitted_at": _fmt(self.submitted_at),
            "resolved_at": _fmt(self.resolved_at),
            "released_at": _fmt(self.released_at),
        }


class PaymentRecord(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.String(64), unique=True, nullable=False)
    chapter_id = db.Column(db.Integer, db.ForeignKey("chapter.id"), nullable=False, index=True)
    payer_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    amount_minor = db.Column(db.Integer, nullable=False)
    original_amount_minor = db.Column(db.Integer, nullable=True)
    currency = db.Column(db.String(10), nullable=False, default="KES")
    status = db.Column(db.String(20), nullable=False, default=PaymentStatus.PENDING)
    payment_method = db.Column(db.String(30), nullable=True)
    transaction_reference = db.Column(db.String(120), nullable=True)
    platform_fee_minor = db.Column(db.Integer, nullable=False)
    writer_share_minor = db.Column(db.Integer, nullable=False)
    admin_share_minor = db.Column(db.Integer, nullable=False)
    platform_fee_percentage = db.Column(db.String(12), nullable=False)
    writer_commission_percentage = db.Column(db.String(12), nullable=False)
    due_date = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    failed_at = db.Column(db.DateTime, nullable=True)
    failure_reason = db.Column(db.Text, nullable=True)
    refunded_at = db.Column(db.DateTime, nullable=True)
    refund_reason = db.Column(db.Text, nullable=True)
    disputed_at = db.Column(db.DateTime, nullable=True)
    dispute_reason = db.Column(db.Text, nullable=True)
    dispute_resolved_at = db.Column(db.DateTime, nullable=True)
    dispute_resolution = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    @property
    def amount(self):
        return from_minor(self.amount_minor)

    @property
    def platform_fee(self):
        return from_minor(self.platform_fee_minor)

    @property
    def writer_share(self):
        return from_minor(self.writer_share_minor)

    @property
    def admin_share(self):
        return from_minor(self.admin_share_minor)

    def apply_split(self, split):
        self.amount_minor = to_minor(split.amount)
        self.platform_fee_minor = to_minor(split.platform_fee)
        self.writer_share_minor = to_minor(split.writer_share)
        self.admin_share_minor = to_minor(split.admin_share)
        self.platform_fee_percentage = str(split.platform_fee_percentage)
        self.writer_commission_percentage = str(split.writer_commission_percentage)

    def is_overdue(self, now=None):
        now = now or utcnow()
        return bool(self.status == PaymentStatus.PENDING and self.due_date and self.due_date < now)

    def display_status(self, now=None):
        return PaymentStatus.OVERDUE if self.is_overdue(now) else self.status

    def to_dict(self, now=None):
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "chapter_id": self.chapter_id,
            "amount": str(self.amount),
            "currency": self.currency,
            "status": self.display_status(now),
            "payment_method": self.payment_method,
            "platform_fee": str(self.platform_fee),
            "writer_share": str(self.writer_share),
            "admin_share": str(self.admin_share),
            "due_date": _fmt(self.due_date),
            "completed_at": _fmt(self.completed_at),
            "refunded_at": _fmt(self.refunded_at),
            "refund_reason": self.refund_reason,
            "disputed_at": _fmt(self.disputed_at),
            "dispute_reason": self.dispute_reason,
        }


class RevisionCycle(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    chapter_id = db.Column(db.Integer, db.ForeignKey("chapter.id"), nullable=False, index=True)
    cycle_number = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=False)
    requested_by = db.Column(db.Integer, nullable=True)
    requested_at = db.Column(db.DateTime, default=utcnow)
    due_at = db.Column(db.DateTime, nullable=True)
    submitted_content = db.Column(db.Text, nullable=True)
    submission_notes = db.Column(db.Text, nullable=True)
    file_refs = db.Column(db.Text, nullable=True)  # newline separated storage keys
    resolved_at = db.Column(db.DateTime, nullable=True)


class ChapterVersion(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    chapter_id = db.Column(db.Integer, db.ForeignKey("chapter.id"), nullable=False, index=True)
    version = db.Column(db.Integer, nullable=False)
    content = db.Column(db.Text, nullable=False)
    changes = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)


class AuditEntry(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    chapter_id = db.Column(db.Integer, db.ForeignKey("chapter.id"), nullable=False, index=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payment_record.id"), nullable=True)
    actor_id = db.Column(db.Integer, nullable=True)
    action = db.Column(db.String(40), nullable=False)
    from_status = db.Column(db.String(20), nullable=True)
    to_status = db.Column(db.String(20), nullable=True)
    detail = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
