from flask_wtf import FlaskForm
from wtforms import (
    BooleanField,
    DateTimeField,
    DecimalField,
    IntegerField,
    PasswordField,
    SelectField,
    StringField,
    SubmitField,
    TextAreaField,
)
from wtforms.validators import DataRequired, Email, InputRequired, Length, NumberRange, Optional

from chapterdesk.models import ChapterStatus
from chapterdesk.payments import DISPUTE_RESOLUTIONS
from chapterdesk.pricing import LEVELS, URGENCIES, WORK_TYPES

DATETIME_FORMATS = ["%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%dT%H:%M", "%Y-%m-%d"]


def _choices(values):
    return [(v, v.replace("_", " ").title()) for v in values]


class LoginForm(FlaskForm):
    email = StringField('Email', validators=[DataRequired(), Email()])
    password = PasswordField('Password', validators=[DataRequired()])
    submit = SubmitField('Login')


class VersionedForm(FlaskForm):
    # Version of the chapter the client last read; stale values are rejected.
    version = IntegerField("Version", validators=[Optional()])


class ChapterForm(FlaskForm):
    title = StringField("Title", validators=[DataRequired(), Length(max=200)])
    summary = TextAreaField("Summary", validators=[Optional(), Length(max=500)])
    chapter_number = IntegerField("Chapter Number", validators=[Optional(), NumberRange(min=1)])
    level = SelectField("Academic Level", choices=_choices(LEVELS), default="masters")
    work_type = SelectField("Work Type", choices=_choices(WORK_TYPES), default="coursework")
    urgency = SelectField("Urgency", choices=_choices(URGENCIES), default="normal")
    target_word_count = IntegerField("Target Word Count", validators=[Optional(), NumberRange(min=1)])
    deadline = DateTimeField("Deadline", format=DATETIME_FORMATS, validators=[Optional()])
    submit = SubmitField("Create Chapter")


class EstimateForm(FlaskForm):
    level = SelectField("Academic Level", choices=_choices(LEVELS), default="masters")
    work_type = SelectField("Work Type", choices=_choices(WORK_TYPES), default="coursework")
    urgency = SelectField("Urgency", choices=_choices(URGENCIES), default="normal")
    pages = IntegerField("Pages", validators=[Optional()])
    word_count = IntegerField("Word Count", validators=[Optional()])


class BidForm(FlaskForm):
    amount = DecimalField("Amount", places=2, validators=[InputRequired()])
    estimated_days = IntegerField("Estimated Days", validators=[Optional()])
    message = TextAreaField("Message", validators=[Optional(), Length(max=2000)])
    submit = SubmitField("Place Bid")


class BidActionForm(VersionedForm):
    action = SelectField("Action", choices=[("accept", "Accept"), ("reject", "Reject")])


class AssignWriterForm(VersionedForm):
    writer_id = IntegerField("Writer", validators=[InputRequired()])
    reason = TextAreaField("Reason", validators=[Optional()])


class StatusForm(VersionedForm):
    status = SelectField("Status", choices=_choices(ChapterStatus.ALL))
    reason = TextAreaField("Reason", validators=[Optional()])


class ReasonForm(VersionedForm):
    # Empty reasons are rejected by the ledger with MissingNotes.
    reason = TextAreaField("Reason", validators=[Optional()])


class ContentForm(VersionedForm):
    content = TextAreaField("Content", validators=[DataRequired()])
    changes = StringField("Changes", validators=[Optional(), Length(max=255)])


class DeadlineForm(VersionedForm):
    deadline = DateTimeField("Deadline", format=DATETIME_FORMATS, validators=[InputRequired()])


class CostForm(VersionedForm):
    amount = DecimalField("Estimated Cost", places=2, validators=[InputRequired()])


class PaymentForm(VersionedForm):
    payment_method = StringField("Payment Method", validators=[Optional(), Length(max=30)])


class MarkPaidForm(VersionedForm):
    transaction_reference = StringField("Transaction Reference", validators=[Optional(), Length(max=120)])


class ResolveDisputeForm(VersionedForm):
    resolution = SelectField("Resolution", choices=_choices(DISPUTE_RESOLUTIONS))
    note = TextAreaField("Note", validators=[Optional()])


class DueDateForm(VersionedForm):
    due_date = DateTimeField("Due Date", format=DATETIME_FORMATS, validators=[InputRequired()])
    reason = TextAreaField("Reason", validators=[Optional()])


class PaymentAmountForm(VersionedForm):
    amount = DecimalField("Amount", places=2, validators=[InputRequired()])
    reason = TextAreaField("Reason", validators=[Optional()])


class RevisionRequestForm(VersionedForm):
    notes = TextAreaField("Revision Notes", validators=[Optional()])
    override = BooleanField("Admin Override")


class RevisionSubmitForm(VersionedForm):
    content = TextAreaField("Revised Content", validators=[Optional()])
    notes = TextAreaField("Revision Notes", validators=[Optional()])
