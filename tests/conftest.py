import os
import tempfile
from types import SimpleNamespace

import pytest

from chapterdesk import create_app
from chapterdesk import mail
from chapterdesk.extensions import db
from chapterdesk.lifecycle import create_chapter
from chapterdesk.models import User


@pytest.fixture()
def outbox(monkeypatch):
    sent = []
    monkeypatch.setattr(mail, "send", lambda msg: sent.append(msg))
    return sent


@pytest.fixture()
def app(outbox):
    fd, test_db_path = tempfile.mkstemp(prefix="chapterdesk_test_", suffix=".db")
    os.close(fd)
    app = create_app(
        {
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{test_db_path}",
            "TESTING": True,
            "WTF_CSRF_ENABLED": False,
            "MAIL_SUPPRESS_SEND": True,
            "ADMIN_EMAILS": [],
            "OPEN_BIDDING_ON_CREATE": True,
            "MAX_REVISION_REQUESTS": None,
        }
    )
    with app.app_context():
        db.drop_all()
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()
    if os.path.exists(test_db_path):
        try:
            os.remove(test_db_path)
        except PermissionError:
            pass


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def ctx(app):
    with app.app_context():
        yield app


def _create_user(email, name, role="student", password="pass12345"):
    user = User(email=email, name=name, role=role)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture()
def make_user(app):
    return _create_user


@pytest.fixture()
def people(ctx):
    return SimpleNamespace(
        student=_create_user("student@example.com", "Student User").id,
        writer=_create_user("writer@example.com", "Writer One", role="writer").id,
        writer2=_create_user("writer2@example.com", "Writer Two", role="writer").id,
        admin=_create_user("admin@example.com", "Admin User", role="admin").id,
    )


@pytest.fixture()
def make_chapter(people):
    def _make(**kwargs):
        kwargs.setdefault("title", "Literature Review")
        kwargs.setdefault("level", "phd")
        kwargs.setdefault("work_type", "coursework")
        kwargs.setdefault("urgency", "urgent")
        kwargs.setdefault("target_word_count", 2500)
        return create_chapter(people.student, **kwargs)

    return _make
