import os
import tempfile
from datetime import datetime, timedelta

import pytest

# The app reads its configuration at import time
os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['AUDIT_LOG_DIR'] = tempfile.mkdtemp(prefix='crvote-audit-')
os.environ['RATELIMIT_ENABLED'] = 'false'
os.environ['JWT_SECRET_KEY'] = 'test-jwt-secret-that-is-long-enough-for-hs256'
os.environ['FRONTEND_BASE_URL'] = 'http://frontend.test'
os.environ.pop('GOOGLE_CALLBACK_URL', None)
os.environ.pop('AUDIT_SIGNING_KEY', None)

from crvote import app as flask_app, db  # noqa: E402
from crvote.database.models import User, Election, Candidate, Vote  # noqa: E402
from crvote.elections import lifecycle  # noqa: E402
from crvote.security.token_manager import TokenManager  # noqa: E402


class FrozenClock:
    """Stand-in for lifecycle.utcnow()."""
    def __init__(self, start):
        self._now = start

    def advance(self, **kwargs):
        self._now += timedelta(**kwargs)

    def __call__(self):
        return self._now


@pytest.fixture
def app():
    flask_app.config['TESTING'] = True
    with flask_app.app_context():
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture
def clock(monkeypatch):
    fc = FrozenClock(datetime(2025, 10, 23, 12, 0, 0))
    monkeypatch.setattr(lifecycle, 'utcnow', fc)
    return fc


@pytest.fixture
def make_user(app):
    def _make_user(email, role, name=None):
        user = User(email=email, role=role, name=name or email.split('@')[0])
        db.session.add(user)
        db.session.commit()
        return user
    return _make_user


@pytest.fixture
def admin(make_user):
    return make_user('admin@gmail.com', 'admin')


@pytest.fixture
def student(make_user):
    return make_user('asha.s@vvce.ac.in', 'student')


def _auth_headers(user):
    token = TokenManager().issue_token(user)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def admin_headers(admin):
    return _auth_headers(admin)


@pytest.fixture
def student_headers(student):
    return _auth_headers(student)


@pytest.fixture
def auth_headers():
    return _auth_headers


@pytest.fixture
def make_election(app, clock):
    """Insert an election that started at the frozen clock's current time."""
    def _make_election(title='CR Election', duration=60, is_active=True, start_time=None):
        election = Election(
            title=title,
            description=f'{title} description',
            duration=duration,
            start_time=start_time or clock(),
            is_active=is_active,
        )
        db.session.add(election)
        db.session.commit()
        return election
    return _make_election


@pytest.fixture
def make_candidate(app):
    def _make_candidate(election, name, gender):
        candidate = Candidate(name=name, name_key=name.strip().casefold(), gender=gender)
        election.candidates.append(candidate)
        db.session.commit()
        return candidate
    return _make_candidate


@pytest.fixture
def add_votes(app, make_user):
    """Record `count` votes for a candidate from freshly created students."""
    counter = {'n': 0}

    def _add_votes(candidate, count):
        for _ in range(count):
            counter['n'] += 1
            voter = make_user(f'voter{counter["n"]}@vvce.ac.in', 'student')
            db.session.add(Vote(user_id=voter.id, election_id=candidate.election_id,
                                candidate_id=candidate.id, gender=candidate.gender))
        db.session.commit()
    return _add_votes
