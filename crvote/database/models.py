# crvote/database/models.py

from crvote import db
from crvote.elections.lifecycle import utcnow, election_end_time

GENDERS = ('Male', 'Female')
ROLES = ('student', 'admin', 'CR')
VOTE_UNIQUE_CONSTRAINT = 'uq_vote_user_election_gender'


def _isoformat(value):
    return value.isoformat() + 'Z' if value else None


def candidate_name_key(name):
    """Normalised form used for the per-election duplicate check."""
    return name.strip().casefold()


class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=True)
    email = db.Column(db.String(254), unique=True, nullable=False)
    role = db.Column(db.Enum(*ROLES, name='user_role'), nullable=False, default='student')
    google_id = db.Column(db.String(255), nullable=True)  # external identity reference
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    votes = db.relationship('Vote', backref='voter', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'role': self.role,
        }

    def __repr__(self):
        return f'<User {self.email} ({self.role})>'


class Election(db.Model):
    __tablename__ = 'elections'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    duration = db.Column(db.Integer, nullable=False)  # minutes
    start_time = db.Column(db.DateTime, nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)  # false once ended early
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    candidates = db.relationship(
        'Candidate',
        backref='election',
        cascade='all, delete-orphan',
        order_by='Candidate.id',  # creation order
        lazy=True,
    )
    votes = db.relationship('Vote', backref='election', cascade='all', lazy=True)

    def to_dict(self, include_candidates=True):
        data = {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'duration': self.duration,
            'startTime': _isoformat(self.start_time),
            'endTime': _isoformat(election_end_time(self.start_time, self.duration)),
            'isActive': self.is_active,
            'createdAt': _isoformat(self.created_at),
        }
        if include_candidates:
            data['candidates'] = [c.to_dict() for c in self.candidates]
        return data

    def __repr__(self):
        return f'<Election {self.id} {self.title!r}>'


class Candidate(db.Model):
    __tablename__ = 'candidates'
    __table_args__ = (
        db.UniqueConstraint('election_id', 'name_key', 'gender', name='uq_candidate_election_name_gender'),
    )
    id = db.Column(db.Integer, primary_key=True)
    election_id = db.Column(db.Integer, db.ForeignKey('elections.id', ondelete='CASCADE'), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    name_key = db.Column(db.String(200), nullable=False)
    gender = db.Column(db.Enum(*GENDERS, name='candidate_gender'), nullable=False)
    photo_url = db.Column(db.String(500), nullable=True)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    votes = db.relationship('Vote', backref='candidate', cascade='all', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'electionId': self.election_id,
            'name': self.name,
            'gender': self.gender,
            'photoUrl': self.photo_url,
            'description': self.description,
            'createdAt': _isoformat(self.created_at),
        }


class Vote(db.Model):
    __tablename__ = 'votes'
    # One vote per gender per user per election; the insert is the authoritative check
    __table_args__ = (
        db.UniqueConstraint('user_id', 'election_id', 'gender', name=VOTE_UNIQUE_CONSTRAINT),
    )
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    election_id = db.Column(db.Integer, db.ForeignKey('elections.id', ondelete='CASCADE'), nullable=False)
    candidate_id = db.Column(db.Integer, db.ForeignKey('candidates.id', ondelete='CASCADE'), nullable=False, index=True)
    gender = db.Column(db.Enum(*GENDERS, name='vote_gender'), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f'<Vote {self.id} by User {self.user_id}>'
