# crvote/elections/manager.py

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from crvote import db, audit_logger
from crvote.database.models import Election, Candidate, candidate_name_key
from crvote.elections import lifecycle
from crvote.errors import Conflict, NotFound

# pg_advisory_xact_lock key shared by every process creating elections
CREATE_ELECTION_LOCK_KEY = 0x43525654


class ElectionManager:
    """Admin-side operations on elections and their candidate lists."""

    def get_election(self, election_id):
        election = db.session.get(Election, election_id)
        if election is None:
            raise NotFound("Election not found")
        return election

    def get_candidate(self, candidate_id):
        candidate = db.session.get(Candidate, candidate_id)
        if candidate is None:
            raise NotFound("Candidate not found")
        return candidate

    def list_elections(self):
        return (db.session.query(Election)
                .order_by(Election.created_at.desc(), Election.id.desc())
                .all())

    def list_active_elections(self, now=None):
        if now is None:
            now = lifecycle.utcnow()
        # the flag and start bound narrow the scan; the shared predicate decides
        candidates = (db.session.query(Election)
                      .filter(Election.is_active.is_(True), Election.start_time <= now)
                      .order_by(Election.start_time.desc(), Election.id.desc())
                      .all())
        return [e for e in candidates if lifecycle.election_is_active(e, now)]

    def get_active_election(self, now=None):
        active = self.list_active_elections(now)
        return active[0] if active else None

    def _lock_election_creation(self):
        """Hold a transaction-scoped lock so only one create runs the active check at a time.

        Row locks cannot guard a check that finds no rows, so PostgreSQL gets an
        advisory lock released on commit or rollback. Other databases run
        unserialised and rely on a single writer.
        """
        if db.session.get_bind().dialect.name == 'postgresql':
            db.session.execute(text('SELECT pg_advisory_xact_lock(:key)'), {'key': CREATE_ELECTION_LOCK_KEY})

    def create_election(self, title, description, duration_minutes, created_by=None):
        self._lock_election_creation()
        now = lifecycle.utcnow()
        running = self.get_active_election(now)
        if running is not None:
            raise Conflict("An election is already active")

        election = Election(
            title=title,
            description=description,
            duration=duration_minutes,
            start_time=now,
            is_active=True,
        )
        db.session.add(election)
        db.session.commit()
        current_app.logger.info(f"Election {election.id} created by {created_by}")
        audit_logger.log_security_event(
            'election_created',
            {'election_id': election.id, 'title': title, 'duration': duration_minutes, 'by': created_by},
        )
        return election

    def add_candidate(self, election_id, name, gender, photo_url=None, description=None, created_by=None):
        election = self.get_election(election_id)
        name = name.strip()
        name_key = candidate_name_key(name)

        existing = (db.session.query(Candidate)
                    .filter_by(election_id=election.id, name_key=name_key, gender=gender)
                    .first())
        if existing is not None:
            raise Conflict("Candidate already added to this election and gender")

        candidate = Candidate(
            name=name,
            name_key=name_key,
            gender=gender,
            photo_url=photo_url,
            description=description,
        )
        # the insert and the list append commit together
        election.candidates.append(candidate)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise Conflict("Candidate already added to this election and gender")

        audit_logger.log_security_event(
            'candidate_added',
            {'election_id': election.id, 'candidate_id': candidate.id, 'name': name, 'gender': gender,
             'by': created_by},
        )
        return candidate

    def end_election(self, election_id, ended_by=None):
        election = self.get_election(election_id)
        # zero duration as well, so the window is closed even if the flag is reset
        election.is_active = False
        election.duration = 0
        db.session.commit()
        audit_logger.log_security_event('election_ended', {'election_id': election.id, 'by': ended_by})
        return election

    def delete_election(self, election_id, deleted_by=None):
        election = self.get_election(election_id)
        candidate_count = len(election.candidates)
        db.session.delete(election)
        db.session.commit()
        audit_logger.log_security_event(
            'election_deleted',
            {'election_id': election_id, 'candidates_removed': candidate_count, 'by': deleted_by},
        )

    def delete_candidate(self, candidate_id, deleted_by=None):
        candidate = self.get_candidate(candidate_id)
        election_id = candidate.election_id
        db.session.delete(candidate)
        db.session.commit()
        audit_logger.log_security_event(
            'candidate_deleted',
            {'election_id': election_id, 'candidate_id': candidate_id, 'by': deleted_by},
        )
