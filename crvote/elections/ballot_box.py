# crvote/elections/ballot_box.py

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from crvote import db, audit_logger
from crvote.database.models import Election, Candidate, Vote, GENDERS, VOTE_UNIQUE_CONSTRAINT
from crvote.elections import lifecycle
from crvote.errors import Conflict, Forbidden, NotFound, ValidationError

PAST_WINNERS_LIMIT = 5


def no_candidate(gender):
    return {'name': f'No {gender.lower()} candidate', 'votes': 0}


def pick_winner(tallies, gender):
    """First entry with the highest count wins; tallies are in creation order."""
    winner = None
    for entry in tallies:
        if winner is None or entry['votes'] > winner['votes']:
            winner = entry
    return dict(winner) if winner else no_candidate(gender)


def is_duplicate_vote(error):
    """True when an IntegrityError comes from the one-vote-per-gender constraint."""
    message = str(getattr(error, 'orig', error))
    if VOTE_UNIQUE_CONSTRAINT in message:
        return True
    # SQLite names the columns instead of the constraint
    return 'UNIQUE constraint failed: votes.user_id, votes.election_id, votes.gender' in message


class BallotBox:
    """Casting votes and counting them."""

    def cast_vote(self, user_id, election_id, candidate_id):
        election = db.session.get(Election, election_id)
        if election is None:
            raise NotFound("Election not found")

        if not lifecycle.election_is_active(election, lifecycle.utcnow()):
            raise Forbidden("Election has ended")

        candidate = db.session.get(Candidate, candidate_id)
        if candidate is None or candidate.election_id != election.id:
            raise ValidationError("Invalid candidate for this election")

        gender = candidate.gender
        already_voted = Conflict(f"You have already voted for a {gender} CR")
        if self._find_existing_vote(user_id, election.id, gender) is not None:
            raise already_voted

        vote = Vote(user_id=user_id, election_id=election.id, candidate_id=candidate.id, gender=gender)
        db.session.add(vote)
        try:
            db.session.commit()
        except IntegrityError as e:
            db.session.rollback()
            # a concurrent request for the same (user, election, gender) committed first
            if is_duplicate_vote(e):
                raise already_voted
            raise

        audit_logger.log_security_event(
            'vote_cast', {'vote_id': vote.id, 'election_id': election.id, 'gender': gender}, user_id=user_id
        )
        return vote

    def _find_existing_vote(self, user_id, election_id, gender):
        return (db.session.query(Vote)
                .filter_by(user_id=user_id, election_id=election_id, gender=gender)
                .first())

    def _vote_counts(self, election_id):
        rows = (db.session.query(Vote.candidate_id, func.count(Vote.id))
                .filter(Vote.election_id == election_id)
                .group_by(Vote.candidate_id)
                .all())
        return dict(rows)

    def tally(self, election):
        counts = self._vote_counts(election.id)
        partitions = {gender: [] for gender in GENDERS}
        for candidate in election.candidates:
            partitions[candidate.gender].append({
                'id': candidate.id,
                'name': candidate.name,
                'votes': counts.get(candidate.id, 0),
            })
        winners = {gender: pick_winner(partitions[gender], gender) for gender in GENDERS}
        return partitions, winners

    def results(self, election_id):
        election = db.session.get(Election, election_id)
        if election is None:
            raise NotFound("Election not found")

        partitions, winners = self.tally(election)
        return {
            'election': election.title,
            'electionId': election.id,
            'isActive': lifecycle.election_is_active(election, lifecycle.utcnow()),
            'maleCandidates': partitions['Male'],
            'femaleCandidates': partitions['Female'],
            'maleWinner': winners['Male'],
            'femaleWinner': winners['Female'],
            'totalVotes': sum(c['votes'] for group in partitions.values() for c in group),
        }

    def past_winners(self, limit=PAST_WINNERS_LIMIT):
        finished = (db.session.query(Election)
                    .filter(Election.is_active.is_(False))
                    .order_by(Election.created_at.desc(), Election.id.desc())
                    .limit(limit)
                    .all())
        summaries = []
        for election in finished:
            _, winners = self.tally(election)
            summaries.append({
                'electionId': election.id,
                'electionTitle': election.title,
                'maleWinnerName': winners['Male']['name'],
                'femaleWinnerName': winners['Female']['name'],
            })
        return summaries
