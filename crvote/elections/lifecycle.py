# crvote/elections/lifecycle.py

from datetime import datetime, timedelta, timezone

# An election is open from start_time (inclusive) for `duration` minutes
# (exclusive), and only while its manual is_active flag is still set.
# Every caller that asks "is this election running?" goes through
# is_currently_active() so the rule lives in one place.


def utcnow():
    """Naive UTC timestamp, the representation stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def election_end_time(start_time, duration_minutes):
    if start_time is None or duration_minutes is None:
        return None
    return start_time + timedelta(minutes=duration_minutes)


def is_currently_active(now, start_time, duration_minutes, is_active):
    if not is_active or start_time is None or duration_minutes is None:
        return False
    if start_time > now:
        return False
    elapsed_ms = (now - start_time) / timedelta(milliseconds=1)
    return elapsed_ms < duration_minutes * 60000


def election_is_active(election, now=None):
    """Apply is_currently_active() to an Election row."""
    if now is None:
        now = utcnow()
    return is_currently_active(now, election.start_time, election.duration, election.is_active)
