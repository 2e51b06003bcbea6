# crvote/security/input_validator.py

import re
import html
import bleach

from crvote.errors import ValidationError
from crvote.database.models import GENDERS

# Request payload validation for the admin and student APIs. Free text is
# stripped of markup before it reaches the database.


class InputValidator:
    def __init__(self):
        self.patterns = {
            'email': re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9-]+(\.[a-zA-Z0-9-]+)*\.[a-zA-Z]{2,}$'),
            'url': re.compile(r'^https?://[^\s<>"]+$', re.IGNORECASE),
            'xss_script': re.compile(r'<script[^>]*>.*?</script>', re.IGNORECASE | re.DOTALL),
            'xss_event': re.compile(r'<[^>]*\bon\w+\s*=', re.IGNORECASE),
        }

    def sanitize_string(self, input_str, max_length=255, field='Input'):
        if not isinstance(input_str, str):
            raise ValueError("Input must be a string")

        if self.patterns['xss_script'].search(input_str) or self.patterns['xss_event'].search(input_str):
            raise ValidationError(f"{field} must not contain scripts or event handlers")

        sanitized = bleach.clean(input_str, tags=set(), attributes={}, strip=True)
        # bleach escapes bare ampersands and angle brackets; store plain text
        sanitized = html.unescape(sanitized).strip()
        if len(sanitized) > max_length:
            raise ValidationError(f"{field} must be at most {max_length} characters")
        return sanitized

    def validate_email(self, email):
        return isinstance(email, str) and bool(self.patterns['email'].match(email))

    def _payload(self, data):
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        return data

    def _text(self, data, field, max_length=255):
        value = data.get(field)
        if value is None:
            return ''
        if not isinstance(value, str):
            raise ValidationError(f"{field} must be a string")
        return self.sanitize_string(value, max_length=max_length, field=field)

    def _identifier(self, value, field):
        if isinstance(value, bool):
            raise ValidationError(f"Invalid {field}")
        try:
            identifier = int(value)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid {field}")
        if identifier <= 0:
            raise ValidationError(f"Invalid {field}")
        return identifier

    def _minutes(self, value, field):
        if value is None or value == '':
            return 0
        if isinstance(value, bool):
            raise ValidationError(f"{field} must be a number")
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{field} must be a number")
        if number < 0 or number != int(number):
            raise ValidationError(f"{field} must be a whole, non-negative number")
        return int(number)

    def validate_election_data(self, data):
        """Return {title, description, duration_minutes} or raise ValidationError."""
        data = self._payload(data)
        title = self._text(data, 'title', max_length=200)
        description = self._text(data, 'description', max_length=2000)
        hours = data.get('durationHours')
        minutes = data.get('durationMinutes')
        if not title or not description or (hours is None and minutes is None):
            raise ValidationError("Title, description, and duration are required")

        total = self._minutes(hours, 'durationHours') * 60 + self._minutes(minutes, 'durationMinutes')
        if total <= 0:
            raise ValidationError("Duration must be greater than zero")
        return {'title': title, 'description': description, 'duration_minutes': total}

    def validate_candidate_data(self, data):
        data = self._payload(data)
        election_id = data.get('electionId')
        name = self._text(data, 'name', max_length=200)
        gender = data.get('gender')
        if not election_id or not name or not gender:
            raise ValidationError("Election, candidate name, and gender are required")
        if gender not in GENDERS:
            raise ValidationError(f"Gender must be one of: {', '.join(GENDERS)}")

        photo_url = data.get('photoUrl') or None
        if photo_url is not None and (not isinstance(photo_url, str) or not self.patterns['url'].match(photo_url)):
            raise ValidationError("photoUrl must be an http(s) URL")

        return {
            'election_id': self._identifier(election_id, 'electionId'),
            'name': name,
            'gender': gender,
            'photo_url': photo_url,
            'description': self._text(data, 'description', max_length=2000) or None,
        }

    def validate_vote_data(self, data):
        data = self._payload(data)
        election_id = data.get('electionId')
        candidate_id = data.get('candidateId')
        if not election_id or not candidate_id:
            raise ValidationError("Election ID and candidate ID are required")
        return {
            'election_id': self._identifier(election_id, 'electionId'),
            'candidate_id': self._identifier(candidate_id, 'candidateId'),
        }
