# crvote/authentication/identity.py

from flask import current_app
from sqlalchemy.exc import IntegrityError

from crvote import db, audit_logger
from crvote.database.models import User
from crvote.authentication.rbac import role_from_email


class IdentityService:
    """Find-or-create users from a verified external profile.

    The role is re-derived from the e-mail on every sign-in and overrides
    whatever is stored; running sync_user twice with the same profile is a
    no-op the second time.
    """

    def get_user_by_email(self, email):
        return db.session.query(User).filter_by(email=email).first()

    def sync_user(self, profile):
        email = profile['email'].strip().lower()
        role = role_from_email(email).value  # DomainNotAllowed propagates; nothing is written

        user = self.get_user_by_email(email)
        if user is None:
            user = User(name=profile.get('name'), email=email, role=role, google_id=profile.get('id'))
            db.session.add(user)
            try:
                db.session.commit()
            except IntegrityError:
                # a parallel first sign-in for the same address won the insert
                db.session.rollback()
                user = self.get_user_by_email(email)
            else:
                current_app.logger.info(f"Created {role}: {email}")
                audit_logger.log_security_event('user_created', {'email': email, 'role': role}, user_id=user.id)
                return user

        changes = {}
        if not user.google_id and profile.get('id'):
            user.google_id = profile['id']
            changes['google_id'] = 'linked'
        if user.role != role:
            changes['role'] = {'from': user.role, 'to': role}
            user.role = role
        if changes:
            db.session.commit()
            current_app.logger.info(f"Updated {email} -> role: {role}")
            audit_logger.log_security_event('user_updated', {'email': email, 'changes': changes}, user_id=user.id)
        return user
