# crvote/routes.py

# HTTP surface: Google sign-in, the admin API (/api/admin) and the student
# API (/api/student). Views stay thin and delegate to the election services;
# @operation turns service errors into {"message": ...} responses.

from flask import request, jsonify, session, redirect, url_for
from flask_jwt_extended import jwt_required
from sqlalchemy import text

from crvote import app, limiter, db, audit_logger
from crvote.authentication.rbac import UserRole, DomainNotAllowed, require_role
from crvote.authentication.google_oauth import GoogleOAuthClient, OAuthError
from crvote.authentication.identity import IdentityService
from crvote.elections.manager import ElectionManager
from crvote.elections.ballot_box import BallotBox
from crvote.errors import operation, Unauthenticated
from crvote.security.input_validator import InputValidator
from crvote.security.token_manager import TokenManager

oauth_client = GoogleOAuthClient()
identity_service = IdentityService()
token_manager = TokenManager()
election_manager = ElectionManager()
ballot_box = BallotBox()
validator = InputValidator()

DASHBOARDS = {
    UserRole.ADMIN.value: 'admin-dashboard.html',
    UserRole.STUDENT.value: 'voter-dashboard.html',
}


def _acting_email():
    return token_manager.current_claims().get('email')


# ---------------------------------------------------------------- auth ---

@app.route('/')
def home():
    return redirect(url_for('google_login'))


@app.route('/auth/google')
def google_login():
    return redirect(oauth_client.authorization_url())


@app.route('/auth/google/callback')
def google_callback():
    if request.args.get('error'):
        audit_logger.log_security_event('failed_login', {'reason': request.args['error'], 'ip': request.remote_addr})
        return redirect(url_for('auth_failure'))
    try:
        profile = oauth_client.complete_sign_in(request.args.get('state'), request.args.get('code'))
        user = identity_service.sync_user(profile)
    except DomainNotAllowed as e:
        audit_logger.log_security_event('failed_login', {'email': e.email, 'reason': 'domain not allowed'})
        return redirect(url_for('auth_failure'))
    except (OAuthError, ValueError) as e:
        app.logger.warning(f"OAuth callback rejected: {e}")
        audit_logger.log_security_event('failed_login', {'reason': str(e), 'ip': request.remote_addr})
        return redirect(url_for('auth_failure'))
    except Exception as e:
        db.session.rollback()
        app.logger.exception(f"OAuth callback error: {e}")
        audit_logger.log_security_event('login_error', {'error': str(e), 'ip': request.remote_addr})
        return redirect(url_for('auth_failure'))

    token = token_manager.issue_token(user)
    audit_logger.log_security_event('successful_login', {'email': user.email, 'role': user.role}, user_id=user.id)

    base_url = app.config['FRONTEND_BASE_URL']
    page = DASHBOARDS.get(user.role, '')
    return redirect(f"{base_url}/{page}?token={token}")


@app.route('/auth/failure')
def auth_failure():
    message = (
        f"Authentication failed. Only @{app.config['STUDENT_EMAIL_DOMAIN']} (students) "
        f"or @{app.config['ADMIN_EMAIL_DOMAIN']} (admins) allowed."
    )
    return jsonify({'message': message}), 401


@app.route('/auth/logout')
def logout():
    session.clear()
    return jsonify({'message': 'Logged out'})


# --------------------------------------------------------------- admin ---

@app.route('/api/admin/create-election', methods=['POST'])
@jwt_required()
@require_role(UserRole.ADMIN)
@operation('create_election')
def create_election():
    data = validator.validate_election_data(request.get_json(silent=True))
    election = election_manager.create_election(created_by=_acting_email(), **data)
    return jsonify({'message': 'Election created successfully', 'election': election.to_dict()}), 201


@app.route('/api/admin/add-candidate', methods=['POST'])
@jwt_required()
@require_role(UserRole.ADMIN)
@operation('add_candidate')
def add_candidate():
    data = validator.validate_candidate_data(request.get_json(silent=True))
    candidate = election_manager.add_candidate(created_by=_acting_email(), **data)
    return jsonify({'message': 'Candidate added successfully', 'candidate': candidate.to_dict()}), 201


@app.route('/api/admin/elections')
@jwt_required()
@require_role(UserRole.ADMIN)
@operation('list_elections')
def list_elections():
    elections = election_manager.list_elections()
    return jsonify({'message': 'Elections fetched', 'elections': [e.to_dict() for e in elections]})


@app.route('/api/admin/active-elections')
@jwt_required()
@require_role(UserRole.ADMIN)
@operation('list_active_elections')
def list_active_elections():
    elections = election_manager.list_active_elections()
    return jsonify({'message': 'Active elections fetched', 'elections': [e.to_dict() for e in elections]})


@app.route('/api/admin/results/<int:election_id>')
@jwt_required()
@require_role(UserRole.ADMIN)
@operation('admin_results')
def admin_results(election_id):
    return jsonify({'message': 'Results fetched', **ballot_box.results(election_id)})


@app.route('/api/admin/end-election/<int:election_id>', methods=['PUT'])
@jwt_required()
@require_role(UserRole.ADMIN)
@operation('end_election')
def end_election(election_id):
    election = election_manager.end_election(election_id, ended_by=_acting_email())
    return jsonify({'message': 'Election ended early', 'election': election.to_dict(include_candidates=False)})


@app.route('/api/admin/delete-election/<int:election_id>', methods=['DELETE'])
@jwt_required()
@require_role(UserRole.ADMIN)
@operation('delete_election')
def delete_election(election_id):
    election_manager.delete_election(election_id, deleted_by=_acting_email())
    return jsonify({'message': 'Election and related candidates deleted successfully'})


@app.route('/api/admin/delete-candidate/<int:candidate_id>', methods=['DELETE'])
@jwt_required()
@require_role(UserRole.ADMIN)
@operation('delete_candidate')
def delete_candidate(candidate_id):
    election_manager.delete_candidate(candidate_id, deleted_by=_acting_email())
    return jsonify({'message': 'Candidate deleted successfully'})


# ------------------------------------------------------------- student ---

@app.route('/api/student/active-election')
@jwt_required()
@operation('active_election')
def active_election():
    election = election_manager.get_active_election()
    if election is None:
        return jsonify({'message': 'No active election right now', 'isActive': False})
    return jsonify({'message': 'Active election found', 'isActive': True, 'election': election.to_dict()})


@app.route('/api/student/vote', methods=['POST'])
@limiter.limit("20/minute")
@jwt_required()
@operation('submit_vote')
def submit_vote():
    user_id = token_manager.current_claims().get('id')
    if not user_id:
        raise Unauthenticated("Unauthorized - Invalid token")
    data = validator.validate_vote_data(request.get_json(silent=True))
    ballot_box.cast_vote(user_id, data['election_id'], data['candidate_id'])
    return jsonify({'message': 'Vote submitted successfully'}), 201


@app.route('/api/student/results/<int:election_id>')
@jwt_required()
@operation('student_results')
def student_results(election_id):
    return jsonify({'message': 'Results fetched', **ballot_box.results(election_id)})


@app.route('/api/student/past-winners')
@jwt_required()
@operation('past_winners')
def past_winners():
    return jsonify({'message': 'Past winners fetched', 'winners': ballot_box.past_winners()})


# ----------------------------------------------------------------- ops ---

@app.route('/health')
@limiter.exempt
def health():
    try:
        db.session.execute(text('SELECT 1'))
    except Exception as e:
        app.logger.error(f"Health check failed: {e}")
        db.session.rollback()
        return jsonify({'message': 'unhealthy', 'database': 'unavailable'}), 503
    return jsonify({'message': 'healthy', 'database': 'ok'})
