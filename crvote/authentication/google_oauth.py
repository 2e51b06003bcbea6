# crvote/authentication/google_oauth.py

import secrets
from urllib.parse import urlencode
import requests
from flask import current_app, session

# Authorization-code flow against Google's OpenID endpoints. Only the pieces
# the backend needs: build the consent URL, swap the code for an access
# token, and read the signed-in user's profile.

AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
SCOPES = ("openid", "email", "profile")
STATE_SESSION_KEY = "google_oauth_state"
REQUEST_TIMEOUT = 10


class OAuthError(Exception):
    pass


class GoogleOAuthClient:
    def __init__(self, client_id=None, client_secret=None, callback_url=None):
        self._client_id = client_id
        self._client_secret = client_secret
        self._callback_url = callback_url

    @property
    def client_id(self):
        return self._client_id or current_app.config['GOOGLE_CLIENT_ID']

    @property
    def client_secret(self):
        return self._client_secret or current_app.config['GOOGLE_CLIENT_SECRET']

    @property
    def callback_url(self):
        return self._callback_url or current_app.config['GOOGLE_CALLBACK_URL']

    def authorization_url(self):
        """Consent-screen URL; the anti-forgery state is kept in the session."""
        state = secrets.token_urlsafe(24)
        session[STATE_SESSION_KEY] = state
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.callback_url,
            "response_type": "code",
            "scope": " ".join(SCOPES),
            "state": state,
            "prompt": "select_account",
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    def verify_state(self, state):
        expected = session.pop(STATE_SESSION_KEY, None)
        if not expected or not state or not secrets.compare_digest(expected, state):
            raise OAuthError("OAuth state mismatch")

    def exchange_code(self, code):
        if not code:
            raise OAuthError("Missing authorization code")
        response = requests.post(TOKEN_URL, data={
            "code": code,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": self.callback_url,
            "grant_type": "authorization_code",
        }, timeout=REQUEST_TIMEOUT)
        if response.status_code != 200:
            raise OAuthError(f"Token exchange failed with status {response.status_code}")
        access_token = response.json().get("access_token")
        if not access_token:
            raise OAuthError("Token response did not include an access token")
        return access_token

    def fetch_profile(self, access_token):
        """Return {id, email, name} for the signed-in Google account."""
        response = requests.get(
            USERINFO_URL,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=REQUEST_TIMEOUT,
        )
        if response.status_code != 200:
            raise OAuthError(f"Userinfo request failed with status {response.status_code}")
        info = response.json()
        if not info.get("email"):
            raise OAuthError("Google profile has no e-mail address")
        if info.get("email_verified") is False:
            raise OAuthError("Google e-mail address is not verified")
        return {
            "id": info.get("sub"),
            "email": info["email"],
            "name": info.get("name") or info["email"].split("@")[0],
        }

    def complete_sign_in(self, state, code):
        self.verify_state(state)
        return self.fetch_profile(self.exchange_code(code))
