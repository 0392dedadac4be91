"""Authentication helpers for Gmail API."""

from __future__ import annotations

import logging

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build, Resource
from googleapiclient.errors import HttpError

from inbox_cleaner import constants
from inbox_cleaner.errors import AuthError

logger = logging.getLogger(__name__)


def _load_cached_credentials() -> Credentials | None:
    if not constants.TOKEN_PATH.exists():
        return None
    try:
        return Credentials.from_authorized_user_file(str(constants.TOKEN_PATH), constants.SCOPES)
    except ValueError:
        logger.warning("Ignoring unreadable token file at %s", constants.TOKEN_PATH)
        return None


def authenticate(interactive: bool = True, force_refresh: bool = False) -> Credentials:
    """Return valid Gmail OAuth credentials.

    Loads the cached token from TOKEN_PATH if available.  An expired token
    (or any token when ``force_refresh`` is set) is refreshed with its
    refresh token.  When nothing usable is cached, the OAuth browser flow
    runs if ``interactive`` is true; otherwise AuthError is raised, which
    makes a non-interactive call a cheap "am I signed in?" check.
    """
    constants.CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    creds = _load_cached_credentials()

    if creds and creds.refresh_token and (force_refresh or creds.expired):
        try:
            creds.refresh(Request())
        except RefreshError as exc:
            logger.warning("Token refresh failed: %s", exc)
            drop_cached_token()
            creds = None

    if not creds or not creds.valid:
        if not interactive:
            raise AuthError("Not signed in to Gmail. Run 'inbox-cleaner auth' first.")
        if not constants.CREDENTIALS_PATH.exists():
            raise FileNotFoundError(
                f"Credentials file not found at {constants.CREDENTIALS_PATH}.\n"
                "Download your OAuth client credentials from the Google Cloud Console "
                "and save them as:\n"
                f"  {constants.CREDENTIALS_PATH}"
            )
        flow = InstalledAppFlow.from_client_secrets_file(
            str(constants.CREDENTIALS_PATH), constants.SCOPES
        )
        creds = flow.run_local_server(port=0)

    constants.TOKEN_PATH.write_text(creds.to_json())
    return creds


def drop_cached_token() -> None:
    """Forget the cached token so the next interactive call signs in again."""
    constants.TOKEN_PATH.unlink(missing_ok=True)


def build_service(creds: Credentials) -> Resource:
    """Build a Gmail API service object for the given credentials."""
    return build("gmail", "v1", credentials=creds, cache_discovery=False)


def check_auth() -> bool:
    """Sign in (running the browser flow if needed) and report the account.

    Returns False and prints the reason when sign-in or the profile lookup
    fails.
    """
    try:
        creds = authenticate(interactive=True)
        profile = build_service(creds).users().getProfile(userId="me").execute()
    except (FileNotFoundError, AuthError, HttpError, RefreshError) as exc:
        print(f"Gmail sign-in failed: {exc}")
        return False

    print(f"Signed in to Gmail as {profile['emailAddress']} ({profile.get('messagesTotal', '?')} messages)")
    print(f"Token cached at {constants.TOKEN_PATH}")
    return True
