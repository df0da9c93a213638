"""OAuth credential handling shared by the Google adapters."""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/gmail.readonly",
]


def load_credentials(token_path: Path, scopes: list[str] = SCOPES):
    """Load credentials from token.json, refreshing if needed."""
    from google.auth.transport.requests import Request
    from google.oauth2.credentials import Credentials

    if not token_path.exists():
        logger.warning(f"No token at {token_path}, run 'duedesk cal-auth'")
        return None

    creds = Credentials.from_authorized_user_file(str(token_path), scopes)

    if creds.expired and creds.refresh_token:
        try:
            creds.refresh(Request())
            token_path.write_text(creds.to_json())
            token_path.chmod(0o600)
        except Exception as e:
            logger.warning(f"Failed to refresh token at {token_path}: {e}")
            return None

    return creds


def authenticate(client_secret_file: str, token_path: Path, scopes: list[str] = SCOPES) -> bool:
    """Run the OAuth installed-app flow. Returns True on success."""
    from google_auth_oauthlib.flow import InstalledAppFlow

    if not client_secret_file:
        logger.error("No client secret file configured")
        return False

    secret_path = Path(client_secret_file).expanduser()
    if not secret_path.exists():
        logger.error(f"Client secret file not found: {secret_path}")
        return False

    flow = InstalledAppFlow.from_client_secrets_file(str(secret_path), scopes)
    creds = flow.run_local_server(port=0)

    token_path.parent.mkdir(parents=True, exist_ok=True)
    token_path.write_text(creds.to_json())
    token_path.chmod(0o600)
    return True
