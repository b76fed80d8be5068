from __future__ import annotations

import logging
from pathlib import Path

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from notioncal.models import CalDAVConfig

logger = logging.getLogger(__name__)

# If modifying these scopes, delete the stored token file.
SCOPES = ["https://www.googleapis.com/auth/calendar"]


def _save_credentials(credentials: Credentials, token_path: Path) -> None:
    token_path.parent.mkdir(parents=True, exist_ok=True)
    token_path.write_text(credentials.to_json(), encoding="utf-8")
    token_path.chmod(0o600)


def load_credentials(config: CalDAVConfig) -> Credentials | None:
    token_path = Path(config.oauth_token_path)
    if not token_path.exists():
        logger.warning("No stored OAuth token at %s", token_path)
        return None
    credentials = Credentials.from_authorized_user_file(str(token_path), SCOPES)
    if credentials.valid:
        logger.info("Access token is valid until %s", credentials.expiry)
        return credentials
    if not credentials.refresh_token:
        logger.error("Stored OAuth token has no refresh token, run `notioncal authorize`.")
        return None
    try:
        credentials.refresh(Request())
    except RefreshError as exc:
        logger.error("Error refreshing access token: %s", exc)
        return None
    _save_credentials(credentials, token_path)
    logger.info("Access token refreshed successfully")
    return credentials


def authorize_interactive(config: CalDAVConfig, port: int = 0) -> Credentials:
    credentials_path = Path(config.oauth_credentials_path)
    if not credentials_path.exists():
        raise RuntimeError(f"OAuth client secrets not found: {credentials_path}")
    flow = InstalledAppFlow.from_client_secrets_file(str(credentials_path), SCOPES)
    # The browser is not opened so the consent URL also works from a container.
    credentials = flow.run_local_server(
        port=port,
        open_browser=False,
        authorization_prompt_message="Go to {url}",
        success_message="Authentication successful! Please return to the console.",
    )
    _save_credentials(credentials, Path(config.oauth_token_path))
    return credentials
