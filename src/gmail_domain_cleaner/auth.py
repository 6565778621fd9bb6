"""Authentication helpers for Gmail API."""

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build, Resource

from .config import Settings
from .constants import SCOPES
from .errors import RemoteCallError
from .gmail_client import GmailRemote


def get_gmail_service(settings: Settings, mailbox: str) -> Resource:
    """Return an authenticated Gmail API service object for one mailbox.

    Each mailbox keeps its own token under the token directory. An expired
    token is refreshed silently; with no token an OAuth browser flow is
    launched (requires the OAuth client file at settings.credentials_path).
    """
    token_path = settings.token_path(mailbox)
    token_path.parent.mkdir(parents=True, exist_ok=True)

    creds: Credentials | None = None

    if token_path.exists():
        creds = Credentials.from_authorized_user_file(str(token_path), SCOPES)

    if creds and creds.expired and creds.refresh_token:
        creds.refresh(Request())
    elif not creds or not creds.valid:
        if not settings.credentials_path.exists():
            raise FileNotFoundError(
                f"Credentials file not found at {settings.credentials_path}.\n"
                "Download your OAuth client credentials from the Google Cloud Console "
                "and save them as:\n"
                f"  {settings.credentials_path}"
            )
        flow = InstalledAppFlow.from_client_secrets_file(str(settings.credentials_path), SCOPES)
        flow_kwargs = {"port": 0}
        if "@" in mailbox:
            flow_kwargs["login_hint"] = mailbox
        creds = flow.run_local_server(**flow_kwargs)

    token_path.write_text(creds.to_json())

    return build("gmail", "v1", credentials=creds, cache_discovery=False)


def connect(settings: Settings, mailbox: str) -> GmailRemote:
    """Authenticate and check that the token belongs to `mailbox`.

    Any failure here is fatal for the session; it is raised as RemoteCallError
    (or FileNotFoundError for missing client credentials).
    """
    try:
        service = get_gmail_service(settings, mailbox)
    except GoogleAuthError as exc:
        raise RemoteCallError(f"Authentication failed: {exc}") from exc

    remote = GmailRemote(service)
    address = remote.profile_address()
    if address.lower() != mailbox.lower():
        raise RemoteCallError(
            f"Authenticated as {address}, not {mailbox}. "
            f"Delete {settings.token_path(mailbox)} and sign in with the right account."
        )
    return remote
