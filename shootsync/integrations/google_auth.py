"""
Shoot Sync — Google Calendar Authentication.

Builds a Calendar API v3 service from credentials an owner already stored
when connecting their calendar. Acquiring those credentials (the OAuth
consent flow) happens outside this service.
"""

from __future__ import annotations

import json
import logging

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build

from shootsync.ports.calendar_port import AuthExpiredError

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar"]


def get_calendar_service_for_user(token_json: str | None):
    """Build a Google Calendar API service from stored user credentials.

    Refreshes the token if expired.

    Raises:
        AuthExpiredError: if the credentials are missing, malformed, or the
            refresh is rejected.
    """
    if not token_json:
        raise AuthExpiredError("No Google credentials stored for this owner")

    try:
        creds = Credentials.from_authorized_user_info(json.loads(token_json), SCOPES)
    except ValueError as exc:
        raise AuthExpiredError(f"Stored Google credentials are invalid: {exc}") from exc

    if creds.expired and creds.refresh_token:
        try:
            creds.refresh(Request())
            logger.info("Google token refreshed")
        except RefreshError as exc:
            raise AuthExpiredError(f"Google token refresh failed: {exc}") from exc

    return build("calendar", "v3", credentials=creds, cache_discovery=False)
