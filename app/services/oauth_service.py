"""
OAuth service: Google token endpoint (code exchange, refresh), userinfo, revocation.

Plain HTTPS calls with requests and config timeouts. Callers decide what to
persist; nothing here touches the database.
"""
import logging
from dataclasses import dataclass

import requests

from config import (
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_REVOKE_URL,
    GOOGLE_TOKEN_URL,
    GOOGLE_USERINFO_URL,
    OAUTH_REQUEST_TIMEOUT,
)
from services.errors import AuthRequiresRelink, OAuthExchangeFailed, RemoteUnavailable

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN = 3600

# Token endpoint errors meaning the grant itself is dead
RELINK_ERRORS = ("invalid_grant", "unauthorized_client")


@dataclass
class TokenGrant:
    """Tokens returned by the token endpoint. refresh_token may be None on refresh."""
    access_token: str
    refresh_token: str | None
    expires_in: int


def _post_token_endpoint(data: dict) -> dict:
    try:
        resp = requests.post(
            GOOGLE_TOKEN_URL,
            data={
                "client_id": GOOGLE_CLIENT_ID,
                "client_secret": GOOGLE_CLIENT_SECRET,
                **data,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=OAUTH_REQUEST_TIMEOUT,
        )
    except requests.exceptions.RequestException as e:
        raise RemoteUnavailable(f"Google token endpoint unreachable: {e}") from e
    if resp.status_code >= 500:
        raise RemoteUnavailable(
            f"Google token endpoint failed with status {resp.status_code}",
            provider_status=resp.status_code,
            provider_detail=resp.text,
        )
    try:
        return resp.json()
    except ValueError as e:
        raise RemoteUnavailable(
            "Google token endpoint returned a non-JSON response",
            provider_status=resp.status_code,
        ) from e


def exchange_code(code: str, redirect_uri: str) -> TokenGrant:
    """Trade an authorization code for tokens. Raises OAuthExchangeFailed on rejection."""
    data = _post_token_endpoint(
        {
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": redirect_uri,
        }
    )
    if "error" in data:
        raise OAuthExchangeFailed(
            f"OAuth failed: {data.get('error_description', data['error'])}"
        )
    access_token = data.get("access_token")
    if not access_token:
        raise OAuthExchangeFailed("Token exchange did not return access_token")
    return TokenGrant(
        access_token=access_token,
        refresh_token=data.get("refresh_token"),
        expires_in=int(data.get("expires_in", DEFAULT_EXPIRES_IN)),
    )


def refresh_access_token(refresh_token: str) -> TokenGrant:
    """
    Refresh-token grant. invalid_grant or unauthorized_client means the stored
    refresh token is dead: raise AuthRequiresRelink, never retry. Provider
    outages (5xx) and other errors are RemoteUnavailable.
    """
    data = _post_token_endpoint(
        {
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
    )
    error = data.get("error")
    if error in RELINK_ERRORS:
        reason = data.get("error_description") or error
        raise AuthRequiresRelink(
            f"Token refresh failed: {reason}. Please reconnect Google Drive from your profile."
        )
    if error or not data.get("access_token"):
        raise RemoteUnavailable(
            f"Token refresh failed: {data.get('error_description') or error or 'no access_token'}",
            provider_detail=str(data),
        )
    return TokenGrant(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
        expires_in=int(data.get("expires_in", DEFAULT_EXPIRES_IN)),
    )


def fetch_identity(access_token: str) -> str | None:
    """Return the verified e-mail of the account that owns access_token."""
    try:
        resp = requests.get(
            GOOGLE_USERINFO_URL,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=OAUTH_REQUEST_TIMEOUT,
        )
        resp.raise_for_status()
    except requests.exceptions.RequestException as e:
        status = getattr(getattr(e, "response", None), "status_code", None)
        if status == 401:
            raise AuthRequiresRelink("Google rejected the Drive access token; please reconnect Google Drive") from e
        raise RemoteUnavailable(
            "Failed to read Google account identity", provider_status=status
        ) from e
    return resp.json().get("email")


def revoke_token(token: str | None) -> bool:
    """
    Best-effort revocation. Returns True when Google confirmed it; failures are
    logged and reported as False, never raised.
    """
    if not token:
        return False
    try:
        resp = requests.post(
            GOOGLE_REVOKE_URL,
            params={"token": token},
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=OAUTH_REQUEST_TIMEOUT,
        )
    except requests.exceptions.RequestException as e:
        logger.warning("Token revocation failed: %s", e)
        return False
    if not resp.ok:
        logger.warning("Token revocation rejected with status %s", resp.status_code)
        return False
    return True
