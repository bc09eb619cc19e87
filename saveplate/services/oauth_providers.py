"""
Identity provider clients for Google and Facebook sign-in.

Each client turns an authorization code, ID token or access token into a
normalized OAuthIdentity. All network calls go through httpx with a finite
timeout. A provider with missing credentials raises ConfigurationError for
its own requests only.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from saveplate.core.config import settings
from saveplate.core.exceptions import ConfigurationError, OAuthProviderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OAuthIdentity:
    provider: str
    provider_id: Optional[str]
    email: Optional[str]
    display_name: Optional[str] = None
    picture_url: Optional[str] = None


class _ProviderClient:
    """Shared HTTP plumbing for provider clients."""

    name = "provider"

    def __init__(self, timeout: float, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _request_json(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise OAuthProviderError(f"{self.name} request to {url} failed: {e}") from e

        if response.status_code != 200:
            raise OAuthProviderError(
                f"{self.name} returned {response.status_code} for {url}: {response.text}"
            )
        try:
            return response.json()
        except ValueError as e:
            raise OAuthProviderError(f"{self.name} returned invalid JSON for {url}") from e


class GoogleOAuthProvider(_ProviderClient):
    """
    Google OAuth 2.0 / OpenID Connect client.

    Supports the server-side redirect flow (authorization code) and ID tokens
    obtained by the frontend with Google Identity Services.
    """

    name = "google"

    AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    USER_INFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"
    TOKEN_INFO_URL = "https://oauth2.googleapis.com/tokeninfo"
    ISSUERS = ("accounts.google.com", "https://accounts.google.com")

    SCOPES = ["openid", "email", "profile"]

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        super().__init__(timeout, transport)
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri

    def _require_client_id(self) -> None:
        if not self.client_id:
            raise ConfigurationError("Google sign-in is not configured")

    def _require_credentials(self) -> None:
        self._require_client_id()
        if not self.client_secret:
            raise ConfigurationError("Google sign-in is not configured")

    def get_authorization_url(self, state: str) -> str:
        self._require_credentials()
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(self.SCOPES),
            "state": state,
            "prompt": "select_account",
        }
        return f"{self.AUTH_URL}?{urlencode(params)}"

    async def identity_from_code(self, code: str) -> OAuthIdentity:
        """
        Exchange an authorization code and fetch the signed-in profile.

        Raises:
            OAuthProviderError: Exchange or profile request failed
        """
        self._require_credentials()
        token_data = await self._request_json(
            "POST",
            self.TOKEN_URL,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        access_token = token_data.get("access_token")
        if not access_token:
            raise OAuthProviderError("google token response has no access_token")

        profile = await self._request_json(
            "GET",
            self.USER_INFO_URL,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        return self._normalize(profile)

    async def identity_from_id_token(self, id_token: str) -> OAuthIdentity:
        """
        Validate a Google ID token with the tokeninfo endpoint.

        Raises:
            OAuthProviderError: Token rejected, or issued for another client
        """
        self._require_client_id()
        claims = await self._request_json("GET", self.TOKEN_INFO_URL, params={"id_token": id_token})

        if claims.get("aud") != self.client_id:
            raise OAuthProviderError("google ID token audience mismatch")
        if claims.get("iss") not in self.ISSUERS:
            raise OAuthProviderError(f"google ID token has unexpected issuer {claims.get('iss')!r}")

        return self._normalize(claims)

    def _normalize(self, data: Dict[str, Any]) -> OAuthIdentity:
        display_name = data.get("name")
        if not display_name and (data.get("given_name") or data.get("family_name")):
            display_name = " ".join(p for p in (data.get("given_name"), data.get("family_name")) if p)

        # Unverified Google addresses are not trusted for account matching
        email = data.get("email")
        verified = data.get("email_verified", True)
        if email and str(verified).lower() == "false":
            logger.warning("Google returned an unverified email; ignoring it")
            email = None

        return OAuthIdentity(
            provider=self.name,
            provider_id=data.get("sub") or data.get("id"),
            email=email,
            display_name=display_name,
            picture_url=data.get("picture"),
        )


class FacebookOAuthProvider(_ProviderClient):
    """
    Facebook Login client (Graph API).

    Supports the authorization-code flow and access tokens obtained by the
    frontend SDK. Access tokens are checked with debug_token against our app id.
    """

    name = "facebook"

    PROFILE_FIELDS = "id,name,email,picture.type(large)"

    def __init__(
        self,
        app_id: str,
        app_secret: str,
        graph_version: str = "v19.0",
        redirect_uri: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        super().__init__(timeout, transport)
        self.app_id = app_id
        self.app_secret = app_secret
        self.redirect_uri = redirect_uri
        self.graph_url = f"https://graph.facebook.com/{graph_version}"

    def _require_credentials(self) -> None:
        if not self.app_id or not self.app_secret:
            raise ConfigurationError("Facebook sign-in is not configured")

    async def identity_from_code(self, code: str, redirect_uri: Optional[str] = None) -> OAuthIdentity:
        self._require_credentials()
        token_data = await self._request_json(
            "GET",
            f"{self.graph_url}/oauth/access_token",
            params={
                "client_id": self.app_id,
                "client_secret": self.app_secret,
                "redirect_uri": redirect_uri or self.redirect_uri,
                "code": code,
            },
        )
        access_token = token_data.get("access_token")
        if not access_token:
            raise OAuthProviderError("facebook token response has no access_token")
        return await self._fetch_profile(access_token)

    async def identity_from_access_token(self, access_token: str) -> OAuthIdentity:
        self._require_credentials()
        debug = await self._request_json(
            "GET",
            f"{self.graph_url}/debug_token",
            params={
                "input_token": access_token,
                "access_token": f"{self.app_id}|{self.app_secret}",
            },
        )
        data = debug.get("data") or {}
        if not data.get("is_valid"):
            raise OAuthProviderError("facebook access token is not valid")
        if str(data.get("app_id")) != str(self.app_id):
            raise OAuthProviderError("facebook access token was issued for another app")

        return await self._fetch_profile(access_token)

    async def _fetch_profile(self, access_token: str) -> OAuthIdentity:
        profile = await self._request_json(
            "GET",
            f"{self.graph_url}/me",
            params={"fields": self.PROFILE_FIELDS, "access_token": access_token},
        )
        picture = (profile.get("picture") or {}).get("data") or {}
        return OAuthIdentity(
            provider=self.name,
            provider_id=profile.get("id"),
            email=profile.get("email"),
            display_name=profile.get("name"),
            picture_url=picture.get("url"),
        )


def build_google_provider() -> GoogleOAuthProvider:
    return GoogleOAuthProvider(
        client_id=settings.GOOGLE_CLIENT_ID,
        client_secret=settings.GOOGLE_CLIENT_SECRET,
        redirect_uri=settings.GOOGLE_REDIRECT_URI,
        timeout=settings.OAUTH_HTTP_TIMEOUT,
    )


def build_facebook_provider() -> FacebookOAuthProvider:
    return FacebookOAuthProvider(
        app_id=settings.FACEBOOK_APP_ID,
        app_secret=settings.FACEBOOK_APP_SECRET,
        graph_version=settings.FACEBOOK_GRAPH_VERSION,
        redirect_uri=settings.FACEBOOK_REDIRECT_URI,
        timeout=settings.OAUTH_HTTP_TIMEOUT,
    )
