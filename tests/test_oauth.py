"""
Tests for Google and Facebook sign-in.

Endpoint tests use fake providers; provider client tests run the real
clients against httpx.MockTransport.
"""

import asyncio
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from saveplate.core.cache import CacheStore
from saveplate.core.config import settings
from saveplate.core.deps import get_facebook_provider, get_google_provider
from saveplate.core.exceptions import BadRequestError, ConfigurationError, OAuthProviderError
from saveplate.core.security import TokenType
from saveplate.models.user import User
from saveplate.services.auth_service import AuthService
from saveplate.services.oauth_providers import (
    FacebookOAuthProvider,
    GoogleOAuthProvider,
    OAuthIdentity,
)
from main import app


def google_identity(email="gina@example.com", sub="g-123"):
    return OAuthIdentity(provider="google", provider_id=sub, email=email,
                         display_name="Gina", picture_url="https://img/g.png")


def facebook_identity(email="fred@example.com"):
    return OAuthIdentity(provider="facebook", provider_id="fb-1", email=email,
                         display_name="Fred", picture_url=None)


class InterleavingCache(CacheStore):
    """Dict-backed cache that yields to the loop before every operation."""

    def __init__(self):
        self.store = {}

    async def get(self, key):
        await asyncio.sleep(0)
        return self.store.get(key)

    async def set(self, key, value, ttl_ms):
        await asyncio.sleep(0)
        self.store[key] = value

    async def delete(self, key):
        await asyncio.sleep(0)
        return self.store.pop(key, None) is not None


class TestGoogleRedirectFlow:
    """Test the browser redirect flow"""

    def test_login_redirects_and_stores_state(self, client, cache):
        response = client.get("/google-auth/google", follow_redirects=False)

        assert response.status_code == 302
        location = response.headers["location"]
        assert location.startswith("https://accounts.google.com/")

        state = parse_qs(urlparse(location).query)["state"][0]
        key = f"oauth_state:google:{state}"
        assert key in cache.store
        assert cache.ttls[key] == 600000

    def test_callback_signs_in_and_redirects(self, client, cache, google, codec, db_session):
        cache.store["oauth_state:google:abc"] = "1"
        google.codes["good-code"] = google_identity()

        response = client.get(
            "/google-auth/callback/google",
            params={"code": "good-code", "state": "abc"},
            follow_redirects=False,
        )

        assert response.status_code == 302
        location = urlparse(response.headers["location"])
        assert f"{location.scheme}://{location.netloc}" == settings.FRONTEND_URL.rstrip("/")
        assert location.path == "/auth/success"

        query = parse_qs(location.query)
        assert query["needsOnboarding"] == ["true"]
        payload = codec.decode(query["accessToken"][0])
        assert payload.type == TokenType.NORMAL
        assert payload.email == "gina@example.com"

        assert "accessToken" in response.cookies
        assert "oauth_state:google:abc" not in cache.store
        assert db_session.query(User).filter(User.google_id == "g-123").count() == 1

    def test_callback_state_is_single_use(self, client, cache, google):
        cache.store["oauth_state:google:abc"] = "1"
        google.codes["good-code"] = google_identity()
        params = {"code": "good-code", "state": "abc"}

        client.get("/google-auth/callback/google", params=params, follow_redirects=False)
        replay = client.get("/google-auth/callback/google", params=params, follow_redirects=False)

        assert replay.status_code == 400

    def test_concurrent_callbacks_share_one_state(self, db_session, codec, mailer, google, facebook):
        cache = InterleavingCache()
        cache.store["oauth_state:google:abc"] = "1"
        google.codes["good-code"] = google_identity()
        service = AuthService(
            db=db_session,
            cache=cache,
            tokens=codec,
            email_service=mailer,
            google=google,
            facebook=facebook,
            frontend_url="http://localhost:3000",
        )

        async def race():
            return await asyncio.gather(
                service.google_callback("good-code", "abc"),
                service.google_callback("good-code", "abc"),
                return_exceptions=True,
            )

        results = asyncio.run(race())

        rejected = [r for r in results if isinstance(r, BadRequestError)]
        assert len(rejected) == 1
        assert len(results) - len(rejected) == 1
        assert db_session.query(User).count() == 1

    def test_callback_unknown_state(self, client, google):
        google.codes["good-code"] = google_identity()

        response = client.get(
            "/google-auth/callback/google",
            params={"code": "good-code", "state": "forged"},
            follow_redirects=False,
        )

        assert response.status_code == 400
        assert "state" in response.json()["message"]

    def test_callback_rejected_code(self, client, cache):
        cache.store["oauth_state:google:abc"] = "1"

        response = client.get(
            "/google-auth/callback/google",
            params={"code": "bad-code", "state": "abc"},
            follow_redirects=False,
        )

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid Google authorization"

    def test_callback_consent_denied(self, client):
        response = client.get(
            "/google-auth/callback/google",
            params={"error": "access_denied", "state": "abc"},
            follow_redirects=False,
        )
        assert response.status_code == 400

    def test_unconfigured_google(self, client):
        app.dependency_overrides[get_google_provider] = lambda: GoogleOAuthProvider("", "", "")

        response = client.get("/google-auth/google", follow_redirects=False)

        assert response.status_code == 500
        assert response.json()["message"] == "Google sign-in is not configured"


class TestGoogleIdToken:

    def test_id_token_signs_in(self, client, google, password_user):
        google.id_tokens["id-tok"] = google_identity(email="alice@example.com", sub="g-alice")

        response = client.post("/google-auth/google/token", json={"token": "id-tok"})

        assert response.status_code == 200
        data = response.json()
        assert data["user"]["id"] == password_user.id
        assert data["message"] == "Signed in with Google"

    def test_invalid_id_token(self, client):
        response = client.post("/google-auth/google/token", json={"token": "forged"})

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid Google token"

    def test_conflicting_google_account(self, client, google, password_user, db_session):
        password_user.google_id = "g-original"
        db_session.commit()
        google.id_tokens["id-tok"] = google_identity(email="alice@example.com", sub="g-other")

        response = client.post("/google-auth/google/token", json={"token": "id-tok"})

        assert response.status_code == 409
        assert response.json()["error"] == "AccountConflictError"

    def test_identity_without_email(self, client, google):
        google.id_tokens["id-tok"] = google_identity(email=None)

        response = client.post("/google-auth/google/token", json={"token": "id-tok"})

        assert response.status_code == 400
        assert response.json()["message"] == "Your Google account did not share an email address"


class TestFacebook:
    """Test Facebook code and access-token sign-in"""

    def test_callback_signs_in(self, client, facebook, db_session):
        facebook.codes["fb-code"] = facebook_identity()

        response = client.post(
            "/auth/facebook/callback",
            json={"code": "fb-code", "redirectUri": "https://app.test/fb"},
        )

        assert response.status_code == 200
        assert response.json()["user"]["email"] == "fred@example.com"
        assert response.json()["user"]["emailVerified"] is True
        assert facebook.redirect_uris == ["https://app.test/fb"]
        assert "accessToken" in response.cookies

    def test_callback_rejected_code(self, client):
        response = client.post("/auth/facebook/callback", json={"code": "nope"})

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid Facebook authorization"

    def test_access_token_links_existing_account(self, client, facebook, password_user):
        facebook.access_tokens["fb-at"] = facebook_identity(email="Alice@example.com")

        response = client.post("/auth/facebook", json={"accessToken": "fb-at"})

        assert response.status_code == 200
        assert response.json()["user"]["id"] == password_user.id

    def test_access_token_without_email(self, client, facebook):
        facebook.access_tokens["fb-at"] = facebook_identity(email=None)

        response = client.post("/auth/facebook", json={"accessToken": "fb-at"})

        assert response.status_code == 400

    def test_invalid_access_token(self, client):
        response = client.post("/auth/facebook", json={"accessToken": "forged"})

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid Facebook token"

    def test_unconfigured_facebook(self, client):
        app.dependency_overrides[get_facebook_provider] = lambda: FacebookOAuthProvider("", "")

        response = client.post("/auth/facebook", json={"accessToken": "fb-at"})

        assert response.status_code == 500
        assert response.json()["message"] == "Facebook sign-in is not configured"


def mock_transport(routes):
    """MockTransport answering by URL path; unknown paths get a 404."""
    def handler(request: httpx.Request) -> httpx.Response:
        route = routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"error": "not found"})
        return route(request) if callable(route) else httpx.Response(200, json=route)
    return httpx.MockTransport(handler)


class TestGoogleProviderClient:
    """Test the Google client against canned provider responses"""

    def make_provider(self, routes):
        return GoogleOAuthProvider(
            "client-id", "client-secret", "http://localhost/cb",
            transport=mock_transport(routes),
        )

    def test_authorization_url(self):
        url = self.make_provider({}).get_authorization_url("state-1")
        query = parse_qs(urlparse(url).query)

        assert query["client_id"] == ["client-id"]
        assert query["state"] == ["state-1"]
        assert query["scope"] == ["openid email profile"]
        assert query["redirect_uri"] == ["http://localhost/cb"]

    def test_identity_from_code(self):
        seen = {}

        def userinfo(request):
            seen["auth"] = request.headers["authorization"]
            return httpx.Response(200, json={
                "sub": "g-1", "email": "g@example.com", "email_verified": True,
                "given_name": "Gina", "family_name": "Green", "picture": "https://img/g.png",
            })

        provider = self.make_provider({
            "/token": {"access_token": "at-1"},
            "/oauth2/v3/userinfo": userinfo,
        })

        identity = asyncio.run(provider.identity_from_code("code-1"))

        assert seen["auth"] == "Bearer at-1"
        assert identity.provider == "google"
        assert identity.provider_id == "g-1"
        assert identity.email == "g@example.com"
        assert identity.display_name == "Gina Green"
        assert identity.picture_url == "https://img/g.png"

    def test_failed_exchange(self):
        provider = self.make_provider({
            "/token": lambda request: httpx.Response(400, json={"error": "invalid_grant"}),
        })

        with pytest.raises(OAuthProviderError):
            asyncio.run(provider.identity_from_code("code-1"))

    def test_id_token(self):
        provider = self.make_provider({
            "/tokeninfo": {
                "aud": "client-id", "iss": "https://accounts.google.com",
                "sub": "g-2", "email": "t@example.com", "email_verified": "true",
            },
        })

        identity = asyncio.run(provider.identity_from_id_token("id-token"))

        assert identity.provider_id == "g-2"
        assert identity.email == "t@example.com"

    def test_id_token_for_other_client(self):
        provider = self.make_provider({
            "/tokeninfo": {"aud": "someone-else", "iss": "accounts.google.com", "sub": "g-2"},
        })

        with pytest.raises(OAuthProviderError):
            asyncio.run(provider.identity_from_id_token("id-token"))

    def test_unverified_email_dropped(self):
        provider = self.make_provider({
            "/tokeninfo": {
                "aud": "client-id", "iss": "accounts.google.com",
                "sub": "g-2", "email": "t@example.com", "email_verified": "false",
            },
        })

        identity = asyncio.run(provider.identity_from_id_token("id-token"))

        assert identity.email is None

    def test_missing_credentials(self):
        with pytest.raises(ConfigurationError):
            GoogleOAuthProvider("", "", "").get_authorization_url("s")


class TestFacebookProviderClient:
    """Test the Facebook client against canned Graph API responses"""

    PROFILE = {
        "id": "fb-7", "name": "Fred", "email": "fred@example.com",
        "picture": {"data": {"url": "https://img/f.png"}},
    }

    def make_provider(self, routes):
        return FacebookOAuthProvider(
            "app-id", "app-secret", graph_version="v19.0",
            redirect_uri="http://localhost/fb", transport=mock_transport(routes),
        )

    def test_identity_from_code(self):
        seen = {}

        def exchange(request):
            seen["redirect_uri"] = request.url.params["redirect_uri"]
            return httpx.Response(200, json={"access_token": "fb-at"})

        provider = self.make_provider({
            "/v19.0/oauth/access_token": exchange,
            "/v19.0/me": self.PROFILE,
        })

        identity = asyncio.run(provider.identity_from_code("code-1"))

        assert seen["redirect_uri"] == "http://localhost/fb"
        assert identity.provider_id == "fb-7"
        assert identity.email == "fred@example.com"
        assert identity.picture_url == "https://img/f.png"

    def test_identity_from_access_token(self):
        provider = self.make_provider({
            "/v19.0/debug_token": {"data": {"is_valid": True, "app_id": "app-id"}},
            "/v19.0/me": self.PROFILE,
        })

        identity = asyncio.run(provider.identity_from_access_token("fb-at"))

        assert identity.display_name == "Fred"

    def test_invalid_access_token(self):
        provider = self.make_provider({
            "/v19.0/debug_token": {"data": {"is_valid": False}},
        })

        with pytest.raises(OAuthProviderError):
            asyncio.run(provider.identity_from_access_token("fb-at"))

    def test_access_token_for_other_app(self):
        provider = self.make_provider({
            "/v19.0/debug_token": {"data": {"is_valid": True, "app_id": "other-app"}},
        })

        with pytest.raises(OAuthProviderError):
            asyncio.run(provider.identity_from_access_token("fb-at"))

    def test_profile_without_email(self):
        provider = self.make_provider({
            "/v19.0/debug_token": {"data": {"is_valid": True, "app_id": "app-id"}},
            "/v19.0/me": {"id": "fb-7", "name": "Fred"},
        })

        identity = asyncio.run(provider.identity_from_access_token("fb-at"))

        assert identity.email is None
        assert identity.picture_url is None
