"""
Google sign-in endpoints.

Browser flow: GET /google-auth/google redirects to Google's consent screen;
Google redirects back to /google-auth/callback/google, which signs the user in,
sets the auth cookies and redirects to the frontend.

SPA flow: POST /google-auth/google/token with an ID token from Google
Identity Services.
"""

import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import RedirectResponse

from saveplate.core.config import settings
from saveplate.core.exceptions import BadRequestError
from saveplate.core.rate_limiter import RateLimit
from saveplate.core.deps import get_auth_service
from saveplate.schemas.auth import AuthResponse, GoogleTokenRequest
from saveplate.api.endpoints.auth import set_auth_cookies
from saveplate.services.auth_service import AuthService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/google-auth", tags=["Google Sign-In"])


@router.get("/google")
async def google_login(auth: AuthService = Depends(get_auth_service)):
    """
    Step 1: Redirect the browser to Google's consent screen.

    The CSRF state is stored in the cache for 10 minutes and is single-use.
    """
    url = await auth.google_authorization_url()
    return RedirectResponse(url=url, status_code=302)


@router.get("/callback/google")
async def google_callback(
    code: Optional[str] = Query(None, description="Authorization code from Google"),
    state: Optional[str] = Query(None, description="State parameter for CSRF protection"),
    error: Optional[str] = Query(None, description="Error reported by Google"),
    auth: AuthService = Depends(get_auth_service)
):
    """
    Step 2: Handle the redirect back from Google.

    Raises:
        BadRequestError: Consent denied, code missing or state invalid
        UnauthorizedError: Google rejected the code
    """
    if error:
        logger.warning(f"Google sign-in returned error: {error}")
        raise BadRequestError("Google sign-in was cancelled or failed")
    if not code:
        raise BadRequestError("Missing authorization code")

    result = await auth.google_callback(code, state)

    query = urlencode({
        "accessToken": result.access_token,
        "needsOnboarding": str(result.needs_onboarding).lower(),
    })
    response = RedirectResponse(
        url=f"{settings.FRONTEND_URL.rstrip('/')}/auth/success?{query}",
        status_code=302,
    )
    set_auth_cookies(response, result)
    return response


@router.post(
    "/google/token",
    response_model=AuthResponse,
    dependencies=[Depends(RateLimit("google_token", 20, 60))],
)
async def google_token(
    request: GoogleTokenRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service)
):
    """Sign in with a Google ID token obtained by the frontend."""
    result = await auth.google_id_token(request.token)
    set_auth_cookies(response, result)
    return result
