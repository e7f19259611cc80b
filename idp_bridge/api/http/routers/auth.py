"""Login, callback and logout endpoints in front of the authentication service."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from loguru import logger

from idp_bridge.api.http.deps import get_authentication_service
from idp_bridge.core.exceptions import AuthenticationLoginException
from idp_bridge.core.services import AuthenticationService, AuthRedirect
from idp_bridge.core.services.authentication_service import SESSION_LOGIN_ERROR_KEY

router = APIRouter(prefix="/auth", tags=["auth"])


def _redirect(result: AuthRedirect) -> RedirectResponse:
    return RedirectResponse(result.url, status_code=302)


@router.get("/login", response_model=None)
async def login(
    auth: AuthenticationService = Depends(get_authentication_service),
) -> RedirectResponse | JSONResponse:
    """Send the browser to the IdP, or describe the inline login page."""
    result = await auth.handle_login_page()
    if isinstance(result, AuthRedirect):
        return _redirect(result)
    return JSONResponse(result.model_dump())


@router.get("/callback")
async def callback(
    request: Request,
    auth: AuthenticationService = Depends(get_authentication_service),
) -> RedirectResponse:
    """IdP redirect target: `code` and `state`, or `error` and `error_description`."""
    try:
        result = await auth.handle_login(dict(request.query_params), request.session)
    except AuthenticationLoginException as e:
        logger.error(f"Login failed: {e.message}")
        if e.error_message:
            request.session[SESSION_LOGIN_ERROR_KEY] = e.error_message
        return RedirectResponse(e.redirect_url, status_code=302)
    return _redirect(result)


@router.get("/logout")
async def logout(
    request: Request,
    auth: AuthenticationService = Depends(get_authentication_service),
) -> RedirectResponse:
    """End the local session and log out at the IdP; accepts `returnTo`."""
    result = await auth.handle_logout(
        dict(request.query_params), request.session, str(request.base_url)
    )
    return _redirect(result)
