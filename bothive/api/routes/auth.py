import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from bothive.core.auth_dependency import AUTH_COOKIE, REFRESH_COOKIE, authenticate
from bothive.core.config import COOKIE_SECURE
from bothive.core.context import AppContext, get_context
from bothive.core.errors import TokenError
from bothive.core.security import AuthStrategy, TokenPair
from bothive.db.models import Profile, ProfileBase
from bothive.schemas.auth import RefreshRequest, SigninRequest, SignupRequest, TokenResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


def _deliver(pair: TokenPair, strategy: AuthStrategy, profile: Profile, context: AppContext, status_code: int = 200) -> JSONResponse:
    """Hand tokens to the client in the body (bearer) or as HTTP-only cookies."""
    body = {"user": profile.model_dump(mode="json")}
    if strategy == "bearer":
        body.update(TokenResponse(access_token=pair.access_token, refresh_token=pair.refresh_token).model_dump())
    response = JSONResponse(status_code=status_code, content=body)
    if strategy == "cookie":
        config = context.tokens.config
        response.set_cookie(
            AUTH_COOKIE,
            pair.access_token,
            max_age=config.expires_minutes * 60,
            httponly=True,
            secure=COOKIE_SECURE,
            samesite="lax",
        )
        response.set_cookie(
            REFRESH_COOKIE,
            pair.refresh_token,
            max_age=config.refresh_expires_minutes * 60,
            httponly=True,
            secure=COOKIE_SECURE,
            samesite="lax",
            path="/auth",
        )
    return response


# ✅ SIGNUP: identity user first, then the profile that shares its id
@router.post("/signup")
async def signup(
    body: SignupRequest,
    strategy: AuthStrategy = Query("bearer"),
    context: AppContext = Depends(get_context),
):
    created = await context.db.auth.sign_up(
        body.email,
        body.password,
        metadata={"full_name": body.full_name, "role": body.role},
    )
    if created.error is not None:
        raise HTTPException(status_code=400, detail=created.error.message)
    if created.data is None:
        raise HTTPException(status_code=400, detail="Signup failed")

    user = created.data
    profile_result = await context.db.profiles.create(
        ProfileBase(full_name=body.full_name, role=body.role, email=body.email),
        user_id=user.id,
    )
    if profile_result.error is not None or profile_result.data is None:
        logger.error(f"Profile creation failed after signup: user_id={user.id}")
        raise HTTPException(status_code=500, detail="Failed to create profile")

    profile = profile_result.data
    logger.info(f"User signed up: user_id={profile.id}, role={profile.role}, strategy={strategy}")
    pair = context.tokens.issue_token_pair(profile.id, profile.email, profile.role, strategy)
    return _deliver(pair, strategy, profile, context, status_code=201)


# ✅ SIGNIN
@router.post("/signin")
async def signin(
    body: SigninRequest,
    strategy: AuthStrategy = Query("bearer"),
    context: AppContext = Depends(get_context),
):
    session = await context.db.auth.sign_in(body.email, body.password)
    if session.error is not None:
        raise HTTPException(status_code=500, detail="Sign in failed")
    if session.data is None or session.data.user is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    profile_result = await context.db.profiles.get_by_id(session.data.user.id)
    if profile_result.data is None:
        logger.warning(f"Sign in without profile: user_id={session.data.user.id}")
        raise HTTPException(status_code=401, detail="Invalid credentials")

    profile = profile_result.data
    pair = context.tokens.issue_token_pair(profile.id, profile.email, profile.role, strategy)
    return _deliver(pair, strategy, profile, context)


# ✅ REFRESH: rotate both tokens
@router.post("/refresh")
async def refresh(
    request: Request,
    body: Optional[RefreshRequest] = None,
    strategy: AuthStrategy = Query("bearer"),
    context: AppContext = Depends(get_context),
):
    token = request.cookies.get(REFRESH_COOKIE) if strategy == "cookie" else (body.refresh_token if body else None)
    if not token:
        raise HTTPException(status_code=401, detail="Authentication required")

    try:
        payload = context.tokens.verify_refresh_token(token)
        profile_result = await context.db.profiles.get_by_id(payload.user_id)
        pair = context.tokens.refresh(token, strategy, profile_result.data)
    except TokenError as e:
        raise HTTPException(status_code=401, detail=str(e))

    return _deliver(pair, strategy, profile_result.data, context)


# ✅ SESSION
@router.get("/session")
async def session(
    request: Request,
    strategy: AuthStrategy = Query("bearer"),
    context: AppContext = Depends(get_context),
):
    profile = await authenticate(request, strategy, context)
    return {"user": profile.model_dump(mode="json")}


# ✅ SIGNOUT
@router.post("/signout")
async def signout(
    strategy: AuthStrategy = Query("bearer"),
    context: AppContext = Depends(get_context),
):
    result = await context.db.auth.sign_out()
    if result.error is not None:
        logger.warning(f"Provider sign out failed: {result.error.message}")

    response = JSONResponse(content={"message": "Signed out"})
    if strategy == "cookie":
        response.delete_cookie(AUTH_COOKIE)
        response.delete_cookie(REFRESH_COOKIE, path="/auth")
    return response
