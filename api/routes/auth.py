"""
api/routes/auth.py -- Account and session REST endpoints under /api/auth.

Routes:
  POST /api/auth/signup            -- create account, email a verification code (201)
  POST /api/auth/verify-email      -- consume the code, activate, return user + tokens
  POST /api/auth/resend-otp        -- issue a fresh verification code
  POST /api/auth/login             -- password login, returns user + tokens
  POST /api/auth/forgot-password   -- email a reset code; always 200
  POST /api/auth/reset-password    -- consume the reset code, set a new password
  POST /api/auth/refresh           -- rotate a refresh token into a new pair
  POST /api/auth/logout            -- revoke one refresh token (bearer)
  POST /api/auth/logout-all        -- revoke every refresh token of the caller (bearer)
  GET  /api/auth/me                -- caller's full profile (bearer)
  PUT  /api/auth/profile           -- role-appropriate profile update (bearer)
  PUT  /api/auth/change-password   -- confirm current password, set a new one (bearer)

Security:
  [H2] Credential routes are rate-limited per IP (AUTH_RATE_LIMIT).
  [C1] AccountService.login() equalizes timing for unknown emails -- never inline it.
  [M5] Cache-Control: no-store on every response that carries tokens.
  forgot-password answers identically whether or not the account exists.

Handlers are plain `def`; FastAPI runs them in its threadpool. All failures
are typed ServiceErrors rendered by the boundary in api/main.py.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import AUTH_RATE_LIMIT, limiter
from api.models import (
    ApiResponse,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LogoutRequest,
    ProfileUpdate,
    RefreshRequest,
    ResendOtpRequest,
    ResetPasswordRequest,
    SessionResponse,
    SignupRequest,
    TokenPairResponse,
    UserResponse,
    UserSummary,
    VerifyEmailRequest,
)
from auth.dependencies import get_current_identity
from auth.models import Identity, TokenPair, User
from auth.service import AccountService

# Auth policy:
# - signup, verify-email, resend-otp, login, forgot-password, reset-password,
#   refresh:                        public
# - logout, logout-all, me, profile,
#   change-password:                require a valid access token (get_current_identity)
router = APIRouter(prefix="/api/auth")


def _accounts(request: Request) -> AccountService:
    return request.app.state.account_service


def _respond(
    message: Optional[str] = None,
    data: Optional[dict] = None,
    status_code: int = 200,
    no_store: bool = False,
) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=ApiResponse(success=True, message=message, data=data).to_wire(),
    )
    if no_store:
        resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


def _session(request: Request, user: User, pair: TokenPair) -> dict:
    return SessionResponse(
        user=UserResponse.from_user(user),
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=request.app.state.token_manager.access_expire_seconds,
    ).to_wire()


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


@limiter.limit(AUTH_RATE_LIMIT)  # [H2] must be ABOVE @router so FastAPI introspects the plain handler
@router.post("/signup", status_code=201)
def signup(request: Request, body: SignupRequest) -> JSONResponse:
    """Create a pending_verification account and email its 6-digit code."""
    user = _accounts(request).signup(
        email=body.email,
        password=body.password,
        full_name=body.full_name,
        role=body.role,
        phone_number=body.phone_number,
    )
    return _respond(
        "User registered successfully. Please check your email for verification code.",
        {"user": UserSummary.from_user(user).to_wire()},
        status_code=201,
    )


@limiter.limit(AUTH_RATE_LIMIT)
@router.post("/verify-email")
def verify_email(request: Request, body: VerifyEmailRequest) -> JSONResponse:
    user, pair = _accounts(request).verify_email(body.user_id, body.otp)
    return _respond("Email verified successfully", _session(request, user, pair), no_store=True)


@limiter.limit(AUTH_RATE_LIMIT)
@router.post("/resend-otp")
def resend_otp(request: Request, body: ResendOtpRequest) -> JSONResponse:
    _accounts(request).resend_otp(body.user_id)
    return _respond("OTP sent successfully")


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


@limiter.limit(AUTH_RATE_LIMIT)
@router.post("/login")
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return the user and a token pair.

    Unknown email and wrong password share one 401 message [C1].
    """
    user, pair = _accounts(request).login(body.email, body.password)
    return _respond("Login successful", _session(request, user, pair), no_store=True)


@router.post("/refresh")
def refresh(request: Request, body: RefreshRequest) -> JSONResponse:
    """Exchange a refresh token for a new pair. The presented token stops working."""
    _, pair = _accounts(request).refresh(body.refresh_token)
    data = TokenPairResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=request.app.state.token_manager.access_expire_seconds,
    ).to_wire()
    return _respond("Token refreshed successfully", data, no_store=True)


@router.post("/logout")
def logout(
    request: Request,
    body: LogoutRequest,
    identity: Identity = Depends(get_current_identity),
) -> JSONResponse:
    """Revoke the given refresh token. Succeeds whether or not it was still stored."""
    _accounts(request).logout(identity, body.refresh_token)
    return _respond("Logged out successfully")


@router.post("/logout-all")
def logout_all(request: Request, identity: Identity = Depends(get_current_identity)) -> JSONResponse:
    _accounts(request).logout_all(identity)
    return _respond("Logged out from all devices successfully")


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------


@limiter.limit(AUTH_RATE_LIMIT)
@router.post("/forgot-password")
def forgot_password(request: Request, body: ForgotPasswordRequest) -> JSONResponse:
    _accounts(request).forgot_password(body.email)
    return _respond("If an account exists with this email, a password reset code has been sent.")


@limiter.limit(AUTH_RATE_LIMIT)
@router.post("/reset-password")
def reset_password(request: Request, body: ResetPasswordRequest) -> JSONResponse:
    _accounts(request).reset_password(body.email, body.reset_code, body.new_password)
    return _respond("Password reset successfully. Please login with your new password.")


@router.put("/change-password")
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    identity: Identity = Depends(get_current_identity),
) -> JSONResponse:
    """Confirm the current password, set the new one, end every session."""
    _accounts(request).change_password(identity, body.current_password, body.new_password)
    return _respond("Password changed successfully. Please login again.")


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


@router.get("/me")
def me(request: Request, identity: Identity = Depends(get_current_identity)) -> JSONResponse:
    user = _accounts(request).get_profile(identity)
    return _respond(data={"user": UserResponse.from_user(user).to_wire()})


@router.put("/profile")
def update_profile(
    request: Request,
    body: ProfileUpdate,
    identity: Identity = Depends(get_current_identity),
) -> JSONResponse:
    user = _accounts(request).update_profile(identity, body.to_patch())
    return _respond("Profile updated successfully", {"user": UserResponse.from_user(user).to_wire()})
