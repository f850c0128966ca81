from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, Request
from api.dependencies import get_auth_service, get_current_user
from api.error_handling import error_response
from core.errors import AuthError
from schemas.user_schema import (
    ChangePasswordRequest,
    EmailRequest,
    LoginRequest,
    RefreshTokenRequest,
    ResetPasswordRequest,
    SignUpRequest,
    VerifyEmailRequest,
)
from services.auth_service import AuthService
from utils.responses import REFRESH_COOKIE, clear_session_cookies, envelope, no_store_json, set_session_cookies
from utils.timing import timeit

router = APIRouter()


def _session_body(session, message: str) -> dict:
    return envelope(
        True,
        message,
        data={"user": session.user.model_dump(by_alias=True, mode="json")},
        tokens=session.tokens,
    )


def _refresh_token_from(request: Request, body_token: Optional[str]) -> Optional[str]:
    return request.cookies.get(REFRESH_COOKIE) or body_token


@router.post("/signup", status_code=201)
@router.post("/register", status_code=201, include_in_schema=False)
@timeit("POST /signup")
async def signup(payload: SignUpRequest, service: AuthService = Depends(get_auth_service)):
    await service.sign_up(payload)
    return no_store_json(
        envelope(True, "Registration successful. Please check your email to verify your account."),
        status_code=201,
    )

@router.post("/login")
@timeit("POST /login")
async def login(payload: LoginRequest, service: AuthService = Depends(get_auth_service)):
    session = await service.login(payload.email, payload.password)
    return set_session_cookies(no_store_json(_session_body(session, "Login successful")), session.tokens)

@router.post("/verify-email")
@timeit("POST /verify-email")
async def verify_email(payload: VerifyEmailRequest, service: AuthService = Depends(get_auth_service)):
    session = await service.verify_email(payload.email, payload.otp)
    return set_session_cookies(no_store_json(_session_body(session, "Email verified successfully")), session.tokens)

@router.post("/resend-otp")
@timeit("POST /resend-otp")
async def resend_otp(payload: EmailRequest, service: AuthService = Depends(get_auth_service)):
    await service.resend_otp(payload.email)
    return no_store_json(envelope(True, "OTP sent on email successfully"))

@router.post("/refresh-token")
@timeit("POST /refresh-token")
async def refresh_token(
    request: Request,
    payload: Optional[RefreshTokenRequest] = None,
    service: AuthService = Depends(get_auth_service),
):
    token = _refresh_token_from(request, payload.refresh_token if payload else None)
    tokens = await service.refresh(token)
    body = envelope(True, "Token refreshed successfully", tokens=tokens)
    return set_session_cookies(no_store_json(body), tokens)

@router.post("/forgot-password")
@timeit("POST /forgot-password")
async def forgot_password(payload: EmailRequest, service: AuthService = Depends(get_auth_service)):
    await service.forgot_password(payload.email)
    return no_store_json(envelope(True, "Reset password email sent successfully"))

@router.post("/reset-password")
@timeit("POST /reset-password")
async def reset_password(payload: ResetPasswordRequest, service: AuthService = Depends(get_auth_service)):
    await service.reset_password(payload.token, payload.new_password)
    return no_store_json(envelope(True, "Password reset successfully"))

@router.post("/change-password")
@timeit("POST /change-password")
async def change_password(
    request: Request,
    payload: ChangePasswordRequest,
    current_user: Dict[str, Any] = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    await service.change_password(
        str(current_user["_id"]),
        payload.current_password,
        payload.new_password,
        _refresh_token_from(request, payload.refresh_token),
    )
    return no_store_json(envelope(True, "Password changed successfully"))

@router.post("/logout")
@timeit("POST /logout")
async def logout(
    request: Request,
    payload: Optional[RefreshTokenRequest] = None,
    current_user: Dict[str, Any] = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    token = _refresh_token_from(request, payload.refresh_token if payload else None)
    try:
        await service.logout(token, str(current_user["_id"]))
    except AuthError as e:
        # Cookies are cleared whatever happened server-side
        return clear_session_cookies(error_response(e))
    return clear_session_cookies(no_store_json(envelope(True, "Logged out successfully")))
