from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging

from core.errors import (
    ConflictError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
    operation,
)
from core.otp import generate_otp, verify_otp
from core.security import (
    PASSWORD_RESET_TOKEN_EXPIRE,
    TokenError,
    create_access_token,
    create_password_reset_token,
    create_refresh_token,
    dummy_verify_password,
    get_password_hash,
    verify_password,
    verify_password_reset_token,
    verify_refresh_token,
)
from db.models.refresh_token import new_refresh_token_entry
from db.models.user import new_user_document, normalize_email
from db.repository import DuplicateEmailError, UserRepository
from schemas.user_schema import AuthSession, SignUpRequest, TokenPair, UserPublic
from utils.email import EmailService
from utils.timing import timeit, utc_now

logger = logging.getLogger(__name__)
audit = logging.getLogger("nexus.security")

INVALID_CREDENTIALS = "Invalid email or password"
INVALID_REFRESH_TOKEN = "Invalid or expired refresh token"
INVALID_RESET_TOKEN = "Invalid or expired reset password token"
VERIFICATION_EXPIRED = "User not found or verification token expired"


def _is_past(moment: Optional[datetime], now: datetime) -> bool:
    if moment is None:
        return True
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment <= now


class AuthService:
    """Signup, verification, login, refresh rotation, logout and password flows.

    Collaborators are injected: a UserRepository for credential state and an
    EmailService for outbound mail.
    """

    def __init__(self, users: UserRepository, mailer: EmailService):
        self.users = users
        self.mailer = mailer

    @staticmethod
    def _claims(user: Dict[str, Any]) -> Dict[str, str]:
        return {"user_id": str(user["_id"]), "email": user["email"]}

    async def _issue_session(self, user: Dict[str, Any], now: datetime) -> TokenPair:
        claims = self._claims(user)
        tokens = TokenPair(
            access_token=create_access_token(claims),
            refresh_token=create_refresh_token(claims),
        )
        await self.users.add_refresh_token(str(user["_id"]), new_refresh_token_entry(tokens.refresh_token, now))
        return tokens

    @timeit("auth.sign_up")
    @operation("Failed to register. Please try again later.")
    async def sign_up(self, request: SignUpRequest) -> None:
        if request.password != request.confirm_password:
            raise ValidationError("Passwords don't match!")

        email = normalize_email(request.email)
        if await self.users.find_by_email(email):
            raise ConflictError("Email already registered!")

        otp = generate_otp()
        doc = new_user_document(
            name=request.name,
            username=request.username,
            email=email,
            password_hash=get_password_hash(request.password),
            verification_token=otp.hash,
            verification_token_expires=otp.expires_at,
            now=utc_now(),
        )
        try:
            user_id = await self.users.create(doc)
        except DuplicateEmailError:
            raise ConflictError("Email already registered!")
        logger.info(f"Registered user {user_id}; verification pending")

        # The record stays even if this fails; the client can ask for a resend
        await self.mailer.send_verification_email(email, request.name, otp.code)

    @timeit("auth.verify_email")
    @operation("Failed to verify email. Please try again later.")
    async def verify_email(self, email: str, otp: str) -> AuthSession:
        now = utc_now()
        user = await self.users.find_by_email(normalize_email(email), include_sensitive=True)
        if not user:
            raise NotFoundError(VERIFICATION_EXPIRED)
        if user.get("is_email_verified"):
            raise ValidationError("Email already verified", code="ALREADY_VERIFIED")
        if _is_past(user.get("verification_token_expires"), now):
            raise NotFoundError(VERIFICATION_EXPIRED)
        if not verify_otp(otp, user.get("verification_token")):
            raise ValidationError("Invalid or expired OTP", code="INVALID_OTP")

        user_id = str(user["_id"])
        if not await self.users.mark_email_verified(user_id, now):
            raise ValidationError("Email already verified", code="ALREADY_VERIFIED")
        tokens = await self._issue_session(user, now)

        try:
            await self.mailer.send_welcome_email(user["email"], user.get("name", ""))
        except Exception as e:
            logger.warning(f"Welcome email to user {user_id} not sent: {e}")

        fresh = await self.users.find_by_id(user_id)
        return AuthSession(user=UserPublic.from_document(fresh), tokens=tokens)

    @timeit("auth.resend_otp")
    @operation("Failed to send verification email. Please try again later.")
    async def resend_otp(self, email: str) -> None:
        user = await self.users.find_by_email(normalize_email(email))
        if not user:
            raise NotFoundError("User not found")
        if user.get("is_email_verified"):
            raise ValidationError("Email already verified", code="ALREADY_VERIFIED")

        otp = generate_otp()
        # Overwriting the hash invalidates the previous code immediately
        await self.users.update_fields(str(user["_id"]), {
            "verification_token": otp.hash,
            "verification_token_expires": otp.expires_at,
            "updated_at": utc_now(),
        })
        await self.mailer.send_verification_email(user["email"], user.get("name", ""), otp.code)

    @timeit("auth.login")
    @operation("Failed to login. Please try again later.")
    async def login(self, email: str, password: str) -> AuthSession:
        user = await self.users.find_by_email(normalize_email(email), include_sensitive=True)
        if user is None:
            dummy_verify_password()
            raise UnauthorizedError(INVALID_CREDENTIALS)
        if not verify_password(password, user.get("password_hash")):
            audit.warning(f"Failed sign-in for user {user['_id']}")
            raise UnauthorizedError(INVALID_CREDENTIALS)
        if not user.get("is_email_verified"):
            raise UnauthorizedError(
                "Please verify your email before logging in",
                code="EMAIL_VERIFICATION_REQUIRED",
            )

        now = utc_now()
        user_id = str(user["_id"])
        await self.users.prune_refresh_tokens(user_id, now)
        tokens = await self._issue_session(user, now)
        await self.users.update_fields(user_id, {"last_login": now})
        user["last_login"] = now
        return AuthSession(user=UserPublic.from_document(user), tokens=tokens)

    @timeit("auth.refresh")
    @operation("Failed to refresh token. Please try again later.")
    async def refresh(self, refresh_token: Optional[str]) -> TokenPair:
        if not refresh_token:
            raise UnauthorizedError("Refresh token is required")
        try:
            claims = verify_refresh_token(refresh_token)
        except TokenError:
            raise UnauthorizedError(INVALID_REFRESH_TOKEN)

        user = await self.users.find_by_id(claims.get("user_id"))
        if not user:
            raise UnauthorizedError(INVALID_REFRESH_TOKEN)

        now = utc_now()
        user_id = str(user["_id"])
        # Claiming the old entry is the single-use check: a replay finds nothing to take
        if not await self.users.take_refresh_token(user_id, refresh_token, now):
            audit.warning(f"Refresh token for user {user_id} was not an active session; possible replay")
            raise UnauthorizedError(INVALID_REFRESH_TOKEN)
        return await self._issue_session(user, now)

    @timeit("auth.forgot_password")
    @operation("Failed to send reset password email. Please try again later.")
    async def forgot_password(self, email: str) -> None:
        user = await self.users.find_by_email(normalize_email(email))
        if not user:
            raise NotFoundError("User not found")

        reset_token = create_password_reset_token(self._claims(user))
        now = utc_now()
        await self.users.update_fields(str(user["_id"]), {
            "reset_password_token": reset_token,
            "reset_password_token_expires": now + PASSWORD_RESET_TOKEN_EXPIRE,
            "updated_at": now,
        })
        await self.mailer.send_password_reset_email(user["email"], user.get("name", ""), reset_token)

    @timeit("auth.reset_password")
    @operation("Failed to reset password. Please try again later.")
    async def reset_password(self, token: str, new_password: str) -> None:
        try:
            claims = verify_password_reset_token(token)
        except TokenError:
            raise ValidationError(INVALID_RESET_TOKEN, code="INVALID_OR_EXPIRED_TOKEN")

        now = utc_now()
        consumed = await self.users.consume_reset_token(claims.get("user_id"), token, now, {
            "password_hash": get_password_hash(new_password),
            "reset_password_token": None,
            "reset_password_token_expires": None,
            # Every existing session must sign in again
            "refresh_tokens": [],
            "updated_at": now,
        })
        if not consumed:
            raise ValidationError(INVALID_RESET_TOKEN, code="INVALID_OR_EXPIRED_TOKEN")
        audit.info(f"Password reset for user {claims.get('user_id')}; all sessions revoked")

    @timeit("auth.change_password")
    @operation("Failed to change password. Please try again later.")
    async def change_password(
        self,
        user_id: str,
        current_password: str,
        new_password: str,
        current_refresh_token: Optional[str] = None,
    ) -> None:
        user = await self.users.find_by_id(user_id, include_sensitive=True)
        if not user or not verify_password(current_password, user.get("password_hash")):
            audit.warning(f"Failed password change for user {user_id}")
            raise UnauthorizedError("Current password is incorrect")

        # This device stays signed in; every other session is revoked in the same write
        replaced = await self.users.replace_password(
            user_id,
            user["password_hash"],
            get_password_hash(new_password),
            current_refresh_token,
            utc_now(),
        )
        if not replaced:
            audit.warning(f"Password for user {user_id} changed concurrently; change refused")
            raise UnauthorizedError("Current password is incorrect")
        audit.info(f"Password changed for user {user_id}; other sessions revoked")

    @timeit("auth.logout")
    @operation("Failed to logout. Please try again later.")
    async def logout(self, refresh_token: Optional[str], user_id: Optional[str]) -> None:
        if refresh_token and user_id:
            if await self.users.remove_refresh_token(user_id, refresh_token):
                audit.info(f"User {user_id} signed out one session")
