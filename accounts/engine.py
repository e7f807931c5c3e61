"""
accounts/engine.py -- Identity engine: account lifecycle and credential flows.

IdentityEngine is the only place that combines the account store, the
credential codec, and the token service. Routes call one engine method per
request and translate the IdentityError it may raise into an HTTP response.

Status machine:
  pending_verification -> active        (email verification, provider login)
  active <-> suspended                  (admin)
  nothing ever returns to pending_verification

Enumeration policy:
  login() raises InvalidCredentials for unknown email, wrong password,
  unverified or suspended account, and wrong role alike, and runs bcrypt
  even when the email is unknown. forgot_password() does answer NotFound for
  an unknown email; see DESIGN.md.

Tokens for verification and reset are single-use: the stored value is cleared
by the operation that consumes it, so a replay finds no matching row.

Refresh tokens are single-slot: each login overwrites the stored value, and a
refresh is accepted only if the presented token equals the stored one. Two
concurrent logins race; the last write wins.

Avatar blobs are released off the request path. delete_account() hands the
release to a small thread pool and returns; a failed release is logged by the
worker and never reaches the caller.

Layer rule: may import from core/, auth/, accounts/, services/ (exceptions
only). No imports from api/.
"""

from __future__ import annotations

import hmac
import logging
from concurrent.futures import ThreadPoolExecutor

from sqlalchemy.exc import IntegrityError

from accounts.models import (
    ROLE_USER,
    ROLES,
    SELF_REGISTERING_ROLES,
    STATUS_ACTIVE,
    STATUS_PENDING,
    STATUS_SUSPENDED,
    STATUS_TRANSITIONS,
    STATUSES,
    Account,
    AvatarUpload,
    IssuedTokens,
    Page,
)
from accounts.store import AccountStore
from auth.passwords import equalize_timing, hash_password, verify_password
from auth.tokens import TokenService
from core.errors import (
    EmailTaken,
    Forbidden,
    InternalError,
    InvalidCredentials,
    InvalidLinkToken,
    InvalidToken,
    NotFound,
    TokenExpiredOrInvalid,
    ValidationError,
)
from services.email import DeliveryError, redact_email

logger = logging.getLogger("waypoint.accounts.engine")

MAX_PAGE_SIZE = 100
DEFAULT_AVATAR_MAX_BYTES = 5 * 1024 * 1024

_VERIFY_SUBJECTS = {
    "user": "Verify Your Email",
    "seller": "Verify Your Seller Account Email",
}
_RESET_SUBJECTS = {
    "user": "Reset Your Password",
    "seller": "Reset Your Seller Account Password",
    "admin": "Reset Your Admin Account Password",
}


def _require_password(password: str | None, label: str = "password") -> str:
    if not isinstance(password, str) or not password.strip():
        raise ValidationError(f"A valid {label} is required.")
    return password


def _require_email(email: str | None) -> str:
    if not isinstance(email, str) or "@" not in email:
        raise ValidationError("A valid email is required.")
    return email


class IdentityEngine:
    """Registration, login, verification, reset, rotation, profile and deletion.

    Collaborators are injected:
        store  -- AccountStore
        tokens -- TokenService
        mailer -- anything with send(to_email, subject, text)
        blobs  -- anything with store(data, content_type, folder) -> url and release(url)
    """

    def __init__(
        self,
        store: AccountStore,
        tokens: TokenService,
        mailer,
        blobs,
        base_url: str = "http://localhost:8000",
        avatar_max_bytes: int = DEFAULT_AVATAR_MAX_BYTES,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self.store = store
        self.tokens = tokens
        self.mailer = mailer
        self.blobs = blobs
        self.base_url = base_url.rstrip("/")
        self.avatar_max_bytes = avatar_max_bytes
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="blob-release")

    def close(self) -> None:
        """Wait for scheduled blob releases and stop the worker pool."""
        self._executor.shutdown(wait=True)

    # ------------------------------------------------------------------
    # Registration and verification
    # ------------------------------------------------------------------

    def register(
        self,
        email: str,
        password: str,
        role: str = ROLE_USER,
        name: str | None = None,
        phone_number: str | None = None,
        address: str | None = None,
    ) -> Account:
        """Create a pending account and send the verification message.

        The existence check runs before the insert. The UNIQUE constraint on
        email closes the remaining race and is reported the same way.
        """
        _require_email(email)
        _require_password(password)
        if role not in SELF_REGISTERING_ROLES:
            raise Forbidden(f"Accounts with role {role!r} cannot self-register.")
        if self.store.find_by_field("email", email) is not None:
            raise EmailTaken()

        verification_token = self.tokens.issue_email_token(email)
        try:
            account = self.store.insert(
                {
                    "email": email,
                    "passwordHash": hash_password(password),
                    "name": name,
                    "phoneNumber": phone_number,
                    "address": address,
                    "role": role,
                    "status": STATUS_PENDING,
                    "emailVerificationToken": verification_token,
                }
            )
        except IntegrityError:
            raise EmailTaken() from None

        logger.info("Registered %s account id=%s email=%s", role, account.id, redact_email(email))
        link = f"{self.base_url}/api/v1/{role}/auth/verify-email/{verification_token}"
        self._send(email, _VERIFY_SUBJECTS.get(role, _VERIFY_SUBJECTS["user"]), f"Verify your email: {link}")
        return account

    def verify_email(self, token: str, role: str | None = None) -> Account:
        """Activate the pending account holding this verification token."""
        if not token:
            raise InvalidLinkToken("Invalid verification token.")
        account = self.store.find_by_field("emailVerificationToken", token)
        if account is None or account.status != STATUS_PENDING or (role and account.role != role):
            raise InvalidLinkToken("Invalid verification token.")
        updated = self.store.update(account.id, {"emailVerificationToken": None, "status": STATUS_ACTIVE})
        if updated is None:
            raise InvalidLinkToken("Invalid verification token.")
        logger.info("Verified email for account id=%s", account.id)
        return updated

    # ------------------------------------------------------------------
    # Login and token rotation
    # ------------------------------------------------------------------

    def login(self, email: str, password: str, role: str) -> IssuedTokens:
        """Authenticate on the given role's surface and start a session.

        Every failure mode raises the same InvalidCredentials.
        """
        account = self.store.find_by_field("email", email) if email else None
        if account is None or not account.password_hash:
            equalize_timing(password or "")
            raise InvalidCredentials()
        if not verify_password(password or "", account.password_hash):
            raise InvalidCredentials()
        if account.status != STATUS_ACTIVE or account.role != role:
            raise InvalidCredentials()
        return self._start_session(account)

    def login_with_provider(self, email: str, subject: str, name: str | None = None) -> IssuedTokens:
        """Log in a user whose verified email was asserted by the external identity provider.

        First login creates an active user account linked to the provider
        subject. An existing pending account is activated, because the
        provider has already proven ownership of the address.
        """
        _require_email(email)
        if not subject:
            raise InvalidCredentials()
        account = self.store.find_by_field("googleId", subject) or self.store.find_by_field("email", email)

        if account is None:
            try:
                account = self.store.insert(
                    {"email": email, "name": name, "googleId": subject, "role": ROLE_USER, "status": STATUS_ACTIVE}
                )
            except IntegrityError:
                raise InvalidCredentials() from None
            logger.info("Created account id=%s from identity provider", account.id)
        else:
            if account.role != ROLE_USER or account.status == STATUS_SUSPENDED:
                raise InvalidCredentials()
            if account.google_id and account.google_id != subject:
                raise InvalidCredentials()
            changes: dict = {}
            if not account.google_id:
                changes["googleId"] = subject
            if account.status == STATUS_PENDING:
                changes.update({"status": STATUS_ACTIVE, "emailVerificationToken": None})
            if changes:
                account = self.store.update(account.id, changes) or account

        return self._start_session(account)

    def refresh_access_token(self, refresh_token: str, role: str | None = None) -> str:
        """Exchange a refresh token for a new access token.

        The token must verify AND equal the value stored on the account. A
        token replaced by a newer login, cleared by logout, or belonging to a
        suspended account is rejected.
        """
        try:
            claims = self.tokens.verify_refresh(refresh_token)
            account_id = claims.account_id
        except TokenExpiredOrInvalid:
            raise InvalidToken("Invalid or expired refresh token.") from None

        account = self.store.find_by_id(account_id)
        if (
            account is None
            or not account.refresh_token
            or not hmac.compare_digest(account.refresh_token, refresh_token)
            or (role and account.role != role)
            or account.status != STATUS_ACTIVE
        ):
            raise InvalidToken("Invalid refresh token.")
        return self._issue_access(account)

    def logout(self, account_id: int) -> None:
        """Clear the stored refresh token so it can no longer be exchanged."""
        self.store.update(account_id, {"refreshToken": None})

    # ------------------------------------------------------------------
    # Password flows
    # ------------------------------------------------------------------

    def forgot_password(self, email: str, role: str) -> None:
        """Store a fresh reset token and mail the reset link.

        Answers NotFound for an unknown email or one registered under another
        role. This reveals whether the address exists; see DESIGN.md.
        """
        account = self.store.find_by_field("email", email) if email else None
        if account is None or account.role != role:
            raise NotFound()
        reset_token = self.tokens.issue_reset_token(account.id)
        self.store.update(account.id, {"resetPasswordToken": reset_token})
        link = f"{self.base_url}/api/v1/{role}/auth/reset-password/{reset_token}"
        self._send(email, _RESET_SUBJECTS[role], f"Reset your password: {link}")
        logger.info("Issued password reset for account id=%s", account.id)

    def reset_password(self, token: str, new_password: str, role: str | None = None) -> Account:
        """Set a new password using a reset token, consuming the token."""
        _require_password(new_password)
        if not token:
            raise InvalidLinkToken("Invalid reset token.")
        account = self.store.find_by_field("resetPasswordToken", token)
        if account is None or (role and account.role != role):
            raise InvalidLinkToken("Invalid reset token.")
        try:
            claims = self.tokens.verify_reset_token(token)
        except TokenExpiredOrInvalid:
            raise InvalidLinkToken("Reset token has expired.") from None
        if claims.subject != str(account.id):
            raise InvalidLinkToken("Invalid reset token.")

        updated = self.store.update(
            account.id, {"passwordHash": hash_password(new_password), "resetPasswordToken": None}
        )
        if updated is None:
            raise InvalidLinkToken("Invalid reset token.")
        logger.info("Password reset for account id=%s", account.id)
        return updated

    def change_password(self, account_id: int, old_password: str, new_password: str) -> None:
        """Replace the password of an authenticated account after checking the old one."""
        _require_password(new_password, "new password")
        account = self.store.find_by_id(account_id)
        if account is None:
            raise NotFound()
        if not verify_password(old_password or "", account.password_hash):
            raise InvalidCredentials("Old password is incorrect.")
        self.store.update(account_id, {"passwordHash": hash_password(new_password)})
        logger.info("Password changed for account id=%s", account_id)

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def get_profile(self, account_id: int) -> Account:
        account = self.store.find_by_id(account_id)
        if account is None:
            raise NotFound()
        return account

    def update_profile(
        self,
        account_id: int,
        name: str | None = None,
        phone_number: str | None = None,
        address: str | None = None,
        avatar: AvatarUpload | None = None,
    ) -> Account:
        """Apply the supplied profile fields; store a new avatar if one is given.

        Empty values are ignored, so a PUT with nothing set returns the
        account unchanged. A replaced avatar blob is released best-effort.
        """
        current = self.get_profile(account_id)
        changes: dict = {}
        if name:
            changes["name"] = name
        if phone_number:
            changes["phoneNumber"] = phone_number
        if address:
            changes["address"] = address
        if avatar is not None:
            self._check_avatar(avatar)
            folder = "admin-avatars" if current.role == "admin" else "avatars"
            changes["avatarUrl"] = self.blobs.store(avatar.data, avatar.content_type, folder)

        try:
            updated = self.store.update(account_id, changes)
        except Exception:
            if "avatarUrl" in changes:
                self._release_later(changes["avatarUrl"])
            raise
        if updated is None:
            if "avatarUrl" in changes:
                self._release_later(changes["avatarUrl"])
            raise NotFound()
        if "avatarUrl" in changes and current.avatar_url:
            self._release_later(current.avatar_url)
        return updated

    def delete_account(self, account_id: int) -> Account:
        """Delete the account and schedule release of its avatar blob."""
        snapshot = self.store.delete(account_id)
        if snapshot is None:
            raise NotFound()
        logger.info("Deleted account id=%s", account_id)
        if snapshot.avatar_url:
            self._release_later(snapshot.avatar_url)
        return snapshot

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def list_accounts(
        self,
        role: str | None = None,
        status: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> Page:
        """Return one page of accounts filtered by role and/or status."""
        if page < 1:
            raise ValidationError("page must be at least 1.")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}.")
        filters: dict = {}
        if role is not None:
            if role not in ROLES:
                raise ValidationError(f"Unknown role: {role!r}")
            filters["role"] = role
        if status is not None:
            if status not in STATUSES:
                raise ValidationError(f"Unknown status: {status!r}")
            filters["status"] = status
        rows, total = self.store.find_many(filters, limit=limit, offset=(page - 1) * limit)
        return Page(items=rows, page=page, limit=limit, total_items=total)

    def provision_account(self, email: str, password: str, role: str, name: str | None = None) -> Account:
        """Create an already-active account (operator or admin action, no verification mail)."""
        _require_email(email)
        _require_password(password)
        if role not in ROLES:
            raise ValidationError(f"Unknown role: {role!r}")
        if self.store.find_by_field("email", email) is not None:
            raise EmailTaken()
        try:
            account = self.store.insert(
                {
                    "email": email,
                    "passwordHash": hash_password(password),
                    "name": name,
                    "role": role,
                    "status": STATUS_ACTIVE,
                }
            )
        except IntegrityError:
            raise EmailTaken() from None
        logger.info("Provisioned %s account id=%s email=%s", role, account.id, redact_email(email))
        return account

    def set_status(self, account_id: int, status: str) -> Account:
        """Move an account between active and suspended.

        Suspending also clears the stored refresh token, ending the session.
        """
        if status not in STATUSES:
            raise ValidationError(f"Unknown status: {status!r}")
        account = self.get_profile(account_id)
        if account.status == status:
            return account
        if status not in STATUS_TRANSITIONS[account.status] or account.status == STATUS_PENDING:
            raise ValidationError(f"Cannot change status from {account.status!r} to {status!r}.")
        changes: dict = {"status": status}
        if status == STATUS_SUSPENDED:
            changes["refreshToken"] = None
        updated = self.store.update(account_id, changes)
        if updated is None:
            raise NotFound()
        logger.info("Account id=%s status %s -> %s", account_id, account.status, status)
        return updated

    def admin_delete_account(self, admin_id: int, target_id: int, role: str | None = None) -> Account:
        """Delete another account on an admin's behalf. Admins cannot delete themselves."""
        if admin_id == target_id:
            raise ValidationError("Admins cannot delete themselves.")
        if role is not None:
            target = self.get_profile(target_id)
            if target.role != role:
                raise NotFound()
        return self.delete_account(target_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _issue_access(self, account: Account) -> str:
        return self.tokens.issue_access(account.id, account.role, {"name": account.name, "status": account.status})

    def _start_session(self, account: Account) -> IssuedTokens:
        access_token = self._issue_access(account)
        refresh_token = self.tokens.issue_refresh(account.id)
        updated = self.store.update(account.id, {"refreshToken": refresh_token})
        if updated is None:
            raise InvalidCredentials()
        logger.info("Login for %s account id=%s", account.role, account.id)
        return IssuedTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=int(self.tokens.access_ttl.total_seconds()),
            account=updated,
        )

    def _send(self, email: str, subject: str, text: str) -> None:
        try:
            self.mailer.send(email, subject, text)
        except DeliveryError:
            raise InternalError("Could not send email. Please try again later.") from None

    def _check_avatar(self, avatar: AvatarUpload) -> None:
        if not avatar.content_type or not avatar.content_type.startswith("image/"):
            raise ValidationError("Only image files are allowed.")
        if not avatar.data:
            raise ValidationError("Avatar file is empty.")
        if len(avatar.data) > self.avatar_max_bytes:
            raise ValidationError(f"Avatar must be at most {self.avatar_max_bytes // (1024 * 1024)} MB.")

    def _release_later(self, url: str) -> None:
        try:
            self._executor.submit(self._release_blob, url)
        except RuntimeError:
            logger.warning("Blob release not scheduled (executor stopped): %s", url)

    def _release_blob(self, url: str) -> None:
        try:
            self.blobs.release(url)
        except Exception:
            logger.exception("Failed to release blob %s", url)
