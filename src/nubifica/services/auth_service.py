from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Protocol

import requests

from nubifica.config import IdentitySettings
from nubifica.domain.errors import AuthorizationError, IdentityProviderError, ValidationError
from nubifica.domain.models import USER_ROLES, ConnectionLog, UserAccount
from nubifica.repositories.records import RecordRepository, Slots
from nubifica.repositories.unit_of_work import SlotUnitOfWork, UnitOfWork
from nubifica.services.formatting import format_es_co_timestamp
from nubifica.services.identifiers import IdentifierService, Prefix

log = logging.getLogger("nubifica.auth")

ADMIN_ROLE = "Administrador"
USER_ROLE = "Usuario"


@dataclass(frozen=True)
class LoginPolicy:
    min_password_length: int = 6


def _validate_secret_strength(secret: str, *, min_len: int) -> None:
    if len(secret) < min_len:
        raise AuthorizationError(f"Password must have at least {min_len} characters.")


PERMISSIONS: dict[str, set[str]] = {
    "create_documents": {ADMIN_ROLE, USER_ROLE},
    "delete_documents": {ADMIN_ROLE},
    "manage_inventory": {ADMIN_ROLE, USER_ROLE},
    "view_reports": {ADMIN_ROLE, USER_ROLE},
    "manage_settings": {ADMIN_ROLE},
    "manage_users": {ADMIN_ROLE},
}


@dataclass(frozen=True)
class Session:
    uid: str
    email: str
    id_token: str
    refresh_token: str = ""


class IdentityProvider(Protocol):
    def sign_in(self, email: str, password: str) -> Session: ...
    def sign_out(self, session: Session) -> None: ...
    def create_account(self, email: str, password: str) -> str: ...
    def change_password(self, session: Session, new_password: str) -> Session: ...


_CREDENTIAL_ERRORS = {
    "EMAIL_NOT_FOUND",
    "INVALID_PASSWORD",
    "INVALID_LOGIN_CREDENTIALS",
    "USER_DISABLED",
    "EMAIL_EXISTS",
    "WEAK_PASSWORD",
    "TOO_MANY_ATTEMPTS_TRY_LATER",
}


class FirebaseIdentityProvider:
    """Email/password accounts on the Identity Toolkit REST API."""

    def __init__(self, settings: IdentitySettings):
        self.settings = settings

    def _post_json(self, endpoint: str, payload: dict) -> dict:
        url = f"{self.settings.base_url}/accounts:{endpoint}"
        r = requests.post(url, params={"key": self.settings.api_key}, json=payload, timeout=self.settings.timeout_seconds)
        if r.status_code == 400:
            message = self._error_message(r)
            code = message.split(" ")[0].split(":")[0]
            if code in _CREDENTIAL_ERRORS:
                raise AuthorizationError(message)
        r.raise_for_status()
        return r.json()

    @staticmethod
    def _error_message(response) -> str:
        try:
            return str(response.json()["error"]["message"])
        except (ValueError, KeyError, TypeError):
            return f"HTTP {response.status_code}"

    def _call(self, endpoint: str, payload: dict) -> dict:
        try:
            return self._post_json(endpoint, payload)
        except AuthorizationError:
            raise
        except (requests.RequestException, ValueError) as e:
            log.warning("identity_provider_failed endpoint=%s error=%s", endpoint, e)
            raise IdentityProviderError(f"Identity provider unavailable: {e}") from e

    def sign_in(self, email: str, password: str) -> Session:
        data = self._call("signInWithPassword", {"email": email, "password": password, "returnSecureToken": True})
        try:
            return Session(
                uid=str(data["localId"]),
                email=str(data.get("email", email)),
                id_token=str(data["idToken"]),
                refresh_token=str(data.get("refreshToken", "")),
            )
        except KeyError as e:
            raise IdentityProviderError(f"Identity provider response missing {e}. Raw: {data}") from e

    def sign_out(self, session: Session) -> None:
        # tokens are bearer-only; dropping them locally is the whole sign-out
        return None

    def create_account(self, email: str, password: str) -> str:
        data = self._call("signUp", {"email": email, "password": password, "returnSecureToken": True})
        if "localId" not in data:
            raise IdentityProviderError(f"Identity provider response missing localId. Raw: {data}")
        return str(data["localId"])

    def change_password(self, session: Session, new_password: str) -> Session:
        data = self._call("update", {"idToken": session.id_token, "password": new_password, "returnSecureToken": True})
        return Session(
            uid=session.uid,
            email=session.email,
            id_token=str(data.get("idToken", session.id_token)),
            refresh_token=str(data.get("refreshToken", session.refresh_token)),
        )


class AuthService:
    def __init__(
        self,
        repo: RecordRepository,
        provider: IdentityProvider,
        ids: IdentifierService,
        policy: LoginPolicy | None = None,
        uow_factory: Callable[[], UnitOfWork] | None = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.repo = repo
        self.provider = provider
        self.ids = ids
        self.policy = policy or LoginPolicy()
        self.uow_factory = uow_factory or (lambda: SlotUnitOfWork(repo))
        self._now = now
        self._session: Optional[Session] = None

    @property
    def current_user(self) -> Optional[Session]:
        return self._session

    def sign_in(self, email: str, password: str) -> Session:
        email_clean = (email or "").strip().lower()
        if not email_clean:
            raise AuthorizationError("Email is required.")
        if not password:
            raise AuthorizationError("Password is required.")

        session = self.provider.sign_in(email_clean, password)
        self._session = session

        entry = ConnectionLog(
            id=self.ids.next_entity_id(Prefix.CONNECTION_LOG),
            user_email=session.email or "unknown",
            timestamp=format_es_co_timestamp(self._now()),
        )
        with self.uow_factory() as uow:
            uow.stage(Slots.CONNECTION_LOGS, [*uow.records(Slots.CONNECTION_LOGS), entry])
        log.info("sign_in email=%s", session.email)
        return session

    def sign_out(self) -> None:
        if self._session is None:
            return
        session = self._session
        self._session = None
        self.provider.sign_out(session)
        log.info("sign_out email=%s", session.email)

    def require_session(self) -> Session:
        if self._session is None:
            raise AuthorizationError("Sign in required.")
        return self._session

    def connection_logs(self) -> list[ConnectionLog]:
        return list(reversed(self.repo.list(Slots.CONNECTION_LOGS)))

    # ---------- Roles ----------
    def list_users(self) -> list[UserAccount]:
        return self.repo.list(Slots.USER_ACCOUNTS)

    def role_of(self, email: str) -> str:
        for u in self.list_users():
            if u.email.lower() == email.lower():
                return u.role
        return USER_ROLE

    def can(self, session: Session, action: str) -> bool:
        allowed_roles = PERMISSIONS.get(action)
        if not allowed_roles:
            return False
        return self.role_of(session.email) in allowed_roles

    def require_action(self, session: Session, action: str) -> None:
        if not self.can(session, action):
            raise AuthorizationError(f"Role '{self.role_of(session.email)}' is not allowed to perform '{action}'.")

    def create_user(self, actor: Session, email: str, password: str, confirm_password: str, role: str) -> UserAccount:
        self.require_action(actor, "manage_users")

        email_clean = (email or "").strip().lower()
        if not email_clean or "@" not in email_clean:
            raise ValidationError("A valid email is required.")
        if role not in USER_ROLES:
            raise ValidationError(f"Unknown role: {role}")
        if password != confirm_password:
            raise AuthorizationError("Password confirmation does not match.")
        _validate_secret_strength(password, min_len=self.policy.min_password_length)
        if any(u.email.lower() == email_clean for u in self.list_users()):
            raise ValidationError(f"User already exists: {email_clean}")

        self.provider.create_account(email_clean, password)
        account = UserAccount(id=self.ids.next_entity_id(Prefix.USER), email=email_clean, role=role)
        with self.uow_factory() as uow:
            uow.stage(Slots.USER_ACCOUNTS, [*uow.records(Slots.USER_ACCOUNTS), account])
        log.info("user_created email=%s role=%s actor=%s", email_clean, role, actor.email)
        return account

    def change_password(self, current_password: str, new_password: str, confirm_password: str) -> None:
        session = self.require_session()
        if not current_password:
            raise AuthorizationError("Current password is required.")
        _validate_secret_strength(new_password, min_len=self.policy.min_password_length)
        if new_password != confirm_password:
            raise AuthorizationError("Password confirmation does not match.")
        if new_password == current_password:
            raise AuthorizationError("New password must be different from the current password.")

        # re-authenticate so a stale session cannot change the password
        fresh = self.provider.sign_in(session.email, current_password)
        self._session = self.provider.change_password(fresh, new_password)
        log.info("password_changed email=%s", session.email)
