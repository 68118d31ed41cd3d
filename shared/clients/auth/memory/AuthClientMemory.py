import hashlib
import secrets
import uuid

import httpx

from shared.clients.auth.AuthClientInterface import AuthClientInterface
from shared.clients.auth.models.Session import AuthSession
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.errors import AuthError, StoreError


class AuthClientMemory(AuthClientInterface):
    """In-process identity provider for local development and tests.

    Accounts and tokens live in dicts; passwords are stored salted and hashed.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._min_password_length = int(self.get_config_val("MIN_PASSWORD_LENGTH", default=6, val_type="number"))
        self._accounts: dict[str, dict] = {}
        self._tokens: dict[str, str] = {}
        self._booted = False

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Memory"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [EnvConfig(env_key="MIN_PASSWORD_LENGTH", val_type="number", default=6)]

    ################ AUTH ##################
    def _get_auth_params(self) -> dict:
        return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return "memory://auth"

    def _get_endpoint_healthcheck(self) -> str:
        return ""

    ##########################################
    ############ CORE REQUESTS ###############
    ##########################################

    async def boot(self) -> None:
        self._booted = True

    async def close(self) -> None:
        self._booted = False

    def is_booted(self) -> bool:
        return self._booted

    async def do_healthcheck(self) -> httpx.Response:
        return httpx.Response(200 if self._booted else 503)

    ##########################################
    ################ HELPER ##################
    ##########################################

    def _ensure_booted(self) -> None:
        if not self._booted:
            raise StoreError("auth client 'memory' is not booted. Call boot() before making requests.")

    def _hash(self, password: str, salt: str) -> str:
        return hashlib.sha256(f"{salt}:{password}".encode("utf-8")).hexdigest()

    def _find_uid(self, email: str) -> str | None:
        email = email.strip().lower()
        for uid, account in self._accounts.items():
            if account["email"] == email:
                return uid
        return None

    def _issue_session(self, uid: str) -> AuthSession:
        token = secrets.token_urlsafe(24)
        self._tokens[token] = uid
        account = self._accounts[uid]
        return AuthSession(
            uid=uid,
            email=account["email"],
            display_name=account.get("display_name"),
            id_token=token,
            expires_in=3600,
        )

    def _check_password(self, password: str) -> None:
        if len(password or "") < self._min_password_length:
            raise AuthError(f"Password should be at least {self._min_password_length} characters.")

    def _uid_for_token(self, id_token: str) -> str:
        uid = self._tokens.get(id_token)
        if uid is None or uid not in self._accounts:
            raise AuthError("Your session has expired. Please sign in again.")
        return uid

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def _sign_in(self, email: str, password: str) -> AuthSession:
        self._ensure_booted()
        uid = self._find_uid(email)
        if uid is None:
            raise AuthError("Invalid email or password.")
        account = self._accounts[uid]
        if account["password_hash"] != self._hash(password, account["salt"]):
            raise AuthError("Invalid email or password.")
        return self._issue_session(uid)

    async def _sign_up(self, email: str, password: str, display_name: str | None = None) -> AuthSession:
        self._ensure_booted()
        if not email or "@" not in email:
            raise AuthError("The email address is badly formatted.")
        if self._find_uid(email) is not None:
            raise AuthError("An account with this email already exists.")
        self._check_password(password)
        uid = uuid.uuid4().hex[:28]
        salt = secrets.token_hex(8)
        self._accounts[uid] = {
            "email": email.strip().lower(),
            "salt": salt,
            "password_hash": self._hash(password, salt),
            "display_name": display_name,
        }
        return self._issue_session(uid)

    async def _sign_out(self, session: AuthSession) -> None:
        if session.id_token:
            self._tokens.pop(session.id_token, None)

    async def do_verify_token(self, id_token: str) -> AuthSession:
        self._ensure_booted()
        uid = self._uid_for_token(id_token)
        account = self._accounts[uid]
        return AuthSession(uid=uid, email=account["email"], display_name=account.get("display_name"), id_token=id_token)

    async def do_update_email(self, id_token: str, new_email: str) -> AuthSession:
        self._ensure_booted()
        uid = self._uid_for_token(id_token)
        other = self._find_uid(new_email)
        if other is not None and other != uid:
            raise AuthError("An account with this email already exists.")
        self._accounts[uid]["email"] = new_email.strip().lower()
        return await self.do_verify_token(id_token)

    async def do_update_password(self, id_token: str, new_password: str) -> AuthSession:
        self._ensure_booted()
        uid = self._uid_for_token(id_token)
        self._check_password(new_password)
        account = self._accounts[uid]
        account["password_hash"] = self._hash(new_password, account["salt"])
        return await self.do_verify_token(id_token)

    async def do_delete_account(self, id_token: str) -> None:
        self._ensure_booted()
        await self.do_admin_delete_account(self._uid_for_token(id_token))

    async def do_admin_delete_account(self, uid: str) -> None:
        self._ensure_booted()
        self._accounts.pop(uid, None)
        self._tokens = {token: owner for token, owner in self._tokens.items() if owner != uid}
