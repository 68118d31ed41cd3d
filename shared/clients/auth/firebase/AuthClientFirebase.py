import httpx

from shared.clients.auth.AuthClientInterface import AuthClientInterface
from shared.clients.auth.models.Session import AuthSession
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.errors import AuthError, StoreError

# Identity Toolkit error codes and the message shown to the user
_ERROR_MESSAGES: dict[str, str] = {
    "EMAIL_EXISTS": "An account with this email already exists.",
    "EMAIL_NOT_FOUND": "Invalid email or password.",
    "INVALID_PASSWORD": "Invalid email or password.",
    "INVALID_LOGIN_CREDENTIALS": "Invalid email or password.",
    "USER_DISABLED": "This account has been disabled.",
    "INVALID_EMAIL": "The email address is badly formatted.",
    "WEAK_PASSWORD": "Password should be at least 6 characters.",
    "INVALID_ID_TOKEN": "Your session has expired. Please sign in again.",
    "TOKEN_EXPIRED": "Your session has expired. Please sign in again.",
    "USER_NOT_FOUND": "Your session has expired. Please sign in again.",
    "CREDENTIAL_TOO_OLD_LOGIN_AGAIN": "Please sign in again before changing your credentials.",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Too many attempts. Try again later.",
}


class AuthClientFirebase(AuthClientInterface):
    """Firebase Authentication over the Identity Toolkit REST API."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._api_key = self.get_config_val("API_KEY", default=None, val_type="string")
        self._base_url = self.get_config_val("BASE_URL", default="https://identitytoolkit.googleapis.com/v1", val_type="string")
        self._project_id = self.get_config_val("PROJECT_ID", default="", val_type="string")
        self._admin_access_token = self.get_config_val("ADMIN_ACCESS_TOKEN", default="", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Firebase"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="API_KEY", val_type="string", default=None),
            EnvConfig(env_key="BASE_URL", val_type="string", default="https://identitytoolkit.googleapis.com/v1"),
            EnvConfig(env_key="PROJECT_ID", val_type="string", default=""),
            EnvConfig(env_key="ADMIN_ACCESS_TOKEN", val_type="string", default=""),
        ]

    ################ AUTH ##################
    def _get_auth_params(self) -> dict:
        return {"key": self._api_key}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/accounts:createAuthUri"

    def _get_endpoint_sign_in(self) -> str:
        return "/accounts:signInWithPassword"

    def _get_endpoint_sign_up(self) -> str:
        return "/accounts:signUp"

    def _get_endpoint_lookup(self) -> str:
        return "/accounts:lookup"

    def _get_endpoint_update(self) -> str:
        return "/accounts:update"

    def _get_endpoint_delete(self) -> str:
        return "/accounts:delete"

    def _get_endpoint_admin_delete(self) -> str:
        return f"/projects/{self._project_id}/accounts:delete"

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def _parse_session(self, body: dict, fallback_token: str | None = None) -> AuthSession:
        return AuthSession(
            uid=body["localId"],
            email=body.get("email"),
            display_name=body.get("displayName") or None,
            id_token=body.get("idToken") or fallback_token,
            refresh_token=body.get("refreshToken"),
            expires_in=int(body["expiresIn"]) if body.get("expiresIn") else None,
        )

    def _raise_for_error(self, response: httpx.Response, action: str) -> None:
        """
        Raises:
            AuthError: For credential and token errors reported by the provider.
            StoreError: For anything else.
        """
        if response.is_success:
            return
        try:
            code = response.json().get("error", {}).get("message", "")
        except ValueError:
            code = ""
        # codes can carry a suffix, e.g. "WEAK_PASSWORD : Password should be ..."
        base_code = code.split(":")[0].strip()
        self.logging.warning("Auth %s failed with status %d: %s", action, response.status_code, code or response.text)
        if base_code in _ERROR_MESSAGES:
            raise AuthError(_ERROR_MESSAGES[base_code])
        if response.status_code in (400, 401, 403):
            raise AuthError(f"Authentication failed: {code or response.status_code}")
        raise StoreError(f"Identity provider error during {action} (status {response.status_code}).")

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_healthcheck(self) -> httpx.Response:
        return await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_healthcheck(),
            json={"identifier": "healthcheck@example.com", "continueUri": "http://localhost"},
        )

    async def _sign_in(self, email: str, password: str) -> AuthSession:
        response = await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_sign_in(),
            json={"email": email, "password": password, "returnSecureToken": True},
        )
        self._raise_for_error(response, "sign-in")
        return self._parse_session(response.json())

    async def _sign_up(self, email: str, password: str, display_name: str | None = None) -> AuthSession:
        response = await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_sign_up(),
            json={"email": email, "password": password, "returnSecureToken": True},
        )
        self._raise_for_error(response, "sign-up")
        session = self._parse_session(response.json())
        if display_name:
            response = await self.do_request(
                method="POST",
                endpoint=self._get_endpoint_update(),
                json={"idToken": session.id_token, "displayName": display_name, "returnSecureToken": True},
            )
            self._raise_for_error(response, "profile update")
            session = self._parse_session(response.json(), fallback_token=session.id_token)
        return session

    async def do_verify_token(self, id_token: str) -> AuthSession:
        response = await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_lookup(),
            json={"idToken": id_token},
        )
        self._raise_for_error(response, "token verification")
        users = response.json().get("users") or []
        if not users:
            raise AuthError("Your session has expired. Please sign in again.")
        return self._parse_session(users[0], fallback_token=id_token)

    async def do_update_email(self, id_token: str, new_email: str) -> AuthSession:
        response = await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_update(),
            json={"idToken": id_token, "email": new_email, "returnSecureToken": True},
        )
        self._raise_for_error(response, "email update")
        return self._parse_session(response.json(), fallback_token=id_token)

    async def do_update_password(self, id_token: str, new_password: str) -> AuthSession:
        response = await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_update(),
            json={"idToken": id_token, "password": new_password, "returnSecureToken": True},
        )
        self._raise_for_error(response, "password update")
        return self._parse_session(response.json(), fallback_token=id_token)

    async def do_delete_account(self, id_token: str) -> None:
        response = await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_delete(),
            json={"idToken": id_token},
        )
        self._raise_for_error(response, "account deletion")

    async def do_admin_delete_account(self, uid: str) -> None:
        if not self._project_id or not self._admin_access_token:
            raise StoreError("Administrative account deletion is not configured (AUTH_FIREBASE_PROJECT_ID / AUTH_FIREBASE_ADMIN_ACCESS_TOKEN).")
        response = await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_admin_delete(),
            json={"localId": uid},
            additional_headers={"Authorization": f"Bearer {self._admin_access_token}"},
        )
        self._raise_for_error(response, "administrative account deletion")
