from abc import abstractmethod
from typing import Awaitable, Callable

from shared.clients.ClientInterface import ClientInterface
from shared.clients.auth.models.Session import AuthSession, SessionEvent
from shared.helper.HelperConfig import HelperConfig

SessionListener = Callable[[SessionEvent], Awaitable[None]]


class AuthClientInterface(ClientInterface):
    """Identity provider: credential sign-in/up, token verification and account changes.

    Sign-in and sign-out are broadcast to session listeners registered with
    ``on_session_change``.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._session_listeners: list[SessionListener] = []

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "auth"

    ##########################################
    ############### LISTENERS ################
    ##########################################

    def on_session_change(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener for sign-in/sign-out events.

        Returns:
            Callable[[], None]: Removes the listener again.
        """
        self._session_listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._session_listeners:
                self._session_listeners.remove(listener)

        return _unsubscribe

    async def _emit(self, event: SessionEvent) -> None:
        for listener in list(self._session_listeners):
            await listener(event)

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_sign_in(self, email: str, password: str) -> AuthSession:
        """
        Sign in with email and password.

        Raises:
            AuthError: On bad credentials.
            StoreError: If the provider is unreachable.
        """
        session = await self._sign_in(email=email, password=password)
        self.logging.info("Account %s signed in.", session.uid)
        await self._emit(SessionEvent(uid=session.uid, session=session))
        return session

    async def do_sign_up(
        self,
        email: str,
        password: str,
        display_name: str | None = None,
        notify: bool = True,
    ) -> AuthSession:
        """
        Create a new credential account. The new account is signed in.

        Args:
            notify (bool): Broadcast the sign-in of the new account. Accounts
                created by an administrator are not announced.

        Raises:
            AuthError: If the email is already registered or the password is rejected.
            StoreError: If the provider is unreachable.
        """
        session = await self._sign_up(email=email, password=password, display_name=display_name)
        self.logging.info("Account %s registered.", session.uid)
        if notify:
            await self._emit(SessionEvent(uid=session.uid, session=session))
        return session

    async def do_sign_out(self, session: AuthSession) -> None:
        await self._sign_out(session)
        self.logging.info("Account %s signed out.", session.uid)
        await self._emit(SessionEvent(uid=session.uid, session=None))

    async def _sign_out(self, session: AuthSession) -> None:
        """Engine hook to revoke a session; stateless token providers have nothing to do."""
        return None

    @abstractmethod
    async def _sign_in(self, email: str, password: str) -> AuthSession:
        pass

    @abstractmethod
    async def _sign_up(self, email: str, password: str, display_name: str | None = None) -> AuthSession:
        pass

    @abstractmethod
    async def do_verify_token(self, id_token: str) -> AuthSession:
        """
        Resolve an ID token to its account.

        Raises:
            AuthError: If the token is invalid or expired.
        """
        pass

    @abstractmethod
    async def do_update_email(self, id_token: str, new_email: str) -> AuthSession:
        pass

    @abstractmethod
    async def do_update_password(self, id_token: str, new_password: str) -> AuthSession:
        pass

    @abstractmethod
    async def do_delete_account(self, id_token: str) -> None:
        """Delete the account the token belongs to."""
        pass

    @abstractmethod
    async def do_admin_delete_account(self, uid: str) -> None:
        """
        Delete another account with administrative credentials.

        Raises:
            StoreError: If administrative deletion is not configured or fails.
        """
        pass
