"""Accounts and profiles.

The identity provider owns credentials; the profile (name, role, department
...) lives in the store under ``users/{uid}``. Every account change goes to
the identity provider first and is mirrored into the profile afterwards.
"""

from datetime import datetime, timezone
from typing import Callable

from services.activity.ActivityLogService import ActivityLogService
from shared.clients.auth.AuthClientInterface import AuthClientInterface
from shared.clients.auth.models.Session import AuthSession
from shared.clients.objects.ObjectsClientInterface import ObjectsClientInterface
from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.errors import (
    AuthError,
    ConfirmationRequiredError,
    NotFoundError,
    PermissionDeniedError,
    RecordValidationError,
    StoreError,
)
from shared.models.record import CONTENT_TYPES, Attachment, FileFormat, format_for_filename
from shared.models.user import AdminProfileChanges, ProfileChanges, Role, UserProfile

PICTURES_ROOT = "profilePictures"
PICTURE_FORMATS = (FileFormat.JPEG, FileFormat.PNG)


class UserService:

    def __init__(
        self,
        helper_config: HelperConfig,
        store_client: StoreClientInterface,
        auth_client: AuthClientInterface,
        objects_client: ObjectsClientInterface,
        activity: ActivityLogService,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._store = store_client
        self._auth = auth_client
        self._objects = objects_client
        self._activity = activity
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    ##########################################
    ################ GETTER ##################
    ##########################################

    def _get_user_path(self, uid: str) -> str:
        return self._store.normalize_path("users", uid)

    def _now_iso(self) -> str:
        return self._clock().isoformat()

    async def get_profile(self, uid: str) -> UserProfile:
        """
        Raises:
            NotFoundError: If the user has no profile.
        """
        data = await self._store.do_read(self._get_user_path(uid))
        if not isinstance(data, dict):
            raise NotFoundError(f"User '{uid}' does not exist.")
        return UserProfile.from_store(uid, data)

    async def get_profile_for_token(self, id_token: str) -> UserProfile:
        """Resolve a bearer token to the caller's profile.

        Raises:
            AuthError: If the token is invalid or the account has no profile.
        """
        session = await self._auth.do_verify_token(id_token)
        try:
            return await self.get_profile(session.uid)
        except NotFoundError:
            raise AuthError("No profile exists for this account.")

    async def list_users(self, actor: UserProfile) -> list[UserProfile]:
        self._require_admin(actor)
        users = await self._store.do_read("users") or {}
        profiles = [UserProfile.from_store(uid, data) for uid, data in users.items() if isinstance(data, dict)]
        return sorted(profiles, key=lambda profile: profile.display_name.lower())

    ##########################################
    ############### SESSIONS #################
    ##########################################

    async def register(
        self,
        email: str,
        password: str,
        name: str,
        department: str | None = None,
        phone_number: str | None = None,
    ) -> tuple[AuthSession, UserProfile]:
        """Self-registration; new accounts always get the ``user`` role.

        Raises:
            AuthError: If the email is taken or the password is rejected.
            StoreError: If the profile cannot be written (the new account is removed again).
        """
        if not name or not name.strip():
            raise RecordValidationError("Field 'name' is required.")
        session = await self._auth.do_sign_up(email=email, password=password, display_name=name)
        profile = UserProfile(
            uid=session.uid,
            email=session.email or email,
            name=name.strip(),
            role=Role.USER,
            department=department,
            phone_number=phone_number,
            created_at=self._now_iso(),
        )
        await self._write_new_profile(session, profile)
        return session, profile

    async def login(self, email: str, password: str) -> AuthSession:
        return await self._auth.do_sign_in(email=email, password=password)

    async def logout(self, id_token: str) -> None:
        """Sign out the account the token belongs to.

        Raises:
            AuthError: If the token is invalid or expired.
        """
        session = await self._auth.do_verify_token(id_token)
        await self._auth.do_sign_out(session.model_copy(update={"id_token": id_token}))

    async def _write_new_profile(self, session: AuthSession, profile: UserProfile) -> None:
        try:
            await self._store.do_update(self._get_user_path(profile.uid), profile.to_store())
        except StoreError:
            self.logging.error("Failed to store profile of new account %s, removing the account.", profile.uid)
            try:
                await self._auth.do_delete_account(session.id_token)
            except (AuthError, StoreError) as e:
                self.logging.warning("Failed to remove account %s: %s", profile.uid, e, color="yellow")
            raise
        self.logging.info("Created profile of user %s (%s).", profile.uid, profile.role, color="green")

    ##########################################
    ################ SELF ####################
    ##########################################

    async def update_profile(self, actor: UserProfile, changes: ProfileChanges) -> UserProfile:
        data = changes.to_store()
        if "name" in data and not data["name"].strip():
            raise RecordValidationError("Field 'name' must not be empty.")
        data.update({"updatedAt": self._now_iso(), "updatedBy": actor.uid})
        await self._store.do_update(self._get_user_path(actor.uid), data)
        await self._activity.try_log(actor.uid, "Edit", "Updated profile")
        return await self.get_profile(actor.uid)

    async def upload_picture(self, actor: UserProfile, picture: Attachment) -> UserProfile:
        """Replace the caller's profile picture.

        Raises:
            RecordValidationError: If the file is not a JPEG or PNG image.
        """
        file_format = format_for_filename(picture.filename)
        if file_format not in PICTURE_FORMATS:
            raise RecordValidationError("Profile pictures must be JPEG or PNG images.")
        url = await self._objects.do_upload(
            f"{PICTURES_ROOT}/{actor.uid}",
            picture.content,
            picture.content_type or CONTENT_TYPES[file_format],
        )
        await self._store.do_update(
            self._get_user_path(actor.uid),
            {"profilePicture": url, "updatedAt": self._now_iso(), "updatedBy": actor.uid},
        )
        return await self.get_profile(actor.uid)

    async def change_email(self, actor: UserProfile, id_token: str, new_email: str) -> UserProfile:
        """
        Raises:
            AuthError: If the provider rejects the address or requires a recent login.
        """
        session = await self._auth.do_update_email(id_token, new_email)
        await self._store.do_update(
            self._get_user_path(actor.uid),
            {"email": session.email or new_email, "updatedAt": self._now_iso(), "updatedBy": actor.uid},
        )
        await self._activity.try_log(actor.uid, "Edit", "Changed email address")
        return await self.get_profile(actor.uid)

    async def change_password(self, actor: UserProfile, id_token: str, new_password: str) -> AuthSession:
        session = await self._auth.do_update_password(id_token, new_password)
        await self._activity.try_log(actor.uid, "Edit", "Changed password")
        return session

    ##########################################
    ################ ADMIN ###################
    ##########################################

    def _require_admin(self, actor: UserProfile) -> None:
        if not actor.is_admin:
            raise PermissionDeniedError("Administrator role required.")

    async def create_user(
        self,
        actor: UserProfile,
        email: str,
        password: str,
        name: str,
        role: Role = Role.USER,
        department: str | None = None,
        phone_number: str | None = None,
    ) -> UserProfile:
        """Create an account with any role on behalf of an administrator."""
        self._require_admin(actor)
        if not name or not name.strip():
            raise RecordValidationError("Field 'name' is required.")
        session = await self._auth.do_sign_up(email=email, password=password, display_name=name, notify=False)
        profile = UserProfile(
            uid=session.uid,
            email=session.email or email,
            name=name.strip(),
            role=role,
            department=department,
            phone_number=phone_number,
            created_at=self._now_iso(),
            created_by=actor.uid,
        )
        await self._write_new_profile(session, profile)
        await self._activity.try_log(actor.uid, "Create", f"Created user {profile.display_name}")
        return profile

    async def admin_update(self, actor: UserProfile, uid: str, changes: AdminProfileChanges) -> UserProfile:
        self._require_admin(actor)
        await self.get_profile(uid)
        data = changes.to_store()
        if "name" in data and not data["name"].strip():
            raise RecordValidationError("Field 'name' must not be empty.")
        data.update({"updatedAt": self._now_iso(), "updatedBy": actor.uid})
        await self._store.do_update(self._get_user_path(uid), data)
        await self._activity.try_log(actor.uid, "Edit", f"Edited user {uid}")
        return await self.get_profile(uid)

    async def delete_user(self, actor: UserProfile, uid: str, confirm: bool = False) -> None:
        """Delete a user's profile with all records and logs, then their account.

        Account removal at the identity provider is best-effort; the profile
        is gone either way.

        Raises:
            ConfirmationRequiredError: Unless ``confirm`` is set.
            PermissionDeniedError: For non-admins and for deleting oneself.
            NotFoundError: If the user does not exist.
        """
        self._require_admin(actor)
        if not confirm:
            raise ConfirmationRequiredError("Deleting a user requires confirmation.")
        if uid == actor.uid:
            raise PermissionDeniedError("Administrators cannot delete their own account.")
        profile = await self.get_profile(uid)

        await self._store.do_delete(self._get_user_path(uid))
        self.logging.info("Deleted profile of user %s.", uid)
        try:
            await self._auth.do_admin_delete_account(uid)
        except (AuthError, StoreError) as e:
            self.logging.warning("Profile of %s deleted but the account could not be removed: %s", uid, e, color="yellow")
        await self._activity.try_log(actor.uid, "Delete", f"Deleted user {profile.display_name}")
