import pytest

from shared.models.errors import (
    AuthError,
    ConfirmationRequiredError,
    NotFoundError,
    PermissionDeniedError,
    RecordValidationError,
)
from shared.models.record import Attachment
from shared.models.user import AdminProfileChanges, ProfileChanges, Role


async def actions(store, uid):
    logs = await store.do_read(f"users/{uid}/activityLogs") or {}
    return sorted(entry["action"] for entry in logs.values())


@pytest.mark.asyncio
async def test_register_creates_user_profile(user_service, store):
    session, profile = await user_service.register(
        "Maria.Clara@Example.com", "secret123", "Maria Clara", department="Operations", phone_number="0917"
    )

    stored = await store.do_read(f"users/{session.uid}")
    assert profile.role == "user"
    assert stored["name"] == "Maria Clara"
    assert stored["email"] == "maria.clara@example.com"
    assert stored["phoneNumber"] == "0917"
    # the sign-in of the new account is logged and survives the profile write
    assert await actions(store, session.uid) == ["Login"]


@pytest.mark.asyncio
async def test_register_rejects_duplicates_and_blank_names(user_service):
    await user_service.register("jane@example.com", "secret123", "Jane Doe")

    with pytest.raises(AuthError):
        await user_service.register("jane@example.com", "secret123", "Jane Again")
    with pytest.raises(RecordValidationError):
        await user_service.register("other@example.com", "secret123", "   ")


@pytest.mark.asyncio
async def test_login_logout_and_token_resolution(user_service, store):
    registered, _ = await user_service.register("jane@example.com", "secret123", "Jane Doe")

    session = await user_service.login("jane@example.com", "secret123")
    profile = await user_service.get_profile_for_token(session.id_token)
    await user_service.logout(session.id_token)

    assert profile.uid == registered.uid
    assert await actions(store, registered.uid) == ["Login", "Login", "Logout"]
    with pytest.raises(AuthError):
        await user_service.get_profile_for_token(session.id_token)
    with pytest.raises(AuthError):
        await user_service.login("jane@example.com", "wrong-password")


@pytest.mark.asyncio
async def test_token_without_profile_is_rejected(user_service, auth):
    session = await auth.do_sign_up("ghost@example.com", "secret123", notify=False)

    with pytest.raises(AuthError, match="No profile"):
        await user_service.get_profile_for_token(session.id_token)


@pytest.mark.asyncio
async def test_update_profile(user_service, jane):
    profile = await user_service.update_profile(jane, ProfileChanges(department="Logistics", phoneNumber="0918"))

    assert profile.department == "Logistics"
    assert profile.phone_number == "0918"
    assert profile.name == "Jane Doe"
    assert profile.updated_by == jane.uid
    with pytest.raises(RecordValidationError):
        await user_service.update_profile(jane, ProfileChanges(name=" "))


@pytest.mark.asyncio
async def test_upload_picture(user_service, objects, jane):
    profile = await user_service.upload_picture(jane, Attachment(filename="me.png", content=b"png"))

    assert profile.profile_picture.endswith("profilePictures/u-jane")
    assert objects.get_object("profilePictures/u-jane") == (b"png", "image/png")
    with pytest.raises(RecordValidationError):
        await user_service.upload_picture(jane, Attachment(filename="me.pdf", content=b"pdf"))


@pytest.mark.asyncio
async def test_change_email_and_password(user_service, store):
    session, profile = await user_service.register("jane@example.com", "secret123", "Jane Doe")

    updated = await user_service.change_email(profile, session.id_token, "jane.doe@example.com")
    await user_service.change_password(profile, session.id_token, "new-secret")

    assert updated.email == "jane.doe@example.com"
    assert (await user_service.login("jane.doe@example.com", "new-secret")).uid == session.uid
    with pytest.raises(AuthError):
        await user_service.change_password(profile, session.id_token, "123")


@pytest.mark.asyncio
async def test_admin_creates_user_without_login_event(user_service, store, admin, jane):
    created = await user_service.create_user(admin, "new@example.com", "secret123", "New Admin", role=Role.ADMIN)

    assert created.role == "admin"
    assert created.created_by == admin.uid
    assert await actions(store, created.uid) == []
    assert await actions(store, admin.uid) == ["Create"]
    with pytest.raises(PermissionDeniedError):
        await user_service.create_user(jane, "x@example.com", "secret123", "X")


@pytest.mark.asyncio
async def test_list_users_is_admin_only(user_service, admin, jane, mark):
    users = await user_service.list_users(admin)

    assert [user.display_name for user in users] == ["Ada Admin", "Jane Doe", "Mark Reyes"]
    with pytest.raises(PermissionDeniedError):
        await user_service.list_users(jane)


@pytest.mark.asyncio
async def test_admin_update_changes_role(user_service, admin, jane):
    updated = await user_service.admin_update(admin, jane.uid, AdminProfileChanges(role=Role.ADMIN, bio="Records officer"))

    assert updated.is_admin
    assert updated.bio == "Records officer"
    with pytest.raises(NotFoundError):
        await user_service.admin_update(admin, "u-missing", AdminProfileChanges(bio="x"))


@pytest.mark.asyncio
async def test_delete_user(user_service, store, auth, admin):
    session, profile = await user_service.register("gone@example.com", "secret123", "Gone Soon")

    with pytest.raises(ConfirmationRequiredError):
        await user_service.delete_user(admin, profile.uid)
    with pytest.raises(PermissionDeniedError):
        await user_service.delete_user(admin, admin.uid, confirm=True)

    await user_service.delete_user(admin, profile.uid, confirm=True)

    assert await store.do_read(f"users/{profile.uid}") is None
    with pytest.raises(AuthError):
        await auth.do_sign_in("gone@example.com", "secret123")
    assert "Delete" in await actions(store, admin.uid)
