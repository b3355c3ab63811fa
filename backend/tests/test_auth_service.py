"""
Tests for app/services/auth - credential store and the auth orchestrator.
"""
import pytest
from datetime import timedelta
from unittest.mock import AsyncMock

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from app.core.errors import ConflictError, UnauthorizedError, ValidationError
from app.models.user import User
from app.schemas.user import UserCreate
from app.services.auth import AuthService, ClientInfo, CredentialStore

ALICE = UserCreate(email="alice@example.com", username="alice", password="Str0ngP@ssw0rd!")


class TestCredentialStore:
    async def test_email_is_normalized(self, db_session):
        from app.core.security import PasswordHasher

        store = CredentialStore(db_session, PasswordHasher(rounds=4))
        user = await store.create("  Alice@Example.COM ", "alice", "Str0ngP@ssw0rd!")

        assert user.email == "alice@example.com"
        assert (await store.get_by_email("ALICE@example.com")).id == user.id

    async def test_find_conflicts_case_insensitive(self, db_session):
        from app.core.security import PasswordHasher

        store = CredentialStore(db_session, PasswordHasher(rounds=4))
        await store.create("alice@example.com", "alice", "Str0ngP@ssw0rd!")

        assert await store.find_conflicts("ALICE@example.com", "someone") == ["email"]
        assert await store.find_conflicts("new@example.com", "ALICE") == ["username"]
        assert await store.find_conflicts("alice@example.com", "Alice") == ["email", "username"]
        assert await store.find_conflicts("new@example.com", "new") == []

    async def test_username_unique_regardless_of_case_in_database(self, db_session):
        from app.core.security import PasswordHasher

        store = CredentialStore(db_session, PasswordHasher(rounds=4))
        await store.create("first@example.com", "Alice", "Str0ngP@ssw0rd!")
        await db_session.commit()

        with pytest.raises(IntegrityError):
            await store.create("second@example.com", "alice", "Str0ngP@ssw0rd!")
        await db_session.rollback()

    def test_public_projection_has_no_password_hash(self, mock_user):
        public = CredentialStore.to_public(mock_user)
        dumped = public.model_dump(by_alias=True)

        assert "hashedPassword" not in dumped
        assert "hashed_password" not in public.model_dump()
        assert dumped["email"] == "test@example.com"


class TestRegister:
    async def test_register_returns_public_user(self, auth_service):
        user = await auth_service.register(ALICE)

        assert user.email == "alice@example.com"
        assert user.username == "alice"
        assert user.id
        assert user.created_at is not None
        assert not hasattr(user, "hashed_password")

    async def test_password_is_hashed(self, auth_service, db_session):
        user = await auth_service.register(ALICE)

        stored = await db_session.get(User, user.id)
        assert stored.hashed_password != ALICE.password
        assert stored.hashed_password.startswith("$2b$")

    async def test_duplicate_email_case_insensitive(self, auth_service):
        await auth_service.register(ALICE)

        with pytest.raises(ConflictError) as exc_info:
            await auth_service.register(
                UserCreate(email="ALICE@Example.com", username="alice2", password="Str0ngP@ssw0rd!")
            )

        assert exc_info.value.status_code == 409
        assert exc_info.value.details == [{"field": "email"}]

    async def test_duplicate_username(self, auth_service):
        await auth_service.register(ALICE)

        with pytest.raises(ConflictError):
            await auth_service.register(
                UserCreate(email="other@example.com", username="alice", password="Str0ngP@ssw0rd!")
            )

    async def test_weak_password_rejected(self, auth_service):
        with pytest.raises(ValidationError):
            await auth_service.register(
                UserCreate(email="weak@example.com", username="weak", password="password")
            )

    async def test_unique_constraint_race_maps_to_conflict(self, test_settings, token_issuer, mock_db_session):
        """A concurrent insert that slips past the pre-check still yields 409."""
        service = AuthService(mock_db_session, test_settings, issuer=token_issuer)
        service.credentials.find_conflicts = AsyncMock(return_value=[])
        service.credentials.create = AsyncMock()
        mock_db_session.commit.side_effect = IntegrityError("INSERT", {}, Exception("duplicate"))

        with pytest.raises(ConflictError):
            await service.register(ALICE)

        mock_db_session.rollback.assert_awaited_once()

    async def test_username_case_race_maps_to_conflict(self, auth_service):
        """With the pre-check bypassed, the lower(username) index still rejects the second account."""
        await auth_service.register(ALICE)
        auth_service.credentials.find_conflicts = AsyncMock(return_value=[])

        with pytest.raises(ConflictError):
            await auth_service.register(
                UserCreate(email="other@example.com", username="ALICE", password="Str0ngP@ssw0rd!")
            )


class TestLogin:
    async def test_login_issues_token_pair(self, auth_service, token_issuer):
        registered = await auth_service.register(ALICE)

        result = await auth_service.login("alice@example.com", ALICE.password, ClientInfo("127.0.0.1", "pytest"))

        assert token_issuer.verify_access_token(result.access_token).user_id == registered.id
        assert token_issuer.decode_refresh_token(result.refresh_token).user_id == registered.id
        assert result.token_type == "bearer"
        assert result.user.last_login is not None

    async def test_login_email_case_insensitive(self, auth_service):
        await auth_service.register(ALICE)

        result = await auth_service.login("ALICE@EXAMPLE.COM", ALICE.password)

        assert result.user.username == "alice"

    async def test_wrong_password_and_unknown_email_look_the_same(self, auth_service):
        await auth_service.register(ALICE)

        with pytest.raises(UnauthorizedError) as wrong_password:
            await auth_service.login("alice@example.com", "WrongP@ss1")
        with pytest.raises(UnauthorizedError) as unknown_email:
            await auth_service.login("nobody@example.com", "WrongP@ss1")

        assert wrong_password.value.message == unknown_email.value.message == "Invalid email or password"

    async def test_inactive_user_cannot_login(self, auth_service, db_session):
        user = await auth_service.register(ALICE)
        await db_session.execute(update(User).where(User.id == user.id).values(is_active=False))
        await db_session.commit()
        db_session.expire_all()

        with pytest.raises(UnauthorizedError):
            await auth_service.login("alice@example.com", ALICE.password)


class TestRefresh:
    async def test_refresh_rotates(self, auth_service, token_issuer):
        await auth_service.register(ALICE)
        login = await auth_service.login("alice@example.com", ALICE.password)

        refreshed = await auth_service.refresh(login.refresh_token)

        assert refreshed.refresh_token != login.refresh_token
        assert token_issuer.verify_access_token(refreshed.access_token).username == "alice"

    async def test_replay_rejected(self, auth_service):
        await auth_service.register(ALICE)
        login = await auth_service.login("alice@example.com", ALICE.password)
        await auth_service.refresh(login.refresh_token)

        with pytest.raises(UnauthorizedError):
            await auth_service.refresh(login.refresh_token)

    async def test_successor_keeps_working(self, auth_service):
        await auth_service.register(ALICE)
        login = await auth_service.login("alice@example.com", ALICE.password)

        first = await auth_service.refresh(login.refresh_token)
        second = await auth_service.refresh(first.refresh_token)

        assert second.refresh_token not in (login.refresh_token, first.refresh_token)

    async def test_access_token_is_not_a_refresh_token(self, auth_service):
        await auth_service.register(ALICE)
        login = await auth_service.login("alice@example.com", ALICE.password)

        with pytest.raises(UnauthorizedError):
            await auth_service.refresh(login.access_token)

    async def test_inactive_user_cannot_refresh(self, auth_service, db_session):
        user = await auth_service.register(ALICE)
        login = await auth_service.login("alice@example.com", ALICE.password)
        await db_session.execute(update(User).where(User.id == user.id).values(is_active=False))
        await db_session.commit()
        db_session.expire_all()

        with pytest.raises(UnauthorizedError):
            await auth_service.refresh(login.refresh_token)


class TestLogoutAndVerify:
    async def test_logout_revokes_named_token_only(self, auth_service, token_issuer):
        await auth_service.register(ALICE)
        first = await auth_service.login("alice@example.com", ALICE.password)
        second = await auth_service.login("alice@example.com", ALICE.password)
        identity = token_issuer.verify_access_token(first.access_token)

        assert await auth_service.logout(identity, first.refresh_token) == 1

        with pytest.raises(UnauthorizedError):
            await auth_service.refresh(first.refresh_token)
        await auth_service.refresh(second.refresh_token)

    async def test_logout_without_token_revokes_all(self, auth_service, token_issuer):
        await auth_service.register(ALICE)
        first = await auth_service.login("alice@example.com", ALICE.password)
        second = await auth_service.login("alice@example.com", ALICE.password)
        identity = token_issuer.verify_access_token(first.access_token)

        assert await auth_service.logout(identity) == 2
        assert await auth_service.logout(identity) == 0

        for token in (first.refresh_token, second.refresh_token):
            with pytest.raises(UnauthorizedError):
                await auth_service.refresh(token)

    async def test_verify_valid_and_invalid(self, auth_service, token_issuer):
        await auth_service.register(ALICE)
        login = await auth_service.login("alice@example.com", ALICE.password)

        valid = await auth_service.verify(login.access_token)
        invalid = await auth_service.verify("garbage")

        assert valid.valid is True
        assert valid.user.email == "alice@example.com"
        assert invalid.valid is False
        assert invalid.user is None

    async def test_verify_expired_token(self, auth_service, token_issuer):
        await auth_service.register(ALICE)
        login = await auth_service.login("alice@example.com", ALICE.password)
        expired = token_issuer.create_access_token(login.user, expires_delta=timedelta(seconds=-10))

        assert (await auth_service.verify(expired)).valid is False

    async def test_sessions_listed(self, auth_service, token_issuer):
        await auth_service.register(ALICE)
        login = await auth_service.login("alice@example.com", ALICE.password, ClientInfo("10.1.1.1", "Firefox"))
        identity = token_issuer.verify_access_token(login.access_token)

        sessions = await auth_service.list_sessions(identity)

        assert len(sessions) == 1
        assert sessions[0].ip_address == "10.1.1.1"
        assert sessions[0].device_info == "Firefox"
