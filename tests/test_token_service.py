"""Tests for token issuance, rotation and refresh-token reuse detection."""

import logging
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from tokengate.models.token import Token, TokenType
from tokengate.services.errors import (
    InvalidSignatureError,
    PrincipalNotFoundError,
    ReusedRefreshTokenError,
    TokenBlacklistedError,
    TokenExpiredError,
    TokenNotFoundError,
)
from tokengate.services.token import TokenService

pytestmark = pytest.mark.asyncio


async def _refresh_rows(session, subject_id):
    result = await session.execute(
        select(Token).where(Token.subject_id == subject_id, Token.type == TokenType.REFRESH)
    )
    return result.scalars().all()


class TestGenerateAuthTokens:
    async def test_access_token_resolves_principal(self, db_session, user):
        service = TokenService(db_session)

        pair = await service.generate_auth_tokens(user.id)

        payload = service.verify_access_token(pair.access.token)
        assert payload.subject == user.id
        assert payload.type == TokenType.ACCESS

    async def test_only_refresh_token_is_persisted(self, db_session, user):
        service = TokenService(db_session)

        pair = await service.generate_auth_tokens(user.id)

        rows = await _refresh_rows(db_session, user.id)
        assert [r.value for r in rows] == [pair.refresh.token]
        count = await db_session.execute(
            select(func.count()).select_from(Token).where(Token.value == pair.access.token)
        )
        assert count.scalar() == 0

    async def test_refresh_outlives_access(self, db_session, user):
        pair = await TokenService(db_session).generate_auth_tokens(user.id)

        assert pair.refresh.expires_at > pair.access.expires_at

    async def test_each_login_gets_its_own_refresh_row(self, db_session, user):
        service = TokenService(db_session)

        await service.generate_auth_tokens(user.id)
        await service.generate_auth_tokens(user.id)

        assert len(await _refresh_rows(db_session, user.id)) == 2


class TestVerifyToken:
    async def test_returns_matching_row(self, db_session, user):
        service = TokenService(db_session)
        pair = await service.generate_auth_tokens(user.id)

        row = await service.verify_token(pair.refresh.token, TokenType.REFRESH)

        assert row.subject_id == user.id
        assert row.value == pair.refresh.token

    async def test_access_token_is_not_a_refresh_token(self, db_session, user):
        service = TokenService(db_session)
        pair = await service.generate_auth_tokens(user.id)

        with pytest.raises(InvalidSignatureError):
            await service.verify_token(pair.access.token, TokenType.REFRESH)

    async def test_blacklisted_row_fails(self, db_session, user):
        service = TokenService(db_session)
        pair = await service.generate_auth_tokens(user.id)
        await service.store.mark_blacklisted(pair.refresh.token)
        db_session.expire_all()

        with pytest.raises(TokenBlacklistedError):
            await service.verify_token(pair.refresh.token, TokenType.REFRESH)

    async def test_expired_refresh_token_fails_expired(self, db_session, user, monkeypatch):
        from tokengate.core import settings

        service = TokenService(db_session)
        monkeypatch.setattr(settings, "jwt_refresh_token_expire_days", -1)
        pair = await service.generate_auth_tokens(user.id)

        with pytest.raises(TokenExpiredError):
            await service.verify_token(pair.refresh.token, TokenType.REFRESH)

    async def test_missing_reset_token_row_fails_not_found(self, db_session, user):
        service = TokenService(db_session)
        token = await service.generate_reset_password_token(user.email)
        await service.store.delete_by_value(token)

        with pytest.raises(TokenNotFoundError):
            await service.verify_token(token, TokenType.RESET_PASSWORD)


class TestRefreshAuth:
    async def test_rotation_issues_new_pair_for_same_subject(self, db_session, user):
        service = TokenService(db_session)
        first = await service.generate_auth_tokens(user.id)

        second = await service.refresh_auth(first.refresh.token)

        assert second.refresh.token != first.refresh.token
        assert service.verify_access_token(second.access.token).subject == user.id
        rows = await _refresh_rows(db_session, user.id)
        assert [r.value for r in rows] == [second.refresh.token]

    async def test_replayed_token_revokes_family(self, db_session, user):
        """Issue, rotate once, replay the first token: the rotated token dies too."""
        service = TokenService(db_session)
        r1 = (await service.generate_auth_tokens(user.id)).refresh.token
        r2 = (await service.refresh_auth(r1)).refresh.token

        with pytest.raises(ReusedRefreshTokenError):
            await service.refresh_auth(r1)

        with pytest.raises((ReusedRefreshTokenError, TokenBlacklistedError)):
            await service.refresh_auth(r2)

    async def test_replay_leaves_only_blacklisted_placeholder(self, db_session, user):
        service = TokenService(db_session)
        r1 = (await service.generate_auth_tokens(user.id)).refresh.token
        await service.refresh_auth(r1)
        other_device = (await service.generate_auth_tokens(user.id)).refresh.token

        with pytest.raises(ReusedRefreshTokenError):
            await service.verify_token(r1, TokenType.REFRESH)

        rows = await _refresh_rows(db_session, user.id)
        assert len(rows) == 1
        assert rows[0].value == r1
        assert rows[0].blacklisted is True
        assert other_device not in [r.value for r in rows]

    async def test_second_replay_fails_blacklisted(self, db_session, user):
        service = TokenService(db_session)
        r1 = (await service.generate_auth_tokens(user.id)).refresh.token
        await service.refresh_auth(r1)

        with pytest.raises(ReusedRefreshTokenError):
            await service.refresh_auth(r1)
        db_session.expire_all()
        with pytest.raises(TokenBlacklistedError):
            await service.refresh_auth(r1)

    async def test_reuse_does_not_touch_other_subjects(self, db_session, user_factory):
        victim = await user_factory()
        bystander = await user_factory()
        service = TokenService(db_session)
        r1 = (await service.generate_auth_tokens(victim.id)).refresh.token
        await service.refresh_auth(r1)
        keep = (await service.generate_auth_tokens(bystander.id)).refresh.token

        with pytest.raises(ReusedRefreshTokenError):
            await service.refresh_auth(r1)

        row = await service.verify_token(keep, TokenType.REFRESH)
        assert row.subject_id == bystander.id

    async def test_reuse_is_logged(self, db_session, user, caplog):
        service = TokenService(db_session)
        r1 = (await service.generate_auth_tokens(user.id)).refresh.token
        await service.refresh_auth(r1)

        with caplog.at_level(logging.WARNING, logger="tokengate.services.token"):
            with pytest.raises(ReusedRefreshTokenError):
                await service.refresh_auth(r1)

        assert "reuse detected" in caplog.text
        assert r1 not in caplog.text

    async def test_lost_consume_race_counts_as_reuse(self, db_session, user):
        """A concurrent request that consumes the row first wins; this one revokes."""
        service = TokenService(db_session)
        r1 = (await service.generate_auth_tokens(user.id)).refresh.token
        service.store.consume = AsyncMock(return_value=False)

        with pytest.raises(ReusedRefreshTokenError):
            await service.refresh_auth(r1)

        rows = await _refresh_rows(db_session, user.id)
        assert [(r.value, r.blacklisted) for r in rows] == [(r1, True)]

    async def test_concurrent_rotation_has_one_winner(self, file_session_maker):
        """Two requests race on the same refresh token over separate connections."""
        from tokengate.services.user import UserService

        async with file_session_maker() as setup:
            owner = await UserService(setup).create(
                email="race@example.com", password="password123"
            )
            r1 = (await TokenService(setup).generate_auth_tokens(owner.id)).refresh.token

        async with file_session_maker() as session_a, file_session_maker() as session_b:
            loser = TokenService(session_a)
            winner = TokenService(session_b)
            winning_pairs = []
            verify_token = loser.verify_token

            async def verify_then_lose_race(value, token_type):
                row = await verify_token(value, token_type)
                # The other request rotates between our lookup and our delete
                winning_pairs.append(await winner.refresh_auth(value))
                return row

            loser.verify_token = verify_then_lose_race

            with pytest.raises(ReusedRefreshTokenError):
                await loser.refresh_auth(r1)

        assert len(winning_pairs) == 1
        r2 = winning_pairs[0].refresh.token
        async with file_session_maker() as check:
            rows = await _refresh_rows(check, owner.id)
            # The loser revoked the family, the winner's new token included
            assert r2 not in {r.value for r in rows}
            assert [(r.value, r.blacklisted) for r in rows] == [(r1, True)]

    async def test_forged_token_fails_without_revoking(self, db_session, user):
        service = TokenService(db_session)
        pair = await service.generate_auth_tokens(user.id)
        header, payload, signature = pair.refresh.token.split(".")
        forged = ".".join([header, payload, signature[::-1]])

        with pytest.raises(InvalidSignatureError):
            await service.refresh_auth(forged)

        assert len(await _refresh_rows(db_session, user.id)) == 1


class TestSingleUseTokens:
    async def test_reset_password_token_persisted(self, db_session, user):
        service = TokenService(db_session)

        token = await service.generate_reset_password_token(user.email)

        row = await service.verify_token(token, TokenType.RESET_PASSWORD)
        assert row.subject_id == user.id

    async def test_reset_password_unknown_email(self, db_session):
        with pytest.raises(PrincipalNotFoundError):
            await TokenService(db_session).generate_reset_password_token("nobody@example.com")

    async def test_verify_email_token_persisted(self, db_session, user):
        service = TokenService(db_session)

        token = await service.generate_verify_email_token(user.to_principal())

        row = await service.verify_token(token, TokenType.VERIFY_EMAIL)
        assert row.type == TokenType.VERIFY_EMAIL


class TestLogout:
    async def test_logout_deletes_refresh_row(self, db_session, user):
        service = TokenService(db_session)
        pair = await service.generate_auth_tokens(user.id)

        await service.logout(pair.refresh.token)

        assert await _refresh_rows(db_session, user.id) == []

    async def test_logout_after_rotation_is_a_noop(self, db_session, user):
        service = TokenService(db_session)
        r1 = (await service.generate_auth_tokens(user.id)).refresh.token
        r2 = (await service.refresh_auth(r1)).refresh.token

        await service.logout(r1)

        row = await service.verify_token(r2, TokenType.REFRESH)
        assert row.value == r2

    async def test_logout_with_garbage_is_a_noop(self, db_session):
        await TokenService(db_session).logout("not-a-token")

    async def test_invalidate_family_counts_rows(self, db_session, user):
        service = TokenService(db_session)
        await service.generate_auth_tokens(user.id)
        await service.generate_auth_tokens(user.id)

        assert await service.invalidate_family(user.id) == 2
        assert await service.invalidate_family(uuid4()) == 0
