"""Registration with referral codes, and rewarded channel subscriptions."""

from __future__ import annotations

import pytest

from quizarena.db.models import UNRANKED
from quizarena.errors import ChannelNotFound, InvalidReferralCode, UserAlreadyExists
from quizarena.social.referral_service import generate_referral_code, get_referral_summary
from quizarena.social.subscription_service import create_channel, record_channel_subscription
from quizarena.users.service import get_user_by_external_id, get_user_stats
from tests.factories import NOW, make_user


class TestRegistration:
    @pytest.mark.asyncio
    async def test_new_user_starts_at_zero(self, db_session, user):
        assert user.total_points == 0
        assert user.level == 1
        assert user.accuracy == 0.0
        assert user.rank == UNRANKED
        assert user.last_active is None
        assert user.referral_code.startswith("REF")

    @pytest.mark.asyncio
    async def test_duplicate_external_id(self, db_session, user):
        with pytest.raises(UserAlreadyExists):
            await make_user(db_session, user.external_id)

    @pytest.mark.asyncio
    async def test_stats_for_new_user(self, db_session, user):
        stats = await get_user_stats(db_session, user.id)
        assert stats["rank"] is None
        assert stats["next_level_threshold"] == 1000
        assert stats["completed_attempts"] == 0


class TestReferrals:
    def test_code_format(self):
        code = generate_referral_code()
        assert code.startswith("REF")
        assert len(code) == 11
        assert code == code.upper()

    @pytest.mark.asyncio
    async def test_referrer_rewarded(self, db_session, user, settings):
        referred = await make_user(db_session, "2002", "Friend", referral_code=user.referral_code, now=NOW)
        await db_session.refresh(user)

        assert referred.referred_by_id == user.id
        assert user.total_referrals == 1
        assert user.referral_points == settings.referral_reward_points
        assert user.total_points == settings.referral_reward_points
        assert user.daily_points == settings.referral_reward_points

    @pytest.mark.asyncio
    async def test_code_is_case_insensitive(self, db_session, user):
        referred = await make_user(db_session, "2002", "Friend", referral_code=f" {user.referral_code.lower()} ")
        assert referred.referred_by_id == user.id

    @pytest.mark.asyncio
    async def test_invalid_code_creates_nothing(self, db_session, user):
        with pytest.raises(InvalidReferralCode):
            await make_user(db_session, "2002", "Friend", referral_code="REFNOPE0000")
        assert await get_user_by_external_id(db_session, "2002") is None

    @pytest.mark.asyncio
    async def test_summary(self, db_session, user, settings):
        await make_user(db_session, "2002", "Friend", referral_code=user.referral_code)
        await make_user(db_session, "2003", "Another", referral_code=user.referral_code)

        summary = await get_referral_summary(db_session, user.id)
        assert summary["referral_code"] == user.referral_code
        assert summary["total_referrals"] == 2
        assert summary["total_points"] == 2 * settings.referral_reward_points


class TestChannelSubscriptions:
    @pytest.mark.asyncio
    async def test_first_subscription_rewarded(self, db_session, user):
        await create_channel(
            db_session, channel_id="-100123", channel_username="quiznews", channel_title="Quiz News", points_reward=150
        )

        awarded = await record_channel_subscription(db_session, user.id, "-100123", now=NOW)
        await db_session.refresh(user)

        assert awarded == 150
        assert user.subscription_points == 150
        assert user.total_points == 150
        assert user.referral_points == 0

    @pytest.mark.asyncio
    async def test_repeat_subscription_not_rewarded(self, db_session, user):
        await create_channel(db_session, channel_id="-100123", channel_username="quiznews", channel_title="Quiz News")

        first = await record_channel_subscription(db_session, user.id, "-100123", now=NOW)
        second = await record_channel_subscription(db_session, user.id, "-100123", now=NOW)
        await db_session.refresh(user)

        assert first == 100
        assert second == 0
        assert user.subscription_points == 100

    @pytest.mark.asyncio
    async def test_unknown_channel(self, db_session, user):
        with pytest.raises(ChannelNotFound):
            await record_channel_subscription(db_session, user.id, "-100999", now=NOW)

    @pytest.mark.asyncio
    async def test_inactive_channel(self, db_session, user):
        channel = await create_channel(
            db_session, channel_id="-100123", channel_username="quiznews", channel_title="Quiz News"
        )
        channel.is_active = False
        await db_session.commit()

        with pytest.raises(ChannelNotFound):
            await record_channel_subscription(db_session, user.id, "-100123", now=NOW)
