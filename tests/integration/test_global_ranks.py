"""Global rank recompute, bounded rank history and leaderboard reads."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError

from quizarena.db.models import UNRANKED, RankHistoryEntry, User
from quizarena.errors import UserNotFound
from quizarena.gamification.points_service import SOURCE_QUIZ, add_points
from quizarena.ranking import rank_service
from quizarena.ranking.rank_service import get_leaderboard, get_rank_history, recompute_global_ranks
from tests.factories import NOW, make_user


async def _seed(db, scores: list[tuple[int, float]]) -> list[User]:
    """One user per (points, accuracy) pair."""
    users = []
    for idx, (points, accuracy) in enumerate(scores):
        u = await make_user(db, str(5000 + idx), f"Player{idx}")
        await add_points(db, u.id, points, SOURCE_QUIZ, now=NOW)
        await db.execute(update(User).where(User.id == u.id).values(accuracy=accuracy))
        users.append(u)
    await db.commit()
    return users


async def _history_count(db, user_id: int) -> int:
    result = await db.execute(select(func.count(RankHistoryEntry.id)).where(RankHistoryEntry.user_id == user_id))
    return result.scalar_one()


class TestRecomputeGlobalRanks:
    @pytest.mark.asyncio
    async def test_points_tie_resolved_by_accuracy(self, db_session):
        a, b, c = await _seed(db_session, [(500, 60.0), (500, 90.0), (300, 100.0)])

        result = await recompute_global_ranks(db_session, NOW)
        await db_session.commit()
        for u in (a, b, c):
            await db_session.refresh(u)

        assert (b.rank, a.rank, c.rank) == (1, 2, 3)
        assert result.total == 3
        assert result.updated == 3
        assert result.skipped == 0

    @pytest.mark.asyncio
    async def test_unchanged_ranks_add_no_history(self, db_session):
        a, b = await _seed(db_session, [(200, 0.0), (100, 0.0)])

        await recompute_global_ranks(db_session, NOW)
        second = await recompute_global_ranks(db_session, NOW + timedelta(hours=1))
        await db_session.commit()

        assert second.updated == 0
        assert second.unchanged == 2
        assert await _history_count(db_session, a.id) == 1
        assert await _history_count(db_session, b.id) == 1

    @pytest.mark.asyncio
    async def test_history_entry_records_rank_and_points(self, db_session):
        (a,) = await _seed(db_session, [(750, 50.0)])
        await recompute_global_ranks(db_session, NOW)
        await db_session.commit()

        history = await get_rank_history(db_session, a.id)
        assert len(history) == 1
        assert history[0]["rank"] == 1
        assert history[0]["points"] == 750

    @pytest.mark.asyncio
    async def test_history_capped_at_thirty(self, db_session, settings):
        assert settings.rank_history_limit == 30
        a, b = await _seed(db_session, [(100, 0.0), (0, 0.0)])

        # Swap the two users' places on every run so both ranks change each time.
        for run in range(35):
            await recompute_global_ranks(db_session, NOW + timedelta(hours=run))
            await db_session.commit()
            await db_session.refresh(a)
            trailing = b if a.rank == 1 else a
            await add_points(db_session, trailing.id, 200, SOURCE_QUIZ, now=NOW)
            await db_session.commit()

        assert await _history_count(db_session, a.id) == 30
        oldest = await db_session.execute(
            select(func.min(RankHistoryEntry.recorded_at)).where(RankHistoryEntry.user_id == a.id)
        )
        # Runs 0-4 were evicted.
        assert oldest.scalar_one().replace(tzinfo=None) == (NOW + timedelta(hours=5)).replace(tzinfo=None)

    @pytest.mark.asyncio
    async def test_one_failing_user_does_not_abort_batch(self, db_session, monkeypatch):
        a, b, c = await _seed(db_session, [(300, 0.0), (200, 0.0), (100, 0.0)])
        original = rank_service._store_rank

        async def flaky_store_rank(db, user_id, *args, **kwargs):
            if user_id == b.id:
                raise SQLAlchemyError("simulated write failure")
            await original(db, user_id, *args, **kwargs)

        monkeypatch.setattr(rank_service, "_store_rank", flaky_store_rank)
        result = await recompute_global_ranks(db_session, NOW)
        await db_session.commit()
        for u in (a, b, c):
            await db_session.refresh(u)

        assert result.skipped == 1
        assert result.updated == 2
        assert a.rank == 1
        assert b.rank == UNRANKED
        assert c.rank == 3
        assert await _history_count(db_session, b.id) == 0

    @pytest.mark.asyncio
    async def test_inactive_users_unranked(self, db_session):
        a, b = await _seed(db_session, [(900, 0.0), (100, 0.0)])
        await recompute_global_ranks(db_session, NOW)
        await db_session.commit()

        a.is_active = False
        await db_session.commit()
        await recompute_global_ranks(db_session, NOW + timedelta(hours=1))
        await db_session.commit()
        await db_session.refresh(a)
        await db_session.refresh(b)

        assert a.rank == UNRANKED
        assert b.rank == 1

    @pytest.mark.asyncio
    async def test_empty_population(self, db_session):
        result = await recompute_global_ranks(db_session, NOW)
        assert result.total == 0


class TestRankHistory:
    @pytest.mark.asyncio
    async def test_oldest_first_and_limited(self, db_session):
        a, b = await _seed(db_session, [(100, 0.0), (0, 0.0)])
        for run in range(4):
            await recompute_global_ranks(db_session, NOW + timedelta(days=run))
            await db_session.commit()
            await db_session.refresh(a)
            trailing = b if a.rank == 1 else a
            await add_points(db_session, trailing.id, 200, SOURCE_QUIZ, now=NOW)
            await db_session.commit()

        history = await get_rank_history(db_session, a.id, limit=3)
        assert len(history) == 3
        dates = [h["date"] for h in history]
        assert dates == sorted(dates)

    @pytest.mark.asyncio
    async def test_unknown_user(self, db_session):
        with pytest.raises(UserNotFound):
            await get_rank_history(db_session, 999)


class TestLeaderboard:
    @pytest.mark.asyncio
    async def test_ordered_by_timeframe_bucket(self, db_session):
        a, b, c = await _seed(db_session, [(300, 0.0), (500, 0.0), (100, 0.0)])
        board = await get_leaderboard(db_session, "all-time", current_user_id=c.id)

        assert [e["user_id"] for e in board["entries"]] == [b.id, a.id, c.id]
        assert [e["rank"] for e in board["entries"]] == [1, 2, 3]
        assert board["total"] == 3
        assert board["current_user_rank"] == 3

    @pytest.mark.asyncio
    async def test_daily_board_follows_daily_bucket(self, db_session):
        a, b = await _seed(db_session, [(300, 0.0), (100, 0.0)])
        await db_session.execute(update(User).where(User.id == a.id).values(daily_points=0))
        await db_session.commit()

        board = await get_leaderboard(db_session, "daily")
        assert board["entries"][0]["user_id"] == b.id
        assert board["entries"][0]["score"] == 100

    @pytest.mark.asyncio
    async def test_pagination(self, db_session):
        await _seed(db_session, [(n * 10, 0.0) for n in range(5)])
        board = await get_leaderboard(db_session, "all-time", page=2, per_page=2)
        assert [e["rank"] for e in board["entries"]] == [3, 4]

    @pytest.mark.asyncio
    async def test_trend_from_history(self, db_session):
        a, b = await _seed(db_session, [(100, 0.0), (50, 0.0)])
        await recompute_global_ranks(db_session, NOW)
        await db_session.commit()
        await add_points(db_session, b.id, 200, SOURCE_QUIZ, now=NOW)
        await recompute_global_ranks(db_session, NOW + timedelta(hours=1))
        await db_session.commit()

        board = await get_leaderboard(db_session, "all-time")
        by_user = {e["user_id"]: e for e in board["entries"]}
        assert by_user[b.id]["trend"] == "up"
        assert by_user[b.id]["rank_change"] == 1
        assert by_user[a.id]["trend"] == "down"

    @pytest.mark.asyncio
    async def test_unknown_timeframe(self, db_session):
        with pytest.raises(ValueError, match="timeframe"):
            await get_leaderboard(db_session, "yearly")
