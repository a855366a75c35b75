"""Tests for the artist referral counter and its approval threshold."""

import asyncio

import pytest
from sqlalchemy import update

from dinnernight.confirmation import ConfirmStatus
from dinnernight.errors import DuplicateRegistration
from dinnernight.model import artists
from dinnernight.model.db import ARTIST_APPROVED, ARTIST_PENDING, Artist


async def _artist(SessionAsync, referred_sales=0, email="kemi@example.com"):
    async with SessionAsync() as s:
        async with s.begin():
            artist = await artists.register_artist(
                s, name="Kemi", email=email, phone="0803",
                act_type="singer",
            )
            if referred_sales:
                await s.execute(
                    update(Artist).where(Artist.id == artist.id)
                    .values(referred_sales=referred_sales)
                )
    return artist


async def _reload(SessionAsync, artist_id):
    async with SessionAsync() as s:
        async with s.begin():
            return await artists.get_artist(s, artist_id)


# ------------------------------------------------------------------ #
#  credit_referral                                                     #
# ------------------------------------------------------------------ #


class TestCreditReferral:
    async def test_unknown_code(self, db):
        async with db.begin():
            assert await artists.credit_referral(db, "artist_none", 1) is None

    async def test_below_threshold(self, SessionAsync, db):
        artist = await _artist(SessionAsync)
        async with db.begin():
            credit = await artists.credit_referral(
                db, artist.referral_code, 2, threshold=5
            )
        assert (credit.previous, credit.new) == (0, 2)
        assert credit.approved_now is False

    async def test_crossing_in_one_batch(self, SessionAsync, db):
        artist = await _artist(SessionAsync, referred_sales=3)
        async with db.begin():
            credit = await artists.credit_referral(
                db, artist.referral_code, 4, threshold=5
            )
        assert (credit.previous, credit.new) == (3, 7)
        assert credit.approved_now is True
        reloaded = await _reload(SessionAsync, artist.id)
        assert reloaded.status == ARTIST_APPROVED
        assert reloaded.approved_at is not None

    async def test_manually_approved_artist_not_reapproved(self,
                                                           SessionAsync,
                                                           db):
        artist = await _artist(SessionAsync, referred_sales=4)
        async with db.begin():
            assert await artists.approve_artist(db, artist.id) is not None
        async with db.begin():
            credit = await artists.credit_referral(
                db, artist.referral_code, 1, threshold=5
            )
        assert credit.new == 5
        assert credit.approved_now is False

    async def test_non_positive_quantity(self, db):
        with pytest.raises(ValueError):
            await artists.credit_referral(db, "artist_x", 0)


# ------------------------------------------------------------------ #
#  through the confirmation engine                                     #
# ------------------------------------------------------------------ #


class TestThroughConfirmation:
    async def test_threshold_crossed_exactly_once(self, SessionAsync, seeded,
                                                  engine, place_order,
                                                  notifier):
        artist = await _artist(SessionAsync, referred_sales=3)
        seen = []
        for n in range(3):
            _, ref = await place_order(
                [{"category": "regular", "quantity": 1}],
                referral_tag=artist.referral_code,
                email=f"fan{n}@example.com",
            )
            result = await engine.confirm_payment(ref)
            assert result.status == ConfirmStatus.CONFIRMED
            reloaded = await _reload(SessionAsync, artist.id)
            seen.append((reloaded.referred_sales, reloaded.status,
                         len(notifier.approvals)))

        assert seen == [
            (4, ARTIST_PENDING, 0),
            (5, ARTIST_APPROVED, 1),
            (6, ARTIST_APPROVED, 1),
        ]
        assert notifier.approvals == [("kemi@example.com", "Kemi")]

    async def test_repeated_confirmation_credits_once(self, SessionAsync,
                                                      seeded, engine,
                                                      place_order):
        artist = await _artist(SessionAsync)
        _, ref = await place_order([{"category": "regular", "quantity": 2}],
                                   referral_tag=artist.referral_code)
        await asyncio.gather(engine.confirm_payment(ref),
                             engine.confirm_payment(ref, source="webhook"))
        await engine.confirm_payment(ref)
        reloaded = await _reload(SessionAsync, artist.id)
        assert reloaded.referred_sales == 2

    async def test_concurrent_orders_approve_once(self, SessionAsync, seeded,
                                                  engine, place_order,
                                                  notifier):
        artist = await _artist(SessionAsync, referred_sales=3)
        placed = [
            await place_order([{"category": "regular", "quantity": 1}],
                              referral_tag=artist.referral_code,
                              email=f"fan{n}@example.com")
            for n in range(4)
        ]
        await asyncio.gather(
            *(engine.confirm_payment(ref) for _, ref in placed)
        )
        reloaded = await _reload(SessionAsync, artist.id)
        assert reloaded.referred_sales == 7
        assert reloaded.status == ARTIST_APPROVED
        assert len(notifier.approvals) == 1

    async def test_unknown_referral_tag_is_ignored(self, seeded, engine,
                                                   place_order):
        _, ref = await place_order([{"category": "regular", "quantity": 1}],
                                   referral_tag="artist_deadbeef")
        result = await engine.confirm_payment(ref)
        assert result.status == ConfirmStatus.CONFIRMED


# ------------------------------------------------------------------ #
#  registration and manual approval                                    #
# ------------------------------------------------------------------ #


class TestRegistration:
    async def test_referral_code_format(self, SessionAsync):
        artist = await _artist(SessionAsync)
        assert artist.referral_code.startswith("artist_")
        assert len(artist.referral_code) == len("artist_") + 8
        assert artists.referral_link(artist.referral_code).endswith(
            f"/t/{artist.referral_code}"
        )

    async def test_duplicate_email(self, SessionAsync):
        await _artist(SessionAsync)
        with pytest.raises(DuplicateRegistration):
            await _artist(SessionAsync, email="KEMI@example.com")

    async def test_manual_approval_only_from_pending(self, SessionAsync, db):
        artist = await _artist(SessionAsync)
        async with db.begin():
            first = await artists.approve_artist(db, artist.id)
        async with db.begin():
            second = await artists.approve_artist(db, artist.id)
        assert first is not None and first.status == ARTIST_APPROVED
        assert second is None
