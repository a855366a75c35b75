# model/artists.py
"""
Artists and the referral counter.

Each confirmed order carrying an artist's referral code credits the artist
with the order's ticket quantity. The first credit that moves the count from
below the approval threshold to at/above it approves the artist; whether the
threshold was crossed is decided from the counts before and after the
increment, so batched or concurrent credits approve exactly once.
"""

from __future__ import annotations
import uuid
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .. import config
from ..errors import DuplicateRegistration
from ..helpers import new_id, now_ts, to_iso
from .db import ARTIST_APPROVED, ARTIST_PENDING, Artist


@dataclass(frozen=True)
class ReferralCredit:
    artist_id: str
    artist_name: str
    artist_email: str
    previous: int
    new: int
    approved_now: bool


def new_referral_code() -> str:
    return f"artist_{uuid.uuid4().hex[:8]}"


def referral_link(code: str) -> str:
    return f"{config.APP_BASE_URL.rstrip('/')}/t/{code}"


async def register_artist(
    db: AsyncSession,
    *,
    name: str,
    email: str,
    phone: str,
    act_type: str,
    social_link: Optional[str] = None,
) -> Artist:
    artist = Artist(
        id=new_id(),
        name=name,
        email=email.strip().lower(),
        phone=phone,
        act_type=act_type,
        social_link=social_link or None,
        referral_code=new_referral_code(),
        referred_sales=0,
        status=ARTIST_PENDING,
        created_at=now_ts(),
    )
    db.add(artist)
    try:
        await db.flush()
    except IntegrityError:
        # unique email (or, astronomically unlikely, referral code)
        raise DuplicateRegistration()
    return artist


async def get_by_referral_code(
    db: AsyncSession, code: str, *, for_update: bool = False
) -> Optional[Artist]:
    stmt = select(Artist).where(Artist.referral_code == code)
    if for_update:
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


async def credit_referral(
    db: AsyncSession,
    code: str,
    quantity: int,
    threshold: int = config.REFERRAL_APPROVAL_THRESHOLD,
) -> Optional[ReferralCredit]:
    """
    Add `quantity` referred sales to the artist owning `code`.
    Returns None when no artist has that code.
    Must run inside the confirming transaction.
    """
    if quantity <= 0:
        raise ValueError("quantity must be positive")

    artist = await get_by_referral_code(db, code, for_update=True)
    if artist is None:
        return None

    previous = int(artist.referred_sales)
    new = previous + quantity
    crossed = previous < threshold <= new

    values = {"referred_sales": Artist.referred_sales + quantity}
    approved_now = crossed and artist.status == ARTIST_PENDING
    if approved_now:
        values.update(status=ARTIST_APPROVED, approved_at=now_ts())

    await db.execute(
        update(Artist)
        .where(Artist.id == artist.id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await db.refresh(artist)
    return ReferralCredit(
        artist_id=artist.id,
        artist_name=artist.name,
        artist_email=artist.email,
        previous=previous,
        new=int(artist.referred_sales),
        approved_now=approved_now,
    )


async def approve_artist(db: AsyncSession, artist_id: str) -> Optional[Artist]:
    """
    Manual pending -> approved. Returns the artist if this call approved
    it, None if it was already approved or does not exist.
    """
    result = await db.execute(
        update(Artist)
        .where(Artist.id == artist_id, Artist.status == ARTIST_PENDING)
        .values(status=ARTIST_APPROVED, approved_at=now_ts())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return None
    return (await db.execute(
        select(Artist).where(Artist.id == artist_id)
    )).scalar_one()


async def get_artist(db: AsyncSession, artist_id: str) -> Optional[Artist]:
    return (await db.execute(
        select(Artist).where(Artist.id == artist_id)
    )).scalar_one_or_none()


async def list_artists(db: AsyncSession) -> List[Artist]:
    rows = await db.execute(select(Artist).order_by(Artist.created_at.desc()))
    return list(rows.scalars())


def artist_to_dict(a: Artist) -> dict:
    return {
        "id": a.id,
        "name": a.name,
        "email": a.email,
        "phone": a.phone,
        "act_type": a.act_type,
        "social_link": a.social_link or "",
        "referral_code": a.referral_code,
        "referral_link": referral_link(a.referral_code),
        "referred_sales": a.referred_sales,
        "status": a.status,
        "approved_at": to_iso(a.approved_at),
        "created_at": to_iso(a.created_at),
    }
