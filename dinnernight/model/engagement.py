# model/engagement.py
"""Award voting and the MR & MRS contest: plain inserts guarded by unique
constraints."""

from __future__ import annotations
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import AlreadyVoted, DuplicateRegistration, NotFound
from ..helpers import hash_email, new_id, now_ts, to_iso
from .db import Award, Awardee, ContestEntry, Vote


# ----------------------------
# Awards
# ----------------------------
async def create_award(
    db: AsyncSession, *, title: str, description: Optional[str] = None,
    show_public_counts: bool = False,
) -> Award:
    award = Award(
        id=new_id(),
        title=title,
        description=description,
        is_active=True,
        show_public_counts=show_public_counts,
        created_at=now_ts(),
    )
    db.add(award)
    await db.flush()
    return award


async def add_awardee(
    db: AsyncSession, award_id: str, *, name: str, slug: str,
    bio: Optional[str] = None, photo_url: Optional[str] = None,
) -> Awardee:
    award = await db.get(Award, award_id)
    if award is None:
        raise NotFound("Award")
    awardee = Awardee(
        id=new_id(),
        award_id=award_id,
        name=name,
        slug=slug,
        bio=bio,
        photo_url=photo_url,
        created_at=now_ts(),
    )
    db.add(awardee)
    try:
        await db.flush()
    except IntegrityError:
        raise DuplicateRegistration()
    return awardee


async def _vote_counts(db: AsyncSession, award_id: str) -> Dict[str, int]:
    rows = (await db.execute(
        select(Vote.awardee_id, func.count())
        .where(Vote.award_id == award_id)
        .group_by(Vote.awardee_id)
    )).all()
    return {awardee_id: int(n) for awardee_id, n in rows}


async def list_active_awards(db: AsyncSession) -> List[Dict[str, Any]]:
    awards = list((await db.execute(
        select(Award)
        .where(Award.is_active.is_(True))
        .order_by(Award.created_at)
    )).scalars())
    out = []
    for award in awards:
        awardees = list((await db.execute(
            select(Awardee)
            .where(Awardee.award_id == award.id)
            .order_by(Awardee.created_at)
        )).scalars())
        counts = (
            await _vote_counts(db, award.id)
            if award.show_public_counts else {}
        )
        out.append({
            "id": award.id,
            "title": award.title,
            "description": award.description or "",
            "show_public_counts": award.show_public_counts,
            "awardees": [
                awardee_to_dict(a, counts.get(a.id, 0)
                                if award.show_public_counts else None)
                for a in awardees
            ],
        })
    return out


async def get_awardee_by_slug(
    db: AsyncSession, slug: str
) -> Optional[Dict[str, Any]]:
    awardee = (await db.execute(
        select(Awardee).where(Awardee.slug == slug)
    )).scalar_one_or_none()
    if awardee is None:
        return None
    n = (await db.execute(
        select(func.count()).select_from(Vote)
        .where(Vote.awardee_id == awardee.id)
    )).scalar_one()
    return awardee_to_dict(awardee, int(n))


async def vote_tally(db: AsyncSession, award_id: str) -> List[Dict[str, Any]]:
    award = await db.get(Award, award_id)
    if award is None:
        raise NotFound("Award")
    counts = await _vote_counts(db, award_id)
    awardees = (await db.execute(
        select(Awardee).where(Awardee.award_id == award_id)
    )).scalars()
    tally = [awardee_to_dict(a, counts.get(a.id, 0)) for a in awardees]
    tally.sort(key=lambda a: (-a["vote_count"], a["name"]))
    return tally


async def cast_vote(
    db: AsyncSession,
    *,
    award_id: str,
    awardee_id: str,
    email: str,
    voter_ip: str,
    user_agent: Optional[str] = None,
) -> Vote:
    """One vote per award per voter; the unique index decides races."""
    award = await db.get(Award, award_id)
    if award is None or not award.is_active:
        raise NotFound("Award")
    awardee = await db.get(Awardee, awardee_id)
    if awardee is None or awardee.award_id != award_id:
        raise NotFound("Awardee")

    vote = Vote(
        id=new_id(),
        award_id=award_id,
        awardee_id=awardee_id,
        voter_email_hash=hash_email(email),
        voter_ip=voter_ip or "unknown",
        user_agent=user_agent,
        created_at=now_ts(),
    )
    db.add(vote)
    try:
        await db.flush()
    except IntegrityError:
        raise AlreadyVoted()
    return vote


def awardee_to_dict(a: Awardee, vote_count: Optional[int] = None) -> dict:
    d = {
        "id": a.id,
        "award_id": a.award_id,
        "name": a.name,
        "bio": a.bio or "",
        "photo_url": a.photo_url or "",
        "slug": a.slug,
    }
    if vote_count is not None:
        d["vote_count"] = vote_count
    return d


# ----------------------------
# Contest entries
# ----------------------------
async def register_contest_entry(
    db: AsyncSession,
    *,
    first_name: str,
    last_name: str,
    email: str,
    phone: str,
    department: str,
    level: str,
    bio: str,
    photo_url: Optional[str] = None,
) -> ContestEntry:
    entry = ContestEntry(
        id=new_id(),
        first_name=first_name,
        last_name=last_name,
        email=email.strip().lower(),
        phone=phone,
        department=department,
        level=level,
        bio=bio,
        photo_url=photo_url,
        is_shortlisted=False,
        created_at=now_ts(),
    )
    db.add(entry)
    try:
        await db.flush()
    except IntegrityError:
        raise DuplicateRegistration()
    return entry


async def list_contest_entries(db: AsyncSession) -> List[ContestEntry]:
    rows = await db.execute(
        select(ContestEntry).order_by(ContestEntry.created_at.desc())
    )
    return list(rows.scalars())


async def set_shortlisted(
    db: AsyncSession, entry_id: str, is_shortlisted: bool
) -> None:
    result = await db.execute(
        update(ContestEntry)
        .where(ContestEntry.id == entry_id)
        .values(is_shortlisted=is_shortlisted)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise NotFound("Contest entry")


def contest_entry_to_dict(e: ContestEntry) -> dict:
    return {
        "id": e.id,
        "first_name": e.first_name,
        "last_name": e.last_name,
        "email": e.email,
        "phone": e.phone,
        "department": e.department,
        "level": e.level,
        "bio": e.bio,
        "photo_url": e.photo_url or "",
        "is_shortlisted": e.is_shortlisted,
        "created_at": to_iso(e.created_at),
    }
