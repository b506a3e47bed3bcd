# backend/gardiens/db/seed_indexes.py
"""
Idempotent index seeding.

- Matching by KEYS: if an index with same keys exists, keep it when options match.
- If options differ (unique / partialFilterExpression), drop & recreate.
- The unique (user_id, key_type) and (user_id, mission_id) indexes back the
  idempotent key grant and progress upsert of the moderation service.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple, Union

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.operations import IndexModel

from gardiens.db.mongodb import db as default_db

Direction = Union[int, str]
KeySpec = List[Tuple[str, Direction]]


def _normalize_key_from_mongo(key_doc: Dict[str, Any]) -> KeySpec:
    norm: KeySpec = []
    for k, v in key_doc.items():
        if isinstance(v, (int, float)):
            norm.append((k, int(v)))
        else:
            norm.append((k, str(v)))
    return norm


async def _find_existing_by_keys(coll, keys: KeySpec) -> Optional[Dict[str, Any]]:
    async for ix in coll.list_indexes():
        if "key" in ix and _normalize_key_from_mongo(ix["key"]) == keys:
            return ix
    return None


def _same_options(existing: Dict[str, Any], *, unique: Optional[bool], partial: Optional[Dict[str, Any]]) -> bool:
    if bool(unique) != bool(existing.get("unique", False)):
        return False
    return (partial or None) == (existing.get("partialFilterExpression") or None)


async def ensure_index(
    db: AsyncIOMotorDatabase,
    coll_name: str,
    keys: KeySpec,
    *,
    name: Optional[str] = None,
    unique: Optional[bool] = None,
    partial: Optional[Dict[str, Any]] = None,
) -> None:
    coll = db[coll_name]
    existing = await _find_existing_by_keys(coll, keys)
    if existing and _same_options(existing, unique=unique, partial=partial):
        return
    if existing:
        await coll.drop_index(existing["name"])
    opts: Dict[str, Any] = {}
    if name:
        opts["name"] = name
    if unique is not None:
        opts["unique"] = unique
    if partial:
        opts["partialFilterExpression"] = partial
    await coll.create_indexes([IndexModel(keys, **opts)])


async def ensure_indexes(db: AsyncIOMotorDatabase | None = None) -> None:
    db = default_db if db is None else db

    # ---------- profiles / user_roles ----------
    await ensure_index(db, "profiles", [("email", ASCENDING)], name="uniq_profile_email", unique=True)
    await ensure_index(db, "profiles", [("team_name", ASCENDING)])
    await ensure_index(db, "user_roles", [("user_id", ASCENDING), ("role", ASCENDING)], name="uniq_user_role", unique=True)

    # ---------- missions ----------
    await ensure_index(db, "mission_configs", [("mission_id", ASCENDING)], name="uniq_mission_id", unique=True)
    await ensure_index(db, "mission_configs", [("day", ASCENDING), ("order_index", ASCENDING)])
    await ensure_index(db, "mission_reference_images", [("mission_id", ASCENDING), ("created_at", DESCENDING)])

    # ---------- submissions ----------
    await ensure_index(db, "submissions", [("status", ASCENDING), ("created_at", DESCENDING)], name="ix_submissions__status_created")
    await ensure_index(db, "submissions", [("user_id", ASCENDING), ("created_at", DESCENDING)])
    await ensure_index(db, "submissions", [("mission_id", ASCENDING)])

    # ---------- progression ----------
    await ensure_index(db, "missions_progress", [("user_id", ASCENDING), ("mission_id", ASCENDING)], name="uniq_progress_user_mission", unique=True)
    await ensure_index(db, "keys_collected", [("user_id", ASCENDING), ("key_type", ASCENDING)], name="uniq_key_user_type", unique=True)
    await ensure_index(db, "player_scores", [("user_id", ASCENDING)], name="uniq_score_user", unique=True)

    # ---------- chat / positions ----------
    await ensure_index(db, "chat_messages", [("user_id", ASCENDING), ("created_at", DESCENDING)])
    await ensure_index(db, "player_positions", [("user_id", ASCENDING), ("created_at", DESCENDING)])
