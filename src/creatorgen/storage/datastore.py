"""SQLite datastore for profiles, generation records, and runtime config.

A single SQLite file backs the three datastore interfaces the orchestrator
consumes (:class:`ProfileStore`, :class:`GenerationRecordStore`,
:class:`ConfigStore`).  Every public coroutine runs its query in a worker
thread via :func:`asyncio.to_thread` so the event loop is never blocked.

Schema
------
profiles
    One row per user.  ``credits`` is the only column this core mutates.
prompt_generations
    Append-only generation records.  ``settings`` is a JSON blob.
app_config
    Key/value runtime flags such as ``generations_paused``.
template_rules
    Per-template rule text and subject mode.

The atomic credit decrement is a single conditional ``UPDATE`` so two
concurrent settlements can never push a balance below zero.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import uuid
from pathlib import Path
from typing import Any

from creatorgen.core.models import GenerationRecord, Profile, TemplateRules
from creatorgen.storage.base import ConfigStore, GenerationRecordStore, ProfileStore

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


class SQLiteDatastore(ProfileStore, GenerationRecordStore, ConfigStore):
    """Datastore implementation on top of a local SQLite file."""

    def __init__(self, db_path: Path):
        """Initialize the datastore and create the schema if needed.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_db()
        logger.info("Initialized datastore at %s", self.db_path)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=10)
        conn.row_factory = sqlite3.Row
        return conn

    def _initialize_db(self) -> None:
        """Create database schema if it doesn't exist."""
        with self._connect() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS profiles (
                    user_id TEXT PRIMARY KEY,
                    credits INTEGER NOT NULL DEFAULT 0,
                    role TEXT NOT NULL DEFAULT 'user',
                    plan TEXT,
                    auto_recharge_enabled INTEGER NOT NULL DEFAULT 0,
                    auto_recharge_pack_id TEXT,
                    auto_recharge_threshold INTEGER
                )
                """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS prompt_generations (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    prompt_id TEXT,
                    prompt_slug TEXT,
                    template_reference_image TEXT,
                    image_url TEXT,
                    original_prompt_text TEXT,
                    remix_prompt_text TEXT,
                    combined_prompt_text TEXT NOT NULL,
                    settings TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_generations_user
                ON prompt_generations(user_id, created_at DESC)
                """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS app_config (
                    key TEXT PRIMARY KEY,
                    value TEXT,
                    description TEXT
                )
                """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS template_rules (
                    template_id TEXT PRIMARY KEY,
                    rules TEXT NOT NULL DEFAULT '',
                    subject_mode TEXT NOT NULL DEFAULT 'non_human'
                )
                """)

            conn.commit()

    # -- ProfileStore -------------------------------------------------------

    async def get_profile(self, user_id: str) -> Profile | None:
        return await asyncio.to_thread(self._get_profile, user_id)

    def _get_profile(self, user_id: str) -> Profile | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM profiles WHERE user_id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return Profile(
            user_id=row["user_id"],
            credits=row["credits"] or 0,
            role=row["role"] or "user",
            plan=row["plan"],
            auto_recharge_enabled=bool(row["auto_recharge_enabled"]),
            auto_recharge_pack_id=row["auto_recharge_pack_id"],
            auto_recharge_threshold=row["auto_recharge_threshold"],
        )

    async def decrement_credits(self, user_id: str, amount: int) -> int | None:
        return await asyncio.to_thread(self._decrement_credits, user_id, amount)

    def _decrement_credits(self, user_id: str, amount: int) -> int | None:
        with self._connect() as conn:
            # Single conditional UPDATE: the guard and the write are one
            # statement, so concurrent settlements cannot overdraw.
            cursor = conn.execute(
                """
                UPDATE profiles SET credits = credits - ?
                WHERE user_id = ? AND credits >= ?
                """,
                (amount, user_id, amount),
            )
            if cursor.rowcount == 0:
                conn.commit()
                return None
            row = conn.execute(
                "SELECT credits FROM profiles WHERE user_id = ?", (user_id,)
            ).fetchone()
            conn.commit()
        return row["credits"]

    async def update_credits(self, user_id: str, credits: int) -> None:
        await asyncio.to_thread(self._update_credits, user_id, credits)

    def _update_credits(self, user_id: str, credits: int) -> None:
        with self._connect() as conn:
            conn.execute("UPDATE profiles SET credits = ? WHERE user_id = ?", (credits, user_id))
            conn.commit()

    def upsert_profile(self, profile: Profile) -> None:
        """Insert or replace a profile row (seeding and administration)."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO profiles (
                    user_id, credits, role, plan, auto_recharge_enabled,
                    auto_recharge_pack_id, auto_recharge_threshold
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    profile.user_id,
                    profile.credits,
                    profile.role,
                    profile.plan,
                    int(profile.auto_recharge_enabled),
                    profile.auto_recharge_pack_id,
                    profile.auto_recharge_threshold,
                ),
            )
            conn.commit()

    # -- GenerationRecordStore ----------------------------------------------

    async def insert(self, record: GenerationRecord) -> str:
        return await asyncio.to_thread(self._insert, record)

    def _insert(self, record: GenerationRecord) -> str:
        record_id = str(uuid.uuid4())
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO prompt_generations (
                    id, user_id, prompt_id, prompt_slug, template_reference_image,
                    image_url, original_prompt_text, remix_prompt_text,
                    combined_prompt_text, settings, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record_id,
                    record.user_id,
                    record.prompt_id,
                    record.prompt_slug,
                    record.template_reference_image,
                    record.image_url,
                    record.original_prompt_text,
                    record.remix_prompt_text,
                    record.combined_prompt_text,
                    json.dumps(record.settings),
                    record.created_at.isoformat(),
                ),
            )
            conn.commit()
        return record_id

    def list_generations(self, user_id: str | None = None) -> list[dict[str, Any]]:
        """Return generation rows newest first, optionally for one user."""
        query = "SELECT * FROM prompt_generations"
        params: tuple = ()
        if user_id is not None:
            query += " WHERE user_id = ?"
            params = (user_id,)
        query += " ORDER BY created_at DESC"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()

        entries = []
        for row in rows:
            entry = dict(row)
            entry["settings"] = json.loads(entry["settings"])
            entries.append(entry)
        return entries

    # -- ConfigStore --------------------------------------------------------

    async def get_flag(self, key: str) -> bool:
        return await asyncio.to_thread(self._get_flag, key)

    def _get_flag(self, key: str) -> bool:
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM app_config WHERE key = ?", (key,)).fetchone()
        if row is None or row["value"] is None:
            return False
        return str(row["value"]).strip().lower() in _TRUTHY

    def set_flag(self, key: str, value: bool, description: str | None = None) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO app_config (key, value, description) VALUES (?, ?, ?)",
                (key, "true" if value else "false", description),
            )
            conn.commit()

    async def get_template_rules(self, template_id: str) -> TemplateRules | None:
        return await asyncio.to_thread(self._get_template_rules, template_id)

    def _get_template_rules(self, template_id: str) -> TemplateRules | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM template_rules WHERE template_id = ?", (template_id,)
            ).fetchone()
        if row is None:
            return None
        subject_mode = row["subject_mode"] if row["subject_mode"] in ("human", "non_human") else "non_human"
        return TemplateRules(template_id=row["template_id"], rules=row["rules"] or "", subject_mode=subject_mode)

    def upsert_template_rules(self, rules: TemplateRules) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO template_rules (template_id, rules, subject_mode) VALUES (?, ?, ?)",
                (rules.template_id, rules.rules, rules.subject_mode),
            )
            conn.commit()
