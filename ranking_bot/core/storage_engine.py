"""
Async SQLite storage for guilds, cached members, events, participants and the
score ledger.

Key points:
 - Async API using `aiosqlite`, one shared connection per engine
 - Scores are stored as integer hundredths so aggregate round trips are exact
 - Every ledger mutation updates the participant aggregate in the same
   transaction (``BEGIN IMMEDIATE`` under an ``asyncio.Lock``)
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Iterable, List, Mapping, Optional, Sequence

import aiosqlite

from .errors import NotFoundError, RankingError, StorageError, ValidationError
from .logging_utils import get_logger
from .models import (
    Event,
    Guild,
    GuildMember,
    Participant,
    ScoreAggregation,
    ScoreEntry,
    ScoreType,
    SortDirection,
)
from .ranking_engine import apply_entry_change

logger = get_logger("storage")

HUNDREDTH = Decimal("0.01")

SCHEMA = """
CREATE TABLE IF NOT EXISTS guilds (
    guild_id      TEXT PRIMARY KEY,
    guild_name    TEXT NOT NULL,
    owner_id      TEXT NOT NULL,
    settings_json TEXT NOT NULL DEFAULT '{}',
    created_at    TEXT NOT NULL,
    updated_at    TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS guild_members (
    guild_id     TEXT    NOT NULL,
    user_id      TEXT    NOT NULL,
    username     TEXT    NOT NULL,
    display_name TEXT    NOT NULL,
    avatar_url   TEXT,
    is_bot       INTEGER NOT NULL DEFAULT 0,
    joined_at    TEXT,
    last_seen    TEXT    NOT NULL,
    updated_at   TEXT    NOT NULL,
    PRIMARY KEY (guild_id, user_id),
    FOREIGN KEY (guild_id) REFERENCES guilds(guild_id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS events (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    guild_id          TEXT    NOT NULL,
    event_name        TEXT    NOT NULL,
    description       TEXT    NOT NULL DEFAULT '',
    score_type        TEXT    NOT NULL DEFAULT 'points',
    sort_direction    TEXT    NOT NULL DEFAULT 'desc',
    score_aggregation TEXT    NOT NULL DEFAULT 'sum',
    is_active         INTEGER NOT NULL DEFAULT 1,
    created_by        TEXT    NOT NULL,
    created_at        TEXT    NOT NULL,
    updated_at        TEXT    NOT NULL,
    FOREIGN KEY (guild_id) REFERENCES guilds(guild_id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS participants (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id          INTEGER NOT NULL,
    user_id           TEXT    NOT NULL,
    username          TEXT    NOT NULL,
    avatar_url        TEXT,
    total_score_cents INTEGER NOT NULL DEFAULT 0,
    entries_count     INTEGER NOT NULL DEFAULT 0,
    created_at        TEXT    NOT NULL,
    updated_at        TEXT    NOT NULL,
    UNIQUE (event_id, user_id),
    FOREIGN KEY (event_id) REFERENCES events(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS score_entries (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    participant_id INTEGER NOT NULL,
    score_cents    INTEGER NOT NULL,
    note           TEXT,
    added_by       TEXT    NOT NULL,
    created_at     TEXT    NOT NULL,
    FOREIGN KEY (participant_id) REFERENCES participants(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_events_guild_id ON events(guild_id);
CREATE INDEX IF NOT EXISTS idx_participants_event_id ON participants(event_id);
CREATE INDEX IF NOT EXISTS idx_score_entries_participant_id ON score_entries(participant_id);
CREATE INDEX IF NOT EXISTS idx_guild_members_search ON guild_members(guild_id, display_name, username);
"""

PARTICIPANT_SELECT = """
    SELECT
        p.*,
        COALESCE(gm.display_name, p.username) AS display_name
    FROM participants p
    JOIN events e ON e.id = p.event_id
    LEFT JOIN guild_members gm ON gm.guild_id = e.guild_id AND gm.user_id = p.user_id
"""

EVENT_COLUMNS = {
    "name": "event_name",
    "description": "description",
    "score_type": "score_type",
    "sort_direction": "sort_direction",
    "score_aggregation": "score_aggregation",
    "is_active": "is_active",
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def to_cents(score: Decimal) -> int:
    return int(score.quantize(HUNDREDTH, rounding=ROUND_HALF_UP) * 100)


def from_cents(cents: int) -> Decimal:
    return Decimal(int(cents)) / 100


def _event_from_row(row: Mapping[str, Any]) -> Event:
    return Event(
        id=row["id"],
        guild_id=row["guild_id"],
        name=row["event_name"],
        description=row["description"] or "",
        score_type=ScoreType(row["score_type"]),
        sort_direction=SortDirection(row["sort_direction"]),
        score_aggregation=ScoreAggregation(row["score_aggregation"]),
        is_active=bool(row["is_active"]),
        created_by=row["created_by"],
        created_at=_parse_ts(row["created_at"]),
        updated_at=_parse_ts(row["updated_at"]),
    )


def _entry_from_row(row: Mapping[str, Any]) -> ScoreEntry:
    return ScoreEntry(
        id=row["id"],
        participant_id=row["participant_id"],
        score=from_cents(row["score_cents"]),
        added_by=row["added_by"],
        note=row["note"],
        created_at=_parse_ts(row["created_at"]),
    )


def _participant_from_row(row: Mapping[str, Any]) -> Participant:
    return Participant(
        id=row["id"],
        event_id=row["event_id"],
        user_id=row["user_id"],
        username=row["username"],
        display_name=row["display_name"],
        total_score=from_cents(row["total_score_cents"]),
        entries_count=row["entries_count"],
        avatar_url=row["avatar_url"],
        created_at=_parse_ts(row["created_at"]),
        updated_at=_parse_ts(row["updated_at"]),
    )


def _guild_from_row(row: Mapping[str, Any]) -> Guild:
    try:
        settings = json.loads(row["settings_json"] or "{}")
    except json.JSONDecodeError:
        settings = {}
    return Guild(
        guild_id=row["guild_id"],
        guild_name=row["guild_name"],
        owner_id=row["owner_id"],
        settings=settings,
        created_at=_parse_ts(row["created_at"]),
        updated_at=_parse_ts(row["updated_at"]),
    )


def _member_from_row(row: Mapping[str, Any]) -> GuildMember:
    return GuildMember(
        guild_id=row["guild_id"],
        user_id=row["user_id"],
        username=row["username"],
        display_name=row["display_name"],
        avatar_url=row["avatar_url"],
        is_bot=bool(row["is_bot"]),
        joined_at=_parse_ts(row["joined_at"]),
        last_seen=_parse_ts(row["last_seen"]),
    )


class RankingStorageEngine:
    """Persistence adapter for the ranking system.

    Reads and writes share one connection guarded by an ``asyncio.Lock``, so a
    read never observes another coroutine's half-finished transaction.
    ``BEGIN IMMEDIATE`` additionally serializes writers across processes when
    the bot and the API share the same database file.
    """

    def __init__(self, db_path: str, *, busy_timeout: float = 5.0) -> None:
        self._project_root = Path(__file__).resolve().parents[2]
        if db_path == ":memory:":
            self._db_path: str = db_path
        else:
            raw_path = Path(db_path)
            resolved = raw_path if raw_path.is_absolute() else (self._project_root / raw_path).resolve()
            self._db_path = str(resolved)
        self._busy_timeout = busy_timeout
        self._conn: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def initialize(self) -> None:
        """Open the database and ensure the schema exists.

        Safe to call multiple times; subsequent calls are no-ops.
        """
        if self._conn is not None:
            return

        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            conn = await aiosqlite.connect(
                self._db_path,
                isolation_level=None,
                timeout=self._busy_timeout,
            )
            conn.row_factory = aiosqlite.Row
            await conn.execute("PRAGMA journal_mode=WAL;")
            await conn.execute("PRAGMA foreign_keys=ON;")
            await conn.executescript(SCHEMA)
        except sqlite3.Error as exc:
            raise StorageError(f"could not open ranking database at {self._db_path}: {exc}") from exc

        self._conn = conn
        logger.info("RankingStorageEngine initialised at %s", self._db_path)

    async def close(self) -> None:
        conn = self._conn
        if conn is None:
            return
        self._conn = None
        await conn.close()

    async def _connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            await self.initialize()
        assert self._conn is not None  # for type checkers
        return self._conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Run a unit of work atomically; any failure rolls everything back."""
        conn = await self._connection()
        async with self._lock:
            try:
                await conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                raise StorageError(f"could not start transaction: {exc}") from exc
            try:
                yield conn
                await conn.execute("COMMIT")
            except BaseException as exc:
                if conn.in_transaction:
                    await conn.execute("ROLLBACK")
                if isinstance(exc, RankingError) or not isinstance(exc, Exception):
                    raise
                logger.warning("Transaction rolled back: %s: %s", type(exc).__name__, exc)
                raise StorageError(f"transaction failed: {exc}") from exc

    @asynccontextmanager
    async def _snapshot(self) -> AsyncIterator[aiosqlite.Connection]:
        """Read several statements from one WAL snapshot.

        Writers in other processes may commit between the statements; none of
        their rows become visible until the snapshot ends.
        """
        conn = await self._connection()
        async with self._lock:
            try:
                await conn.execute("BEGIN")
            except sqlite3.Error as exc:
                raise StorageError(f"could not start read: {exc}") from exc
            try:
                yield conn
            except sqlite3.Error as exc:
                if conn.in_transaction:
                    await conn.execute("ROLLBACK")
                raise StorageError(f"query failed: {exc}") from exc
            except BaseException:
                if conn.in_transaction:
                    await conn.execute("ROLLBACK")
                raise
            else:
                if conn.in_transaction:
                    await conn.execute("COMMIT")

    async def _fetchall(self, query: str, params: Sequence[Any] = ()) -> List[aiosqlite.Row]:
        conn = await self._connection()
        async with self._lock:
            try:
                cursor = await conn.execute(query, params)
                rows = await cursor.fetchall()
                await cursor.close()
            except sqlite3.Error as exc:
                raise StorageError(f"query failed: {exc}") from exc
        return list(rows)

    async def _fetchone(self, query: str, params: Sequence[Any] = ()) -> Optional[aiosqlite.Row]:
        rows = await self._fetchall(query, params)
        return rows[0] if rows else None

    @staticmethod
    async def _row(conn: aiosqlite.Connection, query: str, params: Sequence[Any] = ()) -> Optional[aiosqlite.Row]:
        cursor = await conn.execute(query, params)
        row = await cursor.fetchone()
        await cursor.close()
        return row

    # ------------------------------------------------------------------
    # Guilds
    # ------------------------------------------------------------------
    async def upsert_guild(self, guild_id: str, guild_name: str, owner_id: str) -> Guild:
        now = _now()
        async with self.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO guilds (guild_id, guild_name, owner_id, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(guild_id) DO UPDATE SET
                    guild_name = excluded.guild_name,
                    owner_id = excluded.owner_id,
                    updated_at = excluded.updated_at
                """,
                (str(guild_id), guild_name, str(owner_id), now, now),
            )
            row = await self._row(conn, "SELECT * FROM guilds WHERE guild_id = ?", (str(guild_id),))
        assert row is not None
        return _guild_from_row(row)

    async def get_guild(self, guild_id: str) -> Optional[Guild]:
        row = await self._fetchone("SELECT * FROM guilds WHERE guild_id = ?", (str(guild_id),))
        return _guild_from_row(row) if row else None

    async def list_guilds(self) -> List[Guild]:
        rows = await self._fetchall("SELECT * FROM guilds ORDER BY guild_name ASC")
        return [_guild_from_row(row) for row in rows]

    async def update_guild_settings(self, guild_id: str, settings: Dict[str, Any]) -> Optional[Guild]:
        async with self.transaction() as conn:
            cursor = await conn.execute(
                "UPDATE guilds SET settings_json = ?, updated_at = ? WHERE guild_id = ?",
                (json.dumps(settings, separators=(",", ":")), _now(), str(guild_id)),
            )
            if cursor.rowcount == 0:
                return None
            row = await self._row(conn, "SELECT * FROM guilds WHERE guild_id = ?", (str(guild_id),))
        return _guild_from_row(row) if row else None

    # ------------------------------------------------------------------
    # Cached guild members
    # ------------------------------------------------------------------
    async def upsert_guild_members(self, guild_id: str, members: Iterable[GuildMember]) -> int:
        """Insert or refresh a batch of members in one transaction."""
        now = _now()
        payload = [
            (
                str(guild_id),
                str(m.user_id),
                m.username,
                m.display_name,
                m.avatar_url,
                1 if m.is_bot else 0,
                m.joined_at.isoformat() if m.joined_at else None,
                now,
                now,
            )
            for m in members
        ]
        if not payload:
            return 0
        async with self.transaction() as conn:
            await conn.executemany(
                """
                INSERT INTO guild_members (
                    guild_id, user_id, username, display_name, avatar_url,
                    is_bot, joined_at, last_seen, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(guild_id, user_id) DO UPDATE SET
                    username = excluded.username,
                    display_name = excluded.display_name,
                    avatar_url = excluded.avatar_url,
                    is_bot = excluded.is_bot,
                    joined_at = COALESCE(excluded.joined_at, guild_members.joined_at),
                    last_seen = excluded.last_seen,
                    updated_at = excluded.updated_at
                """,
                payload,
            )
        return len(payload)

    async def remove_guild_member(self, guild_id: str, user_id: str) -> bool:
        async with self.transaction() as conn:
            cursor = await conn.execute(
                "DELETE FROM guild_members WHERE guild_id = ? AND user_id = ?",
                (str(guild_id), str(user_id)),
            )
            return cursor.rowcount > 0

    async def get_guild_member(self, guild_id: str, user_id: str) -> Optional[GuildMember]:
        row = await self._fetchone(
            "SELECT * FROM guild_members WHERE guild_id = ? AND user_id = ?",
            (str(guild_id), str(user_id)),
        )
        return _member_from_row(row) if row else None

    async def list_guild_members(self, guild_id: str, limit: int = 25) -> List[GuildMember]:
        rows = await self._fetchall(
            """
            SELECT * FROM guild_members
            WHERE guild_id = ? AND is_bot = 0
            ORDER BY last_seen DESC, display_name ASC
            LIMIT ?
            """,
            (str(guild_id), limit),
        )
        return [_member_from_row(row) for row in rows]

    async def search_guild_members(self, guild_id: str, query: str, limit: int = 25) -> List[GuildMember]:
        pattern = f"%{query.lower()}%"
        rows = await self._fetchall(
            """
            SELECT * FROM guild_members
            WHERE guild_id = ? AND is_bot = 0
              AND (LOWER(display_name) LIKE ? OR LOWER(username) LIKE ?)
            ORDER BY last_seen DESC, display_name ASC
            LIMIT ?
            """,
            (str(guild_id), pattern, pattern, limit),
        )
        return [_member_from_row(row) for row in rows]

    async def get_guild_member_stats(self, guild_id: str) -> Dict[str, int]:
        cutoff = (datetime.now(timezone.utc) - timedelta(days=7)).isoformat()
        row = await self._fetchone(
            """
            SELECT
                COUNT(*) AS total_members,
                COALESCE(SUM(CASE WHEN is_bot = 0 THEN 1 ELSE 0 END), 0) AS human_members,
                COALESCE(SUM(CASE WHEN is_bot = 1 THEN 1 ELSE 0 END), 0) AS bot_members,
                COALESCE(SUM(CASE WHEN last_seen > ? THEN 1 ELSE 0 END), 0) AS recent_members
            FROM guild_members
            WHERE guild_id = ?
            """,
            (cutoff, str(guild_id)),
        )
        return dict(row) if row else {}

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    async def create_event(
        self,
        *,
        guild_id: str,
        name: str,
        description: str,
        score_type: ScoreType,
        sort_direction: SortDirection,
        score_aggregation: ScoreAggregation,
        created_by: str,
    ) -> Event:
        now = _now()
        async with self.transaction() as conn:
            guild = await self._row(conn, "SELECT 1 FROM guilds WHERE guild_id = ?", (str(guild_id),))
            if guild is None:
                raise NotFoundError("guild", guild_id)
            cursor = await conn.execute(
                """
                INSERT INTO events (
                    guild_id, event_name, description, score_type, sort_direction,
                    score_aggregation, is_active, created_by, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, 1, ?, ?, ?)
                """,
                (
                    str(guild_id),
                    name,
                    description,
                    score_type.value,
                    sort_direction.value,
                    score_aggregation.value,
                    str(created_by),
                    now,
                    now,
                ),
            )
            row = await self._row(conn, "SELECT * FROM events WHERE id = ?", (cursor.lastrowid,))
        assert row is not None
        return _event_from_row(row)

    async def get_event(self, event_id: int) -> Optional[Event]:
        row = await self._fetchone("SELECT * FROM events WHERE id = ?", (event_id,))
        return _event_from_row(row) if row else None

    async def list_events(self, guild_id: str, *, active_only: bool = False) -> List[Event]:
        query = "SELECT * FROM events WHERE guild_id = ?"
        if active_only:
            query += " AND is_active = 1"
        query += " ORDER BY created_at DESC, id DESC"
        rows = await self._fetchall(query, (str(guild_id),))
        return [_event_from_row(row) for row in rows]

    async def list_public_events(self, limit: int = 20) -> List[Dict[str, Any]]:
        """Active events across all guilds with their guild name and participant count."""
        rows = await self._fetchall(
            """
            SELECT
                e.*,
                g.guild_name AS guild_name,
                (SELECT COUNT(*) FROM participants p WHERE p.event_id = e.id) AS participant_count
            FROM events e
            LEFT JOIN guilds g ON g.guild_id = e.guild_id
            WHERE e.is_active = 1
            ORDER BY e.created_at DESC, e.id DESC
            LIMIT ?
            """,
            (limit,),
        )
        return [
            {
                "event": _event_from_row(row),
                "guild_name": row["guild_name"],
                "participant_count": row["participant_count"],
            }
            for row in rows
        ]

    async def count_event_entries(self, event_id: int) -> int:
        row = await self._fetchone(
            """
            SELECT COUNT(*) AS total
            FROM score_entries se
            JOIN participants p ON p.id = se.participant_id
            WHERE p.event_id = ?
            """,
            (event_id,),
        )
        return int(row["total"]) if row else 0

    async def update_event(self, event_id: int, changes: Mapping[str, Any]) -> Optional[Event]:
        """Apply field changes to an event.

        A ``score_type`` change is refused once the event has entries. When the
        aggregation mode changes, every participant aggregate is rebuilt from
        the ledger in the same transaction.
        """
        unknown = set(changes) - set(EVENT_COLUMNS)
        if unknown:
            raise ValidationError(f"Unknown event fields: {', '.join(sorted(unknown))}")

        async with self.transaction() as conn:
            row = await self._row(conn, "SELECT * FROM events WHERE id = ?", (event_id,))
            if row is None:
                return None
            current = _event_from_row(row)

            new_type = changes.get("score_type")
            if new_type is not None and new_type is not current.score_type:
                entries = await self._row(
                    conn,
                    """
                    SELECT COUNT(*) AS total FROM score_entries se
                    JOIN participants p ON p.id = se.participant_id
                    WHERE p.event_id = ?
                    """,
                    (event_id,),
                )
                if entries is not None and entries["total"] > 0:
                    raise ValidationError("The score type cannot change once scores have been recorded.")

            assignments: List[str] = []
            params: List[Any] = []
            for key, value in changes.items():
                if value is None:
                    continue
                if hasattr(value, "value"):
                    value = value.value
                elif isinstance(value, bool):
                    value = 1 if value else 0
                assignments.append(f"{EVENT_COLUMNS[key]} = ?")
                params.append(value)

            if assignments:
                assignments.append("updated_at = ?")
                params.extend([_now(), event_id])
                await conn.execute(f"UPDATE events SET {', '.join(assignments)} WHERE id = ?", params)

            new_aggregation = changes.get("score_aggregation")
            if new_aggregation is not None and new_aggregation is not current.score_aggregation:
                await self._rebuild_aggregates(conn, event_id)
                logger.info(
                    "Event %s aggregation %s -> %s; participant aggregates rebuilt",
                    event_id,
                    current.score_aggregation.value,
                    new_aggregation.value,
                )

            row = await self._row(conn, "SELECT * FROM events WHERE id = ?", (event_id,))
        return _event_from_row(row) if row else None

    async def set_event_active(self, event_id: int, is_active: bool) -> Optional[Event]:
        async with self.transaction() as conn:
            cursor = await conn.execute(
                "UPDATE events SET is_active = ?, updated_at = ? WHERE id = ?",
                (1 if is_active else 0, _now(), event_id),
            )
            if cursor.rowcount == 0:
                return None
            row = await self._row(conn, "SELECT * FROM events WHERE id = ?", (event_id,))
        return _event_from_row(row) if row else None

    async def delete_event(self, event_id: int) -> bool:
        """Delete an event; participants and their entries cascade with it."""
        async with self.transaction() as conn:
            cursor = await conn.execute("DELETE FROM events WHERE id = ?", (event_id,))
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Participants
    # ------------------------------------------------------------------
    async def _upsert_participant(
        self,
        conn: aiosqlite.Connection,
        event_id: int,
        user_id: str,
        username: str,
        avatar_url: Optional[str],
    ) -> int:
        now = _now()
        await conn.execute(
            """
            INSERT INTO participants (event_id, user_id, username, avatar_url, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(event_id, user_id) DO UPDATE SET
                username = excluded.username,
                avatar_url = COALESCE(excluded.avatar_url, participants.avatar_url),
                updated_at = excluded.updated_at
            """,
            (event_id, str(user_id), username, avatar_url, now, now),
        )
        row = await self._row(
            conn,
            "SELECT id FROM participants WHERE event_id = ? AND user_id = ?",
            (event_id, str(user_id)),
        )
        assert row is not None
        return int(row["id"])

    async def upsert_participant(
        self,
        event_id: int,
        user_id: str,
        username: str,
        avatar_url: Optional[str] = None,
    ) -> Participant:
        async with self.transaction() as conn:
            event = await self._row(conn, "SELECT 1 FROM events WHERE id = ?", (event_id,))
            if event is None:
                raise NotFoundError("event", event_id)
            participant_id = await self._upsert_participant(conn, event_id, user_id, username, avatar_url)
            participant = await self._load_participant(conn, participant_id)
        assert participant is not None
        return participant

    async def _load_participant(
        self,
        conn: aiosqlite.Connection,
        participant_id: int,
        *,
        with_entries: bool = False,
    ) -> Optional[Participant]:
        row = await self._row(conn, PARTICIPANT_SELECT + " WHERE p.id = ?", (participant_id,))
        if row is None:
            return None
        participant = _participant_from_row(row)
        if with_entries:
            cursor = await conn.execute(
                "SELECT * FROM score_entries WHERE participant_id = ? ORDER BY created_at DESC, id DESC",
                (participant_id,),
            )
            participant.entries = [_entry_from_row(r) for r in await cursor.fetchall()]
            await cursor.close()
        return participant

    async def get_participant(self, participant_id: int, *, with_entries: bool = False) -> Optional[Participant]:
        async with self._snapshot() as conn:
            return await self._load_participant(conn, participant_id, with_entries=with_entries)

    async def get_participant_by_user(
        self,
        event_id: int,
        user_id: str,
        *,
        with_entries: bool = True,
    ) -> Optional[Participant]:
        row = await self._fetchone(
            "SELECT id FROM participants WHERE event_id = ? AND user_id = ?",
            (event_id, str(user_id)),
        )
        if row is None:
            return None
        return await self.get_participant(int(row["id"]), with_entries=with_entries)

    async def list_participants(self, event_id: int, *, with_entries: bool = False) -> List[Participant]:
        """Every participant of an event, optionally with their ledger attached.

        Participants and entries come from one read snapshot so the ledger
        always matches the aggregates it is paired with.
        """
        async with self._snapshot() as conn:
            cursor = await conn.execute(PARTICIPANT_SELECT + " WHERE p.event_id = ?", (event_id,))
            participants = [_participant_from_row(row) for row in await cursor.fetchall()]
            await cursor.close()

            if with_entries and participants:
                by_id = {p.id: p for p in participants}
                cursor = await conn.execute(
                    """
                    SELECT se.* FROM score_entries se
                    JOIN participants p ON p.id = se.participant_id
                    WHERE p.event_id = ?
                    ORDER BY se.created_at DESC, se.id DESC
                    """,
                    (event_id,),
                )
                for row in await cursor.fetchall():
                    owner = by_id.get(row["participant_id"])
                    if owner is not None:
                        owner.entries.append(_entry_from_row(row))
                await cursor.close()
        return participants

    async def list_participants_with_entries(self, event_id: int) -> List[Participant]:
        return await self.list_participants(event_id, with_entries=True)

    # ------------------------------------------------------------------
    # Score ledger
    # ------------------------------------------------------------------
    async def _record(
        self,
        conn: aiosqlite.Connection,
        participant_id: int,
        score: Decimal,
        added_by: str,
        note: Optional[str],
    ) -> ScoreEntry:
        row = await self._row(
            conn,
            """
            SELECT p.total_score_cents, p.entries_count, e.score_aggregation, e.is_active, e.id AS event_id
            FROM participants p JOIN events e ON e.id = p.event_id
            WHERE p.id = ?
            """,
            (participant_id,),
        )
        if row is None:
            raise NotFoundError("participant", participant_id)
        if not row["is_active"]:
            raise ValidationError("This event is inactive; new scores cannot be added.")

        aggregation = ScoreAggregation(row["score_aggregation"])
        total, count = apply_entry_change(
            aggregation,
            from_cents(row["total_score_cents"]),
            row["entries_count"],
            None,
            score,
        )
        now = _now()
        cursor = await conn.execute(
            """
            INSERT INTO score_entries (participant_id, score_cents, note, added_by, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (participant_id, to_cents(score), note, str(added_by), now),
        )
        await conn.execute(
            "UPDATE participants SET total_score_cents = ?, entries_count = ?, updated_at = ? WHERE id = ?",
            (to_cents(total), count, now, participant_id),
        )
        return ScoreEntry(
            id=int(cursor.lastrowid),
            participant_id=participant_id,
            score=from_cents(to_cents(score)),
            added_by=str(added_by),
            note=note,
            created_at=_parse_ts(now),
        )

    async def record_entry(
        self,
        participant_id: int,
        score: Decimal,
        added_by: str,
        note: Optional[str] = None,
    ) -> Participant:
        """Append an entry and refresh the participant aggregate atomically."""
        async with self.transaction() as conn:
            await self._record(conn, participant_id, score, added_by, note)
            participant = await self._load_participant(conn, participant_id)
        assert participant is not None
        return participant

    async def record_entry_for_user(
        self,
        event_id: int,
        user_id: str,
        username: str,
        score: Decimal,
        added_by: str,
        note: Optional[str] = None,
        avatar_url: Optional[str] = None,
    ) -> Participant:
        """Enroll the user if needed and record the entry in one transaction."""
        async with self.transaction() as conn:
            event = await self._row(conn, "SELECT is_active FROM events WHERE id = ?", (event_id,))
            if event is None:
                raise NotFoundError("event", event_id)
            if not event["is_active"]:
                raise ValidationError("This event is inactive; new scores cannot be added.")
            participant_id = await self._upsert_participant(conn, event_id, user_id, username, avatar_url)
            await self._record(conn, participant_id, score, added_by, note)
            participant = await self._load_participant(conn, participant_id)
        assert participant is not None
        return participant

    async def _entry_context(self, conn: aiosqlite.Connection, entry_id: int) -> aiosqlite.Row:
        row = await self._row(
            conn,
            """
            SELECT se.*, p.total_score_cents, p.entries_count, e.score_aggregation
            FROM score_entries se
            JOIN participants p ON p.id = se.participant_id
            JOIN events e ON e.id = p.event_id
            WHERE se.id = ?
            """,
            (entry_id,),
        )
        if row is None:
            raise NotFoundError("score entry", entry_id)
        return row

    async def edit_entry(
        self,
        entry_id: int,
        new_score: Decimal,
        note: Optional[str] = None,
    ) -> Participant:
        """Change an entry's score and apply the delta to the aggregate atomically.

        ``note=None`` keeps the existing note.
        """
        async with self.transaction() as conn:
            row = await self._entry_context(conn, entry_id)
            participant_id = int(row["participant_id"])
            total, count = apply_entry_change(
                ScoreAggregation(row["score_aggregation"]),
                from_cents(row["total_score_cents"]),
                row["entries_count"],
                from_cents(row["score_cents"]),
                new_score,
            )
            await conn.execute(
                "UPDATE score_entries SET score_cents = ?, note = COALESCE(?, note) WHERE id = ?",
                (to_cents(new_score), note, entry_id),
            )
            await conn.execute(
                "UPDATE participants SET total_score_cents = ?, entries_count = ?, updated_at = ? WHERE id = ?",
                (to_cents(total), count, _now(), participant_id),
            )
            participant = await self._load_participant(conn, participant_id)
        assert participant is not None
        return participant

    async def delete_entry(self, entry_id: int) -> Participant:
        """Remove an entry and take it back out of the aggregate atomically."""
        async with self.transaction() as conn:
            row = await self._entry_context(conn, entry_id)
            participant_id = int(row["participant_id"])
            total, count = apply_entry_change(
                ScoreAggregation(row["score_aggregation"]),
                from_cents(row["total_score_cents"]),
                row["entries_count"],
                from_cents(row["score_cents"]),
                None,
            )
            await conn.execute("DELETE FROM score_entries WHERE id = ?", (entry_id,))
            await conn.execute(
                "UPDATE participants SET total_score_cents = ?, entries_count = ?, updated_at = ? WHERE id = ?",
                (to_cents(total), count, _now(), participant_id),
            )
            participant = await self._load_participant(conn, participant_id)
        assert participant is not None
        return participant

    async def get_entry(self, entry_id: int) -> Optional[ScoreEntry]:
        row = await self._fetchone("SELECT * FROM score_entries WHERE id = ?", (entry_id,))
        return _entry_from_row(row) if row else None

    async def list_entries(self, participant_id: int) -> List[ScoreEntry]:
        rows = await self._fetchall(
            "SELECT * FROM score_entries WHERE participant_id = ? ORDER BY created_at DESC, id DESC",
            (participant_id,),
        )
        return [_entry_from_row(row) for row in rows]

    async def _rebuild_aggregates(self, conn: aiosqlite.Connection, event_id: int) -> None:
        await conn.execute(
            """
            UPDATE participants SET
                total_score_cents = COALESCE(
                    (SELECT SUM(score_cents) FROM score_entries WHERE participant_id = participants.id), 0
                ),
                entries_count = (SELECT COUNT(*) FROM score_entries WHERE participant_id = participants.id),
                updated_at = ?
            WHERE event_id = ?
            """,
            (_now(), event_id),
        )

    async def rebuild_event_aggregates(self, event_id: int) -> None:
        """Recompute every participant aggregate of an event from the ledger."""
        async with self.transaction() as conn:
            await self._rebuild_aggregates(conn, event_id)


__all__ = ["RankingStorageEngine", "SCHEMA", "to_cents", "from_cents"]
