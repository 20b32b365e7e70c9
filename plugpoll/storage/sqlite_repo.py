from __future__ import annotations
import aiosqlite
from datetime import datetime
from typing import Dict, List, Optional
from ..core.timeutil import now_utc
from ..domain.models import Channel, ChannelKind, Device, FeatureCategory, StateRecord


class SQLiteRepository:
    """Device registry and feature state store.

    Implements the channel registry read by the poller and the state store the
    event sink commits accepted values to.
    """

    def __init__(self, path: str) -> None:
        self._path = path

    async def init(self) -> None:
        async with aiosqlite.connect(self._path) as db:
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS devices (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    external_id TEXT NOT NULL UNIQUE,
                    created_at TEXT NOT NULL
                )
                """
            )
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS device_features (
                    external_id TEXT PRIMARY KEY,
                    device_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    category TEXT NOT NULL,
                    type TEXT NOT NULL,
                    last_value REAL,
                    last_value_changed TEXT
                )
                """
            )
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS device_params (
                    device_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    value TEXT NOT NULL,
                    PRIMARY KEY (device_id, name)
                )
                """
            )
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS feature_states (
                    ts_utc TEXT NOT NULL,
                    feature_external_id TEXT NOT NULL,
                    value REAL NOT NULL
                )
                """
            )
            await db.execute("CREATE INDEX IF NOT EXISTS idx_features_device ON device_features(device_id)")
            await db.execute("CREATE INDEX IF NOT EXISTS idx_states_ts ON feature_states(ts_utc)")
            await db.commit()

    async def add_device(self, device: Device) -> None:
        async with aiosqlite.connect(self._path) as db:
            await db.execute(
                "INSERT INTO devices(id,name,external_id,created_at) VALUES (?,?,?,?)",
                (device.id, device.name, device.external_id, now_utc().isoformat()),
            )
            for ch in device.channels:
                await db.execute(
                    "INSERT INTO device_features(external_id,device_id,name,category,type,last_value) "
                    "VALUES (?,?,?,?,?,?)",
                    (ch.external_id, device.id, ch.name, ch.category.value, ch.kind.value, ch.last_value),
                )
            for key, value in device.params.items():
                await db.execute(
                    "INSERT INTO device_params(device_id,name,value) VALUES (?,?,?)",
                    (device.id, key, value),
                )
            await db.commit()

    async def _load(self, db: aiosqlite.Connection, row: tuple) -> Device:
        device_id, name, external_id = row
        cur = await db.execute(
            "SELECT external_id,name,category,type,last_value FROM device_features "
            "WHERE device_id = ? ORDER BY external_id",
            (device_id,),
        )
        channels = tuple(
            Channel(
                external_id=ext,
                kind=ChannelKind(kind),
                category=FeatureCategory(cat),
                name=fname,
                last_value=last,
            )
            for ext, fname, cat, kind, last in await cur.fetchall()
        )
        cur = await db.execute("SELECT name, value FROM device_params WHERE device_id = ?", (device_id,))
        params = {k: v for k, v in await cur.fetchall()}
        return Device(id=device_id, name=name, external_id=external_id, channels=channels, params=params)

    async def get_device(self, device_id: str) -> Optional[Device]:
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute("SELECT id,name,external_id FROM devices WHERE id = ?", (device_id,))
            row = await cur.fetchone()
            if row is None:
                return None
            return await self._load(db, row)

    async def get_device_by_external_id(self, external_id: str) -> Optional[Device]:
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute(
                "SELECT id,name,external_id FROM devices WHERE external_id = ?", (external_id,)
            )
            row = await cur.fetchone()
            if row is None:
                return None
            return await self._load(db, row)

    async def list_devices(self) -> List[Device]:
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute("SELECT id,name,external_id FROM devices ORDER BY name")
            rows = await cur.fetchall()
            return [await self._load(db, row) for row in rows]

    async def resolve(
        self, device: Device, category: FeatureCategory, kind: ChannelKind
    ) -> Optional[Channel]:
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute(
                "SELECT external_id,name,last_value FROM device_features "
                "WHERE device_id = ? AND category = ? AND type = ? LIMIT 1",
                (device.id, category.value, kind.value),
            )
            row = await cur.fetchone()
        if row is None:
            return None
        ext, name, last = row
        return Channel(external_id=ext, kind=kind, category=category, name=name, last_value=last)

    async def resolve_parameter(self, device: Device, key: str) -> Optional[str]:
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute(
                "SELECT value FROM device_params WHERE device_id = ? AND name = ?",
                (device.id, key),
            )
            row = await cur.fetchone()
        return row[0] if row else None

    async def save_state(self, channel_external_id: str, value: float, ts_utc: datetime) -> None:
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute(
                "UPDATE device_features SET last_value = ?, last_value_changed = ? WHERE external_id = ?",
                (float(value), ts_utc.isoformat(), channel_external_id),
            )
            if cur.rowcount == 0:
                raise KeyError(f"Unknown feature: {channel_external_id}")
            await db.execute(
                "INSERT INTO feature_states(ts_utc,feature_external_id,value) VALUES (?,?,?)",
                (ts_utc.isoformat(), channel_external_id, float(value)),
            )
            await db.commit()

    async def query_states(
        self, start_ts: str, end_ts: str, limit: int, feature_external_id: Optional[str] = None
    ) -> List[StateRecord]:
        sql = "SELECT ts_utc,feature_external_id,value FROM feature_states WHERE ts_utc >= ? AND ts_utc <= ?"
        args: list = [start_ts, end_ts]
        if feature_external_id is not None:
            sql += " AND feature_external_id = ?"
            args.append(feature_external_id)
        sql += " ORDER BY ts_utc DESC LIMIT ?"
        args.append(limit)
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute(sql, args)
            rows = await cur.fetchall()
        out = [
            StateRecord(ts_utc=datetime.fromisoformat(ts), channel_external_id=ext, value=float(val))
            for ts, ext, val in rows
        ]
        return list(reversed(out))

