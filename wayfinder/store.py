"""Persistent network store with versioned commits and change notification."""

import json
import sqlite3
import threading
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional, Sequence

from .config import CONFIG
from .errors import MalformedSnapshotError, PreconditionError
from .logger import Logger, NULL_LOGGER
from .models import House, Location, NetworkSnapshot, Road, make_id

# Logical keys of the persisted snapshot
SNAPSHOT_KEYS = ("reception", "houses", "roads", "version")

SnapshotCallback = Callable[[NetworkSnapshot], None]


class Subscription:
    """Handle for an in-process change subscription"""

    def __init__(self, store: "NetworkStore", callback: SnapshotCallback):
        self.store = store
        self.callback = callback
        self.active = True

    def cancel(self):
        if self.active:
            self.active = False
            self.store._unsubscribe(self)


class StoreWatcher:
    """Polls a store's version marker and reloads when it changes.

    Used by views that cannot receive push notifications, e.g. a guest view
    with its own store instance in another process.
    """

    def __init__(self, store: "NetworkStore", callback: SnapshotCallback,
                 interval: Optional[float] = None, logger: Optional[Logger] = None):
        self.store = store
        self.callback = callback
        self.interval = interval if interval is not None else CONFIG["store_poll_interval"]
        self.logger = logger or store.logger
        self.last_version = store.version()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def active(self) -> bool:
        return self._thread is not None and not self._stop.is_set()

    def start(self) -> "StoreWatcher":
        if self._thread is None:
            self._thread = threading.Thread(target=self._run, daemon=True)
            self._thread.start()
        return self

    def poll_once(self) -> bool:
        """Reload and notify if the version moved. Returns True on change."""
        version = self.store.version()
        if version == self.last_version:
            return False
        snapshot = self.store.load()
        self.last_version = snapshot.version
        self.callback(snapshot)
        return True

    def _run(self):
        while not self._stop.wait(self.interval):
            try:
                self.poll_once()
            except sqlite3.Error as e:
                self.logger.log("Store poll failed", {"error": str(e)})

    def cancel(self):
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.interval + 1)


class NetworkStore:
    """SQLite-backed store for the single canonical NetworkSnapshot"""

    def __init__(self, db_path: Optional[str] = None, logger: Optional[Logger] = None,
                 min_road_points: Optional[int] = None):
        self.db_path = db_path or CONFIG["db_path"]
        self.logger = logger or NULL_LOGGER
        self.min_road_points = min_road_points or CONFIG["min_road_points"]
        # Autocommit mode; commit() manages its own write transaction
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
        self._lock = threading.RLock()
        self._subscribers: list[Subscription] = []
        self._init_schema()

    def _init_schema(self):
        """Create database tables"""
        with self._lock:
            self.conn.execute("""
                CREATE TABLE IF NOT EXISTS network_state (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

    def _read_rows(self) -> dict[str, str]:
        cursor = self.conn.execute("SELECT key, value FROM network_state")
        return {row[0]: row[1] for row in cursor.fetchall()}

    def _write(self, snapshot: NetworkSnapshot):
        now = datetime.now().isoformat()
        data = snapshot.to_dict()
        for key in SNAPSHOT_KEYS:
            self.conn.execute("""
                INSERT INTO network_state (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """, (key, json.dumps(data[key]), now))

    def load_strict(self) -> NetworkSnapshot:
        """Last committed snapshot; raises MalformedSnapshotError on corrupt data"""
        with self._lock:
            rows = self._read_rows()
        if not rows:
            return NetworkSnapshot.empty()
        raw_version = rows.pop("version", None)
        try:
            data = {key: json.loads(value) for key, value in rows.items()}
        except json.JSONDecodeError as e:
            raise MalformedSnapshotError(f"Unreadable network data: {e}") from e
        data["version"] = self._parse_version(raw_version)
        return NetworkSnapshot.from_dict(data)

    def load(self) -> NetworkSnapshot:
        """Last committed snapshot, or an empty one if none exists or it is unreadable"""
        try:
            return self.load_strict()
        except MalformedSnapshotError as e:
            version = self.version()
            self.logger.log("Network data unreadable, using empty network",
                            {"error": str(e), "version": version})
            return NetworkSnapshot.empty(version=version)

    def _version_floor(self) -> int:
        """Highest version ever committed, kept outside the key/value table"""
        with self._lock:
            return self.conn.execute("PRAGMA user_version").fetchone()[0]

    def version(self) -> int:
        """Current update-version marker (0 when nothing was committed).

        An unreadable or lowered marker never moves the version backwards.
        """
        with self._lock:
            row = self.conn.execute(
                "SELECT value FROM network_state WHERE key = 'version'"
            ).fetchone()
        return self._parse_version(row[0] if row else None)

    def _parse_version(self, raw: Optional[str]) -> int:
        floor = self._version_floor()
        if raw is None:
            return floor
        try:
            return max(int(json.loads(raw)), floor)
        except (json.JSONDecodeError, TypeError, ValueError):
            self.logger.log("Version marker unreadable, using last committed version",
                            {"version": floor})
            return floor

    def commit(self, mutator: Callable[[NetworkSnapshot], NetworkSnapshot]) -> NetworkSnapshot:
        """Apply mutator to the latest snapshot and persist the result.

        The read, the mutation and the write happen in one write transaction,
        so the new version is always the stored version plus one. Raises
        PreconditionError (and writes nothing) if the result breaks an
        invariant.
        """
        with self._lock:
            self.conn.execute("BEGIN IMMEDIATE")
            try:
                current = self.load()
                updated = mutator(current)
                if not isinstance(updated, NetworkSnapshot):
                    raise PreconditionError("Network change did not produce a snapshot")
                updated.validate(self.min_road_points)
                committed = replace(updated, version=current.version + 1)
                self._write(committed)
                self.conn.execute(f"PRAGMA user_version = {int(committed.version)}")
                self.conn.execute("COMMIT")
            except BaseException:
                self.conn.execute("ROLLBACK")
                raise

        self.logger.log("Committed network change", {
            "version": committed.version,
            "reception": committed.reception is not None,
            "houses": len(committed.houses),
            "roads": len(committed.roads),
        })
        self._notify(committed)
        return committed

    def set_reception(self, location: Location) -> NetworkSnapshot:
        return self.commit(lambda s: s.with_reception(location))

    def add_house(self, number: str, location: Location) -> House:
        """Place a house by hand"""
        number = number.strip()
        if not number:
            raise PreconditionError("House number is required")
        created = []

        def mutate(snapshot: NetworkSnapshot) -> NetworkSnapshot:
            house = House(id=make_id(h.id for h in snapshot.houses), number=number, location=location)
            created.append(house)
            return snapshot.with_house(house)

        self.commit(mutate)
        return created[-1]

    def add_road(self, points: Sequence[Location]) -> Road:
        """Store a hand-drawn road"""
        created = []

        def mutate(snapshot: NetworkSnapshot) -> NetworkSnapshot:
            road = Road(id=make_id(r.id for r in snapshot.roads), points=tuple(points))
            created.append(road)
            return snapshot.with_road(road)

        self.commit(mutate)
        return created[-1]

    def clear(self) -> NetworkSnapshot:
        """Remove reception, houses and roads. The version still moves forward."""
        snapshot = self.commit(lambda s: NetworkSnapshot.empty())
        self.logger.log("Cleared network", {"version": snapshot.version})
        return snapshot

    def subscribe(self, callback: SnapshotCallback) -> Subscription:
        """Push committed snapshots from this store instance to callback"""
        subscription = Subscription(self, callback)
        with self._lock:
            self._subscribers.append(subscription)
        return subscription

    def _unsubscribe(self, subscription: Subscription):
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)

    def _notify(self, snapshot: NetworkSnapshot):
        with self._lock:
            subscribers = list(self._subscribers)
        for subscription in subscribers:
            try:
                subscription.callback(snapshot)
            except Exception as e:
                self.logger.log("Change subscriber failed", {"error": repr(e)})

    def watch(self, callback: SnapshotCallback, interval: Optional[float] = None) -> StoreWatcher:
        """Poll for changes committed through any store instance"""
        return StoreWatcher(self, callback, interval=interval).start()

    def close(self):
        with self._lock:
            self._subscribers.clear()
            self.conn.close()
