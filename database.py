import sqlite3
from contextlib import contextmanager

from config import DATABASE_PATH, MAX_TRANSACTION_ATTEMPTS
from logger import logger
from services.errors import (
    MealNotFound,
    ProfileNotFound,
    TransactionConflictExhausted,
    WeightMeasurementNotFound,
)

# Columns a transaction may write. user_id and version are managed here.
PROFILE_COLUMNS = {
    "name", "email", "xp", "level", "daily_calorie_goal", "last_daily_xp_check",
    "current_weight", "weight_goal", "height", "age", "gender",
    "activity_level", "dietary_preferences",
}

# Columns the profile edit flow may touch; XP state goes through transactions only.
EDITABLE_PROFILE_FIELDS = PROFILE_COLUMNS - {"xp", "level", "last_daily_xp_check"}


class Transaction:
    """Read/write capability over one user profile inside `run_transaction`.

    Writes are buffered and only reach the database when the surrounding
    attempt commits without a concurrent modification.
    """

    def __init__(self, user_id: str, snapshot: dict):
        self.user_id = user_id
        self.version = snapshot["version"]
        self._snapshot = snapshot
        self._updates: dict = {}
        self._xp_events: list[tuple] = []

    def read(self) -> dict:
        return {**self._snapshot, **self._updates}

    def update(self, **fields):
        unknown = set(fields) - PROFILE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot write profile fields: {sorted(unknown)}")
        self._updates.update(fields)

    def record_xp_event(self, reason: str, xp_change: int, new_xp: int, new_level: int):
        self._xp_events.append((reason, xp_change, new_xp, new_level))

    @property
    def updates(self) -> dict:
        return dict(self._updates)

    @property
    def xp_events(self) -> list[tuple]:
        return list(self._xp_events)


class Database:
    """SQLite-backed store for profiles, meals, weights and achievements."""

    def __init__(self, path: str | None = None):
        self.path = path or DATABASE_PATH

    def init_database(self):
        """Initialize the database with required tables."""
        conn = sqlite3.connect(self.path)
        cursor = conn.cursor()

        # One row per user; id comes from the external identity provider.
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS user_profiles (
                user_id TEXT PRIMARY KEY,
                name TEXT,
                email TEXT,
                xp INTEGER NOT NULL DEFAULT 0,
                level INTEGER NOT NULL DEFAULT 1,
                daily_calorie_goal REAL,
                last_daily_xp_check TEXT,
                current_weight REAL,
                weight_goal REAL,
                height REAL,
                age INTEGER,
                gender TEXT,
                activity_level TEXT,
                dietary_preferences TEXT,
                version INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS meals (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                date TEXT NOT NULL,
                time TEXT,
                name TEXT,
                description TEXT,
                calories REAL DEFAULT 0,
                protein REAL DEFAULT 0,
                carbohydrates REAL DEFAULT 0,
                fat REAL DEFAULT 0,
                fiber REAL DEFAULT 0,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (user_id) REFERENCES user_profiles(user_id)
            )
        """)
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_meals_user_date ON meals(user_id, date)")

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS weight_measurements (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                date TEXT NOT NULL,
                weight REAL NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (user_id) REFERENCES user_profiles(user_id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS user_achievements (
                user_id TEXT NOT NULL,
                achievement_id TEXT NOT NULL,
                unlocked_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (user_id, achievement_id)
            )
        """)

        # Audit trail of applied XP changes
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS xp_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                reason TEXT,
                xp_change INTEGER NOT NULL,
                new_xp INTEGER NOT NULL,
                new_level INTEGER NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        conn.commit()
        conn.close()

    @contextmanager
    def get_db(self):
        """Context manager for database connections."""
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    # ---- Profiles ----

    def get_profile(self, user_id: str):
        with self.get_db() as conn:
            cur = conn.cursor()
            cur.execute("SELECT * FROM user_profiles WHERE user_id = ?", (user_id,))
            row = cur.fetchone()
            return dict(row) if row else None

    def create_profile(self, user_id: str, **fields) -> dict:
        """Create a fresh profile at level 1 with 0 XP."""
        fields = {k: v for k, v in fields.items() if v is not None}
        unknown = set(fields) - EDITABLE_PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Cannot set profile fields: {sorted(unknown)}")
        columns = ["user_id", *fields]
        placeholders = ", ".join("?" for _ in columns)
        with self.get_db() as conn:
            conn.execute(
                f"INSERT INTO user_profiles ({', '.join(columns)}) VALUES ({placeholders})",
                (user_id, *fields.values()),
            )
            conn.commit()
        logger.info(f"Created profile for user {user_id}")
        return self.get_profile(user_id)

    def update_profile(self, user_id: str, **fields) -> dict:
        """Update editable profile fields. Bumps the row version."""
        unknown = set(fields) - EDITABLE_PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Cannot set profile fields: {sorted(unknown)}")
        if not fields:
            profile = self.get_profile(user_id)
            if profile is None:
                raise ProfileNotFound(user_id)
            return profile
        assignments = ", ".join(f"{k} = ?" for k in fields)
        with self.get_db() as conn:
            cur = conn.cursor()
            cur.execute(
                f"UPDATE user_profiles SET {assignments}, version = version + 1, "
                "updated_at = CURRENT_TIMESTAMP WHERE user_id = ?",
                (*fields.values(), user_id),
            )
            if cur.rowcount == 0:
                raise ProfileNotFound(user_id)
            conn.commit()
        return self.get_profile(user_id)

    def run_transaction(self, user_id: str, update_fn, max_attempts: int | None = None):
        """Optimistic read-modify-write on one profile.

        `update_fn` receives a `Transaction` and may call it any number of
        times; it must not have side effects outside the transaction. The
        buffered writes are committed with a version check, and the whole
        function is re-run when another writer got there first.
        """
        attempts = max_attempts or MAX_TRANSACTION_ATTEMPTS
        for attempt in range(1, attempts + 1):
            snapshot = self.get_profile(user_id)
            if snapshot is None:
                raise ProfileNotFound(user_id)
            tx = Transaction(user_id, snapshot)
            result = update_fn(tx)
            if self._commit(tx):
                return result
            logger.warning(
                f"Profile {user_id} changed during transaction "
                f"(attempt {attempt}/{attempts}), retrying"
            )
        raise TransactionConflictExhausted(user_id, attempts)

    def _commit(self, tx: Transaction) -> bool:
        updates = tx.updates
        if not updates and not tx.xp_events:
            return True
        with self.get_db() as conn:
            cur = conn.cursor()
            assignments = "".join(f"{k} = ?, " for k in updates)
            cur.execute(
                f"UPDATE user_profiles SET {assignments}version = version + 1, "
                "updated_at = CURRENT_TIMESTAMP WHERE user_id = ? AND version = ?",
                (*updates.values(), tx.user_id, tx.version),
            )
            if cur.rowcount == 0:
                conn.rollback()
                return False
            cur.executemany(
                "INSERT INTO xp_events (user_id, reason, xp_change, new_xp, new_level) VALUES (?, ?, ?, ?, ?)",
                [(tx.user_id, *event) for event in tx.xp_events],
            )
            conn.commit()
            return True

    def get_xp_events(self, user_id: str, limit: int = 50):
        with self.get_db() as conn:
            cur = conn.cursor()
            cur.execute(
                "SELECT * FROM xp_events WHERE user_id = ? ORDER BY id DESC LIMIT ?",
                (user_id, limit),
            )
            return [dict(r) for r in cur.fetchall()]

    # ---- Meals ----

    def save_meal(self, data: dict) -> int:
        """Save a meal entry."""
        with self.get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO meals (
                    user_id, date, time, name, description,
                    calories, protein, carbohydrates, fat, fiber
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                data['user_id'], data['date'], data.get('time'), data['name'],
                data.get('description', ''),
                data['calories'], data.get('protein', 0), data.get('carbohydrates', 0),
                data.get('fat', 0), data.get('fiber', 0),
            ))
            conn.commit()
            return cursor.lastrowid

    def get_meals(self, user_id: str, date: str):
        """Get the meals a user logged on a calendar day."""
        with self.get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT * FROM meals WHERE user_id = ? AND date = ? ORDER BY created_at DESC, id DESC",
                (user_id, date),
            )
            return [dict(row) for row in cursor.fetchall()]

    def get_meal_dates(self, user_id: str) -> list[str]:
        """Distinct days with at least one meal, newest first."""
        with self.get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT DISTINCT date FROM meals WHERE user_id = ? ORDER BY date DESC",
                (user_id,),
            )
            return [row["date"] for row in cursor.fetchall()]

    def get_day_totals(self, user_id: str, date: str) -> dict:
        """Compute calorie and macro totals for a day."""
        with self.get_db() as conn:
            c = conn.cursor()
            c.execute(
                """
                SELECT
                  COALESCE(SUM(calories),0) as calories,
                  COALESCE(SUM(protein),0) as protein,
                  COALESCE(SUM(carbohydrates),0) as carbohydrates,
                  COALESCE(SUM(fat),0) as fat,
                  COALESCE(SUM(fiber),0) as fiber
                FROM meals WHERE user_id=? AND date=?
                """,
                (user_id, date),
            )
            return dict(c.fetchone())

    def delete_meal(self, user_id: str, meal_id: int):
        with self.get_db() as conn:
            cur = conn.cursor()
            cur.execute("DELETE FROM meals WHERE id = ? AND user_id = ?", (meal_id, user_id))
            if cur.rowcount == 0:
                raise MealNotFound(meal_id)
            conn.commit()

    # ---- Weight ----

    def save_weight_measurement(self, user_id: str, date: str, weight: float) -> int:
        with self.get_db() as conn:
            cur = conn.cursor()
            cur.execute(
                "INSERT INTO weight_measurements (user_id, date, weight) VALUES (?, ?, ?)",
                (user_id, date, weight),
            )
            conn.commit()
            return cur.lastrowid

    def get_weight_measurements(self, user_id: str):
        """Weight history, newest first."""
        with self.get_db() as conn:
            cur = conn.cursor()
            cur.execute(
                "SELECT * FROM weight_measurements WHERE user_id = ? ORDER BY date DESC, id DESC",
                (user_id,),
            )
            return [dict(r) for r in cur.fetchall()]

    def update_weight_measurement(self, user_id: str, measurement_id: int, weight: float) -> dict:
        with self.get_db() as conn:
            cur = conn.cursor()
            cur.execute(
                "UPDATE weight_measurements SET weight = ? WHERE id = ? AND user_id = ?",
                (weight, measurement_id, user_id),
            )
            if cur.rowcount == 0:
                raise WeightMeasurementNotFound(measurement_id)
            conn.commit()
            cur.execute("SELECT * FROM weight_measurements WHERE id = ?", (measurement_id,))
            return dict(cur.fetchone())

    def delete_weight_measurement(self, user_id: str, measurement_id: int):
        with self.get_db() as conn:
            cur = conn.cursor()
            cur.execute(
                "DELETE FROM weight_measurements WHERE id = ? AND user_id = ?",
                (measurement_id, user_id),
            )
            if cur.rowcount == 0:
                raise WeightMeasurementNotFound(measurement_id)
            conn.commit()

    # ---- Achievements ----

    def unlock_achievement(self, user_id: str, achievement_id: str) -> bool:
        """Record an unlock. Returns False when it was already unlocked."""
        with self.get_db() as conn:
            cur = conn.cursor()
            cur.execute(
                "INSERT OR IGNORE INTO user_achievements (user_id, achievement_id) VALUES (?, ?)",
                (user_id, achievement_id),
            )
            conn.commit()
            return cur.rowcount == 1

    def get_unlocked_achievements(self, user_id: str) -> dict:
        """Map of achievement id -> unlock timestamp."""
        with self.get_db() as conn:
            cur = conn.cursor()
            cur.execute(
                "SELECT achievement_id, unlocked_at FROM user_achievements WHERE user_id = ?",
                (user_id,),
            )
            return {r["achievement_id"]: r["unlocked_at"] for r in cur.fetchall()}


_database: Database | None = None


def get_database() -> Database:
    """Process-wide store, created and initialized on first use."""
    global _database
    if _database is None:
        _database = Database()
        _database.init_database()
        logger.info(f"Database initialized at {_database.path}")
    return _database
