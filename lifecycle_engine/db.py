import contextlib
import sqlite3
from typing import Callable, Iterable, Iterator, List

try:
    import psycopg2
    import psycopg2.extras
except ImportError:  # pragma: no cover - optional dependency for postgres
    psycopg2 = None

from flask import current_app, g


class Database:
    def __init__(self, backend: str, connection):
        self.backend = backend
        self._conn = connection
        self._tx_depth = 0
        self._after_commit: List[Callable[[], None]] = []

    def execute(self, sql: str, params: Iterable | None = None):
        if self.backend == "postgres":
            cursor = self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            if params:
                sql = _convert_qmark_to_pg(sql)
                cursor.execute(sql, list(params))
            else:
                cursor.execute(sql)
            return cursor
        return self._conn.execute(sql, params or ())

    @property
    def in_transaction(self) -> bool:
        return self._tx_depth > 0

    def lock_clause(self) -> str:
        # SQLite serializes writers through BEGIN IMMEDIATE; row locks only exist on postgres.
        return " FOR UPDATE" if self.backend == "postgres" else ""

    @contextlib.contextmanager
    def transaction(self) -> Iterator["Database"]:
        """Run the block as one atomic unit.

        Nested calls join the outermost transaction, so a materializer invoked
        from inside the acceptance transaction commits or aborts together with it.
        """
        if self._tx_depth:
            self._tx_depth += 1
            try:
                yield self
            finally:
                self._tx_depth -= 1
            return

        self.execute("BEGIN IMMEDIATE" if self.backend == "sqlite" else "BEGIN")
        self._tx_depth = 1
        try:
            yield self
        except BaseException:
            self._tx_depth = 0
            self._after_commit.clear()
            self.execute("ROLLBACK")
            raise
        self._tx_depth = 0
        try:
            self.execute("COMMIT")
        except BaseException:
            self._after_commit.clear()
            with contextlib.suppress(*database_errors()):
                self.execute("ROLLBACK")
            raise
        callbacks, self._after_commit = self._after_commit, []
        for callback in callbacks:
            callback()

    def on_commit(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` once the outermost transaction commits (immediately outside one)."""
        if self.in_transaction:
            self._after_commit.append(callback)
            return
        callback()

    def commit(self):
        if not self.in_transaction:
            self._conn.commit()

    def close(self):
        self._conn.close()


def integrity_errors() -> tuple:
    errors: List[type] = [sqlite3.IntegrityError]
    if psycopg2 is not None:
        errors.append(psycopg2.IntegrityError)
    return tuple(errors)


def database_errors() -> tuple:
    errors: List[type] = [sqlite3.Error]
    if psycopg2 is not None:
        errors.append(psycopg2.Error)
    return tuple(errors)


def _convert_qmark_to_pg(sql: str) -> str:
    return sql.replace("?", "%s")


def connect_database(db_path: str, timeout: float = 30.0) -> Database:
    if db_path.lower().startswith("postgres"):
        if psycopg2 is None:
            raise RuntimeError("psycopg2 is not installed.")
        conn = psycopg2.connect(db_path)
        conn.autocommit = True
        return Database("postgres", conn)

    # Autocommit mode: multi-statement units are opened explicitly by Database.transaction().
    conn = sqlite3.connect(db_path, timeout=timeout, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return Database("sqlite", conn)


def get_db():
    if "db" not in g:
        g.db = connect_database(
            current_app.config["DB_PATH"],
            timeout=float(current_app.config.get("SQLITE_BUSY_TIMEOUT_SECONDS", 30)),
        )
    return g.db


def close_db(_error=None):
    db = g.pop("db", None)
    if db is not None:
        db.close()


SCHEMA_STATEMENTS: List[str] = [
    """
    CREATE TABLE IF NOT EXISTS workspace_members (
        workspace_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        role TEXT NOT NULL DEFAULT 'member' CHECK (role IN ('admin','manager','member')),
        created_at TEXT NOT NULL,
        PRIMARY KEY (workspace_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS contacts (
        id TEXT PRIMARY KEY,
        workspace_id TEXT NOT NULL,
        user_id TEXT,
        name TEXT,
        email TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS prices (
        id TEXT PRIMARY KEY,
        workspace_id TEXT NOT NULL,
        price_type TEXT NOT NULL CHECK (price_type IN ('RENTAL','SALE','SERVICE')),
        name TEXT,
        unit_cost_in_cents INTEGER,
        price_per_day_in_cents INTEGER,
        price_per_week_in_cents INTEGER,
        price_per_month_in_cents INTEGER,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rfqs (
        id TEXT PRIMARY KEY,
        buyers_workspace_id TEXT NOT NULL,
        title TEXT,
        status TEXT NOT NULL DEFAULT 'DRAFT' CHECK (
            status IN ('DRAFT','SENT','ACCEPTED','REJECTED','CANCELLED','EXPIRED')
        ),
        invited_seller_contact_ids TEXT NOT NULL DEFAULT '[]',
        line_items TEXT NOT NULL DEFAULT '[]',
        response_deadline TEXT,
        created_by TEXT NOT NULL,
        updated_by TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS quotes (
        id TEXT PRIMARY KEY,
        rfq_id TEXT,
        seller_workspace_id TEXT NOT NULL,
        buyer_workspace_id TEXT,
        sellers_buyer_contact_id TEXT NOT NULL,
        sellers_project_id TEXT,
        status TEXT NOT NULL DEFAULT 'DRAFT' CHECK (
            status IN ('DRAFT','ACTIVE','ACCEPTED','REJECTED')
        ),
        current_revision_id TEXT,
        buyer_user_id TEXT,
        buyer_accepted_full_legal_name TEXT,
        approval_confirmation TEXT,
        accepted_by TEXT,
        accepted_at TEXT,
        rejected_by TEXT,
        rejected_at TEXT,
        created_by TEXT NOT NULL,
        updated_by TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS quote_revisions (
        id TEXT PRIMARY KEY,
        quote_id TEXT NOT NULL,
        revision_number INTEGER NOT NULL,
        status TEXT NOT NULL DEFAULT 'DRAFT' CHECK (status IN ('DRAFT','SENT')),
        valid_until TEXT,
        line_items TEXT NOT NULL DEFAULT '[]',
        has_unpriced_line_items INTEGER NOT NULL DEFAULT 0,
        created_by TEXT NOT NULL,
        updated_by TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (quote_id, revision_number)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sales_orders (
        id TEXT PRIMARY KEY,
        workspace_id TEXT NOT NULL,
        project_id TEXT,
        buyer_id TEXT,
        quote_id TEXT,
        quote_revision_id TEXT,
        status TEXT NOT NULL DEFAULT 'DRAFT' CHECK (status IN ('DRAFT','SUBMITTED')),
        created_by TEXT NOT NULL,
        updated_by TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sales_order_line_items (
        id TEXT PRIMARY KEY,
        sales_order_id TEXT NOT NULL REFERENCES sales_orders (id),
        position INTEGER NOT NULL,
        lineitem_type TEXT NOT NULL CHECK (lineitem_type IN ('RENTAL','SALE','SERVICE')),
        description TEXT,
        quantity INTEGER NOT NULL,
        pim_category_id TEXT,
        price_id TEXT,
        rental_start TEXT,
        rental_end TEXT,
        delivery_method TEXT,
        delivery_location TEXT,
        delivery_notes TEXT,
        quote_revision_line_item_id TEXT,
        intake_form_submission_line_item_id TEXT,
        status TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS purchase_orders (
        id TEXT PRIMARY KEY,
        workspace_id TEXT NOT NULL,
        project_id TEXT,
        seller_id TEXT,
        quote_id TEXT,
        quote_revision_id TEXT,
        status TEXT NOT NULL DEFAULT 'DRAFT' CHECK (status IN ('DRAFT','SUBMITTED')),
        created_by TEXT NOT NULL,
        updated_by TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS purchase_order_line_items (
        id TEXT PRIMARY KEY,
        purchase_order_id TEXT NOT NULL REFERENCES purchase_orders (id),
        position INTEGER NOT NULL,
        lineitem_type TEXT NOT NULL CHECK (lineitem_type IN ('RENTAL','SALE','SERVICE')),
        description TEXT,
        quantity INTEGER NOT NULL,
        pim_category_id TEXT,
        price_id TEXT,
        rental_start TEXT,
        rental_end TEXT,
        delivery_method TEXT,
        delivery_location TEXT,
        delivery_notes TEXT,
        quote_revision_line_item_id TEXT,
        intake_form_submission_line_item_id TEXT,
        status TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS inventory (
        id TEXT PRIMARY KEY,
        workspace_id TEXT NOT NULL,
        purchase_order_id TEXT NOT NULL,
        purchase_order_line_item_id TEXT NOT NULL,
        unit_index INTEGER NOT NULL,
        status TEXT NOT NULL DEFAULT 'ON_ORDER' CHECK (status IN ('ON_ORDER','RECEIVED')),
        is_third_party_rental INTEGER NOT NULL DEFAULT 0,
        pim_category_id TEXT,
        pim_product_id TEXT,
        created_by TEXT NOT NULL,
        updated_by TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (purchase_order_line_item_id, unit_index)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS status_events (
        id TEXT PRIMARY KEY,
        entity TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        from_status TEXT,
        to_status TEXT,
        reason TEXT,
        actor_id TEXT,
        occurred_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_rfqs_buyers_workspace ON rfqs (buyers_workspace_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_quotes_rfq_status ON quotes (rfq_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_quotes_seller_workspace ON quotes (seller_workspace_id)",
    "CREATE INDEX IF NOT EXISTS idx_quote_revisions_quote ON quote_revisions (quote_id)",
    "CREATE INDEX IF NOT EXISTS idx_so_line_items_order ON sales_order_line_items (sales_order_id, position)",
    "CREATE INDEX IF NOT EXISTS idx_po_line_items_order ON purchase_order_line_items (purchase_order_id, position)",
    "CREATE INDEX IF NOT EXISTS idx_inventory_purchase_order ON inventory (purchase_order_id)",
    "CREATE INDEX IF NOT EXISTS idx_status_events_entity ON status_events (entity, entity_id)",
    "CREATE INDEX IF NOT EXISTS idx_contacts_workspace ON contacts (workspace_id)",
]


def init_db(db: Database | None = None) -> None:
    db = db or get_db()
    for statement in SCHEMA_STATEMENTS:
        db.execute(statement)
    db.commit()
