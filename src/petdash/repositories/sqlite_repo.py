from __future__ import annotations

import json
import shutil
import sqlite3
import uuid
from datetime import date, datetime
from pathlib import Path
from typing import Iterable, Optional

from petdash.domain.models import (
    Campaign,
    Contact,
    ItemOption,
    LineItem,
    MonthlyKilos,
    ORDER_TYPE_WHOLESALE,
    Order,
    Outlet,
    PriceEntry,
)

ORDER_COLUMNS = (
    "id, created_at, order_type, status, total, items, same_day_delivery, payment_method, "
    "delivery_day, client_name, client_email, client_phone, punto_de_venta, whatsapp_contacted_at"
)
PRICE_COLUMNS = (
    "id, section, product, weight, price_type, price, is_active, effective_date, month, year, "
    "created_at, updated_at"
)
OUTLET_COLUMNS = (
    "id, name, zone, frequency, sales_start_date, has_freezer, freezer_capacity, business_type, "
    "contact, notes, active, created_at, updated_at"
)
OUTLET_UPDATABLE = {
    "name", "zone", "frequency", "sales_start_date", "has_freezer", "freezer_capacity",
    "business_type", "contact", "notes", "active",
}

# bank transfers are dispatched with the same-day fleet
CLIENT_TYPE_SQL = """
    CASE
        WHEN o.same_day_delivery = 1 OR o.payment_method = 'bank-transfer' THEN 'sameDay'
        WHEN o.order_type = 'mayorista' THEN 'mayorista'
        ELSE 'minorista'
    END
"""


def now_iso() -> str:
    return datetime.now().replace(microsecond=0).isoformat(sep=" ")


def _to_iso(value: datetime | date | str | None) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(microsecond=0).isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(str(value))


def _new_id() -> str:
    return uuid.uuid4().hex


class SqliteRepository:
    """Document-style storage on SQLite.

    Every collection is one table; nested parts of a document (order line
    items, outlet contact) live in JSON text columns and are read back
    schema-on-read.
    """

    def __init__(self, db_path: Path | str):
        self.db_path = str(db_path)

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def _fetchall(self, sql: str, params: Iterable = ()) -> list[sqlite3.Row]:
        conn = self._conn()
        try:
            return conn.execute(sql, tuple(params)).fetchall()
        finally:
            conn.close()

    def _fetchone(self, sql: str, params: Iterable = ()) -> Optional[sqlite3.Row]:
        conn = self._conn()
        try:
            return conn.execute(sql, tuple(params)).fetchone()
        finally:
            conn.close()

    def _execute(self, sql: str, params: Iterable = ()) -> int:
        conn = self._conn()
        try:
            cur = conn.execute(sql, tuple(params))
            conn.commit()
            return int(cur.rowcount)
        finally:
            conn.close()

    def init_db(self) -> None:
        self.run_migrations()

    def schema_version(self) -> int:
        try:
            row = self._fetchone("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
        except sqlite3.OperationalError:
            return 0
        return int(row[0])

    def run_migrations(self) -> None:
        migrations = [
            (1, self._migration_v1_collections),
            (2, self._migration_v2_analytics_indexes),
        ]
        current_version = self.schema_version()
        pending = [(v, m) for v, m in migrations if v > current_version]
        if not pending:
            return

        conn = self._conn()
        backup_path = self._create_pre_migration_backup()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")

            for version, migration in pending:
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
            conn.commit()
        except Exception as exc:
            conn.rollback()
            self._restore_pre_migration_backup(backup_path)
            raise RuntimeError(
                "Database migration failed. Original database restored from automatic backup."
            ) from exc
        finally:
            conn.close()

    def _create_pre_migration_backup(self) -> Path | None:
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        shutil.copy2(backup_path, self.db_path)

    def _migration_v1_collections(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS orders (
                id TEXT PRIMARY KEY,
                created_at TEXT NOT NULL,
                order_type TEXT NOT NULL CHECK(order_type IN ('minorista','mayorista')),
                status TEXT NOT NULL DEFAULT 'pending',
                total REAL NOT NULL DEFAULT 0,
                items TEXT NOT NULL DEFAULT '[]',
                same_day_delivery INTEGER NOT NULL DEFAULT 0,
                payment_method TEXT,
                delivery_day TEXT,
                client_name TEXT,
                client_email TEXT,
                client_phone TEXT,
                punto_de_venta TEXT,
                whatsapp_contacted_at TEXT
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS prices (
                id TEXT PRIMARY KEY,
                section TEXT NOT NULL,
                product TEXT NOT NULL,
                weight TEXT,
                price_type TEXT NOT NULL CHECK(price_type IN ('EFECTIVO','TRANSFERENCIA','MAYORISTA')),
                price REAL NOT NULL DEFAULT 0 CHECK(price >= 0),
                is_active INTEGER NOT NULL DEFAULT 1,
                effective_date TEXT NOT NULL,
                month INTEGER NOT NULL CHECK(month BETWEEN 1 AND 12),
                year INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS puntos_venta (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                zone TEXT NOT NULL,
                frequency TEXT NOT NULL,
                sales_start_date TEXT,
                has_freezer INTEGER NOT NULL DEFAULT 0,
                freezer_capacity REAL,
                business_type TEXT NOT NULL,
                contact TEXT NOT NULL DEFAULT '{}',
                notes TEXT,
                active INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS outlet_monthly_kilos (
                outlet_id TEXT NOT NULL,
                month INTEGER NOT NULL CHECK(month BETWEEN 1 AND 12),
                year INTEGER NOT NULL,
                kilos REAL NOT NULL DEFAULT 0,
                PRIMARY KEY (outlet_id, month, year),
                FOREIGN KEY(outlet_id) REFERENCES puntos_venta(id)
            )
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS scheduled_campaigns (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                channel TEXT NOT NULL CHECK(channel IN ('email','whatsapp')),
                schedule TEXT NOT NULL,
                segment TEXT NOT NULL,
                subject TEXT NOT NULL DEFAULT '',
                content TEXT NOT NULL,
                active INTEGER NOT NULL DEFAULT 1,
                last_sent_at TEXT
            )
            """
        )

    def _migration_v2_analytics_indexes(self, cur: sqlite3.Cursor) -> None:
        cur.execute("CREATE INDEX IF NOT EXISTS idx_orders_created_at ON orders(created_at)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_orders_outlet ON orders(order_type, punto_de_venta, created_at)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_orders_client_email ON orders(client_email)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_prices_type ON prices(price_type, is_active)")

    def integrity_check(self) -> str:
        row = self._fetchone("PRAGMA integrity_check")
        return str(row[0]) if row else "unknown"

    # ---------- Orders ----------
    @staticmethod
    def _items_to_json(items: Iterable[LineItem]) -> str:
        payload = []
        for it in items:
            doc: dict = {"id": it.id, "name": it.name, "price": it.price}
            if it.quantity is not None:
                doc["quantity"] = it.quantity
            if it.options is not None:
                doc["options"] = [
                    {"name": o.name, "price": o.price, "quantity": o.quantity} for o in it.options
                ]
            payload.append(doc)
        return json.dumps(payload, ensure_ascii=False)

    @staticmethod
    def _items_from_json(raw: Optional[str]) -> tuple[LineItem, ...]:
        items = []
        for doc in json.loads(raw or "[]"):
            if not isinstance(doc, dict):
                continue
            options = doc.get("options")
            items.append(
                LineItem(
                    id=str(doc.get("id") or ""),
                    name=str(doc.get("name") or ""),
                    options=(
                        tuple(
                            ItemOption(
                                name=str(o.get("name") or ""),
                                price=float(o.get("price") or 0),
                                quantity=(int(o["quantity"]) if o.get("quantity") is not None else None),
                            )
                            for o in options
                            if isinstance(o, dict)
                        )
                        if isinstance(options, list)
                        else None
                    ),
                    price=float(doc.get("price") or 0),
                    quantity=(int(doc["quantity"]) if doc.get("quantity") is not None else None),
                )
            )
        return tuple(items)

    def _row_to_order(self, r: sqlite3.Row) -> Order:
        return Order(
            id=str(r["id"]),
            created_at=_parse_dt(r["created_at"]),
            order_type=str(r["order_type"]),
            status=str(r["status"]),
            total=float(r["total"]),
            items=self._items_from_json(r["items"]),
            same_day_delivery=bool(r["same_day_delivery"]),
            payment_method=r["payment_method"],
            delivery_day=(date.fromisoformat(r["delivery_day"][:10]) if r["delivery_day"] else None),
            client_name=r["client_name"],
            client_email=r["client_email"],
            client_phone=r["client_phone"],
            punto_de_venta=r["punto_de_venta"],
            whatsapp_contacted_at=_parse_dt(r["whatsapp_contacted_at"]),
        )

    def insert_order(self, order: Order) -> str:
        order_id = order.id or _new_id()
        self._execute(
            f"INSERT INTO orders ({ORDER_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                order_id,
                _to_iso(order.created_at),
                order.order_type,
                order.status,
                float(order.total),
                self._items_to_json(order.items),
                int(bool(order.same_day_delivery)),
                order.payment_method,
                _to_iso(order.delivery_day),
                order.client_name,
                order.client_email,
                order.client_phone,
                order.punto_de_venta,
                _to_iso(order.whatsapp_contacted_at),
            ),
        )
        return order_id

    def get_order(self, order_id: str) -> Optional[Order]:
        r = self._fetchone(f"SELECT {ORDER_COLUMNS} FROM orders WHERE id = ?", (order_id,))
        return self._row_to_order(r) if r else None

    def list_orders(
        self,
        page_index: int = 0,
        page_size: int = 50,
        search: str = "",
        order_type: Optional[str] = None,
        start_iso: Optional[str] = None,
        end_iso: Optional[str] = None,
    ) -> tuple[list[Order], int]:
        where = ["1=1"]
        params: list = []
        if order_type:
            where.append("order_type = ?")
            params.append(order_type)
        if start_iso:
            where.append("created_at >= ?")
            params.append(start_iso)
        if end_iso:
            where.append("created_at < ?")
            params.append(end_iso)
        if search:
            like = f"%{search}%"
            where.append("(client_name LIKE ? OR client_email LIKE ? OR client_phone LIKE ? OR items LIKE ?)")
            params.extend([like, like, like, like])
        clause = " AND ".join(where)

        total = self._fetchone(f"SELECT COUNT(*) FROM orders WHERE {clause}", params)[0]
        rows = self._fetchall(
            f"SELECT {ORDER_COLUMNS} FROM orders WHERE {clause} ORDER BY created_at DESC LIMIT ? OFFSET ?",
            [*params, int(page_size), int(page_index) * int(page_size)],
        )
        return [self._row_to_order(r) for r in rows], int(total)

    def list_orders_between(self, start_iso: Optional[str], end_iso: Optional[str]) -> list[Order]:
        rows = self._fetchall(
            f"""
            SELECT {ORDER_COLUMNS} FROM orders
            WHERE (? IS NULL OR created_at >= ?) AND (? IS NULL OR created_at < ?)
            ORDER BY created_at
            """,
            (start_iso, start_iso, end_iso, end_iso),
        )
        return [self._row_to_order(r) for r in rows]

    def update_order_status(self, order_id: str, status: str) -> bool:
        return self._execute("UPDATE orders SET status = ? WHERE id = ?", (status, order_id)) > 0

    def set_whatsapp_contacted(self, client_emails: list[str], contacted_at: Optional[str]) -> int:
        if not client_emails:
            return 0
        marks = ",".join("?" for _ in client_emails)
        return self._execute(
            f"UPDATE orders SET whatsapp_contacted_at = ? WHERE client_email IN ({marks})",
            (contacted_at, *client_emails),
        )

    def whatsapp_contact_status(self, client_emails: list[str]) -> list[tuple[str, Optional[datetime]]]:
        if not client_emails:
            return []
        marks = ",".join("?" for _ in client_emails)
        rows = self._fetchall(
            f"""
            SELECT client_email, MAX(whatsapp_contacted_at) AS contacted_at
            FROM orders
            WHERE client_email IN ({marks})
            GROUP BY client_email
            """,
            client_emails,
        )
        return [(str(r["client_email"]), _parse_dt(r["contacted_at"])) for r in rows]

    def wholesale_orders_by_outlet(
        self,
        outlet_ids: list[str],
        start_iso: Optional[str] = None,
        end_iso: Optional[str] = None,
    ) -> dict[str, list[Order]]:
        """One query for every outlet; each list is oldest-first."""
        grouped: dict[str, list[Order]] = {oid: [] for oid in outlet_ids}
        if not outlet_ids:
            return grouped
        marks = ",".join("?" for _ in outlet_ids)
        rows = self._fetchall(
            f"""
            SELECT {ORDER_COLUMNS} FROM orders
            WHERE order_type = ? AND punto_de_venta IN ({marks})
              AND (? IS NULL OR created_at >= ?) AND (? IS NULL OR created_at < ?)
            ORDER BY punto_de_venta, created_at ASC
            """,
            (ORDER_TYPE_WHOLESALE, *outlet_ids, start_iso, start_iso, end_iso, end_iso),
        )
        for r in rows:
            grouped[str(r["punto_de_venta"])].append(self._row_to_order(r))
        return grouped

    def delivery_type_stats_by_month(self, start_iso: Optional[str], end_iso: Optional[str]) -> list[sqlite3.Row]:
        return self._fetchall(
            """
            SELECT substr(created_at, 1, 7) AS month,
                   SUM(CASE WHEN same_day_delivery = 1 AND order_type <> 'mayorista' THEN 1 ELSE 0 END) AS same_day_orders,
                   SUM(CASE WHEN same_day_delivery = 0 AND order_type <> 'mayorista' THEN 1 ELSE 0 END) AS normal_orders,
                   SUM(CASE WHEN order_type = 'mayorista' THEN 1 ELSE 0 END) AS wholesale_orders,
                   COALESCE(SUM(CASE WHEN same_day_delivery = 1 AND order_type <> 'mayorista' THEN total END), 0) AS same_day_revenue,
                   COALESCE(SUM(CASE WHEN same_day_delivery = 0 AND order_type <> 'mayorista' THEN total END), 0) AS normal_revenue,
                   COALESCE(SUM(CASE WHEN order_type = 'mayorista' THEN total END), 0) AS wholesale_revenue
            FROM orders
            WHERE (? IS NULL OR created_at >= ?) AND (? IS NULL OR created_at <= ?)
            GROUP BY month
            ORDER BY month
            """,
            (start_iso, start_iso, end_iso, end_iso),
        )

    def quantity_rows_by_month(self, start_iso: Optional[str], end_iso: Optional[str]) -> list[sqlite3.Row]:
        """Unwinds items and options; one row per month, client type, product and option.

        Bounds compare on the calendar day since ``delivery_day`` holds a bare date.
        """
        return self._fetchall(
            f"""
            SELECT substr(COALESCE(o.delivery_day, o.created_at), 1, 7) AS month,
                   {CLIENT_TYPE_SQL} AS client_type,
                   json_extract(i.value, '$.name') AS product_name,
                   COALESCE(json_extract(opt.value, '$.name'), '') AS option_name,
                   SUM(COALESCE(json_extract(i.value, '$.quantity'), json_extract(opt.value, '$.quantity'), 0)) AS quantity
            FROM orders o
            JOIN json_each(o.items) i
            LEFT JOIN json_each(i.value, '$.options') opt
            WHERE (? IS NULL OR substr(COALESCE(o.delivery_day, o.created_at), 1, 10) >= substr(?, 1, 10))
              AND (? IS NULL OR substr(COALESCE(o.delivery_day, o.created_at), 1, 10) <= substr(?, 1, 10))
            GROUP BY month, client_type, product_name, option_name
            ORDER BY month
            """,
            (start_iso, start_iso, end_iso, end_iso),
        )

    def product_sales_between(self, start_iso: Optional[str], end_iso: Optional[str], limit: int = 20) -> list[sqlite3.Row]:
        return self._fetchall(
            """
            SELECT json_extract(i.value, '$.name') AS product,
                   SUM(COALESCE(json_extract(opt.value, '$.quantity'), 1)) AS units,
                   SUM(COALESCE(json_extract(opt.value, '$.price'), json_extract(i.value, '$.price'), 0)
                       * COALESCE(json_extract(opt.value, '$.quantity'), 1)) AS revenue
            FROM orders o
            JOIN json_each(o.items) i
            LEFT JOIN json_each(i.value, '$.options') opt
            WHERE o.status <> 'cancelled'
              AND (? IS NULL OR o.created_at >= ?) AND (? IS NULL OR o.created_at < ?)
            GROUP BY product
            ORDER BY units DESC, product
            LIMIT ?
            """,
            (start_iso, start_iso, end_iso, end_iso, int(limit)),
        )

    def revenue_by_day(self, start_iso: str, end_iso: str) -> list[sqlite3.Row]:
        return self._fetchall(
            """
            SELECT substr(created_at, 1, 10) AS day,
                   COALESCE(SUM(total), 0) AS revenue,
                   COUNT(*) AS orders
            FROM orders
            WHERE created_at >= ? AND created_at < ? AND status <> 'cancelled'
            GROUP BY day
            ORDER BY day
            """,
            (start_iso, end_iso),
        )

    def orders_summary_between(self, start_iso: str, end_iso: str) -> tuple[int, float]:
        r = self._fetchone(
            """
            SELECT COUNT(*), COALESCE(SUM(total), 0)
            FROM orders
            WHERE created_at >= ? AND created_at < ? AND status <> 'cancelled'
            """,
            (start_iso, end_iso),
        )
        return int(r[0]), float(r[1])

    def client_rows(self) -> list[sqlite3.Row]:
        return self._fetchall(
            """
            SELECT client_email AS email,
                   MAX(client_name) AS name,
                   MAX(client_phone) AS phone,
                   COUNT(*) AS total_orders,
                   COALESCE(SUM(total), 0) AS total_spent,
                   MIN(created_at) AS first_order_at,
                   MAX(created_at) AS last_order_at,
                   MAX(whatsapp_contacted_at) AS whatsapp_contacted_at
            FROM orders
            WHERE client_email IS NOT NULL AND client_email <> ''
              AND order_type = 'minorista' AND status <> 'cancelled'
            GROUP BY client_email
            ORDER BY total_spent DESC
            """
        )

    # ---------- Prices ----------
    def _row_to_price(self, r: sqlite3.Row) -> PriceEntry:
        return PriceEntry(
            id=str(r["id"]),
            section=str(r["section"]),
            product=str(r["product"]),
            weight=r["weight"],
            price_type=str(r["price_type"]),
            price=float(r["price"]),
            is_active=bool(r["is_active"]),
            effective_date=str(r["effective_date"]),
            month=int(r["month"]),
            year=int(r["year"]),
            created_at=str(r["created_at"]),
            updated_at=str(r["updated_at"]),
        )

    def insert_prices(self, entries: Iterable[dict]) -> list[str]:
        conn = self._conn()
        ids: list[str] = []
        try:
            for e in entries:
                pid = e.get("id") or _new_id()
                conn.execute(
                    f"INSERT INTO prices ({PRICE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        pid, e["section"], e["product"], e.get("weight"), e["price_type"],
                        float(e.get("price", 0)), int(bool(e.get("is_active", True))),
                        e["effective_date"], int(e["month"]), int(e["year"]),
                        e["created_at"], e["updated_at"],
                    ),
                )
                ids.append(pid)
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            raise
        finally:
            conn.close()
        return ids

    def get_price(self, price_id: str) -> Optional[PriceEntry]:
        r = self._fetchone(f"SELECT {PRICE_COLUMNS} FROM prices WHERE id = ?", (price_id,))
        return self._row_to_price(r) if r else None

    def update_price(self, price_id: str, price: float, is_active: bool, updated_at: str) -> bool:
        return self._execute(
            "UPDATE prices SET price = ?, is_active = ?, updated_at = ? WHERE id = ?",
            (float(price), int(bool(is_active)), updated_at, price_id),
        ) > 0

    def delete_price(self, price_id: str) -> bool:
        return self._execute("DELETE FROM prices WHERE id = ?", (price_id,)) > 0

    def list_prices(self, **filters) -> list[PriceEntry]:
        where = ["1=1"]
        params: list = []
        for column in ("section", "product", "price_type", "month", "year", "effective_date"):
            if filters.get(column) is not None:
                where.append(f"{column} = ?")
                params.append(filters[column])
        if "weight" in filters:
            where.append("weight IS ?")
            params.append(filters["weight"])
        if filters.get("is_active") is not None:
            where.append("is_active = ?")
            params.append(int(bool(filters["is_active"])))
        rows = self._fetchall(
            f"""
            SELECT {PRICE_COLUMNS} FROM prices
            WHERE {' AND '.join(where)}
            ORDER BY section, product, weight, price_type, effective_date DESC, created_at DESC
            """,
            params,
        )
        return [self._row_to_price(r) for r in rows]

    def current_prices(self, price_type: Optional[str] = None, effective_until: Optional[str] = None) -> list[PriceEntry]:
        """Latest active row per section/product/weight/type, optionally as of a day."""
        rows = self._fetchall(
            f"""
            SELECT {PRICE_COLUMNS} FROM (
                SELECT p.*, ROW_NUMBER() OVER (
                    PARTITION BY section, product, IFNULL(weight, ''), price_type
                    ORDER BY effective_date DESC, created_at DESC
                ) AS rn
                FROM prices p
                WHERE is_active = 1
                  AND (? IS NULL OR price_type = ?)
                  AND (? IS NULL OR substr(effective_date, 1, 10) <= ?)
            )
            WHERE rn = 1
            ORDER BY section, product, weight, price_type
            """,
            (price_type, price_type, effective_until, effective_until),
        )
        return [self._row_to_price(r) for r in rows]

    def count_prices_for_period(self, month: int, year: int) -> int:
        return int(self._fetchone("SELECT COUNT(*) FROM prices WHERE month = ? AND year = ?", (int(month), int(year)))[0])

    def price_group_counts(self, column: str) -> dict[str, int]:
        if column not in ("section", "price_type"):
            raise ValueError(f"Unsupported price grouping: {column}")
        rows = self._fetchall(f"SELECT {column} AS k, COUNT(*) AS n FROM prices WHERE is_active = 1 GROUP BY {column}")
        return {str(r["k"]): int(r["n"]) for r in rows}

    def average_price_by_section(self) -> dict[str, float]:
        rows = self._fetchall("SELECT section, AVG(price) AS avg_price FROM prices WHERE is_active = 1 GROUP BY section")
        return {str(r["section"]): round(float(r["avg_price"]), 2) for r in rows}

    def recent_prices(self, limit: int = 10) -> list[PriceEntry]:
        rows = self._fetchall(f"SELECT {PRICE_COLUMNS} FROM prices ORDER BY created_at DESC LIMIT ?", (int(limit),))
        return [self._row_to_price(r) for r in rows]

    # ---------- Outlets ----------
    def _row_to_outlet(self, r: sqlite3.Row, ledger: tuple[MonthlyKilos, ...] = ()) -> Outlet:
        contact = json.loads(r["contact"] or "{}")
        return Outlet(
            id=str(r["id"]),
            name=str(r["name"]),
            zone=str(r["zone"]),
            frequency=str(r["frequency"]),
            sales_start_date=r["sales_start_date"],
            has_freezer=bool(r["has_freezer"]),
            freezer_capacity=(float(r["freezer_capacity"]) if r["freezer_capacity"] is not None else None),
            business_type=str(r["business_type"]),
            contact=Contact(
                phone=contact.get("phone"),
                email=contact.get("email"),
                address=contact.get("address"),
            ),
            notes=r["notes"],
            active=bool(r["active"]),
            monthly_kilos=ledger,
            created_at=r["created_at"],
            updated_at=r["updated_at"],
        )

    def _ledgers_for(self, outlet_ids: list[str]) -> dict[str, tuple[MonthlyKilos, ...]]:
        if not outlet_ids:
            return {}
        marks = ",".join("?" for _ in outlet_ids)
        rows = self._fetchall(
            f"SELECT outlet_id, month, year, kilos FROM outlet_monthly_kilos WHERE outlet_id IN ({marks}) ORDER BY year, month",
            outlet_ids,
        )
        out: dict[str, list[MonthlyKilos]] = {}
        for r in rows:
            out.setdefault(str(r["outlet_id"]), []).append(
                MonthlyKilos(month=int(r["month"]), year=int(r["year"]), kilos=float(r["kilos"]))
            )
        return {k: tuple(v) for k, v in out.items()}

    def insert_outlet(self, data: dict) -> str:
        outlet_id = _new_id()
        ts = now_iso()
        self._execute(
            f"INSERT INTO puntos_venta ({OUTLET_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?)",
            (
                outlet_id,
                data["name"],
                data["zone"],
                data["frequency"],
                _to_iso(data.get("sales_start_date")),
                int(bool(data.get("has_freezer"))),
                data.get("freezer_capacity"),
                data["business_type"],
                json.dumps(data.get("contact") or {}, ensure_ascii=False),
                data.get("notes"),
                ts,
                ts,
            ),
        )
        return outlet_id

    def get_outlet(self, outlet_id: str) -> Optional[Outlet]:
        r = self._fetchone(f"SELECT {OUTLET_COLUMNS} FROM puntos_venta WHERE id = ?", (outlet_id,))
        if not r:
            return None
        return self._row_to_outlet(r, self._ledgers_for([outlet_id]).get(outlet_id, ()))

    def list_outlets(
        self,
        active: Optional[bool] = True,
        zone: Optional[str] = None,
        search: str = "",
        page_index: int = 0,
        page_size: Optional[int] = None,
    ) -> tuple[list[Outlet], int]:
        where = ["1=1"]
        params: list = []
        if active is not None:
            where.append("active = ?")
            params.append(int(bool(active)))
        if zone:
            where.append("zone = ?")
            params.append(zone)
        if search:
            like = f"%{search}%"
            where.append(
                "(name LIKE ? OR json_extract(contact, '$.phone') LIKE ? OR json_extract(contact, '$.email') LIKE ?)"
            )
            params.extend([like, like, like])
        clause = " AND ".join(where)

        total = int(self._fetchone(f"SELECT COUNT(*) FROM puntos_venta WHERE {clause}", params)[0])
        sql = f"SELECT {OUTLET_COLUMNS} FROM puntos_venta WHERE {clause} ORDER BY name"
        if page_size is not None:
            sql += " LIMIT ? OFFSET ?"
            params.extend([int(page_size), int(page_index) * int(page_size)])
        rows = self._fetchall(sql, params)
        ledgers = self._ledgers_for([str(r["id"]) for r in rows])
        return [self._row_to_outlet(r, ledgers.get(str(r["id"]), ())) for r in rows], total

    def update_outlet(self, outlet_id: str, fields: dict) -> bool:
        unknown = set(fields) - OUTLET_UPDATABLE
        if unknown:
            raise ValueError(f"Unknown outlet fields: {sorted(unknown)}")
        values = dict(fields)
        if "contact" in values:
            values["contact"] = json.dumps(values["contact"] or {}, ensure_ascii=False)
        for flag in ("has_freezer", "active"):
            if flag in values:
                values[flag] = int(bool(values[flag]))
        if "sales_start_date" in values:
            values["sales_start_date"] = _to_iso(values["sales_start_date"])
        values["updated_at"] = now_iso()
        assignments = ", ".join(f"{k} = ?" for k in values)
        return self._execute(
            f"UPDATE puntos_venta SET {assignments} WHERE id = ?",
            (*values.values(), outlet_id),
        ) > 0

    def upsert_monthly_kilos(self, outlet_id: str, month: int, year: int, kilos: float) -> None:
        conn = self._conn()
        try:
            conn.execute(
                """
                INSERT INTO outlet_monthly_kilos (outlet_id, month, year, kilos) VALUES (?, ?, ?, ?)
                ON CONFLICT(outlet_id, month, year) DO UPDATE SET kilos = excluded.kilos
                """,
                (outlet_id, int(month), int(year), float(kilos)),
            )
            conn.execute("UPDATE puntos_venta SET updated_at = ? WHERE id = ?", (now_iso(), outlet_id))
            conn.commit()
        finally:
            conn.close()

    def upsert_monthly_kilos_many(self, rows: Iterable[tuple[str, int, int, float]]) -> int:
        """Write several (outlet_id, month, year, kilos) entries; all or none."""
        rows = [(str(oid), int(m), int(y), float(k)) for oid, m, y, k in rows]
        conn = self._conn()
        try:
            conn.executemany(
                """
                INSERT INTO outlet_monthly_kilos (outlet_id, month, year, kilos) VALUES (?, ?, ?, ?)
                ON CONFLICT(outlet_id, month, year) DO UPDATE SET kilos = excluded.kilos
                """,
                rows,
            )
            ts = now_iso()
            conn.executemany("UPDATE puntos_venta SET updated_at = ? WHERE id = ?", [(ts, r[0]) for r in rows])
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            raise
        finally:
            conn.close()
        return len(rows)

    def zone_volume(self, month: int, year: int) -> list[sqlite3.Row]:
        return self._fetchall(
            """
            SELECT pv.zone AS zone,
                   COUNT(*) AS total_outlets,
                   COALESCE(SUM(k.kilos), 0) AS total_kilos
            FROM puntos_venta pv
            LEFT JOIN outlet_monthly_kilos k
                   ON k.outlet_id = pv.id AND k.month = ? AND k.year = ?
            WHERE pv.active = 1
            GROUP BY pv.zone
            ORDER BY pv.zone
            """,
            (int(month), int(year)),
        )

    # ---------- Campaigns ----------
    def _row_to_campaign(self, r: sqlite3.Row) -> Campaign:
        return Campaign(
            id=str(r["id"]),
            name=str(r["name"]),
            channel=str(r["channel"]),
            schedule=str(r["schedule"]),
            segment=str(r["segment"]),
            subject=str(r["subject"]),
            content=str(r["content"]),
            active=bool(r["active"]),
            last_sent_at=_parse_dt(r["last_sent_at"]),
        )

    def insert_campaign(self, data: dict) -> str:
        campaign_id = _new_id()
        self._execute(
            """
            INSERT INTO scheduled_campaigns (id, name, channel, schedule, segment, subject, content, active)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                campaign_id,
                data["name"],
                data["channel"],
                data["schedule"],
                data["segment"],
                data.get("subject", ""),
                data["content"],
                int(bool(data.get("active", True))),
            ),
        )
        return campaign_id

    def get_campaign(self, campaign_id: str) -> Optional[Campaign]:
        r = self._fetchone("SELECT * FROM scheduled_campaigns WHERE id = ?", (campaign_id,))
        return self._row_to_campaign(r) if r else None

    def list_active_campaigns(self) -> list[Campaign]:
        rows = self._fetchall("SELECT * FROM scheduled_campaigns WHERE active = 1 ORDER BY name")
        return [self._row_to_campaign(r) for r in rows]

    def mark_campaign_sent(self, campaign_id: str, sent_at: datetime) -> None:
        self._execute(
            "UPDATE scheduled_campaigns SET last_sent_at = ? WHERE id = ?",
            (_to_iso(sent_at), campaign_id),
        )
