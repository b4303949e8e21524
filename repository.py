# repository.py
# PostgreSQL 存取層：使用者 (Credential Store) 與訂單 (Order Repository)。
# 所有 SQL 都集中在這裡，核心流程 (lifecycle.py) 只呼叫這些方法。
import logging
from contextlib import asynccontextmanager

import psycopg
from fastapi import Depends

from db import getDB
from errors import ConflictState, StorageFailure
from models import Order, OrderStatus, OrderView, Role, User, WorkType

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _cursor(conn, action: str):
    """
    借出 cursor，並把 psycopg 的錯誤統一轉成 StorageFailure。
    action 只用在 log，方便追查是哪個操作失敗。
    """
    try:
        async with conn.cursor() as cur:
            yield cur
    except psycopg.Error as e:
        logger.error("Storage error during %s: %s", action, e)
        raise StorageFailure() from e


# =========================================================
# 第一部分：使用者
# =========================================================

USER_COLUMNS = "id, email, password_digest, role, name, phone, area, tools, created_at"


class UserRepository:
    def __init__(self, conn):
        self.conn = conn

    async def create(
        self,
        *,
        email: str,
        password_digest: str,
        role: Role,
        name: str,
        phone: str | None = None,
        area: str | None = None,
        tools: list[str] | None = None,
    ) -> User:
        async with _cursor(self.conn, "create user") as cur:
            try:
                await cur.execute(
                    f"""
                    INSERT INTO users (email, password_digest, role, name, phone, area, tools)
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    RETURNING {USER_COLUMNS}
                    """,
                    (email, password_digest, role.value, name, phone, area, tools or []),
                )
            except psycopg.errors.UniqueViolation as e:
                # email 欄位有 UNIQUE 限制
                await self.conn.rollback()
                raise ConflictState("Email is already registered") from e
            row = await cur.fetchone()
            await self.conn.commit()
        return User.model_validate(row)

    async def get(self, user_id: int) -> User | None:
        async with _cursor(self.conn, "get user") as cur:
            await cur.execute(f"SELECT {USER_COLUMNS} FROM users WHERE id = %s", (user_id,))
            row = await cur.fetchone()
        return User.model_validate(row) if row else None

    async def get_by_email(self, email: str) -> User | None:
        # email 比對區分大小寫，與註冊時存入的字串完全一致才算
        async with _cursor(self.conn, "get user by email") as cur:
            await cur.execute(f"SELECT {USER_COLUMNS} FROM users WHERE email = %s", (email,))
            row = await cur.fetchone()
        return User.model_validate(row) if row else None

    async def list_by_role(self, role: Role) -> list[User]:
        async with _cursor(self.conn, "list users") as cur:
            await cur.execute(
                f"SELECT {USER_COLUMNS} FROM users WHERE role = %s ORDER BY created_at DESC, id DESC",
                (role.value,),
            )
            rows = await cur.fetchall()
        return [User.model_validate(r) for r in rows]


# =========================================================
# 第二部分：訂單
# =========================================================

ORDER_COLUMNS = """
    o.id, o.customer_id, o.worker_id, o.work_type, o.description, o.address,
    o.latitude, o.longitude, o.has_tools, o.photo_refs, o.status,
    o.estimated_price, o.rating, o.feedback, o.created_at, o.updated_at
"""

# 單純的 RETURNING 不能帶別名 o.，所以另外列一份
RETURNING_COLUMNS = ORDER_COLUMNS.replace("o.", "")

CUSTOMER_FIELDS = "c.name AS customer_name, c.email AS customer_email, c.phone AS customer_phone"
WORKER_FIELDS = "w.name AS worker_name, w.email AS worker_email, w.phone AS worker_phone"


class OrderRepository:
    def __init__(self, conn):
        self.conn = conn

    async def create(
        self,
        *,
        customer_id: int,
        work_type: WorkType,
        address: str,
        estimated_price: float,
        description: str | None = None,
        latitude: float | None = None,
        longitude: float | None = None,
        has_tools: bool = False,
        photo_refs: list[str] | None = None,
    ) -> Order:
        async with _cursor(self.conn, "create order") as cur:
            await cur.execute(
                f"""
                INSERT INTO orders (
                    customer_id, work_type, description, address, latitude, longitude,
                    has_tools, photo_refs, estimated_price
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING {RETURNING_COLUMNS}
                """,
                (
                    customer_id, work_type.value, description, address, latitude, longitude,
                    has_tools, photo_refs or [], estimated_price,
                ),
            )
            row = await cur.fetchone()
            await self.conn.commit()
        return Order.model_validate(row)

    async def get(self, order_id: int) -> Order | None:
        async with _cursor(self.conn, "get order") as cur:
            await cur.execute(f"SELECT {ORDER_COLUMNS} FROM orders o WHERE o.id = %s", (order_id,))
            row = await cur.fetchone()
        return Order.model_validate(row) if row else None

    # --- 狀態轉換 ---
    # 每個轉換都是「一條」帶條件的 UPDATE，檢查與寫入在資料庫裡是原子操作。
    # 條件不成立時回傳 None，由呼叫端再查一次決定是哪種錯誤。

    async def accept(self, order_id: int, worker_id: int) -> Order | None:
        # 兩個工作者同時搶單時，第二條 UPDATE 會等第一條 commit，
        # 之後重新檢查 status = 'pending' 已不成立，影響筆數為 0
        async with _cursor(self.conn, "accept order") as cur:
            await cur.execute(
                f"""
                UPDATE orders
                SET worker_id = %s, status = 'accepted', updated_at = NOW()
                WHERE id = %s AND status = 'pending'
                RETURNING {RETURNING_COLUMNS}
                """,
                (worker_id, order_id),
            )
            row = await cur.fetchone()
            await self.conn.commit()
        return Order.model_validate(row) if row else None

    async def complete(self, order_id: int, worker_id: int) -> Order | None:
        async with _cursor(self.conn, "complete order") as cur:
            await cur.execute(
                f"""
                UPDATE orders
                SET status = 'completed', updated_at = NOW()
                WHERE id = %s AND worker_id = %s AND status = 'accepted'
                RETURNING {RETURNING_COLUMNS}
                """,
                (order_id, worker_id),
            )
            row = await cur.fetchone()
            await self.conn.commit()
        return Order.model_validate(row) if row else None

    async def rate(self, order_id: int, customer_id: int, rating: int, feedback: str | None) -> Order | None:
        # rating IS NULL：第一次評價之後就不能再改
        async with _cursor(self.conn, "rate order") as cur:
            await cur.execute(
                f"""
                UPDATE orders
                SET rating = %s, feedback = %s, updated_at = NOW()
                WHERE id = %s AND customer_id = %s AND status = 'completed' AND rating IS NULL
                RETURNING {RETURNING_COLUMNS}
                """,
                (rating, feedback, order_id, customer_id),
            )
            row = await cur.fetchone()
            await self.conn.commit()
        return Order.model_validate(row) if row else None

    # --- 查詢 ---

    async def _fetch_views(self, sql: str, params: tuple, action: str) -> list[OrderView]:
        async with _cursor(self.conn, action) as cur:
            await cur.execute(sql, params)
            rows = await cur.fetchall()
        return [OrderView.model_validate(r) for r in rows]

    async def list_by_status(self, status: OrderStatus) -> list[OrderView]:
        return await self._fetch_views(
            f"""
            SELECT {ORDER_COLUMNS}, c.name AS customer_name, c.phone AS customer_phone
            FROM orders o
            JOIN users c ON o.customer_id = c.id
            WHERE o.status = %s
            ORDER BY o.created_at DESC, o.id DESC
            """,
            (status.value,),
            "list orders by status",
        )

    async def list_for_customer(self, customer_id: int) -> list[OrderView]:
        return await self._fetch_views(
            f"""
            SELECT {ORDER_COLUMNS}, w.name AS worker_name, w.phone AS worker_phone
            FROM orders o
            LEFT JOIN users w ON o.worker_id = w.id
            WHERE o.customer_id = %s
            ORDER BY o.created_at DESC, o.id DESC
            """,
            (customer_id,),
            "list customer orders",
        )

    async def list_for_worker(self, worker_id: int) -> list[OrderView]:
        return await self._fetch_views(
            f"""
            SELECT {ORDER_COLUMNS}, c.name AS customer_name, c.phone AS customer_phone
            FROM orders o
            JOIN users c ON o.customer_id = c.id
            WHERE o.worker_id = %s
            ORDER BY o.created_at DESC, o.id DESC
            """,
            (worker_id,),
            "list worker orders",
        )

    async def list_all(self) -> list[OrderView]:
        return await self._fetch_views(
            f"""
            SELECT {ORDER_COLUMNS}, {CUSTOMER_FIELDS}, {WORKER_FIELDS}
            FROM orders o
            JOIN users c ON o.customer_id = c.id
            LEFT JOIN users w ON o.worker_id = w.id
            ORDER BY o.created_at DESC, o.id DESC
            """,
            (),
            "list all orders",
        )


# --- FastAPI 依賴函式 ---
# 測試時用 app.dependency_overrides 換成記憶體版本

async def get_user_repository(conn=Depends(getDB)) -> UserRepository:
    return UserRepository(conn)


async def get_order_repository(conn=Depends(getDB)) -> OrderRepository:
    return OrderRepository(conn)
