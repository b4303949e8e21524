# init_db.py
import logging
import os

import psycopg

# 從 db.py 匯入連線參數
from db import DATABASE_URL
from security import hash_password

logger = logging.getLogger(__name__)

# 預設管理員帳號 (正式上線請用環境變數改掉密碼)
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@rychleryce.cz")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123")
ADMIN_NAME = os.getenv("ADMIN_NAME", "Administrator")

# 定義初始化 SQL 指令
# 使用 IF NOT EXISTS 避免重複建立錯誤
INIT_SQL = """
-- 1. 建立列舉類型 (Enum Types) - 統一管理角色、狀態與工作類型
DO $$ BEGIN
    IF NOT EXISTS (SELECT 1 FROM pg_type WHERE typname = 'user_role') THEN
        CREATE TYPE user_role AS ENUM ('customer', 'worker', 'admin');
    END IF;
    IF NOT EXISTS (SELECT 1 FROM pg_type WHERE typname = 'order_status') THEN
        CREATE TYPE order_status AS ENUM ('pending', 'accepted', 'completed', 'cancelled');
    END IF;
    IF NOT EXISTS (SELECT 1 FROM pg_type WHERE typname = 'work_type') THEN
        CREATE TYPE work_type AS ENUM ('mowing', 'tree_trimming', 'fence_painting', 'other');
    END IF;
END $$;

-- 2. 建立使用者表 (users)
CREATE TABLE IF NOT EXISTS users (
    id SERIAL PRIMARY KEY,
    email VARCHAR(255) NOT NULL UNIQUE,
    password_digest VARCHAR(255) NOT NULL,
    role user_role NOT NULL,
    name VARCHAR(255) NOT NULL,
    phone VARCHAR(50),
    area VARCHAR(255),                    -- 工作者的服務區域
    tools TEXT[] NOT NULL DEFAULT '{}',   -- 工作者自備的工具
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

-- 3. 建立訂單表 (orders)
CREATE TABLE IF NOT EXISTS orders (
    id SERIAL PRIMARY KEY,
    customer_id INT NOT NULL REFERENCES users(id),
    worker_id INT REFERENCES users(id),   -- 接單後才有值
    work_type work_type NOT NULL,
    description TEXT,
    address TEXT NOT NULL,
    latitude DOUBLE PRECISION,
    longitude DOUBLE PRECISION,
    has_tools BOOLEAN NOT NULL DEFAULT FALSE,
    photo_refs TEXT[] NOT NULL DEFAULT '{}' CHECK (cardinality(photo_refs) <= 3),
    status order_status NOT NULL DEFAULT 'pending',
    estimated_price DOUBLE PRECISION NOT NULL,
    rating INT CHECK (rating BETWEEN 1 AND 5),
    feedback TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CHECK (rating IS NULL OR status = 'completed'),
    CHECK (status = 'pending' OR status = 'cancelled' OR worker_id IS NOT NULL)
);

-- 4. 不可變欄位：角色與估價建立後不能再改
CREATE OR REPLACE FUNCTION forbid_role_change() RETURNS trigger AS $$
BEGIN
    IF NEW.role <> OLD.role THEN
        RAISE EXCEPTION 'user role is immutable';
    END IF;
    RETURN NEW;
END;
$$ LANGUAGE plpgsql;

DROP TRIGGER IF EXISTS users_role_immutable ON users;
CREATE TRIGGER users_role_immutable BEFORE UPDATE ON users
    FOR EACH ROW EXECUTE FUNCTION forbid_role_change();

CREATE OR REPLACE FUNCTION forbid_price_change() RETURNS trigger AS $$
BEGIN
    IF NEW.estimated_price <> OLD.estimated_price THEN
        RAISE EXCEPTION 'estimated_price is immutable';
    END IF;
    RETURN NEW;
END;
$$ LANGUAGE plpgsql;

DROP TRIGGER IF EXISTS orders_price_immutable ON orders;
CREATE TRIGGER orders_price_immutable BEFORE UPDATE ON orders
    FOR EACH ROW EXECUTE FUNCTION forbid_price_change();

-- 建立索引以加速查詢
CREATE INDEX IF NOT EXISTS idx_orders_status ON orders(status);
CREATE INDEX IF NOT EXISTS idx_orders_customer ON orders(customer_id);
CREATE INDEX IF NOT EXISTS idx_orders_worker ON orders(worker_id);
"""


def init_database(conninfo: str | None = None):
    """
    執行資料庫初始化：
    1. 建立列舉、表格、觸發器與索引。
    2. 如果還沒有管理員帳號，就建立一個。

    這裡使用同步連線，因為初始化只在伺服器啟動時執行一次。
    conninfo 沒給時使用 db.py 的 DATABASE_URL。
    失敗時直接拋出例外，讓伺服器不要在資料庫壞掉的狀態下啟動。
    """
    logger.info("Checking database schema")
    with psycopg.connect(conninfo or DATABASE_URL) as conn:
        with conn.cursor() as cur:
            cur.execute(INIT_SQL)

            # 建立管理員帳號 (email 已存在就略過)
            cur.execute(
                """
                INSERT INTO users (email, password_digest, role, name)
                VALUES (%s, %s, 'admin', %s)
                ON CONFLICT (email) DO NOTHING
                """,
                (ADMIN_EMAIL, hash_password(ADMIN_PASSWORD), ADMIN_NAME),
            )
            if cur.rowcount:
                logger.info("Admin account created: %s", ADMIN_EMAIL)
        conn.commit()
    logger.info("Database initialized")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_database()
