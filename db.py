# db.py
import asyncio
import logging
import os

import psycopg
from psycopg_pool import AsyncConnectionPool
from psycopg.rows import dict_row

from errors import StorageFailure

logger = logging.getLogger(__name__)

# --- 資料庫設定 ---
# 從環境變數讀取，沒有設定時使用本機開發用的預設值
DB_NAME = os.getenv("DB_NAME", "yard_work")
DB_USER = os.getenv("DB_USER", "postgres")
DB_PASSWORD = os.getenv("DB_PASSWORD", "postgres")
DB_HOST = os.getenv("DB_HOST", "localhost")
DB_PORT = int(os.getenv("DB_PORT", "5432"))

# 組合連線字串 (Connection String)；若有設定 DATABASE_URL 則以它為準
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"dbname={DB_NAME} user={DB_USER} password={DB_PASSWORD} host={DB_HOST} port={DB_PORT}",
)

# 全域連線池，第一次使用時才建立
_pool: AsyncConnectionPool | None = None
# 同時有多個請求第一次進來時，只讓一個去開連線池
_pool_lock = asyncio.Lock()


async def get_pool() -> AsyncConnectionPool:
    """取得連線池；第一次呼叫時建立並開啟，開不起來時回報 StorageFailure (可重試)"""
    global _pool

    if _pool is not None:
        return _pool

    async with _pool_lock:
        if _pool is None:
            logger.info("Initializing connection pool")
            pool = AsyncConnectionPool(
                conninfo=DATABASE_URL,
                kwargs={"row_factory": dict_row},  # 查詢結果用 dict 表示，例如 row['id']
                open=False,
            )
            try:
                await pool.open(wait=True, timeout=10)
            except Exception as e:
                logger.error("Could not open connection pool: %s", e)
                await pool.close()
                raise StorageFailure("Database connection pool is not available") from e
            _pool = pool
            logger.info("Connection pool opened")
    return _pool


async def getDB():
    """
    FastAPI 的 Dependency (依賴項) 函式。

    1. 第一次被呼叫時建立並開啟連線池。
    2. 每個請求借出一條連線，請求結束後自動歸還。
    3. 借不到連線時 (資料庫斷線、連線池逾時) 回報 StorageFailure，而不是一般的 500。
    """
    pool = await get_pool()

    # 只把「借連線」這一步的錯誤轉成 StorageFailure；
    # 路由裡的錯誤由 repository 自己處理，這裡原樣往外丟
    try:
        conn = await pool.getconn()
    except psycopg.Error as e:  # PoolTimeout / PoolClosed 都是 psycopg.OperationalError
        logger.error("Could not check out a database connection: %s", e)
        raise StorageFailure() from e

    try:
        yield conn
    finally:
        # 歸還時連線池會把沒結束的交易 rollback
        await pool.putconn(conn)


async def close_pool():
    """伺服器關閉時釋放所有連線"""
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("Connection pool closed")
