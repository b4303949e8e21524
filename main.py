import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.middleware.sessions import SessionMiddleware

from db import close_pool
from errors import AuthenticationRequired, MarketplaceError, ValidationFailed
from init_db import init_database
from utils import UPLOAD_ROOT, setup_upload_directories

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# --- 1. 伺服器啟動 / 關閉 ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    # 啟動時自動檢查並建立資料表，不用手動去資料庫下 SQL 指令
    # 測試或由外部管理 schema 時可以設 AUTO_INIT_DB=0 關掉
    # init_database 是同步連線加 bcrypt，丟到 thread 執行才不會卡住事件迴圈
    if os.getenv("AUTO_INIT_DB", "1") != "0":
        await asyncio.to_thread(init_database)
    logger.info("Yard work marketplace started")
    yield
    await close_pool()
    logger.info("Yard work marketplace stopped")


# --- 2. 建立應用程式 ---
app = FastAPI(title="Yard Work Marketplace", lifespan=lifespan)

# --- 3. 掛載上傳檔案目錄 ---
# 讓訂單照片可以透過 URL 被讀取，例如 <img src="/uploads/orders/...">
setup_upload_directories()
app.mount("/uploads", StaticFiles(directory=UPLOAD_ROOT), name="uploads")

# --- 4. 設定 Session (登入狀態管理) ---
app.add_middleware(
    SessionMiddleware,
    # SECRET_KEY 是簽章用的鑰匙，正式上線一定要用環境變數設定
    secret_key=os.getenv("SECRET_KEY", "a_very_secret_key_please_change_me"),
    max_age=int(os.getenv("SESSION_MAX_AGE", "86400")),  # 登入狀態維持 1 天
    same_site="lax",  # 防止 CSRF 攻擊的設定
    https_only=os.getenv("HTTPS_ONLY", "0") == "1",  # 正式上線有 HTTPS 時應設為 1
)


# --- 5. 統一錯誤格式 ---
# 核心流程丟出的每種錯誤都對應到固定的狀態碼與訊息
@app.exception_handler(MarketplaceError)
async def handle_marketplace_error(request: Request, exc: MarketplaceError):
    if exc.retryable:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def _describe_validation_errors(exc: RequestValidationError) -> str | None:
    """把 FastAPI 的錯誤清單整理成一行，例如 "rating: Field required" """
    parts = []
    for error in exc.errors():
        loc = error.get("loc") or ("request",)
        parts.append(f"{loc[-1]}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts) or None


# 表單或路徑參數格式不對時，FastAPI 在執行 get_current_actor 之前就會擋下請求。
# 需要登入的路由仍要先回報「沒登入」，其他情況一律用 validation_failed 的格式。
@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError):
    if request.scope.get("endpoint") not in PUBLIC_ENDPOINTS and not request.session.get("user_id"):
        error = AuthenticationRequired()
    else:
        error = ValidationFailed(_describe_validation_errors(exc))
    return await handle_marketplace_error(request, error)


# --- 6. 註冊路由 ---
from routes.admin import router as admin_router  # noqa: E402
from routes.auth import PUBLIC_ENDPOINTS  # noqa: E402
from routes.auth import router as auth_router  # noqa: E402
from routes.orders import router as orders_router  # noqa: E402

app.include_router(auth_router)
app.include_router(orders_router)
app.include_router(admin_router)


@app.get("/")
async def root():
    return {"service": "yard-work-marketplace", "status": "ok"}
