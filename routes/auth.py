import logging

from fastapi import APIRouter, Depends, Form, Request

from errors import AuthenticationRequired, ValidationFailed
from models import Actor, Role, User, normalize_tools
from repository import UserRepository, get_user_repository
from security import hash_password, verify_password

logger = logging.getLogger(__name__)

# --- 1. 設定 Router ---
router = APIRouter()

# 可以自行註冊的角色 (管理員帳號只能由系統建立)
REGISTRABLE_ROLES = (Role.CUSTOMER, Role.WORKER)

# bcrypt 只處理前 72 bytes，超過的密碼直接拒絕
MAX_PASSWORD_BYTES = 72


# --- 2. 核心依賴函式：取得當前登入者 ---
async def get_current_user(
    request: Request,
    users: UserRepository = Depends(get_user_repository),
) -> User | None:
    """
    檢查 Session，如果使用者已登入，返回使用者資料；未登入則返回 None。

    1. 瀏覽器發送請求時會帶上 Cookie (Session)。
    2. SessionMiddleware 驗證簽章後取出 "user_id"。
    3. 用這個 ID 去資料庫確認使用者還存在，角色也以資料庫為準。
    """
    user_id = request.session.get("user_id")
    if not user_id:
        return None

    try:
        user_id = int(user_id)
    except (TypeError, ValueError):
        request.session.clear()  # Session 資料不是數字，為了安全就清掉
        return None

    user = await users.get(user_id)
    if user is None:
        # Session 有紀錄 ID，但資料庫找不到人，強制登出
        request.session.clear()
        return None
    return user


async def get_current_actor(user: User | None = Depends(get_current_user)) -> Actor | None:
    """
    把登入者轉成核心流程使用的 (id, role)。
    未登入時回傳 None，由 lifecycle.require_role 決定要回報哪種錯誤。
    """
    return user.as_actor() if user else None


# --- 3. 註冊 ---
@router.post("/api/register")
async def register(
    email: str = Form(...),
    password: str = Form(...),
    role: str = Form(...),
    name: str = Form(...),
    phone: str | None = Form(None),
    area: str | None = Form(None),
    tools: list[str] = Form([]),
    users: UserRepository = Depends(get_user_repository),
):
    # 步驟 1: 檢查角色是否合法 (防止惡意送出 admin 或奇怪的角色)
    try:
        parsed_role = Role(role)
    except ValueError:
        raise ValidationFailed("Invalid role")
    if parsed_role not in REGISTRABLE_ROLES:
        raise ValidationFailed("Invalid role")

    # 步驟 2: 基本欄位檢查
    email = email.strip()
    if not email or "@" not in email:
        raise ValidationFailed("A valid email is required")
    if not name.strip():
        raise ValidationFailed("name is required")
    if not password or len(password.encode()) > MAX_PASSWORD_BYTES:
        raise ValidationFailed(f"Password must be 1-{MAX_PASSWORD_BYTES} bytes long")

    # 步驟 3: 寫入資料庫 (email 重複時 repository 會丟 ConflictState)
    # 工具清單只對工作者有意義
    user = await users.create(
        email=email,
        password_digest=hash_password(password),
        role=parsed_role,
        name=name.strip(),
        phone=phone or None,
        area=area or None,
        tools=normalize_tools(tools) if parsed_role == Role.WORKER else [],
    )
    logger.info("User registered | id=%s | role=%s", user.id, user.role.value)
    return {"message": "User registered successfully", "userId": user.id}


# --- 4. 登入 ---
@router.post("/api/login")
async def login(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    users: UserRepository = Depends(get_user_repository),
):
    """驗證帳號密碼，成功則建立 Session"""
    user = await users.get_by_email(email.strip())

    # 使用者不存在 或 密碼不對，都回同一個訊息，避免被拿來探測帳號
    if user is None or not verify_password(password, user.password_digest):
        raise AuthenticationRequired("Invalid email or password")

    # 登入成功：SessionMiddleware 會把簽章後的 Cookie 塞給瀏覽器
    request.session.clear()
    request.session["user_id"] = user.id
    logger.info("User logged in | id=%s | role=%s", user.id, user.role.value)

    return {
        "message": "Login successful",
        "userId": user.id,
        "name": user.name,
        "role": user.role.value,
    }


# --- 5. 登出 ---
@router.post("/api/logout")
async def logout(request: Request):
    request.session.clear()
    return {"message": "Logout successful"}


# --- 6. 檢查登入狀態 (前端載入頁面時呼叫) ---
@router.get("/api/check-auth")
async def check_auth(user: User | None = Depends(get_current_user)):
    if user is None:
        return {"authenticated": False}
    return {
        "authenticated": True,
        "userId": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role.value,
    }


# 不需要登入就能呼叫的路由 (表單格式錯誤時直接回 validation_failed)
PUBLIC_ENDPOINTS = (register, login, logout, check_auth)
