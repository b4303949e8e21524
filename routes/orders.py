from fastapi import APIRouter, Depends, File, Form, UploadFile, status

import lifecycle
from errors import MarketplaceError
from models import Actor, Order, OrderCreate, OrderView, Role
from repository import OrderRepository, get_order_repository
from routes.auth import get_current_actor
from utils import check_photo_uploads, discard_uploads, save_order_photos

# 設定 Router
router = APIRouter(prefix="/api")

# HTML checkbox 勾選時送出 "on"
TRUTHY = {"1", "true", "on", "yes"}


# =========================================================
# 第一部分：委託人 (customer)
# =========================================================

# 1. 建立訂單 (multipart 表單，可附最多 3 張照片)
@router.post("/orders", response_model=Order, status_code=status.HTTP_201_CREATED)
async def create_order(
    work_type: str | None = Form(None),
    address: str | None = Form(None),
    description: str | None = Form(None),
    latitude: float | None = Form(None),
    longitude: float | None = Form(None),
    has_tools: str | None = Form(None),
    photos: list[UploadFile] = File([]),
    actor: Actor | None = Depends(get_current_actor),
    orders: OrderRepository = Depends(get_order_repository),
):
    # 先確認身分與照片格式，再寫檔案，避免沒權限的人也能塞檔案進伺服器
    lifecycle.require_role(actor, Role.CUSTOMER)
    check_photo_uploads(photos)

    photo_refs = await save_order_photos(photos)
    data = OrderCreate(
        work_type=work_type,
        address=address,
        description=description or None,
        latitude=latitude,
        longitude=longitude,
        has_tools=(has_tools or "").strip().lower() in TRUTHY,
        photo_refs=photo_refs,
    )
    try:
        return await lifecycle.create_order(orders, actor, data)
    except MarketplaceError:
        # 訂單沒建立成功，剛存的照片就沒有用了
        discard_uploads(photo_refs)
        raise


# 2. 提交評價 (只有已完成的訂單，而且只能評一次)
@router.post("/orders/{order_id}/rate", response_model=Order)
async def rate_order(
    order_id: int,
    rating: int = Form(...),
    feedback: str | None = Form(None),
    actor: Actor | None = Depends(get_current_actor),
    orders: OrderRepository = Depends(get_order_repository),
):
    return await lifecycle.rate_order(orders, actor, order_id, rating, (feedback or "").strip() or None)


# =========================================================
# 第二部分：工作者 (worker)
# =========================================================

# 3. 待接訂單列表
@router.get("/available-orders", response_model=list[OrderView])
async def list_available_orders(
    actor: Actor | None = Depends(get_current_actor),
    orders: OrderRepository = Depends(get_order_repository),
):
    return await lifecycle.list_available_orders(orders, actor)


# 4. 接單 (關鍵流程：pending -> accepted)
@router.post("/orders/{order_id}/accept", response_model=Order)
async def accept_order(
    order_id: int,
    actor: Actor | None = Depends(get_current_actor),
    orders: OrderRepository = Depends(get_order_repository),
):
    return await lifecycle.accept_order(orders, actor, order_id)


# 5. 標記完成 (accepted -> completed，只有接單的人可以)
@router.post("/orders/{order_id}/complete", response_model=Order)
async def complete_order(
    order_id: int,
    actor: Actor | None = Depends(get_current_actor),
    orders: OrderRepository = Depends(get_order_repository),
):
    return await lifecycle.complete_order(orders, actor, order_id)


# =========================================================
# 第三部分：共用
# =========================================================

# 6. 我的訂單 (委託人：我發的；工作者：我接的)
@router.get("/my-orders", response_model=list[OrderView])
async def list_my_orders(
    actor: Actor | None = Depends(get_current_actor),
    orders: OrderRepository = Depends(get_order_repository),
):
    return await lifecycle.list_my_orders(orders, actor)
