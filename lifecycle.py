# lifecycle.py
"""
訂單生命週期 (核心流程)。

狀態只能往前走：

    pending --(工作者接單)--> accepted --(同一位工作者完成)--> completed

completed 之後委託人可以評價一次 (rating + feedback)，狀態不變。
cancelled 只存在於資料模型中，目前沒有任何角色可以觸發。

每個函式都接收已經解析好的 Actor，角色與擁有權檢查都在這裡做，
路由層只負責把 HTTP 請求翻譯成函式呼叫。
"""
import logging

from errors import AuthenticationRequired, AuthorizationDenied, ConflictState, NotFound, ValidationFailed
from models import MAX_PHOTOS, Actor, Order, OrderCreate, OrderStatus, OrderView, Role, User, WorkType
from pricing import estimate_price

logger = logging.getLogger(__name__)


def require_role(actor: Actor | None, *roles: Role) -> Actor:
    """
    權限檢查：
    1. 沒有登入 -> AuthenticationRequired
    2. 有登入但角色不對 -> AuthorizationDenied
    """
    if actor is None:
        raise AuthenticationRequired()
    if actor.role not in roles:
        allowed = " or ".join(r.value for r in roles)
        raise AuthorizationDenied(f"Access denied: requires {allowed} role")
    return actor


# =========================================================
# 委託人操作
# =========================================================

async def create_order(orders, actor: Actor | None, data: OrderCreate) -> Order:
    actor = require_role(actor, Role.CUSTOMER)

    # 必填欄位檢查
    if not data.work_type or not data.work_type.strip():
        raise ValidationFailed("work_type is required")
    if not data.address or not data.address.strip():
        raise ValidationFailed("address is required")
    # 上傳層應該已經擋掉，這裡再確認一次
    if len(data.photo_refs) > MAX_PHOTOS:
        raise ValidationFailed(f"At most {MAX_PHOTOS} photos are allowed")

    work_type = WorkType.parse(data.work_type)
    order = await orders.create(
        customer_id=actor.id,
        work_type=work_type,
        address=data.address.strip(),
        estimated_price=estimate_price(work_type),
        description=data.description,
        latitude=data.latitude,
        longitude=data.longitude,
        has_tools=data.has_tools,
        photo_refs=list(data.photo_refs),
    )
    logger.info(
        "Order created | id=%s | customer=%s | work_type=%s | price=%s",
        order.id, actor.id, order.work_type.value, order.estimated_price,
    )
    return order


async def rate_order(orders, actor: Actor | None, order_id: int, rating: int, feedback: str | None = None) -> Order:
    actor = require_role(actor, Role.CUSTOMER)

    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationFailed("Rating must be an integer between 1 and 5")

    order = await orders.rate(order_id, actor.id, rating, feedback)
    if order is None:
        current = await _get_or_404(orders, order_id)
        if current.customer_id != actor.id:
            raise AuthorizationDenied("Order does not belong to you")
        if current.status != OrderStatus.COMPLETED:
            raise ConflictState("Order cannot be rated before it is completed")
        raise ConflictState("Order has already been rated")

    logger.info("Order rated | id=%s | customer=%s | rating=%s", order_id, actor.id, rating)
    return order


# =========================================================
# 工作者操作
# =========================================================

async def list_available_orders(orders, actor: Actor | None) -> list[OrderView]:
    # 不分區域，所有工作者看到的是同一份待接清單
    require_role(actor, Role.WORKER)
    return await orders.list_by_status(OrderStatus.PENDING)


async def accept_order(orders, actor: Actor | None, order_id: int) -> Order:
    actor = require_role(actor, Role.WORKER)

    # 檢查 status 與寫入 worker_id 是同一個原子操作 (compare-and-swap)
    order = await orders.accept(order_id, actor.id)
    if order is None:
        await _get_or_404(orders, order_id)
        logger.warning("Accept conflict | id=%s | worker=%s", order_id, actor.id)
        raise ConflictState("Order is no longer available")

    logger.info("Order accepted | id=%s | worker=%s", order_id, actor.id)
    return order


async def complete_order(orders, actor: Actor | None, order_id: int) -> Order:
    actor = require_role(actor, Role.WORKER)

    order = await orders.complete(order_id, actor.id)
    if order is None:
        current = await _get_or_404(orders, order_id)
        if current.worker_id != actor.id:
            raise AuthorizationDenied("Order is not assigned to you")
        raise ConflictState(f"Order cannot be completed from status '{current.status.value}'")

    logger.info("Order completed | id=%s | worker=%s", order_id, actor.id)
    return order


# =========================================================
# 查詢
# =========================================================

async def list_my_orders(orders, actor: Actor | None) -> list[OrderView]:
    """委託人看自己發的單，工作者看自己接過的單，都是新的在前"""
    actor = require_role(actor, Role.CUSTOMER, Role.WORKER)
    if actor.role == Role.CUSTOMER:
        return await orders.list_for_customer(actor.id)
    return await orders.list_for_worker(actor.id)


async def list_all_orders(orders, actor: Actor | None) -> list[OrderView]:
    require_role(actor, Role.ADMIN)
    return await orders.list_all()


async def list_workers(users, actor: Actor | None) -> list[User]:
    require_role(actor, Role.ADMIN)
    return await users.list_by_role(Role.WORKER)


async def _get_or_404(orders, order_id: int) -> Order:
    order = await orders.get(order_id)
    if order is None:
        raise NotFound("Order not found")
    return order
