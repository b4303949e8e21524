from fastapi import APIRouter, Depends

import lifecycle
from models import Actor, OrderView, User
from repository import OrderRepository, UserRepository, get_order_repository, get_user_repository
from routes.auth import get_current_actor

# 管理員只有查看權限，這裡沒有任何會改資料的路由
router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/orders", response_model=list[OrderView])
async def list_all_orders(
    actor: Actor | None = Depends(get_current_actor),
    orders: OrderRepository = Depends(get_order_repository),
):
    """所有訂單，附上委託人與工作者的聯絡資訊"""
    return await lifecycle.list_all_orders(orders, actor)


@router.get("/workers", response_model=list[User])
async def list_workers(
    actor: Actor | None = Depends(get_current_actor),
    users: UserRepository = Depends(get_user_repository),
):
    return await lifecycle.list_workers(users, actor)
