# models/order.py
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

# 每張訂單最多附加的照片數量
MAX_PHOTOS = 3


class OrderStatus(str, Enum):
    PENDING = "pending"        # 等待工作者接單
    ACCEPTED = "accepted"      # 已被接單
    COMPLETED = "completed"    # 工作完成
    CANCELLED = "cancelled"    # 保留狀態，目前沒有任何流程會進入


class WorkType(str, Enum):
    MOWING = "mowing"
    TREE_TRIMMING = "tree_trimming"
    FENCE_PAINTING = "fence_painting"
    OTHER = "other"

    @classmethod
    def parse(cls, value: "str | WorkType") -> "WorkType":
        """
        把前端傳來的工作類型轉成列舉。
        舊版前端的捷克文代碼也能辨識；完全認不得的類型一律當成 other，不拒絕請求。
        """
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        try:
            return cls(key)
        except ValueError:
            return LEGACY_WORK_TYPES.get(key, cls.OTHER)


# 舊版表單使用的代碼
LEGACY_WORK_TYPES = {
    "sekani_travy": WorkType.MOWING,
    "strhani_stromu": WorkType.TREE_TRIMMING,
    "natrani_plotu": WorkType.FENCE_PAINTING,
    "jina_prace": WorkType.OTHER,
}


class OrderCreate(BaseModel):
    """委託人建立訂單時送來的原始資料 (尚未驗證必填欄位)"""
    work_type: str | None = None
    address: str | None = None
    description: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    has_tools: bool = False
    photo_refs: list[str] = Field(default_factory=list)


class Order(BaseModel):
    id: int
    customer_id: int
    worker_id: int | None = None
    work_type: WorkType
    description: str | None = None
    address: str
    latitude: float | None = None
    longitude: float | None = None
    has_tools: bool = False
    photo_refs: list[str] = Field(default_factory=list)
    status: OrderStatus = OrderStatus.PENDING
    estimated_price: float
    rating: int | None = None
    feedback: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class OrderView(Order):
    """
    列表用的訂單，附帶 JOIN users 取得的聯絡資訊。
    依查詢的角色不同，只有部分欄位會有值。
    """
    customer_name: str | None = None
    customer_email: str | None = None
    customer_phone: str | None = None
    worker_name: str | None = None
    worker_email: str | None = None
    worker_phone: str | None = None
