# models/user.py
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    """使用者角色 (對應資料庫的 user_role 列舉)，建立後不可變更"""
    CUSTOMER = "customer"  # 委託人：發出庭院工作需求
    WORKER = "worker"      # 工作者：接單並完成工作
    ADMIN = "admin"        # 管理員：只能查看，不能操作訂單流程


class Actor(BaseModel):
    """
    目前發出請求的人 (已經由 Session 解析完成)。
    核心流程只認這個 (id, role) 組合，不會自己去讀 Session。
    """
    model_config = ConfigDict(frozen=True)

    id: int
    role: Role


class User(BaseModel):
    id: int
    email: str
    name: str
    role: Role
    phone: str | None = None
    area: str | None = None      # 工作者的服務區域
    tools: list[str] = Field(default_factory=list)  # 工作者自備的工具
    created_at: datetime | None = None

    # 密碼雜湊只在後端使用，輸出 JSON 時一律排除
    password_digest: str = Field(default="", exclude=True, repr=False)

    def as_actor(self) -> Actor:
        return Actor(id=self.id, role=self.role)


def normalize_tools(raw: list[str] | str | None) -> list[str]:
    """
    把表單送來的工具清單整理成不重複的標籤列表。
    同時支援多個欄位 (tools=a&tools=b) 與逗號分隔字串 ("a,b")。
    """
    if not raw:
        return []
    if isinstance(raw, str):
        raw = [raw]

    tools: list[str] = []
    for item in raw:
        for label in item.split(","):
            label = label.strip()
            if label and label not in tools:
                tools.append(label)
    return tools
