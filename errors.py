# errors.py
# 平台統一的錯誤種類。
# 核心流程只丟出這些例外，再由 main.py 的 exception handler 轉成對應的 HTTP 狀態碼。


class MarketplaceError(Exception):
    status_code = 500
    kind = "error"
    default_message = "Something went wrong"
    # 只有儲存層故障才值得讓呼叫端重試
    retryable = False

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.kind, "detail": self.message, "retryable": self.retryable}


class AuthenticationRequired(MarketplaceError):
    """沒有有效的登入狀態"""
    status_code = 401
    kind = "authentication_required"
    default_message = "Not authenticated"


class AuthorizationDenied(MarketplaceError):
    """有登入，但角色或擁有權不符"""
    status_code = 403
    kind = "authorization_denied"
    default_message = "Access denied"


class ValidationFailed(MarketplaceError):
    status_code = 422
    kind = "validation_failed"
    default_message = "Invalid input"


class ConflictState(MarketplaceError):
    """以目前狀態來說，這個轉換不合法 (例如訂單已被別人接走)"""
    status_code = 409
    kind = "conflict_state"
    default_message = "Order is not in a valid state for this action"


class NotFound(MarketplaceError):
    status_code = 404
    kind = "not_found"
    default_message = "Not found"


class StorageFailure(MarketplaceError):
    status_code = 503
    kind = "storage_failure"
    default_message = "Storage is temporarily unavailable"
    retryable = True
