# pricing.py
# 依工作類型估算價格。
# 這只是參考用的數字 (單位不固定)，不是正式報價。
import os

from models.order import WorkType

DEFAULT_RATES: dict[WorkType, float] = {
    WorkType.MOWING: 500.0,
    WorkType.TREE_TRIMMING: 800.0,
    WorkType.FENCE_PAINTING: 600.0,
    WorkType.OTHER: 400.0,
}


def load_rates() -> dict[WorkType, float]:
    """
    讀取價目表。
    可以用環境變數覆寫單一類型，例如 PRICE_RATE_MOWING=550
    """
    rates = dict(DEFAULT_RATES)
    for work_type in WorkType:
        raw = os.getenv(f"PRICE_RATE_{work_type.name}")
        if raw:
            rates[work_type] = float(raw)
    return rates


# 啟動時讀取一次，之後整個程序都用同一份價目表
RATES = load_rates()


def estimate_price(work_type: WorkType | str, rates: dict[WorkType, float] | None = None) -> float:
    table = rates if rates is not None else RATES
    return table.get(WorkType.parse(work_type), table[WorkType.OTHER])
