import logging
import os
import uuid
from datetime import datetime

import aiofiles  # 非同步檔案處理套件，避免上傳大檔案時卡住整個伺服器
from fastapi import UploadFile

from errors import ValidationFailed
from models import MAX_PHOTOS

logger = logging.getLogger(__name__)

# --- 1. 設定檔案儲存路徑常數 ---
UPLOAD_ROOT = os.getenv("UPLOAD_ROOT", "uploads")   # 所有上傳檔案的根目錄
FOLDER_ORDERS = "orders"                             # 子資料夾：存放訂單照片
MAX_PHOTO_BYTES = int(os.getenv("MAX_PHOTO_BYTES", str(5 * 1024 * 1024)))  # 單張上限 5MB
CHUNK_SIZE = 64 * 1024


def setup_upload_directories():
    """
    初始化資料夾結構，伺服器啟動時呼叫。
    exist_ok=True 表示資料夾已經存在就跳過。
    """
    os.makedirs(os.path.join(UPLOAD_ROOT, FOLDER_ORDERS), exist_ok=True)


def check_photo_uploads(files: list[UploadFile]) -> list[UploadFile]:
    """
    上傳前的檢查 (還沒寫入硬碟)：
    1. 過濾掉瀏覽器送來的空白檔案欄位
    2. 最多 3 張
    3. 只接受圖片
    """
    photos = [f for f in files if f.filename]
    if len(photos) > MAX_PHOTOS:
        raise ValidationFailed(f"At most {MAX_PHOTOS} photos are allowed")
    for photo in photos:
        if not (photo.content_type or "").startswith("image/"):
            raise ValidationFailed(f"Only image files are allowed: {photo.filename}")
    return photos


async def save_order_photos(files: list[UploadFile]) -> list[str]:
    """
    儲存訂單照片，回傳相對路徑列表 (存進資料庫的照片參照)。
    任何一張超過大小限制時，已寫入的檔案全部刪除並回報錯誤。
    """
    photos = check_photo_uploads(files)
    target_dir = os.path.join(UPLOAD_ROOT, FOLDER_ORDERS)
    os.makedirs(target_dir, exist_ok=True)

    saved: list[str] = []
    try:
        for photo in photos:
            saved.append(await _save_photo(photo, target_dir))
    except ValidationFailed:
        discard_uploads(saved)
        raise
    return saved


async def _save_photo(file: UploadFile, target_dir: str) -> str:
    # 檔名：時間戳記 + 隨機碼 + 原副檔名，避免不同人上傳同名檔案互相覆蓋
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    ext = os.path.splitext(file.filename)[1].lower()
    new_filename = f"{timestamp}_{uuid.uuid4().hex[:12]}{ext}"
    file_path = os.path.join(target_dir, new_filename)

    # 分塊串流寫入，同時累計大小
    written = 0
    async with aiofiles.open(file_path, "wb") as out_file:
        while content := await file.read(CHUNK_SIZE):
            written += len(content)
            if written > MAX_PHOTO_BYTES:
                break
            await out_file.write(content)

    if written > MAX_PHOTO_BYTES:
        os.remove(file_path)
        raise ValidationFailed(f"File too large: {file.filename}")

    # 回傳給資料庫的路徑格式 (使用 / 分隔，確保跨平台相容性)
    return f"{UPLOAD_ROOT}/{FOLDER_ORDERS}/{new_filename}"


def discard_uploads(refs: list[str]):
    """訂單建立失敗時，把已經存好的照片刪掉"""
    for ref in refs:
        try:
            os.remove(ref)
        except FileNotFoundError:
            logger.warning("Upload already gone: %s", ref)
