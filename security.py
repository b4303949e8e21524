# security.py
import bcrypt


def hash_password(password: str) -> str:
    """用 bcrypt 產生密碼雜湊 (含隨機 salt)"""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, digest: str) -> bool:
    # 資料庫裡的雜湊格式損壞時 bcrypt 會丟 ValueError，視同密碼錯誤
    try:
        return bcrypt.checkpw(password.encode(), digest.encode())
    except ValueError:
        return False
