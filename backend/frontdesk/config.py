"""
应用配置
从环境变量读取配置，支持 .env 文件
"""
from typing import Optional
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """应用设置"""

    # 应用基础配置
    APP_NAME: str = "FrontDesk"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # 数据库配置
    DATABASE_URL: str = "sqlite:///./frontdesk.db"

    # JWT 配置
    SECRET_KEY: str = "frontdesk-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_HOURS: int = 24

    # 酒店本地化
    HOTEL_TIMEZONE: str = "America/Lima"
    CURRENCY_SYMBOL: str = "S/"

    # 证件照片存储目录
    UPLOAD_DIR: str = "./uploads"

    # 房态日历最大查询天数
    MAX_AVAILABILITY_DAYS: int = 93

    # 自动化 Webhook（入住/退房/预订变更通知）
    NOTIFICATIONS_ENABLED: bool = True
    CHECKIN_WEBHOOK_URL: str = "http://localhost:5678/webhook/checkin"
    CHECKOUT_WEBHOOK_URL: str = "http://localhost:5678/webhook/checkout"
    RESERVATION_UPDATE_WEBHOOK_URL: str = "http://localhost:5678/webhook/reservation-update"
    NOTIFICATION_RECIPIENT: Optional[str] = None
    NOTIFICATION_TIMEOUT_SECONDS: float = 5.0

    # 证件 OCR 校验
    DOCUMENT_VALIDATION_WEBHOOK_URL: str = "http://localhost:5678/webhook/validate-document"
    DOCUMENT_VALIDATION_TIMEOUT_SECONDS: float = 30.0

    model_config = ConfigDict(env_file=".env", case_sensitive=True)


# 全局设置实例
settings = Settings()
