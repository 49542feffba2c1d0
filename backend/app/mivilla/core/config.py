from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="MV_", env_file=".env", extra="ignore")

    ENV: str = Field(default="dev")
    DB_URL: str = Field(default="sqlite:///./mivilla.db")

    # 操作人员令牌（JWT）
    JWT_SECRET_KEY: str = Field(default="dev-secret-change-me")
    JWT_ALGORITHM: str = Field(default="HS256")
    JWT_EXPIRE_HOURS: int = Field(default=12)

    # 访问二维码
    QR_DEFAULT_TTL_HOURS: int = Field(default=24)
    QR_PROTOCOL_VERSION: int = Field(default=1)

    # 授权过期清理
    GRANT_SWEEP_ENABLED: bool = Field(default=True)
    GRANT_SWEEP_INTERVAL_SECONDS: float = Field(default=10.0)

    AUDIT_LOG_ENABLED: bool = Field(default=True)

    LOG_DIR: str = Field(default="logs")
    LOG_LEVEL: str = Field(default="INFO")

settings = Settings()
