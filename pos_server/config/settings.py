from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # 数据库配置
    database_url: str = "duckdb://./data/pos.duckdb"

    # JWT配置
    jwt_secret_key: str = "change-me-pos-server-development-secret"
    jwt_algorithm: str = "HS256"
    jwt_expire_hours: int = 12  # 一个班次

    # API配置
    api_title: str = "POS 点单收银 API"
    api_version: str = "1.0.0"
    api_prefix: str = "/api/v1"

    # 营业配置
    business_timezone: str = "America/Sao_Paulo"
    default_delivery_fee_cents: int = 0

    # 空库时写入初始菜单和桌台
    seed_demo_data: bool = False
    seed_table_count: int = 12

    # 开发模式
    debug: bool = False

    class Config:
        env_file = ".env"
        env_prefix = "POS_"
        case_sensitive = False


# 全局设置实例
settings = Settings()
