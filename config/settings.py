"""全局配置管理

所有用户可配置项均通过 .env 文件设置，运行时自动加载到此处。

使用方式：
    1. 手动创建 .env 文件，例如 ``DATABASE_URL=sqlite:///data/tailor.db``
    2. 或直接设置同名环境变量
"""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """应用配置 - 所有字段均可通过 .env 或环境变量覆盖"""

    # ========== 数据库 ==========
    database_url: str = "sqlite:///data/tailor.db"

    # ========== 自动保存 ==========
    autosave_delay: float = 1.5  # 最后一次编辑后等待的秒数

    # ========== 日志 ==========
    log_level: str = "INFO"

    # ========== 导出 ==========
    export_dir: str = "data/exports"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


# 全局配置实例
settings = Settings()
