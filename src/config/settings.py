from pydantic import Field, ConfigDict, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List
import os
from pathlib import Path

# 获取项目根目录
BASE_DIR = Path(__file__).resolve().parent.parent.parent

class LogConfig(BaseSettings):
    """日志配置"""
    LOG_LEVEL: str = Field("INFO", description="日志级别")
    LOG_FILE: str = Field(str(BASE_DIR / "logs/app.log"), description="日志文件路径")
    LOG_FORMAT: str = Field(
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
        "<level>{message}</level>",
        description="日志格式"
    )
    LOG_ROTATION: str = Field("500 MB", description="日志轮转大小")
    LOG_RETENTION: str = Field("10 days", description="日志保留时间")

    model_config = ConfigDict(
        env_file="",  # 禁用环境变量文件
        env_prefix="",  # 不使用前缀，因为属性名已包含前缀
        extra="ignore",
        case_sensitive=True
    )

    @field_validator("LOG_LEVEL")
    def validate_log_level(cls, v: str) -> str:
        """验证日志级别"""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.upper()
        if v not in valid_levels:
            import warnings
            warnings.warn(f"无效的日志级别: {v}，使用默认值: INFO")
            return "INFO"
        return v

class DatabaseConfig(BaseSettings):
    """数据库配置"""
    DB_URL: str = Field(
        default=f"sqlite+aiosqlite:///{BASE_DIR}/testboard.db",
        description="数据库连接URL(异步驱动)"
    )
    DB_ECHO: bool = Field(False, description="是否打印SQL语句")

    model_config = ConfigDict(
        env_file="",
        env_prefix="",
        extra="ignore",
        case_sensitive=True
    )

class StorageConfig(BaseSettings):
    """上传文件存储配置"""
    STORAGE_UPLOAD_DIR: str = Field(str(BASE_DIR / "data/uploads"), description="上传文件根目录")
    STORAGE_MAX_FILE_SIZE: int = Field(10 * 1024 * 1024, description="单个文件最大大小(bytes)")
    STORAGE_ALLOWED_EXTENSIONS: List[str] = Field(
        default=[".png", ".jpg", ".jpeg", ".gif", ".pdf", ".txt", ".csv", ".json", ".xlsx", ".docx", ".zip"],
        description="允许上传的文件类型"
    )

    model_config = ConfigDict(
        env_file="",
        env_prefix="",
        extra="ignore",
        case_sensitive=True
    )

class RunnerConfig(BaseSettings):
    """浏览器自动化执行器配置"""
    RUNNER_URL: str = Field("http://localhost:8001/run", description="执行器运行接口地址")
    RUNNER_TIMEOUT: float = Field(600.0, description="单次运行读取超时(秒)")
    RUNNER_CONNECT_TIMEOUT: float = Field(10.0, description="连接超时(秒)")

    model_config = ConfigDict(
        env_file="",
        env_prefix="",
        extra="ignore",
        case_sensitive=True
    )

class AuthConfig(BaseSettings):
    """认证配置"""
    AUTH_SECRET: str = Field("change-me", description="JWT签名密钥")
    AUTH_ALGORITHM: str = Field("HS256", description="JWT签名算法")
    AUTH_AUDIENCE: str = Field("", description="JWT受众，为空则不校验")

    model_config = ConfigDict(
        env_file="",
        env_prefix="",
        extra="ignore",
        case_sensitive=True
    )

class ClientConfig(BaseSettings):
    """运行编排客户端配置"""
    CLIENT_API_BASE_URL: str = Field("http://localhost:8000/api/v1", description="服务端API地址")
    CLIENT_TOKEN: str = Field("", description="访问令牌")
    CLIENT_TIMEOUT: float = Field(30.0, description="普通请求超时(秒)")

    model_config = ConfigDict(
        env_file="",
        env_prefix="",
        extra="ignore",
        case_sensitive=True
    )

# 子配置类与对应的环境变量前缀
_SECTIONS = {
    "log": (LogConfig, "LOG_"),
    "db": (DatabaseConfig, "DB_"),
    "storage": (StorageConfig, "STORAGE_"),
    "runner": (RunnerConfig, "RUNNER_"),
    "auth": (AuthConfig, "AUTH_"),
    "client": (ClientConfig, "CLIENT_"),
}

class Settings(BaseSettings):
    """应用配置"""
    # 基础配置
    APP_NAME: str = Field("TestBoard", description="应用名称")
    APP_VERSION: str = Field("1.0.0", description="应用版本")
    DEBUG: bool = Field(False, description="调试模式")
    APP_HOST: str = Field("0.0.0.0", description="服务监听地址")
    APP_PORT: int = Field(8000, description="服务监听端口")

    # 路径配置
    BASE_DIR: Path = Field(default=BASE_DIR, description="项目根目录")

    # 子配置
    log: LogConfig = Field(default_factory=LogConfig)
    db: DatabaseConfig = Field(default_factory=DatabaseConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    runner: RunnerConfig = Field(default_factory=RunnerConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        env_prefix=""  # 不使用前缀
    )

    def __init__(self, **kwargs):
        # 从 .env 文件加载配置
        from dotenv import dotenv_values

        env_path = BASE_DIR / ".env"
        env_config = dotenv_values(env_path) if env_path.exists() else {}

        if env_config:
            # 按前缀分发到各子配置，进程环境变量优先
            for section, (config_cls, prefix) in _SECTIONS.items():
                section_config = {
                    k: v for k, v in env_config.items()
                    if k.startswith(prefix) and k not in os.environ
                }
                if section_config and section not in kwargs:
                    kwargs[section] = config_cls(**section_config)

            # 更新基础配置
            if 'APP_NAME' in env_config:
                kwargs.setdefault('APP_NAME', env_config['APP_NAME'])
            if 'APP_VERSION' in env_config:
                kwargs.setdefault('APP_VERSION', env_config['APP_VERSION'])
            if 'APP_HOST' in env_config:
                kwargs.setdefault('APP_HOST', env_config['APP_HOST'])
            if 'APP_PORT' in env_config:
                kwargs.setdefault('APP_PORT', int(env_config['APP_PORT']))
            if 'DEBUG' in env_config:
                kwargs.setdefault('DEBUG', env_config['DEBUG'].lower() == 'true')

        super().__init__(**kwargs)
        self._init_directories()

        if self.DEBUG and not os.environ.get('RELOAD_PROCESS'):
            self._print_debug_info()

    def _init_directories(self):
        """初始化必要的目录"""
        # 确保日志目录存在
        Path(self.log.LOG_FILE).parent.mkdir(parents=True, exist_ok=True)

        # 确保上传目录存在
        Path(self.storage.STORAGE_UPLOAD_DIR).mkdir(parents=True, exist_ok=True)

        # 确保数据库目录存在
        for scheme in ("sqlite+aiosqlite:///", "sqlite:///"):
            if self.db.DB_URL.startswith(scheme):
                db_path = self.db.DB_URL.replace(scheme, "")
                if db_path and db_path != ":memory:":
                    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
                break

    def _print_debug_info(self):
        """打印调试信息"""
        print("\n=== 配置加载信息 ===")
        print(f"项目根目录: {self.BASE_DIR}")

        print("\n日志配置:")
        print(f"配置文件 LOG_LEVEL: {self.log.LOG_LEVEL}")
        print(f"配置文件 LOG_FILE: {self.log.LOG_FILE}")

        print("\n数据库配置:")
        print(f"数据库URL: {self.db.DB_URL}")

        print("\n存储配置:")
        print(f"上传目录: {self.storage.STORAGE_UPLOAD_DIR}")

        print("\n执行器配置:")
        print(f"执行器地址: {self.runner.RUNNER_URL}")

        print("\n认证配置:")
        print(f"签名算法: {self.auth.AUTH_ALGORITHM}")
        print("===================\n")

# 创建全局配置实例
settings = Settings()

# 导出配置实例
__all__ = ["settings"]
