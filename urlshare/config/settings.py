"""Runtime settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="URLSHARE_", extra="ignore")

    app_name: str = "urlshare"
    env: str = "dev"
    log_level: str = "info"
    log_dir: str = "logs"
    # 每个请求打一行 method/url/status
    log_requests: bool = True
    host: str = "127.0.0.1"
    port: int = 8080

    # 对外短链地址前缀，key_mode=external 时也作为生成 key 的前缀
    base_url: str = "http://127.0.0.1:8080"
    db_path: str = "urlshare.db"
    bucket: str = "urls"
    key_mode: str = "path"  # path | external
    key_radix: int = 10  # 10 | 16
    key_separator: str = "r"
    # >0 时生成的序号左侧补零，保证按字节序排序即按创建顺序
    key_min_width: int = Field(default=0, ge=0, le=32)

    write_method: str = "PATCH"  # PATCH | POST
    write_timeout_seconds: float = Field(default=5.0, gt=0.0)
    read_retries: int = Field(default=3, ge=1)

    # 为空时使用包内自带目录
    template_dir: str = ""
    static_dir: str = ""


settings = Settings()
