"""配置管理模块。

支持从初始化参数、环境变量、.env 以及 config.yaml 加载配置，
优先级依次降低。会话的默认参数（模型、温度、重试策略等）均取自这里。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_BASE_URL = "https://api.openai.com"
DEFAULT_MODEL = "gpt-4o-mini"


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("CHAT_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class Settings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- 服务端点与认证 ----
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API 密钥（全局兜底）")
    base_url: str = Field(default=DEFAULT_BASE_URL, description="API 基础URL，不含 /v1")
    default_model: str = Field(default=DEFAULT_MODEL, description="新会话的默认模型")
    http_timeout: float = Field(default=60.0, ge=1.0, description="HTTP 超时时间（秒）")

    # ---- 会话默认参数 ----
    temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="默认温度")
    top_p: float = Field(default=1.0, gt=0.0, le=1.0, description="默认 nucleus sampling")
    use_streaming: bool = Field(default=True, description="默认是否使用流式补全")
    context_messages: int = Field(default=5, ge=0, description="发送给 API 的最近消息数，0 表示仅最后一条")
    max_retries: int = Field(default=3, ge=0, description="失败后的最大重试次数")
    retry_delay_ms: int = Field(default=1000, ge=0, description="重试间隔（毫秒）")

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_to_file: bool = Field(default=True, description="是否写入 JSON 日志文件")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("base_url")
    @classmethod
    def strip_base_url(cls, v: str) -> str:
        return v.rstrip("/")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = Settings()
