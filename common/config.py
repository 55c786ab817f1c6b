from __future__ import annotations

from pathlib import Path
from typing import List

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseModel):
    data_dir: Path = Path("data")
    db_path: Path = Path("data/docsift.db")
    pdf_workers: int = Field(default=2, ge=1)


class BrowserConfig(BaseModel):
    headless: bool = True
    max_tabs: int = Field(default=4, ge=1)
    fetch_timeout_s: float = Field(default=30.0, gt=0)
    launch_timeout_s: float = 60.0
    settle: str = Field(default="networkidle", pattern="^(networkidle|delay)$")
    settle_timeout_ms: int = 5000
    settle_delay_ms: int = 500
    user_agent: str = (
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    )
    launch_args: List[str] = Field(
        default_factory=lambda: ["--no-sandbox", "--disable-setuid-sandbox"]
    )


class ExtractionConfig(BaseModel):
    max_pdf_pages: int | None = None
    header_footer_min_pages: int = 3
    header_footer_ratio: float = Field(default=0.6, gt=0, le=1)


class StoreConfig(BaseModel):
    fingerprint_scope: str = Field(default="content", pattern="^(content|source)$")


class LLMConfig(BaseModel):
    provider: str = "ollama"
    base_url: str = "http://localhost:11434"
    model_name: str = "llama3:8b"
    temperature: float = 0.1
    max_tokens: int = 512
    timeout_ms: int = 120_000
    retry_backoff_s: float = 1.0


class QueryConfig(BaseModel):
    max_context_chars: int = Field(default=12_000, gt=0)


class GlobalYAMLConfig(BaseModel):
    app: AppConfig = Field(default_factory=AppConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    query: QueryConfig = Field(default_factory=QueryConfig)


class EnvSettings(BaseSettings):
    """Environment overrides, e.g. DOCSIFT_DB_PATH=/var/lib/docsift.db."""

    model_config = SettingsConfigDict(
        env_prefix="DOCSIFT_", env_file=".env", extra="ignore"
    )

    config: Path = Path("config/config.yaml")
    db_path: Path | None = None
    ollama_base_url: str | None = None
    model: str | None = None


def load_yaml_config(
    path: Path = Path("config/config.yaml"), env: EnvSettings | None = None
) -> GlobalYAMLConfig:
    raw = {}
    if Path(path).exists():
        with open(path, "r") as f:
            raw = yaml.safe_load(f) or {}
    cfg = GlobalYAMLConfig(**raw)

    if env is not None:
        if env.db_path is not None:
            cfg.app.db_path = env.db_path
        if env.ollama_base_url:
            cfg.llm.base_url = env.ollama_base_url
        if env.model:
            cfg.llm.model_name = env.model
    return cfg


env_settings = EnvSettings()
yaml_config = load_yaml_config(env_settings.config, env_settings)
