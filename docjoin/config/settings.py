# Configuration management

from pydantic_settings import BaseSettings  # type: ignore
from functools import lru_cache
from typing import List


class Settings(BaseSettings):
    # Application
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    debug: bool = False
    log_level: str = "INFO"
    json_logs: bool = True

    # Storage (project state and export archives)
    storage_path: str = "./storage"

    # Join engine
    default_cardinality: str = "one-to-many"
    strict_relationships: bool = False  # raise on relationships naming unknown tables/columns

    # Export
    export_workers: int = 1
    export_indent: int = 2

    # Ingestion
    max_upload_bytes: int = 50 * 1024 * 1024
    dummy_row_count: int = 10  # synthetic rows per table for schema imports

    # Projects
    project_max_bytes: int = 4_500_000

    # Security
    allowed_origins: List[str] = [
        "http://localhost:3000", "http://localhost:5173"]

    # Observability
    metrics_enabled: bool = True

    class Config:
        env_file = ".env"
        env_prefix = "DOCJOIN_"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    return Settings()
