import os
from dataclasses import dataclass, field
from typing import Literal


@dataclass
class DatabaseConfig:
    url: str = field(default_factory=lambda: os.getenv('DATABASE_URL', 'sqlite:///kpi_dashboard.db'))
    pool_size: int = field(default_factory=lambda: int(os.getenv('DB_POOL_SIZE', '10')))
    max_overflow: int = field(default_factory=lambda: int(os.getenv('DB_MAX_OVERFLOW', '20')))
    echo: bool = field(default_factory=lambda: os.getenv('DB_ECHO', 'false').lower() == 'true')


@dataclass
class KpiStoreConfig:
    backend: Literal['sql', 'memory'] = field(default_factory=lambda: os.getenv('KPI_STORE_BACKEND', 'sql'))
    slot: str = field(default_factory=lambda: os.getenv('KPI_STORE_SLOT', 'kpi-store-data'))


@dataclass
class DataConfig:
    default_row_count: int = field(default_factory=lambda: int(os.getenv('DATA_DEFAULT_ROW_COUNT', '100')))
    max_row_count: int = field(default_factory=lambda: int(os.getenv('DATA_MAX_ROW_COUNT', '10000')))
    interval_ms: int = field(default_factory=lambda: int(os.getenv('DATA_INTERVAL_MS', '60000')))


@dataclass
class AppConfig:
    secret_key: str = field(default_factory=lambda: os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production'))
    log_level: str = field(default_factory=lambda: os.getenv('LOG_LEVEL', 'INFO'))
    log_format: Literal['text', 'json'] = field(default_factory=lambda: os.getenv('LOG_FORMAT', 'text'))
    cors_origins: list[str] = field(default_factory=lambda: os.getenv('CORS_ORIGINS', 'http://localhost:3000,http://localhost:5173').split(','))

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    kpi_store: KpiStoreConfig = field(default_factory=KpiStoreConfig)
    data: DataConfig = field(default_factory=DataConfig)


def load_config() -> AppConfig:
    return AppConfig()
