from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    app_name: str = 'contract-migration-api-v1'
    app_env: str = Field(default='dev', alias='APP_ENV')
    app_port: int = Field(default=8000, alias='APP_PORT')

    database_url: str = Field(default='sqlite:///./data/contracts_v1.db', alias='DATABASE_URL')
    db_pool_size: int = Field(default=10, alias='DB_POOL_SIZE')
    db_max_overflow: int = Field(default=20, alias='DB_MAX_OVERFLOW')
    db_pool_timeout: int = Field(default=30, alias='DB_POOL_TIMEOUT')
    db_pool_recycle: int = Field(default=1800, alias='DB_POOL_RECYCLE')
    db_bootstrap_on_start: bool = Field(default=False, alias='DB_BOOTSTRAP_ON_START')

    # Legacy (TBS) source. LEGACY_DATABASE_URL wins; otherwise the MYSQL_* keys
    # are assembled into a mysql-connector URL; otherwise a local sqlite file.
    legacy_database_url_override: str = Field(default='', alias='LEGACY_DATABASE_URL')
    mysql_host: str = Field(default='', alias='MYSQL_HOST')
    mysql_port: int = Field(default=3306, alias='MYSQL_PORT')
    mysql_user: str = Field(default='', alias='MYSQL_USER')
    mysql_password: str = Field(default='', alias='MYSQL_PASSWORD')
    mysql_database: str = Field(default='', alias='MYSQL_DATABASE')
    legacy_fetch_batch_size: int = Field(default=500, alias='LEGACY_FETCH_BATCH_SIZE')
    legacy_media_api_base_url: str = Field(default='', alias='LEGACY_MEDIA_API_BASE_URL')
    # Off for a stock TBS schema: no Currency/Rescheduled/IsCancelled columns, no installments table.
    legacy_schema_extensions: bool = Field(default=True, alias='LEGACY_SCHEMA_EXTENSIONS')

    migration_max_workers: int = Field(default=4, alias='MIGRATION_MAX_WORKERS')
    default_currency: str = Field(default='EGP', alias='DEFAULT_CURRENCY')
    currency_minor_units: dict[str, int] = Field(
        default_factory=lambda: {'EGP': 2, 'USD': 2, 'EUR': 2, 'SAR': 2, 'KWD': 3, 'JPY': 0},
        alias='CURRENCY_MINOR_UNITS',
    )
    # Reconciliation passes only while |total - sum| stays below this many minor units.
    reconciliation_tolerance_minor_units: int = Field(default=1, ge=1, alias='RECONCILIATION_TOLERANCE_MINOR_UNITS')
    # Legacy markers that produce one Negotiation each: 'rescheduled', 'split'.
    negotiation_trigger_flags: list[str] = Field(
        default_factory=lambda: ['rescheduled', 'split'],
        alias='NEGOTIATION_TRIGGER_FLAGS',
    )
    skip_zero_amount_contracts: bool = Field(default=True, alias='SKIP_ZERO_AMOUNT_CONTRACTS')

    log_level: str = Field(default='INFO', alias='LOG_LEVEL')
    cors_origins: str = Field(default='*', alias='CORS_ORIGINS')

    @property
    def legacy_database_url(self) -> str:
        override = str(self.legacy_database_url_override or '').strip()
        if override:
            return override
        host = str(self.mysql_host or '').strip()
        if host and self.mysql_user and self.mysql_database:
            return (
                f'mysql+mysqlconnector://{self.mysql_user}:{self.mysql_password}'
                f'@{host}:{int(self.mysql_port or 3306)}/{self.mysql_database}'
            )
        return 'sqlite:///./data/legacy_tbs.db'


settings = Settings()
