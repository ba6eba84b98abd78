from pydantic import BaseModel, Field


class MigrationErrorOut(BaseModel):
    legacy_id: int | None = None
    kind: str
    message: str


class MigrationResultOut(BaseModel):
    success: bool
    message: str
    contracts_migrated: int = 0
    installments_migrated: int = 0
    negotiations_created: int = 0
    contracts_skipped: int = 0
    contracts_failed: int = 0
    cancelled: bool = False
    errors: list[MigrationErrorOut] = Field(default_factory=list)


class MigrationStatisticsOut(BaseModel):
    pending: int = 0
    migrated: int = 0
    failed: int = 0
    skipped: int = 0
    total_legacy: int | None = None
