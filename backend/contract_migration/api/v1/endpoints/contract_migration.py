from fastapi import APIRouter, Depends, Header, Path, Query
from fastapi.responses import JSONResponse

from contract_migration.schemas.migration import MigrationResultOut, MigrationStatisticsOut
from contract_migration.services.contract_migration_service import ContractMigrationService
from contract_migration.services.migration_types import MigrationResult

router = APIRouter()


def get_migration_service() -> ContractMigrationService:
    return ContractMigrationService()


def get_actor(x_actor_id: str | None = Header(default=None)) -> str:
    actor = str(x_actor_id or '').strip()
    return actor[:128] or 'system'


def _result_response(result: MigrationResult) -> JSONResponse:
    body = MigrationResultOut.model_validate(result.to_dict()).model_dump()
    return JSONResponse(status_code=200 if result.success else 400, content=body)


@router.post('/migrate-all', response_model=MigrationResultOut, responses={400: {'model': MigrationResultOut}})
def migrate_all(
    actor: str = Depends(get_actor),
    service: ContractMigrationService = Depends(get_migration_service),
):
    return _result_response(service.migrate_all(actor))


@router.post(
    '/migrate/{legacy_contract_id}',
    response_model=MigrationResultOut,
    responses={400: {'model': MigrationResultOut}},
)
def migrate_contract(
    legacy_contract_id: int = Path(ge=1),
    force: bool = Query(default=False),
    actor: str = Depends(get_actor),
    service: ContractMigrationService = Depends(get_migration_service),
):
    return _result_response(service.migrate_one(legacy_contract_id, actor, force=force))


@router.get('/statistics', response_model=MigrationStatisticsOut)
def migration_statistics(service: ContractMigrationService = Depends(get_migration_service)):
    return service.get_statistics()
