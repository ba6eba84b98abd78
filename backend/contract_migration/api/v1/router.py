from fastapi import APIRouter

from contract_migration.api.v1.endpoints import contract_migration, health

router = APIRouter(prefix='/api/v1')
router.include_router(health.router, tags=['health'])
router.include_router(contract_migration.router, prefix='/contract-migration', tags=['contract-migration'])
