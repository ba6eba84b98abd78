from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from contract_migration.core.config import settings
from contract_migration.db.session import LegacySessionLocal, SessionLocal

router = APIRouter()


def _ping(session_factory) -> bool:
    db = session_factory()
    try:
        db.execute(text('SELECT 1'))
        return True
    except SQLAlchemyError:
        return False
    finally:
        db.close()


@router.get('/health')
def health():
    """
    Health check. 200 with db_ok true when the target store is reachable, 503 otherwise.
    legacy_ok reports the legacy TBS store; it does not change the status code.
    """
    db_ok = _ping(SessionLocal)
    if not db_ok:
        return JSONResponse(
            status_code=503,
            content={
                'ok': False,
                'service': settings.app_name,
                'db_ok': False,
                'legacy_ok': None,
                'message': 'Database unreachable',
            },
        )
    return {
        'ok': True,
        'service': settings.app_name,
        'db_ok': True,
        'legacy_ok': _ping(LegacySessionLocal),
    }
