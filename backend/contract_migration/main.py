import time
import uuid

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from contract_migration.api.v1.router import router as v1_router
from contract_migration.core.config import settings
from contract_migration.core.logging_config import log_request, setup_logging, structured_log
from contract_migration.db.bootstrap import bootstrap_database
from contract_migration.schemas.common import ErrorBody

setup_logging()

app = FastAPI(title=settings.app_name, version='1.0.0')

if settings.cors_origins and settings.cors_origins.strip() != '*':
    origins = [o.strip() for o in settings.cors_origins.split(',') if o.strip()]
else:
    origins = ['*']


app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=origins != ['*'],
    allow_methods=['*'],
    allow_headers=['*'],
)


def _trace_id(request: Request) -> str:
    return getattr(request.state, 'trace_id', None) or request.headers.get('x-trace-id') or str(uuid.uuid4())


@app.middleware('http')
async def trace_and_logging(request: Request, call_next):
    trace_id = request.headers.get('x-trace-id') or str(uuid.uuid4())
    request.state.trace_id = trace_id
    start = time.time()
    try:
        response = await call_next(request)
        latency = round((time.time() - start) * 1000, 2)
        log_request(request.url.path, request.method, trace_id, latency, response.status_code)
        response.headers['x-trace-id'] = trace_id
        response.headers['x-latency-ms'] = str(latency)
        return response
    except Exception as exc:
        latency = round((time.time() - start) * 1000, 2)
        structured_log(
            'error', 'request_failed',
            trace_id=trace_id, duration_ms=latency,
            endpoint=f'{request.method} {request.url.path}',
            error=str(exc),
        )
        body = ErrorBody(error_code='INTERNAL_ERROR', message='Internal error', details=str(exc), trace_id=trace_id).model_dump()
        headers = {'x-trace-id': trace_id, 'x-latency-ms': str(latency)}
        return JSONResponse(status_code=500, content=body, headers=headers)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    trace_id = _trace_id(request)
    if isinstance(exc.detail, dict):
        body = ErrorBody(
            error_code=str(exc.detail.get('error_code') or 'HTTP_ERROR'),
            message=str(exc.detail.get('message') or 'HTTP Error'),
            details=exc.detail.get('details'),
            trace_id=trace_id,
        ).model_dump()
    else:
        body = ErrorBody(error_code='HTTP_ERROR', message=str(exc.detail), trace_id=trace_id).model_dump()
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    body = ErrorBody(
        error_code='INVALID_PAYLOAD',
        message='Invalid request',
        details={'errors': jsonable_encoder(exc.errors())},
        trace_id=_trace_id(request),
    ).model_dump()
    return JSONResponse(status_code=422, content=body)


app.include_router(v1_router)


@app.on_event('startup')
def _bootstrap_db_on_startup() -> None:
    if settings.db_bootstrap_on_start:
        bootstrap_database()
