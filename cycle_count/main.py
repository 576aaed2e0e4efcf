import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from cycle_count.config import settings
from cycle_count.errors import (
    CountConcurrencyError,
    CountNotFoundError,
    CountStateError,
    CountSubmissionError,
    CountValidationError,
)
from cycle_count.routers import counts
from cycle_count.security.headers import install_security_headers

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

app = FastAPI(title='Inventory Cycle Count')

install_security_headers(app)

app.include_router(counts.router)


@app.exception_handler(CountValidationError)
async def count_validation_error_handler(request: Request, exc: CountValidationError):
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder(
            {
                'error': str(exc),
                'code': 'VALIDATION_ERROR',
                'errors': [error.to_dict() for error in exc.errors],
            }
        ),
    )


@app.exception_handler(CountSubmissionError)
async def count_submission_error_handler(request: Request, exc: CountSubmissionError):
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder(
            {
                'error': str(exc),
                'code': 'SUBMISSION_ERROR',
                'errors': [error.to_dict() for error in exc.errors],
                'items': [{'itemId': item.item_id, 'sku': item.sku, 'name': item.name} for item in exc.items],
            }
        ),
    )


@app.exception_handler(CountConcurrencyError)
async def count_concurrency_error_handler(request: Request, exc: CountConcurrencyError):
    return JSONResponse(
        status_code=409,
        content={'error': str(exc), 'code': 'CONCURRENCY_ERROR', 'conflictingCountId': exc.conflicting_count_id},
    )


@app.exception_handler(CountStateError)
async def count_state_error_handler(request: Request, exc: CountStateError):
    return JSONResponse(
        status_code=409,
        content={'error': str(exc), 'code': 'STATE_CONFLICT', 'status': exc.status, 'operation': exc.operation},
    )


@app.exception_handler(CountNotFoundError)
async def count_not_found_handler(request: Request, exc: CountNotFoundError):
    return JSONResponse(status_code=404, content={'error': str(exc), 'code': 'NOT_FOUND'})


@app.get('/health')
def health() -> dict:
    return {'status': 'ok'}
