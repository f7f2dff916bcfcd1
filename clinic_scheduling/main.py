import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from clinic_scheduling.core import config
from clinic_scheduling.core.errors import PersistenceError, SchedulingError, translate_db_error
from clinic_scheduling.database import Base, engine, ensure_appointment_schema
from clinic_scheduling.models import appointment, location, provider  # noqa: F401
from clinic_scheduling.routes import appointment_routes, location_routes, provider_routes


def configure_logging() -> None:
    logging.basicConfig(
        level=config.LOG_LEVEL.upper(),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )


configure_logging()

app = FastAPI(title='Clinic Scheduling API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    logger.info('Starting clinic scheduling API (%s)', config.APP_ENV)
    try:
        Base.metadata.create_all(bind=engine)
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.exception_handler(SchedulingError)
def handle_scheduling_error(request: Request, exc: SchedulingError) -> JSONResponse:
    payload = exc.payload
    if isinstance(exc, PersistenceError):
        logger.error('Storage failure on %s %s', request.method, request.url.path)
        if config.DEBUG_ERRORS and exc.__cause__ is not None:
            payload = {**payload, 'error': str(exc.__cause__)}
    return JSONResponse(status_code=exc.status_code, content=payload)


@app.exception_handler(RequestValidationError)
def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {'field': '.'.join(str(part) for part in error['loc'] if part != 'body'), 'message': error['msg']}
        for error in exc.errors()
    ]
    return JSONResponse(status_code=400, content={'detail': 'Invalid request.', 'errors': errors})


@app.exception_handler(SQLAlchemyError)
def handle_storage_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception('Unhandled storage error on %s %s', request.method, request.url.path)
    error = translate_db_error(exc)
    payload = error.payload
    if config.DEBUG_ERRORS:
        payload = {**payload, 'error': str(exc)}
    return JSONResponse(status_code=error.status_code, content=payload)


@app.get('/')
def root():
    return {'status': 'Clinic Scheduling API Running'}


app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(provider_routes.router, prefix='/providers')
app.include_router(location_routes.router, prefix='/locations')
