import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from backend.core import config
from backend.core.errors import SchedulingError
from backend.database import Base, engine, ensure_scheduling_schema, is_database_connected
from backend.models import appointment, availability, document  # noqa: F401
from backend.routes import (
    appointment_routes,
    availability_routes,
    medical_record_routes,
    message_routes,
    patient_routes,
    review_routes,
    session_routes,
    therapist_routes,
    treatment_plan_routes,
)

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
)

app = FastAPI(
    title=config.API_TITLE,
    version=config.API_VERSION,
    docs_url='/api-docs',
    openapi_url='/api/openapi.json',
)

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
    try:
        Base.metadata.create_all(bind=engine)
        ensure_scheduling_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.exception_handler(SchedulingError)
async def handle_scheduling_error(request: Request, exc: SchedulingError) -> JSONResponse:
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error('%s %s failed: %s', request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_content())


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {'field': '.'.join(str(part) for part in error['loc'] if part != 'body'), 'message': error['msg']}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={'message': 'Invalid request', 'error': '; '.join(detail['message'] for detail in details), 'details': details},
    )


@app.exception_handler(StarletteHTTPException)
async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == 'Not Found':
        return JSONResponse(status_code=exc.status_code, content={'message': 'Route not found', 'path': request.url.path})
    return JSONResponse(status_code=exc.status_code, content={'message': str(exc.detail)})


@app.exception_handler(SQLAlchemyError)
async def handle_database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception('Unhandled database error on %s %s', request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={'message': 'Internal Server Error', 'error': str(exc)},
    )


@app.get('/')
def root():
    return {'status': 'Clinic Scheduling API Running', 'docs': '/api-docs'}


@app.get('/health')
def health():
    return {
        'status': 'OK',
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'database': 'Connected' if is_database_connected() else 'Disconnected',
    }


app.include_router(patient_routes.router, prefix='/api/patients')
app.include_router(therapist_routes.router, prefix='/api/therapists')
app.include_router(availability_routes.router, prefix='/api/therapists')
app.include_router(appointment_routes.router, prefix='/api/appointments')
app.include_router(session_routes.router, prefix='/api/sessions')
app.include_router(medical_record_routes.router, prefix='/api/medical-records')
app.include_router(message_routes.router, prefix='/api/messages')
app.include_router(review_routes.router, prefix='/api/reviews')
app.include_router(treatment_plan_routes.router, prefix='/api/treatment-plans')
