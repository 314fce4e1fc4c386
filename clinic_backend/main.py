import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from clinic_backend.core import config
from clinic_backend.core.logging_config import setup_logging
from clinic_backend.database import (
    Base,
    engine,
    ensure_appointment_schema,
    ensure_leave_schema,
    ensure_profile_schema,
)
from clinic_backend.models import appointment, doctor_leave, profile  # noqa: F401
from clinic_backend.routes import appointment_routes, availability_routes, leave_routes

setup_logging()
config.validate_runtime_config()

app = FastAPI(title='Clinic Scheduling API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_profile_schema()
        ensure_appointment_schema()
        ensure_leave_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            'detail': {
                'code': 'INVALID_INPUT',
                'message': 'Invalid request data.',
                'errors': jsonable_encoder(exc.errors()),
            }
        },
    )


@app.get('/')
def root():
    return {'status': 'Clinic Scheduling API Running'}


app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(leave_routes.router, prefix='/leave')
app.include_router(availability_routes.router, prefix='/availability')
