import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from surveyclean.config import settings
from surveyclean.errors import (
    ColumnLocked,
    InvalidWeightTotal,
    NoHistory,
    SessionNotFound,
    StageOrderError,
    SurveyCleanError,
)
from surveyclean.routes.cleaning import router as cleaning_router
from surveyclean.routes.pipeline import router as pipeline_router
from surveyclean.routes.schema import router as schema_router
from surveyclean.routes.upload import router as upload_router
from surveyclean.routes.weights import router as weights_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME, version="1.0.0", debug=settings.DEBUG)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_CONFLICTS = (ColumnLocked, NoHistory, StageOrderError, InvalidWeightTotal)


@app.exception_handler(SurveyCleanError)
async def survey_clean_error_handler(request: Request, exc: SurveyCleanError):
    if isinstance(exc, SessionNotFound):
        status_code = 404
    elif isinstance(exc, _CONFLICTS):
        status_code = 409
    else:
        status_code = 422
    logger.warning("%s %s -> %d %s: %s", request.method, request.url.path, status_code, exc.kind, exc.message)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.get("/")
def root():
    return {"message": f"{settings.APP_NAME} is running", "version": "1.0.0"}


@app.get("/health")
def health():
    return {"status": "healthy"}


app.include_router(upload_router)
app.include_router(schema_router)
app.include_router(cleaning_router)
app.include_router(weights_router)
app.include_router(pipeline_router)
