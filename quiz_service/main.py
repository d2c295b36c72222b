import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from shared.database import make_engine, make_session_factory

from .config import CORS_ORIGINS, DATABASE_URL, LOG_LEVEL, PORT
from .errors import IntegrityError, PersistenceError, QuizError, ValidationError
from .identity import auth_middleware, verify_token
from .routes import build_router

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger("quiz-service")


def create_app(SessionLocal: Optional[sessionmaker] = None, token_verifier=None) -> FastAPI:
    if SessionLocal is None:
        SessionLocal = make_session_factory(make_engine(DATABASE_URL))

    app = FastAPI(title="Quiz Service", version="1.0.0")
    app.state.verify_token = token_verifier or verify_token

    # auth runs inside CORS so preflight and 401s both carry CORS headers
    app.middleware("http")(auth_middleware)

    allow_credentials = CORS_ORIGINS != ["*"]  # Browsers reject "*" with credentials
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(QuizError)
    async def quiz_error_handler(request: Request, exc: QuizError):
        if isinstance(exc, IntegrityError):
            logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
        elif exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content=ValidationError("Malformed request.").to_body())

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        logger.exception("%s %s database error", request.method, request.url.path)
        return JSONResponse(status_code=500, content=PersistenceError("Internal server error.").to_body())

    @app.get("/health", tags=["Health"])
    async def health_check():
        return {"status": "healthy", "service": "quiz-service"}

    app.include_router(build_router(SessionLocal), prefix="/quiz", tags=["Quiz"])
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    from shared.database import Base

    Base.metadata.create_all(make_engine(DATABASE_URL))
    uvicorn.run("quiz_service.main:app", host="0.0.0.0", port=PORT)
