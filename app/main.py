from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.enrollments.router import router as enrollments_router
from app.api.v1.finance.router import router as finance_router
from app.core.logging import setup_logging


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title="Tutoring CRM Billing")

    # CORS: allow frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(enrollments_router)
    app.include_router(finance_router)

    return app


app = create_app()
