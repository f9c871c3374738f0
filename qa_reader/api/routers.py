from fastapi import APIRouter, FastAPI

from qa_reader.api.endpoints import (
    agent_config, configuration, criteria, health, insights, processed, sampling, scoring, snapshot,
    uploads
)

router = APIRouter()

router.include_router(uploads.router)
router.include_router(snapshot.router)
router.include_router(sampling.router)
router.include_router(scoring.router)
router.include_router(processed.router)
router.include_router(criteria.router)
router.include_router(insights.router)
router.include_router(configuration.router)
router.include_router(agent_config.router)
router.include_router(health.router)


def register_routers(app: FastAPI) -> None:
    app.include_router(router)
