from fastapi import APIRouter

from jobtrace.api.event_trace import router as event_trace_router

router = APIRouter()


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}

# Mount event trace routes
router.include_router(event_trace_router)
