from typing import Dict

from fastapi import APIRouter

from timesync import state

router = APIRouter()


@router.get("/health")
async def health() -> Dict[str, str]:
    store = state.document_store
    if store is None:
        return {"status": "ok", "storage": "none", "storage_status": "disconnected"}
    healthy = await store.ping()
    return {
        "status": "ok",
        "storage": store.name,
        "storage_status": "healthy" if healthy else "unhealthy",
    }
