from fastapi import APIRouter, Request

router = APIRouter(prefix="/health", tags=["Health"])

@router.get("")
def health_root():
    return {"ok": True}

@router.get("/sessions")
def health_sessions(request: Request):
    registry = getattr(request.app.state, "registry", None)
    storage = getattr(request.app.state, "session_storage", None)
    return {
        "active_sessions": len(registry) if registry is not None else 0,
        "storage": type(storage).__name__ if storage is not None else None,
    }
