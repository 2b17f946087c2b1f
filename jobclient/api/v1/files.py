"""Proxy of the backend's stored-file listing."""

from fastapi import APIRouter, HTTPException

from jobclient.jobs.errors import TransportError

router = APIRouter()

# Set by main.py during lifespan
_transport = None


def set_transport(transport):
    global _transport
    _transport = transport


@router.get("/files")
async def list_files():
    """Files already stored on the backend: {files: [{id, name, size, uploadedAt, url}], total}."""
    if _transport is None:
        raise HTTPException(status_code=503, detail="Transport not initialized")
    try:
        files = await _transport.list_files()
    except TransportError as e:
        raise HTTPException(status_code=502, detail=e.message)
    return {
        "files": [f.model_dump(mode="json", by_alias=True) for f in files],
        "total": len(files),
    }
