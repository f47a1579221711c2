from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import FileResponse

from imagio.core.dependencies import get_media_store
from imagio.media.store import MediaStore

router = APIRouter()


@router.get("/v1/assets/{asset_id}", tags=["assets"])
async def get_asset(asset_id: str, store: MediaStore = Depends(get_media_store)):
    handle = store.get(asset_id)
    if handle is None or handle.revoked or not handle.path.is_file():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Asset not found")
    return FileResponse(handle.path, media_type=handle.mime_type, filename=handle.path.name)
