from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import FileResponse

from plasticwatch.dependencies import require_principal
from plasticwatch.services.access_control import Principal
from plasticwatch.services.storage import public_url, resolve_object, save_object
from plasticwatch.utils.response import success_response

router = APIRouter(prefix="/storage", tags=["storage"])

# Object reads carry no API key so stored images can be linked directly
public_router = APIRouter(prefix="/storage", tags=["storage"])


@router.post("/{bucket}", status_code=201)
async def upload_object(
    bucket: str,
    file: UploadFile = File(...),
    path: str | None = Form(default=None),
    principal: Principal = Depends(require_principal),
):
    content = await file.read()
    stored_path = save_object(bucket, content, path=path, filename=file.filename)
    return success_response(data={"path": stored_path, "public_url": public_url(bucket, stored_path)})


@public_router.get("/{bucket}/{path:path}")
async def get_object(bucket: str, path: str):
    return FileResponse(resolve_object(bucket, path))
