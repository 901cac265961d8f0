import asyncio
from typing import Optional

from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse

from app.deps.services import get_profile_service
from app.schemas.user import ReferrerResponse, UpdateUserProfile
from app.services.users_service import PhotoFile, UserProfileService

router = APIRouter(prefix="/users", tags=["users"])

KEEP_ALIVE_SECONDS = 15

# Los fallos del servicio se devuelven como envelope con success=false (HTTP 200)


@router.get("/me/profile")
def read_my_profile(service: UserProfileService = Depends(get_profile_service)):
    return service.get_user_data().as_dict()


@router.put("/me/profile")
def update_my_profile(body: UpdateUserProfile, service: UserProfileService = Depends(get_profile_service)):
    return service.update_user_profile(body).as_dict()


@router.post("/me/photo")
async def upload_my_photo(
    file: Optional[UploadFile] = File(None),
    service: UserProfileService = Depends(get_profile_service),
):
    photo = None
    if file is not None:
        content = await file.read()
        photo = PhotoFile(
            content=content,
            content_type=file.content_type,
            size=len(content),
            filename=file.filename,
        )
    result = await run_in_threadpool(service.update_profile_photo, photo)
    return result.as_dict()


@router.get("/me/referrer", response_model=ReferrerResponse)
def read_my_referrer(service: UserProfileService = Depends(get_profile_service)):
    return {"ok": True, "nombre": service.get_referrer_name()}


@router.get("/me/stream")
async def stream_my_profile(request: Request, service: UserProfileService = Depends(get_profile_service)):
    """
    Server-Sent Events con cada cambio del perfil.
    La suscripción se cierra cuando el cliente se desconecta.
    """
    loop = asyncio.get_running_loop()
    events: asyncio.Queue = asyncio.Queue()

    # los snapshots llegan en un hilo del SDK
    subscription = service.subscribe_to_user(
        lambda result: loop.call_soon_threadsafe(events.put_nowait, result)
    )

    async def _event_source():
        with subscription:
            while not await request.is_disconnected():
                try:
                    result = await asyncio.wait_for(events.get(), timeout=KEEP_ALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                yield f"data: {result.model_dump_json(exclude_none=True)}\n\n"

    return StreamingResponse(_event_source(), media_type="text/event-stream")
