import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from badgelife.config import ConfigurationError
from badgelife.events.tracker import TaskStatusTracker
from badgelife.models import IdentificationResponse, IdentifyRequest
from badgelife.services.cascade import IdentificationCascade
from badgelife.services.images import ImagePayloadError

router = APIRouter()

logger = logging.getLogger(__name__)


def get_cascade(request: Request) -> IdentificationCascade:
    cascade: IdentificationCascade | None = getattr(request.app.state, "cascade", None)
    if cascade is None:
        raise HTTPException(status_code=500, detail="Identification cascade unavailable")
    return cascade


def get_status_tracker(request: Request) -> TaskStatusTracker:
    tracker: TaskStatusTracker | None = getattr(request.app.state, "status_tracker", None)
    if tracker is None:
        raise HTTPException(status_code=500, detail="Status tracker unavailable")
    return tracker


@router.post("", response_model=IdentificationResponse, response_model_by_alias=True)
async def identify_badge(
    payload: IdentifyRequest,
    cascade: IdentificationCascade = Depends(get_cascade),
) -> IdentificationResponse:
    try:
        return await cascade.run(
            payload.image_base64,
            force_web_search=payload.force_web_search,
            user_text=payload.user_text,
            task_id=payload.task_id,
        )
    except ImagePayloadError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except ConfigurationError as exc:
        logger.error("Identification refused: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.get("/tasks/{task_id}/events")
async def stream_task_events(
    task_id: str,
    tracker: TaskStatusTracker = Depends(get_status_tracker),
):
    async def event_generator():
        async for event in tracker.stream(task_id):
            yield f"event: {event['event']}\ndata: {event['data']}\n\n"

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )
