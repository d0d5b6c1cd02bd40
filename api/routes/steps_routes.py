"""Step endpoints: views, notes, lifecycle transitions and images."""

from typing import Annotated

from fastapi import APIRouter, Depends, File, Query, Request, Response, UploadFile

from core.auth import UserId
from core.config import get_settings
from core.database import DbSession, DbSessionReadOnly
from core.ratelimit import MUTATION_LIMIT, UPLOAD_LIMIT, limiter
from schemas import (
    ImageResponse,
    MyStepsFilter,
    StepCancelRequest,
    StepDetailResponse,
    StepNotesUpdate,
)
from services.image_storage import LocalImageStorage, get_image_storage
from services.step_lifecycle import CanMutate, responsable_only
from services.steps_service import (
    attach_image,
    cancel_step,
    conclude_step,
    delete_image,
    get_step,
    list_images,
    list_my_steps,
    start_step,
    update_step_notes,
)

router = APIRouter(prefix="/api/steps", tags=["steps"])


def get_step_mutation_policy() -> CanMutate:
    """Who may mutate a step. Overridable via app.dependency_overrides."""
    return responsable_only


MutationPolicy = Annotated[CanMutate, Depends(get_step_mutation_policy)]
ImageStorage = Annotated[LocalImageStorage, Depends(get_image_storage)]

_MUTATION_RESPONSES = {
    403: {"description": "Step is not assigned to the current user"},
    404: {"description": "Step not found"},
}
_TRANSITION_RESPONSES = {
    **_MUTATION_RESPONSES,
    409: {"description": "Transition not allowed from the current status"},
}


@router.get("/my-steps", response_model=list[StepDetailResponse])
async def list_my_steps_endpoint(
    user_id: UserId,
    db: DbSessionReadOnly,
    step_filter: Annotated[MyStepsFilter | None, Query(alias="filter")] = None,
) -> list[StepDetailResponse]:
    """Steps assigned to the current user.

    ``created_today`` / ``expires_today`` narrow the list to the current UTC day.
    """
    steps = await list_my_steps(db, user_id, step_filter)
    return [StepDetailResponse.model_validate(step) for step in steps]


@router.get(
    "/{step_id}",
    response_model=StepDetailResponse,
    responses={404: {"description": "Step not found"}},
)
async def get_step_endpoint(
    step_id: int,
    user_id: UserId,
    db: DbSessionReadOnly,
) -> StepDetailResponse:
    step = await get_step(db, step_id)
    return StepDetailResponse.model_validate(step)


@router.patch(
    "/{step_id}", response_model=StepDetailResponse, responses=_MUTATION_RESPONSES
)
@limiter.limit(MUTATION_LIMIT)
async def update_step_notes_endpoint(
    request: Request,
    step_id: int,
    body: StepNotesUpdate,
    user_id: UserId,
    db: DbSession,
    can_mutate: MutationPolicy,
) -> StepDetailResponse:
    step = await update_step_notes(
        db,
        step_id,
        user_id,
        body.model_dump(exclude_unset=True),
        can_mutate=can_mutate,
    )
    return StepDetailResponse.model_validate(step)


@router.patch(
    "/{step_id}/start",
    response_model=StepDetailResponse,
    responses=_TRANSITION_RESPONSES,
)
@limiter.limit(MUTATION_LIMIT)
async def start_step_endpoint(
    request: Request,
    step_id: int,
    user_id: UserId,
    db: DbSession,
    can_mutate: MutationPolicy,
) -> StepDetailResponse:
    """PENDING -> IN_PROGRESS. Moves a PENDING service to IN_PROGRESS."""
    step = await start_step(db, step_id, user_id, can_mutate=can_mutate)
    return StepDetailResponse.model_validate(step)


@router.patch(
    "/{step_id}/conclude",
    response_model=StepDetailResponse,
    responses=_TRANSITION_RESPONSES,
)
@limiter.limit(MUTATION_LIMIT)
async def conclude_step_endpoint(
    request: Request,
    step_id: int,
    user_id: UserId,
    db: DbSession,
    can_mutate: MutationPolicy,
) -> StepDetailResponse:
    step = await conclude_step(db, step_id, user_id, can_mutate=can_mutate)
    return StepDetailResponse.model_validate(step)


@router.patch(
    "/{step_id}/cancel",
    response_model=StepDetailResponse,
    responses={**_TRANSITION_RESPONSES, 400: {"description": "Reason is required"}},
)
@limiter.limit(MUTATION_LIMIT)
async def cancel_step_endpoint(
    request: Request,
    step_id: int,
    body: StepCancelRequest,
    user_id: UserId,
    db: DbSession,
    can_mutate: MutationPolicy,
) -> StepDetailResponse:
    step = await cancel_step(db, step_id, user_id, body.reason, can_mutate=can_mutate)
    return StepDetailResponse.model_validate(step)


@router.post(
    "/{step_id}/images",
    response_model=ImageResponse,
    status_code=201,
    responses={
        **_MUTATION_RESPONSES,
        400: {"description": "Not an image, empty, or too large"},
    },
)
@limiter.limit(UPLOAD_LIMIT)
async def attach_image_endpoint(
    request: Request,
    step_id: int,
    user_id: UserId,
    db: DbSession,
    can_mutate: MutationPolicy,
    storage: ImageStorage,
    image: Annotated[UploadFile, File()],
) -> ImageResponse:
    max_bytes = get_settings().max_upload_bytes
    # One byte past the limit is enough to reject oversized uploads
    data = await image.read(max_bytes + 1)
    created = await attach_image(
        db,
        step_id,
        user_id,
        filename=image.filename or "upload",
        content_type=image.content_type,
        data=data,
        max_bytes=max_bytes,
        can_mutate=can_mutate,
        storage=storage,
    )
    return ImageResponse.model_validate(created)


@router.get(
    "/{step_id}/images",
    response_model=list[ImageResponse],
    responses={404: {"description": "Step not found"}},
)
async def list_images_endpoint(
    step_id: int,
    user_id: UserId,
    db: DbSessionReadOnly,
) -> list[ImageResponse]:
    images = await list_images(db, step_id)
    return [ImageResponse.model_validate(image) for image in images]


@router.delete(
    "/{step_id}/images/{image_id}",
    status_code=204,
    responses=_MUTATION_RESPONSES,
)
@limiter.limit(MUTATION_LIMIT)
async def delete_image_endpoint(
    request: Request,
    step_id: int,
    image_id: int,
    user_id: UserId,
    db: DbSession,
    can_mutate: MutationPolicy,
    storage: ImageStorage,
) -> Response:
    await delete_image(
        db, step_id, image_id, user_id, can_mutate=can_mutate, storage=storage
    )
    return Response(status_code=204)
