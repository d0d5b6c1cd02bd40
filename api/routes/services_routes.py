"""Service (work order) endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response

from core.auth import UserId
from core.database import DbSession, DbSessionReadOnly
from core.ratelimit import MUTATION_LIMIT, limiter
from models import AcquisitionType
from schemas import (
    ServiceCreate,
    ServiceFilters,
    ServiceListResponse,
    ServiceResponse,
    ServiceStats,
    ServiceUpdate,
)
from services.image_storage import LocalImageStorage, get_image_storage
from services.work_orders_service import (
    create_service,
    get_service,
    get_service_stats,
    list_services,
    remove_service,
    update_service,
)

router = APIRouter(prefix="/api/services", tags=["services"])

ImageStorage = Annotated[LocalImageStorage, Depends(get_image_storage)]


@router.get("", response_model=ServiceListResponse)
async def list_services_endpoint(
    user_id: UserId,
    db: DbSessionReadOnly,
    category_id: int | None = None,
    client_id: int | None = None,
    client_copy_machine_id: int | None = None,
    city_id: int | None = None,
    acquisition_type: AcquisitionType | None = None,
    page: Annotated[int, Query()] = 1,
    limit: Annotated[int, Query()] = 10,
) -> ServiceListResponse:
    """Paginated services, newest first.

    page floors at 1 and limit is clamped to [1, 100].
    """
    result = await list_services(
        db,
        ServiceFilters(
            category_id=category_id,
            client_id=client_id,
            client_copy_machine_id=client_copy_machine_id,
            city_id=city_id,
            acquisition_type=acquisition_type,
            page=page,
            limit=limit,
        ),
    )
    return ServiceListResponse(
        data=[ServiceResponse.model_validate(s) for s in result.data],
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
    )


@router.get("/stats", response_model=ServiceStats)
async def service_stats_endpoint(
    user_id: UserId,
    db: DbSessionReadOnly,
) -> ServiceStats:
    return await get_service_stats(db)


@router.get(
    "/{service_id}",
    response_model=ServiceResponse,
    responses={404: {"description": "Service not found"}},
)
async def get_service_endpoint(
    service_id: int,
    user_id: UserId,
    db: DbSessionReadOnly,
) -> ServiceResponse:
    service = await get_service(db, service_id)
    return ServiceResponse.model_validate(service)


@router.post(
    "",
    response_model=ServiceResponse,
    status_code=201,
    responses={400: {"description": "Referenced client/category/equipment missing"}},
)
@limiter.limit(MUTATION_LIMIT)
async def create_service_endpoint(
    request: Request,
    body: ServiceCreate,
    user_id: UserId,
    db: DbSession,
) -> ServiceResponse:
    service = await create_service(
        db, body.model_dump(exclude={"steps"}), body.steps
    )
    return ServiceResponse.model_validate(service)


@router.patch(
    "/{service_id}",
    response_model=ServiceResponse,
    responses={
        400: {"description": "Invalid reference, step id or cancellation reason"},
        404: {"description": "Service not found"},
    },
)
@limiter.limit(MUTATION_LIMIT)
async def update_service_endpoint(
    request: Request,
    service_id: int,
    body: ServiceUpdate,
    user_id: UserId,
    db: DbSession,
    storage: ImageStorage,
) -> ServiceResponse:
    """Partial update. A ``steps`` array is reconciled against existing steps by id."""
    fields = body.model_dump(exclude_unset=True, exclude={"steps"})
    steps = body.steps if "steps" in body.model_fields_set else None
    service = await update_service(db, service_id, fields, steps, storage=storage)
    return ServiceResponse.model_validate(service)


@router.delete(
    "/{service_id}",
    status_code=204,
    responses={404: {"description": "Service not found"}},
)
@limiter.limit(MUTATION_LIMIT)
async def delete_service_endpoint(
    request: Request,
    service_id: int,
    user_id: UserId,
    db: DbSession,
    storage: ImageStorage,
) -> Response:
    await remove_service(db, service_id, storage=storage)
    return Response(status_code=204)
