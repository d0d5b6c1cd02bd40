"""Category endpoints."""

from fastapi import APIRouter, Request, Response

from core.auth import UserId
from core.database import DbSession, DbSessionReadOnly
from core.ratelimit import MUTATION_LIMIT, limiter
from schemas import CategoryCreate, CategoryResponse, CategoryUpdate
from services.categories_service import (
    create_category,
    delete_category,
    get_category,
    list_categories,
    update_category,
)

router = APIRouter(prefix="/api/categories", tags=["categories"])


@router.get("", response_model=list[CategoryResponse])
async def list_categories_endpoint(
    user_id: UserId,
    db: DbSessionReadOnly,
) -> list[CategoryResponse]:
    categories = await list_categories(db)
    return [CategoryResponse.model_validate(c) for c in categories]


@router.get(
    "/{category_id}",
    response_model=CategoryResponse,
    responses={404: {"description": "Category not found"}},
)
async def get_category_endpoint(
    category_id: int,
    user_id: UserId,
    db: DbSessionReadOnly,
) -> CategoryResponse:
    return CategoryResponse.model_validate(await get_category(db, category_id))


@router.post("", response_model=CategoryResponse, status_code=201)
@limiter.limit(MUTATION_LIMIT)
async def create_category_endpoint(
    request: Request,
    body: CategoryCreate,
    user_id: UserId,
    db: DbSession,
) -> CategoryResponse:
    category = await create_category(
        db, name=body.name, description=body.description, steps=body.steps
    )
    return CategoryResponse.model_validate(category)


@router.patch(
    "/{category_id}",
    response_model=CategoryResponse,
    responses={404: {"description": "Category not found"}},
)
@limiter.limit(MUTATION_LIMIT)
async def update_category_endpoint(
    request: Request,
    category_id: int,
    body: CategoryUpdate,
    user_id: UserId,
    db: DbSession,
) -> CategoryResponse:
    fields = body.model_dump(exclude_unset=True, exclude={"steps"})
    steps = body.steps if "steps" in body.model_fields_set else None
    category = await update_category(db, category_id, fields, steps)
    return CategoryResponse.model_validate(category)


@router.delete(
    "/{category_id}",
    status_code=204,
    responses={
        404: {"description": "Category not found"},
        409: {"description": "Category still referenced by services"},
    },
)
@limiter.limit(MUTATION_LIMIT)
async def delete_category_endpoint(
    request: Request,
    category_id: int,
    user_id: UserId,
    db: DbSession,
) -> Response:
    await delete_category(db, category_id)
    return Response(status_code=204)
