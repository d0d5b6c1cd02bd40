"""Pydantic schemas for API request/response validation."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from models import (
    AcquisitionType,
    ServiceStatus,
    StepStatus,
    UserRole,
)

# =============================================================================
# Health
# =============================================================================


class HealthResponse(BaseModel):
    status: str
    service: str


class PoolStatusResponse(BaseModel):
    pool_size: int
    checked_out: int
    overflow: int
    checked_in: int


class DetailedHealthResponse(HealthResponse):
    database: bool
    pool: PoolStatusResponse | None = None


# =============================================================================
# Shared nested read models
# =============================================================================


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    role: UserRole


class StateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    name: str


class CityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    state: StateResponse


class NeighborhoodResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    city: CityResponse


class AddressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    postal_code: str
    street: str
    number: str | None = None
    complement: str | None = None
    neighborhood: NeighborhoodResponse


class ClientSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    phone: str | None = None
    cnpj: str | None = None
    cpf: str | None = None
    active: bool


class ClientResponse(ClientSummary):
    """Client with its resolved address chain (used in service listings)."""

    address: AddressResponse | None = None


class CatalogCopyMachineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    manufacturer: str
    model: str
    description: str | None = None


class ClientCopyMachineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    serial_number: str
    client_id: int
    acquisition_type: AcquisitionType
    catalog_copy_machine: CatalogCopyMachineResponse | None = None


class CategorySummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None = None


# =============================================================================
# Steps and images
# =============================================================================


class ImageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    path: str
    step_id: int
    created_at: datetime


class StepResponse(BaseModel):
    """Step as embedded in a service."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None = None
    observation: str | None = None
    responsable_client: str | None = None
    service_id: int | None = None
    category_id: int | None = None
    responsable_id: int | None = None
    status: StepStatus
    datetime_start: datetime | None = None
    datetime_conclusion: datetime | None = None
    datetime_expiration: datetime | None = None
    reason_cancellament: str | None = None
    created_at: datetime
    updated_at: datetime
    responsable: UserSummary | None = None
    images: list[ImageResponse] = Field(default_factory=list)


class StepServiceSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    description: str | None = None
    status: ServiceStatus
    priority: str | None = None
    client: ClientSummary | None = None


class StepDetailResponse(StepResponse):
    """Standalone step view with its parent service and category."""

    service: StepServiceSummary | None = None
    category: CategorySummary | None = None


class StepNotesUpdate(BaseModel):
    """Free-text fields the responsible user may edit. Status is not editable."""

    observation: str | None = Field(default=None, max_length=5000)
    responsable_client: str | None = Field(default=None, max_length=255)


class StepCancelRequest(BaseModel):
    # Presence is checked by the lifecycle so a missing reason maps to 400
    reason: str | None = Field(default=None, max_length=2000)


class MyStepsFilter(str, Enum):
    CREATED_TODAY = "created_today"
    EXPIRES_TODAY = "expires_today"


# =============================================================================
# Services
# =============================================================================


class StepDefinition(BaseModel):
    """A step as supplied by clients on service create/update.

    On update, ``id`` identifies an existing step of the same service; entries
    without ``id`` are new steps.
    """

    id: int | None = None
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    observation: str | None = None
    responsable_id: int | None = None
    responsable_client: str | None = Field(default=None, max_length=255)
    datetime_expiration: datetime | None = None
    category_id: int | None = None


class ServiceCreate(BaseModel):
    client_id: int | None = None
    category_id: int | None = None
    client_copy_machine_id: int | None = None
    description: str | None = None
    priority: str | None = Field(default=None, max_length=20)
    steps: list[StepDefinition] | None = None


class ServiceUpdate(BaseModel):
    """Partial update. Only fields present in the request body are applied."""

    client_id: int | None = None
    category_id: int | None = None
    client_copy_machine_id: int | None = None
    description: str | None = None
    priority: str | None = Field(default=None, max_length=20)
    status: ServiceStatus | None = None
    reason_cancellament: str | None = None
    steps: list[StepDefinition] | None = None


class ServiceFilters(BaseModel):
    """Listing filters. page/limit are normalised by the aggregator."""

    category_id: int | None = None
    client_id: int | None = None
    client_copy_machine_id: int | None = None
    city_id: int | None = None
    acquisition_type: AcquisitionType | None = None
    page: int = 1
    limit: int = 10


class ServiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    client_id: int | None = None
    category_id: int | None = None
    client_copy_machine_id: int | None = None
    description: str | None = None
    status: ServiceStatus
    priority: str | None = None
    reason_cancellament: str | None = None
    created_at: datetime
    updated_at: datetime
    client: ClientResponse | None = None
    category: CategorySummary | None = None
    client_copy_machine: ClientCopyMachineResponse | None = None
    steps: list[StepResponse] = Field(default_factory=list)


class ServiceListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    data: list[ServiceResponse]
    total: int
    page: int
    limit: int
    total_pages: int = Field(alias="totalPages")


# =============================================================================
# Statistics and dashboard
# =============================================================================


class ServiceStats(BaseModel):
    """Point-in-time service counters.

    pending + in_progress + completed + cancelled == total.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    total: int = 0
    pending: int = 0
    in_progress: int = Field(default=0, alias="inProgress")
    completed: int = 0
    cancelled: int = 0
    overdue: int = 0
    this_week: int = Field(default=0, alias="thisWeek")
    this_month: int = Field(default=0, alias="thisMonth")


class ClientStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    total: int = 0
    new_this_month: int = Field(default=0, alias="newThisMonth")


class DashboardStatsResponse(BaseModel):
    """One monthly snapshot."""

    model_config = ConfigDict(frozen=True)

    year: int
    month: int
    clients: ClientStats
    services: ServiceStats


# =============================================================================
# Categories
# =============================================================================


class CategoryStepTemplate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    observation: str | None = None
    responsable_client: str | None = Field(default=None, max_length=255)


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    steps: list[CategoryStepTemplate] | None = None


class CategoryUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    steps: list[CategoryStepTemplate] | None = None


class CategoryStepResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None = None
    observation: str | None = None
    responsable_client: str | None = None


class CategoryResponse(CategorySummary):
    created_at: datetime
    updated_at: datetime
    steps: list[CategoryStepResponse] = Field(default_factory=list)
