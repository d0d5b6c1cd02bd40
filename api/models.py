"""SQLAlchemy models for the field service backend."""

from datetime import UTC, datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, declared_attr, mapped_column, relationship

from core.database import Base


def utcnow() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


def _enum_column(enum_cls: type[PyEnum], name: str) -> Enum:
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        values_callable=lambda x: [e.value for e in x],
    )


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        return mapped_column(DateTime(timezone=True), default=utcnow)

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        return mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class UserRole(str, PyEnum):
    ADMIN = "ADMIN"
    TECHNICIAN = "TECHNICIAN"


class StepStatus(str, PyEnum):
    """Lifecycle of a single step.

    PENDING -> IN_PROGRESS -> CONCLUDED, and PENDING/IN_PROGRESS -> CANCELLED.
    The allowed moves live in services/step_lifecycle.py.
    """

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    CONCLUDED = "CONCLUDED"
    CANCELLED = "CANCELLED"


class ServiceStatus(str, PyEnum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    CONCLUDED = "CONCLUDED"
    CANCELLED = "CANCELLED"


class AcquisitionType(str, PyEnum):
    """How the client holds the equipment."""

    RENT = "RENT"
    SOLD = "SOLD"
    OWNED = "OWNED"


class User(TimestampMixin, Base):
    """Application user. Accounts are provisioned by the external auth flow."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        _enum_column(UserRole, "user_role"),
        nullable=False,
        default=UserRole.TECHNICIAN,
    )
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Deleting a user keeps the steps and clears responsable_id (ON DELETE SET NULL)
    steps: Mapped[list["Step"]] = relationship(
        back_populates="responsable",
        passive_deletes=True,
    )


# -----------------------------------------------------------------------------
# Location chain: State <- City <- Neighborhood <- Address
# -----------------------------------------------------------------------------


class State(Base):
    __tablename__ = "states"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(2), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    cities: Mapped[list["City"]] = relationship(back_populates="state")


class City(Base):
    __tablename__ = "cities"
    __table_args__ = (UniqueConstraint("name", "state_id", name="uq_city_state"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    state_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("states.id"), nullable=False
    )

    state: Mapped["State"] = relationship(back_populates="cities")
    neighborhoods: Mapped[list["Neighborhood"]] = relationship(back_populates="city")


class Neighborhood(Base):
    __tablename__ = "neighborhoods"
    __table_args__ = (
        UniqueConstraint("name", "city_id", name="uq_neighborhood_city"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    city_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("cities.id"), nullable=False
    )

    city: Mapped["City"] = relationship(back_populates="neighborhoods")


class Address(Base):
    __tablename__ = "addresses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    postal_code: Mapped[str] = mapped_column(String(9), nullable=False)
    street: Mapped[str] = mapped_column(String(255), nullable=False)
    number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    complement: Mapped[str | None] = mapped_column(String(255), nullable=True)
    neighborhood_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("neighborhoods.id"), nullable=False
    )

    neighborhood: Mapped["Neighborhood"] = relationship()


# -----------------------------------------------------------------------------
# Clients and equipment
# -----------------------------------------------------------------------------


class Client(TimestampMixin, Base):
    __tablename__ = "clients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    cnpj: Mapped[str | None] = mapped_column(String(18), nullable=True, unique=True)
    cpf: Mapped[str | None] = mapped_column(String(14), nullable=True, unique=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    address_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("addresses.id", ondelete="SET NULL"), nullable=True
    )

    address: Mapped["Address | None"] = relationship()
    services: Mapped[list["Service"]] = relationship(
        back_populates="client",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    copy_machines: Mapped[list["ClientCopyMachine"]] = relationship(
        back_populates="client",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class CatalogCopyMachine(TimestampMixin, Base):
    """A copy machine model offered by the business."""

    __tablename__ = "catalog_copy_machines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    manufacturer: Mapped[str] = mapped_column(String(100), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)


class ClientCopyMachine(TimestampMixin, Base):
    """A concrete machine installed at a client (the service's equipment)."""

    __tablename__ = "client_copy_machines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    serial_number: Mapped[str] = mapped_column(String(100), nullable=False)
    client_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )
    catalog_copy_machine_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("catalog_copy_machines.id", ondelete="SET NULL"),
        nullable=True,
    )
    acquisition_type: Mapped[AcquisitionType] = mapped_column(
        _enum_column(AcquisitionType, "acquisition_type"),
        nullable=False,
    )

    client: Mapped["Client"] = relationship(back_populates="copy_machines")
    catalog_copy_machine: Mapped["CatalogCopyMachine | None"] = relationship()


# -----------------------------------------------------------------------------
# Work orders
# -----------------------------------------------------------------------------


class Category(TimestampMixin, Base):
    """Service category. Owns template steps (steps without a service)."""

    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    steps: Mapped[list["Step"]] = relationship(
        primaryjoin="and_(Category.id == Step.category_id, Step.service_id.is_(None))",
        order_by="Step.id",
        viewonly=True,
    )


class Service(TimestampMixin, Base):
    """A work order for a client, composed of steps."""

    __tablename__ = "services"
    __table_args__ = (
        Index("ix_services_created_at", "created_at"),
        Index("ix_services_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    client_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=True
    )
    category_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("categories.id"), nullable=True, index=True
    )
    client_copy_machine_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("client_copy_machines.id", ondelete="SET NULL"),
        nullable=True,
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[ServiceStatus] = mapped_column(
        _enum_column(ServiceStatus, "service_status"),
        nullable=False,
        default=ServiceStatus.PENDING,
    )
    priority: Mapped[str | None] = mapped_column(String(20), nullable=True)
    # Set only when status is CANCELLED
    reason_cancellament: Mapped[str | None] = mapped_column(Text, nullable=True)

    client: Mapped["Client | None"] = relationship(back_populates="services")
    category: Mapped["Category | None"] = relationship()
    client_copy_machine: Mapped["ClientCopyMachine | None"] = relationship()
    steps: Mapped[list["Step"]] = relationship(
        back_populates="service",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Step.id",
    )


class Step(TimestampMixin, Base):
    """An atomic unit of work within a service.

    Note: datetime_start is written only when entering IN_PROGRESS and
    datetime_conclusion only when entering CONCLUDED.
    """

    __tablename__ = "steps"
    __table_args__ = (
        Index("ix_steps_service_updated", "service_id", "updated_at"),
        Index("ix_steps_responsable", "responsable_id"),
        Index("ix_steps_expiration", "datetime_expiration"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    observation: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Free-text contact at the client side, not a user reference
    responsable_client: Mapped[str | None] = mapped_column(String(255), nullable=True)
    service_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("services.id", ondelete="CASCADE"), nullable=True
    )
    category_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True
    )
    responsable_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[StepStatus] = mapped_column(
        _enum_column(StepStatus, "step_status"),
        nullable=False,
        default=StepStatus.PENDING,
    )
    datetime_start: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    datetime_conclusion: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    datetime_expiration: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    reason_cancellament: Mapped[str | None] = mapped_column(Text, nullable=True)

    service: Mapped["Service | None"] = relationship(back_populates="steps")
    category: Mapped["Category | None"] = relationship(foreign_keys=[category_id])
    responsable: Mapped["User | None"] = relationship(back_populates="steps")
    images: Mapped[list["Image"]] = relationship(
        back_populates="step",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Image.created_at.desc()",
    )


class Image(Base):
    """A stored photo attached to a step. Immutable once recorded."""

    __tablename__ = "images"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    path: Mapped[str] = mapped_column(String(500), nullable=False)
    step_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("steps.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )

    step: Mapped["Step"] = relationship(back_populates="images")


class DashboardStats(TimestampMixin, Base):
    """Monthly statistics snapshot, one row per (year, month).

    Rows accumulate as a ledger; only the current month is ever rewritten.
    """

    __tablename__ = "dashboard_stats"
    __table_args__ = (UniqueConstraint("year", "month", name="uq_dashboard_year_month"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)

    clients_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    clients_new_this_month: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )

    services_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    services_pending: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    services_in_progress: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    services_completed: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    services_cancelled: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    services_overdue: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    services_this_week: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    services_this_month: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
