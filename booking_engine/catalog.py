"""Read-only access to bookable resources."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from .errors import ResourceNotFound
from .models import Resource, ResourceKind, ResourceType


@dataclass(frozen=True)
class ResourceSnapshot:
    """Immutable copy of a resource row taken inside a transaction."""

    id: int
    name: str
    kind: ResourceKind
    type: ResourceType
    capacity: int
    hourly_rate: Decimal
    daily_rate: Decimal
    is_active: bool

    @classmethod
    def from_row(cls, resource: Resource) -> "ResourceSnapshot":
        return cls(
            id=resource.id,
            name=resource.name,
            kind=resource.kind,
            type=resource.type,
            capacity=resource.capacity,
            hourly_rate=Decimal(resource.hourly_rate),
            daily_rate=Decimal(resource.daily_rate),
            is_active=resource.is_active,
        )


def list_resources(
    db: Session,
    type: Optional[ResourceType] = None,
    kind: Optional[ResourceKind] = None,
    active_only: bool = False,
) -> List[Resource]:
    query = db.query(Resource)
    if type is not None:
        query = query.filter(Resource.type == type)
    if kind is not None:
        query = query.filter(Resource.kind == kind)
    if active_only:
        query = query.filter(Resource.is_active.is_(True))
    return query.order_by(Resource.name.asc()).all()


def get_resource(db: Session, resource_id: int) -> Resource:
    resource = db.query(Resource).filter(Resource.id == resource_id).first()
    if not resource:
        raise ResourceNotFound()
    return resource


def lock_resource(db: Session, resource_id: int) -> ResourceSnapshot:
    """Lock the resource row for the rest of the transaction and snapshot it.

    Every writer that can put a reservation into a blocking status takes this
    lock first, which serializes conflict checks per resource.
    """
    resource = db.query(Resource).filter(Resource.id == resource_id).with_for_update().first()
    if not resource:
        raise ResourceNotFound()
    return ResourceSnapshot.from_row(resource)
