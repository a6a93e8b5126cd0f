from collections import namedtuple

from models.court import Court
from models.field import Field
from services.errors import NotFoundError

ResourceInfo = namedtuple("ResourceInfo", ["field_id", "owner_user_id", "base_rate", "courts"])


def get_resource(field_id) -> ResourceInfo:
    """Owner, base rate per slot and active courts (ordered by number) of a field."""
    field = Field.query.get(field_id) if field_id else None
    if not field or not field.is_active:
        raise NotFoundError("Field not found")

    courts = (
        Court.query
        .filter_by(field_id=field.id, is_active=True)
        .order_by(Court.number.asc())
        .all()
    )
    return ResourceInfo(field.id, field.owner_user_id, field.price_per_slot, courts)
