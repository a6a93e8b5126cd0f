from datetime import date, datetime

from models.slot import Slot
from models.statuses import SlotStatus
from services.errors import ValidationError
from services.hold_reclaimer import reclaim_quietly
from services.resources import get_resource
from services.windows import window_to_dict


def get_availability(field_id, play_date, now=None):
    """Occupied windows per active court for one day. Expired holds are swept first."""
    now = now or datetime.utcnow()
    if not isinstance(play_date, date):
        try:
            play_date = date.fromisoformat(str(play_date))
        except (TypeError, ValueError):
            raise ValidationError("Invalid date. Use YYYY-MM-DD")

    reclaim_quietly(field_id=field_id, now=now)
    resource = get_resource(field_id)

    taken = (
        Slot.query
        .filter(
            Slot.field_id == resource.field_id,
            Slot.play_date == play_date,
            Slot.status.in_((SlotStatus.HELD, SlotStatus.BOOKED)),
        )
        .order_by(Slot.start_time.asc())
        .all()
    )

    by_court = {}
    for slot in taken:
        # the sweep may have failed; never show a lapsed hold as taken
        if slot.status == SlotStatus.HELD and slot.hold_expires_at and slot.hold_expires_at < now:
            continue
        by_court.setdefault(slot.court_id, []).append(dict(
            window_to_dict(slot),
            status=slot.status,
            hold_expires_at=slot.hold_expires_at.isoformat() if slot.hold_expires_at else None,
        ))

    return {
        "field_id": resource.field_id,
        "play_date": play_date.isoformat(),
        "price_per_slot": resource.base_rate,
        "courts": [
            {"court_id": c.id, "number": c.number, "name": c.name, "occupied": by_court.get(c.id, [])}
            for c in resource.courts
        ],
    }
