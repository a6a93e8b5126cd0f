"""
Row-level slot locking.

Everything here runs inside the caller's transaction. Rows are locked
court by court (ascending court number) and window by window
(chronological) so concurrent reservations always take locks in the same
order.
"""
import logging

from sqlalchemy import and_, or_, update
from sqlalchemy.exc import IntegrityError

from models import db
from models.slot import Slot
from models.statuses import SlotStatus
from services.errors import ConflictError
from services.hold_reclaimer import expire_bookings
from services.windows import window_to_dict

logger = logging.getLogger(__name__)


def is_free(slot, now) -> bool:
    if slot is None or slot.status == SlotStatus.AVAILABLE:
        return True
    # an expired hold can be taken over in-transaction without waiting for the sweep
    return (
        slot.status == SlotStatus.HELD
        and slot.hold_expires_at is not None
        and slot.hold_expires_at < now
    )


def _lock_row(court_id, window):
    return (
        Slot.query
        .filter_by(
            court_id=court_id,
            play_date=window.play_date,
            start_time=window.start_time,
            end_time=window.end_time,
        )
        .with_for_update()
        .first()
    )


def _conflict(window):
    when = f"{window.play_date.isoformat()} {window.start_time:%H:%M}-{window.end_time:%H:%M}"
    return ConflictError(f"Slot {when} is not available", window=window_to_dict(window))


def lock_windows(windows, courts, now):
    """
    Lock the rows for ``windows`` and pick the first court on which every
    window is free.

    Returns ``(court, rows)`` where ``rows`` maps each window to its locked
    Slot row, or None when the row has not been created yet. Raises
    ConflictError naming the first window that is taken on every court (or,
    failing that, the first window blocking the first court).
    """
    blocked_per_court = []
    for court in courts:
        rows = {}
        blocked = []
        for window in windows:
            row = _lock_row(court.id, window)
            if is_free(row, now):
                rows[window] = row
            else:
                blocked.append(window)
        if not blocked:
            return court, rows
        blocked_per_court.append(blocked)

    if not blocked_per_court:
        raise ConflictError("No court is available for this field")

    taken_everywhere = set(blocked_per_court[0]).intersection(*blocked_per_court[1:])
    offending = min(taken_everywhere) if taken_everywhere else blocked_per_court[0][0]
    logger.info("Reservation conflict on %s", offending)
    raise _conflict(offending)


def hold_slots(field_id, court, rows, booking_id, hold_expires_at, now):
    """
    Move each locked window to HELD for ``booking_id``.

    Existing rows are claimed with a compare-and-set update so a competing
    transaction that got there first is detected even where the store does
    not honour FOR UPDATE.
    """
    held = []
    taken_over = set()
    for window, row in sorted(rows.items()):
        if row is None:
            row = Slot(
                field_id=field_id,
                court_id=court.id,
                play_date=window.play_date,
                start_time=window.start_time,
                end_time=window.end_time,
                status=SlotStatus.HELD,
                booking_id=booking_id,
                hold_expires_at=hold_expires_at,
            )
            db.session.add(row)
            try:
                db.session.flush()
            except IntegrityError:
                # a concurrent reservation inserted the same window first
                raise _conflict(window)
        else:
            if row.status == SlotStatus.HELD and row.booking_id:
                taken_over.add(row.booking_id)
            result = db.session.execute(
                update(Slot)
                .where(
                    Slot.id == row.id,
                    or_(
                        Slot.status == SlotStatus.AVAILABLE,
                        and_(Slot.status == SlotStatus.HELD, Slot.hold_expires_at < now),
                    ),
                )
                .values(
                    status=SlotStatus.HELD,
                    booking_id=booking_id,
                    hold_expires_at=hold_expires_at,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise _conflict(window)
            db.session.expire(row)
        held.append(row)

    # bookings whose expired hold we just took over are cancelled with it
    expire_bookings(taken_over - {booking_id}, now)
    return held
