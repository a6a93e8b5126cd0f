# Stored status values. Plain string constants, compared against db columns.


class SlotStatus:
    AVAILABLE = "AVAILABLE"
    HELD = "HELD"
    BOOKED = "BOOKED"


class BookingStatus:
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    CANCELLATION_PENDING = "CANCELLATION_PENDING"

    ALL = (PENDING, CONFIRMED, COMPLETED, CANCELLED, CANCELLATION_PENDING)

    # statuses that consume a promotion usage
    COUNTS_FOR_USAGE = (PENDING, CONFIRMED, COMPLETED, CANCELLATION_PENDING)

    TRANSITIONS = {
        PENDING: {CONFIRMED, CANCELLED, CANCELLATION_PENDING},
        CONFIRMED: {COMPLETED, CANCELLED, CANCELLATION_PENDING},
        # leaving this state is further limited to the status remembered on the request
        CANCELLATION_PENDING: {CANCELLED, PENDING, CONFIRMED},
        COMPLETED: set(),
        CANCELLED: set(),
    }

    @classmethod
    def can_transition(cls, current: str, new: str) -> bool:
        return new in cls.TRANSITIONS.get(current, set())


class BookingSlotStatus:
    PENDING = "PENDING"
    BOOKED = "BOOKED"
    CANCELLED = "CANCELLED"


class PaymentStatus:
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentMethod:
    CARD = "CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    EWALLET = "EWALLET"
    CASH = "CASH"

    ALL = (CARD, BANK_TRANSFER, EWALLET, CASH)


class PromotionStatus:
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    DISABLED = "DISABLED"

    ALL = (DRAFT, ACTIVE, DISABLED)


class DiscountType:
    PERCENT = "PERCENT"
    FIXED = "FIXED"


class CancellationStatus:
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    # the hold behind the booking expired before a decision
    VOID = "VOID"


class WalletTxType:
    CREDIT_SETTLEMENT = "CREDIT_SETTLEMENT"
    DEBIT_REFUND = "DEBIT_REFUND"
