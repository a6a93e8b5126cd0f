from .db import db
from .user import User, Role, user_roles
from .audit_log import AuditLog
from .session import Session
from .field import Field
from .court import Court
from .slot import Slot
from .booking import Booking, BookingSlot
from .promotion import Promotion
from .cancellation_request import CancellationRequest
from .cart_entry import CartEntry
from .payment import Payment
from .wallet import Wallet, WalletTransaction
