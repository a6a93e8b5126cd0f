from sqlalchemy import update

from models import db
from models.wallet import Wallet, WalletTransaction
from models.statuses import WalletTxType


def _ensure_wallet(owner_user_id):
    wallet = Wallet.query.filter_by(owner_user_id=owner_user_id).first()
    if not wallet:
        wallet = Wallet(owner_user_id=owner_user_id, balance=0, total_earnings=0, total_refunds=0)
        db.session.add(wallet)
        db.session.flush()
    return wallet


def _apply(owner_user_id, booking_id, tx_type, amount, note, **counters):
    # ledger row and balance change always land in the same transaction
    wallet = _ensure_wallet(owner_user_id)
    db.session.add(WalletTransaction(
        owner_user_id=owner_user_id,
        booking_id=booking_id,
        type=tx_type,
        amount=amount,
        note=note,
    ))
    values = {"balance": Wallet.balance + amount}
    for column, delta in counters.items():
        values[column] = getattr(Wallet, column) + delta
    db.session.execute(
        update(Wallet)
        .where(Wallet.id == wallet.id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.session.expire(wallet)
    return wallet


def credit_settlement(owner_user_id, booking_id, amount):
    return _apply(
        owner_user_id, booking_id, WalletTxType.CREDIT_SETTLEMENT, amount,
        "Booking settlement", total_earnings=amount,
    )


def debit_refund(owner_user_id, booking_id, amount):
    return _apply(
        owner_user_id, booking_id, WalletTxType.DEBIT_REFUND, -amount,
        "Cancellation refund clawback", total_refunds=amount,
    )


def get_balance(owner_user_id) -> int:
    wallet = Wallet.query.filter_by(owner_user_id=owner_user_id).first()
    return wallet.balance if wallet else 0
