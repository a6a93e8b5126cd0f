from flask import Blueprint, jsonify, g

from models import db
from services import carts
from utils.auth_context import login_required

cart_bp = Blueprint("cart", __name__)


@cart_bp.get("/cart")
@login_required
def my_cart():
    entries = carts.list_active(g.user.id)
    # persist the purge of stale entries
    db.session.commit()
    return jsonify(entries), 200
