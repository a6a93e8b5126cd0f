from flask import Blueprint, request, jsonify, g

from security.rbac import require_roles
from services import promotions
from services.transactions import run_in_transaction
from utils.audit import log_event

promotion_bp = Blueprint("promotion", __name__, url_prefix="/owner/promotions")


@promotion_bp.get("")
@require_roles("OWNER")
def list_promotions():
    rows = promotions.list_promotions(g.user.id)
    return jsonify([promotions.promotion_to_dict(p) for p in rows]), 200


@promotion_bp.post("")
@require_roles("OWNER")
def create_promotion():
    data = request.get_json(silent=True) or {}
    promotion = run_in_transaction(
        "create_promotion", lambda: promotions.create_promotion(g.user.id, data)
    )
    log_event("PROMOTION_CREATE", user_id=g.user.id, entity="promotion", entity_id=promotion.id,
              metadata={"code": promotion.code})
    return jsonify(promotions.promotion_to_dict(promotion)), 201


@promotion_bp.patch("/<int:promotion_id>/status")
@require_roles("OWNER")
def update_promotion_status(promotion_id: int):
    data = request.get_json(silent=True) or {}
    promotion = run_in_transaction(
        "update_promotion_status",
        lambda: promotions.update_promotion_status(g.user.id, promotion_id, data.get("status")),
    )
    log_event("PROMOTION_STATUS", user_id=g.user.id, entity="promotion", entity_id=promotion.id,
              metadata={"status": promotion.status})
    return jsonify(promotions.promotion_to_dict(promotion)), 200
