from flask import Blueprint, request, jsonify

from services.cancellations import decide

cancellation_bp = Blueprint("cancellation", __name__, url_prefix="/cancellations")


# Reached from the owner's emailed link, so no session is required;
# the single-use token is the credential.
@cancellation_bp.route("/decision", methods=["GET", "POST"])
def cancellation_decision():
    data = request.get_json(silent=True) or {}
    token = request.args.get("token") or data.get("token")
    decision = request.args.get("decision") or data.get("decision")
    return jsonify(decide(token, decision)), 200
