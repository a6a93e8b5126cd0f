from flask import Blueprint, jsonify
from sqlalchemy import text

from models import db

health_bp = Blueprint("health", __name__)


@health_bp.get("/health")
def health():
    try:
        db.session.execute(text("SELECT 1"))
    except Exception as exc:
        return jsonify(status="degraded", database=str(exc)), 503
    return jsonify(status="ok"), 200
