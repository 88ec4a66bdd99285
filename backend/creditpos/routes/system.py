# Overview: Flask API routes for system health.

from flask import Blueprint, jsonify
from sqlalchemy import text

from ..extensions import db


system_bp = Blueprint("system", __name__, url_prefix="/api/system")


@system_bp.get("/health")
def health_route():
    db.session.execute(text("SELECT 1"))
    return jsonify({"status": "ok"}), 200
