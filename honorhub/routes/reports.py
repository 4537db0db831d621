from flask import Blueprint, jsonify, request

from ..services.reports import recognition_summary, report_filters
from ..shared.rbac import login_required

bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@bp.get("/summary")
@login_required
def summary(current_user):
    return jsonify(
        recognition_summary(
            account=request.args.get("account") or None,
            manager=request.args.get("manager") or None,
            year=request.args.get("year", type=int),
        )
    )


@bp.get("/filters")
@login_required
def filters(current_user):
    return jsonify(report_filters())
