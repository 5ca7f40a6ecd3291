from flask import Blueprint, jsonify, request, g, current_app

from ..extensions import db
from ..decorators import require_auth, require_admin
from ..services.errors import RangeExceeded, StorageFailure
from ..services.insights_service import InsightsAggregator, ReportError, PERIOD_DAILY
from ..services.retention_service import LedgerRetention
from ..validation import ValidationError, coerce_int


insights_bp = Blueprint("insights", __name__, url_prefix="/api/insights")


@insights_bp.get("")
@require_auth
def insights_report():
    period = request.args.get("period", PERIOD_DAILY)
    try:
        aggregator = InsightsAggregator.from_config(db.session, current_app.config)
        report = aggregator.compute(period)
        return jsonify(report), 200
    except ReportError:
        current_app.logger.exception("Insights misconfigured")
        return jsonify({"error": "Internal server error"}), 500
    except Exception:
        current_app.logger.exception("Failed to compute insights")
        return jsonify({"error": "Internal server error"}), 500


@insights_bp.delete("/sales")
@require_auth
@require_admin
def purge_recent_sales():
    """
    Delete completed sales from the last ``days`` days (max 30).

    Request body: {"days": 7}  (optional, default: 1)
    """
    data = request.get_json(silent=True) or {}

    try:
        days = coerce_int("days", data.get("days", 1))
        retention = LedgerRetention.from_config(db.session, current_app.config)
        deleted = retention.purge_recent_sales(days)
    except ValidationError as exc:
        return jsonify(exc.to_dict()), 400
    except RangeExceeded as exc:
        return jsonify(exc.to_dict()), 400
    except StorageFailure:
        current_app.logger.exception("Failed to purge sales")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.warning(
        "User %s purged %d completed sales from the last %d day(s)", g.current_user.id, deleted, days
    )
    return jsonify({
        "message": f"Successfully deleted {deleted} sales from the last {days} day(s)",
        "deleted_count": deleted,
    }), 200
