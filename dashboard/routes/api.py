"""API routes for the notification inbox and programmatic detection runs."""

from functools import wraps
from flask import Blueprint, jsonify, request, current_app

from common.notification_store import NotificationCategory, NotificationStatus

api_bp = Blueprint("api", __name__)


def check_api_key(f):
    """Decorator to check API key for protected endpoints."""
    @wraps(f)
    def decorated(*args, **kwargs):
        api_key = current_app.config.get("DASHBOARD_API_KEY")

        # If no API key configured, allow all requests (dev mode)
        if not api_key:
            return f(*args, **kwargs)

        provided_key = request.args.get("key") or request.headers.get("X-API-Key")

        if provided_key != api_key:
            return jsonify({"error": "Invalid or missing API key"}), 401

        return f(*args, **kwargs)

    return decorated


def _facility_id() -> str:
    return request.args.get("facility") or current_app.config.get("FACILITY_ID", "default")


def _user(default: str = "API User") -> str:
    data = request.get_json(silent=True) or {}
    return data.get("user") or request.headers.get("X-User", default)


def _not_found(notification_id: str):
    return jsonify({"error": f"Notification {notification_id} not found"}), 404


@api_bp.route("/notifications", methods=["GET"])
@check_api_key
def list_notifications():
    """List notifications with optional status, category and rule filters."""
    store = current_app.notification_store
    facility_id = _facility_id()

    filter_kwargs = {
        "limit": request.args.get(
            "limit", type=int, default=current_app.config.get("NOTIFICATIONS_PER_PAGE", 100)
        ),
    }

    status_param = request.args.get("status")
    if status_param:
        try:
            filter_kwargs["status"] = [NotificationStatus(s) for s in status_param.split(",")]
        except ValueError:
            return jsonify({"error": f"Invalid status: {status_param}"}), 400

    category_param = request.args.get("category")
    if category_param:
        try:
            filter_kwargs["category"] = NotificationCategory(category_param.upper())
        except ValueError:
            return jsonify({"error": f"Invalid category: {category_param}"}), 400

    rule_id = request.args.get("rule")
    if rule_id:
        filter_kwargs["rule_id"] = rule_id

    notifications = store.list_notifications(facility_id, **filter_kwargs)

    return jsonify({
        "facilityId": facility_id,
        "notifications": [n.to_dict() for n in notifications],
        "count": len(notifications),
    })


@api_bp.route("/notifications/<notification_id>", methods=["GET"])
@check_api_key
def get_notification(notification_id):
    """Get a single notification with its audit trail."""
    store = current_app.notification_store
    facility_id = _facility_id()

    notification = store.get_notification(facility_id, notification_id)
    if not notification:
        return _not_found(notification_id)

    data = notification.to_dict()
    data["audit"] = [e.to_dict() for e in store.get_audit_log(facility_id, notification_id)]
    return jsonify(data)


@api_bp.route("/notifications/<notification_id>/read", methods=["POST"])
@check_api_key
def mark_read(notification_id):
    """Mark a notification as read."""
    store = current_app.notification_store
    facility_id = _facility_id()

    if not store.mark_read(facility_id, notification_id, performed_by=_user()):
        return _not_found(notification_id)

    return jsonify({
        "success": True,
        "notification": store.get_notification(facility_id, notification_id).to_dict(),
    })


@api_bp.route("/notifications/read-all", methods=["POST"])
@check_api_key
def mark_all_read():
    """Mark every unread notification of the facility as read."""
    store = current_app.notification_store
    count = store.mark_all_read(_facility_id(), performed_by=_user())
    return jsonify({"success": True, "updated": count})


@api_bp.route("/notifications/<notification_id>/dismiss", methods=["POST"])
@check_api_key
def dismiss(notification_id):
    """Dismiss a notification without deleting it."""
    store = current_app.notification_store
    facility_id = _facility_id()

    if not store.dismiss(facility_id, notification_id, performed_by=_user()):
        return _not_found(notification_id)

    return jsonify({
        "success": True,
        "notification": store.get_notification(facility_id, notification_id).to_dict(),
    })


@api_bp.route("/notifications/<notification_id>/acted", methods=["POST"])
@check_api_key
def mark_acted(notification_id):
    """Record that the recommended action (e.g. a line-list entry) was taken."""
    store = current_app.notification_store
    facility_id = _facility_id()
    data = request.get_json(silent=True) or {}

    success = store.mark_acted(
        facility_id,
        notification_id,
        line_list_event_id=data.get("lineListEventId"),
        performed_by=_user(),
    )
    if not success:
        return _not_found(notification_id)

    return jsonify({
        "success": True,
        "notification": store.get_notification(facility_id, notification_id).to_dict(),
    })


@api_bp.route("/notifications/<notification_id>", methods=["DELETE"])
@check_api_key
def clear_notification(notification_id):
    """Delete a notification. A still-true condition is re-emitted on the next run."""
    store = current_app.notification_store

    if not store.clear_notification(_facility_id(), notification_id, performed_by=_user()):
        return _not_found(notification_id)

    return jsonify({"success": True, "id": notification_id})


@api_bp.route("/watermark", methods=["GET"])
@check_api_key
def get_watermark():
    """Get the facility's detection watermark."""
    store = current_app.notification_store
    facility_id = _facility_id()
    data = store.get_watermark(facility_id).to_dict()
    data["facilityId"] = facility_id
    return jsonify(data)


@api_bp.route("/stats", methods=["GET"])
@check_api_key
def get_stats():
    """Get notification statistics."""
    store = current_app.notification_store
    return jsonify(store.get_stats(_facility_id()))


@api_bp.route("/run", methods=["POST"])
@check_api_key
def run_detection():
    """Run the detection pipeline over a snapshot posted as the JSON body.

    Query params:
        facility: Facility id (default from config)
        now: Evaluate as of this ISO timestamp
        dry_run: "true" to evaluate without committing
    """
    from detection_src.dates import parse_timestamp
    from detection_src.monitor import DetectionMonitor
    from detection_src.sources import InMemorySnapshotSource

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "JSON snapshot body required"}), 400

    now = None
    if request.args.get("now"):
        now = parse_timestamp(request.args["now"])
        if now is None:
            return jsonify({"error": f"Invalid now: {request.args['now']}"}), 400

    facility_id = _facility_id()
    monitor = DetectionMonitor(
        facility_id=facility_id,
        store=current_app.notification_store,
        source=InMemorySnapshotSource(data),
    )

    try:
        result = monitor.run_once(
            now=now,
            dry_run=request.args.get("dry_run", "false").lower() == "true",
        )
    except KeyError as e:
        return jsonify({"error": str(e)}), 404

    summary = result.summary()
    summary["insertedIds"] = result.inserted_ids
    summary["notifications"] = [n.to_dict() for n in result.notifications]

    status_code = 200
    if result.ran and not result.committed and request.args.get("dry_run", "false").lower() != "true":
        status_code = 503
    return jsonify(summary), status_code
