"""
In-app notifications of the logged-in user.

- GET  /notifications                 newest first (unread_only=1 to filter)
- POST /notifications/<id>/read
- POST /notifications/read-all

Viewers may mark their own notifications read (see VIEWER_ALLOWED_ENDPOINTS).
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from ...models import Notification
from ...serializers import notification_dict
from ...services import commit
from ...utils import parse_bool, parse_optional_int

notifications_bp = Blueprint("notifications", __name__, url_prefix="/notifications")


def _own():
    return Notification.query.filter_by(user_id=current_user.id)


@notifications_bp.route("", methods=["GET"])
@login_required
def list_notifications():
    query = _own()
    if parse_bool(request.args.get("unread_only")):
        query = query.filter_by(is_read=False)
    limit = min(parse_optional_int(request.args.get("limit")) or 50, 200)
    rows = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()
    return jsonify(
        {
            "status": "success",
            "unread": _own().filter_by(is_read=False).count(),
            "notifications": [notification_dict(n) for n in rows],
        }
    )


@notifications_bp.route("/<int:notification_id>/read", methods=["POST"])
@login_required
def mark_read(notification_id: int):
    notification = _own().filter_by(id=notification_id).first_or_404()
    notification.is_read = True
    commit("mark notification read")
    return jsonify({"status": "success", "notification": notification_dict(notification)})


@notifications_bp.route("/read-all", methods=["POST"])
@login_required
def mark_all_read():
    updated = _own().filter_by(is_read=False).update({"is_read": True}, synchronize_session=False)
    commit("mark all notifications read")
    return jsonify({"status": "success", "updated": updated})
