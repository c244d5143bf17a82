from __future__ import annotations
from flask import Blueprint, request
from freightdesk.decorators.auth import require_permission
from freightdesk.services.dashboard import build_dashboard, resolve_range

dashboard_bp = Blueprint('dashboard', __name__)


@dashboard_bp.get('')
@require_permission('dashboard', 'view')
def dashboard():
    start, end = resolve_range(request.args.get('range'), request.args.get('from'), request.args.get('to'))
    return build_dashboard(start, end)
