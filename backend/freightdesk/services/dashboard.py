from __future__ import annotations
from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple
from flask import abort
from sqlalchemy import select, func
from freightdesk import get_db
from freightdesk.models.service import Service
from freightdesk.models.client import Client
from freightdesk.utils.money import from_cents, percentage_change
from freightdesk.utils.serialize import iso
from freightdesk.utils.validation import parse_date

PRESETS = {'7d': 7, '30d': 30, '90d': 90, '1y': 365}
DEFAULT_PRESET = '30d'
# statuses whose sale amount counts as earned revenue
EARNED_STATUSES = (Service.STATUS_COMPLETED, Service.STATUS_INVOICED)
CHART_MONTHS = 6


def resolve_range(preset: Optional[str], date_from: Optional[str], date_to: Optional[str],
                  today: Optional[date] = None) -> Tuple[date, date]:
    """Explicit from/to wins over the preset; unknown presets fall back to 30 days."""
    today = today or date.today()
    if date_from or date_to:
        start, end = parse_date(date_from), parse_date(date_to)
        if start is None or end is None or start > end:
            abort(400, description='Invalid dashboard date range')
        return start, end
    days = PRESETS.get(preset or DEFAULT_PRESET, PRESETS[DEFAULT_PRESET])
    return today - timedelta(days=days), today


def previous_range(start: date, end: date) -> Tuple[date, date]:
    """Period of equal length ending the day before start."""
    length = (end - start).days
    prev_end = start - timedelta(days=1)
    return prev_end - timedelta(days=length), prev_end


def _period_stats(start: date, end: date) -> Dict[str, float]:
    session = get_db()
    live = (Service.deleted_at.is_(None), Service.date >= start, Service.date <= end)
    counts = dict(session.execute(
        select(Service.status, func.count(Service.id)).where(*live).group_by(Service.status)
    ).all())
    revenue, avg_pct, avg_margin = session.execute(
        select(func.coalesce(func.sum(Service.sale_cents), 0), func.avg(Service.margin_percentage), func.avg(Service.margin_cents))
        .where(*live, Service.status.in_(EARNED_STATUSES))
    ).one()
    return {
        'active': counts.get(Service.STATUS_IN_PROGRESS, 0),
        'completed': sum(counts.get(s, 0) for s in EARNED_STATUSES),
        'total': sum(counts.values()),
        'revenue_cents': int(revenue or 0),
        'avg_margin_pct': round(float(avg_pct or 0), 2),
        'avg_margin_cents': int(round(float(avg_margin or 0))),
    }


def _month_keys(today: date, months: int = CHART_MONTHS) -> List[str]:
    keys = []
    year, month = today.year, today.month
    for _ in range(months):
        keys.append(f'{year:04d}-{month:02d}')
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def monthly_charts(today: Optional[date] = None):
    """Six-month (current included) service counts and earned revenue per month."""
    today = today or date.today()
    keys = _month_keys(today)
    first = date(int(keys[0][:4]), int(keys[0][5:]), 1)
    services = {k: {'month': k, 'total': 0, 'completed': 0, 'in_progress': 0, 'cancelled': 0} for k in keys}
    revenue = {k: {'month': k, 'revenue_cents': 0, 'cost_cents': 0, 'margin_cents': 0} for k in keys}
    rows = get_db().execute(
        select(Service.date, Service.status, Service.sale_cents, Service.cost_cents, Service.margin_cents)
        .where(Service.deleted_at.is_(None), Service.date >= first, Service.date <= today)
    ).all()
    for svc_date, status, sale, cost, margin in rows:
        key = f'{svc_date.year:04d}-{svc_date.month:02d}'
        if key not in services:
            continue
        bucket = services[key]
        bucket['total'] += 1
        if status in EARNED_STATUSES:
            bucket['completed'] += 1
        elif status in (Service.STATUS_IN_PROGRESS, Service.STATUS_CONFIRMED):
            bucket['in_progress'] += 1
        elif status == Service.STATUS_CANCELLED:
            bucket['cancelled'] += 1
        if status in EARNED_STATUSES + (Service.STATUS_ARCHIVED,):
            revenue[key]['revenue_cents'] += sale or 0
            revenue[key]['cost_cents'] += cost or 0
            revenue[key]['margin_cents'] += margin or 0
    revenue_rows = []
    for k in keys:
        r = revenue[k]
        revenue_rows.append({**r, 'revenue': from_cents(r['revenue_cents']), 'cost': from_cents(r['cost_cents']),
                             'margin': from_cents(r['margin_cents'])})
    return [services[k] for k in keys], revenue_rows


def recent_services(limit: int = 10):
    rows = get_db().execute(
        select(Service, Client.name)
        .join(Client, Client.id == Service.client_id)
        .where(Service.deleted_at.is_(None))
        .order_by(Service.date.desc(), Service.id.desc())
        .limit(limit)
    ).all()
    return [
        {
            'id': s.id,
            'service_number': s.service_number,
            'date': iso(s.date),
            'client_name': client_name,
            'origin': s.origin,
            'destination': s.destination,
            'status': s.status,
            'amount': from_cents(s.sale_cents),
            'currency': s.sale_currency,
        }
        for s, client_name in rows
    ]


def build_dashboard(start: date, end: date, today: Optional[date] = None):
    current = _period_stats(start, end)
    prev_start, prev_end = previous_range(start, end)
    previous = _period_stats(prev_start, prev_end)
    services_chart, revenue_chart = monthly_charts(today)
    return {
        'range': {'from': iso(start), 'to': iso(end), 'previous_from': iso(prev_start), 'previous_to': iso(prev_end)},
        'stats': {
            'active_services': current['active'],
            'active_services_change': percentage_change(current['active'], previous['active']),
            'completed_services': current['completed'],
            'completed_services_change': percentage_change(current['completed'], previous['completed']),
            'total_revenue': from_cents(current['revenue_cents']),
            'total_revenue_change': percentage_change(current['revenue_cents'], previous['revenue_cents']),
            'average_margin': current['avg_margin_pct'],
            'average_margin_amount': from_cents(current['avg_margin_cents']),
            'average_margin_change': percentage_change(current['avg_margin_pct'], previous['avg_margin_pct']),
            'total_services': current['total'],
        },
        'services_chart': services_chart,
        'revenue_chart': revenue_chart,
        'recent_services': recent_services(),
    }
