"""Recognition summaries grouped in Python so any SQL backend works."""

from __future__ import annotations

from collections import Counter
from datetime import date

from ..app import db
from ..models import Certificate, Employee, Tier


def _month_keys(today: date, count: int = 12) -> list[str]:
    keys = []
    year, month = today.year, today.month
    for _ in range(count):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def _filtered_rows(account=None, manager=None, year=None):
    query = (
        db.session.query(Certificate, Employee, Tier)
        .join(Employee, Certificate.employee_id == Employee.id)
        .join(Tier, Certificate.tier_id == Tier.id)
    )
    if account:
        query = query.filter(Employee.account == account)
    if manager:
        query = query.filter(Employee.manager_name == manager)
    rows = query.all()
    if year:
        rows = [
            row for row in rows
            if row[0].created_at is not None and row[0].created_at.year == int(year)
        ]
    return rows


def recognition_summary(account=None, manager=None, year=None, today: date | None = None) -> dict:
    rows = _filtered_rows(account, manager, year)
    today = today or date.today()

    tier_counts = Counter(tier.id for _, _, tier in rows)
    account_counts = Counter(employee.account or "Unassigned" for _, employee, _ in rows)
    employee_counts = Counter(employee.id for _, employee, _ in rows)
    employees = {employee.id: employee for _, employee, _ in rows}

    tiers = Tier.query.order_by(Tier.rank, Tier.id).all()
    by_tier = [
        {"id": t.id, "name": t.name, "color": t.color, "count": tier_counts.get(t.id, 0)}
        for t in tiers
    ]

    top = sorted(employee_counts.items(), key=lambda item: (-item[1], employees[item[0]].name))
    top_employees = [
        {
            "employee_id": emp_id,
            "name": employees[emp_id].name,
            "account": employees[emp_id].account,
            "count": count,
        }
        for emp_id, count in top[:10]
    ]

    months = _month_keys(today)
    month_counts = Counter(
        cert.created_at.strftime("%Y-%m") for cert, _, _ in rows if cert.created_at
    )
    trend = [{"month": key, "count": month_counts.get(key, 0)} for key in months]

    return {
        "totalRecognitions": len(rows),
        "uniqueEmployees": len(employee_counts),
        "byTier": by_tier,
        "byAccount": [
            {"account": name, "count": count}
            for name, count in sorted(account_counts.items(), key=lambda item: (-item[1], item[0]))
        ],
        "topEmployees": top_employees,
        "monthlyTrend": trend,
    }


def report_filters() -> dict:
    accounts = sorted(
        {a for (a,) in db.session.query(Employee.account).distinct() if a}
    )
    managers = sorted(
        {m for (m,) in db.session.query(Employee.manager_name).distinct() if m}
    )
    years = sorted(
        {c.year for (c,) in db.session.query(Certificate.created_at) if c is not None},
        reverse=True,
    )
    return {"accounts": accounts, "managers": managers, "years": years}
