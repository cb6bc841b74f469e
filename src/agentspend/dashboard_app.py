"""Read-only HTTP query API for agentspend."""

from fastapi import FastAPI, Query
from fastapi.responses import HTMLResponse

from .config import MAX_LATEST_RECORDS, MAX_TREND_DAYS
from .runtime import MeterRuntime

INDEX_HTML = """<html>
<head><title>agentspend</title></head>
<body>
<h1>agentspend</h1>
<ul>
<li><a href="/api/today">today</a></li>
<li><a href="/api/week">week to date</a></li>
<li><a href="/api/month">month to date</a></li>
<li><a href="/api/trend?days=30">30-day trend</a></li>
<li><a href="/api/latest">latest records</a></li>
<li><a href="/api/budget">budget status</a></li>
</ul>
</body>
</html>
"""


def create_dashboard_app(runtime: MeterRuntime) -> FastAPI:
    query = runtime.query
    budget = runtime.budget

    app = FastAPI(title="agentspend Dashboard")

    @app.get("/", response_class=HTMLResponse)
    def index():
        return INDEX_HTML

    @app.get("/health")
    def health():
        return {"status": "ok", "service": "agentspend-dashboard"}

    @app.get("/api/today")
    def api_today():
        totals = query.today()
        status = budget.status()
        daily = status.daily.budget if status.daily else None
        return {
            **totals.model_dump(),
            "budget": daily,
            "budget_fraction": totals.cost / daily if daily else None,
            "budget_detail": status.model_dump(),
        }

    @app.get("/api/week")
    def api_week():
        return query.week_to_date().model_dump()

    @app.get("/api/month")
    def api_month():
        return query.month_to_date().model_dump()

    @app.get("/api/trend")
    def api_trend(days: int = Query(7, ge=1, le=MAX_TREND_DAYS)):
        return [point.model_dump() for point in query.trend(days)]

    @app.get("/api/latest")
    def api_latest(limit: int = Query(10, ge=1, le=MAX_LATEST_RECORDS)):
        return [record.model_dump() for record in query.latest(limit)]

    @app.get("/api/budget")
    def api_budget():
        return budget.status().model_dump()

    return app
