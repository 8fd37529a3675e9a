"""
FastAPI Backend for the Capacity Analytics Engine

Exposes alerts, insights, forecasts, performance, capacity and planning
over REST.
"""

from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .alerts import Category, Severity, Status
from .config import Config
from .engine import CapacityAnalytics
from .errors import InsufficientDataError, NotFoundError, ValidationError
from .log import configure_logging, get_logger
from .predictor import BacklogItem, ItemPriority, ProjectComplexity, ProjectRequirements

logger = get_logger(__name__)


# Pydantic models for API
class ActorRequest(BaseModel):
    actor: str


class ResolveRequest(BaseModel):
    actor: str
    note: Optional[str] = None


class DismissRequest(BaseModel):
    actor: str
    reason: Optional[str] = None


class TeamSizeRequest(BaseModel):
    estimated_hours: float = Field(..., ge=0)
    complexity: ProjectComplexity = ProjectComplexity.MEDIUM
    skill_requirements: list[str] = []
    deadline: Optional[date] = None
    critical_path: bool = False
    planning_weeks: int = Field(8, ge=1)
    current_size: int = Field(0, ge=0)


class BacklogItemModel(BaseModel):
    id: str
    title: str
    estimated_hours: float = Field(..., ge=0)
    priority: ItemPriority = ItemPriority.MEDIUM
    dependencies: list[str] = []
    complexity: int = Field(5, ge=1, le=10)
    skills_required: list[str] = []


class DeliveryRequest(BaseModel):
    items: list[BacklogItemModel]
    team_id: Optional[int] = None
    iterations: int = Field(1000, ge=1, le=100000)


def _date_range(
    start: Optional[date],
    end: Optional[date],
    today: Callable[[], date] = date.today,
    default_days: int = 30
) -> tuple[date, date]:
    end = end or today()
    start = start or end - timedelta(days=default_days)
    if start > end:
        raise HTTPException(status_code=400, detail="start must not be after end")
    return start, end


def create_app(analytics: Optional[CapacityAnalytics] = None, config: Optional[Config] = None) -> FastAPI:
    """Build the API; without `analytics`, components are created from config at startup."""
    config = config or Config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        if app.state.analytics is None:
            configure_logging(config.log_level, config.log_json)
            app.state.analytics = CapacityAnalytics.from_config(config)
        logger.info("api_starting")
        yield
        logger.info("api_stopping")

    app = FastAPI(
        title="Capacity Analytics Engine",
        description="Capacity, forecasting, performance and alerting for engineering teams",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.analytics = analytics

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(InsufficientDataError)
    async def insufficient_data_handler(request: Request, exc: InsufficientDataError):
        return JSONResponse(status_code=422, content={
            "error": exc.code,
            "detail": str(exc),
            "required": exc.required,
            "available": exc.available
        })

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"error": exc.code, "detail": str(exc)})

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"error": exc.code, "detail": str(exc)})

    def engine() -> CapacityAnalytics:
        return app.state.analytics

    # Health check
    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "record_store": type(engine().store).__name__
        }

    # Alerts
    @app.get("/api/alerts")
    async def list_alerts(
        severity: Optional[list[Severity]] = Query(None),
        category: Optional[list[Category]] = Query(None),
        team_id: Optional[int] = None,
        member_id: Optional[int] = None,
        status: Optional[list[Status]] = Query(None)
    ):
        """Open alerts, most severe and most recent first."""
        alerts = engine().alerts.get_active_alerts(
            severity=severity,
            category=category,
            team_id=team_id,
            member_id=member_id,
            statuses=status or (Status.ACTIVE,)
        )
        return {"count": len(alerts), "alerts": [a.to_dict() for a in alerts]}

    @app.post("/api/alerts/monitor")
    async def run_monitoring(force: bool = False):
        """Run one monitoring cycle now."""
        new_alerts = await engine().alerts.run_monitoring_cycle(force=force)
        return {"count": len(new_alerts), "alerts": [a.to_dict() for a in new_alerts]}

    def _transition_result(alert_id: str, ok: bool) -> dict:
        alert = engine().alerts.get_alert(alert_id)
        if alert is None:
            raise HTTPException(status_code=404, detail=f"Alert {alert_id} not found")
        if not ok:
            raise HTTPException(
                status_code=409,
                detail=f"Alert {alert_id} cannot change status from {alert.status.value}"
            )
        return alert.to_dict()

    @app.post("/api/alerts/{alert_id}/acknowledge")
    async def acknowledge_alert(alert_id: str, request: ActorRequest):
        ok = engine().alerts.acknowledge_alert(alert_id, request.actor)
        return _transition_result(alert_id, ok)

    @app.post("/api/alerts/{alert_id}/progress")
    async def start_alert_progress(alert_id: str, request: ActorRequest):
        ok = engine().alerts.start_alert_progress(alert_id, request.actor)
        return _transition_result(alert_id, ok)

    @app.post("/api/alerts/{alert_id}/resolve")
    async def resolve_alert(alert_id: str, request: ResolveRequest):
        ok = engine().alerts.resolve_alert(alert_id, request.actor, request.note)
        return _transition_result(alert_id, ok)

    @app.post("/api/alerts/{alert_id}/dismiss")
    async def dismiss_alert(alert_id: str, request: DismissRequest):
        ok = engine().alerts.dismiss_alert(alert_id, request.actor, request.reason)
        return _transition_result(alert_id, ok)

    @app.get("/api/insights")
    async def get_insights(start: Optional[date] = None, end: Optional[date] = None):
        """Insight report; defaults to the last 30 days."""
        start, end = _date_range(start, end, engine().today)
        summary = await engine().alerts.generate_insights(start, end)
        return summary.to_dict()

    # Teams
    @app.get("/api/teams/{team_id}/forecast")
    async def get_team_forecast(team_id: int, sprints_ahead: int = Query(4, ge=1, le=12)):
        forecast = await engine().predictor.forecast_sprint_capacity(team_id, sprints_ahead)
        return forecast.to_dict()

    @app.get("/api/teams/{team_id}/performance")
    async def get_team_performance(team_id: int, months_back: int = Query(6, ge=1, le=24)):
        performance = await engine().performance.calculate_team_performance(team_id, months_back)
        return performance.to_dict()

    @app.get("/api/teams/{team_id}/capacity")
    async def get_team_capacity(team_id: int, start: date, end: date):
        start, end = _date_range(start, end, engine().today)
        snapshot = await engine().capacity.team_capacity(team_id, start, end)
        return snapshot.to_dict()

    # Company
    @app.get("/api/company/performance")
    async def get_company_performance(months_back: int = Query(6, ge=1, le=24)):
        performance = await engine().performance.calculate_company_performance(months_back)
        return performance.to_dict()

    @app.get("/api/company/capacity")
    async def get_company_capacity(start: date, end: date):
        start, end = _date_range(start, end, engine().today)
        capacity = await engine().capacity.company_capacity(start, end)
        return capacity.to_dict()

    @app.get("/api/sprint/to-date")
    async def get_sprint_to_date(team_id: Optional[int] = None):
        """Current sprint capacity so far, for one team or the company."""
        snapshot = await engine().capacity.sprint_to_date(team_id)
        return snapshot.to_dict()

    @app.get("/api/members/{member_id}/burnout")
    async def get_member_burnout(member_id: int):
        assessment = await engine().predictor.assess_burnout_risk(member_id)
        return assessment.to_dict()

    # Planning
    @app.post("/api/planning/team-size")
    async def plan_team_size(request: TeamSizeRequest):
        requirements = ProjectRequirements(
            estimated_hours=request.estimated_hours,
            complexity=request.complexity,
            skill_requirements=request.skill_requirements,
            deadline=request.deadline,
            critical_path=request.critical_path,
            planning_weeks=request.planning_weeks
        )
        recommendation = engine().predictor.calculate_optimal_team_size(
            requirements, current_size=request.current_size
        )
        return recommendation.to_dict()

    @app.post("/api/planning/delivery")
    async def plan_delivery(request: DeliveryRequest):
        items = [
            BacklogItem(
                id=item.id,
                title=item.title,
                estimated_hours=item.estimated_hours,
                priority=item.priority,
                dependencies=item.dependencies,
                complexity=item.complexity,
                skills_required=item.skills_required
            )
            for item in request.items
        ]
        prediction = await engine().predictor.predict_delivery_date(
            items, team_id=request.team_id, iterations=request.iterations
        )
        return prediction.to_dict()

    return app


# Run with: uvicorn capacity_engine.api:app --reload
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
