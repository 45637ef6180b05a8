"""FastAPI application exposing the expiry management endpoints."""
from __future__ import annotations

import logging
import os
from datetime import date
from typing import Any, Callable, Dict, Optional

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from packages.freshness import (
    DependencyError,
    DomainError,
    ExpiryError,
    NotFoundError,
    ValidationError,
)
from services.expiry import ExpiryService

ServiceProvider = Callable[[], ExpiryService]

API_PREFIX = "/admin/expiry"
_STATUS_BY_ERROR: tuple[tuple[type[ExpiryError], int], ...] = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (DomainError, 409),
    (DependencyError, 503),
)


class LabelPayload(BaseModel):
    note: Optional[str] = None


class RemovePayload(BaseModel):
    exclude_from_check: bool = False
    new_expiry_date: Optional[date] = None
    note: Optional[str] = None
    scenario: Optional[str] = None


class UpdateDatePayload(BaseModel):
    new_expiry_date: Optional[date] = None
    note: Optional[str] = None


def create_app(
    *,
    service_provider: ServiceProvider | None = None,
    logger: logging.Logger | None = None,
) -> FastAPI:
    """Construct the FastAPI application."""

    app_logger = logger or logging.getLogger("shelfwatch.web")
    provider = service_provider or _default_service_provider(app_logger)

    app = FastAPI(title="ShelfWatch Expiry API")

    def _service() -> ExpiryService:
        try:
            return provider()
        except ExpiryError as exc:
            raise _http_error(exc) from exc
        except Exception:
            app_logger.exception("Failed to initialize expiry service")
            raise HTTPException(503, {"error": "service_unavailable"}) from None

    def _call(operation: str, func: Callable[[], Any]) -> Any:
        try:
            return func()
        except ExpiryError as exc:
            if isinstance(exc, DependencyError):
                app_logger.error("Dependency failure during %s: %s", operation, exc.reason)
            else:
                app_logger.info("Rejected %s: %s", operation, exc.reason)
            raise _http_error(exc) from exc

    @app.exception_handler(Exception)
    async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        app_logger.error("Unhandled application error on %s", request.url.path, exc_info=exc)
        return JSONResponse(
            {"error": "internal", "detail": "see server logs"},
            status_code=500,
        )

    @app.get("/", response_class=JSONResponse)
    def index() -> dict[str, object]:
        return {
            "app": "ShelfWatch expiry API",
            "status": "ok",
            "links": {
                "health": "/health",
                "settings": f"{API_PREFIX}/settings",
                "critical": f"{API_PREFIX}/critical",
                "warning": f"{API_PREFIX}/warning",
                "dashboard": f"{API_PREFIX}/dashboard",
                "history": f"{API_PREFIX}/history",
                "label": f"{API_PREFIX}/label/{{product_id}}",
                "remove": f"{API_PREFIX}/remove/{{product_id}}",
                "update_date": f"{API_PREFIX}/update-date/{{product_id}}",
                "undo": f"{API_PREFIX}/undo/{{action_id}}",
                "daily_reminder": f"{API_PREFIX}/daily-reminder",
                "check_and_notify": f"{API_PREFIX}/check-and-notify",
            },
        }

    @app.get("/health", response_class=JSONResponse)
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get(f"{API_PREFIX}/settings", response_class=JSONResponse)
    def get_settings(service: ExpiryService = Depends(_service)) -> dict[str, object]:
        return _call("get settings", service.get_settings).to_dict()

    @app.put(f"{API_PREFIX}/settings", response_class=JSONResponse)
    def update_settings(
        payload: Dict[str, Any] = Body(...),
        service: ExpiryService = Depends(_service),
    ) -> dict[str, object]:
        return _call("update settings", lambda: service.update_settings(payload)).to_dict()

    @app.get(f"{API_PREFIX}/critical", response_class=JSONResponse)
    def critical(service: ExpiryService = Depends(_service)) -> dict[str, object]:
        entries = _call("list critical products", service.critical_products)
        items = [entry.to_dict() for entry in entries]
        return {"items": items, "meta": {"count": len(items), "band": "critical"}}

    @app.get(f"{API_PREFIX}/warning", response_class=JSONResponse)
    def warning(service: ExpiryService = Depends(_service)) -> dict[str, object]:
        entries = _call("list warning products", service.warning_products)
        items = [entry.to_dict() for entry in entries]
        return {"items": items, "meta": {"count": len(items), "band": "warning"}}

    @app.get(f"{API_PREFIX}/dashboard", response_class=JSONResponse)
    def dashboard(
        preview_date: Optional[date] = Query(None),
        group_by: str = Query("category"),
        service: ExpiryService = Depends(_service),
    ) -> dict[str, object]:
        return _call("build dashboard", lambda: service.dashboard(preview_date=preview_date, group_by=group_by))

    @app.get(f"{API_PREFIX}/history", response_class=JSONResponse)
    def history(
        day: Optional[date] = Query(None, alias="date"),
        limit: Optional[int] = Query(None, ge=1, le=1000),
        offset: int = Query(0, ge=0),
        admin_id: Optional[str] = Query(None),
        product_id: Optional[str] = Query(None),
        action_type: Optional[str] = Query(None),
        latest_only: bool = Query(False),
        service: ExpiryService = Depends(_service),
    ) -> dict[str, object]:
        page = _call(
            "query history",
            lambda: service.history(
                day=day,
                limit=limit,
                offset=offset,
                admin_id=admin_id,
                product_id=product_id,
                action_type=action_type,
                latest_only=latest_only,
            ),
        )
        return page.to_dict()

    @app.post(f"{API_PREFIX}/label/{{product_id}}", response_class=JSONResponse)
    def label(
        product_id: str,
        payload: Optional[LabelPayload] = Body(None),
        admin_id: str = Depends(_admin_id),
        service: ExpiryService = Depends(_service),
    ) -> dict[str, object]:
        note = payload.note if payload is not None else None
        return _call("label product", lambda: service.label(product_id, admin_id, note)).to_dict()

    @app.post(f"{API_PREFIX}/remove/{{product_id}}", response_class=JSONResponse)
    def remove(
        product_id: str,
        payload: RemovePayload = Body(...),
        admin_id: str = Depends(_admin_id),
        service: ExpiryService = Depends(_service),
    ) -> dict[str, object]:
        entry = _call(
            "remove product",
            lambda: service.remove(
                product_id,
                admin_id,
                exclude_from_check=payload.exclude_from_check,
                new_expiry_date=payload.new_expiry_date,
                note=payload.note,
                scenario=payload.scenario,
            ),
        )
        return entry.to_dict()

    @app.put(f"{API_PREFIX}/update-date/{{product_id}}", response_class=JSONResponse)
    def update_date(
        product_id: str,
        payload: UpdateDatePayload = Body(...),
        admin_id: str = Depends(_admin_id),
        service: ExpiryService = Depends(_service),
    ) -> dict[str, object]:
        entry = _call(
            "update expiry date",
            lambda: service.update_expiry_date(product_id, admin_id, payload.new_expiry_date, payload.note),
        )
        return entry.to_dict()

    @app.post(f"{API_PREFIX}/undo/{{action_id}}", response_class=JSONResponse)
    def undo(
        action_id: int,
        admin_id: str = Depends(_admin_id),
        service: ExpiryService = Depends(_service),
    ) -> dict[str, object]:
        return _call("undo action", lambda: service.undo(action_id, admin_id)).to_dict()

    @app.get(f"{API_PREFIX}/daily-reminder", response_class=JSONResponse)
    def daily_reminder(service: ExpiryService = Depends(_service)) -> dict[str, object]:
        return _call("send daily reminder", service.daily_reminder)

    @app.post(f"{API_PREFIX}/check-and-notify", response_class=JSONResponse)
    def check_and_notify(service: ExpiryService = Depends(_service)) -> dict[str, object]:
        return _call("check and notify", service.check_and_notify)

    return app


def _admin_id(x_admin_id: Optional[str] = Header(None)) -> str:
    candidate = (x_admin_id or "").strip()
    if candidate:
        return candidate
    return os.getenv("SHELFWATCH_ADMIN_ID") or "system"


def _http_error(exc: ExpiryError) -> HTTPException:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status, {"error": exc.code, "detail": exc.reason})
    return HTTPException(500, {"error": exc.code, "detail": exc.reason})


def _default_service_provider(logger: logging.Logger) -> ServiceProvider:
    cached: list[ExpiryService] = []

    def _provider() -> ExpiryService:
        if not cached:
            cached.append(ExpiryService.from_config())
            logger.info("Expiry service ready (timezone %s)", cached[0].clock.timezone_name)
        return cached[0]

    return _provider


__all__ = ["API_PREFIX", "create_app"]
