"""Mini README: FastAPI-powered operator surface for the levy treasury.

Structure:
    * create_application - application factory wiring routes to a desk.

Every route is a thin translation of one ``TreasuryDesk`` operation:
configuration (rate, threshold, personal rates), manual assessments,
history and ranking queries, and the treasury ledger. Inputs arrive as
form fields, answers are JSON. ``InvalidRangeError`` becomes a 400 and
``BackendFailure`` a 503. The daily scheduler is started with the
application when ``start_scheduler`` is set and stopped on shutdown.
Route handlers are plain functions: they block on the row store and the
wallet, so FastAPI runs them in its threadpool.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Form, HTTPException
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from ..configuration import get_settings
from ..desk import TreasuryDesk, build_desk
from ..exceptions import BackendFailure, InvalidRangeError
from ..logging_utils import get_logger

LOGGER = get_logger(__name__)


def create_application(
    desk: Optional[TreasuryDesk] = None,
    *,
    start_scheduler: Optional[bool] = None,
) -> FastAPI:
    """Create the FastAPI application with routes and dependencies."""

    owns_desk = desk is None
    if desk is None:
        desk = build_desk(get_settings())
    if start_scheduler is None:
        start_scheduler = owns_desk

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if start_scheduler:
            desk.start()
        try:
            yield
        finally:
            if owns_desk:
                await run_in_threadpool(desk.close)
            elif start_scheduler:
                await run_in_threadpool(desk.scheduler.stop)

    app = FastAPI(title="Levy Treasury", version="0.1.0", lifespan=lifespan)

    @app.exception_handler(InvalidRangeError)
    async def invalid_range(_, error: InvalidRangeError) -> JSONResponse:
        LOGGER.info("Rejected request: %s", error)
        return JSONResponse(status_code=400, content={"code": error.code, "detail": str(error)})

    @app.exception_handler(BackendFailure)
    async def backend_failure(_, error: BackendFailure) -> JSONResponse:
        LOGGER.warning("Backend failure while handling request: %s", error)
        return JSONResponse(status_code=503, content={"code": error.code, "detail": str(error)})

    @app.get("/config")
    def show_config() -> JSONResponse:
        """Return the current rate, threshold and last assessed day."""

        return JSONResponse(desk.config_snapshot().as_dict())

    @app.post("/config/rate")
    def set_rate(rate: float = Form(...)) -> JSONResponse:
        config = desk.set_rate(rate)
        return JSONResponse(config.as_dict())

    @app.post("/config/threshold")
    def set_threshold(threshold: int = Form(...)) -> JSONResponse:
        config = desk.set_threshold(threshold)
        return JSONResponse(config.as_dict())

    @app.get("/groups/{group_id}/rates/{entity_id}")
    def personal_rate(group_id: int, entity_id: int) -> JSONResponse:
        return JSONResponse(desk.get_personal_rate(entity_id, group_id).as_dict())

    @app.post("/groups/{group_id}/rates/{entity_id}")
    def set_personal_rate(group_id: int, entity_id: int, rate: float = Form(...)) -> JSONResponse:
        override = desk.set_personal_rate(entity_id, group_id, rate)
        LOGGER.info("Personal rate for %s in group %s set to %s", entity_id, group_id, override.rate)
        return JSONResponse(desk.get_personal_rate(entity_id, group_id).as_dict())

    @app.post("/groups/{group_id}/assess/{entity_id}")
    def assess_one(
        group_id: int,
        entity_id: int,
        actor_id: int = Form(...),
        display_name: Optional[str] = Form(None),
    ) -> JSONResponse:
        """Manually collect the levy from a single entity."""

        result = desk.assess_one(entity_id, group_id, display_name or "", actor_id=actor_id)
        payload = result.as_dict()
        payload["message"] = result.describe(desk.currency_name)
        return JSONResponse(payload)

    @app.post("/groups/{group_id}/assess")
    def assess_all(group_id: int, actor_id: int = Form(...)) -> JSONResponse:
        """Manually collect from every member of the group."""

        summary = desk.assess_all(group_id, actor_id=actor_id)
        payload = summary.as_dict()
        payload["message"] = (
            f"Pass complete: collected from {summary.count} members, "
            f"{summary.total_collected} {desk.currency_name} in total"
        )
        return JSONResponse(payload)

    @app.get("/entities/{entity_id}/history")
    def history(entity_id: int, limit: Optional[int] = None) -> JSONResponse:
        entries = desk.recent_history(entity_id, limit)
        return JSONResponse({"entity_id": entity_id, "entries": [entry.as_dict() for entry in entries]})

    @app.get("/groups/{group_id}/rankings")
    def rankings(group_id: int, limit: Optional[int] = None) -> JSONResponse:
        rows = desk.top_rankings(group_id, limit)
        return JSONResponse(
            {
                "group_id": group_id,
                "rankings": [
                    {"rank": index, "entity_id": row.entity_id, "total_amount": row.total_amount}
                    for index, row in enumerate(rows, start=1)
                ],
            }
        )

    @app.get("/treasury")
    def treasury() -> JSONResponse:
        return JSONResponse({"balance": desk.treasury_balance(), "currency": desk.currency_name})

    @app.get("/treasury/entries")
    def treasury_entries(limit: Optional[int] = None) -> JSONResponse:
        return JSONResponse({"entries": [entry.as_dict() for entry in desk.ledger_entries(limit)]})

    @app.post("/treasury/entries")
    def record_entry(
        operation_kind: str = Form(...),
        amount: int = Form(...),
        actor_id: int = Form(...),
        description: str = Form(""),
    ) -> JSONResponse:
        """Post an operator income or expense to the treasury ledger."""

        try:
            entry = desk.record_treasury_operation(
                operation_kind, amount, actor_id=actor_id, description=description
            )
        except InvalidRangeError:
            raise
        except ValueError as error:
            raise HTTPException(status_code=400, detail=str(error)) from error
        return JSONResponse({"entry": entry.as_dict(), "balance": desk.treasury_balance()})

    return app
