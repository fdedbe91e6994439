"""Task performer API server for Yield Intel."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys
from typing import Any, Dict, Union

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import uvicorn

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from yield_intel.bootstrap import YieldSystem, build_system, load_registry
from yield_intel.config import settings
from yield_intel.db.migrate import migrate
from yield_intel.errors import (
    LimitExceeded,
    SystemPaused,
    Unauthorized,
    ValidationError,
    YieldIntelError,
)
from yield_intel.performer.performer import outcome_to_dict


logger = logging.getLogger(__name__)


class TaskRequestBody(BaseModel):
    task_id: str = ""
    payload: Union[Dict[str, Any], str, None] = None


def _status_for(exc: YieldIntelError) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, Unauthorized):
        return 403
    if isinstance(exc, LimitExceeded):
        return 429
    if isinstance(exc, SystemPaused):
        return 503
    return 409


def _raise_http(exc: YieldIntelError) -> None:
    raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc


def create_app(system: YieldSystem) -> FastAPI:
    app = FastAPI(title="Yield Intel Performer API")
    performer = system.performer

    @app.get("/health", response_class=JSONResponse)
    def health() -> JSONResponse:
        return JSONResponse(
            {
                "status": "ok",
                "paused": system.admin.pause.paused,
                "domains": len(system.domains.list_supported()),
                "venues": len(system.venues.list_supported()),
                "domain_registry_version": system.domains.version,
                "venue_registry_version": system.venues.version,
            }
        )

    @app.post("/tasks/validate", response_class=JSONResponse)
    def validate_task(body: TaskRequestBody) -> JSONResponse:
        try:
            task_type = performer.validate_task(body.task_id, body.payload)
        except YieldIntelError as exc:
            _raise_http(exc)
        return JSONResponse(
            {"status": "ok", "task_id": body.task_id, "type": task_type.value}
        )

    @app.post("/tasks/handle", response_class=JSONResponse)
    def handle_task(body: TaskRequestBody) -> JSONResponse:
        try:
            result = performer.handle_task(body.task_id, body.payload)
        except YieldIntelError as exc:
            _raise_http(exc)
        return JSONResponse({"status": "ok", **json.loads(result)})

    @app.get("/transfers/{transfer_id}", response_class=JSONResponse)
    def get_transfer(transfer_id: str) -> JSONResponse:
        try:
            record = system.transfers.get_transfer(transfer_id)
        except KeyError:
            raise HTTPException(status_code=404, detail="Transfer not found.")
        history = system.journal.transfer_history(transfer_id) if system.journal.enabled else []
        return JSONResponse(
            {
                "transfer_id": record.transfer_id,
                "status": record.status.value,
                "sender": record.sender,
                "recipient": record.recipient,
                "source_domain": record.source_domain,
                "destination_domain": record.destination_domain,
                "amount": record.amount,
                "fee": record.fee,
                "net_amount": record.net_amount,
                "fast": record.fast,
                "created_at": record.created_at,
                "completed_at": record.completed_at,
                "history": history,
            }
        )

    @app.get("/rebalances/{request_id}", response_class=JSONResponse)
    def get_rebalance(request_id: str) -> JSONResponse:
        try:
            outcome = system.orchestrator.get_outcome(request_id)
        except KeyError:
            raise HTTPException(status_code=404, detail="Rebalance not found.")
        data = outcome_to_dict(outcome)
        data["history"] = (
            system.journal.rebalance_history(request_id) if system.journal.enabled else []
        )
        return JSONResponse(data)

    return app


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Yield Intel performer API server.")
    parser.add_argument(
        "--registry",
        default=None,
        help="JSON file with domains/venues/fees (default: built-in set).",
    )
    parser.add_argument("--host", default=settings.api_host, help="Bind host.")
    parser.add_argument("--port", type=int, default=settings.api_port, help="Bind port.")
    return parser.parse_args()


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    args = parse_args()
    migrate()
    system = build_system(load_registry(args.registry))
    app = create_app(system)
    logger.info("Starting performer API on %s:%s", args.host, args.port)
    try:
        uvicorn.run(app, host=args.host, port=args.port)
    finally:
        system.shutdown()


if __name__ == "__main__":
    main()
