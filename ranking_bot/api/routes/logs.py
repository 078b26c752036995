"""Client log sink: the dashboard forwards its errors here."""

from __future__ import annotations

import logging
from typing import Dict

from fastapi import APIRouter, status

from ...core.logging_utils import get_logger
from ..schemas import ClientLog

router = APIRouter(prefix="/api", tags=["logs"])

client_logger = get_logger("client")

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


@router.post("/logs", status_code=status.HTTP_202_ACCEPTED)
async def client_log(body: ClientLog) -> Dict[str, bool]:
    details = body.log_context()
    if details:
        client_logger.log(LEVELS[body.level], "%s | %s", body.message, details)
    else:
        client_logger.log(LEVELS[body.level], "%s", body.message)
    return {"ok": True}
