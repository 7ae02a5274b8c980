"""
Single JSON endpoint: the HTTP verb (and, for POST, the "action" field)
selects one of the user/transaction operations.

    POST   {"action": "register" | "login" | "add_transaction", ...}
    GET    ?user_id=<id>
    PUT    {"user_id", "transaction_id", "type", "amount", ...}
    DELETE ?user_id=<id>&transaction_id=<id>
"""

import json
import logging
import sqlite3
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from ..db import get_db_conn
from ..exceptions import ApiError
from ..services import transaction_service as service

router = APIRouter(prefix="/api", tags=["api"])
logger = logging.getLogger(__name__)


async def _read_json(request: Request) -> Optional[Dict[str, Any]]:
    """Decoded JSON object body, or None when the body is empty or not an object."""
    raw = await request.body()
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        logger.debug("Ignoring non-JSON request body on %s %s", request.method, request.url.path)
        return None
    return data if isinstance(data, dict) else None


def _has(data: Dict[str, Any], *keys: str) -> bool:
    return all(data.get(k) is not None for k in keys)


@router.post("")
async def api_post(request: Request, db_conn: sqlite3.Connection = Depends(get_db_conn)) -> JSONResponse:
    data = await _read_json(request) or {}

    action = data.get("action")
    if action is not None:
        if action == "register":
            body = service.register_user(db_conn, data)
        elif action == "login":
            body = service.login_user(db_conn, data)
        elif action == "add_transaction":
            body = service.add_transaction(db_conn, data)
        else:
            raise ApiError(400, "Invalid POST action")
        return JSONResponse(content=body)

    # Older clients post without "action"
    if _has(data, "register", "username", "password"):
        body = service.register_user(db_conn, data)
    elif _has(data, "username", "password"):
        body = service.login_user(db_conn, data)
    elif _has(data, "user_id", "type", "amount"):
        body = service.add_transaction(db_conn, data)
    else:
        raise ApiError(400, "Missing parameters for POST request")
    return JSONResponse(content=body)


@router.get("")
async def api_get(
    user_id: Optional[str] = None,
    db_conn: sqlite3.Connection = Depends(get_db_conn),
) -> JSONResponse:
    if user_id is None:
        raise ApiError(400, "Missing user_id parameter for GET request")
    rows = service.fetch_transactions(db_conn, service.parse_int(user_id))
    return JSONResponse(content=rows)


@router.put("")
async def api_put(request: Request, db_conn: sqlite3.Connection = Depends(get_db_conn)) -> JSONResponse:
    data = await _read_json(request) or {}
    if not _has(data, "user_id", "transaction_id", "type", "amount"):
        raise ApiError(400, "Missing parameters for PUT request (update)")
    return JSONResponse(content=service.update_transaction(db_conn, data))


@router.delete("")
async def api_delete(
    user_id: Optional[str] = None,
    transaction_id: Optional[str] = None,
    db_conn: sqlite3.Connection = Depends(get_db_conn),
) -> JSONResponse:
    if user_id is None or transaction_id is None:
        raise ApiError(400, "Missing user_id or transaction_id parameter for DELETE request")
    body = service.delete_transaction(db_conn, service.parse_int(user_id), service.parse_int(transaction_id))
    return JSONResponse(content=body)


@router.options("")
async def api_options() -> Response:
    return Response(status_code=200)
