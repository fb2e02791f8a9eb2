"""
FastAPI routes exposing the AmoCRM integration.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Annotated, Any, NoReturn

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from amolink.clients.amocrm import NotAuthorizedError, UpstreamError
from amolink.dependencies import get_amocrm_service
from amolink.schemas import AmoCRMCallbackPayload, ConnectionStatus

router = APIRouter()
logger = logging.getLogger(__name__)

_PAGING_KEYS = ("limit", "page")


def _wants_html(request: Request) -> bool:
    return "text/html" in request.headers.get("accept", "").lower()


def _raise_http_error(exc: Exception) -> NoReturn:
    if isinstance(exc, NotAuthorizedError):
        raise HTTPException(
            status_code=HTTPStatus.UNAUTHORIZED,
            detail="AmoCRM account not connected.",
        ) from exc
    if isinstance(exc, UpstreamError):
        raise HTTPException(
            status_code=HTTPStatus.BAD_GATEWAY,
            detail={
                "message": "AmoCRM request failed.",
                "upstream_status": exc.status_code,
            },
        ) from exc
    raise exc


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/amocrm/authorize", status_code=HTTPStatus.OK)
async def start_amocrm_oauth_flow(
    request: Request,
    service: Annotated[Any, Depends(get_amocrm_service)],
    base_domain: str = Query(
        ..., description="AmoCRM account host, e.g. example.amocrm.ru."
    ),
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the AmoCRM consent screen.",
    ),
) -> Response:
    authorization_url = service.get_auth_url(base_domain)

    if redirect or _wants_html(request):
        return RedirectResponse(
            url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT
        )
    return JSONResponse(content={"authorization_url": authorization_url})


@router.post("/amocrm/callback", status_code=HTTPStatus.OK)
async def handle_amocrm_oauth_callback(
    payload: AmoCRMCallbackPayload,
    service: Annotated[Any, Depends(get_amocrm_service)],
) -> ConnectionStatus:
    """Exchange the authorization code and store the resulting tokens."""
    try:
        token = await service.get_access_token(payload.code, payload.referer)
    except UpstreamError as exc:
        _raise_http_error(exc)

    logger.info("AmoCRM account %s connected", token.base_domain)
    return ConnectionStatus(base_domain=token.base_domain, expires_at=token.expires_at)


@router.get("/amocrm/callback", status_code=HTTPStatus.OK)
async def handle_amocrm_oauth_callback_get(
    service: Annotated[Any, Depends(get_amocrm_service)],
    code: str = Query(..., description="Authorization code returned by AmoCRM."),
    referer: str = Query(..., description="Account host the code belongs to."),
    state: str | None = Query(default=None),
) -> ConnectionStatus:
    payload = AmoCRMCallbackPayload(code=code, referer=referer, state=state)
    return await handle_amocrm_oauth_callback(payload=payload, service=service)


@router.get("/amocrm/leads", status_code=HTTPStatus.OK)
async def list_leads(
    request: Request,
    service: Annotated[Any, Depends(get_amocrm_service)],
    limit: int = Query(default=25, ge=1, le=250),
    page: int = Query(default=1, ge=1),
) -> dict:
    """List leads; query parameters other than paging are forwarded as-is."""
    forwarded: dict[str, list[str]] = {}
    for key, value in request.query_params.multi_items():
        if key not in _PAGING_KEYS:
            forwarded.setdefault(key, []).append(value)

    params: dict[str, Any] = {"limit": limit, "page": page}
    for key, values in forwarded.items():
        params[key] = values[0] if len(values) == 1 else values

    try:
        return await service.get_leads(params)
    except (NotAuthorizedError, UpstreamError) as exc:
        _raise_http_error(exc)


@router.get("/amocrm/leads/{lead_id}", status_code=HTTPStatus.OK)
async def get_lead(
    service: Annotated[Any, Depends(get_amocrm_service)],
    lead_id: int = Path(..., ge=1),
) -> dict:
    try:
        return await service.get_lead(lead_id)
    except (NotAuthorizedError, UpstreamError) as exc:
        _raise_http_error(exc)
