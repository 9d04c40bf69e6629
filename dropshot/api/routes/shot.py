from pathlib import Path

import requests
from fastapi import APIRouter, Depends, Request
from fastapi.responses import FileResponse, PlainTextResponse, RedirectResponse, Response, StreamingResponse
from starlette.background import BackgroundTask
from starlette.concurrency import run_in_threadpool

from dropshot.api.dependencies import get_services
from dropshot.config import settings
from dropshot.core.logger import logger
from dropshot.models.entry import Entry
from dropshot.security.remote_addr import real_remote_ip
from dropshot.services.container import Services

router = APIRouter(tags=["shot"])

NO_CACHE = "no-cache, no-store, must-revalidate"

HOP_BY_HOP = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}


def not_found() -> Response:
    # 200 so that caches do not remember the miss
    return PlainTextResponse("File not found", status_code=200)


def serve_file(entry: Entry) -> Response:
    path = Path(settings.upload_directory) / entry.filename
    if not path.is_file():
        logger.error("upload_missing", name=entry.name, path=str(path))
        return PlainTextResponse("Could not open file", status_code=500)

    return FileResponse(path, media_type=entry.content_type or "text/plain")


def serve_redirect(entry: Entry) -> Response:
    return RedirectResponse(entry.url, status_code=307, headers={"Cache-Control": NO_CACHE})


def serve_proxy(entry: Entry, method: str, headers: dict, body: bytes) -> Response:
    outgoing = {
        key: value for key, value in headers.items()
        if key.lower() not in HOP_BY_HOP and key.lower() not in ("host", "content-length")
    }
    # do not announce ourselves when the client sent no user agent
    outgoing.setdefault("user-agent", "")

    try:
        upstream = requests.request(
            method,
            entry.url,
            headers=outgoing,
            data=body or None,
            stream=True,
            allow_redirects=False,
            timeout=settings.proxy_timeout,
        )
    except requests.RequestException as e:
        logger.error("proxy_error", name=entry.name, url=entry.url, error=str(e))
        return PlainTextResponse("Bad gateway", status_code=502)

    response_headers = {
        key: value for key, value in upstream.headers.items()
        if key.lower() not in HOP_BY_HOP and key.lower() not in ("content-length", "content-encoding")
    }
    response_headers["Cache-Control"] = NO_CACHE

    return StreamingResponse(
        upstream.iter_content(chunk_size=64 * 1024),
        status_code=upstream.status_code,
        headers=response_headers,
        background=BackgroundTask(upstream.close),
    )


@router.api_route("/{name:path}", methods=["GET", "HEAD", "POST"], include_in_schema=False)
async def shot(name: str, request: Request, services: Services = Depends(get_services)):
    name = name.strip("/")
    peer = request.client.host if request.client else None
    ip = real_remote_ip(peer, request.headers, services.databases.get("cloudflare"))

    if ip is None:
        logger.warning("remote_address_unparsable", peer=peer)
        return not_found()

    entry = await run_in_threadpool(services.dispatcher.access, name, ip)

    if entry is None:
        logger.info("shot_denied", name=name, ip=str(ip))
        return not_found()

    logger.info("shot_granted", name=entry.name, ip=str(ip))

    if entry.is_file:
        return serve_file(entry)

    if entry.redirect:
        return serve_redirect(entry)

    body = await request.body()
    return await run_in_threadpool(serve_proxy, entry, request.method, dict(request.headers), body)
