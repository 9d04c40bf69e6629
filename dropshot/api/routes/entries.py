import base64
import binascii
import os
import uuid
from pathlib import Path
from typing import Optional
from urllib.parse import quote, urlparse

from fastapi import APIRouter, Depends, Header, HTTPException, status

from dropshot.api.dependencies import get_services, require_admin
from dropshot.config import settings
from dropshot.core.exceptions import EntryNotFoundError
from dropshot.core.logger import logger
from dropshot.models.entry import Entry
from dropshot.schemas.entry import EntryCreate, EntryResponse
from dropshot.security.blacklist import parse_blacklist
from dropshot.services.container import Services

router = APIRouter(prefix="/admin/api/entries", tags=["entries"], dependencies=[Depends(require_admin)])


def write_upload(filename: str, content: bytes) -> None:
    if len(content) > settings.upload_max_size:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Upload exceeds {settings.upload_max_size} bytes"
        )

    path = Path(settings.upload_directory) / filename
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, settings.upload_permissions)
    with os.fdopen(fd, "wb") as out:
        out.write(content)


def build_entry(data: EntryCreate, services: Services, owner_token: str) -> Entry:
    entry = Entry(
        name=data.name or str(uuid.uuid4()),
        url="",
        redirect=False,
        filename="",
        content_type="",
        owner_token=owner_token,
        access_expire=data.access_expire,
        access_expire_count=data.access_expire_count,
        access_redirect_on_deny=data.access_redirect_on_deny,
        access_blacklist=parse_blacklist(data.blacklist, services.database_names).to_text(),
        access_blacklist_count=0,
        access_count=0,
        access_train=False,
    )

    if data.source == "url":
        parsed = urlparse(data.url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="url must be an absolute http(s) URL"
            )
        entry.url = data.url
        entry.redirect = data.url_type == "redirect"
        return entry

    if data.source == "file":
        try:
            content = base64.b64decode(data.file, validate=True)
        except (binascii.Error, ValueError):
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="file must be base64 encoded"
            )
        content_type = data.file_type
    else:
        content = data.text.encode("utf-8")
        content_type = data.text_type

    entry.filename = quote(entry.name, safe="")
    entry.content_type = content_type
    write_upload(entry.filename, content)
    return entry


@router.post("", response_model=EntryResponse, status_code=status.HTTP_201_CREATED)
def create_entry(
    data: EntryCreate,
    services: Services = Depends(get_services),
    x_owner_token: Optional[str] = Header(default="")
):
    entry = build_entry(data, services, x_owner_token or "")
    entry = services.store.update(entry)
    logger.info("entry_created", name=entry.name, source=data.source)
    return entry


@router.get("", response_model=list[EntryResponse])
def list_entries(
    owner: Optional[str] = None,
    services: Services = Depends(get_services)
):
    return services.store.list(owner_token=owner)


@router.get("/{name}", response_model=EntryResponse)
def get_entry(name: str, services: Services = Depends(get_services)):
    entry = services.store.get(name)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Entry not found")
    return entry


@router.post("/{name}/train", response_model=EntryResponse)
def toggle_training(name: str, services: Services = Depends(get_services)):
    entry = services.store.get(name)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Entry not found")

    try:
        services.lifecycle.toggle_training(entry)
    except EntryNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Entry not found")

    return entry


@router.delete("/{name}", status_code=status.HTTP_204_NO_CONTENT)
def remove_entry(name: str, services: Services = Depends(get_services)):
    if not services.store.remove(name):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Entry not found")
    logger.info("entry_removed", name=name)
    return None


@router.delete("")
def clear_entries(
    owner: Optional[str] = None,
    services: Services = Depends(get_services)
):
    deleted = services.store.clear(owner_token=owner)
    logger.info("entries_cleared", owner=owner, deleted=deleted)
    return {"deleted": deleted}
