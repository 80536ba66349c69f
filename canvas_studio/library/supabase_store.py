"""Supabase-backed persistence (Storage REST API + PostgREST) over ``httpx``."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from canvas_inference.errors import NotFoundError, StorageError
from canvas_inference.input_processing.media_codec import MediaBlob, MediaCodec

from .models import Folder, PersistedMediaRecord, StorageLocator, Template, utcnow
from .storage import MediaPersistence, new_blob_path

logger = logging.getLogger(__name__)

RECORDS_TABLE = "image_records"
FOLDERS_TABLE = "folders"
TEMPLATES_TABLE = "templates"


class SupabaseMediaStore(MediaPersistence):
    """
    Talks to a Supabase project with a service-role key.

    Args:
        url:         Project URL, e.g. ``https://xyz.supabase.co``.
        service_key: Service-role (or anon + RLS) key sent as ``apikey`` and bearer.
        http_client: Optional pre-built client (tests inject a mock transport).
    """

    def __init__(
        self,
        url: str,
        service_key: str,
        timeout: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not url or not service_key:
            raise ValueError("SupabaseMediaStore requires a project URL and a service key")
        self.url = url.rstrip("/")
        self.service_key = service_key
        self.timeout = timeout
        self._http = http_client

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=self.timeout)
        return self._http

    async def close(self) -> None:
        if self._http and not self._http.is_closed:
            await self._http.aclose()

    def _headers(self, **extra: str) -> Dict[str, str]:
        headers = {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
        }
        headers.update(extra)
        return headers

    def _object_url(self, locator: StorageLocator, prefix: str = "object") -> str:
        return f"{self.url}/storage/v1/{prefix}/{locator.bucket}/{quote(locator.path)}"

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = await self.http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise StorageError(f"Storage request failed: {exc}") from exc
        if resp.status_code == 404 or (resp.status_code == 400 and "not found" in resp.text.lower()):
            # Storage reports missing objects as 400 "Object not found" as well as 404
            raise NotFoundError(f"Object not found: {url}")
        if resp.status_code >= 400:
            raise StorageError(f"{method} {url} failed with HTTP {resp.status_code}: {resp.text[:200]}")
        return resp

    # ------------------------------------------------------------------
    # Blobs
    # ------------------------------------------------------------------

    async def upload_blob(self, blob: MediaBlob, user_id: str, bucket: str) -> StorageLocator:
        locator = StorageLocator(bucket=bucket, path=new_blob_path(user_id, blob))
        await self._request(
            "POST",
            self._object_url(locator),
            headers=self._headers(**{"Content-Type": blob.mime_type, "x-upsert": "false"}),
            content=blob.data,
        )
        logger.info("Uploaded %d bytes to %s/%s", len(blob), locator.bucket, locator.path)
        return locator

    async def download_blob(self, locator: StorageLocator) -> MediaBlob:
        resp = await self._request("GET", self._object_url(locator), headers=self._headers())
        mime = resp.headers.get("content-type", "").split(";")[0]
        return MediaBlob(data=resp.content, mime_type=mime or MediaCodec.sniff_mime_type(resp.content))

    async def delete_blobs(self, bucket: str, paths: List[str]) -> None:
        if not paths:
            return
        await self._request(
            "DELETE",
            f"{self.url}/storage/v1/object/{bucket}",
            headers=self._headers(),
            json={"prefixes": paths},
        )

    async def create_signed_url(self, locator: StorageLocator, ttl_seconds: int) -> str:
        resp = await self._request(
            "POST",
            self._object_url(locator, prefix="object/sign"),
            headers=self._headers(),
            json={"expiresIn": ttl_seconds},
        )
        signed = resp.json().get("signedURL") or resp.json().get("signedUrl")
        if not signed:
            raise NotFoundError(f"No signed URL returned for {locator.bucket}/{locator.path}")
        return f"{self.url}/storage/v1{signed}" if signed.startswith("/") else signed

    # ------------------------------------------------------------------
    # Rows
    # ------------------------------------------------------------------

    def _table_url(self, table: str) -> str:
        return f"{self.url}/rest/v1/{table}"

    async def _select(self, table: str, params: Dict[str, str]) -> List[Dict[str, Any]]:
        resp = await self._request("GET", self._table_url(table), headers=self._headers(), params=params)
        return resp.json()

    async def _write(self, method: str, table: str, payload: Any, params: Optional[Dict[str, str]] = None):
        resp = await self._request(
            method,
            self._table_url(table),
            headers=self._headers(Prefer="return=representation"),
            json=payload,
            params=params,
        )
        rows = resp.json()
        if not rows:
            raise NotFoundError(f"No {table} row affected")
        return rows[0]

    async def create_record(self, record: PersistedMediaRecord) -> PersistedMediaRecord:
        row = record.to_row()
        if row["id"] is None:
            row.pop("id")
        if row["created_at"] is None:
            row["created_at"] = utcnow().isoformat()
        created = await self._write("POST", RECORDS_TABLE, row)
        return PersistedMediaRecord.from_row(created)

    async def update_record(self, record_id: str, **changes) -> PersistedMediaRecord:
        columns = {"folder_id": "folder_id", "meta": "meta", "params": "params"}
        payload = {columns[name]: value for name, value in changes.items()}
        updated = await self._write("PATCH", RECORDS_TABLE, payload, params={"id": f"eq.{record_id}"})
        return PersistedMediaRecord.from_row(updated)

    async def get_record(self, record_id: str) -> Optional[PersistedMediaRecord]:
        rows = await self._select(RECORDS_TABLE, {"id": f"eq.{record_id}", "select": "*"})
        return PersistedMediaRecord.from_row(rows[0]) if rows else None

    async def list_records(self, user_id: str) -> List[PersistedMediaRecord]:
        rows = await self._select(
            RECORDS_TABLE,
            {"user_id": f"eq.{user_id}", "select": "*", "order": "created_at.desc"},
        )
        return [PersistedMediaRecord.from_row(row) for row in rows]

    async def delete_records(self, record_ids: List[str]) -> None:
        if not record_ids:
            return
        await self._request(
            "DELETE",
            self._table_url(RECORDS_TABLE),
            headers=self._headers(),
            params={"id": f"in.({','.join(record_ids)})"},
        )

    async def create_folder(self, user_id: str, name: str) -> Folder:
        created = await self._write("POST", FOLDERS_TABLE, {"user_id": user_id, "name": name})
        return Folder.from_row(created)

    async def list_folders(self, user_id: str) -> List[Folder]:
        rows = await self._select(
            FOLDERS_TABLE,
            {"user_id": f"eq.{user_id}", "select": "*", "order": "created_at.desc"},
        )
        return [Folder.from_row(row) for row in rows]

    async def create_template(self, template: Template) -> Template:
        row = template.to_row()
        if row["id"] is None:
            row.pop("id")
        if row["created_at"] is None:
            row["created_at"] = utcnow().isoformat()
        created = await self._write("POST", TEMPLATES_TABLE, row)
        return Template.from_row(created)

    async def update_template(self, template_id: str, **changes) -> Template:
        columns = {"name": "name", "description": "description", "default_model": "defaultModel", "params": "params"}
        payload = {columns[name]: value for name, value in changes.items()}
        updated = await self._write("PATCH", TEMPLATES_TABLE, payload, params={"id": f"eq.{template_id}"})
        return Template.from_row(updated)

    async def get_template(self, template_id: str) -> Optional[Template]:
        rows = await self._select(TEMPLATES_TABLE, {"id": f"eq.{template_id}", "select": "*"})
        return Template.from_row(rows[0]) if rows else None

    async def list_templates(self, user_id: str) -> List[Template]:
        rows = await self._select(
            TEMPLATES_TABLE,
            {"user_id": f"eq.{user_id}", "select": "*", "order": "created_at.desc"},
        )
        return [Template.from_row(row) for row in rows]

    async def delete_template(self, template_id: str) -> None:
        await self._request(
            "DELETE",
            self._table_url(TEMPLATES_TABLE),
            headers=self._headers(),
            params={"id": f"eq.{template_id}"},
        )
