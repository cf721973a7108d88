"""
Contentstack Content Delivery API client.

Read-only access to the content types the platform consumes:
- course         (modules under a reference field, optional reference_test)
- course_module
- course_test    (sections of questions, optional instruction reference)
- taxonomy terms (GET /v3/taxonomies/{uid}/terms)

Auth headers: ``api_key`` + ``access_token`` (delivery token).
"""
from __future__ import annotations

import json
import logging
from typing import Any, Iterable

import requests

from app.utils import ApiError

logger = logging.getLogger(__name__)

REGION_HOSTS = {
    "us": "cdn.contentstack.io",
    "na": "cdn.contentstack.io",
    "eu": "eu-cdn.contentstack.com",
    "azure-na": "azure-na-cdn.contentstack.com",
    "azure-eu": "azure-eu-cdn.contentstack.com",
    "gcp-na": "gcp-na-cdn.contentstack.com",
}


class CmsError(ApiError):
    def __init__(self, message: str, http_status: int = 502):
        super().__init__("UPSTREAM_ERROR", message, http_status=http_status)


def base_url_for_region(region: str) -> str:
    host = REGION_HOSTS.get(str(region or "us").strip().lower(), REGION_HOSTS["us"])
    return f"https://{host}/v3"


class ContentstackClient:
    def __init__(
        self,
        *,
        api_key: str,
        delivery_token: str,
        environment: str,
        region: str = "us",
        timeout: int = 15,
        session: requests.Session | None = None,
    ):
        self.api_key = str(api_key or "").strip()
        self.delivery_token = str(delivery_token or "").strip()
        self.environment = str(environment or "").strip()
        self.base_url = base_url_for_region(region)
        self.timeout = int(timeout or 15)
        self._session = session or requests.Session()

    @classmethod
    def from_config(cls, cfg) -> "ContentstackClient":
        return cls(
            api_key=cfg.CONTENTSTACK_API_KEY,
            delivery_token=cfg.CONTENTSTACK_DELIVERY_TOKEN,
            environment=cfg.CONTENTSTACK_ENVIRONMENT,
            region=cfg.CONTENTSTACK_REGION,
            timeout=cfg.CMS_TIMEOUT_SECONDS,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.delivery_token)

    def _headers(self) -> dict[str, str]:
        return {
            "api_key": self.api_key,
            "access_token": self.delivery_token,
            "Content-Type": "application/json",
        }

    def _get(self, path: str, params: list[tuple[str, str]] | None = None) -> dict[str, Any]:
        if not self.configured:
            raise CmsError("Contentstack credentials not configured", http_status=503)

        url = f"{self.base_url}{path}"
        try:
            resp = self._session.get(url, params=params or [], headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("CMS request failed path=%s error=%s", path, e)
            raise CmsError(f"CMS request failed: {e}")

        if resp.status_code == 404:
            raise ApiError("NOT_FOUND", "Entry not found in CMS")
        if resp.status_code >= 400:
            logger.warning("CMS request failed path=%s status=%s", path, resp.status_code)
            raise CmsError(f"CMS request failed with status {resp.status_code}")

        try:
            body = resp.json()
        except ValueError:
            raise CmsError("CMS returned an invalid JSON response")
        return body if isinstance(body, dict) else {}

    def _base_params(self, include: Iterable[str] | None) -> list[tuple[str, str]]:
        params = [("environment", self.environment)]
        for ref in include or []:
            ref_s = str(ref or "").strip()
            if ref_s:
                params.append(("include[]", ref_s))
        return params

    def get_entry(self, content_type: str, uid: str, include: Iterable[str] | None = None) -> dict[str, Any]:
        uid_s = str(uid or "").strip()
        if not uid_s:
            raise ApiError("BAD_REQUEST", "Missing entry uid")
        body = self._get(f"/content_types/{content_type}/entries/{uid_s}", self._base_params(include))
        entry = body.get("entry")
        return entry if isinstance(entry, dict) else {}

    def find_entries(
        self,
        content_type: str,
        include: Iterable[str] | None = None,
        *,
        search: str | None = None,
        where: dict[str, Any] | None = None,
    ) -> tuple[list[dict[str, Any]], int]:
        params = self._base_params(include)
        params.append(("include_count", "true"))
        if search:
            params.append(("typeahead", str(search)))
        if where:
            params.append(("query", json.dumps(where, separators=(",", ":"))))
        body = self._get(f"/content_types/{content_type}/entries", params)
        entries = [e for e in (body.get("entries") or []) if isinstance(e, dict)]
        try:
            count = int(body.get("count", len(entries)))
        except (TypeError, ValueError):
            count = len(entries)
        return entries, count

    def get_taxonomy_terms(self, taxonomy_uid: str) -> list[dict[str, Any]]:
        body = self._get(f"/taxonomies/{taxonomy_uid}/terms", [("environment", self.environment)])
        terms = body.get("terms") or body.get("items") or []
        return [t for t in terms if isinstance(t, dict)]
