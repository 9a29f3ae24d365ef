"""
Persistent media hosting providers.

The pipeline only depends on HostingProvider.upload(bytes, filename, mime_type)
returning a dict with a ``url`` key. find_by_tag is optional and lets a
provider report an already-hosted copy of the same content.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import httpx

from core.exceptions import MediaFetchError
from core.retry import RetryPolicy, retry_async

logger = logging.getLogger(__name__)


class HostingProvider(ABC):
    """Swappable media host."""

    @abstractmethod
    async def upload(
        self,
        data: bytes,
        filename: str,
        mime_type: str,
        tags: Optional[List[str]] = None,
    ) -> Dict[str, str]:
        """Store bytes and return ``{"url": <stable url>}``"""
        pass

    async def find_by_tag(self, tag: str) -> Optional[str]:
        """URL of a previously uploaded file carrying ``tag``, if the provider can tell."""
        return None


class HttpHostingProvider(HostingProvider):
    """
    Multipart upload to an HTTP pinning/CDN endpoint.

    The endpoint receives ``file`` plus ``tags`` (comma separated) and
    ``name`` form fields with a bearer token, and answers with JSON holding
    either a ``url`` or a content id (``IpfsHash``/``cid``) that is turned
    into a URL with ``public_gateway``.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        upload_url: str,
        api_token: Optional[str] = None,
        public_gateway: Optional[str] = None,
        search_url: Optional[str] = None,
        policy: Optional[RetryPolicy] = None,
    ):
        self.client = client
        self.upload_url = upload_url
        self.api_token = api_token
        self.public_gateway = public_gateway
        self.search_url = search_url
        self.policy = policy or RetryPolicy.from_settings()

    def _headers(self) -> Dict[str, str]:
        if not self.api_token:
            return {}
        return {"Authorization": f"Bearer {self.api_token}"}

    def _url_from_response(self, body: Dict) -> Optional[str]:
        if body.get("url"):
            return body["url"]
        cid = body.get("IpfsHash") or body.get("cid")
        if cid and self.public_gateway:
            gateway = self.public_gateway if self.public_gateway.endswith("/") else self.public_gateway + "/"
            return f"{gateway}{cid}"
        return None

    async def upload(self, data, filename, mime_type, tags=None):
        form = {"name": filename, "tags": ",".join(tags or [])}

        async def attempt():
            try:
                response = await self.client.post(
                    self.upload_url,
                    headers=self._headers(),
                    data=form,
                    files={"file": (filename, data, mime_type)},
                )
            except httpx.HTTPError as e:
                raise MediaFetchError(
                    f"Upload of {filename} failed",
                    context={"upload_url": self.upload_url, "filename": filename},
                    original_exception=e,
                )
            if response.status_code >= 400:
                raise MediaFetchError(
                    f"Hosting provider returned {response.status_code} for {filename}",
                    context={"status_code": response.status_code, "response_body": response.text[:500]},
                )
            return response

        response = await retry_async(attempt, self.policy, label=f"upload {filename}")

        try:
            body = response.json()
        except json.JSONDecodeError as e:
            raise MediaFetchError(
                "Hosting provider returned a non-JSON response",
                context={"filename": filename, "response_body": response.text[:500]},
                original_exception=e,
            )

        url = self._url_from_response(body)
        if not url:
            raise MediaFetchError(
                "Hosting provider response carried no URL",
                context={"filename": filename, "response_keys": sorted(body.keys())},
            )

        logger.info(f"Uploaded {filename} ({len(data)} bytes, {mime_type}) to {url}")
        return {"url": url}

    async def find_by_tag(self, tag):
        if not self.search_url:
            return None
        try:
            response = await self.client.get(
                self.search_url,
                headers=self._headers(),
                params={"tag": tag},
                timeout=self.policy.timeout,
            )
            response.raise_for_status()
            files = response.json().get("files") or []
        except (httpx.HTTPError, json.JSONDecodeError, AttributeError) as e:
            # Lookup failures fall through to a fresh upload
            logger.warning(f"Tag lookup failed for {tag}: {e}")
            return None

        for entry in files:
            url = self._url_from_response(entry) if isinstance(entry, dict) else None
            if url:
                return url
        return None


class InMemoryHostingProvider(HostingProvider):
    """Keeps uploads in memory. Used for local runs and tests."""

    def __init__(self, base_url: str = "memory://media/"):
        self.base_url = base_url
        self.files: Dict[str, Dict] = {}
        self.upload_count = 0

    async def upload(self, data, filename, mime_type, tags=None):
        self.upload_count += 1
        url = f"{self.base_url}{filename}"
        self.files[filename] = {"data": data, "mime_type": mime_type, "tags": list(tags or []), "url": url}
        return {"url": url}

    async def find_by_tag(self, tag):
        for entry in self.files.values():
            if tag in entry["tags"]:
                return entry["url"]
        return None
