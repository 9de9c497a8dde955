"""
Media staging — upload files to the remote object store and undo uploads.

Talks to the Cloudinary REST upload API over ``httpx``.  This module
knows nothing about accounts: it hands out ``MediaHandle`` values and can
delete them again, which is all the registration saga needs for its
compensation table.
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from utils.errors import UploadFailed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MediaHandle:
    url: str
    public_id: str
    resource_type: str = "image"


@dataclass(frozen=True)
class CloudinaryCredentials:
    cloud_name: str
    api_key: str
    api_secret: str
    base_url: str = "https://api.cloudinary.com"
    folder: Optional[str] = None


def sign_params(params: Dict[str, Any], api_secret: str) -> str:
    """Cloudinary request signature: sha1 of sorted ``k=v`` pairs + secret."""
    to_sign = "&".join(
        f"{key}={params[key]}" for key in sorted(params) if params[key] not in (None, "")
    )
    return hashlib.sha1(f"{to_sign}{api_secret}".encode()).hexdigest()


class MediaStagingCoordinator:
    """Async Cloudinary wrapper with stage / unstage semantics."""

    def __init__(
        self,
        credentials: CloudinaryCredentials,
        *,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._creds = credentials
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _endpoint(self, resource_type: str, action: str) -> str:
        base = self._creds.base_url.rstrip("/")
        return f"{base}/v1_1/{self._creds.cloud_name}/{resource_type}/{action}"

    def _signed(self, params: Dict[str, Any]) -> Dict[str, Any]:
        params = {k: v for k, v in params.items() if v not in (None, "")}
        params["timestamp"] = int(time.time())
        params["signature"] = sign_params(params, self._creds.api_secret)
        params["api_key"] = self._creds.api_key
        return params

    # ── stage ───────────────────────────────────────────────────────────

    async def stage(self, local_path: str | Path) -> MediaHandle:
        """
        Upload *local_path* and return its handle.

        The local file is removed afterwards whatever the outcome; on
        ``UploadFailed`` the caller must treat the file as unstaged.
        """
        path = Path(local_path)
        try:
            if not path.is_file():
                raise UploadFailed(f"Local file not found: {path.name}")
            data = self._signed({"folder": self._creds.folder})
            response = await self._client.post(
                self._endpoint("auto", "upload"),
                data=data,
                files={"file": (path.name, path.read_bytes())},
            )
            response.raise_for_status()
            body = response.json()
        except UploadFailed:
            raise
        except httpx.TimeoutException as exc:
            logger.warning("Upload of %s timed out: %s", path.name, exc)
            raise UploadFailed(f"Upload of {path.name} timed out", retryable=True)
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Upload of %s rejected: %s %s",
                path.name, exc.response.status_code, exc.response.text[:200],
            )
            raise UploadFailed(f"Upload of {path.name} rejected by object store")
        except (httpx.HTTPError, ValueError, OSError) as exc:
            logger.error("Upload of %s failed: %s", path.name, exc)
            raise UploadFailed(f"Upload of {path.name} failed")
        finally:
            path.unlink(missing_ok=True)

        if not isinstance(body, dict):
            body = {}
        url = body.get("secure_url") or body.get("url")
        public_id = body.get("public_id")
        if not url or not public_id:
            logger.error("Upload of %s returned no locator: %s", path.name, body)
            raise UploadFailed(f"Upload of {path.name} returned no locator")

        handle = MediaHandle(
            url=url,
            public_id=public_id,
            resource_type=body.get("resource_type") or "image",
        )
        logger.info("Staged %s as %s", path.name, handle.public_id)
        return handle

    # ── unstage ─────────────────────────────────────────────────────────

    async def unstage(self, handle: MediaHandle) -> bool:
        """
        Best-effort delete.  Runs in cleanup paths, so failures are logged
        and never raised.  Returns whether the store confirmed the delete.
        """
        try:
            response = await self._client.post(
                self._endpoint(handle.resource_type, "destroy"),
                data=self._signed({"public_id": handle.public_id}),
            )
            response.raise_for_status()
            result = response.json().get("result")
        except Exception:
            logger.exception("Failed to unstage %s", handle.public_id)
            return False

        if result != "ok":
            logger.error("Object store refused to delete %s: %s", handle.public_id, result)
            return False
        logger.info("Unstaged %s", handle.public_id)
        return True
