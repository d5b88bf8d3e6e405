"""Signed-URL issuance against the Supabase Storage REST API."""
import logging
from urllib.parse import quote

import httpx

from coursewallet.config import settings
from coursewallet.core.errors import ErrorKind, ServiceError

logger = logging.getLogger(__name__)


async def create_signed_url(path: str, expires_in: int, bucket: str = None) -> str:
    """Ask the storage service for a capability URL to `path`, valid for `expires_in` seconds."""
    bucket = bucket or settings.COURSE_ASSET_BUCKET
    base = settings.SUPABASE_URL.rstrip("/")
    endpoint = f"{base}/storage/v1/object/sign/{bucket}/{quote(path.lstrip('/'))}"
    headers = {
        "Authorization": f"Bearer {settings.SUPABASE_SERVICE_ROLE_KEY}",
        "apikey": settings.SUPABASE_SERVICE_ROLE_KEY,
    }
    try:
        async with httpx.AsyncClient(timeout=15.0) as client:
            resp = await client.post(endpoint, json={"expiresIn": expires_in}, headers=headers)
            resp.raise_for_status()
            data = resp.json()
    except httpx.HTTPError as e:
        logger.exception("Signed URL request for %s/%s failed", bucket, path)
        raise ServiceError(ErrorKind.upstream_failure, "Failed to generate download link") from e

    signed = data.get("signedURL") or data.get("signedUrl")
    if not signed:
        logger.error("Storage response without signed URL: %s", data)
        raise ServiceError(ErrorKind.upstream_failure, "Failed to generate download link")
    if signed.startswith("http"):
        return signed
    return f"{base}/storage/v1{signed}"
