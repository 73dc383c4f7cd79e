# Overview: Adapter for the external image host that stores product photos.

from __future__ import annotations

import httpx
from flask import current_app


def delete_hosted_image(public_id: str | None) -> bool:
    """
    Best-effort removal of a hosted product image.

    Returns True when the host confirmed the deletion. Failures are logged and
    swallowed: a dangling image must never block a product update or delete.
    """
    if not public_id:
        return False

    url = current_app.config.get("IMAGE_HOST_DELETE_URL")
    if not url:
        current_app.logger.info("Image host not configured; skipping delete of %s", public_id)
        return False

    headers = {}
    api_key = current_app.config.get("IMAGE_HOST_API_KEY")
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"

    try:
        response = httpx.post(
            url,
            json={"public_id": public_id},
            headers=headers,
            timeout=current_app.config.get("IMAGE_HOST_TIMEOUT", 10.0),
        )
        response.raise_for_status()
    except httpx.HTTPError:
        current_app.logger.warning("Failed to delete hosted image %s", public_id, exc_info=True)
        return False

    current_app.logger.info("Hosted image %s deleted", public_id)
    return True
