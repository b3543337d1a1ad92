"""Built-in domain operations.

Small reference operations the dashboard schedules through the job
orchestrator. Each one is ``operation(payload) -> result`` and reaches the
external API only through the resilient client, so credential rotation
and rate-limit handling apply to every call.

    SYNC_USER_ASSETS   list the ad accounts an external user can access
    PUBLISH_DRAFT      create an object from a draft on a target edge
    ECHO               return the payload (smoke tests, dispatch checks)
"""

from __future__ import annotations

from typing import Any

from adops.client.resilient import ResilientClient
from adops.jobs.registry import OperationRegistry
from adops.observability.logging import get_logger

logger = get_logger(__name__)

SYNC_USER_ASSETS = "SYNC_USER_ASSETS"
PUBLISH_DRAFT = "PUBLISH_DRAFT"
ECHO = "ECHO"

AD_ACCOUNT_FIELDS = "id,name,account_status,currency,timezone_name"
MAX_PAGES = 20


def _require(payload: Any, *keys: str) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValueError("payload must be an object")
    missing = [key for key in keys if not payload.get(key)]
    if missing:
        raise ValueError(f"payload is missing required field(s): {', '.join(missing)}")
    return payload


def sync_user_assets(client: ResilientClient, payload: Any) -> dict[str, Any]:
    """Fetch every ad account visible to ``external_user_id``.

    ``access_token`` in the payload pins the user's own token; otherwise the
    pool chooses. Pagination follows ``paging.next`` up to ``MAX_PAGES``;
    ``truncated`` is set when pages remained after that.
    """
    data = _require(payload, "external_user_id")
    user_id = data["external_user_id"]
    token = data.get("access_token")

    accounts: list[dict[str, Any]] = []
    endpoint = f"/{user_id}/adaccounts"
    params: dict[str, Any] | None = {"fields": data.get("fields", AD_ACCOUNT_FIELDS), "limit": 100}
    pages = 0
    while endpoint and pages < MAX_PAGES:
        body = client.get(endpoint, params=params, access_token=token)
        accounts.extend(body.get("data", []))
        pages += 1
        endpoint = (body.get("paging") or {}).get("next")
        params = None

    truncated = bool(endpoint)
    if truncated:
        logger.warning("user_assets_truncated", external_user_id=user_id, pages=pages)
    logger.info("user_assets_synced", external_user_id=user_id, accounts=len(accounts), pages=pages)
    return {
        "external_user_id": user_id,
        "ad_accounts": accounts,
        "count": len(accounts),
        "truncated": truncated,
    }


def publish_draft(client: ResilientClient, payload: Any) -> dict[str, Any]:
    """POST the draft's ``fields`` to ``/{target_id}/{edge}``."""
    data = _require(payload, "draft_id", "target_id")
    edge = data.get("edge", "ads")
    body = client.post(
        f"/{data['target_id']}/{edge}",
        data=data.get("fields") or {},
        access_token=data.get("access_token"),
    )
    published_id = body.get("id") if isinstance(body, dict) else None
    logger.info("draft_published", draft_id=data["draft_id"], published_id=published_id)
    return {"draft_id": data["draft_id"], "published_id": published_id, "response": body}


def echo(payload: Any) -> Any:
    return payload


def register_builtin_operations(registry: OperationRegistry, client: ResilientClient) -> OperationRegistry:
    """Register the built-in operations bound to *client*."""
    registry.register(
        SYNC_USER_ASSETS,
        lambda payload: sync_user_assets(client, payload),
        description="List the ad accounts an external user can access",
    )
    registry.register(
        PUBLISH_DRAFT,
        lambda payload: publish_draft(client, payload),
        description="Publish a draft to a target edge",
    )
    registry.register(ECHO, echo, description="Return the payload unchanged")
    return registry
