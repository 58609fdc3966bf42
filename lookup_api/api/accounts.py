"""
Account administration routes for the privileged role.
Psychology: Thin handlers - validation and persistence live in the AccountStore.
Intention: One router shape for both role models, mounted under the privileged prefix.
"""
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Request, status

from lookup_api.config import RoleModel
from lookup_api.exceptions import ValidationFailed
from lookup_api.middleware.gate import route_gate
from lookup_api.middleware.logging import BusinessEventLogger
from lookup_api.models.account import ALL_FEATURES, AccountCreate, AccountOut, AccountStatus, AccountUpdate, FeaturesUpdate
from lookup_api.models.search import SearchHistoryEntry
from lookup_api.services.search_history import count_by_kind

logger = logging.getLogger(__name__)


def _audit(request: Request, action: str, account_id: str) -> None:
    user = getattr(request.state, "session_user", None)
    BusinessEventLogger.log_account_change(
        action,
        account_id,
        user_id=user.id if user else None,
        request_id=getattr(request.state, "request_id", None),
    )


def build_accounts_router(roles: RoleModel) -> APIRouter:
    """Routes under /api/<privileged>; the features endpoints exist only when the role model has features."""
    router = APIRouter(
        prefix=f"/api/{roles.privileged}",
        tags=["accounts"],
        dependencies=[Depends(route_gate(vpn=True, privileged=True))],
    )
    collection_path = f"/{roles.route_segment}"
    plural = f"{roles.managed_label}s"
    with_features = roles.supports_features

    def render(doc: Dict[str, Any]) -> Dict[str, Any]:
        return AccountOut.from_document(doc, with_features=with_features).public()

    @router.get("/stats")
    async def stats(request: Request) -> Dict[str, Any]:
        services = request.app.state.services
        return {
            "success": True,
            f"total{plural}": await services.accounts.count(),
            f"active{plural}": await services.accounts.count(AccountStatus.ACTIVE),
            "recentSearches": await services.history.count_last_day(),
        }

    @router.get(collection_path)
    async def list_accounts(request: Request) -> List[Dict[str, Any]]:
        docs = await request.app.state.services.accounts.list()
        return [render(doc) for doc in docs]

    @router.post(collection_path, status_code=status.HTTP_201_CREATED)
    async def create_account(payload: AccountCreate, request: Request) -> Dict[str, Any]:
        doc = await request.app.state.services.accounts.create(payload)
        _audit(request, "created", str(doc["_id"]))
        return {"success": True, roles.managed: render(doc)}

    @router.put(f"{collection_path}/{{account_id}}")
    async def update_account(account_id: str, payload: AccountUpdate, request: Request) -> Dict[str, Any]:
        doc = await request.app.state.services.accounts.update(account_id, payload)
        _audit(request, "updated", account_id)
        return {"success": True, roles.managed: render(doc)}

    @router.delete(f"{collection_path}/{{account_id}}")
    async def delete_account(account_id: str, request: Request) -> Dict[str, Any]:
        await request.app.state.services.accounts.delete(account_id)
        _audit(request, "deleted", account_id)
        return {"success": True}

    if not with_features:
        return router

    @router.get(f"{collection_path}/{{account_id}}/details")
    async def account_details(account_id: str, request: Request) -> Dict[str, Any]:
        services = request.app.state.services
        doc = await services.accounts.get(account_id)
        entries = await services.history.list_for_actor(str(doc["_id"]))
        return {
            "success": True,
            roles.managed: render(doc),
            "searchHistory": [
                SearchHistoryEntry.from_document(entry).model_dump(by_alias=True, mode="json")
                for entry in entries
            ],
            "searchStats": count_by_kind(entries),
            "allFeatures": list(ALL_FEATURES),
        }

    @router.put(f"{collection_path}/{{account_id}}/features")
    async def update_features(account_id: str, payload: FeaturesUpdate, request: Request) -> Dict[str, Any]:
        if not isinstance(payload.features, list):
            raise ValidationFailed("Features must be an array")
        doc = await request.app.state.services.accounts.set_features(account_id, payload.features)
        _audit(request, "features_updated", account_id)
        return {"success": True, roles.managed: render(doc)}

    return router
