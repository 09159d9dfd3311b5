from __future__ import annotations

from typing import Annotated, Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status

from ...models.user import Portal
from ..store import SandboxStore
from .auth import get_store, require_account

hospital_router = APIRouter(prefix="/api/hospital/notifications", tags=["hospital-notifications"])
organization_router = APIRouter(prefix="/api/organization/policies", tags=["organization-notifications"])
admin_router = APIRouter(prefix="/api/admin/dashboard", tags=["admin-dashboard"])

HospitalAccount = Annotated[Dict[str, Any], Depends(require_account(Portal.HOSPITAL))]
OrganizationAccount = Annotated[Dict[str, Any], Depends(require_account(Portal.ORGANIZATION))]
AdminAccount = Annotated[Dict[str, Any], Depends(require_account(Portal.ADMIN))]
Store = Annotated[SandboxStore, Depends(get_store)]


@hospital_router.get("")
async def list_notifications(hospital: HospitalAccount, store: Store) -> Dict[str, Any]:
    notifications = store.hospital_notifications(hospital["hospital_id"])
    unread = sum(1 for n in notifications if not n["is_read"])
    return {"success": True, "notifications": notifications, "unread_count": unread}


@hospital_router.put("/mark-all-read")
async def mark_all_read(hospital: HospitalAccount, store: Store) -> Dict[str, Any]:
    for notification in store.hospital_notifications(hospital["hospital_id"]):
        notification["is_read"] = True
    return {"success": True}


@hospital_router.api_route("/{notification_id}/read", methods=["PATCH", "PUT"])
async def mark_read(notification_id: str, hospital: HospitalAccount, store: Store) -> Dict[str, Any]:
    store.owned_notification(hospital["hospital_id"], notification_id)["is_read"] = True
    return {"success": True}


@hospital_router.delete("/{notification_id}")
async def delete_notification(notification_id: str, hospital: HospitalAccount, store: Store) -> Dict[str, Any]:
    store.owned_notification(hospital["hospital_id"], notification_id)
    del store.notifications[notification_id]
    return {"success": True}


@organization_router.get("/notifications")
async def policy_notifications(_: OrganizationAccount, store: Store) -> Dict[str, Any]:
    return {"success": True, "notifications": list(store.policy_notifications.values())}


@organization_router.post("/notifications/{notification_id}/read")
async def mark_policy_notification_read(
    notification_id: str,
    _: OrganizationAccount,
    store: Store,
) -> Dict[str, Any]:
    notification = store.policy_notifications.get(notification_id)
    if not notification:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    notification["is_read"] = True
    return {"success": True}


@admin_router.get("/stats")
async def dashboard_stats(_: AdminAccount, store: Store) -> Dict[str, Any]:
    return {
        "success": True,
        "stats": {
            "hospitals": len(store.hospitals),
            "organizations": len(store.organizations),
            "patients": len(store.patients),
            "donors": len(store.donors),
            "match_requests": len(store.requests),
        },
        "recentActivities": list(reversed(store.activities)),
    }
