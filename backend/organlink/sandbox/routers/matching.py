from __future__ import annotations

from typing import Annotated, Any, Dict

from fastapi import APIRouter, Body, Depends

from ...models.user import Portal
from ..store import SandboxStore
from .auth import get_store, require_account

router = APIRouter(prefix="/api/hospital", tags=["hospital-matching"])
HospitalAccount = Annotated[Dict[str, Any], Depends(require_account(Portal.HOSPITAL))]
Store = Annotated[SandboxStore, Depends(get_store)]


@router.get("/patients")
async def list_patients(hospital: HospitalAccount, store: Store) -> Dict[str, Any]:
    patients = [p for p in store.patients.values() if p["hospital_id"] == hospital["hospital_id"]]
    return {"success": True, "patients": patients}


@router.post("/matching/enhanced-matches")
async def enhanced_matches(
    hospital: HospitalAccount,
    store: Store,
    body: Dict[str, Any] = Body(...),
) -> Dict[str, Any]:
    return store.enhanced_matches(hospital["hospital_id"], str(body.get("patient_id")))


@router.post("/matching/send-request")
async def send_request(
    hospital: HospitalAccount,
    store: Store,
    body: Dict[str, Any] = Body(...),
) -> Dict[str, Any]:
    return store.send_request(hospital["hospital_id"], body)


@router.post("/matching/requests/{request_id}/respond")
async def respond(
    request_id: str,
    hospital: HospitalAccount,
    store: Store,
    body: Dict[str, Any] = Body(...),
) -> Dict[str, Any]:
    return store.respond(hospital["hospital_id"], request_id, body)


@router.get("/matching/outgoing-requests")
async def outgoing_requests(hospital: HospitalAccount, store: Store) -> Dict[str, Any]:
    return {"success": True, "outgoing_requests": store.outgoing(hospital["hospital_id"])}


@router.get("/matching/received-requests")
async def received_requests(hospital: HospitalAccount, store: Store) -> Dict[str, Any]:
    return {"success": True, "received_requests": store.received(hospital["hospital_id"])}


@router.get("/matching/incoming-matches")
async def incoming_matches(hospital: HospitalAccount, store: Store) -> Dict[str, Any]:
    return {"success": True, "incoming_matches": store.incoming(hospital["hospital_id"])}


@router.post("/matching/mark-received-viewed")
async def mark_received_viewed(hospital: HospitalAccount, store: Store) -> Dict[str, Any]:
    return {"success": True, "updated": store.mark_received_viewed(hospital["hospital_id"])}
