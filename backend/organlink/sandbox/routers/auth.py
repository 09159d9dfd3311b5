from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ...models.user import Portal
from ...utils.security import decode_token
from ..store import SandboxStore

bearer_scheme = HTTPBearer(auto_error=False)


def get_store(request: Request) -> SandboxStore:
    return request.app.state.store


def require_account(portal: Portal):
    async def dependency(
        credentials: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
        store: SandboxStore = Depends(get_store),
    ) -> Dict[str, Any]:
        if credentials is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing authorization token")
        try:
            payload = decode_token(credentials.credentials)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
        if payload.get("portal") != portal.value:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Token issued for another portal")
        account = store.accounts(portal).get(payload.get("sub"))
        if not account:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
        return account

    return dependency


def verify_router(portal: Portal) -> APIRouter:
    router = APIRouter(prefix=f"{portal.api_prefix}/auth", tags=[f"{portal.value}-auth"])

    @router.get("/verify")
    async def verify(account: Dict[str, Any] = Depends(require_account(portal))) -> Dict[str, Any]:
        return {"success": True, portal.value: account}

    return router
