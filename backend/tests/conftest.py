from __future__ import annotations

import httpx
import pytest

from organlink.memory.token_store import TokenStore
from organlink.models.user import Portal
from organlink.sandbox.main import create_app
from organlink.sandbox.store import seeded_store
from organlink.session import Session

SANDBOX_URL = "http://sandbox.test"


@pytest.fixture
def store():
    return seeded_store()


@pytest.fixture
def transport(store):
    return httpx.ASGITransport(app=create_app(store))


@pytest.fixture
async def make_session(store, transport):
    sessions = []

    async def factory(portal: Portal, account_id: str, restore: bool = True) -> Session:
        tokens = TokenStore()
        tokens.set(portal.token_key, store.issue_token(portal, account_id))
        session = Session(portal, tokens, base_url=SANDBOX_URL, transport=transport)
        if restore:
            await session.restore()
        sessions.append(session)
        return session

    yield factory
    for session in sessions:
        await session.aclose()
