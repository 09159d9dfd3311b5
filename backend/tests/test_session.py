from datetime import timedelta

from organlink.memory.token_store import TokenStore
from organlink.models.user import Portal
from organlink.session import Session
from organlink.utils.security import create_access_token, token_expired

SANDBOX_URL = "http://sandbox.test"


async def test_restore_with_valid_token(make_session):
    session = await make_session(Portal.HOSPITAL, "HOSP-001")
    assert session.is_authenticated
    assert session.user.id == "HOSP-001"
    assert session.user.name == "City General Hospital"
    assert not session.loading


async def test_restore_discards_rejected_token(transport):
    tokens = TokenStore()
    tokens.set(Portal.HOSPITAL.token_key, "not-a-jwt")
    async with Session(Portal.HOSPITAL, tokens, base_url=SANDBOX_URL, transport=transport) as session:
        assert await session.restore() is None
        assert session.token is None
        assert not session.is_authenticated


async def test_restore_discards_expired_token_without_calling_api():
    expired = create_access_token("HOSP-001", "hospital", expires_delta=timedelta(minutes=-5))
    assert token_expired(expired)
    tokens = TokenStore()
    tokens.set(Portal.HOSPITAL.token_key, expired)
    # No transport points anywhere reachable; a network call would fail the test.
    async with Session(Portal.HOSPITAL, tokens, base_url="http://unreachable.invalid") as session:
        assert await session.restore() is None
        assert Portal.HOSPITAL.token_key not in tokens


async def test_token_for_another_portal_is_rejected(store, transport):
    tokens = TokenStore()
    tokens.set(Portal.HOSPITAL.token_key, store.issue_token(Portal.ORGANIZATION, "ORG-001"))
    async with Session(Portal.HOSPITAL, tokens, base_url=SANDBOX_URL, transport=transport) as session:
        assert await session.restore() is None


async def test_sign_out_notifies_listeners(make_session):
    session = await make_session(Portal.ORGANIZATION, "ORG-001")
    seen = []
    unsubscribe = session.subscribe(seen.append)

    await session.sign_out()
    assert seen == [None]
    assert session.token is None

    unsubscribe()
    await session.sign_in("ignored-token", user=None)
    assert seen == [None]


async def test_admin_session(make_session):
    session = await make_session(Portal.ADMIN, "admin")
    assert session.user.id == "admin"
    assert session.user.portal is Portal.ADMIN


def test_token_store_persists_to_disk(tmp_path):
    path = tmp_path / "tokens.json"
    TokenStore(path).set("hospital_token", "abc")
    reopened = TokenStore(path)
    assert reopened.get("hospital_token") == "abc"

    reopened.remove("hospital_token")
    assert TokenStore(path).get("hospital_token") is None


def test_corrupt_token_store_starts_empty(tmp_path):
    path = tmp_path / "tokens.json"
    path.write_text("{not json", encoding="utf-8")
    assert "hospital_token" not in TokenStore(path)


async def test_expired_token_signs_out_an_active_session(make_session):
    session = await make_session(Portal.HOSPITAL, "HOSP-001")
    seen = []
    session.subscribe(seen.append)
    session.store.set(
        Portal.HOSPITAL.token_key,
        create_access_token("HOSP-001", "hospital", expires_delta=timedelta(minutes=-1)),
    )

    assert await session.restore() is None
    assert not session.is_authenticated
    assert seen == [None]
