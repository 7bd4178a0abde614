"""
Tests for linking marketplace users to n8n
"""

import pytest

from sello.services.account_service import AccountService, split_name


@pytest.fixture
def accounts(db_session, n8n):
    return AccountService(db_session, n8n)


@pytest.mark.parametrize(
    "full_name, expected",
    [
        ("Olena  Kovalenko Shevchenko", ("Olena", "Kovalenko Shevchenko")),
        ("Mallory", ("Mallory", "")),
        ("", ("User", "")),
        (None, ("User", "")),
        ("   ", ("User", "")),
    ],
)
def test_split_name(full_name, expected):
    assert split_name(full_name) == expected


@pytest.mark.asyncio
async def test_connect_provisions_and_links(accounts, owner, n8n):
    result = await accounts.connect(owner)

    assert result == {"n8n_enabled": True, "n8n_user_id": "user-1", "already_connected": False}
    assert n8n.calls_to("find_or_create_user") == [
        ("find_or_create_user", "olena@example.com", "Olena", "Kovalenko Shevchenko")
    ]
    assert owner.n8n_enabled is True
    assert owner.n8n_user_id == "user-1"
    assert owner.n8n_api_key == "personal-key"
    assert owner.n8n_api_key_encrypted != "personal-key"


@pytest.mark.asyncio
async def test_connect_is_idempotent(accounts, owner, n8n):
    await accounts.connect(owner)
    n8n.calls.clear()

    result = await accounts.connect(owner)

    assert result["already_connected"] is True
    assert result["n8n_user_id"] == "user-1"
    assert n8n.calls == []


@pytest.mark.asyncio
async def test_status_of_connected_user_makes_no_engine_calls(accounts, owner, n8n):
    await accounts.connect(owner)
    n8n.calls.clear()

    assert await accounts.check_and_auto_connect(owner) == {"n8n_enabled": True, "auto_connected": False}
    assert n8n.calls == []


@pytest.mark.asyncio
async def test_status_auto_connects_existing_engine_user(accounts, owner, n8n):
    n8n.engine_users.append({"id": 31, "email": "olena@example.com"})

    result = await accounts.check_and_auto_connect(owner)

    assert result == {"n8n_enabled": True, "auto_connected": True, "n8n_user_id": "31"}
    assert owner.n8n_user_id == "31"
    assert owner.n8n_api_key == "admin-key"


@pytest.mark.asyncio
async def test_status_without_engine_user(accounts, owner):
    assert await accounts.check_and_auto_connect(owner) == {"n8n_enabled": False, "auto_connected": False}
    assert owner.n8n_enabled is False


@pytest.mark.asyncio
async def test_status_treats_lookup_failure_as_not_connected(accounts, owner, n8n):
    n8n.fail.add("find_user_by_email")

    assert await accounts.check_and_auto_connect(owner) == {"n8n_enabled": False, "auto_connected": False}


async def _stale_link(db_session, user):
    user.n8n_enabled = True
    user.n8n_user_id = "user-old"
    user.n8n_api_key_encrypted = "deadbeef:not-a-valid-ciphertext"
    await db_session.commit()


@pytest.mark.asyncio
async def test_connect_reprovisions_link_with_undecryptable_key(accounts, owner, n8n, db_session):
    await _stale_link(db_session, owner)

    result = await accounts.connect(owner)

    assert result["already_connected"] is False
    assert n8n.count("find_or_create_user") == 1
    assert owner.n8n_api_key == "personal-key"
    assert owner.n8n_connected is True


@pytest.mark.asyncio
async def test_status_relinks_when_stored_key_is_undecryptable(accounts, owner, n8n, db_session):
    await _stale_link(db_session, owner)
    n8n.engine_users.append({"id": "u-7", "email": "olena@example.com"})

    result = await accounts.check_and_auto_connect(owner)

    assert result == {"n8n_enabled": True, "auto_connected": True, "n8n_user_id": "u-7"}
    assert owner.n8n_api_key == "admin-key"


@pytest.mark.asyncio
async def test_status_reports_unusable_link_as_not_connected(accounts, owner, n8n, db_session):
    await _stale_link(db_session, owner)

    assert await accounts.check_and_auto_connect(owner) == {"n8n_enabled": False, "auto_connected": False}
    assert n8n.count("find_user_by_email") == 1
