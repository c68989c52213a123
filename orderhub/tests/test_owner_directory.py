import pytest

from orderhub.app.services import StoreOwnerDirectory
from orderhub.app.services.owners import UNKNOWN_OWNER_NAME, owner_from_record
from orderhub.tests._stores import seed_owner


def test_display_name_precedence():
    assert owner_from_record("1", {"displayName": "Amina", "name": "A"}).display_name == "Amina"
    assert owner_from_record("1", {"name": "Brahim"}).display_name == "Brahim"
    assert owner_from_record("1", {"email": "c@example.com"}).display_name == "c@example.com"
    assert owner_from_record("1", {}).display_name == UNKNOWN_OWNER_NAME


def test_phone_precedence():
    owner = owner_from_record("1", {"phoneNumber": "0600", "phone": "0700"})
    assert owner.phone == "0600"
    assert owner_from_record("1", {"phone": "0700"}).phone == "0700"


@pytest.mark.anyio
async def test_list_and_get_owners(store):
    await seed_owner(store, "A", email="a@example.com")
    await seed_owner(store, "B")
    directory = StoreOwnerDirectory(store)

    owners = await directory.list_owners()

    assert sorted(owner.id for owner in owners) == ["A", "B"]
    assert (await directory.get_owner("A")).email == "a@example.com"
    assert await directory.get_owner("ghost") is None
