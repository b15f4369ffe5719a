from fastapi import status
from sqlalchemy.exc import OperationalError

from trackconn import crud
from trackconn.schemas import TagCreate

from conftest import login


def test_create_entry_links_new_contact(client, auth_headers):
    response = client.post(
        "/log-entries/",
        json={
            "name": "Margaret Hamilton",
            "email": "margaret@example.com",
            "where_met": "Apollo reunion",
            "notes": "Talked about error recovery",
        },
        headers=auth_headers,
    )
    assert response.status_code == status.HTTP_201_CREATED
    entry = response.json()
    assert entry["contact_id"] is not None
    assert entry["contact"]["email"] == "margaret@example.com"
    assert entry["tags"] == [] and entry["media"] == []

    contacts = client.get("/contacts/", headers=auth_headers).json()
    assert [c["id"] for c in contacts] == [entry["contact_id"]]


def test_create_entry_with_tags(client, db_session, user, auth_headers):
    tag = crud.create_tag(db_session, TagCreate(name="investor"), user.id)

    response = client.post(
        "/log-entries/",
        json={"name": "Val", "tag_ids": [tag.id, tag.id]},
        headers=auth_headers,
    )

    assert response.status_code == status.HTTP_201_CREATED
    assert [t["name"] for t in response.json()["tags"]] == ["investor"]


def test_create_entry_with_foreign_contact_is_rejected(
    client, db_session, other_user, auth_headers
):
    foreign = client.post(
        "/contacts/",
        json={"name": "Theirs"},
        headers={"Authorization": f"Bearer {login(client, other_user.email)}"},
    ).json()

    response = client.post(
        "/log-entries/",
        json={"name": "Mine", "contact_id": foreign["id"]},
        headers=auth_headers,
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_get_update_and_delete_entry(client, auth_headers):
    created = client.post(
        "/log-entries/",
        json={"notes": "anonymous chat"},
        headers=auth_headers,
    ).json()
    entry_id = created["id"]
    assert created["contact_id"] is None

    fetched = client.get(f"/log-entries/{entry_id}", headers=auth_headers)
    assert fetched.status_code == status.HTTP_200_OK
    assert fetched.json()["notes"] == "anonymous chat"

    updated = client.put(
        f"/log-entries/{entry_id}",
        json={"notes": "follow up next week"},
        headers=auth_headers,
    )
    assert updated.status_code == status.HTTP_200_OK
    assert updated.json()["notes"] == "follow up next week"

    deleted = client.delete(f"/log-entries/{entry_id}", headers=auth_headers)
    assert deleted.json() == {"ok": True}
    missing = client.get(f"/log-entries/{entry_id}", headers=auth_headers)
    assert missing.status_code == status.HTTP_404_NOT_FOUND


def test_entries_of_other_users_are_hidden(client, other_user, auth_headers):
    their_headers = {"Authorization": f"Bearer {login(client, other_user.email)}"}
    theirs = client.post(
        "/log-entries/", json={"notes": "private"}, headers=their_headers
    ).json()

    response = client.get(f"/log-entries/{theirs['id']}", headers=auth_headers)
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert client.get("/log-entries/", headers=auth_headers).json() == []


def test_list_is_oldest_first(client, auth_headers):
    first = client.post(
        "/log-entries/",
        json={"notes": "one"},
        headers=auth_headers,
    ).json()
    second = client.post(
        "/log-entries/",
        json={"notes": "two"},
        headers=auth_headers,
    ).json()

    listed = client.get("/log-entries/", headers=auth_headers).json()
    assert [e["id"] for e in listed] == [first["id"], second["id"]]


def test_favorites(client, auth_headers):
    entry = client.post(
        "/log-entries/",
        json={"notes": "star me"},
        headers=auth_headers,
    ).json()
    client.post("/log-entries/", json={"notes": "plain"}, headers=auth_headers)

    response = client.put(
        f"/log-entries/{entry['id']}/favorite",
        json={"is_favorite": True},
        headers=auth_headers,
    )
    assert response.json()["is_favorite"] is True

    favorites = client.get("/log-entries/favorites", headers=auth_headers).json()
    assert [e["id"] for e in favorites] == [entry["id"]]


def test_search(client, auth_headers):
    client.post(
        "/log-entries/",
        json={"name": "Katherine", "company": "NASA Langley"},
        headers=auth_headers,
    )
    client.post("/log-entries/", json={"name": "Dorothy"}, headers=auth_headers)

    found = client.get("/log-entries/search?q=langley", headers=auth_headers).json()
    assert [e["name"] for e in found] == ["Katherine"]

    empty = client.get("/log-entries/search?q=", headers=auth_headers)
    assert empty.status_code == status.HTTP_400_BAD_REQUEST


def test_tagging_twice_keeps_one_link(client, db_session, user, auth_headers):
    tag = crud.create_tag(db_session, TagCreate(name="hiring"), user.id)
    entry = client.post(
        "/log-entries/",
        json={"notes": "tag me"},
        headers=auth_headers,
    ).json()

    client.post(f"/log-entries/{entry['id']}/tags/{tag.id}", headers=auth_headers)
    again = client.post(
        f"/log-entries/{entry['id']}/tags/{tag.id}", headers=auth_headers
    )
    assert again.status_code == status.HTTP_200_OK
    assert [t["id"] for t in again.json()["tags"]] == [tag.id]

    removed = client.delete(
        f"/log-entries/{entry['id']}/tags/{tag.id}", headers=auth_headers
    )
    assert removed.json()["tags"] == []


def test_update_replaces_tags(client, db_session, user, auth_headers):
    old = crud.create_tag(db_session, TagCreate(name="old"), user.id)
    new = crud.create_tag(db_session, TagCreate(name="new"), user.id)
    entry = client.post(
        "/log-entries/",
        json={"notes": "retag", "tag_ids": [old.id]},
        headers=auth_headers,
    ).json()

    updated = client.put(
        f"/log-entries/{entry['id']}", json={"tag_ids": [new.id]}, headers=auth_headers
    ).json()

    assert [t["id"] for t in updated["tags"]] == [new.id]


def test_store_failure_returns_generic_error(client, auth_headers, monkeypatch):
    def broken(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(crud, "get_favorite_log_entries", broken)

    response = client.get("/log-entries/favorites", headers=auth_headers)
    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json() == {"detail": "Operation failed"}
