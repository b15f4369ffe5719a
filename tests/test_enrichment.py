from sqlalchemy.exc import OperationalError

from trackconn import crud, enrichment, models
from trackconn.schemas import ContactCreate, TagCreate


def add_entry(db_session, user, contact_id=None, **fields):
    entry = crud.add_log_entry(db_session, user.id, fields, contact_id)
    db_session.commit()
    db_session.refresh(entry)
    return entry


def add_media(db_session, user, entry, name):
    item = {
        "url": f"https://cdn.example.com/{name}",
        "storage_key": f"{user.id}/{name}",
        "file_type": "image/png",
        "file_size": 10,
    }
    return crud.create_media_items(db_session, user.id, [item], entry.id)[0]


def test_entry_carries_tags_media_and_contact(db_session, user):
    contact = crud.create_contact(
        db_session, ContactCreate(name="Linus", email="linus@example.com"), user.id
    )
    entry = add_entry(db_session, user, contact_id=contact.id, name="Linus")
    tag = crud.create_tag(db_session, TagCreate(name="kernel"), user.id)
    crud.add_tag_to_log_entry(db_session, entry.id, tag.id)
    first = add_media(db_session, user, entry, "first.png")
    second = add_media(db_session, user, entry, "second.png")

    view = enrichment.enrich_log_entry(db_session, entry)

    assert [t.name for t in view.tags] == ["kernel"]
    assert [m.id for m in view.media] == [first.id, second.id]
    assert view.contact.id == contact.id


def test_enrichment_is_repeatable(db_session, user):
    entry = add_entry(db_session, user, name="Same")
    tag = crud.create_tag(db_session, TagCreate(name="again"), user.id)
    crud.add_tag_to_log_entry(db_session, entry.id, tag.id)

    first = enrichment.enrich_log_entry(db_session, entry)
    second = enrichment.enrich_log_entry(db_session, entry)

    assert first.model_dump() == second.model_dump()


def test_deleted_contact_resolves_to_none(db_session, user):
    contact = crud.create_contact(
        db_session, ContactCreate(name="Gone", email="gone@example.com"), user.id
    )
    entry = add_entry(db_session, user, contact_id=contact.id, email="gone@example.com")
    crud.delete_contact(db_session, contact)

    view = enrichment.enrich_log_entry(db_session, entry)

    assert view.contact_id == contact.id
    assert view.contact is None


def test_link_to_missing_tag_is_skipped(db_session, user):
    entry = add_entry(db_session, user, name="Tagged")
    kept = crud.create_tag(db_session, TagCreate(name="kept"), user.id)
    db_session.add(models.LogEntryTag(log_entry_id=entry.id, tag_id=kept.id))
    db_session.add(models.LogEntryTag(log_entry_id=entry.id, tag_id=987654))
    db_session.commit()

    view = enrichment.enrich_log_entry(db_session, entry)

    assert [t.id for t in view.tags] == [kept.id]


def test_failed_relation_degrades_to_empty(db_session, user, monkeypatch):
    entry = add_entry(db_session, user, name="Partial")
    tag = crud.create_tag(db_session, TagCreate(name="still-here"), user.id)
    crud.add_tag_to_log_entry(db_session, entry.id, tag.id)

    def broken_media(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection reset"))

    monkeypatch.setattr(crud, "get_media_for_log_entry", broken_media)

    view = enrichment.enrich_log_entry(db_session, entry)

    assert view.id == entry.id
    assert view.media == []
    assert [t.name for t in view.tags] == ["still-here"]


def test_contact_lists_entries_newest_first(db_session, user):
    contact = crud.create_contact(
        db_session, ContactCreate(name="Often Met", email="often@example.com"), user.id
    )
    older = add_entry(db_session, user, contact_id=contact.id, notes="first")
    newer = add_entry(db_session, user, contact_id=contact.id, notes="second")

    view = enrichment.enrich_contact(db_session, contact)

    assert [e.id for e in view.log_entries] == [newer.id, older.id]
    assert all(e.contact is None for e in view.log_entries)
