from marketbot.db import InMemoryDocumentStore, get_path, set_path


def test_get_and_set_path():
    doc = {}
    set_path(doc, "data.location.area", "Noida")
    assert doc == {"data": {"location": {"area": "Noida"}}}
    assert get_path(doc, "data.location.area") == "Noida"
    assert get_path(doc, "data.missing.key") is None


def test_documents_are_copied():
    db = InMemoryDocumentStore()
    original = {"id": "a", "data": {"x": 1}}
    db.set("c", "a", original)
    original["data"]["x"] = 2

    fetched = db.get("c", "a")
    assert fetched["data"]["x"] == 1
    fetched["data"]["x"] = 3
    assert db.get("c", "a")["data"]["x"] == 1


def test_merge_set_keeps_other_keys():
    db = InMemoryDocumentStore()
    db.set("c", "a", {"id": "a", "mode": "idle", "language": "hi"})
    db.set("c", "a", {"mode": "posting"}, merge=True)
    assert db.get("c", "a") == {"id": "a", "mode": "posting", "language": "hi"}


def test_update_touches_only_given_paths():
    db = InMemoryDocumentStore()
    db.set("c", "a", {"id": "a", "data": {"housing": {"rent": 1}, "location": {"area": "X"}}})
    assert db.update("c", "a", {"data.housing.unitType": "2bhk"}) is True
    assert db.get("c", "a")["data"] == {"housing": {"rent": 1, "unitType": "2bhk"}, "location": {"area": "X"}}
    assert db.update("c", "missing", {"x": 1}) is False


def test_query_filters_orders_and_limits():
    db = InMemoryDocumentStore()
    db.set("c", "1", {"id": "1", "owner": "u", "n": 2})
    db.set("c", "2", {"id": "2", "owner": "u", "n": 5})
    db.set("c", "3", {"id": "3", "owner": "v", "n": 9})
    db.set("c", "4", {"id": "4", "owner": "u"})

    ids = [d["id"] for d in db.query("c", [("owner", "==", "u")], order_by="n", descending=True)]
    assert ids == ["2", "1", "4"]

    assert [d["id"] for d in db.query("c", [("n", ">=", 5)])] == ["2", "3"]
    assert len(db.query("c", limit=2)) == 2


def test_delete_where():
    db = InMemoryDocumentStore()
    db.set("c", "1", {"id": "1", "status": "draft"})
    db.set("c", "2", {"id": "2", "status": "active"})
    assert db.delete_where("c", [("status", "==", "draft")]) == 1
    assert db.get("c", "1") is None
    assert db.get("c", "2") is not None
