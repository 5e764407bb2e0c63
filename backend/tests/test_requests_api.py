import unittest
import uuid

from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from feedback_tracker.core.auth import CurrentUser, get_current_user
from feedback_tracker.core.dependencies import get_db
from feedback_tracker.main import app
from feedback_tracker.models.tracker import (
    Base,
    Customer,
    CustomerRequest,
    RequestComment,
    RequestHistory,
    RequestTagLink,
    Tag,
    User,
)


class RequestApiTests(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine)

        def override_get_db():
            db = self.SessionLocal()
            try:
                yield db
            finally:
                db.close()

        self.user = self._create_user("Hanako")
        self.current_user = CurrentUser(id=str(self.user.id), role="user", email=self.user.email)

        def override_get_current_user():
            return self.current_user

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_current_user] = override_get_current_user
        self.client = TestClient(app)

    def tearDown(self):
        self.client.close()
        app.dependency_overrides.clear()
        Base.metadata.drop_all(self.engine)
        self.engine.dispose()

    def _create_user(self, name: str) -> User:
        db = self.SessionLocal()
        user = User(name=name, email=f"{uuid.uuid4().hex}@example.com", password_hash="x", role="user")
        db.add(user)
        db.commit()
        db.refresh(user)
        db.close()
        return user

    def _create_customer(self, name: str, company: str = "Acme") -> Customer:
        db = self.SessionLocal()
        customer = Customer(name=name, company=company, email=f"{uuid.uuid4().hex}@example.com")
        db.add(customer)
        db.commit()
        db.refresh(customer)
        db.close()
        return customer

    def _create_tag(self, name: str, category: str = "functional_area") -> Tag:
        db = self.SessionLocal()
        tag = Tag(name=name, color="#ff0000", category=category)
        db.add(tag)
        db.commit()
        db.refresh(tag)
        db.close()
        return tag

    def _create_request(self, **overrides) -> dict:
        body = {"title": "Export to CSV", "content": "Customers want a CSV export."}
        body.update(overrides)
        resp = self.client.post("/api/requests", json=body)
        self.assertEqual(resp.status_code, 201, resp.text)
        return resp.json()

    def test_create_defaults_to_new_and_medium(self):
        data = self._create_request()
        self.assertEqual(data["status"], "new")
        self.assertEqual(data["priority"], "medium")
        self.assertEqual(data["history"], [])
        self.assertEqual(data["comments"], [])
        self.assertEqual(data["created_by"]["id"], str(self.user.id))
        self.assertEqual(data["created_by"]["name"], "Hanako")
        self.assertEqual(data["reporter"], "Hanako")

    def test_explicit_reporter_is_kept(self):
        data = self._create_request(reporter="Support desk")
        self.assertEqual(data["reporter"], "Support desk")

    def test_sequential_ids(self):
        ids = [self._create_request(title=f"Request {i}")["request_id"] for i in range(3)]
        self.assertEqual(ids, ["REQ-00001", "REQ-00002", "REQ-00003"])

    def test_create_and_fetch_populates_references(self):
        alice = self._create_customer("Alice", "Acme")
        bob = self._create_customer("Bob", "Globex")
        billing = self._create_tag("billing")
        created = self._create_request(customers=[str(alice.id), str(bob.id)], tags=[str(billing.id)])

        resp = self.client.get(f"/api/requests/{created['id']}")
        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual([c["name"] for c in data["customers"]], ["Alice", "Bob"])
        self.assertEqual(data["customers"][1]["company"], "Globex")
        self.assertEqual(data["customers"][0]["email"], alice.email)
        self.assertEqual(len(data["tags"]), 1)
        self.assertEqual(data["tags"][0]["name"], "billing")
        self.assertEqual(data["tags"][0]["color"], "#ff0000")
        self.assertEqual(data["tags"][0]["category"], "functional_area")

    def test_duplicate_references_are_collapsed(self):
        alice = self._create_customer("Alice")
        data = self._create_request(customers=[str(alice.id), str(alice.id)])
        self.assertEqual(len(data["customers"]), 1)

    def test_status_only_change_appends_single_history_entry(self):
        created = self._create_request(priority="high")
        resp = self.client.put(
            f"/api/requests/{created['id']}",
            json={"status": "planned", "title": created["title"], "priority": "high"},
        )
        self.assertEqual(resp.status_code, 200, resp.text)
        data = resp.json()
        self.assertEqual(data["status"], "planned")
        self.assertEqual(len(data["history"]), 1)
        entry = data["history"][0]
        self.assertEqual(entry["field"], "status")
        self.assertEqual(entry["old_value"], "new")
        self.assertEqual(entry["new_value"], "planned")
        self.assertEqual(entry["changed_by"]["id"], str(self.user.id))
        self.assertEqual(entry["changed_by"]["name"], "Hanako")

    def test_tags_always_recorded_even_when_unchanged(self):
        billing = self._create_tag("billing")
        created = self._create_request(tags=[str(billing.id)])
        resp = self.client.put(f"/api/requests/{created['id']}", json={"tags": [str(billing.id)]})
        self.assertEqual(resp.status_code, 200)
        history = resp.json()["history"]
        self.assertEqual([entry["field"] for entry in history], ["tags"])
        self.assertEqual(history[0]["old_value"], [str(billing.id)])
        self.assertEqual(history[0]["new_value"], [str(billing.id)])

    def test_multi_field_update_uses_fixed_order_and_one_timestamp(self):
        other = self._create_request(title="Parent")
        created = self._create_request()
        resp = self.client.put(
            f"/api/requests/{created['id']}",
            json={
                "custom_fields": {"plan": "pro"},
                "parent_request": other["id"],
                "priority": "urgent",
                "title": "Export to CSV and XLSX",
            },
        )
        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        fields = [entry["field"] for entry in data["history"]]
        self.assertEqual(fields, ["title", "priority", "parent_request", "custom_fields"])
        self.assertEqual(len({entry["changed_at"] for entry in data["history"]}), 1)
        self.assertEqual(data["parent_request"]["request_id"], other["request_id"])
        self.assertEqual(data["custom_fields"], {"plan": "pro"})

    def test_update_without_changes_still_sets_updated_by(self):
        created = self._create_request()
        editor = self._create_user("Jiro")
        self.current_user = CurrentUser(id=str(editor.id), role="user")
        resp = self.client.put(f"/api/requests/{created['id']}", json={"title": created["title"]})
        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual(data["history"], [])
        self.assertEqual(data["updated_by"]["name"], "Jiro")

    def test_null_scalar_in_update_is_rejected(self):
        created = self._create_request()
        resp = self.client.put(f"/api/requests/{created['id']}", json={"title": None})
        self.assertEqual(resp.status_code, 400)

    def test_deleted_tag_is_omitted_from_request(self):
        billing = self._create_tag("billing")
        ux = self._create_tag("ux")
        created = self._create_request(tags=[str(billing.id), str(ux.id)])

        resp = self.client.delete(f"/api/tags/{billing.id}")
        self.assertEqual(resp.status_code, 200)

        resp = self.client.get(f"/api/requests/{created['id']}")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual([t["name"] for t in resp.json()["tags"]], ["ux"])

        db = self.SessionLocal()
        links = db.execute(select(RequestTagLink).where(RequestTagLink.tag_id == billing.id)).scalars().all()
        self.assertEqual(len(links), 1)
        db.close()

    def test_dangling_related_request_is_skipped(self):
        related = self._create_request(title="Related")
        created = self._create_request(related_requests=[related["id"]])
        self.assertEqual(self.client.delete(f"/api/requests/{related['id']}").status_code, 200)

        resp = self.client.get(f"/api/requests/{created['id']}")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["related_requests"], [])

    def test_get_unknown_request_returns_404(self):
        resp = self.client.get(f"/api/requests/{uuid.uuid4()}")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["detail"], "Request not found")
        self.assertEqual(self.client.get("/api/requests/not-a-uuid").status_code, 404)

    def test_update_unknown_request_returns_404(self):
        resp = self.client.put(f"/api/requests/{uuid.uuid4()}", json={"status": "done"})
        self.assertEqual(resp.status_code, 404)

    def test_invalid_body_returns_400(self):
        resp = self.client.post("/api/requests", json={"content": "no title"})
        self.assertEqual(resp.status_code, 400)
        self.assertIn("title", resp.json()["detail"])

        resp = self.client.post("/api/requests", json={"title": "x", "content": "y", "status": "archived"})
        self.assertEqual(resp.status_code, 400)

    def test_add_comment(self):
        created = self._create_request()
        resp = self.client.post(
            f"/api/requests/{created['id']}/comments",
            json={"content": "Seen this twice this week", "attachments": ["/uploads/a.png"]},
        )
        self.assertEqual(resp.status_code, 201)
        data = resp.json()
        self.assertEqual(len(data["comments"]), 1)
        self.assertEqual(data["comments"][0]["author"]["name"], "Hanako")
        self.assertEqual(data["comments"][0]["attachments"], ["/uploads/a.png"])
        self.assertEqual(data["comment_count"], 1)

        resp = self.client.post(f"/api/requests/{created['id']}/comments", json={"content": ""})
        self.assertEqual(resp.status_code, 400)

    def test_delete_removes_owned_rows(self):
        created = self._create_request()
        self.client.post(f"/api/requests/{created['id']}/comments", json={"content": "first"})
        self.client.put(f"/api/requests/{created['id']}", json={"status": "done"})

        resp = self.client.delete(f"/api/requests/{created['id']}")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["message"], "Request removed")

        db = self.SessionLocal()
        self.assertEqual(db.execute(select(CustomerRequest)).scalars().all(), [])
        self.assertEqual(db.execute(select(RequestComment)).scalars().all(), [])
        self.assertEqual(db.execute(select(RequestHistory)).scalars().all(), [])
        db.close()

        self.assertEqual(self.client.get(f"/api/requests/{created['id']}").status_code, 404)

    def test_list_filters_and_pagination(self):
        alice = self._create_customer("Alice")
        for i in range(12):
            self._create_request(title=f"Item {i}", customers=[str(alice.id)] if i % 2 == 0 else [])
        self._create_request(title="Dark mode", content="Please add a dark theme", status="planned")

        resp = self.client.get("/api/requests")
        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual(data["total"], 13)
        self.assertEqual(data["page"], 1)
        self.assertEqual(data["pages"], 2)
        self.assertEqual(len(data["requests"]), 10)
        self.assertEqual(data["requests"][0]["title"], "Dark mode")

        data = self.client.get("/api/requests", params={"page": 2}).json()
        self.assertEqual(len(data["requests"]), 3)

        data = self.client.get("/api/requests", params={"status": "planned"}).json()
        self.assertEqual([r["title"] for r in data["requests"]], ["Dark mode"])

        data = self.client.get("/api/requests", params={"customer": str(alice.id), "limit": 50}).json()
        self.assertEqual(data["total"], 6)

        data = self.client.get("/api/requests", params={"search": "THEME"}).json()
        self.assertEqual(data["total"], 1)

    def test_list_sorting(self):
        self._create_request(title="b", priority="urgent")
        self._create_request(title="a", priority="low")
        self._create_request(title="c", priority="medium")

        data = self.client.get("/api/requests", params={"sort": "title", "order": "asc"}).json()
        self.assertEqual([r["title"] for r in data["requests"]], ["a", "b", "c"])

        data = self.client.get("/api/requests", params={"sort": "priority", "order": "desc"}).json()
        self.assertEqual([r["priority"] for r in data["requests"]], ["urgent", "medium", "low"])

        data = self.client.get("/api/requests", params={"sort": "requestId", "order": "asc"}).json()
        self.assertEqual([r["request_id"] for r in data["requests"]], ["REQ-00001", "REQ-00002", "REQ-00003"])

        resp = self.client.get("/api/requests", params={"sort": "color"})
        self.assertEqual(resp.status_code, 400)

    def test_similar_requests(self):
        self._create_request(title="CSV export broken", content="Export fails")
        self._create_request(title="Login slow", content="The csv upload is slow")
        self._create_request(title="Unrelated", content="Nothing here")

        resp = self.client.post("/api/requests/similar", json={"content": "csv"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual({r["title"] for r in resp.json()}, {"CSV export broken", "Login slow"})

        resp = self.client.post("/api/requests/similar", json={"title": "login"})
        self.assertEqual([r["title"] for r in resp.json()], ["Login slow"])

        resp = self.client.post("/api/requests/similar", json={})
        self.assertEqual(resp.status_code, 400)

    def test_similar_requests_caps_results(self):
        for i in range(7):
            self._create_request(title=f"Search issue {i}")
        resp = self.client.post("/api/requests/similar", json={"title": "search"})
        self.assertEqual(len(resp.json()), 5)
