import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from portfolio.app import create_app, prepare_backends
from portfolio.config import DEFAULT_JWT_SECRET, Settings, get_settings
from portfolio.dependencies import get_db_client, get_storage_client
from portfolio.projects import ProjectService
from portfolio.tests.support import (
    ADMIN_PASSWORD,
    PNG_BYTES,
    auth_headers,
    create_admin,
    login,
    reset_backends,
)


class BackendApiTests(unittest.TestCase):
    def setUp(self):
        self.client = TestClient(create_app())
        reset_backends()
        create_admin()
        settings = get_settings()
        self.api = settings.api_prefix
        self.admin_api = settings.admin_api_prefix

    def _token(self) -> str:
        response = login(self.client)
        self.assertEqual(response.status_code, 200)
        return response.json()["token"]

    def _create_project(self, token, title="Woven study", category="textile"):
        return self.client.post(
            f"{self.api}/projects",
            data={"title": title, "category": category, "description": "Wool on linen"},
            files={"image": ("study.png", PNG_BYTES, "image/png")},
            headers=auth_headers(token),
        )

    def test_health(self):
        response = self.client.get(f"{self.api}/health")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "online")
        self.assertGreaterEqual(body["uptime"], 0)
        self.assertEqual(self.client.get(f"{self.admin_api}/health").status_code, 200)

    def test_index_lists_public_endpoints_only(self):
        response = self.client.get(self.api)
        self.assertEqual(response.status_code, 200)
        self.assertIn("projects", response.json()["endpoints"])
        self.assertNotIn(get_settings().admin_secret_path, response.text)

    def test_unknown_route(self):
        response = self.client.get(f"{self.api}/nope")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(
            response.json(), {"success": False, "message": "Route not found"}
        )

    def test_login_and_verify(self):
        response = login(self.client)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["user"]["username"], "curator")
        self.assertNotIn("password_hash", body["user"])

        verify = self.client.get(
            f"{self.admin_api}/verify", headers=auth_headers(body["token"])
        )
        self.assertEqual(verify.status_code, 200)
        self.assertEqual(verify.json()["user"]["id"], body["user"]["id"])

    def test_login_failures(self):
        wrong = login(self.client, password="not the password")
        self.assertEqual(wrong.status_code, 401)
        self.assertEqual(wrong.json()["message"], "Invalid credentials")

        missing = self.client.post(f"{self.admin_api}/login", json={"username": "x"})
        self.assertEqual(missing.status_code, 400)
        self.assertEqual(missing.json()["message"], "Validation failed")
        self.assertEqual(missing.json()["errors"][0]["field"], "password")

    def test_verify_without_token(self):
        response = self.client.get(f"{self.admin_api}/verify")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "NO_TOKEN")

    def test_second_login_overrides_first(self):
        first = self._token()
        second = self._token()

        response = self.client.get(
            f"{self.admin_api}/verify", headers=auth_headers(first)
        )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "SESSION_OVERRIDDEN")
        self.assertEqual(
            self.client.get(
                f"{self.admin_api}/verify", headers=auth_headers(second)
            ).status_code,
            200,
        )

    def test_logout(self):
        token = self._token()
        response = self.client.post(
            f"{self.admin_api}/logout", headers=auth_headers(token)
        )
        self.assertEqual(response.status_code, 200)
        again = self.client.get(f"{self.admin_api}/verify", headers=auth_headers(token))
        self.assertEqual(again.status_code, 401)
        self.assertEqual(
            self.client.post(f"{self.admin_api}/logout").status_code, 200
        )

    def test_change_password(self):
        token = self._token()
        response = self.client.put(
            f"{self.admin_api}/change-password",
            json={
                "current_password": ADMIN_PASSWORD,
                "new_password": "fresh and long password",
            },
            headers=auth_headers(token),
        )
        self.assertEqual(response.status_code, 200)
        stale = self.client.get(f"{self.admin_api}/verify", headers=auth_headers(token))
        self.assertEqual(stale.json()["code"], "TOKEN_VERSION_MISMATCH")
        self.assertEqual(
            login(self.client, password="fresh and long password").status_code, 200
        )

    def test_project_crud(self):
        token = self._token()
        created = self._create_project(token)
        self.assertEqual(created.status_code, 201)
        project = created.json()
        self.assertTrue(project["image"].endswith(".png"))
        storage = get_storage_client()
        self.assertIn(project["image_public_id"], storage.stored_objects)

        listing = self.client.get(f"{self.api}/projects").json()
        self.assertEqual([p["id"] for p in listing], [project["id"]])
        self.assertEqual(
            self.client.get(f"{self.api}/projects?category=crafts").json(), []
        )
        self.assertEqual(
            len(self.client.get(f"{self.api}/projects?category=all").json()), 1
        )

        updated = self.client.put(
            f"{self.api}/projects/{project['id']}",
            data={"title": "Woven study II", "description": ""},
            headers=auth_headers(token),
        )
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.json()["title"], "Woven study II")
        self.assertEqual(updated.json()["description"], "Wool on linen")

        deleted = self.client.delete(
            f"{self.api}/projects/{project['id']}", headers=auth_headers(token)
        )
        self.assertEqual(deleted.status_code, 200)
        self.assertNotIn(project["image_public_id"], storage.stored_objects)
        missing = self.client.get(f"{self.api}/projects/{project['id']}")
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.json()["message"], "Project not found")

    def test_project_writes_require_auth(self):
        response = self.client.post(
            f"{self.api}/projects",
            data={"title": "t", "category": "textile", "description": "d"},
        )
        self.assertEqual(response.status_code, 401)

    def test_create_project_validation(self):
        token = self._token()
        no_image = self.client.post(
            f"{self.api}/projects",
            data={"title": "t", "category": "textile", "description": "d"},
            headers=auth_headers(token),
        )
        self.assertEqual(no_image.status_code, 400)
        self.assertEqual(no_image.json()["message"], "Please upload an image")

        bad_category = self._create_project(token, category="sculpture")
        self.assertEqual(bad_category.status_code, 400)

    def test_reorder_projects(self):
        token = self._token()
        first = self._create_project(token, title="first").json()
        second = self._create_project(token, title="second").json()

        response = self.client.put(
            f"{self.api}/projects/order",
            json={"projects": [{"id": second["id"]}, {"id": first["id"]}]},
            headers=auth_headers(token),
        )
        self.assertEqual(response.status_code, 200)
        titles = [p["title"] for p in self.client.get(f"{self.api}/projects").json()]
        self.assertEqual(titles, ["second", "first"])

        bad = self.client.put(
            f"{self.api}/projects/order",
            json={"projects": "nope"},
            headers=auth_headers(token),
        )
        self.assertEqual(bad.status_code, 400)
        self.assertEqual(bad.json()["message"], "Invalid data format")

    def test_contact_and_messages(self):
        sent = self.client.post(
            f"{self.api}/contact",
            json={"name": "Ada", "email": "ada@example.com", "message": "Hello"},
        )
        self.assertEqual(sent.status_code, 201)
        message_id = sent.json()["data"]["id"]

        invalid = self.client.post(
            f"{self.api}/contact",
            json={"name": "Ada", "email": "not-an-email", "message": "Hello"},
        )
        self.assertEqual(invalid.status_code, 400)

        self.assertEqual(self.client.get(f"{self.api}/messages").status_code, 401)

        headers = auth_headers(self._token())
        listing = self.client.get(f"{self.api}/messages", headers=headers).json()
        self.assertEqual((listing["count"], listing["unread"]), (1, 1))

        read = self.client.put(
            f"{self.api}/messages/{message_id}/read", headers=headers
        )
        self.assertTrue(read.json()["data"]["read"])
        listing = self.client.get(f"{self.api}/messages", headers=headers).json()
        self.assertEqual(listing["unread"], 0)

        self.assertEqual(
            self.client.delete(
                f"{self.api}/messages/{message_id}", headers=headers
            ).status_code,
            200,
        )
        gone = self.client.get(f"{self.api}/messages/{message_id}", headers=headers)
        self.assertEqual(gone.status_code, 404)

    def test_session_endpoints(self):
        token = self._token()
        headers = auth_headers(token)

        sessions = self.client.get(f"{self.api}/sessions", headers=headers).json()
        self.assertEqual(sessions["count"], 1)
        self.assertTrue(sessions["sessions"][0]["is_current_session"])
        current_id = sessions["sessions"][0]["id"]

        own = self.client.delete(f"{self.api}/sessions/{current_id}", headers=headers)
        self.assertEqual(own.status_code, 400)

        stats = self.client.get(f"{self.api}/sessions/stats", headers=headers).json()
        self.assertEqual(stats["stats"]["active"], 1)

        others = self.client.post(
            f"{self.api}/sessions/terminate-others", headers=headers
        )
        self.assertEqual(others.status_code, 200)
        self.assertEqual(
            self.client.post(f"{self.api}/sessions/cleanup", headers=headers).status_code,
            200,
        )

        everything = self.client.post(
            f"{self.api}/sessions/terminate-all", headers=headers
        )
        self.assertEqual(everything.status_code, 200)
        after = self.client.get(f"{self.api}/sessions", headers=headers)
        self.assertEqual(after.json()["code"], "TOKEN_VERSION_MISMATCH")

    def test_forwarded_for_ignored_unless_trusted(self):
        headers = {"X-Forwarded-For": "203.0.113.9, 10.0.0.1"}
        payload = {"username": "curator", "password": ADMIN_PASSWORD}
        db = get_db_client()

        self.client.post(f"{self.admin_api}/login", json=payload, headers=headers)
        self.assertEqual(db.get_user_by_username("curator").last_login_ip, "testclient")

        with patch(
            "portfolio.routes.get_settings",
            return_value=Settings(trust_proxy_headers=True),
        ):
            self.client.post(f"{self.admin_api}/login", json=payload, headers=headers)
        self.assertEqual(
            db.get_user_by_username("curator").last_login_ip, "203.0.113.9"
        )

    def test_unexpected_error_is_logged_and_hidden(self):
        client = TestClient(create_app(), raise_server_exceptions=False)
        with patch.object(
            ProjectService, "list_projects", side_effect=RuntimeError("disk on fire")
        ):
            with self.assertLogs("portfolio.app", level="ERROR") as logs:
                response = client.get(f"{self.api}/projects")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(
            response.json(), {"success": False, "message": "Something went wrong!"}
        )
        self.assertIn("/projects", logs.output[0])


class StartupTests(unittest.TestCase):
    def setUp(self):
        reset_backends()
        create_admin()
        self.admin_api = get_settings().admin_api_prefix

    def _settings(self, **overrides):
        values = {
            "database_url": None,
            "revoke_sessions_on_startup": True,
            "admin_username": None,
            "admin_password": None,
        }
        values.update(overrides)
        return Settings(**values)

    def _start(self, settings):
        """Run the app's startup and shutdown once with the given settings."""
        with patch("portfolio.app.get_settings", return_value=settings):
            with TestClient(create_app()) as client:
                client.get(f"{settings.api_prefix}/health")

    def test_startup_revokes_existing_tokens(self):
        client = TestClient(create_app())
        token = login(client).json()["token"]

        with patch("portfolio.app.get_settings", return_value=self._settings()):
            with TestClient(create_app()) as started:
                response = started.get(
                    f"{self.admin_api}/verify", headers=auth_headers(token)
                )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "TOKEN_VERSION_MISMATCH")

    def test_tokens_survive_startup_when_revocation_disabled(self):
        client = TestClient(create_app())
        token = login(client).json()["token"]

        settings = self._settings(revoke_sessions_on_startup=False)
        with patch("portfolio.app.get_settings", return_value=settings):
            with TestClient(create_app()) as started:
                response = started.get(
                    f"{self.admin_api}/verify", headers=auth_headers(token)
                )
        self.assertEqual(response.status_code, 200)

    def test_token_version_bumped_only_when_revoking(self):
        db = get_db_client()
        self._start(self._settings(revoke_sessions_on_startup=False))
        self.assertEqual(db.get_user_by_username("curator").token_version, 0)
        self._start(self._settings())
        self.assertEqual(db.get_user_by_username("curator").token_version, 1)

    def test_bootstrap_admin_created_once(self):
        settings = self._settings(
            revoke_sessions_on_startup=False,
            admin_username="boss",
            admin_password="boss password 123",
        )
        self._start(settings)
        self._start(settings)

        db = get_db_client()
        bosses = [u for u in db.users.values() if u.username == "boss"]
        self.assertEqual(len(bosses), 1)
        self.assertEqual(bosses[0].token_version, 0)
        client = TestClient(create_app())
        self.assertEqual(
            login(client, username="boss", password="boss password 123").status_code,
            200,
        )

    def test_default_secret_refused_with_real_database(self):
        settings = self._settings(
            database_url="postgresql+psycopg://db/portfolio",
            jwt_secret=DEFAULT_JWT_SECRET,
        )
        with self.assertRaises(RuntimeError):
            prepare_backends(settings)


if __name__ == "__main__":
    unittest.main()
