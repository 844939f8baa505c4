"""
Tests for the site lock that puts HTTP Basic Auth in front of the site.
"""
import base64

import pytest
from fastapi.testclient import TestClient

from heat.config import Settings
from heat.main import create_app


def basic(credentials):
    return {"Authorization": "Basic " + base64.b64encode(credentials.encode()).decode()}


def locked_client(engine, environment="production", site_password="letmein"):
    settings = Settings(
        _env_file=None,
        environment=environment,
        database_url="sqlite://",
        cookie_secure=False,
        site_password=site_password,
    )
    return TestClient(create_app(settings, engine=engine))


class TestSiteLock:

    def test_missing_header_challenges(self, engine):
        with locked_client(engine) as client:
            response = client.get("/health")
        assert response.status_code == 401
        assert response.text == "Authentication required"
        assert response.headers["www-authenticate"] == 'Basic realm="Choose the Heat - Testing Access"'
        assert response.headers["content-type"].startswith("text/plain")

    def test_non_basic_scheme_challenges(self, engine):
        with locked_client(engine) as client:
            response = client.get("/health", headers={"Authorization": "Bearer token"})
        assert response.status_code == 401
        assert response.text == "Authentication required"

    @pytest.mark.parametrize("headers", [
        basic("anyone:wrong"),
        basic("no-colon-at-all"),
        {"Authorization": "Basic !!!not-base64!!!"},
    ])
    def test_bad_credentials(self, engine, headers):
        with locked_client(engine) as client:
            response = client.get("/health", headers=headers)
        assert response.status_code == 401
        assert response.text == "Invalid credentials"
        assert "www-authenticate" in response.headers

    @pytest.mark.parametrize("username", ["", "tester", "someone-else"])
    def test_any_username_with_right_password(self, engine, username):
        with locked_client(engine) as client:
            response = client.get("/health", headers=basic(f"{username}:letmein"))
        assert response.status_code == 200

    def test_password_may_contain_colons(self, engine):
        with locked_client(engine, site_password="pass:with:colons") as client:
            response = client.get("/health", headers=basic("tester:pass:with:colons"))
        assert response.status_code == 200

    def test_lock_applies_to_api_routes(self, engine):
        with locked_client(engine) as client:
            assert client.get("/api/tropes").status_code == 401
            assert client.get("/api/tropes", headers=basic("x:letmein")).status_code == 200

    def test_development_skips_lock(self, engine):
        with locked_client(engine, environment="development") as client:
            assert client.get("/health").status_code == 200

    def test_blank_password_disables_lock(self, engine):
        with locked_client(engine, site_password="   ") as client:
            assert client.get("/health").status_code == 200

    def test_unlocked_by_default(self, client):
        assert client.get("/health").json()["status"] == "healthy"
