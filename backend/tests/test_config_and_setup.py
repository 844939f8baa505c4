"""
Tests for settings parsing and the database bootstrap helpers.
"""
from heat.config import Settings
from heat.models import StoryStatus, TemplateStatus, Trope, UserRole, UserStory
from heat.utils.preferences import TROPE_LABELS

from init_database import ensure_admin, seed_tropes


class TestSettings:

    def test_cors_origins_forms(self):
        assert Settings(_env_file=None, cors_origins="*").cors_origins == ["*"]
        assert Settings(_env_file=None, cors_origins="https://a.test, https://b.test").cors_origins == [
            "https://a.test", "https://b.test"
        ]
        assert Settings(_env_file=None, cors_origins='["https://c.test"]').cors_origins == ["https://c.test"]

    def test_secure_cookies_follow_environment(self):
        assert Settings(_env_file=None, environment="production").secure_cookies is True
        assert Settings(_env_file=None, environment="development").secure_cookies is False
        assert Settings(_env_file=None, environment="production", cookie_secure=False).secure_cookies is False

    def test_environment_from_env(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setenv("SITE_PASSWORD", "hunter2")
        settings = Settings(_env_file=None)
        assert settings.is_production
        assert settings.site_password == "hunter2"


class TestBootstrap:

    def test_seed_tropes_is_idempotent(self, db):
        assert seed_tropes(db) == len(TROPE_LABELS)
        assert seed_tropes(db) == 0
        assert db.query(Trope).count() == len(TROPE_LABELS)

    def test_ensure_admin_creates_once(self, db, settings):
        admin = ensure_admin(db, settings)
        assert admin.role == UserRole.ADMIN
        assert admin.email == settings.admin_email

        again = ensure_admin(db, settings)
        assert again.id == admin.id


class TestModelRepr:

    def test_enums_render_as_their_values(self, db, make_user, make_template):
        user = make_user(UserRole.EDITOR)
        template = make_template(status=TemplateStatus.DRAFT)
        story = UserStory(user_id=user.id, template_id=template.id, status=StoryStatus.IN_PROGRESS)

        assert "role='editor'" in repr(user)
        assert "status='draft'" in repr(template)
        assert "status='in-progress'" in repr(story)
