"""
Shared fixtures: an app wired to an in-memory SQLite database, a fake scene
generator, and factories for users, tropes and published templates.
"""
import os
import sys

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from heat.config import Settings
from heat.database import create_db_engine
from heat.main import create_app
from heat.models import ChoicePoint, NovelTemplate, TemplateStatus, Trope, UserRole
from heat.services.scene_generation import GeneratedScene, SceneGenerator
from heat.services.session_manager import create_session
from heat.services.user_service import create_user_with_password
from heat.utils.preferences import TROPE_LABELS

PASSWORD = "Password123"


class FakeSceneGenerator(SceneGenerator):
    """Writes a predictable scene and remembers every request it got"""

    def __init__(self):
        self.requests = []

    def generate(self, request):
        self.requests.append(request)
        n = request.scene_number
        return GeneratedScene(
            content=f"Scene {n} begins with a slow glance across the room",
            metadata={"emotional_beat": f"beat-{n}"},
            summary=f"Summary of scene {n}",
        )


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        environment="test",
        database_url="sqlite://",
        cookie_secure=False,
        site_password=None,
    )


@pytest.fixture
def engine(settings):
    engine = create_db_engine(settings.database_url)
    yield engine
    engine.dispose()


@pytest.fixture
def scene_generator():
    return FakeSceneGenerator()


@pytest.fixture
def app(settings, engine, scene_generator):
    return create_app(settings, engine=engine, scene_generator=scene_generator)


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def db(app):
    session = app.state.session_factory()
    yield session
    session.close()


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make_user(role=UserRole.USER, email=None, password=PASSWORD, name=None):
        counter["n"] += 1
        email = email or f"{role.value}{counter['n']}@example.com"
        return create_user_with_password(db, email, name or f"Test {role.value}", password, role=role)

    return _make_user


@pytest.fixture
def auth_headers(db):
    """Cookie header for a fresh session of ``user``"""
    def _auth_headers(user):
        session = create_session(db, user.id)
        return {"Cookie": f"session_id={session.id}"}

    return _auth_headers


@pytest.fixture
def tropes(db):
    rows = [Trope(key=key, label=label) for key, label in TROPE_LABELS.items()]
    db.add_all(rows)
    db.commit()
    return rows


@pytest.fixture
def make_template(db):
    def _make_template(estimated_scenes=3, status=TemplateStatus.PUBLISHED, title="Midnight Bargain",
                       base_tropes=("enemies-to-lovers",), with_choice_points=True):
        template = NovelTemplate(
            title=title,
            description="Two rivals are stranded in a snowed-in lodge.",
            base_tropes=list(base_tropes),
            estimated_scenes=estimated_scenes,
            cover_gradient="from-rose-500 to-purple-700",
            status=status,
        )
        db.add(template)
        db.flush()

        if with_choice_points:
            for scene_number in range(1, estimated_scenes):
                db.add(ChoicePoint(
                    template_id=template.id,
                    scene_number=scene_number,
                    prompt_text=f"What happens after scene {scene_number}?",
                    options=[
                        {"id": "a", "text": "Lean in", "tone": "bold", "impact": "closer"},
                        {"id": "b", "text": "Walk away", "tone": "guarded", "impact": "distance"},
                        {"id": "c", "text": "Tease them", "tone": "playful", "impact": "spark"},
                    ],
                ))
        db.commit()
        db.refresh(template)
        return template

    return _make_template


def valid_preferences(**overrides):
    preferences = {
        "genres": ["contemporary"],
        "tropes": ["enemies-to-lovers"],
        "spiceLevel": 3,
        "pacing": "slow-burn",
    }
    preferences.update(overrides)
    return preferences
