"""
Tests for the per-story scene cache.
"""
import threading

import pytest
from sqlalchemy.exc import IntegrityError

from heat.database import create_db_engine, create_session_factory, init_db
from heat.models import NovelTemplate, Scene, TemplateStatus
from heat.services.scene_cache import (
    cache_scene,
    count_words,
    delete_story_scenes,
    get_cached_scene,
    get_recent_scenes,
    get_scene_metadata,
    get_story_metadata_progression,
    get_story_scenes,
    get_story_stats,
)
from heat.services.story_service import create_user_story
from heat.services.user_service import create_user_with_password


@pytest.fixture
def story(db, make_user, make_template):
    user = make_user()
    template = make_template(estimated_scenes=5)
    return create_user_story(db, user.id, template.id)


class TestCacheScene:

    def test_word_count(self):
        assert count_words("  She   smiled\nat him. ") == 4
        assert count_words("") == 0

    def test_cache_and_fetch(self, db, story):
        scene_id = cache_scene(db, story.id, 1, "The rain had not stopped for days", {"emotional_beat": "longing"})
        assert scene_id is not None

        scene = get_cached_scene(db, story.id, 1)
        assert scene.id == scene_id
        assert scene.word_count == 7
        assert scene.scene_metadata == {"emotional_beat": "longing"}
        assert get_cached_scene(db, story.id, 2) is None

    def test_duplicate_returns_none_and_keeps_first(self, db, story):
        first = cache_scene(db, story.id, 1, "First version")
        second = cache_scene(db, story.id, 1, "Second version")

        assert first is not None
        assert second is None
        rows = db.query(Scene).filter(Scene.story_id == story.id, Scene.scene_number == 1).all()
        assert len(rows) == 1
        assert rows[0].content == "First version"

    def test_session_usable_after_duplicate(self, db, story):
        cache_scene(db, story.id, 1, "One")
        cache_scene(db, story.id, 1, "One again")
        assert cache_scene(db, story.id, 2, "Two") is not None

    def test_integrity_error_without_existing_row_propagates(self, db):
        with pytest.raises(IntegrityError):
            cache_scene(db, "no-such-story", 1, "Orphan scene")


class TestConcurrentCacheWrites:
    """Two connections racing to store the same scene"""

    @pytest.fixture
    def file_factory(self, tmp_path):
        engine = create_db_engine(f"sqlite:///{tmp_path / 'heat.db'}")
        init_db(engine)
        yield create_session_factory(engine)
        engine.dispose()

    @pytest.fixture
    def story_id(self, file_factory):
        db = file_factory()
        try:
            user = create_user_with_password(db, "racer@example.com", "Racer", "Password123")
            template = NovelTemplate(
                title="Two Doors",
                description="A scene written twice at once.",
                base_tropes=["second-chance"],
                estimated_scenes=3,
                cover_gradient="from-sky-400 to-indigo-700",
                status=TemplateStatus.PUBLISHED,
            )
            db.add(template)
            db.commit()
            return create_user_story(db, user.id, template.id).id
        finally:
            db.close()

    def test_one_row_and_the_loser_gets_none(self, file_factory, story_id):
        barrier = threading.Barrier(2)
        results = [None, None]
        errors = []

        def write(index):
            db = file_factory()
            try:
                barrier.wait(timeout=5)
                results[index] = cache_scene(db, story_id, 1, f"Version from writer {index}")
            except Exception as e:
                errors.append(e)
            finally:
                db.close()

        threads = [threading.Thread(target=write, args=(i,)) for i in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert errors == []
        assert sum(result is not None for result in results) == 1

        db = file_factory()
        try:
            rows = db.query(Scene).filter(Scene.story_id == story_id, Scene.scene_number == 1).all()
            assert len(rows) == 1
            winner = next(result for result in results if result is not None)
            assert rows[0].id == winner
        finally:
            db.close()


class TestSceneQueries:

    def test_recent_scenes_in_reading_order(self, db, story):
        cache_scene(db, story.id, 1, "one full text", summary="one summary")
        cache_scene(db, story.id, 2, "two full text")
        cache_scene(db, story.id, 3, "three full text", summary="three summary")
        cache_scene(db, story.id, 4, "four full text")

        recent = get_recent_scenes(db, story.id, 3)
        assert recent == [
            {"scene_number": 2, "content": "two full text"},
            {"scene_number": 3, "content": "three summary"},
            {"scene_number": 4, "content": "four full text"},
        ]

    def test_stats_and_listing(self, db, story):
        assert get_story_stats(db, story.id) == {"sceneCount": 0, "totalWords": 0}

        cache_scene(db, story.id, 2, "three words here")
        cache_scene(db, story.id, 1, "two words")

        assert [s.scene_number for s in get_story_scenes(db, story.id)] == [1, 2]
        assert get_story_stats(db, story.id) == {"sceneCount": 2, "totalWords": 5}

    def test_metadata(self, db, story):
        cache_scene(db, story.id, 1, "text", {"tension_threads": ["rivalry"]}, summary="s1")
        cache_scene(db, story.id, 2, "text")

        assert get_scene_metadata(db, story.id, 1) == {"tension_threads": ["rivalry"]}
        assert get_scene_metadata(db, story.id, 2) is None
        assert get_story_metadata_progression(db, story.id) == [
            {"scene_number": 1, "metadata": {"tension_threads": ["rivalry"]}, "summary": "s1"},
            {"scene_number": 2, "metadata": None, "summary": None},
        ]

    def test_delete_story_scenes(self, db, story):
        cache_scene(db, story.id, 1, "a")
        cache_scene(db, story.id, 2, "b")
        assert delete_story_scenes(db, story.id) == 2
        assert get_story_scenes(db, story.id) == []
