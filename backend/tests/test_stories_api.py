"""
Tests for the story endpoints: creation, choices, scene serving and
reader navigation.
"""
import pytest

from heat.main import create_app
from heat.models import Scene, StoryStatus, TemplateStatus, UserStory
from heat.services.scene_cache import cache_scene
from fastapi.testclient import TestClient

from conftest import FakeSceneGenerator, valid_preferences


@pytest.fixture
def reader(make_user):
    return make_user()


@pytest.fixture
def headers(reader, auth_headers):
    return auth_headers(reader)


def start_story(client, headers, template, **extra):
    response = client.post("/api/stories", json={"templateId": template.id, **extra}, headers=headers)
    assert response.status_code == 201
    return response.json()["story"]


class TestCreateStory:

    def test_create_with_preferences(self, client, headers, make_template):
        template = make_template()
        story = start_story(client, headers, template, preferences=valid_preferences())

        assert story["current_scene"] == 1
        assert story["status"] == "in-progress"
        assert story["preferences"]["sceneLength"] == "medium"
        assert story["preferences"]["povCharacterGender"] == "female"

    def test_invalid_preferences_rejected(self, client, headers, make_template):
        template = make_template()
        response = client.post("/api/stories", json={
            "templateId": template.id,
            "preferences": valid_preferences(spiceLevel=6),
        }, headers=headers)
        assert response.status_code == 400

    def test_draft_template_is_404(self, client, headers, make_template):
        template = make_template(status=TemplateStatus.DRAFT)
        response = client.post("/api/stories", json={"templateId": template.id}, headers=headers)
        assert response.status_code == 404
        assert response.json() == {"error": "Template not found"}

    def test_requires_login(self, client, make_template):
        template = make_template()
        assert client.post("/api/stories", json={"templateId": template.id}).status_code == 401


class TestChoose:

    def test_walk_through_to_completion(self, client, db, headers, make_template):
        template = make_template(estimated_scenes=3)
        story = start_story(client, headers, template)
        cps = {cp.scene_number: cp.id for cp in template.choice_points}

        first = client.post(f"/api/stories/{story['id']}/choose",
                            json={"choicePointId": cps[1], "selectedOption": 0}, headers=headers)
        assert first.json() == {"success": True, "nextScene": 2, "completed": False}

        second = client.post(f"/api/stories/{story['id']}/choose",
                             json={"choicePointId": cps[2], "selectedOption": 1}, headers=headers)
        assert second.json() == {"success": True, "nextScene": 3, "completed": False}

        # scene 3 is the last one; finishing it through navigation completes the story
        done = client.patch(f"/api/stories/{story['id']}/scene", json={"currentScene": 4}, headers=headers)
        assert done.json() == {"success": True, "currentScene": 4, "completed": True}

        stored = db.query(UserStory).filter(UserStory.id == story["id"]).one()
        assert stored.status == StoryStatus.COMPLETED
        assert stored.current_scene == 1

        again = client.post(f"/api/stories/{story['id']}/choose",
                            json={"choicePointId": cps[1], "selectedOption": 2}, headers=headers)
        assert again.status_code == 409

    def test_reanswering_is_409(self, client, headers, make_template):
        template = make_template(estimated_scenes=4)
        story = start_story(client, headers, template)
        cp = template.choice_points[0]

        payload = {"choicePointId": cp.id, "selectedOption": 0}
        assert client.post(f"/api/stories/{story['id']}/choose", json=payload, headers=headers).status_code == 200
        response = client.post(f"/api/stories/{story['id']}/choose", json=payload, headers=headers)
        assert response.status_code == 409

    @pytest.mark.parametrize("option", [-1, 3])
    def test_option_out_of_range(self, client, headers, make_template, option):
        template = make_template()
        story = start_story(client, headers, template)
        response = client.post(f"/api/stories/{story['id']}/choose", json={
            "choicePointId": template.choice_points[0].id,
            "selectedOption": option,
        }, headers=headers)
        assert response.status_code == 400

    def test_other_users_story_is_403(self, client, headers, make_user, auth_headers, make_template):
        template = make_template()
        story = start_story(client, headers, template)
        intruder = auth_headers(make_user())

        response = client.post(f"/api/stories/{story['id']}/choose", json={
            "choicePointId": template.choice_points[0].id,
            "selectedOption": 0,
        }, headers=intruder)
        assert response.status_code == 403
        assert client.get(f"/api/stories/{story['id']}", headers=intruder).status_code == 403


class TestScene:

    def test_generates_then_serves_from_cache(self, client, db, headers, make_template, scene_generator):
        template = make_template(estimated_scenes=3)
        story = start_story(client, headers, template, preferences=valid_preferences())

        first = client.get(f"/api/stories/{story['id']}/scene", headers=headers)
        assert first.status_code == 200
        body = first.json()
        assert body["scene"]["number"] == 1
        assert body["scene"]["cached"] is False
        assert body["scene"]["wordCount"] == 10
        assert body["choicePoint"]["promptText"] == "What happens after scene 1?"
        assert body["previousChoice"] is None
        assert body["story"]["estimatedScenes"] == 3

        second = client.get(f"/api/stories/{story['id']}/scene?number=1", headers=headers)
        assert second.json()["scene"]["cached"] is True
        assert len(scene_generator.requests) == 1
        assert scene_generator.requests[0].preferences["spiceLevel"] == 3
        assert db.query(Scene).count() == 1

    def test_generator_gets_last_choice_and_context(self, client, headers, make_template, scene_generator):
        template = make_template(estimated_scenes=3)
        story = start_story(client, headers, template)
        client.get(f"/api/stories/{story['id']}/scene", headers=headers)
        client.post(f"/api/stories/{story['id']}/choose", json={
            "choicePointId": template.choice_points[0].id,
            "selectedOption": 1,
        }, headers=headers)

        response = client.get(f"/api/stories/{story['id']}/scene", headers=headers)
        assert response.json()["scene"]["number"] == 2

        request = scene_generator.requests[-1]
        assert request.last_choice == {"text": "Walk away", "tone": "guarded"}
        assert request.recent_scenes == [{"scene_number": 1, "content": "Summary of scene 1"}]

    def test_previous_choice_on_reread(self, client, headers, make_template):
        template = make_template(estimated_scenes=3)
        story = start_story(client, headers, template)
        client.post(f"/api/stories/{story['id']}/choose", json={
            "choicePointId": template.choice_points[0].id,
            "selectedOption": 2,
        }, headers=headers)

        response = client.get(f"/api/stories/{story['id']}/scene?number=1", headers=headers)
        assert response.json()["previousChoice"] == 2

    def test_scene_beyond_story_is_400(self, client, headers, make_template):
        template = make_template(estimated_scenes=3)
        story = start_story(client, headers, template)
        response = client.get(f"/api/stories/{story['id']}/scene?number=4", headers=headers)
        assert response.status_code == 400
        assert response.json() == {"error": "Scene number exceeds story length"}

    def test_without_generator_a_miss_is_404(self, settings, engine, db, make_user, auth_headers, make_template):
        app = create_app(settings, engine=engine, scene_generator=None)
        headers = auth_headers(make_user())
        template = make_template()
        with TestClient(app) as client:
            story = start_story(client, headers, template)
            response = client.get(f"/api/stories/{story['id']}/scene", headers=headers)
        assert response.status_code == 404
        assert response.json() == {"error": "Scene not generated yet"}

    def test_concurrent_writer_wins_the_cache(self, settings, engine, db, make_user, auth_headers, make_template):
        class OvertakenGenerator(FakeSceneGenerator):
            # another request stores the same scene while this one is still generating
            def generate(self, request):
                cache_scene(db, request.story_id, request.scene_number, "The other writer got here first")
                return super().generate(request)

        app = create_app(settings, engine=engine, scene_generator=OvertakenGenerator())
        headers = auth_headers(make_user())
        template = make_template()
        with TestClient(app) as client:
            story = start_story(client, headers, template)
            response = client.get(f"/api/stories/{story['id']}/scene", headers=headers)

        assert response.status_code == 200
        scene = response.json()["scene"]
        assert scene["content"] == "The other writer got here first"
        assert scene["cached"] is True
        assert db.query(Scene).filter(Scene.story_id == story["id"]).count() == 1


class TestStoryReads:

    def test_list_and_filter(self, client, headers, make_template):
        template = make_template(estimated_scenes=2)
        first = start_story(client, headers, template)
        start_story(client, headers, template)
        client.patch(f"/api/stories/{first['id']}/scene", json={"currentScene": 3}, headers=headers)

        everything = client.get("/api/stories/user", headers=headers).json()["stories"]
        completed = client.get("/api/stories/user?status=completed", headers=headers).json()["stories"]
        assert len(everything) == 2
        assert [s["id"] for s in completed] == [first["id"]]
        assert completed[0]["template"]["id"] == template.id

    def test_get_story_with_choices(self, client, headers, make_template):
        template = make_template()
        story = start_story(client, headers, template)
        client.post(f"/api/stories/{story['id']}/choose", json={
            "choicePointId": template.choice_points[0].id,
            "selectedOption": 1,
        }, headers=headers)

        body = client.get(f"/api/stories/{story['id']}", headers=headers).json()["story"]
        assert body["current_scene"] == 2
        assert body["choices"][0]["selected_option"] == 1
        assert body["choices"][0]["scene_number"] == 1
        assert body["stats"] == {"sceneCount": 0, "totalWords": 0}

    def test_missing_story_is_404(self, client, headers):
        assert client.get("/api/stories/nope", headers=headers).status_code == 404

    def test_delete(self, client, db, headers, make_template):
        template = make_template()
        story = start_story(client, headers, template)
        client.get(f"/api/stories/{story['id']}/scene", headers=headers)

        response = client.delete(f"/api/stories/{story['id']}", headers=headers)
        assert response.status_code == 200
        assert db.query(Scene).count() == 0

        again = client.delete(f"/api/stories/{story['id']}", headers=headers)
        assert again.status_code == 404
        assert again.json() == {"error": "Story not found or already deleted"}

    def test_progress_out_of_range(self, client, headers, make_template):
        template = make_template(estimated_scenes=3)
        story = start_story(client, headers, template)
        response = client.patch(f"/api/stories/{story['id']}/scene", json={"currentScene": 9}, headers=headers)
        assert response.status_code == 400
