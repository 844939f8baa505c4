"""
Tests for the public template catalog and trope list.
"""
from heat.models import TemplateStatus


class TestTemplateCatalog:

    def test_only_published_templates_listed(self, client, make_template):
        published = make_template(title="Published One")
        make_template(title="Draft One", status=TemplateStatus.DRAFT)
        make_template(title="Archived One", status=TemplateStatus.ARCHIVED)

        templates = client.get("/api/templates").json()["templates"]
        assert [t["id"] for t in templates] == [published.id]

    def test_filter_by_any_trope(self, client, make_template):
        rivals = make_template(title="Rivals", base_tropes=("enemies-to-lovers",))
        fake = make_template(title="Pretend", base_tropes=("fake-dating", "forced-proximity"))
        make_template(title="Again", base_tropes=("second-chance",))

        templates = client.get("/api/templates?tropes=enemies-to-lovers,fake-dating").json()["templates"]
        assert {t["id"] for t in templates} == {rivals.id, fake.id}

    def test_search_is_case_insensitive(self, client, make_template):
        lodge = make_template(title="The Winter Lodge")
        make_template(title="Summer Fling")

        templates = client.get("/api/templates?search=winter").json()["templates"]
        assert [t["id"] for t in templates] == [lodge.id]

    def test_get_published_template_with_choice_points(self, client, make_template):
        template = make_template(estimated_scenes=4)
        body = client.get(f"/api/templates/{template.id}").json()["template"]
        assert [cp["scene_number"] for cp in body["choicePoints"]] == [1, 2, 3]

    def test_draft_template_is_hidden(self, client, make_template):
        template = make_template(status=TemplateStatus.DRAFT)
        response = client.get(f"/api/templates/{template.id}")
        assert response.status_code == 404


class TestTropeCatalog:

    def test_tropes_ordered_by_label(self, client, tropes):
        labels = [t["label"] for t in client.get("/api/tropes").json()["tropes"]]
        assert labels == sorted(labels)
        assert len(labels) == len(tropes)
