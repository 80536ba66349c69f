from __future__ import annotations

import asyncio

import pytest

from canvas_inference.errors import NotFoundError, ValidationError
from canvas_studio.library.models import Template
from canvas_studio.templates.service import DEFAULT_TEMPLATES, TemplateService
from studio_fakes import ScriptedAdapter, make_registry

USER = {"X-User-Id": "user-1"}


def _service(store):
    return TemplateService(store, registry=make_registry(ScriptedAdapter("fake-image-a")))


def test_first_fetch_seeds_read_only_defaults_in_order(store):
    templates = asyncio.run(_service(store).fetch_templates("user-1"))

    assert [t.name for t in templates] == [d["name"] for d in DEFAULT_TEMPLATES]
    assert all(t.readonly and t.user_id == "user-1" for t in templates)
    assert templates[2].default_model == "openai-latest-image"
    assert templates[1].params["aspectRatio"] == "3:2"


def test_seeding_happens_once_per_user(store):
    service = _service(store)

    first = asyncio.run(service.fetch_templates("user-1"))
    second = asyncio.run(service.fetch_templates("user-1"))
    other = asyncio.run(service.fetch_templates("user-2"))

    assert [t.id for t in first] == [t.id for t in second]
    assert len(store.templates) == 2 * len(DEFAULT_TEMPLATES)
    assert not {t.id for t in first} & {t.id for t in other}


def test_repeated_seeding_collides_instead_of_duplicating(store):
    service = _service(store)
    asyncio.run(service.fetch_templates("user-1"))

    again = asyncio.run(service._seed_defaults("user-1"))

    assert len(again) == len(DEFAULT_TEMPLATES)


def test_user_with_templates_gets_no_defaults(store):
    service = _service(store)
    mine = asyncio.run(service.add_template("user-1", "Mine", "fake-image-a", {"prompt": "owl"}))

    templates = asyncio.run(service.fetch_templates("user-1"))

    assert [t.id for t in templates] == [mine.id]
    assert mine.readonly is False


@pytest.mark.parametrize(
    "name, model, params",
    [
        ("  ", "fake-image-a", {}),
        ("Name", "", {}),
        ("Name", "no-such-model", {}),
        ("Name", "fake-image-a", {"aspectRatio": "7:3"}),
        ("Name", "fake-image-a", ["not", "a", "dict"]),
    ],
)
def test_add_template_validates_fields(store, name, model, params):
    with pytest.raises(ValidationError):
        asyncio.run(_service(store).add_template("user-1", name, model, params))
    assert store.templates == {}


def test_update_and_delete_own_template(store):
    service = _service(store)
    template = asyncio.run(service.add_template("user-1", "Draft", "fake-image-a", {"prompt": "owl"}))

    updated = asyncio.run(
        service.update_template(template.id, "user-1", name=" Final ", params={"prompt": "owl", "aspectRatio": "16:9"})
    )
    asyncio.run(service.delete_template(template.id, "user-1"))

    assert updated.name == "Final"
    assert updated.params["aspectRatio"] == "16:9"
    assert store.templates == {}


def test_defaults_are_read_only_but_can_be_duplicated(store):
    service = _service(store)
    default = asyncio.run(service.fetch_templates("user-1"))[0]

    with pytest.raises(ValidationError):
        asyncio.run(service.update_template(default.id, "user-1", name="Mine now"))
    copy = asyncio.run(service.duplicate_template(default.id, "user-1"))
    renamed = asyncio.run(service.update_template(copy.id, "user-1", name="Mine now"))

    assert copy.name == "Social Media Ad (Copy)"
    assert copy.readonly is False
    assert copy.params == default.params
    assert renamed.name == "Mine now"


def test_update_rejects_unknown_fields(store):
    service = _service(store)
    template = asyncio.run(service.add_template("user-1", "Draft", "fake-image-a"))

    with pytest.raises(ValidationError):
        asyncio.run(service.update_template(template.id, "user-1", readonly=True))


def test_other_users_templates_are_not_found(store):
    service = _service(store)
    template = asyncio.run(service.add_template("owner", "Secret", "fake-image-a"))

    with pytest.raises(NotFoundError):
        asyncio.run(service.delete_template(template.id, "intruder"))
    with pytest.raises(NotFoundError):
        asyncio.run(service.duplicate_template(template.id, "intruder"))
    assert template.id in store.templates


def test_build_request_prefills_from_template(store):
    service = _service(store)
    default = asyncio.run(service.fetch_templates("user-1"))[1]

    request, model_id = asyncio.run(service.build_request(default.id, "user-1"))
    overridden, _ = asyncio.run(service.build_request(default.id, "user-1", prompt="my own prompt"))

    assert model_id == "gemini-3-pro-image-preview"
    assert request.prompt.startswith("A diverse group of colleagues")
    assert request.aspect_ratio == "3:2"
    assert request.resolution == "2K"
    assert overridden.prompt == "my own prompt"


def test_template_rows_use_original_column_names():
    row = {
        "id": "t1",
        "user_id": "user-1",
        "name": "Poster",
        "defaultModel": "openai-latest-image",
        "params": {"prompt": "p"},
        "created_at": "2025-03-01T10:00:00Z",
    }

    template = Template.from_row(row)

    assert template.readonly is False
    assert template.description == ""
    assert template.to_row()["defaultModel"] == "openai-latest-image"


def test_template_routes(studio_env):
    app, _ = studio_env

    with app.test_client() as client:
        listed = client.get("/api/templates", headers=USER).get_json()
        created = client.post(
            "/api/templates",
            json={"name": "Poster", "defaultModel": "fake-image-a", "params": {"prompt": "retro poster"}},
            headers=USER,
        )
        template_id = created.get_json()["id"]
        patched = client.patch(f"/api/templates/{template_id}", json={"description": "70s style"}, headers=USER)
        bad_field = client.patch(f"/api/templates/{template_id}", json={"readonly": True}, headers=USER)
        read_only = client.patch(f"/api/templates/{listed[0]['id']}", json={"name": "x"}, headers=USER)
        copy = client.post(f"/api/templates/{template_id}/duplicate", headers=USER)
        prefilled = client.get(f"/api/templates/{template_id}/request", headers=USER).get_json()
        deleted = client.delete(f"/api/templates/{template_id}", headers=USER)
        gone = client.delete(f"/api/templates/{template_id}", headers=USER)
        anonymous = client.get("/api/templates")

    assert len(listed) == len(DEFAULT_TEMPLATES)
    assert listed[0]["readonly"] is True
    assert created.status_code == 201
    assert patched.get_json()["description"] == "70s style"
    assert bad_field.status_code == 400
    assert read_only.status_code == 400
    assert copy.status_code == 201
    assert copy.get_json()["name"] == "Poster (Copy)"
    assert prefilled == {"request": {"prompt": "retro poster", "aspectRatio": "1:1", "resolution": "1024"}, "modelId": "fake-image-a"}
    assert deleted.get_json() == {"deleted": template_id}
    assert gone.status_code == 404
    assert anonymous.status_code == 401
