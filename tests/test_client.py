import pytest

from character_wizard.app import create_api, launch_app
from character_wizard.config import Settings
from character_wizard.data.client import normalize_endpoint
from character_wizard.data.repository import ReferenceRepository
from character_wizard.data.transport import QtHttpTransport
from character_wizard.errors import WizardError


@pytest.mark.parametrize(
    "endpoint, expected",
    [
        ("/api/v1/characters/1/available-spells", "/characters/1/available-spells"),
        ("options/languages", "/options/languages"),
        ("https://rules.example/x", "https://rules.example/x"),
    ],
)
def test_normalize_endpoint(endpoint, expected):
    assert normalize_endpoint(endpoint) == expected


def test_choice_ids_are_url_encoded(api, backend):
    created = api.create_character("Thorin")
    api.add_class(created["id"], 5)
    api.resolve_choice(created["id"], "proficiency|class|phb:fighter|1|skills", {"selected": ["athletics"]})
    method, path, _ = backend.calls[-1]
    assert method == "POST"
    assert path.endswith("/choices/proficiency%7Cclass%7Cphb%3Afighter%7C1%7Cskills")


def test_responses_are_unwrapped(api):
    created = api.create_character("Thorin")
    assert created["name"] == "Thorin"
    assert api.list_classes(created["id"]) == []


def test_delete_character(api, backend):
    created = api.create_character("Thorin")
    api.delete_character(created["id"])
    assert created["id"] not in backend.characters
    assert backend.calls[-1][:2] == ("DELETE", f"/characters/{created['id']}")


def test_pending_choices_type_filter(api, backend):
    created = api.create_character("Thorin")
    api.add_class(created["id"], 5)
    payload = api.pending_choices(created["id"], "equipment")
    assert [choice["type"] for choice in payload["choices"]] == ["equipment"]
    assert backend.calls[-1][1].endswith("pending-choices?type=equipment")


def test_repository_caches_by_slug(api, backend):
    repository = ReferenceRepository(api)
    first = repository.race("phb:dwarf")
    second = repository.race("PHB:Dwarf")
    assert first is second
    assert len(backend.calls_to("GET", "/races/")) == 1
    assert first.subrace_required
    with pytest.raises(WizardError):
        repository.race("")


def test_transport_urls():
    transport = QtHttpTransport(Settings(api_base_url="http://rules.local/api/v1/"))
    assert transport.url_for("/characters/1") == "http://rules.local/api/v1/characters/1"
    assert transport.url_for("https://other/x") == "https://other/x"


def test_create_api_uses_http_transport():
    api = create_api(Settings(api_base_url="http://rules.local/api/v1"))
    assert isinstance(api.transport, QtHttpTransport)


def test_launch_app_requires_character_id():
    assert launch_app(["character-wizard"]) == 2
