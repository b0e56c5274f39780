from __future__ import annotations

import copy
import itertools
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import unquote

import pytest
from PySide6 import QtCore

from character_wizard.data.client import CharacterApi
from character_wizard.errors import ApiError


RACES = {
    "phb:dwarf": {
        "id": 1,
        "slug": "phb:dwarf",
        "name": "Dwarf",
        "subrace_required": True,
        "subraces": [
            {"id": 11, "slug": "phb:dwarf-hill", "name": "Hill Dwarf"},
            {"id": 12, "slug": "phb:dwarf-mountain", "name": "Mountain Dwarf"},
        ],
        "modifiers": [{"modifier_category": "ability_score", "ability": "CON", "value": 2}],
    },
    "phb:dwarf-duergar": {
        "id": 3,
        "slug": "phb:dwarf-duergar",
        "name": "Duergar",
        "subraces": [],
        "modifiers": [{"modifier_category": "ability_score", "ability": "CON", "value": 2}],
    },
    "phb:human": {"id": 2, "slug": "phb:human", "name": "Human", "subraces": [], "modifiers": []},
    "homebrew:sky-folk": {
        "id": 4,
        "slug": "homebrew:sky-folk",
        "name": "Sky Folk",
        "subraces": [],
        "modifiers": [{"modifier_category": "Bonus Feat", "value": 1}],
    },
}

CLASSES = {
    "phb:fighter": {
        "id": 5,
        "slug": "phb:fighter",
        "name": "Fighter",
        "hit_die": 10,
        "spellcasting_ability": None,
        "subclass_level": 3,
        "level_progression": [{"level": 1}, {"level": 2}, {"level": 3}],
        "subclasses": [{"id": 51, "slug": "phb:champion", "name": "Champion"}],
    },
    "phb:paladin": {
        "id": 6,
        "slug": "phb:paladin",
        "name": "Paladin",
        "hit_die": 10,
        "spellcasting_ability": {"code": "CHA", "name": "Charisma"},
        "subclass_level": 3,
        "level_progression": [
            {"level": 1, "cantrips_known": 0, "spells_known": 0},
            {"level": 2, "cantrips_known": 0, "spells_known": 0, "spell_slots_1st": 2},
        ],
        "subclasses": [],
    },
    "phb:wizard": {
        "id": 7,
        "slug": "phb:wizard",
        "name": "Wizard",
        "hit_die": 6,
        "spellcasting_ability": {"code": "INT", "name": "Intelligence"},
        "subclass_level": 2,
        "level_progression": [{"level": 1, "cantrips_known": 3, "spell_slots_1st": 2}],
        "subclasses": [],
    },
    "phb:cleric": {
        "id": 8,
        "slug": "phb:cleric",
        "name": "Cleric",
        "hit_die": 8,
        "spellcasting_ability": {"code": "WIS", "name": "Wisdom"},
        "subclass_level": 1,
        "level_progression": [{"level": 1, "cantrips_known": 3}],
        "subclasses": [{"id": 81, "slug": "phb:life-domain", "name": "Life Domain"}],
    },
    "phb:rogue": {
        "id": 9,
        "slug": "phb:rogue",
        "name": "Rogue",
        "hit_die": 8,
        "spellcasting_ability": None,
        "subclass_level": 3,
        "level_progression": [{"level": 1}, {"level": 4}],
        "subclasses": [],
    },
}

BACKGROUNDS = {
    "phb:acolyte": {"id": 20, "slug": "phb:acolyte", "name": "Acolyte"},
    "phb:soldier": {"id": 21, "slug": "phb:soldier", "name": "Soldier"},
}

FIGHTER_EQUIPMENT = {
    "id": "equipment|class|phb:fighter|1|weapon",
    "type": "equipment",
    "source": "class",
    "source_name": "Fighter",
    "required": True,
    "quantity": 1,
    "options": [
        {"option": "a", "label": "a mace", "items": [{"slug": "phb:mace", "name": "Mace", "quantity": 1}]},
        {"option": "b", "label": "a warhammer", "items": [{"slug": "phb:warhammer", "name": "Warhammer", "quantity": 1}]},
    ],
}

FIGHTER_SKILLS = {
    "id": "proficiency|class|phb:fighter|1|skills",
    "type": "proficiency",
    "subtype": "skill",
    "source": "class",
    "source_name": "Fighter",
    "required": True,
    "quantity": 2,
    "options": [
        {"skill": {"slug": "athletics", "name": "Athletics"}},
        {"skill": {"slug": "intimidation", "name": "Intimidation"}},
        {"skill": {"slug": "perception", "name": "Perception"}},
        {"skill": {"slug": "survival", "name": "Survival"}},
    ],
    "metadata": {"choice_group": "skills"},
}

WIZARD_CANTRIPS = {
    "id": "spell|class|phb:wizard|1|cantrips",
    "type": "spell",
    "subtype": "cantrip",
    "source": "class",
    "source_name": "Wizard",
    "required": True,
    "quantity": 2,
    "options": [
        {"slug": "phb:fire-bolt", "name": "Fire Bolt"},
        {"slug": "phb:light", "name": "Light"},
        {"slug": "phb:mage-hand", "name": "Mage Hand"},
    ],
}

CHOICE_TEMPLATES: Dict[str, List[dict]] = {
    "class:phb:fighter": [FIGHTER_SKILLS, FIGHTER_EQUIPMENT],
    "class:phb:wizard": [WIZARD_CANTRIPS],
}


def rogue_asi_choice() -> dict:
    return {
        "id": "ability_score|class|phb:rogue|4|asi",
        "type": "ability_score",
        "subtype": "asi_or_feat",
        "source": "class",
        "source_name": "Rogue",
        "level_granted": 4,
        "required": True,
        "quantity": 1,
        "remaining": 1,
        "selected": [],
        "options": [
            {"type": "asi", "label": "Ability Score Improvement"},
            {"slug": "phb:alert", "name": "Alert", "type": "feat"},
            {"slug": "phb:lucky", "name": "Lucky", "type": "feat"},
        ],
    }


class FakeBackend:
    """In-memory rules backend speaking the wizard's HTTP contract."""

    def __init__(self) -> None:
        self.characters: Dict[int, dict] = {}
        self.class_rows: Dict[int, List[dict]] = {}
        self.rows: Dict[Tuple[int, str], List[dict]] = {}
        self.resolutions: Dict[int, Dict[str, dict]] = {}
        self.extra_choices: Dict[int, List[dict]] = {}
        self.level_up_choices: List[dict] = []
        self.level_up_response: Dict[str, Any] = {}
        self.templates = copy.deepcopy(CHOICE_TEMPLATES)
        self.options: Dict[str, List[dict]] = {}
        self.calls: List[Tuple[str, str, Optional[dict]]] = []
        self.fail: Optional[Callable[[str, str], Optional[int]]] = None
        self.on_request: Optional[Callable[[str, str], None]] = None
        self._ids = itertools.count(1)
        self._row_ids = itertools.count(100)

    # Transport -------------------------------------------------------
    def request(self, method: str, path: str, payload: Optional[dict] = None) -> Any:
        self.calls.append((method, path, copy.deepcopy(payload)))
        if self.on_request is not None:
            self.on_request(method, path)
        if self.fail is not None:
            status = self.fail(method, path)
            if status:
                raise ApiError("Backend unavailable", status=status, method=method, path=path)
        route, _, query = path.partition("?")
        parts = [unquote(part) for part in route.strip("/").split("/")]
        return {"data": self._dispatch(method, parts, payload or {}, query)}

    def calls_to(self, method: str, fragment: str = "") -> List[Tuple[str, str, Optional[dict]]]:
        return [call for call in self.calls if call[0] == method and fragment in call[1]]

    # Routing ---------------------------------------------------------
    def _dispatch(self, method: str, parts: List[str], payload: dict, query: str) -> Any:
        head = parts[0]
        if head == "races":
            return self._reference(RACES, parts[1])
        if head == "classes":
            return self._reference(CLASSES, parts[1])
        if head == "backgrounds":
            return self._reference(BACKGROUNDS, parts[1])
        if head == "options":
            return self.options.get(parts[1], [])
        if head != "characters":
            raise ApiError("Not found", status=404)

        if len(parts) == 1 and method == "POST":
            return self._create(payload)
        character = self._character(parts[1])
        cid = character["id"]
        if len(parts) == 2:
            if method == "GET":
                return self._character_payload(character)
            if method == "PATCH":
                character.update(payload)
                return self._character_payload(character)
            if method == "DELETE":
                del self.characters[cid]
                return None
        section = parts[2]
        if section == "classes":
            return self._classes(method, cid, parts[3:], payload)
        if section == "pending-choices":
            choices = self.pending_choices(cid)
            if query.startswith("type="):
                choices = [c for c in choices if c["type"] == query[len("type="):]]
            return {"choices": choices}
        if section == "choices":
            return self._resolve(method, cid, parts[3], payload)
        if section in ("equipment", "spells"):
            return self._collection(method, cid, section, parts[3:], payload)
        if section == "stats":
            return {"armor_class": 10, "max_hit_points": 10}
        if section == "summary":
            outstanding = [c for c in self.pending_choices(cid) if c["required"] and c["remaining"] > 0]
            complete = bool(character.get("race_id") and self.class_rows.get(cid)) and not outstanding
            return {"creation_complete": complete, "status": "complete" if complete else "draft"}
        raise ApiError("Not found", status=404)

    def _reference(self, table: Dict[str, dict], slug: str) -> dict:
        if slug not in table:
            raise ApiError("Not found", status=404)
        return copy.deepcopy(table[slug])

    def _create(self, payload: dict) -> dict:
        cid = next(self._ids)
        self.characters[cid] = {
            "id": cid,
            "public_id": f"hero-{cid}",
            "name": payload.get("name"),
            "level": 1,
            "status": "draft",
        }
        return dict(self.characters[cid])

    def _character(self, ref: str) -> dict:
        for character in self.characters.values():
            if str(character["id"]) == ref or character["public_id"] == ref:
                return character
        raise ApiError("Character not found", status=404)

    def _character_payload(self, character: dict) -> dict:
        payload = dict(character)
        race_id = character.get("race_id")
        for race in RACES.values():
            if race["id"] == race_id:
                payload["race"] = {"id": race["id"], "slug": race["slug"]}
            for sub in race["subraces"]:
                if sub["id"] == race_id:
                    payload["race"] = {"id": sub["id"], "slug": sub["slug"], "parent_race": {"slug": race["slug"]}}
        for background in BACKGROUNDS.values():
            if background["id"] == character.get("background_id"):
                payload["background"] = {"slug": background["slug"]}
        payload["classes"] = copy.deepcopy(self.class_rows.get(character["id"], []))
        return payload

    def _class_by_id(self, class_id: Any) -> dict:
        for data in CLASSES.values():
            if data["id"] == int(class_id):
                return data
        raise ApiError("Unknown class", status=422)

    def _classes(self, method: str, cid: int, rest: List[str], payload: dict) -> Any:
        rows = self.class_rows.setdefault(cid, [])
        if not rest:
            if method == "GET":
                return copy.deepcopy(rows)
            data = self._class_by_id(payload["class_id"])
            rows.append(
                {
                    "class_id": data["id"],
                    "class": {"id": data["id"], "slug": data["slug"]},
                    "subclass": None,
                    "level": 1,
                    "is_primary": not rows,
                }
            )
            return copy.deepcopy(rows[-1])
        if len(rest) == 1 and method == "DELETE":
            self.class_rows[cid] = [row for row in rows if str(row["class_id"]) != rest[0]]
            return None
        if rest[1:] == ["subclass"] and method == "PUT":
            for row in rows:
                if str(row["class_id"]) == rest[0]:
                    row["subclass"] = {"id": payload["subclass_id"]}
                    return copy.deepcopy(row)
        if rest[1:] == ["level-up"] and method == "POST":
            character = self.characters[cid]
            previous = character["level"]
            character["level"] = previous + 1
            self.extra_choices.setdefault(cid, []).extend(copy.deepcopy(self.level_up_choices))
            response = {
                "previous_level": previous,
                "new_level": previous + 1,
                "hp_increase": 0,
                "new_max_hp": 0,
                "features_gained": [],
                "spell_slots": {},
                "asi_pending": False,
                "hp_choice_pending": False,
            }
            response.update(self.level_up_response)
            return response
        raise ApiError("Not found", status=404)

    def pending_choices(self, cid: int) -> List[dict]:
        templates: List[dict] = []
        for row in self.class_rows.get(cid, []):
            templates += self.templates.get(f"class:{row['class']['slug']}", [])
        templates += self.extra_choices.get(cid, [])
        resolved = self.resolutions.get(cid, {})
        choices = []
        for template in templates:
            choice = copy.deepcopy(template)
            resolution = resolved.get(choice["id"])
            if resolution is not None:
                choice["selected"] = list(resolution.get("selected") or [])
                choice["remaining"] = 0
                if resolution.get("item_selections"):
                    choice.setdefault("metadata", {})["item_selections"] = resolution["item_selections"]
            else:
                choice.setdefault("selected", [])
                choice["remaining"] = choice.get("remaining", choice["quantity"] - len(choice["selected"]))
            choices.append(choice)
        return choices

    def _resolve(self, method: str, cid: int, choice_id: str, payload: dict) -> Any:
        resolved = self.resolutions.setdefault(cid, {})
        if method == "DELETE":
            resolved.pop(choice_id, None)
            return None
        if not any(choice["id"] == choice_id for choice in self.pending_choices(cid)):
            raise ApiError("Unknown choice", status=404)
        record = dict(payload)
        if payload.get("type") == "asi":
            record["selected"] = ["asi"]
        elif payload.get("type") == "feat":
            record["selected"] = [payload["selected"]]
        resolved[choice_id] = record
        echo = {"choice_id": choice_id, "selected": record.get("selected")}
        if choice_id.startswith("hit_points|"):
            echo["hp_choice_pending"] = False
            echo["hp_increase"] = 6
        return echo

    def _collection(self, method: str, cid: int, section: str, rest: List[str], payload: dict) -> Any:
        rows = self.rows.setdefault((cid, section), [])
        if method == "GET":
            return copy.deepcopy(rows)
        if method == "POST":
            row = dict(payload)
            row["id"] = next(self._row_ids)
            rows.append(row)
            return dict(row)
        if method == "DELETE":
            self.rows[(cid, section)] = [row for row in rows if str(row["id"]) != rest[0]]
            return None
        raise ApiError("Method not allowed", status=405)


# Held at module level so the application outlives every QObject at exit.
_APP: Optional[QtCore.QCoreApplication] = None


@pytest.fixture(scope="session", autouse=True)
def qt_app():
    global _APP
    _APP = QtCore.QCoreApplication.instance() or QtCore.QCoreApplication([])
    yield _APP


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def api(backend: FakeBackend) -> CharacterApi:
    return CharacterApi(backend)
