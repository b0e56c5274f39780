import pytest

from character_wizard.choices import (
    ChoiceKey,
    ChoiceKind,
    ItemShape,
    PendingChoice,
    classify,
    display_options,
    equipment_options,
    group_by_kind,
    group_by_source,
    ledger_key,
    parse_choices,
)

from conftest import FIGHTER_EQUIPMENT, FIGHTER_SKILLS, rogue_asi_choice


def _choice(**overrides) -> PendingChoice:
    payload = {
        "id": "language|race|phb:human|1|extra",
        "type": "language",
        "source": "race",
        "quantity": 1,
        "options": [],
    }
    payload.update(overrides)
    choice = PendingChoice.from_payload(payload)
    assert choice is not None
    return choice


@pytest.mark.parametrize(
    "choice_type, subtype, expected",
    [
        ("ability_score", "asi_or_feat", ChoiceKind.ASI_OR_FEAT),
        ("ability_score", None, ChoiceKind.ABILITY_SCORE),
        ("ability_score", "racial", ChoiceKind.ABILITY_SCORE),
        ("ability_score", "feat", ChoiceKind.FEAT),
        ("asi_or_feat", None, ChoiceKind.ASI_OR_FEAT),
        ("feature", "fighting_style", ChoiceKind.FEATURE),
        ("feature", "expertise", ChoiceKind.FEATURE),
        ("optional_feature", None, ChoiceKind.FEATURE),
        ("spell", "cantrip", ChoiceKind.SPELL),
        ("proficiency", "skill", ChoiceKind.PROFICIENCY),
        ("subclass", None, ChoiceKind.SUBCLASS),
        ("size", None, ChoiceKind.UNKNOWN),
        (None, None, ChoiceKind.UNKNOWN),
    ],
)
def test_classify_uses_type_and_subtype(choice_type, subtype, expected):
    assert classify(choice_type, subtype) is expected


def test_choice_key_parses_composite_id():
    key = ChoiceKey.parse("subclass|class|phb:fighter|3|martial_archetype")
    assert key.type == "subclass"
    assert key.source == "class"
    assert key.source_id == "phb:fighter"
    assert key.level == 3
    assert key.discriminator == "martial_archetype"


def test_choice_key_tolerates_short_ids():
    key = ChoiceKey.parse("language")
    assert key.type == "language"
    assert key.source is None
    assert key.level is None


def test_from_payload_reads_rogue_asi_choice():
    choice = PendingChoice.from_payload(rogue_asi_choice())
    assert choice.kind is ChoiceKind.ASI_OR_FEAT
    assert choice.level_granted == 4
    assert choice.quantity == 1
    assert choice.remaining == 1
    assert choice.is_outstanding


def test_from_payload_computes_missing_remaining():
    choice = _choice(quantity=2, selected=["dwarvish"])
    assert choice.remaining == 1


def test_from_payload_clamps_quantity():
    choice = _choice(quantity=0)
    assert choice.quantity == 1


@pytest.mark.parametrize("payload", [None, "oops", {"type": "spell"}, {"id": "x"}])
def test_malformed_payloads_are_skipped(payload):
    assert PendingChoice.from_payload(payload) is None


def test_parse_choices_drops_bad_entries():
    choices = parse_choices({"choices": [FIGHTER_SKILLS, {"id": None}, 7]})
    assert [c.id for c in choices] == [FIGHTER_SKILLS["id"]]


def test_parse_choices_without_list_is_empty():
    assert parse_choices({"summary": {}}) == []


def test_group_by_source_keeps_unrecognized_sources():
    choices = [
        _choice(id="feature|subclass_feature|phb:champion|3|x", type="feature", source="subclass_feature"),
        _choice(id="language|background|phb:acolyte|1|x", source="background"),
        _choice(id="proficiency|feat|phb:skilled|1|x", type="proficiency", source="feat"),
        _choice(id="language|race|phb:human|1|x", source="race"),
        _choice(id="spell|class|phb:wizard|1|x", type="spell", source="class"),
    ]
    grouped = group_by_source(choices)
    assert list(grouped) == ["class", "race", "background", "feat", "subclass_feature"]
    assert sum(len(group) for group in grouped.values()) == len(choices)


def test_group_by_kind():
    choices = parse_choices([FIGHTER_SKILLS, FIGHTER_EQUIPMENT])
    grouped = group_by_kind(choices)
    assert set(grouped) == {ChoiceKind.PROFICIENCY, ChoiceKind.EQUIPMENT}


def test_source_name_defaults_from_source():
    choice = _choice(source="subclass_feature")
    assert choice.source_name == "Subclass Feature"


def test_display_options_handles_nested_and_flat_shapes():
    skills = PendingChoice.from_payload(FIGHTER_SKILLS)
    assert [o.id for o in display_options(skills)] == ["athletics", "intimidation", "perception", "survival"]
    assert display_options(skills)[0].label == "Athletics"

    asi = PendingChoice.from_payload(rogue_asi_choice())
    options = display_options(asi)
    assert [o.id for o in options] == ["asi", "phb:alert", "phb:lucky"]
    assert options[1].kind == "feat"


def test_display_options_drop_malformed_entries():
    choice = _choice(options=[{"slug": "dwarvish", "name": "Dwarvish"}, 42, {"description": "no id"}])
    assert [o.id for o in display_options(choice)] == ["dwarvish"]


def test_display_options_uses_fetched_when_not_inlined():
    choice = _choice(options_endpoint="/api/v1/characters/1/available-languages")
    assert choice.needs_option_fetch
    options = display_options(choice, [{"slug": "elvish", "name": "Elvish"}])
    assert [o.id for o in options] == ["elvish"]


def test_ledger_key_for_proficiency_uses_source_and_group():
    skills = PendingChoice.from_payload(FIGHTER_SKILLS)
    assert ledger_key(skills) == "class:skills"
    language = _choice()
    assert ledger_key(language) == language.id


def test_equipment_options_distinguish_item_shapes():
    choice = PendingChoice.from_payload(
        {
            "id": "equipment|class|phb:fighter|1|pack",
            "type": "equipment",
            "source": "class",
            "quantity": 1,
            "options": [
                {
                    "option": "a",
                    "is_category": False,
                    "items": [
                        {"slug": "phb:chain-mail", "name": "Chain Mail"},
                        {"name": "a lucky charm from home"},
                        {"category": {"name": "Martial weapon", "items": [{"slug": "phb:longsword"}, {"slug": "phb:glaive"}]}},
                    ],
                },
                {"option": "b", "is_category": True, "select_count": 2, "items": [{"slug": "phb:club"}, {"slug": "phb:dagger"}]},
                "not an option",
            ],
        }
    )
    options = equipment_options(choice)
    assert [o.option for o in options] == ["a", "b"]
    shapes = [item.shape for item in options[0].items]
    assert shapes == [ItemShape.CATALOG, ItemShape.FLAVOR, ItemShape.CATEGORY]
    assert options[0].category_indexes == [2]
    assert [c.id for c in options[0].items[2].candidates] == ["phb:longsword", "phb:glaive"]
    assert len(options[1].items) == 2
    assert all(item.shape is ItemShape.CATEGORY for item in options[1].items)


def test_category_heuristic_when_flag_missing():
    choice = PendingChoice.from_payload(
        {
            "id": "equipment|class|x|1|y",
            "type": "equipment",
            "source": "class",
            "quantity": 1,
            "options": [
                {"option": "a", "items": [{"slug": "s1", "quantity": 1}, {"slug": "s2", "quantity": 1}, {"slug": "s3", "quantity": 1}]},
                {"option": "b", "items": [{"slug": "s1", "quantity": 1}, {"slug": "s2", "quantity": 1}]},
            ],
        }
    )
    a, b = equipment_options(choice)
    assert a.requires_item_selection
    assert not b.requires_item_selection
