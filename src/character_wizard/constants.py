ABILITY_SCORES = ["str", "dex", "con", "int", "wis", "cha"]
ABILITY_NAMES = {
    "str": "Strength",
    "dex": "Dexterity",
    "con": "Constitution",
    "int": "Intelligence",
    "wis": "Wisdom",
    "cha": "Charisma",
}

# Backend character fields for each ability score.
ABILITY_FIELDS = {key: name.lower() for key, name in ABILITY_NAMES.items()}

# Ability codes used by ability_score choices (``{"DEX": 2}``).
ABILITY_CODES = {key: key.upper() for key in ABILITY_SCORES}

ABILITY_METHODS = ("standard_array", "point_buy", "manual")
DEFAULT_ABILITY_METHOD = "standard_array"
DEFAULT_ABILITY_SCORE = 10

STANDARD_ARRAY = [15, 14, 13, 12, 10, 8]

POINT_BUY_BUDGET = 27
POINT_BUY_COSTS = {8: 0, 9: 1, 10: 2, 11: 3, 12: 4, 13: 5, 14: 7, 15: 9}

MIN_ABILITY_SCORE = 1
MAX_ABILITY_SCORE = 20

# Creation steps in spine order; optional ones are inserted by the sequencer.
STEP_NAME = "name"
STEP_RACE = "race"
STEP_SUBRACE = "subrace"
STEP_CLASS = "class"
STEP_SUBCLASS = "subclass"
STEP_ABILITIES = "abilities"
STEP_BACKGROUND = "background"
STEP_FEATS = "feats"
STEP_PROFICIENCIES = "proficiencies"
STEP_LANGUAGES = "languages"
STEP_EQUIPMENT = "equipment"
STEP_SPELLS = "spells"
STEP_REVIEW = "review"

# Level-up steps.
STEP_CLASS_SELECTION = "class-selection"
STEP_HIT_POINTS = "hit-points"
STEP_ASI_FEAT = "asi-feat"
STEP_FEATURE_CHOICES = "feature-choices"
STEP_SUMMARY = "summary"

STEP_TITLES = {
    STEP_NAME: "Name",
    STEP_RACE: "Race",
    STEP_SUBRACE: "Subrace",
    STEP_CLASS: "Class",
    STEP_SUBCLASS: "Subclass",
    STEP_ABILITIES: "Ability Scores",
    STEP_BACKGROUND: "Background",
    STEP_FEATS: "Feats",
    STEP_PROFICIENCIES: "Proficiencies",
    STEP_LANGUAGES: "Languages",
    STEP_EQUIPMENT: "Equipment",
    STEP_SPELLS: "Spells",
    STEP_REVIEW: "Review",
    STEP_CLASS_SELECTION: "Choose Class",
    STEP_HIT_POINTS: "Hit Points",
    STEP_ASI_FEAT: "Ability Score Improvement",
    STEP_FEATURE_CHOICES: "Class Features",
    STEP_SUMMARY: "Summary",
}

# Sources shown first, in this order; anything else follows alphabetically.
CLASSIC_SOURCES = ("class", "race", "background")
SOURCE_LABELS = {
    "class": "Class",
    "race": "Race",
    "background": "Background",
    "feat": "Feat",
    "subclass_feature": "Subclass Feature",
}

FEATURE_SUBTYPES = ("fighting_style", "expertise", "optional_feature")

BONUS_FEAT_CATEGORY = "bonus_feat"

HIT_POINT_METHODS = ("average", "roll")

COLLECTION_EQUIPMENT = "equipment"
COLLECTION_SPELLS = "spells"
