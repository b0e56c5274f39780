from .config import Settings, configure_logging
from .levelup import LevelUpViewModel
from .state import CharacterWizardViewModel, WizardSession

__all__ = [
    "CharacterWizardViewModel",
    "LevelUpViewModel",
    "Settings",
    "WizardSession",
    "configure_logging",
]
