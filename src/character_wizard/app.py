from __future__ import annotations

import logging
import sys
from typing import List, Optional

from PySide6 import QtCore

from .config import Settings, configure_logging
from .constants import STEP_TITLES
from .data.client import CharacterApi
from .data.transport import QtHttpTransport
from .errors import WizardError
from .state import CharacterWizardViewModel

logger = logging.getLogger(__name__)


def create_api(settings: Optional[Settings] = None) -> CharacterApi:
    return CharacterApi(QtHttpTransport(settings))


def launch_app(argv: Optional[List[str]] = None) -> int:
    """Load a draft character and report where its creation should resume."""

    argv = list(sys.argv if argv is None else argv)
    app = QtCore.QCoreApplication.instance() or QtCore.QCoreApplication(argv)
    settings = Settings.from_env()
    configure_logging(settings)
    if len(argv) < 2 or not argv[1].isdigit():
        logger.error("Usage: %s CHARACTER_ID", argv[0] if argv else "character-wizard")
        return 2

    wizard = CharacterWizardViewModel(create_api(settings))
    wizard.setParent(app)
    try:
        loaded = wizard.load_character(int(argv[1]))
    except WizardError as exc:
        logger.error("%s", exc)
        return 1
    if not loaded:
        logger.error("Could not load character %s: %s", argv[1], wizard.error)
        return 1
    logger.info(
        "%s resumes at step %s of %s (%d%%)",
        wizard.draft.name or argv[1],
        STEP_TITLES.get(wizard.current_step, wizard.current_step),
        ", ".join(STEP_TITLES.get(step, step) for step in wizard.steps()),
        wizard.progress_percent(),
    )
    return 0
