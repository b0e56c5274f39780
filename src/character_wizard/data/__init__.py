from .client import CharacterApi, normalize_endpoint
from .reference import BackgroundData, ClassData, ClassLevel, RaceData, SubclassData, SubraceData, slug_from_ref
from .repository import ReferenceRepository
from .transport import QtHttpTransport, Transport

__all__ = [
    "BackgroundData",
    "CharacterApi",
    "ClassData",
    "ClassLevel",
    "QtHttpTransport",
    "RaceData",
    "ReferenceRepository",
    "SubclassData",
    "SubraceData",
    "Transport",
    "normalize_endpoint",
    "slug_from_ref",
]
