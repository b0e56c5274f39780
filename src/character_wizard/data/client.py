from __future__ import annotations

from typing import Any, Dict, List, Optional, Union
from urllib.parse import quote

from .transport import Transport

__all__ = [
    "CharacterApi",
    "normalize_endpoint",
]

CharacterRef = Union[int, str]

API_PREFIX = "/api/v1"


def normalize_endpoint(endpoint: str) -> str:
    """Option endpoints arrive with the API prefix; the transport adds its own."""

    if endpoint.startswith(API_PREFIX):
        endpoint = endpoint[len(API_PREFIX):]
    return endpoint if endpoint.startswith(("/", "http://", "https://")) else f"/{endpoint}"


def _unwrap(body: Any) -> Any:
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


def _rows(body: Any) -> List[dict]:
    data = _unwrap(body)
    if isinstance(data, dict):
        for key in ("items", "equipment", "spells", "classes"):
            if isinstance(data.get(key), list):
                data = data[key]
                break
    if not isinstance(data, list):
        return []
    return [row for row in data if isinstance(row, dict)]


class CharacterApi:
    """One method per backend endpoint used by the wizards."""

    def __init__(self, transport: Transport) -> None:
        self.transport = transport

    def _call(self, method: str, path: str, payload: Optional[dict] = None) -> Any:
        return _unwrap(self.transport.request(method, path, payload))

    # Characters -----------------------------------------------------------
    def create_character(self, name: str) -> dict:
        return self._call("POST", "/characters", {"name": name}) or {}

    def get_character(self, character: CharacterRef) -> dict:
        return self._call("GET", f"/characters/{character}") or {}

    def update_character(self, character: CharacterRef, fields: Dict[str, Any]) -> dict:
        return self._call("PATCH", f"/characters/{character}", fields) or {}

    def delete_character(self, character: CharacterRef) -> None:
        self._call("DELETE", f"/characters/{character}")

    def stats(self, character: CharacterRef) -> dict:
        return self._call("GET", f"/characters/{character}/stats") or {}

    def summary(self, character: CharacterRef) -> dict:
        return self._call("GET", f"/characters/{character}/summary") or {}

    # Classes --------------------------------------------------------------
    def list_classes(self, character: CharacterRef) -> List[dict]:
        return _rows(self.transport.request("GET", f"/characters/{character}/classes"))

    def add_class(self, character: CharacterRef, class_id: CharacterRef) -> dict:
        return self._call("POST", f"/characters/{character}/classes", {"class_id": class_id}) or {}

    def remove_class(self, character: CharacterRef, class_id: CharacterRef) -> None:
        self._call("DELETE", f"/characters/{character}/classes/{class_id}")

    def set_subclass(self, character: CharacterRef, class_id: CharacterRef, subclass_id: CharacterRef) -> dict:
        path = f"/characters/{character}/classes/{class_id}/subclass"
        return self._call("PUT", path, {"subclass_id": subclass_id}) or {}

    def level_up(self, character: CharacterRef, class_slug: str) -> dict:
        return self._call("POST", f"/characters/{character}/classes/{quote(class_slug, safe='')}/level-up") or {}

    # Pending choices ------------------------------------------------------
    def pending_choices(self, character: CharacterRef, choice_type: Optional[str] = None) -> Any:
        path = f"/characters/{character}/pending-choices"
        if choice_type:
            path = f"{path}?type={quote(choice_type, safe='')}"
        return self._call("GET", path)

    def resolve_choice(self, character: CharacterRef, choice_id: str, payload: Dict[str, Any]) -> Any:
        path = f"/characters/{character}/choices/{quote(choice_id, safe='')}"
        return self._call("POST", path, payload)

    def undo_choice(self, character: CharacterRef, choice_id: str) -> None:
        self._call("DELETE", f"/characters/{character}/choices/{quote(choice_id, safe='')}")

    def fetch_options(self, endpoint: str) -> List[Any]:
        data = self._call("GET", normalize_endpoint(endpoint))
        if isinstance(data, dict):
            data = data.get("options") or data.get("items") or []
        return list(data) if isinstance(data, list) else []

    # Row collections (equipment, spells) ----------------------------------
    def list_collection(self, character: CharacterRef, collection: str) -> List[dict]:
        return _rows(self.transport.request("GET", f"/characters/{character}/{collection}"))

    def add_collection_item(self, character: CharacterRef, collection: str, payload: Dict[str, Any]) -> dict:
        return self._call("POST", f"/characters/{character}/{collection}", payload) or {}

    def delete_collection_item(self, character: CharacterRef, collection: str, row_id: CharacterRef) -> None:
        self._call("DELETE", f"/characters/{character}/{collection}/{row_id}")

    # Reference data -------------------------------------------------------
    def race(self, slug: str) -> dict:
        return self._call("GET", f"/races/{quote(slug, safe='')}") or {}

    def character_class(self, slug: str) -> dict:
        return self._call("GET", f"/classes/{quote(slug, safe='')}") or {}

    def background(self, slug: str) -> dict:
        return self._call("GET", f"/backgrounds/{quote(slug, safe='')}") or {}
