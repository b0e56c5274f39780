from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Optional, Tuple


class SelectionLedger:
    """In-progress picks for the active step, keyed by choice.

    A key with no entry means the user has not touched that choice. An entry
    never holds more picks than its quantity, and an entry emptied by the
    user is dropped so the choice reads as untouched again.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, List[str]] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def items(self) -> List[Tuple[str, List[str]]]:
        return [(key, list(values)) for key, values in self._entries.items()]

    def get(self, key: str) -> Optional[List[str]]:
        entry = self._entries.get(key)
        return list(entry) if entry is not None else None

    def count(self, key: str) -> int:
        return len(self._entries.get(key, ()))

    def is_selected(self, key: str, option_id: str) -> bool:
        return option_id in self._entries.get(key, ())

    def selected_elsewhere(self, option_id: str, key: str) -> bool:
        """True when another entry already holds ``option_id``."""

        return any(option_id in values for other, values in self._entries.items() if other != key)

    # ------------------------------------------------------------------
    def toggle(
        self,
        key: str,
        option_id: str,
        quantity: int,
        initial: Iterable[str] = (),
        granted: Iterable[str] = (),
    ) -> bool:
        """Add or remove one pick. Returns ``False`` when nothing changed.

        ``initial`` seeds an untouched entry with the already-persisted picks.
        Adding past ``quantity`` or adding an option in ``granted`` is a no-op.
        """

        if key not in self._entries:
            seeded = [value for value in dict.fromkeys(initial) if value]
            entry = seeded[: max(quantity, 0)]
        else:
            entry = self._entries[key]

        if option_id in entry:
            entry.remove(option_id)
        elif option_id in set(granted) or len(entry) >= quantity:
            return False
        else:
            entry.append(option_id)

        if entry:
            self._entries[key] = entry
        else:
            self._entries.pop(key, None)
        return True

    def set(self, key: str, option_id: Optional[str]) -> None:
        """Single-value entry; ``None`` drops it."""

        if option_id is None:
            self._entries.pop(key, None)
        else:
            self._entries[key] = [option_id]

    def replace(self, key: str, option_ids: Iterable[str], quantity: int) -> None:
        values = list(dict.fromkeys(value for value in option_ids if value))[: max(quantity, 0)]
        if values:
            self._entries[key] = values
        else:
            self._entries.pop(key, None)

    def discard(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()


class EquipmentLedger:
    """Bundle and item picks for compound equipment choices.

    Stored as ``group -> option -> item index -> slug``. Each group holds
    at most one option, so switching option drops the previous option's
    item picks.
    """

    def __init__(self) -> None:
        self._groups: Dict[str, Dict[str, Dict[int, str]]] = {}

    def __contains__(self, group: object) -> bool:
        return group in self._groups

    def __len__(self) -> int:
        return len(self._groups)

    def groups(self) -> List[str]:
        return list(self._groups)

    def selected_option(self, group: str) -> Optional[str]:
        options = self._groups.get(group)
        if not options:
            return None
        return next(iter(options))

    def select_option(self, group: str, option: str) -> None:
        options = self._groups.setdefault(group, {})
        if option in options:
            return
        for previous in list(options):
            del options[previous]
        options[option] = {}

    def select_item(self, group: str, option: str, index: int, slug: Optional[str]) -> None:
        self.select_option(group, option)
        items = self._groups[group][option]
        if slug:
            items[index] = slug
        else:
            items.pop(index, None)

    def item_selections(self, group: str, option: Optional[str] = None) -> Dict[int, str]:
        option = option or self.selected_option(group)
        if option is None:
            return {}
        return dict(self._groups.get(group, {}).get(option, {}))

    def flat_keys(self) -> Dict[str, str]:
        """``group:option:index`` view of every item pick."""

        flat: Dict[str, str] = {}
        for group, options in self._groups.items():
            for option, items in options.items():
                for index, slug in sorted(items.items()):
                    flat[f"{group}:{option}:{index}"] = slug
        return flat

    def discard(self, group: str) -> None:
        self._groups.pop(group, None)

    def clear(self) -> None:
        self._groups.clear()
