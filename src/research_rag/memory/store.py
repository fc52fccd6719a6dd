"""File-backed session memory: entry log, session summaries, symbol dictionary."""

from __future__ import annotations

import json
import logging
import re
from collections import Counter
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

from research_rag.types import MemoryEntry

logger = logging.getLogger(__name__)

_SYMBOL_RUN = re.compile(r"[/*_^=|#~`<>-]{4,}")
_ENTRY_FIELDS = {f.name for f in fields(MemoryEntry)}


@dataclass(slots=True)
class SymbolEntry:
    pattern: str
    occurrences: int
    meaning: str | None = None


class MemoryStore:
    """JSON files under `data_dir`; newest entries are kept first.

    Writes rewrite the whole file and are not atomic. Unreadable files are
    treated as empty so a corrupted log never blocks a request.
    """

    def __init__(self, data_dir: str | Path) -> None:
        self.data_dir = Path(data_dir)
        self.memory_path = self.data_dir / "memory.json"
        self.summaries_path = self.data_dir / "sessionSummaries.json"
        self.symbols_path = self.data_dir / "symbolDictionary.json"

    def _read(self, path: Path, key: str, default: Any) -> Any:
        if not path.exists():
            return default
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable memory file %s: %s", path, exc)
            return default
        value = payload.get(key) if isinstance(payload, dict) else None
        return value if isinstance(value, type(default)) else default

    def _write(self, path: Path, key: str, value: Any) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps({key: value}, ensure_ascii=False, indent=2), encoding="utf-8")

    def load_entries(self) -> list[MemoryEntry]:
        raw = self._read(self.memory_path, "entries", [])
        entries: list[MemoryEntry] = []
        for item in raw:
            if not isinstance(item, dict):
                continue
            try:
                entries.append(MemoryEntry(**{k: v for k, v in item.items() if k in _ENTRY_FIELDS}))
            except TypeError:
                logger.warning("Skipping malformed memory entry: %r", item.get("id"))
        return entries

    def save_entry(self, entry: MemoryEntry) -> None:
        entries = [asdict(existing) for existing in self.load_entries()]
        entries.insert(0, asdict(entry))
        self._write(self.memory_path, "entries", entries)

    def session_entries(self, session_id: str, limit: int = 100) -> list[MemoryEntry]:
        """Newest-first entries for one session."""
        return [entry for entry in self.load_entries() if entry.session_id == session_id][:limit]

    def get_session_summary(self, session_id: str) -> str:
        summaries = self._read(self.summaries_path, "summaries", {})
        return str(summaries.get(session_id, ""))

    def set_session_summary(self, session_id: str, summary: str) -> None:
        summaries = self._read(self.summaries_path, "summaries", {})
        summaries[session_id] = summary
        self._write(self.summaries_path, "summaries", summaries)

    def save_symbol_dictionary(self, entries: list[SymbolEntry]) -> None:
        self._write(self.symbols_path, "symbols", [asdict(entry) for entry in entries])

    def load_symbol_dictionary(self) -> list[SymbolEntry]:
        raw = self._read(self.symbols_path, "symbols", [])
        entries: list[SymbolEntry] = []
        for item in raw:
            if not isinstance(item, dict) or "pattern" not in item:
                continue
            try:
                occurrences = int(item.get("occurrences", 0))
            except (TypeError, ValueError):
                logger.warning("Skipping malformed symbol entry: %r", item.get("pattern"))
                continue
            meaning = item.get("meaning")
            entries.append(
                SymbolEntry(
                    pattern=str(item["pattern"]),
                    occurrences=occurrences,
                    meaning=meaning if isinstance(meaning, str) else None,
                )
            )
        return entries


def mine_symbols(text: str, top_n: int = 50) -> list[SymbolEntry]:
    """Count runs of four or more symbol characters, most frequent first."""
    counts = Counter(_SYMBOL_RUN.findall(text))
    return [
        SymbolEntry(pattern=pattern, occurrences=occurrences)
        for pattern, occurrences in counts.most_common(top_n)
    ]
