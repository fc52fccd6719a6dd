import json
from dataclasses import asdict
from pathlib import Path

from research_rag.memory.distiller import distill_text, extract_distilled
from research_rag.memory.store import MemoryStore, SymbolEntry, mine_symbols
from research_rag.types import MemoryEntry


def _entry(entry_id: str, session_id: str, prompt: str, response: str) -> MemoryEntry:
    return MemoryEntry(
        id=entry_id,
        timestamp="2026-01-01T00:00:00+00:00",
        user_id="u1",
        session_id=session_id,
        mode="direct",
        prompt=prompt,
        response=response,
    )


def test_entries_are_kept_newest_first_per_session(tmp_path: Path) -> None:
    memory = MemoryStore(tmp_path)
    memory.save_entry(_entry("e1", "s1", "first", "one"))
    memory.save_entry(_entry("e2", "s2", "other", "two"))
    memory.save_entry(_entry("e3", "s1", "second", "three"))

    assert [entry.id for entry in memory.session_entries("s1")] == ["e3", "e1"]
    assert [entry.id for entry in memory.session_entries("s1", limit=1)] == ["e3"]
    assert memory.session_entries("missing") == []


def test_summary_defaults_to_empty_and_overwrites(tmp_path: Path) -> None:
    memory = MemoryStore(tmp_path)

    assert memory.get_session_summary("s1") == ""
    memory.set_session_summary("s1", "first")
    memory.set_session_summary("s1", "second")
    memory.set_session_summary("s2", "other")

    assert memory.get_session_summary("s1") == "second"
    assert MemoryStore(tmp_path).get_session_summary("s2") == "other"


def test_unreadable_memory_file_is_treated_as_empty(tmp_path: Path) -> None:
    (tmp_path / "memory.json").write_text("{not json", encoding="utf-8")
    memory = MemoryStore(tmp_path)

    assert memory.load_entries() == []
    memory.save_entry(_entry("e1", "s1", "p", "r"))
    assert [entry.id for entry in memory.load_entries()] == ["e1"]


def test_mine_symbols_counts_runs_of_four_or_more() -> None:
    symbols = mine_symbols("a ==== b ---- c ==== d --- e <<<<>>>>")

    assert symbols[0] == SymbolEntry(pattern="====", occurrences=2)
    assert {entry.pattern for entry in symbols} == {"====", "----", "<<<<>>>>"}
    assert mine_symbols("x" * 20) == []
    assert len(mine_symbols(" ".join("#" * n for n in range(4, 70)), top_n=5)) == 5


def test_symbol_dictionary_round_trip(tmp_path: Path) -> None:
    memory = MemoryStore(tmp_path)
    assert memory.load_symbol_dictionary() == []

    memory.save_symbol_dictionary([SymbolEntry("////", 3, meaning="section break")])

    assert memory.load_symbol_dictionary() == [SymbolEntry("////", 3, meaning="section break")]


def test_distill_text_extracts_facts_and_entities() -> None:
    text = (
        "We observe that deposits are late. The weather was nice! "
        "Therefore the Tenant Union filed. Thus the Supreme Court agreed. "
        "東京地方裁判所 ruled."
    )

    distilled = distill_text(text)

    assert distilled.facts == [
        "We observe that deposits are late.",
        "Therefore the Tenant Union filed.",
        "Thus the Supreme Court agreed.",
    ]
    assert "Tenant Union" in distilled.entities
    assert "Supreme Court" in distilled.entities
    assert "東京地方裁判所" in distilled.entities
    assert len(distilled.entities) == len(set(distilled.entities))


def test_extract_distilled_reads_session_history(tmp_path: Path) -> None:
    memory = MemoryStore(tmp_path)
    memory.save_entry(_entry("e1", "s1", "question", "The evidence supports Harbor Point."))
    memory.save_entry(_entry("e2", "s2", "question", "Thus Elsewhere matters."))

    distilled = extract_distilled(memory, "s1")

    assert distilled.facts == ["The evidence supports Harbor Point."]
    assert "Harbor Point" in distilled.entities
    assert "Elsewhere" not in distilled.entities
    assert distilled.as_header().startswith("Known facts:\n- The evidence")


def test_empty_history_renders_empty_header(tmp_path: Path) -> None:
    assert extract_distilled(MemoryStore(tmp_path), "nobody").as_header() == ""


def test_symbol_dictionary_skips_corrupt_occurrences(tmp_path: Path) -> None:
    memory = MemoryStore(tmp_path)
    memory.symbols_path.write_text(
        json.dumps(
            {
                "symbols": [
                    {"pattern": "====", "occurrences": "many"},
                    {"pattern": "////", "occurrences": 2},
                    {"pattern": "####", "occurrences": None},
                ]
            }
        ),
        encoding="utf-8",
    )

    assert memory.load_symbol_dictionary() == [SymbolEntry("////", 2)]


def test_distill_text_keeps_repeated_facts() -> None:
    assert distill_text("Thus rent is due. Thus rent is due.").facts == [
        "Thus rent is due.",
        "Thus rent is due.",
    ]


def test_distill_text_caps_facts_and_entities() -> None:
    facts = distill_text(" ".join(f"Thus item {n} holds." for n in range(60))).facts
    assert len(facts) == 50
    assert facts[-1] == "Thus item 49 holds."

    names = [f"Zed{a}{b}" for a in "abcdefghij" for b in "abcdefghijkl"]
    entities = distill_text(". ".join(names) + ".").entities
    assert len(names) == 120
    assert entities == names[:100]


def test_extract_distilled_only_reads_newest_history_window(tmp_path: Path) -> None:
    memory = MemoryStore(tmp_path)
    entries = [_entry("newest", "s1", "q", "The court follows Newest Ruling, therefore it applies.")]
    entries += [_entry(f"e{n}", "s1", "q", "noted") for n in range(499)]
    entries.append(_entry("oldest", "s1", "q", "The court follows Oldest Ruling, therefore it applies."))
    memory.memory_path.write_text(
        json.dumps({"entries": [asdict(entry) for entry in entries]}), encoding="utf-8"
    )

    distilled = extract_distilled(memory, "s1")

    assert distilled.facts == ["The court follows Newest Ruling, therefore it applies."]
    assert "Newest Ruling" in distilled.entities
    assert "Oldest Ruling" not in distilled.entities
