"""Sequential, batched drafting of auditor notes for client responses."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, TypeVar

import yaml

from .errors import DraftCountMismatchError
from .llm_client import LLMClient
from .models import ResponseRecord
from .prompt_builder import build_drafting_messages

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

KnowledgeBase = Sequence[Mapping[str, str]]
Drafter = Callable[[KnowledgeBase, Sequence[Tuple[str, str]]], Sequence[str]]
ProgressCallback = Callable[[int, int], None]

_KB_ALIASES = {
    "issue_text": ("issue_text", "issuesIdentified", "issue"),
    "response_text": ("response_text", "acpResponse", "response"),
    "note": ("note", "auditorNotes", "auditor_note"),
}


def chunk(items: Sequence[T], size: int) -> List[Sequence[T]]:
    if size < 1:
        raise ValueError(f"Batch size must be positive; received {size}")
    return [items[start : start + size] for start in range(0, len(items), size)]


def draft_all(
    records: Sequence[ResponseRecord],
    batch_size: int,
    drafter: Drafter,
    knowledge_base: KnowledgeBase = (),
    on_progress: Optional[ProgressCallback] = None,
) -> List[ResponseRecord]:
    """Draft a note for every record, one batch at a time and in input order.

    Nothing is returned unless every batch succeeded: a drafter failure or a
    note count mismatch propagates immediately.
    """

    batches = chunk(list(records), batch_size)
    total = len(batches)
    notes: List[str] = []

    for index, batch in enumerate(batches, start=1):
        LOGGER.info("Drafting notes for batch %s/%s (%s responses)", index, total, len(batch))
        drafted = list(drafter(knowledge_base, [record.issue_pair for record in batch]))
        if len(drafted) != len(batch):
            raise DraftCountMismatchError(index, len(batch), len(drafted))
        notes.extend(drafted)
        if on_progress is not None:
            on_progress(index, total)

    return [record.with_note(note) for record, note in zip(records, notes)]


def _note_text(item: Any) -> str:
    if isinstance(item, str):
        return item
    if isinstance(item, dict):
        for key in _KB_ALIASES["note"]:
            if key in item:
                return str(item[key] or "")
    if item is None:
        return ""
    return str(item)


class LLMNoteDrafter:
    """Note drafter backed by :class:`LLMClient`."""

    def __init__(self, llm_client: LLMClient) -> None:
        self._llm = llm_client

    def __call__(
        self,
        knowledge_base: KnowledgeBase,
        pairs: Sequence[Tuple[str, str]],
    ) -> List[str]:
        messages, cache_key = build_drafting_messages(knowledge_base, pairs)
        payload = self._llm.generate(messages, prompt_cache_key=cache_key)

        notes = payload.get("notes")
        if not isinstance(notes, list):
            raise RuntimeError(f"LLM response has no 'notes' list: {payload}")
        return [_note_text(item) for item in notes]


def _normalize_entry(entry: Mapping[str, Any], position: int) -> Dict[str, str]:
    normalized: Dict[str, str] = {}
    for field_name, aliases in _KB_ALIASES.items():
        value = next((entry[key] for key in aliases if key in entry), None)
        normalized[field_name] = "" if value is None else str(value)
    if not normalized["issue_text"] or not normalized["response_text"]:
        raise ValueError(f"Knowledge base entry {position} needs an issue and a response")
    return normalized


def load_knowledge_base(path: str | Path) -> List[Dict[str, str]]:
    """Load prior issue/response/note examples from a YAML or JSON list."""

    kb_path = Path(path).expanduser().resolve()
    if not kb_path.exists():
        raise FileNotFoundError(f"Knowledge base file not found: {kb_path}")

    with kb_path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)

    if data is None:
        return []
    if not isinstance(data, list):
        raise ValueError(f"Knowledge base must be a list of entries: {kb_path}")

    entries = []
    for position, entry in enumerate(data, start=1):
        if not isinstance(entry, dict):
            raise ValueError(f"Knowledge base entry {position} is not a mapping")
        entries.append(_normalize_entry(entry, position))
    return entries
