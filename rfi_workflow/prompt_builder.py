from __future__ import annotations

import json
from hashlib import sha256
from textwrap import dedent
from typing import Dict, List, Mapping, Sequence, Tuple

NOTE_STATUSES = (
    "Finding and recommendation",
    "Observation",
    "No issues",
    "RFI",
)


def _knowledge_base_json(knowledge_base: Sequence[Mapping[str, str]]) -> str:
    return json.dumps(
        [
            {
                "issue": entry.get("issue_text", ""),
                "client_response": entry.get("response_text", ""),
                "auditor_note": entry.get("note", ""),
            }
            for entry in knowledge_base
        ],
        ensure_ascii=False,
        indent=2,
    )


def compute_cache_key(knowledge_base: Sequence[Mapping[str, str]]) -> str:
    """Stable prompt cache key for a given knowledge base.

    Every batch of a run shares the same static prefix (instructions plus
    knowledge base), so requests with the same key can reuse the provider's
    prompt cache.
    """

    hash_value = sha256(_knowledge_base_json(knowledge_base).encode("utf-8")).hexdigest()
    return f"kb_{hash_value[:16]}"


def build_drafting_messages(
    knowledge_base: Sequence[Mapping[str, str]],
    pairs: Sequence[Tuple[str, str]],
) -> Tuple[List[Dict[str, str]], str]:
    """Compose chat messages asking for one auditor note per issue/response pair.

    Static content (instructions, knowledge base) is placed first and the
    batch last so the shared prefix stays cacheable.

    Returns:
        Tuple of (messages list, prompt_cache_key string)
    """

    statuses_text = "\n".join(f"- \"{status}\"" for status in NOTE_STATUSES)

    system_prompt = dedent(
        """
        You assist auditors of energy-efficiency installation jobs. An auditor identified
        an issue in an audited job and sent the client a request for information (RFI).
        The client replied. Assess whether each reply satisfactorily addresses its issue
        and write the auditor note for it.

        Each auditor note must start with exactly one of these statuses:
        {statuses}
        When the response does not satisfactorily address the issue, follow the status
        with a short explanation.

        Respond only with valid JSON, without markdown, matching this schema:
        {
          "notes": ["text"]
        }
        "notes" must contain exactly one note per client response, in the same order
        as the responses were given.
        """
    ).strip()
    system_prompt = system_prompt.replace("{statuses}", statuses_text)

    knowledge_prompt = dedent(
        """
        Previous RFIs with the client's response and the note the auditor wrote.
        Infer the patterns that link issues and responses to the auditor notes and
        stay consistent with them:

        {knowledge_base}
        """
    ).strip()
    knowledge_prompt = knowledge_prompt.replace(
        "{knowledge_base}", _knowledge_base_json(knowledge_base)
    )

    batch = [
        {"index": idx, "issue": issue, "client_response": response}
        for idx, (issue, response) in enumerate(pairs, start=1)
    ]
    data_prompt = dedent(
        """
        Write the auditor notes for these {count} client responses:

        {batch_json}
        """
    ).strip()
    data_prompt = data_prompt.replace("{count}", str(len(batch)))
    data_prompt = data_prompt.replace(
        "{batch_json}", json.dumps(batch, ensure_ascii=False, indent=2)
    )

    messages = [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": knowledge_prompt},
        {"role": "assistant", "content": "Understood. Send the client responses to assess."},
        {"role": "user", "content": data_prompt},
    ]

    return messages, compute_cache_key(knowledge_base)
