"""Prompt management for fact extraction and memory merge decisions."""

import json
import logging
from datetime import date
from pathlib import Path
from string import Template
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

FACT_RETRIEVAL = "fact_retrieval"
UPDATE_MEMORY = "update_memory"
UPDATE_MEMORY_REQUEST = "update_memory_request"

_FACT_RETRIEVAL_TEMPLATE = """You are a Personal Information Organizer. Extract relevant facts, memories, and preferences from conversations into distinct, manageable facts.

Information Types: Personal preferences, details (names, relationships, dates), plans, activities, health/wellness, professional, miscellaneous.

CRITICAL Rules:
1. TEMPORAL: ALWAYS extract time info (dates, relative refs like "yesterday", "last week"). Include in facts.
2. COMPLETE: Extract self-contained facts with who/what/when/where when available.
3. SEPARATE: Extract distinct facts separately.

Rules:
- Today: $today
- Return JSON: {"facts": ["fact1", "fact2"]}
- Extract from user/assistant messages only
- If no relevant facts, return empty list
- Preserve input language

Extract facts from the conversation below:"""

_UPDATE_MEMORY_TEMPLATE = """You are a memory manager. Compare new facts with existing memory. Decide: ADD, UPDATE, DELETE, or NONE.

Operations:
1. ADD: New info not in memory -> add with new ID
2. UPDATE: Info exists but different/enhanced -> update (keep same ID). Prefer fact with most information.
3. DELETE: Contradictory info -> delete (use sparingly)
4. NONE: Already present or irrelevant -> no change

Temporal Rules (CRITICAL):
- New fact has time info, memory doesn't -> UPDATE memory to include time
- Both have time, new is more specific/recent -> UPDATE to new time
- Time conflicts -> UPDATE to more recent
- Preserve relative time refs

Important: Use existing IDs only. Keep same ID when updating. Always preserve temporal information.
"""

_UPDATE_MEMORY_REQUEST_TEMPLATE = """$instructions

$current_memory
New facts:
```
$new_facts```

Return JSON only:
{
  "memory": [
    {
      "id": "<existing ID for update/delete, new ID for add>",
      "text": "<memory content>",
      "event": "ADD|UPDATE|DELETE|NONE",
      "old_memory": "<old content, required for UPDATE>"
    }
  ]
}
"""


class PromptManager:
    """Manager for LLM prompts and templates.

    Templates are looked up in ``templates_dir`` (``<name>.txt``) first and
    fall back to the built-in set.
    """

    def __init__(self, templates_dir: Optional[str] = None):
        """Initialize prompt manager.

        Args:
            templates_dir: Optional directory containing template overrides
        """
        self.templates_dir = Path(templates_dir) if templates_dir else None
        self._template_cache: Dict[str, str] = {}
        self._builtin_templates = {
            FACT_RETRIEVAL: _FACT_RETRIEVAL_TEMPLATE,
            UPDATE_MEMORY: _UPDATE_MEMORY_TEMPLATE,
            UPDATE_MEMORY_REQUEST: _UPDATE_MEMORY_REQUEST_TEMPLATE,
        }

    def get_prompt(self, template_name: str, **kwargs) -> str:
        """Get a formatted prompt from a template.

        Args:
            template_name: Name of the template
            **kwargs: Variables to substitute in the template

        Returns:
            Formatted prompt string
        """
        try:
            template = Template(self._get_template_content(template_name))
            safe_kwargs = {key: "" if value is None else str(value) for key, value in kwargs.items()}
            return template.safe_substitute(**safe_kwargs)
        except Exception as e:
            logger.error(f"Error formatting prompt template '{template_name}': {e}")
            raise ValueError(f"Error formatting prompt template: {e}")

    def _get_template_content(self, template_name: str) -> str:
        if template_name in self._template_cache:
            return self._template_cache[template_name]

        if self.templates_dir is not None:
            template_file = self.templates_dir / f"{template_name}.txt"
            if template_file.exists():
                try:
                    content = template_file.read_text(encoding="utf-8")
                    self._template_cache[template_name] = content
                    return content
                except OSError as e:
                    logger.warning(f"Error reading template file '{template_file}': {e}")

        if template_name in self._builtin_templates:
            content = self._builtin_templates[template_name]
            self._template_cache[template_name] = content
            return content

        raise ValueError(f"Template '{template_name}' not found")

    def fact_retrieval_prompt(self, custom_prompt: Optional[str] = None) -> str:
        """System prompt for atomic fact extraction."""
        if custom_prompt and custom_prompt.strip():
            return custom_prompt
        return self.get_prompt(FACT_RETRIEVAL, today=date.today().isoformat())

    def memory_update_prompt(
        self,
        retrieved_old_memory: List[Dict[str, Any]],
        new_facts: List[str],
        custom_prompt: Optional[str] = None,
    ) -> str:
        """Prompt asking for ADD/UPDATE/DELETE/NONE decisions.

        Args:
            retrieved_old_memory: Existing candidates as ``{"id", "text"}`` with temporary ids
            new_facts: Newly extracted facts
            custom_prompt: Optional replacement for the decision instructions

        Returns:
            Formatted prompt string
        """
        instructions = custom_prompt if custom_prompt and custom_prompt.strip() else self.get_prompt(UPDATE_MEMORY)
        if retrieved_old_memory:
            current = "Current memory:\n```\n" + json.dumps(retrieved_old_memory, ensure_ascii=False) + "\n```\n"
        else:
            current = "Current memory is empty.\n"
        facts = "".join(f"- {fact}\n" for fact in new_facts if fact and fact.strip())
        return self.get_prompt(
            UPDATE_MEMORY_REQUEST,
            instructions=instructions.rstrip(),
            current_memory=current,
            new_facts=facts,
        )
