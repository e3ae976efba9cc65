"""PromptBuilder: renders profile data, field schema and retrieved context."""

from __future__ import annotations

import json
from typing import Mapping, Sequence

from pydantic import BaseModel

from fieldwise.ai.rag import ELLIPSIS, estimate_tokens
from fieldwise.core.config import PromptConfig
from fieldwise.matching.denylist import is_credential
from fieldwise.models.form import FieldSignature, FormSignature
from fieldwise.models.profile import Profile

SYSTEM_PROMPT = """You fill in web forms on the user's behalf using only the profile data and context provided.

RULES:
1. Respond with a single JSON object that maps field ids to string values, and nothing else
2. Include only fields you can fill with confidence
3. Never provide values for passwords, one-time codes, card security codes, or any other credential or security field
4. Match each value to the field's input type (a valid email address for email fields, digits for phone fields, YYYY-MM-DD for date fields)
5. Leave out any field you are unsure about
6. Use the field ids exactly as given

RESPONSE FORMAT:
{
  "field-id-1": "value",
  "field-id-2": "value"
}"""

CLOSING_INSTRUCTION = (
    "Using the profile data above, provide values for the form fields. "
    "Respond with only a JSON object mapping field ids to values."
)


class BuiltPrompt(BaseModel):
    system_prompt: str
    user_prompt: str
    estimated_tokens: int

    def messages(self) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": self.user_prompt},
        ]


class PromptBuilder:
    """Builds the chat prompt for generating values of unmapped fields."""

    def __init__(self, config: PromptConfig | None = None) -> None:
        self._config = config or PromptConfig()

    def build(
        self,
        profile: Profile,
        form: FormSignature,
        rag_context: Sequence[str] | None = None,
        max_tokens: int | None = None,
    ) -> BuiltPrompt:
        max_tokens = max_tokens or self._config.max_tokens

        user_prompt = (
            f"PROFILE DATA:\n{self._profile_section(profile)}\n\n"
            f"FORM FIELDS TO FILL:\n{self._schema_section(form.fields)}"
        )
        if rag_context:
            rag_section = "\nPrevious successful fills for similar forms:\n" + "\n".join(
                f"Example {i}: {text}" for i, text in enumerate(rag_context, start=1)
            )
            if estimate_tokens(user_prompt) + estimate_tokens(rag_section) < max_tokens:
                user_prompt += rag_section
        user_prompt += f"\n\n{CLOSING_INSTRUCTION}"

        return BuiltPrompt(
            system_prompt=SYSTEM_PROMPT,
            user_prompt=user_prompt,
            estimated_tokens=estimate_tokens(SYSTEM_PROMPT + user_prompt),
        )

    def build_minimal(
        self, fields: Sequence[FieldSignature], values: Mapping[str, str]
    ) -> BuiltPrompt:
        """Compact prompt for small forms: a field list and a flat value list."""
        field_lines = "\n".join(
            f"- {f.id}: {f.normalized_label} ({f.semantic_class})"
            for f in fields
            if not is_credential(f)
        )
        value_lines = "\n".join(f"{k}: {v}" for k, v in values.items())
        user_prompt = (
            f"Profile:\n{value_lines}\n\nFields:\n{field_lines}\n\n"
            "Return a JSON object mapping field ids to values."
        )
        system_prompt = "Fill form fields from the profile. Respond with JSON only."
        return BuiltPrompt(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            estimated_tokens=estimate_tokens(system_prompt + user_prompt),
        )

    def _profile_section(self, profile: Profile) -> str:
        limit = self._config.document_summary_chars
        lines = [
            f"{f.key}: {f.value}"
            for f in profile.static_context.fields
            if f.value and not f.is_encrypted
        ]
        for doc in profile.static_context.documents:
            if not doc.content:
                continue
            summary = doc.content[:limit]
            if len(doc.content) > limit:
                summary += ELLIPSIS
            lines.append(f"[{doc.type}] {doc.name}: {summary}")
        return "\n".join(lines)

    @staticmethod
    def _schema_section(fields: Sequence[FieldSignature]) -> str:
        schema = [
            {
                "id": f.id,
                "label": f.normalized_label,
                "type": str(f.input_type),
                "semanticClass": str(f.semantic_class),
                "placeholder": f.attributes.placeholder,
            }
            for f in fields
            if not is_credential(f)
        ]
        return json.dumps(schema, indent=2)
