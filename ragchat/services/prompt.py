# =============================================================================
# Prompt Assembler - Reference Text → System Prompt
# =============================================================================
#
# Retrieved chunks are joined into one reference block and interpolated into
# the <reference> slot of a fixed instruction template. With no reference
# material the template switches to a variant that tells the model so,
# instead of sending an empty slot.
# =============================================================================

from __future__ import annotations

from collections.abc import Sequence

from ragchat.services.vectorstore import SimilarityMatch

SYSTEM_PROMPT_TEMPLATE = (
    "You are a helpful assistant for a component library's documentation.\n\n"
    "Rules:\n"
    "- Answer using the reference material below whenever it is relevant\n"
    "- Prefer code examples taken from the reference material\n"
    "- If the reference material does not cover the question, say so and "
    "answer from general knowledge, marking it as such\n"
    "- Never invent API names, props, or options that are not in the "
    "reference material\n\n"
    "<reference>\n{reference}\n</reference>"
)

NO_REFERENCE_PROMPT = (
    "You are a helpful assistant for a component library's documentation.\n\n"
    "No reference material matched this question. Answer from general "
    "knowledge, say clearly that the answer is not based on the "
    "documentation, and never invent API names, props, or options."
)


def format_references(matches: Sequence[SimilarityMatch]) -> str | None:
    """Join match contents, best first, one per line. None when empty."""
    if not matches:
        return None
    return "\n".join(match.content for match in matches)


def build_system_prompt(reference_text: str | None) -> str:
    """
    Build the system instruction for one chat request.

    A None or whitespace-only `reference_text` yields the no-reference
    variant; this function never raises.
    """
    if reference_text is None or not reference_text.strip():
        return NO_REFERENCE_PROMPT
    # str.replace, not str.format: reference text may contain braces
    return SYSTEM_PROMPT_TEMPLATE.replace("{reference}", reference_text)
