from typing import NamedTuple

from clip_translate.config import SENTINEL_SEPARATOR


class PromptPair(NamedTuple):
    """A pair of system and user prompts for LLM translation."""
    system: str
    user: str


LANGUAGE_NAMES = {
    "zh-cn": "Simplified Chinese",
    "zh-tw": "Traditional Chinese",
    "zh": "Simplified Chinese",
    "en": "English",
    "ja": "Japanese",
    "ko": "Korean",
    "fr": "French",
    "de": "German",
    "es": "Spanish",
}


def language_name(code: str) -> str:
    """Human-readable name for a language code, falling back to the code."""
    return LANGUAGE_NAMES.get((code or "").lower(), code)


def _get_output_format_section(separator: str) -> str:
    return f"""# OUTPUT FORMAT

1. Output ONLY the translation. No explanations, notes, quotes or greetings.
2. If the input contains the separator "{separator}", it joins several independent texts.
   Return a JSON array of strings with EXACTLY one translated string per text, in the same order.
   Do not merge, split, drop or reorder texts. Do not include the separator in the output.
3. If the input contains no separator, return the plain translated text."""


def generate_page_translation_prompt(
    text: str,
    target_language: str,
    source_language: str = "en",
    separator: str = SENTINEL_SEPARATOR
) -> PromptPair:
    """
    Generate the prompt for translating web page text.

    Args:
        text: Text to translate (may be several texts joined by ``separator``)
        target_language: Target language code
        source_language: Source language code
        separator: Sentinel separator used to multiplex texts

    Returns:
        PromptPair: A named tuple with 'system' and 'user' prompts
    """
    source_name = language_name(source_language)
    target_name = language_name(target_language)

    system = f"""You are a professional translator. Translate web page text from {source_name} into {target_name}.

Keep numbers, URLs, code identifiers and brand names unchanged.
Keep the tone and register of the original.

{_get_output_format_section(separator)}"""

    return PromptPair(system=system, user=text)
