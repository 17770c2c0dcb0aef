"""Prompt text sent to the translation provider."""
import json
from typing import Mapping


def serialize_payload(resources: Mapping[str, str]) -> str:
    """Serialize a key -> text mapping as the JSON block embedded in a prompt."""
    return json.dumps(dict(resources), ensure_ascii=False)


def build_translation_prompt(target_language: str, payload_json: str) -> str:
    """
    Build the request asking the provider to translate the values of a JSON object.

    Args:
        target_language: Display name of the target language (e.g., "German").
        payload_json: The serialized key -> source text mapping.

    Returns:
        The full prompt text.
    """
    return f"""
There is a JSON object below. Translate every JSON value into {target_language}. The keys must stay exactly as they are: the set of keys in your answer must be identical to the set of keys in the input.
IMPORTANT: Only respond with the translated JSON object, nothing else (no explanations, no Markdown, no code fences).
When translating, if you encounter C-style formatting tokens (such as %s, %d, %.2f, etc.), do not alter them, and preserve any spaces or punctuation immediately before or after them. The placeholders are substituted at runtime and must keep working.
Examples:
Original: Hello, %s! -> Translation (Chinese): 你好，%s！
Original: You have %d new messages. -> Translation (Chinese): 你有 %d 条新消息。
json: {payload_json}"""


def build_repair_prompt(malformed_response: str) -> str:
    """Build the corrective request carrying a malformed response verbatim."""
    return (
        "Fix this JSON to make it valid. It must be a single JSON object whose values are all strings. "
        "Only return the fixed JSON with no explanation, no markdown formatting, no backticks: "
        f"{malformed_response}"
    )
