from collections import Counter
import re
from typing import Dict, List, Mapping, Set, Tuple

# printf-style runtime tokens: %s, %d, %.2f, %1$s, %-5d, %ld, %@, %%
PLACEHOLDER_REGEX = re.compile(r'%(?:\d+\$)?[-+0#]*\d*(?:\.\d+)?(?:ll|l|h)?[diouxXeEfFgGaAcsp@%]')

# A flat JSON object whose values are all strings.
LOCALIZATION_SCHEMA = {
    "type": "object",
    "additionalProperties": {"type": "string"}
}


def check_key_coverage(base_keys: Set[str], target_keys: Set[str]) -> Tuple[Set[str], Set[str]]:
    """
    Compares the keys of a language snapshot against the resource set.

    Args:
        base_keys: The keys of the source resource set.
        target_keys: The keys of a language snapshot.

    Returns:
        A tuple containing two sets:
        - missing_keys: Keys present in the resources but missing from the snapshot.
        - extra_keys: Keys present in the snapshot but absent from the resources.
    """
    missing_keys = base_keys - target_keys
    extra_keys = target_keys - base_keys
    return missing_keys, extra_keys


def extract_placeholders(text: str) -> List[str]:
    """Return the printf-style placeholders of ``text`` in order of appearance."""
    return PLACEHOLDER_REGEX.findall(text)


def check_placeholder_parity(base_string: str, target_string: str) -> bool:
    """
    Checks that a translation carries the same placeholders as its source.
    Reordering is allowed; a missing, extra or altered token is not.

    Args:
        base_string: The source text.
        target_string: The translated text.

    Returns:
        True if both strings hold the same multiset of placeholders.
    """
    return Counter(extract_placeholders(base_string)) == Counter(extract_placeholders(target_string))


def find_placeholder_mismatches(
        source_translations: Mapping[str, str],
        translated: Mapping[str, str]
) -> Dict[str, Tuple[List[str], List[str]]]:
    """
    Collect the keys whose translation does not preserve the source placeholders.

    Only keys present in both mappings are checked.

    Returns:
        Mapping of key to (source placeholders, translated placeholders).
    """
    mismatches = {}
    for key, source_value in source_translations.items():
        if key not in translated:
            continue
        if not check_placeholder_parity(source_value, translated[key]):
            mismatches[key] = (extract_placeholders(source_value), extract_placeholders(translated[key]))
    return mismatches
