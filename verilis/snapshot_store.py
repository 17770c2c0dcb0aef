"""Load, prune and persist the per-language translation snapshots."""
import json
import os
import stat
import tempfile
from typing import Dict, Mapping, Optional, Tuple

import jsonschema

from verilis.errors import SnapshotLoadError
from verilis.logging_config import get_logger
from verilis.translation_validator import LOCALIZATION_SCHEMA, check_key_coverage

logger = get_logger("snapshots")

SNAPSHOT_SUFFIX = '.json'


def snapshot_path(output_dir: str, language: str) -> str:
    """Path of the snapshot file for ``language``."""
    return os.path.join(output_dir, f"{language}{SNAPSHOT_SUFFIX}")


def prune_stale_keys(snapshot: Mapping[str, str], resource: Mapping[str, str]) -> Tuple[Dict[str, str], set]:
    """
    Drop snapshot keys that no longer exist in the resource set.

    Returns:
        The pruned copy of the snapshot and the set of removed keys.
    """
    _, extra_keys = check_key_coverage(set(resource.keys()), set(snapshot.keys()))
    pruned = {key: value for key, value in snapshot.items() if key not in extra_keys}
    return pruned, extra_keys


def read_snapshot(output_dir: str, language: str) -> Optional[Dict[str, str]]:
    """
    Read a snapshot file as-is.

    Returns:
        The stored mapping, or None if the language has never been written.

    Raises:
        SnapshotLoadError: If the file exists but is not a flat JSON object of strings.
    """
    path = snapshot_path(output_dir, language)
    if not os.path.exists(path):
        return None

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as json_exc:
        raise SnapshotLoadError(language, path, f"invalid JSON ({json_exc})") from json_exc
    except (OSError, UnicodeDecodeError) as read_exc:
        raise SnapshotLoadError(language, path, str(read_exc)) from read_exc

    try:
        jsonschema.validate(instance=data, schema=LOCALIZATION_SCHEMA)
    except jsonschema.ValidationError as schema_exc:
        raise SnapshotLoadError(language, path, schema_exc.message) from schema_exc
    return data


def load_snapshot(output_dir: str, language: str, resource: Mapping[str, str]) -> Dict[str, str]:
    """
    Load the snapshot of ``language`` reconciled against the current resources.

    A missing file yields an empty snapshot. Keys absent from ``resource`` are
    removed before the snapshot is returned.

    Raises:
        SnapshotLoadError: If an existing file cannot be parsed.
    """
    stored = read_snapshot(output_dir, language)
    if stored is None:
        logger.debug("No existing snapshot for '%s'", language)
        return {}

    snapshot, removed = prune_stale_keys(stored, resource)
    if removed:
        logger.info("Pruned %d stale key(s) from the '%s' snapshot: %s",
                    len(removed), language, ', '.join(sorted(removed)))
    return snapshot


def _snapshot_mode(path: str) -> int:
    """Mode for a new snapshot file: that of the file it replaces, else 0666 minus the umask."""
    try:
        return stat.S_IMODE(os.stat(path).st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


def save_snapshot(output_dir: str, language: str, snapshot: Mapping[str, str]) -> str:
    """
    Atomically replace the snapshot file of ``language``.

    The content is written to a temporary file in the output directory and
    moved over the old file, so readers never observe a half-written snapshot.

    Returns:
        The path of the written file.
    """
    os.makedirs(output_dir, exist_ok=True)
    path = snapshot_path(output_dir, language)

    temp_file_path = None
    try:
        with tempfile.NamedTemporaryFile(
                mode='w', encoding='utf-8', dir=output_dir, prefix=f".{language}.",
                suffix='.tmp', delete=False
        ) as temp_f:
            temp_file_path = temp_f.name
            json.dump(dict(snapshot), temp_f, ensure_ascii=False, indent=2, sort_keys=True)
            temp_f.write('\n')
        os.chmod(temp_file_path, _snapshot_mode(path))
        os.replace(temp_file_path, path)
        temp_file_path = None
    finally:
        if temp_file_path and os.path.exists(temp_file_path):
            try:
                os.remove(temp_file_path)
            except OSError as _e:
                logger.warning("Could not delete temporary snapshot file '%s': %s", temp_file_path, _e)

    logger.info("Saved translations to %s", path)
    return path
