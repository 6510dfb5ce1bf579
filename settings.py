
""" Texture packer settings. """

import json
import os
from typing import Any, Dict, List, Optional, Tuple

from backend.texture_classes import Configuration, MappingRule
from utils import log


def _as_bool(v) -> bool:
# Converts .json input (bool/int/str/None) to a real bool;
# Avoids the case where a non-empty string like "False" is treated as True.

    if isinstance(v, bool): return v
    if isinstance(v, str):
        input_str = v.strip().lower()
        if input_str == "": return False
        return input_str in ("1","true","yes","on")
    return bool(v)


def _as_int(v) -> Optional[int]:
# Converts .json input to an int; accepts whole floats and numeric strings, rejects bools.

    if isinstance(v, bool): return None
    if isinstance(v, int): return v
    if isinstance(v, float) and v.is_integer(): return int(v)
    if isinstance(v, str):
        try:
            return int(v.strip())
        except ValueError:
            return None
    return None




#                                           === Constants ===

DEFAULT_CONFIG_PATH: str = "config.json" # Read from the current working directory unless a path is passed via CLI.
DEFAULT_STABILITY_THRESHOLD_MS: int = 1000 # A file must be unmodified this long before add/change is reported.
DEFAULT_POLL_INTERVAL_MS: int = 100 # Interval between file stat checks while waiting for the file to settle.

CHANNEL_NAMES: Tuple[str, ...] = ("R", "G", "B") # Destination textures are 8-bit RGB; a rule channel indexes this tuple.




#                                           === Loading JSON file ===

def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> Configuration:
# Reads and validates the .json config. Any problem aborts the startup.
# Mapping rules keep their order from the file: the first rule matching a filename is the only one applied.

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config_data = json.load(f)
    except FileNotFoundError:
        log(f"Aborted: config file not found: {os.path.abspath(config_path)}", "error")
        raise SystemExit(1)
    except (OSError, json.JSONDecodeError) as error:
        log(f"Aborted: cannot read config '{config_path}': {error}", "error")
        raise SystemExit(1)

    if not isinstance(config_data, dict):
        log(f"Aborted: config '{config_path}' must be a JSON object.", "error")
        raise SystemExit(1)


# Assigning config values:
    source_path: str = _require_path(config_data, "sourcePath", must_exist = True) # Watched from startup on, so it has to be there.
    dest_path: str = _require_path(config_data, "destPath")
    mapping: List[MappingRule] = _parse_mapping(config_data.get("mapping"))

    stability_ms = _as_int(config_data.get("stabilityThreshold", DEFAULT_STABILITY_THRESHOLD_MS))
    poll_ms = _as_int(config_data.get("pollInterval", DEFAULT_POLL_INTERVAL_MS))
    if stability_ms is None or stability_ms < 0 or poll_ms is None or poll_ms <= 0:
        log("Warning: invalid stabilityThreshold/pollInterval. Using defaults.", "warn")
        stability_ms, poll_ms = DEFAULT_STABILITY_THRESHOLD_MS, DEFAULT_POLL_INTERVAL_MS

    return Configuration(
        source_path = source_path,
        dest_path = dest_path,
        mapping = mapping,
        stability_threshold = stability_ms / 1000.0,
        poll_interval = poll_ms / 1000.0,
        show_details = _as_bool(config_data.get("showDetails", False)),
    )


def _require_path(config_data: Dict[str, Any], key: str, must_exist: bool = False) -> str:
# Returns an absolute, normalized root path; trailing slashes are dropped.

    value = config_data.get(key)
    if not isinstance(value, str) or not value.strip():
        log(f"Aborted: '{key}' is missing or empty in config.", "error")
        raise SystemExit(1)
    path = os.path.abspath(os.path.normpath(value.strip().rstrip("/\\") or value.strip()))
    if must_exist and not os.path.isdir(path):
        log(f"Aborted: '{key}' is not an existing directory: {path}", "error")
        raise SystemExit(1)
    return path


def _parse_mapping(raw_mapping: Any) -> List[MappingRule]:

    if not isinstance(raw_mapping, list):
        log("Aborted: 'mapping' must be a list of rules.", "error")
        raise SystemExit(1)

    rules: List[MappingRule] = []
    for index, entry in enumerate(raw_mapping):
        if not isinstance(entry, dict):
            log(f"Aborted: mapping[{index}] must be an object.", "error")
            raise SystemExit(1)

        source = entry.get("source")
        dest = entry.get("dest")
        if not isinstance(source, str) or not source:
            log(f"Aborted: mapping[{index}] has no 'source' pattern.", "error")
            raise SystemExit(1)
        if not isinstance(dest, str) or not dest.strip():
            log(f"Aborted: mapping[{index}] has no 'dest' name.", "error")
            raise SystemExit(1)

        size = _as_int(entry.get("size"))
        if size is None or size <= 0:
            log(f"Aborted: mapping[{index}] ('{source}') needs a positive integer 'size'.", "error")
            raise SystemExit(1)

        channel: Optional[int] = None
        if entry.get("channel") is not None:
            channel = _as_int(entry["channel"])
            if channel is None:
                log(f"Aborted: mapping[{index}] ('{source}') has a non-integer 'channel'.", "error")
                raise SystemExit(1)
            if channel not in range(len(CHANNEL_NAMES)):
                log(f"Warning: mapping[{index}] ('{source}') channel {channel} is outside 0-2; the rule will be ignored.", "warn")

        rules.append(MappingRule(source=source, dest=dest.strip(), size=size, channel=channel))

    return rules
