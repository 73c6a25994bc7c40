"""
Share metadata codec.

Share records are stored as JSON documents next to the share content
(".metadata" file or "shares/<share>/.metadata" object):

    {"version": 1, "name": "...", "owner": "...", "created": "...",
     "options": {"validity": 7, "exposure": "upload",
                 "description": "", "message": ""},
     "size": 0, "count": 0}

Records written before versioning was introduced have no "version" key and
keep validity and exposure at the top level. upgrade_record() turns them
into the current schema.
"""
import json
from typing import Any

from sharebox.storage.models import Options, Share

CURRENT_VERSION = 1
METADATA_NAME = ".metadata"

_OPTION_FIELDS = ("validity", "exposure", "description", "message")


def encode_share(share: Share) -> bytes:
    return share.model_dump_json(by_alias=True).encode("utf-8")


def decode_share(data: bytes | str) -> Share:
    return Share.model_validate_json(data)


def load_record(data: bytes | str) -> dict[str, Any]:
    """Parse a metadata document without validating it against Share."""
    record = json.loads(data)
    if not isinstance(record, dict):
        raise ValueError("Share metadata must be a JSON object")
    return record


def needs_upgrade(record: dict[str, Any]) -> bool:
    version = record.get("version")
    return not isinstance(version, int) or isinstance(version, bool) or version < 1


def upgrade_record(record: dict[str, Any], name: str = "") -> dict[str, Any]:
    """
    Upgrade a raw metadata record to the current schema.

    Version 0 (unversioned) records carry validity and exposure at the top
    level. They are moved into "options" unless the record already has
    non-empty options, missing option fields get their default values and
    the version is set to CURRENT_VERSION. Name, owner, creation date and
    aggregates are preserved. Current records are returned unchanged.

    Args:
        record: Decoded JSON metadata document
        name: Share name to use when the record does not carry one

    Returns:
        A record that validates as a current Share
    """
    if not needs_upgrade(record):
        return record

    options = record.get("options")
    if not isinstance(options, dict) or not any(options.values()):
        options = {
            key: record[key] for key in ("validity", "exposure") if record.get(key)
        }

    defaults = Options().model_dump(mode="json")
    upgraded_options = {
        key: options[key] if options.get(key) else defaults[key]
        for key in _OPTION_FIELDS
    }

    upgraded = {
        "version": CURRENT_VERSION,
        "name": record.get("name") or name,
        "owner": record.get("owner") or "",
        "options": upgraded_options,
        "size": record.get("size") or 0,
        "count": record.get("count") or 0,
    }
    if record.get("created"):
        upgraded["created"] = record["created"]

    return upgraded
