"""Session label validation and layering (system < environment < explicit)."""

from __future__ import annotations

import os
import platform
import re
import socket
from collections.abc import Mapping

from aiobs.errors import InvalidLabelKey, LabelValueTooLong, ReservedLabelKey, TooManyLabels

SDK_VERSION = "0.1.0"

LABEL_KEY_PATTERN = re.compile(r"^[a-z][a-z0-9_]{0,62}$")
LABEL_VALUE_MAX_LENGTH = 256
LABEL_MAX_COUNT = 64
LABEL_RESERVED_PREFIX = "aiobs_"
LABEL_ENV_PREFIX = "AIOBS_LABEL_"


def is_reserved(key: str) -> bool:
    return key.startswith(LABEL_RESERVED_PREFIX)


def user_label_count(labels: Mapping[str, str]) -> int:
    """Number of labels that count towards the cap (system labels are exempt)."""
    return sum(1 for key in labels if not is_reserved(key))


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_key(key: str) -> None:
    if not isinstance(key, str):
        raise InvalidLabelKey(f"Label key must be a string, got {type(key).__name__}")
    if is_reserved(key):
        raise ReservedLabelKey(f"Label key '{key}' uses reserved prefix '{LABEL_RESERVED_PREFIX}'")
    if not LABEL_KEY_PATTERN.match(key):
        raise InvalidLabelKey(
            f"Label key '{key}' is invalid. Keys must match pattern {LABEL_KEY_PATTERN.pattern}"
        )


def validate_value(value: str, key: str = "") -> None:
    if not isinstance(value, str):
        raise TypeError(f"Label value for '{key}' must be a string, got {type(value).__name__}")
    if len(value) > LABEL_VALUE_MAX_LENGTH:
        raise LabelValueTooLong(
            f"Label value for '{key}' exceeds maximum length of {LABEL_VALUE_MAX_LENGTH} characters"
        )


def validate_labels(labels: Mapping[str, str]) -> None:
    if len(labels) > LABEL_MAX_COUNT:
        raise TooManyLabels(f"Too many labels ({len(labels)}). Maximum allowed is {LABEL_MAX_COUNT}.")
    for key, value in labels.items():
        validate_key(key)
        validate_value(value, key)


def check_label_cap(labels: Mapping[str, str]) -> None:
    count = user_label_count(labels)
    if count > LABEL_MAX_COUNT:
        raise TooManyLabels(f"Too many labels ({count}). Maximum allowed is {LABEL_MAX_COUNT}.")


# ---------------------------------------------------------------------------
# Label sources
# ---------------------------------------------------------------------------

def system_labels() -> dict[str, str]:
    return {
        f"{LABEL_RESERVED_PREFIX}sdk_version": SDK_VERSION,
        f"{LABEL_RESERVED_PREFIX}python_version": platform.python_version(),
        f"{LABEL_RESERVED_PREFIX}hostname": socket.gethostname()[:LABEL_VALUE_MAX_LENGTH],
        f"{LABEL_RESERVED_PREFIX}os": platform.system().lower(),
    }


def environment_labels(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Labels from ``AIOBS_LABEL_*`` variables, key lower-cased and value truncated."""
    environ = os.environ if environ is None else environ
    labels: dict[str, str] = {}
    for name, value in environ.items():
        if not name.startswith(LABEL_ENV_PREFIX) or not value:
            continue
        key = name[len(LABEL_ENV_PREFIX):].lower()
        if LABEL_KEY_PATTERN.match(key) and not is_reserved(key):
            labels[key] = value[:LABEL_VALUE_MAX_LENGTH]
    return labels


def merge_labels(*layers: Mapping[str, str] | None) -> dict[str, str]:
    """Right-biased merge: a later layer wins on key collision."""
    merged: dict[str, str] = {}
    for layer in layers:
        if layer:
            merged.update(layer)
    return merged
