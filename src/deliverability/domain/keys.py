"""Store key builders. Keys are relative; store adapters add their namespace."""
from __future__ import annotations

from .value_objects import Category, Channel

RETRY_PREFIX = "retry:"


def quota_key(subject_id: str, category: Category) -> str:
    return f"limit:{subject_id}:{category.value}"


def abuse_key(subject_id: str, category: Category) -> str:
    return f"abuse:{subject_id}:{category.value}"


def suppression_key(channel: Channel, recipient: str) -> str:
    return f"suppression:{channel.value}:{recipient}"


def suppression_index_key(channel: Channel) -> str:
    return f"suppressed:{channel.value}"


def retry_key(channel: Channel, recipient: str, original_event_id: str) -> str:
    return f"{RETRY_PREFIX}{channel.value}:{recipient}:{original_event_id}"


def retry_job_id(channel: Channel, recipient: str, original_event_id: str, attempt_number: int) -> str:
    return f"{retry_key(channel, recipient, original_event_id)}:{attempt_number}"


def event_dedup_key(identity: str) -> str:
    return f"event:{identity}"
