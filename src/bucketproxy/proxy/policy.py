"""Metadata-driven access rules for served objects."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

import structlog

from .backend import ObjectAttributes

LOGGER = structlog.get_logger("bucketproxy.policy")


class BlockRuleError(Exception):
    """Raised when the configured block rule is not of the form ``key:value``."""

    status_code = 500


@dataclass(frozen=True)
class BlockRule:
    key: str
    value: str


@dataclass
class EvaluationResult:
    blocked: bool
    reason: Optional[str] = None


def parse_block_rule(raw: str) -> Optional[BlockRule]:
    if raw == "":
        return None
    parts = raw.split(":")
    if len(parts) != 2:
        raise BlockRuleError(f"unexpected block-if argument: {raw}")
    return BlockRule(key=parts[0].lower(), value=parts[1])


def parse_passthrough(raw: str) -> Dict[str, str]:
    """Map each exposed metadata key, lowercased, to the spelling it was configured with."""

    keys: Dict[str, str] = {}
    for item in raw.split(","):
        item = item.strip()
        if item:
            keys[item.lower()] = item
    return keys


class AccessPolicy:
    """Decides whether an object must be hidden from clients.

    A malformed rule does not prevent the service from starting; it is kept and
    raised again for every object evaluated, so each affected request fails with
    a server error naming the configured value.
    """

    def __init__(self, rule: Optional[BlockRule], error: Optional[BlockRuleError] = None) -> None:
        self._rule = rule
        self._error = error

    @classmethod
    def from_config(cls, raw: str) -> "AccessPolicy":
        try:
            return cls(parse_block_rule(raw))
        except BlockRuleError as exc:
            LOGGER.warning("block_rule_invalid", block_if=raw, error=str(exc))
            return cls(None, exc)

    @property
    def rule(self) -> Optional[BlockRule]:
        return self._rule

    def evaluate(self, attributes: ObjectAttributes) -> EvaluationResult:
        if self._error is not None:
            raise BlockRuleError(str(self._error))
        if self._rule is None:
            return EvaluationResult(False)
        if attributes.metadata.get(self._rule.key, "") == self._rule.value:
            return EvaluationResult(True, f"metadata {self._rule.key} matched block rule")
        return EvaluationResult(False)
