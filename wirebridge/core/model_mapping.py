"""Model name resolution.

Resolution runs in strict priority order:

1. a fixed override model (forced by the deployment, e.g. an OAuth backend
   that only serves one model),
2. the first mapping rule that matches, in declaration order,
3. the mapping table's ``default_model``,
4. the caller-supplied external default,
5. the requested model unchanged.

Tables are immutable; ``ModelResolver.reload`` swaps the whole table so a
resolution in flight never sees a half-updated rule list.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

logger = logging.getLogger("wirebridge")


class MatchType(str, Enum):
    CONTAINS = "contains"
    EXACT = "exact"
    PREFIX = "prefix"
    SUFFIX = "suffix"


@dataclass(frozen=True)
class ModelMappingRule:
    """A single pattern -> target rewrite.

    ``match_type`` is kept as the raw string from config so that an unknown
    value can be skipped at resolution time instead of failing the load.
    """

    pattern: str
    target: str
    match_type: str = MatchType.CONTAINS.value

    def matches(self, model: str) -> Optional[bool]:
        """Return the match result, or None when the match type is unknown."""
        if self.match_type == MatchType.CONTAINS.value:
            return self.pattern in model
        if self.match_type == MatchType.EXACT.value:
            return model == self.pattern
        if self.match_type == MatchType.PREFIX.value:
            return model.startswith(self.pattern)
        if self.match_type == MatchType.SUFFIX.value:
            return model.endswith(self.pattern)
        return None


@dataclass(frozen=True)
class ModelMappingTable:
    rules: tuple[ModelMappingRule, ...] = ()
    default_model: Optional[str] = None

    def __len__(self) -> int:
        return len(self.rules)


EMPTY_TABLE = ModelMappingTable()


@dataclass(frozen=True)
class ResolutionMode:
    """Deployment-level inputs to model resolution.

    Attributes:
        fixed_model: When set, every request is sent to this model.
        external_default: Fallback used when neither a rule nor the table
            default applies (the ``--model`` launcher flag).
    """

    fixed_model: Optional[str] = None
    external_default: Optional[str] = None


@dataclass(frozen=True)
class Resolution:
    model: str
    source: str
    rule: Optional[ModelMappingRule] = field(default=None, compare=False)

    @property
    def label(self) -> str:
        if self.rule is None:
            return self.source
        return f"rule {self.rule.match_type}:{self.rule.pattern}"


class ModelResolver:
    """Resolves incoming model identifiers against a mapping table."""

    def __init__(
        self,
        table: Optional[ModelMappingTable] = None,
        fixed_model: Optional[str] = None,
    ) -> None:
        self._table = table if table is not None else EMPTY_TABLE
        self.fixed_model = fixed_model

    @property
    def table(self) -> ModelMappingTable:
        return self._table

    def reload(self, table: ModelMappingTable) -> None:
        """Replace the mapping table in one reference assignment."""
        self._table = table
        logger.info(
            "Model mapping table reloaded: %d rules, default_model=%s",
            len(table),
            table.default_model,
        )

    def describe(
        self,
        requested_model: str,
        external_default: Optional[str] = None,
        fixed_model: Optional[str] = None,
    ) -> Resolution:
        """Resolve and report which step of the chain decided."""
        fixed = fixed_model or self.fixed_model
        if fixed:
            return Resolution(fixed, "fixed")

        table = self._table
        for rule in table.rules:
            matched = rule.matches(requested_model)
            if matched is None:
                logger.warning(
                    "Unknown mapping type %r for pattern %r; rule skipped",
                    rule.match_type,
                    rule.pattern,
                )
                continue
            if matched:
                return Resolution(rule.target, "rule", rule)

        if table.default_model:
            return Resolution(table.default_model, "table_default")
        if external_default:
            return Resolution(external_default, "external_default")
        return Resolution(requested_model, "passthrough")

    def resolve(
        self,
        requested_model: str,
        external_default: Optional[str] = None,
    ) -> str:
        return self.describe(requested_model, external_default).model

    def resolve_with_mode(self, requested_model: str, mode: ResolutionMode) -> Resolution:
        return self.describe(
            requested_model,
            external_default=mode.external_default,
            fixed_model=mode.fixed_model,
        )
