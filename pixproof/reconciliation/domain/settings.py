"""Reconciliation rule set and settings.

Settings are immutable pydantic models. Updating them means building a new
instance (``merged``/``with_rule``) and swapping the reference, so a matching
run always sees one consistent snapshot.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from ...exceptions import ValidationError, wrap_exception
from .enums import AssignmentStrategy, RuleType
from .models import BankTransactionRecord, ReceiptRecord

if TYPE_CHECKING:
    from ...utils.config import Settings

CustomRuleLogic = Callable[[ReceiptRecord, BankTransactionRecord], tuple[float, str]]


class RuleTolerance(BaseModel):
    """Tolerance of a rule: percent for amount rules, hours for date rules."""

    model_config = ConfigDict(frozen=True)

    amount: float | None = Field(default=None, ge=0)
    date: float | None = Field(default=None, ge=0)


class ReconciliationRule(BaseModel):
    """One weighted comparison rule.

    Weights are relative (0-100) and need not sum to 100: the aggregator
    normalizes by the total weight of enabled rules.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str = Field(..., min_length=1)
    name: str
    enabled: bool = True
    weight: float = Field(..., ge=0, le=100)
    type: RuleType
    tolerance: RuleTolerance = Field(default_factory=RuleTolerance)
    custom_logic: CustomRuleLogic | None = Field(default=None, exclude=True, repr=False)

    @property
    def amount_tolerance(self) -> float:
        return self.tolerance.amount or 0.0

    @property
    def date_tolerance(self) -> float:
        return self.tolerance.date or 0.0


DEFAULT_RULES: tuple[ReconciliationRule, ...] = (
    ReconciliationRule(
        id="amount_exact",
        name="Exact Amount",
        weight=40,
        type=RuleType.AMOUNT,
        tolerance=RuleTolerance(amount=0),
    ),
    ReconciliationRule(
        id="amount_tolerance",
        name="Amount Within Tolerance",
        weight=35,
        type=RuleType.AMOUNT,
        tolerance=RuleTolerance(amount=2),  # 2% tolerance
    ),
    ReconciliationRule(
        id="date_exact",
        name="Exact Date/Time",
        weight=30,
        type=RuleType.DATE,
        tolerance=RuleTolerance(date=0),
    ),
    ReconciliationRule(
        id="date_tolerance",
        name="Date Within Tolerance",
        weight=25,
        type=RuleType.DATE,
        tolerance=RuleTolerance(date=48),  # 48 hours tolerance
    ),
    ReconciliationRule(id="name_exact", name="Exact Name", weight=20, type=RuleType.NAME),
    ReconciliationRule(id="name_similarity", name="Similar Name", weight=15, type=RuleType.NAME),
    ReconciliationRule(
        id="document_exact", name="Exact CPF/CNPJ", weight=10, type=RuleType.DOCUMENT
    ),
)


class ReconciliationSettings(BaseModel):
    """Thresholds and rule set used by one matching run.

    Field names also accept their camelCase aliases (``autoMatchThreshold``)
    so overrides coming from JSON clients can be passed through unchanged.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    auto_match_threshold: float = Field(default=70.0, ge=0, le=100)
    manual_review_threshold: float = Field(default=15.0, ge=0, le=100)
    rules: tuple[ReconciliationRule, ...] = DEFAULT_RULES
    enable_learning: bool = True
    strict_mode: bool = False
    assignment: AssignmentStrategy = AssignmentStrategy.GREEDY

    @model_validator(mode="after")
    def check_thresholds(self) -> ReconciliationSettings:
        if self.manual_review_threshold > self.auto_match_threshold:
            raise ValueError(
                "manual_review_threshold must not exceed auto_match_threshold "
                f"({self.manual_review_threshold} > {self.auto_match_threshold})"
            )
        return self

    @model_validator(mode="after")
    def check_unique_rule_ids(self) -> ReconciliationSettings:
        ids = [rule.id for rule in self.rules]
        duplicates = sorted({rule_id for rule_id in ids if ids.count(rule_id) > 1})
        if duplicates:
            raise ValueError(f"duplicate rule ids: {', '.join(duplicates)}")
        return self

    @property
    def enabled_rules(self) -> list[ReconciliationRule]:
        return [rule for rule in self.rules if rule.enabled]

    def get_rule(self, rule_id: str) -> ReconciliationRule | None:
        return next((rule for rule in self.rules if rule.id == rule_id), None)

    def merged(
        self, partial: Mapping[str, Any] | None = None, **changes: Any
    ) -> ReconciliationSettings:
        """Return a new settings object with the given fields replaced.

        Raises:
            ValidationError: If a field is unknown or a value is out of range
        """
        updates = {**(partial or {}), **changes}
        data = {name: getattr(self, name) for name in type(self).model_fields}
        for key, value in updates.items():
            data.pop(_field_name(key), None)
            data[key] = value
        try:
            return type(self).model_validate(data)
        except PydanticValidationError as e:
            raise wrap_exception(
                e,
                f"Invalid reconciliation settings: {e.errors()[0]['msg']}",
                exception_class=ValidationError,
                fields=", ".join(str(key) for key in updates),
            ) from e

    def with_rule(self, rule_id: str, **changes: Any) -> ReconciliationSettings:
        """Return a new settings object with one rule updated (enabled, weight, ...).

        Raises:
            ValidationError: If the rule does not exist or the change is invalid
        """
        rule = self.get_rule(rule_id)
        if rule is None:
            raise ValidationError(f"Unknown rule: {rule_id}", field="rules", value=rule_id)
        try:
            updated = ReconciliationRule.model_validate(
                {**{name: getattr(rule, name) for name in ReconciliationRule.model_fields}, **changes}
            )
        except PydanticValidationError as e:
            raise wrap_exception(
                e,
                f"Invalid change for rule {rule_id}: {e.errors()[0]['msg']}",
                exception_class=ValidationError,
                rule_id=rule_id,
            ) from e
        rules = tuple(updated if r.id == rule_id else r for r in self.rules)
        return self.merged(rules=rules)

    @classmethod
    def from_app_settings(cls, settings: Settings) -> ReconciliationSettings:
        """Build engine settings from the environment-driven application settings."""
        return cls(
            auto_match_threshold=settings.auto_match_threshold,
            manual_review_threshold=settings.manual_review_threshold,
            enable_learning=settings.enable_learning,
            strict_mode=settings.strict_mode,
            assignment=AssignmentStrategy(settings.assignment_strategy),
        )

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


def _field_name(key: str) -> str:
    """Map a camelCase alias back to its field name."""
    for name, info in ReconciliationSettings.model_fields.items():
        if key == info.alias:
            return name
    return key
