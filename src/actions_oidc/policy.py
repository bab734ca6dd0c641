"""Declarative allow/deny rules over workflow claims.

A :class:`Policy` is an ordered list of :class:`Rule` objects plus a
default. Rules are evaluated top to bottom and the first match decides.

Rule matching
-------------
Each rule has a :class:`Conditions` record with one tuple of glob patterns
per attribute (see :mod:`actions_oidc.matcher` for the pattern syntax).

- Only non-empty tuples are *active*.
- A rule matches when every active condition matches (AND).
- A condition matches when any of its patterns matches the claim (OR).
- The ``environment`` claim is optional: when a token carries none, an
  environment condition never matches, whatever its patterns are.

Example
-------

.. code-block:: python

    policy = Policy(
        rules=(
            Rule(
                name="no-pr-target",
                conditions=Conditions(event_name=("pull_request_target",)),
                effect="deny",
            ),
            Rule(
                name="deploy-from-main",
                conditions=Conditions(
                    repository=("myorg/*",),
                    ref=("refs/heads/main",),
                    event_name=("push", "workflow_dispatch"),
                ),
                effect="allow",
            ),
        ),
        default_deny=True,
    )
    validate_policy(policy)

Policies are immutable and validated once, at verifier construction, so
they can be shared across threads without locking.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, fields
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from .errors import PolicyError
from .matcher import match_any

if TYPE_CHECKING:
    from .claims import ActionsClaims


class Effect(StrEnum):
    """Outcome of a matching rule."""

    ALLOW = "allow"
    DENY = "deny"


@dataclass(frozen=True, slots=True)
class Conditions:
    """Per-attribute glob patterns a rule requires.

    Field order is evaluation order.
    """

    repository: tuple[str, ...] = ()
    repository_owner: tuple[str, ...] = ()
    repository_visibility: tuple[str, ...] = ()
    ref: tuple[str, ...] = ()
    ref_type: tuple[str, ...] = ()
    workflow: tuple[str, ...] = ()
    event_name: tuple[str, ...] = ()
    actor: tuple[str, ...] = ()
    environment: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        # Accept lists from callers but store tuples so the policy stays immutable.
        # A bare string is one pattern, not a sequence of one-character patterns.
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, str):
                value = (value,)
            object.__setattr__(self, f.name, tuple(value))

    def active(self) -> dict[str, tuple[str, ...]]:
        """Return the non-empty conditions keyed by claim name, in order."""
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name)}

    def matches(self, claims: ActionsClaims) -> bool:
        """Return True if ``claims`` satisfy every active condition."""
        if self.repository and not match_any(self.repository, claims.repository):
            return False

        if self.repository_owner and not match_any(
            self.repository_owner, claims.repository_owner
        ):
            return False

        if self.repository_visibility and not match_any(
            self.repository_visibility, claims.repository_visibility
        ):
            return False

        if self.ref and not match_any(self.ref, claims.ref):
            return False

        if self.ref_type and not match_any(self.ref_type, claims.ref_type):
            return False

        if self.workflow and not match_any(self.workflow, claims.workflow):
            return False

        if self.event_name and not match_any(self.event_name, claims.event_name):
            return False

        if self.actor and not match_any(self.actor, claims.actor):
            return False

        if self.environment:
            # Optional claim: absent never satisfies the condition
            if not claims.environment:
                return False
            if not match_any(self.environment, claims.environment):
                return False

        return True

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Conditions:
        """Build conditions from a mapping of claim name to pattern list.

        Raises:
            PolicyError: On unknown keys or non-string patterns.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise PolicyError("", f"unknown condition(s): {', '.join(unknown)}")

        values: dict[str, tuple[str, ...]] = {}
        for name, patterns in data.items():
            if patterns is None:
                continue
            if isinstance(patterns, str):
                patterns = [patterns]
            if not isinstance(patterns, Sequence) or not all(
                isinstance(p, str) for p in patterns
            ):
                raise PolicyError("", f"condition {name!r} must be a list of strings")
            values[name] = tuple(patterns)

        return cls(**values)


@dataclass(frozen=True, slots=True)
class Rule:
    """A named set of conditions with an allow or deny effect.

    ``effect`` is kept as the raw configured string so that
    :func:`validate_policy` can reject anything other than ``"allow"`` or
    ``"deny"``.
    """

    conditions: Conditions
    effect: str
    name: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Rule:
        name = data.get("name") or ""
        conditions = data.get("conditions") or {}
        if not isinstance(conditions, Mapping):
            raise PolicyError(str(name), "conditions must be an object")
        try:
            parsed = Conditions.from_dict(conditions)
        except PolicyError as e:
            raise PolicyError(str(name), e.reason) from e
        return cls(conditions=parsed, effect=str(data.get("effect", "")), name=str(name))


@dataclass(frozen=True, slots=True)
class EvaluationResult:
    """Outcome of evaluating a policy against one claim set.

    Attributes:
        allowed: Final decision.
        matched_rule: Name of the deciding rule, None when the default
            applied or the rule is unnamed.
        reason: Human-readable explanation.
    """

    allowed: bool
    reason: str
    matched_rule: str | None = None


@dataclass(frozen=True, slots=True)
class Policy:
    """Ordered rule list plus the behavior when nothing matches.

    Attributes:
        rules: Rules in evaluation order.
        default_deny: Deny when no rule matches. Defaults to True, also
            when a JSON document omits the key, so a policy fails closed
            unless it opts into ``False`` explicitly.
    """

    rules: tuple[Rule, ...] = field(default=())
    default_deny: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "rules", tuple(self.rules))

    def evaluate(self, claims: ActionsClaims) -> EvaluationResult:
        """Evaluate the rules in order; the first matching rule wins."""
        for index, rule in enumerate(self.rules):
            if rule.conditions.matches(claims):
                return EvaluationResult(
                    allowed=rule.effect == Effect.ALLOW,
                    matched_rule=rule.name or None,
                    reason=f"rule: {_rule_label(rule, index)}",
                )

        if self.default_deny:
            return EvaluationResult(allowed=False, reason="default deny policy")

        return EvaluationResult(allowed=True, reason="default allow (no matching rules)")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Policy:
        """Build a policy from its JSON shape.

        Expected layout::

            {
              "default_deny": true,
              "rules": [
                {"name": "...", "effect": "allow", "conditions": {"ref": ["refs/heads/main"]}}
              ]
            }

        The result is not validated; call :func:`validate_policy`.

        Raises:
            PolicyError: If the document does not have the expected shape.
        """
        rules = data.get("rules") or []
        if not isinstance(rules, Sequence) or isinstance(rules, str):
            raise PolicyError("", "rules must be a list")

        parsed: list[Rule] = []
        for index, raw in enumerate(rules):
            if not isinstance(raw, Mapping):
                raise PolicyError(f"rule[{index}]", "rule must be an object")
            parsed.append(Rule.from_dict(raw))

        default_deny = data.get("default_deny", True)
        if not isinstance(default_deny, bool):
            raise PolicyError("", "default_deny must be a boolean")

        return cls(rules=tuple(parsed), default_deny=default_deny)


def evaluate(policy: Policy | None, claims: ActionsClaims) -> EvaluationResult:
    """Evaluate ``policy`` against ``claims``.

    A missing policy allows everything: callers that opt out of
    authorization only get authentication.
    """
    if policy is None:
        return EvaluationResult(allowed=True, reason="no policy configured")
    return policy.evaluate(claims)


def validate_policy(policy: Policy | None) -> None:
    """Reject policies that are empty or likely authoring mistakes.

    Call once when the policy is loaded, never per request.

    Raises:
        PolicyError: If the rule list is empty, a rule's effect is not
            exactly ``"allow"`` or ``"deny"``, a rule has no active
            condition (it would match every token), or a pattern is not a
            string.
    """
    if policy is None:
        return

    if not policy.rules:
        raise PolicyError("", "policy must have at least one rule")

    for index, rule in enumerate(policy.rules):
        if rule.effect not in (Effect.ALLOW, Effect.DENY):
            raise PolicyError(_rule_label(rule, index), "effect must be 'allow' or 'deny'")

        if not rule.conditions.active():
            raise PolicyError(
                _rule_label(rule, index), "rule must have at least one condition"
            )

        for name, patterns in rule.conditions.active().items():
            if not all(isinstance(p, str) for p in patterns):
                raise PolicyError(
                    _rule_label(rule, index), f"condition {name!r} must be a list of strings"
                )


def _rule_label(rule: Rule, index: int) -> str:
    return rule.name or f"rule[{index}]"
