"""
Rule Injection

Users keep named rules. `always` rules are attached to every generation;
`manual` rules only when some message in the conversation mentions them as
`@rule_name`.
"""

import re
from collections.abc import Iterable

from nanochat.core.config.constants import RuleAttach
from nanochat.core.models import UserRule

_MENTION_RE = re.compile(r"@([\w.-]+)")

RULES_PREAMBLE = (
    "The user has mentioned one or more rules to follow with the @<rule_name> syntax. "
    "Please follow these rules as they apply.\n"
    "Rules to follow:\n"
)


def mentioned_rule_names(text: str) -> set[str]:
    return {name.rstrip(".") for name in _MENTION_RE.findall(text or "")}


def collect_rules(rules: list[UserRule], message_texts: Iterable[str]) -> list[UserRule]:
    """
    Rules to attach for a conversation, deduplicated by id.

    Order: `always` rules first, then manual rules in order of first mention.
    """
    attached = [rule for rule in rules if rule.attach == RuleAttach.ALWAYS]
    manual = [rule for rule in rules if rule.attach == RuleAttach.MANUAL]

    for text in message_texts:
        names = mentioned_rule_names(text)
        if not names:
            continue
        attached.extend(rule for rule in manual if rule.name in names)

    seen: set[str] = set()
    unique = []
    for rule in attached:
        if rule.id in seen:
            continue
        seen.add(rule.id)
        unique.append(rule)
    return unique


def format_rules_block(rules: list[UserRule]) -> str:
    if not rules:
        return ""
    return RULES_PREAMBLE + "\n".join(f"- {rule.name}: {rule.rule}" for rule in rules)
