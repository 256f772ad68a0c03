"""Plan parser – turns the planner's Markdown into typed plan steps.

The planner is itself a language model, so its output grammar is advisory.
Parsing is line based and tolerant: headers and field labels are recognised
with or without heading marks, bullets and bold markup, and field values are
unwrapped from backticks, emphasis and quotes on a best-effort basis.

The result is one of three outcomes:

* :class:`PlanDrafted` – at least one step was extracted.
* :class:`PlanMalformed` – the text mentions plan steps but none could be
  extracted; carries a ``Failed`` plan with the raw text preserved.
* :class:`ConversationalReply` – the text is not a plan at all.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from maestro.models import OrchestrationPlan, OrchestrationStep, PlanStatus
from maestro.utils.logging import get_logger
from maestro.utils.prompts import CAPABILITY_GAP_MARKER

logger = get_logger(__name__)

PARSE_FAILURE_MESSAGE = (
    "Failed to parse plan steps from Maestro's output. The format might be "
    "incorrect. Check the raw plan text."
)

_PLAN_KEYWORD_RE = re.compile(r"plan\s+step", re.IGNORECASE)

_HEADER_RE = re.compile(
    r"""^\s*(?:\#{1,6}\s*)?[*_\s]*
        plan\s+step\b\s*
        (?P<ordinal>[^\s:*_]*?)
        \s*[*_]*\s*[:.\-–—]\s*(?:\*\*|__)?\s*
        (?P<name>.*)$""",
    re.IGNORECASE | re.VERBOSE,
)

# Longer labels first so "Assigned Agent Step" is not read as "Assigned Agent".
_FIELD_RE = re.compile(
    r"""^\s*(?:[-*+•]\s+)?[*_]*\s*
        (?P<label>task\s+description|assigned\s+agent\s+step|assigned\s+agent|input|output)
        \s*[*_]*\s*:\s*(?:\*\*|__)?\s*
        (?P<value>.*)$""",
    re.IGNORECASE | re.VERBOSE,
)

_TITLE_RE = re.compile(r"^\s*#{1,6}\s+(?P<title>.+?)\s*#*\s*$")
_RULE_RE = re.compile(r"^\s*(?:-{3,}|\*{3,}|_{3,})\s*$")

_FIELD_ATTRS = {
    "task description": "task_description",
    "assigned agent": "assigned_agent_name",
    "assigned agent step": "assigned_agent_step_name",
    "input": "input_summary",
    "output": "output_summary",
}

_WRAPPERS = (
    ("```", "```"),
    ("`", "`"),
    ("**", "**"),
    ("__", "__"),
    ("*", "*"),
    ("_", "_"),
    ('"', '"'),
    ("'", "'"),
    ("“", "”"),
)


# ────────────────────────────────────────────────────────────────────
# Parse outcomes
# ────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class PlanDrafted:
    plan: OrchestrationPlan


@dataclass(frozen=True)
class PlanMalformed:
    plan: OrchestrationPlan

    @property
    def error(self) -> str:
        return self.plan.error or PARSE_FAILURE_MESSAGE


@dataclass(frozen=True)
class ConversationalReply:
    text: str


ParseResult = PlanDrafted | PlanMalformed | ConversationalReply


# ────────────────────────────────────────────────────────────────────
# Value helpers
# ────────────────────────────────────────────────────────────────────


def strip_emphasis(value: str | None) -> str:
    """Repeatedly unwrap matching backtick, emphasis and quote pairs."""
    if not value:
        return ""
    text = value.strip()
    changed = True
    while changed and text:
        changed = False
        for opener, closer in _WRAPPERS:
            if (
                len(text) > len(opener) + len(closer)
                and text.startswith(opener)
                and text.endswith(closer)
            ):
                text = text[len(opener) : len(text) - len(closer)].strip()
                changed = True
                break
    return text


def is_capability_gap(agent_name: str | None) -> bool:
    """True when the planner marked the step as needing a new agent."""
    if not agent_name:
        return False
    name = strip_emphasis(agent_name).upper()
    return name.startswith("N/A") or "NEW CAPABILITY NEEDED" in name


# ────────────────────────────────────────────────────────────────────
# Parser
# ────────────────────────────────────────────────────────────────────


@dataclass
class _Block:
    position: int
    ordinal: str
    name: str
    lines: list[str]


def _split_blocks(raw_text: str) -> tuple[str | None, list[_Block]]:
    title: str | None = None
    blocks: list[_Block] = []
    for line in raw_text.splitlines():
        header = _HEADER_RE.match(line)
        if header:
            blocks.append(
                _Block(
                    position=len(blocks) + 1,
                    ordinal=header.group("ordinal"),
                    name=header.group("name"),
                    lines=[],
                )
            )
            continue
        if not blocks:
            if title is None:
                heading = _TITLE_RE.match(line)
                if heading:
                    title = strip_emphasis(heading.group("title")) or None
            continue
        blocks[-1].lines.append(line)
    return title, blocks


def _serial_number(block: _Block) -> int:
    try:
        return int(block.ordinal)
    except ValueError:
        return block.position


def _build_step(block: _Block, plan_id: str) -> OrchestrationStep | None:
    # The header regex consumes opening markup only; drop the closing half.
    task_name = strip_emphasis(block.name.rstrip("*_# \t").lstrip(":.-–— "))
    serial = _serial_number(block)
    if not task_name:
        logger.warning("parser.block_dropped", serial_number=serial, reason="missing task name")
        return None

    fields: dict[str, str] = {}
    kept: list[str] = []
    for line in block.lines:
        stripped = line.strip()
        if not stripped or _RULE_RE.match(stripped):
            continue
        kept.append(stripped)
        match = _FIELD_RE.match(stripped)
        if match is None:
            continue
        label = " ".join(match.group("label").lower().split())
        attr = _FIELD_ATTRS[label]
        # First occurrence wins; later repeats are kept only as raw lines.
        if attr not in fields:
            fields[attr] = strip_emphasis(match.group("value"))

    return OrchestrationStep(
        plan_id=plan_id,
        serial_number=serial,
        task_name=task_name,
        original_markdown_lines=kept,
        **{k: v for k, v in fields.items() if v},
    )


def parse_plan(raw_text: str, user_goal: str) -> ParseResult:
    """Parse planner output into a :data:`ParseResult`."""
    plan = OrchestrationPlan(user_goal=user_goal, raw_plan_text=raw_text)
    title, blocks = _split_blocks(raw_text)

    steps: list[OrchestrationStep] = []
    for block in blocks:
        step = _build_step(block, plan.id)
        if step is not None:
            steps.append(step)

    if steps:
        # sorted() is stable, so duplicate ordinals keep their block order.
        plan.parsed_steps = sorted(steps, key=lambda s: s.serial_number)
        plan.title = title
        plan.status = PlanStatus.PENDING_APPROVAL
        logger.info("parser.plan_drafted", plan_id=plan.id, steps=len(steps))
        return PlanDrafted(plan)

    if _PLAN_KEYWORD_RE.search(raw_text):
        plan.status = PlanStatus.FAILED
        plan.error = PARSE_FAILURE_MESSAGE
        plan.title = title
        logger.error("parser.plan_malformed", plan_id=plan.id, blocks=len(blocks), chars=len(raw_text))
        return PlanMalformed(plan)

    logger.debug("parser.conversational_reply", chars=len(raw_text))
    return ConversationalReply(raw_text)


__all__ = [
    "CAPABILITY_GAP_MARKER",
    "ConversationalReply",
    "PARSE_FAILURE_MESSAGE",
    "ParseResult",
    "PlanDrafted",
    "PlanMalformed",
    "is_capability_gap",
    "parse_plan",
    "strip_emphasis",
]
