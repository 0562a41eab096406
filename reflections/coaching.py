"""
Goal coaching.

Two request kinds, both sent with the same system instruction:
- INITIAL_PLAN: goal title + description (+ target date) -> JSON roadmap
- UPDATE_GOAL: progress update on an existing goal -> short free text

Pursuit helpers keep a coach log on the pursuit record: the user's update is
appended before the model is called and the reply after it.
"""

import json
import logging
from typing import Any, Optional

from .errors import GenerationError
from .processors import extract_json
from .radar import get_pursuit
from .types import utc_now

logger = logging.getLogger(__name__)

INITIAL_PLAN = "INITIAL_PLAN"
UPDATE_GOAL = "UPDATE_GOAL"
REQUEST_TYPES = (INITIAL_PLAN, UPDATE_GOAL)

TRUTH_PROTOCOL = """You are the Reflections Match AI, a "Context-Aware Accountability Partner."
*** CORE DIRECTIVE: THE TRUTH PROTOCOL *** You must strictly distinguish between USER FACTS (what is explicitly in the database) and AI SUGGESTIONS (your world knowledge and advice).

*** YOUR TWO MODES OF OPERATION ***

MODE 1: THE COURT REPORTER (Retrieval)
Trigger: When the user asks about their own history.
Rule: You must cite specific evidence from the provided context.
The "Silence" Clause: If the answer is not in the context, you MUST state: "I don't see a record of that in your reflections." Do NOT invent, guess, or hallucinate a memory.

MODE 2: THE STRATEGIC COACH (Synthesis)
Trigger: When the user asks for advice, ideas, or analysis.
Rule: Use user data as the ANCHOR, but use your general intelligence to build the BRIDGE.
Phrasing Requirement: Explicitly separate evidence from inference.
GOOD: "You mentioned X (Evidence). This suggests Y (Inference)."
BAD: "You are stuck because of Y." (Assumption).

*** TONE *** Empathetic but precise. You are a partner, not a sycophant."""


def build_initial_plan_prompt(
    goal_title: str,
    goal_description: str,
    target_date: Optional[str] = None,
) -> str:
    date_line = f"Target Date: {target_date}\n" if target_date else ""
    return f"""CONTEXT DATA:
Goal Title: "{goal_title}"
Goal Description: "{goal_description}"
{date_line}
TASK:
You are an AI skills coach. Using the CONTEXT DATA above, help the user achieve this goal.
Provide a structured JSON response containing:
1. Quick Assessment
2. Getting Started Checklist
3. Learning Path
4. First 2-Hour Sprint

OUTPUT FORMAT (JSON ONLY, NO MARKDOWN):
{{
    "assessment": "Brief assessment of why this matters and key challenges.",
    "phases": [
        {{"phase": "1. Getting Started Checklist", "items": ["Critical setup step 1", "Critical setup step 2"]}},
        {{"phase": "2. Strategic Learning Path", "items": ["Key Concept 1", "Key Resource 2"]}},
        {{"phase": "3. The First 2-Hour Sprint", "items": ["0-30m: ...", "30-90m: ...", "90-120m: ..."]}}
    ]
}}"""


def build_update_prompt(
    goal_title: str,
    update_text: str,
    is_stuck: bool,
    existing_roadmap: Any = None,
) -> str:
    return f"""CONTEXT DATA:
Goal Title: "{goal_title}"
User Update: "{update_text}"
Is Stuck: {"true" if is_stuck else "false"}

CURRENT ROADMAP CONTEXT:
{json.dumps(existing_roadmap or "No roadmap yet")}

TASK:
Acknowledge progress, solve blockers if stuck, and provide 2-3 immediate next steps.
Keep it encouraging but disciplined."""


def parse_roadmap(text: Optional[str]) -> dict[str, Any]:
    """
    Parse a roadmap reply.

    Raises:
        ValueError: Not JSON, or no phases
    """
    data = extract_json(text)
    if not isinstance(data, dict):
        raise ValueError("Roadmap reply is not a JSON object")
    phases = []
    for phase in data.get("phases") or []:
        if isinstance(phase, dict) and phase.get("phase"):
            items = phase.get("items") or []
            phases.append({"phase": str(phase["phase"]), "items": [str(i) for i in items]})
    if not phases:
        raise ValueError("Roadmap reply has no phases")
    return {"assessment": str(data.get("assessment", "")), "phases": phases}


class GoalCoach:
    """Coaching calls against a generation provider."""

    def __init__(self, generation_provider):
        self._generation = generation_provider

    def _generate(self, prompt: str) -> str:
        reply = self._generation.generate(prompt, system=TRUTH_PROTOCOL)
        if not reply:
            raise ValueError(f"{type(self._generation).__name__} produced no output")
        return reply

    def initial_plan(
        self,
        goal_title: str,
        goal_description: str,
        target_date: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Raises:
            GenerationError: The model call or its reply failed
        """
        try:
            return parse_roadmap(self._generate(
                build_initial_plan_prompt(goal_title, goal_description, target_date)
            ))
        except Exception as e:
            logger.warning("Roadmap generation failed for %r: %s", goal_title, e)
            raise GenerationError(f"Roadmap generation failed: {e}") from e

    def update_goal(
        self,
        goal_title: str,
        update_text: str,
        *,
        is_stuck: bool = False,
        existing_roadmap: Any = None,
    ) -> str:
        """
        Raises:
            GenerationError: The model call failed
        """
        try:
            return self._generate(
                build_update_prompt(goal_title, update_text, is_stuck, existing_roadmap)
            ).strip()
        except Exception as e:
            logger.warning("Coaching reply failed for %r: %s", goal_title, e)
            raise GenerationError(f"Coaching failed: {e}") from e


# -----------------------------------------------------------------------------
# Pursuit coach log
# -----------------------------------------------------------------------------

def _append_update(store, pursuit_id: str, entry: dict) -> None:
    record = store.get_reflection(pursuit_id)
    pursuit = record.pursuit.to_doc() if record and record.pursuit else {}
    pursuit["updates"] = list(pursuit.get("updates") or []) + [entry]
    store.merge_reflection(pursuit_id, {"pursuit": pursuit})


def plan_pursuit(
    store,
    coach: GoalCoach,
    uid: str,
    pursuit_id: str,
    *,
    target_date: Optional[str] = None,
) -> dict[str, Any]:
    """Generate a roadmap for a pursuit and store it on the record."""
    record = get_pursuit(store, uid, pursuit_id)
    description = record.pursuit.description if record.pursuit else ""
    roadmap = coach.initial_plan(record.summary, description, target_date)
    pursuit = record.pursuit.to_doc() if record.pursuit else {}
    pursuit["roadmap"] = roadmap
    store.merge_reflection(pursuit_id, {"pursuit": pursuit})
    return roadmap


def coach_pursuit(
    store,
    coach: GoalCoach,
    uid: str,
    pursuit_id: str,
    update_text: str,
    *,
    is_stuck: bool = False,
) -> str:
    """
    Post a progress update and get coaching feedback.

    The update is logged even if the coach call then fails.
    """
    record = get_pursuit(store, uid, pursuit_id)
    _append_update(store, pursuit_id, {
        "role": "user", "text": update_text, "is_stuck": is_stuck, "at": utc_now(),
    })
    roadmap = record.pursuit.roadmap if record.pursuit else None
    feedback = coach.update_goal(
        record.summary, update_text, is_stuck=is_stuck, existing_roadmap=roadmap,
    )
    _append_update(store, pursuit_id, {"role": "ai", "text": feedback, "at": utc_now()})
    return feedback
