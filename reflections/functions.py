"""
Callable entry points.

Server-side operations invoked on behalf of a signed-in caller. Each one
rejects a request without auth before doing any work, and reports failures
as CallableError with one of the codes "unauthenticated",
"invalid-argument" or "internal".
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .coaching import INITIAL_PLAN, UPDATE_GOAL, GoalCoach
from .errors import CallableError
from .radar import WeeklyRadar

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallableAuth:
    uid: str
    email: str = ""


@dataclass
class CallableRequest:
    """Payload plus the caller's auth (None when signed out)."""
    auth: Optional[CallableAuth]
    data: dict[str, Any] = field(default_factory=dict)


def _require_auth(request: CallableRequest) -> CallableAuth:
    if request.auth is None:
        raise CallableError("unauthenticated", "User must be logged in.")
    return request.auth


class CallableFunctions:
    """
    The two callable operations.

    Collaborators are built through factories so that a rejected request
    never constructs a provider.
    """

    def __init__(
        self,
        radar_factory: Callable[[], WeeklyRadar],
        coach_factory: Callable[[], GoalCoach],
    ):
        self._radar_factory = radar_factory
        self._coach_factory = coach_factory

    def trigger_radar(self, request: CallableRequest) -> dict[str, Any]:
        """Run the weekly radar for the caller and email it to them."""
        auth = _require_auth(request)
        try:
            return self._radar_factory().run(auth.uid, auth.email or None)
        except CallableError:
            raise
        except Exception as e:
            logger.error("Radar failed for %s: %s", auth.uid, e)
            raise CallableError("internal", str(e)) from e

    def goal_coaching(self, request: CallableRequest) -> dict[str, Any]:
        """
        Coach the caller on a goal.

        ``data["type"]`` selects INITIAL_PLAN (returns a roadmap) or
        UPDATE_GOAL (returns ``{"feedback": ...}``).
        """
        auth = _require_auth(request)
        data = request.data or {}
        kind = data.get("type")
        if kind not in (INITIAL_PLAN, UPDATE_GOAL):
            raise CallableError("invalid-argument", "Unknown action type.")
        title = data.get("goal_title") or data.get("goalTitle") or ""

        try:
            coach = self._coach_factory()
            if kind == INITIAL_PLAN:
                roadmap = coach.initial_plan(
                    title,
                    data.get("goal_description") or data.get("goalDescription") or "",
                    data.get("target_date") or data.get("targetDate"),
                )
                return {"status": "success", "data": roadmap}
            feedback = coach.update_goal(
                title,
                data.get("update_text") or data.get("updateText") or "",
                is_stuck=bool(data.get("is_stuck", data.get("isStuck", False))),
                existing_roadmap=data.get("existing_roadmap", data.get("existingRoadmap")),
            )
            return {"status": "success", "data": {"feedback": feedback}}
        except Exception as e:
            logger.error("Coaching failed for %s: %s", auth.uid, e)
            raise CallableError("internal", str(e)) from e
