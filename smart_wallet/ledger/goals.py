"""
Financial goals and the achievement tracker.

A goal's ``achieved`` flag is derived from the portfolio's current capital,
but it is stored rather than computed on read: the notification is
edge-triggered and needs the previous value to fire once per crossing.

The tracker is a reducer, ``(goal, capital) -> (goal, events)``, applied to
every goal in ascending amount order after each capital change.
"""

from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Optional, Tuple
import structlog

from .trade import new_id, require_record
from .valuation import require_positive
from ..exceptions import ValidationError
from ..notifications import Notifier

logger = structlog.get_logger(__name__)

FIRST_GOAL_NAME = "الهدف الأول"
ACHIEVEMENT_TITLE = "✨ تم الوصول للهدف!"


@dataclass
class FinancialGoal:
    """
    A capital threshold with one-time alerting.

    Attributes:
        id: Opaque unique identifier
        name: Display name (non-empty)
        amount: Capital threshold (> 0)
        achieved: current_capital >= amount at the last evaluation
        notified: An alert was emitted for the current crossing
    """

    id: str
    name: str
    amount: float
    achieved: bool = False
    notified: bool = False

    def __post_init__(self):
        self.name = (self.name or "").strip()
        if not self.name:
            raise ValidationError("Goal name cannot be empty", field="name")
        require_positive(self.amount, "amount")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "amount": self.amount,
            "achieved": self.achieved,
            "notified": self.notified,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FinancialGoal":
        require_record(data, "goal")
        try:
            return cls(
                id=data.get("id") or new_id(),
                name=data["name"],
                amount=data["amount"],
                achieved=bool(data.get("achieved", False)),
                notified=bool(data.get("notified", False)),
            )
        except KeyError as e:
            raise ValidationError("Goal record is missing a field", field=str(e.args[0]), cause=e)
        except (TypeError, ValueError) as e:
            raise ValidationError("Goal record is malformed", details={"id": data.get("id")}, cause=e)


@dataclass(frozen=True)
class GoalAchievedEvent:
    """Emitted once when a portfolio's capital first crosses a goal."""

    portfolio_id: str
    portfolio_name: str
    goal_id: str
    goal_name: str
    amount: float
    capital: float

    @property
    def title(self) -> str:
        return ACHIEVEMENT_TITLE

    @property
    def body(self) -> str:
        return f'تهانينا! لقد وصلت محفظة "{self.portfolio_name}" إلى هدفها "{self.goal_name}".'


def sort_goals(goals: Iterable[FinancialGoal]) -> List[FinancialGoal]:
    """Order goals ascending by amount."""
    return sorted(goals, key=lambda g: g.amount)


def seed_goal(initial_capital: float, amount: float) -> FinancialGoal:
    """First goal of a new portfolio, pre-marked against the starting capital."""
    return FinancialGoal(
        id=new_id(),
        name=FIRST_GOAL_NAME,
        amount=amount,
        achieved=initial_capital >= amount,
        notified=False,
    )


def evaluate_goal(
    goal: FinancialGoal,
    capital: float,
    can_notify: bool
) -> Tuple[FinancialGoal, bool]:
    """
    Re-evaluate one goal against the current capital.

    Returns:
        Tuple of (updated goal, whether an achievement alert should fire)
    """
    reached = capital >= goal.amount

    if reached and not goal.achieved:
        fire = not goal.notified and can_notify
        return replace(goal, achieved=True, notified=goal.notified or fire), fire

    if not reached and goal.achieved:
        # Re-arm the alert for the next crossing
        return replace(goal, achieved=False, notified=False), False

    return goal, False


class GoalTracker:
    """
    Applies ``evaluate_goal`` across a portfolio and delivers alerts.

    Example:
        >>> tracker = GoalTracker(notifier=LogNotifier(), can_notify=True)
        >>> events = tracker.evaluate(portfolio)
        >>> tracker.deliver(events)
    """

    def __init__(self, notifier: Optional[Notifier] = None, can_notify: bool = True):
        self.notifier = notifier
        self.can_notify = can_notify and notifier is not None

    def evaluate(self, portfolio) -> List[GoalAchievedEvent]:
        """
        Recompute achieved/notified flags for every goal of a portfolio.

        Idempotent: a second call on unchanged capital returns no events
        and leaves the goals untouched.
        """
        events: List[GoalAchievedEvent] = []
        updated: List[FinancialGoal] = []

        for goal in sort_goals(portfolio.financial_goals):
            new_goal, fire = evaluate_goal(goal, portfolio.current_capital, self.can_notify)
            if new_goal is not goal:
                logger.info(
                    "goal_state_changed",
                    portfolio_id=portfolio.id,
                    goal_id=goal.id,
                    achieved=new_goal.achieved,
                    notified=new_goal.notified,
                    capital=portfolio.current_capital,
                    amount=goal.amount
                )
            if fire:
                logger.info("goal_achieved", portfolio_id=portfolio.id, goal_id=goal.id, amount=goal.amount)
                events.append(GoalAchievedEvent(
                    portfolio_id=portfolio.id,
                    portfolio_name=portfolio.name,
                    goal_id=goal.id,
                    goal_name=goal.name,
                    amount=goal.amount,
                    capital=portfolio.current_capital,
                ))
            updated.append(new_goal)

        portfolio.financial_goals = updated
        return events

    def deliver(self, events: Iterable[GoalAchievedEvent]) -> None:
        """Hand events to the notifier; failures are logged and dropped."""
        if self.notifier is None:
            return
        for event in events:
            try:
                self.notifier.emit(event.title, event.body)
            except Exception as e:
                logger.warning(
                    "goal_notification_failed",
                    portfolio_id=event.portfolio_id,
                    goal_id=event.goal_id,
                    error_type=type(e).__name__,
                    error=str(e)
                )
