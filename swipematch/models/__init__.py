"""Models package for the SwipeMatch engine."""

from swipematch.models.conversation import Event, EventType, Message
from swipematch.models.decision import Decision, DecisionKind, DecisionResult, PairState
from swipematch.models.match import Match, MatchView, SwipeOutcome
from swipematch.models.profile import DiscoveryBatch, DiscoveryFilters, Profile

__all__ = [
    "Decision",
    "DecisionKind",
    "DecisionResult",
    "DiscoveryBatch",
    "DiscoveryFilters",
    "Event",
    "EventType",
    "Match",
    "MatchView",
    "Message",
    "PairState",
    "Profile",
    "SwipeOutcome",
]
