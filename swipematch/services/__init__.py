"""Services package for the SwipeMatch engine."""

from swipematch.services.conversation_service import ConversationStore, MessageSubscription
from swipematch.services.decision_service import DecisionLedger
from swipematch.services.discovery_service import DiscoveryPlanner
from swipematch.services.events import EventDispatcher
from swipematch.services.match_service import MatchRegistry
from swipematch.services.profile_service import ProfileDirectory

__all__ = [
    "ConversationStore",
    "DecisionLedger",
    "DiscoveryPlanner",
    "EventDispatcher",
    "MatchRegistry",
    "MessageSubscription",
    "ProfileDirectory",
]
