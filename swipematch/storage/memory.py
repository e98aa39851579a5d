"""In-memory storage backend."""

from typing import Dict, List, Optional, Set, Tuple

from swipematch.custom_types import PairKey, pair_key
from swipematch.models.conversation import Message
from swipematch.models.decision import Decision
from swipematch.models.match import Match
from swipematch.models.profile import Profile
from swipematch.storage.base import Storage
from swipematch.utils.errors import ConflictError


class InMemoryStorage(Storage):
    """
    Dict-backed storage for tests and single-process runs.

    None of the methods await internally, so each call is atomic with
    respect to the event loop.
    """

    def __init__(self) -> None:
        self.profiles: Dict[str, Profile] = {}
        self.decisions: Dict[Tuple[str, str], Decision] = {}
        self.matches: Dict[str, Match] = {}
        self.matches_by_pair: Dict[PairKey, str] = {}
        self.messages: Dict[str, List[Message]] = {}
        self.read_cursors: Dict[Tuple[str, str], int] = {}

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        return self.profiles.get(user_id)

    async def save_profile(self, profile: Profile) -> Profile:
        self.profiles[profile.id] = profile
        return profile

    async def list_profiles(self, after: Optional[str], limit: int) -> List[Profile]:
        ids = sorted(pid for pid in self.profiles if after is None or pid > after)
        return [self.profiles[pid] for pid in ids[:limit]]

    async def get_decision(self, actor: str, target: str) -> Optional[Decision]:
        return self.decisions.get((actor, target))

    async def save_decision(self, decision: Decision) -> Tuple[Optional[Decision], Optional[Decision]]:
        previous = self.decisions.get((decision.actor, decision.target))
        self.decisions[(decision.actor, decision.target)] = decision
        return previous, self.decisions.get((decision.target, decision.actor))

    async def decided_targets(self, actor: str) -> Set[str]:
        return {target for (decider, target) in self.decisions if decider == actor}

    async def get_match(self, match_id: str) -> Optional[Match]:
        return self.matches.get(match_id)

    async def get_match_by_pair(self, user_a: str, user_b: str) -> Optional[Match]:
        match_id = self.matches_by_pair.get(pair_key(user_a, user_b))
        return self.matches.get(match_id) if match_id else None

    async def insert_match(self, match: Match) -> Tuple[Match, bool]:
        existing_id = self.matches_by_pair.get(match.pair)
        if existing_id is not None:
            return self.matches[existing_id], False
        self.matches[match.id] = match
        self.matches_by_pair[match.pair] = match.id
        return match, True

    async def matches_for(self, user_id: str) -> List[Match]:
        found = [m for m in self.matches.values() if m.involves(user_id)]
        found.sort(key=lambda m: (m.created_at, m.id), reverse=True)
        return found

    async def insert_message(self, message: Message) -> Message:
        log = self.messages.setdefault(message.match_id, [])
        if log and log[-1].sequence >= message.sequence:
            raise ConflictError(
                "Message sequence already taken",
                details={"match_id": message.match_id, "sequence": message.sequence},
            )
        log.append(message)
        return message

    async def last_message(self, match_id: str) -> Optional[Message]:
        log = self.messages.get(match_id)
        return log[-1] if log else None

    async def list_messages(
        self, match_id: str, after_sequence: Optional[int] = None, limit: Optional[int] = None
    ) -> List[Message]:
        log = sorted(self.messages.get(match_id, []), key=lambda m: m.order_key)
        if after_sequence is not None:
            log = [m for m in log if m.sequence > after_sequence]
        return log[:limit] if limit is not None else log

    async def count_unread(self, match_id: str, reader: str, after_sequence: int) -> int:
        return sum(1 for m in self.messages.get(match_id, []) if m.sequence > after_sequence and m.sender != reader)

    async def get_read_cursor(self, match_id: str, user_id: str) -> int:
        return self.read_cursors.get((match_id, user_id), 0)

    async def set_read_cursor(self, match_id: str, user_id: str, sequence: int) -> int:
        self.read_cursors[(match_id, user_id)] = sequence
        return sequence
