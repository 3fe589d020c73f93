from group_facilitator.domain.conversation import ConversationSnapshot, ConversationState
from group_facilitator.domain.decision import Decision, NudgeDecision, Trigger
from group_facilitator.domain.delivery import DeliveryResult, DispatchResult, RateLimited
from group_facilitator.domain.distress import DistressAssessment, DistressEvent
from group_facilitator.domain.events import OperatorEvent
from group_facilitator.domain.group import CommunityEvent, GroupProfile
from group_facilitator.domain.messages import InboundMessage

__all__ = [
    "CommunityEvent",
    "ConversationSnapshot",
    "ConversationState",
    "Decision",
    "DeliveryResult",
    "DispatchResult",
    "DistressAssessment",
    "DistressEvent",
    "GroupProfile",
    "InboundMessage",
    "NudgeDecision",
    "OperatorEvent",
    "RateLimited",
    "Trigger",
]
