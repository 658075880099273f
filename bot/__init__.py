from bot.agent import DecisionContext, DecisionService
from bot.parser import interpret, random_choice
from bot.schema import (
    ActiveChoice,
    AgentReply,
    Decision,
    DecisionRequest,
    ForcedSwitch,
    TeamPreview,
    Wait,
)

__all__ = [
    "DecisionContext",
    "DecisionService",
    "interpret",
    "random_choice",
    "ActiveChoice",
    "AgentReply",
    "Decision",
    "DecisionRequest",
    "ForcedSwitch",
    "TeamPreview",
    "Wait",
]
