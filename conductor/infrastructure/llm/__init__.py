from .chat_decision import ChatModelDecisionMaker, DEFAULT_SYSTEM_PROMPT

__all__ = ["ChatModelDecisionMaker", "DEFAULT_SYSTEM_PROMPT"]
