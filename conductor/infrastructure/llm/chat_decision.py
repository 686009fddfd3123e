from typing import Any, Optional, Union
import json
import structlog
from langchain_core.exceptions import OutputParserException
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_core.output_parsers import JsonOutputParser

from conductor.domain.orchestration.core.decision import (
    Complete, DecisionParseError, DecisionRequest, Infeasible, InvokeTool, parse_decision
)
from conductor.infrastructure.observability.logging import metrics

logger = structlog.get_logger(__name__)

DEFAULT_SYSTEM_PROMPT = """You orchestrate tools to accomplish a task.

You receive JSON with the task, the tool catalog, memory context and the
attempts made so far. Reply with exactly one JSON object and nothing else:

  {"invoke": "<tool name>", "args": {"<input>": <value>, ...}}
  {"complete": <final result>}
  {"infeasible": "<reason>"}

Only invoke tools listed in the catalog, passing every declared input."""

_reply_parser = JsonOutputParser()


class ChatModelDecisionMaker:
    """Decision capability backed by a langchain chat model"""

    def __init__(
        self,
        chat_model: BaseChatModel,
        model_name: Optional[str] = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT
    ):
        self.chat_model = chat_model
        self.model_name = model_name or getattr(chat_model, "model_name", None) or type(chat_model).__name__
        self.system_prompt = system_prompt

    async def decide(self, request: DecisionRequest) -> Union[InvokeTool, Complete, Infeasible]:
        messages = [
            SystemMessage(content=self.system_prompt),
            HumanMessage(content=self.render_request(request))
        ]

        reply = await self.chat_model.ainvoke(messages)
        self._record_usage(reply)

        return self.parse_reply(_message_text(reply))

    @staticmethod
    def render_request(request: DecisionRequest) -> str:
        return json.dumps(request.model_dump(), indent=2, default=str)

    @staticmethod
    def parse_reply(text: str) -> Union[InvokeTool, Complete, Infeasible]:
        """Read one decision from a model reply, with or without a markdown code fence"""

        try:
            payload = _reply_parser.parse(text)
        except OutputParserException as exc:
            logger.warning("Model reply is not JSON", reply=text[:200])
            raise DecisionParseError("Model reply is not valid JSON", {"reply": text}) from exc

        return parse_decision(payload)

    def _record_usage(self, reply: Any):
        usage = getattr(reply, "usage_metadata", None)
        if usage and usage.get("total_tokens"):
            metrics.record_tokens(self.model_name, usage["total_tokens"])


def _message_text(message: Any) -> str:
    if isinstance(message, BaseMessage):
        content = message.content
    else:
        content = message

    if isinstance(content, list):
        # Content blocks: keep only the text parts
        return "".join(
            block if isinstance(block, str) else block.get("text", "")
            for block in content
        )
    return str(content)
