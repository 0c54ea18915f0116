"""Chat participants, the model streaming adapter and the tool-using reference agent."""

from exthost.chat.accumulator import ToolCall, ToolCallAccumulator
from exthost.chat.agent import AgentTool, ToolAgent
from exthost.chat.models import (
    ChatCommand,
    ChatParticipant,
    ChatRequest,
    ChatResponseStream,
    HistoryEntry,
)
from exthost.chat.registry import ChatParticipantRegistry
from exthost.chat.session import ChatSession, MessageStream
from exthost.chat.streaming import ChannelReader, model_stream

__all__ = [
    "AgentTool",
    "ChannelReader",
    "ChatCommand",
    "ChatParticipant",
    "ChatParticipantRegistry",
    "ChatRequest",
    "ChatResponseStream",
    "ChatSession",
    "HistoryEntry",
    "MessageStream",
    "ToolAgent",
    "ToolCall",
    "ToolCallAccumulator",
    "model_stream",
]
