"""记忆模块：对话历史窗口和动作时间线"""

from typing import List

from .models import ChatMessage, FlowItem, ToolCall, ToolResult

MAX_HISTORY = 18
MAX_FLOW_ITEMS = 10


def format_tool_label(name: str) -> str:
    """scroll_by → Scroll By"""
    return " ".join(part[:1].upper() + part[1:] for part in name.split("_"))


class Memory:
    """记忆模块：只保留最近 MAX_HISTORY 条消息和 MAX_FLOW_ITEMS 条动作记录"""

    def __init__(self, max_history: int = MAX_HISTORY, max_flow_items: int = MAX_FLOW_ITEMS):
        self.max_history = max_history
        self.max_flow_items = max_flow_items
        self.history: List[ChatMessage] = []
        self.flow: List[FlowItem] = []

    def record(self, role: str, content: str) -> ChatMessage:
        """追加一条消息，超出窗口时丢弃最早的记录"""
        message = ChatMessage.create(role, content)
        self.history = (self.history + [message])[-self.max_history:]
        return message

    def start_flow(self, call: ToolCall) -> FlowItem:
        item = FlowItem(
            id=call.id,
            label=format_tool_label(call.name),
            detail="Executing action...",
            status="running",
        )
        self.flow = (self.flow + [item])[-self.max_flow_items:]
        return item

    def finish_flow(self, result: ToolResult):
        for item in self.flow:
            if item.id == result.tool_call_id:
                item.detail = result.output
                item.status = "success" if result.success else "failed"

    def history_payload(self) -> List[dict]:
        return [message.to_dict() for message in self.history]

    def format_flow(self) -> str:
        if not self.flow:
            return "(暂无动作)"

        markers = {"running": "…", "success": "✓", "failed": "❌"}
        return "\n".join(f"{markers[item.status]} {item.label}: {item.detail}" for item in self.flow)
