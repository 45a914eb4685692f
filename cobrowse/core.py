"""协同浏览智能体核心类：驱动一轮对话"""

import asyncio
from enum import Enum
from typing import List, Optional

from playwright.async_api import Page

from .controller import Controller
from .memory import Memory
from .models import ChatMessage, ToolResult
from .perception import Perception
from .planner import Planner
from .resolver import TargetResolver
from .tools import MAX_TOOL_CALLS_PER_TURN

GREETING = (
    "I can navigate this portfolio for you. Ask me to jump sections, highlight projects, "
    "click links, or fill the contact form."
)
NO_RESPONSE_MESSAGE = "I could not generate a response. Please rephrase your request."
COMPLETED_MESSAGE = "Action completed."
FAILURE_PREFIX = "I couldn't complete that request."


class TurnState(Enum):
    IDLE = "idle"
    PLANNING = "planning"
    EXECUTING = "executing"
    FINALIZING = "finalizing"


class CoBrowseAgent:
    """
    协同浏览智能体。

    一轮对话：Idle → Planning →（无动作）→ Idle，
    或 Idle → Planning → Executing → Finalizing → Idle。
    同一时间只允许一轮对话，忙碌时的新请求直接忽略。
    """

    def __init__(
        self,
        page: Page,
        planner: Planner,
        memory: Optional[Memory] = None,
        perception: Optional[Perception] = None,
        controller: Optional[Controller] = None,
        action_delay: float = 0.14,
        settle_delay: float = 0.2,
    ):
        self.page = page
        self.planner = planner
        self.memory = memory or Memory()
        self.perception = perception or Perception()
        self.controller = controller or Controller(page, TargetResolver(page))
        self.action_delay = action_delay
        self.settle_delay = settle_delay
        self.state = TurnState.IDLE
        self._turn_messages: List[ChatMessage] = []

        if not self.memory.history:
            self.memory.record("assistant", GREETING)

    @property
    def is_busy(self) -> bool:
        return self.state is not TurnState.IDLE

    def _append(self, role: str, content: str) -> ChatMessage:
        message = self.memory.record(role, content)
        self._turn_messages.append(message)
        return message

    async def _request(self, message: str, tool_results: Optional[List[ToolResult]] = None):
        payload = {
            "message": message,
            "history": self.memory.history_payload(),
            "pageSnapshot": (await self.perception.capture(self.page)).to_dict(),
        }
        if tool_results is not None:
            payload["toolResults"] = [result.to_dict() for result in tool_results]
        return await self.planner.respond(payload)

    async def run_turn(self, raw_message: str) -> List[ChatMessage]:
        """
        执行一轮对话，返回本轮新增的消息。

        出错时追加一条失败消息并回到 Idle，已追加的消息保留。
        """
        message = raw_message.strip()
        if not message or self.is_busy:
            return []

        self._turn_messages = []
        self.state = TurnState.PLANNING
        self._append("user", message)
        print(f"\n{'=' * 60}\n用户: {message}\n{'=' * 60}")

        try:
            first_reply = await self._request(message)
            if first_reply.assistant_message.strip():
                self._append("assistant", first_reply.assistant_message)

            tool_calls = first_reply.tool_calls[:MAX_TOOL_CALLS_PER_TURN]
            if first_reply.awaiting_tool_results and tool_calls:
                self.state = TurnState.EXECUTING
                print(f"✓ 规划完成，{len(tool_calls)} 个动作")

                # 严格按顺序执行，后面的动作依赖前面动作改变后的页面
                tool_results = []
                for call in tool_calls:
                    self.memory.start_flow(call)
                    await asyncio.sleep(self.action_delay)

                    result = await self.controller.execute(call)
                    tool_results.append(result)
                    self.memory.finish_flow(result)
                    self._append("tool", f"{result.name}: {result.output}")

                    await asyncio.sleep(self.settle_delay)

                self.state = TurnState.FINALIZING
                final_reply = await self._request(message, tool_results)
                self._append("assistant", final_reply.assistant_message.strip() or COMPLETED_MESSAGE)
            elif not first_reply.assistant_message.strip():
                self._append("assistant", NO_RESPONSE_MESSAGE)

        except Exception as e:
            text = str(e) or "Unexpected error while processing the request."
            print(f"❌ 本轮失败: {text}")
            self._append("assistant", f"{FAILURE_PREFIX} {text}")
        finally:
            self.state = TurnState.IDLE

        return list(self._turn_messages)
