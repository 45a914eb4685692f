"""规划模块：调用 LLM 决定回答内容和要执行的动作

respond() 对应一次请求/响应：
- 没有 toolResults：规划调用，可能返回最多 MAX_TOOL_CALLS_PER_TURN 个动作
- 有 toolResults：总结调用，根据执行结果给出最终回复
"""

import json
import uuid
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI, AuthenticationError, NotFoundError, RateLimitError

from .config import Settings
from .models import ChatResponse, ToolCall
from .tools import MAX_TOOL_CALLS_PER_TURN, TOOL_DECLARATIONS, TOOL_NAMES

HISTORY_WINDOW = 10
MAX_MESSAGE_CHARS = 1200
SNAPSHOT_SECTIONS = 10
SNAPSHOT_ELEMENTS = 80

PLANNING_TEMPERATURE = 0.2
FINAL_TEMPERATURE = 0.3

MISSING_KEY_MESSAGE = "Server configuration is missing OPENAI_API_KEY in environment variables."
MISSING_MODEL_MESSAGE = "Server configuration is missing OPENAI_MODEL in environment variables."

QUOTA_MESSAGE = (
    "OpenAI key is configured, but quota is exhausted. "
    "Enable billing or use a key with available quota."
)
INVALID_KEY_MESSAGE = "OpenAI API key is invalid. Update OPENAI_API_KEY in .env and restart."
UNKNOWN_MODEL_MESSAGE = "Configured model is unavailable. Set OPENAI_MODEL to a model your endpoint serves."


class PlannerError(Exception):
    """规划服务调用失败，本轮对话终止"""


class ConfigurationError(PlannerError):
    """缺少 API Key 或模型名"""


class RequestError(PlannerError):
    """请求体不合法，未调用模型"""


def normalize_error_message(error: Exception) -> str:
    """把已知的服务端错误转换成可操作的提示，其余原样返回"""
    if isinstance(error, RateLimitError):
        return QUOTA_MESSAGE
    if isinstance(error, AuthenticationError):
        return INVALID_KEY_MESSAGE
    if isinstance(error, NotFoundError):
        return UNKNOWN_MODEL_MESSAGE

    raw = str(error)
    lower = raw.lower()

    if '"code": 429' in raw or "quota exceeded" in lower or "rate-limits" in lower or "insufficient_quota" in lower:
        return QUOTA_MESSAGE
    if '"code": 401' in raw or "api key not valid" in lower or "incorrect api key" in lower:
        return INVALID_KEY_MESSAGE
    if '"code": 404' in raw or "not found" in lower or "model_not_found" in lower:
        return UNKNOWN_MODEL_MESSAGE

    return raw


def to_history(history: Any) -> List[Dict[str, str]]:
    """丢弃格式不对的记录，只保留最近 HISTORY_WINDOW 条，并截断过长内容"""
    if not isinstance(history, list):
        return []

    valid = [
        item for item in history
        if isinstance(item, dict)
        and isinstance(item.get("role"), str)
        and isinstance(item.get("content"), str)
        and isinstance(item.get("createdAt"), str)
    ]
    return [
        {
            "role": item["role"],
            "content": item["content"][:MAX_MESSAGE_CHARS],
            "createdAt": item["createdAt"],
        }
        for item in valid[-HISTORY_WINDOW:]
    ]


def to_tool_results(tool_results: Any) -> List[Dict[str, Any]]:
    if not isinstance(tool_results, list):
        return []

    valid = [
        item for item in tool_results
        if isinstance(item, dict)
        and isinstance(item.get("toolCallId"), str)
        and isinstance(item.get("name"), str)
        and isinstance(item.get("success"), bool)
        and isinstance(item.get("output"), str)
    ]
    return valid[:MAX_TOOL_CALLS_PER_TURN]


def is_page_snapshot(snapshot: Any) -> bool:
    return (
        isinstance(snapshot, dict)
        and isinstance(snapshot.get("url"), str)
        and isinstance(snapshot.get("title"), str)
        and isinstance(snapshot.get("capturedAt"), str)
        and isinstance(snapshot.get("sections"), list)
        and isinstance(snapshot.get("elements"), list)
    )


def slim_snapshot(snapshot: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "url": snapshot["url"],
        "title": snapshot["title"],
        "capturedAt": snapshot["capturedAt"],
        "sections": snapshot["sections"][:SNAPSHOT_SECTIONS],
        "elements": snapshot["elements"][:SNAPSHOT_ELEMENTS],
    }


def history_to_text(history: List[Dict[str, str]]) -> str:
    if not history:
        return "No previous conversation."
    return "\n".join(f"{item['role'].upper()}: {item['content']}" for item in history)


def parse_function_args(value: Any) -> Dict[str, Any]:
    """函数参数可能是对象或 JSON 字符串，解析失败时返回空字典"""
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


def extract_tool_calls(raw_calls: Optional[List[Any]]) -> List[ToolCall]:
    """只保留已知动作，最多 MAX_TOOL_CALLS_PER_TURN 个，多余的直接丢弃"""
    calls = []
    for raw in raw_calls or []:
        function = getattr(raw, "function", None)
        name = getattr(function, "name", None)
        if not isinstance(name, str) or name not in TOOL_NAMES:
            continue
        calls.append(ToolCall(
            id=getattr(raw, "id", None) or str(uuid.uuid4()),
            name=name,
            args=parse_function_args(getattr(function, "arguments", None)),
        ))
    return calls[:MAX_TOOL_CALLS_PER_TURN]


PLANNING_SYSTEM_PROMPT = "\n".join([
    "You are an AI co-browsing assistant for a portfolio website.",
    "Use the provided page snapshot to answer questions and decide tool calls.",
    "If user intent is ambiguous, ask a clarifying question instead of calling a tool.",
    f"You may call at most {MAX_TOOL_CALLS_PER_TURN} tools in one turn.",
    "For section navigation requests, prefer navigate_to_section with section aliases.",
    "For project requests like latest/most recent/second project, use highlight_element or click_element with text hints.",
    "For contact form requests with multiple fields, prefer one fill_input call using values object.",
    "Do not invent sections or elements that do not exist in the snapshot.",
])

FINAL_SYSTEM_PROMPT = "\n".join([
    "You are an AI co-browsing assistant for a portfolio website.",
    "You already requested tools and now have execution results.",
    "Write the final assistant response for the user.",
    "Explain what was done and whether it succeeded.",
    "If a tool failed, provide one concrete recovery suggestion.",
    "If all tools succeeded, mention the final on-page state the user should now see.",
    "Keep the answer concise and conversational.",
])


def build_planning_prompt(message: str, history: List[Dict[str, str]], snapshot: Dict[str, Any]) -> str:
    return "\n".join([
        "Conversation history:",
        history_to_text(history),
        "",
        f"Latest user message: {message}",
        "",
        "Current page snapshot (JSON):",
        json.dumps(slim_snapshot(snapshot), indent=2, ensure_ascii=False),
        "",
        "First decide: answer directly OR call tools if an action is requested.",
    ])


def build_final_prompt(
    message: str,
    history: List[Dict[str, str]],
    snapshot: Dict[str, Any],
    tool_results: List[Dict[str, Any]],
) -> str:
    return "\n".join([
        "Conversation history:",
        history_to_text(history),
        "",
        f"Latest user message: {message}",
        "",
        "Tool execution results (JSON):",
        json.dumps(tool_results, indent=2, ensure_ascii=False),
        "",
        "Updated page snapshot (JSON):",
        json.dumps(slim_snapshot(snapshot), indent=2, ensure_ascii=False),
    ])


class Planner:
    """规划模块：请求校验 + 两种 LLM 调用"""

    def __init__(self, settings: Settings, client: Optional[AsyncOpenAI] = None):
        self.settings = settings
        self.client = client

    def _get_client(self) -> AsyncOpenAI:
        if self.client is None:
            self.client = AsyncOpenAI(api_key=self.settings.api_key, base_url=self.settings.base_url)
        return self.client

    async def respond(self, payload: Dict[str, Any]) -> ChatResponse:
        """
        处理一次请求：{message, history, pageSnapshot, toolResults?}。

        配置缺失和请求体不合法时不调用模型，直接抛出对应错误；
        模型调用失败时抛出 PlannerError，消息已做归一化。
        """
        if not self.settings.api_key:
            raise ConfigurationError(MISSING_KEY_MESSAGE)
        if not self.settings.model:
            raise ConfigurationError(MISSING_MODEL_MESSAGE)
        if not isinstance(payload, dict):
            raise RequestError("Invalid request body.")

        raw_message = payload.get("message")
        message = raw_message.strip() if isinstance(raw_message, str) else ""
        history = to_history(payload.get("history"))
        tool_results = to_tool_results(payload.get("toolResults"))

        if not message:
            raise RequestError("Missing user message.")

        snapshot = payload.get("pageSnapshot")
        if not is_page_snapshot(snapshot):
            raise RequestError("Missing or invalid page snapshot.")

        try:
            if tool_results:
                return await self._finalize(message, history, snapshot, tool_results)
            return await self._plan(message, history, snapshot)
        except Exception as e:
            raise PlannerError(f"I ran into an error: {normalize_error_message(e)}") from e

    async def _plan(self, message: str, history: List[Dict[str, str]], snapshot: Dict[str, Any]) -> ChatResponse:
        response = await self._get_client().chat.completions.create(
            model=self.settings.model,
            temperature=PLANNING_TEMPERATURE,
            tools=TOOL_DECLARATIONS,
            messages=[
                {"role": "system", "content": PLANNING_SYSTEM_PROMPT},
                {"role": "user", "content": build_planning_prompt(message, history, snapshot)},
            ],
        )

        output = response.choices[0].message
        text = (output.content or "").strip()
        calls = extract_tool_calls(output.tool_calls)

        return ChatResponse(
            assistant_message=text or ("I will handle that now." if calls else ""),
            tool_calls=calls,
            awaiting_tool_results=bool(calls),
        )

    async def _finalize(
        self,
        message: str,
        history: List[Dict[str, str]],
        snapshot: Dict[str, Any],
        tool_results: List[Dict[str, Any]],
    ) -> ChatResponse:
        response = await self._get_client().chat.completions.create(
            model=self.settings.model,
            temperature=FINAL_TEMPERATURE,
            messages=[
                {"role": "system", "content": FINAL_SYSTEM_PROMPT},
                {"role": "user", "content": build_final_prompt(message, history, snapshot, tool_results)},
            ],
        )

        text = (response.choices[0].message.content or "").strip()
        return ChatResponse(assistant_message=text or "I completed the requested action.")
