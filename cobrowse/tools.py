"""动作声明与参数校验

规划服务只能调用下面五种动作。参数来自模型输出，不可信，
在执行前统一通过 parse_args 转换成各动作自己的参数类型。
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from .models import ToolCall

MAX_TOOL_CALLS_PER_TURN = 3

TOOL_NAMES = (
    "scroll_by",
    "navigate_to_section",
    "click_element",
    "highlight_element",
    "fill_input",
)


def _function(name: str, description: str, properties: Dict, required: Optional[List[str]] = None) -> Dict:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required or [],
            },
        },
    }


TOOL_DECLARATIONS = [
    _function(
        "scroll_by",
        "Scroll the page vertically by a pixel amount. Positive delta scrolls down, negative scrolls up.",
        {
            "delta": {
                "type": "number",
                "description": "Vertical scroll offset in pixels. Positive means down and negative means up.",
            },
        },
        ["delta"],
    ),
    _function(
        "navigate_to_section",
        "Navigate to a section by section ID or alias, such as home, about, projects, skills, or contact.",
        {
            "sectionId": {
                "type": "string",
                "description": "Target section id without # when possible, for example projects or contact.",
            },
        },
        ["sectionId"],
    ),
    _function(
        "click_element",
        "Click a button or link on the page by CSS selector or visible text.",
        {
            "selector": {
                "type": "string",
                "description": "A CSS selector for the element to click. Prefer this when available.",
            },
            "text": {
                "type": "string",
                "description": "Visible element text to match when selector is not reliable.",
            },
        },
    ),
    _function(
        "highlight_element",
        "Highlight an element so the user can visually locate it, using selector, text, section, or project hints.",
        {
            "selector": {
                "type": "string",
                "description": "A CSS selector for the element to highlight.",
            },
            "text": {
                "type": "string",
                "description": "Visible text to match if selector is unavailable or uncertain.",
            },
        },
    ),
    _function(
        "fill_input",
        "Fill one or more text fields. Use selector+value+fieldName for single input or values object for multi-field input.",
        {
            "selector": {
                "type": "string",
                "description": "A CSS selector for the target input field.",
            },
            "fieldName": {
                "type": "string",
                "description": "Form field identifier such as name, email, subject, or message.",
            },
            "value": {
                "type": "string",
                "description": "The text value that should be entered into the field.",
            },
            "values": {
                "type": "object",
                "description": "Optional batch input object. Use known keys like name, email, subject, and message.",
                "properties": {
                    "name": {"type": "string", "description": "Name field value."},
                    "email": {"type": "string", "description": "Email field value."},
                    "subject": {"type": "string", "description": "Subject field value."},
                    "message": {"type": "string", "description": "Message field value."},
                },
            },
        },
    ),
]


class ArgumentError(ValueError):
    """动作参数缺失或无效，报告为失败结果，不中断本轮对话"""


def read_string(args: Dict[str, Any], *keys: str) -> Optional[str]:
    """按顺序读取第一个非空字符串字段（去掉首尾空白）"""
    for key in keys:
        value = args.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


_DECIMAL = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")
_PREFIXED = re.compile(r"0(?:[xX][0-9a-fA-F]+|[oO][0-7]+|[bB][01]+)")


def parse_numeric(text: str) -> Optional[float]:
    """
    按 JavaScript Number() 的规则解析数字字符串：十进制字面量或 0x/0o/0b 前缀整数。

    float() 额外接受的写法（1_000、inf、nan 等）一律视为无效。
    """
    text = text.strip()
    try:
        if _DECIMAL.fullmatch(text):
            return float(text)
        if _PREFIXED.fullmatch(text):
            return float(int(text, 0))
    except OverflowError:
        return None
    return None


def read_number(args: Dict[str, Any], *keys: str) -> Optional[float]:
    """按顺序读取第一个有限数值，接受数字或数字字符串"""
    for key in keys:
        value = args.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)) and math.isfinite(value):
            return float(value)
        if isinstance(value, str) and value.strip():
            parsed = parse_numeric(value)
            if parsed is not None and math.isfinite(parsed):
                return parsed
    return None


@dataclass(frozen=True)
class ScrollArgs:
    delta: float


@dataclass(frozen=True)
class NavigateArgs:
    section: str


@dataclass(frozen=True)
class TargetArgs:
    """click_element / highlight_element 的目标提示"""
    section: Optional[str] = None
    selector: Optional[str] = None
    text: Optional[str] = None
    link_hint: Optional[str] = None


@dataclass(frozen=True)
class FillArgs:
    selector: Optional[str] = None
    values: Optional[Dict[str, str]] = None
    field_name: str = "input"
    value: Optional[str] = None


ActionArgs = Union[ScrollArgs, NavigateArgs, TargetArgs, FillArgs]


def parse_target_args(args: Dict[str, Any]) -> TargetArgs:
    return TargetArgs(
        section=read_string(args, "sectionId", "section", "targetSection"),
        selector=read_string(args, "selector"),
        text=read_string(args, "text", "label", "target", "projectName"),
        link_hint=read_string(args, "text", "label", "target"),
    )


def parse_args(call: ToolCall) -> ActionArgs:
    """把模型给出的参数转换为对应动作的参数类型，失败时抛出 ArgumentError"""
    args = call.args
    if not isinstance(args, dict):
        raise ArgumentError("Invalid tool arguments.")

    if call.name == "scroll_by":
        delta = read_number(args, "delta", "amount")
        if delta is None:
            raise ArgumentError("Missing numeric delta argument.")
        return ScrollArgs(delta=delta)

    if call.name == "navigate_to_section":
        section = read_string(args, "sectionId", "section", "target")
        if not section:
            raise ArgumentError("Missing target section id.")
        return NavigateArgs(section=section)

    if call.name in ("click_element", "highlight_element"):
        return parse_target_args(args)

    if call.name == "fill_input":
        selector = read_string(args, "selector")
        raw_values = args.get("values")
        if isinstance(raw_values, dict):
            values = {
                key: value
                for key, value in raw_values.items()
                if isinstance(key, str) and isinstance(value, str)
            }
            if values:
                return FillArgs(selector=selector, values=values)

        value = read_string(args, "value")
        if not value:
            raise ArgumentError("Missing input value.")
        field_name = read_string(args, "fieldName", "name", "field") or "input"
        return FillArgs(selector=selector, field_name=field_name, value=value)

    raise ArgumentError(f"Unknown tool \"{call.name}\".")
