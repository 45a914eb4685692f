"""数据模型定义"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class SectionData:
    """页面中的一个带 id 的区块"""
    id: str
    heading: str
    text_preview: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "heading": self.heading, "textPreview": self.text_preview}


@dataclass(frozen=True)
class ElementData:
    """单个可交互元素的快照"""
    selector: str
    tag: str
    text: str
    aria_label: str
    href: str
    input_name: str
    input_type: str
    section_id: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "selector": self.selector,
            "tag": self.tag,
            "text": self.text,
            "ariaLabel": self.aria_label,
            "href": self.href,
            "inputName": self.input_name,
            "inputType": self.input_type,
            "sectionId": self.section_id,
        }


@dataclass(frozen=True)
class PageSnapshot:
    """页面结构摘要，每次调用规划服务前重新采集"""
    url: str
    title: str
    captured_at: str
    sections: List[SectionData]
    elements: List[ElementData]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "capturedAt": self.captured_at,
            "sections": [s.to_dict() for s in self.sections],
            "elements": [e.to_dict() for e in self.elements],
        }


@dataclass
class ChatMessage:
    """单条对话记录"""
    role: str  # user|assistant|tool
    content: str
    created_at: str = field(default_factory=_now_iso)

    @classmethod
    def create(cls, role: str, content: str) -> "ChatMessage":
        return cls(role=role, content=content)

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content, "createdAt": self.created_at}


@dataclass
class ToolCall:
    """规划服务下发的动作请求，args 为未经校验的提示字段"""
    id: str
    name: str
    args: Any

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "args": self.args}


@dataclass
class ToolResult:
    """单个动作的执行结果，与请求一一对应"""
    tool_call_id: str
    name: str
    success: bool
    output: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "toolCallId": self.tool_call_id,
            "name": self.name,
            "success": self.success,
            "output": self.output,
        }


@dataclass
class ChatResponse:
    """规划服务的一次回复"""
    assistant_message: str
    tool_calls: List[ToolCall] = field(default_factory=list)
    awaiting_tool_results: bool = False


@dataclass
class FlowItem:
    """动作时间线中的一项，仅供展示"""
    id: str
    label: str
    detail: str
    status: str  # running|success|failed


@dataclass(frozen=True)
class DomNode:
    """
    解析引擎看到的单个页面元素。

    query 是扫描时使用的选择器，index 是元素在其匹配结果中的位置，
    用 page.locator(query).nth(index) 重新定位，不需要在页面上写任何标记。
    """
    index: int
    tag: str
    element_id: str = ""
    heading: str = ""
    text: str = ""
    aria_label: str = ""
    placeholder: str = ""
    name: str = ""
    href: str = ""
    project_title: Optional[str] = None
    project_order: Optional[str] = None
    is_section: bool = False
    is_card: bool = False
    is_candidate: bool = False
    visible: bool = True
    query: str = ""

    @property
    def is_field(self) -> bool:
        return self.tag in ("input", "textarea")
