"""Co-Browse Agent 包

包含各个模块：
- models: 数据模型
- config: 环境配置
- tools: 动作声明与参数校验
- perception: 感知模块（页面快照）
- resolver: 目标解析模块
- controller: 执行模块
- planner: 规划模块
- memory: 记忆模块
- core: 核心 Agent 类
"""

from .models import (
    ChatMessage,
    ChatResponse,
    DomNode,
    ElementData,
    FlowItem,
    PageSnapshot,
    SectionData,
    ToolCall,
    ToolResult,
)
from .config import Settings
from .perception import Perception
from .resolver import TargetResolver
from .controller import Controller
from .planner import ConfigurationError, Planner, PlannerError, RequestError
from .memory import Memory
from .core import CoBrowseAgent, TurnState

__all__ = [
    "ChatMessage",
    "ChatResponse",
    "DomNode",
    "ElementData",
    "FlowItem",
    "PageSnapshot",
    "SectionData",
    "ToolCall",
    "ToolResult",
    "Settings",
    "Perception",
    "TargetResolver",
    "Controller",
    "Planner",
    "PlannerError",
    "ConfigurationError",
    "RequestError",
    "Memory",
    "CoBrowseAgent",
    "TurnState",
]
