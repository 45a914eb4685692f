"""目标解析模块：把模型给出的提示映射到页面上的唯一元素

流程：
1. survey() 只读扫描页面，返回候选元素的描述（DomNode），聊天面板内的元素在扫描时就被跳过
2. 按固定顺序尝试各个策略，第一个命中的结果胜出：
   区块提示 → 显式 selector → 文本提示（项目卡片 → 区块别名 → 全文排序搜索）
3. 调用方用 page.locator(node.query).nth(node.index) 重新定位元素

解析过程不修改页面。
"""

import re
from types import MappingProxyType
from typing import Any, Dict, List, Optional, Union

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from .models import DomNode
from .tools import TargetArgs, parse_target_args

CHAT_UI_SELECTOR = "[data-chat-ui='true']"

SURVEY_QUERY = "[id], [data-project-card], a, button, input, textarea, select, h1, h2, h3, p, li, [role='button']"

SECTION_ALIASES = MappingProxyType({
    "hero": ("hero", "home", "top", "intro", "landing"),
    "about": ("about", "bio", "background", "profile"),
    "projects": ("projects", "portfolio", "work", "case studies", "case-study"),
    "skills": ("skills", "tech", "stack", "expertise"),
    "contact": ("contact", "hire", "email", "reach", "message"),
})

ORDINAL_WORDS = MappingProxyType({
    "first": 1,
    "second": 2,
    "third": 3,
    "fourth": 4,
    "fifth": 5,
})

SUPERLATIVE_TERMS = ("most recent", "latest", "newest")

_ORDINAL_NUMBER = re.compile(r"\b(\d+)(?:st|nd|rd|th)?\b")


def normalize(value: Optional[str]) -> str:
    """小写、合并空白、去掉首尾空白"""
    return re.sub(r"\s+", " ", (value or "").lower()).strip()


def parse_ordinal(hint: str) -> Optional[int]:
    """从提示中解析序号：first..fifth，或第一个独立的整数（允许 2nd 这样的后缀）"""
    target = normalize(hint)
    for word, index in ORDINAL_WORDS.items():
        if word in target:
            return index

    match = _ORDINAL_NUMBER.search(target)
    if match:
        return int(match.group(1))
    return None


def _order_of(node: DomNode) -> Optional[float]:
    if node.project_order is None:
        return None
    try:
        return float(node.project_order.strip())
    except ValueError:
        return None


def match_section(nodes: List[DomNode], hint: str) -> Optional[DomNode]:
    """区块提示：id 直接匹配 → 别名表 → 可见区块的 id+标题包含提示"""
    target = normalize(hint)
    if target.startswith("#"):
        target = target[1:].strip()
    if not target:
        return None

    for node in nodes:
        if node.element_id == target:
            return node

    for canonical, aliases in SECTION_ALIASES.items():
        if any(alias in target for alias in aliases):
            candidate = next((node for node in nodes if node.element_id == canonical), None)
            if candidate:
                return candidate

    for node in nodes:
        if node.is_section and node.visible and target in normalize(f"{node.element_id} {node.heading}"):
            return node

    return None


def match_card(nodes: List[DomNode], hint: str) -> Optional[DomNode]:
    """项目卡片：最新 → 序号（按 data-project-order，退回文档顺序） → 标题包含提示"""
    cards = [node for node in nodes if node.is_card]
    if not cards:
        return None

    target = normalize(hint)

    if any(term in target for term in SUPERLATIVE_TERMS):
        return next((card for card in cards if card.project_order == "1"), cards[0])

    ordinal = parse_ordinal(target)
    if ordinal is not None and 1 <= ordinal <= len(cards):
        by_order = next((card for card in cards if _order_of(card) == ordinal), None)
        return by_order or cards[ordinal - 1]

    for card in cards:
        title = card.project_title if card.project_title is not None else card.text
        if target in normalize(title):
            return card

    return None


def composite_text(node: DomNode) -> str:
    return normalize(" ".join([node.text, node.aria_label, node.placeholder, node.project_title or ""]))


def rank_by_text(nodes: List[DomNode], hint: str) -> List[DomNode]:
    """
    全文搜索排序：分数 = 提示首次出现的位置 + 组合文本长度，越小越好。

    没有出现提示的候选直接排除；同分时保持文档顺序。
    """
    target = normalize(hint)
    if not target:
        return []

    scored = []
    for node in nodes:
        if not node.is_candidate:
            continue
        content = composite_text(node)
        index = content.find(target)
        if index == -1:
            continue
        scored.append((index + len(content), node))

    scored.sort(key=lambda item: item[0])
    return [node for _, node in scored]


def match_field(nodes: List[DomNode], field_name: str) -> Optional[DomNode]:
    """按字段名匹配 input/textarea 的 name/id/placeholder/aria-label"""
    target = normalize(field_name)
    for node in nodes:
        if not node.is_field:
            continue
        attrs = [normalize(attr) for attr in (node.name, node.element_id, node.placeholder, node.aria_label) if attr]
        if any(target in attr for attr in attrs):
            return node
    return None


def node_from_js(item: Dict[str, Any], query: str) -> DomNode:
    return DomNode(
        index=item["index"],
        tag=item["tag"],
        element_id=item.get("elementId") or "",
        heading=item.get("heading") or "",
        text=item.get("text") or "",
        aria_label=item.get("ariaLabel") or "",
        placeholder=item.get("placeholder") or "",
        name=item.get("name") or "",
        href=item.get("href") or "",
        project_title=item.get("projectTitle"),
        project_order=item.get("projectOrder"),
        is_section=bool(item.get("isSection")),
        is_card=bool(item.get("isCard")),
        is_candidate=bool(item.get("isCandidate")),
        visible=bool(item.get("visible")),
        query=query,
    )


_JS_DESCRIBE = """
    const isVisible = (el) => {
        const style = window.getComputedStyle(el);
        const rect = el.getBoundingClientRect();
        if (style.display === 'none') return false;
        if (style.visibility === 'hidden') return false;
        if (parseFloat(style.opacity) === 0) return false;
        if (rect.width <= 0 || rect.height <= 0) return false;
        return true;
    };

    const candidateQuery = 'section[id], [data-project-card], a, button, input, textarea, select, h1, h2, h3, p, li';

    const describe = (el, index) => {
        const isSection = el.matches('section[id]');
        const headingNode = isSection ? el.querySelector('h1, h2, h3') : null;
        return {
            index,
            tag: el.tagName.toLowerCase(),
            elementId: el.id || '',
            heading: headingNode ? (headingNode.textContent || '') : '',
            text: el.textContent || '',
            ariaLabel: el.getAttribute('aria-label') || '',
            placeholder: el.getAttribute('placeholder') || '',
            name: el.getAttribute('name') || '',
            href: el.getAttribute('href') || '',
            projectTitle: el.getAttribute('data-project-title'),
            projectOrder: el.getAttribute('data-project-order'),
            isSection,
            isCard: el.matches('[data-project-card]'),
            isCandidate: el.matches(candidateQuery),
            visible: isVisible(el),
        };
    };
"""

# index 是元素在整个匹配列表中的位置（含被跳过的聊天面板元素），与 Locator.nth() 一致
JS_SURVEY = """
(elements, chatSelector) => {
""" + _JS_DESCRIBE + """
    const nodes = [];
    elements.forEach((el, index) => {
        if (el.closest(chatSelector)) return;
        nodes.push(describe(el, index));
    });
    return nodes;
}
"""

JS_FIRST_MATCH = """
(elements, chatSelector) => {
""" + _JS_DESCRIBE + """
    const el = elements[0];
    if (!el || el.closest(chatSelector)) return null;
    return describe(el, 0);
}
"""


class TargetResolver:
    """目标解析引擎：只读页面，结果由当前页面状态决定"""

    def __init__(self, page: Page, chat_ui_selector: str = CHAT_UI_SELECTOR):
        self.page = page
        self.chat_ui_selector = chat_ui_selector

    async def survey(self) -> List[DomNode]:
        """返回文档顺序的候选元素描述，聊天面板内的元素不在其中"""
        items = await self.page.locator(SURVEY_QUERY).evaluate_all(JS_SURVEY, self.chat_ui_selector)
        return [node_from_js(item, SURVEY_QUERY) for item in items]

    async def query_selector(self, selector: str) -> Optional[DomNode]:
        """显式 selector 查询第一个匹配；语法错误视为未命中，聊天面板内的结果丢弃"""
        query = f"css={selector}"
        try:
            item = await self.page.locator(query).evaluate_all(JS_FIRST_MATCH, self.chat_ui_selector)
        except PlaywrightError:
            return None
        if not item:
            return None
        return node_from_js(item, query)

    async def resolve_section(self, hint: str) -> Optional[DomNode]:
        return match_section(await self.survey(), hint)

    async def resolve(self, hints: Union[TargetArgs, Dict[str, Any]]) -> Optional[DomNode]:
        """按策略链解析目标，全部未命中时返回 None"""
        if isinstance(hints, dict):
            hints = parse_target_args(hints)

        nodes = await self.survey()

        if hints.section:
            section = match_section(nodes, hints.section)
            if section:
                return section

        if hints.selector:
            by_selector = await self.query_selector(hints.selector)
            if by_selector:
                return by_selector

        if hints.text:
            card = match_card(nodes, hints.text)
            if card:
                return card

            section = match_section(nodes, hints.text)
            if section:
                return section

            ranked = rank_by_text(nodes, hints.text)
            if ranked:
                return ranked[0]

        return None

    async def find_field(self, field_name: str, selector: Optional[str] = None) -> Optional[DomNode]:
        """定位要填写的输入框：优先 selector（必须是 input/textarea），其次按字段名匹配"""
        if selector:
            by_selector = await self.query_selector(selector)
            if by_selector and by_selector.is_field:
                return by_selector

        return match_field(await self.survey(), field_name)
