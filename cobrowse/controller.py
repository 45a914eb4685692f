"""执行模块：把规划服务的动作请求落到页面上"""

import math
from typing import List, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page

from .models import DomNode, ToolCall, ToolResult
from .resolver import TargetResolver, normalize
from .tools import ArgumentError, FillArgs, NavigateArgs, ScrollArgs, TargetArgs, parse_args

HIGHLIGHT_CLASS = "co-highlight-pulse"
HIGHLIGHT_MS = 2600
CLICK_TIMEOUT_MS = 5000

# 只增删高亮 class，外观由页面自己的样式表定义
JS_HIGHLIGHT = """
(el, { className, durationMs }) => {
    el.classList.add(className);
    window.setTimeout(() => el.classList.remove(className), durationMs);
}
"""

JS_SCROLL_INTO_VIEW = "(el, block) => el.scrollIntoView({ behavior: 'smooth', block })"

JS_DESCRIBE = """
(el) => ({
    tag: el.tagName.toLowerCase(),
    text: (el.textContent || '').replace(/\\s+/g, ' ').trim(),
    href: el.getAttribute('href') || '',
})
"""

# 通过原型上的 value setter 赋值，绕过框架包装，再补发 input/change 事件
JS_SET_VALUE = """
(el, value) => {
    const descriptor = Object.getOwnPropertyDescriptor(Object.getPrototypeOf(el), 'value');
    if (descriptor && descriptor.set) {
        descriptor.set.call(el, value);
    } else {
        el.value = value;
    }
    el.dispatchEvent(new Event('input', { bubbles: true }));
    el.dispatchEvent(new Event('change', { bubbles: true }));
    el.focus();
}
"""

JS_REPLACE_HASH = "(hash) => history.replaceState(null, '', hash)"


class FieldNotFoundError(LookupError):
    pass


def describe_element(tag: str, text: str) -> str:
    trimmed = f" \"{text[:44]}\"" if text else ""
    return f"<{tag}>{trimmed}"


def choose_link_index(link_texts: List[str], hint: Optional[str]) -> int:
    """项目卡片内选择链接：github → 含 github 的链接；live/demo/preview → 含 live 的链接；默认第一个"""
    texts = [normalize(text) for text in link_texts]
    target = normalize(hint)

    if "github" in target:
        keyword = "github"
    elif any(word in target for word in ("live", "demo", "preview")):
        keyword = "live"
    else:
        return 0

    return next((i for i, text in enumerate(texts) if keyword in text), 0)


class Controller:
    """执行模块：五种动作，每个动作返回一个 ToolResult"""

    def __init__(self, page: Page, resolver: Optional[TargetResolver] = None):
        self.page = page
        self.resolver = resolver or TargetResolver(page)
        self._handlers = {
            "scroll_by": self._scroll_by,
            "navigate_to_section": self._navigate_to_section,
            "click_element": self._click_element,
            "highlight_element": self._highlight_element,
            "fill_input": self._fill_input,
        }

    async def execute(self, call: ToolCall) -> ToolResult:
        """执行单个动作请求。参数错误、找不到目标、浏览器报错都转换成失败结果。"""
        try:
            args = parse_args(call)
        except ArgumentError as e:
            result = self._result(call, False, str(e))
        else:
            try:
                result = await self._handlers[call.name](call, args)
            except PlaywrightError as e:
                result = self._result(call, False, f"Browser action failed: {e}")

        marker = "✓" if result.success else "❌"
        print(f"{marker} {call.name}: {result.output}")
        return result

    def _result(self, call: ToolCall, success: bool, output: str) -> ToolResult:
        return ToolResult(tool_call_id=call.id, name=call.name, success=success, output=output)

    def _locate(self, node: DomNode) -> Locator:
        return self.page.locator(node.query).nth(node.index)

    async def highlight(self, locator: Locator):
        """临时高亮，HIGHLIGHT_MS 后由页面定时器移除"""
        await locator.evaluate(JS_HIGHLIGHT, {"className": HIGHLIGHT_CLASS, "durationMs": HIGHLIGHT_MS})

    async def _reveal(self, locator: Locator, block: str):
        await locator.evaluate(JS_SCROLL_INTO_VIEW, block)
        await self.highlight(locator)

    async def _scroll_by(self, call: ToolCall, args: ScrollArgs) -> ToolResult:
        await self.page.evaluate(
            "(top) => window.scrollBy({ top, behavior: 'smooth' })",
            args.delta,
        )
        pixels = int(math.floor(abs(args.delta) + 0.5))
        direction = "down" if args.delta >= 0 else "up"
        return self._result(call, True, f"Scrolled {direction} by {pixels} pixels.")

    async def _navigate_to_section(self, call: ToolCall, args: NavigateArgs) -> ToolResult:
        section = await self.resolver.resolve_section(args.section)
        if not section:
            return self._result(call, False, f"Section \"{args.section}\" was not found.")

        locator = self._locate(section)
        await locator.evaluate(JS_SCROLL_INTO_VIEW, "start")
        if section.element_id:
            await self.page.evaluate(JS_REPLACE_HASH, f"#{section.element_id}")
        await self.highlight(locator)

        return self._result(call, True, f"Moved to section \"{section.element_id or args.section}\".")

    async def _card_link(self, card: Locator, hint: Optional[str]) -> Optional[Locator]:
        links = card.locator("a")
        texts = await links.all_text_contents()
        if not texts:
            return None
        return links.nth(choose_link_index(texts, hint))

    async def _click_element(self, call: ToolCall, args: TargetArgs) -> ToolResult:
        node = await self.resolver.resolve(args)
        if not node:
            return self._result(call, False, "Could not find an element to click.")

        target = self._locate(node)
        if node.is_card:
            link = await self._card_link(target, args.link_hint)
            if link is not None:
                target = link

        await self._reveal(target, "center")

        if not await target.is_enabled():
            return self._result(call, False, "Target button is disabled and cannot be clicked.")

        info = await target.evaluate(JS_DESCRIBE)

        # 页内锚点：直接滚动到对应区块并更新 hash，不依赖默认跳转
        if info["tag"] == "a" and info["href"].startswith("#"):
            section = await self.resolver.resolve_section(info["href"])
            if section:
                section_locator = self._locate(section)
                await section_locator.evaluate(JS_SCROLL_INTO_VIEW, "start")
                await self.highlight(section_locator)
                await self.page.evaluate(JS_REPLACE_HASH, info["href"])
                return self._result(call, True, f"Moved to {info['href']}.")

        await target.click(timeout=CLICK_TIMEOUT_MS)
        return self._result(call, True, f"Clicked {describe_element(info['tag'], info['text'])}.")

    async def _highlight_element(self, call: ToolCall, args: TargetArgs) -> ToolResult:
        node = await self.resolver.resolve(args)
        if not node:
            return self._result(call, False, "Could not find an element to highlight.")

        target = self._locate(node)
        await self._reveal(target, "center")
        info = await target.evaluate(JS_DESCRIBE)
        return self._result(call, True, f"Highlighted {describe_element(info['tag'], info['text'])}.")

    async def _fill_field(self, field_name: str, value: str, selector: Optional[str]) -> str:
        node = await self.resolver.find_field(field_name, selector)
        if not node:
            raise FieldNotFoundError(f"Could not find input field for \"{field_name}\".")

        locator = self._locate(node)
        await locator.evaluate(JS_SET_VALUE, value)
        await self.highlight(locator)
        return f"{field_name} updated"

    async def _fill_input(self, call: ToolCall, args: FillArgs) -> ToolResult:
        if args.values:
            outputs = []
            for field_name, value in args.values.items():
                try:
                    outputs.append(await self._fill_field(field_name, value, args.selector))
                except FieldNotFoundError as e:
                    # 已填写的字段不回滚
                    message = str(e)
                    if outputs:
                        message += f" Already filled: {', '.join(outputs)}."
                    return self._result(call, False, message)

            return self._result(call, True, f"Filled {len(outputs)} field(s): {', '.join(outputs)}.")

        try:
            output = await self._fill_field(args.field_name, args.value, args.selector)
        except FieldNotFoundError as e:
            return self._result(call, False, str(e))
        return self._result(call, True, f"{output} with \"{args.value[:80]}\".")
