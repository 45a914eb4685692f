"""感知模块：把当前页面整理成结构化快照，供规划服务参考"""

from playwright.async_api import Page

from .models import ElementData, PageSnapshot, SectionData

MAX_SECTIONS = 12
MAX_ELEMENTS = 160
MAX_TEXT = 260


class Perception:
    """
    感知模块：提取可见区块和可交互元素，只读页面，不做任何修改。

    每个元素都会生成一个 selector，之后可以用它重新定位到同一元素：
    - 优先使用 #id
    - 其次是全局唯一的 name 属性
    - 链接再尝试全局唯一的 href
    - 最后向上最多 4 层拼出 tag:nth-of-type(k) 路径（兄弟节点顺序变化后可能失效）
    """

    JS_CAPTURE = """
    ({ maxSections, maxElements, maxText }) => {
        const normalizeText = (value, maxLength = maxText) => {
            const trimmed = (value || '').replace(/\\s+/g, ' ').trim();
            if (trimmed.length <= maxLength) return trimmed;
            return trimmed.slice(0, maxLength - 3) + '...';
        };

        const escapeAttribute = (value) => value.replace(/\\\\/g, '\\\\\\\\').replace(/"/g, '\\\\"');

        const isVisible = (el) => {
            const style = window.getComputedStyle(el);
            const rect = el.getBoundingClientRect();
            if (style.display === 'none') return false;
            if (style.visibility === 'hidden') return false;
            if (parseFloat(style.opacity) === 0) return false;
            if (rect.width <= 0 || rect.height <= 0) return false;
            return true;
        };

        const buildSelector = (el) => {
            const tag = el.tagName.toLowerCase();
            if (el.id) return '#' + CSS.escape(el.id);

            const name = el.getAttribute('name');
            if (name) {
                const byName = `${tag}[name="${escapeAttribute(name)}"]`;
                if (document.querySelectorAll(byName).length === 1) return byName;
            }

            const href = el.getAttribute('href');
            if (href && tag === 'a') {
                const byHref = `a[href="${escapeAttribute(href)}"]`;
                if (document.querySelectorAll(byHref).length === 1) return byHref;
            }

            const path = [];
            let current = el;
            while (current && path.length < 4) {
                if (current === document.body) {
                    path.unshift('body');
                    break;
                }
                const nodeTag = current.tagName.toLowerCase();
                if (current.id) {
                    path.unshift('#' + CSS.escape(current.id));
                    break;
                }
                const parent = current.parentElement;
                if (!parent) {
                    path.unshift(nodeTag);
                    break;
                }
                const siblings = Array.from(parent.children).filter(s => s.tagName === current.tagName);
                path.unshift(`${nodeTag}:nth-of-type(${siblings.indexOf(current) + 1})`);
                current = parent;
            }
            return path.join(' > ');
        };

        const root = document.querySelector('[data-portfolio-root]') || document.body;

        const sections = Array.from(root.querySelectorAll('section[id]'))
            .filter(isVisible)
            .slice(0, maxSections)
            .map((section) => {
                const headingNode = section.querySelector('h1, h2, h3');
                const heading = headingNode ? headingNode.textContent : section.id;
                const preview = section.dataset.summary ?? section.textContent ?? section.id;
                return {
                    id: section.id,
                    heading: normalizeText(heading, 80),
                    textPreview: normalizeText(preview),
                };
            });

        const query = "section[id], [data-project-card], a[href], button, input, textarea, select, [role='button']";
        const elements = Array.from(root.querySelectorAll(query))
            .filter(isVisible)
            .slice(0, maxElements)
            .map((el) => {
                const section = el.closest('section[id]');
                const textSource = [
                    el.textContent,
                    el.getAttribute('aria-label'),
                    el.getAttribute('placeholder'),
                    el.getAttribute('data-project-title'),
                    el.getAttribute('data-section'),
                ].filter(Boolean).join(' ');

                return {
                    selector: buildSelector(el),
                    tag: el.tagName.toLowerCase(),
                    text: normalizeText(textSource, 120),
                    ariaLabel: normalizeText(el.getAttribute('aria-label') || '', 80),
                    href: normalizeText(el.getAttribute('href') || '', 120),
                    inputName: normalizeText(
                        el.getAttribute('name') || el.getAttribute('id') || el.getAttribute('placeholder') || '',
                        80
                    ),
                    inputType: normalizeText(el.getAttribute('type') || '', 40),
                    sectionId: section ? section.id : '',
                };
            });

        return {
            url: window.location.href,
            title: document.title,
            capturedAt: new Date().toISOString(),
            sections,
            elements,
        };
    }
    """

    async def capture(self, page: Page) -> PageSnapshot:
        """采集一份新的页面快照"""
        data = await page.evaluate(
            self.JS_CAPTURE,
            {"maxSections": MAX_SECTIONS, "maxElements": MAX_ELEMENTS, "maxText": MAX_TEXT},
        )
        snapshot = PageSnapshot(
            url=data["url"],
            title=data["title"],
            captured_at=data["capturedAt"],
            sections=[
                SectionData(id=item["id"], heading=item["heading"], text_preview=item["textPreview"])
                for item in data["sections"][:MAX_SECTIONS]
            ],
            elements=[
                ElementData(
                    selector=item["selector"],
                    tag=item["tag"],
                    text=item["text"],
                    aria_label=item["ariaLabel"],
                    href=item["href"],
                    input_name=item["inputName"],
                    input_type=item["inputType"],
                    section_id=item["sectionId"],
                )
                for item in data["elements"][:MAX_ELEMENTS]
            ],
        )
        print(f"✓ 快照：{len(snapshot.sections)} 个区块，{len(snapshot.elements)} 个元素")
        return snapshot

    def format_summary(self, snapshot: PageSnapshot) -> str:
        """生成快照的文本摘要（调试用）"""
        lines = [f"{snapshot.title} <{snapshot.url}>"]
        for section in snapshot.sections:
            lines.append(f"#{section.id}: {section.heading}")
        for element in snapshot.elements:
            section_str = f" (in #{element.section_id})" if element.section_id else ""
            lines.append(f"  {element.tag} {element.selector}: \"{element.text}\"{section_str}")
        return "\n".join(lines)
