"""
Co-Browse Agent - 基于 Playwright + OpenAI 的协同浏览助手

打开目标页面后，在终端里输入指令，助手会规划并在页面上执行动作：
跳转区块、高亮项目卡片、点击链接、填写联系表单。

依赖安装：
    pip install -e .
    playwright install chromium

运行示例：
    python web_ui_agent.py http://localhost:3000
"""

import asyncio
import sys

from playwright.async_api import async_playwright

from cobrowse import CoBrowseAgent, Planner, Settings

EXAMPLE_PROMPTS = [
    "What projects are showcased here?",
    "Go to the projects section and highlight the most recent one.",
    "Highlight the second project card.",
    "Fill contact form with name Alex and email alex@test.com.",
    "Take me to contact section.",
]


async def run(start_url: str, settings: Settings) -> None:
    """主循环：读取用户输入 -> 执行一轮对话 -> 打印新增消息"""
    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=settings.headless)
        page = await browser.new_page()
        await page.goto(start_url)

        agent = CoBrowseAgent(page, Planner(settings))
        print(f"[assistant] {agent.memory.history[-1].content}")
        print("输入 /page 查看当前页面摘要，exit 退出。")
        print("示例指令：")
        for prompt in EXAMPLE_PROMPTS:
            print(f"  - {prompt}")

        loop = asyncio.get_running_loop()
        while True:
            line = await loop.run_in_executor(None, input, "\n> ")
            if line.strip().lower() in ("exit", "quit"):
                break
            if line.strip() == "/page":
                print(agent.perception.format_summary(await agent.perception.capture(page)))
                continue

            for message in await agent.run_turn(line):
                if message.role != "user":
                    print(f"[{message.role}] {message.content}")

            print(f"\n动作时间线：\n{agent.memory.format_flow()}")

        await browser.close()


if __name__ == "__main__":
    settings = Settings.from_env()
    start_url = sys.argv[1] if len(sys.argv) > 1 else settings.start_url
    asyncio.run(run(start_url, settings))
