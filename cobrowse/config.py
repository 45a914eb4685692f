"""配置：从环境变量（及 .env 文件）读取"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

DEFAULT_MODEL = "gpt-4o"
DEFAULT_START_URL = "http://localhost:3000"


@dataclass
class Settings:
    api_key: Optional[str]
    model: str
    base_url: Optional[str] = None
    start_url: str = DEFAULT_START_URL
    headless: bool = False

    @classmethod
    def from_env(cls, load_env_file: bool = True) -> "Settings":
        """读取环境变量。缺少 API Key 不在这里报错，由规划模块给出固定提示。"""
        if load_env_file:
            load_dotenv()

        return cls(
            api_key=os.getenv("OPENAI_API_KEY") or None,
            model=os.getenv("OPENAI_MODEL", DEFAULT_MODEL).strip(),
            base_url=os.getenv("OPENAI_BASE_URL") or None,
            start_url=os.getenv("COBROWSE_START_URL", DEFAULT_START_URL),
            headless=os.getenv("COBROWSE_HEADLESS", "").strip().lower() in ("1", "true", "yes"),
        )
