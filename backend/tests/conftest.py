"""
图片加载测试配置文件

这个文件包含 pytest fixtures（测试夹具）。
Fixtures 是测试的"准备工作"——在测试运行前创建所需的对象和环境。

关键概念：
- httpx.MockTransport：替代真实网络，按请求返回预设响应
- FakeClock / RecordingSleep：替代真实时间，测试不需要真正等待
"""

import asyncio
import sys
from io import BytesIO
from pathlib import Path
from typing import Callable, List

import httpx
import pytest
from PIL import Image

# 添加 backend 目录到 Python 路径
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))


# ============================================
# 图片数据
# ============================================

def make_png(width: int = 8, height: int = 6) -> bytes:
    output = BytesIO()
    Image.new("RGB", (width, height), (200, 30, 90)).save(output, format="PNG")
    return output.getvalue()


SVG_BYTES = b'<svg xmlns="http://www.w3.org/2000/svg" width="10" height="10"></svg>'


@pytest.fixture
def png_bytes():
    """一张 8x6 的 PNG 图片"""
    return make_png()


# ============================================
# 网络替身
# ============================================

class RequestLog:
    """
    记录 MockTransport 收到的所有请求。

    使用方式：
    ```python
    log = RequestLog(lambda request: httpx.Response(200, content=b"ok"))
    client = log.client()
    ```
    """

    def __init__(self, handler: Callable):
        self.handler = handler
        self.requests: List[httpx.Request] = []

    async def __call__(self, request: httpx.Request):
        self.requests.append(request)
        result = self.handler(request)
        if asyncio.iscoroutine(result):
            result = await result
        return result

    @property
    def urls(self) -> List[str]:
        return [str(r.url) for r in self.requests]

    def client(self, **kwargs) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self), **kwargs)


def image_response(data: bytes, content_type: str = "image/png") -> httpx.Response:
    return httpx.Response(200, content=data, headers={"content-type": content_type})


async def never_respond(request: httpx.Request) -> httpx.Response:
    """永远不返回的请求（模拟服务器挂起）"""
    await asyncio.Event().wait()
    raise AssertionError("unreachable")


# ============================================
# 时间替身
# ============================================

class RecordingSleep:
    """记录每次 backoff 等待的秒数，但不真正等待"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeClock:
    """可手动推进的时钟（秒）"""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def fake_clock():
    return FakeClock()


# ============================================
# Helper Functions
# ============================================

def assert_query_param_count(url: str, expected: int):
    """
    断言 URL 中查询参数的数量。

    使用方式：
    ```python
    assert_query_param_count("https://x/a.png?v=1", 1)
    ```
    """
    query = url.split("?", 1)[1] if "?" in url else ""
    params = [p for p in query.split("&") if p]
    assert len(params) == expected, f"Expected {expected} query params in {url}, got {len(params)}"
