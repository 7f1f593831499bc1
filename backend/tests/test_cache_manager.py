"""
缓存管理器测试

运行测试：
    cd backend
    pytest tests/test_cache_manager.py -v
"""

import logging

import httpx
import pytest

from cache.cache_manager import CacheManager, CacheStrategy
from host.page import Page
from host.storage import CacheStorage, KeyValueStorage
from conftest import RequestLog, image_response

PAGE_URL = "https://shop.example.com/models"


def make_manager(handler=None, url=PAGE_URL, supports_hard_reload=True):
    log = RequestLog(handler or (lambda request: httpx.Response(200, text="<html></html>")))
    page = Page(url, http_client=log.client(), supports_hard_reload=supports_hard_reload)
    manager = CacheManager(
        page,
        cache_storage=CacheStorage(),
        local_storage=KeyValueStorage({"theme": "dark"}),
        session_storage=KeyValueStorage({"cart": "3"}),
    )
    return manager, log


# ============================================
# 1. 单项清理
# ============================================

class TestIndividualClears:

    @pytest.mark.asyncio
    async def test_clear_service_worker_cache(self):
        manager, _ = make_manager()
        await manager.cache_storage.open("images-v1")
        await manager.cache_storage.open("api-v1")

        await manager.clear_service_worker_cache()

        assert await manager.cache_storage.keys() == []

    def test_clear_browser_storage(self):
        manager, _ = make_manager()

        manager.clear_browser_storage()

        assert len(manager.local_storage) == 0
        assert len(manager.session_storage) == 0

    def test_clear_domain_cookies_visible_to_page(self):
        """测试：只清除当前页面可见的 cookie"""
        manager, _ = make_manager()
        cookies = manager.page.cookies
        cookies.set("session", "abc", domain="shop.example.com")
        cookies.set("tracking", "xyz", domain=".example.com")
        cookies.set("other", "keep", domain="other.org")

        manager.clear_domain_cookies()

        remaining = {cookie.name for cookie in cookies.jar}
        assert remaining == {"other"}

    def test_clear_domain_cookies_with_explicit_domain(self):
        manager, _ = make_manager()
        cookies = manager.page.cookies
        cookies.set("session", "abc", domain="shop.example.com")
        cookies.set("ads", "1", domain="cdn.other.org")
        cookies.set("keep", "1", domain="unrelated.net")

        manager.clear_domain_cookies(domain="other.org")

        remaining = {cookie.name for cookie in cookies.jar}
        assert remaining == {"keep"}

    def test_clear_host_only_cookie_without_domain(self):
        """测试：没有 domain 的 cookie 也会发送给当前页面，需要清除"""
        manager, _ = make_manager()
        cookies = manager.page.cookies
        cookies.set("session", "abc")
        cookies.set("other", "keep", domain="other.org")

        manager.clear_domain_cookies()

        remaining = {cookie.name for cookie in cookies.jar}
        assert remaining == {"other"}

    @pytest.mark.asyncio
    async def test_storage_failure_is_logged_not_raised(self, caplog):
        class BrokenStorage(KeyValueStorage):
            def clear(self):
                raise PermissionError("storage disabled")

        manager, _ = make_manager()
        manager.local_storage = BrokenStorage()

        with caplog.at_level(logging.WARNING):
            manager.clear_browser_storage()

        assert "storage disabled" in caplog.text


# ============================================
# 2. 强制刷新
# ============================================

class TestForceReload:

    @pytest.mark.asyncio
    async def test_hard_reload_bypasses_cache(self):
        manager, log = make_manager()

        await manager.force_reload()

        assert log.urls == [PAGE_URL]
        assert log.requests[0].headers["Cache-Control"] == "no-cache, no-store, must-revalidate"
        assert manager.page.url == PAGE_URL

    @pytest.mark.asyncio
    async def test_fallback_navigates_to_busted_url(self):
        """测试：不支持硬刷新时跳转到带 _cb 参数的 URL"""
        manager, log = make_manager(url=PAGE_URL + "?page=2", supports_hard_reload=False)

        await manager.force_reload()

        new_url = manager.page.url
        assert "_cb=" in new_url
        assert "page=2" in new_url
        assert manager.page.history == [PAGE_URL + "?page=2", new_url]
        assert log.urls == [new_url]

    @pytest.mark.asyncio
    async def test_reload_failure_is_swallowed(self):
        def handler(request):
            raise httpx.ConnectError("offline", request=request)

        manager, _ = make_manager(handler)

        await manager.force_reload()


# ============================================
# 3. 批量预加载
# ============================================

class TestPreloadImagesWithCacheBust:

    @pytest.mark.asyncio
    async def test_each_url_busted_with_no_cache_headers(self, png_bytes):
        manager, log = make_manager(lambda request: image_response(png_bytes))
        urls = ["https://cdn.example.com/a.png", "https://cdn.example.com/b.png?w=2"]

        results = await manager.preload_images_with_cache_bust(urls)

        assert [r.success for r in results] == [True, True]
        assert log.urls[0].startswith("https://cdn.example.com/a.png?_cb=")
        assert log.urls[1].startswith("https://cdn.example.com/b.png?w=2&_cb=")
        assert all(r.headers["Pragma"] == "no-cache" for r in log.requests)

    @pytest.mark.asyncio
    async def test_failures_reported_per_url(self, png_bytes):
        def handler(request):
            if "missing" in str(request.url):
                return httpx.Response(404)
            return image_response(png_bytes)

        manager, _ = make_manager(handler)

        results = await manager.preload_images_with_cache_bust(
            ["https://x/ok.png", "https://x/missing.png"]
        )

        assert results[0].success is True
        assert results[1].success is False
        assert "https://x/missing.png" in results[1].error

    @pytest.mark.asyncio
    async def test_non_image_payload_reports_failure(self):
        """测试：返回 200 但内容不是图片时，预加载失败"""
        def handler(request):
            if "page" in str(request.url):
                return httpx.Response(200, text="<!doctype html><html><body>Not found</body></html>",
                                      headers={"content-type": "text/html"})
            return httpx.Response(200, content=b"plain bytes", headers={"content-type": "image/png"})

        manager, _ = make_manager(handler)

        results = await manager.preload_images_with_cache_bust(["https://x/page.png", "https://x/junk.png"])

        assert [r.success for r in results] == [False, False]
        assert "https://x/page.png" in results[0].error


# ============================================
# 4. 全部清理
# ============================================

class TestClearAllCaches:

    @pytest.mark.asyncio
    async def test_clears_every_layer(self):
        manager, _ = make_manager()
        await manager.cache_storage.open("images-v1")
        manager.page.cookies.set("session", "abc", domain="shop.example.com")

        await manager.clear_all_caches()

        assert await manager.cache_storage.keys() == []
        assert len(manager.local_storage) == 0
        assert len(manager.session_storage) == 0
        assert list(manager.page.cookies.jar) == []

    @pytest.mark.asyncio
    async def test_every_operation_failing_still_completes(self, caplog):
        """测试：所有子操作都抛异常时，clear_all_caches 依然正常返回"""
        manager, _ = make_manager()
        called = []

        async def broken_cache_clear():
            called.append("service_worker_cache")
            raise RuntimeError("caches unavailable")

        def broken_storage_clear():
            called.append("browser_storage")
            raise RuntimeError("storage unavailable")

        def broken_cookie_clear():
            called.append("domain_cookies")
            raise RuntimeError("cookies unavailable")

        manager.clear_service_worker_cache = broken_cache_clear
        manager.clear_browser_storage = broken_storage_clear
        manager.clear_domain_cookies = broken_cookie_clear

        with caplog.at_level(logging.WARNING):
            await manager.clear_all_caches()

        assert sorted(called) == ["browser_storage", "domain_cookies", "service_worker_cache"]
        assert "caches unavailable" in caplog.text
        assert "storage unavailable" in caplog.text
        assert "cookies unavailable" in caplog.text

    @pytest.mark.asyncio
    async def test_one_failure_does_not_block_others(self):
        manager, _ = make_manager()
        await manager.cache_storage.open("images-v1")

        def broken_storage_clear():
            raise RuntimeError("storage unavailable")

        manager.clear_browser_storage = broken_storage_clear

        await manager.clear_all_caches()

        assert await manager.cache_storage.keys() == []


# ============================================
# 5. 辅助方法
# ============================================

class TestHelpers:

    def test_add_cache_buster_uses_cb_param(self):
        assert CacheManager.add_cache_buster("https://x/a.png").startswith("https://x/a.png?_cb=")

    def test_add_no_cache_headers(self):
        headers = CacheManager.add_no_cache_headers({"Accept": "image/*"})
        assert headers["Accept"] == "image/*"
        assert headers["Expires"] == "0"

    def test_production_strategy_is_moderate(self, monkeypatch):
        monkeypatch.setattr("cache.cache_manager.APP_ENV", "production")
        manager, _ = make_manager()

        assert manager.is_development() is False
        assert manager.get_cache_strategy() == CacheStrategy.MODERATE

    def test_development_env_is_aggressive(self, monkeypatch):
        monkeypatch.setattr("cache.cache_manager.APP_ENV", "development")
        manager, _ = make_manager()

        assert manager.get_cache_strategy() == CacheStrategy.AGGRESSIVE

    @pytest.mark.parametrize("url", [
        "http://localhost:3000/models",
        "http://127.0.0.1/models",
    ])
    def test_local_host_is_development(self, monkeypatch, url):
        monkeypatch.setattr("cache.cache_manager.APP_ENV", "production")
        manager, _ = make_manager(url=url)

        assert manager.is_development() is True

    @pytest.mark.parametrize("query", ["?nocache=1", "?refresh=true", "?page=2&refresh"])
    def test_refresh_query_is_aggressive(self, monkeypatch, query):
        monkeypatch.setattr("cache.cache_manager.APP_ENV", "production")
        manager, _ = make_manager(url=PAGE_URL + query)

        assert manager.get_cache_strategy() == CacheStrategy.AGGRESSIVE
