import json
from typing import Any, Dict, List, Optional

import pytest
import requests

from storelift.models.migration import ExportOptions, MigrationConfig, RetrySettings
from storelift.models.record import StoreProduct, TermItem


class FakeResponse:
    """Minimal stand-in for ``requests.Response``."""

    def __init__(
        self,
        status_code: int = 200,
        content: bytes = b"",
        headers: Optional[Dict[str, str]] = None,
        json_data: Any = None,
        url: str = "",
    ):
        if json_data is not None:
            content = json.dumps(json_data).encode("utf-8")
            headers = {"Content-Type": "application/json", **(headers or {})}
        if isinstance(content, str):
            content = content.encode("utf-8")
        self.status_code = status_code
        self.content = content
        self.headers = headers or {}
        self.url = url

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self):
        return json.loads(self.content.decode("utf-8"))

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"HTTP {self.status_code} for {self.url}", response=self)

    def iter_content(self, chunk_size: int = 1024):
        for start in range(0, len(self.content), chunk_size):
            yield self.content[start:start + chunk_size]

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeSession:
    """
    Session look-alike serving canned responses keyed by URL (query ignored).

    A route value may be a FakeResponse, an exception instance (raised) or a
    list consumed one item per call. Unknown URLs answer 404.
    """

    def __init__(self, routes: Optional[Dict[str, Any]] = None):
        self.routes: Dict[str, Any] = dict(routes or {})
        self.calls: List[Dict[str, Any]] = []
        self.headers: Dict[str, str] = {}
        self.closed = False

    def add(self, url: str, response: Any) -> None:
        self.routes[url] = response

    def request(self, method: str, url: str, **kwargs) -> FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        route = self.routes.get(url.split("?")[0])
        if isinstance(route, list):
            route = route.pop(0) if len(route) > 1 else route[0]
        if isinstance(route, Exception):
            raise route
        if route is None:
            return FakeResponse(404, url=url)
        if not route.url:
            route.url = url
        return route

    def get(self, url: str, **kwargs) -> FakeResponse:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs) -> FakeResponse:
        return self.request("POST", url, **kwargs)

    def calls_to(self, url: str) -> int:
        return sum(1 for c in self.calls if c["url"].split("?")[0] == url)

    def close(self):
        self.closed = True


def image_response(data: bytes = b"\x89PNG fake", content_type: str = "image/png") -> FakeResponse:
    return FakeResponse(200, data, headers={"Content-Type": content_type})


def make_product(product_id: int, name: str = "", product_type: str = "simple", images=None, parent_id=None) -> StoreProduct:
    name = name or f"Product {product_id}"
    return StoreProduct(
        id=product_id,
        name=name,
        slug=name.lower().replace(" ", "-"),
        type=product_type,
        parent_id=parent_id,
        sku=f"SKU-{product_id}",
        images=list(images or []),
        categories=[TermItem(id=1, name="Shirts", slug="shirts")],
    )


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def make_config(tmp_path):
    def factory(**overrides) -> MigrationConfig:
        options = overrides.pop("options", None) or ExportOptions()
        config = MigrationConfig(
            target_url=overrides.pop("target_url", "https://shop.example.com"),
            options=options,
            retry=RetrySettings(enabled=False),
            output_root=str(tmp_path / "output"),
            directory_delay_seconds=0,
        )
        for key, value in overrides.items():
            setattr(config, key, value)
        return config

    return factory
