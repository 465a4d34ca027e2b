import argparse
import json

import pytest

from storelift import cli
from storelift.models.migration import Platform


def _args(**overrides):
    defaults = dict(
        url=None, config=None, platform=None, output=None, category=[], tag=[], export=[],
        max_pages=None, max_bytes=None, retries=None, no_retry=False, verbose=False,
    )
    defaults.update(overrides)
    return argparse.Namespace(**defaults)


def test_command_line_overrides_config_file(tmp_path):
    config_file = tmp_path / "run.json"
    config_file.write_text(json.dumps({
        "target_url": "https://old.example.com",
        "options": {"export_orders": True},
        "public_extension_max_pages": 10,
    }), encoding="utf-8")

    config = cli.load_config(_args(
        url="https://shop.example.com",
        config=str(config_file),
        platform="shopify",
        export=["reviews", "export_coupons"],
        max_pages="0",
        no_retry=True,
    ))

    assert config.target_url == "https://shop.example.com"
    assert config.platform == Platform.SHOPIFY
    assert config.options.export_orders
    assert config.options.export_reviews
    assert config.options.export_coupons
    assert config.public_extension_max_pages is None
    assert not config.retry.enabled


def test_unknown_export_flag_is_rejected():
    with pytest.raises(SystemExit):
        cli.load_config(_args(url="https://shop.example.com", export=["everything"]))


def test_url_is_required(monkeypatch):
    monkeypatch.delenv("STORELIFT_WP_USERNAME", raising=False)
    with pytest.raises(SystemExit):
        cli.load_config(_args())


def test_package_command_reports_missing_deliverables(tmp_path, capsys):
    folder = tmp_path / "store"
    folder.mkdir()

    assert cli.main(["package", "--store-folder", str(folder), "--prefix", "store_20240101_000000"]) == 1
    assert "Nothing to bundle" in capsys.readouterr().out


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 1
    assert "usage" in capsys.readouterr().out
