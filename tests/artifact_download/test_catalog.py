"""Catalog client requests, status handling, and payload decoding."""

from __future__ import annotations

import logging

import httpx
import pytest

from PaperLaunch.ArtifactDownload.catalog import CatalogClient
from PaperLaunch.ArtifactDownload.errors import (
    CatalogDecodeError,
    CatalogError,
    PolicyError,
    TransportError,
)
from PaperLaunch.ArtifactDownload.settings import HttpSettings
from PaperLaunch.ArtifactDownload.testing import ResponseSpec, use_mock_transport

BASE = "/v2/projects/paper"


def test_fetch_project_lists_versions(catalog, transport):
    client = CatalogClient(transport)

    assert client.fetch_project().versions == ["1.20.6", "1.21.1"]
    assert catalog.paths() == [BASE]


def test_fetch_builds_preserves_catalog_order(catalog, transport):
    builds = CatalogClient(transport).fetch_builds("1.21.1").builds

    assert [entry.build for entry in builds] == [99, 100]
    assert catalog.paths() == [f"{BASE}/versions/1.21.1/builds"]


def test_fetch_download_info(transport):
    info = CatalogClient(transport).fetch_download_info("1.21.1", 100)

    assert info.downloads.application.name == "paper-1.21.1-100.jar"


def test_download_url_layout(transport):
    client = CatalogClient(transport)

    assert client.download_url("1.21.1", 100, "paper-1.21.1-100.jar") == (
        "https://api.papermc.io/v2/projects/paper/versions/1.21.1/builds/100"
        "/downloads/paper-1.21.1-100.jar"
    )


def test_non_success_status_carries_bounded_preview(catalog, transport):
    catalog.overrides[f"{BASE}/versions/9.9.9/builds"] = ResponseSpec(status=404, body="x" * 1000)

    with pytest.raises(CatalogError) as excinfo:
        CatalogClient(transport).fetch_builds("9.9.9")

    message = str(excinfo.value)
    assert excinfo.value.status_code == 404
    assert message.startswith("API returned status 404")
    assert "x" * 200 in message
    assert "x" * 201 not in message


def test_malformed_json_raises_decode_error(catalog, transport, caplog):
    catalog.overrides[BASE] = ResponseSpec(body="{not json")

    caplog.set_level(logging.WARNING)
    with pytest.raises(CatalogDecodeError) as excinfo:
        CatalogClient(transport).fetch_project()

    assert "API may have changed" in str(excinfo.value)
    assert any("Failed to parse project JSON" in r.getMessage() for r in caplog.records)


def test_missing_field_raises_decode_error(catalog, transport):
    catalog.overrides[f"{BASE}/versions/1.21.1/builds/100"] = ResponseSpec(
        body='{"downloads": {}}'
    )

    with pytest.raises(CatalogDecodeError):
        CatalogClient(transport).fetch_download_info("1.21.1", 100)


def test_connection_failure_maps_to_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with use_mock_transport(httpx.MockTransport(handler)) as transport:
        with pytest.raises(TransportError):
            CatalogClient(transport).fetch_project()


def test_insecure_base_url_is_refused_before_any_request(catalog):
    settings = HttpSettings(catalog_base_url="http://api.papermc.io/v2/projects/paper")

    with use_mock_transport(catalog, settings) as transport:
        with pytest.raises(PolicyError):
            CatalogClient(transport).fetch_project()
    assert catalog.requests == []


def test_trailing_slash_is_stripped_from_base_url():
    assert HttpSettings(catalog_base_url="https://example.org/paper/").catalog_base_url == (
        "https://example.org/paper"
    )
