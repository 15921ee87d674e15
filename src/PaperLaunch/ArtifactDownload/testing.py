"""Testing utilities for exercising the acquisition pipeline offline.

:class:`FakeCatalog` answers catalog and download requests from in-memory
data through an ``httpx.MockTransport`` and records every request, so tests
can assert on both outcomes and network traffic.
"""

from __future__ import annotations

import io
import json
import zipfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Mapping, Optional, Tuple, Union
from urllib.parse import unquote, urlsplit

import httpx

from .net import HttpTransport
from .settings import HttpSettings

__all__ = [
    "FakeCatalog",
    "RequestRecord",
    "ResponseSpec",
    "catalog_transport",
    "jar_bytes",
    "undecodable_name_jar_bytes",
    "use_mock_transport",
]

CATALOG_PATH = "/v2/projects/paper"
DEFAULT_ENTRIES: Mapping[str, bytes] = {
    "META-INF/MANIFEST.MF": b"Manifest-Version: 1.0\nMain-Class: io.papermc.paperclip.Main\n",
    "io/papermc/paperclip/Main.class": b"\xca\xfe\xba\xbe",
}


def jar_bytes(entries: Optional[Mapping[str, bytes]] = None) -> bytes:
    """Return the bytes of a small ZIP archive holding ``entries``."""

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, data in (DEFAULT_ENTRIES if entries is None else entries).items():
            archive.writestr(name, data)
    return buffer.getvalue()


def undecodable_name_jar_bytes() -> bytes:
    """Return an archive whose only entry claims UTF-8 but has an undecodable name."""

    placeholder = b"@@@@"
    info = zipfile.ZipInfo(placeholder.decode("ascii"))
    info.flag_bits |= 0x800
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr(info, b"payload")
    return buffer.getvalue().replace(placeholder, b"\xff\xfe\xfd\xfc")


@dataclass
class ResponseSpec:
    """Canned response served instead of the catalog's computed answer."""

    status: int = 200
    body: Union[bytes, str] = b""
    headers: Mapping[str, str] = field(default_factory=dict)

    def serialise_body(self) -> bytes:
        if isinstance(self.body, bytes):
            return self.body
        return self.body.encode("utf-8")


@dataclass
class RequestRecord:
    """Captured HTTP request issued by the pipeline during tests."""

    method: str
    path: str


@dataclass
class FakeCatalog:
    """In-memory release catalog.

    Attributes:
        versions: Version list in catalog order.
        builds: Build numbers per version, oldest first.
        artifacts: Artifact bytes per ``(version, build)``.
        overrides: Responses keyed by request path that replace the computed ones.
        requests: Every request received, in order.
    """

    versions: List[str] = field(default_factory=list)
    builds: Dict[str, List[int]] = field(default_factory=dict)
    artifacts: Dict[Tuple[str, int], bytes] = field(default_factory=dict)
    overrides: Dict[str, ResponseSpec] = field(default_factory=dict)
    requests: List[RequestRecord] = field(default_factory=list)

    @staticmethod
    def filename_for(version: str, build: int) -> str:
        return f"paper-{version}-{build}.jar"

    def add_build(self, version: str, build: int, payload: Optional[bytes] = None) -> bytes:
        """Register ``build`` of ``version`` and return the artifact bytes it serves."""

        if version not in self.versions:
            self.versions.append(version)
        self.builds.setdefault(version, []).append(build)
        data = jar_bytes() if payload is None else payload
        self.artifacts[(version, build)] = data
        return data

    def paths(self) -> List[str]:
        return [record.path for record in self.requests]

    def _json(self, payload: object) -> httpx.Response:
        return httpx.Response(
            200,
            content=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
        )

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = urlsplit(str(request.url)).path
        self.requests.append(RequestRecord(method=request.method, path=path))

        override = self.overrides.get(path)
        if override is not None:
            return httpx.Response(
                override.status, content=override.serialise_body(), headers=dict(override.headers)
            )

        if not path.startswith(CATALOG_PATH):
            return httpx.Response(404, text="not found")
        parts = [unquote(part) for part in path[len(CATALOG_PATH) :].split("/") if part]

        if not parts:
            return self._json({"project_id": "paper", "versions": self.versions})
        if len(parts) == 3 and parts[0] == "versions" and parts[2] == "builds":
            version = parts[1]
            if version not in self.builds:
                return httpx.Response(404, text=f'{{"error":"no such version {version}"}}')
            builds = [{"build": number} for number in self.builds[version]]
            return self._json({"version": version, "builds": builds})
        if len(parts) >= 4 and parts[0] == "versions" and parts[2] == "builds":
            version, build = parts[1], int(parts[3])
            if (version, build) not in self.artifacts:
                return httpx.Response(404, text=f'{{"error":"no such build {build}"}}')
            name = self.filename_for(version, build)
            if len(parts) == 4:
                return self._json(
                    {
                        "build": build,
                        "downloads": {"application": {"name": name, "sha256": "0" * 64}},
                    }
                )
            if len(parts) == 6 and parts[4] == "downloads" and parts[5] == name:
                return httpx.Response(
                    200,
                    content=self.artifacts[(version, build)],
                    headers={"Content-Type": "application/java-archive"},
                )
        return httpx.Response(404, text="not found")

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


def catalog_transport(
    catalog: FakeCatalog, settings: Optional[HttpSettings] = None
) -> HttpTransport:
    """Return an :class:`HttpTransport` whose client is served by ``catalog``."""

    cfg = settings or HttpSettings()
    client = httpx.Client(
        transport=catalog.transport(),
        timeout=httpx.Timeout(cfg.timeout_sec),
        headers={"User-Agent": cfg.user_agent},
        follow_redirects=False,
    )
    return HttpTransport(cfg, client=client)


@contextmanager
def use_mock_transport(
    handler: "httpx.MockTransport | FakeCatalog", settings: Optional[HttpSettings] = None
) -> Iterator[HttpTransport]:
    """Yield a transport backed by ``handler`` and close it afterwards."""

    if isinstance(handler, FakeCatalog):
        transport = catalog_transport(handler, settings)
    else:
        transport = HttpTransport(settings, client=httpx.Client(transport=handler))
    try:
        yield transport
    finally:
        transport.close()
