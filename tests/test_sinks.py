"""Tests for artifact, dataset and sheet sinks."""

import base64
import json

import httpx
import pytest

from catalog_crawler.extract.records import ErrorRecord, ValidatedProductRecord
from catalog_crawler.sinks.artifacts import ArtifactUploadError, LocalArtifactWriter, timestamped_name
from catalog_crawler.sinks.dataset import DatasetStore
from catalog_crawler.sinks.github import GitHubUploader
from catalog_crawler.sinks.sheet import SheetLogger


def _github(handler, **kwargs) -> tuple[GitHubUploader, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    uploader = GitHubUploader(token="t", repo="acme/crawl-artifacts", branch="main", client=client, backoff_base=0, **kwargs)
    return uploader, client


@pytest.mark.asyncio
async def test_github_upload_creates_file():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.method == "GET":
            return httpx.Response(404)
        return httpx.Response(201, json={"content": {"html_url": "https://github.com/acme/crawl-artifacts/blob/main/samples/a.json"}})

    uploader, client = _github(handler)
    url = await uploader.upload("a.json", b'{"x": 1}', folder="samples")
    await client.aclose()

    assert url.endswith("/samples/a.json")
    put = seen[-1]
    assert put.url.path == "/repos/acme/crawl-artifacts/contents/samples/a.json"
    assert put.headers["Authorization"] == "Bearer t"
    body = json.loads(put.content)
    assert base64.b64decode(body["content"]) == b'{"x": 1}'
    assert body["branch"] == "main"
    assert "sha" not in body


@pytest.mark.asyncio
async def test_github_upload_overwrites_with_sha():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json={"sha": "abc123"})
        assert json.loads(request.content)["sha"] == "abc123"
        return httpx.Response(200, json={"content": {"html_url": "https://github.com/x"}})

    uploader, client = _github(handler)
    assert await uploader.upload("a.png", b"png") == "https://github.com/x"
    await client.aclose()


@pytest.mark.asyncio
async def test_github_conflict_is_retried():
    puts = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(404)
        puts.append(request)
        if len(puts) == 1:
            return httpx.Response(409, json={"message": "sha mismatch"})
        return httpx.Response(201, json={"content": {"html_url": "https://github.com/y"}})

    uploader, client = _github(handler, max_retries=3)
    assert await uploader.upload("a.png", b"png") == "https://github.com/y"
    assert len(puts) == 2
    await client.aclose()


@pytest.mark.asyncio
async def test_github_gives_up_after_retries():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(404)
        return httpx.Response(503)

    uploader, client = _github(handler, max_retries=2)
    with pytest.raises(ArtifactUploadError):
        await uploader.upload("a.png", b"png")
    await client.aclose()


@pytest.mark.asyncio
async def test_github_client_errors_are_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.method)
        if request.method == "GET":
            return httpx.Response(404)
        return httpx.Response(422, json={"message": "invalid"})

    uploader, client = _github(handler, max_retries=3)
    with pytest.raises(ArtifactUploadError):
        await uploader.upload("a.png", b"png")
    assert calls.count("PUT") == 1
    await client.aclose()


@pytest.mark.asyncio
async def test_local_writer(tmp_path):
    writer = LocalArtifactWriter(str(tmp_path))
    uri = await writer.upload("shot.png", b"png", folder="screenshots")
    assert uri.startswith("file://")
    assert (tmp_path / "screenshots" / "shot.png").read_bytes() == b"png"


def test_timestamped_name():
    name = timestamped_name("vakko", "png")
    assert name.startswith("vakko_")
    assert name.endswith(".png")


@pytest.mark.asyncio
async def test_dataset_round_trip(tmp_path):
    store = DatasetStore("vakko", str(tmp_path))
    product = ValidatedProductRecord(title="Bag", link="https://a.com/p/1", page_url="https://a.com/c", link_valid=True)
    error = ErrorRecord(message="boom", url="https://a.com/c")

    assert await store.append([product]) == 1
    assert await store.append([error]) == 1
    assert await store.append([]) == 0

    records = store.read_all()
    assert isinstance(records[0], ValidatedProductRecord)
    assert records[0].page_url == "https://a.com/c"
    assert records[0].link_valid is True
    assert isinstance(records[1], ErrorRecord)

    lines = store.path.read_text(encoding="utf-8").splitlines()
    assert json.loads(lines[0])["pageURL"] == "https://a.com/c"

    store.clear()
    assert store.read_all() == []


def test_dataset_skips_malformed_lines(tmp_path):
    store = DatasetStore("vakko", str(tmp_path))
    store.path.write_text('{"title": "Bag"}\nnot json\n', encoding="utf-8")
    assert len(store.read_all()) == 1


@pytest.mark.asyncio
async def test_sheet_logger_appends_row():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    logger = SheetLogger(sheet_id="log", access_token="t", client=client)

    assert await logger.append_row({"Site": "vakko", "Total": 3, "Oldest": None}) is True
    assert captured["path"].endswith("/values/crawl-log:append")
    assert captured["body"]["values"] == [["vakko", 3, ""]]
    await client.aclose()


@pytest.mark.asyncio
async def test_sheet_logger_failures_are_logged_not_raised():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
    logger = SheetLogger(sheet_id="log", access_token="t", client=client)
    assert await logger.append_row({"Site": "vakko"}) is False
    await client.aclose()

    assert await SheetLogger(sheet_id="", access_token="").append_row({"Site": "vakko"}) is False
