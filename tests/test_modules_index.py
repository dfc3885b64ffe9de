import json
from pathlib import Path

import pytest

from atrium.errors import ParseError
from atrium.modules_index import (
    DescriptorLoader,
    ModuleDescriptor,
    ModuleIndexer,
    parse_descriptor,
)
from atrium.stores import CacheKeys, InMemoryCacheStore


def write_module(views: Path, category: str, name: str, payload) -> Path:
    path = views / "modules" / category / name / "component.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    text = payload if isinstance(payload, str) else json.dumps(payload)
    path.write_text(text, encoding="utf-8")
    return path


def create_views(tmp_path: Path) -> Path:
    views = tmp_path / "views"
    write_module(views, "content", "gallery", {"key": "gallery", "title": "Gallery"})
    write_module(views, "content", "text", {"key": "text", "fields": ["body"]})
    write_module(views, "booking", "form", {"key": "booking-form"})
    return views


def test_build_index_returns_one_descriptor_per_file(tmp_path):
    views = create_views(tmp_path)
    indexer = ModuleIndexer(views, InMemoryCacheStore())

    modules = indexer.build_index()

    assert {m.key for m in modules} == {"gallery", "text", "booking-form"}
    assert len(modules) == 3
    gallery = next(m for m in modules if m.key == "gallery")
    assert gallery.metadata == {"key": "gallery", "title": "Gallery"}
    assert gallery.source_path == "modules/content/gallery/component.json"


def test_build_index_excludes_layout_containers(tmp_path):
    views = create_views(tmp_path)
    for container in ("footer", "footers", "header", "partials", "pages"):
        write_module(views, container, "thing", {"key": f"{container}-thing"})

    modules = ModuleIndexer(views, InMemoryCacheStore()).build_index()

    assert {m.key for m in modules} == {"gallery", "text", "booking-form"}


def test_build_index_is_sorted_by_path(tmp_path):
    views = create_views(tmp_path)
    modules = ModuleIndexer(views, InMemoryCacheStore()).build_index()
    paths = [m.source_path for m in modules]
    assert paths == sorted(paths)


def test_build_index_without_modules_dir(tmp_path):
    assert ModuleIndexer(tmp_path / "views", InMemoryCacheStore()).build_index() == []


def test_malformed_descriptor_fails_whole_index(tmp_path):
    views = create_views(tmp_path)
    broken = write_module(views, "content", "broken", "{not json")

    with pytest.raises(ParseError) as excinfo:
        ModuleIndexer(views, InMemoryCacheStore()).build_index()
    assert excinfo.value.path == broken
    assert "Invalid JSON on line 1" in excinfo.value.message


def test_descriptor_must_have_key(tmp_path):
    views = tmp_path / "views"
    path = write_module(views, "content", "nokey", {"title": "No key"})
    with pytest.raises(ParseError, match="missing a string 'key'"):
        parse_descriptor(path, views)


def test_descriptor_must_be_object(tmp_path):
    views = tmp_path / "views"
    path = write_module(views, "content", "list", "[1, 2]")
    with pytest.raises(ParseError, match="JSON object"):
        parse_descriptor(path, views)


def test_duplicate_keys_are_rejected(tmp_path):
    views = create_views(tmp_path)
    write_module(views, "other", "gallery", {"key": "gallery"})
    with pytest.raises(ParseError, match="Duplicate module key 'gallery'"):
        ModuleIndexer(views, InMemoryCacheStore()).build_index()


def test_descriptor_round_trips_through_dict():
    descriptor = ModuleDescriptor("hero", {"key": "hero", "size": 2}, "modules/a/hero/component.json")
    assert ModuleDescriptor.from_dict(descriptor.to_dict()) == descriptor


@pytest.mark.asyncio
async def test_get_index_caches_and_skips_second_scan(tmp_path):
    views = create_views(tmp_path)
    cache = InMemoryCacheStore()
    loader = DescriptorLoader(views)
    scans = []
    original = loader.iter_files

    def counting_iter_files():
        scans.append(1)
        return original()

    loader.iter_files = counting_iter_files
    indexer = ModuleIndexer(views, cache, loader=loader)

    first = await indexer.get_index()
    cached_first = await cache.get(CacheKeys.MODULES_INDEX)
    second = await indexer.get_index()
    cached_second = await cache.get(CacheKeys.MODULES_INDEX)

    assert len(scans) == 1
    assert first == second
    assert cached_first == cached_second
    assert json.loads(cached_first)[0]["key"] == first[0].key


@pytest.mark.asyncio
async def test_get_index_serves_cache_without_filesystem(tmp_path):
    payload = json.dumps([{"key": "hero", "metadata": {"key": "hero"}, "source_path": "x"}])
    cache = InMemoryCacheStore({CacheKeys.MODULES_INDEX: payload})
    indexer = ModuleIndexer(tmp_path / "does-not-exist", cache)

    modules = await indexer.get_index()

    assert [m.key for m in modules] == ["hero"]


@pytest.mark.asyncio
async def test_get_index_does_not_cache_failed_build(tmp_path):
    views = create_views(tmp_path)
    write_module(views, "content", "broken", "{")
    cache = InMemoryCacheStore()

    with pytest.raises(ParseError):
        await ModuleIndexer(views, cache).get_index()
    assert CacheKeys.MODULES_INDEX not in cache


@pytest.mark.asyncio
async def test_cached_index_is_stale_until_cleared(tmp_path):
    views = create_views(tmp_path)
    cache = InMemoryCacheStore()
    indexer = ModuleIndexer(views, cache)
    await indexer.get_index()

    write_module(views, "content", "video", {"key": "video"})
    assert "video" not in {m.key for m in await indexer.get_index()}

    await indexer.clear_index()
    assert "video" in {m.key for m in await indexer.get_index()}
