import json
from pathlib import Path

import pytest

from atrium.config import load_config
from atrium.errors import NotFoundError
from atrium.lifecycle import RebuildStrategy
from atrium.pipeline import create_lifecycle, create_pipeline
from atrium.stores import InMemoryCacheStore, InMemoryContentRepository, RedisCacheStore


def create_project(tmp_path: Path) -> Path:
    project = tmp_path
    (project / "atrium.yaml").write_text("domain: example.com\n", encoding="utf-8")
    templates = project / "views" / "templates"
    templates.mkdir(parents=True)
    (templates / "page.html.jinja").write_text(
        '<html>\n<head>\n  <base href="/">\n  <title>{{ meta.title }}</title>\n</head>\n'
        "<body>\n  <h1>{{ page.hero.name }}</h1>\n</body>\n</html>\n",
        encoding="utf-8",
    )
    (templates / "page.fr.html.jinja").write_text(
        "<h1>{{ meta.title }}</h1>", encoding="utf-8"
    )
    module = project / "views" / "modules" / "content" / "hero" / "component.json"
    module.parent.mkdir(parents=True)
    module.write_text(json.dumps({"key": "hero"}), encoding="utf-8")
    return project


def repository() -> InMemoryContentRepository:
    return InMemoryContentRepository(
        {
            "gallery": {"G1": {"name": "Lobby"}},
            "system_settings": {"main": {"languages": ["en", "fr"]}},
        }
    )


DOCUMENT = {
    "title": {"en": "Home", "fr": "Accueil"},
    "meta": {"en": "Hotel", "fr": "Hôtel"},
    "url": {"en": "/", "fr": "/fr/"},
    "hero": {"ref_type": "gallery", "ref_id": "G1"},
}


@pytest.mark.asyncio
async def test_prebuild_resolves_renders_embeds_and_minifies(tmp_path):
    config = load_config(create_project(tmp_path))
    pipeline = create_pipeline(config, repository())

    result = await pipeline.prebuild(DOCUMENT, language="en")

    assert result["page"] == (
        '<html><head><base href="http://example.com/">'
        '<script>document.domain = "example.com";</script>'
        "<title>Home</title></head><body><h1>Lobby</h1></body></html>"
    )
    await pipeline.aclose()


@pytest.mark.asyncio
async def test_prebuild_uses_requested_language(tmp_path):
    pipeline = create_pipeline(load_config(create_project(tmp_path)), repository())
    result = await pipeline.prebuild(DOCUMENT, language="fr")
    assert result["page"] == "<h1>Accueil</h1>"


@pytest.mark.asyncio
async def test_prebuild_falls_back_for_undeclared_language(tmp_path, caplog):
    pipeline = create_pipeline(load_config(create_project(tmp_path)), repository())
    with caplog.at_level("WARNING", logger="atrium.pipeline"):
        result = await pipeline.prebuild(DOCUMENT, language="de")
    assert "<title>Home</title>" in result["page"]
    assert "Language 'de' is not configured" in caplog.text


@pytest.mark.asyncio
async def test_prebuild_without_embedding(tmp_path):
    pipeline = create_pipeline(load_config(create_project(tmp_path)), repository())
    result = await pipeline.prebuild(DOCUMENT, embed_mode=False, minify=False)
    assert '<base href="/">' in result["page"]
    assert "\n" in result["page"]


@pytest.mark.asyncio
async def test_prebuild_missing_reference(tmp_path):
    pipeline = create_pipeline(load_config(create_project(tmp_path)), repository())
    document = dict(DOCUMENT, hero={"ref_type": "gallery", "ref_id": "X123"})
    with pytest.raises(NotFoundError) as excinfo:
        await pipeline.prebuild(document, language="en")
    assert excinfo.value.ref_id == "X123"


@pytest.mark.asyncio
async def test_modules_index_through_pipeline(tmp_path):
    cache = InMemoryCacheStore()
    pipeline = create_pipeline(load_config(create_project(tmp_path)), repository(), cache=cache)
    modules = await pipeline.modules_index()
    assert [m.key for m in modules] == ["hero"]


def test_create_pipeline_selects_cache_backend(tmp_path):
    project = create_project(tmp_path)
    assert isinstance(create_pipeline(load_config(project), repository()).cache, InMemoryCacheStore)

    (project / "atrium.yaml").write_text("redis_url: redis://localhost:6379\n", encoding="utf-8")
    assert isinstance(create_pipeline(load_config(project), repository()).cache, RedisCacheStore)


def test_create_lifecycle_uses_builtin_blueprints(tmp_path):
    config = load_config(create_project(tmp_path))
    lifecycle = create_lifecycle(config, strategy=RebuildStrategy.STAGED)
    assert [b.file_name for b in lifecycle.blueprints] == ["atrium.js", "input-bindings.js"]
    assert lifecycle.cache_root == config.cache_dir
    assert lifecycle.strategy is RebuildStrategy.STAGED
