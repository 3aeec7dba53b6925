"""
Tests for entities and project files.
"""

import io
import json
import zipfile

import pytest

from scrap_core.config import TranslatorConfig
from scrap_core.entities import SPRITE_DEFAULTS, AssetFile, Sprite, Stage, create_entity
from scrap_core.exceptions import (
    IncompatibleProjectError, ProjectFormatError, ScrapError, UnsupportedConstructError,
)
from scrap_core.project_io import (
    Project, describe_entity, detect_media_type, export_bundle, load_project, save_project,
)

SOURCE = "self.whenFlag(() => {\n\tself.move(10);\n});\n"
PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 8
SVG = b"<svg/>"


@pytest.fixture
def cat():
    sprite = Sprite("Cat", costumes=[AssetFile("a.svg", SVG, "image/svg+xml")],
                    sounds=[AssetFile("meow.wav", b"RIFF", "audio/wav")])
    sprite.typescript = SOURCE
    return sprite


@pytest.fixture
def stage():
    return Stage(costumes=[AssetFile("backdrop.png", PNG, "image/png")], variables=[("score", "number")])


class TestEntities:
    """Test cases for sprites and the stage."""

    def test_defaults(self):
        """Sprites start from the engine defaults, the stage has none."""
        assert Sprite("Cat").init == SPRITE_DEFAULTS
        assert Stage().name == "Stage"
        assert Stage().init == {}
        assert Sprite("Cat", init={"x": 5}).init["x"] == 5

    def test_create_entity(self):
        assert isinstance(create_entity("Stage"), Stage)
        assert isinstance(create_entity("Dog"), Sprite)
        assert create_entity("Dog").name == "Dog"

    def test_mode_switching(self, cat):
        """Switching modes translates between blocks and source."""
        assert cat.mode == "code"
        cat.to_blocks()
        assert cat.mode == "blocks"
        assert [b.type for b in cat.workspace.top_blocks()] == ["whenFlag"]

        assert cat.to_code() == SOURCE
        assert cat.mode == "code"
        assert len(cat.workspace) == 0

    def test_failed_switch_stays_in_code_mode(self, cat):
        """Source that cannot become blocks is kept as it was."""
        cat.typescript = "self.fly();\n"
        with pytest.raises(UnsupportedConstructError):
            cat.to_blocks()
        assert cat.mode == "code"
        assert cat.typescript == "self.fly();\n"
        assert len(cat.workspace) == 0

    def test_urls(self, cat):
        """Previews inline the files, exports point into the bundle."""
        assert cat.get_urls("costumes") == ["data:image/svg+xml;base64,PHN2Zy8+"]
        assert cat.get_urls("sounds", "export") == ["Cat/meow.wav"]
        with pytest.raises(ScrapError):
            cat.get_urls("fonts")
        with pytest.raises(ScrapError):
            cat.get_urls("costumes", "print")

    def test_sprite_script(self, cat):
        """The script constructs the sprite and adds it to the stage."""
        script = cat.script("export", TranslatorConfig())
        assert script.startswith('$["Cat"] = new Scrap.Sprite({\n')
        assert '"images": [\n\t\t"Cat/a.svg"\n\t]' in script
        assert (
            '$["Cat"].whenLoaded(async self => {\n'
            '\tawait self.whenFlag(async (self) => {\n'
            '\t\tawait self.move(10);\n'
            '\t});\n'
            '});\n'
        ) in script
        assert script.endswith('$["Cat"].addTo($["Stage"])\n')

    def test_stage_script(self, stage):
        """The stage declares its variables and is not added anywhere."""
        script = stage.script("preview", TranslatorConfig())
        assert script.startswith('$["Stage"] = new Scrap.Stage({\n')
        assert '\tself.declareVariable("score", "number");\n' in script
        assert "addTo" not in script
        assert "data:image/png;base64," in script

    def test_to_dict(self, cat, stage):
        """Code mode saves source, blocks mode saves the workspace."""
        record = cat.to_dict()
        assert record["code"] == SOURCE
        assert record["costumes"] == ["a.svg"]
        assert record["sounds"] == ["meow.wav"]
        assert stage.to_dict()["code"] == {"blocks": {"languageVersion": 0, "blocks": []}}
        assert stage.to_dict()["variables"] == [["score", "number"]]


class TestProjectFiles:
    """Test cases for saving and loading .scrap archives."""

    def test_round_trip(self, cat, stage):
        """Entities, assets and programs survive saving and loading."""
        dog = Sprite("Dog")
        dog.typescript = SOURCE
        dog.to_blocks()

        data = save_project(Project([stage, cat, dog], "Demo"), TranslatorConfig())
        project = load_project(data, TranslatorConfig())

        assert project.name == "Demo"
        assert project.size == (480, 360)
        assert [e.name for e in project.entities] == ["Stage", "Cat", "Dog"]

        loaded_stage = project.get_entity("Stage")
        assert isinstance(loaded_stage, Stage)
        assert loaded_stage.variables == [("score", "number")]
        assert loaded_stage.costumes[0].media_type == "image/png"
        assert loaded_stage.costumes[0].data == PNG

        loaded_cat = project.get_entity("Cat")
        assert loaded_cat.mode == "code"
        assert loaded_cat.typescript == SOURCE
        assert loaded_cat.costumes[0].media_type == "image/svg+xml"
        assert loaded_cat.sounds[0].media_type.startswith("audio/")

        loaded_dog = project.get_entity("Dog")
        assert loaded_dog.mode == "blocks"
        assert loaded_dog.get_code(TranslatorConfig()) == SOURCE

    def test_missing_entity(self):
        assert Project([Stage()]).get_entity("Cat") is None

    def test_incompatible_version(self, stage):
        """Projects from another major engine version are rejected."""
        data = save_project(Project([stage]), TranslatorConfig(engine_version="2.0.0"))
        with pytest.raises(IncompatibleProjectError) as info:
            load_project(data, TranslatorConfig())
        assert info.value.details["version"] == "2.0.0"

    def test_minor_versions_are_compatible(self, stage):
        data = save_project(Project([stage]), TranslatorConfig(engine_version="1.4.2"))
        assert load_project(data, TranslatorConfig()).version == "1.4.2"

    def test_not_a_zip(self):
        with pytest.raises(ProjectFormatError):
            load_project(b"plain text")

    def test_missing_project_json(self):
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zip_file:
            zip_file.writestr("Stage/backdrop.png", PNG)
        with pytest.raises(ProjectFormatError):
            load_project(buffer.getvalue())

    def test_missing_asset(self):
        """Every listed asset must be in the archive."""
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zip_file:
            zip_file.writestr("project.json", json.dumps({
                "version": "1.0.0",
                "entities": [{"name": "Cat", "costumes": ["a.svg"], "sounds": [], "code": "", "variables": []}],
            }))
        with pytest.raises(ProjectFormatError) as info:
            load_project(buffer.getvalue(), TranslatorConfig())
        assert info.value.details["path"] == "Cat/a.svg"

    def test_detect_media_type(self):
        """Images are recognized by their first bytes."""
        assert detect_media_type(PNG) == "image/png"
        assert detect_media_type(b"GIF89a") == "image/gif"
        assert detect_media_type(b"\xff\xd8\xff\xe0rest") == "image/jpeg"
        assert detect_media_type(SVG) == "image/svg+xml"
        assert detect_media_type(b"") == "image/svg+xml"

    def test_describe_entity(self, cat):
        summary = describe_entity(cat, TranslatorConfig())
        assert summary["name"] == "Cat"
        assert summary["is_stage"] is False
        assert summary["source"] == SOURCE
        assert summary["sounds"] == [{"name": "meow.wav", "media_type": "audio/wav"}]


class TestExport:
    """Test cases for runnable bundles."""

    def _files(self, data):
        with zipfile.ZipFile(io.BytesIO(data)) as zip_file:
            return {name: zip_file.read(name) for name in zip_file.namelist()}

    def test_external_engine(self, cat, stage):
        """External bundles load the engine from the CDN."""
        files = self._files(export_bundle([stage, cat], config=TranslatorConfig()))
        assert "engine.js" not in files
        assert {"index.html", "Stage/script.js", "Stage/backdrop.png", "Cat/script.js", "Cat/a.svg",
                "Cat/meow.wav"} <= set(files)

        index = files["index.html"].decode("utf-8")
        assert '<script src="https://unpkg.com/scrap-engine@1.0.0/dist/engine.js"></script>' in index
        assert '<link href="https://unpkg.com/scrap-engine@1.0.0/dist/style.css" rel="stylesheet">' in index
        assert index.index('src="Stage/script.js"') < index.index('src="Cat/script.js"')
        assert "<script>var $ = {};</script>" in index
        assert b'"Cat/a.svg"' in files["Cat/script.js"]

    def test_inline_engine(self, cat):
        """Inline bundles ship the engine files."""
        files = self._files(export_bundle([cat], "inline", "var Scrap = {};", "body {}", TranslatorConfig()))
        assert files["engine.js"] == b"var Scrap = {};"
        assert files["style.css"] == b"body {}"
        index = files["index.html"].decode("utf-8")
        assert '<script src="engine.js"></script>' in index
        assert '<link href="style.css" rel="stylesheet">' in index

    def test_invalid_engine_mode(self, cat):
        with pytest.raises(ScrapError):
            export_bundle([cat], "cdn")

    def test_inline_needs_engine_script(self, cat):
        with pytest.raises(ScrapError):
            export_bundle([cat], "inline")
