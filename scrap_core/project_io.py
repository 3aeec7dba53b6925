"""
Project files.

``.scrap`` archives are zips holding ``project.json`` and every entity's
assets under ``<entity>/<file>``. Export bundles are zips with an
``index.html`` that loads the engine and one ``<entity>/script.js`` per
entity.
"""

import io
import json
import logging
import mimetypes
import zipfile
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .config import TranslatorConfig, get_config
from .entities import AssetFile, Entity, create_entity
from .exceptions import IncompatibleProjectError, ProjectFormatError, ScrapError

logger = logging.getLogger(__name__)

PROJECT_FILE = "project.json"
DEFAULT_SIZE = (480, 360)
ENGINE_MODES = ("inline", "external")

MAGIC_NUMBERS = {
    "89504e47": "image/png",
    "47494638": "image/gif",
    "ffd8ffe0": "image/jpeg",
    "ffd8ffe1": "image/jpeg",
    "ffd8ffe2": "image/jpeg",
}


@dataclass
class Project:
    entities: List[Entity] = field(default_factory=list)
    name: str = "Untitled"
    version: Optional[str] = None
    size: Tuple[int, int] = DEFAULT_SIZE

    def get_entity(self, name: str) -> Optional[Entity]:
        for entity in self.entities:
            if entity.name == name:
                return entity
        return None


def detect_media_type(data: bytes) -> str:
    """Image media type from the file's first bytes; SVG when unrecognized."""
    return MAGIC_NUMBERS.get(data[:4].hex(), "image/svg+xml")


def _open(archive) -> zipfile.ZipFile:
    if isinstance(archive, (bytes, bytearray)):
        archive = io.BytesIO(archive)
    try:
        return zipfile.ZipFile(archive)
    except (zipfile.BadZipFile, OSError) as e:
        raise ProjectFormatError(f"Not a project archive: {e}")


def save_project(project: Project, config: Optional[TranslatorConfig] = None) -> bytes:
    """Serialize ``project`` to ``.scrap`` archive bytes."""
    config = config or get_config()
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zip_file:
        records = []
        for entity in project.entities:
            for asset in entity.costumes + entity.sounds:
                zip_file.writestr(f"{entity.name}/{asset.name}", asset.data)
            records.append(entity.to_dict())
        zip_file.writestr(PROJECT_FILE, json.dumps({
            'entities': records,
            'version': project.version or config.engine_version,
            'name': project.name,
            'size': list(project.size),
        }))
    logger.info(f"Saved project '{project.name}' with {len(project.entities)} entities")
    return buffer.getvalue()


def _load_file(zip_file: zipfile.ZipFile, entity: str, name: str, image: bool) -> AssetFile:
    path = f"{entity}/{name}"
    try:
        data = zip_file.read(path)
    except KeyError:
        raise ProjectFormatError(f"Missing file in project: {path}", {'path': path})
    if image:
        media_type = detect_media_type(data)
    else:
        media_type = mimetypes.guess_type(name)[0] or "application/octet-stream"
    return AssetFile(name, data, media_type)


def load_project(archive, config: Optional[TranslatorConfig] = None) -> Project:
    """Read a ``.scrap`` archive (bytes, a path or a binary file object).

    Projects saved by an engine with a different major version are
    rejected.
    """
    config = config or get_config()
    with _open(archive) as zip_file:
        try:
            data = json.loads(zip_file.read(PROJECT_FILE).decode("utf-8"))
        except KeyError:
            raise ProjectFormatError("The archive has no project.json")
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ProjectFormatError(f"project.json is not valid JSON: {e}")

        version = str(data.get("version") or "0")
        if version.split(".")[0] != config.engine_version.split(".")[0]:
            raise IncompatibleProjectError(
                "This project was created with an incompatible version of Scrap",
                {'version': version, 'engine_version': config.engine_version},
            )

        entities = []
        for record in data.get("entities") or []:
            try:
                name = record["name"]
                entity = create_entity(
                    name,
                    costumes=[_load_file(zip_file, name, f, True) for f in record.get("costumes") or []],
                    sounds=[_load_file(zip_file, name, f, False) for f in record.get("sounds") or []],
                    variables=[tuple(v) for v in record.get("variables") or []],
                    current=record.get("current", 0),
                )
                entity.load_code(record.get("code"))
            except (KeyError, TypeError, ValueError) as e:
                raise ProjectFormatError(f"Malformed entity record: {e}", {'record': record.get("name")})
            entities.append(entity)

    size = data.get("size") or DEFAULT_SIZE
    project = Project(entities, data.get("name") or "Untitled", version, (int(size[0]), int(size[1])))
    logger.info(f"Loaded project '{project.name}' with {len(entities)} entities")
    return project


def index_html(entities: List[Entity], engine: str, cdn: str) -> str:
    """The page that boots the engine and every entity script."""
    inline = engine == "inline"
    style = "style.css" if inline else f"{cdn}/dist/style.css"
    script = "engine.js" if inline else f"{cdn}/dist/engine.js"
    scripts = "\t<script>var $ = {};</script>\n"
    for entity in entities:
        scripts += f'\t<script src="{entity.name}/script.js"></script>\n'
    return (
        "<!DOCTYPE html>\n"
        '<html lang="en">\n'
        "<head>\n"
        "\t<title>Scrap Project</title>\n"
        '\t<meta charset="utf-8">\n'
        f'\t<link href="{style}" rel="stylesheet">\n'
        f'\t<script src="{script}"></script>\n'
        "</head>\n"
        "<body>\n"
        f"{scripts.rstrip()}\n"
        "</body>\n"
        "</html>\n"
    )


def export_bundle(entities: List[Entity], engine: str = "external",
                  engine_script: Optional[str] = None, engine_style: Optional[str] = None,
                  config: Optional[TranslatorConfig] = None) -> bytes:
    """Build the runnable bundle of ``entities``.

    ``engine="inline"`` ships the given engine script and stylesheet inside
    the bundle; ``"external"`` loads them from the configured CDN.
    """
    config = config or get_config()
    if engine not in ENGINE_MODES:
        raise ScrapError(f"Unknown engine mode: {engine}", {'engine': engine})
    if engine == "inline" and engine_script is None:
        raise ScrapError("An inline export needs the engine script")

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zip_file:
        if engine == "inline":
            zip_file.writestr("engine.js", engine_script)
            zip_file.writestr("style.css", engine_style or "")
        for entity in entities:
            for asset in entity.costumes + entity.sounds:
                zip_file.writestr(f"{entity.name}/{asset.name}", asset.data)
            zip_file.writestr(f"{entity.name}/script.js", entity.script("export", config))
        zip_file.writestr("index.html", index_html(entities, engine, config.engine_cdn))
    logger.info(f"Exported {len(entities)} entities ({engine} engine)")
    return buffer.getvalue()


def describe_entity(entity: Entity, config: Optional[TranslatorConfig] = None) -> Dict[str, Any]:
    """JSON summary of an entity for API clients."""
    return {
        'name': entity.name,
        'is_stage': entity.is_stage,
        'costumes': [{'name': f.name, 'media_type': f.media_type} for f in entity.costumes],
        'sounds': [{'name': f.name, 'media_type': f.media_type} for f in entity.sounds],
        'variables': [[name, check] for name, check in entity.variables],
        'current': entity.current,
        'init': entity.init,
        'workspace': entity.workspace.serialize(),
        'source': entity.get_code(config),
    }
