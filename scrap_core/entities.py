"""
Sprites and the stage.

An entity owns its assets, its variables and its program. The program is
held either as a block workspace (blocks mode) or as ScrapScript source
(code mode); switching modes translates one representation into the other.
"""

import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .blocks_builder import BlocksBuilder
from .code_generator import ScrapScriptGenerator
from .config import TranslatorConfig, get_config
from .exceptions import ScrapError
from .models import Workspace
from .types import Check

SPRITE_DEFAULTS = {
    "x": 0,
    "y": 0,
    "direction": 90,
    "size": 100,
    "rotationStyle": 0,
    "visible": True,
    "draggable": False,
}

URL_MODES = ("preview", "export")


@dataclass
class AssetFile:
    """A costume or sound file."""
    name: str
    data: bytes
    media_type: str = "application/octet-stream"

    def data_uri(self) -> str:
        return f"data:{self.media_type};base64,{base64.b64encode(self.data).decode('ascii')}"


class Entity:
    """Base class of sprites and the stage."""

    is_stage = False

    def __init__(self, name: str, costumes: Optional[List[AssetFile]] = None,
                 sounds: Optional[List[AssetFile]] = None,
                 variables: Optional[List[Tuple[str, Check]]] = None,
                 current: int = 0, init: Optional[Dict[str, Any]] = None):
        self.name = name
        self.costumes: List[AssetFile] = list(costumes or [])
        self.sounds: List[AssetFile] = list(sounds or [])
        self.variables: List[Tuple[str, Check]] = list(variables or [])
        self.current = current
        self.init: Dict[str, Any] = dict(self.defaults())
        self.init.update(init or {})
        self.workspace = Workspace()
        self.typescript: Optional[str] = None
        self.logger = logging.getLogger(__name__)

    def __repr__(self):
        return f"{type(self).__name__}({self.name!r}, mode={self.mode!r})"

    @staticmethod
    def defaults() -> Dict[str, Any]:
        return {}

    @property
    def mode(self) -> str:
        return "blocks" if self.typescript is None else "code"

    def get_code(self, config: Optional[TranslatorConfig] = None) -> str:
        """The entity's program as source, whatever mode it is in."""
        if self.typescript is not None:
            return self.typescript
        return ScrapScriptGenerator(self.variables, config).workspace_to_code(self.workspace)

    def to_code(self, config: Optional[TranslatorConfig] = None) -> str:
        """Switch to code mode, generating the source from the blocks."""
        if self.typescript is None:
            self.typescript = self.get_code(config)
            self.workspace.clear()
            self.logger.info(f"{self.name}: switched to code mode")
        return self.typescript

    def to_blocks(self) -> Workspace:
        """Switch to blocks mode.

        The workspace and variables are only replaced once the whole source
        converted; on error the entity stays in code mode.
        """
        if self.typescript is not None:
            self.variables = BlocksBuilder(self.workspace).build(self.typescript)
            self.typescript = None
            self.logger.info(f"{self.name}: switched to blocks mode")
        return self.workspace

    def get_urls(self, kind: str, mode: str = "preview") -> List[str]:
        """URLs of the entity's ``costumes`` or ``sounds``.

        ``preview`` inlines the files as data URIs, ``export`` points at the
        files of an exported bundle.
        """
        if kind not in ("costumes", "sounds"):
            raise ScrapError(f"Unknown asset kind: {kind}", {'kind': kind})
        if mode not in URL_MODES:
            raise ScrapError(f"Unknown URL mode: {mode}", {'mode': mode})
        files: List[AssetFile] = getattr(self, kind)
        if mode == "preview":
            return [f.data_uri() for f in files]
        return [f"{self.name}/{f.name}" for f in files]

    def script(self, mode: str = "preview", config: Optional[TranslatorConfig] = None) -> str:
        """The runnable engine script of this entity."""
        config = config or get_config()
        return ScrapScriptGenerator(self.variables, config).entity_script(self, mode)

    def to_dict(self) -> Dict[str, Any]:
        """Project-file record; asset contents are stored separately."""
        return {
            'name': self.name,
            'costumes': [f.name for f in self.costumes],
            'sounds': [f.name for f in self.sounds],
            'code': self.typescript if self.typescript is not None else self.workspace.serialize(),
            'current': self.current,
            'variables': [[name, check] for name, check in self.variables],
        }

    def load_code(self, code: Any):
        """Restore the program saved by ``to_dict``."""
        if isinstance(code, str):
            self.workspace.clear()
            self.typescript = code
        else:
            self.typescript = None
            self.workspace.deserialize(code or {})


class Sprite(Entity):

    @staticmethod
    def defaults() -> Dict[str, Any]:
        return dict(SPRITE_DEFAULTS)


class Stage(Entity):
    is_stage = True

    def __init__(self, **kwargs):
        super().__init__("Stage", **kwargs)


def create_entity(name: str, **kwargs) -> Entity:
    """The stage when ``name`` is "Stage", otherwise a sprite."""
    if name == "Stage":
        return Stage(**kwargs)
    return Sprite(name, **kwargs)
