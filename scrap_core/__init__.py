"""
Scrap Core - bidirectional translation between Scrap blocks and ScrapScript.

This package converts block graphs to ScrapScript source and back, imports
Scratch 3 projects and rewrites ScrapScript into the JavaScript run by the
Scrap engine.
"""

__version__ = "0.1.0"

from .exceptions import (
    ScrapError, UnsupportedConstructError, ScriptSyntaxError, IncompatibleProjectError,
    ProjectFormatError, ConnectionCheckError,
)
from .config import TranslatorConfig, get_config
from .models import Block, Connection, Input, Workspace
from .block_definitions import CATALOGUE, BlockCatalogue
from .code_generator import ScrapScriptGenerator
from .blocks_builder import BlocksBuilder, get_variables
from .runtime_transform import RuntimeTransformer, transform
from .entities import AssetFile, Entity, Sprite, Stage
from .sb3_importer import SB3Importer, import_sb3
from .project_io import Project, load_project, save_project, export_bundle

__all__ = [
    "ScrapError", "UnsupportedConstructError", "ScriptSyntaxError", "IncompatibleProjectError",
    "ProjectFormatError", "ConnectionCheckError",
    "TranslatorConfig", "get_config",
    "Block", "Connection", "Input", "Workspace",
    "CATALOGUE", "BlockCatalogue",
    "ScrapScriptGenerator", "BlocksBuilder", "get_variables",
    "RuntimeTransformer", "transform",
    "AssetFile", "Entity", "Sprite", "Stage",
    "SB3Importer", "import_sb3",
    "Project", "load_project", "save_project", "export_bundle",
]
