"""
Flask web interface for the ScrapScript translators.

This provides a REST API over the block/source translators, the runtime
transform, the Scratch importer and the project exporter.
"""

from flask import Flask, request, jsonify, send_file
from flask_cors import CORS
from typing import Any, Dict, List, Tuple
import asyncio
import io
import logging

from scrap_core.block_definitions import CATALOGUE
from scrap_core.blocks_builder import BlocksBuilder
from scrap_core.code_generator import ScrapScriptGenerator
from scrap_core.config import get_config
from scrap_core.exceptions import ScrapError
from scrap_core.models import Workspace
from scrap_core.project_io import describe_entity, export_bundle, load_project
from scrap_core.runtime_transform import transform
from scrap_core.sb3_importer import import_sb3

logger = logging.getLogger(__name__)

config = get_config()

app = Flask(__name__)
CORS(app)


def _error_response(e: Exception):
    """Translator errors are the client's fault; anything else is ours."""
    if isinstance(e, ScrapError):
        logger.info(f"Rejected request: {e.message}")
        return jsonify({
            'success': False,
            'error': e.message,
            'details': e.details
        }), 400
    logger.exception("Request failed")
    return jsonify({
        'success': False,
        'error': str(e)
    }), 500


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ScrapError("Expected a JSON object body")
    return data


def _source(data: Dict[str, Any]) -> str:
    source = data.get('source')
    if not isinstance(source, str):
        raise ScrapError("'source' must be a string")
    return source


def _variables(data: Dict[str, Any]) -> List[Tuple[str, Any]]:
    variables = data.get('variables') or []
    try:
        return [(name, check) for name, check in variables]
    except (TypeError, ValueError):
        raise ScrapError("'variables' must be a list of [name, type] pairs")


def _upload(name: str) -> bytes:
    if name not in request.files or not request.files[name].filename:
        raise ScrapError(f"No '{name}' file uploaded")
    return request.files[name].read()


@app.route('/api/health', methods=['GET'])
def health():
    """Service status."""
    return jsonify({
        'success': True,
        'data': {
            'status': 'ok',
            'engine_version': config.engine_version
        }
    })


@app.route('/api/blocks', methods=['GET'])
def get_blocks():
    """Describe every block type of the catalogue."""
    try:
        blocks = CATALOGUE.to_json()
        return jsonify({
            'success': True,
            'data': {
                'blocks': blocks,
                'count': len(blocks)
            }
        })
    except Exception as e:
        return _error_response(e)


@app.route('/api/generate', methods=['POST'])
def generate_source():
    """Generate ScrapScript from a serialized workspace."""
    try:
        data = _json_body()
        workspace = Workspace()
        workspace.deserialize(data.get('workspace') or {})
        generator = ScrapScriptGenerator(_variables(data), config)
        return jsonify({
            'success': True,
            'data': {
                'source': generator.workspace_to_code(workspace)
            }
        })
    except Exception as e:
        return _error_response(e)


@app.route('/api/parse', methods=['POST'])
def parse_source():
    """Build a workspace from ScrapScript source."""
    try:
        data = _json_body()
        workspace = Workspace()
        variables = BlocksBuilder(workspace).build(_source(data))
        return jsonify({
            'success': True,
            'data': {
                'workspace': workspace.serialize(),
                'variables': [[name, check] for name, check in variables]
            }
        })
    except Exception as e:
        return _error_response(e)


@app.route('/api/transform', methods=['POST'])
def transform_source():
    """Rewrite ScrapScript into engine JavaScript."""
    try:
        data = _json_body()
        return jsonify({
            'success': True,
            'data': {
                'javascript': transform(_source(data), config)
            }
        })
    except Exception as e:
        return _error_response(e)


@app.route('/api/import/sb3', methods=['POST'])
def import_scratch_project():
    """Import an uploaded Scratch 3 project."""
    try:
        archive = _upload('file')
        entities = asyncio.run(import_sb3(archive, config))
        return jsonify({
            'success': True,
            'data': {
                'entities': [describe_entity(entity, config) for entity in entities],
                'count': len(entities)
            }
        })
    except Exception as e:
        return _error_response(e)


@app.route('/api/export', methods=['POST'])
def export_project():
    """Turn an uploaded .scrap project into a runnable bundle."""
    try:
        project = load_project(_upload('file'), config)
        engine = request.form.get('engine', 'external')
        engine_script = engine_style = None
        if engine == 'inline':
            engine_script = _upload('engine_script').decode('utf-8')
            if 'engine_style' in request.files:
                engine_style = request.files['engine_style'].read().decode('utf-8')
        bundle = export_bundle(project.entities, engine, engine_script, engine_style, config)
        return send_file(
            io.BytesIO(bundle),
            mimetype='application/zip',
            as_attachment=True,
            download_name=f"{project.name}.zip"
        )
    except UnicodeDecodeError as e:
        return _error_response(ScrapError(f"Engine files must be UTF-8 text: {e}"))
    except Exception as e:
        return _error_response(e)


if __name__ == '__main__':
    logging.basicConfig(level=config.log_level)
    print("Starting ScrapScript translator service...")
    print(f"Access the API at: http://{config.host}:{config.port}/api/health")
    app.run(host=config.host, port=config.port)
