"""
Tests for the REST interface.
"""

import io
import json
import zipfile

import pytest

from scrap_core.entities import AssetFile, Sprite, Stage
from scrap_core.project_io import Project, save_project
from web_interface.app import app

SOURCE = "self.whenFlag(() => {\n\tself.move(10);\n});\n"


@pytest.fixture
def client():
    app.config['TESTING'] = True
    with app.test_client() as client:
        yield client


def _scratch_archive():
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zip_file:
        zip_file.writestr("project.json", json.dumps({"targets": [{
            "isStage": True, "name": "Stage", "variables": {}, "lists": {}, "blocks": {},
            "costumes": [{"name": "backdrop1", "dataFormat": "svg", "md5ext": "bd.svg"}],
            "sounds": [], "currentCostume": 0,
        }]}))
        zip_file.writestr("bd.svg", "<svg/>")
    return buffer.getvalue()


class TestTranslationEndpoints:
    """Test cases for the translator endpoints."""

    def test_health(self, client):
        response = client.get('/api/health')
        assert response.status_code == 200
        assert response.get_json()['data']['status'] == 'ok'

    def test_blocks(self, client):
        """The catalogue lists every block type."""
        data = client.get('/api/blocks').get_json()['data']
        types = [block['type'] for block in data['blocks']]
        assert data['count'] == len(types)
        assert 'move' in types and 'whenFlag' in types

    def test_parse_then_generate(self, client):
        """A parsed workspace generates the same source."""
        parsed = client.post('/api/parse', json={'source': SOURCE}).get_json()
        assert parsed['success'] is True

        generated = client.post('/api/generate', json={
            'workspace': parsed['data']['workspace'],
            'variables': parsed['data']['variables'],
        }).get_json()
        assert generated['data']['source'] == SOURCE

    def test_parse_error(self, client):
        """Unsupported source is a client error with details."""
        response = client.post('/api/parse', json={'source': 'class Foo {}'})
        assert response.status_code == 400
        assert response.get_json()['success'] is False

    def test_source_must_be_text(self, client):
        response = client.post('/api/parse', json={'source': 5})
        assert response.status_code == 400

    def test_body_must_be_json(self, client):
        response = client.post('/api/transform', data='not json', content_type='text/plain')
        assert response.status_code == 400

    def test_transform(self, client):
        response = client.post('/api/transform', json={'source': 'self.move(1);\n'})
        assert response.get_json()['data']['javascript'] == 'await self.move(1);\n'

    def test_generate_with_bad_variables(self, client):
        response = client.post('/api/generate', json={'workspace': {}, 'variables': ['score']})
        assert response.status_code == 400


class TestProjectEndpoints:
    """Test cases for uploads."""

    def test_import_needs_a_file(self, client):
        response = client.post('/api/import/sb3', data={})
        assert response.status_code == 400
        assert "file" in response.get_json()['error']

    def test_import_sb3(self, client):
        """Uploaded Scratch projects are described entity by entity."""
        response = client.post('/api/import/sb3', data={
            'file': (io.BytesIO(_scratch_archive()), 'game.sb3'),
        }, content_type='multipart/form-data')
        data = response.get_json()['data']
        assert data['count'] == 1
        assert data['entities'][0]['is_stage'] is True
        assert data['entities'][0]['costumes'] == [{'name': 'backdrop1.svg', 'media_type': 'image/svg+xml'}]

    def test_import_rejects_garbage(self, client):
        response = client.post('/api/import/sb3', data={
            'file': (io.BytesIO(b"not a zip"), 'game.sb3'),
        }, content_type='multipart/form-data')
        assert response.status_code == 400

    def test_export(self, client):
        """Saved projects are exported as a zip bundle."""
        cat = Sprite("Cat", costumes=[AssetFile("a.svg", b"<svg/>", "image/svg+xml")])
        cat.typescript = SOURCE
        archive = save_project(Project([Stage(), cat], "Demo"))

        response = client.post('/api/export', data={
            'file': (io.BytesIO(archive), 'demo.scrap'),
        }, content_type='multipart/form-data')
        assert response.status_code == 200
        assert response.mimetype == 'application/zip'
        with zipfile.ZipFile(io.BytesIO(response.data)) as bundle:
            assert "Cat/script.js" in bundle.namelist()
            assert "index.html" in bundle.namelist()

    def test_inline_export_needs_engine(self, client):
        archive = save_project(Project([Stage()]))
        response = client.post('/api/export', data={
            'file': (io.BytesIO(archive), 'demo.scrap'),
            'engine': 'inline',
        }, content_type='multipart/form-data')
        assert response.status_code == 400
