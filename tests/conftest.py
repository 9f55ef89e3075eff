"""Shared fixtures: an app on in-memory SQLite with a fake receipt reader."""

import pytest

import db_connection
from config import Settings
from main import create_app
from utils.receipt_extraction import ExtractionResult, parse_extracted_items

OWNER_A = 'guest_1700000000000_abc123xyz'
OWNER_B = 'guest_1700000000001_def456uvw'


class FakeExtractionService:
    """Stands in for the OpenAI-backed service; parses canned model output."""

    def __init__(self, raw_text='', error=None):
        self.raw_text = raw_text
        self.error = error
        self.calls = []

    def extract(self, image_bytes, mime_type='image/jpeg'):
        self.calls.append((image_bytes, mime_type))
        if self.error is not None:
            raise self.error
        items, strategy = parse_extracted_items(self.raw_text)
        return ExtractionResult(raw_text=self.raw_text, items=items, strategy=strategy)


@pytest.fixture
def settings():
    return Settings(database_url='sqlite://', log_level='WARNING')


@pytest.fixture
def extraction_service():
    return FakeExtractionService()


@pytest.fixture
def app(settings, extraction_service):
    app = create_app(settings, extraction_service=extraction_service)
    app.config['TESTING'] = True
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def headers():
    return {'X-User-ID': OWNER_A}


@pytest.fixture
def other_headers():
    return {'X-User-ID': OWNER_B}


@pytest.fixture
def session():
    """A store-level session on a fresh in-memory database."""
    db_connection.configure_engine('sqlite://')
    db_connection.init_db()
    session = db_connection.get_session()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
