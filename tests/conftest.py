"""
==============================================================================
Pytest Configuration and Fixtures
==============================================================================

Provides a test client wired to a scan pipeline built from the fakes in
tests/fakes.py.

==============================================================================
"""

from typing import Generator

import pytest
from fastapi.testclient import TestClient

from app.core.dependencies import get_scan_orchestrator
from app.main import app
from app.scanner import ScanOrchestrator, Symbology

from tests.fakes import FakeDetector, FakeRasterizer, build_orchestrator


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def fake_orchestrator() -> ScanOrchestrator:
    """Pipeline for a 2-page document: CODE_128 'A1B2' on page 0, nothing on page 1."""
    return build_orchestrator(
        rasterizer=FakeRasterizer(page_count=2),
        detector=FakeDetector(pages=[[(Symbology.CODE_128, "A1B2")], []]),
    )


@pytest.fixture
def client(fake_orchestrator: ScanOrchestrator) -> Generator[TestClient, None, None]:
    """Create test client with the pipeline replaced by fakes."""
    app.dependency_overrides[get_scan_orchestrator] = lambda: fake_orchestrator

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
