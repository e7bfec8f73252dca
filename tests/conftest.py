"""Shared test fixtures for the extraction-worker test suite."""

from __future__ import annotations

import pytest


@pytest.fixture
def test_user_id() -> str:
    return "user-123"


@pytest.fixture
def test_document_id() -> str:
    return "3f1c2d4e-5a6b-4c7d-8e9f-0a1b2c3d4e5f"
