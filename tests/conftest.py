"""Pytest configuration and shared fixtures."""

import copy
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

from app import main
from app.agent import AgentClient
from app.db import init_db
from app.main import app, get_agent_client


CHAIR_RESULT = {
    "product_name": "Ergonomic Office Chair",
    "enrichment_status": "complete",
    "description_data": {
        "product_title": "ProComfort Ergonomic Office Chair with Lumbar Support",
        "short_description": "Premium ergonomic chair with adjustable lumbar support.",
        "long_description": "Engineered for long work sessions.",
        "selling_points": ["Adjustable lumbar support system", "Breathable mesh back design"],
    },
    "categorization_data": {
        "primary_category": "Office Furniture",
        "taxonomy_path": "Home & Garden > Furniture > Office Furniture > Office Chairs",
        "secondary_categories": ["Ergonomic Chairs"],
        "tags": ["ergonomic", "office chair", "lumbar support"],
        "product_type": "Task Chair",
    },
    "attribute_data": {
        "physical_attributes": {"dimensions": '27.5" W', "weight": "42 lbs", "size": "", "color": "Matte Black", "material": "Mesh & Nylon"},
        "technical_specs": [{"key": "Weight Capacity", "value": "300 lbs"}, {"key": "Tilt Range", "value": "90-120 degrees"}],
        "variant_attributes": [{"attribute": "Color", "options": ["Matte Black", "Navy Blue"]}],
        "additional_attributes": [{"key": "Assembly Required", "value": "Yes"}],
    },
    "seo_data": {
        "meta_title": "Ergonomic Office Chair with Lumbar Support | ProComfort",
        "meta_description": "Shop the ProComfort Ergonomic Office Chair.",
        "faq_content": [{"question": "Is assembly required?", "answer": "Yes."}],
        "json_ld_markup": "{}",
        "rich_snippet_content": "",
        "seo_score": 87,
    },
}


def agent_success(result: dict = None) -> dict:
    return {"success": True, "response": {"result": copy.deepcopy(result if result is not None else CHAIR_RESULT)}}


def agent_failure() -> dict:
    return {"success": False, "response": None}


@pytest.fixture
def sample_records() -> list:
    return [
        {"name": "Ergonomic Office Chair", "sku": "EOC-2024", "price": "349.99"},
        {"name": "Wireless Noise-Canceling Headphones", "sku": "WNC-500", "price": "199.99"},
        {"name": "Organic Green Tea Matcha", "sku": "OGT-100", "price": "24.99"},
    ]


@pytest.fixture
def mock_agent() -> Mock:
    """Agent client whose remote calls all succeed."""
    agent = Mock(spec=AgentClient)
    agent.enrich_product = AsyncMock(side_effect=lambda payload: agent_success())
    agent.notify_export = AsyncMock(return_value={"success": True})
    return agent


@pytest.fixture(autouse=True)
def reset_state():
    """Reset module-level progress/review state and dependency overrides between tests."""
    main.REVIEWS.clear()
    main.PROGRESS.update({"running": False, "total": 0, "completed": 0, "percent": 0, "current": "", "job_id": None, "summary": None})
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


@pytest.fixture
def test_client(mock_agent: Mock):
    init_db()
    app.dependency_overrides[get_agent_client] = lambda: mock_agent
    with TestClient(app) as client:
        yield client
