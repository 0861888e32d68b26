"""
Test suite for verifying project dependencies and requirements.

This module tests that all required dependencies are properly installed
and accessible for the LearnLoop service.
"""

import sys
from pathlib import Path

import pytest

from learnloop.agents.registry import AIRole

PACKAGE_PATH = Path(__file__).parent.parent / "learnloop"


class TestDependencies:
    """Test that all required dependencies are installed."""

    def test_python_version(self):
        """Test Python version is 3.11+."""
        major, minor = sys.version_info[:2]
        assert major == 3 and minor >= 11, f"Python 3.11+ required, got {major}.{minor}"

    # FastAPI and web framework
    def test_fastapi_installed(self):
        """Test FastAPI is installed."""
        import fastapi
        assert fastapi.__version__ is not None

    def test_uvicorn_installed(self):
        """Test uvicorn is installed."""
        import uvicorn
        assert uvicorn.__version__ is not None

    # SQLAlchemy and database
    def test_sqlalchemy_installed(self):
        """Test SQLAlchemy is installed."""
        import sqlalchemy
        assert sqlalchemy.__version__ is not None

    def test_aiomysql_installed(self):
        """Test the async MySQL driver is installed."""
        import aiomysql
        assert aiomysql is not None

    # LangChain and LangGraph
    def test_langchain_installed(self):
        """Test LangChain core and the OpenAI integration are installed."""
        from langchain_core import messages
        from langchain_openai import ChatOpenAI
        assert messages is not None
        assert ChatOpenAI is not None

    def test_langgraph_installed(self):
        """Test LangGraph is installed."""
        from langgraph.graph import StateGraph
        assert StateGraph is not None

    # Vector store
    def test_chromadb_installed(self):
        """Test ChromaDB is installed."""
        import chromadb
        assert chromadb.__version__ is not None

    # Security
    def test_python_jose_installed(self):
        """Test python-jose for JWT is installed."""
        from jose import jwt
        assert jwt is not None

    # Utilities
    def test_pydantic_settings_installed(self):
        """Test pydantic-settings is installed."""
        import pydantic_settings
        assert pydantic_settings is not None

    def test_httpx_installed(self):
        """Test httpx is installed."""
        import httpx
        assert httpx.__version__ is not None


class TestProjectStructure:
    """Test that required package directories and files exist."""

    @pytest.mark.parametrize("name", ["agents", "api", "core", "db", "observability", "vector"])
    def test_package_structure(self, name):
        assert (PACKAGE_PATH / name / "__init__.py").exists(), f"Package not found: {name}"

    @pytest.mark.parametrize("role", list(AIRole))
    def test_prompt_templates_exist(self, role):
        """Every role ships a v1 prompt template."""
        assert (PACKAGE_PATH / "prompts" / role.value / "v1.txt").exists()


class TestConfiguration:
    """Test application configuration."""

    def test_config_has_required_settings(self):
        """Test config has required settings."""
        from learnloop.core.config import settings

        required_attrs = [
            "DATABASE_URL",
            "SECRET_KEY",
            "OPENAI_API_KEY",
            "DEEPSEEK_API_KEY",
            "PROMPTS_DIR",
            "VECTOR_DB_PATH",
        ]

        for attr in required_attrs:
            assert hasattr(settings, attr), f"Config missing: {attr}"

    def test_secret_key_length(self):
        from learnloop.core.config import settings
        assert len(settings.SECRET_KEY) >= 32
