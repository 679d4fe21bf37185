from pathlib import Path

import pytest

from app.core.config import Settings


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        llm_provider="none",
        data_dir=tmp_path / "data",
        screenshot_dir=tmp_path / "shots",
        redis_url="redis://127.0.0.1:1/0",
    )


@pytest.fixture
def resume_file(tmp_path: Path) -> Path:
    path = tmp_path / "resume.pdf"
    path.write_bytes(b"%PDF-1.4 fake resume")
    return path
