"""Shared fixtures for the dupkeep test suite."""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Iterator

import pytest
from docx import Document
from pypdf import PdfWriter

from dupkeep.config.models import DupkeepConfig
from dupkeep.engine import DedupEngine, build_engine
from dupkeep.state import InMemoryRecordRepository
from dupkeep.storage import LocalStorageBackend


@pytest.fixture(autouse=True)
def _reset_package_logger() -> Iterator[None]:
    """Undo handlers installed by CLI invocations so caplog keeps working."""
    yield
    logger = logging.getLogger("dupkeep")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def config(tmp_path: Path) -> DupkeepConfig:
    return DupkeepConfig.model_validate(
        {
            "storage": {"root": str(tmp_path / "uploads")},
            "repository": {"state_dir": str(tmp_path / "state")},
            "ingestion": {"timeout_seconds": 5.0},
            "duplicates": {"timeout_seconds": 5.0},
        }
    )


@pytest.fixture
def storage(tmp_path: Path) -> LocalStorageBackend:
    return LocalStorageBackend(tmp_path / "uploads")


@pytest.fixture
def repository() -> InMemoryRecordRepository:
    return InMemoryRecordRepository()


@pytest.fixture
def engine(
    config: DupkeepConfig, repository: InMemoryRecordRepository, storage: LocalStorageBackend
) -> Iterator[DedupEngine]:
    built = build_engine(config, repository=repository, storage=storage)
    yield built
    built.close()


def stored_files(root: Path) -> list[Path]:
    """Return every file currently held by a local storage root."""
    if not root.exists():
        return []
    return sorted(path for path in root.rglob("*") if path.is_file())


def make_docx(*paragraphs: str, table: list[list[str]] | None = None) -> bytes:
    document = Document()
    for text in paragraphs:
        document.add_paragraph(text)
    if table:
        grid = document.add_table(rows=len(table), cols=len(table[0]))
        for row_index, row in enumerate(table):
            for col_index, value in enumerate(row):
                grid.cell(row_index, col_index).text = value
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def make_blank_pdf(pages: int = 1) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=200, height=200)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()
