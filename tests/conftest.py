"""
Pytest configuration and fixtures
"""
from pathlib import Path

import pytest

from relay_sync.config import Config
from relay_sync.copier import TransferWorker
from relay_sync.ledger import TransferLedger


@pytest.fixture
def source_dir(tmp_path: Path) -> Path:
    """Create a directory to watch"""
    path = tmp_path / "source"
    path.mkdir()
    return path


@pytest.fixture
def target_dir(tmp_path: Path) -> Path:
    """Create the copy destination"""
    path = tmp_path / "target"
    path.mkdir()
    return path


@pytest.fixture
def record_file(tmp_path: Path) -> Path:
    """Path of the transfer record (not created)"""
    return tmp_path / "state" / "transfers.json"


@pytest.fixture
def config(source_dir: Path, target_dir: Path, record_file: Path) -> Config:
    return Config(
        source_dir=source_dir, target_dir=target_dir, record_file=record_file, stable_seconds=0.5
    )


@pytest.fixture
def ledger(record_file: Path) -> TransferLedger:
    ledger = TransferLedger(record_file)
    ledger.load()
    return ledger


@pytest.fixture
def worker(target_dir: Path, ledger: TransferLedger) -> TransferWorker:
    return TransferWorker(target_dir, ledger, retry_delay=0)
