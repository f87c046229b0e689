import json
import shutil
import unittest
from pathlib import Path
from uuid import uuid4

from loguru import logger

from travel_rag_agent.logging_config import setup_logging

PROJECT_ROOT = Path(__file__).resolve().parents[1]


class SetupLoggingTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp_dir = PROJECT_ROOT / ".test-artifacts" / f"logging-{uuid4().hex}"
        self._tmp_dir.mkdir(parents=True, exist_ok=True)

    def tearDown(self) -> None:
        logger.remove()
        shutil.rmtree(self._tmp_dir, ignore_errors=True)

    def test_unknown_consumer_is_skipped(self) -> None:
        descriptions = setup_logging("INFO", [{"type": "carrier-pigeon"}])
        self.assertEqual([], descriptions)

    def test_jsonl_consumer_writes_serialized_records(self) -> None:
        path = self._tmp_dir / "agent.jsonl"
        descriptions = setup_logging("DEBUG", [{"type": "jsonl", "path": str(path)}])
        self.assertEqual([f"jsonl ({path}, DEBUG)"], descriptions)

        logger.info("pipeline started")
        logger.remove()

        record = json.loads(path.read_text(encoding="utf-8").splitlines()[0])
        self.assertEqual("pipeline started", record["record"]["message"])

    def test_per_consumer_level_overrides_default(self) -> None:
        path = self._tmp_dir / "agent.log"
        descriptions = setup_logging("INFO", [{"type": "file", "path": str(path), "level": "WARNING"}])
        self.assertEqual([f"file ({path}, WARNING)"], descriptions)
