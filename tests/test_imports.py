"""
Each module must import on its own in a fresh interpreter.

ai.* depends on core.errors and core.engine depends on ai.*, so import
order inside one test process would hide a cycle.
"""

import os
import sys
import subprocess
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent

MODULES = [
    "config",
    "core.errors",
    "core.blocking",
    "core.engine",
    "ai.verifier",
    "ai.judge",
    "ai.rewards",
    "ai.text_extractor",
    "tracking.store",
    "tracking.progress",
    "tracking.timer",
    "tracking.history",
    "instance_lock",
    "main",
]


class TestStandaloneImports(unittest.TestCase):

    def test_each_module_imports_first(self):
        env = dict(os.environ, PYTHONPATH=str(PROJECT_ROOT))
        for module in MODULES:
            with self.subTest(module=module):
                result = subprocess.run(
                    [sys.executable, "-c", f"import {module}"],
                    cwd=str(PROJECT_ROOT),
                    env=env,
                    capture_output=True,
                    text=True,
                    timeout=60,
                )
                self.assertEqual(result.returncode, 0, result.stderr)


if __name__ == "__main__":
    unittest.main()
