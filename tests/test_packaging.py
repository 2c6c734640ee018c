"""Tests for project packaging metadata."""

import re
from pathlib import Path

ROOT = Path(__file__).parent.parent


class TestPyproject:

    def test_readme_points_at_existing_project_file(self):
        """A declared readme must exist and must not be a design document."""
        text = (ROOT / "pyproject.toml").read_text()
        match = re.search(r'^readme\s*=\s*"([^"]+)"', text, re.MULTILINE)
        if match is None:
            return
        readme = match.group(1)
        assert (ROOT / readme).is_file()
        assert readme not in ("SPEC_FULL.md", "DESIGN.md", "TRIAGE.md")

    def test_package_found_under_src(self):
        text = (ROOT / "pyproject.toml").read_text()
        assert 'where = ["src"]' in text
        assert (ROOT / "src" / "armlite_cpu" / "__init__.py").is_file()
