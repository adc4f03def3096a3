"""Runs the example code of the README."""

from pathlib import Path
import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def python_blocks(text: str) -> str:
    """Concatenate the bodies of all ```python blocks in text."""
    code = []
    in_block = False
    for line in text.splitlines(keepends=True):
        if line.strip().startswith("```"):
            in_block = line.strip() == "```python"
            continue
        if in_block:
            code.append(line)
    return "".join(code)


def test_readme(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(PROJECT_ROOT)
    code = python_blocks((PROJECT_ROOT / "README.md").read_text())
    assert code
    exec(compile(code, "README.md", "exec"), {"__name__": "readme"})
