"""Converters that shell out to gomarkdoc and pandoc."""

from __future__ import annotations

from pathlib import Path

from ..errors import ConversionError
from ..models import WorkUnit
from ..toolchain import run_tool


def _tail(text: str, lines: int = 5) -> str:
    return "\n".join(text.strip().splitlines()[-lines:])


class GomarkdocConverter:
    """Run gomarkdoc from within the package directory.

    Running in place improves symbol resolution; the output location still
    comes from the ``{{.ImportPath}}`` template, so it matches
    ``OutputLayout.output_path`` for the unit.
    """

    name = "gomarkdoc"

    def __init__(self, api_root: Path, include_private: bool = False, binary: str = "gomarkdoc") -> None:
        self.api_root = api_root
        self.include_private = include_private
        self.binary = binary

    @property
    def output_template(self) -> str:
        return f"{self.api_root.as_posix()}/{{{{.ImportPath}}}}/README.md"

    def command(self) -> list[str]:
        args = [self.binary]
        if self.include_private:
            args.append("-u")
        args += ["--output", self.output_template, "."]
        return args

    def convert(self, unit: WorkUnit) -> Path:
        try:
            result = run_tool(self.command(), cwd=unit.source_dir)
        except OSError as exc:
            raise ConversionError(f"gomarkdoc could not run: {exc}") from exc
        if result.returncode != 0:
            raise ConversionError(
                f"gomarkdoc exited {result.returncode}: {_tail(result.stderr)}"
            )
        return Path(unit.output_path)


class PandocConverter:
    """HTML -> GitHub-flavoured Markdown."""

    name = "pandoc"

    def __init__(self, source_format: str = "html", target_format: str = "gfm",
                 binary: str = "pandoc") -> None:
        self.source_format = source_format
        self.target_format = target_format
        self.binary = binary

    def command(self, source: str, output: str) -> list[str]:
        return [
            self.binary, "-f", self.source_format, "-t", self.target_format,
            "-o", output, source,
        ]

    def convert(self, unit: WorkUnit) -> Path:
        try:
            result = run_tool(self.command(unit.source_ref, unit.output_path))
        except OSError as exc:
            raise ConversionError(f"pandoc could not run: {exc}") from exc
        if result.returncode != 0:
            raise ConversionError(f"pandoc exited {result.returncode}: {_tail(result.stderr)}")
        return Path(unit.output_path)
