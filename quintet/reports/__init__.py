"""Report compilation, execution and rendering for quintet."""

from .compiler import ReportCompiler
from .executor import ReportExecutor
from .renderers import render, RENDERERS

__all__ = ["ReportCompiler", "ReportExecutor", "render", "RENDERERS"]
