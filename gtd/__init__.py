"""gtd - a git-driven plan, build and learn loop for coding agent CLIs."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("gtd-loop")
except PackageNotFoundError:
    __version__ = "0.1.0"  # Fallback for development

from gtd.config import GtdConfig
from gtd.infer_step import InferStepInput, Step, infer_step
from gtd.prefixes import Marker
from gtd.workflow import Workflow

__all__ = [
    "__version__",
    "GtdConfig",
    "InferStepInput",
    "Marker",
    "Step",
    "Workflow",
    "infer_step",
]
