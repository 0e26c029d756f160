"""
Installation pipeline.

InstallPipeline drives an install strategy through the seven steps;
InstallSession runs a pipeline on a worker thread under the run lock.
"""

from rocqsetup.pipeline.orchestrator import (
    InstallPipeline,
    Result,
    build_pipeline,
)
from rocqsetup.pipeline.session import InstallSession

__all__ = ["InstallPipeline", "InstallSession", "Result", "build_pipeline"]
