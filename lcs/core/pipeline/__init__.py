# lcs/core/pipeline/__init__.py
from lcs.core.pipeline.orchestrator import PipelineOrchestrator  # noqa: F401
from lcs.core.pipeline.types import PipelineResult, PipelineState, StepResult  # noqa: F401
