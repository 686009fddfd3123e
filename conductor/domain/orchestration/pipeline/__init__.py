from .shape import Shape, shape_satisfies, payload_errors, describe_shape
from .pipeline import ErrorPolicy, Pipeline, PipelineBuilder, PipelineStep
from .pipeline_executor import PipelineExecutor

__all__ = [
    "Shape",
    "shape_satisfies",
    "payload_errors",
    "describe_shape",
    "ErrorPolicy",
    "Pipeline",
    "PipelineBuilder",
    "PipelineStep",
    "PipelineExecutor",
]
