"""
CDK application for the Serverless Image Handler template.

The stack declares the CloudFormation parameters and outputs of the
solution and wires them to the image handler construct.
"""

from .config import StackConfig
from .constructs_stack import ConstructsStack
from .errors import (
    AssemblyError,
    DuplicateIdentifierError,
    ParameterValidationError,
    RenderError,
    UnknownConditionError,
    UnknownParameterError,
)
from .renderer import render_outputs

__all__ = [
    'StackConfig',
    'ConstructsStack',
    'AssemblyError',
    'DuplicateIdentifierError',
    'ParameterValidationError',
    'RenderError',
    'UnknownConditionError',
    'UnknownParameterError',
    'render_outputs',
]
