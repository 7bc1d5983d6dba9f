'''
assembler
---------

Per-pass registry of the template parameters, console parameter groups and
stack outputs. One ConfigurationAssembler belongs to exactly one stack, so
several stacks (e.g. standard and China regions) can be synthesized in the
same process without sharing state.

Every check happens at synth time. A failed check raises an AssemblyError
and the whole pass is discarded.
'''
# load modules
# ------------
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from constructs import Construct
from aws_cdk import CfnOutput, CfnParameter

from image_handler_infra.config import StackConfig
from image_handler_infra.errors import (
    DuplicateIdentifierError,
    UnknownConditionError,
    UnknownParameterError,
)
from image_handler_infra.parameters import ParameterHandle, ParameterSpec
from image_handler_infra.serverless_image_handler import (
    ServerlessImageHandler,
    ServerlessImageHandlerProps,
)

logger = logging.getLogger(__name__)

IMAGE_HANDLER_ID = 'ServerlessImageHandler'


# classes
# -------
@dataclass(frozen=True)
class ParameterGroup:
    label: str
    parameters: tuple

    def to_metadata(self) -> Dict:
        return {'Label': {'default': self.label}, 'Parameters': list(self.parameters)}


@dataclass(frozen=True)
class OutputDeclaration:
    identifier: str
    condition: Optional[str] = None

    def __str__(self) -> str:
        if self.condition is None:
            return self.identifier
        return f'{self.identifier} [if {self.condition}]'


class ConfigurationAssembler:

    def __init__(self, scope: Construct, config: StackConfig) -> None:
        self.scope = scope
        self.config = config
        self.parameters: Dict[str, ParameterHandle] = {}
        self.outputs: Dict[str, OutputDeclaration] = {}
        self.image_handler: Optional[ServerlessImageHandler] = None

    # parameters
    # ----------
    def declare_parameter(self, spec: ParameterSpec) -> ParameterHandle:
        '''
        Register `spec` and create its CfnParameter. The template default is
        the operator value when one was supplied, the catalogue default
        otherwise, and it must satisfy the parameter constraints.
        '''
        if spec.identifier in self.parameters:
            raise DuplicateIdentifierError('parameter', spec.identifier)
        if spec.region_only and not self.config.china_region:
            raise UnknownParameterError(
                f'parameter "{spec.identifier}" only exists in China region templates'
            )
        value = self.config.parameter_values.get(spec.identifier, spec.default)
        if value is not None:
            spec.validate(value)

        cfn_parameter = CfnParameter(self.scope, spec.identifier, **spec.cfn_props(value))
        handle = ParameterHandle(spec=spec, value=value, cfn_parameter=cfn_parameter)
        self.parameters[spec.identifier] = handle
        logger.debug('declared parameter %s (default: %r)', spec.identifier, value)
        return handle

    def declare_parameter_if(self, flag: bool, spec: ParameterSpec) -> Optional[ParameterHandle]:
        if not flag:
            return None
        return self.declare_parameter(spec)

    def parameter(self, identifier: str) -> ParameterHandle:
        try:
            return self.parameters[identifier]
        except KeyError:
            raise UnknownParameterError(f'parameter "{identifier}" is not declared in this template')

    def check_supplied_values(self) -> None:
        '''Operator values must all name a declared parameter.'''
        unknown = sorted(set(self.config.parameter_values) - set(self.parameters))
        if unknown:
            raise UnknownParameterError(
                f'values supplied for undeclared parameters: {", ".join(unknown)}'
            )

    def _check_registered(self, handle: ParameterHandle) -> None:
        if self.parameters.get(handle.identifier) is not handle:
            raise UnknownParameterError(
                f'parameter "{handle.identifier}" was not declared by this assembler'
            )

    # parameter groups
    # ----------------
    def build_group(self, label: str,
                    handles: Sequence[Optional[ParameterHandle]]) -> ParameterGroup:
        '''
        Absent handles are left out. The group is kept even if nothing is
        left in it.
        '''
        present = [handle for handle in handles if handle is not None]
        for handle in present:
            self._check_registered(handle)
        return ParameterGroup(label=label, parameters=tuple(h.logical_id for h in present))

    def build_group_if(self, flag: bool, label: str,
                       handles: Sequence[Optional[ParameterHandle]]) -> Optional[ParameterGroup]:
        if not flag:
            return None
        return self.build_group(label, handles)

    @staticmethod
    def interface_metadata(groups: Sequence[Optional[ParameterGroup]]) -> Dict:
        return {
            'AWS::CloudFormation::Interface': {
                'ParameterGroups': [group.to_metadata() for group in groups if group is not None]
            }
        }

    # child construct
    # ---------------
    def instantiate_image_handler(self, props: ServerlessImageHandlerProps) -> ServerlessImageHandler:
        for handle in props.handles().values():
            if handle is not None:
                self._check_registered(handle)
        self.image_handler = ServerlessImageHandler(self.scope, IMAGE_HANDLER_ID, props)
        return self.image_handler

    def has_condition(self, name: str) -> bool:
        return self.image_handler is not None and name in self.image_handler.conditions

    # outputs
    # -------
    def declare_output(self, identifier: str, description: str, value: str,
                       condition: Optional[str] = None) -> CfnOutput:
        '''
        Register a stack output. `condition` names a condition of the image
        handler construct; the output only exists when it holds at deploy
        time.
        '''
        if identifier in self.outputs:
            raise DuplicateIdentifierError('output', identifier)
        cfn_condition = None
        if condition is not None:
            if not self.has_condition(condition):
                raise UnknownConditionError(
                    f'output "{identifier}" references undefined condition "{condition}"'
                )
            cfn_condition = self.image_handler.conditions[condition]

        # parameters may share the name, so the construct id gets a suffix
        output = CfnOutput(
            self.scope, f'{identifier}Output',
            value=value, description=description, condition=cfn_condition,
        )
        output.override_logical_id(identifier)
        self.outputs[identifier] = OutputDeclaration(identifier, condition)
        logger.debug('declared output %s (condition: %s)', identifier, condition)
        return output

    def declare_output_if(self, flag: bool, identifier: str, description: str, value: str,
                          condition: Optional[str] = None) -> Optional[CfnOutput]:
        if not flag:
            return None
        return self.declare_output(identifier, description, value, condition)

    def summary(self) -> List[str]:
        return [
            f'{len(self.parameters)} parameters: {", ".join(self.parameters)}',
            f'{len(self.outputs)} outputs: {", ".join(str(o) for o in self.outputs.values())}',
        ]
