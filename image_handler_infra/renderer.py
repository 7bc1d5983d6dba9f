'''
renderer
--------

Evaluate the outputs of a synthesized template the way CloudFormation does
when the stack is created: parameter values are resolved, conditions are
evaluated and the outputs whose condition is false are dropped.

Resource attributes are not known before deployment. The caller provides
them keyed `LogicalId.Attribute`, e.g.
`{'ImageHandlerDistribution.DomainName': 'd111111abcdef8.cloudfront.net'}`.
'''
# load modules
# ------------
import logging
import re
from typing import Dict, Mapping, Optional

from image_handler_infra.errors import RenderError
from image_handler_infra.parameters import validate_value

logger = logging.getLogger(__name__)

DEFAULT_PSEUDO_PARAMETERS = {
    'AWS::Region': 'us-east-1',
    'AWS::Partition': 'aws',
    'AWS::URLSuffix': 'amazonaws.com',
    'AWS::AccountId': '123456789012',
    'AWS::StackName': 'ServerlessImageHandler',
}
NO_VALUE = 'AWS::NoValue'

SUB_VARIABLE = re.compile(r'\$\{([^}]*)\}')


def render_outputs(template: Mapping, parameter_values: Optional[Mapping[str, str]] = None,
                   attributes: Optional[Mapping[str, str]] = None,
                   pseudo_parameters: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    '''
    Return the realized outputs of `template`, keyed by output logical ID.
    '''
    return TemplateRenderer(template, parameter_values, attributes, pseudo_parameters).outputs()


class TemplateRenderer:

    def __init__(self, template: Mapping, parameter_values=None, attributes=None,
                 pseudo_parameters=None) -> None:
        self.template = template
        self.attributes = dict(attributes or {})
        self.pseudo_parameters = dict(DEFAULT_PSEUDO_PARAMETERS)
        self.pseudo_parameters.update(pseudo_parameters or {})
        self.parameters = self._resolve_parameters(parameter_values or {})
        self._conditions: Dict[str, bool] = {}

    def _resolve_parameters(self, supplied: Mapping[str, str]) -> Dict[str, str]:
        declared = self.template.get('Parameters', {})
        unknown = sorted(set(supplied) - set(declared))
        if unknown:
            raise RenderError(f'values supplied for undeclared parameters: {", ".join(unknown)}')

        values = {}
        for name, definition in declared.items():
            if name in supplied:
                value = supplied[name]
                validate_value(
                    name, value,
                    param_type=definition.get('Type', 'String'),
                    allowed_values=definition.get('AllowedValues'),
                    allowed_pattern=definition.get('AllowedPattern'),
                )
            elif 'Default' in definition:
                value = str(definition['Default'])
            else:
                raise RenderError(f'parameter "{name}" has no value and no default')
            values[name] = value
        return values

    # conditions
    # ----------
    def condition(self, name: str) -> bool:
        if name not in self._conditions:
            conditions = self.template.get('Conditions', {})
            if name not in conditions:
                raise RenderError(f'undefined condition "{name}"')
            self._conditions[name] = self._evaluate_condition(conditions[name])
        return self._conditions[name]

    def _evaluate_condition(self, expression) -> bool:
        if not isinstance(expression, dict) or len(expression) != 1:
            raise RenderError(f'invalid condition expression {expression!r}')
        (function, args), = expression.items()
        if function == 'Condition':
            return self.condition(args)
        if function == 'Fn::Equals':
            left, right = args
            return str(self.evaluate(left)) == str(self.evaluate(right))
        if function == 'Fn::Not':
            return not self._evaluate_condition(args[0])
        if function == 'Fn::And':
            return all(self._evaluate_condition(arg) for arg in args)
        if function == 'Fn::Or':
            return any(self._evaluate_condition(arg) for arg in args)
        raise RenderError(f'unsupported condition function {function}')

    # values
    # ------
    def evaluate(self, expression):
        if isinstance(expression, list):
            return [self.evaluate(item) for item in expression]
        if not isinstance(expression, dict):
            return expression
        if len(expression) != 1:
            return {key: self.evaluate(value) for key, value in expression.items()}

        (function, args), = expression.items()
        if function == 'Ref':
            return self._ref(args)
        if function == 'Fn::GetAtt':
            logical_id, attribute = args if isinstance(args, list) else args.split('.', 1)
            return self._attribute(f'{logical_id}.{attribute}')
        if function == 'Fn::Sub':
            return self._sub(args)
        if function == 'Fn::If':
            name, if_true, if_false = args
            return self.evaluate(if_true if self.condition(name) else if_false)
        if function == 'Fn::Join':
            delimiter, items = args
            return delimiter.join(str(item) for item in self.evaluate(items))
        if function == 'Fn::Select':
            index, items = args
            return self.evaluate(items)[int(self.evaluate(index))]
        if function == 'Fn::Split':
            delimiter, source = args
            return str(self.evaluate(source)).split(delimiter)
        if function in ('Condition', 'Fn::Equals', 'Fn::Not', 'Fn::And', 'Fn::Or'):
            return self._evaluate_condition(expression)
        # a plain one-key mapping, e.g. a tag
        if not function.startswith('Fn::'):
            return {function: self.evaluate(args)}
        raise RenderError(f'unsupported function {function}')

    def _ref(self, name: str):
        if name in self.parameters:
            return self.parameters[name]
        if name in self.pseudo_parameters:
            return self.pseudo_parameters[name]
        if name == NO_VALUE:
            return None
        # a resource reference resolves to its physical id
        return self._attribute(f'{name}.Ref')

    def _attribute(self, key: str) -> str:
        try:
            return self.attributes[key]
        except KeyError:
            raise RenderError(f'no value provided for attribute "{key}"')

    def _sub(self, args) -> str:
        if isinstance(args, list):
            source, variables = args
            variables = {name: self.evaluate(value) for name, value in variables.items()}
        else:
            source, variables = args, {}

        def replace(match) -> str:
            name = match.group(1)
            if name.startswith('!'):
                return '${' + name[1:] + '}'
            if name in variables:
                return str(variables[name])
            if '.' in name:
                return str(self._attribute(name))
            return str(self._ref(name))

        return SUB_VARIABLE.sub(replace, source)

    # outputs
    # -------
    def outputs(self) -> Dict[str, str]:
        realized = {}
        for name, output in self.template.get('Outputs', {}).items():
            condition = output.get('Condition')
            if condition is not None and not self.condition(condition):
                logger.debug('output %s omitted, condition %s is false', name, condition)
                continue
            value = self.evaluate(output['Value'])
            # CloudFormation rejects an output whose value resolves to AWS::NoValue
            if value is None:
                raise RenderError(f'output "{name}" has no value')
            realized[name] = str(value)
        return realized
