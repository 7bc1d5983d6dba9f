'''
Errors raised while assembling or rendering the image handler template.

All of them abort the synthesis pass. Nothing is retried: the operator
fixes the inputs and runs `cdk synth` again.
'''


class AssemblyError(Exception):
    '''Base class of every synthesis-time failure.'''


class DuplicateIdentifierError(AssemblyError):
    '''A parameter or output identifier was declared twice in one pass.'''

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f'{kind} "{identifier}" is already declared')


class ParameterValidationError(AssemblyError):
    '''A parameter value violates its type, allowed values or pattern.'''

    def __init__(self, identifier: str, value, reason: str):
        self.identifier = identifier
        self.value = value
        self.reason = reason
        super().__init__(f'invalid value {value!r} for parameter "{identifier}": {reason}')


class UnknownParameterError(AssemblyError):
    '''A reference to a parameter that was not declared in this pass.'''


class UnknownConditionError(AssemblyError):
    '''A reference to a condition the image handler construct never defined.'''


class RenderError(AssemblyError):
    '''A template could not be evaluated for the given inputs.'''
