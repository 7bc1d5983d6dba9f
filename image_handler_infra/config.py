'''
Configuration of one synthesis pass.

Values come from the environment variables set by the build scripts
(VERSION, CHINA_REGION, DIST_OUTPUT_BUCKET, SOLUTION_NAME) and from the
CDK context entry selected with `-c env=<name>`. The context wins.
'''
import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

DEFAULT_VERSION = 'v0.0.0'
DEFAULT_SOLUTION_NAME = 'serverless-image-handler'
DEFAULT_SOURCE_CODE_BUCKET = 'solutions'


@dataclass(frozen=True)
class StackConfig:
    version: str = DEFAULT_VERSION
    china_region: bool = False
    # operator values, keyed by parameter identifier. They become the
    # template defaults and are validated at synth time
    parameter_values: Mapping[str, str] = field(default_factory=dict)
    source_code_bucket: str = DEFAULT_SOURCE_CODE_BUCKET
    source_code_key_prefix: str = f'{DEFAULT_SOLUTION_NAME}/{DEFAULT_VERSION}'

    @classmethod
    def from_environment(cls, env_config: Optional[Dict] = None,
                         environ: Optional[Mapping[str, str]] = None) -> 'StackConfig':
        '''
        Build the configuration from environment variables, overridden by the
        `env_config` dict taken from the CDK context.
        '''
        environ = os.environ if environ is None else environ
        env_config = env_config or {}

        version = env_config.get('version') or environ.get('VERSION') or DEFAULT_VERSION
        if 'china_region' in env_config:
            china_region = _as_bool(env_config['china_region'])
        else:
            # any non-empty value turns the China region template on
            china_region = bool(environ.get('CHINA_REGION'))
        solution_name = environ.get('SOLUTION_NAME') or DEFAULT_SOLUTION_NAME
        source_code_bucket = (env_config.get('source_code_bucket')
                              or environ.get('DIST_OUTPUT_BUCKET')
                              or DEFAULT_SOURCE_CODE_BUCKET)
        parameter_values = {
            key: str(value) for key, value in (env_config.get('parameters') or {}).items()
        }
        return cls(
            version=version,
            china_region=china_region,
            parameter_values=parameter_values,
            source_code_bucket=source_code_bucket,
            source_code_key_prefix=f'{solution_name}/{version}',
        )


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'y')
    return bool(value)
