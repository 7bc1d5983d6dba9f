#!/usr/bin/env python3
import logging
import os

from aws_cdk import App
from image_handler_infra import ConstructsStack, StackConfig

# user parameters
# ---------------
# stack name, overridden by the `stack_name` of the selected environment
stack_id = 'ServerlessImageHandlerStack'
# logging level for the synth logs
log_level = os.getenv('LOG_LEVEL', default='INFO')

logging.basicConfig(level=log_level, format='%(levelname)s %(name)s: %(message)s')

# stacks to deploy
# ----------------
app = App()

# Get environment configuration from context
env_name = app.node.try_get_context('env')
env_config = {}
if env_name:
    environments = app.node.try_get_context('environments')
    if environments and env_name in environments:
        env_config = environments[env_name]
        print(f"Using environment configuration for: {env_name}")
        print(f"Config: {env_config}")
    else:
        print(f"Warning: Environment '{env_name}' not found in context")
else:
    print("No environment specified via -c env=<name>")

config = StackConfig.from_environment(env_config)

ConstructsStack(
    app,
    construct_id=env_config.get('stack_name', stack_id),
    config=config,
)

app.synth()
