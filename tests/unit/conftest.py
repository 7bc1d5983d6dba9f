import pytest

from image_handler_infra import StackConfig

from .stack_helpers import synth


@pytest.fixture(scope='module')
def standard_template():
    return synth(StackConfig(version='v6.0.0'))


@pytest.fixture(scope='module')
def china_template():
    return synth(StackConfig(version='v6.0.0', china_region=True))
