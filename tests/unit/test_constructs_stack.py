import aws_cdk as cdk
import pytest
from aws_cdk.assertions import Match, Template

from image_handler_infra import ConstructsStack, StackConfig, render_outputs
from image_handler_infra.errors import ParameterValidationError, UnknownParameterError
from image_handler_infra.parameters import FALLBACK_GROUP_LABEL, SIGNATURE_GROUP_LABEL

from .stack_helpers import DISTRIBUTION_DOMAINS, synth

REGION_ONLY = ['ApiDomain', 'ApiCertificateIamId', 'DemoUIDomain', 'DemoUICertificateIamId']


def group_labels(template):
    groups = template['Metadata']['AWS::CloudFormation::Interface']['ParameterGroups']
    return [group['Label']['default'] for group in groups]


def test_template_options(standard_template):
    assert standard_template['AWSTemplateFormatVersion'] == '2010-09-09'
    assert standard_template['Description'].startswith('(SO0023) - Serverless Image Handler')
    assert standard_template['Description'].endswith('Template version v6.0.0')
    assert standard_template['Mappings']['Send'] == {'AnonymousUsage': {'Data': 'Yes'}}
    assert 'Rules' not in standard_template


def test_standard_region_parameters(standard_template):
    parameters = standard_template['Parameters']
    for name in REGION_ONLY:
        assert name not in parameters
    assert len(parameters) == 12
    assert parameters['LogRetentionPeriod']['Type'] == 'Number'
    assert parameters['LogRetentionPeriod']['Default'] == '1'
    assert parameters['SourceBuckets']['AllowedPattern'] == '.+'
    assert parameters['DeployDemoUI']['AllowedValues'] == ['Yes', 'No']


def test_standard_region_groups(standard_template):
    assert group_labels(standard_template) == [
        'CORS Options', 'Image Sources', 'Demo UI', 'Event Logging',
        SIGNATURE_GROUP_LABEL, FALLBACK_GROUP_LABEL, 'Auto WebP',
    ]
    groups = standard_template['Metadata']['AWS::CloudFormation::Interface']['ParameterGroups']
    assert groups[2]['Parameters'] == ['DeployDemoUI']


def test_china_region_parameters_and_groups(china_template):
    parameters = china_template['Parameters']
    for name in REGION_ONLY:
        assert name in parameters
    assert 'Default' not in parameters['ApiDomain']
    groups = china_template['Metadata']['AWS::CloudFormation::Interface']['ParameterGroups']
    assert groups[0] == {
        'Label': {'default': 'API Configuration'},
        'Parameters': ['ApiDomain', 'ApiCertificateIamId'],
    }
    assert groups[3]['Parameters'] == ['DeployDemoUI', 'DemoUIDomain', 'DemoUICertificateIamId']


def test_standard_region_outputs(standard_template):
    outputs = standard_template['Outputs']
    assert sorted(outputs) == sorted([
        'ApiEndpoint', 'DemoUrl', 'SourceBuckets', 'CorsEnabled', 'CorsOrigin', 'LogRetentionPeriod'
    ])
    assert outputs['ApiEndpoint']['Value'] == {'Fn::Sub': 'https://${ImageHandlerDistribution.DomainName}'}
    assert outputs['DemoUrl']['Condition'] == 'DeployDemoUICondition'
    assert outputs['CorsOrigin']['Condition'] == 'EnableCorsCondition'
    assert outputs['LogRetentionPeriod']['Value'] == {'Ref': 'LogRetentionPeriod'}
    assert 'Condition' not in outputs['ApiEndpoint']


def test_china_region_outputs(china_template):
    outputs = china_template['Outputs']
    assert sorted(outputs) == sorted([
        'ApiEndpoint', 'ApiEndpointCNAME', 'DemoUrl', 'DemoUrlCNAME',
        'SourceBuckets', 'CorsEnabled', 'CorsOrigin', 'LogRetentionPeriod',
    ])
    assert outputs['ApiEndpoint']['Value'] == {'Fn::If': [
        'ApiCertificateCondition',
        {'Fn::Sub': 'https://${ApiDomain}'},
        {'Fn::Sub': 'http://${ApiDomain}'},
    ]}
    assert outputs['ApiEndpointCNAME']['Value'] == {'Fn::Sub': '${ImageHandlerDistribution.DomainName}'}
    assert outputs['DemoUrlCNAME']['Value'] == {'Fn::Sub': '${DemoDistribution.DomainName}'}


def test_conditions(standard_template, china_template):
    assert set(standard_template['Conditions']) >= {
        'EnableCorsCondition', 'DeployDemoUICondition',
        'EnableSignatureCondition', 'EnableDefaultFallbackImageCondition',
    }
    assert 'ApiCertificateCondition' not in standard_template['Conditions']
    assert china_template['Conditions']['ApiCertificateCondition'] == {
        'Fn::Not': [{'Fn::Equals': [{'Ref': 'ApiCertificateIamId'}, '']}]
    }
    assert 'DemoUICertificateCondition' in china_template['Conditions']


def test_image_handler_resources(standard_template):
    template = Template.from_json(standard_template)
    template.has_resource_properties('AWS::Lambda::Function', {
        'Handler': 'image-handler/index.handler',
        'Runtime': 'nodejs22.x',
        'Environment': {'Variables': Match.object_like({
            'CORS_ENABLED': {'Ref': 'CorsEnabled'},
            'SOURCE_BUCKETS': {'Ref': 'SourceBuckets'},
            'AUTO_WEBP': {'Ref': 'AutoWebP'},
        })},
    })
    template.has_resource_properties('AWS::Logs::LogGroup', {
        'RetentionInDays': {'Ref': 'LogRetentionPeriod'},
    })
    template.has_resource('AWS::IAM::Policy', {
        'Condition': 'EnableSignatureCondition',
        'Properties': Match.object_like({'PolicyName': 'ImageHandlerSecretPolicy'}),
    })
    assert standard_template['Resources']['ImageHandlerDistribution']['Type'] == 'AWS::CloudFront::Distribution'
    assert standard_template['Resources']['DemoDistribution']['Condition'] == 'DeployDemoUICondition'
    template.has_resource('AWS::S3::Bucket', {'Condition': 'DeployDemoUICondition'})


def test_china_distribution_certificate(china_template):
    config = china_template['Resources']['ImageHandlerDistribution']['Properties']['DistributionConfig']
    assert config['ViewerCertificate']['Fn::If'][0] == 'ApiCertificateCondition'
    assert config['Aliases']['Fn::If'][1] == [{'Ref': 'ApiDomain'}]


def test_standard_scenario_renders_https_endpoints(standard_template):
    outputs = render_outputs(
        standard_template,
        parameter_values={
            'DeployDemoUI': 'Yes',
            'CorsEnabled': 'Yes',
            'CorsOrigin': 'https://example.com',
            'SourceBuckets': 'my-images',
        },
        attributes=DISTRIBUTION_DOMAINS,
    )
    assert outputs == {
        'ApiEndpoint': 'https://d111111abcdef8.cloudfront.net',
        'DemoUrl': 'https://d222222abcdef8.cloudfront.net/index.html',
        'SourceBuckets': 'my-images',
        'CorsEnabled': 'Yes',
        'CorsOrigin': 'https://example.com',
        'LogRetentionPeriod': '1',
    }


@pytest.mark.parametrize('deploy_demo_ui, present', [('Yes', True), ('No', False)])
def test_demo_url_follows_deploy_demo_ui(standard_template, deploy_demo_ui, present):
    outputs = render_outputs(standard_template, {'DeployDemoUI': deploy_demo_ui},
                             attributes=DISTRIBUTION_DOMAINS)
    assert ('DemoUrl' in outputs) is present


@pytest.mark.parametrize('cors_enabled, present', [('Yes', True), ('No', False)])
def test_cors_origin_follows_cors_enabled(standard_template, cors_enabled, present):
    outputs = render_outputs(standard_template, {'CorsEnabled': cors_enabled, 'CorsOrigin': '*'},
                             attributes=DISTRIBUTION_DOMAINS)
    assert ('CorsOrigin' in outputs) is present
    assert outputs['CorsEnabled'] == cors_enabled


def test_china_scenario_without_certificate(china_template):
    outputs = render_outputs(
        china_template,
        parameter_values={'ApiDomain': 'img.example.com', 'ApiCertificateIamId': ''},
        attributes=DISTRIBUTION_DOMAINS,
    )
    assert outputs['ApiEndpoint'] == 'http://img.example.com'
    assert outputs['ApiEndpointCNAME'] == 'd111111abcdef8.cloudfront.net'
    # no demo certificate either: plain HTTP on the demo domain, left empty
    assert outputs['DemoUrl'] == 'http:///index.html'


def test_china_scenario_with_certificates(china_template):
    outputs = render_outputs(
        china_template,
        parameter_values={
            'ApiDomain': 'img.example.com',
            'ApiCertificateIamId': 'ASCACKCEVSQ6C2EXAMPLE',
            'DemoUIDomain': 'demo.example.com',
            'DemoUICertificateIamId': 'ASCACKCEVSQ6C2EXAMPLF',
        },
        attributes=DISTRIBUTION_DOMAINS,
    )
    assert outputs['ApiEndpoint'] == 'https://img.example.com'
    assert outputs['DemoUrl'] == 'https://demo.example.com/index.html'
    assert outputs['DemoUrlCNAME'] == 'd222222abcdef8.cloudfront.net'


def test_invalid_api_domain_fails_synthesis():
    with pytest.raises(ParameterValidationError):
        synth(StackConfig(china_region=True, parameter_values={'ApiDomain': 'img_example!.com'}))


def test_region_only_value_outside_china_fails_synthesis():
    with pytest.raises(UnknownParameterError):
        synth(StackConfig(parameter_values={'ApiDomain': 'img.example.com'}))


def test_supplied_values_are_template_defaults():
    template = synth(StackConfig(parameter_values={'LogRetentionPeriod': '30', 'DeployDemoUI': 'No'}))
    assert template['Parameters']['LogRetentionPeriod']['Default'] == '30'
    outputs = render_outputs(template, attributes=DISTRIBUTION_DOMAINS)
    assert 'DemoUrl' not in outputs
    assert outputs['LogRetentionPeriod'] == '30'


@pytest.mark.parametrize('china_region', [False, True])
def test_synthesis_is_deterministic(china_region):
    config = StackConfig(version='v6.0.0', china_region=china_region)
    assert synth(config) == synth(config)


def test_regions_synthesized_in_one_app_are_independent():
    app = cdk.App()
    standard = ConstructsStack(app, 'Standard', config=StackConfig())
    china = ConstructsStack(app, 'China', config=StackConfig(china_region=True))
    assert 'ApiDomain' not in standard.assembler.parameters
    assert 'ApiDomain' in china.assembler.parameters
    assert 'ApiEndpointCNAME' not in Template.from_stack(standard).to_json()['Outputs']
    assert 'ApiEndpointCNAME' in Template.from_stack(china).to_json()['Outputs']


def test_summary_lists_output_conditions():
    stack = ConstructsStack(cdk.App(), 'SummaryStack', config=StackConfig())
    parameters, outputs = stack.assembler.summary()
    assert parameters.startswith('12 parameters: DeployDemoUI, ')
    assert outputs == (
        '6 outputs: ApiEndpoint, DemoUrl [if DeployDemoUICondition], SourceBuckets, '
        'CorsEnabled, CorsOrigin [if EnableCorsCondition], LogRetentionPeriod'
    )
