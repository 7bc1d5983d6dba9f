# load modules
# ------------
import logging
from typing import Optional

from constructs import Construct
from aws_cdk import CfnMapping, DefaultStackSynthesizer, Fn, Stack

from image_handler_infra import parameters as p
from image_handler_infra.assembler import ConfigurationAssembler
from image_handler_infra.config import StackConfig
from image_handler_infra.serverless_image_handler import (
    API_CERTIFICATE_CONDITION,
    API_DISTRIBUTION_ID,
    DEMO_DISTRIBUTION_ID,
    DEMO_UI_CERTIFICATE_CONDITION,
    DEPLOY_DEMO_UI_CONDITION,
    ENABLE_CORS_CONDITION,
    ServerlessImageHandlerProps,
)

logger = logging.getLogger(__name__)

SOLUTION_ID = 'SO0023'
TEMPLATE_FORMAT_VERSION = '2010-09-09'


# classes
# -------
class ConstructsStack(Stack):
    '''
    Serverless Image Handler template: CloudFormation parameters, their
    console groups, the image handler construct and the stack outputs.
    '''

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        config: Optional[StackConfig] = None,
        **kwargs) -> None:
        # the template is launched from the console, there is no bootstrap stack
        kwargs.setdefault('synthesizer', DefaultStackSynthesizer(generate_bootstrap_version_rule=False))
        super().__init__(scope, construct_id, **kwargs)

        self.config = config or StackConfig()
        self.assembler = assembler = ConfigurationAssembler(self, self.config)
        china = self.config.china_region

        # CFN parameters
        api_domain = assembler.declare_parameter_if(china, p.API_DOMAIN)
        api_certificate_iam_id = assembler.declare_parameter_if(china, p.API_CERTIFICATE_IAM_ID)
        deploy_demo_ui = assembler.declare_parameter(p.DEPLOY_DEMO_UI)
        demo_ui_domain = assembler.declare_parameter_if(china, p.DEMO_UI_DOMAIN)
        demo_ui_certificate_iam_id = assembler.declare_parameter_if(china, p.DEMO_UI_CERTIFICATE_IAM_ID)
        cors_enabled = assembler.declare_parameter(p.CORS_ENABLED)
        cors_origin = assembler.declare_parameter(p.CORS_ORIGIN)
        source_buckets = assembler.declare_parameter(p.SOURCE_BUCKETS)
        log_retention_period = assembler.declare_parameter(p.LOG_RETENTION_PERIOD)
        auto_webp = assembler.declare_parameter(p.AUTO_WEBP)
        enable_signature = assembler.declare_parameter(p.ENABLE_SIGNATURE)
        secrets_manager = assembler.declare_parameter(p.SECRETS_MANAGER_SECRET)
        secrets_manager_key = assembler.declare_parameter(p.SECRETS_MANAGER_KEY)
        enable_default_fallback_image = assembler.declare_parameter(p.ENABLE_DEFAULT_FALLBACK_IMAGE)
        fallback_image_s3_bucket = assembler.declare_parameter(p.FALLBACK_IMAGE_S3_BUCKET)
        fallback_image_s3_key = assembler.declare_parameter(p.FALLBACK_IMAGE_S3_KEY)
        assembler.check_supplied_values()

        # CFN description, format version and console layout
        self.template_options.description = (
            f'({SOLUTION_ID}) - Serverless Image Handler with aws-solutions-constructs: This template '
            'deploys and configures a serverless architecture that is optimized for dynamic image '
            'manipulation and delivery at low latency and cost. Leverages SharpJS for image processing. '
            f'Template version {self.config.version}'
        )
        self.template_options.template_format_version = TEMPLATE_FORMAT_VERSION
        self.parameter_groups = [
            assembler.build_group_if(china, 'API Configuration', [api_domain, api_certificate_iam_id]),
            assembler.build_group('CORS Options', [cors_enabled, cors_origin]),
            assembler.build_group('Image Sources', [source_buckets]),
            assembler.build_group('Demo UI', [deploy_demo_ui, demo_ui_domain, demo_ui_certificate_iam_id]),
            assembler.build_group('Event Logging', [log_retention_period]),
            assembler.build_group(p.SIGNATURE_GROUP_LABEL,
                                  [enable_signature, secrets_manager, secrets_manager_key]),
            assembler.build_group(p.FALLBACK_GROUP_LABEL,
                                  [enable_default_fallback_image, fallback_image_s3_bucket,
                                   fallback_image_s3_key]),
            assembler.build_group('Auto WebP', [auto_webp]),
        ]
        self.template_options.metadata = assembler.interface_metadata(self.parameter_groups)

        # Mappings
        CfnMapping(self, 'Send', mapping={'AnonymousUsage': {'Data': 'Yes'}})

        # Serverless Image Handler construct
        self.image_handler = assembler.instantiate_image_handler(ServerlessImageHandlerProps(
            # Api
            api_domain=api_domain,
            api_certificate_iam_id=api_certificate_iam_id,
            deploy_demo_ui_parameter=deploy_demo_ui,
            # Demo ui
            demo_ui_domain=demo_ui_domain,
            demo_ui_certificate_iam_id=demo_ui_certificate_iam_id,
            # Cors
            cors_enabled_parameter=cors_enabled,
            cors_origin_parameter=cors_origin,
            source_buckets_parameter=source_buckets,
            log_retention_period_parameter=log_retention_period,
            auto_webp_parameter=auto_webp,
            enable_signature_parameter=enable_signature,
            secrets_manager_parameter=secrets_manager,
            secrets_manager_key_parameter=secrets_manager_key,
            enable_default_fallback_image_parameter=enable_default_fallback_image,
            fallback_image_s3_bucket_parameter=fallback_image_s3_bucket,
            fallback_image_s3_key_parameter=fallback_image_s3_key,
            source_code_bucket=self.config.source_code_bucket,
            source_code_key_prefix=self.config.source_code_key_prefix,
        ))

        # Outputs
        assembler.declare_output(
            'ApiEndpoint',
            description='Link to API endpoint for sending image requests to.',
            value=self._endpoint(API_CERTIFICATE_CONDITION, p.API_DOMAIN.identifier, API_DISTRIBUTION_ID),
        )
        assembler.declare_output_if(
            china, 'ApiEndpointCNAME',
            description='CloudFront CNAME for API Endpoint. Configure your DNS resolver and point domain to this address',
            value=Fn.sub('${%s.DomainName}' % API_DISTRIBUTION_ID),
        )
        assembler.declare_output(
            'DemoUrl',
            description='Link to the demo user interface for the solution.',
            value=self._endpoint(DEMO_UI_CERTIFICATE_CONDITION, p.DEMO_UI_DOMAIN.identifier,
                                 DEMO_DISTRIBUTION_ID, path='/index.html'),
            condition=DEPLOY_DEMO_UI_CONDITION,
        )
        assembler.declare_output_if(
            china, 'DemoUrlCNAME',
            description='CloudFront CNAME for DemoUI. Configure your DNS resolver and point domain to this address',
            value=Fn.sub('${%s.DomainName}' % DEMO_DISTRIBUTION_ID),
        )
        assembler.declare_output(
            'SourceBuckets',
            description='Amazon S3 bucket location containing original image files.',
            value=source_buckets.value_as_string,
        )
        assembler.declare_output(
            'CorsEnabled',
            description='Indicates whether Cross-Origin Resource Sharing (CORS) has been enabled for the image handler API.',
            value=cors_enabled.value_as_string,
        )
        assembler.declare_output(
            'CorsOrigin',
            description='Origin value returned in the Access-Control-Allow-Origin header of image handler API responses.',
            value=cors_origin.value_as_string,
            condition=ENABLE_CORS_CONDITION,
        )
        assembler.declare_output(
            'LogRetentionPeriod',
            description='Number of days for event logs from Lambda to be retained in CloudWatch.',
            value=Fn.ref(p.LOG_RETENTION_PERIOD.identifier),
        )

        for line in assembler.summary():
            logger.info('%s: %s', construct_id, line)

    def _endpoint(self, certificate_condition: str, domain_parameter: str,
                  distribution_id: str, path: str = '') -> str:
        '''
        URL of a distribution. With a custom domain (China regions) the scheme
        depends on whether a certificate was given, otherwise it is the
        CloudFront domain over HTTPS.
        '''
        if self.assembler.has_condition(certificate_condition):
            return Fn.condition_if(
                certificate_condition,
                Fn.sub(f'https://${{{domain_parameter}}}{path}'),
                Fn.sub(f'http://${{{domain_parameter}}}{path}'),
            ).to_string()
        return Fn.sub(f'https://${{{distribution_id}.DomainName}}{path}')
