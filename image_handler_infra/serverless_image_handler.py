# load modules
# ------------
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from constructs import Construct
from aws_cdk import (
    Aws,
    CfnCondition,
    Duration,
    Fn,
    RemovalPolicy,
    Token,
    aws_apigateway,
    aws_cloudfront,
    aws_iam,
    aws_lambda,
    aws_logs,
    aws_s3,
)

from image_handler_infra.parameters import ParameterHandle

logger = logging.getLogger(__name__)

# Module constants
# ----------------
# logical IDs the stack outputs reference through Fn::Sub
API_DISTRIBUTION_ID = 'ImageHandlerDistribution'
DEMO_DISTRIBUTION_ID = 'DemoDistribution'

API_CERTIFICATE_CONDITION = 'ApiCertificateCondition'
DEMO_UI_CERTIFICATE_CONDITION = 'DemoUICertificateCondition'
API_DOMAIN_CONDITION = 'ApiDomainCondition'
DEMO_UI_DOMAIN_CONDITION = 'DemoUIDomainCondition'
DEPLOY_DEMO_UI_CONDITION = 'DeployDemoUICondition'
ENABLE_CORS_CONDITION = 'EnableCorsCondition'
ENABLE_SIGNATURE_CONDITION = 'EnableSignatureCondition'
ENABLE_DEFAULT_FALLBACK_IMAGE_CONDITION = 'EnableDefaultFallbackImageCondition'


# classes
# -------
@dataclass
class ServerlessImageHandlerProps:
    '''
    Parameter handles consumed by the construct. The domain and certificate
    handles only exist in China region templates and are None elsewhere.
    '''
    deploy_demo_ui_parameter: ParameterHandle
    cors_enabled_parameter: ParameterHandle
    cors_origin_parameter: ParameterHandle
    source_buckets_parameter: ParameterHandle
    log_retention_period_parameter: ParameterHandle
    auto_webp_parameter: ParameterHandle
    enable_signature_parameter: ParameterHandle
    secrets_manager_parameter: ParameterHandle
    secrets_manager_key_parameter: ParameterHandle
    enable_default_fallback_image_parameter: ParameterHandle
    fallback_image_s3_bucket_parameter: ParameterHandle
    fallback_image_s3_key_parameter: ParameterHandle
    api_domain: Optional[ParameterHandle] = None
    api_certificate_iam_id: Optional[ParameterHandle] = None
    demo_ui_domain: Optional[ParameterHandle] = None
    demo_ui_certificate_iam_id: Optional[ParameterHandle] = None
    source_code_bucket: str = 'solutions'
    source_code_key_prefix: str = 'serverless-image-handler/v0.0.0'

    def handles(self) -> Dict[str, Optional[ParameterHandle]]:
        return {
            name: value for name, value in vars(self).items()
            if not name.startswith('source_code_')
        }


class ServerlessImageHandler(Construct):
    '''
    Image handler function behind a regional API and a CloudFront
    distribution, plus the optional demo UI.

    Everything optional is switched by parameter values at deploy time
    through the conditions in `self.conditions`, keyed by their logical IDs.
    '''

    def __init__(self, scope: Construct, construct_id: str,
                 props: ServerlessImageHandlerProps) -> None:
        super().__init__(scope, construct_id)

        self.props = props
        self.conditions: Dict[str, CfnCondition] = {}

        # deploy time switches
        self._condition(ENABLE_CORS_CONDITION,
                        Fn.condition_equals(props.cors_enabled_parameter.value_as_string, 'Yes'))
        deploy_demo_ui = self._condition(
            DEPLOY_DEMO_UI_CONDITION,
            Fn.condition_equals(props.deploy_demo_ui_parameter.value_as_string, 'Yes'))
        self._condition(ENABLE_SIGNATURE_CONDITION,
                        Fn.condition_equals(props.enable_signature_parameter.value_as_string, 'Yes'))
        self._condition(ENABLE_DEFAULT_FALLBACK_IMAGE_CONDITION,
                        Fn.condition_equals(
                            props.enable_default_fallback_image_parameter.value_as_string, 'Yes'))
        # custom domains (China regions): a certificate is optional
        if props.api_domain is not None:
            self._not_empty_condition(API_DOMAIN_CONDITION, props.api_domain)
        if props.api_certificate_iam_id is not None:
            self._not_empty_condition(API_CERTIFICATE_CONDITION, props.api_certificate_iam_id)
        if props.demo_ui_domain is not None:
            self._not_empty_condition(DEMO_UI_DOMAIN_CONDITION, props.demo_ui_domain)
        if props.demo_ui_certificate_iam_id is not None:
            self._not_empty_condition(DEMO_UI_CERTIFICATE_CONDITION, props.demo_ui_certificate_iam_id)

        # bucket for the CloudFront access logs of both distributions
        self.logs_bucket = aws_s3.Bucket(
            self,
            id='CloudFrontLoggingBucket',
            encryption=aws_s3.BucketEncryption.S3_MANAGED,
            block_public_access=aws_s3.BlockPublicAccess.BLOCK_ALL,
            object_ownership=aws_s3.ObjectOwnership.OBJECT_WRITER,
            enforce_ssl=True,
            removal_policy=RemovalPolicy.RETAIN,  #access logs outlive the stack
        )

        self.image_handler_function = self._create_image_handler_function()
        self.image_handler_log_group = aws_logs.CfnLogGroup(
            self,
            id='ImageHandlerLogGroup',
            log_group_name=f'/aws/lambda/{self.image_handler_function.function_name}',
            retention_in_days=props.log_retention_period_parameter.value_as_number,
        )

        # the API only answers GET requests for images, any content type
        self.image_handler_api = aws_apigateway.LambdaRestApi(
            self,
            id='ImageHandlerApi',
            handler=self.image_handler_function,
            binary_media_types=['*/*'],
            endpoint_configuration=aws_apigateway.EndpointConfiguration(
                types=[aws_apigateway.EndpointType.REGIONAL]
            ),
            deploy_options=aws_apigateway.StageOptions(stage_name='image'),
            cloud_watch_role=False,
        )
        # the stack publishes its own endpoint outputs
        self.image_handler_api.node.try_remove_child('Endpoint')

        self.image_handler_distribution = aws_cloudfront.CfnDistribution(
            self,
            id=API_DISTRIBUTION_ID,
            distribution_config=aws_cloudfront.CfnDistribution.DistributionConfigProperty(
                enabled=True,
                comment='Image handler distribution for Serverless Image Handler',
                http_version='http2',
                price_class='PriceClass_All',
                aliases=self._aliases(API_DOMAIN_CONDITION, props.api_domain),
                viewer_certificate=self._viewer_certificate(
                    API_CERTIFICATE_CONDITION, props.api_certificate_iam_id),
                origins=[aws_cloudfront.CfnDistribution.OriginProperty(
                    id='ApiGatewayOrigin',
                    domain_name=f'{self.image_handler_api.rest_api_id}.execute-api.{Aws.REGION}.{Aws.URL_SUFFIX}',
                    origin_path='/image',
                    custom_origin_config=aws_cloudfront.CfnDistribution.CustomOriginConfigProperty(
                        origin_protocol_policy='https-only',
                        https_port=443,
                        origin_ssl_protocols=['TLSv1.2'],
                    ),
                )],
                default_cache_behavior=aws_cloudfront.CfnDistribution.DefaultCacheBehaviorProperty(
                    target_origin_id='ApiGatewayOrigin',
                    viewer_protocol_policy=self._viewer_protocol_policy(
                        API_CERTIFICATE_CONDITION, props.api_certificate_iam_id),
                    allowed_methods=['GET', 'HEAD'],
                    forwarded_values=aws_cloudfront.CfnDistribution.ForwardedValuesProperty(
                        query_string=True,
                        headers=['Origin', 'Accept'],
                    ),
                ),
                logging=aws_cloudfront.CfnDistribution.LoggingProperty(
                    bucket=self.logs_bucket.bucket_regional_domain_name,
                    include_cookies=False,
                    prefix='api-cloudfront/',
                ),
            ),
        )
        self.image_handler_distribution.override_logical_id(API_DISTRIBUTION_ID)

        self._create_demo_ui(deploy_demo_ui)
        logger.debug('image handler conditions: %s', ', '.join(sorted(self.conditions)))

    def _condition(self, name: str, expression) -> CfnCondition:
        '''Create a condition whose logical ID is its bare name'''
        condition = CfnCondition(self, name, expression=expression)
        condition.override_logical_id(name)
        self.conditions[name] = condition
        return condition

    def _not_empty_condition(self, name: str, handle: ParameterHandle) -> CfnCondition:
        return self._condition(
            name, Fn.condition_not(Fn.condition_equals(handle.value_as_string, '')))

    def _if(self, name: str, value_if_true, value_if_false):
        return Fn.condition_if(name, value_if_true, value_if_false)

    def _aliases(self, condition_name: str, domain: Optional[ParameterHandle]):
        if domain is None:
            return None
        return Token.as_list(self._if(condition_name, [domain.value_as_string], Aws.NO_VALUE))

    def _viewer_certificate(self, condition_name: str, certificate: Optional[ParameterHandle]):
        # IAM server certificates, ACM is not available in China regions
        if certificate is None:
            return None
        return self._if(
            condition_name,
            {
                'IamCertificateId': certificate.value_as_string,
                'SslSupportMethod': 'sni-only',
                'MinimumProtocolVersion': 'TLSv1.2_2021',
            },
            {'CloudFrontDefaultCertificate': True},
        )

    def _viewer_protocol_policy(self, condition_name: str, certificate: Optional[ParameterHandle]) -> str:
        if certificate is None:
            return 'redirect-to-https'
        return self._if(condition_name, 'redirect-to-https', 'allow-all').to_string()

    def _create_image_handler_function(self) -> aws_lambda.Function:
        props = self.props
        role = aws_iam.Role(
            self,
            id='ImageHandlerFunctionRole',
            assumed_by=aws_iam.ServicePrincipal('lambda.amazonaws.com'),
            path='/',
        )
        role.attach_inline_policy(aws_iam.Policy(self, 'ImageHandlerPolicy',
            statements=[
                aws_iam.PolicyStatement(
                    actions=['logs:CreateLogStream', 'logs:CreateLogGroup', 'logs:PutLogEvents'],
                    resources=[f'arn:{Aws.PARTITION}:logs:{Aws.REGION}:{Aws.ACCOUNT_ID}:log-group:/aws/lambda/*'],
                ),
                # source buckets are a free comma separated list
                aws_iam.PolicyStatement(
                    actions=['s3:GetObject'],
                    resources=[f'arn:{Aws.PARTITION}:s3:::*'],
                ),
                aws_iam.PolicyStatement(
                    actions=['rekognition:DetectFaces', 'rekognition:DetectModerationLabels'],
                    resources=['*'],
                ),
            ]
        ))
        # signature secret can only be read when signatures are enabled
        secret_policy = aws_iam.CfnPolicy(
            self,
            id='ImageHandlerSecretPolicy',
            policy_name='ImageHandlerSecretPolicy',
            roles=[role.role_name],
            policy_document={
                'Version': '2012-10-17',
                'Statement': [{
                    'Effect': 'Allow',
                    'Action': ['secretsmanager:GetSecretValue'],
                    'Resource': f'arn:{Aws.PARTITION}:secretsmanager:{Aws.REGION}:{Aws.ACCOUNT_ID}'
                                f':secret:{props.secrets_manager_parameter.value_as_string}*',
                }],
            },
        )
        secret_policy.cfn_options.condition = self.conditions[ENABLE_SIGNATURE_CONDITION]

        source_code_bucket = aws_s3.Bucket.from_bucket_name(
            self, 'SourceCodeBucket', f'{props.source_code_bucket}-{Aws.REGION}'
        )
        lambda_timeout_sec = 30
        return aws_lambda.Function(
            self,
            id='ImageHandlerFunction',
            description='Serverless Image Handler - Function for performing image edits and manipulations.',
            runtime=aws_lambda.Runtime.NODEJS_22_X,
            handler='image-handler/index.handler',
            code=aws_lambda.Code.from_bucket(
                source_code_bucket, f'{props.source_code_key_prefix}/image-handler.zip'
            ),
            role=role,
            timeout=Duration.seconds(lambda_timeout_sec),
            memory_size=1024,
            environment={
                'AUTO_WEBP': props.auto_webp_parameter.value_as_string,
                'CORS_ENABLED': props.cors_enabled_parameter.value_as_string,
                'CORS_ORIGIN': props.cors_origin_parameter.value_as_string,
                'SOURCE_BUCKETS': props.source_buckets_parameter.value_as_string,
                'REWRITE_MATCH_PATTERN': '',
                'REWRITE_SUBSTITUTION': '',
                'ENABLE_SIGNATURE': props.enable_signature_parameter.value_as_string,
                'SECRETS_MANAGER': self._if(
                    ENABLE_SIGNATURE_CONDITION,
                    props.secrets_manager_parameter.value_as_string, '').to_string(),
                'SECRET_KEY': self._if(
                    ENABLE_SIGNATURE_CONDITION,
                    props.secrets_manager_key_parameter.value_as_string, '').to_string(),
                'ENABLE_DEFAULT_FALLBACK_IMAGE': props.enable_default_fallback_image_parameter.value_as_string,
                'DEFAULT_FALLBACK_IMAGE_BUCKET': self._if(
                    ENABLE_DEFAULT_FALLBACK_IMAGE_CONDITION,
                    props.fallback_image_s3_bucket_parameter.value_as_string, '').to_string(),
                'DEFAULT_FALLBACK_IMAGE_KEY': self._if(
                    ENABLE_DEFAULT_FALLBACK_IMAGE_CONDITION,
                    props.fallback_image_s3_key_parameter.value_as_string, '').to_string(),
            },
        )

    def _create_demo_ui(self, deploy_demo_ui: CfnCondition) -> None:
        '''
        Private bucket for the demo UI static files, read by CloudFront
        through an origin access identity. Nothing here exists unless the
        operator chose to deploy the demo UI.
        '''
        props = self.props
        self.demo_bucket = aws_s3.CfnBucket(
            self,
            id='DemoBucket',
            bucket_encryption=aws_s3.CfnBucket.BucketEncryptionProperty(
                server_side_encryption_configuration=[aws_s3.CfnBucket.ServerSideEncryptionRuleProperty(
                    server_side_encryption_by_default=aws_s3.CfnBucket.ServerSideEncryptionByDefaultProperty(
                        sse_algorithm='AES256'
                    )
                )]
            ),
            public_access_block_configuration=aws_s3.CfnBucket.PublicAccessBlockConfigurationProperty(
                block_public_acls=True,
                block_public_policy=True,
                ignore_public_acls=True,
                restrict_public_buckets=True,
            ),
        )
        self.demo_origin_access_identity = aws_cloudfront.CfnCloudFrontOriginAccessIdentity(
            self,
            id='DemoOriginAccessIdentity',
            cloud_front_origin_access_identity_config=aws_cloudfront.CfnCloudFrontOriginAccessIdentity
                .CloudFrontOriginAccessIdentityConfigProperty(
                    comment='Origin access identity for the Serverless Image Handler demo UI'
                ),
        )
        demo_bucket_policy = aws_s3.CfnBucketPolicy(
            self,
            id='DemoBucketPolicy',
            bucket=self.demo_bucket.ref,
            policy_document={
                'Version': '2012-10-17',
                'Statement': [{
                    'Effect': 'Allow',
                    'Action': 's3:GetObject',
                    'Principal': {
                        'CanonicalUser': self.demo_origin_access_identity.attr_s3_canonical_user_id
                    },
                    'Resource': f'{self.demo_bucket.attr_arn}/*',
                }],
            },
        )

        self.demo_distribution = aws_cloudfront.CfnDistribution(
            self,
            id=DEMO_DISTRIBUTION_ID,
            distribution_config=aws_cloudfront.CfnDistribution.DistributionConfigProperty(
                enabled=True,
                comment='Website distribution for the Serverless Image Handler demo UI',
                http_version='http2',
                price_class='PriceClass_All',
                default_root_object='index.html',
                aliases=self._aliases(DEMO_UI_DOMAIN_CONDITION, props.demo_ui_domain),
                viewer_certificate=self._viewer_certificate(
                    DEMO_UI_CERTIFICATE_CONDITION, props.demo_ui_certificate_iam_id),
                origins=[aws_cloudfront.CfnDistribution.OriginProperty(
                    id='DemoBucketOrigin',
                    domain_name=self.demo_bucket.attr_regional_domain_name,
                    s3_origin_config=aws_cloudfront.CfnDistribution.S3OriginConfigProperty(
                        origin_access_identity=f'origin-access-identity/cloudfront/{self.demo_origin_access_identity.ref}'
                    ),
                )],
                default_cache_behavior=aws_cloudfront.CfnDistribution.DefaultCacheBehaviorProperty(
                    target_origin_id='DemoBucketOrigin',
                    viewer_protocol_policy=self._viewer_protocol_policy(
                        DEMO_UI_CERTIFICATE_CONDITION, props.demo_ui_certificate_iam_id),
                    allowed_methods=['GET', 'HEAD'],
                    forwarded_values=aws_cloudfront.CfnDistribution.ForwardedValuesProperty(
                        query_string=False
                    ),
                ),
                logging=aws_cloudfront.CfnDistribution.LoggingProperty(
                    bucket=self.logs_bucket.bucket_regional_domain_name,
                    include_cookies=False,
                    prefix='demo-cloudfront/',
                ),
            ),
        )
        self.demo_distribution.override_logical_id(DEMO_DISTRIBUTION_ID)

        for resource in (self.demo_bucket, self.demo_origin_access_identity,
                         demo_bucket_policy, self.demo_distribution):
            resource.cfn_options.condition = deploy_demo_ui
