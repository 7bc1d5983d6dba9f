'''
parameters
----------

Declarative catalogue of the CloudFormation parameters exposed by the
Serverless Image Handler template, and the checks applied to their values
before anything is synthesized.
'''
# load modules
# ------------
import re
from dataclasses import dataclass
from typing import Optional, Tuple

from image_handler_infra.errors import ParameterValidationError

# Module constants
# ----------------
STRING = 'String'
NUMBER = 'Number'

YES_NO = ('Yes', 'No')
LOG_RETENTION_DAYS = (
    '1', '3', '5', '7', '14', '30', '60', '90', '120', '150', '180',
    '365', '400', '545', '731', '1827', '3653'
)
# an empty string or a DNS name made of letters, digits and inner hyphens
DOMAIN_PATTERN = (
    '^$|(([a-zA-Z0-9]|[a-zA-Z0-9][a-zA-Z0-9\\-]*[a-zA-Z0-9])\\.)*'
    '([A-Za-z0-9]|[A-Za-z0-9][A-Za-z0-9\\-]*[A-Za-z0-9])$'
)


# classes
# -------
@dataclass(frozen=True)
class ParameterSpec:
    '''
    What the CloudFormation console shows and enforces for one parameter.
    `region_only` parameters are declared only for China region templates.
    '''
    identifier: str
    description: str
    type: str = STRING
    default: Optional[str] = None
    allowed_values: Optional[Tuple[str, ...]] = None
    allowed_pattern: Optional[str] = None
    region_only: bool = False

    def cfn_props(self, default: Optional[str]) -> dict:
        '''keyword arguments for `aws_cdk.CfnParameter`'''
        props = {'type': self.type, 'description': self.description}
        if default is not None:
            props['default'] = default
        if self.allowed_values is not None:
            props['allowed_values'] = list(self.allowed_values)
        if self.allowed_pattern is not None:
            props['allowed_pattern'] = self.allowed_pattern
        return props

    def validate(self, value) -> None:
        validate_value(
            self.identifier, value,
            param_type=self.type,
            allowed_values=self.allowed_values,
            allowed_pattern=self.allowed_pattern,
        )


# functions
# ---------
def validate_value(identifier: str, value, param_type: str = STRING,
                   allowed_values=None, allowed_pattern: Optional[str] = None) -> None:
    '''
    Raise ParameterValidationError if `value` breaks one of the constraints.
    CloudFormation matches AllowedPattern against the whole value.
    '''
    if not isinstance(value, str):
        raise ParameterValidationError(identifier, value, 'values must be strings')
    if param_type == NUMBER:
        try:
            float(value)
        except ValueError:
            raise ParameterValidationError(identifier, value, 'not a number')
    if allowed_values is not None and value not in allowed_values:
        raise ParameterValidationError(
            identifier, value, f'must be one of {", ".join(allowed_values)}'
        )
    if allowed_pattern is not None and re.fullmatch(allowed_pattern, value) is None:
        raise ParameterValidationError(
            identifier, value, f'does not match pattern {allowed_pattern}'
        )


# parameter catalogue
# -------------------
API_DOMAIN = ParameterSpec(
    identifier='ApiDomain',
    description='Choose an ICP licensed domain for the Image Handler distribution',
    allowed_pattern=DOMAIN_PATTERN,
    region_only=True,
)
API_CERTIFICATE_IAM_ID = ParameterSpec(
    identifier='ApiCertificateIamId',
    description='[Optional] Do you want enable SSL certificate for the Image Handler distribution? '
                'If yes, please upload SSL certificate to IAM using AWS CLI',
    default='',
    region_only=True,
)
DEPLOY_DEMO_UI = ParameterSpec(
    identifier='DeployDemoUI',
    description='Would you like to deploy a demo UI to explore the features and capabilities of this '
                'solution? This will create an additional Amazon S3 bucket and Amazon CloudFront '
                'distribution in your account.',
    default='Yes',
    allowed_values=YES_NO,
)
DEMO_UI_DOMAIN = ParameterSpec(
    identifier='DemoUIDomain',
    description='Choose an ICP licensed domain for the Image Handler DemoUI',
    default='',
    allowed_pattern=DOMAIN_PATTERN,
    region_only=True,
)
DEMO_UI_CERTIFICATE_IAM_ID = ParameterSpec(
    identifier='DemoUICertificateIamId',
    description='[Optional] Do you want enable SSL certificate for the DemoUI? If yes, please upload '
                'SSL certificate to IAM using AWS CLI',
    default='',
    region_only=True,
)
CORS_ENABLED = ParameterSpec(
    identifier='CorsEnabled',
    description="Would you like to enable Cross-Origin Resource Sharing (CORS) for the image handler "
                "API? Select 'Yes' if so.",
    default='No',
    allowed_values=YES_NO,
)
CORS_ORIGIN = ParameterSpec(
    identifier='CorsOrigin',
    description="If you selected 'Yes' above, please specify an origin value here. A wildcard (*) "
                "value will support any origin. We recommend specifying an origin (i.e. "
                "https://example.domain) to restrict cross-site access to your API.",
    default='*',
)
SOURCE_BUCKETS = ParameterSpec(
    identifier='SourceBuckets',
    description='(Required) List the buckets (comma-separated) within your account that contain '
                'original image files. If you plan to use Thumbor or Custom image requests with this '
                'solution, the source bucket for those requests will be the first bucket listed in '
                'this field.',
    default='defaultBucket, bucketNo2, bucketNo3, ...',
    allowed_pattern='.+',
)
LOG_RETENTION_PERIOD = ParameterSpec(
    identifier='LogRetentionPeriod',
    description='This solution automatically logs events to Amazon CloudWatch. Select the amount of '
                'time for CloudWatch logs from this solution to be retained (in days).',
    type=NUMBER,
    default='1',
    allowed_values=LOG_RETENTION_DAYS,
)
AUTO_WEBP = ParameterSpec(
    identifier='AutoWebP',
    description="Would you like to enable automatic WebP based on accept headers? Select 'Yes' if so.",
    default='No',
    allowed_values=YES_NO,
)
ENABLE_SIGNATURE = ParameterSpec(
    identifier='EnableSignature',
    description="Would you like to enable the signature? If so, select 'Yes' and provide "
                "SecretsManagerSecret and SecretsManagerKey values.",
    default='No',
    allowed_values=YES_NO,
)
SECRETS_MANAGER_SECRET = ParameterSpec(
    identifier='SecretsManagerSecret',
    description='The name of AWS Secrets Manager secret. You need to create your secret under this name.',
    default='',
)
SECRETS_MANAGER_KEY = ParameterSpec(
    identifier='SecretsManagerKey',
    description='The name of AWS Secrets Manager secret key. You need to create secret key with this '
                'key name. The secret value would be used to check signature.',
    default='',
)
ENABLE_DEFAULT_FALLBACK_IMAGE = ParameterSpec(
    identifier='EnableDefaultFallbackImage',
    description="Would you like to enable the default fallback image? If so, select 'Yes' and provide "
                "FallbackImageS3Bucket and FallbackImageS3Key values.",
    default='No',
    allowed_values=YES_NO,
)
FALLBACK_IMAGE_S3_BUCKET = ParameterSpec(
    identifier='FallbackImageS3Bucket',
    description='The name of the Amazon S3 bucket which contains the default fallback image. '
                'e.g. my-fallback-image-bucket',
    default='',
)
FALLBACK_IMAGE_S3_KEY = ParameterSpec(
    identifier='FallbackImageS3Key',
    description='The name of the default fallback image object key including prefix. e.g. prefix/image.jpg',
    default='',
)

# declaration order, which is also the order of the template Parameters section
CATALOGUE = (
    API_DOMAIN,
    API_CERTIFICATE_IAM_ID,
    DEPLOY_DEMO_UI,
    DEMO_UI_DOMAIN,
    DEMO_UI_CERTIFICATE_IAM_ID,
    CORS_ENABLED,
    CORS_ORIGIN,
    SOURCE_BUCKETS,
    LOG_RETENTION_PERIOD,
    AUTO_WEBP,
    ENABLE_SIGNATURE,
    SECRETS_MANAGER_SECRET,
    SECRETS_MANAGER_KEY,
    ENABLE_DEFAULT_FALLBACK_IMAGE,
    FALLBACK_IMAGE_S3_BUCKET,
    FALLBACK_IMAGE_S3_KEY,
)

SIGNATURE_GROUP_LABEL = (
    'Image URL Signature (Note: Enabling signature is not compatible with previous image URLs, '
    'which could result in broken image links. Please refer to the implementation guide for '
    'details: https://docs.aws.amazon.com/solutions/latest/serverless-image-handler/considerations.html)'
)
FALLBACK_GROUP_LABEL = (
    'Default Fallback Image (Note: Enabling default fallback image returns the default fallback '
    'image instead of JSON object when error happens. Please refer to the implementation guide for '
    'details: https://docs.aws.amazon.com/solutions/latest/serverless-image-handler/considerations.html)'
)


# handles
# -------
@dataclass(frozen=True, eq=False)
class ParameterHandle:
    '''
    A parameter declared in one synthesis pass. `value` is the value the
    template carries as default (operator value or catalogue default).
    Handles compare by identity: a handle belongs to the pass that made it.
    '''
    spec: ParameterSpec
    value: Optional[str]
    cfn_parameter: object

    @property
    def identifier(self) -> str:
        return self.spec.identifier

    @property
    def logical_id(self) -> str:
        # top level parameters keep their construct id as logical id
        return self.spec.identifier

    @property
    def value_as_string(self) -> str:
        return self.cfn_parameter.value_as_string

    @property
    def value_as_number(self):
        return self.cfn_parameter.value_as_number
