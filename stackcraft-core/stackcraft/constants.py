import stackcraft

# stackcraft version
VERSION = stackcraft.__version__

# default AWS region, used if neither AWS_REGION nor AWS_DEFAULT_REGION is set
DEFAULT_REGION = "us-east-1"

# CloudFormation template format version (the only one that exists)
TEMPLATE_FORMAT_VERSION = "2010-09-09"

# API version of the CloudFormation query protocol
CLOUDFORMATION_API_VERSION = "2010-05-15"

# content types
APPLICATION_AMZ_JSON_1_0 = "application/x-amz-json-1.0"
APPLICATION_AMZ_JSON_1_1 = "application/x-amz-json-1.1"
APPLICATION_JSON = "application/json"
APPLICATION_XML = "application/xml"
APPLICATION_X_WWW_FORM_URLENCODED = "application/x-www-form-urlencoded"

# SigV4 constants
SIGV4_ALGORITHM = "AWS4-HMAC-SHA256"
SIGV4_TERMINATOR = "aws4_request"
SIGV4_KEY_PREFIX = "AWS4"
SIGV4_TIMESTAMP_FORMAT = "%Y%m%dT%H%M%SZ"
SIGV4_DATE_FORMAT = "%Y%m%d"
UNSIGNED_PAYLOAD = "UNSIGNED-PAYLOAD"
# maximum expiry of a presigned URL (7 days)
PRESIGNED_URL_MAX_EXPIRES = 604800

# HTTP headers used by the signing protocol
HEADER_AUTHORIZATION = "Authorization"
HEADER_AMZ_DATE = "X-Amz-Date"
HEADER_AMZ_SECURITY_TOKEN = "X-Amz-Security-Token"
HEADER_AMZ_CONTENT_SHA256 = "X-Amz-Content-Sha256"
HEADER_AMZ_TARGET = "X-Amz-Target"
HEADER_CONTENT_TYPE = "Content-Type"

# resource type namespaces accepted in templates
RESOURCE_TYPE_PREFIXES = ("AWS::", "Custom::", "Alexa::")

# pseudo parameters, which can be referenced with Ref but are not resources
PSEUDO_PARAMETERS = (
    "AWS::AccountId",
    "AWS::NotificationARNs",
    "AWS::NoValue",
    "AWS::Partition",
    "AWS::Region",
    "AWS::StackId",
    "AWS::StackName",
    "AWS::URLSuffix",
)

# service quotas of a single template
MAX_RESOURCES_PER_TEMPLATE = 500
MAX_PARAMETERS_PER_TEMPLATE = 200

TRUE_STRINGS = ("1", "true", "True")
FALSE_STRINGS = ("0", "false", "False")

# log levels accepted by the STACKCRAFT_LOG environment variable
LOG_LEVELS = ("trace", "debug", "info", "warn", "error", "warning")
SC_LOG_TRACE = "trace"
TRACE_LOG_LEVELS = [SC_LOG_TRACE]
