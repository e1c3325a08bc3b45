from __future__ import annotations

from typing import TYPE_CHECKING

from stackcraft.cloudformation import intrinsics as fn

if TYPE_CHECKING:
    from stackcraft.cloudformation.builder import OutputsBuilder, TemplateBuilder

PUBLIC_ACCESS_BLOCK = {
    "BlockPublicAcls": True,
    "BlockPublicPolicy": True,
    "IgnorePublicAcls": True,
    "RestrictPublicBuckets": True,
}


def add_storage_resources(builder: TemplateBuilder, storage: dict, outputs: OutputsBuilder) -> None:
    """
    Adds one S3 bucket per entry of the ``storage`` feature. Supported bucket options: ``public``, ``versioning``,
    ``encryption``, ``website`` and ``cors`` (a list of ``allowedOrigins`` / ``allowedMethods`` rules).
    """
    for bucket_name, bucket_config in storage.items():
        add_bucket(builder, bucket_name, bucket_config or {}, outputs)


def add_bucket(builder: TemplateBuilder, bucket_name: str, bucket_config: dict, outputs: OutputsBuilder) -> str:
    logical_id = builder.to_logical_id(f"{bucket_name}-bucket")
    name = fn.sub(f"${{AWS::StackName}}-{bucket_name}")
    properties = {
        "BucketName": name,
        "Tags": [{"Key": "Name", "Value": name}],
    }

    if bucket_config.get("versioning"):
        properties["VersioningConfiguration"] = {"Status": "Enabled"}
    if bucket_config.get("encryption"):
        properties["BucketEncryption"] = {
            "ServerSideEncryptionConfiguration": [
                {"ServerSideEncryptionByDefault": {"SSEAlgorithm": "AES256"}}
            ]
        }
    if not bucket_config.get("public"):
        properties["PublicAccessBlockConfiguration"] = dict(PUBLIC_ACCESS_BLOCK)
    if bucket_config.get("website"):
        # single page apps route every unknown path to the index
        properties["WebsiteConfiguration"] = {"IndexDocument": "index.html", "ErrorDocument": "index.html"}
    if bucket_config.get("cors"):
        properties["CorsConfiguration"] = {
            "CorsRules": [
                {
                    "AllowedOrigins": rule["allowedOrigins"],
                    "AllowedMethods": rule["allowedMethods"],
                    "AllowedHeaders": rule.get("allowedHeaders") or ["*"],
                    "MaxAge": rule.get("maxAge") or 3600,
                }
                for rule in bucket_config["cors"]
            ]
        }

    builder.add_resource(
        logical_id,
        "AWS::S3::Bucket",
        properties,
        deletion_policy="Retain" if bucket_config.get("versioning") else "Delete",
    )

    if bucket_config.get("public"):
        builder.add_resource(
            f"{logical_id}Policy",
            "AWS::S3::BucketPolicy",
            {
                "Bucket": fn.ref(logical_id),
                "PolicyDocument": {
                    "Version": "2012-10-17",
                    "Statement": [
                        {
                            "Sid": "PublicReadGetObject",
                            "Effect": "Allow",
                            "Principal": "*",
                            "Action": "s3:GetObject",
                            "Resource": fn.join("", [fn.s3_bucket_arn(fn.ref(logical_id)), "/*"]),
                        }
                    ],
                },
            },
            depends_on=[logical_id],
        )

    outputs.add(
        f"{logical_id}Name",
        fn.ref(logical_id),
        description=f"{bucket_name} bucket name",
        export_name=fn.sub(f"${{AWS::StackName}}-{bucket_name}-bucket"),
    )
    outputs.add(
        f"{logical_id}Arn",
        fn.get_att(logical_id, "Arn"),
        description=f"{bucket_name} bucket ARN",
        export_name=fn.sub(f"${{AWS::StackName}}-{bucket_name}-bucket-arn"),
    )
    if bucket_config.get("website"):
        outputs.add(
            f"{logical_id}WebsiteURL",
            fn.get_att(logical_id, "WebsiteURL"),
            description=f"{bucket_name} website URL",
        )
    return logical_id
