from __future__ import annotations

from typing import TYPE_CHECKING

from stackcraft.cloudformation import intrinsics as fn

if TYPE_CHECKING:
    from stackcraft.cloudformation.builder import OutputsBuilder, TemplateBuilder

# 14 days, the maximum retention of SQS
DLQ_MESSAGE_RETENTION_PERIOD = 1209600
DEFAULT_MESSAGE_RETENTION_PERIOD = 345600
DEFAULT_VISIBILITY_TIMEOUT = 30
DEFAULT_MAX_RECEIVE_COUNT = 3


def add_queue_resources(builder: TemplateBuilder, queues: dict, outputs: OutputsBuilder) -> None:
    """
    Adds one SQS queue (plus its queue policy) per entry of the ``queues`` feature. Supported options: ``fifo``,
    ``visibilityTimeout``, ``messageRetentionPeriod``, ``receiveMessageWaitTime``, ``deadLetterQueue``,
    ``maxReceiveCount`` and ``contentBasedDeduplication``.
    """
    for queue_name, queue_config in queues.items():
        add_queue(builder, queue_name, queue_config or {}, outputs)


def _queue_name(name: str, fifo: bool) -> dict:
    return fn.sub(f"${{AWS::StackName}}-{name}" + (".fifo" if fifo else ""))


def add_queue(builder: TemplateBuilder, name: str, queue_config: dict, outputs: OutputsBuilder) -> str:
    logical_id = builder.to_logical_id(f"{name}-queue")
    fifo = bool(queue_config.get("fifo"))
    dlq_logical_id = f"{logical_id}DLQ"
    with_dlq = bool(queue_config.get("deadLetterQueue"))

    if with_dlq:
        builder.add_resource(
            dlq_logical_id,
            "AWS::SQS::Queue",
            {
                "QueueName": _queue_name(f"{name}-dlq", fifo),
                "FifoQueue": fifo,
                "MessageRetentionPeriod": DLQ_MESSAGE_RETENTION_PERIOD,
                "Tags": [{"Key": "Name", "Value": fn.sub(f"${{AWS::StackName}}-{name}-dlq")}],
            },
        )

    properties = {
        "QueueName": _queue_name(name, fifo),
        "FifoQueue": fifo,
        "VisibilityTimeout": queue_config.get("visibilityTimeout") or DEFAULT_VISIBILITY_TIMEOUT,
        "MessageRetentionPeriod": queue_config.get("messageRetentionPeriod") or DEFAULT_MESSAGE_RETENTION_PERIOD,
        "ReceiveMessageWaitTimeSeconds": queue_config.get("receiveMessageWaitTime") or 0,
        "Tags": [{"Key": "Name", "Value": fn.sub(f"${{AWS::StackName}}-{name}")}],
    }
    if fifo and queue_config.get("contentBasedDeduplication"):
        properties["ContentBasedDeduplication"] = True
    if with_dlq:
        properties["RedrivePolicy"] = {
            "deadLetterTargetArn": fn.get_att(dlq_logical_id, "Arn"),
            "maxReceiveCount": queue_config.get("maxReceiveCount") or DEFAULT_MAX_RECEIVE_COUNT,
        }

    builder.add_resource(
        logical_id,
        "AWS::SQS::Queue",
        properties,
        depends_on=[dlq_logical_id] if with_dlq else None,
    )

    # allow the usual event sources of the account to send messages
    builder.add_resource(
        f"{logical_id}Policy",
        "AWS::SQS::QueuePolicy",
        {
            "Queues": [fn.ref(logical_id)],
            "PolicyDocument": {
                "Version": "2012-10-17",
                "Statement": [
                    {
                        "Effect": "Allow",
                        "Principal": {
                            "Service": ["lambda.amazonaws.com", "events.amazonaws.com", "sns.amazonaws.com"]
                        },
                        "Action": "sqs:SendMessage",
                        "Resource": fn.get_att(logical_id, "Arn"),
                        "Condition": {
                            "ArnEquals": {
                                "aws:SourceArn": fn.sub("arn:aws:*:${AWS::Region}:${AWS::AccountId}:*")
                            }
                        },
                    }
                ],
            },
        },
        depends_on=[logical_id],
    )

    outputs.add(
        f"{logical_id}Url",
        fn.ref(logical_id),
        description=f"{name} queue URL",
        export_name=fn.sub(f"${{AWS::StackName}}-{name}-queue-url"),
    )
    outputs.add(
        f"{logical_id}Arn",
        fn.get_att(logical_id, "Arn"),
        description=f"{name} queue ARN",
        export_name=fn.sub(f"${{AWS::StackName}}-{name}-queue-arn"),
    )
    if with_dlq:
        outputs.add(
            f"{logical_id}DLQUrl",
            fn.ref(dlq_logical_id),
            description=f"{name} dead letter queue URL",
            export_name=fn.sub(f"${{AWS::StackName}}-{name}-dlq-url"),
        )
    return logical_id
