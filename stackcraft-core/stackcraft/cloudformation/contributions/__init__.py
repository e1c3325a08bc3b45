from stackcraft.cloudformation.contributions.queue import add_queue_resources
from stackcraft.cloudformation.contributions.storage import add_storage_resources

# infrastructure feature name -> contribution step, in the order the steps run
DEFAULT_CONTRIBUTIONS = {
    "storage": add_storage_resources,
    "queues": add_queue_resources,
}

__all__ = ["DEFAULT_CONTRIBUTIONS", "add_queue_resources", "add_storage_resources"]
