import re
from typing import Optional

ECR_REGISTRY_RE = re.compile(
    r"^(?:https://)?[a-zA-Z0-9]+\.dkr\.ecr\.(?P<region>[^.]+)\.amazonaws\.com/?"
)

ECR_USERNAME = "AWS"


def is_ecr_registry(registry_address: str) -> bool:
    """Check whether a registry address points to AWS Elastic Container Registry."""
    return ECR_REGISTRY_RE.match(registry_address) is not None


def ecr_region(registry_address: str) -> Optional[str]:
    """Get the AWS region of an ECR registry address, or None for other registries."""
    match = ECR_REGISTRY_RE.match(registry_address)
    return match.group("region") if match else None
