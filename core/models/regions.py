"""Supported deployment regions for image replication."""

from typing import FrozenSet, List

SUPPORTED_REGIONS: FrozenSet[str] = frozenset(
    {
        "ap-northeast-1",
        "ap-southeast-1",
        "ap-southeast-2",
        "eu-central-1",
        "eu-west-1",
        "sa-east-1",
        "us-east-1",
        "us-west-1",
        "us-west-2",
    }
)


def all_regions_except(region: str) -> List[str]:
    """Return every supported region other than ``region``, sorted."""
    return sorted(SUPPORTED_REGIONS - {region})


def is_supported_region(region: str) -> bool:
    return region in SUPPORTED_REGIONS
