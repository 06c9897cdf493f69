from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Union

from config.errors import ConfigurationError

# CloudFront only accepts ACM certificates issued in this region
EDGE_REGION = "us-east-1"


class Region(str, Enum):
    EU = "eu"
    US = "us"

    @classmethod
    def parse(cls, value: Union["Region", str]) -> "Region":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            choices = ", ".join(r.value for r in cls)
            raise ConfigurationError(
                f"Unknown region '{value}'. Choose from: {choices}"
            ) from None


@dataclass(frozen=True)
class RegionConfig:
    region: Region
    aws_region: str
    max_azs: int = 3


REGIONS: Mapping[Region, RegionConfig] = MappingProxyType(
    {
        Region.EU: RegionConfig(region=Region.EU, aws_region="eu-west-1"),
        Region.US: RegionConfig(region=Region.US, aws_region="us-east-2"),
    }
)


def resolve_region(
    region: Union[Region, str],
    table: Mapping[Region, RegionConfig] = REGIONS,
) -> RegionConfig:
    reg = Region.parse(region)
    if reg not in table:
        raise ConfigurationError(f"No configuration registered for region '{reg.value}'")
    return table[reg]
