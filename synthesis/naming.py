import re
import unicodedata
from typing import Union

from config.environments import Environment
from config.regions import Region

APP_NAME = "passwordless-tools"


def slugify(value: str) -> str:
    normalized = unicodedata.normalize("NFKD", str(value))
    stripped = "".join(c for c in normalized if not unicodedata.combining(c))
    slug = re.sub(r"[^a-z0-9 -]", "", stripped.strip().lower())
    slug = re.sub(r"\s+", "-", slug)
    return re.sub(r"-+", "-", slug)


def domain_slug(domain: str) -> str:
    return slugify(domain.replace(".", "-"))


def edge_stack_name(environment: Union[Environment, str]) -> str:
    env = Environment.parse(environment)
    return f"{env.value}-edge-certificates"


def application_stack_name(region: Union[Region, str], environment: Union[Environment, str]) -> str:
    reg = Region.parse(region)
    env = Environment.parse(environment)
    return f"{reg.value}-{env.value}-stack"
