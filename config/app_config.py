from dataclasses import dataclass, field, fields
from typing import Any, Dict, FrozenSet, Mapping

from config.errors import ConfigurationError


def _env(name: str):
    return field(metadata={"env": name})


@dataclass(frozen=True)
class DynamicAppConfig:
    """
    Container environment computed at composition time.

    Every variable the deployment derives (account, region, domains, bucket and
    queue references) is a field here, so ownership of those names is fixed in
    code. Values are plain strings or references to attributes of other
    declarations that the deploy engine fills in.
    """

    account_id: Any = _env("AWS_ACCOUNT_ID")
    aws_region: Any = _env("AWS_REGION")
    phx_host: Any = _env("PHX_HOST")
    cdn_host: Any = _env("CDN_HOST")
    customer_media_bucket: Any = _env("CUSTOMER_MEDIA_BUCKET")
    customer_media_cdn_url: Any = _env("CUSTOMER_MEDIA_CDN_URL")
    email_domain: Any = _env("EMAIL_DOMAIN")
    email_events_queue_url: Any = _env("EMAIL_EVENTS_QUEUE_URL")
    tracking_domain: Any = _env("TRACKING_DOMAIN")

    def to_environment(self) -> Dict[str, Any]:
        return {f.metadata["env"]: getattr(self, f.name) for f in fields(self)}


DYNAMIC_KEYS: FrozenSet[str] = frozenset(f.metadata["env"] for f in fields(DynamicAppConfig))


def check_static_keys(static: Mapping[str, str]) -> None:
    """Reject static config that names a variable owned by DynamicAppConfig"""
    clashes = sorted(DYNAMIC_KEYS.intersection(static))
    if clashes:
        raise ConfigurationError(
            f"Static app config may not set dynamically computed keys: {', '.join(clashes)}"
        )


def merge_app_config(static: Mapping[str, str], dynamic: DynamicAppConfig) -> Dict[str, Any]:
    """
    Merge static environment variables with the dynamic ones.

    Dynamic keys are owned by DynamicAppConfig and cannot appear in the static
    map, so no key is ever shadowed. Static keys come first in sorted order,
    followed by the dynamic keys in field order.
    """
    check_static_keys(static)

    merged: Dict[str, Any] = {key: static[key] for key in sorted(static)}
    merged.update(dynamic.to_environment())
    return merged
