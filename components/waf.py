from aws_cdk import aws_wafv2 as waf
from constructs import Construct
from typing import Dict, List, Sequence

from synthesis.naming import slugify


def _visibility(metric_name: str) -> waf.CfnWebACL.VisibilityConfigProperty:
    return waf.CfnWebACL.VisibilityConfigProperty(
        cloud_watch_metrics_enabled=True,
        metric_name=metric_name,
        sampled_requests_enabled=True,
    )


def _path_prefix_rule(
    name: str, verb: str, prefix: str, priority: int
) -> waf.CfnWebACL.RuleProperty:
    rule_name = f"{name}-waf-{verb}-path-prefix-{slugify(prefix)}"
    action = (
        waf.CfnWebACL.RuleActionProperty(allow={})
        if verb == "allow"
        else waf.CfnWebACL.RuleActionProperty(block={})
    )
    return waf.CfnWebACL.RuleProperty(
        name=rule_name,
        priority=priority,
        statement=waf.CfnWebACL.StatementProperty(
            byte_match_statement=waf.CfnWebACL.ByteMatchStatementProperty(
                field_to_match=waf.CfnWebACL.FieldToMatchProperty(uri_path={}),
                positional_constraint="STARTS_WITH",
                search_string=prefix,
                text_transformations=[
                    waf.CfnWebACL.TextTransformationProperty(priority=0, type="LOWERCASE")
                ],
            )
        ),
        action=action,
        visibility_config=_visibility(f"{rule_name}-metric"),
    )


def _managed_rule(
    name: str, rule_group: str, metric: str, priority: int, excluded: Sequence[str] = ()
) -> waf.CfnWebACL.RuleProperty:
    return waf.CfnWebACL.RuleProperty(
        name=f"{name}-waf-{metric}-rule",
        priority=priority,
        statement=waf.CfnWebACL.StatementProperty(
            managed_rule_group_statement=waf.CfnWebACL.ManagedRuleGroupStatementProperty(
                vendor_name="AWS",
                name=rule_group,
                excluded_rules=[waf.CfnWebACL.ExcludedRuleProperty(name=e) for e in excluded] or None,
            )
        ),
        override_action=waf.CfnWebACL.OverrideActionProperty(none={}),
        visibility_config=_visibility(f"{name}-waf-{metric}-metric"),
    )


def build_rules(
    name: str, allowed_path_prefixes: Sequence[str], blocked_path_prefixes: Sequence[str]
) -> List[waf.CfnWebACL.RuleProperty]:
    """Allow rules first, then block rules, then the AWS managed rule groups"""
    rules = []
    for prefix in allowed_path_prefixes:
        rules.append(_path_prefix_rule(name, "allow", prefix, len(rules)))
    for prefix in blocked_path_prefixes:
        rules.append(_path_prefix_rule(name, "block", prefix, len(rules)))
    rules.append(
        _managed_rule(
            name, "AWSManagedRulesCommonRuleSet", "crs", len(rules), excluded=["SizeRestrictions_BODY"]
        )
    )
    rules.append(_managed_rule(name, "AWSManagedRulesKnownBadInputsRuleSet", "bad-inputs", len(rules)))
    return rules


class WebApplicationFirewall(Construct):
    """Regional WAF attached to the application load balancer(s)"""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        name: str,
        associations: Dict[str, str],
        allowed_path_prefixes: Sequence[str] = (),
        blocked_path_prefixes: Sequence[str] = (),
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.web_acl = waf.CfnWebACL(
            self,
            f"{name}-waf",
            name=f"{name}-waf",
            scope="REGIONAL",
            description=f"Web Application Firewall for {name}",
            default_action=waf.CfnWebACL.DefaultActionProperty(allow={}),
            visibility_config=_visibility(f"{name}-waf-metric"),
            rules=build_rules(name, allowed_path_prefixes, blocked_path_prefixes),
        )

        for association_name, arn in associations.items():
            association = waf.CfnWebACLAssociation(
                self,
                f"{name}-waf-{association_name}-protected-entity",
                resource_arn=arn,
                web_acl_arn=self.web_acl.attr_arn,
            )
            association.add_dependency(self.web_acl)
