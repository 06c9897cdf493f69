import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, Mapping, Optional, Tuple, TypeVar, Union

from config.domains import DomainSet, resolve_domains, validate_domain_table
from config.environments import Environment, EnvironmentConfig, resolve_environment
from config.errors import CrossRegionReferenceError, SynthesisStateError
from config.regions import Region, RegionConfig, resolve_region
from config.registry import DEFAULT_REGISTRY, Registry
from synthesis.certificates import CertificateRecord, CertificateResolver, CertificateSet
from synthesis.composer import OrderedDeclarationSet, compose

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SynthesisPhase(Enum):
    UNSYNTHESIZED = 0
    RESOLVED = 1
    COMPOSED = 2
    SYNTHESIZED = 3


@dataclass(frozen=True)
class RegionPlan:
    region_config: RegionConfig
    domains: DomainSet
    certificates: CertificateSet
    declarations: Optional[OrderedDeclarationSet] = None


@dataclass(frozen=True)
class SynthesisPlan:
    """Everything the deploy engine receives for one pass"""

    environment: Environment
    env_config: EnvironmentConfig
    edge_region: str
    edge_certificates: Tuple[CertificateRecord, ...]
    regions: Mapping[Region, RegionPlan]


class Synthesis:
    """
    One synthesis pass for a single environment across a set of regions.

    Phases only move forward: UNSYNTHESIZED -> RESOLVED -> COMPOSED ->
    SYNTHESIZED. Any error leaves the pass where it was and nothing reaches
    the deploy engine.
    """

    def __init__(
        self,
        environment: Union[Environment, str],
        regions: Optional[Iterable[Union[Region, str]]] = None,
        account_id: str = "",
        registry: Registry = DEFAULT_REGISTRY,
        image_directory: str = ".",
        image_build_args: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.environment = Environment.parse(environment)
        self.regions = tuple(Region.parse(r) for r in (regions if regions is not None else Region))
        self.account_id = account_id
        self.registry = registry
        self.image_directory = image_directory
        self.image_build_args = dict(image_build_args or {})
        self.phase = SynthesisPhase.UNSYNTHESIZED
        self.resolver = CertificateResolver(
            domains=registry.domains, regions=registry.regions
        )

        self._env_config: Optional[EnvironmentConfig] = None
        self._edge_certificates: Tuple[CertificateRecord, ...] = ()
        self._plans: Dict[Region, RegionPlan] = {}

    def _advance(self, expected: SynthesisPhase, target: SynthesisPhase) -> None:
        if self.phase is not expected:
            raise SynthesisStateError(
                f"Cannot move to {target.name} from {self.phase.name}; expected {expected.name}"
            )
        self.phase = target
        logger.info("Synthesis for %s is %s", self.environment.value, target.name)

    def resolve(self) -> "Synthesis":
        if self.phase is not SynthesisPhase.UNSYNTHESIZED:
            raise SynthesisStateError(f"Cannot resolve from {self.phase.name}")

        env_config = resolve_environment(self.environment, self.registry.environments)
        validate_domain_table(self.registry.domains)
        edge_certificates = self.resolver.resolve_edge_certificates(self.environment)
        built = {record.handle for record in edge_certificates}
        unbuilt = [
            handle.id
            for handle in self.resolver.bridge.published(self.environment)
            if handle not in built
        ]
        if unbuilt:
            raise CrossRegionReferenceError(
                f"Published certificates missing from the edge stack: {', '.join(unbuilt)}"
            )

        plans: Dict[Region, RegionPlan] = {}
        for region in self.regions:
            region_config = resolve_region(region, self.registry.regions)
            domains = resolve_domains(region, self.environment, self.registry.domains)
            certificates = self.resolver.resolve_certificates(region, self.environment, domains)
            plans[region] = RegionPlan(
                region_config=region_config, domains=domains, certificates=certificates
            )

        self._env_config = env_config
        self._edge_certificates = edge_certificates
        self._plans = plans
        self._advance(SynthesisPhase.UNSYNTHESIZED, SynthesisPhase.RESOLVED)
        return self

    def compose(self) -> "Synthesis":
        if self.phase is not SynthesisPhase.RESOLVED:
            raise SynthesisStateError(f"Cannot compose from {self.phase.name}")

        composed: Dict[Region, RegionPlan] = {}
        for region, plan in self._plans.items():
            declarations = compose(
                region,
                self.environment,
                plan.domains,
                plan.certificates,
                env_config=self._env_config,
                region_config=plan.region_config,
                account_id=self.account_id,
                image_directory=self.image_directory,
                image_build_args=self.image_build_args,
            )
            composed[region] = RegionPlan(
                region_config=plan.region_config,
                domains=plan.domains,
                certificates=plan.certificates,
                declarations=declarations,
            )

        self._plans = composed
        self._advance(SynthesisPhase.RESOLVED, SynthesisPhase.COMPOSED)
        return self

    @property
    def plan(self) -> SynthesisPlan:
        if self.phase in (SynthesisPhase.UNSYNTHESIZED, SynthesisPhase.RESOLVED):
            raise SynthesisStateError(f"No composed plan while {self.phase.name}")
        return SynthesisPlan(
            environment=self.environment,
            env_config=self._env_config,
            edge_region=self.resolver.edge_region,
            edge_certificates=self._edge_certificates,
            regions=dict(self._plans),
        )

    def synthesize(self, emit: Callable[[SynthesisPlan], T]) -> T:
        """Hand the composed plan to `emit`, the deploy engine adapter"""
        if self.phase is not SynthesisPhase.COMPOSED:
            raise SynthesisStateError(f"Cannot synthesize from {self.phase.name}")
        result = emit(self.plan)
        self._advance(SynthesisPhase.COMPOSED, SynthesisPhase.SYNTHESIZED)
        return result

    def run(self, emit: Callable[[SynthesisPlan], T]) -> T:
        return self.resolve().compose().synthesize(emit)
