"""
Static catalog of consultable specialists, grouped by tier.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import Any

from .errors import UnknownSpecialistError
from .models import SpecialistProfile, Task, Tier

TIER_1_TIME = "2-4 hours"
TIER_2_TIME = "8-16 hours"
TIER_3_TIME = "24-48 hours"


def _tier1(
    id: str,
    name: str,
    domain: str,
    domains: tuple[str, ...],
    expertise: tuple[str, ...],
    triggers: tuple[str, ...],
    handoff: tuple[str, ...],
    technologies: tuple[str, ...],
) -> SpecialistProfile:
    return SpecialistProfile(
        id=id,
        name=name,
        tier=1,
        domain=domain,
        domains=domains,
        expertise=expertise,
        consultation_triggers=triggers,
        technologies=technologies,
        min_complexity=3,
        max_complexity=6,
        estimated_time=TIER_1_TIME,
        handoff_criteria=handoff,
    )


DEFAULT_SPECIALISTS: tuple[SpecialistProfile, ...] = (
    _tier1(
        "architecture-generalist",
        "Architecture Generalist",
        "System design, patterns, scalability basics",
        ("architecture", "design", "system"),
        ("system-design", "design-patterns", "scalability", "microservices"),
        ("new-system-design", "architecture-review", "pattern-selection"),
        ("complex-distributed-systems", "enterprise-architecture"),
        ("microservices", "design-patterns", "scalability", "system-design"),
    ),
    _tier1(
        "security-generalist",
        "Security Generalist",
        "Authentication, authorization, basic security practices",
        ("security", "auth"),
        ("authentication", "authorization", "api-security", "encryption"),
        ("auth-implementation", "security-review", "data-protection"),
        ("compliance-requirements", "advanced-threat-modeling"),
        ("oauth", "jwt", "encryption", "api-security"),
    ),
    _tier1(
        "performance-generalist",
        "Performance Generalist",
        "Basic optimization, caching, monitoring",
        ("performance", "optimization"),
        ("caching", "monitoring", "profiling", "optimization"),
        ("slow-response", "caching-strategy", "monitoring-setup"),
        ("complex-performance-issues", "system-wide-optimization"),
        ("caching", "monitoring", "profiling", "optimization"),
    ),
    _tier1(
        "data-generalist",
        "Data Generalist",
        "Database design, data modeling, basic analytics",
        ("data", "database"),
        ("data-modeling", "sql", "nosql", "analytics"),
        ("schema-design", "data-modeling", "query-review"),
        ("complex-queries", "data-warehouse-design"),
        ("sql", "nosql", "data-modeling", "analytics"),
    ),
    _tier1(
        "integration-generalist",
        "Integration Generalist",
        "API design, service integration, basic messaging",
        ("integration", "api"),
        ("rest", "graphql", "webhooks", "service-integration"),
        ("api-design", "third-party-integration", "webhook-setup"),
        ("complex-integrations", "enterprise-service-bus"),
        ("rest", "graphql", "webhooks", "microservices"),
    ),
    _tier1(
        "frontend-generalist",
        "Frontend Generalist",
        "UI/UX patterns, component architecture, basic frameworks",
        ("frontend", "ui"),
        ("component-architecture", "ui-patterns", "state-management"),
        ("component-design", "ui-review", "frontend-architecture"),
        ("complex-state-management", "micro-frontends"),
        ("react", "vue", "angular", "css", "javascript"),
    ),
)


def _tier2(
    id: str,
    name: str,
    domain: str,
    domains: tuple[str, ...],
    expertise: tuple[str, ...],
    triggers: tuple[str, ...],
    handoff: tuple[str, ...],
    technologies: tuple[str, ...],
    prerequisite: str,
) -> SpecialistProfile:
    return SpecialistProfile(
        id=id,
        name=name,
        tier=2,
        domain=domain,
        domains=domains,
        expertise=expertise,
        consultation_triggers=triggers,
        technologies=technologies,
        min_complexity=6,
        max_complexity=8,
        estimated_time=TIER_2_TIME,
        prerequisites=(prerequisite,),
        handoff_criteria=handoff,
    )


DEFAULT_SPECIALISTS += (
    _tier2(
        "database-specialist",
        "Database Specialist",
        "Query optimization, schema design, database performance",
        ("data", "database"),
        ("query-optimization", "indexing", "schema-design", "replication"),
        ("slow-queries", "schema-migration", "database-scaling"),
        ("data-architecture", "multi-region-data"),
        ("postgresql", "redis", "mongodb", "query-optimization"),
        "data-generalist",
    ),
    _tier2(
        "api-design-specialist",
        "API Design Specialist",
        "REST/GraphQL design, versioning, API governance",
        ("integration", "api"),
        ("api-versioning", "openapi", "graphql-schema", "api-governance"),
        ("public-api-design", "api-versioning", "breaking-changes"),
        ("enterprise-integration", "api-platform-strategy"),
        ("rest", "graphql", "openapi", "api-versioning"),
        "integration-generalist",
    ),
    _tier2(
        "auth-systems-specialist",
        "Auth Systems Specialist",
        "OAuth, SAML, identity management, authentication flows",
        ("security", "auth"),
        ("oauth2", "saml", "identity-management", "mfa"),
        ("sso-integration", "identity-federation", "mfa-rollout"),
        ("enterprise-security", "zero-trust-architecture"),
        ("oauth2", "saml", "jwt", "mfa", "sso"),
        "security-generalist",
    ),
    _tier2(
        "performance-optimization-specialist",
        "Performance Optimization Specialist",
        "Profiling, bottleneck analysis, system optimization",
        ("performance", "optimization"),
        ("profiling", "bottleneck-analysis", "memory-optimization", "apm"),
        ("performance-regression", "memory-leaks", "latency-issues"),
        ("system-wide-scaling", "capacity-planning"),
        ("profiling", "memory-optimization", "monitoring", "apm", "optimization"),
        "performance-generalist",
    ),
    _tier2(
        "ml-integration-specialist",
        "ML Integration Specialist",
        "ML model integration, data pipelines, AI services",
        ("ml", "ai"),
        ("model-serving", "ml-pipelines", "feature-engineering"),
        ("model-deployment", "ml-api-integration", "inference-scaling"),
        ("ml-platform-architecture", "large-scale-training"),
        ("tensorflow", "pytorch", "ml-apis", "model-serving"),
        "data-generalist",
    ),
    _tier2(
        "testing-strategy-specialist",
        "Testing Strategy Specialist",
        "Test architecture, automation, quality assurance",
        ("testing", "qa"),
        ("test-architecture", "test-automation", "ci-cd", "quality-gates"),
        ("test-strategy", "flaky-tests", "automation-setup"),
        ("enterprise-qa-strategy", "release-governance"),
        ("jest", "cypress", "ci-cd", "test-automation"),
        "architecture-generalist",
    ),
)


def _tier3(
    id: str,
    name: str,
    domain: str,
    domains: tuple[str, ...],
    expertise: tuple[str, ...],
    triggers: tuple[str, ...],
    technologies: tuple[str, ...],
) -> SpecialistProfile:
    return SpecialistProfile(
        id=id,
        name=name,
        tier=3,
        domain=domain,
        domains=domains,
        expertise=expertise,
        consultation_triggers=triggers,
        technologies=technologies,
        min_complexity=8,
        max_complexity=10,
        estimated_time=TIER_3_TIME,
    )


DEFAULT_SPECIALISTS += (
    _tier3(
        "system-architect",
        "System Architect",
        "Enterprise architecture, system design, technical governance",
        ("architecture", "system"),
        ("enterprise-architecture", "system-design", "technical-governance"),
        ("platform-redesign", "enterprise-architecture", "technology-strategy"),
        ("enterprise-architecture", "system-design", "governance", "enterprise", "distributed-systems"),
    ),
    _tier3(
        "integration-architect",
        "Integration Architect",
        "Service mesh, event-driven architecture, distributed systems",
        ("integration",),
        ("service-mesh", "event-driven-architecture", "distributed-systems"),
        ("enterprise-integration", "event-driven-redesign", "service-mesh-adoption"),
        ("service-mesh", "event-driven", "distributed-systems"),
    ),
    _tier3(
        "scale-architect",
        "Scale Architect",
        "Horizontal scaling, load balancing, fault tolerance",
        ("scale", "performance"),
        ("horizontal-scaling", "load-balancing", "fault-tolerance"),
        ("global-scale", "multi-region", "high-availability"),
        ("horizontal-scaling", "load-balancing", "fault-tolerance", "distributed-systems"),
    ),
    _tier3(
        "security-architect",
        "Security Architect",
        "Enterprise security, compliance, threat modeling",
        ("security",),
        ("enterprise-security", "compliance", "threat-modeling"),
        ("compliance-program", "security-architecture", "threat-assessment"),
        ("enterprise-security", "compliance", "threat-modeling"),
    ),
    _tier3(
        "data-architect",
        "Data Architect",
        "Data lakes, data warehouses, data governance",
        ("data",),
        ("data-lakes", "data-warehouses", "data-governance"),
        ("data-platform-design", "data-governance", "analytics-architecture"),
        ("data-lakes", "data-warehouses", "data-governance"),
    ),
    _tier3(
        "governance-architect",
        "Governance Architect",
        "Technical governance, compliance, policy enforcement",
        ("governance",),
        ("technical-governance", "compliance", "policy-enforcement"),
        ("policy-definition", "compliance-audit", "architecture-review-board"),
        ("governance", "compliance", "policy-enforcement"),
    ),
)

# Tier -> domain -> candidate specialist ids; "general" is the fallback row.
DEFAULT_ROUTING: Mapping[Tier, Mapping[str, tuple[str, ...]]] = MappingProxyType(
    {
        Tier.TIER_1: MappingProxyType(
            {
                "data": ("data-generalist",),
                "security": ("security-generalist",),
                "performance": ("performance-generalist",),
                "integration": ("integration-generalist",),
                "frontend": ("frontend-generalist",),
                "architecture": ("architecture-generalist",),
                "general": ("architecture-generalist",),
            }
        ),
        Tier.TIER_2: MappingProxyType(
            {
                "data": ("database-specialist",),
                "security": ("auth-systems-specialist",),
                "performance": ("performance-optimization-specialist",),
                "integration": ("api-design-specialist",),
                "ml": ("ml-integration-specialist",),
                "testing": ("testing-strategy-specialist",),
                "general": ("database-specialist", "api-design-specialist"),
            }
        ),
        Tier.TIER_3: MappingProxyType(
            {
                "data": ("data-architect",),
                "security": ("security-architect",),
                "integration": ("integration-architect",),
                "architecture": ("system-architect",),
                "scale": ("scale-architect",),
                "governance": ("governance-architect",),
                "general": ("system-architect",),
            }
        ),
    }
)

_TIER_LEVELS = {Tier.TIER_1: 1, Tier.TIER_2: 2, Tier.TIER_3: 3}


class SpecialistRegistry:
    """Read-only lookup over the specialist catalog."""

    def __init__(
        self,
        profiles: Iterable[SpecialistProfile] = DEFAULT_SPECIALISTS,
        routing: Mapping[Tier, Mapping[str, tuple[str, ...]]] = DEFAULT_ROUTING,
    ) -> None:
        self._profiles = MappingProxyType({profile.id: profile for profile in profiles})
        self._routing = routing

    def get(self, specialist_id: str | None) -> SpecialistProfile | None:
        if specialist_id is None:
            return None
        return self._profiles.get(specialist_id)

    def require(self, specialist_id: str) -> SpecialistProfile:
        profile = self.get(specialist_id)
        if profile is None:
            raise UnknownSpecialistError(specialist_id)
        return profile

    def exists(self, specialist_id: str) -> bool:
        return specialist_id in self._profiles

    def all(self) -> list[SpecialistProfile]:
        return list(self._profiles.values())

    def by_tier(self, tier: Tier | int) -> list[SpecialistProfile]:
        level = tier if isinstance(tier, int) else _TIER_LEVELS.get(tier)
        return [profile for profile in self._profiles.values() if profile.tier == level]

    def by_domain(self, domain: str) -> list[SpecialistProfile]:
        needle = domain.lower()
        return [
            profile
            for profile in self._profiles.values()
            if needle in profile.domains
            or needle in profile.domain.lower()
            or any(needle in tech for tech in profile.technologies)
        ]

    def candidates(self, tier: Tier, domain: str) -> list[SpecialistProfile]:
        """Candidate profiles for a tier and domain, in catalog order."""
        table = self._routing.get(tier)
        if not table:
            return []
        ids = table.get(domain) or table.get("general", ())
        return [self._profiles[sid] for sid in ids if sid in self._profiles]

    def capabilities(self, specialist_id: str) -> dict[str, Any] | None:
        profile = self.get(specialist_id)
        if profile is None:
            return None
        return {
            "domains": list(profile.domains),
            "technologies": list(profile.technologies),
            "complexity_range": [profile.min_complexity, profile.max_complexity],
        }

    def consultation_flow(self, specialist_id: str) -> dict[str, Any] | None:
        profile = self.get(specialist_id)
        if profile is None:
            return None
        flow: dict[str, Any] = {
            "specialist": profile.id,
            "tier": profile.tier,
            "prerequisites": list(profile.prerequisites),
            "estimated_time": profile.estimated_time,
            "next_steps": [],
        }
        if profile.tier < 3 and profile.handoff_criteria:
            flow["next_steps"].append(
                {
                    "type": "potential-escalation",
                    "criteria": list(profile.handoff_criteria),
                    "target_tier": profile.tier + 1,
                }
            )
        return flow

    def compatible_specialists(self, specialist_id: str, task: Task) -> list[dict[str, Any]]:
        """Other specialists covering task technologies the primary one does not."""
        primary = self.require(specialist_id)
        uncovered = {tech.lower() for tech in task.technologies} - set(primary.technologies)
        matches: list[dict[str, Any]] = []
        for profile in self._profiles.values():
            if profile.id == primary.id:
                continue
            complementary = sorted(uncovered & set(profile.technologies))
            if complementary:
                matches.append(
                    {
                        "specialist": profile.id,
                        "tier": profile.tier,
                        "complementary_technologies": complementary,
                    }
                )
        return matches
