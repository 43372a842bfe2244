"""Keyword/heuristic task classification.

Scores task text against static keyword tables and a few structural signals
(length, number of technical terms, clause count) and maps the score to a
complexity tier through configurable thresholds. No model calls, no state:
the same text always yields the same ``Classification``.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType

from specflow.errors import InvalidInputError
from specflow.roles import (
    CODING,
    COORDINATION,
    CORE_ROLES,
    DESIGN,
    TASK_MANAGEMENT,
    TESTING,
    RoleCatalog,
    RoleId,
)


class ComplexityTier(StrEnum):
    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"


@dataclass(slots=True)
class ClassifierThresholds:
    simple_below: int = 2
    medium_below: int = 4
    medium_text_chars: int = 200
    long_text_chars: int = 500
    some_terms: int = 3
    many_terms: int = 8
    clause_threshold: int = 2


ROLE_SIGNALS: dict[RoleId, tuple[str, ...]] = {
    DESIGN: (
        "architecture", "design", "api", "interface", "database", "schema", "uml",
        "system", "module", "component",
        "架构", "设计", "接口", "数据库", "系统", "模块", "组件",
    ),
    CODING: (
        "code", "coding", "programming", "implement", "implementation", "develop",
        "build", "function", "class", "method", "algorithm",
        "代码", "编程", "实现", "开发", "构建", "函数", "算法",
    ),
    TESTING: (
        "test", "tests", "testing", "unit test", "integration test", "qa", "quality",
        "verification", "validation",
        "测试", "质量", "验证",
    ),
    TASK_MANAGEMENT: (
        "task", "tasks", "milestone", "milestones", "roadmap", "schedule", "plan",
        "planning", "deadline",
        "任务", "里程碑", "计划",
    ),
    COORDINATION: (
        "document", "documentation", "manual", "guide", "readme", "spec",
        "specification", "cmmi",
        "文档", "手册", "指南", "规格", "规范",
    ),
}

DOMAIN_KEYWORDS: dict[str, tuple[str, ...]] = {
    "web": (
        "web", "website", "frontend", "backend", "html", "css", "javascript",
        "typescript", "http", "rest", "api", "jwt", "browser", "react",
        "网站", "前端", "后端",
    ),
    "mobile": ("mobile", "ios", "android", "react native", "flutter", "移动"),
    "ai": (
        "ai", "machine learning", "deep learning", "nlp", "llm", "neural network",
        "人工智能", "机器学习", "深度学习",
    ),
    "data": (
        "data", "database", "analytics", "etl", "pipeline", "warehouse", "sql",
        "数据", "数据库", "分析",
    ),
    "enterprise": ("enterprise", "crm", "erp", "workflow", "business", "企业", "业务", "工作流"),
    "security": (
        "security", "secure", "auth", "authentication", "authorization", "jwt",
        "oauth", "password", "encryption", "encrypt", "token", "login",
        "permission", "permissions", "rbac",
        "安全", "认证", "授权", "登录", "权限",
    ),
    "infrastructure": (
        "deploy", "deployment", "ci/cd", "docker", "kubernetes", "cloud", "server",
        "infrastructure",
        "部署", "云", "服务器",
    ),
}

COMPLEXITY_INDICATORS: tuple[str, ...] = (
    "microservice", "microservices", "distributed", "scalable", "scalability",
    "high-performance", "high performance", "real-time", "realtime", "concurrent",
    "concurrency", "high availability",
    "微服务", "分布式", "可扩展", "高性能", "实时", "并发",
)

CLAUSE_PATTERN = re.compile(
    r"[,;，；。]|\.\s|\b(?:and|then|with|which|that|while|plus)\b",
    re.IGNORECASE,
)
GENERAL_DOMAIN = "general"


def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    escaped = re.escape(keyword.lower())
    if keyword.isascii():
        return re.compile(rf"(?<![a-z0-9]){escaped}(?![a-z0-9])")
    return re.compile(escaped)


_PATTERNS: dict[str, re.Pattern[str]] = {
    keyword: _keyword_pattern(keyword)
    for table in (*ROLE_SIGNALS.values(), *DOMAIN_KEYWORDS.values(), COMPLEXITY_INDICATORS)
    for keyword in table
}


def _matches(text: str, keywords: Iterable[str]) -> list[str]:
    return [keyword for keyword in keywords if _PATTERNS[keyword].search(text)]


@dataclass(frozen=True, slots=True)
class Classification:
    complexity_tier: ComplexityTier
    domain_tags: frozenset[str]
    required_roles: Mapping[RoleId, bool]
    matched_keywords: tuple[str, ...] = ()
    score: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "required_roles", MappingProxyType(dict(self.required_roles)))

    def roles(self) -> set[RoleId]:
        return {role_id for role_id, required in self.required_roles.items() if required}

    def to_dict(self) -> dict[str, object]:
        return {
            "complexity_tier": self.complexity_tier.value,
            "domain_tags": sorted(self.domain_tags),
            "required_roles": dict(self.required_roles),
            "matched_keywords": list(self.matched_keywords),
            "score": self.score,
        }


@dataclass(frozen=True, slots=True)
class TaskDescriptor:
    text: str
    classification: Classification


class TaskClassifier:
    def __init__(
        self,
        catalog: RoleCatalog | None = None,
        thresholds: ClassifierThresholds | None = None,
    ) -> None:
        self.catalog = catalog or RoleCatalog.default()
        self.thresholds = thresholds or ClassifierThresholds()

    def classify(
        self,
        text: str,
        selected_roles: Iterable[str] | None = None,
    ) -> Classification:
        if not isinstance(text, str) or not text.strip():
            raise InvalidInputError("Task text must be a non-empty string.")
        selected = None
        if selected_roles is not None:
            selected = {self.catalog.resolve(role_id) for role_id in selected_roles}

        lowered = text.lower()
        role_hits = {role_id: _matches(lowered, words) for role_id, words in ROLE_SIGNALS.items()}
        domain_hits = {
            domain: _matches(lowered, words) for domain, words in DOMAIN_KEYWORDS.items()
        }
        indicator_hits = _matches(lowered, COMPLEXITY_INDICATORS)

        domains = frozenset(domain for domain, hits in domain_hits.items() if hits)
        terms = sorted(
            {
                *[hit for hits in role_hits.values() for hit in hits],
                *[hit for hits in domain_hits.values() for hit in hits],
                *indicator_hits,
            }
        )
        score = self._score(text, terms, indicator_hits, domains)
        tier = self._tier(score)

        return Classification(
            complexity_tier=tier,
            domain_tags=domains or frozenset({GENERAL_DOMAIN}),
            required_roles=self._required_roles(tier, role_hits, selected),
            matched_keywords=tuple(terms),
            score=score,
        )

    def describe(self, text: str, selected_roles: Iterable[str] | None = None) -> TaskDescriptor:
        return TaskDescriptor(text=text, classification=self.classify(text, selected_roles))

    def _score(
        self,
        text: str,
        terms: list[str],
        indicators: list[str],
        domains: frozenset[str],
    ) -> int:
        limits = self.thresholds
        score = 0
        length = len(text.strip())
        if length > limits.long_text_chars:
            score += 2
        elif length > limits.medium_text_chars:
            score += 1

        if len(terms) >= limits.many_terms:
            score += 2
        elif len(terms) >= limits.some_terms:
            score += 1

        if indicators:
            score += 2
        if len(domains) >= 2:
            score += 1
        if len(CLAUSE_PATTERN.findall(text)) >= limits.clause_threshold:
            score += 1
        return score

    def _tier(self, score: int) -> ComplexityTier:
        if score < self.thresholds.simple_below:
            return ComplexityTier.SIMPLE
        if score < self.thresholds.medium_below:
            return ComplexityTier.MEDIUM
        return ComplexityTier.COMPLEX

    def _required_roles(
        self,
        tier: ComplexityTier,
        role_hits: dict[RoleId, list[str]],
        selected: set[RoleId] | None,
    ) -> dict[RoleId, bool]:
        wants_coordination = tier is ComplexityTier.COMPLEX or bool(role_hits[COORDINATION])
        required: dict[RoleId, bool] = {}
        for role_id in self.catalog.ids():
            if selected is None:
                flag = role_id in CORE_ROLES
            else:
                flag = role_id in selected or bool(role_hits.get(role_id))
            if role_id == COORDINATION:
                flag = flag or wants_coordination
            required[role_id] = flag
        return required


def classify(text: str, selected_roles: Iterable[str] | None = None) -> Classification:
    return TaskClassifier().classify(text, selected_roles)
