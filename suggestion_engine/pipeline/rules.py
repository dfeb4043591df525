"""
Rule Tables

Named, weighted pattern rules used by the classifier, plus the shared
vocabularies used by arbitration, synthesis, validation and ranking.

Every rule is plain data: a name, a family, a weight and a compiled regex.
Rules are matched against preprocessed (lowercased, marker-stripped) text.
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Pattern, Tuple


def word_pattern(words: Iterable[str], prefix: str = r"\b", suffix: str = r"\b") -> Pattern:
    """Compile an alternation of literal phrases with word boundaries."""
    ordered = sorted(set(words), key=len, reverse=True)
    body = "|".join(re.escape(w) for w in ordered)
    return re.compile(f"{prefix}(?:{body}){suffix}", re.IGNORECASE)


# ============================================================================
# Vocabularies
# ============================================================================

REQUEST_STEMS = (
    "please", "can you", "could you", "would you",
    "i want you to", "i'd like you to", "i would like you to",
    "we should", "we probably should", "should",
    "let's", "lets", "need to", "we need to", "maybe we need", "we may need to",
    "it would be good to", "asking for", "requested", "want to", "would like",
)

ACTION_VERBS = (
    "add", "implement", "build", "create", "enable", "disable", "remove", "delete",
    "fix", "update", "change", "refactor", "improve", "support", "integrate",
    "adjust", "modify", "revise",
)

# Verbs that open an explicit ask; wider than ACTION_VERBS
DIRECTIVE_VERBS = ACTION_VERBS + (
    "pull", "drop", "cut", "delay", "postpone", "defer", "pause", "migrate",
    "deploy", "ship", "introduce", "replace", "expose", "reduce", "merge",
    "streamline", "simplify", "consolidate", "log", "track", "show", "surface",
    "automate", "instrument", "document", "rewrite", "split", "cache",
)

CHANGE_OPERATORS = (
    "move", "moving", "moved", "push", "pushing", "pushed",
    "delay", "delaying", "delayed", "slip", "slipping", "slipped",
    "bring forward", "bringing forward", "brought forward",
    "postpone", "postponing", "postponed",
    "deprioritize", "deprioritizing", "deprioritized",
    "prioritize", "prioritizing", "prioritized",
    "shift", "shifting", "shifted", "pivot", "pivoting", "pivoted",
    "reframe", "reframing", "reframed",
    "reprioritize", "reprioritizing", "reprioritized",
    "defer", "deferring", "deferred", "accelerate", "accelerating", "accelerated",
    "narrow", "narrowing", "narrowed", "expand", "expanding", "expanded",
    "refocus", "refocusing", "refocused", "adjust", "adjusting", "adjusted",
    "modify", "modifying", "modified", "revise", "revising", "revised",
    "take over", "taking over", "took over", "instead of",
    "now p0", "now p1", "now p2",
)

STATUS_MARKERS = (
    "done", "shipped", "deployed", "released", "implemented", "merged",
    "blocked", "waiting on", "in progress",
)

HEDGED_DIRECTIVES = (
    "we should", "we probably should", "maybe we need", "we may need to",
    "it would be good to", "let's", "lets",
)

NEGATIONS = ("don't", "do not", "no need to", "not necessary to")

ROLE_ASSIGNMENTS = (
    "pm to", "cs to", "eng to", "design to", "designer to", "qa to",
    "project manager to", "product manager to", "engineering to",
    "customer success to",
)

DECISION_MARKERS = (
    "will be logged", "will be", "no near-term", "near-term", "revisit",
    "decided", "agreed", "approved",
)

PRODUCT_NOUNS = (
    "onboarding", "signup", "flow", "ui", "api", "integration", "pricing",
    "dashboard", "tracking", "analytics",
)

ACTIONABILITY_VERBS = (
    "add", "verify", "update", "share", "remove", "fix", "create", "build",
    "implement", "test", "review", "check", "ensure", "set up", "deploy",
    "migrate", "refactor", "integrate", "move", "send", "confirm", "finalize",
)

CALENDAR_MARKERS = (
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
    "next week", "this week", "next month",
)

COMMUNICATION_MARKERS = ("email", "send", "slack", "follow up", "reach out", "ping")

MICRO_ADMIN_MARKERS = ("rename file", "update doc link", "fix typo")

IMPLICIT_NEED_SIGNALS = (
    "we need", "we don't have", "users can't", "it's hard to", "missing",
    "no way to", "can't", "lack of", "lacking",
)

IMPLICIT_PURPOSE_SIGNALS = (
    "so we can", "so we", "so that", "to help", "to see", "because",
    "in order to", "so users can",
)

CAPABILITY_NOUNS = (
    "boundary detection", "dashboard", "errors", "visibility", "alerts",
    "tracking", "monitoring", "reporting", "analytics", "notifications",
    "logging", "metrics", "search", "filtering", "sorting", "pagination",
)

COMPLETION_MARKERS = ("done", "completed", "finished", "shipped")

PAIN_SIGNALS = (
    "dissatisfied", "too many clicks", "number of clicks", "confusing",
    "frustrating", "usability issue", "hard to use", "difficult to", "painful",
    "annoying", "slow", "inefficient", "broken", "impacting",
)

PAIN_CONTEXT_SIGNALS = (
    "workflow", "attestation", "completion", "usability", "customer satisfaction",
    "user experience", "productivity", "efficiency", "employees",
)

# Concrete things an explicit ask can target
ARTIFACT_NOUNS = (
    "module", "export", "exports", "api", "apis", "endpoint", "endpoints",
    "dashboard", "dashboards", "logic", "cache", "caching", "report", "reports",
    "reporting", "page", "pages", "flow", "flows", "service", "feature",
    "integration", "pipeline", "command", "button", "workflow", "alert", "alerts",
    "notification", "notifications", "search", "filter", "filters", "setting",
    "settings", "screen", "form", "job", "jobs", "query", "queries", "database",
    "schema", "index", "webhook", "webhooks", "sdk", "cli", "ui", "onboarding",
    "tooltip", "modal", "banner", "log", "logs", "logging", "metric", "metrics",
    "test", "tests", "retry", "retries", "validation", "template", "templates",
    "toggle", "permission", "permissions", "billing", "checkout", "widget",
    "calculator", "tracking", "analytics", "sso", "csv", "import", "migration",
    "component", "library", "backend", "frontend", "app", "product", "view",
)

STRATEGY_HEADING_KEYWORDS = (
    "strategy", "strategies", "approach", "framework", "system", "systems",
    "prioritization", "prioritisation", "automation", "playbook", "vision",
    "rubric", "criteria", "methodology", "heuristics", "principles",
)

OPERATIONAL_HEADING_KEYWORDS = (
    "deployment", "deploy", "release", "rollout", "launch", "migration",
    "timeline", "schedule",
)

GENERIC_HEADING_KEYWORDS = (
    "notes", "discussion", "misc", "miscellaneous", "general", "agenda",
    "summary", "other", "updates", "recap",
)

TIMELINE_HEADING_KEYWORDS = (
    "timeline", "implementation", "schedule", "roadmap", "milestones",
)

# Semantic idea extraction
IDEA_STRATEGY_TOKENS = (
    "strategy", "approach", "system", "framework", "prioritization", "scoring", "automation",
)
IDEA_MECHANISM_VERBS = (
    "introduce", "use", "extend", "calculate", "integrate", "automate", "parse", "upload", "layer",
)
IDEA_FEATURE_CONSTRUCTS = (
    "photo upload", "ai parsing", "scoring model", "prioritization system",
)
GENERIC_IDEA_HEADINGS = frozenset({
    "general", "overview", "summary", "notes", "misc", "other", "details",
    "background", "context", "introduction", "appendix", "todo", "update",
    "updates", "status", "info",
})

# Section-shape signals used at final emission
GAMIFICATION_TOKENS = (
    "next episode", "one more", "worth €", "earning potential",
    "next highest-value field", "next field", "reward", "gamif", "streak", "badge",
)
SPEC_FRAMEWORK_KEYWORDS = (
    ("scoring",), ("prioritization", "prioritisation"), ("three-factor", "three factor"),
    ("eligibility",), ("additionality",), ("weighting",), ("framework",), ("system",),
)
SPEC_TIMELINE_EXCLUSIONS = (
    "deploy", "deployed", "deploying", "deployment", "launch", "launched", "launching",
    "eta", "target date", "window", "shipped", "in progress", "complete", "completed",
)
AUTOMATION_HEADING_KEYWORDS = (
    "data collection automation", "automation", "parsing", "ocr", "upload",
)

# Management-speak that carries no domain content
GENERIC_VOCAB = frozenset({
    "improve", "improvement", "improvements", "enhance", "optimize", "leverage",
    "streamline", "align", "alignment", "synergy", "synergies", "strategy",
    "strategic", "initiative", "initiatives", "process", "processes", "approach",
    "framework", "ensure", "better", "various", "stuff", "things", "thing",
    "overall", "holistic", "efficiency", "effectiveness", "stakeholders",
    "stakeholder", "value", "impact", "focus", "priority", "priorities",
    "discuss", "discussion", "discussed", "general", "update", "updates",
    "review", "plan", "planning", "work", "team", "teams", "going", "forward",
    "continue", "key", "important", "consider", "potential", "items", "item",
    "next", "steps", "idea", "ideas", "new", "topic", "topics", "sync",
    "action", "actions", "progress", "status", "they", "them", "this", "that",
    "these", "those", "there", "it", "misc", "identified",
})

COMMON_WORDS = frozenset({
    "the", "and", "for", "with", "that", "this", "from", "have", "will", "would",
    "should", "could", "about", "into", "onto", "their", "there", "they", "them",
    "then", "than", "what", "when", "where", "which", "while", "were", "been",
    "being", "also", "just", "some", "more", "most", "much", "many", "very",
    "need", "needs", "want", "wants", "make", "made", "like", "only", "over",
    "under", "after", "before", "because", "other", "each", "every", "still",
    "your", "ours", "yours", "does", "doing", "done", "going", "can't", "cant",
    "dont", "don't", "let's", "lets", "maybe", "probably", "really", "even",
    "here", "again", "able", "same", "such", "those", "these", "whom", "whose",
    "we're", "it's", "get", "got", "getting", "you", "our", "are",
    "not", "but", "all", "any", "can", "may", "might", "must", "has", "had",
    "was", "who", "why", "how", "its", "per", "via", "out", "off", "now",
})

ENGINEERING_VOCAB = (
    "api", "cache", "caching", "module", "endpoint", "database", "schema",
    "latency", "retry", "logic", "export", "backend", "frontend", "service",
    "query", "index", "pipeline", "refactor", "test", "tests", "integration",
    "sdk", "webhook", "performance", "bug", "crash", "error", "errors",
    "reporting", "migration", "infra", "infrastructure",
)

IMPLEMENTATION_VERBS = (
    "implement", "build", "add", "fix", "refactor", "migrate", "integrate",
    "deploy", "create", "enable", "instrument", "automate",
)

MARKETING_VOCAB = (
    "marketing", "campaign", "blast", "newsletter", "press", "announcement",
    "promo", "promotion", "webinar", "social", "launch event", "ad spend",
)

WITHDRAWAL_VERBS = (
    "pull", "remove", "drop", "cut", "delay", "postpone", "push", "defer",
    "pause", "hold", "hold off", "withdraw", "scrap", "slip",
)


# ============================================================================
# Rule model
# ============================================================================

ACTIONABLE = "actionable"
OUT_OF_SCOPE = "out_of_scope"

# Categories whose firing makes plan_change the dominant intent
PLAN_CHANGE_CATEGORIES = frozenset({
    "change_operator", "structured_task", "decision_marker", "role_assignment",
})


@dataclass(frozen=True)
class PatternRule:
    """A named, weighted pattern"""
    name: str
    family: str  # "actionable" | "out_of_scope"
    weight: float
    pattern: Pattern
    category: str
    hedged: bool = False


@dataclass(frozen=True)
class RuleMatch:
    rule: PatternRule
    weight: float


def _both(first: Iterable[str], second: Iterable[str]) -> Pattern:
    a = word_pattern(first).pattern
    b = word_pattern(second).pattern
    return re.compile(f"^(?=.*{a})(?=.*{b})", re.IGNORECASE | re.DOTALL)


ACTIONABLE_RULES: Tuple[PatternRule, ...] = (
    PatternRule(
        name="strong_request",
        family=ACTIONABLE,
        weight=1.0,
        pattern=_both(REQUEST_STEMS, ACTION_VERBS),
        category="request",
    ),
    PatternRule(
        name="imperative",
        family=ACTIONABLE,
        weight=0.9,
        pattern=word_pattern(ACTION_VERBS, prefix=r"^"),
        category="imperative",
    ),
    PatternRule(
        name="change_operator",
        family=ACTIONABLE,
        weight=0.8,
        pattern=word_pattern(CHANGE_OPERATORS),
        category="change_operator",
    ),
    PatternRule(
        name="status_marker",
        family=ACTIONABLE,
        weight=0.7,
        pattern=word_pattern(STATUS_MARKERS),
        category="status",
    ),
    PatternRule(
        name="structured_task",
        family=ACTIONABLE,
        weight=0.8,
        pattern=re.compile(r"^\[[ x]\]|\btodo:|\baction(?: item)?:|\bowner:", re.IGNORECASE),
        category="structured_task",
    ),
    PatternRule(
        name="role_assignment",
        family=ACTIONABLE,
        weight=0.85,
        pattern=word_pattern(ROLE_ASSIGNMENTS),
        category="role_assignment",
    ),
    PatternRule(
        name="decision_marker",
        family=ACTIONABLE,
        weight=0.70,
        pattern=word_pattern(DECISION_MARKERS),
        category="decision_marker",
    ),
    PatternRule(
        name="hedged_directive",
        family=ACTIONABLE,
        weight=0.9,
        pattern=word_pattern(HEDGED_DIRECTIVES, prefix=r"(?<![\w'])", suffix=r"(?![\w'])"),
        category="hedged",
        hedged=True,
    ),
)

OUT_OF_SCOPE_RULES: Tuple[PatternRule, ...] = (
    PatternRule(
        name="calendar",
        family=OUT_OF_SCOPE,
        weight=0.6,
        pattern=word_pattern(CALENDAR_MARKERS),
        category="calendar",
    ),
    PatternRule(
        name="communication",
        family=OUT_OF_SCOPE,
        weight=0.6,
        pattern=word_pattern(COMMUNICATION_MARKERS),
        category="communication",
    ),
    PatternRule(
        name="micro_tasks",
        family=OUT_OF_SCOPE,
        weight=0.4,
        pattern=word_pattern(MICRO_ADMIN_MARKERS),
        category="micro_tasks",
    ),
)

NEGATION_RULE = PatternRule(
    name="negation",
    family=ACTIONABLE,
    weight=0.0,
    pattern=_both(NEGATIONS, ACTION_VERBS),
    category="negation",
)

TARGET_OBJECT_BONUS = 0.2
TARGET_OBJECT_GATE = 0.6
PRODUCT_NOUN_PATTERN = word_pattern(PRODUCT_NOUNS)


def evaluate_rules(text: str, rules: Iterable[PatternRule]) -> List[RuleMatch]:
    """Return every rule in ``rules`` whose pattern matches ``text``."""
    return [RuleMatch(rule=rule, weight=rule.weight) for rule in rules if rule.pattern.search(text)]


def best_match(matches: List[RuleMatch], hedged: Optional[bool] = None) -> float:
    """Max weight over matches, optionally restricted by the hedged flag."""
    weights = [m.weight for m in matches if hedged is None or m.rule.hedged == hedged]
    return max(weights, default=0.0)


# ============================================================================
# Compiled vocabulary patterns
# ============================================================================

ACTIONABILITY_VERB_PATTERN = word_pattern(ACTIONABILITY_VERBS, suffix=r"\s+\w")
DIRECTIVE_VERB_PATTERN = word_pattern(DIRECTIVE_VERBS)
ARTIFACT_NOUN_PATTERN = word_pattern(ARTIFACT_NOUNS)
CALENDAR_PATTERN = word_pattern(CALENDAR_MARKERS)
COMPLETION_PATTERN = word_pattern(COMPLETION_MARKERS)
CAPABILITY_NOUN_PATTERN = word_pattern(CAPABILITY_NOUNS)
STRATEGY_HEADING_PATTERN = word_pattern(STRATEGY_HEADING_KEYWORDS)
OPERATIONAL_HEADING_PATTERN = word_pattern(OPERATIONAL_HEADING_KEYWORDS)
GENERIC_HEADING_PATTERN = word_pattern(GENERIC_HEADING_KEYWORDS)
TIMELINE_HEADING_PATTERN = word_pattern(TIMELINE_HEADING_KEYWORDS)
ENGINEERING_PATTERN = word_pattern(ENGINEERING_VOCAB)
IMPLEMENTATION_VERB_PATTERN = word_pattern(IMPLEMENTATION_VERBS)
MARKETING_PATTERN = word_pattern(MARKETING_VOCAB)
WITHDRAWAL_VERB_PATTERN = word_pattern(WITHDRAWAL_VERBS)
SPEC_TIMELINE_EXCLUSION_PATTERN = word_pattern(SPEC_TIMELINE_EXCLUSIONS)
AUTOMATION_HEADING_PATTERN = word_pattern(AUTOMATION_HEADING_KEYWORDS)
SPEC_FRAMEWORK_PATTERNS = tuple(word_pattern(group) for group in SPEC_FRAMEWORK_KEYWORDS)
SPEC_FRAMEWORK_PATTERN = word_pattern(w for group in SPEC_FRAMEWORK_KEYWORDS for w in group)
