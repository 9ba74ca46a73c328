"""Deterministic 0-100 security score."""

SEVERITY_WEIGHTS = {
    'critical': 25,
    'high': 15,
    'medium': 5,
    'low': 1,
}

LARGE_TREE_THRESHOLD = 100
LARGE_TREE_STEP = 50
MAX_TREE_PENALTY = 10


def dependency_penalty(dependency_count: int) -> int:
    """Slight penalty for large dependency trees (more attack surface)."""
    return min(MAX_TREE_PENALTY, max(0, dependency_count - LARGE_TREE_THRESHOLD) // LARGE_TREE_STEP)


def calculate_security_score(
    critical: int = 0,
    high: int = 0,
    medium: int = 0,
    low: int = 0,
    dependency_count: int = 0,
) -> int:
    score = (
        100
        - SEVERITY_WEIGHTS['critical'] * critical
        - SEVERITY_WEIGHTS['high'] * high
        - SEVERITY_WEIGHTS['medium'] * medium
        - SEVERITY_WEIGHTS['low'] * low
        - dependency_penalty(dependency_count)
    )
    return max(0, min(100, score))


def score_summary(summary, dependency_count: int) -> int:
    """Score a ``ScanSummary``."""
    return calculate_security_score(
        critical=summary.critical,
        high=summary.high,
        medium=summary.medium,
        low=summary.low,
        dependency_count=dependency_count,
    )
