"""Fiber accumulator — weighted gram total and effectiveness tiers."""

from __future__ import annotations

from dataclasses import dataclass, field

# Grams of fiber per serving.
FIBER_WEIGHTS: dict[str, float] = {
    "protein_shake": 5.0,
    "phgg": 5.0,
    "chia_seeds": 2.5,
}


@dataclass(frozen=True)
class FiberEffectiveness:
    level: str
    description: str


# (inclusive lower bound in grams, range label, tier); ascending.
_TIERS: list[tuple[float, str, FiberEffectiveness]] = [
    (0, "< 5g", FiberEffectiveness("None", "Not enough fiber. Aim for at least 5g.")),
    (5, "5–10g", FiberEffectiveness(
        "Minimal",
        "Barely moves stool. High chance toxins sit longer. ~10–20% effective for clearance.",
    )),
    (10, "10–15g", FiberEffectiveness(
        "Slight", "Slight help. Still slow transit for most people. ~30% effective.",
    )),
    (15, "15–20g", FiberEffectiveness(
        "Starting", "Minimum where things start working. Some benefit. ~50% effective.",
    )),
    (20, "20–25g", FiberEffectiveness(
        "Decent", "Decent. Many people okay here. Still suboptimal with binders. ~65–70%.",
    )),
    (25, "25–30g", FiberEffectiveness(
        "Solid", "Solid baseline. Low reabsorption risk. ~80%.",
    )),
    (30, "30–35g", FiberEffectiveness(
        "Sweet Spot", "Sweet spot for most. Good speed, good consistency. ~90%.",
    )),
    (35, "35g+", FiberEffectiveness(
        "Excellent", "Still good if tolerated. Marginal gains over 30 g. ~92–95%.",
    )),
]


def total_fiber(counts: dict[str, int], weights: dict[str, float] | None = None) -> float:
    """Weighted sum of servings. Overrides merge into the default weights."""
    weights = {**FIBER_WEIGHTS, **(weights or {})}
    return sum(count * weights.get(source, 0.0) for source, count in counts.items())


def calculate_total_fiber(protein_shakes: int, phgg: int, chia_seeds: int) -> float:
    return total_fiber(
        {"protein_shake": protein_shakes, "phgg": phgg, "chia_seeds": chia_seeds}
    )


def classify_fiber(total: float) -> FiberEffectiveness:
    """Map grams to a tier; each breakpoint belongs to the higher tier."""
    tier = _TIERS[0][2]
    for lower, _, candidate in _TIERS:
        if total >= lower:
            tier = candidate
    return tier


def fiber_tiers() -> list[dict[str, str]]:
    """All tiers with their gram ranges, lowest first."""
    return [
        {"range": label, "level": t.level, "description": t.description}
        for _, label, t in _TIERS
    ]


@dataclass
class FiberTracker:
    """Serving counters for one day. Counts never go below zero."""

    counts: dict[str, int] = field(default_factory=lambda: dict.fromkeys(FIBER_WEIGHTS, 0))

    def add(self, source: str, servings: int = 1) -> int:
        if source not in FIBER_WEIGHTS:
            raise ValueError(f"Unknown fiber source: {source!r}")
        self.counts[source] = max(0, self.counts.get(source, 0) + servings)
        return self.counts[source]

    def remove(self, source: str, servings: int = 1) -> int:
        return self.add(source, -servings)

    @property
    def total(self) -> float:
        return total_fiber(self.counts)

    def summary(self) -> dict:
        tier = classify_fiber(self.total)
        return {
            "counts": dict(self.counts),
            "grams_by_source": {s: n * FIBER_WEIGHTS[s] for s, n in self.counts.items()},
            "total_grams": self.total,
            "level": tier.level,
            "description": tier.description,
        }
