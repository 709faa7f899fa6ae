"""Deterministic substitutes used when a stage's model output cannot be parsed.

Everything here is plain data. Segment and persona builders tag each record
with ``isFallback`` so the final result can warn the user.
"""
from __future__ import annotations

import copy
from typing import Any

from marketseg.models.research import PlatformChoice, PlatformStrategy

DEFAULT_QUERY_VOLUME = 250
FALLBACK_SEGMENT_TOTAL = 6

_DEFAULT_PLATFORMS: tuple[tuple[str, int], ...] = (
    ("reddit", 30),
    ("linkedin", 25),
    ("github", 20),
    ("stackoverflow", 15),
    ("medium", 10),
    ("quora", 10),
    ("twitter", 10),
    ("producthunt", 5),
)


def default_platform_strategy(query_volume: int = DEFAULT_QUERY_VOLUME) -> PlatformStrategy:
    return PlatformStrategy(
        platforms=[PlatformChoice(name=name, weight=weight) for name, weight in _DEFAULT_PLATFORMS],
        query_volume=query_volume,
        reasoning="Using default platform strategy due to parsing error",
        is_fallback=True,
    )


_CORE_ANALYSIS: dict[str, Any] = {
    "tam": {
        "currentValue": 5_000_000_000,
        "projectedValue": 12_000_000_000,
        "projectionYear": 2029,
        "currency": "USD",
        "geographicBreakdown": {
            "northAmerica": "45%",
            "europe": "28%",
            "asiaPacific": "22%",
            "otherRegions": "5%",
        },
        "segmentBreakdown": [
            {"segment": "Enterprise", "value": "40%"},
            {"segment": "Mid-market", "value": "35%"},
            {"segment": "SMB", "value": "25%"},
        ],
    },
    "cagr": 19.1,
    "growthFactors": {
        "technological": ["AI and ML integration", "Cloud-native architectures"],
        "economic": ["Digital transformation acceleration", "Remote work normalization"],
        "regulatory": ["Data privacy regulations", "Security compliance"],
        "behavioral": ["Demand for productivity tools", "Collaboration preferences"],
    },
    "commercialUrgencies": ["First-mover advantage in AI", "Market consolidation window"],
    "marketMaturity": {
        "stage": "growth",
        "consolidationTrends": "Increasing M&A activity among mid-tier players",
        "innovationRate": "high",
        "competitiveDynamics": "highly competitive",
    },
    "opportunities": ["AI-powered automation", "Vertical-specific solutions", "Integration platforms"],
    "barriers": {
        "regulatory": ["Privacy compliance costs"],
        "technical": ["Legacy system integration"],
        "market": ["Established competitor moats"],
        "financial": ["High customer acquisition costs"],
    },
}

_COMPETITORS: tuple[dict[str, Any], ...] = (
    {
        "tier": 1,
        "name": "Asana",
        "fundingTotal": "$453M",
        "specialty": "Work management platform for teams",
        "targetMarket": "Enterprise and mid-market",
    },
    {
        "tier": 1,
        "name": "Monday.com",
        "fundingTotal": "$574M",
        "specialty": "Visual project management and collaboration",
        "targetMarket": "All business sizes",
    },
    {
        "tier": 1,
        "name": "ClickUp",
        "fundingTotal": "$537M",
        "specialty": "All-in-one productivity platform",
        "targetMarket": "SMB to enterprise",
    },
    {
        "tier": 2,
        "name": "Notion",
        "fundingTotal": "$343M",
        "specialty": "Workspace for notes and project management",
        "targetMarket": "Teams and individuals",
    },
    {
        "tier": 2,
        "name": "Airtable",
        "fundingTotal": "$1.36B",
        "specialty": "Low-code database and project management",
        "targetMarket": "Business teams",
    },
)


def fallback_core_analysis() -> dict[str, Any]:
    analysis = copy.deepcopy(_CORE_ANALYSIS)
    analysis["isFallback"] = True
    return analysis


def fallback_competitors() -> list[dict[str, Any]]:
    return [{**copy.deepcopy(c), "isFallback": True} for c in _COMPETITORS]


# --- Segments ---


def _b2b_base_segments(tam: float) -> list[dict[str, Any]]:
    return [
        {
            "id": "SEG_001",
            "name": "Enterprise Innovators",
            "size": {"percentage": 25, "value": tam * 0.25, "count": 5000, "growthRate": "15%"},
            "characteristics": {
                "firmographics": {
                    "companySizes": ["1000+ employees"],
                    "industries": ["Technology", "Finance", "Healthcare"],
                    "budgetRange": "$100K-$1M+",
                },
                "behavioral": {"buyingProcess": "Committee-based with POC", "innovationAdoption": "early"},
            },
            "painPoints": [
                {
                    "pain": "Scaling productivity across large teams",
                    "severity": "high",
                    "currentSolution": "Mix of legacy tools",
                    "costOfProblem": "$100K-$500K annually",
                }
            ],
            "roleSpecificPainPoints": {},
            "useCases": [
                {
                    "scenario": "Enterprise-wide deployment",
                    "workflow": "Phased rollout across departments",
                    "valueDelivered": "Unified productivity platform",
                    "implementationTime": "3-6 months",
                }
            ],
            "buyingTriggers": {
                "external": ["Digital transformation mandates"],
                "internal": ["M&A integration needs"],
                "urgencyLevel": "3-6months",
            },
            "messagingHooks": {
                "primary": "Scale your productivity enterprise-wide",
                "supporting": ["Reduce tool sprawl", "Increase collaboration"],
            },
            "channelPreferences": {
                "discovery": ["analyst reports", "conferences"],
                "research": ["vendor websites", "peer reviews"],
                "engagement": ["direct sales", "webinars"],
                "purchase": ["direct sales", "partner channels"],
            },
            "priorityScore": {"marketAttractiveness": 85, "accessibility": 65},
        },
        {
            "id": "SEG_002",
            "name": "Growth Champions",
            "size": {"percentage": 30, "value": tam * 0.30, "count": 15000, "growthRate": "20%"},
            "characteristics": {
                "firmographics": {
                    "companySizes": ["100-999 employees"],
                    "industries": ["SaaS", "E-commerce", "Professional Services"],
                    "budgetRange": "$20K-$100K",
                },
                "behavioral": {"buyingProcess": "Fast evaluation cycles", "innovationAdoption": "mainstream"},
            },
            "painPoints": [
                {
                    "pain": "Rapid team growth causing process chaos",
                    "severity": "critical",
                    "currentSolution": "Spreadsheets and basic tools",
                    "costOfProblem": "$50K-$200K annually",
                }
            ],
            "roleSpecificPainPoints": {},
            "useCases": [
                {
                    "scenario": "Team collaboration at scale",
                    "workflow": "Quick setup and onboarding",
                    "valueDelivered": "Streamlined workflows",
                    "implementationTime": "1-2 weeks",
                }
            ],
            "buyingTriggers": {
                "external": ["Competitive pressure"],
                "internal": ["Hiring spree", "Process breakdowns"],
                "urgencyLevel": "immediate",
            },
            "messagingHooks": {
                "primary": "Built for fast-growing teams",
                "supporting": ["Quick implementation", "Scales with you"],
            },
            "channelPreferences": {
                "discovery": ["search", "content marketing"],
                "research": ["peer reviews", "comparison sites"],
                "engagement": ["free trial", "demos"],
                "purchase": ["self-service", "inside sales"],
            },
            "priorityScore": {"marketAttractiveness": 90, "accessibility": 80},
        },
    ]


def _b2c_base_segments(tam: float) -> list[dict[str, Any]]:
    return [
        {
            "id": "SEG_001",
            "name": "Digital Natives",
            "size": {"percentage": 35, "value": tam * 0.35, "count": 2_000_000, "growthRate": "25%"},
            "characteristics": {
                "demographics": {
                    "ageRange": "25-40",
                    "income": "$50K-$120K",
                    "lifestyle": "Tech-savvy professionals",
                },
                "behavioral": {"buyingProcess": "Quick online research", "innovationAdoption": "early"},
            },
            "painPoints": [
                {
                    "pain": "Too many tools, not enough integration",
                    "severity": "high",
                    "currentSolution": "Multiple subscriptions",
                    "costOfProblem": "$2K-$10K annually",
                }
            ],
            "roleSpecificPainPoints": {},
            "useCases": [
                {
                    "scenario": "Personal productivity management",
                    "workflow": "Self-service setup",
                    "valueDelivered": "Simplified digital life",
                    "implementationTime": "Same day",
                }
            ],
            "buyingTriggers": {
                "external": ["New job", "Life changes"],
                "internal": ["Overwhelm", "Tool fatigue"],
                "urgencyLevel": "3-6months",
            },
            "messagingHooks": {
                "primary": "One tool to rule them all",
                "supporting": ["Save money", "Save time", "Reduce complexity"],
            },
            "channelPreferences": {
                "discovery": ["social media", "influencer reviews"],
                "research": ["app stores", "review sites"],
                "engagement": ["free trial", "freemium"],
                "purchase": ["app stores", "website"],
            },
            "priorityScore": {"marketAttractiveness": 85, "accessibility": 90},
        }
    ]


_ADDITIONAL_SEGMENT_NAMES = {
    "b2b": (
        "Small Business Adopters",
        "Cost-Conscious Buyers",
        "Regional Players",
        "Niche Specialists",
        "Late Majority",
        "Budget Optimizers",
    ),
    "b2c": (
        "Price-Sensitive Shoppers",
        "Mainstream Adopters",
        "Value Seekers",
        "Casual Users",
        "Budget Conscious",
        "Late Adopters",
    ),
}


def _additional_segment(business_type: str, seg_num: int, index: int, percentage: int, tam: float) -> dict[str, Any]:
    names = _ADDITIONAL_SEGMENT_NAMES[business_type]
    if business_type == "b2b":
        profile = {
            "firmographics": {
                "companySizes": ["50-500 employees"],
                "industries": ["Various"],
                "budgetRange": "$10K-$50K",
            }
        }
        buying_process = "Standard evaluation"
    else:
        profile = {"demographics": {"ageRange": "25-55", "income": "$40K-$80K", "lifestyle": "Varied"}}
        buying_process = "Price comparison"

    return {
        "id": f"SEG_{seg_num:03d}",
        "name": names[index] if index < len(names) else f"Market Segment {seg_num}",
        "size": {
            "percentage": percentage,
            "value": tam * (percentage / 100),
            "count": 10000 * seg_num,
            "growthRate": "10%",
        },
        "characteristics": {
            **profile,
            "behavioral": {"buyingProcess": buying_process, "innovationAdoption": "mainstream"},
        },
        "painPoints": [
            {
                "pain": "Generic productivity challenges",
                "severity": "medium",
                "currentSolution": "Basic tools",
                "costOfProblem": "$5K-$20K annually",
            }
        ],
        "roleSpecificPainPoints": {},
        "useCases": [
            {
                "scenario": "Daily workflow management",
                "workflow": "Standard implementation",
                "valueDelivered": "Improved efficiency",
                "implementationTime": "1 week",
            }
        ],
        "buyingTriggers": {
            "external": ["Market pressure"],
            "internal": ["Team growth"],
            "urgencyLevel": "6-12months",
        },
        "messagingHooks": {
            "primary": "Simplify your workflow",
            "supporting": ["Save time", "Increase productivity"],
        },
        "channelPreferences": {
            "discovery": ["search", "email marketing"],
            "research": ["vendor websites", "case studies"],
            "engagement": ["email", "webinars"],
            "purchase": ["online", "phone sales"],
        },
        "priorityScore": {
            "marketAttractiveness": 70 - index * 5,
            "accessibility": 75 - index * 5,
        },
    }


def fallback_segments(business_type: str, tam_current_value: float) -> list[dict[str, Any]]:
    """Six code-generated segments whose percentages sum to exactly 100."""
    kind = "b2b" if business_type == "b2b" else "b2c"
    segments = _b2b_base_segments(tam_current_value) if kind == "b2b" else _b2c_base_segments(tam_current_value)

    additional = FALLBACK_SEGMENT_TOTAL - len(segments)
    for i in range(additional):
        remaining = 100 - sum(s["size"]["percentage"] for s in segments)
        percentage = remaining // (additional - i)
        segments.append(_additional_segment(kind, len(segments) + 1, i, percentage, tam_current_value))

    for segment in segments:
        segment["isFallback"] = True
    return segments


def fallback_persona(segment_id: str, business_type: str) -> dict[str, Any]:
    return {
        "segmentId": segment_id,
        "personaType": "Economic Buyer",
        "name": "Alex",
        "role": "Director" if business_type == "b2b" else "Professional",
        "demographics": {"yearsInRole": "2-5", "age": "30-45"},
        "psychographics": {"values": ["efficiency", "quality"], "decisionStyle": "analytical"},
        "jobsToBeDone": {"functional": ["Improve productivity"], "emotional": ["Reduce stress"]},
        "buyingBehavior": {
            "role": "Evaluator",
            "influence": "Medium",
            "concerns": ["Cost", "Ease of use"],
        },
        "isFallback": True,
    }
