"""
Curated expert knowledge clips. Reference data, read only.
"""

from tradeproof.models import KnowledgeClip


KNOWLEDGE_CLIPS: tuple[KnowledgeClip, ...] = (
    KnowledgeClip(
        clip_id="clip-1",
        expert_name="Mike Torres",
        expert_years=32,
        trade="electrical",
        task_type="panel",
        trigger_keywords=(
            "federal pacific", "fpe", "stab-lok", "old panel",
            "panel replacement", "breaker trip", "panel recall",
        ),
        title="Federal Pacific Panels: The Hidden Fire Hazard",
        content=(
            "Stab-Lok breakers in Federal Pacific panels are known for failing to trip "
            "under overload. Pull a breaker and inspect the bus bar for arc damage, "
            "blackened or pitted contacts. Do not add circuits or swap breakers in one. "
            "Plan and price a full panel replacement."
        ),
        building_era="1950s-1980s",
    ),
    KnowledgeClip(
        clip_id="clip-2",
        expert_name="Sarah Chen",
        expert_years=28,
        trade="electrical",
        task_type="outlet",
        trigger_keywords=(
            "gfci", "afci", "ground fault", "arc fault", "bathroom", "kitchen",
            "garage outlet", "wet location", "tripping",
        ),
        title="GFCI & AFCI: The Mistakes I See Every Week",
        content=(
            "Put the GFCI first on the circuit, not last, or nothing upstream is "
            "protected. LINE is power in, LOAD feeds downstream receptacles; reversing "
            "them leaves downstream devices unprotected. Nuisance AFCI trips usually "
            "come from shared neutrals. GFCI protects people from shock, AFCI protects "
            "the building from fire."
        ),
    ),
    KnowledgeClip(
        clip_id="clip-3",
        expert_name="James Washington",
        expert_years=35,
        trade="electrical",
        task_type="general",
        trigger_keywords=(
            "aluminum", "aluminium", "old wiring", "older home", "1960s", "1970s",
            "oxidation", "co/alr", "pigtail",
        ),
        title="Aluminum Wiring: Handle With Care",
        content=(
            "Aluminum branch wiring oxidizes at terminations, which raises resistance "
            "and heat. Only use CO/ALR rated devices, apply anti-oxidant compound, never "
            "use push-in terminals, and torque side screws properly. Pigtail to copper "
            "with connectors rated for Al/Cu."
        ),
        building_era="1960s-1970s",
    ),
    KnowledgeClip(
        clip_id="clip-4",
        expert_name="Maria Rodriguez",
        expert_years=24,
        trade="electrical",
        task_type="junction_box",
        trigger_keywords=(
            "wire nut", "wirenut", "splice", "connection", "twist", "exposed copper",
            "bare wire", "marrette", "wago", "push connector",
        ),
        title="Wire Nut Technique: Getting It Right Every Time",
        content=(
            "Strip to the length printed on the connector, hold conductors parallel, "
            "pre-twist clockwise and seat the wire nut until the insulation grips. Tug "
            "each conductor individually. No bare copper may be visible below the "
            "connector. Lever connectors are fine for rough-in."
        ),
    ),
    KnowledgeClip(
        clip_id="clip-5",
        expert_name="Robert Kim",
        expert_years=30,
        trade="electrical",
        task_type="panel",
        trigger_keywords=(
            "panel upgrade", "load calculation", "200 amp", "100 amp",
            "service upgrade", "main breaker", "bus bar", "subpanel", "capacity",
        ),
        title="Panel Upgrades: Do the Math Before You Start",
        content=(
            "Run the Article 220 load calculation before sizing a service. Coordinate "
            "with the utility, size service conductors for the new panel, verify the "
            "grounding electrode system, and bond neutral to ground only at the main. "
            "Keep neutrals and grounds separate in a subpanel and torque every lug."
        ),
    ),
)
