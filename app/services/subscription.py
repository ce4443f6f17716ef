"""
Storefront Subscription Plans

Defines the plan feature matrix for Free, Standard, Premium tiers. Only the
feature flags matter to this service: custom-domain provisioning is gated on
the ``custom_domain`` feature and re-checked on every reconciliation run.
"""

PLAN_MATRIX = {
    "free": {
        "display_name": "Free",
        "price_monthly_usd": 0,
        "features": {
            "platform_subdomain": True,
            "custom_domain": False,
            "remove_platform_branding": False,
        },
    },
    "standard": {
        "display_name": "Standard",
        "price_monthly_usd": 19,
        "features": {
            "platform_subdomain": True,
            "custom_domain": False,
            "remove_platform_branding": True,
        },
    },
    "premium": {
        "display_name": "Premium",
        "price_monthly_usd": 49,
        "features": {
            "platform_subdomain": True,
            "custom_domain": True,
            "remove_platform_branding": True,
        },
    },
}


def get_plan(plan_name: str | None) -> dict:
    """Get plan config by name. Falls back to 'free'."""
    return PLAN_MATRIX.get(plan_name or "free", PLAN_MATRIX["free"])


def get_plan_feature(plan_name: str | None, feature: str) -> bool:
    """Check if a feature is available for a plan."""
    plan = get_plan(plan_name)
    return plan["features"].get(feature, False)


def get_upgrade_suggestion(current_plan: str | None, feature: str) -> str | None:
    """Suggest which plan to upgrade to for a given feature."""
    if get_plan_feature(current_plan, feature):
        return None  # Already available

    for plan_name in ("standard", "premium"):
        if get_plan_feature(plan_name, feature):
            plan = get_plan(plan_name)
            return (
                f"Upgrade to {plan['display_name']} to use this feature "
                f"(${plan['price_monthly_usd']}/month)"
            )
    return None
