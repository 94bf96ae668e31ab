"""
Default subscription plan catalogue.

Plain data shared by the plan seed migration and the seed_plans command.
Prices are in smallest currency unit; yearly is ten times monthly.
"""

DEFAULT_PLANS = [
    {
        "tier": "FREE",
        "name": "Free",
        "description": "Start selling with the essentials.",
        "monthly_price": 0,
        "yearly_price": 0,
        "sort_order": 0,
        "features": {
            "max_products": 3,
            "analytics": False,
            "support_level": "community",
            "verification_discount_percent": 0,
            "api_access": False,
        },
    },
    {
        "tier": "BASIC",
        "name": "Basic",
        "description": "More listings and sales analytics.",
        "monthly_price": 9900,
        "yearly_price": 99000,
        "sort_order": 1,
        "features": {
            "max_products": 20,
            "analytics": True,
            "support_level": "email",
            "verification_discount_percent": 5,
            "api_access": False,
        },
    },
    {
        "tier": "PRO",
        "name": "Pro",
        "description": "For established sellers.",
        "monthly_price": 29900,
        "yearly_price": 299000,
        "sort_order": 2,
        "features": {
            "max_products": 100,
            "analytics": True,
            "support_level": "priority",
            "verification_discount_percent": 10,
            "api_access": True,
        },
    },
    {
        "tier": "ENTERPRISE",
        "name": "Enterprise",
        "description": "Unlimited listings and a dedicated manager.",
        "monthly_price": 99900,
        "yearly_price": 999000,
        "sort_order": 3,
        "features": {
            "max_products": None,
            "analytics": True,
            "support_level": "dedicated",
            "verification_discount_percent": 20,
            "api_access": True,
        },
    },
]
