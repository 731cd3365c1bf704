"""
Default runtime settings and package catalogue.

Every value here is only a fallback: SettingsService.getSetting() returns
the stored value when present. Intervals are in seconds.
"""

# key -> (default value, group, description)
DEFAULT_SETTINGS = {
    # Pricing
    "token_price": (None, "pricing", "USD per token (falls back to DEFAULT_TOKEN_PRICE)"),

    # ROI
    "daily_roi_rate": (5, "roi", "ROI per cycle, permille of active volume"),
    "max_roi_days": (400, "roi", "Days after registration during which ROI accrues"),
    "income_distribution_interval": (86400, "roi", "Seconds between ROI cycles per user"),

    # Binary
    "binary_fee": (10, "binary", "Percent of matched volume paid as binary income"),
    "binary_distribution_interval": (86400, "binary", "Seconds between binary cycles per user"),

    # Level income
    "level_income_fees": ([5, 1, 1, 1, 1, 1, 5], "level", "Percent of purchase per referrer level"),

    # Autopool
    "autopool_fees": (
        [0.05, 0.05, 0.075, 0.0375, 0.01875, 0.01875,
         0.00625, 0.00625, 0.00625, 0.00625, 0.00625, 0.0125],
        "autopool",
        "Flat income per ancestor depth on each enrollment"
    ),

    # Ranks and rewards
    "rank_requirements": ({}, "rank", "Overrides for rank thresholds"),
    "rank_update_interval": (86400, "rank", "Seconds between rank recalculations"),
    "weekly_reward_percentages": (
        {"1": 1, "2": 1, "3": 1.5, "4": 2},
        "reward",
        "Percent of weekly turnover shared per rank"
    ),
    "weekly_reward_interval": (604800, "reward", "Seconds between weekly reward runs"),

    # Withdrawal
    "withdrawal_fee": (10, "withdrawal", "Withdrawal fee percent"),
    "min_withdrawal": (10, "withdrawal", "Minimum withdrawal amount (tokens)"),
}

# Marker written by the weekly reward engine, not seeded
LAST_WEEKLY_REWARD_KEY = "last_weekly_reward_dist"

# (packageIndex, name, priceUSD)
DEFAULT_PACKAGES = [
    (0, "Starter", "2.5"),
    (1, "Basic", "5"),
    (2, "Bronze", "10"),
    (3, "Silver", "25"),
    (4, "Gold", "50"),
    (5, "Platinum", "100"),
    (6, "Diamond", "250"),
    (7, "Elite", "500"),
    (8, "Crown", "1000"),
]

DEFAULT_ROI_MULTIPLIER = "4"
