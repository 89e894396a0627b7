"""
Loyalty program policy constants.

Single source of truth for tier boundaries, bonus sizes, profit controls and
rate budgets. Engines import from here; nothing else should hard-code these.
"""
from decimal import Decimal

# Tiers, lowest first. Thresholds are lifetime points.
TIER_ORDER = ['bronze', 'silver', 'gold', 'platinum']
TIER_THRESHOLDS = {
    'bronze': 0,
    'silver': 500,
    'gold': 1500,
    'platinum': 3000,
}

# Earning
MIN_EARN_POINTS = 1
MAX_EARN_POINTS = 10000

# Admin adjustments
MAX_ADMIN_ADJUSTMENT = 10000

# Bonuses
BIRTHDAY_BONUS_POINTS = 100
REFERRER_BONUS_POINTS = 200
REFEREE_BONUS_POINTS = 100

# Redemption profit controls
DOLLARS_PER_POINT = Decimal('0.01')
MAX_GIVEBACK_PERCENTAGE = Decimal('8')
COGS_WINDOW_DAYS = 30
MAX_DAILY_REDEMPTIONS = 5
REDEMPTION_EXPIRY_DAYS = 30
REDEMPTION_CODE_LENGTH = 8

# Spin wheel
SPIN_DAILY_COGS_CEILING = Decimal('50.00')

SPIN_OUTCOMES = {
    'nothing': {'result': 'nothing', 'value': 0, 'cogs': Decimal('0'),
                'description': 'Better luck next time!'},
    'points_small': {'result': 'points', 'value': 25, 'cogs': Decimal('0.25'),
                     'description': '25 bonus points'},
    'points_medium': {'result': 'points', 'value': 50, 'cogs': Decimal('0.50'),
                      'description': '50 bonus points'},
    'points_large': {'result': 'points', 'value': 100, 'cogs': Decimal('1.00'),
                     'description': '100 bonus points'},
    'discount_5': {'result': 'discount', 'value': 5, 'cogs': Decimal('1.50'),
                   'description': '5% off your next order'},
    'discount_10': {'result': 'discount', 'value': 10, 'cogs': Decimal('3.00'),
                    'description': '10% off your next order'},
    'discount_15': {'result': 'discount', 'value': 15, 'cogs': Decimal('4.50'),
                    'description': '15% off your next order'},
    'free_side': {'result': 'free_item', 'value': 1, 'cogs': Decimal('2.00'),
                  'description': 'Free side'},
    'free_dessert': {'result': 'free_item', 'value': 1, 'cogs': Decimal('1.50'),
                     'description': 'Free dessert'},
    'free_burger': {'result': 'free_item', 'value': 1, 'cogs': Decimal('5.00'),
                    'description': 'Free burger'},
}

# Cumulative walk order matters: first bucket the draw lands in wins
SPIN_PROBABILITIES = {
    'bronze': [
        ('nothing', 0.40),
        ('points_small', 0.35),
        ('points_medium', 0.15),
        ('discount_5', 0.08),
        ('free_side', 0.02),
    ],
    'silver': [
        ('nothing', 0.30),
        ('points_small', 0.30),
        ('points_medium', 0.20),
        ('discount_5', 0.12),
        ('discount_10', 0.05),
        ('free_side', 0.03),
    ],
    'gold': [
        ('nothing', 0.25),
        ('points_small', 0.25),
        ('points_medium', 0.25),
        ('discount_5', 0.10),
        ('discount_10', 0.08),
        ('free_side', 0.05),
        ('free_dessert', 0.02),
    ],
    'platinum': [
        ('nothing', 0.20),
        ('points_small', 0.20),
        ('points_medium', 0.25),
        ('points_large', 0.10),
        ('discount_10', 0.10),
        ('discount_15', 0.05),
        ('free_side', 0.05),
        ('free_dessert', 0.03),
        ('free_burger', 0.02),
    ],
}

# Payment-triggered earning
POINTS_PER_DOLLAR = 10
MIN_ORDER_AMOUNT_CENTS = 500
SUPPORTED_CURRENCIES = ('usd',)
TIER_MULTIPLIERS = {
    'bronze': Decimal('1.0'),
    'silver': Decimal('1.2'),
    'gold': Decimal('1.5'),
    'platinum': Decimal('2.0'),
}

# Rate budgets: operation -> (max requests, window in milliseconds)
RATE_LIMITS = {
    'earnPoints': (10, 60 * 1000),
    'redeemPoints': (5, 60 * 60 * 1000),
    'processReferral': (5, 60 * 60 * 1000),
    'markCouponUsed': (20, 60 * 1000),
    'validateRedemption': (30, 60 * 1000),
    'elevateUserToAdmin': (5, 60 * 1000),
    'spinWheel': (10, 60 * 1000),
}

# Analytics
MAX_ANALYTICS_DAYS = 365
ANALYTICS_CACHE_SECONDS = 300

# Seed data for the reward catalog (flask rewards seed-catalog)
DEFAULT_REWARD_CATALOG = [
    {
        'id': 'freeside100',
        'name': 'Free Side',
        'description': 'Any side dish on us',
        'reward_type': 'free_item',
        'points_cost': 100,
        'max_cogs_value': Decimal('2.00'),
        'tier_restrictions': [],
        'sort_order': 1,
    },
    {
        'id': 'freedessert150',
        'name': 'Free Dessert',
        'description': 'Any dessert from the menu',
        'reward_type': 'free_item',
        'points_cost': 150,
        'max_cogs_value': Decimal('4.00'),
        'tier_restrictions': [],
        'sort_order': 2,
    },
    {
        'id': 'discount10300',
        'name': '10% Off Next Order',
        'description': 'Ten percent off your next order',
        'reward_type': 'discount',
        'points_cost': 300,
        'max_cogs_value': Decimal('0'),
        'tier_restrictions': [],
        'sort_order': 3,
    },
    {
        'id': 'hat400',
        'name': 'Branded Hat',
        'description': 'Embroidered cap',
        'reward_type': 'merchandise',
        'points_cost': 400,
        'max_cogs_value': Decimal('8.00'),
        'tier_restrictions': ['silver', 'gold', 'platinum'],
        'sort_order': 4,
    },
    {
        'id': 'freeburger500',
        'name': 'Free Burger',
        'description': 'Any burger from the menu',
        'reward_type': 'free_item',
        'points_cost': 500,
        'max_cogs_value': Decimal('6.00'),
        'tier_restrictions': [],
        'sort_order': 5,
    },
    {
        'id': 'shirt600',
        'name': 'Branded T-Shirt',
        'description': 'Soft cotton tee',
        'reward_type': 'merchandise',
        'points_cost': 600,
        'max_cogs_value': Decimal('12.00'),
        'tier_restrictions': ['gold', 'platinum'],
        'sort_order': 6,
    },
    {
        'id': 'discount20700',
        'name': '20% Off Next Order',
        'description': 'Twenty percent off your next order',
        'reward_type': 'discount',
        'points_cost': 700,
        'max_cogs_value': Decimal('0'),
        'tier_restrictions': [],
        'sort_order': 7,
    },
    {
        'id': 'cookbook1000',
        'name': 'House Cookbook',
        'description': 'Signed copy of the house cookbook',
        'reward_type': 'merchandise',
        'points_cost': 1000,
        'max_cogs_value': Decimal('15.00'),
        'tier_restrictions': ['platinum'],
        'sort_order': 8,
    },
]
