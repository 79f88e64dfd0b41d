"""
AetherDEX Core Constants

This module consolidates all global constants and environment configuration
used throughout the codebase. Constants are organized by category for easy
reference and maintenance.
"""
import ast
from dotenv import dotenv_values

# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================
# Load environment variables once at module import
_config = dotenv_values(".env")

ENGINE_DEFAULTS = {
    'AETHER_LOCAL_CHAIN_ID':           '1',
    'AETHER_OWNER':                    '0x00000000000000000000000000000000000a3e7d',
}

LOGGER_DEFAULTS = {
    'LOG_LEVEL':                       'INFO',
    'LOG_FORMAT':                      '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    'LOG_DATE_FORMAT':                 '%Y-%m-%dT%H:%M:%S',
    'LOG_CONSOLE_HIGHLIGHTING':        'True',
    'LOG_FILE_OUTPUT':                 'False',
}

LOG_MAX_FILE_SIZE = 10 * 1024 * 1024 # 10MB
LOG_BACKUP_COUNT = 5


# WARNING: THE VALUES BELOW ARE PROTOCOL CONSTANTS. POOLS, FEE TIERS AND ORACLE
# SLOTS CREATED WITH ONE SET OF VALUES ARE NOT COMPATIBLE WITH ANOTHER.

# ==================================================================================
# ADDRESSES & NUMERIC LIMITS
# ==================================================================================
ZERO_ADDRESS = '0x0000000000000000000000000000000000000000'
NATIVE_TOKEN = 'NATIVE'
MAX_UINT112 = 2**112 - 1
MAX_UINT256 = 2**256 - 1
BPS = 10_000


# ==================================================================================
# POOL ENGINE
# ==================================================================================
FEE_DENOMINATOR = 1_000_000          # fees are parts-per-million
MINIMUM_LIQUIDITY = 1000             # permanently locked on the first deposit
PRICE_PRECISION = 10**18             # fixed-point scale for reserve-ratio prices


# ==================================================================================
# FEE REGISTRY
# ==================================================================================
MIN_FEE = 100                        # 0.01 %
MAX_FEE = 100_000                    # 10 %
FEE_STEP = 50                        # fees live on a 0.005 % grid above MIN_FEE
MAX_TICK_SPACING = 16_384
VOLUME_THRESHOLD = 1_000 * 10**18
MAX_VOLUME_MULTIPLIER = 3

# Catalog seeded on a fresh registry: fee (ppm) -> (tick spacing, description)
DEFAULT_FEE_TIERS = {
    500:    (10,  'Stable pairs'),
    3000:   (60,  'Standard pairs'),
    10000:  (200, 'Exotic pairs'),
}


# ==================================================================================
# GOVERNANCE
# ==================================================================================
GOVERNANCE_VOTING_DELAY_SECONDS = 86_400          # 1 day
GOVERNANCE_VOTING_PERIOD_SECONDS = 3 * 86_400     # 3 days
GOVERNANCE_EXECUTION_DELAY_SECONDS = 2 * 86_400   # 2 days
GOVERNANCE_GRACE_PERIOD_SECONDS = 14 * 86_400     # 14 days
GOVERNANCE_QUORUM_BPS = 400                        # 4 % of total voting power
GOVERNANCE_PROPOSAL_THRESHOLD = 1


# ==================================================================================
# TWAP ORACLE
# ==================================================================================
OBSERVATION_SLOTS = 65_535
TWAP_WINDOW_SECONDS = 3_600
ORACLE_STALENESS_SECONDS = 300


# ==================================================================================
# ROUTER / CROSS-CHAIN
# ==================================================================================
DEFAULT_DEADLINE_SECONDS = 1_200
DEFAULT_SLIPPAGE_BPS = 50            # 0.5 %
# Ethereum, Optimism, BSC, Polygon, Base, Arbitrum, Avalanche
DEFAULT_SUPPORTED_CHAINS = (1, 10, 56, 137, 8453, 42161, 43114)
TREASURY_ADDRESS = '0x0000000000000000000000000000000000007ea5'
RELAY_VAULT_ADDRESS = '0x000000000000000000000000000000000000b71d'
CROSS_CHAIN_ESCROW_ADDRESS = '0x000000000000000000000000000000000000e5c0'
# LayerZero-style endpoints are quoted in native wei; defaults are small so
# local simulations stay readable.
DEFAULT_RELAY_BASE_FEE = 100_000
DEFAULT_RELAY_PER_BYTE_FEE = 16


# ==================================================================================
# CONFIGURATION WRAPPERS
# ==================================================================================
class ConfigString(str):
    """
    String subclass that stores a default value.
    """
    def __new__(cls, value, default):
        obj = str.__new__(cls, value)
        obj._default = default
        return obj

    def default(self):
        return self._default

class ConfigBool(int):
    """
    Int subclass acting as a boolean that stores a default value.
    """
    def __new__(cls, value, default):
        obj = int.__new__(cls, bool(value))
        obj._default = default
        return obj

    def default(self):
        return self._default

    def __repr__(self):
        return str(bool(self))

    def __str__(self):
        return str(bool(self))

    def __eq__(self, other):
        return bool(self) == other

    __hash__ = int.__hash__


# ==================================================================================
# DYNAMIC CONFIGURATION LOADING
# ==================================================================================
DEFAULTS = ENGINE_DEFAULTS | LOGGER_DEFAULTS
namespace = globals()

def parse_bool(v):
    """
    Convert "True"/"False" (any casing, with surrounding whitespace) into bool.
    Avoids exceptions by only calling ast.literal_eval for known literals.
    """
    if not isinstance(v, str):
        return v
    s = v.strip()
    if not s:
        return v
    if s.casefold() in {"true", "false"}:
        return ast.literal_eval(s.title())
    return v

for key, default_raw in DEFAULTS.items():
    # dotenv_values returns strings or None. None is treated as missing.
    raw = _config.get(key)
    value_raw = default_raw if raw is None else raw

    value = parse_bool(value_raw)
    default_val = parse_bool(default_raw)

    if isinstance(value, bool):
        namespace[key] = ConfigBool(value, default_val)
    else:
        namespace[key] = ConfigString(value_raw, default_val)
