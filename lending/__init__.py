"""
lending - Over-collateralized Lending Ledger

An accounting core for a single-market lending protocol: collateral
deposits, borrowing against collateral, interest accrual on a kinked rate
curve, liquidation of undercollateralized positions, protocol reserves and
flash loans.

Usage:
    from lending import LendingLedger, SECONDS_PER_YEAR

    ledger = LendingLedger("main", admin="admin", tokens={"native": token})

    ledger.deposit("alice", 150)
    ledger.borrow("alice", 100)

    # One year later
    ledger.advance_time(ledger.current_time + SECONDS_PER_YEAR)
    result = ledger.repay("alice", 50)
"""

# Core types
from .core import (
    LedgerView,
    TokenClient,
    Operation,
    OperationRecord,
    EventSink,
    BalanceMap,
    # Constants
    BPS_SCALE,
    SECONDS_PER_DAY,
    SECONDS_PER_YEAR,
    PRICE_DECIMALS,
    DEFAULT_PRICE,
    I128_MIN,
    I128_MAX,
    NATIVE_ASSET,
    POOL_ACCOUNT,
    # Exceptions
    LendingError,
    InvalidAmount,
    InsufficientCollateral,
    InsufficientCollateralRatio,
    MaxBorrowExceeded,
    OperationPaused,
    EmergencyPaused,
    Overflow,
    NotLiquidatable,
    ExceedsCloseFactor,
    PriceNotAvailable,
    ParameterChangeTooLarge,
    InvalidParameter,
    Unauthorized,
    NoDebt,
    InsufficientBalance,
    InsufficientLiquidity,
    InsufficientReserve,
    TreasuryNotSet,
    AssetNotEnabled,
    FlashLoanNotRepaid,
    Reentrancy,
    DeadlineExpired,
    TransferFailed,
    # Checked arithmetic
    checked_add,
    checked_sub,
    checked_mul,
    checked_div,
    mul_div,
    bps_of,
)

# Records
from .position import (
    Position,
    ProtocolTotals,
    AssetParams,
    UserActivity,
)

# Storage
from .storage import (
    StorageKey,
    KeyValueStore,
    InMemoryStore,
    position_key,
    totals_key,
    reserve_factor_key,
    asset_params_key,
    activity_key,
)

# Risk configuration
from .risk_config import (
    RiskConfig,
    DEFAULT_MIN_COLLATERAL_RATIO_BPS,
    DEFAULT_LIQUIDATION_THRESHOLD_BPS,
    DEFAULT_CLOSE_FACTOR_BPS,
    DEFAULT_LIQUIDATION_INCENTIVE_BPS,
    MAX_PARAMETER_CHANGE_BPS,
    validate_risk_config,
    check_change_limit,
    update_risk_config,
    set_pause_switch,
    set_emergency_pause,
    require_not_paused,
    calculate_max_liquidatable,
    calculate_liquidation_incentive,
    is_below_threshold,
    meets_min_collateral_ratio,
)

# Interest rate model
from .interest_rate import (
    InterestRateConfig,
    validate_interest_rate_config,
    calculate_utilization,
    calculate_borrow_rate,
    calculate_supply_rate,
    calculate_rates,
    borrow_rate_curve,
    update_interest_rate_config,
    set_emergency_adjustment,
)

# Interest accrual
from .accrual import (
    calculate_accrued_interest,
    accrue,
)

# Collateral
from .collateral import (
    calculate_collateral_value,
    calculate_collateral_ratio,
    calculate_max_borrowable,
    position_ratio,
    check_borrow,
    check_withdraw,
)

# Liquidation
from .liquidation import (
    LiquidationQuote,
    calculate_collateral_in_debt_terms,
    calculate_collateral_seized,
    calculate_liquidation_ratio,
    calculate_safe_seizure,
    is_liquidatable,
    calculate_liquidation,
    apply_liquidation,
    calculate_max_liquidation,
)

# Reserves
from .reserve import (
    DEFAULT_RESERVE_FACTOR_BPS,
    MAX_RESERVE_FACTOR_BPS,
    validate_reserve_factor,
    calculate_reserve_split,
    accrue_reserve,
    credit_fee,
    withdraw_reserve,
)

# Flash loans
from .flash_loan import (
    FlashLoanConfig,
    FlashLoanCallback,
    DEFAULT_FLASH_LOAN_FEE_BPS,
    validate_flash_loan_config,
    calculate_flash_loan_fee,
    check_flash_loan_request,
    check_flash_loan_repayment,
)

# Prices
from .pricing_source import (
    PriceOracle,
    StaticPriceOracle,
    TimeSeriesPriceOracle,
    resolve_price,
)

# Ledger
from .ledger import (
    LendingLedger,
    BorrowResult,
    RepayResult,
    FlashLoanResult,
)

__all__ = [
    # Core
    'LedgerView', 'TokenClient', 'Operation', 'OperationRecord', 'EventSink', 'BalanceMap',
    'BPS_SCALE', 'SECONDS_PER_DAY', 'SECONDS_PER_YEAR', 'PRICE_DECIMALS', 'DEFAULT_PRICE',
    'I128_MIN', 'I128_MAX', 'NATIVE_ASSET', 'POOL_ACCOUNT',
    # Exceptions
    'LendingError', 'InvalidAmount', 'InsufficientCollateral', 'InsufficientCollateralRatio',
    'MaxBorrowExceeded', 'OperationPaused', 'EmergencyPaused', 'Overflow', 'NotLiquidatable',
    'ExceedsCloseFactor', 'PriceNotAvailable',
    'ParameterChangeTooLarge', 'InvalidParameter', 'Unauthorized', 'NoDebt',
    'InsufficientBalance', 'InsufficientLiquidity', 'InsufficientReserve', 'TreasuryNotSet',
    'AssetNotEnabled', 'FlashLoanNotRepaid', 'Reentrancy', 'DeadlineExpired', 'TransferFailed',
    # Arithmetic
    'checked_add', 'checked_sub', 'checked_mul', 'checked_div', 'mul_div', 'bps_of',
    # Records
    'Position', 'ProtocolTotals', 'AssetParams', 'UserActivity',
    # Storage
    'StorageKey', 'KeyValueStore', 'InMemoryStore',
    'position_key', 'totals_key', 'reserve_factor_key', 'asset_params_key', 'activity_key',
    # Risk
    'RiskConfig', 'DEFAULT_MIN_COLLATERAL_RATIO_BPS', 'DEFAULT_LIQUIDATION_THRESHOLD_BPS',
    'DEFAULT_CLOSE_FACTOR_BPS', 'DEFAULT_LIQUIDATION_INCENTIVE_BPS', 'MAX_PARAMETER_CHANGE_BPS',
    'validate_risk_config', 'check_change_limit', 'update_risk_config', 'set_pause_switch',
    'set_emergency_pause', 'require_not_paused', 'calculate_max_liquidatable',
    'calculate_liquidation_incentive', 'is_below_threshold', 'meets_min_collateral_ratio',
    # Interest rate
    'InterestRateConfig', 'validate_interest_rate_config', 'calculate_utilization',
    'calculate_borrow_rate', 'calculate_supply_rate', 'calculate_rates', 'borrow_rate_curve',
    'update_interest_rate_config', 'set_emergency_adjustment',
    # Accrual
    'calculate_accrued_interest', 'accrue',
    # Collateral
    'calculate_collateral_value', 'calculate_collateral_ratio', 'calculate_max_borrowable',
    'position_ratio', 'check_borrow', 'check_withdraw',
    # Liquidation
    'LiquidationQuote', 'calculate_collateral_in_debt_terms', 'calculate_collateral_seized',
    'calculate_liquidation_ratio', 'calculate_safe_seizure', 'is_liquidatable', 'calculate_liquidation',
    'apply_liquidation', 'calculate_max_liquidation',
    # Reserves
    'DEFAULT_RESERVE_FACTOR_BPS', 'MAX_RESERVE_FACTOR_BPS', 'validate_reserve_factor',
    'calculate_reserve_split', 'accrue_reserve', 'credit_fee', 'withdraw_reserve',
    # Flash loans
    'FlashLoanConfig', 'FlashLoanCallback', 'DEFAULT_FLASH_LOAN_FEE_BPS',
    'validate_flash_loan_config', 'calculate_flash_loan_fee', 'check_flash_loan_request',
    'check_flash_loan_repayment',
    # Prices
    'PriceOracle', 'StaticPriceOracle', 'TimeSeriesPriceOracle', 'resolve_price',
    # Ledger
    'LendingLedger', 'BorrowResult', 'RepayResult', 'FlashLoanResult',
]

__version__ = '1.0.0'
