"""
ledger.py - Stateful Lending Ledger

The LendingLedger class is the central state manager of the lending core.
It is the only module that mutates positions, totals and configuration,
ensuring controlled and auditable changes.

Key responsibilities:
    - Implements LedgerView protocol for safe read-only access by callbacks
    - Executes every operation atomically (all writes succeed or none do)
    - Accrues interest before every check so ratios see up-to-date debt
    - Orders work as checks, effects, then token interactions
    - Emits exactly one OperationRecord per successful operation
"""

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple
import copy

from .core import (
    # Types
    Operation, OperationRecord, TokenClient, EventSink, BalanceMap,
    # Constants
    NATIVE_ASSET, POOL_ACCOUNT, DEFAULT_PRICE,
    # Exceptions
    LendingError, InvalidAmount, InvalidParameter, InsufficientBalance,
    InsufficientLiquidity, MaxBorrowExceeded, NoDebt, Unauthorized,
    AssetNotEnabled, Reentrancy, DeadlineExpired,
    # Arithmetic
    bps_of, checked_add,
)
from .storage import (
    KeyValueStore, InMemoryStore, StorageKey,
    position_key, totals_key, reserve_factor_key, asset_params_key, activity_key,
    RISK_CONFIG_KEY, INTEREST_RATE_CONFIG_KEY, TREASURY_KEY, FLASH_LOAN_CONFIG_KEY,
    USERS_KEY, ADMIN_KEY,
)
from .position import Position, ProtocolTotals, AssetParams, UserActivity
from .risk_config import (
    RiskConfig, validate_risk_config, update_risk_config, require_not_paused,
)
from .risk_config import set_pause_switch as _set_pause_switch
from .risk_config import set_emergency_pause as _set_emergency_pause
from .interest_rate import (
    InterestRateConfig, validate_interest_rate_config, calculate_rates,
)
from .interest_rate import update_interest_rate_config as _update_interest_rate_config
from .interest_rate import set_emergency_adjustment as _set_emergency_adjustment
from .accrual import accrue
from .collateral import (
    calculate_collateral_value, calculate_max_borrowable, check_borrow, check_withdraw,
    position_ratio,
)
from .liquidation import (
    LiquidationQuote, calculate_liquidation, apply_liquidation, calculate_liquidation_ratio,
    calculate_max_liquidation, is_liquidatable,
)
from .reserve import (
    DEFAULT_RESERVE_FACTOR_BPS, validate_reserve_factor, accrue_reserve, credit_fee,
    withdraw_reserve,
)
from .flash_loan import (
    FlashLoanConfig, FlashLoanCallback, validate_flash_loan_config,
    check_flash_loan_request, check_flash_loan_repayment,
)
from .pricing_source import PriceOracle, resolve_price


@dataclass(frozen=True, slots=True)
class RepayResult:
    """Outcome of a repayment: debt still owed and how the payment was applied."""
    remaining_debt: int
    interest_paid: int
    principal_paid: int


@dataclass(frozen=True, slots=True)
class BorrowResult:
    """Outcome of a borrow: the debt taken on, the fee withheld and the amount sent."""
    amount: int
    fee: int
    received: int


@dataclass(frozen=True, slots=True)
class FlashLoanResult:
    """Outcome of a flash loan: the amount lent, the fee charged and what the pool received back."""
    amount: int
    fee: int
    repaid: int


class LendingLedger:
    """
    Over-collateralized lending ledger for one market.

    A market pairs a collateral asset with a debt asset (the same asset by
    default). Users deposit collateral, borrow against it, repay with
    interest, and can be liquidated when their collateral ratio falls below
    the liquidation threshold.

    Implements the LedgerView protocol, so the ledger itself is passed to
    flash loan callbacks for read access.

    Design Principles:
        - Always accrues: interest is brought up to date before every check.
        - Always atomic: store writes are journaled and restored in reverse
          if any step raises, including a failed token transfer.
        - Always logs: every successful operation appends an OperationRecord
          and is pushed to every subscribed event sink.

    Thread Safety:
        Not thread-safe. Operations run to completion one at a time; a
        mutating call made while another is in progress raises Reentrancy.

    Example:
        ledger = LendingLedger("main", admin="admin", tokens={"native": token})
        ledger.deposit("alice", 150)
        ledger.borrow("alice", 100)
        ledger.advance_time(ledger.current_time + SECONDS_PER_YEAR)
        ledger.repay("alice", 50)
    """

    def __init__(
        self,
        name: str,
        admin: str,
        tokens: Mapping[str, TokenClient],
        collateral_asset: str = NATIVE_ASSET,
        debt_asset: Optional[str] = None,
        oracle: Optional[PriceOracle] = None,
        store: Optional[KeyValueStore] = None,
        risk_config: Optional[RiskConfig] = None,
        interest_rate_config: Optional[InterestRateConfig] = None,
        reserve_factor_bps: int = DEFAULT_RESERVE_FACTOR_BPS,
        flash_loan_config: Optional[FlashLoanConfig] = None,
        asset_params: Optional[Mapping[str, AssetParams]] = None,
        treasury: Optional[str] = None,
        pool_account: str = POOL_ACCOUNT,
        initial_time: int = 0,
        verbose: bool = True,
        test_mode: bool = False,
    ):
        """
        Create a ledger and write its initial configuration to the store.

        Args:
            name: Ledger identifier
            admin: Address allowed to run admin operations
            tokens: Token client per asset; must cover both market assets
            collateral_asset: Asset deposited as collateral
            debt_asset: Asset borrowed (default: collateral_asset)
            oracle: Price oracle for cross-asset liquidation (None: default prices)
            store: Storage backend (default: a new InMemoryStore)
            risk_config: Initial RiskConfig (default: RiskConfig())
            interest_rate_config: Initial rate curve (default: InterestRateConfig())
            reserve_factor_bps: Reserve factor for the debt asset
            flash_loan_config: Flash loan limits and fee (default: FlashLoanConfig())
            asset_params: Per-asset parameters (default: AssetParams() for each)
            treasury: Optional treasury address for reserve withdrawals
            pool_account: Token account holding pooled funds
            initial_time: Starting ledger time in seconds
            verbose: Print each applied or rejected operation (default: True)
            test_mode: Allow set_position() calls (default: False)

        Raises:
            InvalidParameter: if a configuration is invalid
            ValueError: if tokens are missing for a market asset
        """
        self.name = name
        self.collateral_asset = collateral_asset
        self.debt_asset = debt_asset or collateral_asset
        self.same_asset = self.collateral_asset == self.debt_asset
        self.pool_account = pool_account
        self.tokens: Dict[str, TokenClient] = dict(tokens)
        for asset in (self.collateral_asset, self.debt_asset):
            if asset not in self.tokens:
                raise ValueError(f"No token client for asset {asset}")
        self.oracle = oracle
        self.store: KeyValueStore = store if store is not None else InMemoryStore()
        self.operation_log: List[OperationRecord] = []
        self.verbose = verbose
        self._test_mode = test_mode
        self._current_time: int = initial_time
        # Monotonic sequence counter, one step per successful operation
        self._next_sequence: int = 0
        self._sinks: List[EventSink] = []
        # (record, error) for each sink that raised on a committed operation
        self.sink_failures: List[Tuple[OperationRecord, Exception]] = []
        # Undo journal of (key, previous value) while an operation runs
        self._journal: Optional[List[Tuple[StorageKey, Any]]] = None
        self._locked = False

        risk_config = risk_config or RiskConfig()
        interest_rate_config = interest_rate_config or InterestRateConfig()
        flash_loan_config = flash_loan_config or FlashLoanConfig()
        validate_risk_config(risk_config)
        validate_interest_rate_config(interest_rate_config)
        validate_reserve_factor(reserve_factor_bps)
        validate_flash_loan_config(flash_loan_config)

        self.store.set(ADMIN_KEY, admin)
        self.store.set(RISK_CONFIG_KEY, risk_config)
        self.store.set(INTEREST_RATE_CONFIG_KEY, interest_rate_config)
        self.store.set(FLASH_LOAN_CONFIG_KEY, flash_loan_config)
        self.store.set(reserve_factor_key(self.debt_asset), reserve_factor_bps)
        params = dict(asset_params or {})
        for asset in sorted({self.collateral_asset, self.debt_asset} | set(params)):
            self.store.set(asset_params_key(asset), params.get(asset, AssetParams()))
        if treasury:
            self.store.set(TREASURY_KEY, treasury)

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_time(self) -> int:
        """Current ledger time in seconds."""
        return self._current_time

    def get_position(self, user: str) -> Position:
        """
        Get a user's stored position.

        Returns an empty position stamped with the current time if the user
        has none. Interest is as of the last accrual; see preview_position().
        """
        position = self.store.get(position_key(user))
        if position is None:
            return Position(last_accrual_time=self._current_time)
        return position

    def get_totals(self, asset: str) -> ProtocolTotals:
        """Get aggregate totals for an asset (zeros if never touched)."""
        totals = self.store.get(totals_key(asset))
        return totals if totals is not None else ProtocolTotals()

    def collateral_ratio(self, user: str) -> Optional[int]:
        """
        Collateral ratio of the stored position in bps.

        Uses the collateral factor for cross-asset markets. None when the
        user has no debt.
        """
        return position_ratio(self.get_position(user), self._collateral_factor(), self.same_asset)

    @property
    def admin(self) -> str:
        return self.store.get(ADMIN_KEY)

    @property
    def risk_config(self) -> RiskConfig:
        return self.store.get(RISK_CONFIG_KEY)

    @property
    def interest_rate_config(self) -> InterestRateConfig:
        return self.store.get(INTEREST_RATE_CONFIG_KEY)

    @property
    def flash_loan_config(self) -> FlashLoanConfig:
        return self.store.get(FLASH_LOAN_CONFIG_KEY)

    @property
    def treasury(self) -> Optional[str]:
        return self.store.get(TREASURY_KEY)

    def get_reserve_factor(self, asset: Optional[str] = None) -> int:
        """Reserve factor for an asset (default: the debt asset)."""
        factor = self.store.get(reserve_factor_key(asset or self.debt_asset))
        return factor if factor is not None else DEFAULT_RESERVE_FACTOR_BPS

    def get_asset_params(self, asset: str) -> AssetParams:
        params = self.store.get(asset_params_key(asset))
        return params if params is not None else AssetParams()

    def get_activity(self, user: str) -> UserActivity:
        activity = self.store.get(activity_key(user))
        return activity if activity is not None else UserActivity()

    def list_users(self) -> List[str]:
        """All users that have ever held a position, sorted."""
        return sorted(self.store.get(USERS_KEY) or ())

    def current_rates(self) -> Tuple[int, int, int]:
        """
        Current (utilization, borrow_rate, supply_rate) in bps.

        Utilization compares debt-asset borrows with collateral-asset deposits.
        """
        return calculate_rates(
            self.get_totals(self.debt_asset).total_borrows,
            self.get_totals(self.collateral_asset).total_collateral,
            self.interest_rate_config,
        )

    def preview_position(self, user: str) -> Position:
        """The user's position with interest accrued to now, without storing it."""
        position, _ = accrue(self.get_position(user), self.current_rates()[1], self._current_time)
        return position

    def max_borrowable(self, user: str) -> int:
        """Additional debt the user could take on now at the minimum ratio."""
        position = self.preview_position(user)
        value = calculate_collateral_value(position.collateral, self._collateral_factor(), self.same_asset)
        return calculate_max_borrowable(value, position.total_debt, self.risk_config)

    def liquidation_ratio(self, user: str) -> Optional[int]:
        """Price-converted collateral ratio used for liquidation eligibility."""
        collateral_price, debt_price = self._prices()
        return calculate_liquidation_ratio(
            self.preview_position(user), collateral_price, debt_price, self.same_asset
        )

    def is_liquidatable(self, user: str) -> bool:
        collateral_price, debt_price = self._prices()
        return is_liquidatable(
            self.preview_position(user), self.risk_config, collateral_price, debt_price, self.same_asset
        )

    def max_liquidation(self, user: str) -> int:
        """Largest debt amount a liquidator may repay for this user right now."""
        return calculate_max_liquidation(self.preview_position(user), self.risk_config)

    def available_liquidity(self, asset: Optional[str] = None) -> int:
        """Pool token balance not earmarked as reserves."""
        asset = asset or self.debt_asset
        balance = self.tokens[asset].balance_of(self.pool_account)
        return max(0, balance - self.get_totals(asset).reserve_balance)

    def verify_conservation(self) -> Dict[str, Any]:
        """
        Verify the aggregate totals against the per-user records.

        Checks:
        - total_collateral equals the sum of user collateral exactly
        - total_borrows is within one unit per user of the sum of user debt
        - reserve_balance does not exceed total_interest_accrued

        Returns:
            Dict with keys:
            - 'valid': bool - True if every check holds
            - 'totals': Dict[str, int] - the sums that were compared
            - 'discrepancies': List[Dict] - details of any violation

        Example:
            result = ledger.verify_conservation()
            assert result['valid'], f"Conservation violated: {result['discrepancies']}"
        """
        users = self.list_users()
        positions = [self.get_position(u) for u in users]
        collateral_sum = sum(p.collateral for p in positions)
        debt_sum = sum(p.total_debt for p in positions)
        collateral_totals = self.get_totals(self.collateral_asset)
        debt_totals = self.get_totals(self.debt_asset)
        discrepancies = []

        if collateral_totals.total_collateral != collateral_sum:
            discrepancies.append({
                'check': 'total_collateral',
                'expected': collateral_sum,
                'actual': collateral_totals.total_collateral,
                'difference': abs(collateral_totals.total_collateral - collateral_sum),
            })
        drift = abs(debt_totals.total_borrows - debt_sum)
        if drift > len(users):
            discrepancies.append({
                'check': 'total_borrows',
                'expected': debt_sum,
                'actual': debt_totals.total_borrows,
                'difference': drift,
            })
        for asset in sorted({self.collateral_asset, self.debt_asset}):
            totals = self.get_totals(asset)
            if totals.reserve_balance > totals.total_interest_accrued:
                discrepancies.append({
                    'check': 'reserve_balance',
                    'asset': asset,
                    'expected': totals.total_interest_accrued,
                    'actual': totals.reserve_balance,
                    'difference': totals.reserve_balance - totals.total_interest_accrued,
                })

        return {
            'valid': len(discrepancies) == 0,
            'totals': {
                'collateral_sum': collateral_sum,
                'debt_sum': debt_sum,
                'total_collateral': collateral_totals.total_collateral,
                'total_borrows': debt_totals.total_borrows,
                'reserve_balance': debt_totals.reserve_balance,
            },
            'discrepancies': discrepancies,
        }

    def snapshot(self) -> Dict[StorageKey, Any]:
        """Every stored record, keyed by storage key."""
        return {key: self.store.get(key) for key in self.store.keys()}

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: int) -> None:
        """
        Advance the ledger's clock.

        Time can only move forward, never backward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # EVENT SINKS
    # ========================================================================

    def subscribe(self, sink: EventSink) -> None:
        """
        Register a callable to receive every OperationRecord.

        Sinks run after the operation commits. A sink that raises does not
        fail the operation; the record and error are kept in sink_failures.
        """
        self._sinks.append(sink)

    def unsubscribe(self, sink: EventSink) -> None:
        self._sinks.remove(sink)

    # ========================================================================
    # USER OPERATIONS (Mutating)
    # ========================================================================

    def deposit(self, user: str, amount: int, deadline: Optional[int] = None) -> Position:
        """
        Deposit collateral.

        Args:
            user: Depositing address
            amount: Collateral amount (> 0)
            deadline: Optional absolute ledger time after which the call fails

        Returns:
            The user's position after the deposit

        Raises:
            InvalidAmount: if amount <= 0 or above the asset's max_deposit
            AssetNotEnabled: if deposits of the collateral asset are disabled
            InsufficientBalance: if the user's token balance is too low
        """
        with self._atomic(Operation.DEPOSIT.value):
            self._check_preconditions(Operation.DEPOSIT, deadline)
            self._require_positive(amount)
            params = self.get_asset_params(self.collateral_asset)
            if not params.deposit_enabled:
                raise AssetNotEnabled(f"deposits of {self.collateral_asset} are disabled")
            if params.max_deposit and amount > params.max_deposit:
                raise InvalidAmount(f"deposit {amount} exceeds max deposit {params.max_deposit}")
            token = self.tokens[self.collateral_asset]
            if token.balance_of(user) < amount:
                raise InsufficientBalance(f"{user} holds less than {amount} {self.collateral_asset}")

            position, _ = self._accrue_user(user)
            updated = replace(position, collateral=checked_add(position.collateral, amount))
            self._save_position(user, position, updated)
            self._record_activity(user, total_deposits=amount)

            token.transfer_from(self.pool_account, user, self.pool_account, amount)

        self._emit(Operation.DEPOSIT.value, user, {'amount': amount}, updated.to_dict())
        return updated

    def withdraw(self, user: str, amount: int, deadline: Optional[int] = None) -> Position:
        """
        Withdraw collateral.

        Raises:
            InvalidAmount: if amount <= 0
            InsufficientCollateral: if amount exceeds the user's collateral
            InsufficientCollateralRatio: if the remaining collateral cannot
                support the user's debt
            InsufficientLiquidity: if the pool cannot pay out amount
        """
        with self._atomic(Operation.WITHDRAW.value):
            self._check_preconditions(Operation.WITHDRAW, deadline)
            self._require_positive(amount)

            position, _ = self._accrue_user(user)
            check_withdraw(position, amount, self.risk_config, self._collateral_factor(), self.same_asset)
            token = self.tokens[self.collateral_asset]
            if token.balance_of(self.pool_account) < amount:
                raise InsufficientLiquidity(f"pool cannot pay out {amount} {self.collateral_asset}")

            updated = replace(position, collateral=position.collateral - amount)
            self._save_position(user, position, updated)
            self._record_activity(user, total_withdrawals=amount)

            token.transfer(self.pool_account, user, amount)

        self._emit(Operation.WITHDRAW.value, user, {'amount': amount}, updated.to_dict())
        return updated

    def borrow(self, user: str, amount: int, deadline: Optional[int] = None) -> BorrowResult:
        """
        Borrow against deposited collateral.

        The full amount is added to the user's debt. An origination fee
        (asset borrow_fee_bps) is withheld from the payout and credited to
        reserves.

        Raises:
            InvalidAmount: if amount <= 0
            InsufficientCollateral: if the user has no collateral
            InsufficientCollateralRatio: if the resulting ratio is below the minimum
            MaxBorrowExceeded: if amount exceeds max borrowable or the debt ceiling
            InsufficientLiquidity: if the pool cannot fund the payout
        """
        with self._atomic(Operation.BORROW.value):
            self._check_preconditions(Operation.BORROW, deadline)
            self._require_positive(amount)

            position, _ = self._accrue_user(user)
            check_borrow(position, amount, self.risk_config, self._collateral_factor(), self.same_asset)

            params = self.get_asset_params(self.debt_asset)
            totals = self.get_totals(self.debt_asset)
            if params.debt_ceiling and checked_add(totals.total_borrows, amount) > params.debt_ceiling:
                raise MaxBorrowExceeded(
                    f"borrow {amount} would exceed debt ceiling {params.debt_ceiling}"
                )
            fee = bps_of(amount, params.borrow_fee_bps)
            received = amount - fee
            if received > self.available_liquidity(self.debt_asset):
                raise InsufficientLiquidity(f"pool cannot fund {received} {self.debt_asset}")

            updated = replace(position, debt=checked_add(position.debt, amount))
            self._save_position(user, position, updated)
            if fee:
                self._put(totals_key(self.debt_asset), credit_fee(self.get_totals(self.debt_asset), fee))
            self._record_activity(user, total_borrows=amount)

            if received:
                self.tokens[self.debt_asset].transfer(self.pool_account, user, received)

        self._emit(
            Operation.BORROW.value, user,
            {'amount': amount, 'fee': fee, 'received': received},
            updated.to_dict(),
        )
        return BorrowResult(amount=amount, fee=fee, received=received)

    def repay(self, user: str, amount: int, deadline: Optional[int] = None) -> RepayResult:
        """
        Repay debt, interest first, then principal.

        amount is capped at the total owed; nothing beyond that is taken.
        The reserve share of the interest paid is credited to reserves.

        Raises:
            InvalidAmount: if amount <= 0
            NoDebt: if the user owes nothing
            InsufficientBalance: if the user's token balance cannot cover the payment
        """
        with self._atomic(Operation.REPAY.value):
            self._check_preconditions(Operation.REPAY, deadline)
            self._require_positive(amount)

            position, _ = self._accrue_user(user)
            if position.total_debt == 0:
                raise NoDebt(f"{user} has no debt")
            payment = min(amount, position.total_debt)
            token = self.tokens[self.debt_asset]
            if token.balance_of(user) < payment:
                raise InsufficientBalance(f"{user} holds less than {payment} {self.debt_asset}")

            interest_paid = min(payment, position.accrued_interest)
            principal_paid = payment - interest_paid
            updated = replace(
                position,
                debt=position.debt - principal_paid,
                accrued_interest=position.accrued_interest - interest_paid,
            )
            self._save_position(user, position, updated)
            self._realize_interest(interest_paid)
            self._record_activity(user, total_repayments=payment)

            token.transfer_from(self.pool_account, user, self.pool_account, payment)

        self._emit(
            Operation.REPAY.value, user,
            {'amount': payment, 'interest_paid': interest_paid, 'principal_paid': principal_paid},
            updated.to_dict(),
        )
        return RepayResult(
            remaining_debt=updated.total_debt,
            interest_paid=interest_paid,
            principal_paid=principal_paid,
        )

    def liquidate(
        self,
        liquidator: str,
        user: str,
        amount: int,
        deadline: Optional[int] = None,
    ) -> LiquidationQuote:
        """
        Repay part of an undercollateralized user's debt in exchange for collateral.

        The liquidator pays debt_liquidated in the debt asset and receives
        collateral_seized (incentive included) in the collateral asset.

        Args:
            liquidator: Address repaying the debt
            user: Borrower being liquidated
            amount: Debt to repay, at most the close factor share of total debt
            deadline: Optional absolute ledger time after which the call fails

        Returns:
            LiquidationQuote (debt_liquidated, collateral_seized, incentive, ...)

        Raises:
            InvalidParameter: if liquidator == user
            NotLiquidatable: if the user is not below the liquidation threshold
            ExceedsCloseFactor: if amount exceeds the close factor bound
            PriceNotAvailable: if a needed price is zero
            InsufficientBalance: if the liquidator cannot pay
            InsufficientLiquidity: if the pool cannot pay out the seized collateral
        """
        with self._atomic(Operation.LIQUIDATE.value):
            self._check_preconditions(Operation.LIQUIDATE, deadline)
            if liquidator == user:
                raise InvalidParameter("a position cannot be liquidated by its owner")
            self._require_positive(amount)

            position, _ = self._accrue_user(user)
            collateral_price, debt_price = self._prices()
            quote = calculate_liquidation(
                position, amount, self.risk_config, collateral_price, debt_price, self.same_asset
            )

            debt_token = self.tokens[self.debt_asset]
            collateral_token = self.tokens[self.collateral_asset]
            if debt_token.balance_of(liquidator) < quote.debt_liquidated:
                raise InsufficientBalance(
                    f"{liquidator} holds less than {quote.debt_liquidated} {self.debt_asset}"
                )
            if collateral_token.balance_of(self.pool_account) < quote.collateral_seized:
                raise InsufficientLiquidity(
                    f"pool cannot pay out {quote.collateral_seized} {self.collateral_asset}"
                )

            updated = apply_liquidation(position, quote)
            self._save_position(user, position, updated)
            self._realize_interest(quote.interest_repaid)
            self._record_activity(user, times_liquidated=1, collateral_seized=quote.collateral_seized)

            debt_token.transfer_from(self.pool_account, liquidator, self.pool_account, quote.debt_liquidated)
            if quote.collateral_seized:
                collateral_token.transfer(self.pool_account, liquidator, quote.collateral_seized)

        self._emit(
            Operation.LIQUIDATE.value, liquidator,
            {
                'debt_liquidated': quote.debt_liquidated,
                'collateral_seized': quote.collateral_seized,
                'incentive': quote.incentive,
            },
            {'user': user, **updated.to_dict()},
        )
        return quote

    def flash_loan(
        self,
        receiver: str,
        amount: int,
        callback: FlashLoanCallback,
        deadline: Optional[int] = None,
    ) -> FlashLoanResult:
        """
        Lend pool liquidity that must come back with a fee within this call.

        Sends amount of the debt asset to receiver, then calls
        callback(ledger, asset, amount, fee). The callback must return at
        least amount + fee to the pool account. The fee is credited to
        reserves. The ledger stays locked while the callback runs.

        Raises:
            InvalidAmount: if amount is outside the configured limits
            InsufficientLiquidity: if the pool cannot fund the loan
            FlashLoanNotRepaid: if the pool was not repaid in full
            Reentrancy: raised inside the callback if it calls a mutating operation
        """
        with self._atomic(Operation.FLASH_LOAN.value):
            self._check_preconditions(Operation.FLASH_LOAN, deadline)
            token = self.tokens[self.debt_asset]
            balance_before = token.balance_of(self.pool_account)
            fee = check_flash_loan_request(amount, self.available_liquidity(self.debt_asset), self.flash_loan_config)

            token.transfer(self.pool_account, receiver, amount)
            callback(self, self.debt_asset, amount, fee)

            repaid = check_flash_loan_repayment(
                amount, fee, balance_before, token.balance_of(self.pool_account)
            )
            self._put(totals_key(self.debt_asset), credit_fee(self.get_totals(self.debt_asset), fee))

        self._emit(
            Operation.FLASH_LOAN.value, receiver,
            {'amount': amount, 'fee': fee, 'repaid': repaid},
            self.get_totals(self.debt_asset).to_dict(),
        )
        return FlashLoanResult(amount=amount, fee=fee, repaid=repaid)

    def accrue_interest(self) -> int:
        """
        Accrue interest on every position at the current borrow rate.

        The rate is taken once, before any position is touched.

        Returns:
            Total interest added across all users
        """
        with self._atomic("accrue_interest"):
            rate, total_interest = self._accrue_all()

        self._emit(
            "accrue_interest", self.name,
            {'interest': total_interest, 'rate_bps': rate},
            self.get_totals(self.debt_asset).to_dict(),
        )
        return total_interest

    # ========================================================================
    # ADMIN OPERATIONS (Mutating)
    # ========================================================================

    def set_admin(self, caller: str, new_admin: str) -> None:
        """Hand the admin role to another address."""
        with self._atomic("set_admin"):
            self._require_admin(caller)
            if not new_admin:
                raise InvalidParameter("admin address must be non-empty")
            self._put(ADMIN_KEY, new_admin)
        self._emit("set_admin", caller, {}, {'admin': new_admin})

    def set_risk_config(self, caller: str, **changes: int) -> RiskConfig:
        """
        Change solvency parameters.

        Keyword arguments are RiskConfig field names (min_collateral_ratio_bps,
        liquidation_threshold_bps, close_factor_bps, liquidation_incentive_bps).

        Raises:
            Unauthorized: if caller is not the admin
            InvalidParameter: if the result violates a bound
            ParameterChangeTooLarge: if a field moves by more than 10%
        """
        with self._atomic("set_risk_config"):
            self._require_admin(caller)
            updated = update_risk_config(self.risk_config, self._current_time, **changes)
            self._put(RISK_CONFIG_KEY, updated)
        self._emit("set_risk_config", caller, dict(changes), self._risk_balances(updated))
        return updated

    def set_pause_switch(self, caller: str, operation: Operation, paused: bool) -> RiskConfig:
        """Pause or resume a single user operation."""
        with self._atomic("set_pause_switch"):
            self._require_admin(caller)
            updated = _set_pause_switch(self.risk_config, operation, paused, self._current_time)
            self._put(RISK_CONFIG_KEY, updated)
        self._emit("set_pause_switch", caller, {operation.value: int(paused)}, self._risk_balances(updated))
        return updated

    def set_emergency_pause(self, caller: str, paused: bool) -> RiskConfig:
        """Stop (or resume) every user operation at once."""
        with self._atomic("set_emergency_pause"):
            self._require_admin(caller)
            updated = _set_emergency_pause(self.risk_config, paused, self._current_time)
            self._put(RISK_CONFIG_KEY, updated)
        self._emit("set_emergency_pause", caller, {'paused': int(paused)}, self._risk_balances(updated))
        return updated

    def update_interest_rate_config(self, caller: str, **changes: int) -> InterestRateConfig:
        """
        Change rate curve parameters (10% rule per field).

        Existing positions are accrued at the old rate first.

        Raises:
            Unauthorized: if caller is not the admin
            InvalidParameter: if the result is out of bounds
            ParameterChangeTooLarge: if a field moves by more than 10%
        """
        with self._atomic("update_interest_rate_config"):
            self._require_admin(caller)
            updated = _update_interest_rate_config(self.interest_rate_config, **changes)
            self._accrue_all()
            self._put(INTEREST_RATE_CONFIG_KEY, updated)
        self._emit("update_interest_rate_config", caller, dict(changes), {})
        return updated

    def set_emergency_adjustment(self, caller: str, adjustment_bps: int) -> InterestRateConfig:
        """
        Shift the borrow rate by adjustment_bps (exempt from the 10% rule).

        Raises:
            Unauthorized: if caller is not the admin
            InvalidParameter: if |adjustment_bps| > 10000
        """
        with self._atomic("set_emergency_adjustment"):
            self._require_admin(caller)
            updated = _set_emergency_adjustment(self.interest_rate_config, adjustment_bps)
            self._accrue_all()
            self._put(INTEREST_RATE_CONFIG_KEY, updated)
        self._emit("set_emergency_adjustment", caller, {'adjustment_bps': adjustment_bps}, {})
        return updated

    def set_reserve_factor(self, caller: str, reserve_factor_bps: int, asset: Optional[str] = None) -> None:
        """
        Raises:
            Unauthorized: if caller is not the admin
            InvalidParameter: if the factor is outside [0, 5000]
        """
        asset = asset or self.debt_asset
        with self._atomic("set_reserve_factor"):
            self._require_admin(caller)
            validate_reserve_factor(reserve_factor_bps)
            self._put(reserve_factor_key(asset), reserve_factor_bps)
        self._emit("set_reserve_factor", caller, {'reserve_factor_bps': reserve_factor_bps}, {'asset': asset})

    def set_treasury(self, caller: str, treasury: str) -> None:
        with self._atomic("set_treasury"):
            self._require_admin(caller)
            if not treasury:
                raise InvalidParameter("treasury address must be non-empty")
            self._put(TREASURY_KEY, treasury)
        self._emit("set_treasury", caller, {}, {'treasury': treasury})

    def set_asset_params(self, caller: str, asset: str, params: AssetParams) -> None:
        with self._atomic("set_asset_params"):
            self._require_admin(caller)
            self._put(asset_params_key(asset), params)
        self._emit(
            "set_asset_params", caller,
            {'collateral_factor_bps': params.collateral_factor_bps, 'borrow_fee_bps': params.borrow_fee_bps},
            {'asset': asset},
        )

    def set_flash_loan_config(self, caller: str, config: FlashLoanConfig) -> None:
        with self._atomic("set_flash_loan_config"):
            self._require_admin(caller)
            validate_flash_loan_config(config)
            self._put(FLASH_LOAN_CONFIG_KEY, config)
        self._emit("set_flash_loan_config", caller, {'fee_bps': config.fee_bps}, {})

    def withdraw_reserve_to_treasury(self, caller: str, amount: int, asset: Optional[str] = None) -> int:
        """
        Pay reserves out to the treasury.

        The reserve balance is decremented before the token transfer.

        Returns:
            The remaining reserve balance

        Raises:
            Unauthorized: if caller is not the admin
            TreasuryNotSet: if no treasury is configured
            InvalidAmount: if amount <= 0
            InsufficientReserve: if amount exceeds the reserve balance
        """
        asset = asset or self.debt_asset
        with self._atomic("withdraw_reserve_to_treasury"):
            self._require_admin(caller)
            treasury = self.treasury
            updated = withdraw_reserve(self.get_totals(asset), amount, treasury)
            self._put(totals_key(asset), updated)
            self.tokens[asset].transfer(self.pool_account, treasury, amount)
        self._emit(
            "withdraw_reserve_to_treasury", caller,
            {'amount': amount}, {'treasury': treasury, 'reserve_balance': updated.reserve_balance},
        )
        return updated.reserve_balance

    # ========================================================================
    # TEST SUPPORT
    # ========================================================================

    def set_position(self, user: str, position: Position) -> None:
        """
        Overwrite a user's position and adjust totals to match.

        Bypasses every check; for building test fixtures only.

        Raises:
            LendingError: if test_mode is not enabled
        """
        if not self._test_mode:
            raise LendingError("set_position() requires test_mode=True")
        old = self.get_position(user)
        self._save_position(user, old, position)
        # Injected interest counts as charged income
        added_interest = position.accrued_interest - old.accrued_interest
        if added_interest > 0:
            totals = self.get_totals(self.debt_asset)
            self._put(totals_key(self.debt_asset), replace(
                totals, total_interest_accrued=checked_add(totals.total_interest_accrued, added_interest)
            ))

    # ========================================================================
    # INTERNALS
    # ========================================================================

    @contextmanager
    def _atomic(self, label: str) -> Iterator[None]:
        """
        Run an operation all-or-nothing.

        Every store write made inside the block is journaled; if the block
        raises, the journal is replayed in reverse and the error re-raised.
        """
        if self._locked:
            raise Reentrancy(f"{label}: another operation is in progress")
        self._locked = True
        self._journal = []
        try:
            yield
        except Exception as exc:
            self._rollback()
            if self.verbose:
                print(f"✗ REJECTED: {label}: {type(exc).__name__}: {exc}")
            raise
        finally:
            self._journal = None
            self._locked = False

    def _rollback(self) -> None:
        for key, previous in reversed(self._journal):
            if previous is None:
                self.store.delete(key)
            else:
                self.store.set(key, previous)

    def _put(self, key: StorageKey, value: Any) -> None:
        if self._journal is not None:
            self._journal.append((key, self.store.get(key)))
        self.store.set(key, value)

    def _check_preconditions(self, operation: Operation, deadline: Optional[int]) -> None:
        require_not_paused(self.risk_config, operation)
        if deadline is not None and self._current_time > deadline:
            raise DeadlineExpired(f"{operation.value}: deadline {deadline} passed at {self._current_time}")

    @staticmethod
    def _require_positive(amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise InvalidAmount(f"amount must be a positive integer, got {amount!r}")

    def _require_admin(self, caller: str) -> None:
        if caller != self.admin:
            raise Unauthorized(f"{caller} is not the admin")

    def _collateral_factor(self) -> int:
        return self.get_asset_params(self.collateral_asset).collateral_factor_bps

    def _prices(self) -> Tuple[int, int]:
        if self.same_asset:
            return DEFAULT_PRICE, DEFAULT_PRICE
        return (
            resolve_price(self.oracle, self.collateral_asset, self._current_time),
            resolve_price(self.oracle, self.debt_asset, self._current_time),
        )

    def _accrue_user(self, user: str, rate: Optional[int] = None) -> Tuple[Position, int]:
        """Accrue a user's interest and persist the result if it changed."""
        position = self.get_position(user)
        if rate is None:
            rate = self.current_rates()[1]
        updated, interest = accrue(position, rate, self._current_time)
        if updated != position and self.store.get(position_key(user)) is not None:
            self._save_position(user, position, updated)
        if interest:
            totals = self.get_totals(self.debt_asset)
            self._put(totals_key(self.debt_asset), replace(
                totals, total_interest_accrued=checked_add(totals.total_interest_accrued, interest)
            ))
        return updated, interest

    def _accrue_all(self) -> Tuple[int, int]:
        """Accrue every user at one rate. Returns (rate_bps, total_interest)."""
        rate = self.current_rates()[1]
        total = 0
        for user in self.list_users():
            _, interest = self._accrue_user(user, rate)
            total = checked_add(total, interest)
        return rate, total

    def _save_position(self, user: str, old: Position, new: Position) -> None:
        """Persist a position and move the totals by the difference."""
        self._put(position_key(user), new)
        users = self.store.get(USERS_KEY) or frozenset()
        if user not in users:
            self._put(USERS_KEY, users | {user})

        collateral_delta = new.collateral - old.collateral
        if collateral_delta:
            totals = self.get_totals(self.collateral_asset)
            self._put(totals_key(self.collateral_asset), replace(
                totals, total_collateral=checked_add(totals.total_collateral, collateral_delta)
            ))
        debt_delta = new.total_debt - old.total_debt
        if debt_delta:
            totals = self.get_totals(self.debt_asset)
            self._put(totals_key(self.debt_asset), replace(
                totals, total_borrows=checked_add(totals.total_borrows, debt_delta)
            ))

    def _realize_interest(self, interest_paid: int) -> None:
        """Credit the reserve share of interest that has just been paid."""
        if interest_paid <= 0:
            return
        totals, _ = accrue_reserve(
            self.get_totals(self.debt_asset), interest_paid, self.get_reserve_factor(self.debt_asset)
        )
        self._put(totals_key(self.debt_asset), totals)

    def _record_activity(self, user: str, **increments: int) -> None:
        self._put(activity_key(user), self.get_activity(user).record(self._current_time, **increments))

    def _risk_balances(self, config: RiskConfig) -> BalanceMap:
        return {
            'min_collateral_ratio_bps': config.min_collateral_ratio_bps,
            'liquidation_threshold_bps': config.liquidation_threshold_bps,
            'close_factor_bps': config.close_factor_bps,
            'liquidation_incentive_bps': config.liquidation_incentive_bps,
        }

    def _generate_exec_id(self, sequence: int) -> str:
        """
        Generate a unique execution ID.

        Format: exec:{ledger_name}:{sequence:012d}:{timestamp}
        """
        return f"exec:{self.name}:{sequence:012d}:{self._current_time}"

    def _emit(self, operation: str, actor: str, amounts: Mapping[str, Any], balances: Mapping[str, Any]) -> OperationRecord:
        """Record a successful operation and hand it to every sink."""
        sequence = self._next_sequence
        self._next_sequence += 1
        record = OperationRecord(
            sequence_number=sequence,
            exec_id=self._generate_exec_id(sequence),
            ledger_name=self.name,
            operation=operation,
            actor=actor,
            timestamp=self._current_time,
            amounts=dict(amounts),
            balances=dict(balances),
        )
        self.operation_log.append(record)
        if self.verbose:
            self._print_record(record)
        # The operation has already committed; a failing sink cannot undo it
        # or stop the remaining sinks.
        for sink in list(self._sinks):
            try:
                sink(record)
            except Exception as e:
                self.sink_failures.append((record, e))
                if self.verbose:
                    print(f"  ⚠ sink {sink!r} failed on {record.exec_id}: {e!r}")
        return record

    def _print_record(self, record: OperationRecord) -> None:
        """Print an operation record with an APPLIED result line."""
        lines = repr(record).split('\n')
        w = 100
        bar = "─" * w
        text = " ✓ APPLIED"
        lines[-1] = f"├{bar}┤"
        lines.append(f"│{text + ' ' * (w - len(text))}│")
        lines.append(f"└{bar}┘")
        print("\n".join(lines))

    # ========================================================================
    # CLONING
    # ========================================================================

    def clone(self) -> LendingLedger:
        """
        Create a copy of this ledger with independent state.

        Cloned state includes the store contents, operation log, sequence
        counter, current time and configuration flags. Token clients and the
        oracle are external collaborators and are shared, not copied. Event
        sinks and recorded sink failures are not carried over.

        Returns:
            A new LendingLedger with identical state
        """
        if self._locked:
            raise Reentrancy("cannot clone while an operation is in progress")
        cloned = LendingLedger.__new__(LendingLedger)
        cloned.name = self.name
        cloned.collateral_asset = self.collateral_asset
        cloned.debt_asset = self.debt_asset
        cloned.same_asset = self.same_asset
        cloned.pool_account = self.pool_account
        cloned.tokens = dict(self.tokens)
        cloned.oracle = self.oracle
        cloned.store = copy.deepcopy(self.store)
        cloned.operation_log = list(self.operation_log)
        cloned.verbose = self.verbose
        cloned._test_mode = self._test_mode
        cloned._current_time = self._current_time
        cloned._next_sequence = self._next_sequence
        cloned._sinks = []
        cloned.sink_failures = []
        cloned._journal = None
        cloned._locked = False
        return cloned

    def __repr__(self):
        return (
            f"LendingLedger({self.name!r}, {self.collateral_asset}/{self.debt_asset}, "
            f"users={len(self.list_users())}, t={self._current_time})"
        )
