import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP


logger = logging.getLogger(__name__)

CENT = Decimal('0.01')


# ==================== Enums ====================

class SessionState(Enum):
    """States of an ATM session"""
    IDLE = "IDLE"
    AUTHENTICATED = "AUTHENTICATED"
    WITHDRAWING = "WITHDRAWING"


# ==================== Errors ====================

class ATMError(Exception):
    """Base class for every failure raised by an ATM session"""

    default_message = "ATM operation failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)


class AuthError(ATMError):
    """Authentication was rejected"""


class WithdrawError(ATMError):
    """Withdrawal was rejected"""


class AccountNotFound(AuthError):

    def __init__(self, account_number: str):
        self.account_number = account_number
        super().__init__(f"Account {account_number!r} does not exist")


class InvalidPin(AuthError):

    def __init__(self, account_number: str):
        self.account_number = account_number
        super().__init__(f"PIN does not match account {account_number!r}")


class AlreadyAuthenticated(AuthError):
    default_message = "Session is already authenticated"


class TransactionInProgress(AlreadyAuthenticated):
    default_message = "Cannot authenticate during a transaction"


class NotAuthenticated(WithdrawError):
    default_message = "Please authenticate first"


class InvalidAmount(WithdrawError):
    """Amount is not a positive, cent-precise money value"""

    def __init__(self, requested: Any):
        self.requested = requested
        super().__init__(f"Invalid amount: {requested!r}")


class InsufficientMachineCash(WithdrawError):

    def __init__(self, requested: Decimal, available: Decimal):
        self.requested = requested
        self.available = available
        super().__init__(
            f"ATM cannot dispense {requested}: only {available} in the machine"
        )


class InsufficientAccountBalance(WithdrawError):

    def __init__(self, requested: Decimal, available: Decimal):
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient account balance: requested {requested}, available {available}"
        )


# ==================== Money ====================

def to_money(value: Any) -> Decimal:
    """
    Convert value to a Decimal with cent precision.
    Floats go through their string form; anything finer than a cent is
    rejected rather than rounded. Values needing more digits than the
    default decimal context (28) are rejected too, so later arithmetic
    stays exact. Negative zero comes back as zero.
    """
    if isinstance(value, bool):
        raise InvalidAmount(value)
    if isinstance(value, float):
        value = str(value)

    try:
        amount = Decimal(value)
        if not amount.is_finite():
            raise InvalidAmount(value)
        quantized = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmount(value) from None

    if quantized != amount:
        raise InvalidAmount(value)
    if not quantized:
        quantized = quantized.copy_abs()
    return quantized


# ==================== Core Models ====================

class Account:
    """Represents a bank account known to the machine"""

    def __init__(self, account_number: str, pin: str, balance: Any):
        if not isinstance(account_number, str) or not isinstance(pin, str):
            raise ValueError("Account number and PIN must be strings")

        try:
            balance = to_money(balance)
        except InvalidAmount as e:
            raise ValueError(f"Invalid balance for account {account_number!r}: {balance!r}") from e

        if balance < 0:
            raise ValueError(f"Balance cannot be negative: {balance}")

        self._account_number = account_number
        self._pin = pin
        self._balance = balance

    def get_account_number(self) -> str:
        return self._account_number

    def get_balance(self) -> Decimal:
        return self._balance

    def verify_pin(self, pin: str) -> bool:
        """Exact match, no normalization"""
        return self._pin == pin

    def debit(self, amount: Decimal) -> None:
        if amount > self._balance:
            raise InsufficientAccountBalance(amount, self._balance)
        self._balance -= amount

    def __repr__(self) -> str:
        masked = self._account_number[-4:].rjust(len(self._account_number), '*')
        return f"Account({masked}, ${self._balance})"


# ==================== State Pattern: Session States ====================

class ATMStateHandler(ABC):
    """
    Behaviour of one session state.
    Handlers carry no data: the session passes itself into every call.
    """

    state: SessionState

    @abstractmethod
    def authenticate(self, session: 'ATMSession', account_number: str, pin: str) -> None:
        pass

    @abstractmethod
    def withdraw(self, session: 'ATMSession', amount: Any) -> Decimal:
        pass

    @abstractmethod
    def exit(self, session: 'ATMSession') -> None:
        pass


class IdleState(ATMStateHandler):
    """No customer authenticated"""

    state = SessionState.IDLE

    def authenticate(self, session: 'ATMSession', account_number: str, pin: str) -> None:
        account = session.get_account(account_number)

        if account is None:
            logger.info("Authentication rejected: unknown account")
            raise AccountNotFound(account_number)

        if not account.verify_pin(pin):
            logger.info("Authentication rejected: PIN mismatch for %r", account)
            raise InvalidPin(account_number)

        session.set_active_account(account)
        session.set_state(AuthenticatedState())

    def withdraw(self, session: 'ATMSession', amount: Any) -> Decimal:
        logger.info("Withdrawal rejected: session not authenticated")
        raise NotAuthenticated()

    def exit(self, session: 'ATMSession') -> None:
        raise NotAuthenticated()


class AuthenticatedState(ATMStateHandler):
    """Customer authenticated, ready for a withdrawal"""

    state = SessionState.AUTHENTICATED

    def authenticate(self, session: 'ATMSession', account_number: str, pin: str) -> None:
        raise AlreadyAuthenticated()

    def withdraw(self, session: 'ATMSession', amount: Any) -> Decimal:
        # Reserve the transaction before any amount is validated
        session.set_state(WithdrawingState())
        try:
            return session.withdraw(amount)
        finally:
            session.set_state(AuthenticatedState())

    def exit(self, session: 'ATMSession') -> None:
        session.end_customer_session()


class WithdrawingState(ATMStateHandler):
    """Withdrawal underway"""

    state = SessionState.WITHDRAWING

    def authenticate(self, session: 'ATMSession', account_number: str, pin: str) -> None:
        raise TransactionInProgress()

    def withdraw(self, session: 'ATMSession', amount: Any) -> Decimal:
        account = session.get_active_account()

        if account is None:
            raise NotAuthenticated()

        amount = to_money(amount)
        if amount <= 0:
            logger.info("Withdrawal rejected: non-positive amount %s", amount)
            raise InvalidAmount(amount)

        available_cash = session.get_available_cash()
        if available_cash < amount:
            logger.info("Withdrawal of %s rejected: machine holds %s", amount, available_cash)
            raise InsufficientMachineCash(amount, available_cash)

        if account.get_balance() < amount:
            logger.info("Withdrawal of %s rejected: insufficient balance on %r", amount, account)
            raise InsufficientAccountBalance(amount, account.get_balance())

        # Both checks passed, so neither debit can fail
        account.debit(amount)
        session.dispense(amount)

        logger.debug("Withdrew %s from %r, machine cash now %s",
                     amount, account, session.get_available_cash())
        return amount

    def exit(self, session: 'ATMSession') -> None:
        session.end_customer_session()


# ==================== ATM Session ====================

class ATMSession:
    """Machine context: accounts, cash on hand, active account and current state"""

    def __init__(self, initial_cash: Any, accounts: Iterable[Account]):
        try:
            cash = to_money(initial_cash)
        except InvalidAmount as e:
            raise ValueError(f"Invalid initial cash: {initial_cash!r}") from e

        if cash < 0:
            raise ValueError(f"Initial cash cannot be negative: {cash}")

        self._accounts: Dict[str, Account] = {}
        for account in accounts:
            number = account.get_account_number()
            if number in self._accounts:
                raise ValueError(f"Duplicate account number: {number!r}")
            self._accounts[number] = account

        self._available_cash = cash
        self._active_account: Optional[Account] = None
        self._state_handler: ATMStateHandler = IdleState()

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'ATMSession':
        """
        Build a session from a plain mapping, e.g. the result of json.load:
        {"available_cash": "50000",
         "accounts": [{"account_number": "...", "pin": "...", "balance": "..."}]}
        """
        try:
            cash = config["available_cash"]
            entries = config["accounts"]
        except KeyError as e:
            raise ValueError(f"Missing config key: {e.args[0]!r}") from None

        if not isinstance(entries, list):
            raise ValueError("'accounts' must be a list")

        accounts: List[Account] = []
        for index, entry in enumerate(entries):
            try:
                accounts.append(Account(entry["account_number"], entry["pin"], entry["balance"]))
            except (KeyError, TypeError) as e:
                raise ValueError(f"Malformed account entry at index {index}: {e}") from None

        return cls(cash, accounts)

    def get_state(self) -> SessionState:
        return self._state_handler.state

    def set_state(self, state: ATMStateHandler) -> None:
        if state.state is not self._state_handler.state:
            logger.debug("Session %s -> %s",
                         self._state_handler.state.value, state.state.value)
        self._state_handler = state

    def get_account(self, account_number: str) -> Optional[Account]:
        return self._accounts.get(account_number)

    def get_accounts(self) -> List[Account]:
        return list(self._accounts.values())

    def get_available_cash(self) -> Decimal:
        return self._available_cash

    def get_active_account(self) -> Optional[Account]:
        return self._active_account

    def set_active_account(self, account: Optional[Account]) -> None:
        self._active_account = account

    def dispense(self, amount: Decimal) -> None:
        if amount > self._available_cash:
            raise InsufficientMachineCash(amount, self._available_cash)
        self._available_cash -= amount

    def end_customer_session(self) -> None:
        self._active_account = None
        self.set_state(IdleState())

    # Public API methods (delegate to state handler)
    def authenticate(self, account_number: str, pin: str) -> None:
        """Authenticate a customer against the known accounts"""
        self._state_handler.authenticate(self, account_number, pin)

    def withdraw(self, amount: Any) -> Decimal:
        """Withdraw cash from the active account, returns the amount dispensed"""
        return self._state_handler.withdraw(self, amount)

    def exit(self) -> None:
        """Log the customer out"""
        self._state_handler.exit(self)


# ==================== Demo Usage ====================

def main():
    """Demo the ATM session"""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print("=== ATM Session Demo ===\n")

    accounts = [
        Account("81975433120", "2311", Decimal('20000')),
        Account("51253524113", "1234", Decimal('50000')),
    ]
    atm = ATMSession(Decimal('50000'), accounts)

    try:
        atm.authenticate("81975433120", "2311")
    except AuthError as e:
        print(f"Authentication failed: {e}")
        return
    print("Authentication successful!")

    for amount in (Decimal('60000'), Decimal('21000'), Decimal('15000')):
        try:
            dispensed = atm.withdraw(amount)
        except WithdrawError as e:
            print(f"Withdrawal of {amount} failed: {e}")
            continue
        print(f"{dispensed} rupees got successfully deducted from your account")

    print(f"\nRemaining balance: {atm.get_active_account().get_balance()}")
    print(f"Cash left in ATM: {atm.get_available_cash()}")

    atm.exit()
    print(f"Session state: {atm.get_state().value}")

    print("\n=== Demo Complete ===")


if __name__ == "__main__":
    main()


# ## Key Design Decisions

# ### **State Pattern**
# - `IdleState`: waiting for a customer
# - `AuthenticatedState`: customer known, ready to withdraw
# - `WithdrawingState`: a withdrawal is being validated and applied
#
# Handlers are stateless; the session is passed into each call, so there is
# no session <-> state reference cycle.

# ### **State Machine Flow:**
# ```
# IDLE --[authenticate]--> AUTHENTICATED --[withdraw]--> WITHDRAWING
#   ^                          ^    |                         |
#   |                          |    +------[exit]-----+       |
#   |                          +----[attempt done]----|-------+
#   +-------------------------[exit]------------------+
# ```

# ### **Withdrawal Rules (checked in this order):**
# 1. Amount must be a positive, cent-precise value
# 2. Machine must hold at least the amount
# 3. Account balance must cover the amount
# Both balances are debited only after every check passed.
