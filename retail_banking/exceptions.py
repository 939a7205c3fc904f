"""Domain-specific exceptions"""


class BankingError(Exception):
    """Base exception for the banking domain"""

    pass


class AccountRuleError(BankingError):
    """An account refused a balance change"""

    pass


class InvalidAmountError(AccountRuleError):
    """Amount is zero, negative or not a number"""

    pass


class InsufficientFundsError(AccountRuleError):
    """Withdrawal exceeds the available balance"""

    pass


class DailyWithdrawalLimitExceededError(AccountRuleError):
    """Withdrawal exceeds the savings daily withdrawal limit"""

    pass


class SingleWithdrawalLimitExceededError(AccountRuleError):
    """Withdrawal exceeds the student savings per-withdrawal limit"""

    pass


class CreditLimitExceededError(AccountRuleError):
    """Borrowing would push the debt past the credit limit"""

    pass


class NotAuthenticatedError(BankingError):
    """No user is logged in, or credentials were rejected"""

    pass


class ForbiddenError(BankingError):
    """The logged-in user may not perform this operation"""

    pass


class NotFoundError(BankingError):
    """Account or user does not exist"""

    pass


class InvalidOperationError(BankingError):
    """Operation is not valid in the current state"""

    pass


class UserValidationError(BankingError):
    """Username or password does not satisfy registration rules"""

    pass
