class LedgerError(Exception):
    pass


class AccessDenied(LedgerError):
    """Requester is not a member of the requested group."""

    def __init__(self, group_id, user_id):
        super().__init__(f"Access denied. User {user_id} is not a member of group {group_id}.")
        self.group_id = group_id
        self.user_id = user_id


class DataIntegrityError(LedgerError):
    """Input data breaks a ledger invariant. Never retried, never swallowed."""


# ========== Payment lifecycle ==========
class PaymentNotFound(LedgerError):
    pass


class PaymentNotAllowed(LedgerError):
    pass


class PaymentStateError(LedgerError):
    pass
